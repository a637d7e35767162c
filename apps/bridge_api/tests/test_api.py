import json
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from apps.bridge_api.config import get_settings
from apps.bridge_api.deployment import WalletContext, WalletError, WalletState
from apps.bridge_api.main import AppContext, app, get_context
from apps.bridge_api.model_gateway import ModelGatewayError
from apps.bridge_api.networks import list_networks

ACCOUNT = '0x70997970C51812dc3A010C7d01b50e0d17dc79C8'
DEPLOYED = '0x5FbDB2315678afecb367f032d93F642f64180aa3'

TOKEN_ABI = [
    {
        'type': 'constructor',
        'stateMutability': 'nonpayable',
        'inputs': [
            {'name': '_name', 'type': 'string'},
            {'name': '_symbol', 'type': 'string'},
            {'name': '_decimals', 'type': 'uint8'},
            {'name': '_initialSupply', 'type': 'uint256'}
        ]
    }
]


class ScriptedGateway:
    def __init__(self, replies: list | None = None) -> None:
        self.replies = list(replies or [])

    def complete(self, *, system: str, prompt: str, json_mode: bool = False) -> str:
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeEth:
    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id
        self.transactions: list[dict] = []

    def get_transaction_count(self, account, block_identifier) -> int:
        return 0

    def send_transaction(self, transaction: dict) -> bytes:
        self.transactions.append(transaction)
        return b'\x01' * 32

    def wait_for_transaction_receipt(self, tx_hash, timeout=120) -> dict:
        return {'status': 1, 'contractAddress': DEPLOYED}


class FakeWeb3:
    def __init__(self, chain_id: int) -> None:
        self.eth = FakeEth(chain_id)


class FakeWalletSession:
    def __init__(self, chain_id: int = 42161, error: WalletError | None = None) -> None:
        self.web3 = FakeWeb3(chain_id)
        self.chain_id = chain_id
        self.error = error

    def connect(self) -> WalletState:
        if self.error is not None:
            raise self.error
        return WalletState(True, ACCOUNT, self.chain_id, 'Arbitrum')

    def switch_network(self, chain_id: int) -> WalletState:
        self.chain_id = chain_id
        return self.connect()

    def context(self) -> WalletContext:
        state = self.connect()
        return WalletContext(web3=self.web3, account=state.address, chain_id=state.chain_id)


class FakeHistory:
    def __init__(self) -> None:
        self.conversions: list[dict] = []
        self.deployments: list[dict] = []

    async def ping(self) -> None:
        return None

    async def record_conversion(self, **kwargs) -> int:
        self.conversions.append(kwargs)
        return len(self.conversions)

    async def record_deployment(self, **kwargs) -> int:
        self.deployments.append(kwargs)
        return len(self.deployments)

    async def list_deployments(self, *, limit: int = 50, chain_id: int | None = None) -> list[dict]:
        return [item for item in self.deployments if chain_id is None or item['chain_id'] == chain_id][:limit]

    async def list_conversions(self, *, limit: int = 50) -> list[dict]:
        return self.conversions[:limit]


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        patcher = patch.dict('os.environ', {'NETWORK_REGISTRY_PATH': ''}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        get_settings.cache_clear()
        list_networks.cache_clear()

        self.context = AppContext(gateway=ScriptedGateway())
        app.dependency_overrides[get_context] = lambda: self.context
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        get_settings.cache_clear()
        list_networks.cache_clear()


class ConvertEndpointTests(ApiTestCase):
    def test_requires_solidity_code(self) -> None:
        response = self.client.post('/api/convert', json={})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'success': False, 'error': 'Solidity code is required'})

    def test_returns_rust_code(self) -> None:
        self.context.gateway = ScriptedGateway(['```rust\nmod token {}\n```'])

        response = self.client.post('/api/convert', json={'solidityCode': 'contract Token {}'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'rustCode': 'mod token {}', 'success': True})

    def test_records_conversion_when_history_is_available(self) -> None:
        history = FakeHistory()
        self.context.history = history
        self.context.gateway = ScriptedGateway(['mod token {}'])

        response = self.client.post('/api/convert', json={'solidityCode': 'contract Token {}'})

        self.assertEqual(response.json()['conversionId'], 1)
        self.assertEqual(history.conversions[0]['rust_code'], 'mod token {}')

    def test_upstream_failure_is_a_result_not_an_error(self) -> None:
        self.context.gateway = ScriptedGateway([ModelGatewayError('OpenAI API key is not configured', 503)])

        response = self.client.post('/api/convert', json={'solidityCode': 'contract Token {}'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            'rustCode': '',
            'success': False,
            'error': 'OpenAI API key is not configured'
        })

    def test_unexpected_errors_are_500(self) -> None:
        self.context.gateway = ScriptedGateway([RuntimeError('boom')])

        response = self.client.post('/api/convert', json={'solidityCode': 'contract Token {}'})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {'success': False, 'error': 'boom'})


class RequestValidationTests(ApiTestCase):
    def test_wrong_field_type_is_a_400_result(self) -> None:
        response = self.client.post('/api/convert', json={'solidityCode': 123})

        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertIs(body['success'], False)
        self.assertTrue(body['error'].startswith('solidityCode: '))

    def test_non_json_body_is_a_400_result(self) -> None:
        response = self.client.post(
            '/api/convert',
            content=b'not json',
            headers={'Content-Type': 'application/json'}
        )

        self.assertEqual(response.status_code, 400)
        self.assertIs(response.json()['success'], False)
        self.assertTrue(response.json()['error'])

    def test_unparseable_gas_limit_is_a_400_result(self) -> None:
        response = self.client.post(
            '/api/deploy',
            json={'rustCode': 'mod token {}', 'contractName': 'Token', 'gasLimit': 'lots'}
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(set(response.json()), {'success', 'error'})
        self.assertTrue(response.json()['error'].startswith('gasLimit: '))

    def test_out_of_range_query_is_a_400_result(self) -> None:
        response = self.client.get('/api/deployments', params={'limit': 0})

        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()['error'].startswith('query.limit: '))


class CompileEndpointTests(ApiTestCase):
    def test_requires_rust_code_and_contract_name(self) -> None:
        response = self.client.post('/api/compile', json={'contractName': 'Token'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Rust code is required')

        response = self.client.post('/api/compile', json={'rustCode': 'mod token {}'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Contract name is required')

    def test_returns_abi_and_bytecode(self) -> None:
        self.context.gateway = ScriptedGateway([json.dumps({'abi': TOKEN_ABI, 'bytecode': '0x6080'})])

        response = self.client.post('/api/compile', json={'rustCode': 'mod token {}', 'contractName': 'Token'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'abi': TOKEN_ABI, 'bytecode': '0x6080', 'success': True})


class DeployEndpointTests(ApiTestCase):
    def test_without_wallet_reports_failure(self) -> None:
        response = self.client.post(
            '/api/deploy',
            json={'rustCode': 'mod token {}', 'contractName': 'Token', 'chainId': 1}
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': False, 'error': 'No wallet connected'})

    def test_wallet_errors_are_reported(self) -> None:
        self.context.wallet = FakeWalletSession(error=WalletError('provider offline'))

        response = self.client.post('/api/deploy', json={'rustCode': 'mod token {}', 'contractName': 'Token'})

        self.assertEqual(response.json(), {'success': False, 'error': 'provider offline'})

    def test_deploys_on_wallet_chain_and_records_history(self) -> None:
        history = FakeHistory()
        wallet = FakeWalletSession(chain_id=42161)
        self.context.history = history
        self.context.wallet = wallet
        self.context.gateway = ScriptedGateway([json.dumps({'abi': TOKEN_ABI, 'bytecode': '0x6080'})])

        response = self.client.post(
            '/api/deploy',
            json={
                'rustCode': 'mod token {}',
                'contractName': 'Token',
                'constructorArgs': '["MyToken", "MTK"]',
                'gasLimit': 1_000_000
            }
        )

        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['contractAddress'], DEPLOYED)
        self.assertEqual(body['transactionHash'], '0x' + '01' * 32)
        self.assertEqual(body['explorerUrl'], f'https://arbiscan.io/address/{DEPLOYED}')
        self.assertEqual(wallet.web3.eth.transactions[0]['gas'], 1_000_000)
        self.assertEqual(history.deployments[0]['constructor_args'], ['MyToken', 'MTK', 0, 0])
        self.assertEqual(history.deployments[0]['chain_id'], 42161)


class WalletEndpointTests(ApiTestCase):
    def test_unconfigured_wallet(self) -> None:
        response = self.client.get('/api/wallet')

        self.assertEqual(response.status_code, 503)
        self.assertFalse(response.json()['isConnected'])

    def test_wallet_state_and_switch(self) -> None:
        self.context.wallet = FakeWalletSession(chain_id=42161)

        state = self.client.get('/api/wallet').json()
        self.assertEqual(state['address'], ACCOUNT)
        self.assertEqual(state['chainId'], 42161)

        switched = self.client.post('/api/wallet/switch', json={'chainId': 421613}).json()
        self.assertEqual(switched['chainId'], 421613)


class HistoryEndpointTests(ApiTestCase):
    def test_degraded_without_store(self) -> None:
        self.assertEqual(
            self.client.get('/api/deployments').json(),
            {'items': [], 'warning': 'history store unavailable'}
        )
        self.assertEqual(self.client.get('/api/conversions').json()['items'], [])

    def test_record_requires_store(self) -> None:
        response = self.client.post(
            '/api/deployments',
            json={
                'contractAddress': DEPLOYED,
                'chainId': 1,
                'transactionHash': '0x' + 'ab' * 32,
                'contractName': 'Token'
            }
        )
        self.assertEqual(response.status_code, 503)

    def test_record_validates_address(self) -> None:
        self.context.history = FakeHistory()

        response = self.client.post(
            '/api/deployments',
            json={
                'contractAddress': 'not-an-address',
                'chainId': 1,
                'transactionHash': '0x' + 'ab' * 32,
                'contractName': 'Token'
            }
        )
        self.assertEqual(response.status_code, 422)

    def test_record_and_list(self) -> None:
        self.context.history = FakeHistory()

        created = self.client.post(
            '/api/deployments',
            json={
                'contractAddress': DEPLOYED,
                'chainId': 137,
                'transactionHash': '0x' + 'ab' * 32,
                'contractName': 'Token',
                'constructorArgs': ['A', 'B']
            }
        )
        self.assertEqual(created.json(), {'id': 1, 'success': True})

        items = self.client.get('/api/deployments', params={'chain_id': 137}).json()['items']
        self.assertEqual(items[0]['contract_address'], DEPLOYED)
        self.assertEqual(self.client.get('/api/deployments', params={'chain_id': 1}).json()['items'], [])


class MiscEndpointTests(ApiTestCase):
    def test_health(self) -> None:
        self.assertEqual(self.client.get('/health').json(), {'status': 'ok'})

        ready = self.client.get('/health/ready').json()
        self.assertEqual(ready['status'], 'ready')
        self.assertFalse(ready['wallet'])

    def test_networks(self) -> None:
        networks = self.client.get('/api/networks').json()['networks']
        self.assertEqual([item['chain_id'] for item in networks], [1, 137, 10, 42161, 8453, 421613])

    def test_example_solidity(self) -> None:
        body = self.client.get('/api/examples/solidity').json()
        self.assertEqual(body['contractName'], 'Token')
        self.assertIn('contract Token', body['solidityCode'])
