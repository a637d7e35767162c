"""Deployment of pseudo-compiled contracts through a connected wallet provider.

The wallet is reached through a web3 provider that holds the keys (a browser wallet
bridge, a signer such as Frame or Clef, or a dev node with unlocked accounts). This
module never sees private keys: it builds the transaction and asks the provider to
sign and send it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from eth_abi import encode
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from .arguments import find_constructor_inputs, normalize_constructor_args
from .fees import select_fee_strategy
from .model_gateway import ModelGateway
from .networks import get_explorer_url, get_network, network_name
from .pseudo_compiler import compile_rust_to_evm

logger = logging.getLogger(__name__)


class WalletError(Exception):
    def __init__(self, detail: str, status_code: int = 502) -> None:
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


@dataclass
class WalletState:
    is_connected: bool
    address: str
    chain_id: int
    chain_name: str

    def to_payload(self) -> dict:
        return {
            'isConnected': self.is_connected,
            'address': self.address,
            'chainId': self.chain_id,
            'chainName': self.chain_name
        }


@dataclass
class WalletContext:
    web3: Any
    account: str | None
    chain_id: int


@dataclass
class DeploymentRequest:
    translated_code: str
    contract_label: str
    raw_arguments_text: str
    gas_ceiling: int
    chain_id: int


@dataclass
class DeploymentOutcome:
    success: bool
    contract_address: str | None = None
    transaction_hash: str | None = None
    error: str | None = None
    chain_id: int | None = None
    constructor_args: list[Any] = field(default_factory=list)

    @classmethod
    def failure(cls, error: str, chain_id: int | None = None) -> 'DeploymentOutcome':
        return cls(success=False, error=error, chain_id=chain_id)

    def to_payload(self) -> dict:
        payload: dict = {'success': self.success}
        if self.success:
            payload['contractAddress'] = self.contract_address
            payload['transactionHash'] = self.transaction_hash
            if self.chain_id is not None and self.contract_address:
                payload['explorerUrl'] = get_explorer_url(self.chain_id, self.contract_address)
        else:
            payload['error'] = self.error
        return payload


class WalletSession:
    """Account and network requests against an EIP-1193 style provider."""

    def __init__(self, web3: Any) -> None:
        self.web3 = web3

    def _request(self, method: str, params: list) -> Any:
        return self.web3.manager.request_blocking(method, params)

    def _accounts(self) -> list[str]:
        try:
            accounts = self._request('eth_requestAccounts', [])
        except (ValueError, NotImplementedError, Web3Exception) as exc:
            # Dev nodes and remote signers only expose eth_accounts.
            logger.debug('eth_requestAccounts unsupported (%s); falling back to eth_accounts', exc)
            accounts = self.web3.eth.accounts
        return [str(account) for account in accounts or []]

    def connect(self) -> WalletState:
        try:
            accounts = self._accounts()
            chain_id = int(self.web3.eth.chain_id)
        except (ValueError, OSError, Web3Exception) as exc:
            raise WalletError(f'Failed to connect wallet: {exc}') from exc

        if not accounts:
            raise WalletError('No account is available from the wallet provider', status_code=409)

        return WalletState(
            is_connected=True,
            address=accounts[0],
            chain_id=chain_id,
            chain_name=network_name(chain_id)
        )

    def switch_network(self, chain_id: int) -> WalletState:
        try:
            self._request('wallet_switchEthereumChain', [{'chainId': hex(chain_id)}])
        except (ValueError, NotImplementedError, OSError, Web3Exception) as exc:
            raise WalletError(f'Failed to switch network: {exc}') from exc
        return self.connect()

    def context(self) -> WalletContext:
        state = self.connect()
        return WalletContext(web3=self.web3, account=state.address, chain_id=state.chain_id)


def _hash_to_hex(tx_hash: Any) -> str:
    if not tx_hash:
        return ''
    if isinstance(tx_hash, str):
        return tx_hash if tx_hash.startswith('0x') else f'0x{tx_hash}'
    return Web3.to_hex(tx_hash)


def _constructor_data(inputs: list, values: list[Any]) -> bytes:
    if not inputs:
        return b''
    return encode([param.type for param in inputs], values)


def _submit_direct(
    *,
    web3: Any,
    bytecode: str,
    inputs: list,
    values: list[Any],
    tx_params: dict[str, Any]
) -> Any:
    data = bytecode + _constructor_data(inputs, values).hex()
    transaction = dict(tx_params)
    transaction['data'] = data
    return web3.eth.send_transaction(transaction)


def _submit_via_factory(
    *,
    web3: Any,
    abi: list[Any],
    bytecode: str,
    values: list[Any],
    tx_params: dict[str, Any]
) -> Any:
    factory = web3.eth.contract(abi=abi, bytecode=bytecode)
    return factory.constructor(*values).transact(tx_params)


def deploy_compiled(
    *,
    abi: list[Any],
    bytecode: str,
    raw_arguments_text: str,
    gas_ceiling: int,
    chain_id: int,
    wallet: WalletContext | None,
    receipt_timeout: float = 120
) -> DeploymentOutcome:
    if wallet is None or not wallet.account:
        return DeploymentOutcome.failure('No wallet connected', chain_id)
    if not bytecode:
        return DeploymentOutcome.failure('Bytecode is required for deployment', chain_id)
    if gas_ceiling <= 0:
        return DeploymentOutcome.failure('Gas limit must be greater than zero', chain_id)
    if wallet.chain_id != chain_id:
        return DeploymentOutcome.failure(
            f'Wallet is connected to chain_id={wallet.chain_id} but deployment targets chain_id={chain_id}',
            chain_id
        )

    inputs = find_constructor_inputs(abi)
    arguments = normalize_constructor_args(raw_arguments_text, inputs)
    if arguments.parse_failed:
        logger.warning('constructor arguments are not a JSON array or object; using type defaults')

    network = get_network(chain_id)
    direct = network is not None and network.direct_transaction

    try:
        tx_params: dict[str, Any] = {
            'from': wallet.account,
            'gas': gas_ceiling,
            'nonce': wallet.web3.eth.get_transaction_count(wallet.account, 'pending')
        }
        tx_params.update(select_fee_strategy(chain_id))

        logger.info(
            'deploying on %s chain_id=%s direct=%s args=%s',
            network_name(chain_id),
            chain_id,
            direct,
            arguments.values
        )
        if direct:
            tx_hash = _submit_direct(
                web3=wallet.web3,
                bytecode=bytecode,
                inputs=inputs or [],
                values=arguments.values,
                tx_params=tx_params
            )
        else:
            tx_hash = _submit_via_factory(
                web3=wallet.web3,
                abi=abi,
                bytecode=bytecode,
                values=arguments.values,
                tx_params=tx_params
            )
        receipt = wallet.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=receipt_timeout)
    except TimeExhausted as exc:
        logger.warning('deployment receipt not observed chain_id=%s: %s', chain_id, exc)
        return DeploymentOutcome.failure('Deployment failed - no transaction receipt obtained', chain_id)
    except Exception as exc:
        logger.exception('deployment transaction failed chain_id=%s', chain_id)
        return DeploymentOutcome.failure(f'Deployment failed: {exc}', chain_id)

    if receipt is None:
        return DeploymentOutcome.failure('Deployment failed - no transaction receipt obtained', chain_id)
    if not receipt.get('status'):
        return DeploymentOutcome.failure('Transaction failed', chain_id)

    contract_address = receipt.get('contractAddress')
    if not contract_address:
        return DeploymentOutcome.failure('Deployment failed - contract address not available', chain_id)

    transaction_hash = _hash_to_hex(tx_hash)
    if not transaction_hash:
        return DeploymentOutcome.failure('Deployment failed - transaction hash not available', chain_id)

    logger.info('deployed contract=%s tx=%s chain_id=%s', contract_address, transaction_hash, chain_id)
    return DeploymentOutcome(
        success=True,
        contract_address=str(contract_address),
        transaction_hash=transaction_hash,
        chain_id=chain_id,
        constructor_args=arguments.values
    )


def deploy_translated(
    request: DeploymentRequest,
    *,
    gateway: ModelGateway,
    wallet: WalletContext | None,
    receipt_timeout: float = 120
) -> DeploymentOutcome:
    if wallet is None or not wallet.account:
        return DeploymentOutcome.failure('No wallet connected', request.chain_id)

    compiled = compile_rust_to_evm(request.translated_code, request.contract_label, gateway=gateway)
    if not compiled.success:
        return DeploymentOutcome.failure(compiled.error or 'Compilation failed', request.chain_id)

    return deploy_compiled(
        abi=compiled.abi,
        bytecode=compiled.bytecode,
        raw_arguments_text=request.raw_arguments_text,
        gas_ceiling=request.gas_ceiling,
        chain_id=request.chain_id,
        wallet=wallet,
        receipt_timeout=receipt_timeout
    )
