from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any

import asyncpg
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from prometheus_client import Counter, make_asgi_app
from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from .config import get_settings
from .converter import convert_solidity_to_rust
from .deployment import (
    DeploymentOutcome,
    DeploymentRequest,
    WalletContext,
    WalletError,
    WalletSession,
    deploy_translated
)
from .history import HistoryStore, HistoryUnavailable
from .model_gateway import ModelGateway, build_gateway
from .networks import networks_payload
from .pseudo_compiler import compile_rust_to_evm
from .samples import sample_payload

settings = get_settings()
logger = logging.getLogger(__name__)

CONVERSIONS_TOTAL = Counter(
    'solrust_conversions_total',
    'Solidity to Rust conversion requests',
    ['outcome']
)
COMPILATIONS_TOTAL = Counter(
    'solrust_compilations_total',
    'Pseudo-compilation requests',
    ['outcome', 'bytecode']
)
DEPLOYMENTS_TOTAL = Counter(
    'solrust_deployments_total',
    'Contract deployment attempts',
    ['chain_id', 'outcome']
)

_TX_HASH = re.compile(r'0x[a-fA-F0-9]{64}')

app = FastAPI(title=settings.app_name, default_response_class=ORJSONResponse)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[x.strip() for x in settings.cors_origins.split(',') if x.strip()],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*']
)
app.mount('/metrics', make_asgi_app())


@dataclass
class AppContext:
    gateway: ModelGateway
    history: HistoryStore | None = None
    wallet: WalletSession | None = None
    receipt_timeout_seconds: int = 120
    default_gas_limit: int = 3_000_000


_pg_pool: asyncpg.Pool | None = None
_context: AppContext | None = None


def get_context() -> AppContext:
    global _context
    if _context is None:
        _context = AppContext(
            gateway=build_gateway(settings),
            receipt_timeout_seconds=settings.deploy_receipt_timeout_seconds,
            default_gas_limit=settings.deploy_default_gas_limit
        )
    return _context


class ConvertRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    solidity_code: str | None = Field(default=None, alias='solidityCode')


class CompileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rust_code: str | None = Field(default=None, alias='rustCode')
    contract_name: str | None = Field(default=None, alias='contractName')


class DeployRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rust_code: str | None = Field(default=None, alias='rustCode')
    contract_name: str | None = Field(default=None, alias='contractName')
    constructor_args: Any = Field(default='[]', alias='constructorArgs')
    gas_limit: int | None = Field(default=None, alias='gasLimit')
    chain_id: int | None = Field(default=None, alias='chainId')
    conversion_id: int | None = Field(default=None, alias='conversionId')


class SwitchNetworkRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chain_id: int = Field(alias='chainId', gt=0)


class DeploymentRecordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contract_address: str = Field(alias='contractAddress')
    chain_id: int = Field(alias='chainId', gt=0)
    transaction_hash: str = Field(alias='transactionHash')
    contract_name: str = Field(alias='contractName', min_length=1)
    constructor_args: Any = Field(default=None, alias='constructorArgs')
    conversion_id: int | None = Field(default=None, alias='conversionId')


def _failure(status_code: int, error: str) -> ORJSONResponse:
    return ORJSONResponse(status_code=status_code, content={'success': False, 'error': error})


def _argument_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _history_empty(warning: str) -> dict:
    return {'items': [], 'warning': warning}


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = exc.errors()
    if not errors:
        return _failure(400, 'Invalid request')
    first = errors[0]
    field = '.'.join(part for part in first.get('loc', ()) if isinstance(part, str) and part != 'body')
    message = str(first.get('msg') or 'Invalid request')
    return _failure(400, f'{field}: {message}' if field else message)


@app.on_event('startup')
async def startup() -> None:
    global _pg_pool
    context = get_context()

    if settings.postgres_dsn and settings.history_enabled:
        try:
            _pg_pool = await asyncpg.create_pool(dsn=settings.postgres_dsn, min_size=1, max_size=10)
            history = HistoryStore(_pg_pool)
            await history.ensure_schema()
            context.history = history
        except (asyncpg.PostgresError, OSError) as exc:
            _pg_pool = None
            logger.warning('Postgres unavailable during startup; history endpoints will run in degraded mode: %s', exc)
    else:
        logger.info('POSTGRES_DSN not set; conversion and deployment history disabled')

    if settings.wallet_rpc_url:
        web3 = Web3(Web3.HTTPProvider(settings.wallet_rpc_url, request_kwargs={'timeout': 30}))
        if not web3.is_connected():
            logger.warning('wallet provider is not reachable at %s; deployments will fail until it is', settings.wallet_rpc_url)
        context.wallet = WalletSession(web3)
    else:
        logger.info('WALLET_RPC_URL not set; server-side deployment disabled')


@app.on_event('shutdown')
async def shutdown() -> None:
    global _pg_pool
    if _pg_pool is not None:
        await _pg_pool.close()
        _pg_pool = None


@app.get('/health')
async def health() -> dict[str, str]:
    return {'status': 'ok'}


@app.get('/health/ready')
async def ready(context: AppContext = Depends(get_context)) -> dict:
    if context.history is not None:
        try:
            await context.history.ping()
        except (asyncpg.PostgresError, OSError) as exc:
            raise HTTPException(status_code=503, detail=f'history store unavailable: {exc}') from exc
    return {
        'status': 'ready',
        'model_provider': settings.model_provider,
        'history': context.history is not None,
        'wallet': context.wallet is not None
    }


@app.get('/api/networks')
async def networks() -> dict:
    return networks_payload()


@app.get('/api/examples/solidity')
async def example_solidity() -> dict:
    return sample_payload()


@app.post('/api/convert')
async def convert(body: ConvertRequest, context: AppContext = Depends(get_context)):
    if not body.solidity_code:
        return _failure(400, 'Solidity code is required')

    try:
        result = await run_in_threadpool(convert_solidity_to_rust, body.solidity_code, gateway=context.gateway)
    except Exception as exc:
        logger.exception('conversion error')
        CONVERSIONS_TOTAL.labels('error').inc()
        return _failure(500, str(exc) or 'Internal server error')

    CONVERSIONS_TOTAL.labels('success' if result.success else 'failure').inc()
    payload = result.to_payload()
    if result.success and context.history is not None:
        try:
            payload['conversionId'] = await context.history.record_conversion(
                solidity_code=body.solidity_code,
                rust_code=result.rust_code
            )
        except (asyncpg.PostgresError, OSError) as exc:
            logger.warning('failed to record conversion: %s', exc)
    return payload


@app.post('/api/compile')
async def compile_contract(body: CompileRequest, context: AppContext = Depends(get_context)):
    if not body.rust_code:
        return _failure(400, 'Rust code is required')
    if not body.contract_name:
        return _failure(400, 'Contract name is required')

    try:
        result = await run_in_threadpool(
            compile_rust_to_evm,
            body.rust_code,
            body.contract_name,
            gateway=context.gateway
        )
    except Exception as exc:
        logger.exception('compilation error')
        COMPILATIONS_TOTAL.labels('error', 'none').inc()
        return _failure(500, str(exc) or 'Internal server error')

    COMPILATIONS_TOTAL.labels(
        'success' if result.success else 'failure',
        'repaired' if result.bytecode_repaired else 'model'
    ).inc()
    return result.to_payload()


@app.get('/api/wallet')
async def wallet_state(context: AppContext = Depends(get_context)):
    if context.wallet is None:
        return ORJSONResponse(status_code=503, content={'isConnected': False, 'error': 'wallet provider is not configured'})
    try:
        state = await run_in_threadpool(context.wallet.connect)
    except WalletError as exc:
        return ORJSONResponse(status_code=exc.status_code, content={'isConnected': False, 'error': exc.detail})
    return state.to_payload()


@app.post('/api/wallet/switch')
async def wallet_switch(body: SwitchNetworkRequest, context: AppContext = Depends(get_context)):
    if context.wallet is None:
        return ORJSONResponse(status_code=503, content={'isConnected': False, 'error': 'wallet provider is not configured'})
    try:
        state = await run_in_threadpool(context.wallet.switch_network, body.chain_id)
    except WalletError as exc:
        return ORJSONResponse(status_code=exc.status_code, content={'isConnected': False, 'error': exc.detail})
    return state.to_payload()


@app.post('/api/deploy')
async def deploy(body: DeployRequest, context: AppContext = Depends(get_context)):
    if not body.rust_code:
        return _failure(400, 'Rust code is required')
    if not body.contract_name:
        return _failure(400, 'Contract name is required')

    wallet: WalletContext | None = None
    if context.wallet is not None:
        try:
            wallet = await run_in_threadpool(context.wallet.context)
        except WalletError as exc:
            DEPLOYMENTS_TOTAL.labels(str(body.chain_id or 0), 'failure').inc()
            return DeploymentOutcome.failure(exc.detail, body.chain_id).to_payload()

    chain_id = body.chain_id if body.chain_id is not None else (wallet.chain_id if wallet else 0)
    request = DeploymentRequest(
        translated_code=body.rust_code,
        contract_label=body.contract_name,
        raw_arguments_text=_argument_text(body.constructor_args),
        gas_ceiling=body.gas_limit if body.gas_limit is not None else context.default_gas_limit,
        chain_id=chain_id
    )
    try:
        outcome = await run_in_threadpool(
            deploy_translated,
            request,
            gateway=context.gateway,
            wallet=wallet,
            receipt_timeout=context.receipt_timeout_seconds
        )
    except Exception as exc:
        logger.exception('deployment error')
        DEPLOYMENTS_TOTAL.labels(str(chain_id), 'error').inc()
        return _failure(500, str(exc) or 'Internal server error')
    DEPLOYMENTS_TOTAL.labels(str(chain_id), 'success' if outcome.success else 'failure').inc()

    if outcome.success and context.history is not None:
        try:
            await context.history.record_deployment(
                contract_address=outcome.contract_address or '',
                chain_id=chain_id,
                transaction_hash=outcome.transaction_hash or '',
                contract_name=body.contract_name,
                constructor_args=outcome.constructor_args,
                conversion_id=body.conversion_id
            )
        except (asyncpg.PostgresError, OSError) as exc:
            logger.warning('failed to record deployment: %s', exc)
    return outcome.to_payload()


@app.post('/api/deployments')
async def record_deployment(body: DeploymentRecordRequest, context: AppContext = Depends(get_context)) -> dict:
    if not Web3.is_address(body.contract_address):
        raise HTTPException(status_code=422, detail='contractAddress is not a valid EVM address')
    if not _TX_HASH.fullmatch(body.transaction_hash):
        raise HTTPException(status_code=422, detail='transactionHash is not a valid transaction hash')
    if context.history is None:
        error = HistoryUnavailable()
        raise HTTPException(status_code=error.status_code, detail=error.detail)

    deployment_id = await context.history.record_deployment(
        contract_address=body.contract_address,
        chain_id=body.chain_id,
        transaction_hash=body.transaction_hash,
        contract_name=body.contract_name,
        constructor_args=body.constructor_args,
        conversion_id=body.conversion_id
    )
    return {'id': deployment_id, 'success': True}


@app.get('/api/deployments')
async def deployments(
    chain_id: int | None = Query(default=None, gt=0),
    limit: int = Query(default=50, ge=1, le=500),
    context: AppContext = Depends(get_context)
) -> dict:
    if context.history is None:
        return _history_empty('history store unavailable')
    return {'items': await context.history.list_deployments(limit=limit, chain_id=chain_id)}


@app.get('/api/conversions')
async def conversions(
    limit: int = Query(default=50, ge=1, le=500),
    context: AppContext = Depends(get_context)
) -> dict:
    if context.history is None:
        return _history_empty('history store unavailable')
    return {'items': await context.history.list_conversions(limit=limit)}


def run() -> None:
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    uvicorn.run(app, host=os.getenv('HOST', '0.0.0.0'), port=int(os.getenv('PORT', '8000')))


if __name__ == '__main__':
    run()
