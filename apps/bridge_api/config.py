from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    app_name: str
    environment: Literal['dev', 'prod', 'test']
    cors_origins: str
    postgres_dsn: str
    history_enabled: bool
    network_registry_path: str
    model_provider: Literal['openai', 'gemini']
    openai_api_key: str
    openai_model: str
    gemini_api_key: str
    gemini_model: str
    model_temperature: float
    model_max_tokens: int
    model_timeout_seconds: int
    wallet_rpc_url: str
    deploy_receipt_timeout_seconds: int
    deploy_default_gas_limit: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    environment = os.getenv('ENVIRONMENT', 'dev').strip().lower()
    if environment not in {'dev', 'prod', 'test'}:
        environment = 'dev'

    model_provider = os.getenv('MODEL_PROVIDER', 'openai').strip().lower()
    if model_provider not in {'openai', 'gemini'}:
        model_provider = 'openai'

    return Settings(
        app_name=os.getenv('APP_NAME', 'solrust-bridge-api'),
        environment=environment,  # type: ignore[arg-type]
        cors_origins=os.getenv('CORS_ORIGINS', 'http://localhost:5173'),
        postgres_dsn=os.getenv('POSTGRES_DSN', '').strip(),
        history_enabled=_env_bool('HISTORY_ENABLED', True),
        network_registry_path=os.getenv('NETWORK_REGISTRY_PATH', '').strip(),
        model_provider=model_provider,  # type: ignore[arg-type]
        openai_api_key=os.getenv('OPENAI_API_KEY', '').strip(),
        openai_model=os.getenv('OPENAI_MODEL', 'gpt-4o'),
        gemini_api_key=os.getenv('GEMINI_API_KEY', '').strip(),
        gemini_model=os.getenv('GEMINI_MODEL', 'gemini-1.5-pro'),
        model_temperature=_env_float('MODEL_TEMPERATURE', 0.1),
        model_max_tokens=_env_int('MODEL_MAX_TOKENS', 4000),
        model_timeout_seconds=_env_int('MODEL_TIMEOUT_SECONDS', 120),
        wallet_rpc_url=os.getenv('WALLET_RPC_URL', '').strip(),
        deploy_receipt_timeout_seconds=_env_int('DEPLOY_RECEIPT_TIMEOUT_SECONDS', 120),
        deploy_default_gas_limit=_env_int('DEPLOY_DEFAULT_GAS_LIMIT', 3_000_000)
    )
