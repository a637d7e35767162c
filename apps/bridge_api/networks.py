from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from .config import get_settings

logger = logging.getLogger(__name__)

UNKNOWN_NETWORK_NAME = 'Unknown Network'
DEFAULT_EXPLORER_BASE_URL = 'https://etherscan.io/address/'


@dataclass(frozen=True)
class ChainDescriptor:
    chain_id: int
    name: str
    key: str
    explorer_base_url: str
    fee_strategy: Literal['eip1559', 'legacy'] = 'legacy'
    # Signing through a contract factory triggers name resolution on these chains.
    direct_transaction: bool = False


STATIC_NETWORKS: tuple[ChainDescriptor, ...] = (
    ChainDescriptor(1, 'Ethereum', 'ethereum', 'https://etherscan.io/address/'),
    ChainDescriptor(137, 'Polygon', 'polygon', 'https://polygonscan.com/address/'),
    ChainDescriptor(10, 'Optimism', 'optimism', 'https://optimistic.etherscan.io/address/'),
    ChainDescriptor(
        42161,
        'Arbitrum',
        'arbitrum',
        'https://arbiscan.io/address/',
        fee_strategy='eip1559',
        direct_transaction=True
    ),
    ChainDescriptor(8453, 'Base', 'base', 'https://basescan.org/address/'),
    ChainDescriptor(
        421613,
        'Arbitrum Goerli',
        'arbitrum-goerli',
        'https://goerli.arbiscan.io/address/',
        fee_strategy='eip1559',
        direct_transaction=True
    )
)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_registry_path(path_value: str) -> Path:
    path = Path(path_value)
    if path.is_absolute():
        return path
    return _repo_root() / path


def _overlay_flag(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {'1', 'true', 'yes', 'y', 'on'}
    return default


def _descriptor_from_entry(entry: dict[str, Any], base: ChainDescriptor | None) -> ChainDescriptor | None:
    try:
        chain_id = int(entry.get('chain_id', 0))
    except (TypeError, ValueError):
        return None
    if chain_id <= 0:
        return None

    if base is None:
        base = ChainDescriptor(
            chain_id=chain_id,
            name=str(chain_id),
            key=str(chain_id),
            explorer_base_url=DEFAULT_EXPLORER_BASE_URL
        )

    fee_strategy = str(entry.get('fee_strategy', base.fee_strategy)).strip().lower()
    if fee_strategy not in {'eip1559', 'legacy'}:
        fee_strategy = base.fee_strategy

    explorer = str(entry.get('explorer_base_url', base.explorer_base_url)).strip()
    if explorer and not explorer.endswith('/'):
        explorer += '/'

    return replace(
        base,
        name=str(entry.get('name', base.name)).strip() or base.name,
        key=str(entry.get('key', base.key)).strip() or base.key,
        explorer_base_url=explorer or base.explorer_base_url,
        fee_strategy=fee_strategy,  # type: ignore[arg-type]
        direct_transaction=_overlay_flag(entry.get('direct_transaction'), base.direct_transaction)
    )


def _load_overlay(path_value: str) -> list[dict[str, Any]]:
    if not path_value:
        return []
    path = _resolve_registry_path(path_value)
    if not path.exists():
        logger.warning('network registry overlay %s does not exist; using static networks', path)
        return []

    try:
        payload = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning('network registry overlay %s is unreadable (%s); using static networks', path, exc)
        return []

    if not isinstance(payload, dict) or not isinstance(payload.get('networks'), list):
        return []
    return [item for item in payload['networks'] if isinstance(item, dict)]


@lru_cache(maxsize=1)
def _load_networks_cached() -> tuple[ChainDescriptor, ...]:
    settings = get_settings()
    by_id: dict[int, ChainDescriptor] = {item.chain_id: item for item in STATIC_NETWORKS}

    for entry in _load_overlay(settings.network_registry_path):
        try:
            entry_id = int(entry.get('chain_id', 0))
        except (TypeError, ValueError):
            continue
        descriptor = _descriptor_from_entry(entry, by_id.get(entry_id))
        if descriptor is not None:
            by_id[descriptor.chain_id] = descriptor

    # Static entries keep their original order, overlay additions follow by chain id.
    static_ids = [item.chain_id for item in STATIC_NETWORKS]
    extra_ids = sorted(chain_id for chain_id in by_id if chain_id not in static_ids)
    return tuple(by_id[chain_id] for chain_id in static_ids + extra_ids)


def list_networks() -> list[ChainDescriptor]:
    return list(_load_networks_cached())


list_networks.cache_clear = _load_networks_cached.cache_clear  # type: ignore[attr-defined]


def get_network(chain_id: int) -> ChainDescriptor | None:
    for network in _load_networks_cached():
        if network.chain_id == chain_id:
            return network
    return None


def network_name(chain_id: int) -> str:
    network = get_network(chain_id)
    return network.name if network is not None else UNKNOWN_NETWORK_NAME


def get_explorer_url(chain_id: int, address: str) -> str:
    network = get_network(chain_id)
    if network is None:
        return f'{DEFAULT_EXPLORER_BASE_URL}{address}'
    return f'{network.explorer_base_url}{address}'


def networks_payload() -> dict[str, Any]:
    return {
        'networks': [asdict(network) for network in _load_networks_cached()]
    }
