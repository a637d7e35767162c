from __future__ import annotations

from web3 import Web3

from .networks import get_network, list_networks

LEGACY_GAS_PRICE_WEI = Web3.to_wei(10, 'gwei')
EIP1559_MAX_FEE_PER_GAS_WEI = Web3.to_wei('0.1', 'gwei')
EIP1559_MAX_PRIORITY_FEE_PER_GAS_WEI = Web3.to_wei('0.01', 'gwei')


def eip1559_only_chain_ids() -> frozenset[int]:
    return frozenset(network.chain_id for network in list_networks() if network.fee_strategy == 'eip1559')


def select_fee_strategy(chain_id: int) -> dict[str, int]:
    """Fixed fee fields for a deployment transaction; no on-chain fee estimation."""
    network = get_network(chain_id)
    if network is not None and network.fee_strategy == 'eip1559':
        return {
            'maxFeePerGas': EIP1559_MAX_FEE_PER_GAS_WEI,
            'maxPriorityFeePerGas': EIP1559_MAX_PRIORITY_FEE_PER_GAS_WEI
        }
    return {'gasPrice': LEGACY_GAS_PRICE_WEI}
