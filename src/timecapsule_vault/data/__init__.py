"""Network registry."""

from timecapsule_vault.data.loader import (
    get_all_network_ids,
    get_default_network,
    get_network,
    get_network_by_chain_id,
    is_known_network,
    load_networks,
    load_networks_file,
    rpc_override_variable,
)

__all__ = [
    "get_all_network_ids",
    "get_default_network",
    "get_network",
    "get_network_by_chain_id",
    "is_known_network",
    "load_networks",
    "load_networks_file",
    "rpc_override_variable",
]
