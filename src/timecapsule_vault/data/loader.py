"""Network registry loader."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from eth_utils import to_checksum_address

from timecapsule_vault.core.errors import UnknownNetwork
from timecapsule_vault.core.models import NetworkContracts, NetworkProfile

NETWORKS_FILE = Path(__file__).parent / "networks.yaml"

RPC_OVERRIDE_PREFIX = "TIMECAPSULE_RPC_URL_"


@lru_cache
def load_networks_file(path: Path = NETWORKS_FILE) -> dict[str, Any]:
    """
    Load the raw network table from YAML.

    Parameters
    ----------
    path : Path
        YAML file to read (defaults to the packaged ``networks.yaml``)

    Returns
    -------
    dict[str, Any]
        Mapping of network id to raw configuration

    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)["networks"]


def rpc_override_variable(network_id: str) -> str:
    """Environment variable that prepends endpoints for a network."""
    return RPC_OVERRIDE_PREFIX + network_id.upper().replace("-", "_")


def _build_profile(network_id: str, raw: dict[str, Any]) -> NetworkProfile:
    rpc = list(raw["rpc"])
    override = os.environ.get(rpc_override_variable(network_id), "")
    extra = [url.strip() for url in override.split(",") if url.strip()]
    # Overrides go first, without duplicating packaged endpoints
    rpc = extra + [url for url in rpc if url not in extra]

    contracts = {
        key: to_checksum_address(value)
        for key, value in (raw.get("contracts") or {}).items()
        if value
    }

    return NetworkProfile(
        id=network_id,
        name=raw["name"],
        chain_id=raw["chain_id"],
        currency=raw["currency"],
        rpc=rpc,
        explorer=raw["explorer"],
        contracts=NetworkContracts(**contracts),
    )


def load_networks(path: Path = NETWORKS_FILE) -> dict[str, NetworkProfile]:
    """
    Build every NetworkProfile in registry order.

    Returns
    -------
    dict[str, NetworkProfile]
        Profiles keyed by network id

    Raises
    ------
    ValueError
        If two networks declare the same chain id

    """
    profiles = {network_id: _build_profile(network_id, raw) for network_id, raw in load_networks_file(path).items()}

    chain_ids = [profile.chain_id for profile in profiles.values()]
    if len(chain_ids) != len(set(chain_ids)):
        msg = f"Duplicate chain id in network registry {path}"
        raise ValueError(msg)

    return profiles


def get_network(network_id: str) -> NetworkProfile:
    """
    Resolve a network identifier.

    Raises
    ------
    UnknownNetwork
        If the identifier is not in the registry

    """
    profiles = load_networks()
    if network_id not in profiles:
        raise UnknownNetwork(network_id)
    return profiles[network_id]


def get_network_by_chain_id(chain_id: int) -> NetworkProfile | None:
    for profile in load_networks().values():
        if profile.chain_id == chain_id:
            return profile
    return None


def get_all_network_ids() -> list[str]:
    """Network identifiers in registry order."""
    return list(load_networks_file().keys())


def get_default_network() -> NetworkProfile:
    return next(iter(load_networks().values()))


def is_known_network(network_id: str) -> bool:
    return network_id in load_networks_file()
