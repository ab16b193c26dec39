"""Tests for the network registry."""

import pytest

from timecapsule_vault.core.errors import UnknownNetwork
from timecapsule_vault.data import (
    get_all_network_ids,
    get_default_network,
    get_network,
    get_network_by_chain_id,
    is_known_network,
    load_networks,
    rpc_override_variable,
)


def test_get_all_network_ids():
    """Test listing supported network identifiers in registry order."""
    network_ids = get_all_network_ids()

    assert network_ids[0] == "arbitrum-sepolia"
    assert "sepolia" in network_ids
    assert "bsc-testnet" in network_ids


def test_get_network():
    """Test resolving a network profile."""
    profile = get_network("arbitrum-sepolia")

    assert profile.chain_id == 421614
    assert profile.currency == "ETH"
    assert profile.rpc[0] == "https://sepolia-rollup.arbitrum.io/rpc"
    assert len(profile.rpc) > 1
    assert profile.contracts.vault_factory == "0x333222930ff6d5f8A5127b353422f7AA905458De"


def test_get_network_unknown():
    """Test that unknown identifiers fail fast instead of falling back."""
    with pytest.raises(UnknownNetwork) as exc_info:
        get_network("mainnet")

    assert exc_info.value.code == "unknown_network"
    assert not is_known_network("mainnet")


def test_chain_ids_are_unique():
    """Test that every network declares a distinct chain id."""
    profiles = load_networks()
    chain_ids = [p.chain_id for p in profiles.values()]

    assert len(chain_ids) == len(set(chain_ids))


def test_get_network_by_chain_id():
    """Test reverse lookup by chain id."""
    assert get_network_by_chain_id(97).id == "bsc-testnet"
    assert get_network_by_chain_id(1) is None


def test_default_network():
    """Test that the first registry entry is the default."""
    assert get_default_network().id == "arbitrum-sepolia"


def test_profile_structure():
    """Test that every profile has the required fields."""
    for profile in load_networks().values():
        assert profile.name
        assert profile.rpc
        assert all(url.startswith("https://") for url in profile.rpc)
        assert profile.explorer.startswith("https://")
        assert profile.contracts.price_feed.startswith("0x")


def test_rpc_override_is_prepended(monkeypatch):
    """Test that the environment override goes in front of the packaged endpoints."""
    variable = rpc_override_variable("bsc-testnet")
    assert variable == "TIMECAPSULE_RPC_URL_BSC_TESTNET"

    monkeypatch.setenv(variable, "https://private.example/rpc, https://bsc-testnet.drpc.org")
    profile = get_network("bsc-testnet")

    assert profile.rpc[0] == "https://private.example/rpc"
    assert profile.rpc[1] == "https://bsc-testnet.drpc.org"
    assert profile.rpc.count("https://bsc-testnet.drpc.org") == 1


def test_explorer_url():
    """Test building explorer links."""
    profile = get_network("sepolia")

    assert profile.explorer_url("tx", "0xabc") == "https://sepolia.etherscan.io/tx/0xabc"
