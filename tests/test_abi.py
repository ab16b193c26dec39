"""Tests for call encoding and revert reason decoding."""

import pytest
from eth_abi import encode
from eth_utils import encode_hex

from tests.conftest import CREATOR, PRICE_FEED
from timecapsule_vault.contracts.abi import ERROR_SELECTOR, PANIC_SELECTOR, decode_revert_reason, extract_revert_reason
from timecapsule_vault.contracts.timecapsule import (
    FACTORY_CREATE_VAULT,
    FACTORY_GET_USER_VAULTS,
    VAULT_CREATOR,
    VAULT_DEPOSIT,
    VAULT_GET_LOCK_STATUS,
)
from timecapsule_vault.core.errors import AllEndpointsExhausted, RPCCallRejected
from timecapsule_vault.rpc.errors import JsonRpcError, RateLimited


def test_selectors():
    """Test well-known function selectors."""
    assert VAULT_DEPOSIT.encode_call() == "0xd0e30db0"
    assert VAULT_GET_LOCK_STATUS.signature == "getLockStatus()"
    assert FACTORY_CREATE_VAULT.signature == "createVault(uint256,uint256,uint256,address)"


def test_encode_call_checks_arity():
    """Test that argument count mismatches are rejected."""
    with pytest.raises(ValueError):
        FACTORY_GET_USER_VAULTS.encode_call()


def test_encode_call_arguments():
    """Test calldata layout for the factory call."""
    data = FACTORY_CREATE_VAULT.encode_call(1700000000, 0, 0, PRICE_FEED)

    assert data.startswith("0x" + FACTORY_CREATE_VAULT.selector.hex())
    assert len(data) == 2 + 8 + 4 * 64


def test_decode_address_is_checksummed():
    """Test that decoded addresses are checksummed."""
    data = encode_hex(encode(["address"], [CREATOR.lower()]))

    assert VAULT_CREATOR.decode_result(data) == CREATOR


def test_decode_address_array():
    """Test decoding the factory's vault list."""
    data = encode_hex(encode(["address[]"], [[CREATOR, PRICE_FEED]]))

    assert FACTORY_GET_USER_VAULTS.decode_result(data) == [CREATOR, PRICE_FEED]


def test_decode_lock_status_tuple():
    """Test decoding the nine-field lock status."""
    values = (True, 250000000000, 3600, True, False, 0, 0, 0, "Price target not reached")
    data = encode_hex(encode(list(VAULT_GET_LOCK_STATUS.outputs), list(values)))

    assert VAULT_GET_LOCK_STATUS.decode_result(data) == values


def test_decode_empty_result():
    """Test that empty return data (no contract at the address) is rejected."""
    with pytest.raises(RPCCallRejected):
        VAULT_CREATOR.decode_result("0x")


@pytest.mark.parametrize("data", [None, "0xzz", "0x123"])
def test_decode_malformed_result(data):
    """Test that non-hex return data is rejected like any other undecodable result."""
    with pytest.raises(RPCCallRejected, match="undecodable"):
        VAULT_GET_LOCK_STATUS.decode_result(data)


def test_decode_revert_reason():
    """Test Error(string) and Panic(uint256) payloads."""
    error_data = ERROR_SELECTOR + encode(["string"], ["Vault is still locked"])
    panic_data = PANIC_SELECTOR + encode(["uint256"], [0x11])

    assert decode_revert_reason(encode_hex(error_data)) == "Vault is still locked"
    assert decode_revert_reason(panic_data) == "Panic(0x11)"
    assert decode_revert_reason("0x") is None
    assert decode_revert_reason("0x12345678") is None


def test_extract_revert_reason_through_exhaustion():
    """Test finding the revert reason behind AllEndpointsExhausted."""
    data = encode_hex(ERROR_SELECTOR + encode(["string"], ["Only creator"]))
    cause = JsonRpcError("https://rpc.example", 3, "execution reverted", data)
    error = AllEndpointsExhausted("testnet", "eth_estimateGas", cause)

    assert extract_revert_reason(error) == "Only creator"


def test_extract_revert_reason_from_message():
    """Test providers that only put the reason in the message."""
    cause = JsonRpcError("https://rpc.example", -32000, "execution reverted: Goal not reached")
    error = RPCCallRejected("eth_estimateGas", str(cause), cause=cause)

    assert extract_revert_reason(error) == "Goal not reached"


def test_extract_revert_reason_absent():
    """Test errors that carry no revert reason."""
    exhausted = AllEndpointsExhausted("testnet", "eth_call", RateLimited("https://rpc.example"))
    assert extract_revert_reason(exhausted) is None
    assert extract_revert_reason(None) is None
