"""Tests for the resilient RPC client."""

import pytest

from tests.conftest import ENDPOINT_A, ENDPOINT_B, ENDPOINT_C, PRICE_FEED
from timecapsule_vault.contracts.timecapsule import PRICE_FEED_DECIMALS, PRICE_FEED_LATEST_ROUND_DATA
from timecapsule_vault.core.errors import AllEndpointsExhausted, TransactionRejected
from timecapsule_vault.rpc.client import DEFAULT_PRIORITY_FEE
from timecapsule_vault.rpc.errors import RateLimited

GWEI = 10**9


async def test_rate_limited_endpoints_fail_over(stub, client):
    """Test failover over two HTTP 429 endpoints to a working third one."""
    stub.status[ENDPOINT_A] = 429
    stub.status[ENDPOINT_B] = 429
    stub.results["eth_blockNumber"] = "0x1b4"

    block = await client.get_block_number()

    assert block == 436
    assert stub.urls() == [ENDPOINT_A, ENDPOINT_B, ENDPOINT_C]
    failures = [a for a in client.last_attempts if not a.ok]
    assert len(failures) == 2
    assert [a.url for a in failures] == [ENDPOINT_A, ENDPOINT_B]


async def test_exhaustion_surfaces_single_error(stub, client):
    """Test that callers only ever see AllEndpointsExhausted."""
    for url in (ENDPOINT_A, ENDPOINT_B, ENDPOINT_C):
        stub.status[url] = 429

    with pytest.raises(AllEndpointsExhausted) as exc_info:
        await client.get_block_number()

    assert isinstance(exc_info.value.last_error, RateLimited)
    assert exc_info.value.network_id == "testnet"
    assert len(client.last_attempts) == 3


async def test_declared_chain_identity(stub, client):
    """Test that chain id and name come from the profile, not the endpoint."""
    stub.results["eth_chainId"] = "0x1"

    assert client.get_chain_id() == 421614
    assert client.chain_id == 421614
    assert client.name == "Test Network"
    assert stub.calls == []


async def test_chain_id_verification_skips_foreign_endpoints(stub, network, make_client):
    """Test that an endpoint serving another chain is treated as failed."""
    chain_ids = {ENDPOINT_A: "0x1", ENDPOINT_B: hex(421614)}
    stub.results["eth_blockNumber"] = "0x10"

    def chain_id(params):
        # Called once per endpoint; answer based on the last recorded URL
        return chain_ids[stub.calls[-1][0]]

    stub.results["eth_chainId"] = chain_id
    client = make_client(network, verify_chain_id=True)

    assert await client.get_block_number() == 16
    assert client.last_attempts[0].ok is False
    assert "chain id 1" in client.last_attempts[0].error

    # Verified endpoints are not checked again
    await client.get_block_number()
    assert stub.methods().count("eth_chainId") == 3


async def test_get_balance_and_nonce(stub, client):
    """Test account queries."""
    stub.results["eth_getBalance"] = hex(15 * 10**17)
    stub.results["eth_getTransactionCount"] = "0x7"

    assert await client.get_balance("0xf39fd6e51aad88f6f4ce6ab8827279cfffb92266") == 15 * 10**17
    assert await client.get_transaction_count("0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266", "pending") == 7


async def test_invalid_address_is_rejected(client):
    """Test that malformed addresses never reach an endpoint."""
    with pytest.raises(ValueError):
        await client.get_balance("not-an-address")


async def test_read_decodes_contract_result(stub, client):
    """Test calling and decoding a view function."""
    stub.on_call(PRICE_FEED_LATEST_ROUND_DATA, 1, 250000000000, 1700000000, 1700000001, 1)
    stub.on_call(PRICE_FEED_DECIMALS, 8)

    round_data = await client.read(PRICE_FEED, PRICE_FEED_LATEST_ROUND_DATA)

    assert round_data[1] == 250000000000
    assert await client.read(PRICE_FEED, PRICE_FEED_DECIMALS) == 8


async def test_fee_data_eip1559_with_default_priority_fee(stub, client):
    """Test fee derivation when eth_maxPriorityFeePerGas is unsupported."""
    stub.results["eth_gasPrice"] = hex(3 * GWEI)
    stub.results["eth_getBlockByNumber"] = {"number": "0x10", "baseFeePerGas": hex(2 * GWEI)}

    fees = await client.get_fee_data()

    assert fees.gas_price == 3 * GWEI
    assert fees.max_priority_fee_per_gas == DEFAULT_PRIORITY_FEE
    assert fees.max_fee_per_gas == 2 * 2 * GWEI + DEFAULT_PRIORITY_FEE


async def test_fee_data_eip1559(stub, client):
    """Test fee derivation with a reported priority fee."""
    stub.results["eth_gasPrice"] = hex(3 * GWEI)
    stub.results["eth_getBlockByNumber"] = {"number": "0x10", "baseFeePerGas": hex(GWEI)}
    stub.results["eth_maxPriorityFeePerGas"] = hex(2 * GWEI)

    fees = await client.get_fee_data()

    assert fees.max_priority_fee_per_gas == 2 * GWEI
    assert fees.max_fee_per_gas == 4 * GWEI


async def test_fee_data_legacy(stub, client):
    """Test that chains without a base fee get legacy gas pricing."""
    stub.results["eth_gasPrice"] = hex(10 * GWEI)
    stub.results["eth_getBlockByNumber"] = {"number": "0x10"}

    fees = await client.get_fee_data()

    assert fees.gas_price == 10 * GWEI
    assert fees.max_fee_per_gas is None
    assert fees.max_priority_fee_per_gas is None


async def test_wait_for_transaction(stub, client):
    """Test receipt polling for a mined transaction."""
    receipts = iter([None, {"status": "0x1", "blockNumber": "0x20"}])
    stub.results["eth_getTransactionReceipt"] = lambda params: next(receipts)

    receipt = await client.wait_for_transaction("0xabc", timeout=5.0, poll_interval=0.01)

    assert receipt["blockNumber"] == "0x20"


async def test_wait_for_reverted_transaction(stub, client):
    """Test that a failed receipt raises TransactionRejected."""
    stub.results["eth_getTransactionReceipt"] = {"status": "0x0"}

    with pytest.raises(TransactionRejected) as exc_info:
        await client.wait_for_transaction("0xabc", timeout=5.0, poll_interval=0.01)

    assert exc_info.value.tx_hash == "0xabc"


async def test_wait_for_transaction_timeout(stub, client):
    """Test that a transaction that never gets mined eventually raises."""
    stub.results["eth_getTransactionReceipt"] = None

    with pytest.raises(TransactionRejected, match="Timed out"):
        await client.wait_for_transaction("0xabc", timeout=0.05, poll_interval=0.01)


async def test_probe_endpoints(stub, client):
    """Test per-endpoint connectivity checks."""
    stub.status[ENDPOINT_A] = 429
    stub.results["eth_blockNumber"] = "0x64"

    probes = await client.probe_endpoints()

    assert [p.success for p in probes] == [False, True, True]
    assert probes[1].block_number == 100
    assert probes[1].latency_ms is not None
    assert "Too Many Requests" in probes[0].error

    first = await client.probe_endpoints(stop_at_first=True)
    assert len(first) == 2


async def test_send_raw_transaction(stub, client):
    """Test broadcasting signed bytes as hex."""
    stub.results["eth_sendRawTransaction"] = "0x" + "ab" * 32

    tx_hash = await client.send_raw_transaction(b"\x02\xf8")

    assert tx_hash == "0x" + "ab" * 32
    assert stub.sent_raw == ["0x02f8"]


async def test_malformed_call_result_fails_over(stub, client):
    """Test that null and non-hex eth_call results count as endpoint failures."""
    replies = {ENDPOINT_A: None, ENDPOINT_B: "0xzz", ENDPOINT_C: "0x" + "00" * 31 + "08"}
    stub.results["eth_call"] = lambda params: replies[stub.calls[-1][0]]

    decimals = await client.read(PRICE_FEED, PRICE_FEED_DECIMALS)

    assert decimals == 8
    assert [a.ok for a in client.last_attempts] == [False, False, True]
    assert all(a.error_class == "retryable" for a in client.last_attempts[:2])


async def test_malformed_quantity_fails_over(stub, client):
    """Test that a missing balance result moves on to the next endpoint."""
    replies = {ENDPOINT_A: None, ENDPOINT_B: "1000", ENDPOINT_C: hex(10**18)}
    stub.results["eth_getBalance"] = lambda params: replies[stub.calls[-1][0]]

    assert await client.get_balance(PRICE_FEED) == 10**18
    assert stub.urls("eth_getBalance") == [ENDPOINT_A, ENDPOINT_B, ENDPOINT_C]


async def test_malformed_results_everywhere_exhaust(stub, client):
    stub.results["eth_blockNumber"] = None

    with pytest.raises(AllEndpointsExhausted):
        await client.get_block_number()
