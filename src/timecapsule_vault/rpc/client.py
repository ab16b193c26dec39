"""Resilient JSON-RPC client that fails over across a network's endpoints."""

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx
from eth_utils import encode_hex, is_address, to_checksum_address, to_int

from timecapsule_vault.core.config import Settings
from timecapsule_vault.core.errors import AllEndpointsExhausted, TransactionRejected, VaultAccessError
from timecapsule_vault.core.models import EndpointAttempt, EndpointProbe, FeeData, NetworkProfile
from timecapsule_vault.rpc.classifier import ErrorClassifier
from timecapsule_vault.rpc.errors import ChainIdMismatch, EndpointError, EndpointTimeout, MalformedResponse
from timecapsule_vault.rpc.failover import RPCRequest, attempt
from timecapsule_vault.rpc.retry import RetryConfig
from timecapsule_vault.rpc.transport import JsonRpcTransport

if TYPE_CHECKING:
    from timecapsule_vault.contracts.abi import ContractFunction

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_PRIORITY_FEE = 1_000_000_000  # 1 gwei

# Methods whose result must be hex data or a hex quantity
DATA_METHODS = frozenset({"eth_call"})
QUANTITY_METHODS = frozenset(
    {
        "eth_blockNumber",
        "eth_chainId",
        "eth_estimateGas",
        "eth_gasPrice",
        "eth_getBalance",
        "eth_getTransactionCount",
        "eth_maxPriorityFeePerGas",
    }
)
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _is_hex(value: Any, even: bool) -> bool:
    if not isinstance(value, str) or not value.startswith(("0x", "0X")):
        return False
    digits = value[2:]
    if even and len(digits) % 2:
        return False
    return set(digits) <= _HEX_DIGITS and (even or bool(digits))


def _check_result(url: str, method: str, result: Any) -> Any:
    """Reject results whose shape cannot be decoded, so the next endpoint is tried."""
    if method in DATA_METHODS and not _is_hex(result, even=True):
        raise MalformedResponse(url, f"{method} returned non-hex data: {result!r:.40}")
    if method in QUANTITY_METHODS and not _is_hex(result, even=False):
        raise MalformedResponse(url, f"{method} returned an invalid quantity: {result!r:.40}")
    return result


def _quantity(value: str | int | None) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return to_int(hexstr=value)


def _checksum(address: str) -> str:
    if not is_address(address):
        msg = f"Invalid address: {address}"
        raise ValueError(msg)
    return to_checksum_address(address)


class ResilientRPCClient:
    """
    One logical JSON-RPC client over all endpoints of a network.

    Calls go to the first endpoint in registry order and move to the next one on
    any endpoint failure, strictly sequentially. The client reports the declared
    identity of its NetworkProfile (name and chain id) no matter which endpoint
    answered.

    Parameters
    ----------
    network : NetworkProfile
        Network to connect to
    http_client : httpx.AsyncClient | None
        Shared HTTP client. A private one is created (and closed by ``aclose``)
        if None.
    timeout : float
        Per-endpoint attempt timeout in seconds
    classifier : ErrorClassifier | None
        Retry classification table. Uses the default quirks if None.
    short_circuit_fatal : bool
        Stop failover on fatal-class (application-level) errors
    verify_chain_id : bool
        Check ``eth_chainId`` of each endpoint on first use and skip endpoints
        serving a different chain
    retry_config : RetryConfig | None
        Extra passes over the endpoint list after exhaustion

    """

    def __init__(
        self,
        network: NetworkProfile,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        classifier: ErrorClassifier | None = None,
        *,
        short_circuit_fatal: bool = False,
        verify_chain_id: bool = False,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self.network = network
        self.timeout = timeout
        self.classifier = classifier or ErrorClassifier()
        self.short_circuit_fatal = short_circuit_fatal
        self.verify_chain_id = verify_chain_id
        self.retry_config = retry_config or RetryConfig()
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.transport = JsonRpcTransport(self._http_client, timeout=timeout)
        self._verified_endpoints: set[str] = set()
        self.last_attempts: list[EndpointAttempt] = []

    @classmethod
    def from_settings(
        cls,
        network: NetworkProfile,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ResilientRPCClient":
        """Build a client configured from ``Settings``."""
        return cls(
            network,
            http_client=http_client,
            timeout=settings.rpc_timeout,
            short_circuit_fatal=settings.short_circuit_fatal,
            verify_chain_id=settings.verify_chain_id,
            retry_config=RetryConfig(max_retries=settings.failover_passes),
        )

    @property
    def name(self) -> str:
        return self.network.name

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    @property
    def endpoints(self) -> list[str]:
        return list(self.network.rpc)

    async def _send(self, url: str, request: RPCRequest) -> Any:
        if self.verify_chain_id and url not in self._verified_endpoints:
            chain_id = await self.transport.send(url, RPCRequest("eth_chainId"))
            reported = _quantity(_check_result(url, "eth_chainId", chain_id))
            if reported != self.chain_id:
                raise ChainIdMismatch(url, self.chain_id, reported)
            self._verified_endpoints.add(url)
        return _check_result(url, request.method, await self.transport.send(url, request))

    async def request(self, method: str, params: list[Any] | tuple[Any, ...] = ()) -> Any:
        """
        Perform one logical JSON-RPC call with endpoint failover.

        Parameters
        ----------
        method : str
            RPC method name (e.g., 'eth_call', 'eth_getBalance')
        params : list[Any] | tuple[Any, ...]
            Method parameters

        Returns
        -------
        Any
            Raw ``result`` member of the JSON-RPC response

        Raises
        ------
        AllEndpointsExhausted
            If every endpoint failed
        RPCCallRejected
            If short-circuiting is enabled and an endpoint returned a fatal error

        """
        try:
            outcome = await attempt(
                self.network.rpc,
                RPCRequest(method, tuple(params)),
                self._send,
                classifier=self.classifier,
                timeout=self.timeout,
                network_id=self.network.id,
                short_circuit_fatal=self.short_circuit_fatal,
                retry_config=self.retry_config,
            )
        except AllEndpointsExhausted as e:
            self.last_attempts = e.attempts
            raise
        self.last_attempts = outcome.attempts
        return outcome.result

    # Chain identity

    def get_chain_id(self) -> int:
        """Declared chain id; never taken from whichever endpoint answers."""
        return self.chain_id

    async def get_block_number(self) -> int:
        return _quantity(await self.request("eth_blockNumber"))

    # Accounts

    async def get_balance(self, address: str, block: str = "latest") -> int:
        """Native balance of ``address`` in wei."""
        return _quantity(await self.request("eth_getBalance", [_checksum(address), block]))

    async def get_transaction_count(self, address: str, block: str = "latest") -> int:
        return _quantity(await self.request("eth_getTransactionCount", [_checksum(address), block]))

    # Calls

    async def call(self, tx: dict[str, Any], block: str = "latest") -> str:
        return await self.request("eth_call", [tx, block])

    async def read(self, contract_address: str, function: "ContractFunction", *args: Any) -> Any:
        """
        Call a view function and decode its return value.

        Parameters
        ----------
        contract_address : str
            Target contract
        function : ContractFunction
            ABI description of the function
        *args : Any
            Function arguments

        Returns
        -------
        Any
            Decoded value (tuple for multi-output functions)

        """
        data = function.encode_call(*args)
        result = await self.call({"to": _checksum(contract_address), "data": data})
        return function.decode_result(result)

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return _quantity(await self.request("eth_estimateGas", [tx]))

    # Fees

    async def get_fee_data(self) -> FeeData:
        """
        Current fee parameters.

        On EIP-1559 chains ``max_fee_per_gas`` is twice the latest base fee plus
        the priority fee; the priority fee falls back to 1 gwei when the
        endpoints do not support ``eth_maxPriorityFeePerGas``.

        """
        gas_price, block = await asyncio.gather(
            self.request("eth_gasPrice"),
            self.request("eth_getBlockByNumber", ["latest", False]),
        )

        base_fee = (block or {}).get("baseFeePerGas")
        if base_fee is None:
            return FeeData(gas_price=_quantity(gas_price))

        try:
            priority_fee = _quantity(await self.request("eth_maxPriorityFeePerGas"))
        except VaultAccessError as e:
            logger.debug("eth_maxPriorityFeePerGas unavailable on %s, using default: %s", self.network.id, e)
            priority_fee = DEFAULT_PRIORITY_FEE

        return FeeData(
            gas_price=_quantity(gas_price),
            max_fee_per_gas=_quantity(base_fee) * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    # Transactions

    async def send_raw_transaction(self, raw_transaction: bytes | str) -> str:
        """Broadcast a signed transaction; returns its hash."""
        payload = encode_hex(raw_transaction) if isinstance(raw_transaction, bytes) else raw_transaction
        return await self.request("eth_sendRawTransaction", [payload])

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        return await self.request("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout: float = 120.0,
        poll_interval: float = 2.0,
    ) -> dict[str, Any]:
        """
        Poll until the transaction is mined.

        Returns
        -------
        dict[str, Any]
            Transaction receipt

        Raises
        ------
        TransactionRejected
            If the receipt reports failure or no receipt appears within ``timeout``

        """
        deadline = time.monotonic() + timeout
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
            except AllEndpointsExhausted as e:
                logger.warning("Receipt lookup for %s failed, will retry: %s", tx_hash, e)
                receipt = None

            if receipt:
                if _quantity(receipt.get("status")) != 1:
                    raise TransactionRejected("Transaction failed", tx_hash=tx_hash)
                return receipt

            if time.monotonic() >= deadline:
                msg = f"Timed out waiting for transaction {tx_hash}"
                raise TransactionRejected(msg, tx_hash=tx_hash)
            await asyncio.sleep(poll_interval)

    # Diagnostics

    async def probe_endpoints(self, stop_at_first: bool = False) -> list[EndpointProbe]:
        """
        Check every endpoint individually with ``eth_blockNumber``.

        Parameters
        ----------
        stop_at_first : bool
            Stop after the first working endpoint

        Returns
        -------
        list[EndpointProbe]
            One result per probed endpoint, in registry order

        """
        probes = []
        for url in self.network.rpc:
            started = time.monotonic()
            try:
                result = await asyncio.wait_for(self._send(url, RPCRequest("eth_blockNumber")), self.timeout)
            except TimeoutError:
                probes.append(EndpointProbe(url=url, success=False, error=str(EndpointTimeout(url, "RPC timeout"))))
                continue
            except EndpointError as e:
                probes.append(EndpointProbe(url=url, success=False, error=str(e)))
                continue

            probes.append(
                EndpointProbe(
                    url=url,
                    success=True,
                    block_number=_quantity(result),
                    latency_ms=(time.monotonic() - started) * 1000,
                )
            )
            if stop_at_first:
                break
        return probes

    # Lifecycle

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "ResilientRPCClient":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()
