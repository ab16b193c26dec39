"""Periodic polling of on-chain reference prices from Chainlink feeds."""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass, field

from timecapsule_vault.contracts.timecapsule import PRICE_FEED_LATEST_ROUND_DATA, RoundData
from timecapsule_vault.core.config import get_settings
from timecapsule_vault.core.errors import UnknownNetwork, VaultAccessError
from timecapsule_vault.core.models import NetworkProfile, PriceSample
from timecapsule_vault.data import load_networks
from timecapsule_vault.rpc.client import ResilientRPCClient

logger = logging.getLogger(__name__)

CHAINLINK_DECIMALS = 8


def _default_client(network: NetworkProfile) -> ResilientRPCClient:
    return ResilientRPCClient.from_settings(network, get_settings())


@dataclass
class PollHandle:
    """
    Handle of one running price-polling loop.

    Attributes
    ----------
    network_id : str
        Network being polled
    task : asyncio.Task
        Task running the loop

    """

    network_id: str
    task: asyncio.Task = field(repr=False)

    @property
    def running(self) -> bool:
        return not self.task.done()

    def stop(self) -> None:
        """Cancel the loop. Safe to call more than once."""
        self.task.cancel()

    async def join(self) -> None:
        """Wait until the loop has finished after ``stop``."""
        with contextlib.suppress(asyncio.CancelledError):
            await self.task


class PriceOraclePoller:
    """
    Keeps the latest Chainlink reference price of each network.

    Every network starts with a zero sample. A poll that fails leaves the
    previous sample in place.

    Parameters
    ----------
    interval : float | None
        Seconds between fetches. Uses ``Settings.price_poll_interval`` if None.
    networks : Mapping[str, NetworkProfile] | None
        Network registry. Loads the packaged registry if None.
    client_factory : Callable[[NetworkProfile], ResilientRPCClient] | None
        Builds clients for networks without a registered client

    """

    def __init__(
        self,
        interval: float | None = None,
        networks: Mapping[str, NetworkProfile] | None = None,
        client_factory: Callable[[NetworkProfile], ResilientRPCClient] | None = None,
    ) -> None:
        self.interval = interval if interval is not None else get_settings().price_poll_interval
        self.networks = dict(networks) if networks is not None else load_networks()
        self.client_factory = client_factory or _default_client
        self._clients: dict[str, ResilientRPCClient] = {}
        self._owned_clients: set[str] = set()
        self._samples: dict[str, PriceSample] = {}
        self._handles: dict[str, PollHandle] = {}

    def add_client(self, client: ResilientRPCClient) -> None:
        """Reuse an existing client for its network. The poller will not close it."""
        self._clients[client.network.id] = client

    def _client_for(self, network_id: str) -> ResilientRPCClient:
        if network_id not in self.networks:
            raise UnknownNetwork(network_id)
        if network_id not in self._clients:
            self._clients[network_id] = self.client_factory(self.networks[network_id])
            self._owned_clients.add(network_id)
        return self._clients[network_id]

    def current(self, network_id: str) -> PriceSample:
        """Latest sample, or the zero default if nothing was fetched yet."""
        return self._samples.get(network_id) or PriceSample(network=network_id, decimals=CHAINLINK_DECIMALS)

    async def fetch_once(self, network_id: str) -> PriceSample:
        """
        Read ``latestRoundData()`` once and store the result.

        Raises
        ------
        UnknownNetwork
            If the network is not in the registry
        ValueError
            If the network has no price feed or the feed reports a non-positive answer
        AllEndpointsExhausted
            If no endpoint answered

        """
        client = self._client_for(network_id)
        feed = client.network.contracts.price_feed
        if not feed:
            msg = f"No price feed configured for {network_id}"
            raise ValueError(msg)

        round_data = RoundData(*await client.read(feed, PRICE_FEED_LATEST_ROUND_DATA))
        if round_data.answer <= 0:
            msg = f"Price feed for {network_id} returned {round_data.answer}"
            raise ValueError(msg)

        sample = PriceSample(
            network=network_id,
            price=round_data.answer,
            decimals=CHAINLINK_DECIMALS,
            timestamp=round_data.updated_at or int(time.time()),
        )
        self._samples[network_id] = sample
        return sample

    async def _poll(self, network_id: str) -> None:
        while True:
            try:
                sample = await self.fetch_once(network_id)
                logger.debug("Price for %s: %s", network_id, sample.as_decimal())
            except (VaultAccessError, ValueError) as e:
                logger.warning("Price poll for %s failed, keeping previous sample: %s", network_id, e)
            except Exception:
                # Anything else must not end the loop either
                logger.exception("Unexpected error polling price for %s, keeping previous sample", network_id)
            await asyncio.sleep(self.interval)

    def start_price_polling(self, network_id: str) -> PollHandle:
        """
        Fetch the price now and then every ``interval`` seconds.

        Must be called from a running event loop. Returns the existing handle
        when the network is already being polled.

        Raises
        ------
        UnknownNetwork
            If the network is not in the registry

        """
        if network_id not in self.networks:
            raise UnknownNetwork(network_id)

        handle = self._handles.get(network_id)
        if handle is not None and handle.running:
            return handle

        task = asyncio.create_task(self._poll(network_id), name=f"price-poll-{network_id}")
        handle = PollHandle(network_id=network_id, task=task)
        self._handles[network_id] = handle
        logger.info("Started price polling for %s every %ss", network_id, self.interval)
        return handle

    @contextlib.asynccontextmanager
    async def polling(self, network_id: str) -> AsyncIterator[PollHandle]:
        """Poll for the duration of an ``async with`` block."""
        handle = self.start_price_polling(network_id)
        try:
            yield handle
        finally:
            handle.stop()
            await handle.join()

    async def stop_all(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.stop()
        for handle in handles:
            await handle.join()

    async def aclose(self) -> None:
        """Stop every loop and close the clients this poller created."""
        await self.stop_all()
        for network_id in self._owned_clients:
            await self._clients[network_id].aclose()
        self._owned_clients.clear()
        self._clients.clear()

    async def __aenter__(self) -> "PriceOraclePoller":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()
