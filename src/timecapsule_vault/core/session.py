"""Session facade wiring the registry, wallet store, RPC client, and vault services."""

import logging
from collections.abc import Mapping

import httpx

from timecapsule_vault.core.config import Settings, get_settings
from timecapsule_vault.core.errors import NoWalletSelected, UnknownNetwork
from timecapsule_vault.core.models import (
    ConsistencyReport,
    EndpointProbe,
    NetworkProfile,
    PriceSample,
    TransactionOutcome,
    VaultSnapshot,
    WalletRecord,
)
from timecapsule_vault.data import load_networks
from timecapsule_vault.pricing.oracle import PollHandle, PriceOraclePoller
from timecapsule_vault.rpc.client import ResilientRPCClient
from timecapsule_vault.vaults.service import VaultService
from timecapsule_vault.vaults.transactions import TransactionSender
from timecapsule_vault.wallets.storage import JsonFileStorage, StorageBackend
from timecapsule_vault.wallets.store import WalletStore

logger = logging.getLogger(__name__)


class VaultSession:
    """
    Typed entry point for one active network and one selected wallet.

    Parameters
    ----------
    network_id : str
        Active network
    storage : StorageBackend
        Wallet persistence backend
    settings : Settings | None
        Access-layer settings. Uses ``get_settings()`` if None.
    networks : Mapping[str, NetworkProfile] | None
        Network registry. Loads the packaged registry if None.
    http_client : httpx.AsyncClient | None
        Shared HTTP client for the network's RPC client

    Raises
    ------
    UnknownNetwork
        If ``network_id`` is not in the registry

    Examples
    --------
    >>> async with VaultSession.open("arbitrum-sepolia") as session:
    ...     wallet = session.create_wallet("savings")
    ...     session.select_wallet(wallet.id)
    ...     snapshot = await session.get_vault_snapshot("0x...")

    """

    def __init__(
        self,
        network_id: str,
        storage: StorageBackend,
        settings: Settings | None = None,
        networks: Mapping[str, NetworkProfile] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.networks = dict(networks) if networks is not None else load_networks()
        if network_id not in self.networks:
            raise UnknownNetwork(network_id)
        self.network = self.networks[network_id]

        self.client = ResilientRPCClient.from_settings(self.network, self.settings, http_client=http_client)
        self.wallets = WalletStore(storage, networks=self.networks, client_factory=self._client_for)
        self.poller = PriceOraclePoller(
            interval=self.settings.price_poll_interval,
            networks=self.networks,
            client_factory=self._client_for,
        )
        self.poller.add_client(self.client)
        self.vaults = VaultService(
            self.client,
            price_source=self.poller,
            sender=TransactionSender(self.client, self.settings),
        )
        self._selected: WalletRecord | None = None

    @classmethod
    def open(cls, network_id: str | None = None, settings: Settings | None = None) -> "VaultSession":
        """Session persisting wallets to ``settings.wallet_store_path``."""
        settings = settings or get_settings()
        storage = JsonFileStorage(settings.wallet_store_path)
        return cls(network_id or settings.default_network, storage, settings=settings)

    def _client_for(self, network: NetworkProfile) -> ResilientRPCClient:
        return ResilientRPCClient.from_settings(network, self.settings)

    # Wallets

    def list_wallets(self) -> list[WalletRecord]:
        return self.wallets.list_wallets()

    def create_wallet(self, name: str, network_id: str | None = None) -> WalletRecord:
        return self.wallets.create(name, network_id or self.network.id)

    def import_wallet(self, name: str, private_key: str, network_id: str | None = None) -> WalletRecord:
        return self.wallets.import_wallet(name, private_key, network_id or self.network.id)

    def delete_wallet(self, wallet_id: str) -> None:
        self.wallets.delete(wallet_id)
        if self._selected is not None and self._selected.id == wallet_id:
            self._selected = None

    async def refresh_balances(self, network_id: str | None = None) -> list[WalletRecord]:
        """Refresh cached balances; the session's own client is reused for its network."""
        network_id = network_id or self.network.id
        client = self.client if network_id == self.network.id else None
        return await self.wallets.refresh_balances(network_id, client=client)

    async def refresh_all_balances(self) -> list[WalletRecord]:
        """Refresh every wallet on its own network; the session's client is reused for its network."""
        return await self.wallets.refresh_all_balances(clients={self.network.id: self.client})

    def check_consistency(self) -> ConsistencyReport:
        return self.wallets.check_consistency()

    def select_wallet(self, wallet_id: str) -> WalletRecord:
        """
        Choose the wallet that signs vault transactions.

        Raises
        ------
        WalletNotFound
            If no wallet has this id

        """
        wallet = self.wallets.get(wallet_id)
        if wallet.network != self.network.id:
            logger.warning(
                "Wallet %s belongs to %s but the session is on %s", wallet.id, wallet.network, self.network.id
            )
        self._selected = wallet
        return wallet

    @property
    def selected_wallet(self) -> WalletRecord | None:
        return self._selected

    def _signer(self) -> WalletRecord:
        if self._selected is None:
            raise NoWalletSelected
        return self._selected

    # Vaults

    async def get_vault_snapshot(self, address: str) -> VaultSnapshot:
        return await self.vaults.get_snapshot(address)

    async def list_vaults(self, owner: str | None = None) -> list[str]:
        return await self.vaults.list_user_vaults(owner or self._signer().address)

    async def load_vaults(self, owner: str | None = None) -> list[VaultSnapshot]:
        return await self.vaults.load_vaults(owner or self._signer().address)

    async def create_vault(self, unlock_time: int, target_price: int, target_amount: int = 0) -> str:
        """Create a vault owned by the selected wallet; returns the transaction hash."""
        return await self.vaults.create_vault(self._signer().private_key, unlock_time, target_price, target_amount)

    async def deposit(self, amount: str, vault_address: str) -> TransactionOutcome:
        return await self.vaults.deposit(self._signer().private_key, amount, vault_address)

    async def withdraw(self, vault_address: str) -> TransactionOutcome:
        return await self.vaults.withdraw(self._signer().private_key, vault_address)

    # Prices and diagnostics

    def start_price_polling(self) -> PollHandle:
        return self.poller.start_price_polling(self.network.id)

    def current_price(self) -> PriceSample:
        return self.poller.current(self.network.id)

    async def probe_endpoints(self) -> list[EndpointProbe]:
        return await self.client.probe_endpoints()

    # Lifecycle

    async def aclose(self) -> None:
        await self.poller.aclose()
        await self.client.aclose()

    async def __aenter__(self) -> "VaultSession":
        return self

    async def __aexit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        await self.aclose()
