"""Persisted wallet collection with network-scoped balance refresh."""

import asyncio
import json
import logging
import re
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from decimal import ROUND_HALF_UP, Decimal

from eth_account import Account
from eth_keys.exceptions import ValidationError
from eth_utils import encode_hex, from_wei, to_checksum_address
from pydantic import ValidationError as ModelValidationError

from timecapsule_vault.core.config import get_settings
from timecapsule_vault.core.errors import (
    InvalidPrivateKey,
    UnknownNetwork,
    VaultAccessError,
    WalletNotFound,
    WalletStorageError,
)
from timecapsule_vault.core.models import ConsistencyIssue, ConsistencyReport, NetworkProfile, WalletRecord
from timecapsule_vault.data import load_networks
from timecapsule_vault.rpc.client import ResilientRPCClient
from timecapsule_vault.wallets.storage import StorageBackend

logger = logging.getLogger(__name__)

STORAGE_KEY = "wallets"
SCHEMA_VERSION = 1

PRIVATE_KEY_PATTERN = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ClientFactory = Callable[[NetworkProfile], ResilientRPCClient]


def format_balance(wei: int) -> str:
    """Format a wei amount as a native-unit string with four decimals."""
    return str(Decimal(from_wei(wei, "ether")).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP))


def derive_address(private_key: str) -> str:
    """
    Derive the checksummed address of a private key.

    Raises
    ------
    InvalidPrivateKey
        If the key is not 32 bytes of hex or is outside the curve order

    """
    if not isinstance(private_key, str) or not PRIVATE_KEY_PATTERN.match(private_key.strip()):
        raise InvalidPrivateKey
    if not 0 < int(private_key.strip(), 16) < SECP256K1_N:
        raise InvalidPrivateKey
    try:
        return Account.from_key(private_key.strip()).address
    except (ValueError, TypeError, ValidationError) as e:
        raise InvalidPrivateKey from e


def _default_client_factory(network: NetworkProfile) -> ResilientRPCClient:
    return ResilientRPCClient.from_settings(network, get_settings())


class WalletStore:
    """
    Durable CRUD over WalletRecords plus network-scoped balance refresh.

    The store is the single writer of the persisted collection. Every operation
    is a read-modify-write of one JSON document stored under ``wallets``.

    Parameters
    ----------
    storage : StorageBackend
        Key-value backend holding the document
    networks : Mapping[str, NetworkProfile] | None
        Network registry. Loads the packaged registry if None.
    client_factory : ClientFactory | None
        Builds the RPC client used by ``refresh_balances``

    """

    def __init__(
        self,
        storage: StorageBackend,
        networks: Mapping[str, NetworkProfile] | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.storage = storage
        self.networks = dict(networks) if networks is not None else load_networks()
        self.client_factory = client_factory or _default_client_factory
        self._refresh_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _network(self, network_id: str) -> NetworkProfile:
        if network_id not in self.networks:
            raise UnknownNetwork(network_id)
        return self.networks[network_id]

    # Persistence

    def load(self) -> list[WalletRecord]:
        """
        Read the persisted collection.

        Accepts both the versioned document and the legacy bare array.

        Raises
        ------
        WalletStorageError
            If the document is unreadable or written by a newer schema

        """
        raw = self.storage.get_item(STORAGE_KEY)
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            msg = f"Wallet storage is not valid JSON: {e}"
            raise WalletStorageError(msg) from e

        if isinstance(data, list):
            entries = data
        elif isinstance(data, dict):
            version = data.get("schema_version", SCHEMA_VERSION)
            if not isinstance(version, int) or isinstance(version, bool):
                msg = f"Wallet storage schema version must be an integer, got {version!r}"
                raise WalletStorageError(msg)
            if version > SCHEMA_VERSION:
                msg = f"Wallet storage schema {version} is newer than supported {SCHEMA_VERSION}"
                raise WalletStorageError(msg)
            entries = data.get("wallets", [])
        else:
            msg = "Wallet storage has an unexpected layout"
            raise WalletStorageError(msg)

        try:
            return [WalletRecord.model_validate(entry) for entry in entries]
        except ModelValidationError as e:
            msg = f"Wallet storage contains an invalid record: {e.error_count()} error(s)"
            raise WalletStorageError(msg) from e

    def save(self, wallets: list[WalletRecord]) -> None:
        document = {"schema_version": SCHEMA_VERSION, "wallets": [w.to_storage() for w in wallets]}
        self.storage.set_item(STORAGE_KEY, json.dumps(document))

    # CRUD

    def list_wallets(self) -> list[WalletRecord]:
        return self.load()

    def get(self, wallet_id: str) -> WalletRecord:
        for wallet in self.load():
            if wallet.id == wallet_id:
                return wallet
        raise WalletNotFound(wallet_id)

    def _new_id(self, existing: list[WalletRecord]) -> str:
        taken = {w.id for w in existing}
        base = str(time.time_ns() // 1_000_000)
        wallet_id, n = base, 1
        while wallet_id in taken:
            wallet_id = f"{base}-{n}"
            n += 1
        return wallet_id

    def _add(self, name: str, private_key: str, address: str, network_id: str) -> WalletRecord:
        existing = self.load()
        record = WalletRecord(
            id=self._new_id(existing),
            address=address,
            private_key=private_key,
            network=network_id,
            name=name,
        )
        self.save([record, *existing])
        logger.info("Added wallet %s (%s) on %s", record.id, address, network_id)
        return record

    def create(self, name: str, network_id: str) -> WalletRecord:
        """
        Generate a new key pair and persist it.

        The returned record carries the private key; callers are expected to
        show it once and not keep copies.

        """
        self._network(network_id)
        account = Account.create()
        return self._add(name, encode_hex(account.key), account.address, network_id)

    def import_wallet(self, name: str, private_key: str, network_id: str) -> WalletRecord:
        """
        Persist a wallet from existing key material.

        Raises
        ------
        InvalidPrivateKey
            If the key is malformed
        UnknownNetwork
            If the network is not in the registry

        """
        self._network(network_id)
        address = derive_address(private_key)
        account = Account.from_key(private_key.strip())
        return self._add(name, encode_hex(account.key), address, network_id)

    def delete(self, wallet_id: str) -> None:
        existing = self.load()
        remaining = [w for w in existing if w.id != wallet_id]
        if len(remaining) != len(existing):
            self.save(remaining)
            logger.info("Deleted wallet %s", wallet_id)

    # Balance refresh

    async def _refresh_one(self, client: ResilientRPCClient, wallet: WalletRecord) -> WalletRecord:
        balance, tx_count = await asyncio.gather(
            client.get_balance(wallet.address),
            client.get_transaction_count(wallet.address),
            return_exceptions=True,
        )
        for result in (balance, tx_count):
            if isinstance(result, VaultAccessError | ValueError):
                logger.warning("Keeping cached balance for wallet %s on %s: %s", wallet.id, wallet.network, result)
                return wallet
            if isinstance(result, BaseException):
                raise result

        return wallet.model_copy(
            update={
                "balance": format_balance(balance),
                "transaction_count": tx_count,
                "last_activity": time.time_ns() // 1_000_000 if tx_count > 0 else wallet.last_activity,
            }
        )

    async def refresh_balances(
        self,
        network_id: str,
        client: ResilientRPCClient | None = None,
    ) -> list[WalletRecord]:
        """
        Refresh cached balances of every wallet on one network.

        Wallets are queried concurrently. A wallet whose queries fail keeps its
        previous cached values. Wallets on other networks are never touched.
        The merged collection is written once.

        Parameters
        ----------
        network_id : str
            Network to refresh
        client : ResilientRPCClient | None
            Client bound to that network. One is built (and closed) if None.

        Returns
        -------
        list[WalletRecord]
            The full persisted collection after the refresh

        """
        network = self._network(network_id)

        async with self._refresh_locks[network_id]:
            targets = [w for w in self.load() if w.network == network_id]
            if not targets:
                return self.load()

            owns_client = client is None
            client = client or self.client_factory(network)
            try:
                refreshed = await asyncio.gather(*(self._refresh_one(client, w) for w in targets))
            finally:
                if owns_client:
                    await client.aclose()

            by_id = {w.id: w for w in refreshed}

            # Re-read so changes made while the queries were in flight survive
            current = self.load()
            merged = [by_id.get(w.id, w) if w.network == network_id else w for w in current]
            self.save(merged)

        logger.debug("Refreshed %d wallets on %s", len(refreshed), network_id)
        return merged

    async def refresh_all_balances(
        self,
        clients: Mapping[str, ResilientRPCClient] | None = None,
    ) -> list[WalletRecord]:
        """
        Refresh every persisted wallet against its own network.

        Networks are refreshed concurrently. Wallets on networks missing from
        the registry are skipped with a warning, and a network whose refresh
        fails outright leaves its wallets unchanged without affecting the rest.

        Parameters
        ----------
        clients : Mapping[str, ResilientRPCClient] | None
            Existing clients to reuse, keyed by network id

        Returns
        -------
        list[WalletRecord]
            The full persisted collection after the refresh

        """
        clients = clients or {}
        network_ids = []
        for network_id in dict.fromkeys(w.network for w in self.load()):
            if network_id in self.networks:
                network_ids.append(network_id)
            else:
                logger.warning("Skipping wallets on unknown network %s", network_id)

        results = await asyncio.gather(
            *(self.refresh_balances(n, client=clients.get(n)) for n in network_ids),
            return_exceptions=True,
        )
        for network_id, result in zip(network_ids, results, strict=True):
            if isinstance(result, VaultAccessError):
                logger.warning("Balance refresh on %s failed: %s", network_id, result)
            elif isinstance(result, BaseException):
                raise result
        return self.load()

    # Diagnostics

    def check_consistency(self) -> ConsistencyReport:
        """
        Flag data-integrity problems without changing anything.

        Reports records pointing at unknown networks, records whose address
        does not match their key, and addresses present on several networks.

        """
        wallets = self.load()
        issues: list[ConsistencyIssue] = []

        for index, wallet in enumerate(wallets):
            label = wallet.name or "Unnamed"
            if wallet.network not in self.networks:
                issues.append(
                    ConsistencyIssue(
                        kind="unknown_network",
                        message=f"Wallet {index + 1} ({label}) has invalid network: {wallet.network}",
                        address=wallet.address,
                        wallet_id=wallet.id,
                        networks=[wallet.network],
                    )
                )
            try:
                derived = derive_address(wallet.private_key)
            except InvalidPrivateKey:
                derived = None
            if derived is None or derived != to_checksum_address(wallet.address):
                issues.append(
                    ConsistencyIssue(
                        kind="address_mismatch",
                        message=f"Wallet {index + 1} ({label}) address does not match its private key",
                        address=wallet.address,
                        wallet_id=wallet.id,
                    )
                )

        networks_by_address: dict[str, list[str]] = {}
        for wallet in wallets:
            networks_by_address.setdefault(wallet.address.lower(), []).append(wallet.network)

        for address, networks in networks_by_address.items():
            distinct = sorted(set(networks))
            if len(distinct) > 1:
                checksummed = to_checksum_address(address)
                issues.append(
                    ConsistencyIssue(
                        kind="multi_network_address",
                        message=f"Address {checksummed[:8]}... exists on multiple networks: {', '.join(distinct)}",
                        address=checksummed,
                        networks=distinct,
                    )
                )

        return ConsistencyReport(wallets=wallets, issues=issues)
