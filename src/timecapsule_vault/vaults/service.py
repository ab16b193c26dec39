"""Vault lifecycle operations: create, deposit, withdraw, and discovery."""

import logging
from decimal import Decimal, InvalidOperation

from eth_utils import to_wei

from timecapsule_vault.contracts.timecapsule import (
    FACTORY_CREATE_VAULT,
    FACTORY_GET_USER_VAULTS,
    VAULT_DEPOSIT,
    VAULT_WITHDRAW,
)
from timecapsule_vault.core.errors import CreationError, TransactionRejected, VaultAccessError, VaultReadError
from timecapsule_vault.core.models import TransactionOutcome, VaultSnapshot
from timecapsule_vault.rpc.client import ResilientRPCClient
from timecapsule_vault.vaults.aggregator import LOCKED_REASON, PriceSource, VaultStateAggregator
from timecapsule_vault.vaults.transactions import TransactionSender

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class VaultService:
    """
    State-changing and discovery operations on the vaults of one network.

    Parameters
    ----------
    client : ResilientRPCClient
        Client bound to the network
    price_source : PriceSource | None
        Oracle price provider handed to the aggregator
    sender : TransactionSender | None
        Transaction builder. Built from ``client`` if None.

    """

    def __init__(
        self,
        client: ResilientRPCClient,
        price_source: PriceSource | None = None,
        sender: TransactionSender | None = None,
    ) -> None:
        self.client = client
        self.aggregator = VaultStateAggregator(client, price_source)
        self.sender = sender or TransactionSender(client)

    @property
    def factory_address(self) -> str | None:
        factory = self.client.network.contracts.vault_factory
        if not factory or int(factory, 16) == 0:
            return None
        return factory

    async def get_snapshot(self, address: str) -> VaultSnapshot:
        return await self.aggregator.get_snapshot(address)

    async def list_user_vaults(self, owner: str) -> list[str]:
        """Vault addresses the factory has recorded for ``owner``."""
        factory = self.factory_address
        if factory is None:
            logger.warning("No vault factory configured on %s", self.client.network.id)
            return []
        return list(await self.client.read(factory, FACTORY_GET_USER_VAULTS, owner))

    async def load_vaults(self, owner: str) -> list[VaultSnapshot]:
        """Snapshots of every readable vault owned by ``owner``."""
        return await self.aggregator.get_snapshots(await self.list_user_vaults(owner))

    async def create_vault(
        self,
        private_key: str,
        unlock_time: int,
        target_price: int,
        target_amount: int = 0,
    ) -> str:
        """
        Deploy a vault through the network's factory.

        Parameters
        ----------
        private_key : str
            Key of the creating wallet
        unlock_time : int
            Unlock timestamp, epoch seconds (0 for none)
        target_price : int
            Target price scaled like the price feed (0 for none)
        target_amount : int
            Goal amount in wei (0 for none)

        Returns
        -------
        str
            Hash of the mined creation transaction

        Raises
        ------
        CreationError
            If no factory is configured or the transaction is rejected

        """
        factory = self.factory_address
        if factory is None:
            msg = f"No vault factory deployed on {self.client.network.name}"
            raise CreationError(msg)

        price_feed = self.client.network.contracts.price_feed or ZERO_ADDRESS
        data = FACTORY_CREATE_VAULT.encode_call(unlock_time, target_price, target_amount, price_feed)

        try:
            return await self.sender.send(private_key, factory, data=data)
        except TransactionRejected as e:
            raise CreationError(e.reason, tx_hash=e.tx_hash) from e
        except VaultAccessError as e:
            raise CreationError(e.message) from e

    async def deposit(self, private_key: str, amount: str, vault_address: str) -> TransactionOutcome:
        """Send ``amount`` (decimal string, native units) to the vault."""
        invalid = TransactionOutcome(success=False, reason=f"Invalid amount: {amount}")
        try:
            ether = Decimal(amount)
        except (InvalidOperation, ValueError, TypeError):
            return invalid
        if not ether.is_finite():
            return invalid
        if ether <= 0:
            return TransactionOutcome(success=False, reason="Deposit amount must be positive")
        try:
            value = to_wei(ether, "ether")
        except ValueError:
            return invalid
        if value <= 0:
            return TransactionOutcome(success=False, reason="Deposit amount must be positive")

        try:
            tx_hash = await self.sender.send(private_key, vault_address, data=VAULT_DEPOSIT.encode_call(), value=value)
        except TransactionRejected as e:
            return TransactionOutcome(success=False, tx_hash=e.tx_hash, reason=e.reason)
        except VaultAccessError as e:
            return TransactionOutcome(success=False, reason=e.message)
        return TransactionOutcome(success=True, tx_hash=tx_hash)

    async def withdraw(self, private_key: str, vault_address: str) -> TransactionOutcome:
        """
        Withdraw the vault's funds if its lock has been released.

        The lock status is read first. A locked vault is refused locally with
        the contract-supplied reason and no transaction is sent.

        """
        try:
            status = await self.aggregator.read_lock_status(vault_address)
        except VaultReadError as e:
            return TransactionOutcome(success=False, reason=e.message)

        if status.locked:
            reason = status.unlock_reason or LOCKED_REASON
            logger.info("Refusing withdrawal from locked vault %s: %s", vault_address, reason)
            return TransactionOutcome(success=False, reason=reason)

        try:
            tx_hash = await self.sender.send(private_key, vault_address, data=VAULT_WITHDRAW.encode_call())
        except TransactionRejected as e:
            return TransactionOutcome(success=False, tx_hash=e.tx_hash, reason=e.reason)
        except VaultAccessError as e:
            return TransactionOutcome(success=False, reason=e.message)
        return TransactionOutcome(success=True, tx_hash=tx_hash)
