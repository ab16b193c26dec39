"""Builds typed vault snapshots from a batch of contract reads."""

import asyncio
import logging
from typing import Protocol

from eth_utils import is_address, to_checksum_address

from timecapsule_vault.contracts.timecapsule import (
    VAULT_CREATOR,
    VAULT_GET_LOCK_STATUS,
    VAULT_TARGET_PRICE,
    VAULT_UNLOCK_TIME,
    LockStatus,
)
from timecapsule_vault.core.errors import VaultAccessError, VaultReadError
from timecapsule_vault.core.models import LockKind, PriceSample, VaultSnapshot
from timecapsule_vault.rpc.client import ResilientRPCClient

logger = logging.getLogger(__name__)

LOCKED_REASON = "Vault is locked"
UNLOCKED_REASON = "Vault is unlocked"

# Used when getLockStatus() is missing or reverts
DEFAULT_LOCK_STATUS = LockStatus(
    locked=True,
    current_price=0,
    time_remaining=0,
    is_price_based=False,
    is_goal_based=False,
    current_amount=0,
    goal_amount=0,
    progress_percentage=0,
    unlock_reason=LOCKED_REASON,
)


class PriceSource(Protocol):
    """Anything that can report the latest reference price of a network."""

    def current(self, network_id: str) -> PriceSample: ...


def resolve_lock_kind(status: LockStatus) -> LockKind:
    """Price takes precedence over goal, goal over time."""
    if status.is_price_based:
        return LockKind.PRICE
    if status.is_goal_based:
        return LockKind.GOAL
    return LockKind.TIME


def compute_progress(status: LockStatus) -> int:
    """Goal progress in percent, derived from the amounts when a goal exists."""
    if status.goal_amount > 0:
        progress = status.current_amount * 100 // status.goal_amount
    else:
        progress = status.progress_percentage
    return max(0, min(100, progress))


def _error_reason(error: BaseException) -> str:
    if isinstance(error, VaultAccessError):
        return error.message
    return str(error) or type(error).__name__


class VaultStateAggregator:
    """
    Reads one vault contract and decodes it into a VaultSnapshot.

    Parameters
    ----------
    client : ResilientRPCClient
        Client bound to the vault's network
    price_source : PriceSource | None
        Provider of the latest oracle price, usually a PriceOraclePoller

    """

    def __init__(self, client: ResilientRPCClient, price_source: PriceSource | None = None) -> None:
        self.client = client
        self.price_source = price_source

    def _validate(self, address: str) -> str:
        if not address or not is_address(address):
            raise VaultReadError(address or "<empty>", "Invalid vault address")
        return to_checksum_address(address)

    async def read_lock_status(self, address: str) -> LockStatus:
        """
        Call ``getLockStatus()`` without any fallback.

        Raises
        ------
        VaultReadError
            If the address is invalid or the call fails

        """
        address = self._validate(address)
        try:
            return LockStatus(*await self.client.read(address, VAULT_GET_LOCK_STATUS))
        except VaultAccessError as e:
            raise VaultReadError(address, e.message) from e

    async def get_snapshot(self, address: str) -> VaultSnapshot:
        """
        Build a snapshot of one vault.

        Balance, unlock time, creator and target price are read concurrently and
        must all succeed. The lock status is read afterwards; if that call fails
        the vault is reported as time-locked with the default reason.

        Parameters
        ----------
        address : str
            Vault contract address

        Returns
        -------
        VaultSnapshot
            Internally consistent view of the vault

        Raises
        ------
        VaultReadError
            If the address is invalid or any of the four core reads fails

        """
        address = self._validate(address)

        results = await asyncio.gather(
            self.client.get_balance(address),
            self.client.read(address, VAULT_UNLOCK_TIME),
            self.client.read(address, VAULT_CREATOR),
            self.client.read(address, VAULT_TARGET_PRICE),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, VaultAccessError | ValueError):
                raise VaultReadError(address, _error_reason(result)) from result
            if isinstance(result, BaseException):
                raise result
        balance, unlock_time, creator, target_price = results

        try:
            status = LockStatus(*await self.client.read(address, VAULT_GET_LOCK_STATUS))
        except VaultAccessError as e:
            logger.info("getLockStatus failed for %s, assuming time lock: %s", address, e)
            status = DEFAULT_LOCK_STATUS

        reason = status.unlock_reason or (LOCKED_REASON if status.locked else UNLOCKED_REASON)

        current_price = status.current_price
        if self.price_source is not None:
            sample = self.price_source.current(self.client.network.id)
            if sample.price > 0:
                current_price = sample.price

        return VaultSnapshot(
            address=address,
            balance=balance,
            unlock_time=unlock_time,
            target_price=target_price,
            goal_amount=status.goal_amount,
            current_amount=status.current_amount,
            progress_percentage=compute_progress(status),
            lock_kind=resolve_lock_kind(status),
            locked=status.locked,
            unlock_reason=reason,
            creator=creator,
            current_price=current_price,
            time_remaining=status.time_remaining,
        )

    async def get_snapshots(self, addresses: list[str]) -> list[VaultSnapshot]:
        """Snapshot several vaults concurrently, dropping the ones that cannot be read."""
        results = await asyncio.gather(*(self.get_snapshot(a) for a in addresses), return_exceptions=True)

        snapshots = []
        for address, result in zip(addresses, results, strict=True):
            if isinstance(result, VaultReadError):
                logger.warning("Skipping vault %s: %s", address, result.reason)
                continue
            if isinstance(result, BaseException):
                raise result
            snapshots.append(result)
        return snapshots
