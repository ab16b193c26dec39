"""Vault snapshots, transactions, and lifecycle operations."""

from timecapsule_vault.vaults.aggregator import VaultStateAggregator, compute_progress, resolve_lock_kind
from timecapsule_vault.vaults.service import VaultService
from timecapsule_vault.vaults.transactions import TransactionSender

__all__ = [
    "TransactionSender",
    "VaultService",
    "VaultStateAggregator",
    "compute_progress",
    "resolve_lock_kind",
]
