"""Persisted wallets and their storage backends."""

from timecapsule_vault.wallets.storage import JsonFileStorage, MemoryStorage, StorageBackend
from timecapsule_vault.wallets.store import SCHEMA_VERSION, STORAGE_KEY, WalletStore, derive_address, format_balance

__all__ = [
    "SCHEMA_VERSION",
    "STORAGE_KEY",
    "JsonFileStorage",
    "MemoryStorage",
    "StorageBackend",
    "WalletStore",
    "derive_address",
    "format_balance",
]
