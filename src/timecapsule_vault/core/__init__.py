"""Core models, settings, and the error taxonomy."""

from timecapsule_vault.core.config import Settings, get_settings
from timecapsule_vault.core.errors import (
    AllEndpointsExhausted,
    CreationError,
    InvalidPrivateKey,
    NoWalletSelected,
    RPCCallRejected,
    TransactionRejected,
    UnknownNetwork,
    VaultAccessError,
    VaultReadError,
    WalletNotFound,
    WalletStorageError,
)
from timecapsule_vault.core.models import (
    LockKind,
    NetworkContracts,
    NetworkProfile,
    PriceSample,
    TransactionOutcome,
    VaultSnapshot,
    WalletRecord,
)

__all__ = [
    "AllEndpointsExhausted",
    "CreationError",
    "InvalidPrivateKey",
    "NoWalletSelected",
    "LockKind",
    "NetworkContracts",
    "NetworkProfile",
    "PriceSample",
    "RPCCallRejected",
    "Settings",
    "TransactionOutcome",
    "TransactionRejected",
    "UnknownNetwork",
    "VaultAccessError",
    "VaultReadError",
    "VaultSnapshot",
    "WalletNotFound",
    "WalletRecord",
    "WalletStorageError",
    "get_settings",
]
