"""Error taxonomy surfaced to callers of the access layer."""

from typing import Any


class VaultAccessError(Exception):
    """
    Base class for every error that crosses the access-layer boundary.

    Each subclass carries a stable ``code`` so callers can classify failures
    without parsing messages. Messages are human-readable and never include
    endpoint URLs.

    Parameters
    ----------
    message : str
        Human-readable description

    """

    code = "vault_access_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Stable error payload for collaborators."""
        return {"code": self.code, "message": self.message}


class UnknownNetwork(VaultAccessError):
    """Raised when a network identifier does not resolve in the registry."""

    code = "unknown_network"

    def __init__(self, network_id: str) -> None:
        super().__init__(f"Unknown network: {network_id}")
        self.network_id = network_id


class AllEndpointsExhausted(VaultAccessError):
    """
    Raised when every endpoint of a network failed for one logical call.

    Parameters
    ----------
    network_id : str
        Network the call was made against
    method : str
        JSON-RPC method that failed
    last_error : Exception | None
        Last endpoint-level error observed
    attempts : list[Any] | None
        Recorded endpoint attempts, in order

    """

    code = "service_unavailable"

    def __init__(
        self,
        network_id: str,
        method: str,
        last_error: Exception | None = None,
        attempts: list[Any] | None = None,
    ) -> None:
        super().__init__(f"Service unavailable: all RPC endpoints for {network_id} failed on {method}")
        self.network_id = network_id
        self.method = method
        self.last_error = last_error
        self.attempts = attempts or []


class RPCCallRejected(VaultAccessError):
    """Raised when an endpoint rejects a call with an application-level (fatal) error."""

    code = "rpc_rejected"

    def __init__(self, method: str, reason: str, cause: Exception | None = None) -> None:
        super().__init__(f"{method} rejected: {reason}")
        self.method = method
        self.reason = reason
        self.cause = cause


class InvalidPrivateKey(VaultAccessError):
    """Raised when imported key material is malformed."""

    code = "invalid_private_key"

    def __init__(self) -> None:
        super().__init__("Invalid private key")


class WalletNotFound(VaultAccessError):
    """Raised when a wallet id does not exist in the store."""

    code = "wallet_not_found"

    def __init__(self, wallet_id: str) -> None:
        super().__init__(f"Wallet not found: {wallet_id}")
        self.wallet_id = wallet_id


class WalletStorageError(VaultAccessError):
    """Raised when the persisted wallet document cannot be read safely."""

    code = "wallet_storage_error"


class VaultReadError(VaultAccessError):
    """Raised when the core vault reads fail and no snapshot can be built."""

    code = "vault_read_error"

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"Could not read vault {address}: {reason}")
        self.address = address
        self.reason = reason


class TransactionRejected(VaultAccessError):
    """
    Raised when a transaction is rejected on submission or reverts on chain.

    Parameters
    ----------
    reason : str
        Chain-provided revert reason when available, otherwise a generic message
    tx_hash : str | None
        Hash of the submitted transaction, if it got that far

    """

    code = "transaction_rejected"

    def __init__(self, reason: str, tx_hash: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.tx_hash = tx_hash


class CreationError(TransactionRejected):
    """Raised when vault creation through the factory fails."""

    code = "vault_creation_failed"


class NoWalletSelected(VaultAccessError):
    """Raised when an operation needs a signing wallet and none is selected."""

    code = "no_wallet_selected"

    def __init__(self) -> None:
        super().__init__("No wallet selected")
