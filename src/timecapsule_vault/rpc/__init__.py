"""RPC layer with endpoint failover, error classification, and backoff."""

from timecapsule_vault.rpc.classifier import DEFAULT_QUIRKS, ErrorClass, ErrorClassifier, ProviderQuirk
from timecapsule_vault.rpc.client import ResilientRPCClient
from timecapsule_vault.rpc.failover import AttemptOutcome, RPCRequest, attempt
from timecapsule_vault.rpc.retry import RetryConfig
from timecapsule_vault.rpc.transport import JsonRpcTransport

__all__ = [
    "DEFAULT_QUIRKS",
    "AttemptOutcome",
    "ErrorClass",
    "ErrorClassifier",
    "JsonRpcTransport",
    "ProviderQuirk",
    "RPCRequest",
    "ResilientRPCClient",
    "RetryConfig",
    "attempt",
]
