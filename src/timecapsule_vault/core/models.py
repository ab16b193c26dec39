"""Data models for networks, wallets, vault snapshots, and price samples."""

import time
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LockKind(StrEnum):
    """Condition currently governing a vault's release."""

    TIME = "time"
    PRICE = "price"
    GOAL = "goal"


class NetworkContracts(BaseModel):
    """
    Contract addresses deployed on a network.

    Attributes
    ----------
    vault_factory : str | None
        VaultFactory contract address
    price_feed : str | None
        Chainlink-compatible price feed used as the vault reference price

    """

    model_config = ConfigDict(frozen=True)

    vault_factory: str | None = None
    price_feed: str | None = None


class NetworkProfile(BaseModel):
    """
    Static description of one supported network.

    Attributes
    ----------
    id : str
        Stable network identifier (e.g., 'arbitrum-sepolia')
    name : str
        Human-readable network name
    chain_id : int
        EIP-155 chain id
    currency : str
        Native currency symbol
    rpc : list[str]
        Candidate RPC endpoint URLs, in failover order
    explorer : str
        Block-explorer base URL
    contracts : NetworkContracts
        Vault factory and price feed addresses

    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    chain_id: int
    currency: str
    rpc: list[str] = Field(min_length=1)
    explorer: str
    contracts: NetworkContracts = Field(default_factory=NetworkContracts)

    def explorer_url(self, kind: str, value: str) -> str:
        """Build an explorer link, e.g. ``explorer_url("tx", "0x...")``."""
        return f"{self.explorer.rstrip('/')}/{kind}/{value}"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class WalletRecord(BaseModel):
    """
    Persisted wallet.

    Serialized with camelCase keys so the stored document keeps the layout
    written by earlier clients.

    Attributes
    ----------
    id : str
        Opaque identifier derived from the creation time
    address : str
        Checksummed address derived from ``private_key``
    private_key : str
        Hex-encoded private key, owned exclusively by the store
    network : str
        Owning network identifier
    name : str | None
        Display name
    created_at : int
        Creation time, epoch milliseconds
    balance : str
        Cached native balance formatted with four decimals
    transaction_count : int
        Cached nonce
    last_activity : int | None
        Epoch milliseconds of the last refresh that observed activity

    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    address: str
    private_key: str = Field(alias="privateKey", repr=False)
    network: str
    name: str | None = None
    created_at: int = Field(default_factory=_now_ms, alias="createdAt")
    balance: str = "0.0000"
    transaction_count: int = Field(default=0, alias="transactionCount")
    last_activity: int | None = Field(default=None, alias="lastActivity")

    def to_storage(self) -> dict:
        """Dump in the persisted (camelCase) layout."""
        return self.model_dump(by_alias=True)


class VaultSnapshot(BaseModel):
    """
    Point-in-time, internally consistent view of one vault contract.

    Attributes
    ----------
    address : str
        Vault contract address
    balance : int
        Native balance held by the vault, in wei
    unlock_time : int
        Unlock timestamp in seconds (0 if not time-based)
    target_price : int
        Scaled target price (0 if not price-based)
    goal_amount : int
        Goal target in wei
    current_amount : int
        Amount counted towards the goal, in wei
    progress_percentage : int
        Goal progress, 0-100
    lock_kind : LockKind
        Which condition governs release
    locked : bool
        Whether funds are still locked
    unlock_reason : str
        Contract-supplied explanation of the lock state
    creator : str
        Address that created the vault
    current_price : int
        Last observed reference price (same scale as ``target_price``)
    time_remaining : int
        Seconds until the time condition is met

    """

    model_config = ConfigDict(frozen=True)

    address: str
    balance: int
    unlock_time: int = 0
    target_price: int = 0
    goal_amount: int = 0
    current_amount: int = 0
    progress_percentage: int = Field(default=0, ge=0, le=100)
    lock_kind: LockKind = LockKind.TIME
    locked: bool = True
    unlock_reason: str = Field(min_length=1)
    creator: str
    current_price: int = 0
    time_remaining: int = 0

    @property
    def is_time_locked(self) -> bool:
        return self.locked and self.lock_kind == LockKind.TIME

    @property
    def is_price_locked(self) -> bool:
        return self.lock_kind == LockKind.PRICE

    @property
    def is_goal_locked(self) -> bool:
        return self.lock_kind == LockKind.GOAL


class PriceSample(BaseModel):
    """
    Most recent reference price observed for a network.

    Attributes
    ----------
    network : str
        Network identifier
    price : int
        Price scaled by ``10**decimals``
    decimals : int
        Scaling exponent (Chainlink feeds use 8)
    timestamp : int
        Observation time, epoch seconds (0 for the default sample)

    """

    model_config = ConfigDict(frozen=True)

    network: str
    price: int = 0
    decimals: int = 8
    timestamp: int = 0

    def as_decimal(self) -> Decimal:
        return Decimal(self.price) / Decimal(10**self.decimals)


class FeeData(BaseModel):
    """Current fee parameters. EIP-1559 fields are None on legacy chains."""

    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None


class TransactionOutcome(BaseModel):
    """
    Result of a state-changing vault operation.

    Evaluates as ``success`` in a boolean context.

    """

    success: bool
    tx_hash: str | None = None
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.success


class ConsistencyIssue(BaseModel):
    """One problem found by the wallet consistency check."""

    kind: str
    message: str
    address: str | None = None
    wallet_id: str | None = None
    networks: list[str] = Field(default_factory=list)


class ConsistencyReport(BaseModel):
    """Read-only diagnostic over the wallet collection."""

    wallets: list[WalletRecord]
    issues: list[ConsistencyIssue] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class EndpointAttempt(BaseModel):
    """
    One attempt of a logical RPC call against a single endpoint.

    Attributes
    ----------
    url : str
        Endpoint URL
    ok : bool
        Whether the endpoint produced a result
    error_class : str | None
        Classifier tag of the failure ('retryable' or 'fatal')
    error : str | None
        Failure description
    elapsed : float
        Seconds spent on the attempt

    """

    url: str
    ok: bool
    error_class: str | None = None
    error: str | None = None
    elapsed: float = 0.0


class EndpointProbe(BaseModel):
    """Connectivity check result for one endpoint."""

    url: str
    success: bool
    block_number: int | None = None
    latency_ms: float | None = None
    error: str | None = None

    @field_validator("latency_ms")
    @classmethod
    def _round_latency(cls, value: float | None) -> float | None:
        return round(value, 1) if value is not None else None
