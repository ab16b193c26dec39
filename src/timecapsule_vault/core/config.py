"""Settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Access-layer settings, read from ``TIMECAPSULE_*`` variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="TIMECAPSULE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    wallet_store_path: Path = Field(
        default=Path.home() / ".timecapsule" / "wallets.json",
        description="JSON document holding persisted wallets",
    )

    default_network: str = Field(default="arbitrum-sepolia")

    # RPC
    rpc_timeout: float = Field(default=10.0, gt=0, description="Per-endpoint attempt timeout in seconds")
    failover_passes: int = Field(default=0, ge=0, description="Extra passes over the endpoint list after exhaustion")
    short_circuit_fatal: bool = Field(
        default=False,
        description="Stop failover on application-level errors such as reverts",
    )
    verify_chain_id: bool = Field(default=False, description="Check eth_chainId of each endpoint on first use")

    # Polling
    price_poll_interval: float = Field(default=60.0, gt=0)

    # Transactions
    receipt_timeout: float = Field(default=120.0, gt=0)
    receipt_poll_interval: float = Field(default=2.0, gt=0)
    gas_limit_multiplier_percent: int = Field(default=120, ge=100)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
