"""On-chain oracle polling and off-chain market quotes."""

from timecapsule_vault.pricing.market import MarketPricing
from timecapsule_vault.pricing.oracle import PollHandle, PriceOraclePoller

__all__ = [
    "MarketPricing",
    "PollHandle",
    "PriceOraclePoller",
]
