"""Fixed call surface of the TimeCapsule vault, its factory, and the price feed."""

from typing import NamedTuple

from timecapsule_vault.contracts.abi import ContractFunction

# TimeCapsuleVault
VAULT_DEPOSIT = ContractFunction("deposit", payable=True)
VAULT_WITHDRAW = ContractFunction("withdraw")
VAULT_GET_LOCK_STATUS = ContractFunction(
    "getLockStatus",
    outputs=("bool", "uint256", "uint256", "bool", "bool", "uint256", "uint256", "uint256", "string"),
    view=True,
)
VAULT_UNLOCK_TIME = ContractFunction("unlockTime", outputs=("uint256",), view=True)
VAULT_TARGET_PRICE = ContractFunction("targetPrice", outputs=("uint256",), view=True)
VAULT_CREATOR = ContractFunction("creator", outputs=("address",), view=True)

# VaultFactory
FACTORY_CREATE_VAULT = ContractFunction(
    "createVault",
    inputs=("uint256", "uint256", "uint256", "address"),
    outputs=("address",),
)
FACTORY_GET_USER_VAULTS = ContractFunction("getUserVaults", inputs=("address",), outputs=("address[]",), view=True)

# Chainlink AggregatorV3Interface
PRICE_FEED_LATEST_ROUND_DATA = ContractFunction(
    "latestRoundData",
    outputs=("uint80", "int256", "uint256", "uint256", "uint80"),
    view=True,
)
PRICE_FEED_DECIMALS = ContractFunction("decimals", outputs=("uint8",), view=True)


class LockStatus(NamedTuple):
    """Decoded ``getLockStatus()`` tuple."""

    locked: bool
    current_price: int
    time_remaining: int
    is_price_based: bool
    is_goal_based: bool
    current_amount: int
    goal_amount: int
    progress_percentage: int
    unlock_reason: str


class RoundData(NamedTuple):
    """Decoded ``latestRoundData()`` tuple."""

    round_id: int
    answer: int
    started_at: int
    updated_at: int
    answered_in_round: int
