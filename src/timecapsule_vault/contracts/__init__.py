"""Contract ABIs and call encoding."""

from timecapsule_vault.contracts.abi import (
    ContractFunction,
    decode_revert_reason,
    extract_revert_reason,
)
from timecapsule_vault.contracts.timecapsule import LockStatus, RoundData

__all__ = [
    "ContractFunction",
    "LockStatus",
    "RoundData",
    "decode_revert_reason",
    "extract_revert_reason",
]
