"""
Database models and connection management for the sale ledger.
"""

from lambollama.sale.database.models import (
    Uint256,
    ContractState,
    Contribution,
    VestingSchedule,
    AirdropAllocation,
    TokenInfo,
    TokenBalance,
    TokenAllowance,
    TokenNonce,
    LedgerEvent,
    MAX_UINT256,
    Base
)
from lambollama.sale.database.manager import DatabaseManager, DEFAULT_DATABASE_URL

__all__ = [
    "Uint256",
    "ContractState",
    "Contribution",
    "VestingSchedule",
    "AirdropAllocation",
    "TokenInfo",
    "TokenBalance",
    "TokenAllowance",
    "TokenNonce",
    "LedgerEvent",
    "MAX_UINT256",
    "Base",
    "DatabaseManager",
    "DEFAULT_DATABASE_URL"
]
