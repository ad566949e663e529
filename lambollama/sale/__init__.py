"""
Token sale system for Lambollama.

This package implements the presale with tiered contribution bonuses, linear
vesting schedules, the vesting airdrop and the Merkle airdrop on top of an
async SQLAlchemy ledger.
"""

# Core components
from lambollama.sale.core import (
    BonusTier,
    DEFAULT_BONUS_TIERS,
    compute_effective_amount,
    get_tier_thresholds,
    get_vested_amount,
    get_claimable
)

# Ledger
from lambollama.sale.database import DatabaseManager

# Contracts
from lambollama.sale.token import Token
from lambollama.sale.presale import Presale, DepositReceived, Claimed
from lambollama.sale.vesting import Vesting
from lambollama.sale.airdrop import Airdrop
from lambollama.sale.merkle_airdrop import MerkleAirdrop
from lambollama.sale.whitelist import WhitelistVerifier, sign_whitelist
from lambollama.sale.permit import sign_permit

# Configuration
from lambollama.sale.config import load_sale_config

__all__ = [
    # Core components
    "BonusTier",
    "DEFAULT_BONUS_TIERS",
    "compute_effective_amount",
    "get_tier_thresholds",
    "get_vested_amount",
    "get_claimable",

    # Ledger
    "DatabaseManager",

    # Contracts
    "Token",
    "Presale",
    "DepositReceived",
    "Claimed",
    "Vesting",
    "Airdrop",
    "MerkleAirdrop",
    "WhitelistVerifier",
    "sign_whitelist",
    "sign_permit",

    # Configuration
    "load_sale_config"
]
