"""
Core arithmetic for the sale contracts.
"""

from lambollama.sale.core.bonus import (
    BonusTier,
    TierAllocation,
    DEFAULT_BONUS_TIERS,
    compute_effective_amount,
    effective_total,
    split_contribution,
    validate_tiers,
    parse_tiers,
    get_tier_thresholds
)
from lambollama.sale.core.release import (
    VestingTerms,
    PresaleRelease,
    get_vested_amount,
    get_vested_amount_between,
    get_claimable,
    presale_entitlement,
    presale_release
)
from lambollama.sale.core.retry import with_retries, RetryableError

__all__ = [
    "BonusTier",
    "TierAllocation",
    "DEFAULT_BONUS_TIERS",
    "compute_effective_amount",
    "effective_total",
    "split_contribution",
    "validate_tiers",
    "parse_tiers",
    "get_tier_thresholds",
    "VestingTerms",
    "PresaleRelease",
    "get_vested_amount",
    "get_vested_amount_between",
    "get_claimable",
    "presale_entitlement",
    "presale_release",
    "with_retries",
    "RetryableError"
]
