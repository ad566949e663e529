"""
Tiered bonus calculation for presale contributions.

A contribution is split across cumulative ceilings; the part that lands in
each tier is credited with that tier's bonus percentage. Anything above the
last ceiling is credited one to one.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Sequence, Tuple

from eth_utils import to_wei

from lambollama.sale.errors import InvalidThresholds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BonusTier:
    """A cumulative ceiling (in wei) and the bonus percentage below it."""
    ceiling: int
    bonus_percent: int


@dataclass(frozen=True)
class TierAllocation:
    """The slice of a contribution that fell into one tier."""
    ceiling: int
    bonus_percent: int
    amount: int
    bonus: int

    @property
    def effective_amount(self) -> int:
        return self.amount + self.bonus


# Format: (cumulative ceiling, bonus percent)
DEFAULT_BONUS_TIERS: Tuple[BonusTier, ...] = (
    BonusTier(to_wei(15, "ether"), 40),  # first 15 ETH: +40%
    BonusTier(to_wei(45, "ether"), 30),  # up to 45 ETH: +30%
    BonusTier(to_wei(90, "ether"), 15),  # up to 90 ETH: +15%
)


def validate_tiers(tiers: Sequence[BonusTier]) -> Tuple[BonusTier, ...]:
    """
    Check that a threshold table is usable.

    Args:
        tiers: Tiers ordered by ceiling

    Returns:
        The tiers as a tuple

    Raises:
        InvalidThresholds: If ceilings are not strictly increasing, a ceiling
            is not positive, or a bonus percentage is negative
    """
    previous = 0
    for tier in tiers:
        if tier.ceiling <= previous:
            raise InvalidThresholds(
                f"Tier ceilings must be strictly increasing, got {tier.ceiling} after {previous}"
            )
        if tier.bonus_percent < 0:
            raise InvalidThresholds(f"Negative bonus percent {tier.bonus_percent}")
        previous = tier.ceiling
    return tuple(tiers)


def parse_tiers(text: str) -> Tuple[BonusTier, ...]:
    """
    Build a threshold table from "ceiling:percent" pairs, ceilings in ether.

    >>> parse_tiers("15:40,45:30,90:15") == DEFAULT_BONUS_TIERS
    True
    """
    tiers = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            ceiling, percent = item.split(":")
            tiers.append(BonusTier(to_wei(Decimal(ceiling.strip()), "ether"), int(percent)))
        except (ValueError, InvalidOperation) as e:
            raise InvalidThresholds(f"Malformed tier '{item}': {e}")
    return validate_tiers(tiers)


def split_contribution(
    contribution_amount: int,
    prior_cumulative: int,
    tiers: Sequence[BonusTier] = DEFAULT_BONUS_TIERS,
) -> Tuple[List[TierAllocation], int]:
    """
    Split a contribution across the bonus tiers.

    Args:
        contribution_amount: New contribution in wei
        prior_cumulative: Amount already contributed to the sale before this one
        tiers: Threshold table, ordered by ceiling

    Returns:
        Tuple of (allocations per touched tier, remainder above the last ceiling)
    """
    remaining = contribution_amount
    cumulative = prior_cumulative
    allocations = []

    for tier in tiers:
        if remaining == 0:
            break
        # Tier already filled by earlier contributions
        if cumulative >= tier.ceiling:
            continue

        in_tier = min(remaining, tier.ceiling - cumulative)
        bonus = in_tier * tier.bonus_percent // 100
        allocations.append(TierAllocation(tier.ceiling, tier.bonus_percent, in_tier, bonus))

        cumulative += in_tier
        remaining -= in_tier

    return allocations, remaining


def effective_total(allocations: Sequence[TierAllocation], unbonused: int) -> int:
    """Bonus-inclusive total of a split_contribution result."""
    return sum(a.effective_amount for a in allocations) + unbonused


def compute_effective_amount(
    contribution_amount: int,
    prior_cumulative: int,
    tiers: Sequence[BonusTier] = DEFAULT_BONUS_TIERS,
) -> int:
    """
    Calculate the bonus-inclusive amount credited for a contribution.

    Args:
        contribution_amount: New contribution in wei
        prior_cumulative: Amount already contributed to the sale before this one
        tiers: Threshold table, ordered by ceiling

    Returns:
        The effective amount, never less than contribution_amount
    """
    allocations, unbonused = split_contribution(contribution_amount, prior_cumulative, tiers)
    effective_amount = effective_total(allocations, unbonused)

    logger.debug(
        f"Effective amount: contribution={contribution_amount}, prior={prior_cumulative}, "
        f"tiers_touched={len(allocations)}, unbonused={unbonused}, effective={effective_amount}"
    )

    return effective_amount


def get_tier_thresholds(tiers: Sequence[BonusTier] = DEFAULT_BONUS_TIERS) -> Dict[str, Any]:
    """Get the threshold table for display purposes."""
    return {
        "bonus_tiers": [(t.ceiling, t.bonus_percent) for t in tiers],
        "max_bonus_eligible": tiers[-1].ceiling if tiers else 0,
    }
