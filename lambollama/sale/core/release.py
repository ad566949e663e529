"""
Linear vesting release arithmetic.

Amounts unlock linearly between a start time and start + duration. All
values are integer token units and unix timestamps; division truncates.
"""

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class VestingTerms:
    """Terms of a single linear vesting schedule."""
    total_amount: int
    start: int
    duration: int
    claimed_amount: int = 0


@dataclass(frozen=True)
class PresaleRelease:
    """Tokens released by one presale claim, split by origin."""
    immediate: int
    bonus: int

    @property
    def total(self) -> int:
        return self.immediate + self.bonus


def get_vested_amount(total_amount: int, start: int, duration: int, now: int) -> int:
    """
    Calculate the cumulative amount unlocked at a timestamp.

    Args:
        total_amount: Total amount granted
        start: Vesting start timestamp
        duration: Vesting duration in seconds
        now: Timestamp to evaluate at

    Returns:
        0 before start, total_amount from start + duration on, and the
        truncated linear interpolation in between
    """
    if now < start:
        return 0
    if now >= start + duration:
        return total_amount
    return total_amount * (now - start) // duration


def get_vested_amount_between(total_amount: int, start: int, end: int, now: int) -> int:
    """Same as get_vested_amount with a start/end boundary pair."""
    return get_vested_amount(total_amount, start, max(end - start, 0), now)


def get_claimable(schedule: Any, now: int) -> int:
    """
    Calculate the unlocked amount not yet released for a schedule.

    Args:
        schedule: Any object with total_amount, start, duration and
            claimed_amount attributes (VestingTerms or a database row)
        now: Timestamp to evaluate at

    Returns:
        Claimable amount, never negative
    """
    vested = get_vested_amount(schedule.total_amount, schedule.start, schedule.duration, now)
    return max(vested - schedule.claimed_amount, 0)


def presale_entitlement(amount: int, effective_amount: int, total_tokens: int, total_effective: int):
    """
    Split a contributor's token entitlement into its immediate and bonus parts.

    The immediate part is the raw contribution's share of the tokens for sale.
    The bonus part is the bonus delta itself, effective_amount - amount, and
    does not depend on the sale totals.

    Returns:
        Tuple of (immediate_tokens, bonus_tokens)
    """
    bonus = effective_amount - amount
    if total_effective == 0:
        return 0, bonus
    return amount * total_tokens // total_effective, bonus


def presale_release(
    immediate_tokens: int,
    bonus_tokens: int,
    immediate_claimed: bool,
    claimed_bonus_tokens: int,
    vesting_start: int,
    vesting_duration: int,
    now: int,
) -> PresaleRelease:
    """
    Calculate what a presale claim releases right now.

    The immediate part is released in full by the first claim; the bonus part
    vests linearly from vesting_start and only the newly vested increment is
    released.
    """
    immediate = 0 if immediate_claimed else immediate_tokens
    vested_bonus = get_vested_amount(bonus_tokens, vesting_start, vesting_duration, now)
    bonus = max(vested_bonus - claimed_bonus_tokens, 0)

    logger.debug(
        f"Presale release: immediate={immediate}, vested_bonus={vested_bonus}, "
        f"already_claimed_bonus={claimed_bonus_tokens}, releasing_bonus={bonus}"
    )

    return PresaleRelease(immediate=immediate, bonus=bonus)
