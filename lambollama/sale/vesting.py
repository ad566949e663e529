"""
Linear vesting of a token for a set of beneficiaries.

The owner funds the contract, sets one schedule per beneficiary and then
fixes the configuration. After fixing, neither schedules nor the token
balance can be touched by the owner any more.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import is_zero_address, normalize_address
from lambollama.sale.base import BaseContract, current_timestamp
from lambollama.sale.core.release import get_claimable
from lambollama.sale.core.retry import with_retries
from lambollama.sale.database import DatabaseManager, VestingSchedule
from lambollama.sale.errors import (
    ContractFixed,
    InvalidInput,
    NoTokensToClaim,
    VestingNotStarted,
    ZeroAddress,
    ZeroAmount,
    ZeroDuration,
)
from lambollama.sale.token import Token

logger = logging.getLogger(__name__)


class Vesting(BaseContract):
    KIND = "vesting"

    def __init__(self, db_manager: DatabaseManager, owner: str, token: Token, address: Optional[str] = None):
        super().__init__(db_manager, owner, address)
        self.token = token

    @with_retries()
    async def deploy(self) -> "Vesting":
        if self.token is None or is_zero_address(self.token.address):
            raise ZeroAddress("Vesting: zero token address")
        async with self.transaction() as session:
            await self._register(session, token_address=self.token.address)
        return self

    async def _schedule(self, session: AsyncSession, beneficiary: str) -> Optional[VestingSchedule]:
        result = await session.execute(
            select(VestingSchedule).where(
                VestingSchedule.contract_address == self.address,
                VestingSchedule.beneficiary == beneficiary
            )
        )
        return result.scalar_one_or_none()

    async def _require_not_fixed(self, session: AsyncSession):
        state = await self._state(session)
        if state.fixed:
            raise ContractFixed("Vesting: not available after the contract is fixed")
        return state

    @with_retries()
    async def set_vesting_schedule(
        self,
        caller: str,
        beneficiary: str,
        total_amount: int,
        start: int,
        duration: int
    ):
        """
        Create or replace the schedule of a beneficiary.

        A replacement keeps what was already claimed, so the new total must
        not be below it.
        """
        self._require_owner(caller)
        if is_zero_address(beneficiary):
            raise ZeroAddress("Vesting: zero beneficiary address")
        if total_amount <= 0:
            raise ZeroAmount("Vesting: zero total amount")
        if duration <= 0:
            raise ZeroDuration("Vesting: zero duration")
        beneficiary = normalize_address(beneficiary)

        async with self.transaction() as session:
            await self._require_not_fixed(session)

            schedule = await self._schedule(session, beneficiary)
            if schedule is None:
                schedule = VestingSchedule(
                    contract_address=self.address,
                    beneficiary=beneficiary,
                    claimed_amount=0
                )
                session.add(schedule)
            elif schedule.claimed_amount > total_amount:
                raise InvalidInput(
                    f"Vesting: {beneficiary} already claimed {schedule.claimed_amount}, "
                    f"above new total {total_amount}"
                )

            schedule.total_amount = total_amount
            schedule.start = start
            schedule.duration = duration

            await self._emit(session, "VestingScheduleSet", current_timestamp(), participant=beneficiary,
                             amount=total_amount, details={"start": start, "duration": duration})

    @with_retries()
    async def fix(self, caller: str):
        """Freeze the configuration for good."""
        self._require_owner(caller)
        async with self.transaction() as session:
            state = await self._state(session)
            state.fixed = True
            await self._emit(session, "Fixed", current_timestamp(), participant=self.owner)

    @with_retries()
    async def withdraw(self, caller: str) -> int:
        """Send the whole token balance back to the owner, only before fixing."""
        self._require_owner(caller)
        async with self.transaction() as session:
            await self._require_not_fixed(session)
            balance = await self.token._balance_of(session, self.address)
            await self.token._transfer(session, self.address, self.owner, balance)
            await self._emit(session, "Withdrawn", current_timestamp(), participant=self.owner, amount=balance)
        return balance

    @with_retries()
    async def claim_tokens(self, beneficiary: str, now: Optional[int] = None) -> int:
        """
        Release everything vested and not yet claimed.

        Returns:
            Amount released

        Raises:
            VestingNotStarted: Before the schedule start (or without a schedule)
            NoTokensToClaim: Nothing new has vested
        """
        now = current_timestamp(now)
        beneficiary = normalize_address(beneficiary)

        async with self.transaction() as session:
            schedule = await self._schedule(session, beneficiary)
            if schedule is None or now < schedule.start:
                raise VestingNotStarted("Vesting: vesting not started")

            claimable = get_claimable(schedule, now)
            if claimable == 0:
                raise NoTokensToClaim("Vesting: no tokens to claim")

            schedule.claimed_amount += claimable
            await self.token._transfer(session, self.address, beneficiary, claimable)
            await self._emit(session, "Claimed", now, participant=beneficiary, amount=claimable)

        return claimable

    async def get_claimable_amount(self, beneficiary: str, now: Optional[int] = None) -> int:
        now = current_timestamp(now)
        async with self.db_manager.async_session() as session:
            schedule = await self._schedule(session, normalize_address(beneficiary))
            if schedule is None:
                return 0
            return get_claimable(schedule, now)

    async def vesting_schedule(self, beneficiary: str) -> Optional[Dict[str, Any]]:
        async with self.db_manager.async_session() as session:
            schedule = await self._schedule(session, normalize_address(beneficiary))
            return schedule.to_dict() if schedule else None

    async def configured_and_fixed(self) -> bool:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).fixed
