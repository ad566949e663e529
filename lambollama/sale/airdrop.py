"""
Airdrop with linear vesting inside a claim window.

The owner registers each recipient once. From the claim period start,
allocations vest linearly over the vesting period; recipients can claim the
vested increment any time until the claim period ends.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import is_zero_address, normalize_address
from lambollama.sale.base import BaseContract, current_timestamp
from lambollama.sale.core.release import get_vested_amount
from lambollama.sale.core.retry import with_retries
from lambollama.sale.database import AirdropAllocation, DatabaseManager
from lambollama.sale.errors import (
    ClaimEndBeforeStart,
    ClaimEnded,
    ClaimNotStarted,
    ClaimStartInThePast,
    InvalidArrayLength,
    NothingToClaim,
    NothingVestedToClaim,
    RecipientAlreadySet,
    ZeroAddress,
    ZeroOwnerAddress,
    ZeroTokenAddress,
)
from lambollama.sale.token import Token, check_amount

logger = logging.getLogger(__name__)

VESTING_PERIOD = 180 * 24 * 60 * 60  # 6 months in seconds


class Airdrop(BaseContract):
    """
    Vesting airdrop.

    Args:
        db_manager: Ledger database
        owner: Owner allowed to register recipients and withdraw
        token: Token being distributed
        claim_period_start: Start of claims and of vesting
        claim_period_end: Last second a claim is accepted
        vesting_period: Seconds over which each allocation vests
    """

    KIND = "airdrop"

    def __init__(
        self,
        db_manager: DatabaseManager,
        owner: str,
        token: Token,
        claim_period_start: int,
        claim_period_end: int,
        vesting_period: int = VESTING_PERIOD,
        address: Optional[str] = None
    ):
        super().__init__(db_manager, owner, address)
        self.token = token
        self.claim_period_start = claim_period_start
        self.claim_period_end = claim_period_end
        self.vesting_period = vesting_period

    @classmethod
    def from_config(
        cls,
        config: dict,
        db_manager: DatabaseManager,
        owner: str,
        token: Token,
        claim_period_start: int,
        claim_period_end: int
    ) -> "Airdrop":
        """Airdrop vesting over the configured airdrop_vesting_period."""
        return cls(db_manager, owner, token, claim_period_start, claim_period_end,
                   vesting_period=config["airdrop_vesting_period"])

    @with_retries()
    async def deploy(self, now: Optional[int] = None) -> "Airdrop":
        now = current_timestamp(now)
        if self.token is None or is_zero_address(self.token.address):
            raise ZeroTokenAddress("Airdrop: zero token address")
        if is_zero_address(self.owner):
            raise ZeroOwnerAddress("Airdrop: zero owner address")
        if self.claim_period_start < now:
            raise ClaimStartInThePast(f"Claim start {self.claim_period_start} is before {now}")
        if self.claim_period_end <= self.claim_period_start:
            raise ClaimEndBeforeStart(
                f"Claim end {self.claim_period_end} is not after start {self.claim_period_start}"
            )
        async with self.transaction() as session:
            await self._register(session, token_address=self.token.address)
        return self

    async def _allocation(self, session: AsyncSession, recipient: str) -> Optional[AirdropAllocation]:
        result = await session.execute(
            select(AirdropAllocation).where(
                AirdropAllocation.contract_address == self.address,
                AirdropAllocation.recipient == recipient
            )
        )
        return result.scalar_one_or_none()

    @with_retries()
    async def set_recipients(self, caller: str, recipients: List[str], amounts: List[int]):
        """
        Register allocations. Each recipient can be registered only once.

        Raises:
            NotOwner: caller is not the owner
            InvalidArrayLength: recipients and amounts differ in length
            RecipientAlreadySet: a recipient already has an allocation
        """
        self._require_owner(caller)
        if len(recipients) != len(amounts):
            raise InvalidArrayLength(f"{len(recipients)} recipients for {len(amounts)} amounts")

        async with self.transaction() as session:
            for recipient, amount in zip(recipients, amounts):
                if is_zero_address(recipient):
                    raise ZeroAddress("Airdrop: zero recipient address")
                check_amount(amount)
                recipient = normalize_address(recipient)
                if await self._allocation(session, recipient) is not None:
                    raise RecipientAlreadySet(f"{recipient} already has an allocation")
                session.add(AirdropAllocation(
                    contract_address=self.address,
                    recipient=recipient,
                    amount=amount,
                    claimed_amount=0,
                    claimed=False
                ))
                await session.flush()
                await self._emit(session, "RecipientSet", current_timestamp(), participant=recipient, amount=amount)

        logger.info(f"Airdrop {self.address}: registered {len(recipients)} recipients")

    @with_retries()
    async def claim(self, recipient: str, now: Optional[int] = None) -> int:
        """
        Release the vested, unclaimed part of the recipient's allocation.

        Returns:
            Amount released
        """
        now = current_timestamp(now)
        recipient = normalize_address(recipient)

        if now < self.claim_period_start:
            raise ClaimNotStarted(f"Claims open at {self.claim_period_start}")
        if now > self.claim_period_end:
            raise ClaimEnded(f"Claims closed at {self.claim_period_end}")

        async with self.transaction() as session:
            allocation = await self._allocation(session, recipient)
            if allocation is None or allocation.amount == 0:
                raise NothingToClaim(f"{recipient} has no allocation")

            vested = get_vested_amount(allocation.amount, self.claim_period_start, self.vesting_period, now)
            releasable = vested - allocation.claimed_amount
            if releasable <= 0:
                raise NothingVestedToClaim(f"Nothing vested for {recipient} at {now}")

            allocation.claimed_amount += releasable
            allocation.claimed = allocation.claimed_amount == allocation.amount
            await self.token._transfer(session, self.address, recipient, releasable)
            await self._emit(session, "Claimed", now, participant=recipient, amount=releasable)

        return releasable

    @with_retries()
    async def withdraw(self, caller: str, amount: int, token: Optional[Token] = None):
        """Send amount of token (the airdrop token by default) to the owner."""
        self._require_owner(caller)
        token = token or self.token
        async with self.transaction() as session:
            await token._transfer(session, self.address, self.owner, amount)
            await self._emit(session, "Withdrawn", current_timestamp(), participant=self.owner, amount=amount,
                             details={"token": token.address})

    async def claimable_tokens(self, recipient: str) -> int:
        """Total allocation of recipient."""
        async with self.db_manager.async_session() as session:
            allocation = await self._allocation(session, normalize_address(recipient))
            return allocation.amount if allocation else 0

    async def claimed_tokens(self, recipient: str) -> int:
        async with self.db_manager.async_session() as session:
            allocation = await self._allocation(session, normalize_address(recipient))
            return allocation.claimed_amount if allocation else 0
