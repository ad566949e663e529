"""
Presale with tiered contribution bonuses and vested bonus tokens.

Contributions are accepted in ETH during the funding window and credited
with a bonus according to the threshold table. Once the claim window opens,
each contributor receives their raw share of the tokens for sale at once and
their bonus delta linearly over the vesting duration.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lambollama.sale.addresses import is_zero_address, normalize_address
from lambollama.sale.base import BaseContract, current_timestamp
from lambollama.sale.config import bonus_tiers_from_config
from lambollama.sale.core.bonus import (
    DEFAULT_BONUS_TIERS,
    BonusTier,
    effective_total,
    split_contribution,
    validate_tiers,
)
from lambollama.sale.core.release import PresaleRelease, presale_entitlement, presale_release
from lambollama.sale.core.retry import with_retries
from lambollama.sale.database import Contribution, DatabaseManager
from lambollama.sale.errors import (
    AlreadyDeposited,
    ClaimPeriodNotStarted,
    InvalidSaleWindow,
    NoContributionsToClaim,
    NotInFundingPeriod,
    NothingVestedToClaim,
    NotWhitelisted,
    ZeroAddress,
    ZeroAmount,
    ZeroContribution,
)
from lambollama.sale.token import Token
from lambollama.sale.whitelist import WhitelistVerifier

logger = logging.getLogger(__name__)

DEFAULT_VESTING_DURATION = 180 * 24 * 60 * 60  # 6 months


@dataclass(frozen=True)
class DepositReceived:
    user: str
    amount: int
    effective_amount: int


@dataclass(frozen=True)
class Claimed:
    user: str
    amount: int
    immediate: int = 0
    bonus: int = 0


class Presale(BaseContract):
    """
    Token presale.

    Args:
        db_manager: Ledger database
        owner: Deployer and owner of the sale
        token: Token being sold
        native: Native currency ledger contributions are paid in
        funding_start_time: First second contributions are accepted
        funding_end_time: Last second contributions are accepted
        claim_start_time: First second tokens can be claimed; bonus vesting starts here
        total_tokens_for_sale: Tokens distributed pro rata over effective contributions
        funds_wallet: Receives every contribution
        bonus_tiers: Threshold table, ordered by ceiling
        vesting_duration: Seconds over which bonus tokens vest
        whitelist_signer: When set, contributions before whitelist_end_time need a signature
        whitelist_end_time: End of the whitelist-only phase (defaults to the funding end)
    """

    KIND = "presale"

    def __init__(
        self,
        db_manager: DatabaseManager,
        owner: str,
        token: Token,
        native: Token,
        funding_start_time: int,
        funding_end_time: int,
        claim_start_time: int,
        total_tokens_for_sale: int,
        funds_wallet: str,
        bonus_tiers: Sequence[BonusTier] = DEFAULT_BONUS_TIERS,
        vesting_duration: int = DEFAULT_VESTING_DURATION,
        whitelist_signer: Optional[str] = None,
        whitelist_end_time: Optional[int] = None,
        address: Optional[str] = None
    ):
        super().__init__(db_manager, owner, address)
        self.token = token
        self.native = native
        self.funding_start_time = funding_start_time
        self.funding_end_time = funding_end_time
        self.claim_start_time = claim_start_time
        self.total_tokens_for_sale = total_tokens_for_sale
        self.funds_wallet = funds_wallet
        self.bonus_tiers = bonus_tiers
        self.vesting_duration = vesting_duration
        self.whitelist = WhitelistVerifier(whitelist_signer) if whitelist_signer else None
        self.whitelist_end_time = funding_end_time if whitelist_end_time is None else whitelist_end_time

    @classmethod
    def from_config(
        cls,
        config: dict,
        db_manager: DatabaseManager,
        owner: str,
        token: Token,
        native: Token,
        **params
    ) -> "Presale":
        """
        Build a presale whose threshold table and vesting duration come from a
        load_sale_config() result. Explicit keyword arguments win.
        """
        params.setdefault("bonus_tiers", bonus_tiers_from_config(config))
        params.setdefault("vesting_duration", config["presale_vesting_duration"])
        return cls(db_manager, owner, token, native, **params)

    @property
    def vesting_end_time(self) -> int:
        return self.claim_start_time + self.vesting_duration

    @with_retries()
    async def deploy(self) -> "Presale":
        """Validate the sale parameters and register the presale."""
        if self.token is None or is_zero_address(self.token.address):
            raise ZeroAddress("Presale: zero token address")
        if is_zero_address(self.funds_wallet):
            raise ZeroAddress("Presale: zero funds wallet")
        if not (self.funding_start_time < self.funding_end_time <= self.claim_start_time):
            raise InvalidSaleWindow(
                f"Funding {self.funding_start_time}-{self.funding_end_time} must end "
                f"by claim start {self.claim_start_time}"
            )
        if self.total_tokens_for_sale <= 0:
            raise ZeroAmount("Presale: zero tokens for sale")
        if self.vesting_duration <= 0:
            raise InvalidSaleWindow("Presale: vesting duration must be positive")

        self.bonus_tiers = validate_tiers(self.bonus_tiers)
        self.funds_wallet = normalize_address(self.funds_wallet)

        async with self.transaction() as session:
            await self._register(session, token_address=self.token.address)
        return self

    @with_retries()
    async def deposit_tokens(self, caller: str):
        """Pull the tokens for sale from the owner. Requires a prior approval."""
        self._require_owner(caller)
        async with self.transaction() as session:
            state = await self._state(session)
            if state.tokens_deposited:
                raise AlreadyDeposited("Tokens already deposited")
            await self.token._spend_allowance(session, self.owner, self.address, self.total_tokens_for_sale)
            await self.token._transfer(session, self.owner, self.address, self.total_tokens_for_sale)
            state.tokens_deposited = True
            await self._emit(session, "TokensDeposited", current_timestamp(), participant=self.owner,
                             amount=self.total_tokens_for_sale)

    async def _contribution(self, session: AsyncSession, participant: str) -> Optional[Contribution]:
        result = await session.execute(
            select(Contribution).where(
                Contribution.contract_address == self.address,
                Contribution.participant == participant
            )
        )
        return result.scalar_one_or_none()

    def _check_whitelist(self, participant: str, now: int, signature):
        if self.whitelist is None or now > self.whitelist_end_time:
            return
        if signature is None or not self.whitelist.verify(participant, signature):
            logger.warning(f"Rejected contribution from non-whitelisted {participant}")
            raise NotWhitelisted(f"{participant} is not whitelisted")

    @with_retries()
    async def contribute(
        self,
        participant: str,
        amount: int,
        now: Optional[int] = None,
        signature=None
    ) -> DepositReceived:
        """
        Accept a contribution and credit its bonus-inclusive amount.

        Args:
            participant: Contributor address
            amount: Contribution in wei
            now: Block timestamp
            signature: Whitelist signature, required during the whitelist phase

        Returns:
            The DepositReceived event

        Raises:
            ZeroContribution: amount is zero
            NotInFundingPeriod: now is outside the funding window
            NotWhitelisted: whitelist phase and no valid signature
        """
        now = current_timestamp(now)
        participant = normalize_address(participant)

        if amount <= 0:
            raise ZeroContribution("Contribution must be greater than zero")
        if not (self.funding_start_time <= now <= self.funding_end_time):
            raise NotInFundingPeriod(
                f"Contribution at {now} outside funding period "
                f"{self.funding_start_time}-{self.funding_end_time}"
            )
        self._check_whitelist(participant, now, signature)

        async with self.transaction() as session:
            state = await self._state(session)

            allocations, unbonused = split_contribution(amount, state.total_raw, self.bonus_tiers)
            effective_amount = effective_total(allocations, unbonused)

            await self.native._transfer(session, participant, self.funds_wallet, amount)

            record = await self._contribution(session, participant)
            if record is None:
                record = Contribution(
                    contract_address=self.address,
                    participant=participant,
                    amount=0,
                    effective_amount=0,
                    claimed=False,
                    claimed_bonus_tokens=0
                )
                session.add(record)
            record.amount += amount
            record.effective_amount += effective_amount

            state.total_raw += amount
            state.total_effective += effective_amount

            await self._emit(
                session, "DepositReceived", now,
                participant=participant, amount=amount, effective_amount=effective_amount,
                details={"tiers": [
                    {"ceiling": str(a.ceiling), "bonus_percent": a.bonus_percent,
                     "amount": str(a.amount), "bonus": str(a.bonus)}
                    for a in allocations
                ], "unbonused": str(unbonused)}
            )

        return DepositReceived(participant, amount, effective_amount)

    async def _release_for(self, session: AsyncSession, record: Contribution, now: int) -> PresaleRelease:
        state = await self._state(session)
        immediate_tokens, bonus_tokens = presale_entitlement(
            record.amount, record.effective_amount, self.total_tokens_for_sale, state.total_effective
        )
        return presale_release(
            immediate_tokens,
            bonus_tokens,
            record.claimed,
            record.claimed_bonus_tokens,
            self.claim_start_time,
            self.vesting_duration,
            now
        )

    @with_retries()
    async def claim(self, participant: str, now: Optional[int] = None) -> Claimed:
        """
        Release the immediate tokens (first claim only) plus newly vested bonus.

        Raises:
            ClaimPeriodNotStarted: now is before the claim start
            NoContributionsToClaim: participant never contributed
            NothingVestedToClaim: nothing new to release
        """
        now = current_timestamp(now)
        participant = normalize_address(participant)

        if now < self.claim_start_time:
            raise ClaimPeriodNotStarted(f"Claims open at {self.claim_start_time}")

        async with self.transaction() as session:
            record = await self._contribution(session, participant)
            if record is None or record.amount == 0:
                raise NoContributionsToClaim(f"{participant} has no contribution")

            release = await self._release_for(session, record, now)
            if release.total == 0:
                raise NothingVestedToClaim(f"Nothing vested for {participant} at {now}")

            record.claimed = True
            record.claimed_bonus_tokens += release.bonus
            await self.token._transfer(session, self.address, participant, release.total)

            await self._emit(
                session, "Claimed", now, participant=participant, amount=release.total,
                details={"immediate": str(release.immediate), "bonus": str(release.bonus)}
            )

        return Claimed(participant, release.total, release.immediate, release.bonus)

    # Views

    async def contribution(self, participant: str) -> Dict[str, Any]:
        """Contribution record of participant, zeroed when there is none."""
        participant = normalize_address(participant)
        async with self.db_manager.async_session() as session:
            record = await self._contribution(session, participant)
            if record is None:
                return {
                    "participant": participant,
                    "amount": 0,
                    "effective_amount": 0,
                    "claimed": False,
                    "claimed_bonus_tokens": 0
                }
            return record.to_dict()

    async def get_claimable(self, participant: str, now: Optional[int] = None) -> int:
        """Tokens a claim at now would release; 0 before the claim window."""
        now = current_timestamp(now)
        if now < self.claim_start_time:
            return 0
        async with self.db_manager.async_session() as session:
            record = await self._contribution(session, normalize_address(participant))
            if record is None:
                return 0
            return (await self._release_for(session, record, now)).total

    async def total_eth(self) -> int:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).total_raw

    async def total_eth_effective(self) -> int:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).total_effective

    async def tokens_deposited(self) -> bool:
        async with self.db_manager.async_session() as session:
            return (await self._state(session)).tokens_deposited
