"""
Tests for the presale contract.
"""

import asyncio

import pytest

from lambollama.sale.addresses import ZERO_ADDRESS
from lambollama.sale.config import load_sale_config
from lambollama.sale.core.bonus import BonusTier, compute_effective_amount
from lambollama.sale.errors import (
    AlreadyDeposited,
    ClaimPeriodNotStarted,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidSaleWindow,
    InvalidThresholds,
    NoContributionsToClaim,
    NotInFundingPeriod,
    NothingVestedToClaim,
    NotOwner,
    NotWhitelisted,
    ZeroAddress,
    ZeroAmount,
    ZeroContribution,
)
from lambollama.sale.presale import DEFAULT_VESTING_DURATION, Claimed, DepositReceived, Presale
from lambollama.sale.token import Token
from lambollama.sale.whitelist import sign_whitelist

from tests.sale.helpers import (
    ALICE,
    ALICE_KEY,
    BOB,
    CAROL,
    DAY,
    FUNDS_WALLET,
    OWNER,
    SIGNER,
    SIGNER_KEY,
    ether,
)

FUNDING_START = 1_700_000_000
FUNDING_END = FUNDING_START + 7 * DAY
CLAIM_START = FUNDING_END + DAY
TOKENS_FOR_SALE = ether(65_000)


def make_presale(db_manager, token, native, **kwargs):
    params = dict(
        funding_start_time=FUNDING_START,
        funding_end_time=FUNDING_END,
        claim_start_time=CLAIM_START,
        total_tokens_for_sale=TOKENS_FOR_SALE,
        funds_wallet=FUNDS_WALLET,
    )
    params.update(kwargs)
    return Presale(db_manager, OWNER, token, native, **params)


@pytest.fixture
async def presale(db_manager, token, native):
    sale = await make_presale(db_manager, token, native).deploy()
    await token.approve(OWNER, sale.address, TOKENS_FOR_SALE)
    await sale.deposit_tokens(OWNER)
    return sale


@pytest.fixture
async def funded_presale(presale):
    """Presale with the 10 ETH then 40 ETH contributions."""
    await presale.contribute(ALICE, ether(10), now=FUNDING_START)
    await presale.contribute(BOB, ether(40), now=FUNDING_START + 1)
    return presale


WHITELIST_END = FUNDING_START + DAY


@pytest.fixture
async def whitelisted_presale(db_manager, token, native):
    return await make_presale(
        db_manager, token, native,
        whitelist_signer=SIGNER,
        whitelist_end_time=WHITELIST_END
    ).deploy()


class TestDeployment:
    """Test suite for presale deployment."""

    @pytest.mark.asyncio
    async def test_deploy(self, db_manager, token, native):
        sale = await make_presale(db_manager, token, native).deploy()
        state = await sale.get_state()
        assert state["kind"] == "presale"
        assert state["owner"] == OWNER
        assert state["token_address"] == token.address
        assert await sale.total_eth() == 0
        assert await sale.tokens_deposited() is False
        assert sale.vesting_end_time == CLAIM_START + DEFAULT_VESTING_DURATION

    @pytest.mark.asyncio
    async def test_zero_token(self, db_manager, native):
        zero_token = Token(db_manager, OWNER, "None", "NONE", address=ZERO_ADDRESS)
        with pytest.raises(ZeroAddress):
            await make_presale(db_manager, zero_token, native).deploy()

    @pytest.mark.asyncio
    async def test_zero_funds_wallet(self, db_manager, token, native):
        with pytest.raises(ZeroAddress):
            await make_presale(db_manager, token, native, funds_wallet=ZERO_ADDRESS).deploy()

    @pytest.mark.asyncio
    async def test_invalid_windows(self, db_manager, token, native):
        with pytest.raises(InvalidSaleWindow):
            await make_presale(db_manager, token, native, funding_end_time=FUNDING_START).deploy()
        with pytest.raises(InvalidSaleWindow):
            await make_presale(db_manager, token, native, claim_start_time=FUNDING_END - 1).deploy()
        with pytest.raises(InvalidSaleWindow):
            await make_presale(db_manager, token, native, vesting_duration=0).deploy()

    @pytest.mark.asyncio
    async def test_zero_tokens_for_sale(self, db_manager, token, native):
        with pytest.raises(ZeroAmount):
            await make_presale(db_manager, token, native, total_tokens_for_sale=0).deploy()

    @pytest.mark.asyncio
    async def test_invalid_tiers(self, db_manager, token, native):
        tiers = (BonusTier(ether(45), 30), BonusTier(ether(15), 40))
        with pytest.raises(InvalidThresholds):
            await make_presale(db_manager, token, native, bonus_tiers=tiers).deploy()

    @pytest.mark.asyncio
    async def test_from_config(self, db_manager, token, native, isolated_config):
        config = load_sale_config({"bonus_tiers": "20:50", "presale_vesting_duration": 3600})
        sale = await Presale.from_config(
            config, db_manager, OWNER, token, native,
            funding_start_time=FUNDING_START,
            funding_end_time=FUNDING_END,
            claim_start_time=CLAIM_START,
            total_tokens_for_sale=TOKENS_FOR_SALE,
            funds_wallet=FUNDS_WALLET
        ).deploy()

        assert sale.vesting_end_time == CLAIM_START + 3600
        deposit = await sale.contribute(ALICE, ether(10), now=FUNDING_START)
        assert deposit.effective_amount == ether(15)

    @pytest.mark.asyncio
    async def test_from_config_explicit_arguments_win(self, db_manager, token, native, isolated_config):
        config = load_sale_config({"presale_vesting_duration": 3600})
        sale = Presale.from_config(
            config, db_manager, OWNER, token, native,
            funding_start_time=FUNDING_START,
            funding_end_time=FUNDING_END,
            claim_start_time=CLAIM_START,
            total_tokens_for_sale=TOKENS_FOR_SALE,
            funds_wallet=FUNDS_WALLET,
            vesting_duration=60
        )
        assert sale.vesting_duration == 60


class TestDepositTokens:
    """Test suite for funding the presale with tokens."""

    @pytest.mark.asyncio
    async def test_deposit(self, presale, token):
        assert await presale.tokens_deposited() is True
        assert await token.balance_of(presale.address) == TOKENS_FOR_SALE
        assert await token.balance_of(OWNER) == ether(1_000_000) - TOKENS_FOR_SALE

    @pytest.mark.asyncio
    async def test_only_owner(self, db_manager, token, native):
        sale = await make_presale(db_manager, token, native).deploy()
        with pytest.raises(NotOwner):
            await sale.deposit_tokens(ALICE)

    @pytest.mark.asyncio
    async def test_requires_approval(self, db_manager, token, native):
        sale = await make_presale(db_manager, token, native).deploy()
        with pytest.raises(InsufficientAllowance):
            await sale.deposit_tokens(OWNER)
        assert await sale.tokens_deposited() is False

    @pytest.mark.asyncio
    async def test_only_once(self, presale, token):
        await token.approve(OWNER, presale.address, TOKENS_FOR_SALE)
        with pytest.raises(AlreadyDeposited):
            await presale.deposit_tokens(OWNER)


class TestContribute:
    """Test suite for contributions."""

    @pytest.mark.asyncio
    async def test_bonus_scenario(self, presale, native):
        first = await presale.contribute(ALICE, ether(10), now=FUNDING_START)
        assert first == DepositReceived(ALICE, ether(10), ether(14))

        second = await presale.contribute(BOB, ether(40), now=FUNDING_START + 1)
        assert second.effective_amount == ether("51.75")

        assert await presale.total_eth() == ether(50)
        assert await presale.total_eth_effective() == ether("65.75")
        assert await native.balance_of(FUNDS_WALLET) == ether(50)
        assert await native.balance_of(ALICE) == ether(90)

        events = await presale.get_events("DepositReceived")
        assert [(e["participant"], e["amount"], e["effective_amount"]) for e in events] == [
            (ALICE, ether(10), ether(14)),
            (BOB, ether(40), ether("51.75")),
        ]
        assert [t["bonus_percent"] for t in events[1]["details"]["tiers"]] == [40, 30, 15]

    @pytest.mark.asyncio
    async def test_credit_matches_bonus_calculator(self, presale):
        await presale.contribute(ALICE, ether(12), now=FUNDING_START)
        deposit = await presale.contribute(BOB, ether(80), now=FUNDING_START + 1)

        assert deposit.effective_amount == compute_effective_amount(ether(80), ether(12))
        event = (await presale.get_events("DepositReceived"))[-1]
        tiers = event["details"]["tiers"]
        credited = sum(int(t["amount"]) + int(t["bonus"]) for t in tiers) + int(event["details"]["unbonused"])
        assert credited == deposit.effective_amount

    @pytest.mark.asyncio
    async def test_repeat_contributions_accumulate(self, presale):
        await presale.contribute(ALICE, ether(10), now=FUNDING_START)
        await presale.contribute(ALICE, ether(10), now=FUNDING_START + 10)

        record = await presale.contribution(ALICE)
        # 10 @40%, then 5 @40% + 5 @30%
        assert record["amount"] == ether(20)
        assert record["effective_amount"] == ether(14) + ether(7) + ether("6.5")
        assert record["claimed"] is False

    @pytest.mark.asyncio
    async def test_zero_contribution(self, presale):
        with pytest.raises(ZeroContribution):
            await presale.contribute(ALICE, 0, now=FUNDING_START)

    @pytest.mark.asyncio
    async def test_funding_window_boundaries(self, presale):
        with pytest.raises(NotInFundingPeriod):
            await presale.contribute(ALICE, ether(1), now=FUNDING_START - 1)
        with pytest.raises(NotInFundingPeriod):
            await presale.contribute(ALICE, ether(1), now=FUNDING_END + 1)

        await presale.contribute(ALICE, ether(1), now=FUNDING_START)
        await presale.contribute(ALICE, ether(1), now=FUNDING_END)
        assert await presale.total_eth() == ether(2)

    @pytest.mark.asyncio
    async def test_failed_payment_rolls_back(self, presale):
        with pytest.raises(InsufficientBalance):
            await presale.contribute(CAROL, ether(1), now=FUNDING_START)

        assert await presale.total_eth() == 0
        assert (await presale.contribution(CAROL))["amount"] == 0
        assert await presale.get_events("DepositReceived") == []

    @pytest.mark.asyncio
    async def test_unknown_contributor_view(self, presale):
        record = await presale.contribution(CAROL)
        assert record == {
            "participant": CAROL,
            "amount": 0,
            "effective_amount": 0,
            "claimed": False,
            "claimed_bonus_tokens": 0,
        }


class TestWhitelist:
    """Test suite for the whitelist phase."""

    @pytest.mark.asyncio
    async def test_requires_signature(self, whitelisted_presale):
        with pytest.raises(NotWhitelisted):
            await whitelisted_presale.contribute(ALICE, ether(1), now=FUNDING_START)

    @pytest.mark.asyncio
    async def test_accepts_signer_signature(self, whitelisted_presale):
        signature = sign_whitelist(SIGNER_KEY, ALICE)
        await whitelisted_presale.contribute(ALICE, ether(1), now=FUNDING_START, signature=signature)
        assert await whitelisted_presale.total_eth() == ether(1)

    @pytest.mark.asyncio
    async def test_signature_is_bound_to_address(self, whitelisted_presale):
        signature = sign_whitelist(SIGNER_KEY, ALICE)
        with pytest.raises(NotWhitelisted):
            await whitelisted_presale.contribute(BOB, ether(1), now=FUNDING_START, signature=signature)

    @pytest.mark.asyncio
    async def test_rejects_other_signer(self, whitelisted_presale):
        signature = sign_whitelist(ALICE_KEY, ALICE)
        with pytest.raises(NotWhitelisted):
            await whitelisted_presale.contribute(ALICE, ether(1), now=FUNDING_START, signature=signature)

    @pytest.mark.asyncio
    async def test_whitelist_phase_boundary(self, whitelisted_presale):
        with pytest.raises(NotWhitelisted):
            await whitelisted_presale.contribute(ALICE, ether(1), now=WHITELIST_END)

        await whitelisted_presale.contribute(ALICE, ether(1), now=WHITELIST_END + 1)
        assert await whitelisted_presale.total_eth() == ether(1)


class TestClaim:
    """Test suite for presale claims."""

    @pytest.mark.asyncio
    async def test_before_claim_start(self, funded_presale):
        with pytest.raises(ClaimPeriodNotStarted):
            await funded_presale.claim(ALICE, now=CLAIM_START - 1)
        assert await funded_presale.get_claimable(ALICE, now=CLAIM_START - 1) == 0

    @pytest.mark.asyncio
    async def test_without_contribution(self, funded_presale):
        with pytest.raises(NoContributionsToClaim):
            await funded_presale.claim(CAROL, now=CLAIM_START)

    @pytest.mark.asyncio
    async def test_immediate_then_vested_bonus(self, funded_presale, token):
        immediate = ether(10) * TOKENS_FOR_SALE // ether("65.75")
        bonus = ether(4)

        assert await funded_presale.get_claimable(ALICE, now=CLAIM_START) == immediate
        first = await funded_presale.claim(ALICE, now=CLAIM_START)
        assert first == Claimed(ALICE, immediate, immediate, 0)

        with pytest.raises(NothingVestedToClaim):
            await funded_presale.claim(ALICE, now=CLAIM_START)

        halfway = CLAIM_START + DEFAULT_VESTING_DURATION // 2
        second = await funded_presale.claim(ALICE, now=halfway)
        assert second.immediate == 0
        assert second.bonus == bonus // 2

        with pytest.raises(NothingVestedToClaim):
            await funded_presale.claim(ALICE, now=halfway)

        third = await funded_presale.claim(ALICE, now=funded_presale.vesting_end_time)
        assert third.bonus == bonus - bonus // 2

        with pytest.raises(NothingVestedToClaim):
            await funded_presale.claim(ALICE, now=funded_presale.vesting_end_time + DAY)

        assert await token.balance_of(ALICE) == immediate + bonus
        record = await funded_presale.contribution(ALICE)
        assert record["claimed"] is True
        assert record["claimed_bonus_tokens"] == bonus

    @pytest.mark.asyncio
    async def test_everything_after_vesting_end(self, funded_presale, token):
        claim = await funded_presale.claim(BOB, now=funded_presale.vesting_end_time + 1)
        immediate = ether(40) * TOKENS_FOR_SALE // ether("65.75")
        bonus = ether("11.75")
        expected = immediate + bonus
        assert claim.amount == expected
        assert await token.balance_of(BOB) == expected

    @pytest.mark.asyncio
    async def test_full_claims_leave_the_unsold_remainder(self, funded_presale, token):
        end = funded_presale.vesting_end_time
        alice = await funded_presale.claim(ALICE, now=end)
        bob = await funded_presale.claim(BOB, now=end)
        remaining = await token.balance_of(funded_presale.address)
        assert remaining == TOKENS_FOR_SALE - alice.amount - bob.amount
        assert alice.bonus + bob.bonus == ether("15.75")

    @pytest.mark.asyncio
    async def test_bonus_half_vested_at_midpoint(self, funded_presale, token):
        record = await funded_presale.contribution(ALICE)
        total_bonus = record["effective_amount"] - record["amount"]
        halfway = CLAIM_START + (funded_presale.vesting_end_time - CLAIM_START) // 2

        claim = await funded_presale.claim(ALICE, now=halfway)

        record = await funded_presale.contribution(ALICE)
        immediate = record["amount"] * TOKENS_FOR_SALE // await funded_presale.total_eth_effective()
        assert record["claimed_bonus_tokens"] == total_bonus // 2 == ether(2)
        assert claim.amount == immediate + ether(2)
        assert await token.balance_of(ALICE) == immediate + ether(2)

    @pytest.mark.asyncio
    async def test_concurrent_claims_pay_once(self, funded_presale, token):
        results = await asyncio.gather(
            funded_presale.claim(BOB, now=CLAIM_START),
            funded_presale.claim(BOB, now=CLAIM_START),
            return_exceptions=True
        )

        claimed = [r for r in results if isinstance(r, Claimed)]
        rejected = [r for r in results if isinstance(r, NothingVestedToClaim)]
        assert len(claimed) == 1
        assert len(rejected) == 1

        immediate = ether(40) * TOKENS_FOR_SALE // ether("65.75")
        assert claimed[0].amount == immediate
        assert await token.balance_of(BOB) == immediate
        assert len(await funded_presale.get_events("Claimed")) == 1

    @pytest.mark.asyncio
    async def test_claim_emits_event(self, funded_presale):
        await funded_presale.claim(ALICE, now=CLAIM_START)
        events = await funded_presale.get_events("Claimed")
        assert len(events) == 1
        assert events[0]["participant"] == ALICE
        assert events[0]["timestamp"] == CLAIM_START
