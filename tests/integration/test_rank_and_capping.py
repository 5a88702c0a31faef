"""
Tests for B-Rank qualification and rank-bonus capping.

These tests ensure a rank bonus is truncated to the remaining cap and that
totalRankBonusReceived never exceeds the cap, whatever the sequence of payouts.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from models import Commission, RankHistory
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.admin_service import AdminService
from staking_system.services.commission_service import CommissionService
from staking_system.services.rank_service import RankService
from staking_system.services.settings_service import SettingsService

RUN_DATE = date(2025, 3, 2)


class TestEvaluateRank:
    """Test qualification against default rules."""

    def test_b1_needs_volume_and_directs(self, seeded, make_user):
        """B1: 3000 team volume and 5 directs."""
        a = make_user(teamVolume=Decimal("3000"))
        for _ in range(4):
            make_user(referrer=a)

        service = RankService(seeded)
        assert service.evaluateRank(a) is None

        make_user(referrer=a)
        assert service.evaluateRank(a).rank == "B1"

    def test_b2_needs_two_b1_directs(self, seeded, make_user):
        """B2 requires two directs holding B1 or higher."""
        a = make_user(teamVolume=Decimal("10000"))
        make_user(referrer=a, rank="B1")
        for _ in range(4):
            make_user(referrer=a)

        service = RankService(seeded)
        assert service.evaluateRank(a).rank == "B1"

        make_user(referrer=a, rank="B3")
        assert service.evaluateRank(a).rank == "B2"

    def test_highest_rank_basis(self, seeded, make_user):
        """With the highest basis, a direct's past rank still counts."""
        a = make_user(teamVolume=Decimal("10000"))
        for _ in range(2):
            make_user(referrer=a, highest="B1")
        for _ in range(3):
            make_user(referrer=a)

        assert RankService(seeded).evaluateRank(a).rank == "B1"

        admin = AdminService(seeded)
        admin.setRankDirectsBasis("highest")
        assert RankService(seeded).evaluateRank(a).rank == "B2"


class TestRecalculateRank:
    """Test persisted upgrades and downgrades."""

    async def test_upgrade_records_history_and_event(self, seeded, make_user):
        """An upgrade updates the user, writes history and emits rank.changed."""
        received = []
        eventBus.subscribe(StakingEvents.RANK_CHANGED, received.append)

        a = make_user(teamVolume=Decimal("3000"))
        for _ in range(5):
            make_user(referrer=a)

        result = await RankService(seeded).recalculateAllRanks()
        assert result["updated"] == 1
        assert a.currentRank == "B1"
        assert a.highestRank == "B1"
        assert seeded.query(RankHistory).filter_by(userID=a.userID).count() == 1
        assert received[0]["newRank"] == "B1"

    async def test_downgrade_keeps_highest(self, seeded, make_user):
        """Losing volume drops the rank but not the highest rank."""
        a = make_user(teamVolume=Decimal("100"), rank="B1")

        changes = await RankService(seeded).recalculateRank(a.userID)
        seeded.commit()

        assert changes[0]["newRank"] == "B0"
        assert a.currentRank == "B0"
        assert a.highestRank == "B1"

    async def test_change_propagates_to_referrer(self, seeded, make_user):
        """A direct reaching B1 can lift the referrer to B2."""
        top = make_user(teamVolume=Decimal("10000"))
        make_user(referrer=top, rank="B1")
        for _ in range(3):
            make_user(referrer=top)
        mid = make_user(referrer=top, teamVolume=Decimal("3000"))
        for _ in range(5):
            make_user(referrer=mid)

        changes = await RankService(seeded).recalculateRank(mid.userID)
        seeded.commit()

        assert [c["newRank"] for c in changes] == ["B1", "B2"]
        assert top.currentRank == "B2"


class TestRankBonusCapping:
    """Test truncation to remaining cap."""

    async def _setup(self, seeded, make_user, make_stake, received="950"):
        a = make_user(rank="B2", totalRankBonusReceived=Decimal(received))
        make_stake(a, amount="500")
        b = make_user(referrer=a)
        # 20000 at 2% yields 400, B2 pays 25% = 100
        stake = make_stake(b, amount="20000", dailyRate="2.00")
        return a, b, stake

    async def test_cap_info(self, seeded, make_user, make_stake):
        """B2 x2 on a 500 stake gives a 1000 cap."""
        a, _, _ = await self._setup(seeded, make_user, make_stake)
        info = RankService(seeded).capInfo(a)

        assert info["totalActiveStake"] == Decimal("500.00")
        assert info["cappingMultiplier"] == Decimal("2")
        assert info["currentCap"] == Decimal("1000.00")
        assert info["remainingCap"] == Decimal("50.00")
        assert info["isCapReached"] is False

    async def test_truncated_to_remaining(self, seeded, make_user, make_stake):
        """Computed 100 with 50 left pays 50 and lands exactly on the cap."""
        a, _, stake = await self._setup(seeded, make_user, make_stake)
        snapshot = SettingsService(seeded).loadSnapshot()

        outcome = await CommissionService(seeded, snapshot).payRankBonus(
            a.userID, stake, Decimal("400.00"), RUN_DATE
        )
        seeded.commit()

        assert outcome.computedAmount == Decimal("100.00")
        assert outcome.paidAmount == Decimal("50.00")
        assert outcome.status == "partial"
        assert a.totalRankBonusReceived == Decimal("1000.00")
        assert a.walletBalance == Decimal("50.00")

    async def test_zero_remaining_logs_capped(self, seeded, make_user, make_stake):
        """At the cap nothing is paid but the event is recorded."""
        a, _, stake = await self._setup(seeded, make_user, make_stake, received="1000")
        snapshot = SettingsService(seeded).loadSnapshot()

        outcome = await CommissionService(seeded, snapshot).payRankBonus(
            a.userID, stake, Decimal("400.00"), RUN_DATE
        )
        seeded.commit()

        assert outcome.paidAmount == Decimal("0.00")
        assert outcome.status == "capped"
        row = seeded.query(Commission).filter_by(commissionType="rank_bonus").one()
        assert row.status == "capped"
        assert row.commissionAmount == Decimal("0.00")
        assert row.computedAmount == Decimal("100.00")
        assert a.totalRankBonusReceived == Decimal("1000.00")

    async def test_concurrent_attempts_never_exceed_cap(self, seeded, make_user, make_stake):
        """Many payouts for different stakes at once stay under the cap."""
        a = make_user(rank="B2", totalRankBonusReceived=Decimal("900"))
        make_stake(a, amount="500")
        stakes = []
        for _ in range(6):
            direct = make_user(referrer=a)
            stakes.append(make_stake(direct, amount="20000", dailyRate="2.00"))
        snapshot = SettingsService(seeded).loadSnapshot()
        service = CommissionService(seeded, snapshot)

        outcomes = await asyncio.gather(*[
            service.payRankBonus(a.userID, stake, Decimal("400.00"), RUN_DATE)
            for stake in stakes
        ])
        seeded.commit()

        assert sum(o.paidAmount for o in outcomes) == Decimal("100.00")
        assert a.totalRankBonusReceived == Decimal("1000.00")
        assert RankService(seeded).capInfo(a)["isCapReached"] is True

    async def test_no_rank_no_bonus(self, seeded, make_user, make_stake):
        """B0 has no rule, so no bonus and no record."""
        a = make_user()
        b = make_user(referrer=a)
        stake = make_stake(b)
        snapshot = SettingsService(seeded).loadSnapshot()

        outcome = await CommissionService(seeded, snapshot).payRankBonus(
            a.userID, stake, Decimal("2.00"), RUN_DATE
        )
        assert outcome is None
        assert seeded.query(Commission).count() == 0

    async def test_rule_update_triggers_recalculation(self, seeded, make_user):
        """Raising B1 requirements demotes holders that no longer qualify."""
        a = make_user(teamVolume=Decimal("3000"), rank="B1")
        for _ in range(5):
            make_user(referrer=a)

        await AdminService(seeded).updateRankRule("B1", {"minTeamVolume": Decimal("5000")})
        assert a.currentRank == "B0"

    async def test_invalid_multiplier_rejected_before_write(self, seeded):
        """Multiplier <= 0 leaves the rule untouched."""
        with pytest.raises(ValueError):
            await AdminService(seeded).updateRankRule("B1", {"cappingMultiplier": Decimal("0")})
        rules = SettingsService(seeded).loadSnapshot()
        assert rules.ruleFor("B1").cappingMultiplier == Decimal("2")
