"""
Tests for admin configuration and the reporting read models.
"""

from datetime import date
from decimal import Decimal

import pytest

from models import RankRule
from staking_system.errors import NotFoundError, ValidationError
from staking_system.services.admin_service import AdminService
from staking_system.services.distribution_service import DistributionService
from staking_system.services.report_service import ReportService
from staking_system.services.settings_service import SettingsService
from staking_system.services.stake_service import StakeService

RUN_DATES = [date(2025, 2, 28), date(2025, 3, 1), date(2025, 3, 2)]


class TestStakingCycles:
    """Test cycle administration."""

    async def test_new_cycle_usable(self, seeded, make_user):
        admin = AdminService(seeded)
        admin.createStakingCycle(14, Decimal("0.50"))
        user = make_user(wallet="100")

        stake = await StakeService(seeded).createStake(user.userID, Decimal("100"), 14)
        assert stake.dailyRate == Decimal("0.50")

    def test_duplicate_and_invalid(self, seeded):
        admin = AdminService(seeded)
        with pytest.raises(ValidationError):
            admin.createStakingCycle(30, Decimal("0.60"))
        with pytest.raises(ValidationError):
            admin.createStakingCycle(14, Decimal("0"))
        with pytest.raises(ValidationError):
            admin.createStakingCycle(0, Decimal("1"))

    async def test_rate_change_keeps_existing_stakes(self, seeded, make_user):
        """Existing stakes keep the rate they were opened with."""
        user = make_user(wallet="200")
        service = StakeService(seeded)
        old = await service.createStake(user.userID, Decimal("100"), 30)

        AdminService(seeded).updateStakingCycle(30, Decimal("0.70"))
        new = await StakeService(seeded).createStake(user.userID, Decimal("100"), 30)

        assert old.dailyRate == Decimal("0.60")
        assert new.dailyRate == Decimal("0.70")

    async def test_deleted_cycle_not_offered(self, seeded, make_user):
        user = make_user(wallet="200")
        AdminService(seeded).deleteStakingCycle(7)

        assert 7 not in SettingsService(seeded).loadSnapshot().stakingCycles
        with pytest.raises(ValidationError):
            await StakeService(seeded).createStake(user.userID, Decimal("100"), 7)
        with pytest.raises(NotFoundError):
            AdminService(seeded).deleteStakingCycle(7)


class TestRankRules:
    """Test rank rule administration."""

    async def test_create_rule(self, seeded):
        rule = await AdminService(seeded).createRankRule({
            "rank": "B10",
            "minTeamVolume": Decimal("100000000"),
            "minDirectReferrals": 5,
            "requiredRankDirectsCount": 2,
            "requiredRankDirectsRank": "B9",
            "commissionRate": Decimal("65"),
            "cappingMultiplier": Decimal("5")
        })
        assert rule.rankWeight == 10
        assert SettingsService(seeded).loadSnapshot().rulesDescending()[0].rank == "B10"

    async def test_required_rank_must_be_lower(self, seeded):
        with pytest.raises(ValidationError):
            await AdminService(seeded).createRankRule({
                "rank": "B10",
                "minDirectReferrals": 5,
                "requiredRankDirectsCount": 2,
                "requiredRankDirectsRank": "B10",
                "commissionRate": Decimal("65"),
                "cappingMultiplier": Decimal("5")
            })

    async def test_new_rule_cannot_undercut_lower_rank(self, seeded):
        """A B10 easier than B9 is refused and nothing is written."""
        with pytest.raises(ValidationError):
            await AdminService(seeded).createRankRule({
                "rank": "B10",
                "minTeamVolume": Decimal("0"),
                "minDirectReferrals": 5,
                "requiredRankDirectsCount": 2,
                "requiredRankDirectsRank": "B9",
                "commissionRate": Decimal("65"),
                "cappingMultiplier": Decimal("5")
            })
        assert seeded.query(RankRule).filter_by(rank="B10").first() is None

    async def test_update_must_stay_between_neighbours(self, seeded):
        """B2 cannot drop below B1 or climb above B3."""
        admin = AdminService(seeded)
        with pytest.raises(ValidationError):
            await admin.updateRankRule("B2", {"minTeamVolume": Decimal("2999")})
        with pytest.raises(ValidationError):
            await admin.updateRankRule("B2", {"minDirectReferrals": 6})

        b2 = seeded.query(RankRule).filter_by(rank="B2").one()
        assert b2.minTeamVolume == Decimal("10000")
        assert b2.requiredRankDirectsRank == "B1"

        rule = await admin.updateRankRule("B2", {"minTeamVolume": Decimal("30000")})
        assert rule.minTeamVolume == Decimal("30000")

    async def test_delete_refused_while_required(self, seeded):
        """B2 needs B1 directs, so B1 stays."""
        admin = AdminService(seeded)
        with pytest.raises(ValidationError):
            await admin.deleteRankRule("B1")

        assert await admin.deleteRankRule("B9") is True
        assert seeded.query(RankRule).filter_by(rank="B9").first() is None

    async def test_deleting_rule_demotes_holders(self, seeded, make_user):
        user = make_user(rank="B9", teamVolume=Decimal("0"))
        await AdminService(seeded).deleteRankRule("B9")
        assert user.currentRank == "B0"


class TestToggles:
    """Test settings toggles."""

    def test_flags_require_bool(self, seeded):
        admin = AdminService(seeded)
        with pytest.raises(ValidationError):
            admin.setStakingPaused("yes")

        admin.setWithdrawalsPaused(True)
        assert SettingsService(seeded).loadSnapshot().withdrawalsPaused is True

    def test_referral_bonus_rates_validated(self, seeded):
        admin = AdminService(seeded)
        with pytest.raises(ValidationError):
            admin.setReferralBonusRates({11: Decimal("5")})
        with pytest.raises(ValidationError):
            admin.setReferralBonusRates({1: Decimal("101")})

        admin.setReferralBonusRates({"1": "5"})
        assert SettingsService(seeded).loadSnapshot().referralBonusRates == {1: Decimal("5")}

    def test_rank_directs_basis(self, seeded):
        with pytest.raises(ValidationError):
            AdminService(seeded).setRankDirectsBasis("sometimes")


class TestReports:
    """Test commission reports and run history."""

    async def _threeDays(self, seeded, make_user, make_stake):
        a = make_user()
        b = make_user(referrer=a)
        make_stake(b, amount="100", dailyRate="2.00", startDate=date(2025, 2, 27))
        service = DistributionService(seeded)
        for runDate in RUN_DATES:
            await service.runDailyDistribution(runDate)
        return a

    async def test_group_by_month(self, seeded, make_user, make_stake):
        a = await self._threeDays(seeded, make_user, make_stake)

        report = ReportService(seeded).getCommissionReport(userId=a.userID, groupBy="month")

        assert report["totalsByCurrency"] == {"USDT": Decimal("0.18")}
        assert report["count"] == 3
        assert [(p["period"], p["currency"], p["totalAmount"], p["count"]) for p in report["periods"]] == [
            ("2025-02", "USDT", Decimal("0.06"), 1),
            ("2025-03", "USDT", Decimal("0.12"), 2),
        ]

    async def test_date_range_rows(self, seeded, make_user, make_stake):
        a = await self._threeDays(seeded, make_user, make_stake)

        report = ReportService(seeded).getCommissionReport(
            userId=a.userID, startDate=date(2025, 3, 1), endDate=date(2025, 3, 1)
        )

        assert report["count"] == 1
        assert report["commissions"][0]["reportingDate"] == date(2025, 3, 1)
        assert report["commissions"][0]["level"] == 1

    async def test_invalid_report_arguments(self, seeded):
        service = ReportService(seeded)
        with pytest.raises(ValidationError):
            service.getCommissionReport(groupBy="decade")
        with pytest.raises(ValidationError):
            service.getCommissionReport(startDate=date(2025, 3, 2), endDate=date(2025, 3, 1))
        with pytest.raises(ValidationError):
            service.getCommissionReport(currency="EUR")

    async def test_summary_periods(self, seeded, make_user, make_stake, clock):
        a = await self._threeDays(seeded, make_user, make_stake)
        clock.setDate(date(2025, 3, 2))
        service = ReportService(seeded)

        month = service.getCommissionSummary(a.userID, "month")
        everything = service.getCommissionSummary(a.userID, "all")

        assert month["byCurrency"]["USDT"]["totalAmount"] == Decimal("0.12")
        usdt = everything["byCurrency"]["USDT"]
        assert usdt["totalAmount"] == Decimal("0.18")
        assert usdt["byLevel"][1]["count"] == 3
        assert usdt["byType"] == {"unilevel": Decimal("0.18")}
        assert service.getCommissionSummary(a.userID, "today")["count"] == 1

    async def test_currencies_reported_separately(self, seeded, make_user, make_stake, clock):
        """A USDT day and a BLS day are totalled per currency, never added together."""
        a = make_user()
        b = make_user(referrer=a)
        make_stake(b, amount="100", dailyRate="2.00", startDate=date(2025, 2, 27))
        service = DistributionService(seeded)
        await service.runDailyDistribution(date(2025, 2, 28))
        AdminService(seeded).configureBLS(isEnabled=True, conversionRate=Decimal("0.98"))
        await service.runDailyDistribution(date(2025, 3, 1))
        reports = ReportService(seeded)

        report = reports.getCommissionReport(userId=a.userID, groupBy="month")
        assert report["totalsByCurrency"] == {"BLS": Decimal("0.06"), "USDT": Decimal("0.06")}
        assert [(p["period"], p["currency"], p["totalAmount"]) for p in report["periods"]] == [
            ("2025-02", "USDT", Decimal("0.06")),
            ("2025-03", "BLS", Decimal("0.06")),
        ]

        bls = reports.getCommissionReport(userId=a.userID, currency="BLS")
        assert bls["count"] == 1
        assert bls["commissions"][0]["currency"] == "BLS"

        clock.setDate(date(2025, 3, 1))
        summary = reports.getCommissionSummary(a.userID, "all")
        assert summary["count"] == 2
        assert summary["byCurrency"]["USDT"]["totalAmount"] == Decimal("0.06")
        assert summary["byCurrency"]["BLS"]["byType"] == {"unilevel": Decimal("0.06")}

    async def test_distribution_runs_newest_first(self, seeded, make_user, make_stake):
        await self._threeDays(seeded, make_user, make_stake)

        runs = ReportService(seeded).getDistributionRuns(limit=2)

        assert [r["runDate"] for r in runs] == [date(2025, 3, 2), date(2025, 3, 1)]
        assert all(r["status"] == "success" for r in runs)

    def test_cap_info_unknown_user(self, seeded):
        with pytest.raises(NotFoundError):
            ReportService(seeded).getRankCapInfo(404)
