"""
Tests for stake creation from wallet funds.
"""

from decimal import Decimal

import pytest

from models import Stake, Transaction
from staking_system.errors import InsufficientBalanceError, OperationPausedError, ValidationError
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.active_directs_service import ActiveDirectsService
from staking_system.services.admin_service import AdminService
from staking_system.services.stake_service import StakeService
from staking_system.services.volume_service import VolumeService


class TestCreateStake:
    """Test createStake."""

    async def test_creates_and_debits(self, seeded, make_user, clock):
        """Wallet funds move into a stake priced by the configured cycle."""
        sponsor = make_user()
        user = make_user(referrer=sponsor, wallet="500")
        created = []
        eventBus.subscribe(StakingEvents.STAKE_CREATED, created.append)

        stake = await StakeService(seeded).createStake(user.userID, Decimal("300"), 30)

        assert stake.amount == Decimal("300.00")
        assert stake.dailyRate == Decimal("0.60")
        assert stake.endDate.toordinal() - stake.startDate.toordinal() == 30
        assert stake.lastYieldDate == clock.today
        assert user.walletBalance == Decimal("200.00")
        assert user.teamVolume == Decimal("300.00")
        assert sponsor.teamVolume == Decimal("300.00")
        assert sponsor.activeDirectReferrals == 1
        assert sponsor.unlockedLevels == 2
        assert created[0]["stakeId"] == stake.stakeID

        debit = seeded.query(Transaction).filter_by(type="stake").one()
        assert debit.amount == Decimal("-300.00")
        assert debit.balanceAfter == Decimal("200.00")

    async def test_below_minimum(self, seeded, make_user):
        """Less than 100 is refused."""
        user = make_user(wallet="500")
        with pytest.raises(ValidationError):
            await StakeService(seeded).createStake(user.userID, Decimal("99.99"), 30)
        assert user.walletBalance == Decimal("500.00")

    async def test_unknown_cycle(self, seeded, make_user):
        """Only configured cycles can be chosen."""
        user = make_user(wallet="500")
        with pytest.raises(ValidationError):
            await StakeService(seeded).createStake(user.userID, Decimal("100"), 45)

    async def test_insufficient_balance(self, seeded, make_user):
        """Cannot stake more than the wallet holds."""
        user = make_user(wallet="150")
        with pytest.raises(InsufficientBalanceError):
            await StakeService(seeded).createStake(user.userID, Decimal("150.01"), 7)
        assert seeded.query(Stake).count() == 0

    async def test_paused(self, seeded, make_user):
        """Staking can be paused by an admin."""
        user = make_user(wallet="500")
        AdminService(seeded).setStakingPaused(True)
        with pytest.raises(OperationPausedError):
            await StakeService(seeded).createStake(user.userID, Decimal("100"), 7)

    async def test_non_positive(self, seeded, make_user):
        """Zero and negative amounts are validation errors."""
        user = make_user(wallet="500")
        for amount in (Decimal("0"), Decimal("-100")):
            with pytest.raises(ValidationError):
                await StakeService(seeded).createStake(user.userID, amount, 7)

    async def test_stake_can_promote_referrer(self, seeded, make_user):
        """Volume from a new stake lifts the sponsor to B1."""
        sponsor = make_user()
        for _ in range(4):
            make_user(referrer=sponsor)
        user = make_user(referrer=sponsor, wallet="3000")

        await StakeService(seeded).createStake(user.userID, Decimal("3000"), 90)

        assert sponsor.currentRank == "B1"

    async def test_user_stakes_listing(self, seeded, make_user):
        user = make_user(wallet="1000")
        service = StakeService(seeded)
        await service.createStake(user.userID, Decimal("100"), 7)
        await service.createStake(user.userID, Decimal("200"), 360)

        stakes = service.getUserStakes(user.userID, status="active")
        assert [s.cycleDays for s in stakes] == [7, 360]
        assert service.getStake(stakes[0].stakeID).amount == Decimal("100.00")


class TestBackfills:
    """Test rebuilds of cached volume and unlock figures."""

    async def test_recalculate_team_volumes(self, seeded, make_user):
        """Cached volume is rebuilt from active stakes."""
        sponsor = make_user()
        user = make_user(referrer=sponsor, wallet="500")
        await StakeService(seeded).createStake(user.userID, Decimal("400"), 30)
        sponsor.teamVolume = Decimal("12345")
        seeded.commit()

        updated = await VolumeService(seeded).recalculateTeamVolumes()

        assert updated == 1
        assert sponsor.teamVolume == Decimal("400.00")
        assert user.teamVolume == Decimal("400.00")

    def test_recompute_all_active_directs(self, seeded, make_user, make_stake):
        """Stakes inserted without hooks are picked up by the backfill."""
        sponsor = make_user()
        for _ in range(2):
            make_stake(make_user(referrer=sponsor))

        result = ActiveDirectsService(seeded).recomputeAllActiveDirects()

        assert result["updated"] == 1
        assert sponsor.activeDirectReferrals == 2
        assert sponsor.unlockedLevels == 4
