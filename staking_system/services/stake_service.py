# staking_system/services/stake_service.py
"""
Stake lifecycle: creation from wallet funds and completion at cycle end.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import logging

import config
from models import Stake
from staking_system.config.snapshot import EngineSnapshot
from staking_system.errors import (
    ConsistencyError, InsufficientBalanceError, NotFoundError, OperationPausedError, ValidationError
)
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.active_directs_service import ActiveDirectsService
from staking_system.services.ledger_service import LedgerService
from staking_system.services.rank_service import RankService
from staking_system.services.settings_service import SettingsService
from staking_system.services.volume_service import VolumeService
from staking_system.utils.money import Currency, amountExceeds, settle
from staking_system.utils.time_machine import timeMachine
from staking_system.utils.validators import requirePositive

logger = logging.getLogger(__name__)


class StakeService:
    """Creates stakes and closes them when their cycle ends."""

    def __init__(self, session: Session, snapshot: Optional[EngineSnapshot] = None):
        self.session = session
        self._snapshot = snapshot
        self.ledger = LedgerService(session)

    @property
    def snapshot(self) -> EngineSnapshot:
        if self._snapshot is None:
            self._snapshot = SettingsService(self.session).loadSnapshot()
        return self._snapshot

    async def createStake(self, userId: int, amount: Decimal, cycleDays: int) -> Stake:
        """Lock wallet funds into a new stake."""
        if self.snapshot.stakingPaused:
            raise OperationPausedError("Staking is paused")

        amount = requirePositive(amount)
        if amount < config.MIN_STAKE_AMOUNT:
            raise ValidationError(f"Minimum stake is {config.MIN_STAKE_AMOUNT}, got {amount}")

        dailyRate = self.snapshot.stakingCycles.get(cycleDays)
        if dailyRate is None:
            raise ValidationError(f"No staking cycle of {cycleDays} days")

        user = self.ledger.lockUser(userId)
        if user.isRemoved:
            raise ValidationError(f"User {userId} is removed")
        if amountExceeds(amount, self.ledger.balanceOf(user, Currency.USDT)):
            raise InsufficientBalanceError(f"User {userId} cannot stake {amount}")

        today = timeMachine.today
        try:
            stake = Stake(
                userID=userId,
                amount=amount,
                cycleDays=cycleDays,
                dailyRate=dailyRate,
                status="active",
                startDate=today,
                endDate=today + timedelta(days=cycleDays),
                lastYieldDate=today
            )
            self.session.add(stake)
            self.session.flush()

            self.ledger.debit(
                user, amount, Currency.USDT, "stake",
                reason=f"stake={stake.stakeID}",
                notes=f"{cycleDays}-day stake at {dailyRate}%/day"
            )

            touched = await VolumeService(self.session).applyStakeVolume(stake, sign=1)
            ActiveDirectsService(self.session).recomputeForReferrerOf(userId)
            rankChanges = await RankService(self.session, self.snapshot).recalculateChain(touched)

            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConsistencyError(f"Stake creation for user {userId} failed: {e}", userIds=[userId])
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"User {userId} staked {amount} for {cycleDays} days (stake {stake.stakeID})")

        await eventBus.emit(StakingEvents.STAKE_CREATED, {
            "stakeId": stake.stakeID,
            "userId": userId,
            "amount": amount,
            "cycleDays": cycleDays
        })
        await RankService(self.session, self.snapshot).emitChanges(rankChanges)
        return stake

    async def completeStake(self, stake: Stake) -> List[Dict]:
        """
        Close a stake whose cycle ended. Runs inside the caller's transaction.
        Wallet-funded principal goes back to the wallet, converted presale principal does not.
        Returns rank changes to emit after commit.
        """
        if not stake.isActive:
            return []

        stake.status = "completed"
        stake.completedAt = timeMachine.now

        if stake.sourceOrderID is None:
            user = self.ledger.lockUser(stake.userID)
            self.ledger.credit(
                user, settle(stake.amount), Currency.USDT, "stake_return",
                reason=f"stake={stake.stakeID}",
                notes=f"Principal returned after {stake.cycleDays} days",
                idempotencyKey=f"stake_return:{stake.stakeID}"
            )

        touched = await VolumeService(self.session).applyStakeVolume(stake, sign=-1)
        ActiveDirectsService(self.session).recomputeForReferrerOf(stake.userID)
        rankChanges = await RankService(self.session, self.snapshot).recalculateChain(touched)

        logger.info(f"Stake {stake.stakeID} of user {stake.userID} completed")
        return rankChanges

    def getStake(self, stakeId: int) -> Stake:
        stake = self.session.query(Stake).filter_by(stakeID=stakeId).first()
        if not stake:
            raise NotFoundError(f"Stake {stakeId} not found")
        return stake

    def getUserStakes(self, userId: int, status: Optional[str] = None) -> List[Stake]:
        query = self.session.query(Stake).filter_by(userID=userId)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(Stake.stakeID).all()
