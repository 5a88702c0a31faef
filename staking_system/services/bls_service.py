# staking_system/services/bls_service.py
"""
BLS dual ledger - swap of internal BLS points into USDT.
"""
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
import logging

from models import User, BLSSwap
from staking_system.config.snapshot import EngineSnapshot
from staking_system.errors import (
    ConsistencyError, InsufficientBalanceError, OperationPausedError, ValidationError
)
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.ledger_service import LedgerService
from staking_system.services.settings_service import SettingsService
from staking_system.utils.money import Currency, ZERO, amountExceeds, round2, settle
from staking_system.utils.validators import requirePositive

logger = logging.getLogger(__name__)


class BLSService:
    """Service for BLS balance swaps and statistics."""

    def __init__(self, session: Session, snapshot: Optional[EngineSnapshot] = None):
        self.session = session
        self._snapshot = snapshot
        self.ledger = LedgerService(session)

    @property
    def snapshot(self) -> EngineSnapshot:
        if self._snapshot is None:
            self._snapshot = SettingsService(self.session).loadSnapshot()
        return self._snapshot

    async def swapBLSToUSDT(self, userId: int, blsAmount: Decimal) -> Dict:
        """
        Debit BLS and credit round2(blsAmount * rate) USDT in one commit.
        Any failure after the debit rolls back and surfaces as ConsistencyError.
        """
        blsAmount = requirePositive(blsAmount, "blsAmount")
        snapshot = self.snapshot

        if not snapshot.blsEnabled:
            raise OperationPausedError("BLS is disabled")
        if blsAmount < snapshot.minSwapAmount:
            raise ValidationError(f"Minimum swap is {snapshot.minSwapAmount} BLS, got {blsAmount}")
        if snapshot.conversionRate <= 0:
            raise ValidationError("BLS conversion rate is not configured")

        user = self.ledger.lockUser(userId)
        balance = self.ledger.balanceOf(user, Currency.BLS)
        if amountExceeds(blsAmount, balance):
            raise InsufficientBalanceError(f"User {userId} has {balance} BLS, requested {blsAmount}")

        usdtAmount = round2(blsAmount * snapshot.conversionRate)

        self.ledger.debit(
            user, blsAmount, Currency.BLS, "bls_swap",
            notes=f"Swap {blsAmount} BLS -> {usdtAmount} USDT"
        )
        try:
            swap = BLSSwap(
                userID=userId,
                blsAmount=blsAmount,
                usdtAmount=usdtAmount,
                conversionRate=snapshot.conversionRate,
                status="completed"
            )
            self.session.add(swap)
            self.session.flush()

            self.ledger.credit(
                user, usdtAmount, Currency.USDT, "bls_swap",
                reason=f"swap={swap.swapID}",
                notes=f"Swap {blsAmount} BLS at {snapshot.conversionRate}"
            )
            self.session.commit()
        except (IntegrityError, StaleDataError, ConsistencyError) as e:
            self.session.rollback()
            logger.error(f"BLS swap for user {userId} failed after debit: {e}")
            raise ConsistencyError(f"BLS swap for user {userId} failed after debit: {e}", userIds=[userId])

        logger.info(f"User {userId} swapped {blsAmount} BLS -> {usdtAmount} USDT")

        result = {
            "swapId": swap.swapID,
            "userId": userId,
            "blsAmount": blsAmount,
            "usdtAmount": usdtAmount,
            "conversionRate": snapshot.conversionRate,
            "blsBalance": settle(user.blsBalance),
            "walletBalance": settle(user.walletBalance)
        }
        await eventBus.emit(StakingEvents.BLS_SWAPPED, result)
        return result

    def getSwapHistory(self, userId: int, limit: int = 50) -> List[Dict]:
        swaps = self.session.query(BLSSwap).filter_by(userID=userId).order_by(
            BLSSwap.swapID.desc()
        ).limit(limit).all()
        return [
            {
                "swapId": s.swapID,
                "blsAmount": settle(s.blsAmount),
                "usdtAmount": settle(s.usdtAmount),
                "conversionRate": s.conversionRate,
                "status": s.status,
                "createdAt": s.createdAt
            }
            for s in swaps
        ]

    def getBLSStats(self) -> Dict:
        """System-wide BLS circulation and swap totals."""
        totalBalance = self.session.query(func.coalesce(func.sum(User.blsBalance), 0)).scalar()
        holders = self.session.query(func.count(User.userID)).filter(User.blsBalance > 0).scalar() or 0
        swapped = self.session.query(
            func.count(BLSSwap.swapID),
            func.coalesce(func.sum(BLSSwap.blsAmount), 0),
            func.coalesce(func.sum(BLSSwap.usdtAmount), 0)
        ).filter(BLSSwap.status == "completed").one()

        return {
            "isEnabled": self.snapshot.blsEnabled,
            "conversionRate": self.snapshot.conversionRate,
            "minSwapAmount": self.snapshot.minSwapAmount,
            "totalBLSInCirculation": settle(Decimal(str(totalBalance or ZERO))),
            "holders": holders,
            "swapCount": swapped[0] or 0,
            "totalBLSSwapped": settle(Decimal(str(swapped[1] or ZERO))),
            "totalUSDTPaid": settle(Decimal(str(swapped[2] or ZERO)))
        }
