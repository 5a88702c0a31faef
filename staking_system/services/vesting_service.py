# staking_system/services/vesting_service.py
"""
Presale vesting schedules and the one-time conversion of orders into stakes.
"""
import calendar
from datetime import date, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
import logging

import config
from models import PresaleOrder, Stake
from staking_system.errors import (
    ConsistencyError, GraphIntegrityError, NotFoundError, ValidationError
)
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.active_directs_service import ActiveDirectsService
from staking_system.services.ledger_service import LedgerService
from staking_system.services.rank_service import RankService
from staking_system.services.volume_service import VolumeService
from staking_system.utils.money import CENT, Currency, ZERO, amountExceeds, round2, settle
from staking_system.utils.time_machine import timeMachine
from staking_system.utils.validators import requirePositive, validateVestingSchedule

logger = logging.getLogger(__name__)


def addMonths(start: date, months: int) -> date:
    """Same day N calendar months later, clamped to the month end (Jan 31 + 1 -> Feb 28/29)."""
    monthIndex = start.month - 1 + months
    year = start.year + monthIndex // 12
    month = monthIndex % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def tranches(order: PresaleOrder) -> List[Dict]:
    """
    Unlock plan of an order: the immediate tranche on the purchase date, then
    `months` equal monthly tranches. The last monthly tranche takes the rounding remainder.
    """
    total = Decimal(str(order.totalAmount))
    immediatePct = Decimal(str(order.immediatePct or 0))
    monthlyPct = Decimal(str(order.monthlyPct or 0))
    months = order.months or 0

    plan = [{
        "index": 0,
        "kind": "immediate",
        "unlockDate": order.purchaseDate,
        "amount": round2(total * immediatePct / Decimal("100"))
    }]

    if months > 0:
        # Vested share rounded once so immediate + monthly never exceeds the total
        vestedTotal = min(total, round2(total * (immediatePct + monthlyPct) / Decimal("100")))
        monthlyTotal = settle(max(ZERO, vestedTotal - plan[0]["amount"]))
        perMonth = (monthlyTotal / months).quantize(CENT, rounding=ROUND_DOWN)
        for i in range(1, months + 1):
            amount = perMonth if i < months else monthlyTotal - perMonth * (months - 1)
            plan.append({
                "index": i,
                "kind": "monthly",
                "unlockDate": addMonths(order.purchaseDate, i),
                "amount": settle(amount)
            })

    return plan


def unlockedAmount(order: PresaleOrder, asOf: date) -> Decimal:
    """Sum of tranches unlocked on or before asOf. Non-decreasing in asOf."""
    return settle(sum(
        (t["amount"] for t in tranches(order) if t["unlockDate"] <= asOf),
        ZERO
    ))


class VestingService:
    """Vesting queries, claims and order conversion."""

    def __init__(self, session: Session):
        self.session = session
        self.ledger = LedgerService(session)

    def _getOrder(self, orderId: int) -> PresaleOrder:
        order = self.session.query(PresaleOrder).filter_by(orderID=orderId).first()
        if not order:
            raise NotFoundError(f"Order {orderId} not found")
        return order

    def createOrder(
            self,
            userId: int,
            quantity: int,
            totalAmount: Decimal,
            immediatePct: Decimal,
            monthlyPct: Decimal,
            months: int,
            purchaseDate: Optional[date] = None,
            status: str = "confirmed"
    ) -> PresaleOrder:
        """Record an already-paid presale order with its vesting schedule."""
        immediate, monthly, months = validateVestingSchedule(immediatePct, monthlyPct, months)
        if status not in ("pending", "confirmed"):
            raise ValidationError(f"New orders start pending or confirmed, not {status}")

        order = PresaleOrder(
            userID=userId,
            quantity=quantity,
            totalAmount=requirePositive(totalAmount, "totalAmount"),
            status=status,
            purchaseDate=purchaseDate or timeMachine.today,
            immediatePct=immediate,
            monthlyPct=monthly,
            months=months
        )
        self.session.add(order)
        self.session.commit()
        logger.info(f"Presale order {order.orderID} recorded for user {userId}: {order.totalAmount}")
        return order

    def getVestingSchedule(self, orderId: int, asOf: Optional[date] = None) -> Dict:
        order = self._getOrder(orderId)
        asOf = asOf or timeMachine.today
        plan = tranches(order)
        for t in plan:
            t["isUnlocked"] = t["unlockDate"] <= asOf
        unlocked = unlockedAmount(order, asOf)
        claimed = settle(order.claimedAmount or ZERO)
        return {
            "orderId": order.orderID,
            "totalAmount": settle(order.totalAmount),
            "tranches": plan,
            "unlockedAmount": unlocked,
            "claimedAmount": claimed,
            "claimableAmount": settle(max(ZERO, unlocked - claimed))
        }

    async def claimVested(self, orderId: int, amount: Decimal) -> Dict:
        """Move unlocked proceeds to the wallet. claimed <= unlocked <= total always holds."""
        amount = requirePositive(amount)
        order = self._getOrder(orderId)
        if order.status != "confirmed":
            raise ValidationError(f"Order {orderId} is {order.status}, nothing to claim")

        unlocked = unlockedAmount(order, timeMachine.today)
        claimed = settle(order.claimedAmount or ZERO)
        if amountExceeds(claimed + amount, unlocked):
            raise ValidationError(
                f"Claim of {amount} exceeds claimable {settle(unlocked - claimed)} on order {orderId}"
            )
        if amountExceeds(claimed + amount, order.totalAmount):
            raise ValidationError(f"Claim of {amount} exceeds the total of order {orderId}")

        try:
            user = self.ledger.lockUser(order.userID)
            order.claimedAmount = settle(claimed + amount)
            self.ledger.credit(
                user, amount, Currency.USDT, "vesting_claim",
                reason=f"order={orderId}",
                notes=f"Vesting claim, {order.claimedAmount} of {unlocked} unlocked"
            )
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise ConsistencyError(f"Vesting claim on order {orderId} failed: {e}", userIds=[order.userID])

        logger.info(f"User {order.userID} claimed {amount} from order {orderId}")
        return {
            "orderId": orderId,
            "claimed": amount,
            "claimedAmount": settle(order.claimedAmount),
            "unlockedAmount": unlocked
        }

    async def convertAllOrders(self) -> Dict:
        """
        Turn every confirmed order into one 365-day stake of its full total.
        One transaction per order; converted orders are left alone, so re-running is harmless.
        """
        results = {
            "converted": 0,
            "skipped": 0,
            "errors": 0,
            "totalAmount": ZERO,
            "stakeIds": []
        }

        orderIds = [
            o for (o,) in self.session.query(PresaleOrder.orderID)
            .filter_by(status="confirmed")
            .order_by(PresaleOrder.orderID)
            .all()
        ]

        for orderId in orderIds:
            try:
                converted = await self._convertOrder(orderId)
            except (GraphIntegrityError, ConsistencyError, NotFoundError, IntegrityError, StaleDataError) as e:
                self.session.rollback()
                results["errors"] += 1
                logger.error(f"Conversion of order {orderId} failed: {e}")
                continue

            if converted is None:
                results["skipped"] += 1
                continue

            stake, rankChanges = converted
            results["converted"] += 1
            results["totalAmount"] += stake.amount
            results["stakeIds"].append(stake.stakeID)

            await eventBus.emit(StakingEvents.ORDER_CONVERTED, {
                "orderId": orderId,
                "stakeId": stake.stakeID,
                "userId": stake.userID,
                "amount": stake.amount
            })
            await RankService(self.session).emitChanges(rankChanges)

        logger.info(
            f"Order conversion complete: converted={results['converted']}, "
            f"skipped={results['skipped']}, errors={results['errors']}, total={results['totalAmount']}"
        )
        return results

    async def _convertOrder(self, orderId: int):
        order = self.session.query(PresaleOrder).filter_by(orderID=orderId).with_for_update().first()
        if order is None or order.status != "confirmed":
            return None

        if self.session.query(Stake.stakeID).filter_by(sourceOrderID=orderId).first():
            logger.warning(f"Order {orderId} already has a stake, marking converted")
            order.status = "converted"
            self.session.commit()
            return None

        if settle(order.totalAmount) <= 0:
            logger.warning(f"Order {orderId} has no principal, skipped")
            return None

        today = timeMachine.today
        stake = Stake(
            userID=order.userID,
            sourceOrderID=order.orderID,
            amount=settle(order.totalAmount),
            cycleDays=config.PRESALE_STAKE_CYCLE_DAYS,
            dailyRate=config.PRESALE_STAKE_DAILY_RATE,
            status="active",
            startDate=today,
            endDate=today + timedelta(days=config.PRESALE_STAKE_CYCLE_DAYS),
            lastYieldDate=today
        )
        self.session.add(stake)
        self.session.flush()

        order.status = "converted"
        order.convertedAt = timeMachine.now
        order.convertedStakeID = stake.stakeID

        user = self.ledger.lockUser(order.userID)
        self.ledger.credit(
            user, ZERO, Currency.USDT, "presale_conversion",
            reason=f"order={orderId}",
            notes=f"Order {orderId} converted to stake {stake.stakeID} ({stake.amount})",
            idempotencyKey=f"convert:{orderId}"
        )

        touched = await VolumeService(self.session).applyStakeVolume(stake, sign=1)
        ActiveDirectsService(self.session).recomputeForReferrerOf(order.userID)
        rankChanges = await RankService(self.session).recalculateChain(touched)

        self.session.commit()
        logger.info(f"Order {orderId} converted to stake {stake.stakeID}")
        return stake, rankChanges
