# staking_system/services/report_service.py
"""
Read models for reporting and admin: cap info, commission history and distribution runs.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models import User, Commission, DistributionRun
from staking_system.errors import NotFoundError, ValidationError
from staking_system.services.rank_service import RankService
from staking_system.utils.money import ZERO, Currency, settle
from staking_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

GROUP_BY_COLUMNS = {
    "day": Commission.reportingDate,
    "week": Commission.week,
    "month": Commission.month,
    "year": Commission.year,
}

SUMMARY_PERIODS = ("today", "week", "month", "year", "all")
CURRENCIES = tuple(c.value for c in Currency)


class ReportService:
    """Query-only service, never writes."""

    def __init__(self, session: Session):
        self.session = session

    def getRankCapInfo(self, userId: int) -> Dict:
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")
        return RankService(self.session).capInfo(user)

    def getCommissionReport(
            self,
            userId: Optional[int] = None,
            startDate: Optional[date] = None,
            endDate: Optional[date] = None,
            groupBy: Optional[str] = None,
            commissionType: Optional[str] = None,
            currency: Optional[str] = None
    ) -> Dict:
        """
        Commission history filtered by beneficiary, date range (inclusive), type and currency.
        With groupBy (day/week/month/year) returns per-period totals, otherwise the rows.
        Amounts are never added across currencies.
        """
        if groupBy is not None and groupBy not in GROUP_BY_COLUMNS:
            raise ValidationError(f"groupBy must be one of {tuple(GROUP_BY_COLUMNS)}")
        if startDate and endDate and startDate > endDate:
            raise ValidationError("startDate is after endDate")
        if currency is not None and currency not in CURRENCIES:
            raise ValidationError(f"currency must be one of {CURRENCIES}")

        filters = []
        if userId is not None:
            filters.append(Commission.userID == userId)
        if startDate is not None:
            filters.append(Commission.reportingDate >= startDate)
        if endDate is not None:
            filters.append(Commission.reportingDate <= endDate)
        if commissionType is not None:
            filters.append(Commission.commissionType == commissionType)
        if currency is not None:
            filters.append(Commission.currency == currency)

        totals = {}
        count = 0
        for rowCurrency, amount, n in self.session.query(
                Commission.currency,
                func.coalesce(func.sum(Commission.commissionAmount), 0),
                func.count(Commission.commissionID)
        ).filter(*filters).group_by(Commission.currency).order_by(Commission.currency).all():
            totals[rowCurrency] = settle(Decimal(str(amount)))
            count += n

        report = {
            "userId": userId,
            "startDate": startDate,
            "endDate": endDate,
            "groupBy": groupBy,
            "currency": currency,
            "totalsByCurrency": totals,
            "count": count
        }

        if groupBy is None:
            rows = self.session.query(Commission).filter(*filters).order_by(
                Commission.reportingDate, Commission.commissionID
            ).all()
            report["commissions"] = [self._row(c) for c in rows]
            return report

        column = GROUP_BY_COLUMNS[groupBy]
        grouped = self.session.query(
            column,
            Commission.currency,
            func.coalesce(func.sum(Commission.commissionAmount), 0),
            func.count(Commission.commissionID)
        ).filter(*filters).group_by(column, Commission.currency).order_by(column, Commission.currency).all()

        report["periods"] = [
            {"period": period, "currency": rowCurrency, "totalAmount": settle(Decimal(str(amount))), "count": n}
            for period, rowCurrency, amount, n in grouped
        ]
        return report

    def getCommissionSummary(self, userId: int, period: str = "all") -> Dict:
        """Totals for today/week/month/year/all per currency, each split by level and by type."""
        if period not in SUMMARY_PERIODS:
            raise ValidationError(f"period must be one of {SUMMARY_PERIODS}")

        today = timeMachine.today
        startDate = None
        if period == "today":
            startDate = today
        elif period == "week":
            startDate = today - timedelta(days=today.weekday())
        elif period == "month":
            startDate = today.replace(day=1)
        elif period == "year":
            startDate = today.replace(month=1, day=1)

        filters = [Commission.userID == userId]
        if startDate is not None:
            filters.append(Commission.reportingDate >= startDate)
            filters.append(Commission.reportingDate <= today)

        byCurrency = {}
        for rowCurrency, level, commissionType, amount, n in self.session.query(
                Commission.currency,
                Commission.level,
                Commission.commissionType,
                func.coalesce(func.sum(Commission.commissionAmount), 0),
                func.count(Commission.commissionID)
        ).filter(*filters).group_by(
            Commission.currency, Commission.level, Commission.commissionType
        ).order_by(Commission.currency, Commission.level).all():
            amount = settle(Decimal(str(amount)))
            bucket = byCurrency.setdefault(
                rowCurrency, {"totalAmount": ZERO, "count": 0, "byLevel": {}, "byType": {}}
            )
            bucket["totalAmount"] = settle(bucket["totalAmount"] + amount)
            bucket["count"] += n
            levelTotals = bucket["byLevel"].setdefault(level, {"totalAmount": ZERO, "count": 0})
            levelTotals["totalAmount"] = settle(levelTotals["totalAmount"] + amount)
            levelTotals["count"] += n
            bucket["byType"][commissionType] = settle(bucket["byType"].get(commissionType, ZERO) + amount)

        return {
            "userId": userId,
            "period": period,
            "startDate": startDate,
            "count": sum(v["count"] for v in byCurrency.values()),
            "byCurrency": byCurrency
        }

    def getDistributionRuns(self, limit: int = 20) -> List[Dict]:
        runs = self.session.query(DistributionRun).order_by(DistributionRun.runID.desc()).limit(limit).all()
        return [
            {
                "runId": r.runID,
                "jobName": r.jobName,
                "runDate": r.runDate,
                "status": r.status,
                "stakesProcessed": r.stakesProcessed,
                "stakesCompleted": r.stakesCompleted,
                "commissionsCount": r.commissionsCount,
                "capsHit": r.capsHit,
                "graphErrors": r.graphErrors,
                "consistencyErrors": r.consistencyErrors,
                "totalYield": settle(r.totalYield or ZERO),
                "totalCommissions": settle(r.totalCommissions or ZERO),
                "totalRankBonuses": settle(r.totalRankBonuses or ZERO),
                "executionTimeMs": r.executionTimeMs,
                "details": r.details
            }
            for r in runs
        ]

    def _row(self, c: Commission) -> Dict:
        return {
            "commissionId": c.commissionID,
            "stakeId": c.stakeID,
            "userId": c.userID,
            "sourceUserId": c.sourceUserID,
            "type": c.commissionType,
            "level": c.level,
            "rate": c.rate,
            "yieldAmount": settle(c.yieldAmount),
            "computedAmount": settle(c.computedAmount),
            "amount": settle(c.commissionAmount),
            "currency": c.currency,
            "status": c.status,
            "reportingDate": c.reportingDate
        }
