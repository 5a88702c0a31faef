# staking_system/services/commission_service.py
"""
Commission calculation service - unilevel cascade, referral bonus and capped rank bonus
for one yield event.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Dict, Optional, Tuple
from sqlalchemy.orm import Session
import logging

import config
from models import User, Stake, Commission
from staking_system.config.ranks import NO_RANK, commissionRate, unlockedLevels
from staking_system.config.snapshot import EngineSnapshot
from staking_system.services.active_directs_service import ActiveDirectsService
from staking_system.services.ledger_service import LedgerService
from staking_system.services.rank_service import RankService
from staking_system.services.referral_service import ReferralGraph
from staking_system.utils.money import Currency, ZERO, round2, settle

logger = logging.getLogger(__name__)


@dataclass
class RankBonusOutcome:
    """Result of one rank-bonus attempt. Truncation is an outcome, not an error."""
    beneficiaryId: int
    rank: str
    rate: Decimal  # percent
    computedAmount: Decimal
    paidAmount: Decimal
    status: str  # paid, partial, capped
    remainingCapBefore: Decimal
    currentCap: Decimal

    @property
    def isCapped(self) -> bool:
        return self.paidAmount < self.computedAmount


def reportingKeys(day: date) -> Dict:
    isoYear, isoWeek, _ = day.isocalendar()
    return {
        "reportingDate": day,
        "week": f"{isoYear}-{isoWeek:02d}",
        "month": day.strftime('%Y-%m'),
        "year": day.year
    }


class CommissionService:
    """Service for calculating and paying commissions on stake yield."""

    def __init__(self, session: Session, snapshot: EngineSnapshot):
        self.session = session
        self.snapshot = snapshot
        self.graph = ReferralGraph(session)
        self.ledger = LedgerService(session)
        self.activeDirects = ActiveDirectsService(session)
        self.rankService = RankService(session, snapshot)

    async def processYield(self, stake: Stake, yieldAmount: Decimal, reportingDate: date) -> Dict:
        """
        Pay everything a yield event triggers. Runs inside the caller's transaction,
        nothing is committed here.
        """
        results = {
            "stakeId": stake.stakeID,
            "commissions": [],
            "totalCommissions": ZERO,
            "rankBonus": None,
            "touchedUserIds": set()
        }

        referralLevels = max(self.snapshot.referralBonusRates.keys(), default=0)
        depth = max(config.UNILEVEL_MAX_DEPTH, referralLevels, 1)

        # Materialize the chain first: a broken graph fails before any credit
        chain = list(self.graph.ancestorsOf(stake.userID, maxDepth=depth))

        if self.snapshot.referralBonusesEnabled:
            # 1. Unilevel cascade
            for commission in await self._payUnilevel(stake, yieldAmount, reportingDate, chain):
                results["commissions"].append(commission)
                results["totalCommissions"] += commission["amount"]
                results["touchedUserIds"].add(commission["userId"])

            # 2. Optional direct/indirect referral bonus
            for commission in await self._payReferralBonus(stake, yieldAmount, reportingDate, chain):
                results["commissions"].append(commission)
                results["totalCommissions"] += commission["amount"]
                results["touchedUserIds"].add(commission["userId"])
        else:
            logger.debug(f"Referral bonuses disabled, no unilevel for stake {stake.stakeID}")

        # 3. Rank bonus for the direct referrer
        if chain:
            directReferrer = chain[0][1]
            outcome = await self.payRankBonus(directReferrer.userID, stake, yieldAmount, reportingDate)
            if outcome is not None:
                results["rankBonus"] = outcome
                results["touchedUserIds"].add(outcome.beneficiaryId)

        return results

    async def _payUnilevel(
            self,
            stake: Stake,
            yieldAmount: Decimal,
            reportingDate: date,
            chain: List[Tuple[int, User]]
    ) -> List[Dict]:
        paid = []
        for level, ancestor in chain:
            if level > config.UNILEVEL_MAX_DEPTH:
                break
            if ancestor.isRemoved:
                continue

            # Eligibility by the ancestor's own live active directs
            activeDirects = self.activeDirects.countActiveDirects(ancestor.userID)
            if level > unlockedLevels(activeDirects):
                logger.debug(
                    f"Level {level} locked for user {ancestor.userID} "
                    f"({activeDirects} active directs)"
                )
                continue

            rate = commissionRate(level)
            amount = round2(yieldAmount * rate)
            if amount <= 0:
                continue

            if self._alreadyPaid(stake.stakeID, reportingDate, "unilevel", level):
                continue

            commission = self._payCommission(
                beneficiaryId=ancestor.userID,
                stake=stake,
                commissionType="unilevel",
                level=level,
                rate=rate,
                yieldAmount=yieldAmount,
                computedAmount=amount,
                paidAmount=amount,
                reportingDate=reportingDate,
                txType="commission_unilevel"
            )
            paid.append(commission)

        return paid

    async def _payReferralBonus(
            self,
            stake: Stake,
            yieldAmount: Decimal,
            reportingDate: date,
            chain: List[Tuple[int, User]]
    ) -> List[Dict]:
        rates = self.snapshot.referralBonusRates
        if not rates:
            return []

        paid = []
        for level, ancestor in chain:
            pct = rates.get(level)
            if pct is None or ancestor.isRemoved:
                continue

            rate = pct / Decimal("100")
            amount = round2(yieldAmount * rate)
            if amount <= 0:
                continue

            if self._alreadyPaid(stake.stakeID, reportingDate, "referral", level):
                continue

            paid.append(self._payCommission(
                beneficiaryId=ancestor.userID,
                stake=stake,
                commissionType="referral",
                level=level,
                rate=rate,
                yieldAmount=yieldAmount,
                computedAmount=amount,
                paidAmount=amount,
                reportingDate=reportingDate,
                txType="commission_referral"
            ))

        return paid

    async def payRankBonus(
            self,
            beneficiaryId: int,
            stake: Stake,
            yieldAmount: Decimal,
            reportingDate: date
    ) -> Optional[RankBonusOutcome]:
        """
        Rank bonus for a direct referrer, truncated to the remaining cap.
        The cap is read from the locked beneficiary row, so compute and credit see the same state.
        """
        if self._alreadyPaid(stake.stakeID, reportingDate, "rank_bonus", 0):
            return None

        beneficiary = self.ledger.lockUser(beneficiaryId)
        if beneficiary.isRemoved:
            return None

        rule = self.snapshot.ruleFor(beneficiary.currentRank or NO_RANK)
        if rule is None:
            return None

        computed = round2(yieldAmount * rule.commissionRate / Decimal("100"))
        if computed <= 0:
            return None

        cap = self.rankService.capInfo(beneficiary)
        remaining = cap["remainingCap"]
        paidAmount = settle(min(computed, remaining))

        if paidAmount == computed:
            status = "paid"
        elif paidAmount > 0:
            status = "partial"
        else:
            status = "capped"

        self._payCommission(
            beneficiaryId=beneficiary.userID,
            stake=stake,
            commissionType="rank_bonus",
            level=0,
            rate=rule.commissionRate / Decimal("100"),
            yieldAmount=yieldAmount,
            computedAmount=computed,
            paidAmount=paidAmount,
            reportingDate=reportingDate,
            txType="commission_rank",
            fromRank=rule.rank,
            status=status,
            beneficiary=beneficiary
        )

        if paidAmount > 0:
            beneficiary.totalRankBonusReceived = settle(
                Decimal(str(beneficiary.totalRankBonusReceived or ZERO)) + paidAmount
            )

        if status != "paid":
            logger.warning(
                f"Rank bonus for user {beneficiary.userID} capped: computed {computed}, "
                f"paid {paidAmount}, cap {cap['currentCap']}"
            )

        return RankBonusOutcome(
            beneficiaryId=beneficiary.userID,
            rank=rule.rank,
            rate=rule.commissionRate,
            computedAmount=computed,
            paidAmount=paidAmount,
            status=status,
            remainingCapBefore=remaining,
            currentCap=cap["currentCap"]
        )

    def _alreadyPaid(self, stakeId: int, reportingDate: date, commissionType: str, level: int) -> bool:
        return self.session.query(Commission.commissionID).filter_by(
            stakeID=stakeId,
            reportingDate=reportingDate,
            commissionType=commissionType,
            level=level
        ).first() is not None

    def _payCommission(
            self,
            beneficiaryId: int,
            stake: Stake,
            commissionType: str,
            level: int,
            rate: Decimal,
            yieldAmount: Decimal,
            computedAmount: Decimal,
            paidAmount: Decimal,
            reportingDate: date,
            txType: str,
            fromRank: Optional[str] = None,
            status: str = "paid",
            beneficiary: Optional[User] = None
    ) -> Dict:
        """Credit the beneficiary (if anything is due) and write the audit row."""
        currency: Currency = self.snapshot.creditCurrency

        if paidAmount > 0:
            if beneficiary is None:
                beneficiary = self.ledger.lockUser(beneficiaryId)
            self.ledger.credit(
                beneficiary,
                paidAmount,
                currency,
                txType,
                reason=f"stake={stake.stakeID}",
                notes=f"{commissionType} L{level} from user {stake.userID}",
                idempotencyKey=f"{commissionType}:{stake.stakeID}:{reportingDate.isoformat()}:{level}"
            )

        commission = Commission(
            stakeID=stake.stakeID,
            userID=beneficiaryId,
            sourceUserID=stake.userID,
            commissionType=commissionType,
            level=level,
            fromRank=fromRank,
            rate=rate,
            yieldAmount=yieldAmount,
            computedAmount=computedAmount,
            commissionAmount=paidAmount,
            currency=currency.value,
            status=status,
            **reportingKeys(reportingDate)
        )
        self.session.add(commission)

        logger.info(
            f"{commissionType} L{level}: user {beneficiaryId} +{paidAmount} {currency.value} "
            f"from stake {stake.stakeID}"
        )

        return {
            "userId": beneficiaryId,
            "type": commissionType,
            "level": level,
            "rate": rate,
            "amount": paidAmount,
            "currency": currency.value
        }
