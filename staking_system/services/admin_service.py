# staking_system/services/admin_service.py
"""
Admin mutation surface: rank rules, staking cycles, toggles, BLS config and bulk triggers.
Every payload is validated before anything is written.
"""
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
import logging

from models import RankRule, StakingCycle
from staking_system.config.ranks import DEFAULT_SETTINGS
from staking_system.errors import NotFoundError, ValidationError
from staking_system.services.rank_service import RankService
from staking_system.services.settings_service import SettingsService
from staking_system.services.vesting_service import VestingService
from staking_system.utils.validators import (
    parseAmount, validateRankDirectsBasis, validateRankOrdering, validateRankRule, validateRate,
    validateReferralBonusRates, validateStakingCycle
)

logger = logging.getLogger(__name__)


class AdminService:
    """Admin operations. adminId is only used for the log trail."""

    def __init__(self, session: Session, adminId: Optional[int] = None):
        self.session = session
        self.adminId = adminId
        self.settings = SettingsService(session)

    # Rank rules

    async def createRankRule(self, data: Dict[str, Any]) -> RankRule:
        values = validateRankRule(data)
        if self.session.query(RankRule).filter_by(rank=values["rank"]).first():
            raise ValidationError(f"Rank rule {values['rank']} already exists")
        validateRankOrdering(values, self.session.query(RankRule).all())

        rule = RankRule(**values)
        self.session.add(rule)
        self.session.commit()
        logger.info(f"Admin {self.adminId} created rank rule {rule.rank}")

        await RankService(self.session).recalculateAllRanks()
        return rule

    async def updateRankRule(self, rank: str, changes: Dict[str, Any]) -> RankRule:
        """Update a rule and re-evaluate every participant against the new rules."""
        rule = self.session.query(RankRule).filter_by(rank=rank).first()
        if not rule:
            raise NotFoundError(f"Rank rule {rank} not found")

        merged = {
            "rank": rule.rank,
            "minTeamVolume": rule.minTeamVolume,
            "minDirectReferrals": rule.minDirectReferrals,
            "requiredRankDirectsCount": rule.requiredRankDirectsCount,
            "requiredRankDirectsRank": rule.requiredRankDirectsRank,
            "commissionRate": rule.commissionRate,
            "cappingMultiplier": rule.cappingMultiplier,
        }
        merged.update(changes)
        if merged["rank"] != rank:
            raise ValidationError("Rank name of an existing rule cannot change")

        values = validateRankRule(merged)
        validateRankOrdering(values, self.session.query(RankRule).filter(RankRule.rank != rank).all())
        for key, value in values.items():
            setattr(rule, key, value)
        self.session.commit()
        logger.info(f"Admin {self.adminId} updated rank rule {rank}: {changes}")

        await RankService(self.session).recalculateAllRanks()
        return rule

    async def deleteRankRule(self, rank: str) -> bool:
        rule = self.session.query(RankRule).filter_by(rank=rank).first()
        if not rule:
            raise NotFoundError(f"Rank rule {rank} not found")
        dependent = self.session.query(RankRule).filter_by(requiredRankDirectsRank=rank).first()
        if dependent:
            raise ValidationError(f"Rank rule {dependent.rank} requires {rank} directs")

        self.session.delete(rule)
        self.session.commit()
        logger.info(f"Admin {self.adminId} deleted rank rule {rank}")

        await RankService(self.session).recalculateAllRanks()
        return True

    # Staking cycles

    def createStakingCycle(self, days: int, dailyRate: Decimal) -> StakingCycle:
        days, rate = validateStakingCycle(days, dailyRate)
        if self.session.query(StakingCycle).filter_by(days=days).first():
            raise ValidationError(f"Staking cycle of {days} days already exists")

        cycle = StakingCycle(days=days, dailyRate=rate)
        self.session.add(cycle)
        self.session.commit()
        logger.info(f"Admin {self.adminId} created staking cycle {days}d @ {rate}%")
        return cycle

    def updateStakingCycle(self, days: int, dailyRate: Decimal) -> StakingCycle:
        """New rate applies to new stakes only, existing stakes keep theirs."""
        days, rate = validateStakingCycle(days, dailyRate)
        cycle = self.session.query(StakingCycle).filter_by(days=days).first()
        if not cycle:
            raise NotFoundError(f"Staking cycle of {days} days not found")

        cycle.dailyRate = rate
        self.session.commit()
        logger.info(f"Admin {self.adminId} updated staking cycle {days}d @ {rate}%")
        return cycle

    def deleteStakingCycle(self, days: int) -> bool:
        cycle = self.session.query(StakingCycle).filter_by(days=days).first()
        if not cycle:
            raise NotFoundError(f"Staking cycle of {days} days not found")

        self.session.delete(cycle)
        self.session.commit()
        logger.info(f"Admin {self.adminId} deleted staking cycle {days}d")
        return True

    # Toggles

    def setStakingPaused(self, paused: bool):
        self._setFlag("staking_paused", paused)

    def setWithdrawalsPaused(self, paused: bool):
        self._setFlag("withdrawals_paused", paused)

    def setReferralBonusesEnabled(self, enabled: bool):
        self._setFlag("referral_bonuses_enabled", enabled)

    def _setFlag(self, key: str, value: bool):
        if not isinstance(value, bool):
            raise ValidationError(f"{key} must be a boolean")
        self.settings.setSetting(key, value)
        self.session.commit()
        logger.info(f"Admin {self.adminId} set {key}={value}")

    def setReferralBonusRates(self, rates: Dict[Any, Any]):
        parsed = validateReferralBonusRates(rates)
        self.settings.setSetting("referral_bonus_rates", {str(k): str(v) for k, v in parsed.items()})
        self.session.commit()
        logger.info(f"Admin {self.adminId} set referral bonus rates {parsed}")

    def setRankDirectsBasis(self, basis: str):
        self.settings.setSetting("rank_directs_basis", validateRankDirectsBasis(basis))
        self.session.commit()
        logger.info(f"Admin {self.adminId} set rank directs basis {basis}")

    # BLS

    def configureBLS(
            self,
            isEnabled: Optional[bool] = None,
            conversionRate: Optional[Decimal] = None,
            minSwapAmount: Optional[Decimal] = None
    ) -> Dict:
        current = dict(self.settings.getSetting("bls_config") or DEFAULT_SETTINGS["bls_config"])

        if isEnabled is not None:
            if not isinstance(isEnabled, bool):
                raise ValidationError("isEnabled must be a boolean")
            current["isEnabled"] = isEnabled
        if conversionRate is not None:
            current["conversionRate"] = str(validateRate(conversionRate, "conversionRate"))
        if minSwapAmount is not None:
            minSwap = parseAmount(minSwapAmount, "minSwapAmount")
            if minSwap < 0:
                raise ValidationError("minSwapAmount cannot be negative")
            current["minSwapAmount"] = str(minSwap)

        self.settings.setSetting("bls_config", current)
        self.session.commit()
        logger.info(f"Admin {self.adminId} configured BLS: {current}")
        return current

    # Bulk triggers

    async def triggerConvertAllOrders(self) -> Dict:
        logger.info(f"Admin {self.adminId} triggered order conversion")
        return await VestingService(self.session).convertAllOrders()

    async def triggerRankRecalculation(self) -> Dict:
        logger.info(f"Admin {self.adminId} triggered rank recalculation")
        return await RankService(self.session).recalculateAllRanks()
