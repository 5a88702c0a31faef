# staking_system/services/settings_service.py
"""
System settings, rank rules and staking cycles: seeding and snapshotting.
"""
from decimal import Decimal
from typing import Any
from sqlalchemy.orm import Session
import logging

from models import RankRule, StakingCycle, SystemSetting
from staking_system.config.ranks import DEFAULT_RANK_RULES, DEFAULT_SETTINGS, DEFAULT_STAKING_CYCLES, rankWeight
from staking_system.config.snapshot import EngineSnapshot, RankRuleSnapshot
from staking_system.utils.validators import validateRankDirectsBasis, validateReferralBonusRates

logger = logging.getLogger(__name__)


class SettingsService:
    """Reads process-wide configuration into an EngineSnapshot."""

    def __init__(self, session: Session):
        self.session = session

    def getSetting(self, key: str, default: Any = None) -> Any:
        setting = self.session.query(SystemSetting).filter_by(key=key).first()
        if setting is None:
            return DEFAULT_SETTINGS.get(key, default)
        return setting.value

    def setSetting(self, key: str, value: Any):
        """Upsert a setting. Caller commits."""
        setting = self.session.query(SystemSetting).filter_by(key=key).first()
        if setting is None:
            setting = SystemSetting(key=key, value=value)
            self.session.add(setting)
        else:
            setting.value = value
        logger.info(f"Setting {key} = {value}")

    def initializeDefaults(self) -> dict:
        """Seed rank rules, cycles and settings that are missing. Existing rows are kept."""
        created = {"rankRules": 0, "stakingCycles": 0, "settings": 0}

        existingRanks = {r.rank for r in self.session.query(RankRule).all()}
        for rule in DEFAULT_RANK_RULES:
            if rule["rank"] in existingRanks:
                continue
            self.session.add(RankRule(rankWeight=rankWeight(rule["rank"]), **rule))
            created["rankRules"] += 1

        existingCycles = {c.days for c in self.session.query(StakingCycle).all()}
        for days, rate in DEFAULT_STAKING_CYCLES.items():
            if days in existingCycles:
                continue
            self.session.add(StakingCycle(days=days, dailyRate=rate))
            created["stakingCycles"] += 1

        existingKeys = {s.key for s in self.session.query(SystemSetting).all()}
        for key, value in DEFAULT_SETTINGS.items():
            if key in existingKeys:
                continue
            self.session.add(SystemSetting(key=key, value=value))
            created["settings"] += 1

        self.session.commit()
        logger.info(f"Defaults initialized: {created}")
        return created

    def loadSnapshot(self) -> EngineSnapshot:
        """Read all configuration once. The result never changes under the caller."""
        bls = self.getSetting("bls_config") or DEFAULT_SETTINGS["bls_config"]

        rules = self.session.query(RankRule).order_by(RankRule.rankWeight.asc()).all()
        ruleSnapshots = tuple(
            RankRuleSnapshot(
                rank=r.rank,
                minTeamVolume=Decimal(str(r.minTeamVolume)),
                minDirectReferrals=r.minDirectReferrals,
                requiredRankDirectsCount=r.requiredRankDirectsCount or 0,
                requiredRankDirectsRank=r.requiredRankDirectsRank,
                commissionRate=Decimal(str(r.commissionRate)),
                cappingMultiplier=Decimal(str(r.cappingMultiplier)),
            )
            for r in rules
        )

        cycles = {
            c.days: Decimal(str(c.dailyRate))
            for c in self.session.query(StakingCycle).all()
        }

        basis = self.getSetting("rank_directs_basis") or "current"

        return EngineSnapshot(
            stakingPaused=bool(self.getSetting("staking_paused")),
            withdrawalsPaused=bool(self.getSetting("withdrawals_paused")),
            referralBonusesEnabled=bool(self.getSetting("referral_bonuses_enabled")),
            referralBonusRates=validateReferralBonusRates(self.getSetting("referral_bonus_rates") or {}),
            rankDirectsBasis=validateRankDirectsBasis(basis),
            blsEnabled=bool(bls.get("isEnabled", False)),
            conversionRate=Decimal(str(bls.get("conversionRate", "1.0"))),
            minSwapAmount=Decimal(str(bls.get("minSwapAmount", "1.0"))),
            rankRules=ruleSnapshots,
            stakingCycles=cycles,
        )
