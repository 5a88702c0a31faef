# staking_system/config/snapshot.py
"""
Immutable configuration snapshot taken at the start of an operation.

A distribution pass holds one EngineSnapshot for its whole duration,
admin edits made meanwhile take effect on the next pass.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Tuple

from staking_system.config.ranks import NO_RANK, rankWeight
from staking_system.utils.money import Currency


@dataclass(frozen=True)
class RankRuleSnapshot:
    rank: str
    minTeamVolume: Decimal
    minDirectReferrals: int
    requiredRankDirectsCount: int
    requiredRankDirectsRank: Optional[str]
    commissionRate: Decimal  # percent of yield
    cappingMultiplier: Decimal

    @property
    def weight(self) -> int:
        return rankWeight(self.rank)


@dataclass(frozen=True)
class EngineSnapshot:
    stakingPaused: bool = False
    withdrawalsPaused: bool = False
    referralBonusesEnabled: bool = True
    referralBonusRates: Dict[int, Decimal] = field(default_factory=dict)  # level -> percent
    rankDirectsBasis: str = "current"

    blsEnabled: bool = False
    conversionRate: Decimal = Decimal("1.0")
    minSwapAmount: Decimal = Decimal("1.0")

    rankRules: Tuple[RankRuleSnapshot, ...] = ()  # ascending by weight
    stakingCycles: Dict[int, Decimal] = field(default_factory=dict)  # days -> percent

    @property
    def creditCurrency(self) -> Currency:
        """Currency of yield and commission credits."""
        return Currency.BLS if self.blsEnabled else Currency.USDT

    def ruleFor(self, rank: str) -> Optional[RankRuleSnapshot]:
        if not rank or rank == NO_RANK:
            return None
        for rule in self.rankRules:
            if rule.rank == rank:
                return rule
        return None

    def rulesDescending(self) -> Tuple[RankRuleSnapshot, ...]:
        return tuple(sorted(self.rankRules, key=lambda r: r.weight, reverse=True))
