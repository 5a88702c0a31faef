# staking_system/config/ranks.py
"""
B-Rank, unilevel and staking cycle defaults.
"""
import re
from decimal import Decimal

NO_RANK = "B0"

_RANK_PATTERN = re.compile(r"^B(\d{1,2})$")


def rankWeight(rank: str) -> int:
    """Numeric part of a rank name: B0 -> 0, B7 -> 7. Unknown names weigh 0."""
    if not rank:
        return 0
    match = _RANK_PATTERN.match(rank)
    if not match:
        return 0
    return int(match.group(1))


def isValidRankName(rank: str) -> bool:
    return bool(rank) and _RANK_PATTERN.match(rank) is not None and rankWeight(rank) > 0


def compareRanks(rank1: str, rank2: str) -> int:
    """
    Compare two ranks.
    Returns: -1 if rank1 < rank2, 0 if equal, 1 if rank1 > rank2
    """
    value1 = rankWeight(rank1)
    value2 = rankWeight(rank2)

    if value1 < value2:
        return -1
    elif value1 > value2:
        return 1
    else:
        return 0


# Unilevel commission rates by level (fraction of yield)
UNILEVEL_RATES = {
    1: Decimal("0.03"),   # 3%
    2: Decimal("0.02"),   # 2%
    3: Decimal("0.01"),
    4: Decimal("0.01"),
    5: Decimal("0.01"),
    6: Decimal("0.01"),
    7: Decimal("0.01"),
    8: Decimal("0.01"),
    9: Decimal("0.02"),   # 2%
    10: Decimal("0.03"),  # 3%
}

MAX_UNILEVEL_LEVELS = 10
LEVELS_PER_ACTIVE_DIRECT = 2


def commissionRate(level: int) -> Decimal:
    """Unilevel rate for a level, zero outside 1..10."""
    return UNILEVEL_RATES.get(level, Decimal("0"))


def unlockedLevels(activeDirects: int) -> int:
    """Каждый активный директ открывает два уровня, максимум 10."""
    if activeDirects < 0:
        raise ValueError(f"Active directs cannot be negative: {activeDirects}")
    return min(activeDirects * LEVELS_PER_ACTIVE_DIRECT, MAX_UNILEVEL_LEVELS)


# Default B-Rank rules, seeded into rank_rules on first start
DEFAULT_RANK_RULES = [
    {"rank": "B1", "minTeamVolume": Decimal("3000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 0, "requiredRankDirectsRank": None,
     "commissionRate": Decimal("20"), "cappingMultiplier": Decimal("2")},
    {"rank": "B2", "minTeamVolume": Decimal("10000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B1",
     "commissionRate": Decimal("25"), "cappingMultiplier": Decimal("2")},
    {"rank": "B3", "minTeamVolume": Decimal("30000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B2",
     "commissionRate": Decimal("30"), "cappingMultiplier": Decimal("2")},
    {"rank": "B4", "minTeamVolume": Decimal("100000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B3",
     "commissionRate": Decimal("35"), "cappingMultiplier": Decimal("3")},
    {"rank": "B5", "minTeamVolume": Decimal("300000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B4",
     "commissionRate": Decimal("40"), "cappingMultiplier": Decimal("3")},
    {"rank": "B6", "minTeamVolume": Decimal("1000000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B5",
     "commissionRate": Decimal("45"), "cappingMultiplier": Decimal("3")},
    {"rank": "B7", "minTeamVolume": Decimal("3000000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B6",
     "commissionRate": Decimal("50"), "cappingMultiplier": Decimal("5")},
    {"rank": "B8", "minTeamVolume": Decimal("10000000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B7",
     "commissionRate": Decimal("55"), "cappingMultiplier": Decimal("5")},
    {"rank": "B9", "minTeamVolume": Decimal("30000000"), "minDirectReferrals": 5,
     "requiredRankDirectsCount": 2, "requiredRankDirectsRank": "B8",
     "commissionRate": Decimal("60"), "cappingMultiplier": Decimal("5")},
]

# Staking cycles: days -> daily rate in percent
DEFAULT_STAKING_CYCLES = {
    7: Decimal("0.45"),
    30: Decimal("0.60"),
    90: Decimal("0.75"),
    360: Decimal("1.00"),
}

# System settings defaults
DEFAULT_SETTINGS = {
    "staking_paused": False,
    "withdrawals_paused": False,
    "referral_bonuses_enabled": True,
    "referral_bonus_rates": {},
    "rank_directs_basis": "current",
    "bls_config": {
        "isEnabled": False,
        "conversionRate": "1.0",
        "minSwapAmount": "1.0",
    },
}

RANK_DIRECTS_BASES = ("current", "highest")
