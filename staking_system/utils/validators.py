# staking_system/utils/validators.py
"""
Input validation at the service boundary. Everything here raises ValidationError
before any row is touched.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from staking_system.config.ranks import RANK_DIRECTS_BASES, isValidRankName, rankWeight
from staking_system.errors import ValidationError
from staking_system.utils.money import round2


def parseAmount(value: Any, fieldName: str = "amount") -> Decimal:
    """Parse a money amount into a 2-dp Decimal; floats and garbage are refused."""
    if isinstance(value, bool) or isinstance(value, float) or value is None:
        raise ValidationError(f"{fieldName} must be a Decimal, int or numeric string, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{fieldName} is not a number: {value!r}")
    if not parsed.is_finite():
        raise ValidationError(f"{fieldName} must be finite")
    return parsed


def requirePositive(value: Any, fieldName: str = "amount") -> Decimal:
    parsed = round2(parseAmount(value, fieldName))
    if parsed <= 0:
        raise ValidationError(f"{fieldName} must be positive, got {parsed}")
    return parsed


def requireNonNegative(value: Any, fieldName: str) -> Decimal:
    parsed = parseAmount(value, fieldName)
    if parsed < 0:
        raise ValidationError(f"{fieldName} cannot be negative, got {parsed}")
    return parsed


def validateRate(value: Any, fieldName: str = "rate") -> Decimal:
    """Rates must be strictly positive."""
    parsed = parseAmount(value, fieldName)
    if parsed <= 0:
        raise ValidationError(f"{fieldName} must be greater than 0, got {parsed}")
    return parsed


def validateRankRule(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize and check a rank rule payload."""
    rank = data.get("rank")
    if not isValidRankName(rank):
        raise ValidationError(f"Invalid rank name {rank!r}, expected B1..B99")

    minDirects = data.get("minDirectReferrals", 0)
    requiredCount = data.get("requiredRankDirectsCount", 0) or 0
    if not isinstance(minDirects, int) or minDirects < 0:
        raise ValidationError("minDirectReferrals must be a non-negative integer")
    if not isinstance(requiredCount, int) or requiredCount < 0:
        raise ValidationError("requiredRankDirectsCount must be a non-negative integer")

    requiredRank: Optional[str] = data.get("requiredRankDirectsRank")
    if requiredCount > 0:
        if not isValidRankName(requiredRank):
            raise ValidationError(f"Invalid required rank {requiredRank!r}")
        if rankWeight(requiredRank) >= rankWeight(rank):
            raise ValidationError(f"Required directs rank {requiredRank} must be below {rank}")
    else:
        requiredRank = None

    commissionRate = requireNonNegative(data.get("commissionRate"), "commissionRate")
    if commissionRate > 100:
        raise ValidationError("commissionRate is a percent and cannot exceed 100")

    return {
        "rank": rank,
        "rankWeight": rankWeight(rank),
        "minTeamVolume": requireNonNegative(data.get("minTeamVolume", 0), "minTeamVolume"),
        "minDirectReferrals": minDirects,
        "requiredRankDirectsCount": requiredCount,
        "requiredRankDirectsRank": requiredRank,
        "commissionRate": commissionRate,
        "cappingMultiplier": validateRate(data.get("cappingMultiplier"), "cappingMultiplier"),
    }


def _requirements(rule: Any) -> Dict[str, Any]:
    get = rule.get if isinstance(rule, dict) else lambda key: getattr(rule, key)
    requiredRank = get("requiredRankDirectsRank") if get("requiredRankDirectsCount") else None
    return {
        "minTeamVolume": Decimal(str(get("minTeamVolume") or 0)),
        "minDirectReferrals": get("minDirectReferrals") or 0,
        "requiredRankTier": rankWeight(requiredRank) if requiredRank else 0,
    }


def validateRankOrdering(values: Dict[str, Any], existingRules: Iterable[Any]):
    """
    Requirements never shrink going up the ranks: each one must be at least the
    next lower rule's and at most the next higher rule's.
    existingRules must not include the rule being written.
    """
    weight = values["rankWeight"]
    others = sorted(existingRules, key=lambda r: r.rankWeight)
    lower = [r for r in others if r.rankWeight < weight]
    higher = [r for r in others if r.rankWeight > weight]
    candidate = _requirements(values)

    if lower:
        below = _requirements(lower[-1])
        for field, value in candidate.items():
            if value < below[field]:
                raise ValidationError(
                    f"{values['rank']} {field} {value} is below {lower[-1].rank} ({below[field]})"
                )
    if higher:
        above = _requirements(higher[0])
        for field, value in candidate.items():
            if value > above[field]:
                raise ValidationError(
                    f"{values['rank']} {field} {value} is above {higher[0].rank} ({above[field]})"
                )


def validateStakingCycle(days: Any, dailyRate: Any):
    if not isinstance(days, int) or isinstance(days, bool) or days <= 0:
        raise ValidationError(f"Cycle days must be a positive integer, got {days!r}")
    return days, validateRate(dailyRate, "dailyRate")


def validateVestingSchedule(immediatePct: Any, monthlyPct: Any, months: Any):
    immediate = requireNonNegative(immediatePct, "immediatePct")
    monthly = requireNonNegative(monthlyPct, "monthlyPct")
    if immediate + monthly > 100:
        raise ValidationError(f"immediatePct + monthlyPct exceeds 100 ({immediate + monthly})")
    if not isinstance(months, int) or months < 0:
        raise ValidationError("months must be a non-negative integer")
    if monthly > 0 and months == 0:
        raise ValidationError("monthlyPct needs at least one month")
    return immediate, monthly, months


def validateRankDirectsBasis(basis: str) -> str:
    if basis not in RANK_DIRECTS_BASES:
        raise ValidationError(f"rankDirectsBasis must be one of {RANK_DIRECTS_BASES}")
    return basis


def validateReferralBonusRates(rates: Dict[Any, Any]) -> Dict[int, Decimal]:
    parsed = {}
    for level, pct in (rates or {}).items():
        try:
            levelInt = int(level)
        except (TypeError, ValueError):
            raise ValidationError(f"Referral bonus level must be an integer, got {level!r}")
        if not 1 <= levelInt <= 10:
            raise ValidationError(f"Referral bonus level {levelInt} outside 1..10")
        value = requireNonNegative(pct, f"referral bonus L{levelInt}")
        if value > 100:
            raise ValidationError(f"Referral bonus L{levelInt} cannot exceed 100%")
        parsed[levelInt] = value
    return parsed
