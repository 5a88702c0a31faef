"""
Tests for input validation at the service boundary.
"""

from decimal import Decimal

import pytest

from staking_system.errors import ValidationError
from staking_system.utils.validators import (
    requirePositive, validateRankDirectsBasis, validateRankRule,
    validateReferralBonusRates, validateStakingCycle, validateVestingSchedule
)


def rule(**overrides):
    data = {
        "rank": "B2",
        "minTeamVolume": Decimal("10000"),
        "minDirectReferrals": 5,
        "requiredRankDirectsCount": 2,
        "requiredRankDirectsRank": "B1",
        "commissionRate": Decimal("25"),
        "cappingMultiplier": Decimal("2"),
    }
    data.update(overrides)
    return data


class TestRankRuleValidation:
    """Test rank rule payloads."""

    def test_valid_rule(self):
        """A well-formed rule is normalized with its weight."""
        values = validateRankRule(rule())
        assert values["rankWeight"] == 2
        assert values["cappingMultiplier"] == Decimal("2")

    @pytest.mark.parametrize("multiplier", [Decimal("0"), Decimal("-1")])
    def test_non_positive_multiplier(self, multiplier):
        """Capping multiplier must be > 0."""
        with pytest.raises(ValidationError):
            validateRankRule(rule(cappingMultiplier=multiplier))

    def test_bad_rank_name(self):
        """Only B1..B99."""
        with pytest.raises(ValidationError):
            validateRankRule(rule(rank="Gold"))

    def test_required_rank_must_be_lower(self):
        """B2 cannot require B2 directs."""
        with pytest.raises(ValidationError):
            validateRankRule(rule(requiredRankDirectsRank="B2"))

    def test_required_rank_dropped_without_count(self):
        """No count means no required rank."""
        values = validateRankRule(rule(requiredRankDirectsCount=0))
        assert values["requiredRankDirectsRank"] is None

    def test_float_rejected(self):
        """Floats are refused for money fields."""
        with pytest.raises(ValidationError):
            validateRankRule(rule(minTeamVolume=1000.5))


class TestOtherValidators:
    """Test cycles, vesting, bonus rates and amounts."""

    def test_staking_cycle(self):
        """Days positive, rate positive."""
        assert validateStakingCycle(30, "0.60") == (30, Decimal("0.60"))
        with pytest.raises(ValidationError):
            validateStakingCycle(0, "0.60")
        with pytest.raises(ValidationError):
            validateStakingCycle(30, "0")

    def test_vesting_over_hundred(self):
        """immediate + monthly cannot exceed 100%."""
        with pytest.raises(ValidationError):
            validateVestingSchedule("20", "81", 10)

    def test_vesting_monthly_needs_months(self):
        """A monthly share with zero months is meaningless."""
        with pytest.raises(ValidationError):
            validateVestingSchedule("0", "50", 0)

    def test_referral_rates(self):
        """String keys from JSON are accepted."""
        assert validateReferralBonusRates({"1": "15", "2": "10"}) == {
            1: Decimal("15"), 2: Decimal("10")
        }
        with pytest.raises(ValidationError):
            validateReferralBonusRates({"11": "1"})

    def test_rank_directs_basis(self):
        """current or highest."""
        assert validateRankDirectsBasis("highest") == "highest"
        with pytest.raises(ValidationError):
            validateRankDirectsBasis("ever")

    def test_require_positive(self):
        """Zero and negatives are refused, value is rounded to cents."""
        assert requirePositive("10.005") == Decimal("10.01")
        with pytest.raises(ValidationError):
            requirePositive("0")
        with pytest.raises(ValidationError):
            requirePositive("-5")
