# models/mlm/__init__.py
"""
MLM configuration tables and journals.
"""

from models.mlm.rank_rule import RankRule
from models.mlm.staking_cycle import StakingCycle
from models.mlm.system_setting import SystemSetting
from models.mlm.rank_history import RankHistory
from models.mlm.distribution_run import DistributionRun

__all__ = [
    'RankRule',
    'StakingCycle',
    'SystemSetting',
    'RankHistory',
    'DistributionRun',
]
