# models/__init__.py
"""
Database models for the staking engine.
Import all models here so Base.metadata sees every table.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Core models
from models.user import User
from models.stake import Stake
from models.commission import Commission
from models.transaction import Transaction
from models.presale import PresaleOrder
from models.bls_swap import BLSSwap

# MLM configuration and journals
from models.mlm.rank_rule import RankRule
from models.mlm.staking_cycle import StakingCycle
from models.mlm.system_setting import SystemSetting
from models.mlm.rank_history import RankHistory
from models.mlm.distribution_run import DistributionRun

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Core
    'User',
    'Stake',
    'Commission',
    'Transaction',
    'PresaleOrder',
    'BLSSwap',

    # MLM
    'RankRule',
    'StakingCycle',
    'SystemSetting',
    'RankHistory',
    'DistributionRun',
]
