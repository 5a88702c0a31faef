# staking_system/__init__.py
"""
Staking System - daily yield, unilevel commissions, B-Rank caps, vesting and BLS.
"""

# Services
from staking_system.services.distribution_service import DistributionService
from staking_system.services.commission_service import CommissionService, RankBonusOutcome
from staking_system.services.rank_service import RankService
from staking_system.services.volume_service import VolumeService
from staking_system.services.stake_service import StakeService
from staking_system.services.vesting_service import VestingService
from staking_system.services.bls_service import BLSService
from staking_system.services.admin_service import AdminService
from staking_system.services.report_service import ReportService
from staking_system.services.settings_service import SettingsService
from staking_system.services.ledger_service import LedgerService
from staking_system.services.referral_service import ReferralGraph
from staking_system.services.active_directs_service import ActiveDirectsService

# Configuration
from staking_system.config.ranks import UNILEVEL_RATES, commissionRate, unlockedLevels
from staking_system.config.snapshot import EngineSnapshot, RankRuleSnapshot

# Errors
from staking_system.errors import (
    EngineError, ValidationError, NotFoundError, InsufficientBalanceError,
    OperationPausedError, GraphIntegrityError, ConsistencyError
)

# Utilities
from staking_system.utils.time_machine import timeMachine
from staking_system.utils.money import Currency, round2, normalizeZero, amountExceeds

# Events
from staking_system.events.event_bus import eventBus, StakingEvents

__all__ = [
    # Services
    'DistributionService',
    'CommissionService',
    'RankBonusOutcome',
    'RankService',
    'VolumeService',
    'StakeService',
    'VestingService',
    'BLSService',
    'AdminService',
    'ReportService',
    'SettingsService',
    'LedgerService',
    'ReferralGraph',
    'ActiveDirectsService',

    # Config
    'UNILEVEL_RATES',
    'commissionRate',
    'unlockedLevels',
    'EngineSnapshot',
    'RankRuleSnapshot',

    # Errors
    'EngineError',
    'ValidationError',
    'NotFoundError',
    'InsufficientBalanceError',
    'OperationPausedError',
    'GraphIntegrityError',
    'ConsistencyError',

    # Utils
    'timeMachine',
    'Currency',
    'round2',
    'normalizeZero',
    'amountExceeds',

    # Events
    'eventBus',
    'StakingEvents',
]
