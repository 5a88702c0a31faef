# models/mlm/system_setting.py
"""
SystemSetting model - key/value store for admin toggles (pause flags, BLS config).
"""
from sqlalchemy import Column, Integer, String, JSON
from models.base import Base, AuditMixin


class SystemSetting(Base, AuditMixin):
    __tablename__ = 'system_settings'

    settingID = Column(Integer, primary_key=True, autoincrement=True)

    key = Column(String, nullable=False, unique=True)
    value = Column(JSON, nullable=True)
    # staking_paused: false
    # withdrawals_paused: false
    # referral_bonuses_enabled: true
    # referral_bonus_rates: {"1": "15", "2": "10"}
    # rank_directs_basis: "current" | "highest"
    # bls_config: {"isEnabled": false, "conversionRate": "1.0", "minSwapAmount": "1.0"}

    def __repr__(self):
        return f"<SystemSetting(key={self.key}, value={self.value})>"
