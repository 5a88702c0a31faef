# models/mlm/staking_cycle.py
"""
StakingCycle model - available stake durations and their daily rates.
"""
from sqlalchemy import Column, Integer, DECIMAL
from models.base import Base, AuditMixin


class StakingCycle(Base, AuditMixin):
    __tablename__ = 'staking_cycles'

    cycleID = Column(Integer, primary_key=True, autoincrement=True)

    days = Column(Integer, nullable=False, unique=True)
    dailyRate = Column(DECIMAL(10, 4), nullable=False)  # Percent per day

    def __repr__(self):
        return f"<StakingCycle(days={self.days}, dailyRate={self.dailyRate}%)>"
