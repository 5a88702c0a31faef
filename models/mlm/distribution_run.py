# models/mlm/distribution_run.py
"""
DistributionRun model - journal of daily distribution passes.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Date, DateTime, Text
from datetime import datetime, timezone
from models.base import Base


class DistributionRun(Base):
    __tablename__ = 'distribution_runs'

    runID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    jobName = Column(String, nullable=False)
    runDate = Column(Date, nullable=False, index=True)
    status = Column(String, default="running", nullable=False)  # running, success, failed

    # Counters
    stakesProcessed = Column(Integer, default=0)
    stakesCompleted = Column(Integer, default=0)
    stakesSkipped = Column(Integer, default=0)
    commissionsCount = Column(Integer, default=0)
    capsHit = Column(Integer, default=0)
    graphErrors = Column(Integer, default=0)
    consistencyErrors = Column(Integer, default=0)

    # Totals
    totalYield = Column(DECIMAL(18, 2), default=0)
    totalCommissions = Column(DECIMAL(18, 2), default=0)
    totalRankBonuses = Column(DECIMAL(18, 2), default=0)

    executionTimeMs = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)

    def __repr__(self):
        return f"<DistributionRun(runID={self.runID}, date={self.runDate}, status={self.status})>"
