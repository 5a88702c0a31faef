# models/mlm/rank_history.py
"""
RankHistory model - tracks rank upgrades and downgrades.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from models.base import Base


class RankHistory(Base):
    __tablename__ = 'rank_history'

    historyID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Rank details
    previousRank = Column(String, nullable=True)
    newRank = Column(String, nullable=False)

    # Qualification metrics at time of change
    teamVolume = Column(DECIMAL(18, 2), nullable=True)
    directReferrals = Column(Integer, nullable=True)
    qualificationMethod = Column(String, nullable=True)  # natural, recalculation

    notes = Column(Text, nullable=True)

    # Relationships
    user = relationship('User', backref='rank_history')

    def __repr__(self):
        return f"<RankHistory(user={self.userID}, {self.previousRank}->{self.newRank}, date={self.createdAt})>"
