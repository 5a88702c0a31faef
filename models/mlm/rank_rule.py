# models/mlm/rank_rule.py
"""
RankRule model - admin-configured B-Rank qualification and capping rule.
"""
from sqlalchemy import Column, Integer, String, DECIMAL
from models.base import Base, AuditMixin


class RankRule(Base, AuditMixin):
    __tablename__ = 'rank_rules'

    ruleID = Column(Integer, primary_key=True, autoincrement=True)

    rank = Column(String, nullable=False, unique=True)  # B1, B2, ...
    rankWeight = Column(Integer, nullable=False, index=True)  # Numeric part of rank, for ordering

    # Qualification
    minTeamVolume = Column(DECIMAL(18, 2), nullable=False, default=0)
    minDirectReferrals = Column(Integer, nullable=False, default=0)
    requiredRankDirectsCount = Column(Integer, nullable=False, default=0)
    requiredRankDirectsRank = Column(String, nullable=True)

    # Payout
    commissionRate = Column(DECIMAL(10, 4), nullable=False)  # Percent of direct's yield
    cappingMultiplier = Column(DECIMAL(10, 4), nullable=False)  # x active stake

    def __repr__(self):
        return f"<RankRule(rank={self.rank}, rate={self.commissionRate}, cap=x{self.cappingMultiplier})>"
