# models/commission.py
"""
Commission model - immutable audit trail of every unilevel, referral and rank bonus.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Date, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Commission(Base, AuditMixin):
    __tablename__ = 'commission_transactions'

    # Primary key
    commissionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    stakeID = Column(Integer, ForeignKey('stakes.stakeID'), nullable=False)  # Payer stake
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)  # Beneficiary
    sourceUserID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)  # Stake owner

    # Commission details
    commissionType = Column(String, nullable=False)  # unilevel, referral, rank_bonus
    level = Column(Integer, nullable=False)  # 1..10 for unilevel/referral, 0 for rank bonus
    fromRank = Column(String, nullable=True)  # Beneficiary rank for rank bonuses

    # Calculation
    rate = Column(DECIMAL(10, 4), nullable=False)  # Fraction of yield (0.03 for 3%)
    yieldAmount = Column(DECIMAL(18, 2), nullable=False)  # Base yield
    computedAmount = Column(DECIMAL(18, 2), nullable=False)  # Before capping
    commissionAmount = Column(DECIMAL(18, 2), nullable=False)  # Actually paid
    currency = Column(String, default="USDT", nullable=False)  # USDT, BLS

    # Status
    status = Column(String, default="paid", nullable=False)  # paid, partial, capped

    # Reporting keys
    reportingDate = Column(Date, nullable=False, index=True)
    week = Column(String, nullable=False, index=True)  # YYYY-WW
    month = Column(String, nullable=False, index=True)  # YYYY-MM
    year = Column(Integer, nullable=False)

    # Note: createdAt, updatedAt - от AuditMixin

    # Relationships
    user = relationship('User', foreign_keys=[userID], backref='commissions_received')
    sourceUser = relationship('User', foreign_keys=[sourceUserID], backref='commissions_generated')
    stake = relationship('Stake', backref='commissions')

    __table_args__ = (
        # One payout per stake, day, kind and level
        UniqueConstraint('stakeID', 'reportingDate', 'commissionType', 'level',
                         name='uq_commission_idempotency'),
        Index('ix_commission_user_date', 'userID', 'reportingDate'),
    )

    def __repr__(self):
        return (
            f"<Commission(commissionID={self.commissionID}, user={self.userID}, "
            f"type={self.commissionType}, level={self.level}, amount={self.commissionAmount})>"
        )
