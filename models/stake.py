# models/stake.py
"""
Stake model - a principal locked for a cycle that accrues daily yield.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates
from models.base import Base, AuditMixin


class Stake(Base, AuditMixin):
    __tablename__ = 'stakes'

    # Primary key
    stakeID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    sourceOrderID = Column(Integer, ForeignKey('presale_orders.orderID'), nullable=True, unique=True)

    # Terms
    amount = Column(DECIMAL(18, 2), nullable=False)  # Principal, immutable
    cycleDays = Column(Integer, nullable=False)
    dailyRate = Column(DECIMAL(10, 4), nullable=False)  # Percent per day (1.00 = 1%)

    # Lifecycle
    status = Column(String, default="active", nullable=False, index=True)  # active, completed, cancelled
    startDate = Column(Date, nullable=False)
    endDate = Column(Date, nullable=False, index=True)
    lastYieldDate = Column(Date, nullable=True)  # Watermark: last calendar day paid
    completedAt = Column(DateTime, nullable=True)

    # Relationships
    user = relationship('User', backref='stakes')

    @validates('amount')
    def _validateAmount(self, key, value):
        if self.amount is not None and value != self.amount:
            raise ValueError(f"Principal of stake {self.stakeID} is immutable")
        if value is None or value <= 0:
            raise ValueError("Stake amount must be positive")
        return value

    @property
    def isActive(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<Stake(stakeID={self.stakeID}, user={self.userID}, amount={self.amount}, status={self.status})>"
