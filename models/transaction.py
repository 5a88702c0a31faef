# models/transaction.py
"""
Transaction model - every balance delta, in either currency, with its reason.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Transaction(Base, AuditMixin):
    __tablename__ = 'transactions'

    # Primary key
    transactionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Transaction details
    amount = Column(DECIMAL(18, 2), nullable=False)  # Положительная или отрицательная
    currency = Column(String, default="USDT", nullable=False)  # USDT, BLS
    balanceAfter = Column(DECIMAL(18, 2), nullable=True)
    type = Column(String, nullable=False, index=True)
    # yield, commission_unilevel, commission_referral, commission_rank,
    # stake, presale_conversion, bls_swap

    # Transaction metadata
    reason = Column(String, nullable=True)  # stake=12, swap=4, order=7
    notes = Column(String, nullable=True)
    idempotencyKey = Column(String, nullable=True, unique=True)

    # Relationships
    user = relationship('User', backref='transactions')

    def __repr__(self):
        return (
            f"<Transaction(id={self.transactionID}, user={self.userID}, "
            f"amount={self.amount} {self.currency}, type={self.type})>"
        )
