# models/presale.py
"""
PresaleOrder model - a node purchase with its vesting schedule.
"""
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DECIMAL, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship, validates
from models.base import Base, AuditMixin


class PresaleOrder(Base, AuditMixin):
    __tablename__ = 'presale_orders'

    # Primary key
    orderID = Column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Purchase details
    quantity = Column(Integer, nullable=False)
    totalAmount = Column(DECIMAL(18, 2), nullable=False)
    status = Column(String, default="pending", nullable=False, index=True)
    # pending, confirmed, converted, cancelled
    purchaseDate = Column(Date, nullable=False, index=True)

    # Vesting schedule, copied from presale config at purchase time
    immediatePct = Column(DECIMAL(7, 4), default=0, nullable=False)
    monthlyPct = Column(DECIMAL(7, 4), default=0, nullable=False)  # Spread over `months`
    months = Column(Integer, default=0, nullable=False)

    claimedAmount = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Conversion
    convertedAt = Column(DateTime, nullable=True)
    convertedStakeID = Column(Integer, nullable=True)

    # Relationships
    user = relationship('User', backref='presale_orders')

    @validates('quantity')
    def _validateQuantity(self, key, value):
        if value is None or value <= 0:
            raise ValueError("Order quantity must be positive")
        return value

    @validates('totalAmount')
    def _validateTotal(self, key, value):
        if value is None or Decimal(str(value)) < 0:
            raise ValueError("Order total cannot be negative")
        return value

    @validates('months')
    def _validateMonths(self, key, value):
        if value is None or value < 0:
            raise ValueError("Vesting months cannot be negative")
        return value

    def __repr__(self):
        return f"<PresaleOrder(orderID={self.orderID}, user={self.userID}, amount={self.totalAmount}, status={self.status})>"
