# models/bls_swap.py
"""
BLSSwap model - history of BLS -> USDT swaps.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class BLSSwap(Base, AuditMixin):
    __tablename__ = 'bls_swaps'

    swapID = Column(Integer, primary_key=True, autoincrement=True)

    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    blsAmount = Column(DECIMAL(18, 2), nullable=False)
    usdtAmount = Column(DECIMAL(18, 2), nullable=False)
    conversionRate = Column(DECIMAL(10, 4), nullable=False)
    status = Column(String, default="completed", nullable=False)

    user = relationship('User', backref='bls_swaps')

    def __repr__(self):
        return f"<BLSSwap(swapID={self.swapID}, user={self.userID}, bls={self.blsAmount}, usdt={self.usdtAmount})>"
