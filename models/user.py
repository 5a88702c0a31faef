# models/user.py
"""
User model - a participant of the staking plan and node of the referral tree.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import validates
from models.base import Base, AuditMixin


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Primary identification
    userID = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=True, index=True)
    name = Column(String, nullable=True)

    # Upward edge of the referral forest, set once at registration
    referrerID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)

    # System fields
    status = Column(String, default="active", index=True)  # active, removed

    # Balances
    walletBalance = Column(DECIMAL(18, 2), default=0, nullable=False)  # USDT
    blsBalance = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Rank
    currentRank = Column(String, default="B0", nullable=False, index=True)
    highestRank = Column(String, default="B0", nullable=False)
    teamVolume = Column(DECIMAL(18, 2), default=0, nullable=False)
    totalRankBonusReceived = Column(DECIMAL(18, 2), default=0, nullable=False)

    # Unilevel (derived, cached)
    directReferralsCount = Column(Integer, default=0, nullable=False)
    activeDirectReferrals = Column(Integer, default=0, nullable=False)
    unlockedLevels = Column(Integer, default=0, nullable=False)
    lastUnlockUpdate = Column(DateTime, nullable=True)

    # Optimistic concurrency: every balance/cap write bumps the version
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @validates('referrerID')
    def _validateReferrer(self, key, value):
        if self.referrerID is not None and value != self.referrerID:
            raise ValueError(f"referrerID of user {self.userID} is immutable")
        if value is not None and self.userID is not None and value == self.userID:
            raise ValueError("A user cannot be their own referrer")
        return value

    @property
    def isRemoved(self) -> bool:
        return self.status == "removed"

    def __repr__(self):
        return f"<User(userID={self.userID}, referrer={self.referrerID}, rank={self.currentRank})>"
