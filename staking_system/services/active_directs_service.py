# staking_system/services/active_directs_service.py
"""
Active directs and unilevel level unlocks.
"""
from typing import Dict
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

from models import User, Stake
from staking_system.config.ranks import unlockedLevels
from staking_system.errors import NotFoundError
from staking_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class ActiveDirectsService:
    """Counts directs holding an active stake and caches the derived unlocks."""

    def __init__(self, session: Session):
        self.session = session

    def countActiveDirects(self, userId: int) -> int:
        """Live count, always read from stakes."""
        return self.session.query(func.count(func.distinct(User.userID))).join(
            Stake, Stake.userID == User.userID
        ).filter(
            User.referrerID == userId,
            Stake.status == "active"
        ).scalar() or 0

    def recomputeActiveDirects(self, userId: int) -> Dict:
        """Persist activeDirectReferrals and unlockedLevels. Caller commits."""
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        activeDirects = self.countActiveDirects(userId)
        levels = unlockedLevels(activeDirects)

        if user.activeDirectReferrals != activeDirects or user.unlockedLevels != levels:
            logger.info(
                f"User {userId} active directs {user.activeDirectReferrals} -> {activeDirects}, "
                f"unlocked levels {user.unlockedLevels} -> {levels}"
            )
            user.activeDirectReferrals = activeDirects
            user.unlockedLevels = levels
            user.lastUnlockUpdate = timeMachine.now.replace(tzinfo=None)

        return {
            "userId": userId,
            "activeDirects": activeDirects,
            "unlockedLevels": levels
        }

    def recomputeForReferrerOf(self, userId: int):
        """Stake lifecycle hook: the owner's referrer may have gained or lost an active direct."""
        referrerId = self.session.query(User.referrerID).filter_by(userID=userId).scalar()
        if referrerId is None:
            return None
        return self.recomputeActiveDirects(referrerId)

    def recomputeAllActiveDirects(self) -> Dict[str, int]:
        """Backfill for every participant."""
        results = {"checked": 0, "updated": 0}

        for user in self.session.query(User).all():
            before = (user.activeDirectReferrals, user.unlockedLevels)
            after = self.recomputeActiveDirects(user.userID)
            results["checked"] += 1
            if before != (after["activeDirects"], after["unlockedLevels"]):
                results["updated"] += 1

        self.session.commit()
        logger.info(f"Active directs recomputed: {results}")
        return results
