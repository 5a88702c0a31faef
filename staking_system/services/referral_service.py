# staking_system/services/referral_service.py
"""
Referral graph accessor - bounded, cycle-guarded traversal of the referrer forest.
"""
from collections import deque
from typing import Dict, Iterator, List, Optional, Tuple
from sqlalchemy.orm import Session
import logging

import config
from models import User
from staking_system.errors import GraphIntegrityError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ReferralGraph:
    """Read access to upline/downline plus participant registration."""

    def __init__(self, session: Session):
        self.session = session

    def _getUser(self, userId: int) -> Optional[User]:
        return self.session.query(User).filter_by(userID=userId).first()

    def ancestorsOf(self, userId: int, maxDepth: int = None) -> Iterator[Tuple[int, User]]:
        """
        Yield (level, ancestor) walking referrerID upward, level 1 being the direct referrer.

        Stops at the root or after maxDepth ancestors. Raises GraphIntegrityError
        if an id repeats (cycle) or a referrer id does not resolve.
        """
        if maxDepth is None:
            maxDepth = config.UNILEVEL_MAX_DEPTH

        start = self._getUser(userId)
        if not start:
            raise NotFoundError(f"User {userId} not found")

        visited = {start.userID}
        current = start
        level = 1

        while current.referrerID is not None and level <= maxDepth:
            referrerId = current.referrerID
            if referrerId in visited:
                raise GraphIntegrityError(
                    f"Referral cycle detected at user {referrerId} while walking up from {userId}",
                    userId=referrerId
                )

            ancestor = self._getUser(referrerId)
            if not ancestor:
                raise GraphIntegrityError(
                    f"User {current.userID} points to missing referrer {referrerId}",
                    userId=current.userID
                )

            visited.add(referrerId)
            yield level, ancestor

            current = ancestor
            level += 1

    def directReferrals(self, userId: int) -> List[User]:
        return self.session.query(User).filter_by(referrerID=userId).order_by(User.userID).all()

    def downlineOf(self, userId: int, maxDepth: int = None) -> Dict[int, List[User]]:
        """Breadth-first downline grouped by level. Used by tree views and backfills."""
        if maxDepth is None:
            maxDepth = config.UNILEVEL_MAX_DEPTH

        levels: Dict[int, List[User]] = {}
        visited = {userId}
        queue = deque([(userId, 0)])

        while queue:
            parentId, depth = queue.popleft()
            if depth >= maxDepth:
                continue
            for child in self.directReferrals(parentId):
                if child.userID in visited:
                    raise GraphIntegrityError(
                        f"Referral cycle detected at user {child.userID} below {userId}",
                        userId=child.userID
                    )
                visited.add(child.userID)
                levels.setdefault(depth + 1, []).append(child)
                queue.append((child.userID, depth + 1))

        return levels

    def registerParticipant(
            self,
            email: Optional[str] = None,
            referrerId: Optional[int] = None,
            name: Optional[str] = None
    ) -> User:
        """Create a participant. The referrer is fixed at this point and never changes."""
        referrer = None
        if referrerId is not None:
            referrer = self._getUser(referrerId)
            if not referrer:
                raise ValidationError(f"Referrer {referrerId} not found")
            if referrer.isRemoved:
                raise ValidationError(f"Referrer {referrerId} is removed")

        user = User(email=email, name=name, referrerID=referrerId)
        self.session.add(user)

        if referrer is not None:
            referrer.directReferralsCount = (referrer.directReferralsCount or 0) + 1

        self.session.commit()
        logger.info(f"Registered user {user.userID} under referrer {referrerId}")
        return user

    def softRemoveParticipant(self, userId: int) -> User:
        """Mark a participant removed. Rows stay for the audit trail."""
        user = self._getUser(userId)
        if not user:
            raise NotFoundError(f"User {userId} not found")

        user.status = "removed"
        self.session.commit()
        logger.info(f"User {userId} soft-removed")
        return user
