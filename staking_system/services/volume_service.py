# staking_system/services/volume_service.py
"""
Volume tracking service - team volume follows stake principal up the referral chain.
"""
from decimal import Decimal
from typing import List
from sqlalchemy.orm import Session
import logging

import config
from models import User, Stake
from staking_system.services.referral_service import ReferralGraph
from staking_system.utils.money import ZERO, settle

logger = logging.getLogger(__name__)


class VolumeService:
    """Service for maintaining team volumes."""

    def __init__(self, session: Session):
        self.session = session
        self.graph = ReferralGraph(session)

    async def applyStakeVolume(self, stake: Stake, sign: int = 1) -> List[int]:
        """
        Add (sign=1) or remove (sign=-1) a stake principal from the owner's team volume
        and every ancestor's. Volume never drops below zero.
        Returns ids of touched users, owner first.
        """
        delta = Decimal(str(stake.amount)) * sign

        owner = self.session.query(User).filter_by(userID=stake.userID).first()
        touched = [owner.userID]
        self._addVolume(owner, delta)

        for level, ancestor in self.graph.ancestorsOf(owner.userID, maxDepth=config.VOLUME_MAX_DEPTH):
            self._addVolume(ancestor, delta)
            touched.append(ancestor.userID)

        logger.info(
            f"Team volume {'+' if sign > 0 else '-'}{stake.amount} applied for stake {stake.stakeID} "
            f"to {len(touched)} users"
        )
        return touched

    def _addVolume(self, user: User, delta: Decimal):
        newVolume = settle(Decimal(str(user.teamVolume or ZERO)) + delta)
        if newVolume < 0:
            newVolume = ZERO
        user.teamVolume = newVolume

    async def recalculateTeamVolumes(self) -> int:
        """Rebuild every teamVolume from active stakes. Returns number of users updated."""
        totals = {}
        for stake in self.session.query(Stake).filter_by(status="active").all():
            amount = Decimal(str(stake.amount))
            totals[stake.userID] = totals.get(stake.userID, ZERO) + amount
            for level, ancestor in self.graph.ancestorsOf(stake.userID, maxDepth=config.VOLUME_MAX_DEPTH):
                totals[ancestor.userID] = totals.get(ancestor.userID, ZERO) + amount

        updated = 0
        for user in self.session.query(User).all():
            newVolume = settle(totals.get(user.userID, ZERO))
            if settle(user.teamVolume or ZERO) != newVolume:
                user.teamVolume = newVolume
                updated += 1

        self.session.commit()
        logger.info(f"Recalculated team volumes, {updated} users updated")
        return updated
