# staking_system/services/rank_service.py
"""
Rank management service: B-Rank qualification and dynamic bonus caps.
"""
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func
import logging

import config
from models import User, Stake, RankHistory
from staking_system.config.ranks import NO_RANK, compareRanks, rankWeight
from staking_system.config.snapshot import EngineSnapshot, RankRuleSnapshot
from staking_system.errors import NotFoundError
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.referral_service import ReferralGraph
from staking_system.services.settings_service import SettingsService
from staking_system.utils.money import ZERO, settle

logger = logging.getLogger(__name__)

# Guard for recalculateAllRanks: each round can only lift a rank by propagation
MAX_RECALC_ROUNDS = 100


class RankService:
    """Service for managing user ranks and rank-bonus caps."""

    def __init__(self, session: Session, snapshot: EngineSnapshot = None):
        self.session = session
        self.graph = ReferralGraph(session)
        self._snapshot = snapshot

    @property
    def snapshot(self) -> EngineSnapshot:
        if self._snapshot is None:
            self._snapshot = SettingsService(self.session).loadSnapshot()
        return self._snapshot

    # ------------------------------------------------------------------
    # Qualification
    # ------------------------------------------------------------------

    def evaluateRank(self, user: User) -> Optional[RankRuleSnapshot]:
        """Highest rule the user satisfies, None means B0."""
        teamVolume = Decimal(str(user.teamVolume or ZERO))
        directs = self.graph.directReferrals(user.userID)

        for rule in self.snapshot.rulesDescending():
            if teamVolume < rule.minTeamVolume:
                continue
            if len(directs) < rule.minDirectReferrals:
                continue
            if rule.requiredRankDirectsCount > 0:
                requiredWeight = rankWeight(rule.requiredRankDirectsRank)
                qualified = sum(
                    1 for d in directs
                    if rankWeight(self._directRank(d)) >= requiredWeight
                )
                if qualified < rule.requiredRankDirectsCount:
                    continue
            return rule

        return None

    def _directRank(self, direct: User) -> str:
        if self.snapshot.rankDirectsBasis == "highest":
            return direct.highestRank or NO_RANK
        return direct.currentRank or NO_RANK

    async def recalculateRank(
            self,
            userId: int,
            method: str = "natural",
            propagate: bool = True
    ) -> List[Dict]:
        """
        Re-evaluate one user and persist an upgrade or downgrade.
        A change moves up to the referrer, whose rank-direct requirement may now differ.
        Returns the list of changes. Caller commits and emits.
        """
        changes = []
        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise NotFoundError(f"User {userId} not found")

        change = self._applyRank(user, method)
        if change is None:
            return changes
        changes.append(change)

        if propagate:
            for level, ancestor in self.graph.ancestorsOf(userId, maxDepth=config.VOLUME_MAX_DEPTH):
                ancestorChange = self._applyRank(ancestor, method)
                if ancestorChange is None:
                    break
                changes.append(ancestorChange)

        return changes

    async def recalculateChain(self, userIds: Iterable[int], method: str = "natural") -> List[Dict]:
        """Re-evaluate users bottom-up, e.g. the owner and ancestors touched by a volume change."""
        changes = []
        for userId in userIds:
            changes.extend(await self.recalculateRank(userId, method, propagate=True))
        return changes

    def _applyRank(self, user: User, method: str) -> Optional[Dict]:
        rule = self.evaluateRank(user)
        newRank = rule.rank if rule else NO_RANK
        oldRank = user.currentRank or NO_RANK

        if newRank == oldRank:
            return None

        user.currentRank = newRank
        if compareRanks(newRank, user.highestRank or NO_RANK) > 0:
            user.highestRank = newRank

        directsCount = len(self.graph.directReferrals(user.userID))
        history = RankHistory(
            userID=user.userID,
            previousRank=oldRank,
            newRank=newRank,
            teamVolume=user.teamVolume,
            directReferrals=directsCount,
            qualificationMethod=method
        )
        self.session.add(history)

        direction = "upgraded" if compareRanks(newRank, oldRank) > 0 else "downgraded"
        logger.info(f"User {user.userID} rank {direction}: {oldRank} -> {newRank} ({method})")

        return {
            "userId": user.userID,
            "previousRank": oldRank,
            "newRank": newRank,
            "method": method
        }

    async def recalculateAllRanks(self) -> Dict[str, int]:
        """Re-evaluate everybody until nothing changes."""
        results = {
            "checked": 0,
            "updated": 0,
            "rounds": 0
        }
        allChanges = []
        userIds = [u for (u,) in self.session.query(User.userID).order_by(User.userID).all()]

        for _ in range(MAX_RECALC_ROUNDS):
            results["rounds"] += 1
            roundChanges = []
            for userId in userIds:
                user = self.session.query(User).filter_by(userID=userId).first()
                change = self._applyRank(user, "recalculation")
                if change:
                    roundChanges.append(change)
            results["checked"] += len(userIds)
            allChanges.extend(roundChanges)
            if not roundChanges:
                break
        else:
            logger.warning(f"Rank recalculation did not settle after {MAX_RECALC_ROUNDS} rounds")

        self.session.commit()
        results["updated"] = len(allChanges)
        await self.emitChanges(allChanges)

        logger.info(
            f"Rank recalculation complete: checked={results['checked']}, "
            f"updated={results['updated']}, rounds={results['rounds']}"
        )
        return results

    async def emitChanges(self, changes: List[Dict]):
        for change in changes:
            await eventBus.emit(StakingEvents.RANK_CHANGED, change)

    # ------------------------------------------------------------------
    # Capping
    # ------------------------------------------------------------------

    def totalActiveStake(self, userId: int) -> Decimal:
        """Sum of own active principal, never cached."""
        total = self.session.query(func.coalesce(func.sum(Stake.amount), 0)).filter(
            Stake.userID == userId,
            Stake.status == "active"
        ).scalar()
        return settle(Decimal(str(total or 0)))

    def capInfo(self, user: User) -> Dict:
        """Cap figures for a user as of now."""
        rank = user.currentRank or NO_RANK
        rule = self.snapshot.ruleFor(rank)
        multiplier = rule.cappingMultiplier if rule else Decimal("0")

        totalActiveStake = self.totalActiveStake(user.userID)
        currentCap = settle(totalActiveStake * multiplier)
        totalReceived = settle(user.totalRankBonusReceived or ZERO)
        remainingCap = settle(max(ZERO, currentCap - totalReceived))

        return {
            "userId": user.userID,
            "currentRank": rank,
            "totalActiveStake": totalActiveStake,
            "cappingMultiplier": multiplier,
            "currentCap": currentCap,
            "totalReceived": totalReceived,
            "remainingCap": remainingCap,
            "isCapReached": remainingCap <= 0
        }
