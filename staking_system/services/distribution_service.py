# staking_system/services/distribution_service.py
"""
Daily distribution - the entry point an external scheduler calls once per settlement day.

Every active stake is one unit of work: yield, commissions, rank bonus and the
lastYieldDate watermark are committed together or not at all, so a re-run of the
same day pays nothing twice.
"""
import json
import time
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.exc import IntegrityError
import logging

import config
from models import Stake, DistributionRun
from staking_system.config.snapshot import EngineSnapshot
from staking_system.errors import ConsistencyError, GraphIntegrityError, NotFoundError
from staking_system.events.event_bus import eventBus, StakingEvents
from staking_system.services.commission_service import CommissionService
from staking_system.services.ledger_service import LedgerService
from staking_system.services.rank_service import RankService
from staking_system.services.referral_service import ReferralGraph
from staking_system.services.settings_service import SettingsService
from staking_system.services.stake_service import StakeService
from staking_system.utils.locks import ParticipantLocks, participantLocks
from staking_system.utils.money import ZERO, round2
from staking_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class DistributionService:
    """Runs the daily yield and commission pass."""

    def __init__(self, session: Session, locks: Optional[ParticipantLocks] = None):
        self.session = session
        self.locks = locks or participantLocks
        self.graph = ReferralGraph(session)
        self.ledger = LedgerService(session)

    async def runDailyDistribution(self, runDate: Optional[date] = None) -> Dict:
        """
        Pay one day of yield on every active stake.
        Configuration is read once here and not again until the next pass.
        """
        startedAt = time.monotonic()
        runDate = runDate or timeMachine.today
        snapshot = SettingsService(self.session).loadSnapshot()

        run = DistributionRun(jobName=config.DISTRIBUTION_JOB_NAME, runDate=runDate, status="running")
        self.session.add(run)
        self.session.commit()
        runId = run.runID

        results = {
            "runId": runId,
            "runDate": runDate,
            "stakesProcessed": 0,
            "stakesCompleted": 0,
            "stakesSkipped": 0,
            "yieldCredited": ZERO,
            "commissionsPaid": ZERO,
            "commissionsCount": 0,
            "rankBonusesPaid": ZERO,
            "capsHit": 0,
            "graphErrors": 0,
            "consistencyErrors": 0,
            "quarantinedUserIds": []
        }
        errors: List[Dict] = []
        quarantined: Set[int] = set()

        logger.info(f"Daily distribution {runId} started for {runDate}")

        try:
            stakeIds = [
                s for (s,) in self.session.query(Stake.stakeID)
                .filter_by(status="active")
                .order_by(Stake.stakeID)
                .all()
            ]

            for stakeId in stakeIds:
                outcome = await self._processStakeWithRetry(stakeId, runDate, snapshot, quarantined)
                self._tally(results, outcome)
                if outcome.get("error"):
                    errors.append({"stakeId": stakeId, "kind": outcome["status"], "error": outcome["error"]})
                await self._emitOutcome(outcome)

        except Exception as e:
            self.session.rollback()
            logger.error(f"Daily distribution {runId} failed: {e}")
            self._finishRun(runId, "failed", results, errors + [{"kind": "fatal", "error": str(e)}], startedAt)
            raise

        results["quarantinedUserIds"] = sorted(quarantined)
        self._finishRun(runId, "success", results, errors, startedAt)

        logger.info(
            f"Daily distribution {runId} done: processed={results['stakesProcessed']}, "
            f"completed={results['stakesCompleted']}, skipped={results['stakesSkipped']}, "
            f"yield={results['yieldCredited']}, commissions={results['commissionsPaid']} "
            f"({results['commissionsCount']}), rankBonuses={results['rankBonusesPaid']}, "
            f"capsHit={results['capsHit']}, graphErrors={results['graphErrors']}, "
            f"consistencyErrors={results['consistencyErrors']}"
        )
        await eventBus.emit(StakingEvents.DISTRIBUTION_COMPLETED, dict(results))
        return results

    async def _processStakeWithRetry(
            self,
            stakeId: int,
            runDate: date,
            snapshot: EngineSnapshot,
            quarantined: Set[int]
    ) -> Dict:
        lastError = None

        for attempt in range(config.COMMIT_RETRIES + 1):
            involved: Set[int] = set()
            try:
                return await self._processStake(stakeId, runDate, snapshot, quarantined, involved)

            except StaleDataError as e:
                # Someone else wrote one of our participants, start the unit over
                self.session.rollback()
                lastError = e
                logger.warning(f"Stake {stakeId}: concurrent update, retry {attempt + 1}/{config.COMMIT_RETRIES}")

            except GraphIntegrityError as e:
                self.session.rollback()
                logger.error(f"Stake {stakeId}: referral graph broken, skipped: {e}")
                return {"stakeId": stakeId, "status": "graph_error", "error": str(e)}

            except ConsistencyError as e:
                self.session.rollback()
                affected = set(e.userIds) or involved
                quarantined.update(affected)
                logger.error(f"Stake {stakeId}: consistency error, quarantined {sorted(affected)}: {e}")
                return {"stakeId": stakeId, "status": "consistency_error", "error": str(e)}

            except (IntegrityError, NotFoundError) as e:
                self.session.rollback()
                # Only the stake's own row set is suspect, the upline keeps earning
                ownerId = self._quarantineOwner(stakeId, quarantined)
                logger.error(f"Stake {stakeId}: write rejected, quarantined owner {ownerId}: {e}")
                return {"stakeId": stakeId, "status": "consistency_error", "error": str(e)}

        # Out of retries: stop touching this owner for the rest of the pass
        self._quarantineOwner(stakeId, quarantined)
        logger.error(f"Stake {stakeId}: gave up after {config.COMMIT_RETRIES} retries: {lastError}")
        return {"stakeId": stakeId, "status": "consistency_error", "error": f"retries exhausted: {lastError}"}

    def _quarantineOwner(self, stakeId: int, quarantined: Set[int]) -> Optional[int]:
        stake = self.session.query(Stake).filter_by(stakeID=stakeId).first()
        if stake is None:
            return None
        quarantined.add(stake.userID)
        return stake.userID

    async def _processStake(
            self,
            stakeId: int,
            runDate: date,
            snapshot: EngineSnapshot,
            quarantined: Set[int],
            involved: Set[int]
    ) -> Dict:
        stake = self.session.query(Stake).filter_by(stakeID=stakeId).populate_existing().first()
        if stake is None or not stake.isActive:
            return {"stakeId": stakeId, "status": "skipped", "reason": "inactive"}

        involved.add(stake.userID)
        involved.update(
            ancestor.userID
            for level, ancestor in self.graph.ancestorsOf(stake.userID, maxDepth=config.VOLUME_MAX_DEPTH)
        )

        blocked = involved & quarantined
        if blocked:
            logger.warning(f"Stake {stakeId} skipped, quarantined participants {sorted(blocked)}")
            return {"stakeId": stakeId, "status": "skipped", "reason": "quarantined"}

        async with self.locks.hold(involved):
            stakeService = StakeService(self.session, snapshot)

            payDate = runDate
            if runDate > stake.endDate:
                if stake.lastYieldDate and stake.lastYieldDate >= stake.endDate:
                    rankChanges = await stakeService.completeStake(stake)
                    self.session.commit()
                    return {
                        "stakeId": stakeId,
                        "userId": stake.userID,
                        "status": "completed",
                        "yield": ZERO,
                        "rankChanges": rankChanges
                    }
                # End date was missed, its yield is still owed
                payDate = stake.endDate
                logger.warning(f"Stake {stakeId}: paying missed end date {payDate} on run {runDate}")

            if (stake.lastYieldDate and stake.lastYieldDate >= payDate) or payDate <= stake.startDate:
                return {"stakeId": stakeId, "status": "skipped", "reason": "already_paid"}

            yieldAmount = round2(Decimal(str(stake.amount)) * Decimal(str(stake.dailyRate)) / Decimal("100"))
            currency = snapshot.creditCurrency

            owner = self.ledger.lockUser(stake.userID)
            if yieldAmount > 0:
                self.ledger.credit(
                    owner, yieldAmount, currency, "yield",
                    reason=f"stake={stakeId}",
                    notes=f"Daily yield {stake.dailyRate}% for {payDate.isoformat()}",
                    idempotencyKey=f"yield:{stakeId}:{payDate.isoformat()}"
                )

            commissions = await CommissionService(self.session, snapshot).processYield(
                stake, yieldAmount, payDate
            )
            stake.lastYieldDate = payDate

            rankChanges = []
            completed = False
            if payDate == stake.endDate:
                rankChanges = await stakeService.completeStake(stake)
                completed = True

            self.session.commit()

        return {
            "stakeId": stakeId,
            "userId": stake.userID,
            "status": "paid",
            "completed": completed,
            "yield": yieldAmount,
            "currency": currency.value,
            "commissions": commissions["commissions"],
            "totalCommissions": commissions["totalCommissions"],
            "rankBonus": commissions["rankBonus"],
            "rankChanges": rankChanges
        }

    def _tally(self, results: Dict, outcome: Dict):
        status = outcome["status"]

        if status == "paid":
            results["stakesProcessed"] += 1
            results["yieldCredited"] += outcome["yield"]
            results["commissionsPaid"] += outcome["totalCommissions"]
            results["commissionsCount"] += len(outcome["commissions"])
            bonus = outcome["rankBonus"]
            if bonus is not None:
                results["commissionsCount"] += 1
                results["rankBonusesPaid"] += bonus.paidAmount
                if bonus.isCapped:
                    results["capsHit"] += 1
            if outcome["completed"]:
                results["stakesCompleted"] += 1
        elif status == "completed":
            results["stakesCompleted"] += 1
        elif status == "skipped":
            results["stakesSkipped"] += 1
        elif status == "graph_error":
            results["graphErrors"] += 1
        elif status == "consistency_error":
            results["consistencyErrors"] += 1

    async def _emitOutcome(self, outcome: Dict):
        """Events only for committed units."""
        status = outcome["status"]
        if status not in ("paid", "completed"):
            return

        if status == "paid":
            await eventBus.emit(StakingEvents.YIELD_CREDITED, {
                "stakeId": outcome["stakeId"],
                "userId": outcome["userId"],
                "amount": outcome["yield"],
                "currency": outcome["currency"]
            })
            for commission in outcome["commissions"]:
                await eventBus.emit(StakingEvents.COMMISSION_PAID, dict(commission, stakeId=outcome["stakeId"]))

            bonus = outcome["rankBonus"]
            if bonus is not None:
                eventName = StakingEvents.RANK_BONUS_CAPPED if bonus.isCapped else StakingEvents.RANK_BONUS_PAID
                await eventBus.emit(eventName, {
                    "stakeId": outcome["stakeId"],
                    "userId": bonus.beneficiaryId,
                    "rank": bonus.rank,
                    "computedAmount": bonus.computedAmount,
                    "paidAmount": bonus.paidAmount,
                    "status": bonus.status
                })

        if status == "completed" or outcome.get("completed"):
            await eventBus.emit(StakingEvents.STAKE_COMPLETED, {
                "stakeId": outcome["stakeId"],
                "userId": outcome["userId"]
            })

        await RankService(self.session).emitChanges(outcome.get("rankChanges", []))

    def _finishRun(self, runId: int, status: str, results: Dict, errors: List[Dict], startedAt: float):
        run = self.session.query(DistributionRun).filter_by(runID=runId).first()
        run.status = status
        run.stakesProcessed = results["stakesProcessed"]
        run.stakesCompleted = results["stakesCompleted"]
        run.stakesSkipped = results["stakesSkipped"]
        run.commissionsCount = results["commissionsCount"]
        run.capsHit = results["capsHit"]
        run.graphErrors = results["graphErrors"]
        run.consistencyErrors = results["consistencyErrors"]
        run.totalYield = results["yieldCredited"]
        run.totalCommissions = results["commissionsPaid"]
        run.totalRankBonuses = results["rankBonusesPaid"]
        run.executionTimeMs = int((time.monotonic() - startedAt) * 1000)
        run.details = json.dumps(errors) if errors else None
        self.session.commit()
