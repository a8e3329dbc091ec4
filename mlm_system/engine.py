# mlm_system/engine.py
"""
CompensationEngine - entry point for admin tools, order and wallet services.

Each operation is one transaction (fresh session, single commit, retried as
a unit on transient storage errors) guarded by in-process locks:

* purchase credits and payout cycles share the volume lock, so no credit
  lands on a leg while a cycle is flushing it;
* enrollments and holding tank placements share the placement lock, so
  two of them never claim the same open slot. The unique slot constraint
  covers writers in other processes.

Events collected during an operation are emitted only after its commit.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union
from sqlalchemy.orm import Session
import logging

import config as settings
from models import HoldingTankEntry
from mlm_system.config.compensation import CompensationConfig
from mlm_system.config.placement import PlacementStrategy, HOLDING_TANK_SETTINGS
from mlm_system.errors import InvalidPlacementError, InsufficientConfigError
from mlm_system.events.event_bus import eventBus, EventBus, MLMEvents
from mlm_system.results import NodeSnapshot, HoldingTankSnapshot, PayoutSummary, RankChange
from mlm_system.services.audit_service import AuditService
from mlm_system.services.bonus_service import BonusService
from mlm_system.services.payout_service import PayoutService
from mlm_system.services.placement_service import PlacementService
from mlm_system.services.rank_service import RankService
from mlm_system.services.tree_service import TreeService
from mlm_system.services.volume_service import VolumeService
from mlm_system.utils.locks import LockRegistry, VOLUME_LOCK, PLACEMENT_LOCK
from mlm_system.utils.transaction import runInTransaction

logger = logging.getLogger(__name__)

ConfigSource = Union[CompensationConfig, Dict, Callable[[], CompensationConfig], None]


class CompensationEngine:

    def __init__(
            self,
            sessionFactory: Callable[[], Session],
            compensationConfig: ConfigSource = None,
            bus: Optional[EventBus] = None,
            attempts: Optional[int] = None
    ):
        self.sessionFactory = sessionFactory
        self._configSource = compensationConfig
        self.bus = bus or eventBus
        self.attempts = attempts or settings.TRANSACTION_RETRIES
        self.locks = LockRegistry()

    # region Plumbing

    def currentConfig(self) -> CompensationConfig:
        """Settings from the external store (or the environment when none given)."""
        source = self._configSource
        if source is None:
            return CompensationConfig.fromDict(settings.compensation_settings())
        if isinstance(source, CompensationConfig):
            return source
        if isinstance(source, dict):
            return CompensationConfig.fromDict(source)
        return source()

    @staticmethod
    def _coerceConfig(config: ConfigSource) -> CompensationConfig:
        if isinstance(config, CompensationConfig):
            return config
        if isinstance(config, dict):
            return CompensationConfig.fromDict(config)
        if callable(config):
            return config()
        raise InsufficientConfigError(["payout cycle requires a compensation config"])

    async def _execute(self, operation, *lockKeys):
        outbox = []

        async def attempt(session: Session):
            # A retried attempt must not replay events of the failed one
            outbox.clear()
            return await operation(session, outbox)

        async with self.locks.hold(*lockKeys):
            result = await runInTransaction(self.sessionFactory, attempt, self.attempts)

        await self.bus.emitAll(outbox)
        return result

    # endregion

    # region Placement

    async def enrollMember(
            self,
            sponsorId: Optional[int],
            placementStrategy=None,
            explicitPosition: Optional[str] = None,
            memberRef: Optional[str] = None
    ) -> Union[int, HoldingTankSnapshot]:
        """
        Enroll a member under sponsorId. Returns the new node id, or the
        holding tank entry when the member is parked for manual placement.
        sponsorId=None creates the root of an empty network.
        """
        defaultMode = self.currentConfig().holdingTankMode

        async def operation(session, outbox):
            placement = PlacementService(session, outbox)
            result = await placement.enrollMember(
                sponsorId, placementStrategy, explicitPosition, memberRef, defaultMode
            )
            if isinstance(result, HoldingTankEntry):
                return HoldingTankSnapshot.fromEntry(result)
            return result.nodeID

        return await self._execute(operation, PLACEMENT_LOCK)

    async def placePendingMember(self, pendingUserId: int, parentId: int, position: str) -> int:
        """Place a holding tank member; fails with SlotTakenError if the slot is taken."""

        async def operation(session, outbox):
            placement = PlacementService(session, outbox)
            node = await placement.placePendingMember(pendingUserId, parentId, position)
            await VolumeService(session, outbox).rollUpPendingVolume(node)
            return node.nodeID

        return await self._execute(operation, PLACEMENT_LOCK, VOLUME_LOCK)

    async def getHoldingTank(self, sponsorId: int) -> List[HoldingTankSnapshot]:

        async def operation(session, outbox):
            entries = await PlacementService(session, outbox).getHoldingTank(sponsorId)
            return [HoldingTankSnapshot.fromEntry(entry) for entry in entries]

        return await self._execute(operation)

    async def setPlacementPreference(
            self,
            nodeId: int,
            spilloverPreference=None,
            holdingTank: Optional[str] = None
    ) -> NodeSnapshot:
        """Per-sponsor override of the placement strategy and holding tank mode."""
        if spilloverPreference is not None:
            spilloverPreference = PlacementStrategy.parse(spilloverPreference).value
        if holdingTank is not None and holdingTank not in HOLDING_TANK_SETTINGS:
            raise InvalidPlacementError(f"holdingTank must be one of {HOLDING_TANK_SETTINGS}")

        async def operation(session, outbox):
            tree = TreeService(session)
            node = tree.getNode(nodeId)
            if spilloverPreference is not None:
                node.spilloverPreference = spilloverPreference
            if holdingTank is not None:
                node.holdingTankSetting = holdingTank
            AuditService(session).log(
                "PLACEMENT_PREFERENCE",
                f"Node {nodeId} placement preference: strategy={node.spilloverPreference}, "
                f"holdingTank={node.holdingTankSetting}",
                nodeId=nodeId
            )
            session.flush()
            return NodeSnapshot.fromNode(node, tree.getChildren(nodeId))

        return await self._execute(operation, PLACEMENT_LOCK)

    # endregion

    # region Volume and payouts

    async def creditPurchase(self, nodeId: int, pv, price) -> None:
        """Payment confirmed: roll up PV and pay the direct sponsor's referral bonus."""
        compensation = self.currentConfig()
        compensation.validateForPurchase()

        async def operation(session, outbox):
            await VolumeService(session, outbox).creditPurchase(nodeId, pv)
            await BonusService(session, outbox).distributeReferralBonus(nodeId, pv, price, compensation)

        await self._execute(operation, VOLUME_LOCK)

    async def runPayoutCycle(self, config: ConfigSource = None, asOf: Optional[datetime] = None) -> PayoutSummary:
        """Administrator-triggered cycle; all-or-nothing."""
        compensation = self._coerceConfig(config if config is not None else self.currentConfig())
        compensation.validateForPayout()

        async def operation(session, outbox):
            return await PayoutService(session, outbox).runPayoutCycle(compensation, asOf)

        try:
            summary = await self._execute(operation, VOLUME_LOCK, PLACEMENT_LOCK)
        except Exception as e:
            try:
                await self._recordCycleFailure(e)
            except Exception as recordError:
                logger.error(f"Could not record payout cycle failure: {recordError}", exc_info=True)
            raise

        logger.info(
            f"Payout cycle {summary.payoutRunId} complete: nodes={summary.nodesProcessed}, "
            f"paid={summary.totalCommissionPaid}"
        )
        return summary

    async def _recordCycleFailure(self, error: Exception):

        async def operation(session, outbox):
            AuditService(session).log("COMMISSION_RUN_FAILED", f"{type(error).__name__}: {error}", "ERROR")
            outbox.append((MLMEvents.PAYOUT_CYCLE_FAILED, {"error": str(error)}))

        await self._execute(operation)

    async def evaluateRank(self, nodeId: int) -> Optional[RankChange]:
        thresholds = self.currentConfig().rankThresholds

        async def operation(session, outbox):
            return await RankService(session, outbox).evaluateRank(nodeId, thresholds)

        return await self._execute(operation, VOLUME_LOCK)

    async def deactivateMember(self, nodeId: int, reason: str = "") -> None:

        async def operation(session, outbox):
            await VolumeService(session, outbox).deactivateMember(nodeId, reason)

        await self._execute(operation, VOLUME_LOCK)

    # endregion

    # region Read model

    async def getNode(self, nodeId: int) -> NodeSnapshot:

        async def operation(session, outbox):
            tree = TreeService(session)
            return NodeSnapshot.fromNode(tree.getNode(nodeId), tree.getChildren(nodeId))

        return await self._execute(operation)

    async def getTree(self, nodeId: int, depth: int = 3) -> Dict:
        """Nested {'node', 'left', 'right'} view of the subtree for rendering."""

        async def operation(session, outbox):
            tree = TreeService(session)

            def build(currentId: Optional[int], remaining: int) -> Optional[Dict]:
                if currentId is None:
                    return None
                children = tree.getChildren(currentId)
                view = {"node": NodeSnapshot.fromNode(tree.getNode(currentId), children).toDict()}
                if remaining > 0:
                    view["left"] = build(children["left"], remaining - 1)
                    view["right"] = build(children["right"], remaining - 1)
                return view

            return build(tree.getNode(nodeId).nodeID, depth)

        return await self._execute(operation)

    async def getUpline(self, nodeId: int) -> List[NodeSnapshot]:
        """Placement ancestors, parent first."""

        async def operation(session, outbox):
            tree = TreeService(session)
            return [
                NodeSnapshot.fromNode(ancestor, tree.getChildren(ancestor.nodeID))
                for ancestor, _ in tree.getPlacementChain(nodeId)
            ]

        return await self._execute(operation)

    async def getCommissionHistory(self, nodeId: int) -> List[Dict]:

        async def operation(session, outbox):
            TreeService(session).getNode(nodeId)
            return [
                {
                    "commissionId": r.commissionID,
                    "type": r.commissionType,
                    "amount": r.amount,
                    "sourceNodeId": r.sourceNodeID,
                    "generation": r.generation,
                    "originAmount": r.originAmount,
                    "rate": r.rate,
                    "pairsMatched": r.pairsMatched,
                    "cappedAmount": r.cappedAmount,
                    "payoutRunId": r.payoutRunID,
                    "payoutDay": r.payoutDay,
                    "notes": r.notes,
                    "createdAt": r.createdAt
                }
                for r in AuditService(session).commissionHistory(nodeId)
            ]

        return await self._execute(operation)

    async def getSystemLog(self, limit: int = 100, action: Optional[str] = None) -> List[Dict]:

        async def operation(session, outbox):
            return [
                {
                    "logId": entry.logID,
                    "timestamp": entry.timestamp,
                    "action": entry.action,
                    "details": entry.details,
                    "type": entry.logType,
                    "nodeId": entry.nodeID,
                    "payoutRunId": entry.payoutRunID,
                    "payload": entry.payload
                }
                for entry in AuditService(session).recentEntries(limit, action)
            ]

        return await self._execute(operation)

    # endregion
