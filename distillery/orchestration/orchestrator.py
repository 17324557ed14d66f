"""
Distillation orchestrator.

Runs one distillation cycle per call for a given agent:

1. ANALYZING: score the incoming batch, assess context complexity and check
   admission bounds (pure reads)
2. EMERGENCY | HIGH | MEDIUM | NORMAL: keep, compress or delete batch items
   according to the tier, then admit the survivors to the agent's store
3. FINALIZING: record metrics, advance the iteration counter, derive the
   learning rate and checkpoint the agent

Cycles for one agent are strictly serialized; cycles for different agents
are independent. In-cycle errors are reported through ``DistillationReport``
and the ``distillation_failed`` notification, never raised to the caller.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from distillery.compression.compactor import CompactionEngine
from distillery.config import DistilleryConfig, SECONDS_PER_DAY, get_config
from distillery.core.admission import AdmissionController, BoundsCheck
from distillery.core.agent_state import AgentRegistry, AgentState
from distillery.core.grouping import SimilarityGrouper
from distillery.core.scoring import PatternFrequencyTable, ValueScorer
from distillery.core.store import BoundedStore
from distillery.core.workflow import DistillationState
from distillery.exceptions import (
    CapacityViolationError,
    CycleInProgressError,
    DistilleryError,
    InvalidItemError,
    PersistenceUnavailableError,
)
from distillery.models.experience import ExperienceItem, RetentionAction, ValueAssessment
from distillery.models.rule import CompactionMetrics, CompactionResult
from distillery.models.snapshot import ContextSnapshot
from distillery.monitoring.overload import ComplexityAssessment, Intervention, OverloadMonitor
from distillery.orchestration.events import (
    DistillationEvent,
    EventDispatcher,
    EventType,
    Listener,
)
from distillery.persistence.base import CheckpointStore, decode_checkpoint, encode_checkpoint

logger = logging.getLogger(__name__)


class DistillationTier(str, Enum):
    """Urgency tier of a cycle."""

    EMERGENCY = "emergency"
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"


TIER_STATES = {
    DistillationTier.EMERGENCY: DistillationState.EMERGENCY,
    DistillationTier.HIGH: DistillationState.HIGH,
    DistillationTier.MEDIUM: DistillationState.MEDIUM,
    DistillationTier.NORMAL: DistillationState.NORMAL,
}

METRIC_COLUMNS = [
    "agent_id",
    "timestamp",
    "tier",
    "items",
    "kept",
    "compressed",
    "deleted",
    "deferred",
    "rules_created",
    "compression_ratio",
    "context_size_reduction",
    "context_efficiency",
    "learning_rate",
    "composite",
    "processing_time",
]


@dataclass
class ScoredItem:
    item: ExperienceItem
    assessment: ValueAssessment

    @property
    def value(self) -> float:
        return self.assessment.value


@dataclass
class ClassifiedBatch:
    """Incoming batch partitioned by retention action, in arrival order."""

    high_value: List[ScoredItem] = field(default_factory=list)
    compression_candidates: List[ScoredItem] = field(default_factory=list)
    deletion_candidates: List[ScoredItem] = field(default_factory=list)

    def all_items(self) -> List[ScoredItem]:
        return self.high_value + self.compression_candidates + self.deletion_candidates

    def __len__(self) -> int:
        return len(self.high_value) + len(self.compression_candidates) + len(self.deletion_candidates)


@dataclass
class TierPlan:
    """What a tier does with each batch item."""

    keep: List[ExperienceItem] = field(default_factory=list)
    compress: List[ExperienceItem] = field(default_factory=list)
    delete: List[ExperienceItem] = field(default_factory=list)
    deferred: List[ExperienceItem] = field(default_factory=list)


@dataclass
class TierOutcome:
    """Per-cycle counts and size accounting."""

    tier: DistillationTier
    kept: int
    compressed: int
    deleted: int
    deferred: int
    rules_created: int
    before_size: int
    after_size: int

    @property
    def compression_ratio(self) -> float:
        if self.before_size <= 0:
            return 1.0
        return self.after_size / self.before_size

    @property
    def context_size_reduction(self) -> int:
        return self.before_size - self.after_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "kept": self.kept,
            "compressed": self.compressed,
            "deleted": self.deleted,
            "deferred": self.deferred,
            "rules_created": self.rules_created,
            "before_size": self.before_size,
            "after_size": self.after_size,
            "compression_ratio": self.compression_ratio,
            "context_size_reduction": self.context_size_reduction,
        }


@dataclass
class DistillationReport:
    """Result of one cycle."""

    agent_id: str
    success: bool
    tier: Optional[DistillationTier] = None
    outcome: Optional[TierOutcome] = None
    assessment: Optional[ComplexityAssessment] = None
    bounds: Optional[BoundsCheck] = None
    context_efficiency: float = 0.0
    learning_rate: float = 0.0
    processing_time: float = 0.0
    rejected: int = 0
    compaction: Optional[CompactionResult] = None
    error: Optional[str] = None
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "success": self.success,
            "tier": self.tier.value if self.tier else None,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "bounds": self.bounds.to_dict() if self.bounds else None,
            "context_efficiency": self.context_efficiency,
            "learning_rate": self.learning_rate,
            "processing_time": self.processing_time,
            "rejected": self.rejected,
            "compaction": self.compaction.to_dict() if self.compaction else None,
            "error": self.error,
            "degraded": self.degraded,
        }


def context_efficiency(outcome: TierOutcome) -> float:
    """0.4 (1 - ratio) + 0.3 min(rules per compressed item / 10, 1) + 0.3 retention ratio."""
    rule_density = outcome.rules_created / max(outcome.compressed, 1)
    retention = outcome.kept / max(outcome.kept + outcome.deleted, 1)
    return (
        0.4 * (1.0 - outcome.compression_ratio)
        + 0.3 * min(rule_density / 10.0, 1.0)
        + 0.3 * retention
    )


class DistillationOrchestrator:
    """
    Top-level distillation cycle driver.

    Example:
        orchestrator = DistillationOrchestrator(persistence=InMemoryCheckpointStore())
        orchestrator.add_listener(lambda event: print(event.to_dict()))

        report = await orchestrator.distill("agent-1", new_items, context=agent_context)
        batch = orchestrator.get_store("agent-1").sample(32)
    """

    def __init__(
        self,
        config: Optional[DistilleryConfig] = None,
        persistence: Optional[CheckpointStore] = None,
        registry: Optional[AgentRegistry] = None
    ):
        """
        Initialize the orchestrator and its components.

        Args:
            config: Full configuration (default: global config)
            persistence: Checkpoint backend; None keeps state in memory only
            registry: Per-agent state registry (default: one building
                      stores from ``config.store``)
        """
        self.config = config or get_config()
        self.persistence = persistence

        self.grouper = SimilarityGrouper.from_config(self.config.store)
        self.scorer = ValueScorer(self.config.scoring, grouper=self.grouper)
        self.engine = CompactionEngine(self.config.compaction, grouper=self.grouper)
        self.registry = registry or AgentRegistry(
            store_factory=lambda agent_id: BoundedStore(config=self.config.store, grouper=self.grouper),
            history_size=self.config.monitor.history_size,
            metrics_history=self.config.orchestrator.metrics_history,
        )
        self.monitor = OverloadMonitor(self.config.monitor, registry=self.registry)
        self.admission = AdmissionController(self.config.bounds, registry=self.registry)
        self.events = EventDispatcher()

        self._accepting = True
        self._total_cycles = 0
        self._failed_cycles = 0
        self._items_processed = 0
        self._rules_created = 0

        logger.info(
            f"Initialized DistillationOrchestrator: "
            f"policy={self.config.orchestrator.concurrency_policy}, "
            f"auto_compact={self.config.orchestrator.auto_compact}, "
            f"persistence={'enabled' if persistence else 'disabled'}"
        )

    # ------------------------------------------------------------------
    # Listeners and accessors
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener):
        self.events.add_listener(listener)

    def remove_listener(self, listener: Listener) -> bool:
        return self.events.remove_listener(listener)

    def get_store(self, agent_id: str) -> BoundedStore:
        """The agent's store, for the training loop's ``add_item``/``sample`` calls."""
        return self.registry.get_or_create(agent_id).store

    def get_rules(self, agent_id: str) -> List[Any]:
        state = self.registry.get(agent_id)
        return list(state.rules) if state is not None else []

    def _emit(self, event_type: EventType, agent_id: str, **payload):
        self.events.emit(DistillationEvent(event_type=event_type, agent_id=agent_id, payload=payload))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _validate_batch(
        self,
        items: Iterable[Union[ExperienceItem, Dict[str, Any]]]
    ) -> Tuple[List[ExperienceItem], int]:
        valid: List[ExperienceItem] = []
        rejected = 0
        for raw in items:
            try:
                if isinstance(raw, ExperienceItem):
                    valid.append(raw.validate())
                else:
                    valid.append(ExperienceItem.from_dict(raw))
            except InvalidItemError as e:
                logger.warning(f"Rejected invalid item: {e}")
                rejected += 1
        return valid, rejected

    def classify(
        self,
        items: List[ExperienceItem],
        now: float,
        pattern_table: Optional[PatternFrequencyTable] = None
    ) -> ClassifiedBatch:
        """
        Score a batch and partition it by retention action.

        KEEP_FULL items are high value; COMPRESS and SUMMARIZE items are
        compression candidates; DELETE items are deletion candidates. An item
        whose scoring fails is treated as value 0.0 / DELETE.
        """
        batch = ClassifiedBatch()
        for item in items:
            try:
                assessment = self.scorer.score(item, now=now, pattern_table=pattern_table)
            except Exception as e:
                logger.warning(f"Scoring failed for item {item.item_id[:8]}, treating as lowest value: {e}")
                assessment = ValueAssessment(
                    value=0.0,
                    breakdown={},
                    retention_action=RetentionAction.DELETE,
                    is_compression_candidate=False,
                )
            item.value = assessment.value
            scored = ScoredItem(item=item, assessment=assessment)

            if assessment.retention_action == RetentionAction.KEEP_FULL:
                batch.high_value.append(scored)
            elif assessment.retention_action == RetentionAction.DELETE:
                batch.deletion_candidates.append(scored)
            else:
                batch.compression_candidates.append(scored)
        return batch

    @staticmethod
    def select_tier(assessment: ComplexityAssessment, bounds: BoundsCheck) -> DistillationTier:
        if assessment.intervention == Intervention.EMERGENCY_CLEANUP:
            return DistillationTier.EMERGENCY
        if assessment.intervention == Intervention.DISTILLATION_REQUIRED:
            return DistillationTier.HIGH
        if not bounds.within_bounds:
            return DistillationTier.MEDIUM
        return DistillationTier.NORMAL

    # ------------------------------------------------------------------
    # Tier behaviour
    # ------------------------------------------------------------------

    def plan_tier(self, tier: DistillationTier, batch: ClassifiedBatch, now: float) -> TierPlan:
        """
        Decide what happens to every item of a classified batch.

        Items a tier neither keeps, compresses nor deletes are deferred:
        admitted unchanged.
        """
        plan = TierPlan()
        low_value = self.config.orchestrator.low_value_threshold

        if tier == DistillationTier.EMERGENCY:
            ranked = sorted(batch.all_items(), key=lambda s: s.value, reverse=True)
            keep_count = int(math.floor(len(ranked) * self.config.orchestrator.emergency_keep_ratio))
            survivors = ranked[:keep_count]
            plan.keep = [s.item for s in survivors]
            kept_ids = {s.item.item_id for s in survivors}
            for scored in batch.high_value + batch.compression_candidates:
                if scored.item.item_id not in kept_ids:
                    plan.compress.append(scored.item)
            for scored in batch.deletion_candidates:
                if scored.item.item_id not in kept_ids:
                    plan.delete.append(scored.item)
            return plan

        plan.keep = [s.item for s in batch.high_value]

        if tier == DistillationTier.HIGH:
            plan.compress = [s.item for s in batch.compression_candidates]
            plan.delete = [s.item for s in batch.deletion_candidates]
            return plan

        max_age = self.config.bounds.max_retention_days * SECONDS_PER_DAY
        for scored in batch.compression_candidates:
            if tier == DistillationTier.MEDIUM:
                compress = scored.assessment.is_compression_candidate
            else:
                compress = (
                    scored.value >= self.config.scoring.compress_threshold
                    and scored.assessment.is_compression_candidate
                )
            (plan.compress if compress else plan.deferred).append(scored.item)

        for scored in batch.deletion_candidates:
            delete = scored.value < low_value
            if tier == DistillationTier.NORMAL:
                delete = delete or scored.item.age_seconds(now) > max_age
            (plan.delete if delete else plan.deferred).append(scored.item)

        return plan

    def _execute_plan(
        self,
        state: AgentState,
        tier: DistillationTier,
        plan: TierPlan,
        items: List[ExperienceItem],
        now: float
    ) -> Tuple[TierOutcome, CompactionResult]:
        before_size = sum(item.serialized_size() for item in items)

        if plan.compress:
            compaction = self.engine.compact(plan.compress, cancel_event=state.cancel_event, now=now)
        else:
            compaction = CompactionResult(rules=[], metrics=CompactionMetrics(0, 0))

        admit = plan.keep + plan.deferred + compaction.surviving_items()
        state.store.refresh_values(self.scorer, now=now, pattern_table=state.pattern_table)
        state.store.apply_changes(admit_items=admit)
        if state.store.size() > state.store.capacity:
            raise CapacityViolationError(state.store.size(), state.store.capacity)

        new_rules = [rule for rule in compaction.rules if not rule.is_degenerate]
        state.rules.extend(new_rules)

        after_size = (
            sum(item.serialized_size() for item in plan.keep + plan.deferred)
            + compaction.metrics.after_size
        )
        outcome = TierOutcome(
            tier=tier,
            kept=len(plan.keep),
            compressed=len(plan.compress),
            deleted=len(plan.delete),
            deferred=len(plan.deferred),
            rules_created=compaction.rules_created,
            before_size=before_size,
            after_size=after_size,
        )
        logger.info(
            f"[{state.agent_id}] {tier.value} tier: kept={outcome.kept} "
            f"compressed={outcome.compressed} deleted={outcome.deleted} "
            f"deferred={outcome.deferred} rules={outcome.rules_created}"
        )
        return outcome, compaction

    def _maybe_compact(self, state: AgentState, now: float) -> Optional[CompactionResult]:
        if not state.store.should_compact():
            return None
        occupancy = state.store.occupancy
        self._emit(EventType.COMPACTION_REQUESTED, state.agent_id, occupancy=occupancy)
        if not self.config.orchestrator.auto_compact:
            return None
        result = state.store.compact(self.engine, cancel_event=state.cancel_event, now=now)
        state.rules.extend(rule for rule in result.rules if not rule.is_degenerate)
        self._rules_created += result.rules_created
        return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _ensure_restored(self, state: AgentState):
        if state.restored:
            return
        state.restored = True
        if self.persistence is None:
            return
        try:
            blob = await self.persistence.load(state.agent_id)
        except Exception as e:
            error = PersistenceUnavailableError(state.agent_id, "load", e)
            logger.warning(f"{error}; continuing with in-memory state (degraded mode)")
            state.degraded = True
            return
        if blob is None:
            logger.info(f"No checkpoint for {state.agent_id}; cold start")
            return
        try:
            state.load_checkpoint(decode_checkpoint(blob))
        except Exception as e:
            error = PersistenceUnavailableError(state.agent_id, "restore", e)
            logger.error(
                f"{error}; keeping the stored checkpoint and continuing with "
                f"in-memory state (degraded mode)"
            )
            state.degraded = True
            state.checkpoint_unreadable = True

    async def _save_checkpoint(self, state: AgentState) -> bool:
        if self.persistence is None:
            return False
        if state.checkpoint_unreadable:
            logger.warning(f"Not overwriting unreadable checkpoint for {state.agent_id}")
            state.dirty = True
            return False
        try:
            await self.persistence.save(state.agent_id, encode_checkpoint(state.to_checkpoint()))
        except Exception as e:
            error = PersistenceUnavailableError(state.agent_id, "save", e)
            logger.warning(f"{error}; will retry next cycle (degraded mode)")
            state.dirty = True
            state.degraded = True
            return False
        state.dirty = False
        state.degraded = False
        return True

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def distill(
        self,
        agent_id: str,
        items: Iterable[Union[ExperienceItem, Dict[str, Any]]],
        context: Optional[Mapping[str, Any]] = None,
        now: Optional[float] = None
    ) -> DistillationReport:
        """
        Run one distillation cycle for an agent.

        Args:
            agent_id: Agent identifier
            items: New experience items (ExperienceItem or mappings)
            context: Opaque context object for complexity and bounds analysis
            now: Reference time in epoch seconds (default: current time)

        Returns:
            DistillationReport (``success=False`` with ``error`` on failure)

        Raises:
            CycleInProgressError: Under the ``reject`` policy, if a cycle for
                                  this agent is already running
            DistilleryError: If the orchestrator has been shut down
        """
        if not self._accepting:
            raise DistilleryError("Orchestrator is shut down")

        state = self.registry.get_or_create(agent_id)
        if self.config.orchestrator.concurrency_policy == "reject" and state.cycle_lock.locked():
            logger.warning(f"Rejected concurrent distillation cycle for {agent_id}")
            raise CycleInProgressError(agent_id)

        async with state.cycle_lock:
            await self._ensure_restored(state)
            return await self._run_cycle(state, list(items), context, now)

    async def _run_cycle(
        self,
        state: AgentState,
        raw_items: List[Union[ExperienceItem, Dict[str, Any]]],
        context: Optional[Mapping[str, Any]],
        now: Optional[float]
    ) -> DistillationReport:
        start = time.perf_counter()
        now = time.time() if now is None else now
        agent_id = state.agent_id
        workflow = state.workflow
        state.cancel_event.clear()

        items, rejected = self._validate_batch(raw_items)
        logger.info(f"Starting distillation cycle for {agent_id}: {len(items)} items")

        try:
            with state.store.exclusive():
                workflow.transition_to(DistillationState.ANALYZING, action=f"{len(items)} new items")

                state.pattern_table = PatternFrequencyTable.from_items(
                    state.store.items() + items, self.grouper
                )
                batch = self.classify(items, now, pattern_table=state.pattern_table)
                snapshot = ContextSnapshot.from_context(
                    context, items=state.store.items() + items, rules=state.rules
                )
                assessment = self.monitor.assess(agent_id, snapshot)
                bounds = self.admission.check_bounds(snapshot, now=now)
                tier = self.select_tier(assessment, bounds)

                workflow.transition_to(
                    TIER_STATES[tier],
                    action=f"composite={assessment.composite:.3f}, within_bounds={bounds.within_bounds}"
                )
                logger.info(
                    f"[{agent_id}] tier={tier.value} (level={assessment.level.value}, "
                    f"within_bounds={bounds.within_bounds})"
                )

                plan = self.plan_tier(tier, batch, now)
                outcome, _ = self._execute_plan(state, tier, plan, items, now)
                auto_compaction = self._maybe_compact(state, now)

                workflow.transition_to(DistillationState.FINALIZING, action="recording metrics")
                efficiency = context_efficiency(outcome)
                learning_rate = self.admission.learning_rate(agent_id, efficiency)
                state.completed_cycles += 1
                self.admission.record_iteration(agent_id, state.completed_cycles)

                processing_time = time.perf_counter() - start
                state.metrics.append({
                    "agent_id": agent_id,
                    "timestamp": now,
                    "tier": tier.value,
                    "items": len(items),
                    "kept": outcome.kept,
                    "compressed": outcome.compressed,
                    "deleted": outcome.deleted,
                    "deferred": outcome.deferred,
                    "rules_created": outcome.rules_created,
                    "compression_ratio": outcome.compression_ratio,
                    "context_size_reduction": outcome.context_size_reduction,
                    "context_efficiency": efficiency,
                    "learning_rate": learning_rate,
                    "composite": assessment.composite,
                    "processing_time": processing_time,
                })
                self._total_cycles += 1
                self._items_processed += len(items)
                self._rules_created += outcome.rules_created

            state.dirty = True
            await self._save_checkpoint(state)
            workflow.transition_to(DistillationState.IDLE, action="cycle complete")

        except Exception as e:
            logger.error(f"Distillation cycle failed for {agent_id}: {e}")
            if not workflow.is_idle:
                workflow.transition_to(DistillationState.IDLE, action=f"failed: {e}")
            self._failed_cycles += 1
            self._emit(EventType.DISTILLATION_FAILED, agent_id, reason=str(e))
            return DistillationReport(
                agent_id=agent_id,
                success=False,
                processing_time=time.perf_counter() - start,
                rejected=rejected,
                error=str(e),
                degraded=state.degraded,
            )

        report = DistillationReport(
            agent_id=agent_id,
            success=True,
            tier=tier,
            outcome=outcome,
            assessment=assessment,
            bounds=bounds,
            context_efficiency=efficiency,
            learning_rate=learning_rate,
            processing_time=processing_time,
            rejected=rejected,
            compaction=auto_compaction,
            degraded=state.degraded,
        )
        self._emit(
            EventType.DISTILLATION_COMPLETED,
            agent_id,
            tier=tier.value,
            metrics=state.metrics[-1],
        )
        logger.info(
            f"Distillation cycle complete for {agent_id}: tier={tier.value}, "
            f"ratio={outcome.compression_ratio:.3f}, lr={learning_rate:.5f}, "
            f"time={processing_time:.3f}s"
        )
        return report

    async def compact(self, agent_id: str, now: Optional[float] = None) -> CompactionResult:
        """
        Compact an agent's whole store under its cycle lock.

        Returns:
            The CompactionResult
        """
        if not self._accepting:
            raise DistilleryError("Orchestrator is shut down")
        state = self.registry.get_or_create(agent_id)
        async with state.cycle_lock:
            await self._ensure_restored(state)
            state.cancel_event.clear()
            result = state.store.compact(self.engine, cancel_event=state.cancel_event, now=now)
            state.rules.extend(rule for rule in result.rules if not rule.is_degenerate)
            self._rules_created += result.rules_created
            state.dirty = True
            await self._save_checkpoint(state)
        return result

    def cancel(self, agent_id: str) -> bool:
        """
        Request cooperative cancellation of the agent's running compaction.

        Compaction runs synchronously on the event loop thread, so the
        request comes from another thread, typically the training loop.
        Clusters not yet processed are kept unmodified. The flag is cleared
        when the agent's next cycle or compaction starts, so a request made
        while nothing is running has no effect.

        Returns:
            False if the agent is unknown
        """
        state = self.registry.get(agent_id)
        if state is None:
            return False
        state.cancel_event.set()
        logger.info(f"Cancellation requested for {agent_id}")
        return True

    async def shutdown(self):
        """Stop accepting cycles and save every agent with unsaved state."""
        self._accepting = False
        saved = 0
        for state in self.registry.states():
            if not state.dirty:
                continue
            async with state.cycle_lock:
                if await self._save_checkpoint(state):
                    saved += 1
        logger.info(f"DistillationOrchestrator shut down ({saved} checkpoints saved)")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def metrics_frame(self, agent_id: Optional[str] = None) -> pd.DataFrame:
        """
        Per-cycle metrics as a DataFrame.

        Args:
            agent_id: Restrict to one agent (default: all agents)

        Returns:
            DataFrame with one row per retained cycle
        """
        if agent_id is not None:
            state = self.registry.get(agent_id)
            rows = list(state.metrics) if state is not None else []
        else:
            rows = [row for state in self.registry.states() for row in state.metrics]
        return pd.DataFrame(rows, columns=METRIC_COLUMNS)

    def get_system_status(self) -> Dict[str, Any]:
        """Totals, averages over retained metrics and configured thresholds."""
        frame = self.metrics_frame()
        has_rows = not frame.empty
        return {
            "accepting": self._accepting,
            "agents": len(self.registry),
            "total_cycles": self._total_cycles,
            "failed_cycles": self._failed_cycles,
            "items_processed": self._items_processed,
            "rules_created": self._rules_created,
            "average_compression_ratio": float(frame["compression_ratio"].mean()) if has_rows else 1.0,
            "average_processing_time": float(frame["processing_time"].mean()) if has_rows else 0.0,
            "tier_counts": frame["tier"].value_counts().to_dict() if has_rows else {},
            "thresholds": {
                "complexity": {
                    "low": self.config.monitor.low_threshold,
                    "medium": self.config.monitor.medium_threshold,
                    "high": self.config.monitor.high_threshold,
                },
                "bounds": {
                    "max_context_size": self.config.bounds.max_context_size,
                    "max_pattern_count": self.config.bounds.max_pattern_count,
                    "max_rule_count": self.config.bounds.max_rule_count,
                    "max_retention_days": self.config.bounds.max_retention_days,
                },
                "compaction_threshold": self.config.store.compaction_threshold,
            },
        }
