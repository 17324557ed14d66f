"""
Context overload monitoring.

Computes a composite complexity score in [0, 1] from a context snapshot and
maps it to a level and an intervention. The decision depends on the current
snapshot only; the per-agent history of composite scores is kept for trend
reporting.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import numpy as np

from distillery.config import MonitorConfig, SECONDS_PER_DAY, get_config
from distillery.core.agent_state import AgentRegistry
from distillery.models.snapshot import ContextSnapshot

logger = logging.getLogger(__name__)


class ComplexityLevel(str, Enum):
    """Context complexity level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Intervention(str, Enum):
    """Recommended reaction to the current complexity level."""

    NO_ACTION = "no_action"
    CLEANUP_RECOMMENDED = "cleanup_recommended"
    DISTILLATION_REQUIRED = "distillation_required"
    EMERGENCY_CLEANUP = "emergency_cleanup"


INTERVENTIONS = {
    ComplexityLevel.LOW: Intervention.NO_ACTION,
    ComplexityLevel.MEDIUM: Intervention.CLEANUP_RECOMMENDED,
    ComplexityLevel.HIGH: Intervention.DISTILLATION_REQUIRED,
    ComplexityLevel.CRITICAL: Intervention.EMERGENCY_CLEANUP,
}


@dataclass
class ComplexityAssessment:
    """Result of one monitoring call."""

    agent_id: str
    composite: float
    level: ComplexityLevel
    intervention: Intervention
    breakdown: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "composite": self.composite,
            "level": self.level.value,
            "intervention": self.intervention.value,
            "breakdown": dict(self.breakdown),
        }


class OverloadMonitor:
    """
    Composite complexity monitor.

    Composite = 0.30 size + 0.25 depth + 0.20 diversity + 0.15 temporal span
    + 0.10 uncertainty, each sub-score normalized against its ceiling and
    clamped to [0, 1].
    """

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        registry: Optional[AgentRegistry] = None
    ):
        """
        Initialize the monitor.

        Args:
            config: Weights, ceilings and thresholds (default: global config)
            registry: Per-agent state holding the complexity history
        """
        self.config = config or get_config().monitor
        self.registry = registry or AgentRegistry(history_size=self.config.history_size)
        self.weights = {
            "size": self.config.size_weight,
            "depth": self.config.depth_weight,
            "diversity": self.config.diversity_weight,
            "temporal_span": self.config.temporal_weight,
            "uncertainty": self.config.uncertainty_weight,
        }
        logger.info(
            f"Initialized OverloadMonitor: thresholds=({self.config.low_threshold}, "
            f"{self.config.medium_threshold}, {self.config.high_threshold})"
        )

    def _sub_score(self, name: str, compute: Callable[[], float]) -> float:
        try:
            return min(max(float(compute()), 0.0), 1.0)
        except Exception as e:
            logger.warning(f"Could not compute {name} complexity, using 0.0: {e}")
            return 0.0

    def sub_scores(self, snapshot: ContextSnapshot) -> Dict[str, float]:
        """Normalized sub-scores of a snapshot."""
        span_ceiling = self.config.span_ceiling_days * SECONDS_PER_DAY
        return {
            "size": self._sub_score(
                "size", lambda: snapshot.serialized_bytes / self.config.size_ceiling_bytes
            ),
            "depth": self._sub_score(
                "depth", lambda: snapshot.decision_depth / self.config.depth_ceiling
            ),
            "diversity": self._sub_score(
                "diversity", lambda: snapshot.pattern_types / self.config.diversity_ceiling
            ),
            "temporal_span": self._sub_score(
                "temporal_span", lambda: snapshot.temporal_span_seconds / span_ceiling
            ),
            "uncertainty": self._sub_score("uncertainty", lambda: snapshot.mean_uncertainty),
        }

    def composite_from_breakdown(self, breakdown: Mapping[str, float]) -> float:
        """Weighted sum of sub-scores, clamped to [0, 1]."""
        total = sum(self.weights[key] * breakdown.get(key, 0.0) for key in self.weights)
        return min(max(total, 0.0), 1.0)

    def level_for(self, composite: float) -> ComplexityLevel:
        if composite < self.config.low_threshold:
            return ComplexityLevel.LOW
        if composite < self.config.medium_threshold:
            return ComplexityLevel.MEDIUM
        if composite < self.config.high_threshold:
            return ComplexityLevel.HIGH
        return ComplexityLevel.CRITICAL

    def assess(
        self,
        agent_id: str,
        snapshot: Union[ContextSnapshot, Mapping[str, Any], None]
    ) -> ComplexityAssessment:
        """
        Assess a context snapshot and record the composite in the agent's history.

        Args:
            agent_id: Agent identifier
            snapshot: ContextSnapshot, or an opaque context mapping

        Returns:
            ComplexityAssessment
        """
        if not isinstance(snapshot, ContextSnapshot):
            snapshot = ContextSnapshot.from_context(snapshot)

        breakdown = self.sub_scores(snapshot)
        composite = self.composite_from_breakdown(breakdown)
        level = self.level_for(composite)
        assessment = ComplexityAssessment(
            agent_id=agent_id,
            composite=composite,
            level=level,
            intervention=INTERVENTIONS[level],
            breakdown=breakdown,
        )

        self.registry.get_or_create(agent_id).complexity_history.append(composite)
        logger.debug(f"[{agent_id}] complexity={composite:.3f} level={level.value}")
        return assessment

    def get_history(self, agent_id: str) -> List[float]:
        """Retained composite scores for an agent, oldest first."""
        state = self.registry.get(agent_id)
        return list(state.complexity_history) if state is not None else []

    def trend(self, agent_id: str) -> float:
        """Least-squares slope of the retained composite scores (0.0 with fewer than two)."""
        history = self.get_history(agent_id)
        if len(history) < 2:
            return 0.0
        slope, _ = np.polyfit(np.arange(len(history), dtype=float), np.array(history), 1)
        return float(slope)
