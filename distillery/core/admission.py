"""
Admission bounds and adaptive learning rate.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from distillery.config import BoundsConfig, get_config
from distillery.core.agent_state import AgentRegistry
from distillery.models.snapshot import ContextSnapshot

logger = logging.getLogger(__name__)


class RecommendedAction(str, Enum):
    CONTINUE_LEARNING = "CONTINUE_LEARNING"
    TRIGGER_DISTILLATION = "TRIGGER_DISTILLATION"


@dataclass
class BoundsCheck:
    """Outcome of the four independent bound checks."""

    within_bounds: bool
    per_bound: Dict[str, bool]
    recommended_action: RecommendedAction
    measurements: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "within_bounds": self.within_bounds,
            "per_bound": dict(self.per_bound),
            "recommended_action": self.recommended_action.value,
            "measurements": dict(self.measurements),
        }


class AdmissionController:
    """
    Enforces hard bounds on an agent's context and derives its learning rate.

    Learning rate = base * clamp(efficiency, 0.1, 2.0) * decay ** iterations,
    so it never increases as an agent completes more distillation cycles.
    """

    def __init__(
        self,
        config: Optional[BoundsConfig] = None,
        registry: Optional[AgentRegistry] = None
    ):
        self.config = config or get_config().bounds
        self.registry = registry or AgentRegistry()
        logger.info(
            f"Initialized AdmissionController: max_context_size={self.config.max_context_size}, "
            f"max_pattern_count={self.config.max_pattern_count}, "
            f"max_rule_count={self.config.max_rule_count}, "
            f"max_retention_days={self.config.max_retention_days}"
        )

    def check_bounds(
        self,
        snapshot: Union[ContextSnapshot, Mapping[str, Any], None],
        now: Optional[float] = None
    ) -> BoundsCheck:
        """
        Check the snapshot against the four admission bounds.

        Args:
            snapshot: ContextSnapshot, or an opaque context mapping
            now: Reference time for the oldest-item age (default: current time)

        Returns:
            BoundsCheck; ``CONTINUE_LEARNING`` only if every bound holds
        """
        if not isinstance(snapshot, ContextSnapshot):
            snapshot = ContextSnapshot.from_context(snapshot)
        now = time.time() if now is None else now

        measurements = {
            "context_size": float(snapshot.serialized_bytes),
            "pattern_count": float(snapshot.pattern_count),
            "rule_count": float(snapshot.rule_count),
            "retention_days": float(snapshot.oldest_age_days(now)),
        }
        per_bound = {
            "context_size": measurements["context_size"] <= self.config.max_context_size,
            "pattern_count": measurements["pattern_count"] <= self.config.max_pattern_count,
            "rule_count": measurements["rule_count"] <= self.config.max_rule_count,
            "retention_days": measurements["retention_days"] <= self.config.max_retention_days,
        }
        within_bounds = all(per_bound.values())

        if not within_bounds:
            exceeded = [name for name, ok in per_bound.items() if not ok]
            logger.debug(f"Bounds exceeded: {exceeded}")

        return BoundsCheck(
            within_bounds=within_bounds,
            per_bound=per_bound,
            recommended_action=(
                RecommendedAction.CONTINUE_LEARNING if within_bounds
                else RecommendedAction.TRIGGER_DISTILLATION
            ),
            measurements=measurements,
        )

    def iterations(self, agent_id: str) -> int:
        state = self.registry.get(agent_id)
        return state.learning_iterations if state is not None else 0

    def learning_rate(self, agent_id: str, efficiency: float) -> float:
        """
        Learning rate for an agent given this cycle's context efficiency.

        Args:
            agent_id: Agent identifier
            efficiency: Context efficiency of the cycle

        Returns:
            Learning rate
        """
        if efficiency is None or not math.isfinite(efficiency):
            logger.warning(f"Non-finite efficiency for {agent_id}; using minimum")
            efficiency = self.config.min_efficiency
        clamped = min(max(efficiency, self.config.min_efficiency), self.config.max_efficiency)
        return (
            self.config.learning_rate_base
            * clamped
            * self.config.learning_rate_decay ** self.iterations(agent_id)
        )

    def record_iteration(self, agent_id: str, iteration_index: int):
        """
        Advance the agent's iteration counter to ``iteration_index``.

        Calls with an index at or below the current counter leave it unchanged.

        Raises:
            ValueError: If the index is negative
        """
        if iteration_index < 0:
            raise ValueError("iteration_index must be non-negative")
        state = self.registry.get_or_create(agent_id)
        state.learning_iterations = max(state.learning_iterations, int(iteration_index))
