"""
Distillation cycle state machine.

IDLE → ANALYZING → {EMERGENCY | HIGH | MEDIUM | NORMAL} → FINALIZING → IDLE

There is no persistent failure state: a failed cycle returns straight to
IDLE from whichever state it was in.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel, ConfigDict, Field

from distillery.exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class DistillationState(str, Enum):
    """States of one agent's distillation cycle."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    EMERGENCY = "emergency"
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"
    FINALIZING = "finalizing"


TIER_STATES = (
    DistillationState.EMERGENCY,
    DistillationState.HIGH,
    DistillationState.MEDIUM,
    DistillationState.NORMAL,
)


class WorkflowTransition(BaseModel):
    """A transition between cycle states."""

    model_config = ConfigDict(use_enum_values=True)

    from_state: DistillationState
    to_state: DistillationState
    action: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DistillationWorkflow:
    """
    State machine for one agent's distillation cycles.

    Validates transitions and keeps a bounded transition history.
    """

    ALLOWED_TRANSITIONS = {
        DistillationState.IDLE: [
            DistillationState.ANALYZING,
        ],
        DistillationState.ANALYZING: [
            *TIER_STATES,
            DistillationState.IDLE,  # Failure during analysis
        ],
        DistillationState.EMERGENCY: [DistillationState.FINALIZING, DistillationState.IDLE],
        DistillationState.HIGH: [DistillationState.FINALIZING, DistillationState.IDLE],
        DistillationState.MEDIUM: [DistillationState.FINALIZING, DistillationState.IDLE],
        DistillationState.NORMAL: [DistillationState.FINALIZING, DistillationState.IDLE],
        DistillationState.FINALIZING: [
            DistillationState.IDLE,
        ],
    }

    def __init__(
        self,
        agent_id: str = "",
        initial_state: DistillationState = DistillationState.IDLE,
        max_history: int = 1000
    ):
        """
        Initialize workflow state machine.

        Args:
            agent_id: Agent this workflow belongs to (for log messages)
            initial_state: Starting state
            max_history: Number of transitions retained
        """
        self.agent_id = agent_id
        self.current_state = initial_state
        self.max_history = max_history
        self.transition_history: List[WorkflowTransition] = []

        logger.debug(f"DistillationWorkflow for {agent_id!r} initialized in state: {self.current_state.value}")

    @property
    def is_idle(self) -> bool:
        return self.current_state == DistillationState.IDLE

    def can_transition_to(self, target_state: DistillationState) -> bool:
        allowed = self.ALLOWED_TRANSITIONS.get(self.current_state, [])
        return target_state in allowed

    def transition_to(
        self,
        target_state: DistillationState,
        action: str = "",
        metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Transition to a new state.

        Args:
            target_state: State to transition to
            action: Description of the action triggering transition
            metadata: Additional metadata about the transition

        Returns:
            bool: True if transition successful

        Raises:
            InvalidTransitionError: If transition is not allowed
        """
        if not self.can_transition_to(target_state):
            allowed = [s.value for s in self.get_allowed_next_states()]
            raise InvalidTransitionError(
                f"Invalid transition from {self.current_state.value} to {target_state.value}. "
                f"Allowed transitions: {allowed}"
            )

        transition = WorkflowTransition(
            from_state=self.current_state,
            to_state=target_state,
            action=action or f"Transition to {target_state.value}",
            metadata=metadata or {}
        )

        self.current_state = target_state
        self.transition_history.append(transition)
        if len(self.transition_history) > self.max_history:
            del self.transition_history[:-self.max_history]

        logger.debug(f"[{self.agent_id}] Transitioned to {target_state.value}: {action}")
        return True

    def get_allowed_next_states(self) -> List[DistillationState]:
        """Get list of states that can be transitioned to from current state."""
        return list(self.ALLOWED_TRANSITIONS.get(self.current_state, []))

    def get_transition_history(self) -> List[WorkflowTransition]:
        """Get full transition history."""
        return self.transition_history.copy()

    def get_recent_transitions(self, n: int = 5) -> List[WorkflowTransition]:
        """Get N most recent transitions."""
        return self.transition_history[-n:]

    def reset(self):
        """Reset workflow to IDLE, e.g. after a cycle aborted mid-way."""
        self.current_state = DistillationState.IDLE
        self.transition_history = []
        logger.debug(f"[{self.agent_id}] DistillationWorkflow reset to IDLE")

    def to_dict(self) -> Dict[str, Any]:
        """Export workflow state to dictionary."""
        return {
            "agent_id": self.agent_id,
            "current_state": self.current_state.value,
            "transition_count": len(self.transition_history),
            "recent_transitions": [
                {
                    "from": t.from_state,
                    "to": t.to_state,
                    "action": t.action,
                    "timestamp": t.timestamp.isoformat()
                }
                for t in self.get_recent_transitions(5)
            ]
        }

    def get_state_statistics(self) -> Dict[str, Any]:
        """Get visit counts per state and the tier chosen most often."""
        state_counts: Dict[str, int] = {}
        for transition in self.transition_history:
            state_counts[transition.to_state] = state_counts.get(transition.to_state, 0) + 1

        tier_counts = {
            state.value: state_counts[state.value]
            for state in TIER_STATES
            if state.value in state_counts
        }

        return {
            "state_visit_counts": state_counts,
            "tier_counts": tier_counts,
            "total_transitions": len(self.transition_history),
            "current_state": self.current_state.value
        }
