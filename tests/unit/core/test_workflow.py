"""
Unit tests for the distillation cycle state machine.
"""

from datetime import datetime

import pytest

from distillery.core.workflow import (
    TIER_STATES,
    DistillationState,
    DistillationWorkflow,
    WorkflowTransition,
)
from distillery.exceptions import InvalidTransitionError


class TestWorkflowTransition:
    """Test workflow transition model."""

    def test_create_transition(self):
        """Test creating a transition."""
        transition = WorkflowTransition(
            from_state=DistillationState.IDLE,
            to_state=DistillationState.ANALYZING,
            action="Start cycle"
        )

        assert transition.from_state == DistillationState.IDLE
        assert transition.to_state == "analyzing"
        assert isinstance(transition.timestamp, datetime)
        assert transition.metadata == {}

    def test_transition_with_metadata(self):
        transition = WorkflowTransition(
            from_state=DistillationState.ANALYZING,
            to_state=DistillationState.HIGH,
            action="Tier selected",
            metadata={"complexity": 0.72}
        )

        assert transition.metadata["complexity"] == 0.72


class TestDistillationWorkflow:
    """Test cycle state machine."""

    @pytest.fixture
    def workflow(self):
        return DistillationWorkflow(agent_id="agent-1")

    def test_starts_idle(self, workflow):
        assert workflow.current_state == DistillationState.IDLE
        assert workflow.is_idle
        assert workflow.get_transition_history() == []

    def test_full_cycle(self, workflow):
        """Test one complete cycle through a tier."""
        workflow.transition_to(DistillationState.ANALYZING)
        workflow.transition_to(DistillationState.HIGH)
        workflow.transition_to(DistillationState.FINALIZING)
        workflow.transition_to(DistillationState.IDLE)

        assert workflow.is_idle
        assert len(workflow.get_transition_history()) == 4

    @pytest.mark.parametrize("tier", TIER_STATES)
    def test_every_tier_reachable_from_analyzing(self, workflow, tier):
        workflow.transition_to(DistillationState.ANALYZING)
        assert workflow.transition_to(tier) is True
        assert workflow.can_transition_to(DistillationState.FINALIZING)

    @pytest.mark.parametrize("tier", TIER_STATES)
    def test_failure_returns_to_idle_from_tier(self, workflow, tier):
        workflow.transition_to(DistillationState.ANALYZING)
        workflow.transition_to(tier)

        workflow.transition_to(DistillationState.IDLE, action="Cycle failed")

        assert workflow.is_idle

    def test_failure_during_analysis(self, workflow):
        workflow.transition_to(DistillationState.ANALYZING)
        workflow.transition_to(DistillationState.IDLE)

        assert workflow.is_idle

    def test_invalid_transition(self, workflow):
        """Test that skipping analysis is rejected."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            workflow.transition_to(DistillationState.HIGH)

        assert "Invalid transition" in str(exc_info.value)
        assert workflow.is_idle

    def test_invalid_transition_is_value_error(self, workflow):
        with pytest.raises(ValueError):
            workflow.transition_to(DistillationState.FINALIZING)

    def test_cannot_switch_tier(self, workflow):
        workflow.transition_to(DistillationState.ANALYZING)
        workflow.transition_to(DistillationState.MEDIUM)

        assert not workflow.can_transition_to(DistillationState.EMERGENCY)

    def test_allowed_next_states(self, workflow):
        assert workflow.get_allowed_next_states() == [DistillationState.ANALYZING]

        workflow.transition_to(DistillationState.ANALYZING)

        allowed = workflow.get_allowed_next_states()
        assert set(TIER_STATES) <= set(allowed)
        assert DistillationState.IDLE in allowed

    def test_history_is_bounded(self):
        workflow = DistillationWorkflow(max_history=4)
        for _ in range(5):
            workflow.transition_to(DistillationState.ANALYZING)
            workflow.transition_to(DistillationState.IDLE)

        assert len(workflow.get_transition_history()) == 4

    def test_recent_transitions(self, workflow):
        workflow.transition_to(DistillationState.ANALYZING, action="first")
        workflow.transition_to(DistillationState.NORMAL, action="second")

        recent = workflow.get_recent_transitions(1)

        assert len(recent) == 1
        assert recent[0].action == "second"

    def test_reset(self, workflow):
        workflow.transition_to(DistillationState.ANALYZING)
        workflow.reset()

        assert workflow.is_idle
        assert workflow.get_transition_history() == []

    def test_to_dict(self, workflow):
        workflow.transition_to(DistillationState.ANALYZING, action="start")

        data = workflow.to_dict()

        assert data["agent_id"] == "agent-1"
        assert data["current_state"] == "analyzing"
        assert data["transition_count"] == 1
        assert data["recent_transitions"][0]["from"] == "idle"
        assert data["recent_transitions"][0]["to"] == "analyzing"

    def test_state_statistics(self, workflow):
        for tier in (DistillationState.HIGH, DistillationState.HIGH, DistillationState.NORMAL):
            workflow.transition_to(DistillationState.ANALYZING)
            workflow.transition_to(tier)
            workflow.transition_to(DistillationState.FINALIZING)
            workflow.transition_to(DistillationState.IDLE)

        stats = workflow.get_state_statistics()

        assert stats["tier_counts"] == {"high": 2, "normal": 1}
        assert stats["state_visit_counts"]["analyzing"] == 3
        assert stats["total_transitions"] == 12
        assert stats["current_state"] == "idle"
