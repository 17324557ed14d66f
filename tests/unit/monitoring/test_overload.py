"""
Unit tests for context overload monitoring.
"""

import pytest

from distillery.config import MonitorConfig, SECONDS_PER_DAY
from distillery.core.agent_state import AgentRegistry
from distillery.models.snapshot import ContextSnapshot
from distillery.monitoring.overload import (
    ComplexityLevel,
    Intervention,
    OverloadMonitor,
)


@pytest.fixture
def monitor():
    return OverloadMonitor(config=MonitorConfig(), registry=AgentRegistry())


def uniform_snapshot(fraction):
    """Snapshot whose five sub-scores all equal ``fraction``."""
    return ContextSnapshot(
        serialized_bytes=int(50000 * fraction),
        decision_depth=int(round(10 * fraction)),
        pattern_types=int(round(20 * fraction)),
        min_timestamp=0.0,
        max_timestamp=fraction * 7 * SECONDS_PER_DAY,
        uncertainty_signals=[fraction],
    )


class TestSubScores:
    """Test normalization of the individual sub-scores."""

    def test_uniform_snapshot(self, monitor):
        breakdown = monitor.sub_scores(uniform_snapshot(0.9))

        for key in ("size", "depth", "diversity", "temporal_span", "uncertainty"):
            assert breakdown[key] == pytest.approx(0.9)

    def test_sub_scores_are_clamped(self, monitor):
        breakdown = monitor.sub_scores(ContextSnapshot(
            serialized_bytes=10 ** 7,
            decision_depth=50,
            uncertainty_signals=[-3.0],
        ))

        assert breakdown["size"] == 1.0
        assert breakdown["depth"] == 1.0
        assert breakdown["uncertainty"] == 0.0

    def test_failing_sub_score_counts_as_zero(self, monitor):
        broken = ContextSnapshot(serialized_bytes="many")

        breakdown = monitor.sub_scores(broken)

        assert breakdown["size"] == 0.0

    def test_composite_weights(self, monitor):
        composite = monitor.composite_from_breakdown({
            "size": 1.0, "depth": 0.0, "diversity": 0.0, "temporal_span": 0.0, "uncertainty": 0.0
        })
        assert composite == pytest.approx(0.30)


class TestAssess:
    """Test levels, interventions and history."""

    def test_critical_context(self, monitor):
        assessment = monitor.assess("agent-1", uniform_snapshot(0.9))

        assert assessment.composite == pytest.approx(0.9)
        assert assessment.level == ComplexityLevel.CRITICAL
        assert assessment.intervention == Intervention.EMERGENCY_CLEANUP

    def test_empty_context_is_low(self, monitor):
        assessment = monitor.assess("agent-1", {})

        assert assessment.composite == pytest.approx(0.0, abs=1e-3)
        assert assessment.level == ComplexityLevel.LOW
        assert assessment.intervention == Intervention.NO_ACTION

    @pytest.mark.parametrize("composite,level", [
        (0.0, ComplexityLevel.LOW),
        (0.29, ComplexityLevel.LOW),
        (0.3, ComplexityLevel.MEDIUM),
        (0.59, ComplexityLevel.MEDIUM),
        (0.6, ComplexityLevel.HIGH),
        (0.79, ComplexityLevel.HIGH),
        (0.8, ComplexityLevel.CRITICAL),
        (1.0, ComplexityLevel.CRITICAL),
    ])
    def test_level_boundaries(self, monitor, composite, level):
        assert monitor.level_for(composite) == level

    def test_composite_is_monotone(self, monitor):
        smaller = monitor.assess("agent-1", ContextSnapshot(serialized_bytes=10000, decision_depth=3))
        larger = monitor.assess("agent-1", ContextSnapshot(serialized_bytes=20000, decision_depth=3))

        assert larger.composite >= smaller.composite

    def test_assess_context_mapping(self, monitor):
        context = {
            "decisions": {"branches": [{"conditions": []}]},
            "patterns": [{"type": "breakout"}, {"type": "reversal"}, {"type": "breakout"}],
            "events": [{"timestamp": 0.0}, {"timestamp": 3.5 * SECONDS_PER_DAY}],
            "volatility": 0.4,
            "confidence": 0.8,
        }

        assessment = monitor.assess("agent-1", context)

        assert assessment.breakdown["depth"] == pytest.approx(0.4)
        assert assessment.breakdown["diversity"] == pytest.approx(0.1)
        assert assessment.breakdown["temporal_span"] == pytest.approx(0.5)
        assert assessment.breakdown["uncertainty"] == pytest.approx(0.3)

    def test_to_dict(self, monitor):
        data = monitor.assess("agent-1", uniform_snapshot(0.5)).to_dict()

        assert data["level"] == "medium"
        assert data["intervention"] == "cleanup_recommended"


class TestHistory:
    """Test complexity history and trend."""

    def test_history_is_bounded(self, monitor):
        for i in range(15):
            monitor.assess("agent-1", uniform_snapshot(i / 20))

        history = monitor.get_history("agent-1")

        assert len(history) == 10
        assert history[-1] == pytest.approx(14 / 20, abs=0.01)

    def test_unknown_agent_has_no_history(self, monitor):
        assert monitor.get_history("nobody") == []
        assert monitor.trend("nobody") == 0.0

    def test_rising_trend(self, monitor):
        for fraction in (0.1, 0.3, 0.5):
            monitor.assess("agent-1", uniform_snapshot(fraction))

        assert monitor.trend("agent-1") == pytest.approx(0.2, abs=0.01)

    def test_decision_ignores_history(self, monitor):
        monitor.assess("agent-1", uniform_snapshot(0.95))

        assessment = monitor.assess("agent-1", uniform_snapshot(0.1))

        assert assessment.level == ComplexityLevel.LOW
