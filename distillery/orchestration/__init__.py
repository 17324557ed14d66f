"""
Distillation cycle orchestration and notifications.
"""

from .events import DistillationEvent, EventDispatcher, EventType
from .orchestrator import (
    ClassifiedBatch,
    DistillationOrchestrator,
    DistillationReport,
    DistillationTier,
    ScoredItem,
    TierOutcome,
    TierPlan,
    context_efficiency,
)

__all__ = [
    "DistillationEvent",
    "EventDispatcher",
    "EventType",
    "ClassifiedBatch",
    "DistillationOrchestrator",
    "DistillationReport",
    "DistillationTier",
    "ScoredItem",
    "TierOutcome",
    "TierPlan",
    "context_efficiency",
]
