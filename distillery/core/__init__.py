"""
Core components: scoring, grouping, the bounded store, admission control,
per-agent state and the cycle state machine.
"""

from .admission import AdmissionController, BoundsCheck, RecommendedAction
from .agent_state import AgentRegistry, AgentState
from .grouping import SimilarityGrouper
from .scoring import PatternFrequencyTable, ValueScorer
from .store import BoundedStore, SampledItem, StoreStats
from .workflow import DistillationState, DistillationWorkflow, WorkflowTransition

__all__ = [
    "AdmissionController",
    "BoundsCheck",
    "RecommendedAction",
    "AgentRegistry",
    "AgentState",
    "SimilarityGrouper",
    "PatternFrequencyTable",
    "ValueScorer",
    "BoundedStore",
    "SampledItem",
    "StoreStats",
    "DistillationState",
    "DistillationWorkflow",
    "WorkflowTransition",
]
