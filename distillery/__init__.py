"""
Distillery: bounded experience store and memory distillation pipeline.

Keeps an autonomous learner's experience collection bounded while
preserving what matters most. On every cycle the pipeline decides what to
keep in full, what to compress into a summary rule and what to discard.

Key Components:
- ValueScorer: item -> value in [0, 1] plus a retention action
- BoundedStore: fixed-capacity store with value-based eviction and priority sampling
- CompactionEngine: folds clusters of similar items into rules
- OverloadMonitor: composite context-complexity score and intervention tier
- AdmissionController: hard bounds and adaptive learning rate
- DistillationOrchestrator: four-tier distillation cycle per agent
"""

from .compression import CompactionEngine
from .config import DistilleryConfig, get_config, reset_config, setup_logging
from .core import (
    AdmissionController,
    BoundedStore,
    PatternFrequencyTable,
    SimilarityGrouper,
    ValueScorer,
)
from .exceptions import (
    CapacityViolationError,
    CompactionPartialFailure,
    CycleInProgressError,
    DistilleryError,
    InvalidItemError,
    InvalidTransitionError,
    PersistenceUnavailableError,
)
from .models import ContextSnapshot, ExperienceItem, RetentionAction, Rule
from .monitoring import ComplexityLevel, Intervention, OverloadMonitor
from .orchestration import DistillationOrchestrator, DistillationTier, EventType
from .persistence import CheckpointStore, InMemoryCheckpointStore

__version__ = "0.1.0"

__all__ = [
    "CompactionEngine",
    "DistilleryConfig",
    "get_config",
    "reset_config",
    "setup_logging",
    "AdmissionController",
    "BoundedStore",
    "PatternFrequencyTable",
    "SimilarityGrouper",
    "ValueScorer",
    "CapacityViolationError",
    "CompactionPartialFailure",
    "CycleInProgressError",
    "DistilleryError",
    "InvalidItemError",
    "InvalidTransitionError",
    "PersistenceUnavailableError",
    "ContextSnapshot",
    "ExperienceItem",
    "RetentionAction",
    "Rule",
    "ComplexityLevel",
    "Intervention",
    "OverloadMonitor",
    "DistillationOrchestrator",
    "DistillationTier",
    "EventType",
    "CheckpointStore",
    "InMemoryCheckpointStore",
]
