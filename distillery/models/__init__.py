"""
Data model for the distillation pipeline: experience items, rules and context snapshots.
"""

from .experience import ExperienceItem, RetentionAction, ValueAssessment
from .rule import CompactionMetrics, CompactionResult, Rule, RuleOutcomes
from .snapshot import ContextSnapshot

__all__ = [
    "ExperienceItem",
    "RetentionAction",
    "ValueAssessment",
    "Rule",
    "RuleOutcomes",
    "CompactionMetrics",
    "CompactionResult",
    "ContextSnapshot",
]
