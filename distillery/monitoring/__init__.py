"""
Context overload monitoring.
"""

from .overload import (
    ComplexityAssessment,
    ComplexityLevel,
    Intervention,
    OverloadMonitor,
)

__all__ = [
    "ComplexityAssessment",
    "ComplexityLevel",
    "Intervention",
    "OverloadMonitor",
]
