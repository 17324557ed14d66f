"""
Compaction of similar experience items into rules.
"""

from .compactor import CompactionEngine

__all__ = ["CompactionEngine"]
