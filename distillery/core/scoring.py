"""
Experience value scoring.

Determines which items to keep in full, compress into rules, summarize or
delete. The value is a weighted sum of four sub-scores, each in [0, 1]:

- profit impact (0.40): outcome magnitude against a historical ceiling,
  remapped so that break-even scores 0.5
- frequency relevance (0.25): ``log(count + 1) / log(100)`` of the item's
  cluster in the pattern-frequency table
- recency (0.15): linear decay to 0 over ``max_age_days``
- learning value (0.20): bonuses for novel situations, behaviour changes and
  mistakes that led to improvement

Scoring has no side effects and is deterministic given the item, ``now`` and
the pattern-frequency table.
"""

import logging
import math
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from distillery.config import ScoringConfig, SECONDS_PER_DAY, get_config
from distillery.core.grouping import Signature, SimilarityGrouper
from distillery.models.experience import ExperienceItem, RetentionAction, ValueAssessment

logger = logging.getLogger(__name__)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class PatternFrequencyTable:
    """Thread-safe count of observed cluster signatures."""

    def __init__(self, counts: Optional[Dict[Signature, int]] = None):
        self._lock = threading.Lock()
        self._counts: Dict[Signature, int] = dict(counts or {})

    def record(self, signature: Signature, count: int = 1):
        """Record ``count`` more observations of a signature."""
        with self._lock:
            self._counts[signature] = self._counts.get(signature, 0) + count

    def get(self, signature: Signature) -> int:
        with self._lock:
            return self._counts.get(signature, 0)

    def replace(self, counts: Dict[Signature, int]):
        """Replace all counts at once."""
        with self._lock:
            self._counts = dict(counts)

    def clear(self):
        with self._lock:
            self._counts.clear()

    def snapshot(self) -> Dict[Signature, int]:
        with self._lock:
            return dict(self._counts)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)

    def to_list(self) -> List[List[Any]]:
        """Serializable form: ``[[signature...], count]`` pairs."""
        return [[list(sig), count] for sig, count in self.snapshot().items()]

    @classmethod
    def from_list(cls, data: Iterable[List[Any]]) -> "PatternFrequencyTable":
        def as_key(sig):
            return tuple(tuple(part) if isinstance(part, list) else part for part in sig)

        return cls({as_key(sig): int(count) for sig, count in data})

    @classmethod
    def from_items(
        cls,
        items: Iterable[ExperienceItem],
        grouper: SimilarityGrouper
    ) -> "PatternFrequencyTable":
        """Build a table counting the signatures of ``items``."""
        return cls(grouper.count(items))


class ValueScorer:
    """
    Scores experience items for retention.

    Usage:
        scorer = ValueScorer(pattern_table=table)
        assessment = scorer.score(item, now=time.time())
        if assessment.retention_action == RetentionAction.DELETE:
            ...
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        grouper: Optional[SimilarityGrouper] = None,
        pattern_table: Optional[PatternFrequencyTable] = None
    ):
        """
        Initialize the scorer.

        Args:
            config: Scoring weights and thresholds (default: global config)
            grouper: Signature function shared with the store and compactor
            pattern_table: Default pattern-frequency table
        """
        self.config = config or get_config().scoring
        self.grouper = grouper or SimilarityGrouper.from_config()
        self.pattern_table = pattern_table or PatternFrequencyTable()
        self.weights = {
            "profit_impact": self.config.profit_weight,
            "frequency_relevance": self.config.frequency_weight,
            "recency": self.config.recency_weight,
            "learning_value": self.config.learning_weight,
        }

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    def profit_impact(self, item: ExperienceItem) -> float:
        ceiling = item.context.get("max_historical_profit") or self.config.profit_ceiling
        try:
            ceiling = abs(float(ceiling))
        except (TypeError, ValueError):
            ceiling = self.config.profit_ceiling
        if ceiling == 0:
            ceiling = self.config.profit_ceiling
        normalized = _clamp(item.profit / ceiling, -1.0, 1.0)
        return _clamp(normalized + 0.5)

    def frequency_relevance(self, pattern_count: int) -> float:
        # Log scaling keeps very frequent patterns from dominating linearly
        return min(math.log(max(pattern_count, 0) + 1) / math.log(self.config.frequency_log_base), 1.0)

    def recency(self, item: ExperienceItem, now: float) -> float:
        max_age = self.config.max_age_days * SECONDS_PER_DAY
        return max(0.0, 1.0 - item.age_seconds(now) / max_age)

    def learning_value(self, item: ExperienceItem) -> float:
        metadata = item.metadata or {}
        score = 0.0
        if metadata.get("novel_situation"):
            score += self.config.novel_situation_bonus
        if metadata.get("behavior_change"):
            score += self.config.behavior_change_bonus
        if item.profit < 0 and metadata.get("led_to_improvement"):
            score += self.config.improvement_bonus
        return min(score, 1.0)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def retention_action(self, value: float) -> RetentionAction:
        if value >= self.config.keep_full_threshold:
            return RetentionAction.KEEP_FULL
        if value >= self.config.compress_threshold:
            return RetentionAction.COMPRESS
        if value >= self.config.summarize_threshold:
            return RetentionAction.SUMMARIZE
        return RetentionAction.DELETE

    def is_compression_candidate(self, value: float, pattern_count: int) -> bool:
        """Medium value and part of a recognizable pattern (cluster already has enough members)."""
        in_band = self.config.candidate_min_value <= value <= self.config.candidate_max_value
        return in_band and pattern_count >= self.config.min_pattern_members

    def score(
        self,
        item: ExperienceItem,
        now: Optional[float] = None,
        pattern_table: Optional[PatternFrequencyTable] = None
    ) -> ValueAssessment:
        """
        Score an item.

        Args:
            item: Item to score
            now: Reference time in epoch seconds (default: current time)
            pattern_table: Pattern-frequency table (default: the scorer's own)

        Returns:
            ValueAssessment with value, breakdown, retention action and
            compression-candidate flag
        """
        now = time.time() if now is None else now
        table = pattern_table if pattern_table is not None else self.pattern_table
        pattern_count = table.get(self.grouper.signature(item))

        breakdown = {
            "profit_impact": self.profit_impact(item),
            "frequency_relevance": self.frequency_relevance(pattern_count),
            "recency": self.recency(item, now),
            "learning_value": self.learning_value(item),
        }
        value = _clamp(sum(breakdown[key] * weight for key, weight in self.weights.items()))

        return ValueAssessment(
            value=value,
            breakdown=breakdown,
            retention_action=self.retention_action(value),
            is_compression_candidate=self.is_compression_candidate(value, pattern_count),
        )

    def score_value(self, item: ExperienceItem, now: Optional[float] = None) -> float:
        """Shortcut returning only the scalar value."""
        return self.score(item, now=now).value

    def score_many(
        self,
        items: Iterable[ExperienceItem],
        now: Optional[float] = None,
        pattern_table: Optional[PatternFrequencyTable] = None
    ) -> List[Tuple[ExperienceItem, ValueAssessment]]:
        """Score several items against the same reference time."""
        now = time.time() if now is None else now
        return [(item, self.score(item, now=now, pattern_table=pattern_table)) for item in items]
