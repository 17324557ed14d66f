"""
Normalized view of an agent's working context.

The overload monitor and the admission controller both read a
``ContextSnapshot``. Callers may build one directly, or derive it from an
opaque context mapping with ``ContextSnapshot.from_context``, which extracts
size, decision depth, pattern diversity, timestamps and uncertainty signals.
"""

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from distillery.models.experience import ExperienceItem

DECISION_KEYS = ("decisions", "branches", "conditions")
PATTERN_KEYS = ("patterns", "market_patterns", "execution_patterns")
VOLATILITY_KEYS = ("volatility", "market_volatility")
CONFIDENCE_KEYS = ("confidence", "prediction_confidence")
RISK_KEYS = ("risk", "execution_risk")


def _to_epoch(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    if isinstance(value, datetime):
        return value.timestamp()
    return None


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def count_decision_levels(context: Any) -> int:
    """Deepest nesting level at which a decision structure appears."""
    depth = 0

    def traverse(obj: Any, current: int) -> None:
        nonlocal depth
        if isinstance(obj, Mapping):
            if any(key in obj for key in DECISION_KEYS):
                depth = max(depth, current + 1)
            for value in obj.values():
                traverse(value, current + 1)
        elif isinstance(obj, (list, tuple)):
            for value in obj:
                traverse(value, current + 1)

    traverse(context, 0)
    return depth


def extract_timestamps(context: Any) -> List[float]:
    """All ``timestamp`` values found anywhere in the context."""
    timestamps: List[float] = []

    def traverse(obj: Any) -> None:
        if isinstance(obj, Mapping):
            stamp = _to_epoch(obj.get("timestamp"))
            if stamp is not None:
                timestamps.append(stamp)
            for value in obj.values():
                traverse(value)
        elif isinstance(obj, (list, tuple)):
            for value in obj:
                traverse(value)

    traverse(context)
    return timestamps


def extract_patterns(context: Mapping[str, Any]) -> List[Any]:
    patterns: List[Any] = []
    for key in PATTERN_KEYS:
        value = context.get(key)
        if isinstance(value, (list, tuple)):
            patterns.extend(value)
    return patterns


def extract_uncertainties(context: Mapping[str, Any]) -> List[float]:
    """Uncertainty-like signals: volatility, ``1 - confidence`` and risk."""
    signals: List[float] = []
    for key in VOLATILITY_KEYS:
        value = _numeric(context.get(key))
        if value is not None:
            signals.append(value)
            break
    for key in CONFIDENCE_KEYS:
        value = _numeric(context.get(key))
        if value is not None:
            signals.append(1.0 - value)
            break
    for key in RISK_KEYS:
        value = _numeric(context.get(key))
        if value is not None:
            signals.append(value)
            break
    return signals


@dataclass
class ContextSnapshot:
    """Ephemeral measurements of a context, recomputed on every monitoring call."""

    serialized_bytes: int = 0
    decision_depth: int = 0
    pattern_types: int = 0
    pattern_count: int = 0
    rule_count: int = 0
    min_timestamp: Optional[float] = None
    max_timestamp: Optional[float] = None
    oldest_item_timestamp: Optional[float] = None
    uncertainty_signals: List[float] = field(default_factory=list)

    @property
    def temporal_span_seconds(self) -> float:
        if self.min_timestamp is None or self.max_timestamp is None:
            return 0.0
        return max(0.0, self.max_timestamp - self.min_timestamp)

    @property
    def mean_uncertainty(self) -> float:
        if not self.uncertainty_signals:
            return 0.0
        return sum(self.uncertainty_signals) / len(self.uncertainty_signals)

    def oldest_age_days(self, now: float) -> int:
        """Whole days since the oldest item (0 when there are no items)."""
        if self.oldest_item_timestamp is None:
            return 0
        return int(max(0.0, now - self.oldest_item_timestamp) // 86400)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serialized_bytes": self.serialized_bytes,
            "decision_depth": self.decision_depth,
            "pattern_types": self.pattern_types,
            "pattern_count": self.pattern_count,
            "rule_count": self.rule_count,
            "min_timestamp": self.min_timestamp,
            "max_timestamp": self.max_timestamp,
            "oldest_item_timestamp": self.oldest_item_timestamp,
            "uncertainty_signals": list(self.uncertainty_signals),
        }

    @classmethod
    def from_context(
        cls,
        context: Optional[Mapping[str, Any]],
        items: Optional[Iterable[ExperienceItem]] = None,
        rules: Optional[Sequence[Any]] = None,
    ) -> "ContextSnapshot":
        """
        Derive a snapshot from an opaque context mapping.

        Args:
            context: Arbitrary JSON-like context (may be None)
            items: Stored/incoming items; contribute timestamps and the oldest age
            rules: Existing rules; used for ``rule_count`` when the context has none

        Returns:
            ContextSnapshot
        """
        context = dict(context or {})

        patterns = extract_patterns(context)
        pattern_types = {
            (p.get("type") if isinstance(p, Mapping) else p)
            for p in patterns
        }

        timestamps = extract_timestamps(context)
        experience_stamps = [
            stamp
            for stamp in (
                _to_epoch(exp.get("timestamp")) if isinstance(exp, Mapping) else None
                for exp in context.get("experiences", []) or []
            )
            if stamp is not None
        ]
        for item in items or []:
            timestamps.append(item.timestamp)
            experience_stamps.append(item.timestamp)

        context_rules = context.get("rules")
        if isinstance(context_rules, (list, tuple)):
            rule_count = len(context_rules)
        else:
            rule_count = len(rules) if rules is not None else 0

        return cls(
            serialized_bytes=len(json.dumps(context, default=str)),
            decision_depth=count_decision_levels(context),
            pattern_types=len(pattern_types),
            pattern_count=len(patterns),
            rule_count=rule_count,
            min_timestamp=min(timestamps) if timestamps else None,
            max_timestamp=max(timestamps) if timestamps else None,
            oldest_item_timestamp=min(experience_stamps) if experience_stamps else None,
            uncertainty_signals=extract_uncertainties(context),
        )
