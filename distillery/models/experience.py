"""
Experience records held by the bounded store.

An ``ExperienceItem`` carries an immutable payload supplied by the caller
(state, action, reward, next state, terminal flag, timestamp, identifier)
plus two store-owned fields: ``value`` (retention score, recomputed
periodically) and ``priority`` (sampling weight).
"""

import json
import math
import time
import uuid
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from distillery.exceptions import InvalidItemError


class RetentionAction(str, Enum):
    """What the value scorer recommends doing with an item."""

    KEEP_FULL = "keep_full"    # high value, keep complete
    COMPRESS = "compress"      # medium value, fold into a rule
    SUMMARIZE = "summarize"    # low value, summary only
    DELETE = "delete"          # no retention value


def _as_vector(value: Any, name: str) -> List[float]:
    try:
        vector = np.asarray(value, dtype=float).ravel()
    except (TypeError, ValueError) as e:
        raise InvalidItemError(f"{name} must be numeric: {e}")
    if vector.size == 0:
        raise InvalidItemError(f"{name} must not be empty")
    if not np.all(np.isfinite(vector)):
        raise InvalidItemError(f"{name} contains non-finite values")
    return vector.tolist()


_CATEGORICAL_TYPES = (str, int, float, bool, np.generic)


def _check_categorical(value: Any, name: str):
    """Categorical features must be hashable once lists become tuples."""
    parts = value if isinstance(value, (list, tuple)) else [value]
    if not all(isinstance(part, _CATEGORICAL_TYPES) for part in parts):
        raise InvalidItemError(
            f"{name} must be a scalar or a flat list of scalars (got {type(value).__name__})"
        )


def _as_mapping(value: Any, name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidItemError(f"{name} must be a mapping (got {type(value).__name__})")
    return dict(value)


def _as_float(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidItemError(f"{name} must be numeric: {e}")
    if not math.isfinite(number):
        raise InvalidItemError(f"{name} must be finite")
    return number


@dataclass
class ExperienceItem:
    """One stored experience record."""

    state: List[float]
    action: Any
    reward: float
    timestamp: float = field(default_factory=time.time)
    next_state: Optional[List[float]] = None
    done: bool = False
    item_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    outcome: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)

    # Store-owned
    value: Optional[float] = None
    priority: float = 0.0

    REQUIRED_FIELDS = ("state", "action", "reward", "timestamp")

    def validate(self) -> "ExperienceItem":
        """
        Check and normalize the payload.

        Returns:
            self, with vectors coerced to lists of floats

        Raises:
            InvalidItemError: If a required field is missing or malformed
        """
        if self.state is None:
            raise InvalidItemError("state is required")
        if self.action is None:
            raise InvalidItemError("action is required")
        _check_categorical(self.action, "action")
        self.state = _as_vector(self.state, "state")
        if self.next_state is not None:
            self.next_state = _as_vector(self.next_state, "next_state")

        self.reward = _as_float(self.reward, "reward")
        self.timestamp = _as_float(self.timestamp, "timestamp")

        self.metadata = _as_mapping(self.metadata, "metadata")
        self.context = _as_mapping(self.context, "context")
        if self.context.get("bucket") is not None:
            _check_categorical(self.context["bucket"], "context bucket")
        if self.outcome is not None:
            self.outcome = _as_mapping(self.outcome, "outcome")
            if self.outcome.get("profit") is not None:
                self.outcome["profit"] = _as_float(self.outcome["profit"], "outcome profit")

        if self.value is not None:
            self.value = _as_float(self.value, "value")
            if not 0.0 <= self.value <= 1.0:
                raise InvalidItemError(f"value must lie in [0, 1] (got {self.value})")
        self.priority = _as_float(self.priority, "priority")
        if self.priority < 0:
            raise InvalidItemError("priority must be non-negative")
        return self

    @property
    def state_vector(self) -> np.ndarray:
        return np.asarray(self.state, dtype=float)

    @property
    def next_state_vector(self) -> Optional[np.ndarray]:
        if self.next_state is None:
            return None
        return np.asarray(self.next_state, dtype=float)

    @property
    def profit(self) -> float:
        """Outcome magnitude used for scoring: ``outcome['profit']`` if present, else reward."""
        if self.outcome and self.outcome.get("profit") is not None:
            return float(self.outcome["profit"])
        return self.reward

    @property
    def is_scored(self) -> bool:
        return self.value is not None

    def age_seconds(self, now: Optional[float] = None) -> float:
        """Age of the item relative to ``now`` (never negative)."""
        now = time.time() if now is None else now
        return max(0.0, now - self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    def serialized_size(self) -> int:
        """Size estimate of the record in bytes (JSON encoding)."""
        return len(json.dumps(self.to_dict(), default=str))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExperienceItem":
        """
        Create a validated ExperienceItem from a dictionary.

        Raises:
            InvalidItemError: If required fields are missing or malformed
        """
        if not isinstance(data, Mapping):
            raise InvalidItemError(f"expected a mapping, got {type(data).__name__}")
        missing = [name for name in cls.REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise InvalidItemError(f"missing required fields: {', '.join(missing)}")

        known = {
            "state", "action", "reward", "timestamp", "next_state", "done",
            "item_id", "outcome", "metadata", "context", "value", "priority",
        }
        kwargs = {key: value for key, value in data.items() if key in known}
        if kwargs.get("item_id") is None:
            kwargs.pop("item_id", None)
        if kwargs.get("priority") is None:
            kwargs.pop("priority", None)
        return cls(**kwargs).validate()


@dataclass
class ValueAssessment:
    """Result of scoring one item."""

    value: float
    breakdown: Dict[str, float]
    retention_action: RetentionAction
    is_compression_candidate: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "value": self.value,
            "breakdown": dict(self.breakdown),
            "retention_action": self.retention_action.value,
            "is_compression_candidate": self.is_compression_candidate,
        }
