"""
Compaction output: rules that stand in for clusters of similar items.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from distillery.models.experience import ExperienceItem


@dataclass
class RuleOutcomes:
    """Summarized outcomes of a cluster."""

    success_rate: float
    mean_reward: float
    min_reward: float
    max_reward: float
    member_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_rate": round(self.success_rate, 6),
            "mean_reward": round(self.mean_reward, 6),
            "min_reward": round(self.min_reward, 6),
            "max_reward": round(self.max_reward, 6),
            "member_count": self.member_count,
        }


@dataclass
class Rule:
    """
    Compressed summary replacing a cluster of similar items.

    Degenerate rules (``member_count == 1``) wrap a single item so that no
    information is lost; their compressed size equals the original size.
    """

    rule_id: str
    created_at: float
    signature: Tuple[Any, ...]
    pattern: Dict[str, Any]
    outcomes: RuleOutcomes
    confidence: float
    member_count: int
    member_ids: List[str]
    representative: ExperienceItem
    compressed_size: int = 0
    original_size: int = 0

    @property
    def is_degenerate(self) -> bool:
        return self.member_count == 1

    def summary_dict(self) -> Dict[str, Any]:
        """The rule content that replaces its members (used for size accounting)."""
        return {
            "rule_id": self.rule_id,
            "created_at": self.created_at,
            "pattern": self.pattern,
            "outcomes": self.outcomes.to_dict(),
            "confidence": round(self.confidence, 6),
            "member_count": self.member_count,
        }

    def summary_size(self) -> int:
        return len(json.dumps(self.summary_dict(), default=str))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = self.summary_dict()
        data.update({
            "signature": list(self.signature),
            "member_ids": list(self.member_ids),
            "representative": self.representative.to_dict(),
            "compressed_size": self.compressed_size,
            "original_size": self.original_size,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """Create Rule from dictionary."""
        return cls(
            rule_id=data["rule_id"],
            created_at=float(data["created_at"]),
            signature=tuple(data.get("signature", ())),
            pattern=dict(data.get("pattern", {})),
            outcomes=RuleOutcomes(**data["outcomes"]),
            confidence=float(data["confidence"]),
            member_count=int(data["member_count"]),
            member_ids=list(data.get("member_ids", [])),
            representative=ExperienceItem.from_dict(data["representative"]),
            compressed_size=int(data.get("compressed_size", 0)),
            original_size=int(data.get("original_size", 0)),
        )


@dataclass
class CompactionMetrics:
    """Size accounting for one compaction run."""

    before_size: int
    after_size: int

    @property
    def compression_ratio(self) -> float:
        if self.before_size <= 0:
            return 1.0
        return self.after_size / self.before_size

    @property
    def space_saved(self) -> int:
        return self.before_size - self.after_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "before_size": self.before_size,
            "after_size": self.after_size,
            "compression_ratio": self.compression_ratio,
            "space_saved": self.space_saved,
        }


@dataclass
class CompactionResult:
    """
    Output of ``CompactionEngine.compact``.

    ``passthrough`` holds members of clusters that were not compacted
    (aggregation failed, or the run was cancelled before reaching them).
    """

    rules: List[Rule]
    metrics: CompactionMetrics
    passthrough: List[ExperienceItem] = field(default_factory=list)
    failures: List[Any] = field(default_factory=list)
    cancelled: bool = False

    @property
    def rules_created(self) -> int:
        """Number of non-degenerate rules (clusters of two or more items)."""
        return sum(1 for rule in self.rules if not rule.is_degenerate)

    def surviving_items(self) -> List[ExperienceItem]:
        """Items that replace the compacted input: representatives, then passthrough."""
        return [rule.representative for rule in self.rules] + list(self.passthrough)

    def to_dict(self, include_rules: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "rule_count": len(self.rules),
            "rules_created": self.rules_created,
            "passthrough": len(self.passthrough),
            "failures": [str(f) for f in self.failures],
            "cancelled": self.cancelled,
        }
        data.update(self.metrics.to_dict())
        if include_rules:
            data["rules"] = [rule.to_dict() for rule in self.rules]
        return data
