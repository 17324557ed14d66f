"""
Pattern compaction: fold clusters of similar items into rules.

Items are grouped by cluster signature. Each cluster of two or more members
becomes one Rule carrying the modal pattern, summarized outcomes, a
confidence score and a representative item. Singleton clusters become
degenerate rules wrapping the single item unchanged, so no information is
silently lost.

Confidence = 0.4 * size + 0.4 * consistency + 0.2 * recency, where

- size = min(n / 10, 1)
- consistency = 1 - variance(sign(outcome))
- recency = max(0, 1 - mean_age / 7 days)
"""

import dataclasses
import logging
import threading
import time
import uuid
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from distillery.config import CompactionConfig, SECONDS_PER_DAY, get_config
from distillery.core.grouping import Signature, SimilarityGrouper
from distillery.exceptions import CompactionPartialFailure
from distillery.models.experience import ExperienceItem
from distillery.models.rule import CompactionMetrics, CompactionResult, Rule, RuleOutcomes

logger = logging.getLogger(__name__)


def _mode(values: Sequence[Any]) -> Any:
    """Most frequent value; first seen wins ties."""
    counts = Counter(values)
    return counts.most_common(1)[0][0]


class CompactionEngine:
    """
    Synthesizes rules from groups of similar items.

    The engine has no side effects beyond computing rules and never mutates
    its input.
    """

    def __init__(
        self,
        config: Optional[CompactionConfig] = None,
        grouper: Optional[SimilarityGrouper] = None
    ):
        """
        Initialize the compaction engine.

        Args:
            config: Confidence weights and recency window (default: global config)
            grouper: Signature function shared with the store
        """
        self.config = config or get_config().compaction
        self.grouper = grouper or SimilarityGrouper.from_config()
        logger.info(
            f"Initialized CompactionEngine: recency_days={self.config.recency_days}, "
            f"size_saturation={self.config.size_saturation}"
        )

    # ------------------------------------------------------------------
    # Rule components
    # ------------------------------------------------------------------

    def common_pattern(self, members: List[ExperienceItem]) -> Dict[str, Any]:
        """Per-field mode of the categorical features."""
        features = [self.grouper.features(m) for m in members]
        pattern = {
            key: _mode([f[key] for f in features])
            for key in features[0]
        }
        pattern["done"] = _mode([m.done for m in members])
        if isinstance(pattern.get("action"), tuple):
            pattern["action"] = list(pattern["action"])
        return pattern

    @staticmethod
    def summarize_outcomes(members: List[ExperienceItem]) -> RuleOutcomes:
        rewards = np.array([m.reward for m in members], dtype=float)
        profits = np.array([m.profit for m in members], dtype=float)
        return RuleOutcomes(
            success_rate=float(np.mean(profits > 0)),
            mean_reward=float(rewards.mean()),
            min_reward=float(rewards.min()),
            max_reward=float(rewards.max()),
            member_count=len(members),
        )

    def confidence(self, members: List[ExperienceItem], now: float) -> float:
        """Confidence in [0, 1] for a rule built from ``members``."""
        size_factor = min(len(members) / self.config.size_saturation, 1.0)

        signs = np.sign([m.profit for m in members])
        consistency_factor = max(0.0, 1.0 - float(np.var(signs)))

        mean_age = float(np.mean([m.age_seconds(now) for m in members]))
        recency_factor = max(0.0, 1.0 - mean_age / (self.config.recency_days * SECONDS_PER_DAY))

        score = (
            self.config.size_weight * size_factor
            + self.config.consistency_weight * consistency_factor
            + self.config.recency_weight * recency_factor
        )
        return min(max(score, 0.0), 1.0)

    def representative(
        self,
        members: List[ExperienceItem],
        signature: Signature,
        rule_id: str
    ) -> ExperienceItem:
        """Single item standing in for a cluster in the store."""
        states = np.vstack([m.state_vector for m in members])

        next_states = [m.next_state_vector for m in members]
        next_state = None
        if all(ns is not None and ns.shape == states[0].shape for ns in next_states):
            next_state = np.vstack(next_states).mean(axis=0).tolist()

        scored = [m.value for m in members if m.is_scored]
        profits = [m.profit for m in members]

        return ExperienceItem(
            state=states.mean(axis=0).tolist(),
            action=_mode([self.grouper.signature(m)[1] for m in members]),
            reward=float(np.mean([m.reward for m in members])),
            timestamp=max(m.timestamp for m in members),
            next_state=next_state,
            done=_mode([m.done for m in members]),
            outcome={"profit": float(np.mean(profits))},
            metadata={"rule_id": rule_id, "member_count": len(members)},
            context={"bucket": signature[0]},
            value=float(np.mean(scored)) if scored else None,
        )

    def build_rule(self, signature: Signature, members: List[ExperienceItem], now: float) -> Rule:
        """
        Build one rule from a cluster.

        Args:
            signature: Cluster signature
            members: Items sharing the signature (at least one)
            now: Reference time for recency

        Returns:
            Rule (degenerate when the cluster has a single member)
        """
        rule_id = f"rule_{uuid.uuid4().hex[:12]}"
        original_size = sum(m.serialized_size() for m in members)

        if len(members) == 1:
            representative = dataclasses.replace(members[0])
        else:
            representative = self.representative(members, signature, rule_id)

        rule = Rule(
            rule_id=rule_id,
            created_at=now,
            signature=signature,
            pattern=self.common_pattern(members),
            outcomes=self.summarize_outcomes(members),
            confidence=self.confidence(members, now),
            member_count=len(members),
            member_ids=[m.item_id for m in members],
            representative=representative,
            original_size=original_size,
        )
        if rule.is_degenerate:
            rule.compressed_size = original_size
        else:
            # A rule never accounts for more than the members it replaces
            rule.compressed_size = min(rule.summary_size(), original_size)
        return rule

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def compact(
        self,
        items: Sequence[ExperienceItem],
        cancel_event: Optional[threading.Event] = None,
        now: Optional[float] = None
    ) -> CompactionResult:
        """
        Compact items into rules.

        A cluster whose aggregation raises is skipped: its members pass
        through unmodified and the error is recorded as a
        CompactionPartialFailure. If ``cancel_event`` is set, the remaining
        clusters pass through unmodified and the result is marked cancelled.
        Items with no usable signature also pass through unmodified.

        Args:
            items: Items to compact
            cancel_event: Cooperative cancellation flag, checked between clusters
            now: Reference time in epoch seconds (default: current time)

        Returns:
            CompactionResult with rules in first-seen cluster order
        """
        now = time.time() if now is None else now
        items = list(items)
        before_size = sum(item.serialized_size() for item in items)

        clusters, unclustered = self.grouper.partition(items)
        rules: List[Rule] = []
        passthrough: List[ExperienceItem] = list(unclustered)
        failures: List[CompactionPartialFailure] = []
        cancelled = False

        for signature, members in clusters.items():
            if cancelled or (cancel_event is not None and cancel_event.is_set()):
                if not cancelled:
                    logger.info("Compaction cancelled; passing remaining clusters through")
                cancelled = True
                passthrough.extend(members)
                continue

            try:
                rule = self.build_rule(signature, members, now)
            except Exception as e:
                failure = CompactionPartialFailure(signature, e)
                logger.warning(f"Skipping cluster: {failure}")
                failures.append(failure)
                passthrough.extend(members)
                continue

            rules.append(rule)
            logger.debug(
                f"Created {rule.rule_id}: members={rule.member_count}, "
                f"confidence={rule.confidence:.3f}"
            )

        after_size = (
            sum(rule.compressed_size for rule in rules)
            + sum(item.serialized_size() for item in passthrough)
        )
        result = CompactionResult(
            rules=rules,
            metrics=CompactionMetrics(before_size=before_size, after_size=after_size),
            passthrough=passthrough,
            failures=failures,
            cancelled=cancelled,
        )

        logger.info(
            f"Compaction complete: {len(items)} items -> {len(rules)} rules "
            f"({result.rules_created} non-degenerate), "
            f"ratio={result.metrics.compression_ratio:.3f}"
        )
        return result
