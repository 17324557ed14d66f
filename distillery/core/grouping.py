"""
Cluster signatures for grouping similar experience items.

A signature is an order-independent tuple of categorical features:
``(context_bucket, action, reward_sign)``. It is derived on demand and never
stored on the item.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from distillery.models.experience import ExperienceItem

logger = logging.getLogger(__name__)

Signature = Tuple[Any, Any, int]

SIGNATURE_FIELDS = ("context_bucket", "action", "reward_sign")


class SimilarityGrouper:
    """Maps items to cluster signatures and groups items by signature."""

    def __init__(self, bucket_width: float = 1.0):
        """
        Initialize the grouper.

        Args:
            bucket_width: Width of the state-norm buckets used when an item
                          carries no explicit ``context['bucket']``
        """
        if bucket_width <= 0:
            raise ValueError("bucket_width must be positive")
        self.bucket_width = bucket_width

    def context_bucket(self, item: ExperienceItem) -> Any:
        explicit = item.context.get("bucket")
        if explicit is not None:
            return explicit
        norm = float(np.linalg.norm(item.state_vector))
        return int(math.floor(norm / self.bucket_width))

    @staticmethod
    def reward_sign(item: ExperienceItem) -> int:
        return int(np.sign(item.reward))

    def signature(self, item: ExperienceItem) -> Signature:
        """Cluster signature of an item."""
        action = item.action
        if isinstance(action, list):
            action = tuple(action)
        return (self.context_bucket(item), action, self.reward_sign(item))

    def features(self, item: ExperienceItem) -> Dict[str, Any]:
        """Signature as a field-name mapping."""
        return dict(zip(SIGNATURE_FIELDS, self.signature(item)))

    def partition(
        self,
        items: Iterable[ExperienceItem]
    ) -> Tuple[Dict[Signature, List[ExperienceItem]], List[ExperienceItem]]:
        """
        Group items by signature, preserving first-seen order of clusters and members.

        Args:
            items: Items to group

        Returns:
            Tuple of (signature -> member list, items with no usable signature)
        """
        clusters: Dict[Signature, List[ExperienceItem]] = defaultdict(list)
        unclustered: List[ExperienceItem] = []
        for item in items:
            try:
                signature = self.signature(item)
                hash(signature)
            except Exception as e:
                logger.warning(f"No signature for item {item.item_id[:8]}: {e}")
                unclustered.append(item)
                continue
            clusters[signature].append(item)
        return dict(clusters), unclustered

    def group(self, items: Iterable[ExperienceItem]) -> Dict[Signature, List[ExperienceItem]]:
        """Signature -> member list. Items with no usable signature are left out."""
        return self.partition(items)[0]

    def count(self, items: Iterable[ExperienceItem]) -> Dict[Signature, int]:
        """Number of items per signature."""
        return {sig: len(members) for sig, members in self.group(items).items()}

    @classmethod
    def from_config(cls, config: Optional[Any] = None) -> "SimilarityGrouper":
        """Build from a ``StoreConfig`` (defaults to the global configuration)."""
        if config is None:
            from distillery.config import get_config
            config = get_config().store
        return cls(bucket_width=config.context_bucket_width)
