"""
Fixed-capacity experience store with value-based eviction and priority sampling.

Items live in slots addressed by index. Eviction reuses the evicted slot, so
the indices handed out by ``sample`` stay valid for ``update_priority`` until
the next capacity-changing operation (removal or compaction).
"""

import dataclasses
import logging
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional, Union

import numpy as np

from distillery.config import StoreConfig, get_config
from distillery.core.grouping import SimilarityGrouper
from distillery.exceptions import CapacityViolationError, InvalidItemError
from distillery.models.experience import ExperienceItem
from distillery.models.rule import CompactionResult

logger = logging.getLogger(__name__)


class StoreStats:
    """Thread-safe store statistics tracker."""

    def __init__(self):
        """Initialize store statistics."""
        self._lock = threading.Lock()
        self._inserts = 0
        self._evictions = 0
        self._rejections = 0
        self._samples = 0
        self._removals = 0
        self._compactions = 0

    def record_insert(self):
        with self._lock:
            self._inserts += 1

    def record_eviction(self):
        with self._lock:
            self._evictions += 1

    def record_rejection(self):
        with self._lock:
            self._rejections += 1

    def record_sample(self, count: int = 1):
        with self._lock:
            self._samples += count

    def record_removal(self, count: int = 1):
        with self._lock:
            self._removals += count

    def record_compaction(self):
        with self._lock:
            self._compactions += 1

    @property
    def rejections(self) -> int:
        with self._lock:
            return self._rejections

    def get_stats(self) -> Dict[str, int]:
        """
        Get current statistics.

        Returns:
            Dictionary with store statistics
        """
        with self._lock:
            return {
                "inserts": self._inserts,
                "evictions": self._evictions,
                "rejections": self._rejections,
                "samples": self._samples,
                "removals": self._removals,
                "compactions": self._compactions,
            }

    def restore(self, counters: Dict[str, int]):
        """Set the counters back to an earlier ``get_stats`` result."""
        with self._lock:
            self._inserts = counters["inserts"]
            self._evictions = counters["evictions"]
            self._rejections = counters["rejections"]
            self._samples = counters["samples"]
            self._removals = counters["removals"]
            self._compactions = counters["compactions"]

    def reset(self):
        """Reset all statistics."""
        with self._lock:
            self._inserts = 0
            self._evictions = 0
            self._rejections = 0
            self._samples = 0
            self._removals = 0
            self._compactions = 0


@dataclass
class SampledItem:
    """A sampled item together with its slot index (for ``update_priority``)."""

    index: int
    item: ExperienceItem


class BoundedStore:
    """
    Thread-safe bounded experience store.

    The store never holds more than ``capacity`` items. When full, the item
    with the lowest value is evicted to make room (unscored items first, then
    the oldest among ties).

    Usage:
        store = BoundedStore(capacity=10000)
        store.add_item({"state": [0.1, 0.2], "action": "buy", "reward": 1.5, "timestamp": now})
        batch = store.sample(32)
        store.update_priority(batch[0].index, td_error)
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        config: Optional[StoreConfig] = None,
        scorer: Optional[Any] = None,
        grouper: Optional[SimilarityGrouper] = None
    ):
        """
        Initialize the store.

        Args:
            capacity: Maximum number of items (default: ``config.capacity``)
            config: Store settings (default: global config)
            scorer: Optional ``ValueScorer`` used to score unscored items on insert
            grouper: Signature function (default: built from ``config``)
        """
        self.config = config or get_config().store
        self.capacity = capacity if capacity is not None else self.config.capacity
        if self.capacity <= 0:
            raise ValueError("capacity must be positive")
        self.scorer = scorer
        self.grouper = grouper or SimilarityGrouper(self.config.context_bucket_width)
        self.stats = StoreStats()

        self._items: List[ExperienceItem] = []
        self._seq: List[int] = []
        self._next_seq = 0
        self._recent_states: Deque[np.ndarray] = deque(maxlen=self.config.novelty_window)
        self._rng = np.random.default_rng(self.config.random_seed)
        self._lock = threading.RLock()

        logger.info(
            f"Initialized BoundedStore: capacity={self.capacity}, "
            f"compaction_threshold={self.config.compaction_threshold}, "
            f"prioritized={self.config.prioritized}"
        )

    # ------------------------------------------------------------------
    # Priority heuristic
    # ------------------------------------------------------------------

    def _novelty(self, state: np.ndarray) -> float:
        """Nearest-neighbour distance to recent states, squashed into [0, 1)."""
        same_shape = [s for s in self._recent_states if s.shape == state.shape]
        if not same_shape:
            return 1.0
        distances = np.linalg.norm(np.vstack(same_shape) - state, axis=1)
        nearest = float(distances.min())
        return nearest / (1.0 + nearest)

    @staticmethod
    def _transition_magnitude(item: ExperienceItem) -> float:
        next_state = item.next_state_vector
        if next_state is None or next_state.shape != item.state_vector.shape:
            return 0.0
        return float(np.linalg.norm(next_state - item.state_vector))

    def initial_priority(self, item: ExperienceItem) -> float:
        """Blend of reward magnitude, state-space novelty and transition magnitude."""
        return (
            self.config.reward_priority_weight * abs(item.reward)
            + self.config.novelty_priority_weight * self._novelty(item.state_vector)
            + self.config.transition_priority_weight * self._transition_magnitude(item)
        )

    # ------------------------------------------------------------------
    # Insertion and eviction
    # ------------------------------------------------------------------

    def _eviction_index(self) -> int:
        # Unscored items rank below every scored one; oldest first among ties
        def key(i: int):
            item = self._items[i]
            return (item.value if item.is_scored else -1.0, item.timestamp, self._seq[i])

        return min(range(len(self._items)), key=key)

    def _insert(self, item: ExperienceItem) -> Optional[ExperienceItem]:
        """Place an item, evicting if full. Returns the evicted item, if any."""
        evicted = None
        seq = self._next_seq
        self._next_seq += 1

        if len(self._items) >= self.capacity:
            index = self._eviction_index()
            evicted = self._items[index]
            self._items[index] = item
            self._seq[index] = seq
            self.stats.record_eviction()
            logger.debug(
                f"Evicted item {evicted.item_id[:8]} (value={evicted.value}) for {item.item_id[:8]}"
            )
        else:
            self._items.append(item)
            self._seq.append(seq)

        self._recent_states.append(item.state_vector)
        self.stats.record_insert()
        self._assert_capacity()
        return evicted

    def _assert_capacity(self):
        if len(self._items) > self.capacity:
            logger.error(f"Capacity invariant violated: {len(self._items)} > {self.capacity}")
            raise CapacityViolationError(len(self._items), self.capacity)

    def add_item(self, item: Union[ExperienceItem, Dict[str, Any]]) -> bool:
        """
        Admit an item, evicting the lowest-value item if the store is full.

        Args:
            item: ExperienceItem or mapping with at least state, action, reward, timestamp

        Returns:
            True if the item was stored, False if it was rejected as invalid
        """
        try:
            if isinstance(item, ExperienceItem):
                item.validate()
            else:
                item = ExperienceItem.from_dict(item)
        except InvalidItemError as e:
            logger.warning(f"Rejected invalid item: {e}")
            self.stats.record_rejection()
            return False

        with self._lock:
            if self.scorer is not None and not item.is_scored:
                item.value = self.scorer.score(item).value
            item.priority = self.initial_priority(item)
            self._insert(item)
        return True

    def add_items(self, items: Iterable[Union[ExperienceItem, Dict[str, Any]]]) -> int:
        """Admit several items; returns the number stored."""
        return sum(1 for item in items if self.add_item(item))

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample(self, batch_size: int, prioritized: Optional[bool] = None) -> List[SampledItem]:
        """
        Draw a training batch.

        Priority mode draws ``batch_size`` times independently with probability
        proportional to priority (duplicates possible). Uniform mode draws
        without replacement and is used when prioritization is disabled or all
        priorities are zero.

        Args:
            batch_size: Number of items requested
            prioritized: Override the configured sampling mode

        Returns:
            List of SampledItem (empty if the store is empty)
        """
        if batch_size <= 0:
            return []
        use_priority = self.config.prioritized if prioritized is None else prioritized

        with self._lock:
            n = len(self._items)
            if n == 0:
                return []

            priorities = np.array([item.priority for item in self._items], dtype=float)
            total = float(priorities.sum())

            if use_priority and total > 0 and np.isfinite(total):
                indices = self._rng.choice(n, size=batch_size, replace=True, p=priorities / total)
                mode = "priority"
            else:
                indices = self._rng.choice(n, size=min(batch_size, n), replace=False)
                mode = "uniform"

            batch = [SampledItem(index=int(i), item=self._items[int(i)]) for i in indices]

        self.stats.record_sample(len(batch))
        logger.debug(f"Sampled {len(batch)} items ({mode})")
        return batch

    def update_priority(self, index: int, value: float):
        """
        Overwrite the priority of the item in slot ``index``.

        Raises:
            IndexError: If no item occupies the slot
            ValueError: If the priority is negative or not finite
        """
        value = float(value)
        if not np.isfinite(value) or value < 0:
            raise ValueError(f"priority must be a finite non-negative number (got {value})")
        with self._lock:
            if not 0 <= index < len(self._items):
                raise IndexError(f"no item at index {index}")
            self._items[index].priority = value

    # ------------------------------------------------------------------
    # Compaction and bulk changes
    # ------------------------------------------------------------------

    @property
    def occupancy(self) -> float:
        with self._lock:
            return len(self._items) / self.capacity

    def should_compact(self) -> bool:
        """True when occupancy has reached the compaction threshold."""
        return self.occupancy >= self.config.compaction_threshold

    def _replace_contents(self, items: List[ExperienceItem]):
        self._items = list(items)
        self._seq = list(range(self._next_seq, self._next_seq + len(items)))
        self._next_seq += len(items)
        self._assert_capacity()

    def compact(
        self,
        engine: Any,
        cancel_event: Optional[threading.Event] = None,
        now: Optional[float] = None
    ) -> CompactionResult:
        """
        Compact the whole store with ``engine`` and replace its contents.

        The store then holds rule representatives followed by any passthrough
        items, all reset to the neutral priority.

        Args:
            engine: CompactionEngine
            cancel_event: Cooperative cancellation flag, checked between clusters
            now: Reference time for rule recency

        Returns:
            The engine's CompactionResult
        """
        with self._lock:
            result = engine.compact(list(self._items), cancel_event=cancel_event, now=now)
            survivors = [
                dataclasses.replace(item, priority=self.config.neutral_priority)
                for item in result.surviving_items()
            ]
            before = len(self._items)
            self._replace_contents(survivors)
            self.stats.record_compaction()

        logger.info(
            f"Compacted store: {before} -> {len(survivors)} items, "
            f"{result.rules_created} rules, ratio={result.metrics.compression_ratio:.3f}"
        )
        return result

    def remove_ids(self, item_ids: Iterable[str]) -> List[ExperienceItem]:
        """Remove items by identifier; returns the removed items."""
        targets = set(item_ids)
        if not targets:
            return []
        with self._lock:
            removed = []
            kept_items, kept_seq = [], []
            for item, seq in zip(self._items, self._seq):
                if item.item_id in targets:
                    removed.append(item)
                else:
                    kept_items.append(item)
                    kept_seq.append(seq)
            self._items, self._seq = kept_items, kept_seq
        if removed:
            self.stats.record_removal(len(removed))
        return removed

    def apply_changes(
        self,
        remove_ids: Iterable[str] = (),
        admit_items: Iterable[ExperienceItem] = ()
    ) -> int:
        """
        Remove and admit items as one atomic change.

        On any error the store is restored to its prior contents, novelty
        window and statistics, and the error is re-raised. Stored items are
        not modified by admission, so their fields need no rollback; items
        passed in ``admit_items`` keep the value and priority computed for
        them before the error.

        Returns:
            Number of admitted items
        """
        with self._lock:
            saved_items = list(self._items)
            saved_seq = list(self._seq)
            saved_recent = deque(self._recent_states, maxlen=self._recent_states.maxlen)
            saved_stats = self.stats.get_stats()
            try:
                self.remove_ids(remove_ids)
                admitted = 0
                for item in admit_items:
                    if self.add_item(item):
                        admitted += 1
                self._assert_capacity()
                return admitted
            except Exception:
                self._items = saved_items
                self._seq = saved_seq
                self._recent_states = saved_recent
                self.stats.restore(saved_stats)
                logger.warning("Rolled back store changes after error")
                raise

    def restore(self, items: Iterable[ExperienceItem]):
        """Replace contents with checkpointed items, keeping their stored priorities."""
        items = list(items)
        with self._lock:
            if len(items) > self.capacity:
                items = sorted(items, key=lambda i: (i.value if i.is_scored else -1.0, i.timestamp))
                items = items[len(items) - self.capacity:]
            self._replace_contents(items)
            self._recent_states.clear()
            for item in items:
                self._recent_states.append(item.state_vector)
        logger.info(f"Restored {len(items)} items into store")

    def refresh_values(
        self,
        scorer: Any,
        now: Optional[float] = None,
        pattern_table: Optional[Any] = None
    ) -> int:
        """
        Recompute the value of every stored item.

        An item whose scoring fails gets value 0.0 (lowest retention rank).

        Args:
            scorer: ValueScorer
            now: Reference time for recency
            pattern_table: Pattern-frequency table (default: the scorer's own)

        Returns:
            Number of items scored successfully
        """
        refreshed = 0
        with self._lock:
            for item in self._items:
                try:
                    item.value = scorer.score(item, now=now, pattern_table=pattern_table).value
                    refreshed += 1
                except Exception as e:
                    logger.warning(f"Scoring failed for item {item.item_id[:8]}: {e}")
                    item.value = 0.0
        return refreshed

    @contextmanager
    def exclusive(self) -> Iterator["BoundedStore"]:
        """
        Hold the store lock across several operations.

        Calls from other threads (``add_item``, ``sample``, ``update_priority``)
        wait until the block exits. Calls from the holding thread proceed.

        Usage:
            with store.exclusive():
                snapshot = store.items()
                store.apply_changes(remove_ids=stale_ids)
        """
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def items(self) -> List[ExperienceItem]:
        """Snapshot of the stored items in slot order."""
        with self._lock:
            return list(self._items)

    def get(self, index: int) -> ExperienceItem:
        with self._lock:
            return self._items[index]

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.size()

    def clear(self) -> int:
        """
        Remove all items.

        Returns:
            Number of items removed
        """
        with self._lock:
            count = len(self._items)
            self._items, self._seq = [], []
            self._recent_states.clear()
        self.stats.record_removal(count)
        logger.info(f"Cleared {count} store items")
        return count

    def get_stats(self) -> Dict[str, Any]:
        """
        Get store statistics.

        Returns:
            Dictionary with counters, size, capacity and occupancy
        """
        stats: Dict[str, Any] = self.stats.get_stats()
        with self._lock:
            stats.update({
                "size": len(self._items),
                "capacity": self.capacity,
                "occupancy": len(self._items) / self.capacity,
            })
        return stats
