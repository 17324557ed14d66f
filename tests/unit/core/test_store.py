"""
Unit tests for the bounded experience store.
"""

import threading
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from distillery.compression.compactor import CompactionEngine
from distillery.config import CompactionConfig, StoreConfig
from distillery.core.grouping import SimilarityGrouper
from distillery.core.store import BoundedStore, SampledItem
from distillery.exceptions import CapacityViolationError
from distillery.models.experience import ExperienceItem

NOW = 1_700_000_000.0


def make_item(value=None, timestamp=NOW, action="hold", reward=1.0, state=(0.5, 0.5), **kwargs):
    return ExperienceItem(
        state=list(state),
        action=action,
        reward=reward,
        timestamp=timestamp,
        value=value,
        **kwargs
    )


@pytest.fixture
def config():
    return StoreConfig(random_seed=42)


@pytest.fixture
def store(config):
    return BoundedStore(capacity=5, config=config)


class TestAddItem:
    """Test admission, validation and the priority heuristic."""

    def test_add_item(self, store):
        assert store.add_item(make_item()) is True
        assert store.size() == 1
        assert len(store) == 1

    def test_add_mapping(self, store):
        added = store.add_item({"state": [0.1, 0.2], "action": "buy", "reward": 1.5, "timestamp": NOW})

        assert added is True
        assert store.items()[0].action == "buy"

    def test_invalid_item_rejected(self, store):
        store.add_item(make_item())

        added = store.add_item({"state": [0.1], "action": "buy", "timestamp": NOW})

        assert added is False
        assert store.size() == 1
        assert store.get_stats()["rejections"] == 1

    def test_non_finite_state_rejected(self, store):
        assert store.add_item(make_item(state=(float("nan"), 1.0))) is False
        assert store.size() == 0

    @pytest.mark.parametrize("field,bad", [
        ("metadata", [1, 2, 3]),
        ("context", "x"),
        ("outcome", 5),
        ("value", "high"),
        ("value", 1.5),
        ("priority", "high"),
        ("priority", -1.0),
        ("action", {"type": "buy"}),
        ("action", [["nested"]]),
    ])
    def test_malformed_fields_rejected(self, store, field, bad):
        record = {"state": [0.1, 0.2], "action": "buy", "reward": 1.0, "timestamp": NOW}
        record[field] = bad

        assert store.add_item(record) is False
        assert store.size() == 0
        assert store.get_stats()["rejections"] == 1

    def test_numeric_strings_coerced(self, store):
        record = {
            "state": [0.1, 0.2], "action": "buy", "reward": "1.0", "timestamp": NOW,
            "value": "0.5", "priority": "2",
        }

        assert store.add_item(record) is True
        assert store.items()[0].value == 0.5

    def test_unhashable_bucket_rejected(self, store):
        assert store.add_item(make_item(context={"bucket": {"regime": "bull"}})) is False

    def test_first_item_is_maximally_novel(self, store):
        item = make_item(reward=2.0)
        store.add_item(item)

        # 0.5 * |reward| + 0.3 * novelty(1.0) + 0.2 * no transition
        assert item.priority == pytest.approx(1.3)

    def test_duplicate_state_has_no_novelty(self, store):
        store.add_item(make_item(reward=0.0))
        duplicate = make_item(reward=0.0)
        store.add_item(duplicate)

        assert duplicate.priority == pytest.approx(0.0)

    def test_transition_magnitude(self, store):
        store.add_item(make_item(reward=0.0, state=(0.0, 0.0)))
        item = make_item(reward=0.0, state=(0.0, 0.0), next_state=[3.0, 4.0])
        store.add_item(item)

        assert item.priority == pytest.approx(0.2 * 5.0)

    def test_scorer_values_unscored_items(self, config):
        scorer = Mock()
        scorer.score.return_value = SimpleNamespace(value=0.42)
        store = BoundedStore(capacity=5, config=config, scorer=scorer)

        item = make_item()
        store.add_item(item)

        assert item.value == 0.42
        scorer.score.assert_called_once()


class TestEviction:
    """Test the capacity invariant and eviction choice."""

    def test_capacity_never_exceeded(self, store):
        for i in range(50):
            store.add_item(make_item(value=(i % 10) / 10.0, timestamp=NOW + i))
            assert store.size() <= store.capacity

        assert store.size() == 5
        assert store.get_stats()["evictions"] == 45

    def test_evicts_lowest_value(self, store):
        for value in [0.9, 0.1, 0.5, 0.7, 0.3]:
            store.add_item(make_item(value=value))

        store.add_item(make_item(value=0.6))

        assert sorted(item.value for item in store.items()) == [0.3, 0.5, 0.6, 0.7, 0.9]

    def test_oldest_evicted_among_ties(self, store):
        items = [make_item(value=0.5, timestamp=NOW + offset) for offset in (3, 1, 4, 2, 5)]
        for item in items:
            store.add_item(item)

        store.add_item(make_item(value=0.5, timestamp=NOW + 10))

        remaining = {item.item_id for item in store.items()}
        assert items[1].item_id not in remaining
        assert len(remaining) == 5

    def test_unscored_items_evicted_first(self, store):
        for value in [0.2, 0.3, None, 0.4, 0.5]:
            store.add_item(make_item(value=value))

        store.add_item(make_item(value=0.9))

        assert all(item.is_scored for item in store.items())

    def test_eviction_reuses_slot(self, store):
        for value in [0.9, 0.1, 0.5, 0.7, 0.3]:
            store.add_item(make_item(value=value))

        newcomer = make_item(value=0.6)
        store.add_item(newcomer)

        assert store.get(1) is newcomer


class TestSampling:
    """Test priority and uniform sampling."""

    def test_empty_store_samples_nothing(self, store):
        assert store.sample(8) == []

    def test_non_positive_batch(self, store):
        store.add_item(make_item())
        assert store.sample(0) == []

    def test_priority_sampling_follows_priorities(self, store):
        for i in range(5):
            store.add_item(make_item(state=(float(i), 0.0)))
        for i in range(5):
            store.update_priority(i, 0.0)
        store.update_priority(3, 2.0)

        batch = store.sample(20)

        assert len(batch) == 20
        assert all(isinstance(s, SampledItem) for s in batch)
        assert {s.index for s in batch} == {3}

    def test_uniform_fallback_when_priorities_zero(self, store):
        for i in range(5):
            store.add_item(make_item(state=(float(i), 0.0)))
        for i in range(5):
            store.update_priority(i, 0.0)

        batch = store.sample(10)

        assert len(batch) == 5
        assert len({s.index for s in batch}) == 5

    def test_uniform_when_prioritization_disabled(self, store):
        for i in range(5):
            store.add_item(make_item(state=(float(i), 0.0)))

        batch = store.sample(3, prioritized=False)

        assert len(batch) == 3
        assert len({s.index for s in batch}) == 3

    def test_sampled_index_addresses_item(self, store):
        for i in range(5):
            store.add_item(make_item(state=(float(i), 0.0)))

        for sampled in store.sample(10):
            assert store.get(sampled.index) is sampled.item

    def test_seeded_sampling_is_reproducible(self, config):
        def draw():
            store = BoundedStore(capacity=5, config=config)
            for i in range(5):
                store.add_item(make_item(reward=float(i), state=(float(i), 0.0)))
            return [s.index for s in store.sample(10)]

        assert draw() == draw()

    def test_update_priority_validation(self, store):
        store.add_item(make_item())

        with pytest.raises(IndexError):
            store.update_priority(3, 1.0)
        with pytest.raises(ValueError):
            store.update_priority(0, -1.0)
        with pytest.raises(ValueError):
            store.update_priority(0, float("inf"))

    def test_update_priority(self, store):
        store.add_item(make_item())
        store.update_priority(0, 7.5)

        assert store.get(0).priority == 7.5


class TestCompaction:
    """Test compaction triggering and whole-store compaction."""

    def test_should_compact_threshold(self):
        store = BoundedStore(capacity=10, config=StoreConfig(compaction_threshold=0.8))
        for i in range(7):
            store.add_item(make_item(state=(float(i), 0.0)))
        assert store.should_compact() is False

        store.add_item(make_item(state=(7.0, 0.0)))
        assert store.should_compact() is True
        assert store.occupancy == pytest.approx(0.8)

    def test_compact_replaces_contents(self, config):
        grouper = SimilarityGrouper()
        store = BoundedStore(capacity=10, config=config, grouper=grouper)
        engine = CompactionEngine(CompactionConfig(), grouper=grouper)
        for _ in range(4):
            store.add_item(make_item(action="buy"))
        store.add_item(make_item(action="sell"))

        result = store.compact(engine, now=NOW)

        assert store.size() == 2
        assert result.rules_created == 1
        assert all(item.priority == config.neutral_priority for item in store.items())
        assert store.get_stats()["compactions"] == 1

    def test_compact_does_not_alias_rule_representatives(self, config):
        grouper = SimilarityGrouper()
        store = BoundedStore(capacity=10, config=config, grouper=grouper)
        for _ in range(3):
            store.add_item(make_item(action="buy"))

        result = store.compact(CompactionEngine(CompactionConfig(), grouper=grouper), now=NOW)
        store.update_priority(0, 9.0)

        assert result.rules[0].representative.priority != 9.0


class TestBulkChanges:
    """Test atomic changes, removal, refresh and restore."""

    def test_apply_changes(self, store):
        first, second = make_item(value=0.5), make_item(value=0.6)
        store.add_item(first)
        store.add_item(second)

        admitted = store.apply_changes(remove_ids=[first.item_id], admit_items=[make_item(value=0.7)])

        assert admitted == 1
        assert first.item_id not in {item.item_id for item in store.items()}
        assert store.size() == 2

    def test_apply_changes_rolls_back(self, config):
        scorer = Mock()
        scorer.score.side_effect = RuntimeError("scoring backend down")
        store = BoundedStore(capacity=5, config=config, scorer=scorer)
        existing = [make_item(value=0.5), make_item(value=0.6)]
        for item in existing:
            store.add_item(item)
        stats_before = store.get_stats()

        with pytest.raises(RuntimeError):
            store.apply_changes(
                remove_ids=[existing[0].item_id],
                admit_items=[make_item(value=0.8), make_item()]
            )

        assert [item.item_id for item in store.items()] == [item.item_id for item in existing]
        assert store.get_stats() == stats_before

    def test_remove_ids(self, store):
        items = [make_item(value=0.1 * i) for i in range(1, 4)]
        for item in items:
            store.add_item(item)

        removed = store.remove_ids([items[0].item_id, "missing"])

        assert removed == [items[0]]
        assert store.size() == 2

    def test_refresh_values(self, store):
        store.add_item(make_item())
        store.add_item(make_item())
        scorer = Mock()
        scorer.score.side_effect = [SimpleNamespace(value=0.8), RuntimeError("bad item")]

        refreshed = store.refresh_values(scorer, now=NOW)

        assert refreshed == 1
        assert [item.value for item in store.items()] == [0.8, 0.0]

    def test_restore_truncates_to_capacity(self, store):
        items = [make_item(value=v) for v in (0.1, 0.9, 0.2, 0.8, 0.3, 0.7, 0.4)]

        store.restore(items)

        assert store.size() == 5
        assert min(item.value for item in store.items()) == 0.3

    def test_clear(self, store):
        store.add_item(make_item())
        assert store.clear() == 1
        assert store.size() == 0

    def test_capacity_violation_is_detected(self, store):
        store._items.extend(make_item() for _ in range(6))
        store._seq.extend(range(6))

        with pytest.raises(CapacityViolationError):
            store._assert_capacity()

    def test_get_stats(self, store):
        store.add_item(make_item())
        store.sample(2)

        stats = store.get_stats()

        assert stats["inserts"] == 1
        assert stats["samples"] == 2
        assert stats["capacity"] == 5
        assert stats["occupancy"] == pytest.approx(0.2)

    def test_invalid_capacity(self, config):
        with pytest.raises(ValueError):
            BoundedStore(capacity=0, config=config)


class TestExclusiveAccess:
    """Test holding the store across several operations."""

    def test_other_threads_wait(self, store):
        started = threading.Event()

        def writer():
            started.set()
            store.add_item(make_item())

        with store.exclusive():
            thread = threading.Thread(target=writer)
            thread.start()
            started.wait(timeout=1.0)
            thread.join(timeout=0.2)

            assert thread.is_alive()
            assert store.size() == 0

            # The holding thread is not blocked
            store.add_item(make_item())
            assert store.size() == 1

        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert store.size() == 2
