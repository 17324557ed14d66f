"""
Unit tests for cluster signatures.
"""

import pytest

from distillery.core.grouping import SIGNATURE_FIELDS, SimilarityGrouper
from distillery.models.experience import ExperienceItem


def make_item(state=(0.5, 0.5), action="hold", reward=1.0, **kwargs):
    return ExperienceItem(state=list(state), action=action, reward=reward, timestamp=0.0, **kwargs)


class TestSimilarityGrouper:
    """Test signature derivation and grouping."""

    def test_rejects_non_positive_width(self):
        with pytest.raises(ValueError):
            SimilarityGrouper(bucket_width=0)

    def test_bucket_from_state_norm(self):
        grouper = SimilarityGrouper(bucket_width=1.0)

        assert grouper.context_bucket(make_item(state=(0.3, 0.4))) == 0
        assert grouper.context_bucket(make_item(state=(3.0, 4.0))) == 5

    def test_explicit_bucket_wins(self):
        grouper = SimilarityGrouper()
        item = make_item(state=(30.0, 40.0), context={"bucket": "trending"})

        assert grouper.context_bucket(item) == "trending"

    def test_bucket_width(self):
        grouper = SimilarityGrouper(bucket_width=2.5)
        assert grouper.context_bucket(make_item(state=(3.0, 4.0))) == 2

    def test_reward_sign(self):
        assert SimilarityGrouper.reward_sign(make_item(reward=3.2)) == 1
        assert SimilarityGrouper.reward_sign(make_item(reward=-0.1)) == -1
        assert SimilarityGrouper.reward_sign(make_item(reward=0.0)) == 0

    def test_signature_is_hashable_for_list_actions(self):
        grouper = SimilarityGrouper()
        signature = grouper.signature(make_item(action=[0, 1]))

        assert signature == (0, (0, 1), 1)
        assert hash(signature) is not None

    def test_features(self):
        grouper = SimilarityGrouper()
        features = grouper.features(make_item(action="buy", reward=-2.0))

        assert tuple(features) == SIGNATURE_FIELDS
        assert features == {"context_bucket": 0, "action": "buy", "reward_sign": -1}

    def test_signature_does_not_touch_item(self):
        item = make_item()
        before = item.to_dict()

        SimilarityGrouper().signature(item)

        assert item.to_dict() == before

    def test_group_preserves_first_seen_order(self):
        grouper = SimilarityGrouper()
        items = [
            make_item(action="sell"),
            make_item(action="buy"),
            make_item(action="sell"),
            make_item(action="hold"),
            make_item(action="buy"),
        ]

        groups = grouper.group(items)

        assert [sig[1] for sig in groups] == ["sell", "buy", "hold"]
        assert groups[(0, "sell", 1)] == [items[0], items[2]]

    def test_count(self):
        grouper = SimilarityGrouper()
        items = [make_item(reward=1.0), make_item(reward=2.0), make_item(reward=-1.0)]

        counts = grouper.count(items)

        assert counts == {(0, "hold", 1): 2, (0, "hold", -1): 1}

    def test_count_skips_items_without_signature(self):
        grouper = SimilarityGrouper()
        broken = make_item(action="buy")
        broken.action = {"type": "buy"}

        counts = grouper.count([make_item(), broken, make_item()])

        assert counts == {(0, "hold", 1): 2}

    def test_partition_separates_unclustered_items(self):
        grouper = SimilarityGrouper()
        broken = make_item(action="buy")
        broken.action = {"type": "buy"}
        items = [make_item(), broken]

        clusters, unclustered = grouper.partition(items)

        assert clusters == {(0, "hold", 1): [items[0]]}
        assert unclustered == [broken]
