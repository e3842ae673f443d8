"""Tests for chunked writes and shard planning."""

import pytest

from unearthed.services.batching import chunked, split_into_shards
from unearthed.services.notion.jobs import plan_shards, shard_for


class TestChunked:
    """Tests for fixed-size chunking."""

    def test_chunks_of_100(self):
        """Items are cut into chunks of at most 100."""
        chunks = list(chunked(list(range(250)), 100))

        assert [len(c) for c in chunks] == [100, 100, 50]
        assert [item for c in chunks for item in c] == list(range(250))

    def test_empty_input_yields_nothing(self):
        """An empty sequence yields no chunks."""
        assert list(chunked([], 100)) == []

    def test_size_must_be_positive(self):
        """A size below one raises ValueError."""
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestSplitIntoShards:
    """Tests for contiguous shard splitting."""

    @pytest.mark.parametrize("count", [0, 1, 3, 4, 7, 10, 17, 100])
    @pytest.mark.parametrize("parts", [1, 2, 3, 4, 8])
    def test_every_item_in_exactly_one_shard(self, count, parts):
        """Each item lands in exactly one shard, in order."""
        items = list(range(count))

        shards = split_into_shards(items, parts)

        assert len(shards) == parts
        assert [item for shard in shards for item in shard] == items

    def test_shards_are_near_equal(self):
        """Each shard takes a ceiling-sized slice until the items run out."""
        shards = split_into_shards(list(range(10)), 4)

        assert [len(s) for s in shards] == [3, 3, 3, 1]

    def test_more_parts_than_items_leaves_empty_shards(self):
        """Extra shards are returned empty."""
        assert split_into_shards(["a", "b"], 4) == [["a"], ["b"], [], []]

    def test_parts_must_be_positive(self):
        """A part count below one raises ValueError."""
        with pytest.raises(ValueError):
            split_into_shards([1], 0)


class TestPlanShards:
    """Tests for the Notion shard plan."""

    def test_keyed_by_shard_number(self):
        """The plan maps shard numbers to their items."""
        plan = plan_shards(list(range(5)), 2)

        assert plan == {0: [0, 1, 2], 1: [3, 4]}

    def test_single_source_shard_is_stable_and_in_range(self):
        """A source always maps to the same in-range shard."""
        from uuid import uuid4

        source_id = uuid4()
        shard = shard_for(source_id, 4)

        assert 0 <= shard < 4
        assert shard_for(source_id, 4) == shard
