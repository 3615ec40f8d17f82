"""
Tests for index ranges and index blocks.
"""

import numpy as np
import pytest

from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock, IndexBlockSet, IndexBlockSets, IndexRange


class TestIndexRange:
    """Tests for IndexRange parsing and resolution."""

    def test_parse_range(self):
        """Parse a closed range."""
        rng = IndexRange.parse("1962:2000", 1950, 2010)
        assert rng == IndexRange(1962, 2000)
        assert len(rng) == 39

    def test_parse_single_index(self):
        """A single index gives a one-element range."""
        rng = IndexRange.parse(" 2005 ", 1950, 2010)
        assert rng.min == rng.max == 2005
        assert str(rng) == "2005"

    def test_open_limits_use_model_limits(self):
        """Negative limits are replaced by the model min/max."""
        assert IndexRange.parse("-1:1959", 1950, 2010) == IndexRange(1950, 1959)
        assert IndexRange.parse("2000:-1", 1950, 2010) == IndexRange(2000, 2010)
        assert IndexRange.parse("-1:-1", 1, 5) == IndexRange(1, 5)

    def test_min_greater_than_max(self):
        """A range resolving to min > max is rejected."""
        with pytest.raises(ConfigurationError):
            IndexRange.parse("2000:1990", 1950, 2010)

    def test_malformed(self):
        """Non-integer text is rejected."""
        with pytest.raises(ConfigurationError, match="Malformed"):
            IndexRange.parse("a:b", 1950, 2010)

    def test_indices(self):
        """indices() lists every element of the range."""
        np.testing.assert_array_equal(IndexRange(3, 6).indices(), [3, 4, 5, 6])


class TestIndexBlock:
    """Tests for IndexBlock forward and reverse lookups."""

    def test_parse_disjoint_block(self):
        """Ranges keep definition order in the forward map."""
        block = IndexBlock.parse("[1962:2000;2005;-1:1959]", 1950, 2010)
        assert len(block) == 39 + 1 + 10
        assert block.forward[0] == 1962
        assert block.forward[39] == 2005
        assert block.forward[40] == 1950
        assert str(block) == "[1962:2000;2005;1950:1959]"

    def test_reverse_lookup(self):
        """position() inverts the forward map."""
        block = IndexBlock.parse("[1962:2000;2005;-1:1959]", 1950, 2010)
        for pos, idx in enumerate(block.forward):
            assert block.position(idx) == pos
        assert block.position(2003) is None
        assert 2005 in block
        assert 2003 not in block

    def test_missing_brackets(self):
        """Block strings must be bracketed."""
        with pytest.raises(ConfigurationError, match="expected"):
            IndexBlock.parse("1962:2000", 1950, 2010)

    def test_duplicate_indices_rejected(self):
        """An index may appear in only one range of a block."""
        with pytest.raises(ConfigurationError, match="more than once"):
            IndexBlock.parse("[1:5;3]", 1, 10)

    def test_full_block(self):
        """full() covers the whole dimension."""
        block = IndexBlock.full(1, 5)
        assert list(block) == [1, 2, 3, 4, 5]

    def test_from_ranges_with_open_end(self):
        """from_ranges resolves open limits."""
        block = IndexBlock.from_ranges([(2001, -1)], 2000, 2002)
        assert list(block) == [2001, 2002]


class TestIndexBlockSets:
    """Tests for numbered block sets."""

    def test_get_block_by_id(self):
        """Blocks are addressed by 1-based id."""
        bs = IndexBlockSet.parse("YEAR", ["[2000:2001]", "[2002]"], 2000, 2002)
        assert list(bs.get_block(2)) == [2002]
        with pytest.raises(ConfigurationError):
            bs.get_block(3)
        with pytest.raises(ConfigurationError):
            bs.get_block(0)

    def test_lookup_by_dimension(self):
        """Block sets are keyed by dimension name."""
        sets = IndexBlockSets()
        sets.add(IndexBlockSet.parse("SIZE", ["[1:3]"], 1, 5))
        assert len(sets.get_block("SIZE", 1)) == 3
        with pytest.raises(ConfigurationError, match="YEAR"):
            sets.get_block_set("YEAR")
