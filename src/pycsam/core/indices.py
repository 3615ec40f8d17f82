"""
Index ranges and index blocks.

An index block is a (possibly disjoint) set of model indices along one
dimension, written as a bracketed list of ranges, e.g.
``"[1962:2000;2005;-1:1959]"``. A negative range limit is "open" and is
replaced by the model minimum (lower limit) or maximum (upper limit) of the
dimension when the block is resolved.

Blocks map block positions to model indices (forward) and model indices
back to block positions (reverse). They are immutable once built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from pycsam.core.exceptions import ConfigurationError

OPEN = -1  # Sentinel for an open range limit


@dataclass(frozen=True)
class IndexRange:
    """Closed integer interval [min, max] along one model dimension.

    Use :meth:`resolve` to substitute the model limits for open (negative)
    ends.
    """

    min: int
    max: int

    def resolve(self, model_min: int, model_max: int) -> "IndexRange":
        """Substitute model limits for open ends and validate ordering."""
        mn = model_min if self.min < 0 else self.min
        mx = model_max if self.max < 0 else self.max
        if mn > mx:
            raise ConfigurationError(
                f"Index range {self} resolves to [{mn}, {mx}] with min > max"
            )
        return IndexRange(mn, mx)

    @classmethod
    def parse(cls, text: str, model_min: int, model_max: int) -> "IndexRange":
        """Parse ``"x:y"`` or ``"x"`` and resolve it against the model limits."""
        text = text.strip()
        try:
            if ":" in text:
                lo, hi = text.split(":", 1)
                rng = cls(int(lo), int(hi))
            else:
                value = int(text)
                if value < 0:
                    raise ConfigurationError(
                        f"Single index '{text}' cannot be open-ended"
                    )
                rng = cls(value, value)
        except ValueError:
            raise ConfigurationError(f"Malformed index range '{text}'") from None
        return rng.resolve(model_min, model_max)

    def indices(self) -> np.ndarray:
        return np.arange(self.min, self.max + 1)

    def __len__(self) -> int:
        return self.max - self.min + 1

    def __str__(self) -> str:
        if self.min == self.max:
            return str(self.min)
        return f"{self.min}:{self.max}"


@dataclass(frozen=True)
class IndexBlock:
    """Ordered collection of index ranges along one dimension.

    Attributes
    ----------
    ranges : tuple of IndexRange
        Resolved ranges, in definition order
    model_min, model_max : int
        Limits of the dimension the block was resolved against
    """

    ranges: Tuple[IndexRange, ...]
    model_min: int
    model_max: int
    _forward: np.ndarray = field(init=False, repr=False, compare=False)
    _reverse: Dict[int, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if len(self.ranges) == 0:
            raise ConfigurationError("An index block needs at least one range")
        forward: List[int] = []
        reverse: Dict[int, int] = {}
        for rng in self.ranges:
            for idx in range(rng.min, rng.max + 1):
                if idx in reverse:
                    raise ConfigurationError(
                        f"Index {idx} appears more than once in block {self}"
                    )
                reverse[idx] = len(forward)
                forward.append(idx)
        object.__setattr__(self, "_forward", np.asarray(forward, dtype=int))
        object.__setattr__(self, "_reverse", reverse)

    @classmethod
    def parse(cls, text: str, model_min: int, model_max: int) -> "IndexBlock":
        """Parse a block string such as ``"[1962:2000;2005;-1:1959]"``.

        Raises
        ------
        ConfigurationError
            If the string is not bracketed or a range is malformed
        """
        text = text.strip()
        if not (text.startswith("[") and text.endswith("]")):
            raise ConfigurationError(
                f"Error parsing index block '{text}': expected '[...]'"
            )
        body = text[1:-1]
        ranges = tuple(
            IndexRange.parse(part, model_min, model_max) for part in body.split(";")
        )
        return cls(ranges, model_min, model_max)

    @classmethod
    def from_ranges(
        cls, ranges: Sequence[Tuple[int, int]], model_min: int, model_max: int
    ) -> "IndexBlock":
        """Build a block from (min, max) pairs; negative limits are open."""
        resolved = tuple(
            IndexRange(lo, hi).resolve(model_min, model_max) for lo, hi in ranges
        )
        return cls(resolved, model_min, model_max)

    @classmethod
    def full(cls, model_min: int, model_max: int) -> "IndexBlock":
        """Block covering the whole dimension."""
        return cls((IndexRange(model_min, model_max),), model_min, model_max)

    @property
    def forward(self) -> np.ndarray:
        """Model index at each block position."""
        return self._forward

    def position(self, index: int) -> Optional[int]:
        """Block position (0-based) of a model index, or None if not in the block."""
        return self._reverse.get(int(index))

    def __contains__(self, index) -> bool:
        return int(index) in self._reverse

    def __iter__(self) -> Iterator[int]:
        return iter(int(i) for i in self._forward)

    def __len__(self) -> int:
        return len(self._forward)

    def __str__(self) -> str:
        return "[" + ";".join(str(r) for r in self.ranges) + "]"


@dataclass
class IndexBlockSet:
    """Numbered index blocks defined along a single dimension.

    Attributes
    ----------
    dimension : str
        Dimension name (YEAR, SIZE, SEX, FISHERY, ...)
    blocks : list of IndexBlock
        Blocks, addressed by 1-based id
    """

    dimension: str
    blocks: List[IndexBlock] = field(default_factory=list)

    @classmethod
    def parse(
        cls, dimension: str, texts: Sequence[str], model_min: int, model_max: int
    ) -> "IndexBlockSet":
        return cls(
            dimension, [IndexBlock.parse(t, model_min, model_max) for t in texts]
        )

    def get_block(self, block_id: int) -> IndexBlock:
        """Return the block with 1-based id `block_id`."""
        if block_id < 1 or block_id > len(self.blocks):
            raise ConfigurationError(
                f"Index block {block_id} not defined for dimension {self.dimension} "
                f"({len(self.blocks)} blocks)"
            )
        return self.blocks[block_id - 1]

    def __len__(self) -> int:
        return len(self.blocks)


@dataclass
class IndexBlockSets:
    """Index block sets keyed by dimension name."""

    sets: Dict[str, IndexBlockSet] = field(default_factory=dict)

    def add(self, block_set: IndexBlockSet):
        self.sets[block_set.dimension] = block_set

    def get_block_set(self, dimension: str) -> IndexBlockSet:
        try:
            return self.sets[dimension]
        except KeyError:
            raise ConfigurationError(
                f"No index block set defined for dimension '{dimension}'"
            ) from None

    def get_block(self, dimension: str, block_id: int) -> IndexBlock:
        return self.get_block_set(dimension).get_block(block_id)
