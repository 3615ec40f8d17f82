"""
Parameter-combination resolver.

Maps every model index tuple of a process (year; year and sex; fishery,
year and sex; ...) to the parameter combination that applies there.
Combinations are walked in definition order; cells outside the process
domain are skipped, and a cell claimed by several combinations goes to the
last one (with a warning). Processes that must cover their whole domain
raise `ConfigurationError` naming the first uncovered cell.
"""

from __future__ import annotations

from itertools import product
from typing import Dict, List, Optional, Sequence, Tuple

from pycsam.core.config import ModelConfiguration
from pycsam.core.dimensions import MATURITY_LABELS, SEX_LABELS, Maturity, Sex
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.processes import CellKey, ParameterCombination, ProcessInfo
from pycsam.logger import get_logger

logger = get_logger('resolver')


class CombinationResolver:
    """Cell -> combination lookup for one process.

    Parameters
    ----------
    info : ProcessInfo
        The process combinations
    domain : sequence of sequences
        Allowed values along each key axis, e.g. ``[years, sexes]``
    axis_names : sequence of str
        Names of the key axes, used in messages
    required : bool
        Whether every cell of the domain must be covered
    """

    def __init__(
        self,
        info: ProcessInfo,
        config: ModelConfiguration,
        domain: Sequence[Sequence[int]],
        axis_names: Sequence[str],
        required: bool = True,
    ):
        self.info = info
        self.axis_names = tuple(axis_names)
        self.domain = [tuple(int(v) for v in axis) for axis in domain]
        self._lookup: Dict[CellKey, int] = {}
        allowed = [set(axis) for axis in self.domain]

        for pc, combo in enumerate(info.combinations):
            for key in combo.cells(config):
                if any(k not in ok for k, ok in zip(key, allowed)):
                    continue
                previous = self._lookup.get(key)
                if previous is not None and previous != pc:
                    logger.warning(
                        "%s: %s is covered by combinations %d and %d; using %d",
                        info.name, self.describe(key), previous + 1, pc + 1, pc + 1,
                    )
                self._lookup[key] = pc

        if required:
            for key in product(*self.domain):
                if key not in self._lookup:
                    raise ConfigurationError(
                        f"No {info.name} parameter combination covers {self.describe(key)}"
                    )

    def describe(self, key: CellKey) -> str:
        parts = []
        for name, value in zip(self.axis_names, key):
            if name == "sex":
                parts.append(f"sex {SEX_LABELS[Sex(value)]}")
            elif name == "maturity":
                parts.append(f"maturity {MATURITY_LABELS[Maturity(value)]}")
            else:
                parts.append(f"{name} {value}")
        return ", ".join(parts)

    def index(self, *key: int) -> Optional[int]:
        """0-based combination index for a cell, or None if uncovered."""
        return self._lookup.get(tuple(int(k) for k in key))

    def combination(self, *key: int) -> Optional[ParameterCombination]:
        pc = self.index(*key)
        return None if pc is None else self.info.combinations[pc]

    def cells(self, pc: int) -> List[CellKey]:
        """Cells resolved to combination `pc` (0-based), in sorted order."""
        return sorted(k for k, v in self._lookup.items() if v == pc)

    def __contains__(self, key: Tuple[int, ...]) -> bool:
        return tuple(key) in self._lookup

    def __len__(self) -> int:
        return len(self._lookup)


class ModelResolvers:
    """Resolvers for every process of a model, built once at configuration time."""

    def __init__(self, processes, config: ModelConfiguration):
        years = config.years.tolist()
        years_p1 = config.years_p1.tolist()
        sexes = [int(Sex.MALE), int(Sex.FEMALE)]
        maturity = [int(Maturity.IMMATURE), int(Maturity.MATURE)]
        self.recruitment = CombinationResolver(
            processes.recruitment, config, [years], ["year"])
        self.natural_mortality = CombinationResolver(
            processes.natural_mortality, config, [years], ["year"])
        self.growth = CombinationResolver(
            processes.growth, config, [years, sexes, maturity], ["year", "sex", "maturity"])
        self.maturity = CombinationResolver(
            processes.maturity, config, [years, sexes], ["year", "sex"])
        self.fisheries = CombinationResolver(
            processes.fisheries, config,
            [range(config.n_fisheries), years, sexes], ["fishery", "year", "sex"],
            required=False,
        )
        self.surveys = CombinationResolver(
            processes.surveys, config,
            [range(config.n_surveys), years_p1, sexes], ["survey", "year", "sex"],
            required=False,
        )
