"""
Parameter data structures for pycsam.

Parameters are organized in named groups (``pLnR``, ``pDevsLnR``, ...). Each
group holds one or more scalar parameters or one or more vector parameters
defined over an index block (deviations over years, maturity logits over
size bins). Parameter combinations reference group members with 1-based
indices; an index of 0 means "not supplied".

`ParameterSet` owns the metadata (initial values, bounds, estimation phases,
priors) and packs/unpacks the flat parameter vector seen by the optimizer.
`ParameterValues` is the resolved, read-only view used during one objective
function evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock

ALWAYS_ACTIVE = np.iinfo(np.int32).max  # Phase at which every estimated parameter is active


@dataclass
class Prior:
    """Prior on a parameter value.

    Attributes
    ----------
    kind : str
        'normal' (on the value) or 'lognormal' (on log(value))
    mean : float
        Mean of the prior (log-scale mean for 'lognormal')
    sd : float
        Standard deviation (log-scale for 'lognormal')
    """

    kind: str
    mean: float
    sd: float

    def __post_init__(self):
        self.kind = self.kind.lower()
        if self.kind not in ("normal", "lognormal"):
            raise ConfigurationError(f"Unrecognized prior type '{self.kind}'")
        if self.sd <= 0:
            raise ConfigurationError(f"Prior sd must be positive, got {self.sd}")

    def nll(self, value) -> float:
        """Negative log density, without normalizing constants."""
        value = np.asarray(value, dtype=float)
        if self.kind == "lognormal":
            value = np.log(np.maximum(value, np.finfo(float).tiny))
        z = (value - self.mean) / self.sd
        return float(0.5 * np.sum(z * z))


@dataclass
class ParameterInfo:
    """Scalar parameter.

    Attributes
    ----------
    name : str
        Descriptive label
    value : float
        Initial value
    lower, upper : float
        Bounds used by the optimizer
    phase : int
        Estimation phase; values <= 0 keep the parameter fixed
    prior : Prior, optional
        Prior contributing to the objective when priors are fit
    """

    name: str
    value: float
    lower: float = -np.inf
    upper: float = np.inf
    phase: int = 1
    prior: Optional[Prior] = None

    def __post_init__(self):
        if self.lower > self.upper:
            raise ConfigurationError(f"Parameter '{self.name}': lower bound > upper bound")
        if not self.lower <= self.value <= self.upper:
            raise ConfigurationError(
                f"Parameter '{self.name}': initial value {self.value} outside "
                f"[{self.lower}, {self.upper}]"
            )


@dataclass
class VectorParameterInfo:
    """Vector parameter defined over an index block.

    Deviation vectors (`is_devs`) are constrained to sum to zero: the
    values used by the model are the raw values minus their mean.
    """

    name: str
    block: IndexBlock
    values: Optional[np.ndarray] = None
    lower: float = -np.inf
    upper: float = np.inf
    phase: int = 1
    is_devs: bool = False
    prior: Optional[Prior] = None

    def __post_init__(self):
        if self.values is None:
            self.values = np.zeros(len(self.block))
        self.values = np.asarray(self.values, dtype=float)
        if self.values.shape != (len(self.block),):
            raise ValueError(
                f"Vector parameter '{self.name}' has {self.values.size} values "
                f"but its block {self.block} has {len(self.block)} elements"
            )
        if np.any(self.values < self.lower) or np.any(self.values > self.upper):
            raise ConfigurationError(
                f"Vector parameter '{self.name}': initial values outside "
                f"[{self.lower}, {self.upper}]"
            )


@dataclass(frozen=True)
class ActivationCondition:
    """Predicate deciding whether a parameter is active at the current stage.

    Replaces queries against a global optimizer phase: the stage is passed
    in with each evaluation.
    """

    stage: int = ALWAYS_ACTIVE

    def is_active(self, phase: int) -> bool:
        return 0 < phase <= self.stage


@dataclass
class ParameterValues:
    """Resolved parameter values for a single objective function evaluation."""

    scalars: Dict[str, np.ndarray]
    vectors: Dict[str, List[np.ndarray]]
    blocks: Dict[str, List[IndexBlock]]
    scalar_phases: Dict[str, np.ndarray]
    activation: ActivationCondition = field(default_factory=ActivationCondition)

    def scalar(self, group: str, ref: int) -> float:
        """Value of scalar `ref` (1-based) in `group`; 0.0 when ref is 0."""
        if ref == 0:
            return 0.0
        values = self._group(self.scalars, group, ref)
        return float(values[ref - 1])

    def vector(self, group: str, ref: int) -> Optional[np.ndarray]:
        """Vector `ref` (1-based) in `group`, or None when ref is 0."""
        if ref == 0:
            return None
        return self._group(self.vectors, group, ref)[ref - 1]

    def block(self, group: str, ref: int) -> IndexBlock:
        return self._group(self.blocks, group, ref)[ref - 1]

    def dev(self, group: str, ref: int, index: int) -> float:
        """Deviation for year `index` from vector `ref`.

        Raises
        ------
        ConfigurationError
            If the vector's index block does not contain `index`
        """
        if ref == 0:
            return 0.0
        pos = self.block(group, ref).position(index)
        if pos is None:
            raise ConfigurationError(
                f"Deviation vector {group}[{ref}] with block {self.block(group, ref)} "
                f"does not cover year {index}"
            )
        return float(self.vector(group, ref)[pos])

    def is_active(self, group: str, ref: int) -> bool:
        """Whether scalar `ref` of `group` is active at the current stage."""
        if ref == 0:
            return False
        phases = self._group(self.scalar_phases, group, ref)
        return self.activation.is_active(int(phases[ref - 1]))

    @staticmethod
    def _group(store: dict, group: str, ref: int):
        try:
            values = store[group]
        except KeyError:
            raise ConfigurationError(f"No parameters defined for group '{group}'") from None
        if ref < 1 or ref > len(values):
            raise ConfigurationError(
                f"Parameter reference {group}[{ref}] out of range (1..{len(values)})"
            )
        return values


@dataclass
class ParameterSet:
    """All model parameters, grouped by name.

    The flat parameter vector lists the scalar groups first, then the
    vector groups, each in insertion order.
    """

    scalars: Dict[str, List[ParameterInfo]] = field(default_factory=dict)
    vectors: Dict[str, List[VectorParameterInfo]] = field(default_factory=dict)

    def add_scalar(self, group: str, info: ParameterInfo) -> int:
        """Append a scalar parameter to `group`; returns its 1-based reference."""
        self.scalars.setdefault(group, []).append(info)
        return len(self.scalars[group])

    def add_vector(self, group: str, info: VectorParameterInfo) -> int:
        """Append a vector parameter to `group`; returns its 1-based reference."""
        self.vectors.setdefault(group, []).append(info)
        return len(self.vectors[group])

    def _entries(self):
        for group, infos in self.scalars.items():
            for i, info in enumerate(infos, start=1):
                yield group, i, None, info
        for group, infos in self.vectors.items():
            for i, info in enumerate(infos, start=1):
                for j, idx in enumerate(info.block):
                    yield group, i, (j, idx), info

    @property
    def n_params(self) -> int:
        n = sum(len(infos) for infos in self.scalars.values())
        n += sum(len(info.block) for infos in self.vectors.values() for info in infos)
        return n

    def labels(self) -> List[str]:
        out = []
        for group, i, element, _ in self._entries():
            out.append(f"{group}[{i}]" if element is None else f"{group}[{i}][{element[1]}]")
        return out

    def initial_vector(self) -> np.ndarray:
        out = []
        for _, _, element, info in self._entries():
            out.append(info.value if element is None else info.values[element[0]])
        return np.asarray(out, dtype=float)

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        entries = list(self._entries())
        lower = np.array([info.lower for *_, info in entries], dtype=float)
        upper = np.array([info.upper for *_, info in entries], dtype=float)
        return lower, upper

    def phases(self) -> np.ndarray:
        return np.array([info.phase for *_, info in self._entries()], dtype=int)

    @property
    def max_phase(self) -> int:
        phases = self.phases()
        return int(phases.max()) if phases.size and phases.max() > 0 else 0

    def active_mask(self, phase: Optional[int] = None) -> np.ndarray:
        """Boolean mask of parameters estimated at `phase` (None = all phases)."""
        cond = ActivationCondition(ALWAYS_ACTIVE if phase is None else phase)
        return np.array([cond.is_active(p) for p in self.phases()], dtype=bool)

    def unpack(self, x, phase: Optional[int] = None) -> ParameterValues:
        """Split a flat parameter vector into grouped values.

        Parameters
        ----------
        x : array-like
            Full parameter vector (length `n_params`)
        phase : int, optional
            Current estimation stage for activation predicates

        Returns
        -------
        ParameterValues
        """
        x = np.asarray(x, dtype=float)
        if x.shape != (self.n_params,):
            raise ValueError(f"Parameter vector has shape {x.shape}, expected ({self.n_params},)")
        pos = 0
        scalars, phases = {}, {}
        for group, infos in self.scalars.items():
            n = len(infos)
            scalars[group] = x[pos:pos + n].copy()
            phases[group] = np.array([info.phase for info in infos], dtype=int)
            pos += n
        vectors, blocks = {}, {}
        for group, infos in self.vectors.items():
            vals = []
            for info in infos:
                n = len(info.block)
                v = x[pos:pos + n].copy()
                if info.is_devs:
                    v = v - v.mean()
                vals.append(v)
                pos += n
            vectors[group] = vals
            blocks[group] = [info.block for info in infos]
        return ParameterValues(
            scalars=scalars,
            vectors=vectors,
            blocks=blocks,
            scalar_phases=phases,
            activation=ActivationCondition(ALWAYS_ACTIVE if phase is None else phase),
        )

    def prior_nll(self, values: ParameterValues) -> Dict[str, float]:
        """Prior negative log-likelihood per parameter label (priors only)."""
        out = {}
        for group, infos in self.scalars.items():
            for i, info in enumerate(infos, start=1):
                if info.prior is not None:
                    out[f"{group}[{i}]"] = info.prior.nll(values.scalar(group, i))
        for group, infos in self.vectors.items():
            for i, info in enumerate(infos, start=1):
                if info.prior is not None:
                    out[f"{group}[{i}]"] = info.prior.nll(values.vector(group, i))
        return out
