"""
Model configuration and options.

`ModelConfiguration` fixes the model dimensions (years, size bins, fishery
and survey labels). `ModelOptions` holds run-time choices that do not change
the dimensions: fishery/mating timing, capture-rate averaging, penalty
weights, likelihood floors and debugging verbosity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple, Union

import numpy as np

from pycsam.core import constants as C
from pycsam.core.constants import CaptureRateAveraging, get_capture_rate_averaging
from pycsam.core.dimensions import N_MATURITY_STATES, N_SEXES, N_SHELL_CONDITIONS
from pycsam.core.exceptions import ConfigurationError

STR_YEAR_P1 = "YEAR_P1"  # Years including the terminal year max_year + 1


@dataclass
class DebugConfig:
    """Verbosity levels for the model components.

    Passed explicitly to every calculator instead of living in shared
    static state.

    Attributes
    ----------
    level : int
        Default level applied to all components (0 = quiet)
    components : dict
        Per-component overrides, e.g. ``{'growth': 2, 'fisheries': 1}``
    """

    level: int = 0
    components: Dict[str, int] = field(default_factory=dict)

    def level_for(self, component: str) -> int:
        return self.components.get(component, self.level)

    def enabled(self, component: str, threshold: int = 1) -> bool:
        return self.level_for(component) >= threshold


@dataclass
class ModelConfiguration:
    """Model dimensions.

    Attributes
    ----------
    name : str
        Configuration name
    min_year : int
        First model year
    max_year : int
        Last model year; the population is projected to max_year + 1
    z_cutpts : np.ndarray
        Size-bin cut points (n_bins + 1, strictly increasing)
    fisheries : list of str
        Fishery labels
    surveys : list of str
        Survey labels
    fit_to_priors : bool
        Include parameter priors in the objective function
    """

    name: str
    min_year: int
    max_year: int
    z_cutpts: np.ndarray
    fisheries: List[str] = field(default_factory=list)
    surveys: List[str] = field(default_factory=list)
    fit_to_priors: bool = True

    def __post_init__(self):
        self.z_cutpts = np.asarray(self.z_cutpts, dtype=float)
        if self.max_year < self.min_year:
            raise ConfigurationError(
                f"max_year ({self.max_year}) < min_year ({self.min_year})"
            )
        if self.z_cutpts.ndim != 1 or len(self.z_cutpts) < 2:
            raise ConfigurationError("z_cutpts must be a vector of at least 2 cut points")
        if np.any(np.diff(self.z_cutpts) <= 0):
            raise ConfigurationError("z_cutpts must be strictly increasing")
        for kind, labels in (("fishery", self.fisheries), ("survey", self.surveys)):
            if len(set(labels)) != len(labels):
                raise ConfigurationError(f"Duplicate {kind} labels: {labels}")

    @property
    def z_mids(self) -> np.ndarray:
        """Size-bin midpoints."""
        return 0.5 * (self.z_cutpts[:-1] + self.z_cutpts[1:])

    @property
    def n_bins(self) -> int:
        return len(self.z_cutpts) - 1

    @property
    def n_years(self) -> int:
        """Number of projected model years (min_year..max_year)."""
        return self.max_year - self.min_year + 1

    @property
    def n_fisheries(self) -> int:
        return len(self.fisheries)

    @property
    def n_surveys(self) -> int:
        return len(self.surveys)

    @property
    def years(self) -> np.ndarray:
        return np.arange(self.min_year, self.max_year + 1)

    @property
    def years_p1(self) -> np.ndarray:
        """Model years including the terminal year max_year + 1."""
        return np.arange(self.min_year, self.max_year + 2)

    @property
    def state_shape(self) -> Tuple[int, int, int, int]:
        """Shape of one year of numbers-at-size (sex, maturity, shell, size)."""
        return (N_SEXES, N_MATURITY_STATES, N_SHELL_CONDITIONS, self.n_bins)

    def year_index(self, year: int) -> int:
        """Array offset of a model year."""
        return int(year) - self.min_year

    def fishery_index(self, label: str) -> int:
        try:
            return self.fisheries.index(label)
        except ValueError:
            raise ConfigurationError(f"Unknown fishery '{label}'") from None

    def survey_index(self, label: str) -> int:
        try:
            return self.surveys.index(label)
        except ValueError:
            raise ConfigurationError(f"Unknown survey '{label}'") from None

    def index_limits(self, dimension: str) -> Tuple[int, int]:
        """Model (min, max) of a dimension, as used to resolve open ranges.

        Survey years extend to max_year + 1 so the terminal survey can be
        covered.
        """
        if dimension in (STR_YEAR_P1, f"{C.STR_SURVEY}_{C.STR_YEAR}"):
            return (self.min_year, self.max_year + 1)
        limits = {
            C.STR_YEAR: (self.min_year, self.max_year),
            C.STR_SIZE: (1, self.n_bins),
            C.STR_SEX: (1, N_SEXES),
            C.STR_MATURITY_STATE: (1, N_MATURITY_STATES),
            C.STR_SHELL_CONDITION: (1, N_SHELL_CONDITIONS),
            C.STR_FISHERY: (1, self.n_fisheries),
            C.STR_SURVEY: (1, self.n_surveys),
        }
        if dimension not in limits:
            raise ConfigurationError(f"Unrecognized index dimension '{dimension}'")
        return limits[dimension]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configName": self.name,
            "mnYr": self.min_year,
            "mxYr": self.max_year,
            "nZBs": self.n_bins,
            "zBs": self.z_mids.tolist(),
            "zCs": self.z_cutpts.tolist(),
            "lbls.fsh": list(self.fisheries),
            "lbls.srv": list(self.surveys),
            "flags": {"fitToPriors": self.fit_to_priors},
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ModelConfiguration":
        """Build from the dictionary produced by an external config reader."""
        return cls(
            name=d.get("name", "pycsam"),
            min_year=int(d["min_year"]),
            max_year=int(d["max_year"]),
            z_cutpts=np.asarray(d["z_cutpts"], dtype=float),
            fisheries=list(d.get("fisheries", [])),
            surveys=list(d.get("surveys", [])),
            fit_to_priors=bool(d.get("fit_to_priors", True)),
        )


TimingSpec = Union[float, Mapping[int, float]]


@dataclass
class ModelOptions:
    """Run options for the population model and objective function.

    Attributes
    ----------
    dt_fishery : float or dict
        Timing of the fisheries as a fraction of the year, either constant
        or a year -> fraction mapping (missing years use `DEFAULT_DT_FISHERY`)
    dt_mating : float or dict
        Timing of mating/molting as a fraction of the year
    capture_rate_averaging : dict
        Fishery label -> CaptureRateAveraging for effort-based capture rates
    growth_window : int
        Number of size bins a molting crab can move forward
    eps_log : float
        Floor added before log-transforming aggregate data
    eps_multinomial : float
        Floor added inside the multinomial logs
    wgt_maturity_smoothness : float
        Weight on the maturity-ogive second-difference penalty
    wgt_maturity_nondecreasing : float
        Weight on the maturity-ogive non-decreasing penalty
    wgt_devs_penalty : float
        Weight on the squared capture/selectivity deviations
    debug : DebugConfig
        Verbosity configuration handed to every calculator
    """

    dt_fishery: TimingSpec = C.DEFAULT_DT_FISHERY
    dt_mating: TimingSpec = C.DEFAULT_DT_MATING
    capture_rate_averaging: Dict[str, CaptureRateAveraging] = field(default_factory=dict)
    growth_window: int = C.DEFAULT_GROWTH_WINDOW
    eps_log: float = C.EPS_LOG
    eps_multinomial: float = C.EPS_MULTINOMIAL
    wgt_maturity_smoothness: float = 1.0
    wgt_maturity_nondecreasing: float = 1.0
    wgt_devs_penalty: float = 1.0
    debug: DebugConfig = field(default_factory=DebugConfig)

    def __post_init__(self):
        self.capture_rate_averaging = {
            k: get_capture_rate_averaging(v)
            for k, v in self.capture_rate_averaging.items()
        }
        if self.growth_window < 1:
            raise ConfigurationError(f"growth_window must be >= 1, got {self.growth_window}")

    def _timing(self, spec: TimingSpec, year: int, default: float) -> float:
        if isinstance(spec, Mapping):
            value = float(spec.get(year, default))
        else:
            value = float(spec)
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"Timing {value} for year {year} is outside [0, 1]")
        return value

    def fishery_timing(self, year: int) -> float:
        return self._timing(self.dt_fishery, year, C.DEFAULT_DT_FISHERY)

    def mating_timing(self, year: int) -> float:
        return self._timing(self.dt_mating, year, C.DEFAULT_DT_MATING)

    def averaging_for(self, fishery: str) -> CaptureRateAveraging:
        return self.capture_rate_averaging.get(fishery, CaptureRateAveraging.CAPTURE_RATE)
