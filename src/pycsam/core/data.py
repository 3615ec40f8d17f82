"""
Observed datasets.

Catch and survey observations come in three forms: aggregate abundance,
aggregate biomass and size frequencies. Each observation row is tagged with
the sex, maturity state and shell condition it refers to (ALL for
aggregates over a factor). Values are converted to model units on
construction: abundance in millions of crab, biomass in thousands of
metric tons.

The model only reads these objects, except in simulation mode where
`replace_data` overwrites the observations of a deep copy with modeled
values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from pycsam.core import constants as C
from pycsam.core.config import ModelConfiguration
from pycsam.core.constants import (
    FitType,
    LikelihoodType,
    ScaleType,
    convert_to_cv,
    get_conversion_multiplier,
    get_fit_type,
    get_likelihood_type,
    get_scale_type,
    is_weight_units,
)
from pycsam.core.dimensions import (
    N_MATURITY_STATES,
    N_SEXES,
    Maturity,
    Sex,
    ShellCondition,
    collapse_factors,
    get_maturity,
    get_sex,
    get_shell_condition,
)
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexRange

FACTOR_COLUMNS = ["sex", "maturity", "shell"]


def _normalize_factors(df: pd.DataFrame) -> pd.DataFrame:
    """Fill missing factor columns with ALL and convert labels to enum codes."""
    df = df.copy()
    if "year" not in df.columns:
        raise ValueError("Observation table needs a 'year' column")
    df["year"] = df["year"].astype(int)
    parsers = {"sex": get_sex, "maturity": get_maturity, "shell": get_shell_condition}
    for col, parse in parsers.items():
        if col not in df.columns:
            df[col] = 2  # ALL
        df[col] = [int(parse(v)) for v in df[col]]
    return df.reset_index(drop=True)


def _factor_levels(row) -> tuple:
    return Sex(int(row.sex)), Maturity(int(row.maturity)), ShellCondition(int(row.shell))


@dataclass
class AggregateCatchData:
    """Aggregate abundance or biomass observations.

    Attributes
    ----------
    data : pd.DataFrame
        Columns year, sex, maturity, shell, value and cv (or the scale
        given by `scale_type`)
    units : str
        Units of the input values (UNITS_ keyword); weight units mark
        biomass data
    likelihood : LikelihoodType
        NONE, NORM2, NORMAL or LOGNORMAL
    fit_type : FitType
        Marginal on which the data are fit
    weight : float
        Likelihood multiplier
    scale_type : ScaleType
        How the 'cv' column expresses uncertainty
    """

    data: pd.DataFrame
    units: str = C.UNITS_MILLIONS
    likelihood: LikelihoodType = LikelihoodType.NONE
    fit_type: FitType = FitType.NONE
    weight: float = 1.0
    scale_type: ScaleType = ScaleType.CV

    def __post_init__(self):
        self.likelihood = get_likelihood_type(self.likelihood)
        self.fit_type = get_fit_type(self.fit_type)
        self.scale_type = get_scale_type(self.scale_type)
        if self.likelihood == LikelihoodType.MULTINOMIAL:
            raise ConfigurationError("MULTINOMIAL likelihood is not defined for aggregate data")
        df = _normalize_factors(self.data)
        if "value" not in df.columns:
            raise ValueError("Aggregate catch table needs a 'value' column")
        df["value"] = df["value"].astype(float)
        if "cv" not in df.columns:
            df["cv"] = 0.0
        # uncertainty is converted in the input units
        df["cv"] = convert_to_cv(df["cv"].astype(float), df["value"], self.scale_type)
        target = C.MODEL_BIOMASS_UNITS if self.is_biomass else C.MODEL_ABUNDANCE_UNITS
        df["value"] = df["value"] * get_conversion_multiplier(self.units, target)
        self.scale_type = ScaleType.CV
        self.data = df
        self.units = target

    @property
    def is_biomass(self) -> bool:
        return is_weight_units(self.units)

    def replace_data(self, numbers: np.ndarray, years: Sequence[int], wAtZ: Optional[np.ndarray] = None):
        """Overwrite observed values with modeled ones.

        Parameters
        ----------
        numbers : np.ndarray
            Modeled numbers-at-size [year, sex, maturity, shell, size]
        years : sequence of int
            Model year of each slice of `numbers`
        wAtZ : np.ndarray, optional
            Weight-at-size [sex, maturity, size] in kg (biomass data)
        """
        lookup = {int(y): i for i, y in enumerate(years)}
        if self.is_biomass:
            numbers = numbers * wAtZ[None, :, :, None, :]
        new = self.data["value"].to_numpy(copy=True)
        for i, row in enumerate(self.data.itertuples(index=False)):
            iy = lookup.get(int(row.year))
            if iy is None:
                continue
            new[i] = collapse_factors(numbers[iy], *_factor_levels(row)).sum()
        self.data["value"] = new


@dataclass
class SizeFrequencyData:
    """Size-frequency observations on the model size bins.

    Attributes
    ----------
    data : pd.DataFrame
        One row per observation: year, sex, maturity, shell, sample_size
    counts : np.ndarray
        Numbers (or proportions) at size [row, size]
    likelihood : LikelihoodType
        NONE, MULTINOMIAL or NORM2
    fit_type : FitType
        Marginal on which the compositions are fit
    weight : float
        Likelihood multiplier
    """

    data: pd.DataFrame
    counts: np.ndarray
    likelihood: LikelihoodType = LikelihoodType.NONE
    fit_type: FitType = FitType.NONE
    weight: float = 1.0

    def __post_init__(self):
        self.likelihood = get_likelihood_type(self.likelihood)
        self.fit_type = get_fit_type(self.fit_type)
        if self.likelihood not in (LikelihoodType.NONE, LikelihoodType.MULTINOMIAL, LikelihoodType.NORM2):
            raise ConfigurationError(
                f"{self.likelihood.name} likelihood is not defined for size compositions"
            )
        self.data = _normalize_factors(self.data)
        if "sample_size" not in self.data.columns:
            raise ValueError("Size frequency table needs a 'sample_size' column")
        self.counts = np.asarray(self.counts, dtype=float)
        if self.counts.ndim != 2 or self.counts.shape[0] != len(self.data):
            raise ValueError(
                f"counts has shape {self.counts.shape}; expected ({len(self.data)}, n_bins)"
            )

    @classmethod
    def from_binned(
        cls,
        data: pd.DataFrame,
        counts,
        z_cutpts,
        model_cutpts,
        **kwargs,
    ) -> "SizeFrequencyData":
        """Rebin counts collected on other size bins onto the model bins.

        Each input bin goes to the model bin containing its midpoint; bins
        outside the model range are dropped.
        """
        counts = np.atleast_2d(np.asarray(counts, dtype=float))
        z_cutpts = np.asarray(z_cutpts, dtype=float)
        model_cutpts = np.asarray(model_cutpts, dtype=float)
        mids = 0.5 * (z_cutpts[:-1] + z_cutpts[1:])
        target = np.searchsorted(model_cutpts, mids, side="right") - 1
        rebinned = np.zeros((counts.shape[0], len(model_cutpts) - 1))
        for j, t in enumerate(target):
            if 0 <= t < rebinned.shape[1]:
                rebinned[:, t] += counts[:, j]
        return cls(data, rebinned, **kwargs)

    def replace_data(self, numbers: np.ndarray, years: Sequence[int]):
        """Overwrite observed compositions with modeled numbers-at-size."""
        lookup = {int(y): i for i, y in enumerate(years)}
        for i, row in enumerate(self.data.itertuples(index=False)):
            iy = lookup.get(int(row.year))
            if iy is not None:
                self.counts[i] = collapse_factors(numbers[iy], *_factor_levels(row))


@dataclass
class CatchData:
    """Abundance, biomass and size-frequency data for one catch type."""

    abundance: Optional[AggregateCatchData] = None
    biomass: Optional[AggregateCatchData] = None
    size_frequencies: Optional[SizeFrequencyData] = None

    def __post_init__(self):
        if self.abundance is not None and self.abundance.is_biomass:
            raise ConfigurationError("Abundance data given in weight units")
        if self.biomass is not None and not self.biomass.is_biomass:
            raise ConfigurationError("Biomass data given in abundance units")

    def replace_data(self, numbers: np.ndarray, years: Sequence[int], wAtZ: np.ndarray):
        if self.abundance is not None:
            self.abundance.replace_data(numbers, years)
        if self.biomass is not None:
            self.biomass.replace_data(numbers, years, wAtZ)
        if self.size_frequencies is not None:
            self.size_frequencies.replace_data(numbers, years)


@dataclass
class EffortData:
    """Fishing effort by year.

    Attributes
    ----------
    data : pd.DataFrame
        Columns year and effort
    averaging : IndexRange
        Years over which effort and capture rates are averaged to form the
        capture-rate / effort ratio
    units : str
        Effort units (reporting only)
    """

    data: pd.DataFrame
    averaging: IndexRange
    units: str = "potlifts"

    def __post_init__(self):
        df = self.data.copy()
        df["year"] = df["year"].astype(int)
        df["effort"] = df["effort"].astype(float)
        self.data = df.set_index("year").sort_index()

    def effort_for(self, year: int) -> float:
        try:
            return float(self.data.at[int(year), "effort"])
        except KeyError:
            raise ConfigurationError(f"No effort data for year {year}") from None

    def resolve_averaging(self, min_year: int, max_year: int):
        """Substitute the model year limits for open ends of the averaging period."""
        self.averaging = self.averaging.resolve(min_year, max_year)

    def averaging_years(self) -> List[int]:
        if self.averaging.min < 0 or self.averaging.max < 0:
            raise ConfigurationError(
                f"Effort averaging period {self.averaging} is open-ended and has not been resolved"
            )
        return [int(y) for y in self.averaging.indices() if int(y) in self.data.index]

    def mean_effort(self) -> float:
        years = self.averaging_years()
        if not years:
            raise ConfigurationError(
                f"No effort data in the averaging period {self.averaging}"
            )
        return float(self.data.loc[years, "effort"].mean())


@dataclass
class FisheryData:
    """Observations for one fishery."""

    name: str
    retained: Optional[CatchData] = None
    discard: Optional[CatchData] = None
    total: Optional[CatchData] = None
    effort: Optional[EffortData] = None

    def components(self):
        """(label, CatchData) pairs for the catch types present."""
        for label in ("retained", "discard", "total"):
            cd = getattr(self, label)
            if cd is not None:
                yield label, cd


@dataclass
class SurveyData:
    """Observations for one survey."""

    name: str
    catch: CatchData = field(default_factory=CatchData)


@dataclass
class BioData:
    """Biological data.

    Attributes
    ----------
    weight_at_size : np.ndarray
        Weight-at-size [sex, maturity, size]
    units : str
        Units of `weight_at_size`; converted to kg
    """

    weight_at_size: np.ndarray
    units: str = C.UNITS_KG

    def __post_init__(self):
        w = np.asarray(self.weight_at_size, dtype=float)
        if w.ndim != 3 or w.shape[:2] != (N_SEXES, N_MATURITY_STATES):
            raise ValueError(f"weight_at_size has shape {w.shape}; expected (2, 2, n_bins)")
        self.weight_at_size = w * get_conversion_multiplier(self.units, C.UNITS_KG)
        self.units = C.UNITS_KG


@dataclass
class ModelDatasets:
    """All observed data used by a model."""

    bio: BioData
    fisheries: List[FisheryData] = field(default_factory=list)
    surveys: List[SurveyData] = field(default_factory=list)

    def validate(self, config: ModelConfiguration):
        """Check dataset names against the configuration and bin counts.

        Open-ended effort averaging periods are resolved to the model years.

        Raises
        ------
        ConfigurationError
            On unknown fishery or survey names
        ValueError
            On size-bin count mismatches
        """
        for fd in self.fisheries:
            config.fishery_index(fd.name)
            if fd.effort is not None:
                fd.effort.resolve_averaging(config.min_year, config.max_year)
        for sd in self.surveys:
            config.survey_index(sd.name)
        if self.bio.weight_at_size.shape[-1] != config.n_bins:
            raise ValueError("weight_at_size does not match the model size bins")
        for cd in self._catch_data():
            zfd = cd.size_frequencies
            if zfd is not None and zfd.counts.shape[1] != config.n_bins:
                raise ValueError(
                    f"Size frequencies have {zfd.counts.shape[1]} bins; model has {config.n_bins}"
                )

    def _catch_data(self):
        for fd in self.fisheries:
            for _, cd in fd.components():
                yield cd
        for sd in self.surveys:
            yield sd.catch

    def fishery(self, name: str) -> Optional[FisheryData]:
        for fd in self.fisheries:
            if fd.name == name:
                return fd
        return None

    def survey(self, name: str) -> Optional[SurveyData]:
        for sd in self.surveys:
            if sd.name == name:
                return sd
        return None
