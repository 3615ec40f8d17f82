"""Model constants, option enums and unit conversions.

This module centralizes the dimension labels, objective-function option codes
and numerical floors used throughout pycsam.
"""

from enum import IntEnum
from typing import Union

import numpy as np

from pycsam.core.exceptions import ConfigurationError

# ============================================================================
# DIMENSION NAMES
# ============================================================================

STR_SEX = "SEX"
STR_MATURITY_STATE = "MATURITY_STATE"
STR_SHELL_CONDITION = "SHELL_CONDITION"
STR_SIZE = "SIZE"
STR_YEAR = "YEAR"
STR_FISHERY = "FISHERY"
STR_SURVEY = "SURVEY"

# ============================================================================
# NUMERICAL THRESHOLDS
# ============================================================================

EPS_LOG = 1.0e-3  # Additive floor for log-transformed abundance/biomass
EPS_MULTINOMIAL = 1.0e-5  # Additive floor inside multinomial logs
EPS_POSFUN = 1.0e-3  # Threshold below which posfun starts bending
EPS_SMOOTH_MAX = 1.0e-4  # Smoothing constant for smooth_max

DEFAULT_GROWTH_WINDOW = 10  # Max number of size bins a crab can grow per molt

# ============================================================================
# TIMING DEFAULTS (fraction of the model year)
# ============================================================================

DEFAULT_DT_FISHERY = 0.625  # Fisheries occur ~ mid-winter
DEFAULT_DT_MATING = 0.625  # Mating/molting coincident with the fishery

# ============================================================================
# UNITS
# ============================================================================

UNITS_ONES = "ONES"
UNITS_THOUSANDS = "THOUSANDS"
UNITS_MILLIONS = "MILLIONS"
UNITS_BILLIONS = "BILLIONS"
UNITS_GM = "GM"
UNITS_KG = "KG"
UNITS_MT = "MT"
UNITS_KMT = "THOUSANDS_MT"
UNITS_LBS = "LBS"
UNITS_MLBS = "MILLIONS_LBS"

CONV_KG_TO_LBS = 2.20462262  # Multiplier converting kg to lbs

# Model units for abundance and biomass. Weight-at-size is in kg, so
# millions of crab times kg gives thousands of metric tons.
MODEL_ABUNDANCE_UNITS = UNITS_MILLIONS
MODEL_BIOMASS_UNITS = UNITS_KMT

_ABUNDANCE_SCALE = {
    UNITS_ONES: 1.0,
    UNITS_THOUSANDS: 1.0e3,
    UNITS_MILLIONS: 1.0e6,
    UNITS_BILLIONS: 1.0e9,
}

_WEIGHT_SCALE_KG = {
    UNITS_GM: 1.0e-3,
    UNITS_KG: 1.0,
    UNITS_MT: 1.0e3,
    UNITS_KMT: 1.0e6,
    UNITS_LBS: 1.0 / CONV_KG_TO_LBS,
    UNITS_MLBS: 1.0e6 / CONV_KG_TO_LBS,
}


def get_conversion_multiplier(from_units: str, to_units: str) -> float:
    """Multiplicative factor converting values in `from_units` to `to_units`.

    Parameters
    ----------
    from_units : str
        UNITS_ keyword of the input values
    to_units : str
        UNITS_ keyword of the output values

    Returns
    -------
    float
        Factor such that ``to_value = factor * from_value``

    Raises
    ------
    ConfigurationError
        If the units are unknown or mix abundance with weight
    """
    if from_units in _ABUNDANCE_SCALE and to_units in _ABUNDANCE_SCALE:
        return _ABUNDANCE_SCALE[from_units] / _ABUNDANCE_SCALE[to_units]
    if from_units in _WEIGHT_SCALE_KG and to_units in _WEIGHT_SCALE_KG:
        return _WEIGHT_SCALE_KG[from_units] / _WEIGHT_SCALE_KG[to_units]
    raise ConfigurationError(
        f"Cannot convert units '{from_units}' to '{to_units}'"
    )


def is_weight_units(units: str) -> bool:
    """Whether `units` measure weight (biomass) rather than numbers."""
    if units in _WEIGHT_SCALE_KG:
        return True
    if units in _ABUNDANCE_SCALE:
        return False
    raise ConfigurationError(f"Unrecognized units '{units}'")


# ============================================================================
# OBJECTIVE FUNCTION OPTIONS
# ============================================================================


class FitType(IntEnum):
    """Marginal (sex/maturity/shell) on which a dataset is fit."""

    NONE = 0
    BY_TOT = 1
    BY_X = 2
    BY_XE = 3
    BY_XM = 4
    BY_XME = 5
    BY_XS = 6
    BY_XMS = 7


_FIT_TYPE_LABELS = {
    "NONE": FitType.NONE,
    "BY_TOTAL": FitType.BY_TOT,
    "BY_SEX": FitType.BY_X,
    "BY_SEX_EXTENDED": FitType.BY_XE,
    "BY_SEX_MATURITY": FitType.BY_XM,
    "BY_SEX_MATURITY_EXTENDED": FitType.BY_XME,
    "BY_SEX_SHELL_CONDITION": FitType.BY_XS,
    "BY_SEX_MATURITY_SHELL_CONDITION": FitType.BY_XMS,
    # spellings found in legacy input files
    "BY_SEX_SHELL_CONDITON": FitType.BY_XS,
    "BY_SEX_MATURITY_SHELL_CONDITON": FitType.BY_XMS,
}


class LikelihoodType(IntEnum):
    """Likelihood family used to compare observed and modeled values."""

    NONE = 0
    NORM2 = 1
    NORMAL = 2
    LOGNORMAL = 3
    MULTINOMIAL = 4


class CaptureRateAveraging(IntEnum):
    """How effort is converted to a fully-selected capture rate."""

    CAPTURE_RATE = 1
    EXPLOITATION_RATE = 2
    SIZE_SPECIFIC = 3


class ScaleType(IntEnum):
    """How the uncertainty of an aggregate observation is expressed."""

    VARIANCE = 0
    STD_DEV = 1
    CV = 2


_SCALE_TYPE_LABELS = {
    "VARIANCE": ScaleType.VARIANCE,
    "STD_DEV": ScaleType.STD_DEV,
    "CV": ScaleType.CV,
}


def get_fit_type(value: Union[str, int, FitType]) -> FitType:
    """Translate a fit-type label or code to a FitType."""
    if isinstance(value, str):
        try:
            return _FIT_TYPE_LABELS[value.upper()]
        except KeyError:
            raise ConfigurationError(f"Unrecognized fit type '{value}'") from None
    try:
        return FitType(value)
    except ValueError:
        raise ConfigurationError(f"Unrecognized fit type code {value}") from None


def get_likelihood_type(value: Union[str, int, LikelihoodType]) -> LikelihoodType:
    """Translate a likelihood label or code to a LikelihoodType."""
    try:
        if isinstance(value, str):
            return LikelihoodType[value.upper()]
        return LikelihoodType(value)
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unrecognized likelihood type '{value}'") from None


def get_capture_rate_averaging(value: Union[str, int]) -> CaptureRateAveraging:
    """Translate a capture-rate averaging option to its enum."""
    try:
        if isinstance(value, str):
            return CaptureRateAveraging[value.upper()]
        return CaptureRateAveraging(value)
    except (KeyError, ValueError):
        raise ConfigurationError(
            f"Unrecognized capture rate averaging option '{value}'"
        ) from None


def get_scale_type(value: Union[str, int]) -> ScaleType:
    """Translate an uncertainty scale label to its enum."""
    if isinstance(value, str):
        try:
            return _SCALE_TYPE_LABELS[value.upper()]
        except KeyError:
            raise ConfigurationError(f"Unrecognized scale type '{value}'") from None
    try:
        return ScaleType(value)
    except ValueError:
        raise ConfigurationError(f"Unrecognized scale type code {value}") from None


def convert_to_cv(scale, mean, scale_type: ScaleType) -> np.ndarray:
    """Convert variances or standard deviations to coefficients of variation.

    Zero means give a CV of zero.
    """
    scale = np.asarray(scale, dtype=float)
    mean = np.asarray(mean, dtype=float)
    if scale_type == ScaleType.CV:
        return scale
    sd = np.sqrt(scale) if scale_type == ScaleType.VARIANCE else scale
    return np.divide(sd, mean, out=np.zeros_like(sd), where=mean != 0)
