"""
Selectivity and retention functions.

Implements the library of parametric selectivity curves over the size-bin
midpoints and the calculator that evaluates each selectivity parameter
combination for every year it covers.

Available functions (parameters in order):

- const_sel: no parameters, 1 everywhere
- asclogistic: z50, slope
- asclogistic5095: z50, z95
- asclogistic50D95: z50, z95 - z50
- asclogisticLn50: ln(z50), slope
- dbllogistic: ascending z50, ascending slope, descending z50, descending slope
- dbllogistic5095: ascending z50, ascending z95, descending z95, descending z50
- ascnormal: mode, width
- dblnormal4: ascending mode, ascending width, descending mode, descending width

When the fully-selected size ``fsz`` is positive, curves are rescaled so
that selectivity at ``fsz`` equals 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Sequence

import numpy as np

from pycsam.core.config import DebugConfig, ModelConfiguration
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.params import ParameterValues
from pycsam.logger import get_logger

if TYPE_CHECKING:
    from pycsam.core.processes import SelectivityInfo

logger = get_logger('selectivity')

LN19 = np.log(19.0)  # logit(0.95) - logit(0.5)
MAX_SEL_PARAMS = 6


def _logistic(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def const_sel(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    return np.ones_like(z, dtype=float)


def asclogistic(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    z50, slope = p[0], p[1]
    return _logistic(slope * (z - z50))


def asclogistic5095(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    z50, z95 = p[0], p[1]
    return _logistic(LN19 * (z - z50) / (z95 - z50))


def asclogistic50D95(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    z50, dz = p[0], p[1]
    return _logistic(LN19 * (z - z50) / dz)


def asclogisticLn50(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    return asclogistic(z, (np.exp(p[0]), p[1]))


def dbllogistic(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    z50a, slope_a, z50d, slope_d = p[0], p[1], p[2], p[3]
    return _logistic(slope_a * (z - z50a)) * _logistic(-slope_d * (z - z50d))


def dbllogistic5095(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    z50a, z95a, z95d, z50d = p[0], p[1], p[2], p[3]
    asc = _logistic(LN19 * (z - z50a) / (z95a - z50a))
    dsc = _logistic(-LN19 * (z - z50d) / (z50d - z95d))
    return asc * dsc


def ascnormal(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    mode, width = p[0], p[1]
    return np.where(z < mode, np.exp(-0.5 * ((z - mode) / width) ** 2), 1.0)


def dblnormal4(z: np.ndarray, p: Sequence[float]) -> np.ndarray:
    asc_mode, asc_width, dsc_mode, dsc_width = p[0], p[1], p[2], p[3]
    asc = np.where(z < asc_mode, np.exp(-0.5 * ((z - asc_mode) / asc_width) ** 2), 1.0)
    dsc = np.where(z > dsc_mode, np.exp(-0.5 * ((z - dsc_mode) / dsc_width) ** 2), 1.0)
    return asc * dsc


@dataclass(frozen=True)
class SelectivityFunction:
    """Registry entry for a selectivity curve."""

    name: str
    n_params: int
    fn: Callable[[np.ndarray, Sequence[float]], np.ndarray]

    def __call__(self, z: np.ndarray, params: Sequence[float], fsz: float = 0.0) -> np.ndarray:
        z = np.asarray(z, dtype=float)
        sel = self.fn(z, params)
        if fsz > 0:
            sel = sel / self.fn(np.array([fsz], dtype=float), params)[0]
        return sel


SELECTIVITY_FUNCTIONS: Dict[str, SelectivityFunction] = {
    f.name: f
    for f in (
        SelectivityFunction("const_sel", 0, const_sel),
        SelectivityFunction("asclogistic", 2, asclogistic),
        SelectivityFunction("asclogistic5095", 2, asclogistic5095),
        SelectivityFunction("asclogistic50D95", 2, asclogistic50D95),
        SelectivityFunction("asclogisticLn50", 2, asclogisticLn50),
        SelectivityFunction("dbllogistic", 4, dbllogistic),
        SelectivityFunction("dbllogistic5095", 4, dbllogistic5095),
        SelectivityFunction("ascnormal", 2, ascnormal),
        SelectivityFunction("dblnormal4", 4, dblnormal4),
    )
}


def get_selectivity_function(name: str) -> SelectivityFunction:
    """Look up a selectivity function by name.

    Raises
    ------
    ConfigurationError
        If `name` is not a registered function
    """
    try:
        return SELECTIVITY_FUNCTIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unrecognized selectivity function '{name}'. "
            f"Choose from {sorted(SELECTIVITY_FUNCTIONS)}"
        ) from None


def calc_selectivities(
    info: "SelectivityInfo",
    values: ParameterValues,
    config: ModelConfiguration,
    debug: DebugConfig,
) -> np.ndarray:
    """Evaluate every selectivity combination over the size bins.

    Yearly deviations are added to the shape parameters before the curve
    is evaluated for that year.

    Parameters
    ----------
    info : SelectivityInfo
        Selectivity parameter combinations (function id = position + 1)
    values : ParameterValues
        Current parameter values
    config : ModelConfiguration
        Model dimensions
    debug : DebugConfig
        Verbosity configuration

    Returns
    -------
    np.ndarray
        Selectivity [n_functions, n_years + 1, n_bins]; zero in years not
        covered by a combination
    """
    z = config.z_mids
    n_yp1 = config.n_years + 1
    sel = np.zeros((len(info.combinations), n_yp1, config.n_bins))
    for pc, combo in enumerate(info.combinations):
        fcn = get_selectivity_function(combo.function)
        base = np.array([
            values.scalar(f"pS{k + 1}", ref) for k, ref in enumerate(combo.params[:fcn.n_params])
        ])
        dev_refs = combo.devs[:fcn.n_params]
        has_devs = any(dev_refs)
        if not has_devs:
            curve = fcn(z, base, combo.fsz)
        for year in combo.years:
            iy = year - config.min_year
            if iy < 0 or iy >= n_yp1:
                continue
            if has_devs:
                params = base + np.array([
                    values.dev(f"pDevsS{k + 1}", ref, year) for k, ref in enumerate(dev_refs)
                ])
                sel[pc, iy] = fcn(z, params, combo.fsz)
            else:
                sel[pc, iy] = curve
        if debug.enabled('selectivity', 2):
            logger.debug("selectivity %d (%s) params=%s", pc + 1, combo.function, base)
    return sel
