"""
Fishery capture and mortality rates.

Fully-selected capture rates come either from a log-linear model

    ln C = pLnC + pLnDCT + [female] pLnDCX + [immature] pLnDCM
           + [immature female] pLnDCXM + dev(pDevsLnC, year)

or, for combinations flagged `use_effort`, from observed effort times the
ratio of mean capture rate to mean effort over the effort data's averaging
period. Capture rates are multiplied by the combination's selectivity curve.
With a retention function, retained mortality is capture * retention and
discard mortality is capture * hm * (1 - retention); without one, all
capture is discarded with handling mortality hm.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from pycsam.core.config import ModelConfiguration, ModelOptions
from pycsam.core.constants import CaptureRateAveraging
from pycsam.core.data import ModelDatasets
from pycsam.core.dimensions import N_MATURITY_STATES, N_SEXES, N_SHELL_CONDITIONS, Maturity, Sex
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.params import ParameterValues
from pycsam.core.processes import FisheriesInfo, FisheryCombination
from pycsam.core.resolver import CombinationResolver
from pycsam.logger import get_logger

logger = get_logger('fisheries')


@dataclass
class FisheryRates:
    """Fishery rates by [fishery, year, sex, maturity, shell, size].

    Attributes
    ----------
    fully_selected : np.ndarray
        Fully-selected capture rate [fishery, year, sex, maturity]
    capture : np.ndarray
        Capture rate
    retained : np.ndarray
        Retained mortality rate
    discard : np.ndarray
        Discard mortality rate
    handling_mortality : np.ndarray
        Handling mortality fraction [fishery, year, sex]
    effort_ratio : dict
        (fishery, sex) -> capture rate / effort ratio used for effort-based
        combinations
    """

    fully_selected: np.ndarray
    capture: np.ndarray
    retained: np.ndarray
    discard: np.ndarray
    handling_mortality: np.ndarray
    effort_ratio: Dict[Tuple[int, int], np.ndarray] = field(default_factory=dict)

    @property
    def total_mortality(self) -> np.ndarray:
        """Retained plus discard mortality rate."""
        return self.retained + self.discard


def _log_capture(combo: FisheryCombination, values: ParameterValues, year: int, x: Sex, m: Maturity) -> float:
    ln_c = values.scalar("pLnC", combo.pLnC) + values.scalar("pLnDCT", combo.pLnDCT)
    if x == Sex.FEMALE:
        ln_c += values.scalar("pLnDCX", combo.pLnDCX)
    if m == Maturity.IMMATURE:
        ln_c += values.scalar("pLnDCM", combo.pLnDCM)
        if x == Sex.FEMALE:
            ln_c += values.scalar("pLnDCXM", combo.pLnDCXM)
    return ln_c + values.dev("pDevsLnC", combo.pDevsLnC, year)


def calc_fishery_rates(
    info: FisheriesInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    options: ModelOptions,
    selectivity: np.ndarray,
    datasets: ModelDatasets,
) -> FisheryRates:
    """Capture, retained and discard mortality rates for every fishery.

    Parameters
    ----------
    info : FisheriesInfo
        Fishery parameter combinations
    resolver : CombinationResolver
        Maps (fishery, year, sex) to a combination
    values : ParameterValues
        Current parameter values
    config : ModelConfiguration
        Model dimensions
    options : ModelOptions
        Capture-rate averaging options
    selectivity : np.ndarray
        Selectivity curves [function, year, size]
    datasets : ModelDatasets
        Observed data (effort)

    Returns
    -------
    FisheryRates
    """
    n_f, n_y, n_z = config.n_fisheries, config.n_years, config.n_bins
    shape = (n_f, n_y, N_SEXES, N_MATURITY_STATES, N_SHELL_CONDITIONS, n_z)
    fully = np.zeros((n_f, n_y, N_SEXES, N_MATURITY_STATES))
    cap = np.zeros(shape)
    hm = np.zeros((n_f, n_y, N_SEXES))
    sexes = (Sex.MALE, Sex.FEMALE)
    states = (Maturity.IMMATURE, Maturity.MATURE)
    effort_cells = []

    for f in range(n_f):
        for iy, year in enumerate(config.years):
            for x in sexes:
                combo = resolver.combination(f, year, x)
                if combo is None:
                    continue
                hm[f, iy, x] = values.scalar("pHM", combo.pHM)
                if combo.use_effort:
                    effort_cells.append((f, iy, year, x, combo))
                    continue
                sel = selectivity[combo.sel - 1, iy]
                for m in states:
                    fully[f, iy, x, m] = np.exp(_log_capture(combo, values, year, x, m))
                    cap[f, iy, x, m] = fully[f, iy, x, m] * sel[None, :]

    ratios: Dict[Tuple[int, int], np.ndarray] = {}
    for f, iy, year, x, combo in effort_cells:
        key = (f, int(x))
        label = config.fisheries[f]
        option = options.averaging_for(label)
        if key not in ratios:
            ratios[key] = _effort_ratio(f, x, option, fully, cap, resolver, config, datasets)
        effort = _effort_data(label, datasets).effort_for(year)
        sel = selectivity[combo.sel - 1, iy]
        if option == CaptureRateAveraging.CAPTURE_RATE:
            fully[f, iy, x] = ratios[key] * effort
            cap[f, iy, x] = fully[f, iy, x][:, None, None] * sel
        elif option == CaptureRateAveraging.EXPLOITATION_RATE:
            fully[f, iy, x] = 1.0 - np.exp(-ratios[key] * effort)
            cap[f, iy, x] = fully[f, iy, x][:, None, None] * sel
        elif option == CaptureRateAveraging.SIZE_SPECIFIC:
            cap[f, iy, x] = ratios[key] * effort
            fully[f, iy, x] = cap[f, iy, x].max(axis=(-2, -1))
        else:
            raise ConfigurationError(f"Unrecognized capture rate averaging option {option}")

    ret_sel = np.zeros(shape)
    has_ret = np.zeros((n_f, n_y, N_SEXES), dtype=bool)
    for f in range(n_f):
        for iy, year in enumerate(config.years):
            for x in sexes:
                combo = resolver.combination(f, year, x)
                if combo is not None and combo.ret > 0:
                    has_ret[f, iy, x] = True
                    ret_sel[f, iy, x] = selectivity[combo.ret - 1, iy]

    hm6 = hm[:, :, :, None, None, None]
    retained = np.where(has_ret[:, :, :, None, None, None], cap * ret_sel, 0.0)
    discard = np.where(
        has_ret[:, :, :, None, None, None], cap * hm6 * (1.0 - ret_sel), cap * hm6
    )
    if options.debug.enabled('fisheries'):
        logger.debug("fisheries: fully-selected capture rates\n%s", fully)
    return FisheryRates(fully, cap, retained, discard, hm, ratios)


def _effort_data(label: str, datasets: ModelDatasets):
    fd = datasets.fishery(label)
    if fd is None or fd.effort is None:
        raise ConfigurationError(
            f"Fishery '{label}' uses effort-based capture rates but has no effort data"
        )
    return fd.effort


def _effort_ratio(f, x, option, fully, cap, resolver, config, datasets) -> np.ndarray:
    """Mean capture rate over the averaging period divided by mean effort."""
    label = config.fisheries[f]
    effort = _effort_data(label, datasets)
    years = [y for y in effort.averaging_years() if config.min_year <= y <= config.max_year]
    for y in years:
        combo = resolver.combination(f, y, x)
        if combo is None or combo.use_effort:
            raise ConfigurationError(
                f"Fishery '{label}': averaging year {y} has no parametric capture rate"
            )
    if not years:
        raise ConfigurationError(
            f"Fishery '{label}': no model years in the averaging period {effort.averaging}"
        )
    iys = [config.year_index(y) for y in years]
    mean_effort = effort.mean_effort()
    if option == CaptureRateAveraging.SIZE_SPECIFIC:
        return cap[f, iys, x].mean(axis=0) / mean_effort
    if option in (CaptureRateAveraging.CAPTURE_RATE, CaptureRateAveraging.EXPLOITATION_RATE):
        return fully[f, iys, x].mean(axis=0) / mean_effort
    raise ConfigurationError(f"Unrecognized capture rate averaging option {option}")
