"""
Survey catchability and survey-observable quantities.

Catchability follows the log-linear form

    ln Q = pLnQ + pLnDQT + [female] pLnDQX + [immature] pLnDQM
           + [immature female] pLnDQXM

times the combination's selectivity curve, and is defined through
max_year + 1 so the population at the start of the terminal year can be
surveyed.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pycsam.core.config import DebugConfig, ModelConfiguration
from pycsam.core.dimensions import N_MATURITY_STATES, N_SEXES, N_SHELL_CONDITIONS, Maturity, Sex
from pycsam.core.params import ParameterValues
from pycsam.core.population import mature_biomass
from pycsam.core.processes import SurveysInfo
from pycsam.core.resolver import CombinationResolver
from pycsam.logger import get_logger

logger = get_logger('surveys')


def calc_catchability(
    info: SurveysInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    selectivity: np.ndarray,
    debug: DebugConfig,
) -> np.ndarray:
    """Survey catchability [survey, year (to max_year + 1), sex, maturity, shell, size].

    Cells not covered by a combination have zero catchability.
    """
    n_v, n_yp1 = config.n_surveys, config.n_years + 1
    Q = np.zeros((n_v, n_yp1, N_SEXES, N_MATURITY_STATES, N_SHELL_CONDITIONS, config.n_bins))
    for v in range(n_v):
        for iy, year in enumerate(config.years_p1):
            for x in (Sex.MALE, Sex.FEMALE):
                combo = resolver.combination(v, year, x)
                if combo is None:
                    continue
                base = values.scalar("pLnQ", combo.pLnQ) + values.scalar("pLnDQT", combo.pLnDQT)
                if x == Sex.FEMALE:
                    base += values.scalar("pLnDQX", combo.pLnDQX)
                sel = selectivity[combo.sel - 1, iy]
                for m in (Maturity.IMMATURE, Maturity.MATURE):
                    ln_q = base
                    if m == Maturity.IMMATURE:
                        ln_q += values.scalar("pLnDQM", combo.pLnDQM)
                        if x == Sex.FEMALE:
                            ln_q += values.scalar("pLnDQXM", combo.pLnDQXM)
                    Q[v, iy, x, m] = np.exp(ln_q) * sel[None, :]
    if debug.enabled('surveys'):
        logger.debug("surveys: fully-selected catchability\n%s", Q.max(axis=(-2, -1)))
    return Q


@dataclass
class SurveyResults:
    """Survey-observable quantities.

    Attributes
    ----------
    numbers : np.ndarray
        Survey numbers-at-size [survey, year, sex, maturity, shell, size]
    spawning_biomass : np.ndarray
        Mature biomass at the time of the survey [survey, year, sex]
    """

    numbers: np.ndarray
    spawning_biomass: np.ndarray


def sample_surveys(Q: np.ndarray, N: np.ndarray, wAtZ: np.ndarray) -> SurveyResults:
    """Apply catchability to the population at the start of each year.

    Parameters
    ----------
    Q : np.ndarray
        Catchability [survey, year, sex, maturity, shell, size]
    N : np.ndarray
        Numbers-at-size [year, sex, maturity, shell, size], including the
        terminal year
    wAtZ : np.ndarray
        Weight-at-size [sex, maturity, size]

    Returns
    -------
    SurveyResults
    """
    numbers = Q * N[None, ...]
    return SurveyResults(numbers, mature_biomass(numbers, wAtZ))
