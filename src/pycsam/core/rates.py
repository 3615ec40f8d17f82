"""
Biological process-rate calculators.

Each calculator takes the process combinations, the resolver that maps
model cells to combinations and the current parameter values, and returns
dense rate arrays:

- recruitment: total recruits, sex split and size distribution by year
- natural mortality: M[year, sex, maturity, size]
- growth: transition probabilities [year, sex, maturity, from, to]
- maturity: probability of molting to maturity [year, sex, size]

The calculators hold no state; every evaluation recomputes all arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np
from scipy.special import expit, gammainc

from pycsam.core.config import DebugConfig, ModelConfiguration
from pycsam.core.constants import EPS_POSFUN, EPS_SMOOTH_MAX
from pycsam.core.dimensions import N_MATURITY_STATES, N_SEXES, Maturity, Sex
from pycsam.core.params import ParameterValues
from pycsam.core.processes import (
    GrowthInfo,
    MaturityInfo,
    NaturalMortalityInfo,
    RecruitmentInfo,
)
from pycsam.core.resolver import CombinationResolver
from pycsam.logger import get_logger

logger = get_logger('rates')


def posfun(x, eps: float = EPS_POSFUN):
    """Smooth positive floor: x where x >= eps, eps / (2 - x/eps) below."""
    x = np.asarray(x, dtype=float)
    return np.where(x >= eps, x, eps / (2.0 - np.minimum(x, eps) / eps))


def smooth_max(a, b, eps: float = EPS_SMOOTH_MAX):
    """Differentiable approximation to max(a, b)."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return 0.5 * (a + b + np.sqrt((a - b) ** 2 + eps))


# =============================================================================
# RECRUITMENT
# =============================================================================

@dataclass
class RecruitmentRates:
    """Recruitment by model year.

    Attributes
    ----------
    total : np.ndarray
        Total recruits [year]
    sex_fraction : np.ndarray
        Fraction of recruits by sex [year, sex]
    size_distribution : np.ndarray
        Size distribution of recruits [year, size]; rows sum to 1
    stdv : np.ndarray
        Lognormal standard deviation sqrt(log(1 + CV^2)) [year]
    dev : np.ndarray
        Recruitment deviation used in each year [year]
    zscore : np.ndarray
        Standardized deviation dev / stdv [year]
    combination : np.ndarray
        0-based combination index of each year
    has_devs : np.ndarray
        Whether the year's combination references a deviation vector
    """

    total: np.ndarray
    sex_fraction: np.ndarray
    size_distribution: np.ndarray
    stdv: np.ndarray
    dev: np.ndarray
    zscore: np.ndarray
    combination: np.ndarray
    has_devs: np.ndarray

    def recruits(self) -> np.ndarray:
        """Recruits by [year, sex, size]."""
        return (
            self.total[:, None, None]
            * self.sex_fraction[:, :, None]
            * self.size_distribution[:, None, :]
        )


def recruitment_size_distribution(config: ModelConfiguration, ln_a: float, ln_b: float) -> np.ndarray:
    """Gamma-shaped recruit size distribution, normalized over the size bins.

    ``pr(z) ~ dz^(a/b - 1) * exp(-dz/b)`` with ``dz`` the bin midpoint
    offset from the first cut point. Evaluated in log space so that very
    narrow distributions do not underflow.
    """
    a = np.exp(ln_a)
    b = np.exp(ln_b)
    dz = config.z_mids - config.z_cutpts[0]
    ln_pr = (a / b - 1.0) * np.log(dz) - dz / b
    pr = np.exp(ln_pr - ln_pr.max())
    return pr / pr.sum()


def calc_recruitment(
    info: RecruitmentInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    debug: DebugConfig,
) -> RecruitmentRates:
    """Recruitment level, sex ratio, size distribution and deviations by year."""
    n_y = config.n_years
    total = np.zeros(n_y)
    sex_fraction = np.zeros((n_y, N_SEXES))
    size_dist = np.zeros((n_y, config.n_bins))
    stdv = np.zeros(n_y)
    dev = np.zeros(n_y)
    pcs = np.zeros(n_y, dtype=int)
    has_devs = np.zeros(n_y, dtype=bool)

    cache: Dict[int, tuple] = {}
    for iy, year in enumerate(config.years):
        pc = resolver.index(year)
        combo = info.combinations[pc]
        if pc not in cache:
            cv = np.exp(values.scalar("pLnRCV", combo.pLnRCV))
            male = expit(values.scalar("pLgtRX", combo.pLgtRX))
            cache[pc] = (
                np.sqrt(np.log(1.0 + cv * cv)),
                np.array([male, 1.0 - male]),
                recruitment_size_distribution(
                    config,
                    values.scalar("pLnRa", combo.pLnRa),
                    values.scalar("pLnRb", combo.pLnRb),
                ),
            )
        stdv[iy], sex_fraction[iy], size_dist[iy] = cache[pc]
        dev[iy] = values.dev("pDevsLnR", combo.pDevsLnR, year)
        total[iy] = np.exp(values.scalar("pLnR", combo.pLnR) + dev[iy])
        pcs[iy] = pc
        has_devs[iy] = combo.pDevsLnR > 0

    zscore = dev / stdv
    if debug.enabled('recruitment'):
        logger.debug("recruitment: total=%s", total)
    return RecruitmentRates(total, sex_fraction, size_dist, stdv, dev, zscore, pcs, has_devs)


# =============================================================================
# NATURAL MORTALITY
# =============================================================================

def calc_natural_mortality(
    info: NaturalMortalityInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    debug: DebugConfig,
) -> np.ndarray:
    """Natural mortality rates M[year, sex, maturity, size].

    ``ln M = pLnM + pLnDMT + [female] pLnDMX + [immature] pLnDMM
    + [immature female] pLnDMXM``. Once its pZScaleM parameter is active,
    the size scaling ``(z_ref / z) ** pZScaleM`` is applied.
    """
    z = config.z_mids
    M = np.zeros((config.n_years, N_SEXES, N_MATURITY_STATES, config.n_bins))
    for iy, year in enumerate(config.years):
        combo = info.combinations[resolver.index(year)]
        base = values.scalar("pLnM", combo.pLnM) + values.scalar("pLnDMT", combo.pLnDMT)
        dmx = values.scalar("pLnDMX", combo.pLnDMX)
        dmm = values.scalar("pLnDMM", combo.pLnDMM)
        dmxm = values.scalar("pLnDMXM", combo.pLnDMXM)
        if values.is_active("pZScaleM", combo.pZScaleM):
            zscale = (info.z_ref / z) ** values.scalar("pZScaleM", combo.pZScaleM)
        else:
            zscale = np.ones_like(z)
        for x in (Sex.MALE, Sex.FEMALE):
            for m in (Maturity.IMMATURE, Maturity.MATURE):
                ln_m = base
                if x == Sex.FEMALE:
                    ln_m += dmx
                if m == Maturity.IMMATURE:
                    ln_m += dmm
                    if x == Sex.FEMALE:
                        ln_m += dmxm
                M[iy, x, m] = np.exp(ln_m) * zscale
    if debug.enabled('natural_mortality'):
        logger.debug("natural mortality: M[first year]=%s", M[0, :, :, 0])
    return M


# =============================================================================
# GROWTH
# =============================================================================

def growth_transition_matrix(
    config: ModelConfiguration,
    ln_a: float,
    ln_b: float,
    ln_beta: float,
    window: int,
) -> np.ndarray:
    """Size transition probabilities [from, to] for one molt.

    Mean post-molt size is ``a * z^b``; the increment follows a gamma
    distribution with scale beta and mean equal to the mean increment. The
    distribution is integrated over destination bins within `window` bins
    of the source, increments beyond the window are dropped and each row is
    renormalized. Rows sum to 1 and no crab shrinks.
    """
    z = config.z_mids
    cuts = config.z_cutpts
    n_z = config.n_bins
    mean_post = np.exp(ln_a) * z ** np.exp(ln_b)
    beta = np.exp(ln_beta)
    alpha = posfun(mean_post - z) / beta

    pr = np.zeros((n_z, n_z))
    for i in range(n_z):
        last = min(i + window, n_z) - 1
        upper = np.maximum(cuts[i + 1:last + 1] - z[i], 0.0) / beta
        cdf = np.concatenate(([0.0], gammainc(alpha[i], upper)))
        row = np.diff(cdf)
        total = row.sum()
        if total > 0:
            pr[i, i:last + 1] = row / total
        else:
            # all mass lies beyond the window
            pr[i, last] = 1.0
    return pr


def calc_growth(
    info: GrowthInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    window: int,
    debug: DebugConfig,
) -> np.ndarray:
    """Growth transition matrices [year, sex, maturity, from, to].

    The maturity axis distinguishes the molt of crab staying immature from
    the terminal molt to maturity.
    """
    n_z = config.n_bins
    prGr = np.zeros((config.n_years, N_SEXES, N_MATURITY_STATES, n_z, n_z))
    cache: Dict[int, np.ndarray] = {}
    for iy, year in enumerate(config.years):
        for x in (Sex.MALE, Sex.FEMALE):
            for m in (Maturity.IMMATURE, Maturity.MATURE):
                pc = resolver.index(year, x, m)
                if pc not in cache:
                    combo = info.combinations[pc]
                    cache[pc] = growth_transition_matrix(
                        config,
                        values.scalar("pLnGrA", combo.pLnGrA),
                        values.scalar("pLnGrB", combo.pLnGrB),
                        values.scalar("pLnGrBeta", combo.pLnGrBeta),
                        window,
                    )
                    if debug.enabled('growth', 2):
                        logger.debug("growth combination %d:\n%s", pc + 1, cache[pc])
                prGr[iy, x, m] = cache[pc]
    return prGr


# =============================================================================
# MATURITY
# =============================================================================

def calc_maturity(
    info: MaturityInfo,
    resolver: CombinationResolver,
    values: ParameterValues,
    config: ModelConfiguration,
    debug: DebugConfig,
) -> np.ndarray:
    """Probability of molting to maturity [year, sex, size].

    Size bins outside the logit vector's block mature with probability 1.
    """
    prMat = np.ones((config.n_years, N_SEXES, config.n_bins))
    for iy, year in enumerate(config.years):
        for x in (Sex.MALE, Sex.FEMALE):
            combo = info.combinations[resolver.index(year, x)]
            logits = values.vector("pLgtPrMat", combo.pLgtPrMat)
            if logits is None:
                continue
            block = values.block("pLgtPrMat", combo.pLgtPrMat)
            for pos, zb in enumerate(block):
                if 1 <= zb <= config.n_bins:
                    prMat[iy, x, zb - 1] = expit(logits[pos])
    if debug.enabled('maturity'):
        logger.debug("maturity: prMat[first year]=%s", prMat[0])
    return prMat
