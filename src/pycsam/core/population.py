"""
Population projection.

Advances numbers-at-size N[year, sex, maturity, shell, size] from min_year
to max_year + 1. Within a year, natural mortality, fishing and the
molt/maturation step are applied in the seasonal order set by the fishery
timing dtF and the mating timing dtM:

- dtF <= dtM: M(dtF), fishing, M(dtM - dtF), spawning biomass, molt,
  M(1 - dtM)
- dtF > dtM: M(dtM), spawning biomass, molt, M(dtF - dtM), fishing,
  M(1 - dtF)

Zero-length natural mortality steps are skipped. Recruits enter as
immature new-shell crab at the end of the year. The terminal slice
(max_year + 1) is never advanced.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from pycsam.core.config import ModelConfiguration, ModelOptions
from pycsam.core.dimensions import N_SEXES, Maturity, ShellCondition
from pycsam.logger import get_logger

logger = get_logger('population')

IMM, MAT = int(Maturity.IMMATURE), int(Maturity.MATURE)
NEW, OLD = int(ShellCondition.NEW_SHELL), int(ShellCondition.OLD_SHELL)


def mature_biomass(n: np.ndarray, wAtZ: np.ndarray) -> np.ndarray:
    """Mature biomass by sex.

    Parameters
    ----------
    n : np.ndarray
        Numbers with trailing axes [sex, maturity, shell, size]
    wAtZ : np.ndarray
        Weight-at-size [sex, maturity, size]

    Returns
    -------
    np.ndarray
        Biomass with the trailing axes replaced by [sex]
    """
    return np.einsum('...xsz,xz->...x', n[..., :, MAT, :, :], wAtZ[:, MAT, :])


@dataclass
class PopulationResults:
    """Output of one population projection.

    Attributes
    ----------
    N : np.ndarray
        Numbers-at-size at the start of each year [year (to max_year + 1),
        sex, maturity, shell, size]
    spawning_biomass : np.ndarray
        Mature biomass at mating [year, sex]
    natural_mortality : np.ndarray
        Numbers killed by natural mortality [year, sex, maturity, shell, size]
    total_mortality : np.ndarray
        Numbers killed by all causes [year, ...]
    captured : np.ndarray
        Numbers captured [fishery, year, sex, maturity, shell, size]
    retained : np.ndarray
        Numbers retained (retained mortality)
    discard_mortality : np.ndarray
        Numbers killed by discarding
    discarded : np.ndarray
        Numbers captured and discarded (captured - retained)
    """

    N: np.ndarray
    spawning_biomass: np.ndarray
    natural_mortality: np.ndarray
    total_mortality: np.ndarray
    captured: np.ndarray
    retained: np.ndarray
    discard_mortality: np.ndarray
    discarded: np.ndarray


class PopulationProjector:
    """Year-by-year population projection.

    Parameters
    ----------
    config : ModelConfiguration
        Model dimensions
    options : ModelOptions
        Fishery and mating timing
    wAtZ : np.ndarray
        Weight-at-size [sex, maturity, size] in kg
    """

    def __init__(self, config: ModelConfiguration, options: ModelOptions, wAtZ: np.ndarray):
        self.config = config
        self.options = options
        self.wAtZ = wAtZ

    def project(self, M, prGr, prMat, recruits, fishery_rates) -> PopulationResults:
        """Run the projection.

        Parameters
        ----------
        M : np.ndarray
            Natural mortality [year, sex, maturity, size]
        prGr : np.ndarray
            Growth transitions [year, sex, maturity, from, to]
        prMat : np.ndarray
            Probability of molting to maturity [year, sex, size]
        recruits : np.ndarray
            Recruits [year, sex, size]
        fishery_rates : FisheryRates
            Capture, retained and discard mortality rates

        Returns
        -------
        PopulationResults
        """
        cfg = self.config
        n_y = cfg.n_years
        out = PopulationResults(
            N=np.zeros((n_y + 1,) + cfg.state_shape),
            spawning_biomass=np.zeros((n_y, N_SEXES)),
            natural_mortality=np.zeros((n_y,) + cfg.state_shape),
            total_mortality=np.zeros((n_y,) + cfg.state_shape),
            captured=np.zeros_like(fishery_rates.capture),
            retained=np.zeros_like(fishery_rates.capture),
            discard_mortality=np.zeros_like(fishery_rates.capture),
            discarded=np.zeros_like(fishery_rates.capture),
        )
        for iy, year in enumerate(cfg.years):
            dtF = self.options.fishery_timing(year)
            dtM = self.options.mating_timing(year)
            n = out.N[iy].copy()
            Mz = M[iy][:, :, None, :]
            if dtF <= dtM:
                n = self._natural_mortality(n, Mz, dtF, iy, out)
                n = self._fishing(n, fishery_rates, iy, out)
                if dtM > dtF:
                    n = self._natural_mortality(n, Mz, dtM - dtF, iy, out)
                out.spawning_biomass[iy] = mature_biomass(n, self.wAtZ)
                n = self._molt(n, prGr[iy], prMat[iy])
                if dtM < 1.0:
                    n = self._natural_mortality(n, Mz, 1.0 - dtM, iy, out)
            else:
                n = self._natural_mortality(n, Mz, dtM, iy, out)
                out.spawning_biomass[iy] = mature_biomass(n, self.wAtZ)
                n = self._molt(n, prGr[iy], prMat[iy])
                n = self._natural_mortality(n, Mz, dtF - dtM, iy, out)
                n = self._fishing(n, fishery_rates, iy, out)
                if dtF < 1.0:
                    n = self._natural_mortality(n, Mz, 1.0 - dtF, iy, out)
            n[:, IMM, NEW] += recruits[iy]
            out.N[iy + 1] = n
            if self.options.debug.enabled('population'):
                logger.debug("year %d: N = %s by sex", year, n.sum(axis=(1, 2, 3)))
        return out

    @staticmethod
    def _natural_mortality(n, Mz, dt, iy, out):
        survivors = n * np.exp(-Mz * dt)
        killed = n - survivors
        out.natural_mortality[iy] += killed
        out.total_mortality[iy] += killed
        return survivors

    @staticmethod
    def _fishing(n, rates, iy, out):
        """Apply all fisheries simultaneously, apportioning removals by rate."""
        rm = rates.retained[:, iy]
        dm = rates.discard[:, iy]
        Ftot = (rm + dm).sum(axis=0)
        survivors = n * np.exp(-Ftot)
        killed = n - survivors
        guard = Ftot + (Ftot == 0)
        share = killed / guard
        out.captured[:, iy] = share * rates.capture[:, iy]
        out.retained[:, iy] = share * rm
        out.discard_mortality[:, iy] = share * dm
        out.discarded[:, iy] = out.captured[:, iy] - out.retained[:, iy]
        out.total_mortality[iy] += killed
        return survivors

    @staticmethod
    def _molt(n, prGr, prMat):
        """Molt immature new-shell crab; mature crab move to old shell."""
        molted = np.zeros_like(n)
        for x in range(N_SEXES):
            imm = n[x, IMM, NEW]
            molted[x, IMM, NEW] = ((1.0 - prMat[x]) * imm) @ prGr[x, IMM]
            molted[x, MAT, NEW] = (prMat[x] * imm) @ prGr[x, MAT]
            molted[x, MAT, OLD] = n[x, MAT, NEW] + n[x, MAT, OLD]
        return molted
