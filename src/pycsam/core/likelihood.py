"""
Likelihood and penalty assembly.

Builds the objective function from

- penalties on the maturity logit vectors (second-difference smoothness
  and a smooth non-decreasing barrier)
- penalties on capture-rate and selectivity deviations
- the recruitment deviation likelihood
- parameter priors (when the configuration fits to priors)
- the fits of modeled to observed catch and survey data

Residual-only families (NORM2, NORMAL, LOGNORMAL) omit the log(sigma)
term, so their values are non-negative. The recruitment deviation
likelihood keeps it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from pycsam.core.config import ModelOptions
from pycsam.core.constants import FitType, LikelihoodType
from pycsam.core.data import AggregateCatchData, CatchData, SizeFrequencyData
from pycsam.core.dimensions import Maturity, Sex, ShellCondition, collapse_factors
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.params import ParameterValues
from pycsam.core.processes import MaturityInfo
from pycsam.core.rates import RecruitmentRates, smooth_max
from pycsam.logger import get_logger

logger = get_logger('likelihood')

# Factor columns kept separate for each fit type; the others are summed.
FIT_FACTORS = {
    FitType.BY_TOT: (),
    FitType.BY_X: ("sex",),
    FitType.BY_XE: ("sex",),
    FitType.BY_XM: ("sex", "maturity"),
    FitType.BY_XME: ("sex", "maturity"),
    FitType.BY_XS: ("sex", "shell"),
    FitType.BY_XMS: ("sex", "maturity", "shell"),
}
EXTENDED_FIT_TYPES = (FitType.BY_XE, FitType.BY_XME)
ALL_LEVEL = 2


# =============================================================================
# LIKELIHOOD FAMILIES
# =============================================================================

def norm2_nll(obs, mod) -> Tuple[float, np.ndarray]:
    """Sum of squares: 0.5 * sum((obs - mod)^2). Returns (nll, residuals)."""
    res = np.asarray(obs, dtype=float) - np.asarray(mod, dtype=float)
    return float(0.5 * np.sum(res * res)), res


def normal_nll(obs, mod, cv) -> Tuple[float, np.ndarray]:
    """Normal likelihood with sd = cv * obs, without the log(sd) term."""
    obs = np.asarray(obs, dtype=float)
    sd = np.asarray(cv, dtype=float) * obs
    sd = np.where(sd > 0, sd, 1.0)
    z = (obs - np.asarray(mod, dtype=float)) / sd
    return float(0.5 * np.sum(z * z)), z


def lognormal_nll(obs, mod, cv, eps: float) -> Tuple[float, np.ndarray]:
    """Lognormal likelihood with sd = sqrt(log(1 + cv^2)), without log(sd).

    `eps` is added to observed and modeled values before taking logs.
    """
    cv = np.asarray(cv, dtype=float)
    sd = np.sqrt(np.log(1.0 + cv * cv))
    sd = np.where(sd > 0, sd, 1.0)
    z = (np.log(np.asarray(obs, dtype=float) + eps) - np.log(np.asarray(mod, dtype=float) + eps)) / sd
    return float(0.5 * np.sum(z * z)), z


def normalize(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    total = v.sum()
    return v / total if total > 0 else v


def multinomial_nll(obs, mod, sample_size: float, eps: float) -> Dict[str, Any]:
    """Multinomial likelihood for a size composition.

    Both vectors are normalized to proportions first. The value is
    ``-ss * sum(obs * (log(mod + eps) - log(obs + eps)))``, which is 0 when
    the proportions agree.

    Returns
    -------
    dict
        nll, proportions, Pearson residuals and effective sample size
    """
    p_obs = normalize(obs)
    p_mod = normalize(mod)
    nll = -sample_size * np.sum(p_obs * (np.log(p_mod + eps) - np.log(p_obs + eps)))
    var = p_mod * (1.0 - p_mod)
    pearson = np.divide(
        p_obs - p_mod,
        np.sqrt(var / sample_size) if sample_size > 0 else np.ones_like(var),
        out=np.zeros_like(p_mod),
        where=var > 0,
    )
    ss_res = np.sum((p_obs - p_mod) ** 2)
    eff_n = float(np.sum(var) / ss_res) if ss_res > 0 else np.inf
    return {
        "nll": float(nll),
        "obs": p_obs,
        "mod": p_mod,
        "zscores": pearson,
        "effN": eff_n,
    }


# =============================================================================
# OBJECTIVE FUNCTION RECORDS
# =============================================================================

@dataclass
class NllComponent:
    """One contribution to the objective function.

    Attributes
    ----------
    category : str
        'penalties', 'priors', 'components' (recruitment) or 'data'
    name : str
        Label within the category, e.g. 'TCF.retained.abundance'
    nll : float
        Unweighted negative log-likelihood or penalty
    weight : float
        Multiplier applied in the objective function
    details : dict
        Diagnostics (observed, modeled, residuals, ...)
    """

    category: str
    name: str
    nll: float
    weight: float = 1.0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def objfun(self) -> float:
        return self.weight * self.nll


@dataclass
class ObjectiveFunction:
    """Objective function value with its breakdown."""

    components: List[NllComponent] = field(default_factory=list)

    def add(self, category: str, name: str, nll: float, weight: float = 1.0, **details):
        self.components.append(NllComponent(category, name, float(nll), float(weight), details))

    @property
    def value(self) -> float:
        return float(sum(c.objfun for c in self.components))

    def by_category(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for c in self.components:
            out[c.category] = out.get(c.category, 0.0) + c.objfun
        return out

    def to_dict(self) -> Dict[str, Any]:
        """Nested dict: category -> name -> {wgt, nll, objfun, details}."""
        out: Dict[str, Any] = {}
        for c in self.components:
            out.setdefault(c.category, {})[c.name] = {
                "wgt": c.weight,
                "nll": c.nll,
                "objfun": c.objfun,
                **c.details,
            }
        return out

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(c.category, c.name, c.weight, c.nll, c.objfun) for c in self.components],
            columns=["category", "name", "weight", "nll", "objfun"],
        )


# =============================================================================
# PENALTIES AND PRIORS
# =============================================================================

def maturity_penalties(
    info: MaturityInfo,
    values: ParameterValues,
    options: ModelOptions,
    objfun: ObjectiveFunction,
):
    """Smoothness and non-decreasing penalties on each maturity logit vector."""
    for pc, combo in enumerate(info.combinations, start=1):
        logits = values.vector("pLgtPrMat", combo.pLgtPrMat)
        if logits is None:
            continue
        d1 = np.diff(logits)
        d2 = np.diff(logits, n=2)
        smooth = float(np.sum(d2 * d2))
        barrier = smooth_max(0.0, -d1)
        nondec = float(np.sum(barrier * barrier))
        objfun.add("penalties", f"maturity[{pc}].smoothness", smooth, options.wgt_maturity_smoothness)
        objfun.add("penalties", f"maturity[{pc}].nondecreasing", nondec, options.wgt_maturity_nondecreasing)


def deviation_penalties(values: ParameterValues, options: ModelOptions, objfun: ObjectiveFunction):
    """0.5 * w * sum(dev^2) for each capture-rate and selectivity deviation vector."""
    for group, vectors in values.vectors.items():
        if group != "pDevsLnC" and not group.startswith("pDevsS"):
            continue
        for i, dev in enumerate(vectors, start=1):
            objfun.add(
                "penalties", f"{group}[{i}]", 0.5 * float(np.sum(dev * dev)), options.wgt_devs_penalty
            )


def recruitment_nll(rec: RecruitmentRates, objfun: ObjectiveFunction):
    """Recruitment deviations: 0.5 * sum(z^2) + sum(log(sigma)) per combination."""
    for pc in np.unique(rec.combination[rec.has_devs]):
        sel = (rec.combination == pc) & rec.has_devs
        z = rec.zscore[sel]
        nll = 0.5 * float(np.sum(z * z)) + float(np.sum(np.log(rec.stdv[sel])))
        objfun.add("components", f"recruitment[{pc + 1}]", nll, zscores=z)


def prior_nll(prior_values: Dict[str, float], objfun: ObjectiveFunction):
    for label, nll in prior_values.items():
        objfun.add("priors", label, nll)


# =============================================================================
# DATA FITS
# =============================================================================

def _kept_factors(fit_type: FitType) -> Tuple[str, ...]:
    try:
        return FIT_FACTORS[fit_type]
    except KeyError:
        raise ConfigurationError(f"Unrecognized fit type {fit_type}") from None


def _check_resolution(df: pd.DataFrame, kept: Sequence[str], name: str):
    for col in kept:
        if (df[col] == ALL_LEVEL).any():
            raise ConfigurationError(
                f"{name}: observations aggregated over {col} cannot be fit {kept}"
            )


def _modeled_levels(numbers_y: np.ndarray, kept: Sequence[str], levels: Sequence[int]) -> np.ndarray:
    sel = {"sex": Sex.ALL, "maturity": Maturity.ALL, "shell": ShellCondition.ALL}
    enums = {"sex": Sex, "maturity": Maturity, "shell": ShellCondition}
    for col, lvl in zip(kept, levels):
        sel[col] = enums[col](int(lvl))
    return collapse_factors(numbers_y, sel["sex"], sel["maturity"], sel["shell"])


def fit_aggregate_data(
    name: str,
    data: AggregateCatchData,
    modeled: np.ndarray,
    years: Sequence[int],
    options: ModelOptions,
    objfun: ObjectiveFunction,
):
    """Fit aggregate abundance or biomass.

    Parameters
    ----------
    name : str
        Label for the breakdown
    data : AggregateCatchData
        Observations
    modeled : np.ndarray
        Modeled abundance or biomass at size [year, sex, maturity, shell, size]
    years : sequence of int
        Model year of each slice of `modeled`
    options : ModelOptions
        Likelihood floors
    objfun : ObjectiveFunction
        Accumulator
    """
    if data.likelihood == LikelihoodType.NONE or data.fit_type == FitType.NONE:
        return
    kept = list(_kept_factors(data.fit_type))
    year_pos = {int(y): i for i, y in enumerate(years)}
    df = data.data[data.data["year"].isin(list(year_pos))]
    if df.empty:
        return
    _check_resolution(df, kept, name)
    df = df.assign(sd=df["cv"] * df["value"])
    grouped = df.groupby(["year"] + kept, sort=True).agg(
        value=("value", "sum"), var=("sd", lambda s: float(np.sum(s * s)))
    ).reset_index()
    grouped["cv"] = np.divide(
        np.sqrt(grouped["var"]), grouped["value"],
        out=np.zeros(len(grouped)), where=grouped["value"].to_numpy() > 0,
    )

    level_groups = grouped.groupby(kept, sort=True) if kept else [((), grouped)]
    for levels, sub in level_groups:
        levels = levels if isinstance(levels, tuple) else (levels,)
        obs = sub["value"].to_numpy()
        mod = np.array([
            _modeled_levels(modeled[year_pos[int(y)]], kept, levels).sum() for y in sub["year"]
        ])
        cv = sub["cv"].to_numpy()
        if data.likelihood == LikelihoodType.NORM2:
            nll, z = norm2_nll(obs, mod)
        elif data.likelihood == LikelihoodType.NORMAL:
            nll, z = normal_nll(obs, mod, cv)
        elif data.likelihood == LikelihoodType.LOGNORMAL:
            nll, z = lognormal_nll(obs, mod, cv, options.eps_log)
        else:
            raise ConfigurationError(
                f"{name}: likelihood {data.likelihood.name} is not defined for aggregate data"
            )
        label = name if not kept else f"{name}[{','.join(str(int(v)) for v in levels)}]"
        objfun.add(
            "data", label, nll, data.weight,
            fit_type=data.fit_type.name, likelihood=data.likelihood.name,
            years=sub["year"].to_numpy(), obs=obs, mod=mod, zscores=z,
        )


def fit_size_frequencies(
    name: str,
    data: SizeFrequencyData,
    modeled: np.ndarray,
    years: Sequence[int],
    options: ModelOptions,
    objfun: ObjectiveFunction,
):
    """Fit size compositions.

    Observed rows are summed to the fit level. Extended fit types
    concatenate the size compositions of the kept levels and normalize them
    jointly; the others fit each level separately.
    """
    if data.likelihood == LikelihoodType.NONE or data.fit_type == FitType.NONE:
        return
    if data.likelihood not in (LikelihoodType.MULTINOMIAL, LikelihoodType.NORM2):
        raise ConfigurationError(
            f"{name}: likelihood {data.likelihood.name} is not defined for size compositions"
        )
    kept = list(_kept_factors(data.fit_type))
    extended = data.fit_type in EXTENDED_FIT_TYPES
    year_pos = {int(y): i for i, y in enumerate(years)}
    mask = data.data["year"].isin(list(year_pos)).to_numpy()
    if not mask.any():
        return
    df = data.data[mask]
    counts = data.counts[mask]
    _check_resolution(df, kept, name)

    # observed compositions summed to (year, kept levels)
    obs_by_key: Dict[Tuple[int, ...], np.ndarray] = {}
    ss_by_key: Dict[Tuple[int, ...], float] = {}
    for row, cnt in zip(df.itertuples(index=False), counts):
        key = (int(row.year),) + tuple(int(getattr(row, col)) for col in kept)
        obs_by_key[key] = obs_by_key.get(key, 0.0) + cnt
        ss_by_key[key] = ss_by_key.get(key, 0.0) + float(row.sample_size)

    if extended:
        all_levels = _level_product(kept)
        fits = {}
        for year in sorted({k[0] for k in obs_by_key}):
            obs = np.concatenate([
                obs_by_key.get((year,) + lv, np.zeros(counts.shape[1])) for lv in all_levels
            ])
            mod = np.concatenate([
                _modeled_levels(modeled[year_pos[year]], kept, lv) for lv in all_levels
            ])
            ss = sum(ss_by_key.get((year,) + lv, 0.0) for lv in all_levels)
            fits.setdefault((), []).append((year, obs, mod, ss))
    else:
        fits = {}
        for key in sorted(obs_by_key):
            year, levels = key[0], key[1:]
            mod = _modeled_levels(modeled[year_pos[year]], kept, levels)
            fits.setdefault(levels, []).append((year, obs_by_key[key], mod, ss_by_key[key]))

    for levels, rows in fits.items():
        label = name if not levels else f"{name}[{','.join(str(v) for v in levels)}]"
        nll_total = 0.0
        yrs, ss_list, eff_n, zscores = [], [], [], []
        for year, obs, mod, ss in rows:
            if data.likelihood == LikelihoodType.MULTINOMIAL:
                res = multinomial_nll(obs, mod, ss, options.eps_multinomial)
                nll_total += res["nll"]
                eff_n.append(res["effN"])
                zscores.append(res["zscores"])
            else:
                nll, z = norm2_nll(normalize(obs), normalize(mod))
                nll_total += nll
                zscores.append(z)
            yrs.append(year)
            ss_list.append(ss)
        objfun.add(
            "data", label, nll_total, data.weight,
            fit_type=data.fit_type.name, likelihood=data.likelihood.name,
            years=np.array(yrs), ss=np.array(ss_list), effN=np.array(eff_n),
            zscores=np.array(zscores),
        )


def _level_product(kept: Sequence[str]) -> List[Tuple[int, ...]]:
    levels: List[Tuple[int, ...]] = [()]
    for _ in kept:
        levels = [lv + (i,) for lv in levels for i in (0, 1)]
    return levels


def fit_catch_data(
    name: str,
    catch: CatchData,
    numbers: np.ndarray,
    years: Sequence[int],
    wAtZ: np.ndarray,
    options: ModelOptions,
    objfun: ObjectiveFunction,
):
    """Fit the abundance, biomass and size-frequency components of a catch type.

    Parameters
    ----------
    numbers : np.ndarray
        Modeled numbers-at-size [year, sex, maturity, shell, size]
    wAtZ : np.ndarray
        Weight-at-size [sex, maturity, size] in kg
    """
    if catch.abundance is not None:
        fit_aggregate_data(f"{name}.abundance", catch.abundance, numbers, years, options, objfun)
    if catch.biomass is not None:
        biomass = numbers * wAtZ[None, :, :, None, :]
        fit_aggregate_data(f"{name}.biomass", catch.biomass, biomass, years, options, objfun)
    if catch.size_frequencies is not None:
        fit_size_frequencies(f"{name}.n_at_z", catch.size_frequencies, numbers, years, options, objfun)


def log_summary(objfun: ObjectiveFunction, phase: Optional[int] = None):
    logger.info(
        "objective function%s: %.6g %s",
        "" if phase is None else f" (phase {phase})",
        objfun.value,
        {k: round(v, 6) for k, v in objfun.by_category().items()},
    )
