"""
Model reports.

`build_report` collects the configuration, rates, population trajectory,
catches, survey quantities and the objective function breakdown in a
nested dictionary for external writers. The frame helpers return tidy
pandas tables for analysis and plotting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import numpy as np
import pandas as pd

from pycsam.core.config import ModelConfiguration
from pycsam.core.dimensions import MATURITY_LABELS, SEX_LABELS, SHELL_LABELS, Maturity, Sex, ShellCondition
from pycsam.core.likelihood import ObjectiveFunction

if TYPE_CHECKING:
    from pycsam.core.model import CsamModel, ModelState


def numbers_at_size_frame(config: ModelConfiguration, N: np.ndarray, years=None) -> pd.DataFrame:
    """Tidy numbers-at-size table.

    Parameters
    ----------
    config : ModelConfiguration
        Model dimensions
    N : np.ndarray
        Numbers [year, sex, maturity, shell, size]
    years : sequence of int, optional
        Year labels of the first axis (default: min_year onwards)

    Returns
    -------
    pd.DataFrame
        Columns year, sex, maturity, shell, size, value
    """
    if years is None:
        years = np.arange(config.min_year, config.min_year + N.shape[0])
    idx = pd.MultiIndex.from_product(
        [
            list(years),
            [SEX_LABELS[Sex(x)] for x in range(N.shape[1])],
            [MATURITY_LABELS[Maturity(m)] for m in range(N.shape[2])],
            [SHELL_LABELS[ShellCondition(s)] for s in range(N.shape[3])],
            config.z_mids.tolist(),
        ],
        names=["year", "sex", "maturity", "shell", "size"],
    )
    return pd.DataFrame({"value": N.reshape(-1)}, index=idx).reset_index()


def objective_frame(objfun: ObjectiveFunction) -> pd.DataFrame:
    """One row per objective function component."""
    return objfun.to_frame()


def build_report(model: "CsamModel", state: "ModelState", objfun: ObjectiveFunction, x: np.ndarray) -> Dict[str, Any]:
    """Nested dict of model inputs and results."""
    cfg = model.config
    rates = state.rates
    pop = state.population
    rec = rates.recruitment
    fisheries = {}
    for f, label in enumerate(cfg.fisheries):
        fisheries[label] = {
            "fully_selected": rates.fisheries.fully_selected[f],
            "capture_rate": rates.fisheries.capture[f],
            "retained_mortality_rate": rates.fisheries.retained[f],
            "discard_mortality_rate": rates.fisheries.discard[f],
            "handling_mortality": rates.fisheries.handling_mortality[f],
            "captured": pop.captured[f],
            "retained": pop.retained[f],
            "discarded": pop.discarded[f],
            "discard_mortality": pop.discard_mortality[f],
        }
    surveys = {
        label: {
            "Q": rates.Q[v],
            "numbers": state.surveys.numbers[v],
            "spawning_biomass": state.surveys.spawning_biomass[v],
        }
        for v, label in enumerate(cfg.surveys)
    }
    return {
        "config": cfg.to_dict(),
        "params": dict(zip(model.parameters.labels(), np.asarray(x, dtype=float).tolist())),
        "rates": {
            "recruitment": {
                "total": rec.total,
                "sex_fraction": rec.sex_fraction,
                "size_distribution": rec.size_distribution,
                "devs": rec.dev,
                "zscores": rec.zscore,
            },
            "M": rates.M,
            "prGr": rates.prGr,
            "prMat": rates.prMat,
            "selectivity": rates.selectivity,
        },
        "population": {
            "N": pop.N,
            "spawning_biomass": pop.spawning_biomass,
            "natural_mortality": pop.natural_mortality,
            "total_mortality": pop.total_mortality,
        },
        "fisheries": fisheries,
        "surveys": surveys,
        "objfun": {
            "value": objfun.value,
            "by_category": objfun.by_category(),
            "components": objfun.to_dict(),
        },
    }
