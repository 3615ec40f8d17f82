"""
Crab stock assessment model.

`CsamModel` ties the pieces together: it validates the process
definitions against the parameters and data, builds the combination
resolvers once, and on each evaluation

1. unpacks the parameter vector,
2. recomputes every rate array,
3. projects the population and samples the surveys,
4. assembles the objective function.

Evaluations carry no state from one call to the next.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

import numpy as np
from scipy.optimize import approx_fprime

from pycsam.core.config import ModelConfiguration, ModelOptions
from pycsam.core.data import CatchData, ModelDatasets
from pycsam.core.fisheries import FisheryRates, calc_fishery_rates
from pycsam.core.likelihood import (
    ObjectiveFunction,
    deviation_penalties,
    fit_catch_data,
    maturity_penalties,
    prior_nll,
    recruitment_nll,
)
from pycsam.core.params import ParameterSet, ParameterValues
from pycsam.core.population import PopulationProjector, PopulationResults
from pycsam.core.processes import ModelProcesses
from pycsam.core.rates import (
    RecruitmentRates,
    calc_growth,
    calc_maturity,
    calc_natural_mortality,
    calc_recruitment,
)
from pycsam.core.resolver import ModelResolvers
from pycsam.core.selectivity import calc_selectivities
from pycsam.core.surveys import SurveyResults, calc_catchability, sample_surveys
from pycsam.logger import get_logger

logger = get_logger('model')

FD_EPSILON = 1.0e-6  # Finite-difference step for gradients


@dataclass
class ModelRates:
    """Rate arrays for one evaluation.

    Attributes
    ----------
    recruitment : RecruitmentRates
        Recruitment by year
    M : np.ndarray
        Natural mortality [year, sex, maturity, size]
    prGr : np.ndarray
        Growth transitions [year, sex, maturity, from, to]
    prMat : np.ndarray
        Probability of molting to maturity [year, sex, size]
    selectivity : np.ndarray
        Selectivity curves [function, year (to max_year + 1), size]
    fisheries : FisheryRates
        Capture and mortality rates
    Q : np.ndarray
        Survey catchability [survey, year (to max_year + 1), sex, maturity, shell, size]
    """

    recruitment: RecruitmentRates
    M: np.ndarray
    prGr: np.ndarray
    prMat: np.ndarray
    selectivity: np.ndarray
    fisheries: FisheryRates
    Q: np.ndarray


@dataclass
class ModelState:
    """Everything computed in one model run."""

    values: ParameterValues
    rates: ModelRates
    population: PopulationResults
    surveys: SurveyResults
    phase: Optional[int] = None


class CsamModel:
    """Size-structured crab population model and its objective function.

    Parameters
    ----------
    config : ModelConfiguration
        Model dimensions
    options : ModelOptions
        Run options
    parameters : ParameterSet
        Parameter metadata
    processes : ModelProcesses
        Parameter combinations for every process
    datasets : ModelDatasets
        Observed data

    Raises
    ------
    ConfigurationError
        If the process definitions reference undefined parameters or leave a
        required model year (or sex) uncovered
    """

    def __init__(
        self,
        config: ModelConfiguration,
        options: ModelOptions,
        parameters: ParameterSet,
        processes: ModelProcesses,
        datasets: ModelDatasets,
    ):
        self.config = config
        self.options = options
        self.parameters = parameters
        self.processes = processes
        self.datasets = datasets

        processes.validate(parameters, config)
        datasets.validate(config)
        self.resolvers = ModelResolvers(processes, config)
        self.projector = PopulationProjector(config, options, datasets.bio.weight_at_size)
        logger.info(
            "Built model '%s': %d-%d, %d size bins, %d fisheries, %d surveys, %d parameters",
            config.name, config.min_year, config.max_year, config.n_bins,
            config.n_fisheries, config.n_surveys, parameters.n_params,
        )

    def _params(self, x) -> np.ndarray:
        return self.parameters.initial_vector() if x is None else np.asarray(x, dtype=float)

    def calc_rates(self, values: ParameterValues) -> ModelRates:
        """Recompute all process rates from the parameter values."""
        cfg, opts, proc, res = self.config, self.options, self.processes, self.resolvers
        debug = opts.debug
        sel = calc_selectivities(proc.selectivity, values, cfg, debug)
        return ModelRates(
            recruitment=calc_recruitment(proc.recruitment, res.recruitment, values, cfg, debug),
            M=calc_natural_mortality(proc.natural_mortality, res.natural_mortality, values, cfg, debug),
            prGr=calc_growth(proc.growth, res.growth, values, cfg, opts.growth_window, debug),
            prMat=calc_maturity(proc.maturity, res.maturity, values, cfg, debug),
            selectivity=sel,
            fisheries=calc_fishery_rates(
                proc.fisheries, res.fisheries, values, cfg, opts, sel, self.datasets
            ),
            Q=calc_catchability(proc.surveys, res.surveys, values, cfg, sel, debug),
        )

    def run(self, x=None, phase: Optional[int] = None) -> ModelState:
        """Compute rates, project the population and sample the surveys.

        Parameters
        ----------
        x : array-like, optional
            Full parameter vector; defaults to the initial values
        phase : int, optional
            Estimation phase used for activation conditions (None = all active)

        Returns
        -------
        ModelState
        """
        values = self.parameters.unpack(self._params(x), phase)
        rates = self.calc_rates(values)
        population = self.projector.project(
            rates.M, rates.prGr, rates.prMat, rates.recruitment.recruits(), rates.fisheries
        )
        surveys = sample_surveys(rates.Q, population.N, self.datasets.bio.weight_at_size)
        return ModelState(values, rates, population, surveys, phase)

    def catch_components(self, state: ModelState, datasets: Optional[ModelDatasets] = None) -> Iterator[Tuple[str, CatchData, np.ndarray, np.ndarray]]:
        """(label, observed data, modeled numbers-at-size, years) for every catch type."""
        datasets = self.datasets if datasets is None else datasets
        pop = state.population
        modeled = {"retained": pop.retained, "discard": pop.discarded, "total": pop.captured}
        for fd in datasets.fisheries:
            f = self.config.fishery_index(fd.name)
            for label, catch in fd.components():
                yield f"{fd.name}.{label}", catch, modeled[label][f], self.config.years
        for sd in datasets.surveys:
            v = self.config.survey_index(sd.name)
            yield sd.name, sd.catch, state.surveys.numbers[v], self.config.years_p1

    def calc_objective(self, x=None, phase: Optional[int] = None, state: Optional[ModelState] = None) -> ObjectiveFunction:
        """Objective function with its full breakdown."""
        if state is None:
            state = self.run(x, phase)
        objfun = ObjectiveFunction()
        maturity_penalties(self.processes.maturity, state.values, self.options, objfun)
        deviation_penalties(state.values, self.options, objfun)
        recruitment_nll(state.rates.recruitment, objfun)
        if self.config.fit_to_priors:
            prior_nll(self.parameters.prior_nll(state.values), objfun)
        wAtZ = self.datasets.bio.weight_at_size
        for name, catch, numbers, years in self.catch_components(state):
            fit_catch_data(name, catch, numbers, years, wAtZ, self.options, objfun)
        if self.options.debug.enabled('objective'):
            logger.debug("objective function: %s", objfun.by_category())
        return objfun

    def evaluate_objective(self, x, phase: Optional[int] = None, epsilon: float = FD_EPSILON) -> Tuple[float, np.ndarray]:
        """Objective value and gradient for an external optimizer.

        The gradient is a forward finite-difference approximation over the
        parameters active at `phase`; inactive parameters get 0.

        Returns
        -------
        tuple
            (value, gradient with the length of the full parameter vector)
        """
        x = self._params(x)
        value = self.calc_objective(x, phase).value
        mask = self.parameters.active_mask(phase)
        grad = np.zeros_like(x)
        if mask.any():
            def f_active(xa):
                xf = x.copy()
                xf[mask] = xa
                return self.calc_objective(xf, phase).value

            grad[mask] = approx_fprime(x[mask], f_active, epsilon)
        return value, grad

    def simulate_observations(self, x=None, seed: Optional[int] = None, add_noise: bool = False) -> ModelDatasets:
        """Copy of the datasets with observations replaced by model output.

        Parameters
        ----------
        x : array-like, optional
            Parameter vector to simulate from
        seed : int, optional
            Seed for the noise generator
        add_noise : bool
            Add lognormal noise to aggregate data (sd from each row's CV) and
            multinomial sampling noise to size compositions

        Returns
        -------
        ModelDatasets
        """
        state = self.run(x)
        simulated = copy.deepcopy(self.datasets)
        wAtZ = simulated.bio.weight_at_size
        rng = np.random.default_rng(seed)
        for _, catch, numbers, years in self.catch_components(state, simulated):
            catch.replace_data(numbers, years, wAtZ)
            if add_noise:
                _add_noise(catch, rng)
        return simulated

    def report(self, x=None, phase: Optional[int] = None) -> Dict[str, Any]:
        """Nested dict of configuration, rates, population, surveys and fits."""
        from pycsam.core.report import build_report

        x = self._params(x)
        state = self.run(x, phase)
        return build_report(self, state, self.calc_objective(state=state), x)


def _add_noise(catch: CatchData, rng: np.random.Generator):
    for agg in (catch.abundance, catch.biomass):
        if agg is None:
            continue
        cv = agg.data["cv"].to_numpy()
        sd = np.sqrt(np.log(1.0 + cv * cv))
        agg.data["value"] = agg.data["value"].to_numpy() * np.exp(
            rng.standard_normal(len(sd)) * sd - 0.5 * sd * sd
        )
    zfd = catch.size_frequencies
    if zfd is not None:
        for i, ss in enumerate(zfd.data["sample_size"].to_numpy()):
            total = zfd.counts[i].sum()
            n = int(round(ss))
            if total > 0 and n > 0:
                zfd.counts[i] = rng.multinomial(n, zfd.counts[i] / total)
