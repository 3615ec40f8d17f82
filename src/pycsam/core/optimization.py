"""Phased maximum-likelihood estimation for pycsam models.

Parameters are estimated in phases: in phase k every parameter whose phase
is between 1 and k is free and the rest stay at their current values. Each
phase is a bounded quasi-Newton minimization (L-BFGS-B) of the objective
function, started from the previous phase's solution.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from scipy.optimize import minimize

from pycsam.core.likelihood import log_summary
from pycsam.core.model import CsamModel
from pycsam.logger import get_logger

logger = get_logger('optimization')


@dataclass
class PhaseResult:
    """Outcome of one estimation phase.

    Attributes
    ----------
    phase : int
        Estimation phase
    objective : float
        Objective function value at the end of the phase
    n_evaluations : int
        Objective function evaluations used
    converged : bool
        Whether the minimizer reported success
    message : str
        Minimizer status message
    """
    phase: int
    objective: float
    n_evaluations: int
    converged: bool
    message: str


@dataclass
class FitResult:
    """Results from a phased model fit.

    Attributes
    ----------
    best_params : np.ndarray
        Full parameter vector at the optimum
    best_score : float
        Objective function value at the optimum
    labels : list of str
        Parameter labels, aligned with `best_params`
    phases : list of PhaseResult
        Per-phase outcomes
    convergence : list
        Objective function values over all evaluations
    optimization_time : float
        Total optimization time in seconds
    """
    best_params: np.ndarray
    best_score: float
    labels: List[str]
    phases: List[PhaseResult] = field(default_factory=list)
    convergence: List[float] = field(default_factory=list)
    optimization_time: float = 0.0

    @property
    def n_evaluations(self) -> int:
        return sum(p.n_evaluations for p in self.phases)

    @property
    def converged(self) -> bool:
        return bool(self.phases) and all(p.converged for p in self.phases)

    def params_dict(self) -> Dict[str, float]:
        return dict(zip(self.labels, self.best_params.tolist()))


class ModelFitter:
    """Phased L-BFGS-B fitter.

    Parameters
    ----------
    model : CsamModel
        Model to fit
    max_evaluations : int or sequence of int
        Maximum objective evaluations per phase (a sequence gives one value
        per phase; the last entry is reused for later phases)
    ftol : float
        Relative function-value tolerance
    gtol : float
        Projected gradient tolerance
    verbose : bool
        Log progress of each phase
    """

    def __init__(
        self,
        model: CsamModel,
        max_evaluations: Union[int, Sequence[int]] = 1000,
        ftol: float = 1e-10,
        gtol: float = 1e-6,
        verbose: bool = True,
    ):
        self.model = model
        self.max_evaluations = max_evaluations
        self.ftol = ftol
        self.gtol = gtol
        self.verbose = verbose
        self.n_calls = 0

    def _max_evaluations(self, phase: int) -> int:
        if isinstance(self.max_evaluations, int):
            return self.max_evaluations
        limits = list(self.max_evaluations)
        return limits[min(phase, len(limits)) - 1]

    def fit(self, x0=None, max_phase: Optional[int] = None) -> FitResult:
        """Run all estimation phases.

        Parameters
        ----------
        x0 : array-like, optional
            Starting parameter vector; defaults to the initial values
        max_phase : int, optional
            Last phase to run; defaults to the largest parameter phase

        Returns
        -------
        FitResult
        """
        start_time = time.time()
        params = self.model.parameters
        x = params.initial_vector() if x0 is None else np.asarray(x0, dtype=float).copy()
        lower, upper = params.bounds()
        last_phase = params.max_phase if max_phase is None else max_phase
        convergence: List[float] = []
        phase_results: List[PhaseResult] = []

        if self.verbose:
            logger.info(
                "Starting phased estimation: %d parameters, %d phases",
                params.n_params, last_phase,
            )

        for phase in range(1, last_phase + 1):
            mask = params.active_mask(phase)
            if not mask.any():
                continue
            self.n_calls = 0
            x_fixed = x.copy()

            def objective(xa):
                xf = x_fixed.copy()
                xf[mask] = xa
                value, grad = self.model.evaluate_objective(xf, phase)
                self.n_calls += 1
                convergence.append(value)
                return value, grad[mask]

            bounds = [
                (None if np.isinf(lo) else lo, None if np.isinf(hi) else hi)
                for lo, hi in zip(lower[mask], upper[mask])
            ]
            result = minimize(
                objective,
                x[mask],
                jac=True,
                method='L-BFGS-B',
                bounds=bounds,
                options={
                    'maxfun': self._max_evaluations(phase),
                    'ftol': self.ftol,
                    'gtol': self.gtol,
                },
            )
            x[mask] = result.x
            phase_results.append(PhaseResult(
                phase=phase,
                objective=float(result.fun),
                n_evaluations=self.n_calls,
                converged=bool(result.success),
                message=str(result.message),
            ))
            if self.verbose:
                logger.info(
                    "Phase %d: objective %.6f after %d evaluations (%s)",
                    phase, result.fun, self.n_calls, result.message,
                )
                log_summary(self.model.calc_objective(x, phase), phase)

        best_score = self.model.calc_objective(x).value
        optimization_time = time.time() - start_time
        if self.verbose:
            logger.info("Estimation finished in %.2f seconds, objective %.6f", optimization_time, best_score)

        return FitResult(
            best_params=x,
            best_score=best_score,
            labels=params.labels(),
            phases=phase_results,
            convergence=convergence,
            optimization_time=optimization_time,
        )


def plot_convergence(result: FitResult, save_path: Optional[str] = None):
    """Plot the objective function trace of a fit.

    Parameters
    ----------
    result : FitResult
        Fit results
    save_path : str, optional
        Path to save figure
    """
    import matplotlib.pyplot as plt

    fig, ax = plt.subplots(figsize=(8, 4))
    trace = np.asarray(result.convergence)
    ax.plot(trace, 'b-', linewidth=1, alpha=0.5, label='Evaluations')
    ax.plot(np.minimum.accumulate(trace), 'k-', linewidth=2, label='Best')
    ax.set_xlabel('Evaluation')
    ax.set_ylabel('Objective Function')
    ax.set_title('Optimization Convergence')
    ax.legend()
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')

    return fig
