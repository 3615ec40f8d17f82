"""
Plotting module for pycsam.

Matplotlib figures of model results:
- Observed vs. predicted aggregate indices
- Numbers-at-size by year
- Mature biomass time series
- A standard set of result figures, saved by name
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np

from pycsam.core.config import ModelConfiguration
from pycsam.core.dimensions import SEX_LABELS, Sex, collapse_factors
from pycsam.core.likelihood import ObjectiveFunction

if TYPE_CHECKING:
    from pycsam.core.model import CsamModel


def plot_index_fits(
    objfun: ObjectiveFunction,
    names: Optional[List[str]] = None,
    figsize: Tuple[int, int] = (12, 8),
) -> plt.Figure:
    """Plot observed vs. predicted values of the aggregate data fits.

    Parameters
    ----------
    objfun : ObjectiveFunction
        Objective function breakdown from `CsamModel.calc_objective`
    names : list of str, optional
        Components to plot (default: all aggregate fits)
    figsize : tuple
        Figure size

    Returns
    -------
    matplotlib.Figure
    """
    comps = [
        c for c in objfun.components
        if c.category == "data" and "obs" in c.details and (names is None or c.name in names)
    ]
    n = max(len(comps), 1)
    n_cols = min(3, n)
    n_rows = (n + n_cols - 1) // n_cols
    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for ax, comp in zip(axes, comps):
        years = comp.details["years"]
        ax.plot(years, comp.details["obs"], 'o', label='Observed', markersize=6)
        ax.plot(years, comp.details["mod"], '-', label='Predicted', linewidth=2)
        ax.set_xlabel('Year', fontsize=11)
        ax.set_title(comp.name, fontsize=11)
        ax.text(0.05, 0.95, f'NLL: {comp.nll:.3f}',
                transform=ax.transAxes, verticalalignment='top',
                bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.5))
        ax.legend(fontsize=9)
        ax.grid(True, alpha=0.3)

    for ax in axes[len(comps):]:
        ax.axis('off')

    plt.tight_layout()
    return fig


def plot_numbers_at_size(
    config: ModelConfiguration,
    N: np.ndarray,
    years: Optional[List[int]] = None,
    sex: Sex = Sex.ALL,
    title: str = "Numbers at Size",
    figsize: Tuple[int, int] = (10, 6),
    ax: Optional[plt.Axes] = None,
) -> plt.Figure:
    """Plot numbers-at-size for selected years.

    Parameters
    ----------
    config : ModelConfiguration
        Model dimensions
    N : np.ndarray
        Numbers [year, sex, maturity, shell, size] starting at min_year
    years : list of int, optional
        Years to plot (default: first, middle and last)
    sex : Sex
        Sex to plot, or ALL for both combined
    title : str
        Plot title
    ax : Axes, optional
        Matplotlib axes

    Returns
    -------
    matplotlib.Figure
    """
    all_years = np.arange(config.min_year, config.min_year + N.shape[0])
    if years is None:
        years = sorted({int(all_years[0]), int(all_years[len(all_years) // 2]), int(all_years[-1])})

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    for year in years:
        nz = collapse_factors(N[year - config.min_year], sex=sex)
        ax.plot(config.z_mids, nz, marker='.', label=str(year), linewidth=1.5)

    ax.set_xlabel('Size (mm CW)', fontsize=11)
    ax.set_ylabel('Numbers (millions)', fontsize=11)
    ax.set_title(f"{title} ({SEX_LABELS[sex]})", fontsize=12)
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def plot_spawning_biomass(
    config: ModelConfiguration,
    spawning_biomass: np.ndarray,
    title: str = "Mature Biomass at Mating",
    figsize: Tuple[int, int] = (10, 5),
    ax: Optional[plt.Axes] = None,
) -> plt.Figure:
    """Plot mature biomass by sex over the model years."""
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    for x in (Sex.MALE, Sex.FEMALE):
        ax.plot(config.years, spawning_biomass[:, x], label=SEX_LABELS[x], linewidth=2)

    ax.set_xlabel('Year', fontsize=11)
    ax.set_ylabel('Biomass (1000s t)', fontsize=11)
    ax.set_title(title, fontsize=12)
    ax.legend(fontsize=9)
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    return fig


def plot_model_summary(model: "CsamModel", x=None) -> Dict[str, plt.Figure]:
    """Standard result figures for one parameter vector.

    Parameters
    ----------
    model : CsamModel
        Model to run
    x : array-like, optional
        Parameter vector; defaults to the initial values

    Returns
    -------
    dict
        Figures keyed by name ('index_fits', 'numbers_at_size',
        'spawning_biomass')
    """
    state = model.run(x)
    objfun = model.calc_objective(x, state=state)
    pop = state.population
    return {
        'index_fits': plot_index_fits(objfun),
        'numbers_at_size': plot_numbers_at_size(model.config, pop.N),
        'spawning_biomass': plot_spawning_biomass(model.config, pop.spawning_biomass),
    }


def save_plots(
    figures: Dict[str, plt.Figure],
    directory: Union[str, Path],
    prefix: str = 'pycsam',
    dpi: int = 150,
    format: str = 'png'
) -> List[Path]:
    """Save named figures as ``<directory>/<prefix>_<name>.<format>``.

    Parameters
    ----------
    figures : dict
        Figures keyed by name, e.g. from :func:`plot_model_summary`
    directory : str or Path
        Output directory, created if missing
    prefix : str
        File name prefix
    dpi : int
        Resolution
    format : str
        Output format ('png', 'pdf', 'svg')

    Returns
    -------
    list of Path
        Files written
    """
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, fig in figures.items():
        path = out_dir / f"{prefix}_{name}.{format}"
        fig.savefig(path, dpi=dpi, bbox_inches='tight')
        paths.append(path)
    return paths
