"""
Unit tests for the plotting module.
"""

import numpy as np
import pytest

import matplotlib

matplotlib.use("Agg")  # Non-interactive backend for testing
import matplotlib.pyplot as plt

from pycsam.core.dimensions import Sex
from pycsam.core.plotting import (
    plot_index_fits,
    plot_model_summary,
    plot_numbers_at_size,
    plot_spawning_biomass,
    save_plots,
)


@pytest.fixture
def state(small_model):
    """One run of the small model."""
    return small_model.run()


class TestPlotIndexFits:
    """Tests for plot_index_fits."""

    def test_returns_figure(self, small_model):
        """Should return a figure with one panel per aggregate fit."""
        objfun = small_model.calc_objective()
        fig = plot_index_fits(objfun)
        assert isinstance(fig, plt.Figure)
        visible = [ax for ax in fig.axes if ax.axison]
        assert len(visible) == 3
        plt.close(fig)

    def test_selected_components(self, small_model):
        """Only named components are plotted."""
        objfun = small_model.calc_objective()
        fig = plot_index_fits(objfun, names=["NMFS.abundance[1]"])
        assert [ax.get_title() for ax in fig.axes if ax.axison] == ["NMFS.abundance[1]"]
        plt.close(fig)


class TestPlotNumbersAtSize:
    """Tests for plot_numbers_at_size."""

    def test_default_years(self, small_model, state):
        """Default years are first, middle and last."""
        fig = plot_numbers_at_size(small_model.config, state.population.N)
        assert len(fig.axes[0].get_lines()) == 3
        plt.close(fig)

    def test_single_sex(self, small_model, state):
        """Plot one sex in given years on existing axes."""
        fig, ax = plt.subplots()
        out = plot_numbers_at_size(small_model.config, state.population.N, years=[2001], sex=Sex.FEMALE, ax=ax)
        assert out is fig
        np.testing.assert_allclose(ax.get_lines()[0].get_ydata()[0], 50.0)
        plt.close(fig)


class TestPlotSpawningBiomass:
    """Tests for plot_spawning_biomass."""

    def test_one_line_per_sex(self, small_model, state):
        """Should draw male and female series."""
        fig = plot_spawning_biomass(small_model.config, state.population.spawning_biomass)
        assert len(fig.axes[0].get_lines()) == 2
        plt.close(fig)


class TestPlotModelSummary:
    """Tests for plot_model_summary."""

    def test_named_figures(self, small_model):
        """The summary holds the standard result figures."""
        figures = plot_model_summary(small_model)
        assert set(figures) == {"index_fits", "numbers_at_size", "spawning_biomass"}
        assert all(isinstance(fig, plt.Figure) for fig in figures.values())
        for fig in figures.values():
            plt.close(fig)


class TestSavePlots:
    """Tests for save_plots."""

    def test_files_named_by_figure(self, small_model, tmp_path):
        """Each figure is saved under the prefix and its name."""
        figures = plot_model_summary(small_model)
        paths = save_plots(figures, tmp_path / "out", prefix="bbrkc", format="pdf")
        assert [p.name for p in paths] == [
            "bbrkc_index_fits.pdf", "bbrkc_numbers_at_size.pdf", "bbrkc_spawning_biomass.pdf",
        ]
        assert all(p.exists() for p in paths)
        for fig in figures.values():
            plt.close(fig)
