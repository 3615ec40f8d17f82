"""
Tests for selectivity functions and the selectivity calculator.
"""

import numpy as np
import pytest

from pycsam.core.config import DebugConfig
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock
from pycsam.core.params import ParameterInfo, ParameterSet, VectorParameterInfo
from pycsam.core.processes import SelectivityCombination, SelectivityInfo
from pycsam.core.selectivity import (
    SELECTIVITY_FUNCTIONS,
    asclogistic,
    asclogistic5095,
    calc_selectivities,
    dbllogistic,
    dblnormal4,
    get_selectivity_function,
)

Z = np.arange(27.5, 150.0, 5.0)


class TestSelectivityFunctions:
    """Tests for the parametric curves."""

    def test_registry(self):
        """Every registered function evaluates within [0, 1]."""
        params = {2: (60.0, 20.0), 4: (60.0, 20.0, 120.0, 80.0), 0: ()}
        for name, fcn in SELECTIVITY_FUNCTIONS.items():
            p = params[fcn.n_params]
            if name == "asclogistic":
                p = (60.0, 0.2)
            elif name == "asclogisticLn50":
                p = (np.log(60.0), 0.2)
            elif name == "dbllogistic":
                p = (60.0, 0.2, 120.0, 0.2)
            elif name == "dbllogistic5095":
                p = (60.0, 80.0, 100.0, 120.0)
            sel = fcn(Z, p)
            assert sel.shape == Z.shape, name
            assert np.all((sel >= 0) & (sel <= 1 + 1e-12)), name

    def test_asclogistic_midpoint(self):
        """Selectivity is 0.5 at z50."""
        assert asclogistic(np.array([60.0]), (60.0, 0.3))[0] == pytest.approx(0.5)

    def test_asclogistic5095(self):
        """Selectivity is 0.5 at z50 and 0.95 at z95."""
        sel = asclogistic5095(np.array([60.0, 80.0]), (60.0, 80.0))
        np.testing.assert_allclose(sel, [0.5, 0.95])

    def test_dome_shaped(self):
        """Double-sided curves decline at large sizes."""
        sel = dbllogistic(Z, (60.0, 0.2, 120.0, 0.2))
        assert sel.argmax() not in (0, len(Z) - 1)
        sel = dblnormal4(Z, (70.0, 10.0, 100.0, 15.0))
        assert sel[np.searchsorted(Z, 80.0)] == 1.0
        assert sel[-1] < 1.0

    def test_fully_selected_size_rescaling(self):
        """Curves are rescaled to 1 at the fully-selected size."""
        fcn = get_selectivity_function("asclogistic")
        sel = fcn(Z, (60.0, 0.1), fsz=Z[5])
        assert sel[5] == pytest.approx(1.0)
        np.testing.assert_allclose(sel, fcn(Z, (60.0, 0.1)) / fcn(Z, (60.0, 0.1))[5])

    def test_unknown_function(self):
        """Unknown names are configuration errors."""
        with pytest.raises(ConfigurationError, match="Unrecognized selectivity function"):
            get_selectivity_function("knife_edge")


class TestCalcSelectivities:
    """Tests for calc_selectivities."""

    def test_curves_by_year(self, config):
        """Curves fill the years of their combination through max_year + 1."""
        ps = ParameterSet()
        ps.add_scalar("pS1", ParameterInfo("z50", 37.5))
        ps.add_scalar("pS2", ParameterInfo("slope", 0.5))
        info = SelectivityInfo()
        info.add(SelectivityCombination(IndexBlock.full(2000, 2003), "const_sel"))
        info.add(SelectivityCombination(IndexBlock.full(2002, 2003), "asclogistic", params=(1, 1)))
        values = ps.unpack(ps.initial_vector())
        sel = calc_selectivities(info, values, config, DebugConfig())
        assert sel.shape == (2, 4, 5)
        np.testing.assert_array_equal(sel[0], 1.0)
        np.testing.assert_array_equal(sel[1, :2], 0.0)
        assert sel[1, 3, 2] == pytest.approx(0.5)

    def test_yearly_deviations(self, config):
        """Deviations shift the shape parameters year by year."""
        ps = ParameterSet()
        ps.add_scalar("pS1", ParameterInfo("z50", 37.5))
        ps.add_scalar("pS2", ParameterInfo("slope", 0.5))
        ps.add_vector("pDevsS1", VectorParameterInfo(
            "z50 devs", IndexBlock.full(2000, 2003), values=[-5.0, 5.0, 0.0, 0.0], is_devs=True,
        ))
        info = SelectivityInfo()
        info.add(SelectivityCombination(
            IndexBlock.full(2000, 2003), "asclogistic", params=(1, 1), devs=(1,),
        ))
        values = ps.unpack(ps.initial_vector())
        sel = calc_selectivities(info, values, config, DebugConfig())
        z = config.z_mids
        np.testing.assert_allclose(sel[0, 0], asclogistic(z, (32.5, 0.5)))
        np.testing.assert_allclose(sel[0, 1], asclogistic(z, (42.5, 0.5)))
        np.testing.assert_allclose(sel[0, 3], asclogistic(z, (37.5, 0.5)))

    def test_too_many_parameters(self):
        """Combinations take at most six parameters."""
        with pytest.raises(ConfigurationError):
            SelectivityCombination(IndexBlock.full(1, 2), "const_sel", params=(1,) * 7)
