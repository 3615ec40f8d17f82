"""
Tests for parameter metadata and the flat parameter vector.
"""

import numpy as np
import pytest

from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock
from pycsam.core.params import (
    ActivationCondition,
    ParameterInfo,
    ParameterSet,
    Prior,
    VectorParameterInfo,
)


@pytest.fixture
def params():
    """Two scalar groups and one deviation vector."""
    ps = ParameterSet()
    ps.add_scalar("pLnR", ParameterInfo("ln(R)", 4.0, 0.0, 10.0, phase=1))
    ps.add_scalar("pLnM", ParameterInfo("ln(M)", -1.5, -3.0, 0.0, phase=-1,
                                        prior=Prior("normal", -1.5, 0.1)))
    ps.add_scalar("pLnM", ParameterInfo("ln(M) offset", 0.2, -1.0, 1.0, phase=3))
    ps.add_vector("pDevsLnR", VectorParameterInfo(
        "rec devs", IndexBlock.full(2000, 2002), values=[1.0, 2.0, 6.0],
        lower=-10.0, upper=10.0, phase=2, is_devs=True,
    ))
    return ps


class TestParameterSet:
    """Tests for ParameterSet."""

    def test_vector_layout(self, params):
        """Scalars come first, then vector elements."""
        assert params.n_params == 6
        assert params.labels() == [
            "pLnR[1]", "pLnM[1]", "pLnM[2]",
            "pDevsLnR[1][2000]", "pDevsLnR[1][2001]", "pDevsLnR[1][2002]",
        ]
        np.testing.assert_allclose(params.initial_vector(), [4.0, -1.5, 0.2, 1.0, 2.0, 6.0])

    def test_bounds_and_phases(self, params):
        """Bounds and phases follow the vector layout."""
        lower, upper = params.bounds()
        assert lower[0] == 0.0 and upper[0] == 10.0
        np.testing.assert_array_equal(params.phases(), [1, -1, 3, 2, 2, 2])
        assert params.max_phase == 3

    def test_active_mask(self, params):
        """Parameters with 0 < phase <= stage are active."""
        np.testing.assert_array_equal(params.active_mask(1), [True, False, False, False, False, False])
        np.testing.assert_array_equal(params.active_mask(2), [True, False, False, True, True, True])
        np.testing.assert_array_equal(params.active_mask(), [True, False, True, True, True, True])

    def test_unpack_centers_devs(self, params):
        """Deviation vectors sum to zero after unpacking."""
        values = params.unpack(params.initial_vector())
        devs = values.vector("pDevsLnR", 1)
        np.testing.assert_allclose(devs, [-2.0, -1.0, 3.0])
        assert devs.sum() == pytest.approx(0.0)
        assert values.dev("pDevsLnR", 1, 2002) == pytest.approx(3.0)

    def test_zero_reference(self, params):
        """Reference 0 contributes nothing."""
        values = params.unpack(params.initial_vector())
        assert values.scalar("pLnR", 0) == 0.0
        assert values.vector("pDevsLnR", 0) is None
        assert values.dev("pDevsLnR", 0, 2001) == 0.0
        assert not values.is_active("pLnM", 0)

    def test_out_of_range_reference(self, params):
        """References beyond a group's size are configuration errors."""
        values = params.unpack(params.initial_vector())
        with pytest.raises(ConfigurationError, match="out of range"):
            values.scalar("pLnM", 3)
        with pytest.raises(ConfigurationError, match="pLnQ"):
            values.scalar("pLnQ", 1)

    def test_dev_outside_block(self, params):
        """A deviation year outside the vector's block is an error."""
        values = params.unpack(params.initial_vector())
        with pytest.raises(ConfigurationError, match="does not cover"):
            values.dev("pDevsLnR", 1, 2005)

    def test_activation_by_stage(self, params):
        """is_active depends on the stage passed to unpack."""
        x = params.initial_vector()
        assert not params.unpack(x, phase=2).is_active("pLnM", 2)
        assert params.unpack(x, phase=3).is_active("pLnM", 2)
        assert params.unpack(x).is_active("pLnM", 2)
        assert not params.unpack(x).is_active("pLnM", 1)

    def test_wrong_vector_length(self, params):
        """unpack rejects vectors of the wrong length."""
        with pytest.raises(ValueError):
            params.unpack(np.zeros(4))

    def test_prior_nll(self, params):
        """Priors contribute 0.5 * z^2 per parameter."""
        x = params.initial_vector()
        x[1] = -1.3
        nll = params.prior_nll(params.unpack(x))
        assert list(nll) == ["pLnM[1]"]
        assert nll["pLnM[1]"] == pytest.approx(0.5 * 2.0 ** 2)


class TestParameterInfo:
    """Tests for parameter validation."""

    def test_initial_value_outside_bounds(self):
        """Initial values must lie within the bounds."""
        with pytest.raises(ConfigurationError):
            ParameterInfo("bad", 5.0, 0.0, 1.0)

    def test_vector_length_must_match_block(self):
        """Vector values must match the block length."""
        with pytest.raises(ValueError):
            VectorParameterInfo("bad", IndexBlock.full(1, 3), values=[0.0, 1.0])

    def test_prior_validation(self):
        """Prior types and sds are validated."""
        with pytest.raises(ConfigurationError):
            Prior("beta", 0.0, 1.0)
        with pytest.raises(ConfigurationError):
            Prior("normal", 0.0, 0.0)
        assert Prior("lognormal", 0.0, 1.0).nll(1.0) == pytest.approx(0.0)

    def test_activation_condition(self):
        """Fixed parameters are never active."""
        cond = ActivationCondition(2)
        assert cond.is_active(1)
        assert cond.is_active(2)
        assert not cond.is_active(3)
        assert not cond.is_active(-1)
