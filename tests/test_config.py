"""
Tests for model configuration, options, constants and dimensions.
"""

import numpy as np
import pytest

from pycsam.core.config import DebugConfig, ModelConfiguration, ModelOptions
from pycsam.core.constants import (
    CaptureRateAveraging,
    FitType,
    LikelihoodType,
    ScaleType,
    convert_to_cv,
    get_capture_rate_averaging,
    get_conversion_multiplier,
    get_fit_type,
    get_likelihood_type,
    is_weight_units,
)
from pycsam.core.dimensions import Maturity, Sex, ShellCondition, collapse_factors, get_sex
from pycsam.core.exceptions import ConfigurationError


class TestModelConfiguration:
    """Tests for ModelConfiguration."""

    def test_dimensions(self, config):
        """Derived dimensions follow the cut points and years."""
        assert config.n_bins == 5
        assert config.n_years == 3
        np.testing.assert_allclose(config.z_mids, [27.5, 32.5, 37.5, 42.5, 47.5])
        np.testing.assert_array_equal(config.years_p1, [2000, 2001, 2002, 2003])
        assert config.state_shape == (2, 2, 2, 5)

    def test_invalid_years(self):
        """max_year before min_year is rejected."""
        with pytest.raises(ConfigurationError):
            ModelConfiguration("bad", 2005, 2000, np.arange(6.0))

    def test_cut_points_must_increase(self):
        """Size cut points must be strictly increasing."""
        with pytest.raises(ConfigurationError):
            ModelConfiguration("bad", 2000, 2005, [25.0, 30.0, 30.0])

    def test_duplicate_labels(self):
        """Fishery labels must be unique."""
        with pytest.raises(ConfigurationError):
            ModelConfiguration("bad", 2000, 2005, np.arange(6.0), fisheries=["A", "A"])

    def test_label_lookup(self, config):
        """Fishery and survey labels map to array positions."""
        assert config.fishery_index("TCF") == 0
        assert config.survey_index("NMFS") == 0
        with pytest.raises(ConfigurationError, match="Unknown fishery"):
            config.fishery_index("BBRKC")

    def test_index_limits(self, config):
        """Open-range limits per dimension."""
        assert config.index_limits("YEAR") == (2000, 2002)
        assert config.index_limits("YEAR_P1") == (2000, 2003)
        assert config.index_limits("SIZE") == (1, 5)
        with pytest.raises(ConfigurationError):
            config.index_limits("AGE")

    def test_dict_round_trip(self, config):
        """from_dict accepts the fields of an external reader."""
        d = {
            "name": config.name,
            "min_year": config.min_year,
            "max_year": config.max_year,
            "z_cutpts": config.z_cutpts.tolist(),
            "fisheries": config.fisheries,
        }
        rebuilt = ModelConfiguration.from_dict(d)
        assert rebuilt.n_bins == config.n_bins
        assert rebuilt.fisheries == ["TCF"]
        assert config.to_dict()["nZBs"] == 5


class TestModelOptions:
    """Tests for ModelOptions."""

    def test_timing_by_year(self):
        """Year-specific timing falls back to the default."""
        opts = ModelOptions(dt_fishery={2001: 0.3})
        assert opts.fishery_timing(2001) == 0.3
        assert opts.fishery_timing(2000) == 0.625

    def test_timing_outside_unit_interval(self):
        """Timings must be fractions of the year."""
        opts = ModelOptions(dt_mating=1.5)
        with pytest.raises(ConfigurationError):
            opts.mating_timing(2000)

    def test_capture_rate_averaging_labels(self):
        """Averaging options parse from labels."""
        opts = ModelOptions(capture_rate_averaging={"TCF": "exploitation_rate"})
        assert opts.averaging_for("TCF") == CaptureRateAveraging.EXPLOITATION_RATE
        assert opts.averaging_for("SCF") == CaptureRateAveraging.CAPTURE_RATE

    def test_growth_window(self):
        """The growth window must be positive."""
        with pytest.raises(ConfigurationError):
            ModelOptions(growth_window=0)

    def test_debug_levels(self):
        """Component overrides take precedence over the default level."""
        debug = DebugConfig(level=0, components={"growth": 2})
        assert debug.enabled("growth", 2)
        assert not debug.enabled("recruitment")


class TestConstants:
    """Tests for option parsing and unit conversions."""

    def test_fit_type_labels(self):
        """Fit types parse from labels, including legacy spellings."""
        assert get_fit_type("BY_SEX") == FitType.BY_X
        assert get_fit_type("by_sex_maturity_extended") == FitType.BY_XME
        assert get_fit_type("BY_SEX_SHELL_CONDITON") == FitType.BY_XS
        assert get_fit_type(7) == FitType.BY_XMS
        with pytest.raises(ConfigurationError):
            get_fit_type("BY_AGE")

    def test_likelihood_labels(self):
        """Likelihood types parse from labels or codes."""
        assert get_likelihood_type("lognormal") == LikelihoodType.LOGNORMAL
        assert get_likelihood_type(4) == LikelihoodType.MULTINOMIAL
        with pytest.raises(ConfigurationError):
            get_likelihood_type("GAMMA")

    def test_capture_rate_averaging(self):
        """Unknown averaging options are rejected."""
        assert get_capture_rate_averaging(3) == CaptureRateAveraging.SIZE_SPECIFIC
        with pytest.raises(ConfigurationError):
            get_capture_rate_averaging("MEAN")

    def test_conversions(self):
        """Conversion multipliers within abundance and weight units."""
        assert get_conversion_multiplier("THOUSANDS", "MILLIONS") == pytest.approx(1e-3)
        assert get_conversion_multiplier("MT", "THOUSANDS_MT") == pytest.approx(1e-3)
        assert get_conversion_multiplier("MILLIONS_LBS", "THOUSANDS_MT") == pytest.approx(1.0 / 2.20462262)
        with pytest.raises(ConfigurationError):
            get_conversion_multiplier("MILLIONS", "MT")

    def test_weight_units(self):
        """Weight units mark biomass data."""
        assert is_weight_units("MT")
        assert not is_weight_units("MILLIONS")
        with pytest.raises(ConfigurationError):
            is_weight_units("FURLONGS")

    def test_convert_to_cv(self):
        """Variances and standard deviations become CVs; zero means give 0."""
        cv = convert_to_cv([4.0, 1.0], [10.0, 0.0], ScaleType.VARIANCE)
        np.testing.assert_allclose(cv, [0.2, 0.0])
        cv = convert_to_cv([2.0], [10.0], ScaleType.STD_DEV)
        np.testing.assert_allclose(cv, [0.2])


class TestDimensions:
    """Tests for categorical dimensions."""

    def test_labels(self):
        """Sex labels and codes parse to the enum."""
        assert get_sex("female") == Sex.FEMALE
        assert get_sex("ALL_SEX") == Sex.ALL
        assert get_sex(0) == Sex.MALE
        with pytest.raises(ConfigurationError):
            get_sex("HERMAPHRODITE")

    def test_collapse_factors(self):
        """ALL selectors sum over an axis; other levels select it."""
        arr = np.arange(2 * 2 * 2 * 3, dtype=float).reshape(2, 2, 2, 3)
        np.testing.assert_allclose(collapse_factors(arr), arr.sum(axis=(0, 1, 2)))
        np.testing.assert_allclose(
            collapse_factors(arr, Sex.FEMALE, Maturity.MATURE, ShellCondition.OLD_SHELL),
            arr[1, 1, 1],
        )
        np.testing.assert_allclose(
            collapse_factors(arr, sex=Sex.MALE), arr[0].sum(axis=(0, 1))
        )
