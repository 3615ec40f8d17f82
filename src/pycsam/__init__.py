"""
pycsam - Python crab stock assessment model

A size-structured population dynamics model for crab stocks, fit to
fishery and survey data by penalized maximum likelihood.
"""

__version__ = "0.1.0"
__author__ = "pycsam Development Team"

# Core imports
from pycsam.core.config import DebugConfig, ModelConfiguration, ModelOptions
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.model import CsamModel, ModelState
from pycsam.core.optimization import FitResult, ModelFitter
from pycsam.core.params import ParameterInfo, ParameterSet, VectorParameterInfo
from pycsam.core.processes import ModelProcesses

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Configuration
    "DebugConfig",
    "ModelConfiguration",
    "ModelOptions",
    "ConfigurationError",
    # Parameters
    "ParameterInfo",
    "VectorParameterInfo",
    "ParameterSet",
    "ModelProcesses",
    # Model
    "CsamModel",
    "ModelState",
    "ModelFitter",
    "FitResult",
]
