"""
Core module for pycsam.

Contains the population dynamics model, the process-rate calculators and
the objective function.
"""

from pycsam.core.config import DebugConfig, ModelConfiguration, ModelOptions
from pycsam.core.data import (
    AggregateCatchData,
    BioData,
    CatchData,
    EffortData,
    FisheryData,
    ModelDatasets,
    SizeFrequencyData,
    SurveyData,
)
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock, IndexBlockSet, IndexBlockSets, IndexRange
from pycsam.core.model import CsamModel, ModelRates, ModelState
from pycsam.core.optimization import FitResult, ModelFitter
from pycsam.core.params import (
    ActivationCondition,
    ParameterInfo,
    ParameterSet,
    ParameterValues,
    Prior,
    VectorParameterInfo,
)
from pycsam.core.processes import (
    FisheriesInfo,
    FisheryCombination,
    GrowthCombination,
    GrowthInfo,
    MaturityCombination,
    MaturityInfo,
    ModelProcesses,
    NaturalMortalityCombination,
    NaturalMortalityInfo,
    RecruitmentCombination,
    RecruitmentInfo,
    SelectivityCombination,
    SelectivityInfo,
    SurveyCombination,
    SurveysInfo,
)

__all__ = [
    # Configuration
    "DebugConfig",
    "ModelConfiguration",
    "ModelOptions",
    "ConfigurationError",
    # Indices
    "IndexRange",
    "IndexBlock",
    "IndexBlockSet",
    "IndexBlockSets",
    # Parameters
    "ActivationCondition",
    "ParameterInfo",
    "VectorParameterInfo",
    "Prior",
    "ParameterSet",
    "ParameterValues",
    # Processes
    "RecruitmentCombination",
    "RecruitmentInfo",
    "NaturalMortalityCombination",
    "NaturalMortalityInfo",
    "GrowthCombination",
    "GrowthInfo",
    "MaturityCombination",
    "MaturityInfo",
    "SelectivityCombination",
    "SelectivityInfo",
    "FisheryCombination",
    "FisheriesInfo",
    "SurveyCombination",
    "SurveysInfo",
    "ModelProcesses",
    # Data
    "AggregateCatchData",
    "SizeFrequencyData",
    "CatchData",
    "EffortData",
    "FisheryData",
    "SurveyData",
    "BioData",
    "ModelDatasets",
    # Model
    "CsamModel",
    "ModelRates",
    "ModelState",
    "ModelFitter",
    "FitResult",
]
