"""
Shared fixtures for pycsam tests.

`model_factory` builds a small deterministic model: three years
(2000-2002), five 5-mm size bins, one fishery (TCF) and one survey (NMFS).
Natural mortality is effectively zero, recruits all enter the first size
bin and are split evenly between the sexes, and every selectivity curve
used by default is flat.
"""

import numpy as np
import pandas as pd
import pytest

from pycsam.core.config import ModelConfiguration, ModelOptions
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
from pycsam.core.indices import IndexBlock, IndexRange
from pycsam.core.model import CsamModel
from pycsam.core.params import ParameterInfo, ParameterSet, VectorParameterInfo
from pycsam.core.processes import (
    FisheryCombination,
    GrowthCombination,
    MaturityCombination,
    ModelProcesses,
    NaturalMortalityCombination,
    RecruitmentCombination,
    SelectivityCombination,
    SurveyCombination,
)

MIN_YEAR, MAX_YEAR = 2000, 2002
Z_CUTPTS = np.arange(25.0, 55.0, 5.0)


def make_config(**kwargs) -> ModelConfiguration:
    defaults = dict(
        name="test",
        min_year=MIN_YEAR,
        max_year=MAX_YEAR,
        z_cutpts=Z_CUTPTS,
        fisheries=["TCF"],
        surveys=["NMFS"],
    )
    defaults.update(kwargs)
    return ModelConfiguration(**defaults)


def make_parameters(
    config,
    ln_c=-1000.0,
    ln_m=-1000.0,
    ln_r_phase=1,
    rec_devs=False,
):
    """Parameter set for the small model; returns (ParameterSet, refs)."""
    ps = ParameterSet()
    years = IndexBlock.full(config.min_year, config.max_year)
    refs = {}
    refs["pLnR"] = ps.add_scalar("pLnR", ParameterInfo("ln(R)", np.log(100.0), 0.0, 10.0, phase=ln_r_phase))
    refs["pLnRCV"] = ps.add_scalar("pLnRCV", ParameterInfo("ln(R cv)", np.log(0.6), -5.0, 2.0, phase=-1))
    refs["pLgtRX"] = ps.add_scalar("pLgtRX", ParameterInfo("logit(male fraction)", 0.0, -5.0, 5.0, phase=-1))
    refs["pLnRa"] = ps.add_scalar("pLnRa", ParameterInfo("ln(Ra)", -6.0, -10.0, 5.0, phase=-1))
    refs["pLnRb"] = ps.add_scalar("pLnRb", ParameterInfo("ln(Rb)", -6.0, -10.0, 5.0, phase=-1))
    refs["pLnM"] = ps.add_scalar("pLnM", ParameterInfo("ln(M)", ln_m, -1001.0, 2.0, phase=-1))
    refs["pLnGrA"] = ps.add_scalar("pLnGrA", ParameterInfo("ln(grA)", np.log(1.1), -1.0, 1.0, phase=-1))
    refs["pLnGrB"] = ps.add_scalar("pLnGrB", ParameterInfo("ln(grB)", 0.0, -1.0, 1.0, phase=-1))
    refs["pLnGrBeta"] = ps.add_scalar("pLnGrBeta", ParameterInfo("ln(grBeta)", np.log(0.75), -3.0, 3.0, phase=-1))
    refs["pS1"] = ps.add_scalar("pS1", ParameterInfo("z50", 37.5, 20.0, 60.0, phase=-1))
    refs["pS2"] = ps.add_scalar("pS2", ParameterInfo("slope", 0.5, 0.01, 5.0, phase=-1))
    refs["pHM"] = ps.add_scalar("pHM", ParameterInfo("handling mortality", 0.32, 0.0, 1.0, phase=-1))
    refs["pLnC"] = ps.add_scalar("pLnC", ParameterInfo("ln(C)", ln_c, -1001.0, 10.0, phase=-1))
    refs["pLnQ"] = ps.add_scalar("pLnQ", ParameterInfo("ln(Q)", 0.0, -5.0, 5.0, phase=-1))
    refs["pLgtPrMat"] = ps.add_vector(
        "pLgtPrMat",
        VectorParameterInfo(
            "logit(prMat)",
            IndexBlock.full(1, config.n_bins),
            values=np.linspace(-4.0, 4.0, config.n_bins),
            lower=-10.0,
            upper=10.0,
            phase=-1,
        ),
    )
    if rec_devs:
        refs["pDevsLnR"] = ps.add_vector(
            "pDevsLnR",
            VectorParameterInfo("rec devs", years, lower=-5.0, upper=5.0, phase=2, is_devs=True),
        )
    return ps, refs


def make_processes(config, refs, ret=1, use_effort=False):
    """Process tables: selectivity 1 is flat, selectivity 2 an ascending logistic."""
    years = IndexBlock.full(config.min_year, config.max_year)
    years_p1 = IndexBlock.full(config.min_year, config.max_year + 1)
    proc = ModelProcesses()
    proc.recruitment.add(RecruitmentCombination(
        years,
        pLnR=refs["pLnR"], pLnRCV=refs["pLnRCV"], pLgtRX=refs["pLgtRX"],
        pLnRa=refs["pLnRa"], pLnRb=refs["pLnRb"], pDevsLnR=refs.get("pDevsLnR", 0),
    ))
    proc.natural_mortality.add(NaturalMortalityCombination(years, pLnM=refs["pLnM"]))
    proc.growth.add(GrowthCombination(
        years, pLnGrA=refs["pLnGrA"], pLnGrB=refs["pLnGrB"], pLnGrBeta=refs["pLnGrBeta"],
    ))
    proc.maturity.add(MaturityCombination(years, pLgtPrMat=refs["pLgtPrMat"]))
    proc.selectivity.add(SelectivityCombination(years_p1, "const_sel"))
    proc.selectivity.add(SelectivityCombination(years_p1, "asclogistic", params=(refs["pS1"], refs["pS2"])))
    fishery = dict(fishery="TCF", pHM=refs["pHM"], pLnC=refs["pLnC"], sel=1, ret=ret)
    if use_effort:
        proc.fisheries.add(FisheryCombination(
            IndexBlock.from_ranges([(config.min_year, config.min_year)], config.min_year, config.max_year),
            **fishery,
        ))
        proc.fisheries.add(FisheryCombination(
            IndexBlock.from_ranges([(config.min_year + 1, -1)], config.min_year, config.max_year),
            use_effort=True, **fishery,
        ))
    else:
        proc.fisheries.add(FisheryCombination(years, **fishery))
    proc.surveys.add(SurveyCombination(years_p1, survey="NMFS", pLnQ=refs["pLnQ"], sel=1))
    return proc


def make_datasets(config, survey_value=20.0):
    """Survey abundance and size compositions plus retained catch and effort."""
    n_z = config.n_bins
    w = 1.0e-6 * config.z_mids ** 3
    bio = BioData(weight_at_size=np.broadcast_to(w, (2, 2, n_z)).copy())

    srv_rows = [
        {"year": y, "sex": sex, "value": survey_value, "cv": 0.2}
        for y in config.years_p1 for sex in ("MALE", "FEMALE")
    ]
    srv_abundance = AggregateCatchData(
        pd.DataFrame(srv_rows), likelihood="LOGNORMAL", fit_type="BY_SEX",
    )
    zfd_rows = pd.DataFrame([
        {"year": y, "sex": sex, "sample_size": 100.0}
        for y in config.years_p1 for sex in ("MALE", "FEMALE")
    ])
    srv_zfd = SizeFrequencyData(
        zfd_rows, np.full((len(zfd_rows), n_z), 20.0),
        likelihood="MULTINOMIAL", fit_type="BY_SEX",
    )
    survey = SurveyData("NMFS", CatchData(abundance=srv_abundance, size_frequencies=srv_zfd))

    ret_abundance = AggregateCatchData(
        pd.DataFrame({"year": config.years, "sex": "MALE", "value": 1.0, "cv": 0.1}),
        likelihood="NORMAL", fit_type="BY_SEX",
    )
    effort = EffortData(
        pd.DataFrame({"year": config.years, "effort": [100.0, 120.0, 80.0][:config.n_years]}),
        averaging=IndexRange(config.min_year, config.min_year),
    )
    fishery = FisheryData("TCF", retained=CatchData(abundance=ret_abundance), effort=effort)
    return ModelDatasets(bio=bio, fisheries=[fishery], surveys=[survey])


def make_model(
    ln_c=-1000.0,
    ln_m=-1000.0,
    ret=1,
    rec_devs=False,
    use_effort=False,
    survey_value=20.0,
    options=None,
) -> CsamModel:
    config = make_config()
    params, refs = make_parameters(config, ln_c=ln_c, ln_m=ln_m, rec_devs=rec_devs)
    processes = make_processes(config, refs, ret=ret, use_effort=use_effort)
    datasets = make_datasets(config, survey_value=survey_value)
    return CsamModel(config, options or ModelOptions(), params, processes, datasets)


@pytest.fixture
def config():
    """Small model configuration."""
    return make_config()


@pytest.fixture
def model_factory():
    """Builder for small models with configurable fishing and mortality."""
    return make_model


@pytest.fixture
def small_model():
    """Small model without fishing."""
    return make_model()
