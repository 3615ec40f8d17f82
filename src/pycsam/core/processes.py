"""
Process definitions: parameter-combination tables.

Each biological or fishery process owns an ordered list of parameter
combinations. A combination binds references to parameters (1-based
indices into a parameter group; 0 = not supplied) to the model indices it
applies to: a year block plus, for some processes, a sex, fishery or
survey selector.

Combination attribute names match the parameter groups they reference, so
``combo.pLnR`` is the index into the ``pLnR`` group.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterator, List, Tuple

from pycsam.core.config import ModelConfiguration
from pycsam.core.dimensions import (
    Maturity, Sex, get_maturity, get_sex, maturity_states_for, sexes_for,
)
from pycsam.core.exceptions import ConfigurationError
from pycsam.core.indices import IndexBlock
from pycsam.core.params import ParameterSet
from pycsam.core.selectivity import MAX_SEL_PARAMS, get_selectivity_function

CellKey = Tuple[int, ...]


@dataclass
class ParameterCombination:
    """Base class for process parameter combinations.

    Subclasses list the parameter groups they reference in `SCALAR_GROUPS`
    and `VECTOR_GROUPS`; the attribute of the same name holds the 1-based
    reference.
    """

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = ()
    VECTOR_GROUPS: ClassVar[Tuple[str, ...]] = ()
    DEVS_GROUPS: ClassVar[Tuple[str, ...]] = ()

    def references(self) -> Iterator[Tuple[str, int, bool]]:
        """Yield (group, reference, is_vector) for every parameter reference."""
        for group in self.SCALAR_GROUPS:
            yield group, int(getattr(self, group)), False
        for group in self.VECTOR_GROUPS:
            yield group, int(getattr(self, group)), True

    def cells(self, config: ModelConfiguration) -> Iterator[CellKey]:
        """Model index tuples this combination applies to."""
        for year in self.years:
            yield (year,)


@dataclass
class RecruitmentCombination(ParameterCombination):
    """Recruitment: mean level, CV, male fraction, size distribution, devs."""

    years: IndexBlock
    pLnR: int = 0
    pLnRCV: int = 0
    pLgtRX: int = 0
    pLnRa: int = 0
    pLnRb: int = 0
    pDevsLnR: int = 0

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = ("pLnR", "pLnRCV", "pLgtRX", "pLnRa", "pLnRb")
    VECTOR_GROUPS: ClassVar[Tuple[str, ...]] = ("pDevsLnR",)
    DEVS_GROUPS: ClassVar[Tuple[str, ...]] = ("pDevsLnR",)


@dataclass
class NaturalMortalityCombination(ParameterCombination):
    """Natural mortality: log-scale base plus optional offsets."""

    years: IndexBlock
    pLnM: int = 0
    pLnDMT: int = 0
    pLnDMX: int = 0
    pLnDMM: int = 0
    pLnDMXM: int = 0
    pZScaleM: int = 0

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = (
        "pLnM", "pLnDMT", "pLnDMX", "pLnDMM", "pLnDMXM", "pZScaleM",
    )


@dataclass
class GrowthCombination(ParameterCombination):
    """Growth: mean post-molt size a*z^b and gamma scale beta.

    `maturity` selects which molt type (immature or terminal molt to
    maturity) the combination describes.
    """

    years: IndexBlock
    sex: Sex = Sex.ALL
    maturity: Maturity = Maturity.ALL
    pLnGrA: int = 0
    pLnGrB: int = 0
    pLnGrBeta: int = 0

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = ("pLnGrA", "pLnGrB", "pLnGrBeta")

    def __post_init__(self):
        self.sex = get_sex(self.sex)
        self.maturity = get_maturity(self.maturity)

    def cells(self, config: ModelConfiguration) -> Iterator[CellKey]:
        for year in self.years:
            for x in sexes_for(self.sex):
                for m in maturity_states_for(self.maturity):
                    yield (year, int(x), int(m))


@dataclass
class MaturityCombination(ParameterCombination):
    """Probability of molting to maturity, as a logit vector over size bins."""

    years: IndexBlock
    sex: Sex = Sex.ALL
    pLgtPrMat: int = 0

    VECTOR_GROUPS: ClassVar[Tuple[str, ...]] = ("pLgtPrMat",)

    def __post_init__(self):
        self.sex = get_sex(self.sex)

    def cells(self, config: ModelConfiguration) -> Iterator[CellKey]:
        for year in self.years:
            for x in sexes_for(self.sex):
                yield (year, int(x))


@dataclass
class SelectivityCombination(ParameterCombination):
    """Selectivity or retention curve.

    Attributes
    ----------
    years : IndexBlock
        Years (through max_year + 1) the curve applies to
    function : str
        Name of a registered selectivity function
    params : tuple of int
        References into pS1..pS6
    devs : tuple of int
        References into pDevsS1..pDevsS6
    fsz : float
        Fully-selected size; the curve is rescaled to 1 there when > 0
    """

    years: IndexBlock
    function: str = "const_sel"
    params: Tuple[int, ...] = (0,) * MAX_SEL_PARAMS
    devs: Tuple[int, ...] = (0,) * MAX_SEL_PARAMS
    fsz: float = 0.0

    def __post_init__(self):
        self.params = tuple(self.params) + (0,) * (MAX_SEL_PARAMS - len(self.params))
        self.devs = tuple(self.devs) + (0,) * (MAX_SEL_PARAMS - len(self.devs))
        if len(self.params) != MAX_SEL_PARAMS or len(self.devs) != MAX_SEL_PARAMS:
            raise ConfigurationError(
                f"Selectivity combinations take at most {MAX_SEL_PARAMS} parameters"
            )

    def references(self) -> Iterator[Tuple[str, int, bool]]:
        for k in range(MAX_SEL_PARAMS):
            yield f"pS{k + 1}", int(self.params[k]), False
            yield f"pDevsS{k + 1}", int(self.devs[k]), True

    def dev_refs(self) -> Iterator[Tuple[str, int]]:
        for k, ref in enumerate(self.devs):
            yield f"pDevsS{k + 1}", int(ref)


@dataclass
class FisheryCombination(ParameterCombination):
    """Fishery capture and handling mortality.

    Attributes
    ----------
    years : IndexBlock
        Years the combination applies to
    fishery : str
        Fishery label
    sex : Sex
        Sex selector
    sel, ret : int
        1-based selectivity and retention function ids (ret = 0: no retention)
    use_effort : bool
        Back-calculate fully-selected capture rates from effort instead of
        using the log-linear parameters
    """

    years: IndexBlock
    fishery: str = ""
    sex: Sex = Sex.ALL
    pHM: int = 0
    pLnC: int = 0
    pLnDCT: int = 0
    pLnDCX: int = 0
    pLnDCM: int = 0
    pLnDCXM: int = 0
    pDevsLnC: int = 0
    sel: int = 0
    ret: int = 0
    use_effort: bool = False

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = (
        "pHM", "pLnC", "pLnDCT", "pLnDCX", "pLnDCM", "pLnDCXM",
    )
    VECTOR_GROUPS: ClassVar[Tuple[str, ...]] = ("pDevsLnC",)
    DEVS_GROUPS: ClassVar[Tuple[str, ...]] = ("pDevsLnC",)

    def __post_init__(self):
        self.sex = get_sex(self.sex)

    def cells(self, config: ModelConfiguration) -> Iterator[CellKey]:
        f = config.fishery_index(self.fishery)
        for year in self.years:
            for x in sexes_for(self.sex):
                yield (f, year, int(x))


@dataclass
class SurveyCombination(ParameterCombination):
    """Survey catchability."""

    years: IndexBlock
    survey: str = ""
    sex: Sex = Sex.ALL
    pLnQ: int = 0
    pLnDQT: int = 0
    pLnDQX: int = 0
    pLnDQM: int = 0
    pLnDQXM: int = 0
    sel: int = 0

    SCALAR_GROUPS: ClassVar[Tuple[str, ...]] = ("pLnQ", "pLnDQT", "pLnDQX", "pLnDQM", "pLnDQXM")

    def __post_init__(self):
        self.sex = get_sex(self.sex)

    def cells(self, config: ModelConfiguration) -> Iterator[CellKey]:
        v = config.survey_index(self.survey)
        for year in self.years:
            for x in sexes_for(self.sex):
                yield (v, year, int(x))


@dataclass
class ProcessInfo:
    """Ordered parameter combinations for one process."""

    name: ClassVar[str] = "process"
    combinations: List[ParameterCombination] = field(default_factory=list)

    def add(self, combination: ParameterCombination) -> int:
        """Append a combination; returns its 1-based id."""
        self.combinations.append(combination)
        return len(self.combinations)

    def __len__(self) -> int:
        return len(self.combinations)

    def __iter__(self):
        return iter(self.combinations)


@dataclass
class RecruitmentInfo(ProcessInfo):
    name: ClassVar[str] = "recruitment"


@dataclass
class NaturalMortalityInfo(ProcessInfo):
    """Natural mortality combinations.

    `z_ref` is the reference size for the optional size scaling
    ``M(z) *= (z_ref / z) ** pZScaleM``.
    """

    name: ClassVar[str] = "natural mortality"
    z_ref: float = 100.0


@dataclass
class GrowthInfo(ProcessInfo):
    name: ClassVar[str] = "growth"


@dataclass
class MaturityInfo(ProcessInfo):
    name: ClassVar[str] = "maturity"


@dataclass
class SelectivityInfo(ProcessInfo):
    name: ClassVar[str] = "selectivity"


@dataclass
class FisheriesInfo(ProcessInfo):
    name: ClassVar[str] = "fisheries"


@dataclass
class SurveysInfo(ProcessInfo):
    name: ClassVar[str] = "surveys"


@dataclass
class ModelProcesses:
    """All process definitions of a model."""

    recruitment: RecruitmentInfo = field(default_factory=RecruitmentInfo)
    natural_mortality: NaturalMortalityInfo = field(default_factory=NaturalMortalityInfo)
    growth: GrowthInfo = field(default_factory=GrowthInfo)
    maturity: MaturityInfo = field(default_factory=MaturityInfo)
    selectivity: SelectivityInfo = field(default_factory=SelectivityInfo)
    fisheries: FisheriesInfo = field(default_factory=FisheriesInfo)
    surveys: SurveysInfo = field(default_factory=SurveysInfo)

    def all(self) -> List[ProcessInfo]:
        return [
            self.recruitment, self.natural_mortality, self.growth, self.maturity,
            self.selectivity, self.fisheries, self.surveys,
        ]

    def validate(self, parameters: ParameterSet, config: ModelConfiguration):
        """Check every reference against the parameter set and configuration.

        Raises
        ------
        ConfigurationError
            On references to undefined parameters, unknown selectivity
            functions or function ids, missing selectivity shape parameters,
            unknown fishery/survey labels, or a deviation vector whose block
            misses a year of its combination
        """
        for info in self.all():
            for pc, combo in enumerate(info.combinations, start=1):
                where = f"{info.name} combination {pc}"
                for group, ref, is_vector in combo.references():
                    if ref == 0:
                        continue
                    store = parameters.vectors if is_vector else parameters.scalars
                    n = len(store.get(group, []))
                    if ref < 0 or ref > n:
                        raise ConfigurationError(
                            f"{where}: reference {group}[{ref}] is undefined ({n} defined)"
                        )
                self._check_dev_blocks(combo, parameters, config, where)
                list(combo.cells(config))  # validates fishery/survey labels

        n_sel = len(self.selectivity)
        for pc, combo in enumerate(self.selectivity.combinations, start=1):
            fn = get_selectivity_function(combo.function)
            missing = [k + 1 for k in range(fn.n_params) if combo.params[k] == 0]
            if missing:
                raise ConfigurationError(
                    f"selectivity combination {pc}: function '{combo.function}' needs "
                    f"{fn.n_params} parameters but pS{missing[0]} is not supplied"
                )
        for kind, info in (("fisheries", self.fisheries), ("surveys", self.surveys)):
            for pc, combo in enumerate(info.combinations, start=1):
                ids = [("sel", combo.sel)]
                if kind == "fisheries":
                    ids.append(("ret", combo.ret))
                for attr, fid in ids:
                    required = attr == "sel"
                    if (required and fid < 1) or fid < 0 or fid > n_sel:
                        raise ConfigurationError(
                            f"{kind} combination {pc}: {attr} function id {fid} "
                            f"is not a defined selectivity function (1..{n_sel})"
                        )

    @staticmethod
    def _check_dev_blocks(combo, parameters: ParameterSet, config: ModelConfiguration, where: str):
        if isinstance(combo, SelectivityCombination):
            dev_refs = list(combo.dev_refs())
            max_year = config.max_year + 1
        else:
            dev_refs = [(g, int(getattr(combo, g))) for g in combo.DEVS_GROUPS]
            max_year = config.max_year
        for group, ref in dev_refs:
            if ref == 0:
                continue
            block = parameters.vectors[group][ref - 1].block
            for year in combo.years:
                if config.min_year <= year <= max_year and year not in block:
                    raise ConfigurationError(
                        f"{where}: deviation vector {group}[{ref}] ({block}) "
                        f"does not cover year {year}"
                    )

