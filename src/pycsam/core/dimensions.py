"""
Categorical model dimensions: sex, maturity state and shell condition.

Enum values double as array positions on the corresponding axis of the
population arrays, which are laid out as ``[..., sex, maturity, shell, size]``.
The ``ALL`` members never index an array; they select the aggregate over
that axis.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Union

import numpy as np

from pycsam.core.exceptions import ConfigurationError


class Sex(IntEnum):
    MALE = 0
    FEMALE = 1
    ALL = 2


class Maturity(IntEnum):
    IMMATURE = 0
    MATURE = 1
    ALL = 2


class ShellCondition(IntEnum):
    NEW_SHELL = 0
    OLD_SHELL = 1
    ALL = 2


N_SEXES = 2
N_MATURITY_STATES = 2
N_SHELL_CONDITIONS = 2

SEX_LABELS = {Sex.MALE: "MALE", Sex.FEMALE: "FEMALE", Sex.ALL: "ALL_SEX"}
MATURITY_LABELS = {
    Maturity.IMMATURE: "IMMATURE",
    Maturity.MATURE: "MATURE",
    Maturity.ALL: "ALL_MATURITY",
}
SHELL_LABELS = {
    ShellCondition.NEW_SHELL: "NEW_SHELL",
    ShellCondition.OLD_SHELL: "OLD_SHELL",
    ShellCondition.ALL: "ALL_SHELL",
}


def _lookup(value, enum_cls, labels: dict, kind: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.upper()
        for member, label in labels.items():
            if key == label or key == member.name:
                return member
        raise ConfigurationError(f"Unrecognized {kind} '{value}'")
    try:
        return enum_cls(int(value))
    except ValueError:
        raise ConfigurationError(f"Unrecognized {kind} code {value}") from None


def get_sex(value: Union[str, int, Sex]) -> Sex:
    """Parse a sex label ('MALE', 'FEMALE', 'ALL_SEX') or code."""
    return _lookup(value, Sex, SEX_LABELS, "sex")


def get_maturity(value: Union[str, int, Maturity]) -> Maturity:
    """Parse a maturity label ('IMMATURE', 'MATURE', 'ALL_MATURITY') or code."""
    return _lookup(value, Maturity, MATURITY_LABELS, "maturity state")


def get_shell_condition(value: Union[str, int, ShellCondition]) -> ShellCondition:
    """Parse a shell condition label ('NEW_SHELL', 'OLD_SHELL', 'ALL_SHELL') or code."""
    return _lookup(value, ShellCondition, SHELL_LABELS, "shell condition")


def sexes_for(selector: Sex) -> tuple:
    """Model sexes covered by a sex selector."""
    if selector == Sex.ALL:
        return (Sex.MALE, Sex.FEMALE)
    return (Sex(selector),)


def maturity_states_for(selector: Maturity) -> tuple:
    """Model maturity states covered by a maturity selector."""
    if selector == Maturity.ALL:
        return (Maturity.IMMATURE, Maturity.MATURE)
    return (Maturity(selector),)


def collapse_factors(
    arr: np.ndarray,
    sex: Sex = Sex.ALL,
    maturity: Maturity = Maturity.ALL,
    shell: ShellCondition = ShellCondition.ALL,
) -> np.ndarray:
    """Reduce the trailing (sex, maturity, shell, size) axes to size.

    Each factor is either selected at one level or summed when the
    selector is ``ALL``.

    Parameters
    ----------
    arr : np.ndarray
        Array with trailing axes [sex, maturity, shell, size]
    sex, maturity, shell
        Level to select, or ALL to sum over the axis

    Returns
    -------
    np.ndarray
        Array with the three factor axes removed (size kept)
    """
    out = arr
    out = out.sum(axis=-2) if shell == ShellCondition.ALL else out[..., int(shell), :]
    out = out.sum(axis=-2) if maturity == Maturity.ALL else out[..., int(maturity), :]
    out = out.sum(axis=-2) if sex == Sex.ALL else out[..., int(sex), :]
    return out
