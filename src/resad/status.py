"""
Per-cell hydrocarbon phase status of black-oil models with dissolved gas
or vaporized oil, and the substitution of the `x` primary variable.
"""

import typing

import numpy as np

from resad._precision import get_switching_epsilon
from resad.ad.forward import value_of
from resad.ad.functions import where
from resad.errors import ValidationError
from resad.types import PhaseStatus

__all__ = [
    "PhaseStatus",
    "compute_cell_status",
    "status_masks",
    "status_variable",
    "hydrocarbons_from_status",
]


def compute_cell_status(
    so: np.ndarray,
    sw: np.ndarray,
    sg: np.ndarray,
    disgas: bool,
    vapoil: bool,
    status: typing.Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Classify every cell as undersaturated oil, undersaturated gas or saturated.

    Gas is absent when gas can dissolve and the gas saturation is not
    positive. Oil is absent when oil can vaporize and the oil saturation is
    not positive. Cells filled with water count as having both phases.

    :param status: Stored status array. When given it is returned as is.
    :return: Array of `PhaseStatus` values.
    """
    if status is not None:
        status = np.asarray(status, dtype=np.int64)
        if not np.isin(status, [int(member) for member in PhaseStatus]).all():
            raise ValidationError("Stored phase status contains unknown values")
        return status

    so, sw, sg = (np.asarray(value_of(s), dtype=np.float64) for s in (so, sw, sg))
    water_only = sw > 1.0 - get_switching_epsilon()
    oil_present = (so > 0.0) | water_only if vapoil else np.ones(sw.shape, dtype=bool)
    gas_present = (sg > 0.0) | water_only if disgas else np.ones(sw.shape, dtype=bool)

    status = np.full(sw.shape, int(PhaseStatus.SATURATED), dtype=np.int64)
    status[~gas_present] = int(PhaseStatus.UNDERSATURATED_OIL)
    status[~oil_present] = int(PhaseStatus.UNDERSATURATED_GAS)
    return status


def status_masks(
    status: np.ndarray,
) -> typing.Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Boolean masks of undersaturated-oil, undersaturated-gas and saturated cells."""
    status = np.asarray(status)
    return (
        status == PhaseStatus.UNDERSATURATED_OIL,
        status == PhaseStatus.UNDERSATURATED_GAS,
        status == PhaseStatus.SATURATED,
    )


def status_variable(
    masks: typing.Tuple[np.ndarray, np.ndarray, np.ndarray],
    rs: np.ndarray,
    rv: np.ndarray,
    sg: np.ndarray,
) -> np.ndarray:
    """The `x` primary variable: `rs`, `rv` or `sg` depending on the cell status."""
    undersaturated_oil, undersaturated_gas, saturated = masks
    return np.where(
        undersaturated_oil, rs, np.where(undersaturated_gas, rv, np.where(saturated, sg, 0.0))
    )


def hydrocarbons_from_status(
    fluid,
    masks: typing.Tuple[np.ndarray, np.ndarray, np.ndarray],
    hydrocarbon_saturation: typing.Any,
    x: typing.Any,
    rs: typing.Any,
    rv: typing.Any,
    pressure: typing.Any,
    disgas: bool,
    vapoil: bool,
) -> typing.Tuple[typing.Any, typing.Any, typing.Any, typing.Any, typing.Any]:
    """
    Recover gas saturation and dissolution ratios from the `x` variable.

    :param fluid: The fluid, for `rs_sat` and `rv_sat`.
    :param masks: Status masks from `status_masks`.
    :param hydrocarbon_saturation: `1 - sw`, the saturation shared by oil and gas.
    :param x: The status variable (or the gas saturation for models without
        dissolution).
    :param rs: Current dissolved gas ratio, used as is without dissolution.
    :param rv: Current vaporized oil ratio, used as is without vaporization.
    :param pressure: Pressure for the saturated ratios.
    :return: `(sg, rs, rv, rs_sat, rv_sat)`.
    """
    undersaturated_oil, undersaturated_gas, saturated = masks
    if disgas:
        rs_sat = fluid.rs_sat(pressure)
        rs = where(undersaturated_oil, x, rs_sat)
    else:
        rs_sat = rs
    if vapoil:
        rv_sat = fluid.rv_sat(pressure)
        rv = where(undersaturated_gas, x, rv_sat)
    else:
        rv_sat = rv

    if disgas or vapoil:
        sg = where(
            undersaturated_gas,
            hydrocarbon_saturation,
            where(saturated, x, 0.0),
        )
    else:
        sg = x
    return sg, rs, rv, rs_sat, rv_sat
