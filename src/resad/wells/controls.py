"""Well control descriptors and the control equations they impose."""

import enum
import logging
import typing

import attrs
import numpy as np

from resad.ad.functions import where
from resad.errors import ConfigurationError, UnsupportedControlError
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "WellControlType",
    "WellControl",
    "bhp_control",
    "rate_control",
    "build_control_equations",
]


class WellControlType(str, enum.Enum):
    """Quantity a well is controlled on."""

    BHP = "bhp"
    """Bottom-hole pressure."""
    RATE = "rate"
    """Total surface rate."""
    ORAT = "orat"
    """Oil surface rate."""
    WRAT = "wrat"
    """Water surface rate."""
    GRAT = "grat"
    """Gas surface rate."""
    LRAT = "lrat"
    """Liquid (water + oil) surface rate."""
    VRAT = "vrat"
    """Total rate, volumetric target."""

    @classmethod
    def parse(cls, value: typing.Union[str, "WellControlType"]) -> "WellControlType":
        """
        Convert a control type name to a `WellControlType`.

        :raises UnsupportedControlError: If the name is not a known control type.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise UnsupportedControlError(
                f"Unknown well control type {value!r}. Valid types are: {valid}."
            ) from None


_PHASE_RATE_CONTROLS = {
    WellControlType.ORAT: FluidPhase.OIL,
    WellControlType.WRAT: FluidPhase.WATER,
    WellControlType.GRAT: FluidPhase.GAS,
}


@attrs.frozen
class WellControl:
    """
    The active control of a well: a control type and its target.

    Rate targets are surface rates, positive for injection and negative for
    production.
    """

    type: WellControlType = attrs.field(converter=WellControlType.parse)
    """Controlled quantity."""
    target: float = attrs.field(converter=float)
    """Target value of the controlled quantity."""

    @property
    def is_rate_control(self) -> bool:
        return self.type is not WellControlType.BHP


def bhp_control(bottom_hole_pressure: float) -> WellControl:
    """Control a well on bottom-hole pressure."""
    return WellControl(type=WellControlType.BHP, target=bottom_hole_pressure)


def rate_control(
    rate: float, control_type: typing.Union[str, WellControlType] = WellControlType.RATE
) -> WellControl:
    """Control a well on a surface rate (`rate`, `orat`, `wrat`, `grat`, `lrat` or `vrat`)."""
    control = WellControl(type=control_type, target=rate)
    if not control.is_rate_control:
        raise ConfigurationError("Use `bhp_control` for bottom-hole pressure control")
    return control


def build_control_equations(
    controls: typing.Sequence[WellControl],
    bhp: typing.Any,
    surface_rates: typing.Mapping[FluidPhase, typing.Any],
    mixture_fractions: np.ndarray,
    active_phases: typing.Sequence[FluidPhase],
) -> typing.Any:
    """
    One residual per well enforcing its active control.

    | type           | residual                |
    |----------------|-------------------------|
    | bhp            | `bhp - target`          |
    | rate, vrat     | `sum(q) - target`       |
    | orat/wrat/grat | `q_phase - target`      |
    | lrat           | `q_w + q_o - target`    |

    A phase rate control whose phase has a zero fraction in the well
    mixture, an `lrat` control without water and oil in the mixture, and any
    rate control with a zero target all fall back to the zero total rate
    residual `sum(q)`.

    :param controls: Active control of every well.
    :param bhp: Bottom-hole pressures.
    :param surface_rates: Surface rate of every active phase, per well.
    :param mixture_fractions: (wells x 3) phase fractions (water, oil, gas) of
        the fluid in each well.
    :param active_phases: Phases of the model.
    :return: Control residuals, one per well.
    :raises ConfigurationError: If a control refers to an inactive phase.
    """
    active_phases = tuple(active_phases)
    types = [WellControlType.parse(control.type) for control in controls]
    targets = np.array([control.target for control in controls], dtype=np.float64)
    mixture_fractions = np.asarray(mixture_fractions, dtype=np.float64).reshape(
        len(controls), 3
    )

    total_rate = None
    for phase in active_phases:
        rate = surface_rates[phase]
        total_rate = rate if total_rate is None else total_rate + rate

    def of_type(control_type: WellControlType) -> np.ndarray:
        return np.array([t is control_type for t in types], dtype=bool)

    is_bhp = of_type(WellControlType.BHP)
    set_to_zero_rate = (targets == 0.0) & ~is_bhp

    residual = where(is_bhp, bhp - targets, total_rate - targets)

    for control_type, phase in _PHASE_RATE_CONTROLS.items():
        selected = of_type(control_type)
        if not selected.any():
            continue
        if phase not in active_phases:
            raise ConfigurationError(
                f"Control {control_type.value!r} needs the {phase.value} phase, "
                f"which is not active in the model"
            )
        residual = where(selected, surface_rates[phase] - targets, residual)
        set_to_zero_rate |= selected & (mixture_fractions[:, phase.column] == 0.0)

    selected = of_type(WellControlType.LRAT)
    if selected.any():
        if FluidPhase.WATER not in active_phases or FluidPhase.OIL not in active_phases:
            raise ConfigurationError(
                "Control 'lrat' needs both the water and the oil phase"
            )
        liquid_rate = surface_rates[FluidPhase.WATER] + surface_rates[FluidPhase.OIL]
        residual = where(selected, liquid_rate - targets, residual)
        liquid_fraction = (
            mixture_fractions[:, FluidPhase.WATER.column]
            + mixture_fractions[:, FluidPhase.OIL.column]
        )
        set_to_zero_rate |= selected & (liquid_fraction == 0.0)

    if set_to_zero_rate.any():
        logger.debug(
            f"{int(set_to_zero_rate.sum())} well(s) use the zero total rate control residual"
        )
        residual = where(set_to_zero_rate, total_rate, residual)

    return residual
