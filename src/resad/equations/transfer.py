"""Fracture-matrix transfer models of dual-porosity reservoirs."""

import typing

import attrs
import numpy as np
from typing_extensions import Protocol

from resad.ad.forward import value_of
from resad.ad.functions import where
from resad.types import FluidPhase
from resad.wells.model import surface_volume_fluxes

__all__ = [
    "ContinuumFields",
    "TransferModel",
    "KazemiTransferModel",
    "ConstantTransferModel",
    "kazemi_shape_factor",
]


@attrs.frozen
class ContinuumFields:
    """Cell fields of one continuum handed to a transfer model."""

    pressure: typing.Any
    sw: typing.Any
    so: typing.Any
    sg: typing.Any
    rs: typing.Any = None
    rv: typing.Any = None
    mobilities: typing.Mapping[FluidPhase, typing.Any] = attrs.field(factory=dict)
    b_factors: typing.Mapping[FluidPhase, typing.Any] = attrs.field(factory=dict)
    phase_pressures: typing.Mapping[FluidPhase, typing.Any] = attrs.field(factory=dict)


class TransferModel(Protocol):
    """
    Fracture-matrix exchange.

    `calculate_transfer` returns the surface volume rate of water, oil and
    gas per unit bulk volume, positive from fracture into matrix.
    """

    def calculate_transfer(
        self, model, fracture: ContinuumFields, matrix: ContinuumFields
    ) -> typing.Tuple[typing.Any, typing.Any, typing.Any]: ...


def kazemi_shape_factor(lx: float, ly: float, lz: float) -> float:
    """Kazemi shape factor `4 * (1/lx^2 + 1/ly^2 + 1/lz^2)` of matrix blocks of size `lx x ly x lz`."""
    if min(lx, ly, lz) <= 0.0:
        raise ValueError("Matrix block dimensions must be positive")
    return 4.0 * (1.0 / lx**2 + 1.0 / ly**2 + 1.0 / lz**2)


@attrs.frozen
class KazemiTransferModel:
    """
    Kazemi transfer: `sigma * k_m * lambda_up * (p_f - p_m)` per phase.

    The mobility and b-factor of the continuum with the higher phase pressure
    are used (upstream weighting between fracture and matrix).
    """

    shape_factor: float = attrs.field(validator=attrs.validators.gt(0.0))
    """Shape factor `sigma` (1/length^2)."""
    matrix_permeability: typing.Any = attrs.field(
        converter=lambda k: np.asarray(k, dtype=np.float64)
    )
    """Matrix permeability, a scalar or one value per cell."""

    def calculate_transfer(
        self, model, fracture: ContinuumFields, matrix: ContinuumFields
    ) -> typing.Tuple[typing.Any, typing.Any, typing.Any]:
        capabilities = model.capabilities
        factor = self.shape_factor * self.matrix_permeability
        reservoir_rates, b_factors = {}, {}
        fracture_upstream = {}
        for phase in capabilities.active_phases:
            fracture_pressure = fracture.phase_pressures.get(phase, fracture.pressure)
            matrix_pressure = matrix.phase_pressures.get(phase, matrix.pressure)
            dp = fracture_pressure - matrix_pressure
            upstream = np.asarray(value_of(dp)) > 0.0
            fracture_upstream[phase] = upstream
            mobility = where(
                upstream, fracture.mobilities[phase], matrix.mobilities[phase]
            )
            reservoir_rates[phase] = factor * mobility * dp
            b_factors[phase] = where(
                upstream, fracture.b_factors[phase], matrix.b_factors[phase]
            )

        rs = rv = None
        if capabilities.disgas:
            rs = where(fracture_upstream[FluidPhase.OIL], fracture.rs, matrix.rs)
        if capabilities.vapoil:
            rv = where(fracture_upstream[FluidPhase.GAS], fracture.rv, matrix.rv)
        surface = surface_volume_fluxes(
            reservoir_rates,
            b_factors,
            rs,
            rv,
            capabilities.disgas,
            capabilities.vapoil,
        )
        return (
            surface.get(FluidPhase.WATER, 0.0),
            surface.get(FluidPhase.OIL, 0.0),
            surface.get(FluidPhase.GAS, 0.0),
        )


@attrs.frozen
class ConstantTransferModel:
    """Fixed transfer rates per unit bulk volume, independent of the fields."""

    water_rate: float = 0.0
    oil_rate: float = 0.0
    gas_rate: float = 0.0

    def calculate_transfer(
        self, model, fracture: ContinuumFields, matrix: ContinuumFields
    ) -> typing.Tuple[np.ndarray, np.ndarray, np.ndarray]:
        num_cells = model.grid.num_cells
        return (
            np.full(num_cells, float(self.water_rate)),
            np.full(num_cells, float(self.oil_rate)),
            np.full(num_cells, float(self.gas_rate)),
        )
