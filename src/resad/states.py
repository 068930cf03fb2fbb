"""Reservoir and well states with value semantics."""

import logging
import typing

import attrs
import numpy as np
from typing_extensions import Self

from resad.errors import ValidationError
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "WellSolution",
    "ReservoirState",
    "initialize_state",
    "initialize_well_solutions",
    "validate_state",
]


def _float_array(value: typing.Any) -> np.ndarray:
    return np.array(value, dtype=np.float64, copy=True)


def _optional_float_array(value: typing.Any) -> typing.Optional[np.ndarray]:
    return None if value is None else _float_array(value)


def _optional_int_array(value: typing.Any) -> typing.Optional[np.ndarray]:
    return None if value is None else np.array(value, dtype=np.int64, copy=True)


@attrs.frozen
class WellSolution:
    """Current solution of one well."""

    name: str
    bhp: float = attrs.field(converter=float)
    """Bottom-hole pressure."""
    water_rate: float = attrs.field(default=0.0, converter=float)
    """Water surface rate (`qWs`), positive for injection."""
    oil_rate: float = attrs.field(default=0.0, converter=float)
    """Oil surface rate (`qOs`)."""
    gas_rate: float = attrs.field(default=0.0, converter=float)
    """Gas surface rate (`qGs`)."""
    flux: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    """(perforations x 3) reservoir condition phase fluxes into the reservoir."""
    control: str = "bhp"
    """Type of the control active when the solution was computed."""

    def surface_rate(self, phase: FluidPhase) -> float:
        return getattr(self, _RATE_FIELDS[phase])

    @property
    def total_surface_rate(self) -> float:
        return self.water_rate + self.oil_rate + self.gas_rate

    def evolve(self, **changes: typing.Any) -> Self:
        return attrs.evolve(self, **changes)


_RATE_FIELDS = {
    FluidPhase.WATER: "water_rate",
    FluidPhase.OIL: "oil_rate",
    FluidPhase.GAS: "gas_rate",
}


@attrs.frozen
class ReservoirState:
    """
    Per-cell reservoir unknowns and the well solutions.

    Instances are never modified; every update builds a new state from fresh
    arrays, so a previous state can be kept alongside the current one.
    """

    pressure: np.ndarray = attrs.field(converter=_float_array, eq=False)
    """Oil phase pressure of each cell."""
    saturations: np.ndarray = attrs.field(converter=_float_array, eq=False)
    """(cells x 3) saturations of water, oil and gas. Inactive phases hold zeros."""
    rs: np.ndarray = attrs.field(converter=_float_array, eq=False)
    """Dissolved gas-oil ratio."""
    rv: np.ndarray = attrs.field(converter=_float_array, eq=False)
    """Vaporized oil-gas ratio."""
    status: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_int_array, eq=False
    )
    """Stored `PhaseStatus` per cell, overriding the saturation based classification."""
    well_solutions: typing.Tuple[WellSolution, ...] = attrs.field(
        default=(), converter=tuple
    )
    """Solution of every well, in the order of the wells."""
    flux: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    """(interior faces x 3) reservoir condition phase fluxes of the last assembly."""
    matrix_pressure: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    """Matrix continuum pressure (`pom`) of dual-porosity models."""
    matrix_saturations: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    """Matrix continuum saturations (`swm`, `som`, `sgm`)."""
    matrix_rs: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    matrix_rv: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    dp_rel: typing.Optional[np.ndarray] = attrs.field(
        default=None, converter=_optional_float_array, eq=False
    )
    """Pressure change of the last update relative to the pressure range."""

    def __attrs_post_init__(self) -> None:
        num_cells = self.pressure.size
        if self.saturations.shape != (num_cells, 3):
            raise ValidationError(
                f"Saturations must have shape ({num_cells}, 3), got {self.saturations.shape}"
            )
        if self.rs.shape != (num_cells,) or self.rv.shape != (num_cells,):
            raise ValidationError("Dissolution ratios must have one value per cell")

    @property
    def num_cells(self) -> int:
        return self.pressure.size

    @property
    def sw(self) -> np.ndarray:
        return self.saturations[:, 0]

    @property
    def so(self) -> np.ndarray:
        return self.saturations[:, 1]

    @property
    def sg(self) -> np.ndarray:
        return self.saturations[:, 2]

    @property
    def swm(self) -> typing.Optional[np.ndarray]:
        return None if self.matrix_saturations is None else self.matrix_saturations[:, 0]

    @property
    def sgm(self) -> typing.Optional[np.ndarray]:
        return None if self.matrix_saturations is None else self.matrix_saturations[:, 2]

    @property
    def has_matrix(self) -> bool:
        return self.matrix_pressure is not None

    def evolve(self, **changes: typing.Any) -> Self:
        """Return a copy of the state with the given fields replaced."""
        return attrs.evolve(self, **changes)

    def well_solution(self, name: str) -> WellSolution:
        for solution in self.well_solutions:
            if solution.name == name:
                return solution
        raise KeyError(f"No well solution named {name!r}")


def initialize_well_solutions(
    wells: typing.Sequence[typing.Any], pressure: np.ndarray
) -> typing.Tuple[WellSolution, ...]:
    """
    Initial well solutions: zero rates, and the bhp at the target for bhp
    controlled wells or at the pressure of the first perforated cell otherwise.
    """
    pressure = np.asarray(pressure, dtype=np.float64)
    solutions = []
    for well in wells:
        if well.control.is_rate_control:
            bhp = pressure[well.cells[0]]
        else:
            bhp = well.control.target
        solutions.append(
            WellSolution(name=well.name, bhp=bhp, control=well.control.type.value)
        )
    return tuple(solutions)


def _broadcast(value: typing.Any, num_cells: int, name: str) -> np.ndarray:
    array = np.asarray(value, dtype=np.float64)
    if array.ndim == 0:
        return np.full(num_cells, float(array))
    if array.shape != (num_cells,):
        raise ValidationError(f"Expected {num_cells} values for {name}, got {array.shape}")
    return array.astype(np.float64, copy=True)


def initialize_state(
    model,
    pressure: typing.Any,
    sw: typing.Any = 0.0,
    sg: typing.Any = 0.0,
    rs: typing.Any = 0.0,
    rv: typing.Any = 0.0,
    wells: typing.Sequence[typing.Any] = (),
    matrix_pressure: typing.Any = None,
    matrix_sw: typing.Any = 0.0,
    matrix_sg: typing.Any = 0.0,
    matrix_rs: typing.Any = 0.0,
    matrix_rv: typing.Any = 0.0,
) -> ReservoirState:
    """
    Build an initial state for a model. Scalars are broadcast to all cells.

    Saturations of inactive phases are zeroed and the oil saturation (or the
    single active phase) takes the remainder.
    """
    num_cells = model.grid.num_cells
    capabilities = model.capabilities
    pressure = _broadcast(pressure, num_cells, "pressure")

    def saturation_table(water: typing.Any, gas: typing.Any) -> np.ndarray:
        water = _broadcast(water, num_cells, "water saturation")
        gas = _broadcast(gas, num_cells, "gas saturation")
        if not capabilities.water:
            water = np.zeros(num_cells)
        if not capabilities.gas:
            gas = np.zeros(num_cells)
        oil = np.zeros(num_cells)
        if capabilities.oil:
            oil = 1.0 - water - gas
        elif capabilities.water and capabilities.gas:
            gas = 1.0 - water
        elif capabilities.water:
            water = np.ones(num_cells)
        else:
            gas = np.ones(num_cells)
        table = np.column_stack([water, oil, gas])
        if np.any(table < 0.0):
            raise ValidationError("Initial saturations must be non-negative")
        return table

    matrix = {}
    if capabilities.dual_porosity:
        if matrix_pressure is None:
            matrix_pressure = pressure
        matrix = dict(
            matrix_pressure=_broadcast(matrix_pressure, num_cells, "matrix pressure"),
            matrix_saturations=saturation_table(matrix_sw, matrix_sg),
            matrix_rs=_broadcast(matrix_rs if capabilities.disgas else 0.0, num_cells, "matrix rs"),
            matrix_rv=_broadcast(matrix_rv if capabilities.vapoil else 0.0, num_cells, "matrix rv"),
        )

    state = ReservoirState(
        pressure=pressure,
        saturations=saturation_table(sw, sg),
        rs=_broadcast(rs if capabilities.disgas else 0.0, num_cells, "rs"),
        rv=_broadcast(rv if capabilities.vapoil else 0.0, num_cells, "rv"),
        well_solutions=initialize_well_solutions(wells, pressure),
        **matrix,
    )
    validate_state(model, state)
    return state


def validate_state(model, state: ReservoirState, tolerance: float = 1e-8) -> None:
    """
    Check that a state fits a model.

    :raises ValidationError: On size mismatches, negative or non-normalized
        saturations, negative ratios, or missing matrix fields.
    """
    num_cells = model.grid.num_cells
    if state.num_cells != num_cells:
        raise ValidationError(
            f"State has {state.num_cells} cells, model has {num_cells}"
        )
    saturation_sets = [("fracture", state.saturations)]
    if model.capabilities.dual_porosity:
        if not state.has_matrix or state.matrix_saturations is None:
            raise ValidationError("Dual-porosity states need matrix pressure and saturations")
        saturation_sets.append(("matrix", state.matrix_saturations))
    for label, saturations in saturation_sets:
        if np.any(saturations < 0.0):
            raise ValidationError(f"Negative {label} saturations")
        if np.any(np.abs(saturations.sum(axis=1) - 1.0) > tolerance):
            raise ValidationError(f"{label.capitalize()} saturations do not sum to one")
    if np.any(state.rs < 0.0) or np.any(state.rv < 0.0):
        raise ValidationError("Dissolution ratios must be non-negative")
