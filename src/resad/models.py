"""Rock description, model capabilities and the reservoir model composition."""

import logging
import typing

import attrs
import numpy as np

from resad.ad.operators import DiscreteOperators, build_operators
from resad.constants import c
from resad.errors import ConfigurationError, ValidationError
from resad.fluids import BlackOilFluid
from resad.grids import Grid
from resad.types import EquationSet, FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "RockPermeability",
    "RockProperties",
    "ModelCapabilities",
    "ReservoirModel",
    "build_reservoir_model",
]


def _as_float_array(value: typing.Any) -> np.ndarray:
    return np.atleast_1d(np.asarray(value, dtype=np.float64))


@attrs.frozen
class RockPermeability:
    """
    Rock permeability per cell along the grid axes.

    If only the x-direction permeability is provided, the rock is isotropic.
    """

    x: np.ndarray = attrs.field(converter=_as_float_array)
    """Permeability along x."""
    y: np.ndarray = attrs.field(factory=lambda: np.empty(0), converter=_as_float_array)
    """Permeability along y."""
    z: np.ndarray = attrs.field(factory=lambda: np.empty(0), converter=_as_float_array)
    """Permeability along z."""

    def __attrs_post_init__(self) -> None:
        if self.y.size == 0:
            object.__setattr__(self, "y", self.x)
        if self.z.size == 0:
            object.__setattr__(self, "z", self.x)
        if not (self.x.shape == self.y.shape == self.z.shape):
            raise ValidationError("Permeability components must have the same shape")
        if np.any(self.x < 0.0) or np.any(self.y < 0.0) or np.any(self.z < 0.0):
            raise ValidationError("Permeability must be non-negative")

    def as_array(self) -> np.ndarray:
        """(cells x 3) permeability table."""
        return np.column_stack([self.x, self.y, self.z])


@attrs.frozen
class RockProperties:
    """Rock properties of a reservoir model. Constant over time."""

    porosity: np.ndarray = attrs.field(converter=_as_float_array)
    """Porosity of each cell (fraction)."""
    permeability: RockPermeability
    """Absolute permeability of each cell."""
    transmissibility_multipliers: typing.Optional[np.ndarray] = None
    """Per grid face transmissibility multipliers (faults, barriers)."""

    def __attrs_post_init__(self) -> None:
        if np.any(self.porosity < 0.0) or np.any(self.porosity > 1.0):
            raise ValidationError("Porosity must lie in [0, 1]")


@attrs.frozen
class ModelCapabilities:
    """Which phases and physical effects a black-oil model carries."""

    water: bool = True
    oil: bool = True
    gas: bool = True
    disgas: bool = False
    """Gas dissolves in the oil phase (`rs`)."""
    vapoil: bool = False
    """Oil vaporizes into the gas phase (`rv`)."""
    dual_porosity: bool = False
    """Cells carry a matrix continuum exchanging fluid with the fracture continuum."""

    def __attrs_post_init__(self) -> None:
        if not (self.water or self.oil or self.gas):
            raise ConfigurationError("At least one phase must be active")
        if (self.disgas or self.vapoil) and not (self.oil and self.gas):
            raise ConfigurationError(
                "Dissolved gas and vaporized oil need both the oil and the gas phase"
            )

    @property
    def active_phases(self) -> typing.Tuple[FluidPhase, ...]:
        return tuple(
            phase
            for phase, active in (
                (FluidPhase.WATER, self.water),
                (FluidPhase.OIL, self.oil),
                (FluidPhase.GAS, self.gas),
            )
            if active
        )

    @property
    def num_phases(self) -> int:
        return len(self.active_phases)

    @property
    def uses_phase_status(self) -> bool:
        return self.disgas or self.vapoil


@attrs.frozen
class ReservoirModel:
    """
    Everything the assemblers and the updater need to know about a reservoir:
    grid, rock, fluid, operators, which equations to assemble and how wells
    and the dual-porosity transfer are computed.
    """

    grid: Grid
    rock: RockProperties
    fluid: BlackOilFluid
    operators: DiscreteOperators
    capabilities: ModelCapabilities = attrs.field(factory=ModelCapabilities)
    equation_set: EquationSet = EquationSet.FULLY_IMPLICIT
    gravity: float = attrs.field(default=0.0, validator=attrs.validators.ge(0.0))
    """Magnitude of gravitational acceleration along depth."""
    well_model: typing.Any = None
    """Well model. Defaults to `StandardWellModel`."""
    matrix_fluid: typing.Optional[BlackOilFluid] = None
    """Fluid of the matrix continuum. Defaults to the fracture fluid."""
    transfer_model: typing.Any = None
    """Fracture-matrix transfer model of dual-porosity models."""

    def __attrs_post_init__(self) -> None:
        if self.well_model is None:
            from resad.wells.model import StandardWellModel

            object.__setattr__(self, "well_model", StandardWellModel())
        if self.capabilities.dual_porosity:
            if self.transfer_model is None:
                raise ConfigurationError("Dual-porosity models need a transfer model")
            if self.operators.pore_volume_matrix is None:
                raise ConfigurationError("Dual-porosity models need matrix pore volumes")
            if self.matrix_fluid is None:
                object.__setattr__(self, "matrix_fluid", self.fluid)

    @property
    def active_phases(self) -> typing.Tuple[FluidPhase, ...]:
        return self.capabilities.active_phases

    def gravity_gradient(self) -> np.ndarray:
        """`g * (depth[N2] - depth[N1])` on every interior face."""
        return self.gravity * self.operators.grad(self.grid.depths)

    def with_equation_set(self, equation_set: EquationSet) -> "ReservoirModel":
        return attrs.evolve(self, equation_set=equation_set)


def build_reservoir_model(
    grid: Grid,
    rock: RockProperties,
    fluid: typing.Optional[BlackOilFluid] = None,
    *,
    water: bool = True,
    oil: bool = True,
    gas: bool = True,
    disgas: bool = False,
    vapoil: bool = False,
    equation_set: EquationSet = EquationSet.FULLY_IMPLICIT,
    gravity: typing.Optional[float] = None,
    pore_volume: typing.Optional[np.ndarray] = None,
    transmissibility: typing.Optional[np.ndarray] = None,
    well_model: typing.Any = None,
    matrix_rock: typing.Optional[RockProperties] = None,
    matrix_fluid: typing.Optional[BlackOilFluid] = None,
    transfer_model: typing.Any = None,
) -> ReservoirModel:
    """
    Compose a reservoir model.

    Passing `matrix_rock` makes the model dual-porosity; `rock` then describes
    the fracture continuum.

    :param gravity: Gravitational acceleration. Defaults to standard gravity.
    """
    dual_porosity = matrix_rock is not None
    pore_volume_matrix = None
    if dual_porosity:
        pore_volume_matrix = matrix_rock.porosity * grid.cell_volumes

    operators = build_operators(
        grid,
        rock,
        transmissibility=transmissibility,
        pore_volume=pore_volume,
        pore_volume_matrix=pore_volume_matrix,
    )
    capabilities = ModelCapabilities(
        water=water,
        oil=oil,
        gas=gas,
        disgas=disgas,
        vapoil=vapoil,
        dual_porosity=dual_porosity,
    )
    if gravity is None:
        gravity = c.STANDARD_GRAVITY
    logger.debug(
        f"Building {equation_set.value} model with phases "
        f"{[phase.value for phase in capabilities.active_phases]}"
    )
    return ReservoirModel(
        grid=grid,
        rock=rock,
        fluid=fluid if fluid is not None else BlackOilFluid(),
        operators=operators,
        capabilities=capabilities,
        equation_set=equation_set,
        gravity=gravity,
        well_model=well_model,
        matrix_fluid=matrix_fluid,
        transfer_model=transfer_model,
    )
