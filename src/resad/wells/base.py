"""Well descriptions and Peaceman well indices."""

import logging
import typing

import attrs
import numba
import numpy as np

from resad.errors import ValidationError
from resad.wells.controls import WellControl

logger = logging.getLogger(__name__)

__all__ = [
    "Well",
    "compute_well_index",
    "compute_peaceman_radius",
    "build_vertical_well",
]


def _as_composition(value: typing.Any) -> np.ndarray:
    composition = np.asarray(value, dtype=np.float64).ravel()
    if composition.shape != (3,):
        raise ValidationError("Injection composition needs three entries (water, oil, gas)")
    if np.any(composition < 0.0) or not np.isclose(composition.sum(), 1.0):
        raise ValidationError("Injection composition must be non-negative and sum to one")
    return composition


@attrs.frozen
class Well:
    """A well: its perforated cells, their connection factors and its active control."""

    name: str
    """Name of the well."""
    cells: np.ndarray = attrs.field(
        converter=lambda cells: np.atleast_1d(np.asarray(cells, dtype=np.int64))
    )
    """Perforated cells."""
    well_indices: np.ndarray = attrs.field(
        converter=lambda wi: np.atleast_1d(np.asarray(wi, dtype=np.float64))
    )
    """Connection transmissibility (well index) of each perforation."""
    control: WellControl
    """Active control."""
    is_injector: bool = False
    """Whether the well injects. Injectors inject `composition`."""
    composition: np.ndarray = attrs.field(
        default=(1.0, 0.0, 0.0), converter=_as_composition, eq=False
    )
    """Phase fractions (water, oil, gas) of the injected fluid."""

    def __attrs_post_init__(self) -> None:
        if self.cells.size == 0:
            raise ValidationError(f"Well {self.name!r} has no perforations")
        if self.cells.shape != self.well_indices.shape:
            raise ValidationError(
                f"Well {self.name!r} has {self.cells.size} perforations but "
                f"{self.well_indices.size} well indices"
            )
        if np.any(self.well_indices < 0.0):
            raise ValidationError(f"Well {self.name!r} has negative well indices")

    @property
    def num_perforations(self) -> int:
        return self.cells.size

    def with_control(self, control: WellControl) -> "Well":
        return attrs.evolve(self, control=control)


@numba.njit(cache=True)
def compute_well_index(
    permeability: float,
    interval_thickness: float,
    wellbore_radius: float,
    effective_drainage_radius: float,
    skin_factor: float = 0.0,
) -> float:
    """
    Compute the well index of a perforation using the Peaceman equation.

    W = (2 * pi * k * h) / (ln(re/rw) + s)

    :param permeability: Absolute permeability of the perforated cell.
    :param interval_thickness: Perforated thickness.
    :param wellbore_radius: Radius of the wellbore.
    :param effective_drainage_radius: Peaceman equivalent radius.
    :param skin_factor: Skin factor (dimensionless, default is 0).
    :return: The well index.
    """
    return (2.0 * np.pi * permeability * interval_thickness) / (
        np.log(effective_drainage_radius / wellbore_radius) + skin_factor
    )


@numba.njit(cache=True)
def compute_peaceman_radius(
    dx: float, dy: float, permeability_x: float, permeability_y: float
) -> float:
    """
    Peaceman equivalent radius of a vertical well in an anisotropic cell.

    :param dx: Cell size along x.
    :param dy: Cell size along y.
    :param permeability_x: Permeability along x.
    :param permeability_y: Permeability along y.
    """
    ratio_yx = np.sqrt(permeability_y / permeability_x)
    ratio_xy = np.sqrt(permeability_x / permeability_y)
    return (
        0.28
        * np.sqrt(ratio_yx * dx**2 + ratio_xy * dy**2)
        / (ratio_yx**0.5 + ratio_xy**0.5)
    )


def build_vertical_well(
    grid,
    rock,
    name: str,
    i: int,
    j: int,
    control: WellControl,
    layers: typing.Optional[typing.Sequence[int]] = None,
    wellbore_radius: float = 0.1,
    skin_factor: float = 0.0,
    is_injector: bool = False,
    composition: typing.Sequence[float] = (1.0, 0.0, 0.0),
) -> Well:
    """
    Build a vertical well through column `(i, j)` of a Cartesian grid.

    :param grid: Cartesian `Grid`.
    :param rock: `RockProperties` for the well indices.
    :param layers: Perforated layers. Defaults to every layer.
    """
    if grid.dimensions is None or grid.cell_size is None:
        raise ValidationError("Vertical wells need a Cartesian grid")
    if wellbore_radius <= 0.0:
        raise ValidationError("Wellbore radius must be positive")
    nz = grid.dimensions[2]
    if layers is None:
        layers = range(nz)
    dx, dy, dz = grid.cell_size

    cells = np.array([grid.cell_index(i, j, k) for k in layers], dtype=np.int64)
    permeability_x = rock.permeability.x[cells]
    permeability_y = rock.permeability.y[cells]
    if np.any(permeability_x <= 0.0) or np.any(permeability_y <= 0.0):
        raise ValidationError(f"Well {name!r} perforates impermeable cells")

    well_indices = np.empty(cells.size)
    for index in range(cells.size):
        radius = compute_peaceman_radius(
            dx, dy, permeability_x[index], permeability_y[index]
        )
        well_indices[index] = compute_well_index(
            np.sqrt(permeability_x[index] * permeability_y[index]),
            dz,
            wellbore_radius,
            radius,
            skin_factor,
        )
    logger.debug(f"Well {name!r} perforates {cells.size} cell(s)")
    return Well(
        name=name,
        cells=cells,
        well_indices=well_indices,
        control=control,
        is_injector=is_injector,
        composition=composition,
    )
