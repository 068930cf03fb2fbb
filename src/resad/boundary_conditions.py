"""Boundary conditions on grid boundary faces, and explicit source terms."""

import enum
import logging
import typing

import attrs
import numpy as np

from resad.ad.functions import where
from resad.ad.forward import value_of
from resad.errors import ValidationError
from resad.types import FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "Boundary",
    "boundary_faces",
    "boundary_face_cells",
    "BoundaryCondition",
    "NoFlowBoundary",
    "ConstantPressureBoundary",
    "FluxBoundary",
    "SourceTerm",
]


class Boundary(enum.Enum):
    """Enumeration of the sides of a Cartesian grid."""

    LEFT = "left"
    """The negative X direction (left/west face)."""
    RIGHT = "right"
    """The positive X direction (right/east face)."""
    FRONT = "front"
    """The negative Y direction (south face)."""
    BACK = "back"
    """The positive Y direction (north face)."""
    TOP = "top"
    """The shallow Z side."""
    BOTTOM = "bottom"
    """The deep Z side."""


_BOUNDARY_AXES = {
    Boundary.LEFT: (0, 0),
    Boundary.RIGHT: (0, 1),
    Boundary.FRONT: (1, 0),
    Boundary.BACK: (1, 1),
    Boundary.TOP: (2, 0),
    Boundary.BOTTOM: (2, 1),
}
"""Axis of each side and the column of `face_neighbors` that lies outside the grid."""


def boundary_face_cells(grid, faces: np.ndarray) -> np.ndarray:
    """The inside cell of each boundary face."""
    faces = np.asarray(faces, dtype=np.int64)
    neighbors = grid.face_neighbors[faces]
    outside = neighbors < 0
    if not np.all(outside.sum(axis=1) == 1):
        raise ValidationError("Boundary conditions can only be set on grid boundary faces")
    return np.where(outside[:, 0], neighbors[:, 1], neighbors[:, 0])


def boundary_faces(grid, side: typing.Union[str, Boundary]) -> np.ndarray:
    """
    Boundary faces of one side of the grid.

    Example usage:
    ```python
    grid = build_cartesian_grid((10, 1, 1))
    faces = boundary_faces(grid, "right")  # the single face at x = 10
    ```
    """
    side = Boundary(side)
    axis, outside_column = _BOUNDARY_AXES[side]
    neighbors = grid.face_neighbors
    on_side = neighbors[:, outside_column] < 0
    if outside_column == 0:
        on_side &= neighbors[:, 1] >= 0
    else:
        on_side &= neighbors[:, 0] >= 0
    face_axis = np.full(grid.num_faces, -1, dtype=np.int64)
    face_axis[grid.half_face_faces] = grid.half_face_axes
    return np.flatnonzero(on_side & (face_axis == axis))


def _as_composition(value: typing.Any) -> np.ndarray:
    composition = np.asarray(value, dtype=np.float64).ravel()
    if composition.shape != (3,):
        raise ValidationError("Saturations of inflowing fluid need three entries (water, oil, gas)")
    if np.any(composition < 0.0) or not np.isclose(composition.sum(), 1.0):
        raise ValidationError("Saturations of inflowing fluid must be non-negative and sum to one")
    return composition


def _split_by_direction(context, cells, total_rate, composition):
    """
    Split reservoir condition rates over the active phases.

    Inflow (positive) carries `composition`. Outflow carries the fractional
    flow of the cells.
    """
    total_mobility = context.total_mobility()[cells]
    inflow = np.asarray(value_of(total_rate)) > 0.0
    rates = {}
    for phase in context.phases:
        outflow_fraction = context.mobilities[phase][cells] / total_mobility
        fraction = where(inflow, composition[phase.column], outflow_fraction)
        rates[phase] = fraction * total_rate
    return rates


class BoundaryCondition:
    """
    Base class for boundary conditions and explicit sources.

    **Sign Convention (Library-Wide Standard):**
    - **Positive rate (+)**: Flow INTO the reservoir (injection/inflow)
    - **Negative rate (-)**: Flow OUT OF the reservoir (production/outflow)

    This convention is the one used by wells as well.
    """

    def reservoir_rates(
        self, model, context
    ) -> typing.Tuple[np.ndarray, typing.Dict[FluidPhase, typing.Any]]:
        """
        Reservoir condition rates of every active phase into the cells this term acts on.

        :param model: The reservoir model.
        :param context: Per-cell phase pressures, mobilities and b-factors.
        :return: `(cells, {phase: rate})`.
        """
        raise NotImplementedError


@attrs.frozen
class NoFlowBoundary(BoundaryCondition):
    """
    Sealed boundary. This is the default for every face without a condition,
    so adding it changes nothing.
    """

    def reservoir_rates(self, model, context):
        return np.empty(0, dtype=np.int64), {}


@attrs.frozen
class ConstantPressureBoundary(BoundaryCondition):
    """
    Fixed pressure on boundary faces.

    The total rate through a face is `T_face * lambda * (p_boundary - p_cell)`
    with `T_face` the cell to face transmissibility. Inflow uses the total
    mobility of the cell and the phase fractions of `saturations`. Outflow
    uses the phase mobilities of the cell.

    Example usage:
    ```python
    right = ConstantPressureBoundary(
        faces=boundary_faces(grid, "right"), pressure=100e5
    )
    forces = DrivingForces(boundary_conditions=[right])
    ```
    """

    faces: np.ndarray = attrs.field(
        converter=lambda faces: np.atleast_1d(np.asarray(faces, dtype=np.int64))
    )
    """Grid boundary faces."""
    pressure: typing.Any = attrs.field(converter=lambda p: np.asarray(p, dtype=np.float64))
    """Boundary pressure, a scalar or one value per face."""
    saturations: np.ndarray = attrs.field(
        default=(1.0, 0.0, 0.0), converter=_as_composition, eq=False
    )
    """Saturations (water, oil, gas) of fluid entering through the faces."""

    def reservoir_rates(self, model, context):
        transmissibility = model.operators.all_face_transmissibility
        if transmissibility is None:
            raise ValidationError(
                "Pressure boundaries need the transmissibility of boundary faces"
            )
        cells = boundary_face_cells(model.grid, self.faces)
        face_transmissibility = transmissibility[self.faces]
        total_mobility = context.total_mobility()[cells]

        rates = {}
        for phase in context.phases:
            drawdown = self.pressure - context.pressures[phase][cells]
            inflow = np.asarray(value_of(drawdown)) > 0.0
            mobility = where(
                inflow,
                total_mobility * self.saturations[phase.column],
                context.mobilities[phase][cells],
            )
            rates[phase] = face_transmissibility * mobility * drawdown
        return cells, rates


@attrs.frozen
class FluxBoundary(BoundaryCondition):
    """
    Fixed total reservoir condition flux through boundary faces.

    Positive flux enters the reservoir with the phase fractions of
    `saturations`. Negative flux leaves with the fractional flow of the cell.
    """

    faces: np.ndarray = attrs.field(
        converter=lambda faces: np.atleast_1d(np.asarray(faces, dtype=np.int64))
    )
    """Grid boundary faces."""
    flux: typing.Any = attrs.field(converter=lambda q: np.asarray(q, dtype=np.float64))
    """Total flux per face, a scalar or one value per face."""
    saturations: np.ndarray = attrs.field(
        default=(1.0, 0.0, 0.0), converter=_as_composition, eq=False
    )
    """Saturations (water, oil, gas) of fluid entering through the faces."""

    def reservoir_rates(self, model, context):
        cells = boundary_face_cells(model.grid, self.faces)
        flux = np.broadcast_to(self.flux, cells.shape)
        return cells, _split_by_direction(context, cells, flux, self.saturations)


@attrs.frozen
class SourceTerm(BoundaryCondition):
    """
    Explicit volumetric source (positive) or sink (negative) in cells.

    Sources inject fluid with the phase fractions of `saturations`. Sinks
    withdraw the fractional flow of the cell.
    """

    cells: np.ndarray = attrs.field(
        converter=lambda cells: np.atleast_1d(np.asarray(cells, dtype=np.int64))
    )
    """Cells of the source."""
    rates: typing.Any = attrs.field(converter=lambda q: np.asarray(q, dtype=np.float64))
    """Total reservoir condition rate per cell, a scalar or one value per cell."""
    saturations: np.ndarray = attrs.field(
        default=(1.0, 0.0, 0.0), converter=_as_composition, eq=False
    )
    """Saturations (water, oil, gas) of injected fluid."""

    def reservoir_rates(self, model, context):
        if np.any((self.cells < 0) | (self.cells >= model.grid.num_cells)):
            raise ValidationError("Source cells must exist in the grid")
        rates = np.broadcast_to(self.rates, self.cells.shape)
        return self.cells, _split_by_direction(context, self.cells, rates, self.saturations)
