"""Linearized problems and the driving forces of an assembly."""

import logging
import typing

import attrs
import numpy as np
import scipy.sparse as sps

from resad.ad.forward import ADArray, value_of
from resad.ad.jacobians import to_sparse
from resad.errors import ValidationError
from resad.states import ReservoirState
from resad.types import EquationType

logger = logging.getLogger(__name__)

__all__ = ["LinearizedProblem", "DrivingForces"]


@attrs.frozen
class DrivingForces:
    """External forcing of a time step. All fields may be empty."""

    wells: typing.Tuple[typing.Any, ...] = attrs.field(default=(), converter=tuple)
    """Wells, in the order of the well solutions of the state."""
    boundary_conditions: typing.Tuple[typing.Any, ...] = attrs.field(
        default=(), converter=tuple
    )
    """Boundary conditions on grid boundary faces."""
    sources: typing.Tuple[typing.Any, ...] = attrs.field(default=(), converter=tuple)
    """Explicit volumetric sources and sinks."""

    @property
    def has_wells(self) -> bool:
        return len(self.wells) > 0


@attrs.frozen
class LinearizedProblem:
    """
    Residual equations linearized around a state.

    Equations are `ADArray`s carrying one Jacobian block per primary variable,
    or plain arrays for residual-only assemblies. Unknowns are ordered as
    `primary_variables` and equations as `names`.
    """

    equations: typing.Tuple[typing.Any, ...] = attrs.field(converter=tuple)
    types: typing.Tuple[EquationType, ...] = attrs.field(converter=tuple)
    names: typing.Tuple[str, ...] = attrs.field(converter=tuple)
    primary_variables: typing.Tuple[str, ...] = attrs.field(converter=tuple)
    state: ReservoirState
    """State the equations were evaluated at."""
    dt: float
    iteration: int = -1

    def __attrs_post_init__(self) -> None:
        if not (len(self.equations) == len(self.types) == len(self.names)):
            raise ValidationError(
                "Equations, equation types and equation names must have the same length"
            )
        for name, equation in zip(self.names, self.equations):
            if isinstance(equation, ADArray) and equation.num_variables != len(
                self.primary_variables
            ):
                raise ValidationError(
                    f"Equation {name!r} is differentiated with respect to "
                    f"{equation.num_variables} variables, but the problem declares "
                    f"{len(self.primary_variables)}"
                )

    @property
    def num_equations(self) -> int:
        return len(self.equations)

    @property
    def has_jacobian(self) -> bool:
        return bool(self.equations) and all(
            isinstance(equation, ADArray) for equation in self.equations
        )

    def index_of(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"No equation named {name!r}") from None

    def residual_vector(self) -> np.ndarray:
        """All residuals stacked in equation order."""
        if not self.equations:
            return np.empty(0)
        return np.concatenate(
            [np.atleast_1d(np.asarray(value_of(eq), dtype=np.float64)) for eq in self.equations]
        )

    def variable_sizes(self) -> typing.List[int]:
        """Number of unknowns of each primary variable."""
        if not self.has_jacobian:
            raise ValidationError("Residual-only problems carry no variable sizes")
        return [block.shape[1] for block in self.equations[0].jac]

    def jacobian(self) -> sps.csr_matrix:
        """
        Full Jacobian, equation blocks stacked vertically and primary
        variable blocks side by side.
        """
        if not self.has_jacobian:
            raise ValidationError("Problem was assembled without Jacobians")
        rows = [[to_sparse(block) for block in eq.jac] for eq in self.equations]
        return sps.bmat(rows, format="csr")

    def split_increment(self, dx: np.ndarray) -> typing.Dict[str, np.ndarray]:
        """Split a full increment vector into one array per primary variable."""
        sizes = self.variable_sizes()
        dx = np.asarray(dx, dtype=np.float64).ravel()
        if dx.size != sum(sizes):
            raise ValidationError(
                f"Increment has {dx.size} entries, problem has {sum(sizes)} unknowns"
            )
        parts = np.split(dx, np.cumsum(sizes)[:-1])
        return dict(zip(self.primary_variables, parts))

    def equation_norms(self) -> np.ndarray:
        """Infinity norm of every equation, zero for empty equations."""
        norms = []
        for equation in self.equations:
            values = np.atleast_1d(np.asarray(value_of(equation), dtype=np.float64))
            norms.append(float(np.max(np.abs(values))) if values.size else 0.0)
        return np.array(norms)

    def with_state(self, state: ReservoirState) -> "LinearizedProblem":
        return attrs.evolve(self, state=state)
