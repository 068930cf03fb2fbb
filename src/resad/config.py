import typing

import attrs
import numpy as np

from resad.constants import c
from resad.errors import UnknownOptionError
from resad.types import LinearSolverName, PreconditionerName

__all__ = ["Config", "AssemblyOptions"]


def _non_negative(instance, attribute, value) -> None:
    if not value >= 0:
        raise ValueError(f"`{attribute.name}` must be non-negative, got {value}")


@attrs.frozen
class Config:
    """Nonlinear solve configuration: update limits, tolerances and linear solver settings."""

    dp_max_rel: float = attrs.field(default=np.inf, validator=_non_negative)
    """Largest pressure change per iteration, relative to the current pressure."""
    dp_max_abs: float = attrs.field(default=np.inf, validator=_non_negative)
    """Largest absolute pressure change per iteration."""
    ds_max_abs: float = attrs.field(
        default=0.2,
        validator=attrs.validators.and_(
            attrs.validators.gt(0.0), attrs.validators.le(1.0)
        ),
    )
    """Largest absolute saturation change per iteration."""
    drs_max_rel: float = attrs.field(default=np.inf, validator=_non_negative)
    """Largest dissolved/vaporized ratio change per iteration, relative to the current ratio."""
    drs_max_abs: float = attrs.field(default=np.inf, validator=_non_negative)
    """Largest absolute dissolved/vaporized ratio change per iteration."""
    rs_adjust: float = attrs.field(default=1.0, validator=attrs.validators.gt(0.0))
    """
    Safety factor applied to the solubility limit when deciding whether a cell
    is oversaturated. The default of 1.0 compares against the limit itself.
    """
    minimum_pressure: float = 0.0
    """Pressures are clamped from below to this value after every update."""
    maximum_pressure: float = np.inf
    """Pressures are clamped from above to this value after every update."""
    nonlinear_tolerance: float = attrs.field(
        default=1e-6, validator=attrs.validators.gt(0.0)
    )
    """Residual tolerance (infinity norm, per equation) for nonlinear convergence."""
    max_iterations: int = attrs.field(
        default=25,
        validator=attrs.validators.and_(
            attrs.validators.ge(1), attrs.validators.le(500)
        ),
    )
    """Maximum number of Newton iterations per time step."""
    inc_tol_pressure: float = attrs.field(
        default=1e-3, validator=attrs.validators.gt(0.0)
    )
    """Tolerance on the relative pressure increment for pressure-equation models."""
    use_increment_tolerance: bool = True
    """
    Whether pressure-equation models check convergence of the first
    equation on the relative pressure increment instead of its residual.
    """
    saturation_sum_tolerance: float = attrs.field(
        factory=lambda: c.SATURATION_SUM_TOLERANCE, validator=attrs.validators.gt(0.0)
    )
    """Largest accepted deviation of the saturation sum from one after an update."""
    linear_solver: LinearSolverName = attrs.field(
        default="direct",
        validator=attrs.validators.in_(("direct", "bicgstab", "gmres", "cg")),
    )
    """Linear solver used for the Newton system."""
    preconditioner: typing.Optional[PreconditionerName] = attrs.field(
        default="ilu",
        validator=attrs.validators.optional(
            attrs.validators.in_(("ilu", "amg", "diagonal"))
        ),
    )
    """Preconditioner for the iterative linear solvers. Ignored by the direct solver."""
    linear_tolerance: float = attrs.field(
        default=1e-10, validator=attrs.validators.le(1e-2)
    )
    """Relative tolerance for the iterative linear solvers."""
    max_linear_iterations: int = attrs.field(
        default=500, validator=attrs.validators.ge(1)
    )
    """Maximum number of iterations of the iterative linear solvers."""
    fallback_to_direct: bool = True
    """Fall back to a direct solve when an iterative solver does not converge."""


@attrs.frozen
class AssemblyOptions:
    """Options recognized by the residual equation assemblers."""

    res_only: bool = False
    """Evaluate residual values only, without Jacobians."""
    reverse_mode: bool = False
    """
    Place derivatives on the previous time step variables instead of the
    current ones. Used for adjoint sensitivities.
    """
    iteration: int = -1
    """Current nonlinear iteration. -1 means the assembly is not part of an iteration."""
    static_wells: bool = False
    """Use the perforation fluxes stored on the well solutions instead of well equations."""
    props_pressure: typing.Optional[np.ndarray] = attrs.field(default=None, eq=False)
    """Pressure at which fluid properties are evaluated by pressure equations."""
    solve_for_water: bool = False
    """Transport equations: include the water equation."""
    solve_for_oil: bool = True
    """Transport equations: include the oil equation."""

    @classmethod
    def from_kwargs(cls, **kwargs: typing.Any) -> "AssemblyOptions":
        """
        Build options from keyword arguments, rejecting unknown names.

        :raises UnknownOptionError: If a keyword is not a recognized option.
        """
        known = {field.name for field in attrs.fields(cls)}
        unknown = sorted(set(kwargs) - known)
        if unknown:
            raise UnknownOptionError(
                f"Unrecognized assembly option(s): {', '.join(unknown)}. "
                f"Valid options are: {', '.join(sorted(known))}."
            )
        return cls(**kwargs)
