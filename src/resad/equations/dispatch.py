import typing

from resad.config import AssemblyOptions
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.blackoil import equations_black_oil
from resad.equations.dual_porosity import equations_black_oil_dp
from resad.equations.pressure import (
    pressure_equation_black_oil,
    pressure_equation_oil_water_dp,
)
from resad.equations.transport import transport_equation_oil_water
from resad.errors import ConfigurationError
from resad.states import ReservoirState
from resad.types import EquationSet

__all__ = ["get_equations", "get_assembler"]

Assembler = typing.Callable[..., typing.Tuple[LinearizedProblem, ReservoirState]]


def get_assembler(model) -> Assembler:
    """The residual assembler matching the model's equation set and capabilities."""
    dual_porosity = model.capabilities.dual_porosity
    if model.equation_set is EquationSet.FULLY_IMPLICIT:
        return equations_black_oil_dp if dual_porosity else equations_black_oil
    if model.equation_set is EquationSet.PRESSURE:
        return pressure_equation_oil_water_dp if dual_porosity else pressure_equation_black_oil
    if model.equation_set is EquationSet.TRANSPORT:
        if dual_porosity:
            raise ConfigurationError(
                "Transport equations are not available for dual-porosity models"
            )
        return transport_equation_oil_water
    raise ConfigurationError(f"Unknown equation set {model.equation_set!r}")


def get_equations(
    model,
    state0: ReservoirState,
    state: ReservoirState,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    options: typing.Optional[AssemblyOptions] = None,
    **kwargs: typing.Any,
) -> typing.Tuple[LinearizedProblem, ReservoirState]:
    """
    Assemble the equations of `model` at `state`.

    :return: The linearized problem and the state with fluxes and well solutions updated.
    """
    assembler = get_assembler(model)
    return assembler(state0, state, model, dt, forces=forces, options=options, **kwargs)
