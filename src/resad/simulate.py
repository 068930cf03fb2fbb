"""Newton time stepping over the residual assemblers."""

import logging
import typing

import attrs
import numpy as np

from resad.config import AssemblyOptions, Config
from resad.equations.base import DrivingForces, LinearizedProblem
from resad.equations.dispatch import get_equations
from resad.errors import ConfigurationError, SolverError, ValidationError
from resad.linear_solvers import solve_linearized_problem
from resad.states import ReservoirState
from resad.types import EquationSet
from resad.updates import UpdateReport, apply_update

logger = logging.getLogger(__name__)

__all__ = [
    "ConvergenceReport",
    "TimestepResult",
    "check_convergence",
    "solve_timestep",
    "solve_sequential_timestep",
    "run_simulation",
]


@attrs.frozen
class ConvergenceReport:
    """Per-equation convergence measures of one nonlinear iteration."""

    names: typing.Tuple[str, ...] = attrs.field(converter=tuple)
    values: np.ndarray = attrs.field(converter=np.asarray, eq=False)
    tolerances: np.ndarray = attrs.field(converter=np.asarray, eq=False)
    converged: bool

    def as_dict(self) -> typing.Dict[str, float]:
        return {name: float(value) for name, value in zip(self.names, self.values)}


@attrs.frozen
class TimestepResult:
    """
    Result of one converged time step.
    """

    state: ReservoirState
    """State at the end of the step."""
    dt: float
    """Step length."""
    time: float
    """Simulated time at the end of the step."""
    iterations: int
    """Number of nonlinear iterations, assemblies of the converged state included."""
    convergence: ConvergenceReport
    """Convergence measures of the final assembly."""
    updates: typing.Tuple[UpdateReport, ...] = attrs.field(default=(), converter=tuple)
    """Report of every update taken during the step."""


def check_convergence(
    problem: LinearizedProblem, model, config: typing.Optional[Config] = None
) -> ConvergenceReport:
    """
    Check the residuals of an assembled problem against the tolerances.

    Every equation is measured by the infinity norm of its residual. For the
    pressure equation set with `config.use_increment_tolerance`, the first
    measure is replaced by `|dp_rel|` of the state the problem was assembled
    at, reported as "Delta P" and checked against `config.inc_tol_pressure`.
    On the first iteration no increment exists yet, so the measure is
    infinite and the problem is not converged.

    :param problem: The assembled problem.
    :param model: The `ReservoirModel` the problem belongs to.
    :param config: Tolerances.
    :return: A `ConvergenceReport`.
    """
    config = config or Config()
    names = list(problem.names)
    values = problem.equation_norms()
    tolerances = np.full(values.shape, config.nonlinear_tolerance)

    if (
        model.equation_set is EquationSet.PRESSURE
        and config.use_increment_tolerance
        and problem.num_equations > 0
    ):
        dp_rel = problem.state.dp_rel
        if problem.iteration > 1 and dp_rel is not None:
            values[0] = float(np.max(np.abs(dp_rel))) if dp_rel.size else 0.0
        else:
            values[0] = np.inf
        tolerances[0] = config.inc_tol_pressure
        names[0] = "Delta P"

    converged = bool(np.all(values < tolerances))
    return ConvergenceReport(
        names=names, values=values, tolerances=tolerances, converged=converged
    )


def _iteration_options(
    options: typing.Optional[AssemblyOptions], iteration: int
) -> AssemblyOptions:
    options = options or AssemblyOptions()
    if options.res_only:
        raise ConfigurationError("Newton iterations need Jacobians, `res_only` must be off")
    return attrs.evolve(options, iteration=iteration)


def solve_timestep(
    state0: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    config: typing.Optional[Config] = None,
    options: typing.Optional[AssemblyOptions] = None,
    time: float = 0.0,
    initial_guess: typing.Optional[ReservoirState] = None,
) -> TimestepResult:
    """
    Advance one time step with Newton's method.

    Each iteration assembles the equations of `model` at the current iterate,
    stops if they are converged, and otherwise solves the linearized system
    and applies the update.

    :param state0: State at the start of the step.
    :param model: The `ReservoirModel`.
    :param dt: Step length.
    :param forces: Wells, boundary conditions and sources.
    :param config: Tolerances, update limits and linear solver settings.
    :param options: Assembly options. `iteration` is set by the loop.
    :param time: Simulated time at the start of the step.
    :param initial_guess: First iterate. Defaults to `state0`.
    :return: The converged `TimestepResult`.
    :raises SolverError: If the step does not converge within `config.max_iterations`.
    """
    if not dt > 0.0:
        raise ValidationError(f"Time step must be positive, got {dt}")
    config = config or Config()
    forces = forces if forces is not None else DrivingForces()

    state = initial_guess if initial_guess is not None else state0
    updates = []
    convergence = None
    for iteration in range(1, config.max_iterations + 1):
        problem, state = get_equations(
            model,
            state0,
            state,
            dt,
            forces=forces,
            options=_iteration_options(options, iteration),
        )
        convergence = check_convergence(problem, model, config)
        logger.debug(
            f"Iteration {iteration}: "
            + ", ".join(f"{name}={value:.3e}" for name, value in convergence.as_dict().items())
        )
        if convergence.converged:
            logger.info(
                f"Time step of {dt:.4g} converged in {iteration} iteration(s) "
                f"at time {time + dt:.4g}"
            )
            return TimestepResult(
                state=state,
                dt=dt,
                time=time + dt,
                iterations=iteration,
                convergence=convergence,
                updates=updates,
            )

        increments = solve_linearized_problem(problem, config)
        state, report = apply_update(state, problem, increments, model, config)
        updates.append(report)

    raise SolverError(
        f"Time step of {dt:.4g} at time {time:.4g} did not converge within "
        f"{config.max_iterations} iterations. Last residuals: "
        f"{convergence.as_dict() if convergence is not None else {}}"
    )


def solve_sequential_timestep(
    state0: ReservoirState,
    model,
    dt: float,
    forces: typing.Optional[DrivingForces] = None,
    config: typing.Optional[Config] = None,
    options: typing.Optional[AssemblyOptions] = None,
    time: float = 0.0,
) -> TimestepResult:
    """
    Advance one time step of an oil-water model with the sequential split:
    a pressure solve followed by a saturation transport solve at the total
    flux of the pressure solution.

    :return: The result of the transport solve. `iterations` and `updates`
        cover both solves.
    :raises ConfigurationError: For gas or dual-porosity models.
    """
    capabilities = model.capabilities
    if capabilities.gas or capabilities.dual_porosity:
        raise ConfigurationError(
            "Sequential stepping supports single porosity oil-water models only"
        )

    logger.debug("Evolving pressure (implicit)...")
    pressure_result = solve_timestep(
        state0,
        model.with_equation_set(EquationSet.PRESSURE),
        dt,
        forces=forces,
        config=config,
        options=options,
        time=time,
    )
    logger.debug("Evolving saturation for the fixed total flux...")
    transport_result = solve_timestep(
        state0,
        model.with_equation_set(EquationSet.TRANSPORT),
        dt,
        forces=forces,
        config=config,
        options=options,
        time=time,
        initial_guess=pressure_result.state,
    )
    return attrs.evolve(
        transport_result,
        iterations=pressure_result.iterations + transport_result.iterations,
        updates=pressure_result.updates + transport_result.updates,
    )


def run_simulation(
    state0: ReservoirState,
    model,
    timesteps: typing.Sequence[float],
    forces: typing.Union[
        None, DrivingForces, typing.Sequence[typing.Optional[DrivingForces]]
    ] = None,
    config: typing.Optional[Config] = None,
    options: typing.Optional[AssemblyOptions] = None,
    sequential: bool = False,
) -> typing.Generator[TimestepResult, None, None]:
    """
    Run a sequence of time steps.

    Example usage:
    ```python
    for result in run_simulation(state0, model, [86400.0] * 10, forces=forces):
        print(result.time, result.state.pressure.mean())
    ```

    :param state0: Initial state.
    :param model: The `ReservoirModel`.
    :param timesteps: Length of every step.
    :param forces: Driving forces shared by all steps, or one entry per step.
    :param config: Tolerances, update limits and linear solver settings.
    :param options: Assembly options.
    :param sequential: Use the sequential pressure/transport split for every step.
    :yield: The result of every step, in order.
    """
    timesteps = [float(dt) for dt in timesteps]
    if forces is None or isinstance(forces, DrivingForces):
        step_forces = [forces] * len(timesteps)
    else:
        step_forces = list(forces)
        if len(step_forces) != len(timesteps):
            raise ValidationError(
                f"Got driving forces for {len(step_forces)} steps, but {len(timesteps)} steps"
            )

    step = solve_sequential_timestep if sequential else solve_timestep
    total_time = sum(timesteps)
    logger.info(
        f"Starting simulation of {len(timesteps)} step(s) over {total_time:.4g} "
        f"({'sequential' if sequential else model.equation_set.value})"
    )
    state = state0
    time = 0.0
    for index, (dt, step_force) in enumerate(zip(timesteps, step_forces), start=1):
        result = step(
            state, model, dt, forces=step_force, config=config, options=options, time=time
        )
        state = result.state
        time = result.time
        logger.info(
            f"Time Step {index} with dt = {dt:.4g} - "
            f"({100.0 * time / total_time:.2f}%) - {result.iterations} iteration(s)"
        )
        yield result
