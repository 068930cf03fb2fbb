import numpy as np
import pytest

from resad import (
    AssemblyOptions,
    Config,
    DrivingForces,
    EquationSet,
    Well,
    bhp_control,
    check_convergence,
    get_equations,
    initialize_state,
    rate_control,
    run_simulation,
    solve_sequential_timestep,
    solve_timestep,
)
from resad.errors import ConfigurationError, SolverError, ValidationError


def test_newton_converges_on_an_injecting_cell(water_cell_model, water_injector):
    state0 = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    forces = DrivingForces(wells=[water_injector])
    result = solve_timestep(state0, water_cell_model, 1.0, forces=forces)

    # 100 * (exp(1e-3 * p) - 1) = 10
    assert result.state.pressure[0] == pytest.approx(np.log(1.1) / 1e-3, rel=1e-6)
    assert result.state.well_solution("INJ").water_rate == pytest.approx(10.0)
    assert result.convergence.converged
    assert result.time == 1.0
    assert len(result.updates) == result.iterations - 1


def test_non_converging_step(water_cell_model, water_injector):
    state0 = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    with pytest.raises(SolverError):
        solve_timestep(
            state0,
            water_cell_model,
            1.0,
            forces=DrivingForces(wells=[water_injector]),
            config=Config(max_iterations=1),
        )


def test_step_length_must_be_positive(water_cell_model):
    state0 = initialize_state(water_cell_model, 0.0)
    with pytest.raises(ValidationError):
        solve_timestep(state0, water_cell_model, 0.0)


def test_residual_only_options_cannot_drive_newton(water_cell_model):
    state0 = initialize_state(water_cell_model, 0.0)
    with pytest.raises(ConfigurationError):
        solve_timestep(state0, water_cell_model, 1.0, options=AssemblyOptions(res_only=True))


def test_run_simulation_chains_steps(water_cell_model, water_injector):
    state0 = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    forces = DrivingForces(wells=[water_injector])
    results = list(run_simulation(state0, water_cell_model, [1.0, 1.0], forces=forces))

    assert [result.time for result in results] == [1.0, 2.0]
    assert results[1].state.pressure[0] == pytest.approx(np.log(1.2) / 1e-3, rel=1e-6)


def test_forces_per_step_must_match_the_steps(water_cell_model):
    state0 = initialize_state(water_cell_model, 0.0)
    with pytest.raises(ValidationError):
        list(run_simulation(state0, water_cell_model, [1.0, 1.0], forces=[DrivingForces()]))


def test_pressure_convergence_uses_the_pressure_increment(oil_water_line_model):
    model = oil_water_line_model.with_equation_set(EquationSet.PRESSURE)
    state = initialize_state(model, 100.0, sw=0.3)

    problem, _ = get_equations(model, state, state, 1.0, options=AssemblyOptions(iteration=1))
    report = check_convergence(problem, model)
    assert report.names[0] == "Delta P"
    assert report.values[0] == np.inf
    assert not report.converged

    state = state.evolve(dp_rel=np.zeros(3))
    problem, _ = get_equations(model, state, state, 1.0, options=AssemblyOptions(iteration=2))
    report = check_convergence(problem, model)
    assert report.values[0] == 0.0
    assert report.converged


def test_sequential_waterflood_step(oil_water_line_model):
    injector = Well(
        name="INJ", cells=[0], well_indices=[1.0], control=rate_control(0.05), is_injector=True
    )
    producer = Well(name="PROD", cells=[2], well_indices=[1.0], control=bhp_control(99.0))
    state0 = initialize_state(oil_water_line_model, 100.0, sw=0.2, wells=[injector, producer])
    forces = DrivingForces(wells=[injector, producer])

    result = solve_sequential_timestep(state0, oil_water_line_model, 1.0, forces=forces)

    assert result.state.sw[0] > 0.2
    np.testing.assert_allclose(result.state.saturations.sum(axis=1), 1.0)
    assert result.iterations >= 2


def test_sequential_stepping_rejects_gas(live_oil_model):
    state0 = initialize_state(live_oil_model, 100.0, sw=0.2, rs=20.0)
    with pytest.raises(ConfigurationError):
        solve_sequential_timestep(state0, live_oil_model, 1.0)
