import numpy as np
import pytest

from resad import (
    AssemblyOptions,
    BlackOilFluid,
    ConstantCompressibilityB,
    DrivingForces,
    EquationSet,
    LiveOilB,
    SourceTerm,
    build_reservoir_model,
    equations_black_oil,
    get_equations,
    initialize_state,
    to_sparse,
)
from resad.errors import UnknownOptionError

from .conftest import make_rock


def test_water_cell_with_rate_injector(water_cell_model, water_injector):
    state = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    forces = DrivingForces(wells=[water_injector])
    problem, _ = equations_black_oil(state, state, water_cell_model, 1.0, forces=forces)

    assert problem.names == ("water", "waterWells", "closureWells")
    assert problem.primary_variables == ("pressure", "qWs", "bhp")
    assert problem.types == ("cell", "well", "well")
    np.testing.assert_allclose(problem.residual_vector(), [0.0, 0.0, -10.0])
    np.testing.assert_allclose(
        problem.jacobian().toarray(),
        [[1.1, 0.0, -1.0], [1.0, 1.0, -1.0], [0.0, 1.0, 0.0]],
    )


def test_residual_only_assembly_matches_the_values(water_cell_model, water_injector):
    state = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    state0 = state.evolve(pressure=np.array([-10.0]))
    forces = DrivingForces(wells=[water_injector])

    full, _ = equations_black_oil(state0, state, water_cell_model, 1.0, forces=forces)
    values, _ = equations_black_oil(
        state0, state, water_cell_model, 1.0, forces=forces, res_only=True
    )

    assert not values.has_jacobian
    np.testing.assert_allclose(values.residual_vector(), full.residual_vector())


def test_reverse_mode_differentiates_the_previous_state(water_cell_model, water_injector):
    state = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    forces = DrivingForces(wells=[water_injector])
    problem, _ = equations_black_oil(
        state, state, water_cell_model, 1.0, forces=forces, reverse_mode=True
    )

    jacobian = problem.jacobian().toarray()
    # d/dp0 of (pv / dt) * (b - b0) is -(pv / dt) * c * b0
    np.testing.assert_allclose(jacobian[0], [-0.1, 0.0, 0.0])
    np.testing.assert_allclose(jacobian[1:], np.zeros((2, 3)))


def test_primary_variables_follow_the_active_phases(oil_water_line_model, live_oil_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    problem, _ = equations_black_oil(state, state, oil_water_line_model, 1.0)
    assert problem.primary_variables == ("pressure", "sW")
    assert problem.names == ("water", "oil")

    state = initialize_state(live_oil_model, 100.0, sw=0.2, sg=0.1, rs=50.0)
    problem, _ = equations_black_oil(state, state, live_oil_model, 1.0)
    assert problem.primary_variables == ("pressure", "sW", "x")
    assert problem.names == ("water", "oil", "gas")


def test_dead_oil_three_phase_uses_gas_saturation(single_cell_grid):
    model = build_reservoir_model(single_cell_grid, make_rock(1), BlackOilFluid())
    state = initialize_state(model, 100.0, sw=0.2, sg=0.3)
    problem, _ = equations_black_oil(state, state, model, 1.0)
    assert problem.primary_variables == ("pressure", "sW", "sG")


def test_unchanged_state_without_flow_has_zero_residual(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    problem, new_state = equations_black_oil(state, state, oil_water_line_model, 1.0)

    np.testing.assert_allclose(problem.residual_vector(), 0.0, atol=1e-12)
    assert new_state.flux.shape == (2, 3)
    np.testing.assert_allclose(new_state.flux, 0.0)


def test_flux_follows_the_pressure_gradient(oil_water_line_model):
    state = initialize_state(oil_water_line_model, np.array([300.0, 200.0, 100.0]), sw=1.0 - 1e-12)
    problem, new_state = equations_black_oil(state, state, oil_water_line_model, 1.0)

    water_flux = new_state.flux[:, 0]
    assert np.all(water_flux > 0.0)
    water = problem.equations[problem.index_of("water")].value
    # Interior cell loses as much as it gains, the ends balance each other
    assert water[0] > 0.0 > water[2]
    assert water.sum() == pytest.approx(0.0, abs=1e-9)


def test_accumulation_of_a_compressible_cell(water_cell_model):
    state0 = initialize_state(water_cell_model, 0.0)
    state = state0.evolve(pressure=np.array([1000.0]))
    problem, _ = equations_black_oil(state0, state, water_cell_model, 2.0)

    np.testing.assert_allclose(problem.residual_vector(), [50.0 * (np.e - 1.0)])


def test_dissolved_gas_is_accumulated_in_the_gas_equation(live_oil_model):
    state0 = initialize_state(live_oil_model, 100.0, sw=0.2, rs=20.0)
    assert state0.status is None
    state = state0.evolve(rs=np.array([30.0]))
    problem, _ = equations_black_oil(state0, state, live_oil_model, 1.0)

    pore_volume = live_oil_model.operators.pore_volume
    gas = problem.equations[problem.index_of("gas")]
    np.testing.assert_allclose(gas.value, pore_volume * 0.8 * 10.0)
    np.testing.assert_allclose(problem.equations[problem.index_of("oil")].value, 0.0)


def test_undersaturated_cell_differentiates_rs(live_oil_model):
    state = initialize_state(live_oil_model, 100.0, sw=0.2, rs=20.0)
    problem, _ = equations_black_oil(state, state, live_oil_model, 1.0)

    gas = problem.equations[problem.index_of("gas")]
    x_block = gas.jac[problem.primary_variables.index("x")]
    pore_volume = live_oil_model.operators.pore_volume
    # d(rs * bO * sO)/d(rs) with bO = 1 and sO = 0.8
    np.testing.assert_allclose(to_sparse(x_block).toarray(), [[pore_volume[0] * 0.8]])


def test_vaporized_oil_is_accumulated_in_the_oil_equation(wet_gas_model):
    state0 = initialize_state(wet_gas_model, 100.0, sw=0.25, sg=0.75, rv=0.002)
    state = state0.evolve(rv=np.array([0.006]))
    problem, _ = equations_black_oil(state0, state, wet_gas_model, 1.0)

    pore_volume = wet_gas_model.operators.pore_volume
    oil = problem.equations[problem.index_of("oil")]
    # bG = 1, so only the vaporized oil in the gas changes
    np.testing.assert_allclose(oil.value, pore_volume * 0.75 * 0.004)
    np.testing.assert_allclose(problem.equations[problem.index_of("gas")].value, 0.0, atol=1e-12)


def test_undersaturated_gas_cell_differentiates_rv(wet_gas_model):
    state = initialize_state(wet_gas_model, 100.0, sw=0.25, sg=0.75, rv=0.005)
    problem, _ = equations_black_oil(state, state, wet_gas_model, 1.0)

    oil = problem.equations[problem.index_of("oil")]
    x_block = oil.jac[problem.primary_variables.index("x")]
    pore_volume = wet_gas_model.operators.pore_volume
    np.testing.assert_allclose(to_sparse(x_block).toarray(), [[pore_volume[0] * 0.75]])


def test_source_terms_enter_as_inflow(water_line_model):
    state = initialize_state(water_line_model, 100.0)
    forces = DrivingForces(sources=[SourceTerm(cells=[1], rates=-2.0)])
    problem, _ = equations_black_oil(state, state, water_line_model, 1.0, forces=forces)
    np.testing.assert_allclose(problem.residual_vector(), [0.0, 2.0, 0.0])


def test_dispatch_selects_the_fully_implicit_assembler(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    problem, _ = get_equations(oil_water_line_model, state, state, 1.0)
    assert problem.names == ("water", "oil")
    assert oil_water_line_model.equation_set is EquationSet.FULLY_IMPLICIT


def test_unknown_keyword_options_are_rejected(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    with pytest.raises(UnknownOptionError):
        equations_black_oil(state, state, oil_water_line_model, 1.0, fancy=True)


def test_keyword_options_are_merged_into_given_options(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    problem, _ = equations_black_oil(
        state, state, oil_water_line_model, 1.0, options=AssemblyOptions(iteration=3), res_only=True
    )
    assert problem.iteration == 3
    assert not problem.has_jacobian


def test_compressible_oil_water_fluid_values(line_grid):
    fluid = BlackOilFluid(
        water_b=ConstantCompressibilityB(compressibility=1e-3),
        oil_b=LiveOilB(compressibility=1e-3),
    )
    model = build_reservoir_model(
        line_grid, make_rock(3), fluid, gas=False, pore_volume=np.ones(3)
    )
    state0 = initialize_state(model, 0.0, sw=0.5)
    state = state0.evolve(pressure=np.full(3, 1000.0))
    problem, _ = equations_black_oil(state0, state, model, 1.0, res_only=True)

    np.testing.assert_allclose(problem.equations[0], 0.5 * (np.e - 1.0))
    np.testing.assert_allclose(problem.equations[1], 0.5 * (np.e - 1.0))
