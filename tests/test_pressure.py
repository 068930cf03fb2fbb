import numpy as np
import pytest

from resad import (
    ConstantTransferModel,
    DrivingForces,
    EquationSet,
    Well,
    bhp_control,
    build_reservoir_model,
    equations_black_oil,
    get_equations,
    initialize_state,
    pressure_equation_black_oil,
    pressure_equation_oil_water_dp,
    pressure_weights,
)
from resad.errors import ConfigurationError

from .conftest import make_rock


def test_pressure_equation_is_the_weighted_sum_of_the_component_equations(oil_water_line_model):
    fluid = oil_water_line_model.fluid
    state0 = initialize_state(oil_water_line_model, np.array([100.0, 120.0, 90.0]), sw=0.3)
    state = state0.evolve(pressure=np.array([150.0, 110.0, 95.0]))

    full, _ = equations_black_oil(state0, state, oil_water_line_model, 2.0, res_only=True)
    pressure, _ = pressure_equation_black_oil(
        state0, state, oil_water_line_model, 2.0, res_only=True
    )

    water, oil = full.equations
    expected = 2.0 * (water / fluid.water_b(state.pressure) + oil / fluid.oil_b(state.pressure))
    assert pressure.names == ("pressure",)
    np.testing.assert_allclose(pressure.equations[0], expected)


def test_pressure_equation_unknowns(oil_water_line_model):
    producer = Well(name="P1", cells=[2], well_indices=[1.0], control=bhp_control(50.0))
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3, wells=[producer])
    problem, new_state = pressure_equation_black_oil(
        state, state, oil_water_line_model, 1.0, forces=DrivingForces(wells=[producer])
    )

    assert problem.primary_variables == ("pressure", "qWs", "qOs", "bhp")
    assert problem.names == ("pressure", "waterWells", "oilWells", "closureWells")
    assert problem.jacobian().shape == (6, 6)
    assert new_state.flux is not None


def test_saturation_changes_cancel_in_the_pressure_equation(oil_water_line_model):
    state0 = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    state = state0.evolve(saturations=np.tile([0.5, 0.5, 0.0], (3, 1)))
    problem, _ = pressure_equation_black_oil(state0, state, oil_water_line_model, 1.0)

    # Incompressible rock and equal b-factors: only the total volume is accumulated
    full, _ = equations_black_oil(state0, state, oil_water_line_model, 1.0, res_only=True)
    fluid = oil_water_line_model.fluid
    b_water = fluid.water_b(state.pressure)
    b_oil = fluid.oil_b(state.pressure)
    np.testing.assert_allclose(
        problem.equations[0].value, full.equations[0] / b_water + full.equations[1] / b_oil
    )
    np.testing.assert_allclose(problem.equations[0].value, 0.0, atol=1e-12)


def test_pressure_weights_with_dissolution(live_oil_model):
    weights = pressure_weights(
        live_oil_model.capabilities,
        {phase: np.array([2.0]) for phase in live_oil_model.active_phases},
        rs=np.array([0.5]),
        rv=np.zeros(1),
    )
    values = [float(weight[0]) for weight in weights.values()]
    np.testing.assert_allclose(values, [0.5, 0.5 - 0.25, 0.5])


def test_props_pressure_freezes_properties(oil_water_line_model):
    state = initialize_state(oil_water_line_model, np.array([100.0, 120.0, 90.0]), sw=0.3)
    problem, _ = pressure_equation_black_oil(
        state, state, oil_water_line_model, 1.0, props_pressure=state.pressure
    )
    reference, _ = pressure_equation_black_oil(state, state, oil_water_line_model, 1.0)
    np.testing.assert_allclose(problem.equations[0].value, reference.equations[0].value)


def test_reverse_mode_is_rejected(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    with pytest.raises(ConfigurationError):
        pressure_equation_black_oil(state, state, oil_water_line_model, 1.0, reverse_mode=True)


def test_dual_porosity_pressure_equations(single_cell_grid):
    model = build_reservoir_model(
        single_cell_grid,
        make_rock(1),
        gas=False,
        matrix_rock=make_rock(1, porosity=0.1),
        transfer_model=ConstantTransferModel(4.0, 2.0),
        equation_set=EquationSet.PRESSURE,
    )
    state = initialize_state(model, 100.0, sw=0.3, matrix_sw=0.5)
    problem, _ = get_equations(model, state, state, 1.0)

    assert problem.names == ("pressure", "pressure_matrix")
    assert problem.primary_variables == ("pressure", "pom")
    # (dt / pv) * (transfer_w + transfer_o) with unit b-factors and bulk volume
    np.testing.assert_allclose(problem.equations[0].value, [6.0 / 0.2])
    np.testing.assert_allclose(problem.equations[1].value, [-6.0 / 0.1])


def test_dual_porosity_pressure_equation_needs_a_dual_porosity_model(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    with pytest.raises(ConfigurationError):
        pressure_equation_oil_water_dp(state, state, oil_water_line_model, 1.0)
