import numpy as np
import pytest

from resad import (
    BlackOilFluid,
    ConstantTransferModel,
    KazemiTransferModel,
    build_reservoir_model,
    equations_black_oil,
    equations_black_oil_dp,
    get_equations,
    initialize_state,
    kazemi_shape_factor,
)
from resad.errors import ConfigurationError

from .conftest import make_rock


def dual_porosity_model(grid, transfer_model, fluid=None):
    return build_reservoir_model(
        grid,
        make_rock(grid.num_cells),
        fluid or BlackOilFluid(),
        gas=False,
        matrix_rock=make_rock(grid.num_cells, porosity=0.1),
        transfer_model=transfer_model,
    )


def test_equation_and_variable_names(single_cell_grid):
    model = dual_porosity_model(single_cell_grid, ConstantTransferModel())
    state = initialize_state(model, 100.0, sw=0.3, matrix_sw=0.5)
    problem, _ = equations_black_oil_dp(state, state, model, 1.0)

    assert problem.names == ("water", "oil", "water_matrix", "oil_matrix")
    assert problem.primary_variables == ("pressure", "sW", "pom", "swm")
    assert problem.jacobian().shape == (4, 4)


def test_transfer_enters_fracture_and_matrix_with_opposite_signs(single_cell_grid):
    model = dual_porosity_model(single_cell_grid, ConstantTransferModel(5.0, 3.0))
    state = initialize_state(model, 100.0, sw=0.3, matrix_sw=0.5)
    problem, _ = equations_black_oil_dp(state, state, model, 1.0, res_only=True)

    np.testing.assert_allclose(problem.residual_vector(), [5.0, 3.0, -5.0, -3.0])


def test_fracture_plus_matrix_does_not_depend_on_the_transfer(single_cell_grid):
    state_models = []
    for transfer in (ConstantTransferModel(), ConstantTransferModel(7.0, -2.0)):
        model = dual_porosity_model(single_cell_grid, transfer)
        state0 = initialize_state(model, 100.0, sw=0.3, matrix_sw=0.5)
        state = state0.evolve(
            saturations=np.array([[0.4, 0.6, 0.0]]),
            matrix_saturations=np.array([[0.45, 0.55, 0.0]]),
        )
        problem, _ = equations_black_oil_dp(state0, state, model, 1.0, res_only=True)
        residual = problem.residual_vector()
        state_models.append(residual[:2] + residual[2:])
    np.testing.assert_allclose(state_models[0], state_models[1])


def test_matrix_accumulation_uses_the_matrix_pore_volume(single_cell_grid):
    model = dual_porosity_model(single_cell_grid, ConstantTransferModel())
    state0 = initialize_state(model, 100.0, sw=0.3, matrix_sw=0.5)
    state = state0.evolve(matrix_saturations=np.array([[0.6, 0.4, 0.0]]))
    problem, _ = equations_black_oil_dp(state0, state, model, 1.0, res_only=True)

    np.testing.assert_allclose(problem.residual_vector(), [0.0, 0.0, 0.01, -0.01])


def test_kazemi_transfer_flows_from_high_to_low_pressure(single_cell_grid):
    sigma = kazemi_shape_factor(1.0, 1.0, 1.0)
    model = dual_porosity_model(
        single_cell_grid, KazemiTransferModel(shape_factor=sigma, matrix_permeability=0.01)
    )
    state = initialize_state(model, 200.0, sw=0.5, matrix_pressure=100.0, matrix_sw=0.5)
    problem, _ = equations_black_oil_dp(state, state, model, 1.0, res_only=True)

    # sigma * k * kr(0.5) * (pf - pm) for both phases, unit b-factors and bulk volume
    expected = sigma * 0.01 * 0.25 * 100.0
    np.testing.assert_allclose(problem.residual_vector(), [expected, expected, -expected, -expected])


def test_kazemi_shape_factor():
    assert kazemi_shape_factor(1.0, 2.0, 4.0) == pytest.approx(4.0 * (1.0 + 0.25 + 0.0625))
    with pytest.raises(ValueError):
        kazemi_shape_factor(0.0, 1.0, 1.0)


def test_dispatch_selects_the_dual_porosity_assembler(single_cell_grid):
    model = dual_porosity_model(single_cell_grid, ConstantTransferModel())
    state = initialize_state(model, 100.0, sw=0.3)
    problem, _ = get_equations(model, state, state, 1.0)
    assert "oil_matrix" in problem.names


def test_dual_porosity_models_need_a_transfer_model(single_cell_grid):
    with pytest.raises(ConfigurationError):
        dual_porosity_model(single_cell_grid, None)


def test_single_porosity_models_are_rejected(oil_water_line_model):
    state = initialize_state(oil_water_line_model, 100.0, sw=0.3)
    with pytest.raises(ConfigurationError):
        equations_black_oil_dp(state, state, oil_water_line_model, 1.0)
    problem, _ = equations_black_oil(state, state, oil_water_line_model, 1.0)
    assert problem.num_equations == 2
