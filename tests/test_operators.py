import numpy as np
import pytest
import scipy.sparse as sps

from resad import (
    DiagonalJacobian,
    DiscreteOperators,
    RockPermeability,
    RockProperties,
    build_operators,
    divergence_jacobian,
    initialize_variables,
    is_zero_block,
    to_sparse,
)
from resad.errors import ValidationError

from .conftest import make_rock


@pytest.fixture
def line_operators(line_grid):
    return build_operators(line_grid, make_rock(3))


def test_two_point_transmissibilities(line_operators):
    np.testing.assert_array_equal(line_operators.neighbors, [[0, 1], [1, 2]])
    np.testing.assert_allclose(line_operators.transmissibility, [1.0, 1.0])
    # Boundary faces only carry the half transmissibility of their cell
    np.testing.assert_allclose(line_operators.all_face_transmissibility[[0, 3]], [2.0, 2.0])
    np.testing.assert_allclose(line_operators.pore_volume, np.full(3, 0.2))


def test_gradient_and_divergence(line_operators):
    np.testing.assert_allclose(line_operators.grad(np.array([1.0, 2.0, 4.0])), [1.0, 2.0])
    np.testing.assert_allclose(line_operators.div(np.array([1.0, 1.0])), [1.0, 0.0, -1.0])


def test_divergence_is_the_negative_transpose_of_the_gradient(line_operators):
    divergence = line_operators.divergence_matrix.toarray()
    gradient = line_operators.gradient_matrix.toarray()
    np.testing.assert_array_equal(divergence, -gradient.T)


def test_divergence_sums_to_zero(line_operators):
    flux = np.array([3.5, -1.25])
    assert line_operators.div(flux).sum() == pytest.approx(0.0)


def test_divergence_of_ad_fluxes(line_operators):
    (x,) = initialize_variables(np.array([1.0, 2.0, 4.0]))
    result = line_operators.div(line_operators.grad(x))

    expected = (line_operators.divergence_matrix @ line_operators.gradient_matrix).toarray()
    np.testing.assert_allclose(to_sparse(result.jac[0]).toarray(), expected)


def test_face_average_and_upstream(line_operators):
    values = np.array([10.0, 20.0, 30.0])
    np.testing.assert_allclose(line_operators.face_average(values), [15.0, 25.0])
    np.testing.assert_allclose(
        line_operators.face_upstream(np.array([True, False]), values), [10.0, 30.0]
    )


def test_upstream_selection_of_ad_values(line_operators):
    (x,) = initialize_variables(np.array([10.0, 20.0, 30.0]))
    result = line_operators.face_upstream(np.array([False, True]), x)

    np.testing.assert_allclose(result.value, [20.0, 20.0])
    np.testing.assert_allclose(
        to_sparse(result.jac[0]).toarray(), [[0.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
    )


def test_transmissibility_multipliers_seal_faces(line_grid):
    multipliers = np.ones(line_grid.num_faces)
    multipliers[1] = 0.0
    rock = RockProperties(
        porosity=np.full(3, 0.2),
        permeability=RockPermeability(x=np.ones(3)),
        transmissibility_multipliers=multipliers,
    )
    operators = build_operators(line_grid, rock)
    np.testing.assert_allclose(operators.transmissibility, [0.0, 1.0])


def test_explicit_transmissibility_and_pore_volume(line_grid):
    operators = build_operators(
        line_grid,
        make_rock(3),
        transmissibility=np.array([0.0, 5.0, 7.0, 0.0]),
        pore_volume=np.array([1.0, 2.0, 3.0]),
    )
    np.testing.assert_allclose(operators.transmissibility, [5.0, 7.0])
    np.testing.assert_allclose(operators.pore_volume, [1.0, 2.0, 3.0])


def test_operators_reject_unknown_cells():
    with pytest.raises(ValidationError):
        DiscreteOperators(
            neighbors=np.array([[0, 3]]),
            num_cells=2,
            transmissibility=np.ones(1),
            pore_volume=np.ones(2),
        )


def test_operators_reject_mismatched_transmissibility():
    with pytest.raises(ValidationError):
        DiscreteOperators(
            neighbors=np.array([[0, 1]]),
            num_cells=2,
            transmissibility=np.ones(2),
            pore_volume=np.ones(2),
        )


def test_divergence_keeps_zero_blocks(line_operators):
    x, _ = initialize_variables(np.array([1.0, 2.0, 4.0]), np.array([0.0, 0.0]))
    result = line_operators.div(line_operators.grad(x))

    assert is_zero_block(result.jac[1])
    assert result.jac[1].shape == (3, 2)


def test_divergence_of_diagonal_and_sparse_blocks_agree(line_operators):
    diagonal = DiagonalJacobian(np.array([1.5, -2.0]), columns=np.array([0, 2]), num_columns=3)
    sparse = sps.csr_matrix(
        (np.array([1.5, -2.0]), (np.array([0, 1]), np.array([0, 2]))), shape=(2, 3)
    )
    divergence_matrix = line_operators.divergence_matrix

    from_diagonal = to_sparse(divergence_jacobian(diagonal, divergence_matrix)).toarray()
    from_sparse = to_sparse(divergence_jacobian(sparse, divergence_matrix)).toarray()

    np.testing.assert_allclose(from_diagonal, from_sparse)
    np.testing.assert_allclose(from_diagonal.sum(axis=0), 0.0)
