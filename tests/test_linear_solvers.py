import numpy as np
import pytest
from scipy.sparse import csr_matrix, diags

from resad import (
    DrivingForces,
    equations_black_oil,
    initialize_state,
    solve_linear_system,
    solve_linearized_problem,
)
from resad.errors import SolverError, ValidationError


@pytest.fixture
def poisson():
    size = 20
    matrix = diags(
        [-np.ones(size - 1), 2.0 * np.ones(size), -np.ones(size - 1)], [-1, 0, 1], format="csr"
    )
    return matrix, np.ones(size)


@pytest.mark.parametrize(
    "solver, preconditioner",
    [("bicgstab", "ilu"), ("gmres", "diagonal"), ("cg", "amg"), ("cg", None)],
)
def test_krylov_solvers_match_the_direct_solution(poisson, solver, preconditioner):
    matrix, rhs = poisson
    expected = solve_linear_system(matrix, rhs)
    x = solve_linear_system(matrix, rhs, solver=solver, preconditioner=preconditioner)
    np.testing.assert_allclose(x, expected, rtol=1e-6)
    np.testing.assert_allclose(matrix @ expected, rhs, atol=1e-10)


def test_invalid_requests(poisson):
    matrix, rhs = poisson
    with pytest.raises(ValidationError):
        solve_linear_system(matrix, rhs[:-1])
    with pytest.raises(ValidationError):
        solve_linear_system(matrix, rhs, solver="jacobi")
    with pytest.raises(ValidationError):
        solve_linear_system(matrix, rhs, solver="gmres", preconditioner="ssor")


def test_empty_system():
    x = solve_linear_system(csr_matrix((0, 0)), np.empty(0))
    assert x.size == 0


def test_non_converged_krylov_solve(poisson):
    matrix, rhs = poisson
    with pytest.raises(SolverError):
        solve_linear_system(
            matrix, rhs, solver="cg", preconditioner=None, max_iterations=1, fallback_to_direct=False
        )

    x = solve_linear_system(matrix, rhs, solver="cg", preconditioner=None, max_iterations=1)
    np.testing.assert_allclose(x, solve_linear_system(matrix, rhs))


def test_newton_increments_solve_the_linearized_problem(water_cell_model, water_injector):
    state = initialize_state(water_cell_model, 0.0, wells=[water_injector])
    forces = DrivingForces(wells=[water_injector])
    problem, _ = equations_black_oil(state, state, water_cell_model, 1.0, forces=forces)

    increments = solve_linearized_problem(problem)
    assert set(increments) == {"pressure", "qWs", "bhp"}
    dx = np.concatenate([increments[name] for name in problem.primary_variables])
    np.testing.assert_allclose(problem.jacobian() @ dx, -problem.residual_vector(), atol=1e-12)
