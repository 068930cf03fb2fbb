"""Linear solves of the Newton systems."""

import logging
import typing

import numpy as np
import pyamg  # type: ignore[import-untyped]
from scipy.sparse import csr_matrix, diags  # type: ignore[import-untyped]
from scipy.sparse.linalg import (  # type: ignore[import-untyped]
    LinearOperator,
    bicgstab,
    cg,
    gmres,
    spilu,
    spsolve,
)

from resad._precision import get_floating_point_info
from resad.config import Config
from resad.errors import ComputationError, PreconditionerError, SolverError, ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "build_ilu_preconditioner",
    "build_amg_preconditioner",
    "build_diagonal_preconditioner",
    "solve_linear_system",
    "solve_linearized_problem",
]


def build_amg_preconditioner(A_csr: csr_matrix, cycle: str = "V", **kwargs: typing.Any) -> LinearOperator:
    """
    Creates an Algebraic Multigrid (AMG) preconditioner using PyAMG.

    :param A_csr: The coefficient matrix in CSR format.
    :param cycle: Multigrid cycle type ('V', 'W', 'F').
    :param kwargs: Additional arguments for `pyamg.smoothed_aggregation_solver`.
    """
    ml_solver = pyamg.smoothed_aggregation_solver(A_csr, **kwargs)
    return ml_solver.aspreconditioner(cycle=cycle)


def build_diagonal_preconditioner(A_csr: csr_matrix) -> LinearOperator:
    """Jacobi preconditioner. Near-zero diagonal entries are replaced by one."""
    diagonal = A_csr.diagonal()
    threshold = max(1e-10, 100 * get_floating_point_info().eps)
    diagonal = np.where(np.abs(diagonal) < threshold, 1.0, diagonal)
    M_diag = diags(1.0 / diagonal, format="csr")
    return LinearOperator(shape=A_csr.shape, matvec=M_diag.dot)  # type: ignore[arg-type]


def build_ilu_preconditioner(A_csr: csr_matrix, **kwargs: typing.Any) -> LinearOperator:
    """
    Creates an Incomplete LU (ILU) preconditioner using `spilu`.

    :param A_csr: The coefficient matrix. Converted to CSC for `spilu`.
    """
    A_csc = A_csr.tocsc()
    kwargs.setdefault("drop_tol", 1e-4)
    kwargs.setdefault("fill_factor", 10)
    ilu_factor = spilu(A_csc, **kwargs)
    return LinearOperator(shape=A_csc.shape, matvec=ilu_factor.solve)  # type: ignore[arg-type]


_PRECONDITIONER_FACTORIES: typing.Dict[str, typing.Callable[[csr_matrix], LinearOperator]] = {
    "ilu": build_ilu_preconditioner,
    "amg": build_amg_preconditioner,
    "diagonal": build_diagonal_preconditioner,
}

_KRYLOV_SOLVERS = {"bicgstab": bicgstab, "gmres": gmres, "cg": cg}


def _direct_solve(A_csr: csr_matrix, b: np.ndarray) -> np.ndarray:
    x = spsolve(A_csr.tocsc(), b)
    return np.atleast_1d(np.asarray(x, dtype=np.float64))


def solve_linear_system(
    A_csr: csr_matrix,
    b: np.ndarray,
    solver: str = "direct",
    preconditioner: typing.Optional[str] = "ilu",
    rtol: float = 1e-10,
    atol: typing.Optional[float] = None,
    max_iterations: int = 500,
    fallback_to_direct: bool = True,
) -> np.ndarray:
    """
    Solve `A x = b` with a direct or a preconditioned Krylov solver.

    :param A_csr: Square coefficient matrix.
    :param b: Right-hand side.
    :param solver: "direct", "bicgstab", "gmres" or "cg".
    :param preconditioner: "ilu", "amg", "diagonal" or None. Ignored by the direct solver.
    :param rtol: Relative tolerance of the Krylov solvers.
    :param atol: Absolute tolerance of the Krylov solvers. Defaults to `rtol * |b|`.
    :param max_iterations: Iteration cap of the Krylov solvers.
    :param fallback_to_direct: Solve directly when the Krylov solver does not converge.
    :return: The solution.
    :raises PreconditionerError: If the preconditioner cannot be built.
    :raises SolverError: If the system cannot be solved.
    :raises ComputationError: If the solution is not finite.
    """
    A_csr = csr_matrix(A_csr)
    b = np.asarray(b, dtype=np.float64).ravel()
    if A_csr.shape[0] != A_csr.shape[1] or A_csr.shape[0] != b.size:
        raise ValidationError(
            f"Cannot solve a {A_csr.shape} system with a right-hand side of size {b.size}"
        )
    if b.size == 0:
        return b.copy()

    if solver == "direct":
        x = _direct_solve(A_csr, b)
    elif solver in _KRYLOV_SOLVERS:
        M = None
        if preconditioner is not None:
            if preconditioner not in _PRECONDITIONER_FACTORIES:
                raise ValidationError(
                    f"Unknown preconditioner type: {preconditioner!r}. "
                    f"Available preconditioners: {list(_PRECONDITIONER_FACTORIES)}"
                )
            try:
                M = _PRECONDITIONER_FACTORIES[preconditioner](A_csr)
            except (RuntimeError, ValueError, ArithmeticError) as exc:
                raise PreconditionerError(f"Error building preconditioner: {exc}") from exc

        atol = atol if atol is not None else float(rtol * np.linalg.norm(b))
        x, info = _KRYLOV_SOLVERS[solver](
            A_csr, b, M=M, rtol=rtol, atol=atol, maxiter=max_iterations
        )
        if info != 0:
            logger.warning(
                f"Solver {solver!r} failed to converge within {max_iterations} iterations. Info: {info}"
            )
            if not fallback_to_direct:
                raise SolverError(
                    f"Solver {solver!r} failed to converge within {max_iterations} iterations"
                )
            logger.warning("Falling back to direct solver (spsolve).")
            x = _direct_solve(A_csr, b)
    else:
        raise ValidationError(
            f"Unknown solver type: {solver!r}. Available solvers: {['direct', *_KRYLOV_SOLVERS]}"
        )

    if not np.all(np.isfinite(x)):
        raise ComputationError("Linear solve produced non-finite values")
    return np.ascontiguousarray(x)


def solve_linearized_problem(
    problem, config: typing.Optional[Config] = None
) -> typing.Dict[str, np.ndarray]:
    """
    Newton increments of a linearized problem: solve `J dx = -r` and split
    `dx` by primary variable.
    """
    config = config or Config()
    jacobian = problem.jacobian()
    residual = problem.residual_vector()
    if jacobian.shape[0] != jacobian.shape[1]:
        raise SolverError(
            f"Problem has {jacobian.shape[0]} equations for {jacobian.shape[1]} unknowns"
        )
    dx = solve_linear_system(
        jacobian,
        -residual,
        solver=config.linear_solver,
        preconditioner=config.preconditioner,
        rtol=config.linear_tolerance,
        max_iterations=config.max_linear_iterations,
        fallback_to_direct=config.fallback_to_direct,
    )
    return problem.split_increment(dx)
