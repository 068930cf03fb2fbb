import numpy as np
import pytest

from resad.ad import (
    ADArray,
    DiagonalJacobian,
    ZeroJacobian,
    exp,
    initialize_variables,
    interp,
    is_zero_block,
    log,
    spread,
    accumulate_at,
    to_sparse,
    where,
)
from resad.errors import ValidationError


def dense(block):
    return to_sparse(block).toarray()


def test_primary_variables_have_identity_and_zero_blocks():
    x, y = initialize_variables(np.array([1.0, 2.0]), np.array([3.0, 4.0, 5.0]))

    assert isinstance(x.jac[0], DiagonalJacobian)
    assert is_zero_block(x.jac[1])
    assert x.jac[1].shape == (2, 3)
    np.testing.assert_array_equal(dense(y.jac[1]), np.eye(3))


def test_product_rule():
    x, y = initialize_variables(np.array([1.0, 2.0]), np.array([3.0, 4.0]))
    z = x * y + 2.0 * x

    np.testing.assert_allclose(z.value, [5.0, 12.0])
    np.testing.assert_allclose(dense(z.jac[0]), np.diag([5.0, 6.0]))
    np.testing.assert_allclose(dense(z.jac[1]), np.diag([1.0, 2.0]))


def test_quotient_and_reflected_operators():
    (x,) = initialize_variables(np.array([2.0, 4.0]))
    z = 1.0 / x
    w = 3.0 - x

    np.testing.assert_allclose(z.value, [0.5, 0.25])
    np.testing.assert_allclose(dense(z.jac[0]), np.diag([-0.25, -1.0 / 16.0]))
    np.testing.assert_allclose(w.value, [1.0, -1.0])
    np.testing.assert_allclose(dense(w.jac[0]), -np.eye(2))


def test_numpy_arrays_on_the_left_defer_to_ad():
    (x,) = initialize_variables(np.array([1.0, 2.0]))
    z = np.array([2.0, 3.0]) * x

    assert isinstance(z, ADArray)
    np.testing.assert_allclose(dense(z.jac[0]), np.diag([2.0, 3.0]))


def test_power_exp_and_log():
    (x,) = initialize_variables(np.array([1.0, 2.0]))

    np.testing.assert_allclose(dense((x**2).jac[0]), np.diag([2.0, 4.0]))
    np.testing.assert_allclose(dense(exp(x).jac[0]), np.diag(np.exp([1.0, 2.0])))
    np.testing.assert_allclose(dense(log(x).jac[0]), np.diag([1.0, 0.5]))


def test_zero_blocks_survive_arithmetic_with_constants():
    x, _ = initialize_variables(np.array([1.0]), np.array([2.0]))
    z = 4.0 * (x + 1.0)

    assert isinstance(z.jac[1], ZeroJacobian)


def test_where_takes_derivatives_from_the_selected_branch_only():
    (x,) = initialize_variables(np.array([1.0, 2.0]))
    bad = x * np.array([np.inf, np.inf])
    z = where(np.array([True, False]), x, bad)

    assert z.value[0] == 1.0
    assert np.all(np.isfinite(dense(z.jac[0])[0]))
    np.testing.assert_allclose(dense(z.jac[0])[0], [1.0, 0.0])


def test_where_with_plain_arrays_is_numpy_where():
    result = where(np.array([True, False]), np.array([1.0, 2.0]), 0.0)
    np.testing.assert_array_equal(result, [1.0, 0.0])


def test_interp_slope_and_constant_extrapolation():
    (x,) = initialize_variables(np.array([0.5, 2.0]))
    z = interp(x, np.array([0.0, 1.0]), np.array([0.0, 2.0]))

    np.testing.assert_allclose(z.value, [1.0, 2.0])
    np.testing.assert_allclose(dense(z.jac[0]), np.diag([2.0, 0.0]))


def test_interp_rejects_unsorted_tables():
    with pytest.raises(ValidationError):
        interp(np.array([0.5]), np.array([1.0, 0.0]), np.array([0.0, 1.0]))


def test_comparisons_act_on_values():
    (x,) = initialize_variables(np.array([1.0, 3.0]))
    np.testing.assert_array_equal(x > 2.0, [False, True])
    np.testing.assert_array_equal(x <= 1.0, [True, False])


def test_indexing_selects_rows():
    (x,) = initialize_variables(np.array([1.0, 2.0, 3.0]))
    z = x[np.array([2, 0])]

    np.testing.assert_allclose(z.value, [3.0, 1.0])
    np.testing.assert_allclose(dense(z.jac[0]), [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0]])


def test_accumulate_and_spread():
    (x,) = initialize_variables(np.array([1.0, 2.0]))
    spread_x = spread(x, np.array([2, 1]))
    summed = accumulate_at(np.array([0, 0, 1]), spread_x, 2)

    np.testing.assert_allclose(spread_x.value, [1.0, 1.0, 2.0])
    np.testing.assert_allclose(summed.value, [2.0, 2.0])
    np.testing.assert_allclose(dense(summed.jac[0]), np.diag([2.0, 1.0]))


def test_mismatched_variables_are_rejected():
    (x,) = initialize_variables(np.array([1.0]))
    y, _ = initialize_variables(np.array([1.0]), np.array([1.0]))
    with pytest.raises(ValidationError):
        x + y
