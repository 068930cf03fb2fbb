"""Elementwise functions and linear maps that accept both plain arrays and `ADArray`s."""

import typing

import numpy as np
import scipy.sparse as sps

from resad.ad.forward import ADArray, value_of
from resad.ad.jacobians import (
    add_blocks,
    left_multiply_block,
    mask_block_rows,
    scale_block_rows,
)
from resad.errors import ValidationError

__all__ = [
    "exp",
    "log",
    "where",
    "interp",
    "apply_matrix",
    "accumulate_at",
    "spread",
]


def exp(x: typing.Any) -> typing.Any:
    if not isinstance(x, ADArray):
        return np.exp(x)
    value = np.exp(x.value)
    return ADArray(value, [scale_block_rows(block, value) for block in x.jac])


def log(x: typing.Any) -> typing.Any:
    if not isinstance(x, ADArray):
        return np.log(x)
    return ADArray(
        np.log(x.value), [scale_block_rows(block, 1.0 / x.value) for block in x.jac]
    )


def where(mask: np.ndarray, a: typing.Any, b: typing.Any) -> typing.Any:
    """
    Elementwise selection `mask ? a : b`.

    Derivatives are taken from the selected branch only, so infinite or NaN
    values in the discarded branch do not leak into the Jacobian.
    """
    mask = np.asarray(mask, dtype=bool)
    if not isinstance(a, ADArray) and not isinstance(b, ADArray):
        return np.where(mask, a, b)

    template = a if isinstance(a, ADArray) else b
    size = template.size
    mask = np.broadcast_to(mask, (size,))
    value = np.where(mask, value_of(a), value_of(b))
    jac = []
    for index in range(template.num_variables):
        block = None
        if isinstance(a, ADArray):
            block = mask_block_rows(a.jac[index], mask)
        if isinstance(b, ADArray):
            other = mask_block_rows(b.jac[index], ~mask)
            block = other if block is None else add_blocks(block, other)
        jac.append(block)
    return ADArray(value, jac)


def interp(x: typing.Any, xp: np.ndarray, fp: np.ndarray) -> typing.Any:
    """
    Piecewise linear interpolation with constant extrapolation, as `numpy.interp`.

    The derivative is the slope of the active segment, and zero outside the table.
    """
    xp = np.asarray(xp, dtype=np.float64)
    fp = np.asarray(fp, dtype=np.float64)
    if xp.ndim != 1 or xp.shape != fp.shape or xp.size < 2:
        raise ValidationError(
            "Interpolation tables must be one-dimensional with at least two matching entries"
        )
    if np.any(np.diff(xp) <= 0.0):
        raise ValidationError("Interpolation abscissae must be strictly increasing")

    values = np.interp(value_of(x), xp, fp)
    if not isinstance(x, ADArray):
        return values

    segment = np.clip(np.searchsorted(xp, x.value, side="right") - 1, 0, xp.size - 2)
    slopes = (fp[segment + 1] - fp[segment]) / (xp[segment + 1] - xp[segment])
    outside = (x.value < xp[0]) | (x.value > xp[-1])
    slopes = np.where(outside, 0.0, slopes)
    return ADArray(values, [scale_block_rows(block, slopes) for block in x.jac])


def apply_matrix(matrix: sps.spmatrix, x: typing.Any) -> typing.Any:
    """Apply the linear map `matrix` to a plain array or an `ADArray`."""
    if not isinstance(x, ADArray):
        return matrix @ np.asarray(x, dtype=np.float64)
    return ADArray(
        matrix @ x.value, [left_multiply_block(matrix, block) for block in x.jac]
    )


def accumulate_at(
    indices: np.ndarray, values: typing.Any, size: int
) -> typing.Any:
    """
    Sum `values` into an array of length `size` at positions `indices`.

    Repeated indices accumulate, like `numpy.add.at` on a zero array.
    """
    indices = np.asarray(indices, dtype=np.int64).ravel()
    scatter = sps.csr_matrix(
        (np.ones(indices.size), (indices, np.arange(indices.size))),
        shape=(size, indices.size),
    )
    if not isinstance(values, ADArray):
        values = np.broadcast_to(np.asarray(values, dtype=np.float64), (indices.size,))
    return apply_matrix(scatter, values)


def spread(x: typing.Any, counts: np.ndarray) -> typing.Any:
    """Repeat entry `i` of `x` `counts[i]` times, e.g. from wells to their perforations."""
    counts = np.asarray(counts, dtype=np.int64)
    rows = np.repeat(np.arange(counts.size), counts)
    if isinstance(x, ADArray):
        return x[rows]
    return np.asarray(x)[rows]
