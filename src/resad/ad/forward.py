"""Forward-mode automatic differentiation on cell and face arrays."""

import typing

import numpy as np
import scipy.sparse as sps

from resad.ad.jacobians import (
    DiagonalJacobian,
    JacobianBlock,
    ZeroJacobian,
    add_blocks,
    negate_block,
    scale_block_rows,
    select_block_rows,
    to_sparse,
)
from resad.errors import ValidationError

__all__ = ["ADArray", "initialize_variables", "value_of"]


class ADArray:
    """
    A value vector carrying its partial derivatives with respect to every
    primary variable.

    `jac[k]` is the Jacobian block of the value with respect to the k-th
    primary variable, in the order in which the variables were initialized.
    All arithmetic keeps that order.

    Numpy arrays and scalars on the left of an operator defer to `ADArray`, so
    `mask * x` and `2.0 - x` produce `ADArray` instances.
    """

    __slots__ = ("value", "jac")
    __array_ufunc__ = None

    def __init__(
        self, value: np.ndarray, jac: typing.Sequence[JacobianBlock]
    ) -> None:
        self.value = np.asarray(value, dtype=np.float64).ravel()
        self.jac = list(jac)
        for block in self.jac:
            if block.shape[0] != self.value.size:
                raise ValidationError(
                    f"Jacobian block with {block.shape[0]} rows does not match "
                    f"value of size {self.value.size}"
                )

    @property
    def size(self) -> int:
        return self.value.size

    @property
    def num_variables(self) -> int:
        return len(self.jac)

    def __len__(self) -> int:
        return self.value.size

    def __repr__(self) -> str:
        return f"ADArray(size={self.size}, num_variables={self.num_variables})"

    def copy(self) -> "ADArray":
        return ADArray(self.value.copy(), list(self.jac))

    def full_jacobian(self) -> sps.csr_matrix:
        """Jacobian with respect to all primary variables, blocks side by side."""
        return sps.hstack([to_sparse(block) for block in self.jac], format="csr")

    def _check_compatible(self, other: "ADArray") -> None:
        if other.num_variables != self.num_variables:
            raise ValidationError(
                f"AD arrays differentiate with respect to {self.num_variables} and "
                f"{other.num_variables} variables"
            )
        if other.size != self.size:
            raise ValidationError(
                f"AD arrays have mismatched sizes {self.size} and {other.size}"
            )

    def __add__(self, other: typing.Any) -> "ADArray":
        if isinstance(other, ADArray):
            self._check_compatible(other)
            jac = [add_blocks(a, b) for a, b in zip(self.jac, other.jac)]
            return ADArray(self.value + other.value, jac)
        return ADArray(self.value + _as_values(other, self.size), self.jac)

    def __radd__(self, other: typing.Any) -> "ADArray":
        return self.__add__(other)

    def __neg__(self) -> "ADArray":
        return ADArray(-self.value, [negate_block(block) for block in self.jac])

    def __pos__(self) -> "ADArray":
        return self

    def __sub__(self, other: typing.Any) -> "ADArray":
        if isinstance(other, ADArray):
            return self.__add__(-other)
        return ADArray(self.value - _as_values(other, self.size), self.jac)

    def __rsub__(self, other: typing.Any) -> "ADArray":
        return (-self).__add__(other)

    def __mul__(self, other: typing.Any) -> "ADArray":
        if isinstance(other, ADArray):
            self._check_compatible(other)
            jac = [
                add_blocks(scale_block_rows(a, other.value), scale_block_rows(b, self.value))
                for a, b in zip(self.jac, other.jac)
            ]
            return ADArray(self.value * other.value, jac)
        factor = _as_factor(other)
        return ADArray(
            self.value * factor, [scale_block_rows(block, factor) for block in self.jac]
        )

    def __rmul__(self, other: typing.Any) -> "ADArray":
        return self.__mul__(other)

    def reciprocal(self) -> "ADArray":
        value = 1.0 / self.value
        return ADArray(
            value, [scale_block_rows(block, -(value**2)) for block in self.jac]
        )

    def __truediv__(self, other: typing.Any) -> "ADArray":
        if isinstance(other, ADArray):
            return self.__mul__(other.reciprocal())
        return self.__mul__(1.0 / _as_factor(other))

    def __rtruediv__(self, other: typing.Any) -> "ADArray":
        return self.reciprocal().__mul__(other)

    def __pow__(self, exponent: typing.Any) -> "ADArray":
        if isinstance(exponent, ADArray):
            self._check_compatible(exponent)
            value = self.value**exponent.value
            jac = [
                add_blocks(
                    scale_block_rows(
                        a, exponent.value * self.value ** (exponent.value - 1.0)
                    ),
                    scale_block_rows(b, value * np.log(self.value)),
                )
                for a, b in zip(self.jac, exponent.jac)
            ]
            return ADArray(value, jac)
        exponent = _as_factor(exponent)
        value = self.value**exponent
        derivative = exponent * self.value ** (exponent - 1.0)
        return ADArray(value, [scale_block_rows(block, derivative) for block in self.jac])

    def __rpow__(self, base: typing.Any) -> "ADArray":
        base = _as_factor(base)
        value = base**self.value
        return ADArray(
            value, [scale_block_rows(block, value * np.log(base)) for block in self.jac]
        )

    def __getitem__(self, index: typing.Any) -> "ADArray":
        rows = np.arange(self.size)[index]
        rows = np.atleast_1d(rows)
        return ADArray(
            self.value[rows], [select_block_rows(block, rows) for block in self.jac]
        )

    # Comparisons act on values and return boolean arrays
    def __lt__(self, other: typing.Any) -> np.ndarray:
        return self.value < value_of(other)

    def __le__(self, other: typing.Any) -> np.ndarray:
        return self.value <= value_of(other)

    def __gt__(self, other: typing.Any) -> np.ndarray:
        return self.value > value_of(other)

    def __ge__(self, other: typing.Any) -> np.ndarray:
        return self.value >= value_of(other)


def _as_factor(other: typing.Any) -> typing.Union[float, np.ndarray]:
    if np.ndim(other) == 0:
        return float(other)
    return np.asarray(other, dtype=np.float64).ravel()


def _as_values(other: typing.Any, size: int) -> np.ndarray:
    values = np.asarray(other, dtype=np.float64)
    if values.ndim == 0:
        return np.full(size, float(values))
    return values.ravel()


def value_of(value: typing.Any) -> typing.Any:
    """Numeric value of an AD array, or the input itself for plain numbers and arrays."""
    if isinstance(value, ADArray):
        return value.value
    return value


def initialize_variables(*values: np.ndarray) -> typing.List[ADArray]:
    """
    Declare primary variables.

    Each returned `ADArray` has one Jacobian block per argument: the identity
    for its own variable and a zero sentinel for all the others.

    :param values: Current values of the primary variables, in order.
    :return: The primary variables as AD arrays.
    """
    arrays = [np.asarray(value, dtype=np.float64).ravel() for value in values]
    sizes = [array.size for array in arrays]
    variables = []
    for index, array in enumerate(arrays):
        jac: typing.List[JacobianBlock] = [
            ZeroJacobian((array.size, size)) for size in sizes
        ]
        jac[index] = DiagonalJacobian(np.ones(array.size))
        variables.append(ADArray(array.copy(), jac))
    return variables
