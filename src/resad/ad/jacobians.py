"""
Jacobian block representations and the block-level algebra used by `ADArray`.

A block is the partial derivative of an AD quantity with respect to one
primary variable. Three representations are supported:

- a `scipy.sparse` matrix (CSR),
- `ZeroJacobian`, a shape-only sentinel for blocks known to be zero,
- `DiagonalJacobian`, a matrix with at most one nonzero per row, found at a
  known column. Cell-wise functions of primary variables and their face
  upstream values have this structure.
"""

import typing

import numpy as np
import scipy.sparse as sps

from resad.errors import ValidationError

__all__ = [
    "ZeroJacobian",
    "DiagonalJacobian",
    "JacobianBlock",
    "is_zero_block",
    "to_sparse",
    "add_blocks",
    "negate_block",
    "scale_block_rows",
    "select_block_rows",
    "mask_block_rows",
    "left_multiply_block",
]


class ZeroJacobian:
    """Sentinel for an all-zero Jacobian block of a given shape."""

    __slots__ = ("shape",)

    def __init__(self, shape: typing.Tuple[int, int]) -> None:
        self.shape = (int(shape[0]), int(shape[1]))

    @property
    def nnz(self) -> int:
        return 0

    def to_sparse(self) -> sps.csr_matrix:
        return sps.csr_matrix(self.shape)

    def __repr__(self) -> str:
        return f"ZeroJacobian(shape={self.shape})"


class DiagonalJacobian:
    """
    Jacobian block with a single (possibly zero) entry per row.

    Row `i` holds `diagonal[i]` in column `columns[i]`. Without explicit
    columns the block is a square diagonal matrix.
    """

    __slots__ = ("diagonal", "columns", "num_columns")

    def __init__(
        self,
        diagonal: np.ndarray,
        columns: typing.Optional[np.ndarray] = None,
        num_columns: typing.Optional[int] = None,
    ) -> None:
        self.diagonal = np.asarray(diagonal, dtype=np.float64).ravel()
        if columns is None:
            columns = np.arange(self.diagonal.size)
        self.columns = np.asarray(columns, dtype=np.int64).ravel()
        if self.columns.size != self.diagonal.size:
            raise ValidationError(
                f"Diagonal Jacobian has {self.diagonal.size} entries but "
                f"{self.columns.size} column indices"
            )
        if num_columns is None:
            num_columns = self.diagonal.size
        self.num_columns = int(num_columns)

    @property
    def shape(self) -> typing.Tuple[int, int]:
        return (self.diagonal.size, self.num_columns)

    @property
    def nnz(self) -> int:
        return int(np.count_nonzero(self.diagonal))

    def to_sparse(self) -> sps.csr_matrix:
        rows = np.arange(self.diagonal.size)
        return sps.csr_matrix(
            (self.diagonal, (rows, self.columns)), shape=self.shape
        )

    def __repr__(self) -> str:
        return f"DiagonalJacobian(shape={self.shape})"


JacobianBlock = typing.Union[sps.spmatrix, ZeroJacobian, DiagonalJacobian]


def is_zero_block(block: JacobianBlock) -> bool:
    return isinstance(block, ZeroJacobian)


def to_sparse(block: JacobianBlock) -> sps.csr_matrix:
    """Convert any block representation to a CSR matrix."""
    if isinstance(block, (ZeroJacobian, DiagonalJacobian)):
        return block.to_sparse()
    return sps.csr_matrix(block)


def _check_same_shape(a: JacobianBlock, b: JacobianBlock) -> None:
    if a.shape != b.shape:
        raise ValidationError(
            f"Jacobian blocks have incompatible shapes {a.shape} and {b.shape}"
        )


def add_blocks(a: JacobianBlock, b: JacobianBlock) -> JacobianBlock:
    _check_same_shape(a, b)
    if isinstance(a, ZeroJacobian):
        return b
    if isinstance(b, ZeroJacobian):
        return a
    if (
        isinstance(a, DiagonalJacobian)
        and isinstance(b, DiagonalJacobian)
        and np.array_equal(a.columns, b.columns)
    ):
        return DiagonalJacobian(a.diagonal + b.diagonal, a.columns, a.num_columns)
    return (to_sparse(a) + to_sparse(b)).tocsr()


def negate_block(block: JacobianBlock) -> JacobianBlock:
    if isinstance(block, ZeroJacobian):
        return block
    if isinstance(block, DiagonalJacobian):
        return DiagonalJacobian(-block.diagonal, block.columns, block.num_columns)
    return -block


def scale_block_rows(
    block: JacobianBlock, factor: typing.Union[float, np.ndarray]
) -> JacobianBlock:
    """
    Multiply row `i` of the block by `factor[i]` (or every row by a scalar).

    Equivalent to `diag(factor) @ block`.
    """
    if isinstance(block, ZeroJacobian):
        return block
    if np.ndim(factor) == 0:
        factor = float(factor)
        if isinstance(block, DiagonalJacobian):
            return DiagonalJacobian(
                block.diagonal * factor, block.columns, block.num_columns
            )
        return (block * factor).tocsr()

    factor = np.broadcast_to(
        np.asarray(factor, dtype=np.float64).ravel(), (block.shape[0],)
    )
    if isinstance(block, DiagonalJacobian):
        return DiagonalJacobian(
            block.diagonal * factor, block.columns, block.num_columns
        )
    return (sps.diags(factor) @ block).tocsr()


def mask_block_rows(block: JacobianBlock, keep: np.ndarray) -> JacobianBlock:
    """
    Zero every row of the block where `keep` is false.

    Unlike scaling by 0, this also clears rows holding infinite or NaN entries.
    """
    if isinstance(block, ZeroJacobian):
        return block
    keep = np.broadcast_to(np.asarray(keep, dtype=bool).ravel(), (block.shape[0],))
    if isinstance(block, DiagonalJacobian):
        return DiagonalJacobian(
            np.where(keep, block.diagonal, 0.0), block.columns, block.num_columns
        )
    matrix = sps.csr_matrix(block, copy=True)
    rows = np.repeat(np.arange(matrix.shape[0]), np.diff(matrix.indptr))
    matrix.data = np.where(keep[rows], matrix.data, 0.0)
    matrix.eliminate_zeros()
    return matrix


def select_block_rows(block: JacobianBlock, rows: np.ndarray) -> JacobianBlock:
    """Return the rows `rows` of the block, in order (`block[rows]`)."""
    rows = np.asarray(rows, dtype=np.int64)
    if isinstance(block, ZeroJacobian):
        return ZeroJacobian((rows.size, block.shape[1]))
    if isinstance(block, DiagonalJacobian):
        return DiagonalJacobian(
            block.diagonal[rows], block.columns[rows], block.num_columns
        )
    return sps.csr_matrix(block)[rows]


def left_multiply_block(matrix: sps.spmatrix, block: JacobianBlock) -> JacobianBlock:
    """Return `matrix @ block` for a sparse linear map `matrix`."""
    if matrix.shape[1] != block.shape[0]:
        raise ValidationError(
            f"Cannot multiply a {matrix.shape} matrix with a {block.shape} Jacobian block"
        )
    if isinstance(block, ZeroJacobian):
        return ZeroJacobian((matrix.shape[0], block.shape[1]))
    return (matrix @ to_sparse(block)).tocsr()
