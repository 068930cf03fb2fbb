"""
Discrete two-point flux operators on interior faces.

Each interior face `f` has an ordered neighbor pair `(N1, N2)`. A positive
face flux leaves `N1` and enters `N2`. With the face-by-cell signed incidence
matrix `C` (`C[f, N1] = +1`, `C[f, N2] = -1`):

- `grad(x) = -C @ x`, i.e. `x[N2] - x[N1]`,
- `div(v) = C.T @ v`, the sum of fluxes leaving each cell.

So `div` is exactly `-grad.T` and sums to zero over the domain for any face
quantity.
"""

import logging
import typing

import attrs
import numpy as np
import scipy.sparse as sps

from resad.ad.forward import ADArray
from resad.ad.functions import apply_matrix
from resad.ad.jacobians import (
    DiagonalJacobian,
    JacobianBlock,
    ZeroJacobian,
    left_multiply_block,
    select_block_rows,
    to_sparse,
)
from resad.errors import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "DiscreteOperators",
    "build_operators",
    "discrete_divergence",
    "divergence_jacobian",
    "compute_half_transmissibilities",
]


def divergence_jacobian(
    block: JacobianBlock, divergence_matrix: sps.spmatrix
) -> JacobianBlock:
    """
    Map a face Jacobian block to the cell divergence Jacobian block, `C.T @ J`.

    :param block: Jacobian block of a face quantity (faces x variable size).
    :param divergence_matrix: The cell-by-face divergence matrix `C.T`.
    :return: A block of shape (cells x variable size).
    """
    num_cells = divergence_matrix.shape[0]
    if isinstance(block, ZeroJacobian):
        return ZeroJacobian((num_cells, block.shape[1]))
    if isinstance(block, DiagonalJacobian):
        # Reference semantics: compose through the sparse form
        return (divergence_matrix @ block.to_sparse()).tocsr()
    if block.nnz == 0:
        return sps.csr_matrix((num_cells, block.shape[1]))
    return left_multiply_block(divergence_matrix, block)


def discrete_divergence(
    v: typing.Any,
    neighbors: np.ndarray,
    num_cells: int,
    divergence_matrix: sps.spmatrix,
) -> typing.Any:
    """
    Per-cell sum of outgoing face fluxes.

    :param v: Face quantity, a plain array or an `ADArray`.
    :param neighbors: (faces x 2) neighbor cells of the interior faces.
    :param num_cells: Number of cells.
    :param divergence_matrix: The cell-by-face divergence matrix `C.T`.
    """
    values = np.asarray(v.value if isinstance(v, ADArray) else v, dtype=np.float64)
    accumulated = np.bincount(
        neighbors[:, 0], weights=values, minlength=num_cells
    ) - np.bincount(neighbors[:, 1], weights=values, minlength=num_cells)
    if not isinstance(v, ADArray):
        return accumulated
    return ADArray(
        accumulated,
        [divergence_jacobian(block, divergence_matrix) for block in v.jac],
    )


@attrs.frozen
class DiscreteOperators:
    """
    Transmissibilities, pore volumes and difference operators on interior faces.

    Built once per grid and read-only afterwards.
    """

    neighbors: np.ndarray = attrs.field(converter=lambda n: np.asarray(n, dtype=np.int64))
    """(faces x 2) ordered neighbor cells of each interior face."""
    num_cells: int
    """Number of cells."""
    transmissibility: np.ndarray
    """Transmissibility of each interior face (`T`)."""
    pore_volume: np.ndarray
    """Pore volume of each cell (`pv`)."""
    all_face_transmissibility: typing.Optional[np.ndarray] = None
    """Transmissibility of every grid face, boundary faces included."""
    interior_faces: typing.Optional[np.ndarray] = None
    """Grid face index of each interior face."""
    pore_volume_matrix: typing.Optional[np.ndarray] = None
    """Pore volume of the matrix continuum of dual-porosity models."""
    connection_matrix: sps.csr_matrix = attrs.field(init=False, eq=False, repr=False)
    divergence_matrix: sps.csr_matrix = attrs.field(init=False, eq=False, repr=False)
    average_matrix: sps.csr_matrix = attrs.field(init=False, eq=False, repr=False)

    def __attrs_post_init__(self) -> None:
        neighbors = self.neighbors
        if neighbors.ndim != 2 or neighbors.shape[1] != 2:
            raise ValidationError(
                f"Neighbors must have shape (faces, 2), got {neighbors.shape}"
            )
        if neighbors.size and (neighbors.min() < 0 or neighbors.max() >= self.num_cells):
            raise ValidationError(
                "Interior face neighbors must reference existing cells"
            )
        num_faces = neighbors.shape[0]
        if np.shape(self.transmissibility) != (num_faces,):
            raise ValidationError(
                f"Expected {num_faces} transmissibilities, got {np.shape(self.transmissibility)}"
            )
        if np.shape(self.pore_volume) != (self.num_cells,):
            raise ValidationError(
                f"Expected {self.num_cells} pore volumes, got {np.shape(self.pore_volume)}"
            )

        faces = np.arange(num_faces)
        connection = sps.csr_matrix(
            (
                np.concatenate([np.ones(num_faces), -np.ones(num_faces)]),
                (np.concatenate([faces, faces]), neighbors.T.ravel()),
            ),
            shape=(num_faces, self.num_cells),
        )
        average = sps.csr_matrix(
            (
                np.full(2 * num_faces, 0.5),
                (np.concatenate([faces, faces]), neighbors.T.ravel()),
            ),
            shape=(num_faces, self.num_cells),
        )
        object.__setattr__(self, "connection_matrix", connection)
        object.__setattr__(self, "divergence_matrix", connection.T.tocsr())
        object.__setattr__(self, "average_matrix", average)

    @property
    def num_faces(self) -> int:
        return self.neighbors.shape[0]

    @property
    def gradient_matrix(self) -> sps.csr_matrix:
        return (-self.connection_matrix).tocsr()

    def grad(self, x: typing.Any) -> typing.Any:
        """Per-face difference `x[N2] - x[N1]`."""
        return apply_matrix(self.gradient_matrix, x)

    def div(self, v: typing.Any) -> typing.Any:
        """Per-cell sum of the face quantity `v` leaving the cell."""
        return discrete_divergence(
            v, self.neighbors, self.num_cells, self.divergence_matrix
        )

    def face_average(self, x: typing.Any) -> typing.Any:
        """Arithmetic mean of the two neighbor values on every face."""
        return apply_matrix(self.average_matrix, x)

    def upstream_cells(self, flag: np.ndarray) -> np.ndarray:
        flag = np.asarray(flag, dtype=bool)
        return np.where(flag, self.neighbors[:, 0], self.neighbors[:, 1])

    def face_upstream(self, flag: np.ndarray, x: typing.Any) -> typing.Any:
        """
        Upstream value of `x` on every face: `x[N1]` where `flag` holds, `x[N2]` elsewhere.

        Applied as a 0/1 selection matrix. Diagonal Jacobian blocks are
        selected row-wise, which yields the same matrix in the same structure.
        """
        upstream = self.upstream_cells(flag)
        selection = sps.csr_matrix(
            (np.ones(self.num_faces), (np.arange(self.num_faces), upstream)),
            shape=(self.num_faces, self.num_cells),
        )
        if not isinstance(x, ADArray):
            return selection @ np.asarray(x, dtype=np.float64)

        jac = []
        for block in x.jac:
            if isinstance(block, DiagonalJacobian):
                jac.append(select_block_rows(block, upstream))
            else:
                jac.append(left_multiply_block(selection, block))
        return ADArray(selection @ x.value, jac)


def compute_half_transmissibilities(grid, rock) -> np.ndarray:
    """
    Two-point half transmissibility of every half face: `k_axis * area / distance`.

    :param grid: `Grid` with half-face tables.
    :param rock: `RockProperties` with axis permeabilities.
    """
    permeability = rock.permeability.as_array()
    if permeability.shape[0] != grid.num_cells:
        raise ValidationError(
            f"Permeability is given for {permeability.shape[0]} cells, grid has {grid.num_cells}"
        )
    return (
        permeability[grid.half_face_cells, grid.half_face_axes]
        * grid.half_face_factors
    )


def build_operators(
    grid,
    rock,
    neighbors: typing.Optional[np.ndarray] = None,
    transmissibility: typing.Optional[np.ndarray] = None,
    pore_volume: typing.Optional[np.ndarray] = None,
    transmissibility_multipliers: typing.Optional[np.ndarray] = None,
    pore_volume_matrix: typing.Optional[np.ndarray] = None,
) -> DiscreteOperators:
    """
    Build the discrete operators of a grid.

    :param grid: The `Grid`.
    :param rock: The `RockProperties` of the grid.
    :param neighbors: Explicit interior face neighbor pairs. When given, every
        row is an interior face and `transmissibility` is indexed the same way.
    :param transmissibility: Face transmissibilities, overriding the two-point
        computation from rock permeability.
    :param pore_volume: Cell pore volumes. Defaults to the grid's pore volume,
        then to porosity times cell volume.
    :param transmissibility_multipliers: Per grid face multipliers applied to
        the half transmissibilities before harmonic averaging. Defaults to the
        rock's multipliers when present.
    :param pore_volume_matrix: Pore volume of the matrix continuum, for
        dual-porosity models.
    :return: The operators bundle.
    """
    if neighbors is None:
        face_neighbors = np.asarray(grid.face_neighbors, dtype=np.int64)
        interior = np.flatnonzero(np.all(face_neighbors >= 0, axis=1))
        neighbors = face_neighbors[interior]
    else:
        neighbors = np.asarray(neighbors, dtype=np.int64)
        interior = np.arange(neighbors.shape[0])

    if transmissibility is None:
        half_transmissibility = compute_half_transmissibilities(grid, rock)
        if transmissibility_multipliers is None:
            transmissibility_multipliers = rock.transmissibility_multipliers
        if transmissibility_multipliers is not None:
            multipliers = np.asarray(transmissibility_multipliers, dtype=np.float64)
            half_transmissibility = (
                half_transmissibility * multipliers[grid.half_face_faces]
            )
        with np.errstate(divide="ignore"):
            inverse_sum = np.bincount(
                grid.half_face_faces,
                weights=1.0 / half_transmissibility,
                minlength=grid.num_faces,
            )
            all_face_transmissibility = 1.0 / inverse_sum
    else:
        all_face_transmissibility = np.asarray(transmissibility, dtype=np.float64)
    face_transmissibility = all_face_transmissibility[interior]

    if pore_volume is None:
        if grid.pore_volume is not None:
            pore_volume = grid.pore_volume
        else:
            pore_volume = rock.porosity * grid.cell_volumes
    pore_volume = np.asarray(pore_volume, dtype=np.float64)

    logger.debug(
        f"Built operators for {grid.num_cells} cells and {neighbors.shape[0]} interior faces"
    )
    return DiscreteOperators(
        neighbors=neighbors,
        num_cells=grid.num_cells,
        transmissibility=face_transmissibility,
        pore_volume=pore_volume,
        all_face_transmissibility=all_face_transmissibility,
        interior_faces=interior,
        pore_volume_matrix=(
            None
            if pore_volume_matrix is None
            else np.asarray(pore_volume_matrix, dtype=np.float64)
        ),
    )
