"""Grid topology and a regular Cartesian grid builder."""

import logging
import typing

import attrs
import numba
import numpy as np

from resad.errors import ValidationError
from resad.types import ThreeDimensions

logger = logging.getLogger(__name__)

__all__ = ["Grid", "build_cartesian_grid"]


@attrs.frozen
class Grid:
    """
    Immutable cell/face topology with the geometric data needed for
    two-point flux approximations.

    Faces on the outer boundary have `-1` for their missing neighbor.
    """

    num_cells: int
    """Number of cells."""
    face_neighbors: np.ndarray
    """(faces x 2) cells on either side of each face, `-1` outside the grid."""
    cell_volumes: np.ndarray
    """Bulk volume of each cell."""
    cell_centroids: np.ndarray
    """(cells x 3) cell centroids. The third coordinate is depth, positive downwards."""
    half_face_cells: np.ndarray
    """Cell of each half face."""
    half_face_faces: np.ndarray
    """Face of each half face."""
    half_face_factors: np.ndarray
    """Geometric half-transmissibility factor, face area over centroid-to-face distance."""
    half_face_axes: np.ndarray
    """Permeability axis (0, 1, 2) used by each half face."""
    pore_volume: typing.Optional[np.ndarray] = None
    """Explicit pore volumes, overriding porosity times bulk volume."""
    dimensions: typing.Optional[ThreeDimensions] = None
    """Number of cells along x, y and z for Cartesian grids."""
    cell_size: typing.Optional[typing.Tuple[float, float, float]] = None
    """Cell size along x, y and z for Cartesian grids."""

    def __attrs_post_init__(self) -> None:
        if self.face_neighbors.ndim != 2 or self.face_neighbors.shape[1] != 2:
            raise ValidationError("Face neighbors must have shape (faces, 2)")
        if self.cell_volumes.shape != (self.num_cells,):
            raise ValidationError(
                f"Expected {self.num_cells} cell volumes, got {self.cell_volumes.shape}"
            )
        if np.any(self.cell_volumes <= 0.0):
            raise ValidationError("Cell volumes must be positive")
        sizes = {
            self.half_face_cells.size,
            self.half_face_faces.size,
            self.half_face_factors.size,
            self.half_face_axes.size,
        }
        if len(sizes) != 1:
            raise ValidationError("Half-face tables must have the same length")

    @property
    def num_faces(self) -> int:
        return self.face_neighbors.shape[0]

    @property
    def depths(self) -> np.ndarray:
        return self.cell_centroids[:, 2]

    def cell_index(self, i: int, j: int, k: int) -> int:
        """Linear index of Cartesian cell `(i, j, k)`, x fastest."""
        if self.dimensions is None:
            raise ValidationError("Cell (i, j, k) indexing needs a Cartesian grid")
        nx, ny, nz = self.dimensions
        if not (0 <= i < nx and 0 <= j < ny and 0 <= k < nz):
            raise ValidationError(
                f"Cell ({i}, {j}, {k}) is outside the grid of dimensions {self.dimensions}"
            )
        return i + nx * (j + ny * k)


@numba.njit(cache=True)
def _build_cartesian_faces(nx, ny, nz, dx, dy, dz):
    num_cells = nx * ny * nz
    num_faces = (nx + 1) * ny * nz + nx * (ny + 1) * nz + nx * ny * (nz + 1)
    neighbors = np.full((num_faces, 2), -1, dtype=np.int64)
    hf_cells = np.empty(6 * num_cells, dtype=np.int64)
    hf_faces = np.empty(6 * num_cells, dtype=np.int64)
    hf_factors = np.empty(6 * num_cells, dtype=np.float64)
    hf_axes = np.empty(6 * num_cells, dtype=np.int64)

    face = 0
    half_face = 0
    # Faces normal to x
    factor = (dy * dz) / (0.5 * dx)
    for k in range(nz):
        for j in range(ny):
            for i in range(nx + 1):
                if i > 0:
                    cell = (i - 1) + nx * (j + ny * k)
                    neighbors[face, 0] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 0
                    half_face += 1
                if i < nx:
                    cell = i + nx * (j + ny * k)
                    neighbors[face, 1] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 0
                    half_face += 1
                face += 1
    # Faces normal to y
    factor = (dx * dz) / (0.5 * dy)
    for k in range(nz):
        for j in range(ny + 1):
            for i in range(nx):
                if j > 0:
                    cell = i + nx * ((j - 1) + ny * k)
                    neighbors[face, 0] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 1
                    half_face += 1
                if j < ny:
                    cell = i + nx * (j + ny * k)
                    neighbors[face, 1] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 1
                    half_face += 1
                face += 1
    # Faces normal to z
    factor = (dx * dy) / (0.5 * dz)
    for k in range(nz + 1):
        for j in range(ny):
            for i in range(nx):
                if k > 0:
                    cell = i + nx * (j + ny * (k - 1))
                    neighbors[face, 0] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 2
                    half_face += 1
                if k < nz:
                    cell = i + nx * (j + ny * k)
                    neighbors[face, 1] = cell
                    hf_cells[half_face] = cell
                    hf_faces[half_face] = face
                    hf_factors[half_face] = factor
                    hf_axes[half_face] = 2
                    half_face += 1
                face += 1
    return neighbors, hf_cells, hf_faces, hf_factors, hf_axes


def build_cartesian_grid(
    dimensions: ThreeDimensions,
    cell_size: typing.Tuple[float, float, float] = (1.0, 1.0, 1.0),
    top_depth: float = 0.0,
    pore_volume: typing.Optional[np.ndarray] = None,
) -> Grid:
    """
    Build a regular Cartesian grid.

    Cells are numbered with x fastest, then y, then z (downwards).

    :param dimensions: Number of cells along x, y and z.
    :param cell_size: Cell size along x, y and z.
    :param top_depth: Depth of the top face of the first layer.
    :param pore_volume: Optional explicit pore volume per cell.
    :return: The grid.
    """
    nx, ny, nz = (int(n) for n in dimensions)
    if min(nx, ny, nz) < 1:
        raise ValidationError(f"Grid dimensions must be positive, got {dimensions}")
    dx, dy, dz = (float(size) for size in cell_size)
    if min(dx, dy, dz) <= 0.0:
        raise ValidationError(f"Cell sizes must be positive, got {cell_size}")

    neighbors, hf_cells, hf_faces, hf_factors, hf_axes = _build_cartesian_faces(
        nx, ny, nz, dx, dy, dz
    )
    num_cells = nx * ny * nz
    i, j, k = np.meshgrid(np.arange(nx), np.arange(ny), np.arange(nz), indexing="ij")
    # Flatten in Fortran order so that x varies fastest
    centroids = np.column_stack(
        [
            (i.ravel(order="F") + 0.5) * dx,
            (j.ravel(order="F") + 0.5) * dy,
            top_depth + (k.ravel(order="F") + 0.5) * dz,
        ]
    )
    logger.debug(f"Built Cartesian grid {nx}x{ny}x{nz} with {neighbors.shape[0]} faces")
    return Grid(
        num_cells=num_cells,
        face_neighbors=neighbors,
        cell_volumes=np.full(num_cells, dx * dy * dz),
        cell_centroids=centroids,
        half_face_cells=hf_cells,
        half_face_faces=hf_faces,
        half_face_factors=hf_factors,
        half_face_axes=hf_axes,
        pore_volume=None if pore_volume is None else np.asarray(pore_volume, dtype=np.float64),
        dimensions=(nx, ny, nz),
        cell_size=(dx, dy, dz),
    )
