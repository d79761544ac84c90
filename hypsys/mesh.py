from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class CartesianMesh:
    """
    A uniform mesh of segments (1D) or quadrilaterals (2D).

    Elements are numbered lexicographically, `e = ix + nx * iy`. Faces of an element
    are numbered 0: -x, 1: +x, 2: -y, 3: +y, so that face `f` of an element touches
    face `f ^ 1` of its neighbor.

    Args:
        nx, ny: Number of elements in x and y. `ny=1` gives a 1D mesh.
        xlim, ylim: Limits of the domain as tuples (min, max).
        periodic: Whether the mesh wraps around in x and y, respectively.

    Attributes:
        dim: Spatial dimension.
        n_elements: Number of elements.
        n_faces: Number of faces per element.
        h: Element side lengths. Has shape (dim,).
        face_neighbors: Neighbor element of each element face, -1 on the domain
            boundary. Has shape (n_elements, n_faces).
    """

    nx: int = 1
    ny: int = 1
    xlim: Tuple[float, float] = (0.0, 1.0)
    ylim: Tuple[float, float] = (0.0, 1.0)
    periodic: Tuple[bool, bool] = (False, False)

    def __post_init__(self):
        if any(n < 1 or not isinstance(n, (int, np.integer)) for n in (self.nx, self.ny)):
            raise ValueError("Mesh dimensions (nx, ny) must be positive integers.")
        if any(lower >= upper for lower, upper in (self.xlim, self.ylim)):
            raise ValueError(
                "Limits must be tuples of two values (min, max) with min < max."
            )

    @property
    def dim(self) -> int:
        return 1 if self.ny == 1 else 2

    @property
    def shape(self) -> Tuple[int, ...]:
        return (self.nx,) if self.dim == 1 else (self.nx, self.ny)

    @property
    def n_elements(self) -> int:
        return self.nx * self.ny

    @property
    def n_faces(self) -> int:
        return 2 * self.dim

    @property
    def lower(self) -> np.ndarray:
        return np.array([self.xlim[0], self.ylim[0]][: self.dim], dtype=float)

    @property
    def upper(self) -> np.ndarray:
        return np.array([self.xlim[1], self.ylim[1]][: self.dim], dtype=float)

    @property
    def h(self) -> np.ndarray:
        return (self.upper - self.lower) / np.array(self.shape)

    @property
    def volume(self) -> float:
        return float(np.prod(self.upper - self.lower))

    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.lower, self.upper

    def element_indices(self) -> np.ndarray:
        """
        Returns the (ix[, iy]) index of each element. Has shape (n_elements, dim).
        """
        e = np.arange(self.n_elements)
        return np.stack([e % self.nx, e // self.nx][: self.dim], axis=1)

    def element_origins(self) -> np.ndarray:
        """
        Returns the lower-left corner of each element. Has shape (n_elements, dim).
        """
        return self.lower + self.element_indices() * self.h

    @property
    def face_neighbors(self) -> np.ndarray:
        idx = self.element_indices()
        out = np.full((self.n_elements, self.n_faces), -1, dtype=int)
        for axis, n in enumerate(self.shape):
            for side, shift in enumerate((-1, 1)):
                nbr = idx.copy()
                nbr[:, axis] += shift
                if self.periodic[axis]:
                    nbr[:, axis] %= n
                inside = (nbr[:, axis] >= 0) & (nbr[:, axis] < n)
                e = nbr[:, 0] + (self.nx * nbr[:, 1] if self.dim == 2 else 0)
                out[:, 2 * axis + side] = np.where(inside, e, -1)
        return out

    def face_normal(self, f: int) -> np.ndarray:
        """
        Outward unit normal of face `f`.
        """
        n = np.zeros(self.dim)
        n[f // 2] = -1.0 if f % 2 == 0 else 1.0
        return n

    def vertices(self) -> np.ndarray:
        """
        Returns the vertex coordinates of the mesh, numbered lexicographically.
        """
        x = np.linspace(self.xlim[0], self.xlim[1], self.nx + 1)
        if self.dim == 1:
            return x[:, np.newaxis]
        y = np.linspace(self.ylim[0], self.ylim[1], self.ny + 1)
        X, Y = np.meshgrid(x, y, indexing="xy")
        return np.stack([X.ravel(), Y.ravel()], axis=1)

    def element_vertices(self) -> np.ndarray:
        """
        Returns the vertex ids of each element in counterclockwise order.
        """
        idx = self.element_indices()
        if self.dim == 1:
            return np.stack([idx[:, 0], idx[:, 0] + 1], axis=1)
        v0 = idx[:, 0] + (self.nx + 1) * idx[:, 1]
        return np.stack([v0, v0 + 1, v0 + self.nx + 2, v0 + self.nx + 1], axis=1)

    def refined(self) -> "CartesianMesh":
        """
        Returns the uniformly refined mesh.
        """
        return CartesianMesh(
            nx=2 * self.nx,
            ny=2 * self.ny if self.dim == 2 else 1,
            xlim=self.xlim,
            ylim=self.ylim,
            periodic=self.periodic,
        )

    def to_dict(self) -> dict:
        return dict(
            nx=self.nx,
            ny=self.ny,
            xlim=tuple(float(v) for v in self.xlim),
            ylim=tuple(float(v) for v in self.ylim),
            periodic=tuple(bool(v) for v in self.periodic),
        )


def partition_elements(mesh: CartesianMesh, nparts: int) -> np.ndarray:
    """
    Assign each element to one of `nparts` contiguous blocks of elements.

    Returns:
        Partition id of each element. Has shape (n_elements,).
    """
    if nparts < 1 or nparts > mesh.n_elements:
        raise ValueError(
            f"Cannot partition {mesh.n_elements} elements into {nparts} parts."
        )
    out = np.empty(mesh.n_elements, dtype=int)
    for part, block in enumerate(np.array_split(np.arange(mesh.n_elements), nparts)):
        out[block] = part
    return out


def refine_partition(mesh: CartesianMesh, parts: np.ndarray) -> np.ndarray:
    """
    Partition of `mesh.refined()` in which every child element inherits the
    partition id of its parent.
    """
    fine = mesh.refined()
    idx = fine.element_indices() // 2
    parent = idx[:, 0] + (mesh.nx * idx[:, 1] if mesh.dim == 2 else 0)
    return parts[parent]
