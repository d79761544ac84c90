from typing import Tuple

import numpy as np
from scipy import sparse

from .fe_space import DGSpace


def neighbor_pairs(space: DGSpace, elements: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Returns the (row, col) global DOF pairs of the neighbor graph restricted to rows
    of the given elements: every DOF of an element neighbors all DOFs of that
    element, and a DOF on face `f` neighbors the DOFs of the adjacent element on its
    face `f ^ 1`.
    """
    nd = space.nd
    local = np.arange(nd)
    elements = np.asarray(elements, dtype=int)
    nbrs = space.mesh.face_neighbors[elements]

    rows = [np.repeat(elements[:, np.newaxis] * nd + local, nd, axis=1).ravel()]
    cols = [np.tile(elements[:, np.newaxis] * nd + local, nd).ravel()]
    for f in range(space.mesh.n_faces):
        mine, theirs = space.face_dofs[f], space.face_dofs[f ^ 1]
        has_nbr = nbrs[:, f] >= 0
        e, n = elements[has_nbr], nbrs[has_nbr, f]
        rows.append(
            np.repeat(e[:, np.newaxis] * nd + mine, theirs.size, axis=1).ravel()
        )
        cols.append(np.tile(n[:, np.newaxis] * nd + theirs, mine.size).ravel())
    return np.concatenate(rows), np.concatenate(cols)


class DofInfo:
    """
    Neighborhoods of the DOFs owned by one partition and the local numbering used
    to evaluate them.

    The local numbering covers the owned DOFs and the halo DOFs owned by other
    partitions, sorted by global id, so that the order of a neighborhood does not
    depend on the partitioning.

    Args:
        space: DGSpace.
        element_parts: Partition id of every element.
        rank: Partition id of this rank.

    Attributes:
        owned_elements: Elements of this partition.
        owned: Global ids of the owned DOFs (sorted).
        halo: Global ids of the halo DOFs (sorted).
        halo_owners: Partition owning each halo DOF.
        local: Global ids of owned and halo DOFs (sorted).
        owned_local, halo_local: Positions of the owned and halo DOFs in `local`.
        local_elements: Elements covering every local DOF.
        indptr, indices: CSR neighbor lists of the owned DOFs in local numbering,
            each including the DOF itself.
        rows: Owned row of every CSR entry.
    """

    def __init__(self, space: DGSpace, element_parts: np.ndarray, rank: int = 0):
        element_parts = np.asarray(element_parts, dtype=int)
        if element_parts.shape != (space.mesh.n_elements,):
            raise ValueError("Expected one partition id per element.")

        self.space = space
        self.owned_elements = np.flatnonzero(element_parts == rank)
        if self.owned_elements.size == 0:
            raise ValueError(f"Partition {rank} owns no elements.")
        self.owned = space.dofs_of(self.owned_elements)

        rows, cols = neighbor_pairs(space, self.owned_elements)
        n = space.n_dofs
        graph = sparse.csr_matrix(
            (np.ones(rows.size, dtype=np.int32), (rows, cols)), shape=(n, n)
        )
        graph.sum_duplicates()
        graph = graph[self.owned]
        graph.sort_indices()

        self.local = np.union1d(self.owned, graph.indices)
        self.halo = np.setdiff1d(self.local, self.owned)
        self.halo_owners = element_parts[self.halo // space.nd]
        self.owned_local = np.searchsorted(self.local, self.owned)
        self.halo_local = np.searchsorted(self.local, self.halo)
        self.local_elements = np.union1d(
            self.owned_elements, np.unique(self.halo // space.nd)
        )

        self.indptr = graph.indptr
        self.indices = np.searchsorted(self.local, graph.indices)
        self.rows = np.repeat(np.arange(self.owned.size), np.diff(self.indptr))

    @property
    def n_owned(self) -> int:
        return self.owned.size

    @property
    def n_local(self) -> int:
        return self.local.size

    def edges(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Returns the (owned row, local column) pairs of the neighbor graph without the
        diagonal, ordered by row and then by global column id.
        """
        off_diagonal = self.indices != self.owned_local[self.rows]
        return self.rows[off_diagonal], self.indices[off_diagonal]

    def compute_bounds(self, u_local: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Minimum and maximum of `u_local` over the neighborhood of every owned DOF.

        Args:
            u_local: Values of the local DOFs, with up-to-date halo values.

        Returns:
            u_min, u_max: Arrays of shape (n_owned,).
        """
        if u_local.shape != (self.n_local,):
            raise ValueError(
                f"Expected local values of shape ({self.n_local},), got {u_local.shape}."
            )
        values = u_local[self.indices]
        starts = self.indptr[:-1]
        return np.minimum.reduceat(values, starts), np.maximum.reduceat(values, starts)
