"""
Assembly of the upwind discontinuous Galerkin convection operator

    m du/dt = K u + b(t),

for the linear flux `F(u) = v u`, where `b` carries the inflow boundary data. Row
`i` of `K` holds

    k_ij = (v phi_j, grad phi_i)_e - sum_f <(v.n)^+ phi_j, phi_i>_f
           - sum_f <(v.n)^- phi_j', phi_i>_f,

the last term coupling `i` to the DOFs `j'` of the upwind neighbor across face `f`.
On inflow boundary faces the upwind state is the prescribed inflow value, which
contributes `beta_i = <|v.n|, phi_i>` and `b_i = <|v.n| u_in, phi_i>`.

Element contributions are computed one element at a time, so a row of `K` is
bitwise the same no matter which other elements are assembled alongside it.
"""

from typing import Callable, List, Tuple

import numpy as np
from scipy import sparse

from .fe_space import DGSpace

VelocityField = Callable[[np.ndarray], np.ndarray]
InflowData = Callable[[np.ndarray, float], np.ndarray]


def sum_duplicate_entries(
    rows: np.ndarray, cols: np.ndarray, vals: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Sum COO entries sharing a (row, col) pair. Duplicates are added in the order in
    which they appear.
    """
    order = np.lexsort((cols, rows))
    rows, cols, vals = rows[order], cols[order], vals[order]
    if rows.size == 0:
        return rows, cols, vals
    new_group = np.ones(rows.size, dtype=bool)
    new_group[1:] = (rows[1:] != rows[:-1]) | (cols[1:] != cols[:-1])
    starts = np.flatnonzero(new_group)
    return rows[starts], cols[starts], np.add.reduceat(vals, starts)


class ConvectionAssembler:
    """
    Assembles the rows of the convection operator belonging to a set of elements.

    Args:
        space: DGSpace to assemble on.
        velocity: Transport velocity, mapping points of shape (n, dim) to vectors of
            shape (n, dim).
        elements: Elements whose rows are assembled.
    """

    def __init__(self, space: DGSpace, velocity: VelocityField, elements: np.ndarray):
        self.space = space
        self.elements = np.asarray(elements, dtype=int)
        self.neighbors = space.mesh.face_neighbors[self.elements]

        dim = space.dim
        ne = self.elements.size
        x = space.quadrature_points(self.elements).reshape(-1, dim)
        self.v = np.asarray(velocity(x), dtype=float).reshape(ne, -1, dim)

        # normal velocity at the face quadrature points
        self.vn: List[np.ndarray] = []
        for f in range(space.mesh.n_faces):
            xf = space.face_points(self.elements, f)
            vf = np.asarray(velocity(xf.reshape(-1, dim)), dtype=float)
            self.vn.append((vf @ space.mesh.face_normal(f)).reshape(ne, -1))

    def element_blocks(self, k: int) -> List[Tuple[int, np.ndarray]]:
        """
        Returns the (column element, block) pairs of the k-th assembled element. The
        first pair is the element itself.
        """
        space = self.space
        w, phi, grad_phi = space.weights, space.phi, space.grad_phi

        # volume term
        v_dot_grad = np.sum(grad_phi * self.v[k][:, np.newaxis, :], axis=2)
        diag = (v_dot_grad * w[:, np.newaxis]).T @ phi

        blocks = [(int(self.elements[k]), diag)]
        for f in range(space.mesh.n_faces):
            fw, fphi = space.face_weights[f], space.face_phi[f]
            vn = self.vn[f][k]

            # outflow
            diag -= (fphi * (fw * np.maximum(vn, 0.0))[:, np.newaxis]).T @ fphi

            # inflow from the upwind neighbor
            nbr = self.neighbors[k, f]
            if nbr >= 0:
                weight = (fw * np.minimum(vn, 0.0))[:, np.newaxis]
                blocks.append((int(nbr), -(fphi * weight).T @ space.face_phi[f ^ 1]))
        return blocks

    def matrix(self) -> sparse.csr_matrix:
        """
        Returns the assembled rows as a (n_dofs, n_dofs) CSR matrix with sorted
        indices.
        """
        nd = self.space.nd
        local = np.arange(nd)
        rows, cols, vals = [], [], []
        for k, e in enumerate(self.elements):
            for nbr, block in self.element_blocks(k):
                rows.append(np.repeat(e * nd + local, nd))
                cols.append(np.tile(nbr * nd + local, nd))
                vals.append(block.ravel())

        if rows:
            r, c, v = sum_duplicate_entries(
                np.concatenate(rows), np.concatenate(cols), np.concatenate(vals)
            )
        else:
            r = c = np.empty(0, dtype=int)
            v = np.empty(0)

        n = self.space.n_dofs
        K = sparse.csr_matrix((v, (r, c)), shape=(n, n))
        K.sort_indices()
        return K

    def _boundary_integral(self, f: int, g: np.ndarray) -> np.ndarray:
        # <g, phi_i> on face f of every assembled element on the domain boundary
        space = self.space
        out = np.zeros((self.elements.size, space.nd))
        for k in np.flatnonzero(self.neighbors[:, f] < 0):
            out[k] = (space.face_weights[f] * g[k]) @ space.face_phi[f]
        return out

    def inflow_weights(self) -> np.ndarray:
        """
        Returns `beta_i = <|v.n|, phi_i>` over inflow boundary faces for the DOFs of
        the assembled elements.
        """
        out = np.zeros((self.elements.size, self.space.nd))
        for f in range(self.space.mesh.n_faces):
            out += self._boundary_integral(f, -np.minimum(self.vn[f], 0.0))
        return out.ravel()

    def inflow_data(self, inflow: InflowData, t: float) -> np.ndarray:
        """
        Returns `b_i = <|v.n| u_in(t), phi_i>` over inflow boundary faces for the
        DOFs of the assembled elements.
        """
        space = self.space
        out = np.zeros((self.elements.size, space.nd))
        for f in range(space.mesh.n_faces):
            if not np.any(self.neighbors[:, f] < 0):
                continue
            xf = space.face_points(self.elements, f).reshape(-1, space.dim)
            u_in = np.asarray(inflow(xf, t), dtype=float).reshape(self.vn[f].shape)
            out += self._boundary_integral(f, -np.minimum(self.vn[f], 0.0) * u_in)
        return out.ravel()
