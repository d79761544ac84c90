from typing import Callable

import numpy as np

from .basis import bernstein, bernstein_derivative, bernstein_nodes, gauss_legendre
from .mesh import CartesianMesh

PointFunction = Callable[[np.ndarray], np.ndarray]


class DGSpace:
    """
    Discontinuous finite element space of tensor-product Bernstein polynomials.

    The global index of local degree of freedom `a` of element `e` is
    `e * nd + a`. In 2D, `a = kx + (p + 1) * ky`.

    Attributes:
        mesh: The underlying CartesianMesh.
        p: Polynomial degree.
        dim: Spatial dimension.
        nd: Number of DOFs per element.
        n_dofs: Total number of DOFs.
        face_dofs: Local DOFs whose basis functions do not vanish on each face,
            ordered by their tangential index so that position `k` on face `f` and
            position `k` on face `f ^ 1` share the same tangential node.
        phi: Basis values at volume quadrature points. Has shape (nq, nd).
        grad_phi: Physical basis gradients at volume quadrature points. Has shape
            (nq, nd, dim).
        weights: Physical volume quadrature weights of one element. Has shape (nq,).
        face_phi: Basis values at the quadrature points of each face. List of arrays
            of shape (nqf, nd).
        face_weights: Physical quadrature weights of each face. List of arrays of
            shape (nqf,).
        lumped_mass: Row sums of the element mass matrix. Has shape (nd,).
    """

    def __init__(self, mesh: CartesianMesh, p: int):
        if p < 0:
            raise ValueError(f"Polynomial degree must be non-negative: {p}")
        self.mesh = mesh
        self.p = p
        self.dim = mesh.dim
        self.nd = (p + 1) ** self.dim
        self.n_dofs = mesh.n_elements * self.nd
        self.detJ = float(np.prod(mesh.h))

        # 1D ingredients
        self.q1, self.w1 = gauss_legendre(p + 2)
        B = bernstein(p, self.q1)
        D = bernstein_derivative(p, self.q1)
        B_ends = bernstein(p, np.array([0.0, 1.0]))

        if self.dim == 1:
            self.ref_points = self.q1[:, np.newaxis]
            self.phi = B
            self.grad_phi = (D / mesh.h[0])[:, :, np.newaxis]
            self.weights = self.w1 * self.detJ
            self.face_ref_points = [np.array([[0.0]]), np.array([[1.0]])]
            self.face_phi = [B_ends[:1], B_ends[1:]]
            self.face_weights = [np.ones(1), np.ones(1)]
            self.face_dofs = [np.array([0]), np.array([p])]
        else:
            hx, hy = mesh.h
            nq = self.q1.size
            # quadrature point i + nq * j sits at (q1[i], q1[j])
            X, Y = np.meshgrid(self.q1, self.q1, indexing="xy")
            self.ref_points = np.stack([X.ravel(), Y.ravel()], axis=1)
            self.phi = np.einsum("ik,jl->jilk", B, B).reshape(nq * nq, self.nd)
            dphidx = np.einsum("ik,jl->jilk", D, B).reshape(nq * nq, self.nd) / hx
            dphidy = np.einsum("ik,jl->jilk", B, D).reshape(nq * nq, self.nd) / hy
            self.grad_phi = np.stack([dphidx, dphidy], axis=2)
            self.weights = np.outer(self.w1, self.w1).ravel() * self.detJ

            k = np.arange(p + 1)
            self.face_dofs = [k * (p + 1), p + k * (p + 1), k, k + p * (p + 1)]
            self.face_ref_points = []
            self.face_phi = []
            self.face_weights = []
            for f in range(4):
                axis, side = divmod(f, 2)
                fixed = np.full(nq, float(side))
                end = B_ends[side : side + 1]
                if axis == 0:
                    points = np.stack([fixed, self.q1], axis=1)
                    values = np.einsum("ik,jl->jilk", end, B).reshape(nq, self.nd)
                    weights = self.w1 * hy
                else:
                    points = np.stack([self.q1, fixed], axis=1)
                    values = np.einsum("ik,jl->jilk", B, end).reshape(nq, self.nd)
                    weights = self.w1 * hx
                self.face_ref_points.append(points)
                self.face_phi.append(values)
                self.face_weights.append(weights)

        self.lumped_mass = self.weights @ self.phi

    @property
    def n_quadrature_points(self) -> int:
        return self.weights.size

    def dofs_of(self, elements: np.ndarray) -> np.ndarray:
        """
        Returns the global DOFs of the given elements, element-major.
        """
        elements = np.asarray(elements, dtype=int)
        return (elements[:, np.newaxis] * self.nd + np.arange(self.nd)).ravel()

    def quadrature_points(self, elements: np.ndarray) -> np.ndarray:
        """
        Physical volume quadrature points. Has shape (n, nq, dim).
        """
        origins = self.mesh.element_origins()[elements]
        return origins[:, np.newaxis, :] + self.ref_points * self.mesh.h

    def face_points(self, elements: np.ndarray, f: int) -> np.ndarray:
        """
        Physical quadrature points on face `f`. Has shape (n, nqf, dim).
        """
        origins = self.mesh.element_origins()[elements]
        return origins[:, np.newaxis, :] + self.face_ref_points[f] * self.mesh.h

    def node_points(self, elements: np.ndarray) -> np.ndarray:
        """
        Physical interpolation nodes of the Bernstein coefficients. Has shape
        (n, nd, dim).
        """
        nodes = bernstein_nodes(self.p)
        if self.dim == 1:
            ref = nodes[:, np.newaxis]
        else:
            X, Y = np.meshgrid(nodes, nodes, indexing="xy")
            ref = np.stack([X.ravel(), Y.ravel()], axis=1)
        origins = self.mesh.element_origins()[elements]
        return origins[:, np.newaxis, :] + ref * self.mesh.h

    def interpolate(self, f: PointFunction, elements: np.ndarray) -> np.ndarray:
        """
        Bernstein coefficients equal to the values of `f` at the equispaced nodes.
        The result lies within the range of `f`.

        Args:
            f: Function of points with shape (n, dim) returning values of shape (n,).
            elements: Elements to project onto.

        Returns:
            Coefficients of the given elements, element-major.
        """
        x = self.node_points(elements).reshape(-1, self.dim)
        return np.asarray(f(x), dtype=float).reshape(-1)

    def evaluate(self, u: np.ndarray) -> np.ndarray:
        """
        Values of the element-major coefficients `u` at the volume quadrature points.
        Has shape (n, nq).
        """
        return u.reshape(-1, self.nd) @ self.phi.T

    def mass_vector(self, elements: np.ndarray) -> np.ndarray:
        """
        Lumped mass of the DOFs of the given elements, element-major.
        """
        return np.tile(self.lumped_mass, len(elements))

    def to_dict(self) -> dict:
        return dict(order=self.p, dim=self.dim, n_dofs=self.n_dofs)
