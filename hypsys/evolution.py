"""
Semi-discrete evolution operator du/dt = L(u, t) of the Bernstein DG discretization.

With the convection operator `K`, the inflow weights `beta` and the inflow data `b`,
the standard scheme reads

    m_i du_i/dt = sum_j k_ij u_j + b_i.

Monolithic convex limiting (MCL) rewrites it with graph viscosity
`d_ij = max(|k_ij|, |k_ji|)` and `a_ij = k_ij + d_ij` as

    m_i du_i/dt = sum_j 2 d_ij (ubar_ij - u_i) + beta_i (b_i / beta_i - u_i)
                  + sum_j f_ij,

with bar states `ubar_ij = u_i + a_ij / (2 d_ij) (u_j - u_i)` and antidiffusive
fluxes `f_ij = d_ij (u_i - u_j)`. Every flux is scaled by the largest
`alpha_ij in [0, 1]` keeping the limited bar states `ubar_ij + alpha_ij f_ij / (2 d_ij)`
and `ubar_ji - alpha_ij f_ij / (2 d_ji)` inside the local bounds of `i` and `j`.
A forward Euler step with `dt <= m_i / (sum_j 2 d_ij + beta_i)` is then a convex
combination of states inside the bounds of `i`.
"""

from enum import Enum
from typing import Optional, Tuple

import numpy as np

from .assembly import ConvectionAssembler
from .communication import Communicator, HaloExchange, SerialCommunicator
from .config import EvolutionScheme
from .dofs import DofInfo
from .fe_space import DGSpace
from .hyperbolic_system import HyperbolicSystem


class EvolutionState(Enum):
    TRANSIENT = "transient"
    PSEUDO_TIME_STEPPING = "pseudo-time stepping"
    CONVERGED = "converged"


class FEEvolution:
    """
    Time derivative of the owned DOFs of one partition under the standard or the
    MCL scheme, and steady-state bookkeeping for pseudo-time stepping.

    Args:
        space: DGSpace.
        physics: HyperbolicSystem providing the velocity and inflow data.
        dofs: DofInfo of this partition.
        scheme: EvolutionScheme or its integer id.
        lumped_mass: Lumped mass of the owned DOFs.
        comm: Communicator. Defaults to a SerialCommunicator.

    Attributes:
        state: EvolutionState.
        u_old: Solution before the latest pseudo-time step, None in transient mode.
        alpha: Limiter coefficients of the latest MCL evaluation, one per edge.
    """

    def __init__(
        self,
        space: DGSpace,
        physics: HyperbolicSystem,
        dofs: DofInfo,
        scheme: EvolutionScheme,
        lumped_mass: np.ndarray,
        comm: Optional[Communicator] = None,
    ):
        try:
            self.scheme = EvolutionScheme(scheme)
        except ValueError:
            raise ValueError(f"Unknown evolution scheme: {scheme}") from None
        if lumped_mass.shape != (dofs.n_owned,) or np.any(lumped_mass <= 0):
            raise ValueError("Expected a positive lumped mass for every owned DOF.")

        self.space = space
        self.physics = physics
        self.dofs = dofs
        self.m = lumped_mass
        self.comm = SerialCommunicator() if comm is None else comm
        self.halo = HaloExchange(self.comm, dofs.owned, dofs.halo, dofs.halo_owners)

        self.state = (
            EvolutionState.PSEUDO_TIME_STEPPING
            if physics.steady_state
            else EvolutionState.TRANSIENT
        )
        self.u_old: Optional[np.ndarray] = None
        self.reached_tolerance = False
        self.alpha = np.empty(0)

        self._init_operators()
        self._init_edges()

    def _init_operators(self):
        dofs = self.dofs
        self.assembler = ConvectionAssembler(
            self.space, self.physics.velocity, dofs.local_elements
        )
        K = self.assembler.matrix()[dofs.local][:, dofs.local].tocsr()
        K.sort_indices()
        self.K_local = K
        self.K = K[dofs.owned_local].tocsr()
        self.K.sort_indices()

        # assembler rows of the owned DOFs
        self._owned_rows = np.searchsorted(
            self.space.dofs_of(dofs.local_elements), dofs.owned
        )
        self.beta = self.assembler.inflow_weights()[self._owned_rows]
        self.inflow_dofs = np.flatnonzero(self.beta > 0)
        self._b = self._assemble_inflow_data(0.0)

    def _init_edges(self):
        dofs = self.dofs
        rows, cols = dofs.edges()
        i = dofs.owned_local[rows]

        # isolated DOFs have no edges and sparse fancy indexing needs at least one
        if rows.size > 0:
            k_ij = np.asarray(self.K_local[i, cols]).ravel()
            k_ji = np.asarray(self.K_local[cols, i]).ravel()
        else:
            k_ij = k_ji = np.zeros(0)
        d = np.maximum(np.abs(k_ij), np.abs(k_ji))

        self.edge_rows = rows
        self.edge_i = i
        self.edge_j = cols
        self.d = d
        self.a_ij = k_ij + d

        # limiter quantities in the orientation p -> q with global id p < q
        swap = dofs.local[i] > dofs.local[cols]
        self.sign = np.where(swap, -1.0, 1.0)
        self.p = np.where(swap, cols, i)
        self.q = np.where(swap, i, cols)
        self.a_pq = np.where(swap, k_ji, k_ij) + d
        self.a_qp = np.where(swap, k_ij, k_ji) + d

        self._sum_2d = np.bincount(rows, weights=2 * d, minlength=dofs.n_owned)

    def _assemble_inflow_data(self, t: float) -> np.ndarray:
        return self.assembler.inflow_data(self.physics.inflow, t)[self._owned_rows]

    def inflow_data(self, t: float) -> np.ndarray:
        if self.physics.time_dependent_bc:
            return self._assemble_inflow_data(t)
        return self._b

    def to_local(self, u: np.ndarray) -> np.ndarray:
        """
        Values of the local DOFs from the owned values, exchanging the halo.
        """
        out = np.empty((self.dofs.n_local,) + u.shape[1:])
        out[self.dofs.owned_local] = u
        out[self.dofs.halo_local] = self.halo.exchange(u)
        return out

    def _local_bounds(
        self, u_local: np.ndarray, b: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        u_min, u_max = self.dofs.compute_bounds(u_local)

        # inflow DOFs relax toward the inflow state
        k = self.inflow_dofs
        u_in = b[k] / self.beta[k]
        u_min[k] = np.minimum(u_min[k], u_in)
        u_max[k] = np.maximum(u_max[k], u_in)
        return u_min, u_max

    def compute_bounds(
        self, u: np.ndarray, t: float = 0.0
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Admissible bounds of the owned DOFs: the extrema over each neighborhood,
        widened by the inflow state at inflow DOFs.

        Args:
            u: Owned values.
            t: Time of the inflow data.

        Returns:
            u_min, u_max: Arrays of shape (n_owned,).
        """
        return self._local_bounds(self.to_local(u), self.inflow_data(t))

    def compute_derivative(self, t: float, u: np.ndarray) -> np.ndarray:
        """
        Time derivative of the owned DOFs.

        Args:
            t: Time.
            u: Owned values.

        Returns:
            du/dt of the owned DOFs.
        """
        b = self.inflow_data(t)
        u_local = self.to_local(u)

        if self.scheme is EvolutionScheme.STANDARD:
            return (self.K @ u_local + b) / self.m

        # bounds of the owned DOFs, then of the halo
        bounds = self.to_local(np.stack(self._local_bounds(u_local, b), axis=1))
        u_min, u_max = bounds[:, 0], bounds[:, 1]

        rows, d = self.edge_rows, self.d
        ui, uj = u_local[self.edge_i], u_local[self.edge_j]
        low = np.bincount(rows, weights=self.a_ij * (uj - ui), minlength=u.size)
        low += b - self.beta * u

        # identical on both sides of an edge, also across partitions
        p, q = self.p, self.q
        up, uq = u_local[p], u_local[q]
        f = d * (up - uq)
        upper_p = 2 * d * (u_max[p] - up) - self.a_pq * (uq - up)
        lower_q = 2 * d * (uq - u_min[q]) + self.a_qp * (up - uq)
        lower_p = 2 * d * (u_min[p] - up) - self.a_pq * (uq - up)
        upper_q = -2 * d * (u_max[q] - uq) + self.a_qp * (up - uq)

        safe_f = np.where(f == 0, 1.0, f)
        alpha = np.ones_like(f)
        pos, neg = f > 0, f < 0
        alpha[pos] = np.minimum(
            1.0,
            np.minimum(
                np.maximum(upper_p[pos], 0.0), np.maximum(lower_q[pos], 0.0)
            )
            / safe_f[pos],
        )
        alpha[neg] = np.minimum(
            1.0,
            np.maximum(np.minimum(lower_p[neg], 0.0), np.minimum(upper_q[neg], 0.0))
            / safe_f[neg],
        )
        self.alpha = alpha

        correction = np.bincount(rows, weights=self.sign * (alpha * f), minlength=u.size)
        return (low + correction) / self.m

    def max_stable_dt(self) -> float:
        """
        Largest forward Euler step keeping the MCL update a convex combination,
        min_i m_i / (sum_j 2 d_ij + beta_i) over all partitions.
        """
        denom = self._sum_2d + self.beta
        local = np.min(self.m[denom > 0] / denom[denom > 0], initial=np.inf)
        return float(self.comm.allreduce(float(local), op="min"))

    def reset_steady_state(self, u: np.ndarray):
        """
        Start pseudo-time stepping from `u`.
        """
        if not self.physics.steady_state:
            raise RuntimeError("Pseudo-time stepping requires a steady-state problem.")
        self.u_old = u.copy()
        self.state = EvolutionState.PSEUDO_TIME_STEPPING
        self.reached_tolerance = False

    def convergence_check(self, dt: float, tol: float, u: np.ndarray) -> float:
        """
        Steady-state residual ||M (u - u_old)||_2 / dt over all partitions.

        Below `tol` the operator moves to CONVERGED and keeps `u_old`, the solution
        before the latest pseudo-time step, as the final solution. Otherwise `u_old`
        is replaced by `u`.
        """
        if self.state is not EvolutionState.PSEUDO_TIME_STEPPING:
            raise RuntimeError(
                f"Convergence checks require pseudo-time stepping, state is "
                f"'{self.state.value}'."
            )
        if self.u_old is None:
            self.u_old = np.zeros_like(u)

        z = self.m * (u - self.u_old)
        residual = float(np.sqrt(self.comm.allreduce(float(np.sum(z * z))))) / dt
        if residual < tol:
            self.state = EvolutionState.CONVERGED
            self.reached_tolerance = True
        else:
            self.u_old = u.copy()
        return residual

    def terminate(self):
        """
        End pseudo-time stepping without reaching the tolerance.
        """
        if self.state is EvolutionState.PSEUDO_TIME_STEPPING:
            self.state = EvolutionState.CONVERGED

    def final_solution(self, u: np.ndarray) -> np.ndarray:
        """
        The authoritative solution: `u_old` once the residual fell below the
        tolerance, `u` otherwise.
        """
        if self.reached_tolerance:
            return self.u_old.copy()
        return u
