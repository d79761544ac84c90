import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from .communication import (
    Communicator,
    SerialCommunicator,
    gather_global,
    run_in_threads,
)
from .config import Configuration, EvolutionScheme, ODESolverKind
from .dofs import DofInfo
from .evolution import EvolutionState, FEEvolution
from .explicit_ODE_solver import ExplicitODESolver
from .fe_space import DGSpace
from .hyperbolic_system import HyperbolicSystem, build_hyperbolic_system
from .mesh import CartesianMesh, partition_elements, refine_partition
from .tools.mfem_io import format_grid_function, format_mesh, write_grid_function, write_mesh
from .tools.timer import MethodTimer
from .tools.yaml_helper import yaml_dump
from .visualization import GLVisStream

# tolerance of the bound violation count
BOUNDS_TOL = 1e-12


def build_mesh(
    config: Configuration, periodic: Tuple[bool, bool], nparts: int = 1
) -> Tuple[CartesianMesh, np.ndarray]:
    """
    Build the mesh described by `config` and partition it.

    The coarse mesh is refined `config.refinements` times, split into `nparts`
    contiguous blocks of elements, and refined `config.parallel_refinements` more
    times with every child element staying in the partition of its parent.

    Returns:
        mesh: The refined mesh.
        parts: Partition id of every element.
    """
    mesh = CartesianMesh(
        nx=config.nx,
        ny=config.ny,
        xlim=config.xlim,
        ylim=config.ylim,
        periodic=periodic,
    )
    for _ in range(config.refinements):
        mesh = mesh.refined()
    parts = partition_elements(mesh, nparts)
    for _ in range(config.parallel_refinements):
        parts = refine_partition(mesh, parts)
        mesh = mesh.refined()
    return mesh, parts


class HyperbolicSolver(ExplicitODESolver):
    """
    Solves a scalar hyperbolic conservation law with a Bernstein DG discretization
    on the partition of the mesh owned by one rank.

    Every rank of `comm` must construct the solver and call `run` with the same
    arguments.

    Attributes:
        config: Configuration.
        comm: Communicator.
        physics: HyperbolicSystem.
        mesh: CartesianMesh after all refinements.
        space: DGSpace.
        dofs: DofInfo of this rank.
        evolution: FEEvolution of this rank.
        m: Lumped mass of the owned DOFs.
        domain_size: Sum of the lumped mass over all ranks.
        initial_mass, final_mass: Solution mass before and after the run.
        mass_loss: |initial_mass - final_mass| / domain_size.
        errors: L1, L2 and Linf errors at the end of the run if the exact solution
            is known.
        residual: Latest steady-state residual, NaN for transient problems.
        n_bound_violations: Owned DOFs outside their pre-step bounds in the latest
            step, when `config.check_bounds` is set.
    """

    def __init__(
        self,
        config: Configuration,
        comm: Optional[Communicator] = None,
        path: Optional[Union[str, Path]] = None,
        overwrite: bool = False,
    ):
        """
        Args:
            config: Configuration.
            comm: Communicator. Defaults to a SerialCommunicator.
            path: Output directory. Written by rank 0 only. If None, nothing is
                written.
            overwrite: Whether to overwrite `path` if it already exists.
        """
        self.config = config
        self.comm = SerialCommunicator() if comm is None else comm
        self.output_path = None if path is None else Path(path)
        self.overwrite = overwrite

        # discretization
        self.physics: HyperbolicSystem = build_hyperbolic_system(config)
        self.mesh, self.parts = build_mesh(
            config, self.physics.periodic, self.comm.size
        )
        self.space = DGSpace(self.mesh, config.order)
        self.dofs = DofInfo(self.space, self.parts, self.comm.rank)
        self.m = self.space.mass_vector(self.dofs.owned_elements)
        self.evolution = FEEvolution(
            self.space,
            self.physics,
            self.dofs,
            config.evolution_scheme,
            self.m,
            self.comm,
        )

        # initial solution
        u0 = self.space.interpolate(
            self.physics.initial_condition, self.dofs.owned_elements
        )
        super().__init__(u0)
        self.timer.add_cat("f")
        self.timer.add_cat("vis")

        self.residual = np.nan
        self.n_bound_violations = 0
        self._bounds: Optional[Tuple[np.ndarray, np.ndarray]] = None
        self.errors: Optional[Dict[str, float]] = None
        self.final_mass = np.nan
        self.mass_loss = np.nan

        self.domain_size = self.allreduce_sum(self.m)
        self.initial_mass = self.allreduce_sum(self.m * u0)
        self.max_stable_dt = self.evolution.max_stable_dt()

        if self.physics.steady_state:
            self.evolution.reset_steady_state(u0)
        self._warn_about_config()

        self.glvis: Optional[GLVisStream] = None
        if config.visualization and self.is_root:
            self.glvis = GLVisStream(config.vishost, config.visport)

    def _warn_about_config(self):
        if not self.is_root:
            return
        config = self.config
        if (
            self.physics.steady_state
            and config.ode_solver_kind is not ODESolverKind.FORWARD_EULER
        ):
            warnings.warn("You should use forward Euler for pseudo time stepping.")
        if (
            config.evolution_scheme is EvolutionScheme.MONOLITHIC_CONVEX_LIMITING
            and config.dt > self.max_stable_dt
        ):
            warnings.warn(
                f"Time-step size {config.dt:.3e} exceeds the largest bounds-preserving "
                f"forward Euler step {self.max_stable_dt:.3e}."
            )

    @property
    def is_root(self) -> bool:
        return self.comm.is_root

    def allreduce_sum(self, values: np.ndarray) -> float:
        return float(self.comm.allreduce(float(np.sum(values))))

    def compute_dt(self, t: float, u: np.ndarray) -> float:
        return self.config.dt

    @MethodTimer(cat="f")
    def f(self, t: float, u: np.ndarray) -> np.ndarray:
        return self.evolution.compute_derivative(t, u)

    def called_at_beginning_of_step(self):
        if self.config.check_bounds:
            self._bounds = self.evolution.compute_bounds(self.arrays["u"], self.t)
        super().called_at_beginning_of_step()

    def called_at_end_of_step(self):
        super().called_at_end_of_step()
        u = self.arrays["u"]

        if self.config.check_bounds:
            self.n_bound_violations = self.count_bound_violations(u, *self._bounds)
            if self.n_bound_violations > 0 and self.is_root and self._bounds_expected:
                warnings.warn(
                    f"{self.n_bound_violations} DOFs left their bounds at step "
                    f"{self.n_steps}."
                )

        if self.evolution.state is EvolutionState.PSEUDO_TIME_STEPPING:
            self.residual = self.evolution.convergence_check(
                self.dt, self.config.tol, u
            )
            if self.evolution.state is EvolutionState.CONVERGED:
                u[...] = self.evolution.final_solution(u)

    @property
    def _bounds_expected(self) -> bool:
        return (
            self.config.evolution_scheme is EvolutionScheme.MONOLITHIC_CONVEX_LIMITING
            and self.config.ode_solver_kind is ODESolverKind.FORWARD_EULER
            and self.dt <= self.max_stable_dt
        )

    def count_bound_violations(
        self, u: np.ndarray, u_min: np.ndarray, u_max: np.ndarray
    ) -> int:
        """
        Number of DOFs over all ranks outside [u_min, u_max] by more than
        `BOUNDS_TOL`.
        """
        local = np.count_nonzero((u < u_min - BOUNDS_TOL) | (u > u_max + BOUNDS_TOL))
        return int(self.comm.allreduce(int(local)))

    def is_done(self, T: float) -> bool:
        return self.evolution.state is EvolutionState.CONVERGED or super().is_done(T)

    def prepare_minisnapshot_data(self) -> Dict[str, Any]:
        u = self.arrays["u"]
        data = super().prepare_minisnapshot_data()
        data["u_min"] = self.comm.allreduce(float(np.min(u)), op="min")
        data["u_max"] = self.comm.allreduce(float(np.max(u)), op="max")
        data["mass"] = self.allreduce_sum(self.m * u)
        data["residual"] = self.residual
        data["n_bound_violations"] = self.n_bound_violations
        return data

    def prepare_snapshot_data(self) -> Dict[str, Any]:
        return {"u": self.gather_solution()}

    def gather_solution(self, u: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Returns the global solution vector, element-major, on every rank.
        """
        u = self.arrays["u"] if u is None else u
        return gather_global(self.comm, self.dofs.owned, u, self.space.n_dofs)

    def build_opening_message(self) -> str:
        return (
            f"{self.physics.__class__.__name__} setup {self.config.setup}, "
            f"{self.config.evolution_scheme.name}, order {self.config.order}, "
            f"{self.space.n_dofs} DOFs on {self.comm.size} partition(s)"
        )

    def build_update_message(self) -> str:
        msg = f"time step: {self.n_steps}, time: {self.t:.6g}"
        if self.physics.steady_state:
            msg += f", residual: {self.residual:.3e}"
        return msg

    def build_closing_message(self) -> str:
        return self.build_update_message() + " | (done)"

    def log_progress(self, done: bool):
        if not self.config.visualization:
            return
        u = self.gather_solution()
        self.comm.barrier()
        if self.glvis is not None:
            self.timer.start("vis")
            self.glvis.send(
                format_mesh(self.mesh, self.config.precision),
                format_grid_function(
                    u, self.config.order, self.space.dim, self.config.precision
                ),
            )
            self.timer.stop("vis")

    def prepare_output_directory(
        self, path: Optional[str] = None, overwrite: bool = False
    ):
        # every rank raises if the directory exists
        exists = False
        if path is not None and self.is_root:
            exists = Path(path).exists() and not overwrite
        if self.comm.allreduce(int(exists), op="max"):
            raise FileExistsError(f"Output directory '{self.output_path}' already exists.")
        super().prepare_output_directory(path if self.is_root else None, overwrite)

    def write_metadata(self):
        """
        Write commit details, config, mesh and the initial solution before the solver
        runs.
        """
        super().write_metadata()
        with open(self.path / "config.yaml", "w") as f:
            f.write(yaml_dump(self.to_dict()))
        write_mesh(self.mesh, self.path / "grid.mesh", self.config.precision)

    def to_dict(self) -> dict:
        """
        Return a dict of solver parameters independent of results.
        """
        return dict(
            config=self.config.to_dict(),
            mesh=self.mesh.to_dict(),
            space=self.space.to_dict(),
            physics=self.physics.__class__.__name__,
            integrator=self.integrator,
            n_partitions=self.comm.size,
            max_stable_dt=self.max_stable_dt,
        )

    def run(self, verbose: bool = True, snapshot_freq: Optional[int] = None):
        """
        Integrate until the final time or, for steady-state problems, until the
        residual falls below `config.tol`, then report mass conservation and errors
        and write the output files.

        Args:
            verbose: Whether to print progress information on rank 0.
            snapshot_freq: Step frequency of snapshots. If None, snapshots are taken
                at the start and at the end only.
        """
        initial = self.gather_solution()
        kwargs = dict(
            T=self.config.final_time,
            verbose=verbose,
            log_freq=self.config.vis_steps,
            snapshot_freq=snapshot_freq,
            path=None if self.output_path is None else str(self.output_path),
            overwrite=self.overwrite,
        )
        try:
            match self.config.ode_solver_kind:
                case ODESolverKind.FORWARD_EULER:
                    self.euler(**kwargs)
                case ODESolverKind.SSPRK2:
                    self.ssprk2(**kwargs)
                case ODESolverKind.SSPRK3:
                    self.ssprk3(**kwargs)
                case _:
                    raise ValueError(
                        f"Unknown ODE solver type: {self.config.ode_solver}"
                    )

            self.evolution.terminate()
            self.finalize(initial, verbose=verbose)
        finally:
            if self.glvis is not None:
                self.glvis.close()

    def finalize(self, initial: np.ndarray, verbose: bool = True):
        """
        Mass bookkeeping, error computation and file output after the time loop.
        """
        u = self.arrays["u"]
        self.final_mass = self.allreduce_sum(self.m * u)
        self.mass_loss = abs(self.initial_mass - self.final_mass) / self.domain_size

        if self.physics.solution_known:
            self.errors = self.physics.compute_errors(
                self.space,
                u,
                self.dofs.owned_elements,
                self.t,
                self.domain_size,
                self.comm,
            )

        final = self.gather_solution()
        if verbose and self.is_root:
            print(f"Difference in solution mass: {self.mass_loss:.3e}")
            if self.errors is not None:
                print(", ".join(f"{k}: {v:.6e}" for k, v in self.errors.items()))

        if self.path is None or not self.physics.file_output:
            return
        order, dim, precision = self.config.order, self.space.dim, self.config.precision
        write_grid_function(initial, order, dim, self.path / "initial.gf", precision)
        write_grid_function(final, order, dim, self.path / "final.gf", precision)
        if self.errors is not None:
            self.physics.write_errors(self.errors, self.path)
        self.write_timings()

    def write_timings(self, total_time_spec: str = ".6f"):
        """
        Postprocess IO step that writes timing results to output directory.
        """
        if self.path is None:
            raise FileNotFoundError("Path not specified.")

        with open(self.path / "timings.txt", "w") as f:
            f.write(self.timer.report(total_time_spec))


def run_partitioned(
    config: Configuration,
    nparts: int,
    path: Optional[Union[str, Path]] = None,
    overwrite: bool = False,
    verbose: bool = False,
    snapshot_freq: Optional[int] = None,
) -> List[HyperbolicSolver]:
    """
    Run `config` on `nparts` partitions living in threads of this process.

    Returns:
        The solver of every rank, ordered by rank.
    """

    def target(comm: Communicator) -> HyperbolicSolver:
        solver = HyperbolicSolver(config, comm=comm, path=path, overwrite=overwrite)
        solver.run(verbose=verbose, snapshot_freq=snapshot_freq)
        return solver

    return run_in_threads(target, nparts)
