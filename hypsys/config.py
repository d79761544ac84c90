from dataclasses import asdict, dataclass, fields
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import numpy as np

from .tools.yaml_helper import yaml_dump, yaml_load


class EvolutionScheme(IntEnum):
    """
    Spatial discretization used by the evolution operator.
    """

    STANDARD = 0
    MONOLITHIC_CONVEX_LIMITING = 1


class ODESolverKind(IntEnum):
    """
    Explicit single-step time integrators.
    """

    FORWARD_EULER = 1
    SSPRK2 = 2
    SSPRK3 = 3


@dataclass(frozen=True)
class Configuration:
    """
    Immutable run parameters.

    Attributes:
        problem: Hyperbolic system id (0: advection).
        setup: Problem setup id of the chosen hyperbolic system.
        order: Polynomial degree of the Bernstein finite element space.
        final_time: Final time; the start time is 0.
        dt: Time-step size.
        ode_solver: 1: forward Euler, 2: SSPRK2, 3: SSPRK3.
        vis_steps: Print and visualize every `vis_steps` steps.
        precision: Number of significant digits written to grid function files.
        scheme: 0: standard Galerkin, 1: monolithic convex limiting.
        nx, ny: Number of elements in x and y before refinement. `ny=1` gives a 1D
            mesh.
        refinements: Number of uniform refinements applied before partitioning.
        parallel_refinements: Number of uniform refinements applied after
            partitioning.
        xlim, ylim: Limits of the domain as tuples (min, max).
        visualization: Whether to push the solution to a GLVis server.
        vishost, visport: Address of the GLVis server.
        tol: Residual tolerance of pseudo-time stepping.
        check_bounds: Whether to count bound violations after every step.
    """

    problem: int = 0
    setup: int = 1
    order: int = 3
    final_time: float = 1.0
    dt: float = 0.001
    ode_solver: int = 3
    vis_steps: int = 100
    precision: int = 8
    scheme: int = 0
    nx: int = 16
    ny: int = 16
    refinements: int = 0
    parallel_refinements: int = 0
    xlim: Tuple[float, float] = (0.0, 1.0)
    ylim: Tuple[float, float] = (0.0, 1.0)
    visualization: bool = False
    vishost: str = "localhost"
    visport: int = 19916
    tol: float = 1e-12
    check_bounds: bool = False

    def __post_init__(self):
        self._validate_args()

    def _validate_args(self):
        if not isinstance(self.order, (int, np.integer)) or self.order < 0:
            raise ValueError(f"Polynomial order must be a non-negative integer: {self.order}")
        if not self.final_time > 0:
            raise ValueError(f"Final time must be positive: {self.final_time}")
        if not self.dt > 0:
            raise ValueError(f"Time-step size must be positive: {self.dt}")
        if self.vis_steps < 1:
            raise ValueError(f"Visualization steps must be positive: {self.vis_steps}")
        if self.precision < 1:
            raise ValueError(f"Precision must be positive: {self.precision}")
        if self.nx < 1 or self.ny < 1:
            raise ValueError("Mesh dimensions (nx, ny) must be positive integers.")
        if self.refinements < 0 or self.parallel_refinements < 0:
            raise ValueError("Refinement counts must be non-negative.")
        if any(lower >= upper for lower, upper in (self.xlim, self.ylim)):
            raise ValueError(
                "Limits must be tuples of two values (min, max) with min < max."
            )
        if not self.tol > 0:
            raise ValueError(f"Tolerance must be positive: {self.tol}")

        # raise on unknown ids before any time stepping
        self.evolution_scheme
        self.ode_solver_kind

    @property
    def evolution_scheme(self) -> EvolutionScheme:
        try:
            return EvolutionScheme(self.scheme)
        except ValueError:
            raise ValueError(f"Unknown evolution scheme: {self.scheme}") from None

    @property
    def ode_solver_kind(self) -> ODESolverKind:
        try:
            return ODESolverKind(self.ode_solver)
        except ValueError:
            raise ValueError(f"Unknown ODE solver type: {self.ode_solver}") from None

    @property
    def dim(self) -> int:
        return 1 if self.ny == 1 else 2

    @property
    def domain_min(self) -> np.ndarray:
        return np.array([self.xlim[0], self.ylim[0]][: self.dim], dtype=float)

    @property
    def domain_max(self) -> np.ndarray:
        return np.array([self.xlim[1], self.ylim[1]][: self.dim], dtype=float)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["xlim"] = tuple(float(v) for v in self.xlim)
        out["ylim"] = tuple(float(v) for v in self.ylim)
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Configuration":
        """
        Build a configuration from a dict. Unknown keys raise a ValueError.
        """
        names = {f.name for f in fields(cls)}
        unknown = set(data) - names
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        kwargs = dict(data)
        for key in ("xlim", "ylim"):
            if key in kwargs:
                kwargs[key] = tuple(float(v) for v in kwargs[key])
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Configuration":
        with open(path, "r") as f:
            data = yaml_load(f)
        return cls.from_dict(data or {})

    def write_yaml(self, path: Union[str, Path]):
        with open(path, "w") as f:
            f.write(yaml_dump(self.to_dict()))
