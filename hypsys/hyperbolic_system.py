from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Type

import numpy as np
import pandas as pd

from . import initial_conditions as ic
from .communication import Communicator, SerialCommunicator
from .config import Configuration
from .fe_space import DGSpace
from .tools.norms import l1_sum, l2_sum, linf_norm


class HyperbolicSystem(ABC):
    """
    Capability interface of a scalar conservation law u_t + div F(u, x) = 0.

    Attributes:
        dim: Spatial dimension.
        steady_state: Whether the problem is solved by pseudo-time stepping.
        solution_known: Whether `exact_solution` is available.
        time_dependent_bc: Whether the inflow data changes in time.
        file_output: Whether the driver should write mesh, solution and error files.
        periodic: Whether the mesh wraps around in x and y.
    """

    steady_state: bool = False
    solution_known: bool = False
    time_dependent_bc: bool = False
    file_output: bool = True
    periodic: Tuple[bool, bool] = (False, False)

    def __init__(self, config: Configuration):
        self.config = config
        self.dim = config.dim

    @abstractmethod
    def evaluate_flux(self, u: np.ndarray, x: np.ndarray) -> np.ndarray:
        """
        Flux F(u, x).

        Args:
            u: Values. Has shape (n,).
            x: Points. Has shape (n, dim).

        Returns:
            Flux vectors. Has shape (n, dim).
        """
        pass

    def velocity(self, x: np.ndarray) -> np.ndarray:
        """
        Transport velocity of the linear flux, F(1, x).
        """
        return self.evaluate_flux(np.ones(x.shape[0]), x)

    @abstractmethod
    def initial_condition(self, x: np.ndarray) -> np.ndarray:
        pass

    @abstractmethod
    def inflow(self, x: np.ndarray, t: float) -> np.ndarray:
        """
        Upwind state prescribed on inflow boundaries.
        """
        pass

    def exact_solution(self, x: np.ndarray, t: float) -> np.ndarray:
        raise NotImplementedError(
            f"No exact solution is known for {self.__class__.__name__} setup "
            f"{self.config.setup}."
        )

    def compute_errors(
        self,
        space: DGSpace,
        u: np.ndarray,
        elements: np.ndarray,
        t: float,
        domain_size: float,
        comm: Optional[Communicator] = None,
    ) -> Dict[str, float]:
        """
        L1, L2 and Linf errors of a discrete solution with respect to the exact
        solution, measured at the volume quadrature points. L1 and L2 are
        normalized by the domain size.

        Args:
            space: DGSpace of `u`.
            u: Coefficients of the given elements, element-major.
            elements: Elements covered by `u`.
            t: Time of the exact solution.
            domain_size: Volume of the domain.
            comm: Communicator for partitioned solutions.

        Returns:
            Dict with keys "L1", "L2" and "Linf".
        """
        if not self.solution_known:
            raise RuntimeError("Cannot compute errors without a known solution.")
        comm = SerialCommunicator() if comm is None else comm

        x = space.quadrature_points(elements).reshape(-1, space.dim)
        err = space.evaluate(u).ravel() - self.exact_solution(x, t)
        w = np.tile(space.weights, len(elements))

        l1 = comm.allreduce(l1_sum(err, w))
        l2 = comm.allreduce(l2_sum(err, w))
        linf = comm.allreduce(linf_norm(err), op="max")
        return {
            "L1": l1 / domain_size,
            "L2": float(np.sqrt(l2 / domain_size)),
            "Linf": linf,
        }

    def write_errors(self, errors: Dict[str, float], path: Path):
        """
        Append one row of errors to 'path/errors.csv'.
        """
        path = Path(path) / "errors.csv"
        row = pd.DataFrame(
            [
                {
                    "problem": self.config.problem,
                    "setup": self.config.setup,
                    "order": self.config.order,
                    "scheme": self.config.evolution_scheme.name,
                    **errors,
                }
            ]
        )
        row.to_csv(path, mode="a", header=not path.exists(), index=False)


class Advection(HyperbolicSystem):
    """
    Linear advection u_t + div(v u) = 0 with a divergence-free velocity v(x).

    Setups:
        0: Steady circular convection. In 2D, v = (y, -x) with inflow data g(|x|)
            on the left and top boundaries; in 1D, v = 1 with inflow data 1.
        1: Solid body rotation of a slotted cylinder, cone and hump (2D only).
        2: Periodic translation of a smooth profile.
        3: Periodic translation of a discontinuous profile.
    """

    SETUPS = (0, 1, 2, 3)

    def __init__(self, config: Configuration):
        super().__init__(config)
        setup = config.setup
        if setup not in self.SETUPS:
            raise ValueError(f"Unknown advection setup: {setup}")
        if setup == 1 and self.dim != 2:
            raise ValueError("Solid body rotation requires a 2D mesh (ny > 1).")

        self.steady_state = setup == 0
        self.solution_known = True
        self.time_dependent_bc = False
        self.periodic = (True, True) if setup in (2, 3) else (False, False)
        self.translation = np.ones(self.dim)

        self._velocity: Callable[[np.ndarray], np.ndarray]
        self._profile: Callable[[np.ndarray], np.ndarray]
        if setup == 0 and self.dim == 1:
            self._velocity = lambda x: np.ones_like(x)
            self._profile = ic.constant
        elif setup == 0:
            self._velocity = lambda x: np.stack([x[:, 1], -x[:, 0]], axis=1)
            self._profile = lambda x: ic.circular_profile(np.hypot(x[:, 0], x[:, 1]))
        elif setup == 1:
            self._velocity = lambda x: 2 * np.pi * np.stack(
                [0.5 - x[:, 1], x[:, 0] - 0.5], axis=1
            )
            self._profile = ic.solid_body_rotation
        else:
            self._velocity = lambda x: np.broadcast_to(self.translation, x.shape)
            self._profile = ic.sinus if setup == 2 else ic.square

    def evaluate_flux(self, u: np.ndarray, x: np.ndarray) -> np.ndarray:
        return np.asarray(u)[:, np.newaxis] * self._velocity(x)

    def initial_condition(self, x: np.ndarray) -> np.ndarray:
        if self.steady_state:
            return np.zeros(x.shape[0])
        return self._profile(x)

    def exact_solution(self, x: np.ndarray, t: float) -> np.ndarray:
        setup = self.config.setup
        if setup == 0:
            return self._profile(x)
        if setup == 1:
            return self._profile(ic.rotate(x, -2 * np.pi * t))
        return self._profile(
            ic.translate(
                x, t, self.translation, self.config.domain_min, self.config.domain_max
            )
        )

    def inflow(self, x: np.ndarray, t: float) -> np.ndarray:
        return self.exact_solution(x, t)


HYPERBOLIC_SYSTEMS: Dict[int, Type[HyperbolicSystem]] = {0: Advection}


def build_hyperbolic_system(config: Configuration) -> HyperbolicSystem:
    """
    Instantiate the hyperbolic system selected by `config.problem`.

    Raises:
        ValueError: If the problem or its setup is unknown.
    """
    if config.problem not in HYPERBOLIC_SYSTEMS:
        raise ValueError(f"Unknown hyperbolic system: {config.problem}")
    return HYPERBOLIC_SYSTEMS[config.problem](config)
