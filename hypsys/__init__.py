from . import initial_conditions
from .config import Configuration, EvolutionScheme, ODESolverKind
from .evolution import EvolutionState, FEEvolution
from .hyperbolic_solver import HyperbolicSolver, run_partitioned
from .hyperbolic_system import Advection, HyperbolicSystem, build_hyperbolic_system
from .tools.loader import OutputLoader
from .visualization import plot_1d, plot_2d, plot_timeseries

__all__ = [
    "Advection",
    "Configuration",
    "EvolutionScheme",
    "EvolutionState",
    "FEEvolution",
    "HyperbolicSolver",
    "HyperbolicSystem",
    "ODESolverKind",
    "OutputLoader",
    "build_hyperbolic_system",
    "initial_conditions",
    "plot_1d",
    "plot_2d",
    "plot_timeseries",
    "run_partitioned",
]
