import argparse
import dataclasses
import sys
from typing import List, Optional

from .communication import MPICommunicator, SerialCommunicator
from .config import Configuration
from .hyperbolic_solver import HyperbolicSolver, run_partitioned
from .tools.yaml_helper import yaml_dump


class UsageError(Exception):
    pass


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):
        self.print_usage(sys.stderr)
        raise UsageError(f"{self.prog}: error: {message}")


# command line option -> Configuration field
OPTIONS = {
    "problem": ("-p", "--problem", int, "Hyperbolic system: 0 - advection."),
    "setup": (
        "-c",
        "--configuration",
        int,
        "Problem setup: 0 - steady circular convection, 1 - solid body rotation, "
        "2 - smooth periodic translation, 3 - discontinuous periodic translation.",
    ),
    "nx": ("-nx", "--nx", int, "Number of elements in x."),
    "ny": ("-ny", "--ny", int, "Number of elements in y, 1 for a 1D mesh."),
    "refinements": ("-r", "--refine", int, "Number of uniform refinements."),
    "parallel_refinements": (
        "-pr",
        "--parallel-refine",
        int,
        "Number of uniform refinements after partitioning.",
    ),
    "order": ("-o", "--order", int, "Polynomial degree of the finite element space."),
    "final_time": ("-tf", "--t-final", float, "Final time."),
    "dt": ("-dt", "--time-step", float, "Time-step size."),
    "ode_solver": (
        "-s",
        "--ode-solver",
        int,
        "ODE solver: 1 - forward Euler, 2 - SSPRK2, 3 - SSPRK3.",
    ),
    "vis_steps": (
        "-vs",
        "--visualization-steps",
        int,
        "Print and visualize every n-th time step.",
    ),
    "scheme": (
        "-e",
        "--evolution-scheme",
        int,
        "Evolution scheme: 0 - standard Galerkin, 1 - monolithic convex limiting.",
    ),
    "tol": ("-tol", "--tolerance", float, "Residual tolerance of pseudo-time stepping."),
}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="hypsys",
        description="Bernstein DG solver for scalar hyperbolic conservation laws.",
    )
    for dest, (short, long, type_, help_) in OPTIONS.items():
        parser.add_argument(short, long, dest=dest, type=type_, default=None, help=help_)
    parser.add_argument(
        "-vis",
        "--visualization",
        dest="visualization",
        action="store_true",
        default=None,
        help="Push the solution to a GLVis server.",
    )
    parser.add_argument(
        "-no-vis",
        "--no-visualization",
        dest="visualization",
        action="store_false",
        help="Disable GLVis visualization.",
    )
    parser.add_argument(
        "--check-bounds",
        dest="check_bounds",
        action="store_true",
        default=None,
        help="Count DOFs leaving their neighborhood bounds after every step.",
    )
    parser.add_argument("--config", help="YAML file with configuration values.")
    parser.add_argument("--path", help="Output directory.")
    parser.add_argument(
        "--overwrite", action="store_true", help="Overwrite the output directory."
    )
    parser.add_argument(
        "--partitions",
        type=int,
        default=1,
        help="Number of in-process partitions.",
    )
    parser.add_argument(
        "--mpi", action="store_true", help="Partition the mesh among MPI ranks."
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Do not print progress."
    )
    return parser


def build_config(args: argparse.Namespace) -> Configuration:
    """
    Configuration from an optional YAML file overridden by the given options.
    """
    base = Configuration() if args.config is None else Configuration.from_yaml(args.config)
    names = list(OPTIONS) + ["visualization", "check_bounds"]
    overrides = {
        name: getattr(args, name) for name in names if getattr(args, name) is not None
    }
    return dataclasses.replace(base, **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        print(e, file=sys.stderr)
        return -1

    comm = MPICommunicator() if args.mpi else SerialCommunicator()
    try:
        config = build_config(args)
        if args.partitions < 1:
            raise ValueError(f"Number of partitions must be positive: {args.partitions}")
        if args.mpi and args.partitions > 1:
            raise ValueError("--partitions cannot be combined with --mpi.")
    except (ValueError, TypeError, FileNotFoundError) as e:
        if comm.is_root:
            print(e, file=sys.stderr)
        return -1

    if comm.is_root:
        print(yaml_dump(config.to_dict()), end="")

    verbose = not args.quiet
    try:
        if args.partitions > 1:
            run_partitioned(
                config,
                args.partitions,
                path=args.path,
                overwrite=args.overwrite,
                verbose=verbose,
            )
        else:
            solver = HyperbolicSolver(
                config, comm=comm, path=args.path, overwrite=args.overwrite
            )
            solver.run(verbose=verbose)
    except (ValueError, FileExistsError) as e:
        if comm.is_root:
            print(e, file=sys.stderr)
        return -1
    return 0


if __name__ == "__main__":
    sys.exit(main())
