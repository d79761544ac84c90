import pickle
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from ..config import Configuration
from ..fe_space import DGSpace
from ..mesh import CartesianMesh
from .snapshots import Snapshots
from .yaml_helper import yaml_load


class OutputLoader:

    def __init__(self, base: Path):
        """
        Load simulation output from the specified base directory.

        Args:
            base: The base directory for the simulation output.
        """
        self.base = Path(base)

        if not self.base.exists():
            raise FileNotFoundError(f"Base directory {base} does not exist.")

        self.metadata = self.load_metadata()
        self.config = Configuration.from_dict(self.metadata["config"])

        self.mesh = CartesianMesh(**self.metadata["mesh"])
        self.space = DGSpace(self.mesh, self.config.order)
        self.minisnapshots = self.load_minisnapshots()
        self.snapshots = self.load_snapshots()
        self.errors = self.load_errors()

        print(f'Successfully read simulation output from "{self.base}"')

    def load_metadata(self) -> dict:
        with open(self.base / "config.yaml", "r") as f:
            return yaml_load(f)

    def load_minisnapshots(self) -> Dict[str, list]:
        """
        Load the minisnapshots from 'output_dir/snapshots/minisnapshots.pkl'.
        """
        with open(self.base / "snapshots" / "minisnapshots.pkl", "rb") as f:
            return pickle.load(f)

    def load_snapshots(self) -> Snapshots:
        """
        Load the snapshots from 'output_dir/snapshots'.
        """
        return Snapshots.load(self.base / "snapshots")

    def load_errors(self) -> Optional[pd.DataFrame]:
        """
        Load 'output_dir/errors.csv' if it was written.
        """
        path = self.base / "errors.csv"
        return pd.read_csv(path) if path.exists() else None

    def print_timings(self):
        """
        Print the timing statistics for the solver.
        """
        with open(self.base / "timings.txt", "r") as f:
            lines = f.readlines()

        for line in lines:
            print(line.strip())
