import pickle
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

import pandas as pd


@dataclass(frozen=True)
class SnapshotPlaceholder:
    """
    Reference to snapshot data that was written to disk and dropped from memory.
    """

    path: Path

    def load(self) -> Any:
        with open(self.path, "rb") as f:
            return pickle.load(f)


class Snapshots:
    """
    Snapshot data keyed by simulation time, ordered by time.
    """

    def __init__(self):
        self.data: Dict[float, Any] = {}
        self.file_index: Dict[int, float] = {}

    @property
    def time_values(self) -> List[float]:
        return sorted(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    def _check_t_exists(self, t: float):
        if t not in self.data:
            raise KeyError(f"No snapshot data available for time {t}.")

    def log(self, t: float, data: Any):
        """
        Log snapshot data at time `t`.

        Raises:
            ValueError: If snapshot data already exists for time `t`.
        """
        if t in self.data:
            raise ValueError(f"Snapshot data already exists for time {t}.")
        self.data[t] = data

    def unlog(self, t: float):
        self._check_t_exists(t)
        del self.data[t]

    def write(self, base: Path, t: float, discard: bool = False):
        """
        Pickle the snapshot at time `t` to 'base/snapshot_XXXX.pkl' and append it to
        'base/index.csv'.

        Args:
            base: Existing directory to write to.
            t: Time of the snapshot.
            discard: Replace the in-memory data with a placeholder after writing.
        """
        self._check_t_exists(t)
        if not base.exists():
            raise FileNotFoundError(f"Base directory {base} does not exist.")
        if t in self.file_index.values():
            raise ValueError(f"Snapshot data for time {t} already written to disk.")

        idx = max(self.file_index, default=-1) + 1
        if idx > 9999:
            raise RuntimeError("Exceeded maximum number of snapshots (9999).")
        path = base / f"snapshot_{idx:04d}.pkl"
        with open(path, "wb") as f:
            pickle.dump(self.data[t], f)
        self.file_index[idx] = t

        pd.DataFrame(
            {"idx": list(self.file_index), "t": list(self.file_index.values())}
        ).to_csv(base / "index.csv", index=False)

        if discard:
            self.data[t] = SnapshotPlaceholder(path)

    @classmethod
    def load(cls, base: Path) -> "Snapshots":
        """
        Load placeholders for every snapshot listed in 'base/index.csv'.
        """
        index_path = Path(base) / "index.csv"
        if not index_path.exists():
            raise FileNotFoundError(f"Index file not found at {index_path}")

        instance = cls()
        for idx, t in pd.read_csv(index_path).itertuples(index=False):
            path = Path(base) / f"snapshot_{int(idx):04d}.pkl"
            if not path.exists():
                raise FileNotFoundError(f"Snapshot file not found at {path}")
            instance.data[float(t)] = SnapshotPlaceholder(path)
            instance.file_index[int(idx)] = float(t)
        return instance

    def clear(self):
        self.data.clear()
        self.file_index.clear()

    def times(self) -> List[float]:
        return self.time_values

    def _resolve(self, data: Any) -> Any:
        return data.load() if isinstance(data, SnapshotPlaceholder) else data

    def __call__(self, t: float) -> Any:
        self._check_t_exists(t)
        return self._resolve(self.data[t])

    def __getitem__(self, n: int) -> Any:
        if not isinstance(n, int):
            raise TypeError(f"Index must be an integer. Got {type(n)}.")
        if n < -self.size or n >= self.size:
            raise IndexError(
                f"Index {n} out of range. Valid range: [{-self.size}, {self.size - 1}]."
            )
        return self._resolve(self.data[self.time_values[n]])

    def __iter__(self) -> Iterator[Tuple[float, Any]]:
        for t in self.time_values:
            yield t, self.data[t]

    def __contains__(self, t: float) -> bool:
        return t in self.data

    def __len__(self) -> int:
        return self.size
