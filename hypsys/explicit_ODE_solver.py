import os
import pickle
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import numpy as np

from .tools.snapshots import Snapshots
from .tools.timer import Timer


def clamp_dt(t: float, dt: float, target_time: Optional[float] = None) -> float:
    """
    Shorten `dt` so that a step from `t` does not pass `target_time`.
    """
    return dt if target_time is None else min(target_time - t, dt)


def status_print(msg: str, closing: bool = False, width: int = 100):
    """
    Overwrite the current terminal line with `msg`, padded to `width` characters.
    Only the closing message ends the line.
    """
    print(f"\r{msg:<{width}}", end="\n" if closing else "")


class ExplicitODESolver(ABC):
    """
    Base class for explicit single-step integration of u' = f(t, u) with strong
    stability preserving Runge-Kutta methods.

    Every method is written as convex combinations of forward Euler stages, so any
    bound a forward Euler step of `f` respects is respected by the full step.

    Attributes:
        t: Current time.
        dt: Size of the latest step.
        n_steps: Number of steps taken.
        n_substeps: Number of evaluations of `f` in the latest step.
        arrays: The state `u`, the stage states `u1`, `u2`, the stage derivative `k`
            and the next state `unew`.
        timer: Timer with the categories "wall", "take_step", "snapshot" and
            "minisnapshot".
        snapshots: Snapshots of `prepare_snapshot_data`.
        minisnapshots: Lists of the scalars of `prepare_minisnapshot_data`, one entry
            per step.
        path: Output directory, None if nothing is written.
        commit_details: Git commit of the running code.
        integrator: Name of the active integrator.

    Notes:
        - Subclasses implement `f`, `compute_dt`, the three message builders and
            `prepare_snapshot_data`.
        - `is_done` can be overridden to stop before the final time.
        - `called_at_beginning_of_step` and `called_at_end_of_step` are the hooks
            around every step, `log_progress` the hook for external viewers.
    """

    def __init__(self, u0: np.ndarray):
        """
        Args:
            u0: Initial state.
        """
        self.t = 0.0
        self.dt = 0.0
        self.reset_global_logs()
        self.reset_substepwise_logs()

        u = np.array(u0, dtype=float)
        self.arrays: Dict[str, np.ndarray] = {"u": u}
        for key in ("u1", "u2", "k", "unew"):
            self.arrays[key] = np.full_like(u, np.nan)

        self.timer = Timer(cats=["wall", "take_step", "snapshot", "minisnapshot"])
        self.snapshots: Snapshots = Snapshots()
        self.minisnapshots: Dict[str, list] = {}
        self.path: Optional[Path] = None
        self.commit_details = self._get_commit_details()

        self.integrator: Optional[str] = None
        self.stepper: Callable[[float, np.ndarray, float], None]

    @abstractmethod
    def compute_dt(self, t: float, u: np.ndarray) -> float:
        """
        Proposed size of the step from (t, u).
        """
        pass

    @abstractmethod
    def f(self, t: float, u: np.ndarray) -> np.ndarray:
        """
        Right-hand side of the ODE.

        Args:
            t: Time.
            u: State.

        Returns:
            du/dt at (t, u).
        """
        pass

    @abstractmethod
    def build_opening_message(self) -> str:
        pass

    @abstractmethod
    def build_update_message(self) -> str:
        pass

    @abstractmethod
    def build_closing_message(self) -> str:
        pass

    @abstractmethod
    def prepare_snapshot_data(self) -> Any:
        """
        Data stored in the snapshot at time `self.t`.
        """
        pass

    @property
    def is_root(self) -> bool:
        """
        Whether this process prints progress messages.
        """
        return True

    def is_done(self, T: float) -> bool:
        """
        Whether `T` is reached, up to a round-off margin of the latest step.
        """
        return self.t >= T - 1e-8 * self.dt

    def take_step(self, target_time: Optional[float] = None):
        """
        Advance `u` by one step of the active stepper without passing `target_time`.
        """
        self.called_at_beginning_of_step()

        t, u = self.t, self.arrays["u"]
        dt = clamp_dt(t, self.compute_dt(t, u), target_time)

        self.reset_substepwise_logs()
        self.stepper(t, u, dt)

        u[...] = self.arrays["unew"]
        self.t += dt
        self.dt = dt

        self.called_at_end_of_step()

    def called_at_beginning_of_step(self):
        self.timer.start("take_step")

    def called_at_end_of_step(self):
        self.timer.stop("take_step")
        self.increment_global_logs()

    def integrate(
        self,
        T: float,
        verbose: bool = True,
        log_freq: int = 100,
        snapshot_freq: Optional[int] = None,
        no_snapshots: bool = False,
        path: Optional[str] = None,
        overwrite: bool = False,
    ):
        """
        Integrate until `T` or until `is_done` reports completion.

        Args:
            T: Final time.
            verbose: Whether to print progress messages.
            log_freq: Step frequency of the progress messages and of `log_progress`.
            snapshot_freq: Step frequency of snapshots. If None, snapshots are taken
                at the start and at the end only.
            no_snapshots: Whether to skip snapshots.
            path: Output directory. If None, nothing is written.
            overwrite: Whether to replace `path` if it exists.
        """
        if not T > self.t:
            raise ValueError(f"Final time {T} must exceed the current time {self.t}.")
        self.timer.start("wall")

        self.prepare_output_directory(path, overwrite)
        verbose = verbose and self.is_root
        if verbose:
            status_print(self.build_opening_message())

        # initial state, unless a previous call logged it
        if self.t not in self.minisnapshots.get("t", []):
            if not no_snapshots:
                self.take_snapshot()
            self.take_minisnapshot()
        self.log_progress(done=False)

        done = False
        while not done:
            self.take_step(target_time=T)
            self.take_minisnapshot()
            done = self.is_done(T)

            if not no_snapshots and (
                done or (snapshot_freq is not None and self.n_steps % snapshot_freq == 0)
            ):
                self.take_snapshot()

            if self.n_steps % log_freq == 0 or done:
                self.log_progress(done=done)
                if verbose:
                    status_print(self.build_update_message())

        self.postprocess_snapshots()
        if verbose:
            status_print(self.build_closing_message(), closing=True)

        self.timer.stop("wall")

    def log_progress(self, done: bool):
        """
        Called at the start, every `log_freq` steps and at the end of `integrate`.
        """
        pass

    def prepare_minisnapshot_data(self) -> Dict[str, Any]:
        """
        Scalars logged after every step.
        """
        return {
            "t": self.t,
            "dt": self.dt,
            "n_steps": self.n_steps,
            "n_substeps": self.n_substeps,
            "step_time": self.timer.lap_time["take_step"],
        }

    def prepare_output_directory(
        self, path: Optional[str] = None, overwrite: bool = False
    ):
        """
        Create `path` with a 'snapshots' subdirectory and write the metadata.

        Raises:
            FileExistsError: `path` exists and `overwrite` is False.
        """
        if path is None:
            return

        out_path = Path(path)
        if out_path.exists():
            if not overwrite:
                raise FileExistsError(f"Output directory '{out_path}' already exists.")
            shutil.rmtree(out_path)

        os.makedirs(out_path / "snapshots")
        self.path = out_path
        self.write_metadata()

    def write_metadata(self):
        if self.path is None:
            return
        with open(self.path / "commit_details.txt", "w") as f:
            for key, value in self.commit_details.items():
                f.write(f"{key}: {value}\n")

    def take_snapshot(self):
        self.timer.start("snapshot")
        self.snapshots.log(self.t, self.prepare_snapshot_data())
        if self.path is not None:
            self.snapshots.write(self.path / "snapshots", self.t)
        self.timer.stop("snapshot")

    def take_minisnapshot(self):
        self.timer.start("minisnapshot")
        for key, value in self.prepare_minisnapshot_data().items():
            self.minisnapshots.setdefault(key, []).append(value)
        self.timer.stop("minisnapshot")

    def postprocess_snapshots(self):
        """
        Pickle the minisnapshots to 'path/snapshots/minisnapshots.pkl'.
        """
        if self.path is None:
            return
        with open(self.path / "snapshots" / "minisnapshots.pkl", "wb") as f:
            pickle.dump(self.minisnapshots, f)

    def reset_global_logs(self):
        self.n_steps = 0

    def increment_global_logs(self):
        self.n_steps += 1

    def reset_substepwise_logs(self):
        self.n_substeps = 0

    def increment_substepwise_logs(self):
        self.n_substeps += 1

    def _forward_euler_stage(self, t: float, u: np.ndarray, dt: float, out: np.ndarray):
        k = self.arrays["k"]
        k[...] = self.f(t, u)
        out[...] = u + dt * k
        self.increment_substepwise_logs()

    def euler(self, *args, **kwargs) -> None:
        self.integrator = "euler"
        self.stepper = self._euler_step
        self.integrate(*args, **kwargs)

    def _euler_step(self, t: float, u: np.ndarray, dt: float):
        self._forward_euler_stage(t, u, dt, self.arrays["unew"])

    def ssprk2(self, *args, **kwargs) -> None:
        self.integrator = "ssprk2"
        self.stepper = self._ssprk2_step
        self.integrate(*args, **kwargs)

    def _ssprk2_step(self, t: float, u: np.ndarray, dt: float):
        u1, unew = self.arrays["u1"], self.arrays["unew"]

        self._forward_euler_stage(t, u, dt, u1)
        self._forward_euler_stage(t + dt, u1, dt, unew)
        unew[...] = 0.5 * u + 0.5 * unew

    def ssprk3(self, *args, **kwargs) -> None:
        self.integrator = "ssprk3"
        self.stepper = self._ssprk3_step
        self.integrate(*args, **kwargs)

    def _ssprk3_step(self, t: float, u: np.ndarray, dt: float):
        u1, u2, unew = self.arrays["u1"], self.arrays["u2"], self.arrays["unew"]

        self._forward_euler_stage(t, u, dt, u1)
        self._forward_euler_stage(t + dt, u1, dt, u2)
        u2[...] = 0.75 * u + 0.25 * u2
        self._forward_euler_stage(t + 0.5 * dt, u2, dt, unew)
        unew[...] = u / 3 + 2 / 3 * unew

    def _get_commit_details(self) -> Dict[str, Optional[str]]:
        """
        Hash, author, date and branch of the latest commit of the repository holding
        this package.
        """
        repo_path = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        try:
            result = subprocess.run(
                ["git", "-C", repo_path, "log", "-1", "--pretty=format:%H|%an|%ai|%D"],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", None)
            return {"error": f"An error occurred: {(stderr or str(e)).strip()}"}

        fields = result.stdout.strip().split("|") + [""] * 3
        refs = fields[3].strip()
        return {
            "commit_hash": fields[0],
            "author_name": fields[1] or None,
            "commit_date": fields[2] or None,
            "branch_name": refs.split(",")[0].split()[-1] if refs else None,
        }
