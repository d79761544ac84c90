from __future__ import annotations

import socket
import warnings
from typing import TYPE_CHECKING, Callable, Optional, Union

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.axes import Axes
from matplotlib.collections import QuadMesh
from matplotlib.colorbar import Colorbar

from .basis import bernstein
from .tools.loader import OutputLoader

if TYPE_CHECKING:
    from hypsys.hyperbolic_solver import HyperbolicSolver


class GLVisStream:
    """
    Socket stream pushing a mesh and a grid function to a GLVis server.

    A failed connection or send is warned about once, after which the stream is
    disabled for the rest of the run.

    Args:
        host: Host name of the GLVis server.
        port: Port of the GLVis server.
        timeout: Connection timeout in seconds.
    """

    def __init__(self, host: str = "localhost", port: int = 19916, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sock: Optional[socket.socket] = None
        self.enabled = True
        self.n_sends = 0

    def send(self, mesh: str, grid_function: str, title: Optional[str] = None):
        """
        Push a solution, given as MFEM text, to the server.
        """
        if not self.enabled:
            return
        msg = "solution\n" + mesh + grid_function
        if self.n_sends == 0:
            if title is not None:
                msg += f'window_title "{title}"\n'
            msg += "pause\n"
        try:
            if self.sock is None:
                self.sock = socket.create_connection(
                    (self.host, self.port), timeout=self.timeout
                )
            self.sock.sendall(msg.encode())
        except OSError as e:
            warnings.warn(
                f"Unable to connect to GLVis server at {self.host}:{self.port} ({e}). "
                "Visualization is disabled."
            )
            self.close()
            self.enabled = False
            return
        self.n_sends += 1

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None


def _get_solution(
    solver: Union[HyperbolicSolver, OutputLoader], t: Optional[float]
) -> tuple:
    times = np.sort(np.array(solver.snapshots.times()))
    if times.size == 0:
        raise ValueError("No snapshots available.")
    n = -1 if t is None else int(np.argmin(np.abs(times - t)))
    if t is not None and times[n] != t:
        warnings.warn(f"Time {t} not exactly matched in snapshots; using nearest: {times[n]:.6g}")
    return float(times[n]), solver.snapshots(times[n])["u"]


def sample_solution(
    solver: Union[HyperbolicSolver, OutputLoader], u: np.ndarray, n: int = 8
) -> tuple:
    """
    Values of a 1D solution at `n` equispaced points of every element, with a NaN
    between elements so that plotted lines break at element interfaces.

    Returns:
        x, f: Arrays of shape (n_elements * (n + 1),).
    """
    space = solver.space
    s = np.linspace(0.0, 1.0, n)
    B = bernstein(space.p, s)
    origins = space.mesh.element_origins()[:, 0]
    x = origins[:, np.newaxis] + s * space.mesh.h[0]
    f = u.reshape(-1, space.nd) @ B.T
    gap = np.full((x.shape[0], 1), np.nan)
    return np.hstack([x, gap]).ravel(), np.hstack([f, gap]).ravel()


def plot_1d(
    solver: Union[HyperbolicSolver, OutputLoader],
    ax: Axes,
    t: Optional[float] = None,
    n: int = 8,
    xlabel: bool = False,
    **kwargs,
):
    """
    Plot a 1D solution as a piecewise polynomial.

    Args:
        solver: HyperbolicSolver or OutputLoader object.
        ax: Matplotlib axes object.
        t: Desired time. If None, the latest available snapshot is used.
        n: Number of sample points per element.
        xlabel: Whether to show the x-axis label.
        **kwargs: Keyword arguments for the plot.
    """
    if solver.space.dim != 1:
        raise ValueError("plot_1d requires a 1D solution.")
    _, u = _get_solution(solver, t)
    x, f = sample_solution(solver, u, n)
    ax.plot(x, f, **kwargs)
    if xlabel:
        ax.set_xlabel(r"$x$")


def plot_2d(
    solver: Union[HyperbolicSolver, OutputLoader],
    ax: Axes,
    t: Optional[float] = None,
    colorbar: bool = False,
    **kwargs,
) -> tuple[QuadMesh, Optional[Colorbar]]:
    """
    Plot the element averages of a 2D solution.

    Args:
        solver: HyperbolicSolver or OutputLoader object.
        ax: Matplotlib axes object.
        t: Desired time. If None, the latest available snapshot is used.
        colorbar: Whether to add a colorbar.
        **kwargs: Keyword arguments for `pcolormesh`.

    Returns:
        The QuadMesh and the colorbar, if any.
    """
    space = solver.space
    if space.dim != 2:
        raise ValueError("plot_2d requires a 2D solution.")
    _, u = _get_solution(solver, t)

    m = space.lumped_mass
    means = (u.reshape(-1, space.nd) @ m) / np.sum(m)
    mesh = space.mesh
    x = np.linspace(mesh.xlim[0], mesh.xlim[1], mesh.nx + 1)
    y = np.linspace(mesh.ylim[0], mesh.ylim[1], mesh.ny + 1)
    im = ax.pcolormesh(x, y, means.reshape(mesh.ny, mesh.nx), **kwargs)
    ax.set_aspect("equal")

    cbar = None
    if colorbar:
        cbar = plt.colorbar(im, ax=ax)
    return im, cbar


def power_law(
    x0: float, f0: float, x1: float, f1: float
) -> Callable[[np.ndarray], np.ndarray]:
    """
    Return a power law function `f(x) = f0 * (x  / x0) ** r` from two points (x0, f0)
    and (x1, f1) where `r = log(f1 / f0) / log(x1 / x0)`.

    Args:
        x0: First x-coordinate.
        f0: First y-coordinate.
        x1: Second x-coordinate.
        f1: Second y-coordinate.

    Returns:
        Power law function.
    """
    r = np.log(f1 / f0) / np.log(x1 / x0)
    return lambda x: f0 * (x / x0) ** r


def plot_power_law_fit(ax: Axes, x: np.ndarray, f: np.ndarray, **kwargs):
    """
    Plot a power law function on a given axes from the two points (x[0], f[0]) and
    (x[-1], f[-1]).
    """
    p_law = power_law(x[0], f[0], x[-1], f[-1])
    ax.plot(x, p_law(x), **kwargs)


def plot_timeseries(
    solver: Union[HyperbolicSolver, OutputLoader],
    ax: Axes,
    variable: str,
    **kwargs,
):
    """
    Plot a timeseries logged in `solver.minisnapshots`.

    Raises:
        ValueError: `variable` is not in `solver.minisnapshots`.
    """
    if variable not in solver.minisnapshots:
        raise ValueError(
            f"Variable {variable} not found in `HyperbolicSolver.minisnapshots`."
        )
    ax.plot(solver.minisnapshots["t"], solver.minisnapshots[variable], **kwargs)
