"""
Communication capability of the solver: a serial implementation, an `mpi4py`
implementation and an in-process group of ranks running in threads, together with
the halo exchange built on top of them.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Literal, Optional, TypeVar

import numpy as np

try:
    from mpi4py import MPI

    MPI_AVAILABLE = True
except ImportError:
    MPI = None
    MPI_AVAILABLE = False

ReduceOp = Literal["sum", "min", "max"]
T = TypeVar("T")


def _reduce_in_order(values: List[Any], op: ReduceOp) -> Any:
    if op not in ("sum", "min", "max"):
        raise ValueError(f"Unknown reduction: {op}")
    out = values[0]
    for value in values[1:]:
        if op == "sum":
            out = out + value
        elif op == "min":
            out = min(out, value)
        else:
            out = max(out, value)
    return out


class Communicator(ABC):
    """
    Collective operations among the ranks sharing a partitioned mesh. Every rank
    must call each collective in the same order.
    """

    @property
    @abstractmethod
    def rank(self) -> int:
        pass

    @property
    @abstractmethod
    def size(self) -> int:
        pass

    @property
    def is_root(self) -> bool:
        return self.rank == 0

    @abstractmethod
    def alltoall(self, send: List[Any]) -> List[Any]:
        """
        Send `send[r]` to rank r and return the list of objects received from every
        rank, ordered by rank.
        """
        pass

    @abstractmethod
    def allreduce(self, value: Any, op: ReduceOp = "sum") -> Any:
        pass

    @abstractmethod
    def allgather(self, value: Any) -> List[Any]:
        pass

    @abstractmethod
    def barrier(self):
        pass


class SerialCommunicator(Communicator):
    """
    A single rank owning the whole mesh.
    """

    @property
    def rank(self) -> int:
        return 0

    @property
    def size(self) -> int:
        return 1

    def alltoall(self, send: List[Any]) -> List[Any]:
        if len(send) != 1:
            raise ValueError(f"Expected 1 message, got {len(send)}.")
        return list(send)

    def allreduce(self, value: Any, op: ReduceOp = "sum") -> Any:
        return _reduce_in_order([value], op)

    def allgather(self, value: Any) -> List[Any]:
        return [value]

    def barrier(self):
        pass


class MPICommunicator(Communicator):
    """
    Wrapper around an `mpi4py` communicator, `MPI.COMM_WORLD` by default.
    """

    def __init__(self, comm: Optional[Any] = None):
        if not MPI_AVAILABLE:
            raise RuntimeError("mpi4py is required for MPI communication.")
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self._ops = {"sum": MPI.SUM, "min": MPI.MIN, "max": MPI.MAX}

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()

    @property
    def size(self) -> int:
        return self.comm.Get_size()

    def alltoall(self, send: List[Any]) -> List[Any]:
        return self.comm.alltoall(send)

    def allreduce(self, value: Any, op: ReduceOp = "sum") -> Any:
        if op not in self._ops:
            raise ValueError(f"Unknown reduction: {op}")
        return self.comm.allreduce(value, op=self._ops[op])

    def allgather(self, value: Any) -> List[Any]:
        return self.comm.allgather(value)

    def barrier(self):
        self.comm.Barrier()


class ThreadGroup:
    """
    Shared state of `size` ranks living in threads of one process.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Group size must be positive: {size}")
        self.size = size
        self.slots: List[Any] = [None] * size
        self._barrier = threading.Barrier(size)

    def wait(self):
        self._barrier.wait()

    def abort(self):
        self._barrier.abort()


class ThreadCommunicator(Communicator):
    """
    One rank of a ThreadGroup. Reductions are evaluated in rank order, so every rank
    obtains bitwise identical results.
    """

    def __init__(self, group: ThreadGroup, rank: int):
        if not 0 <= rank < group.size:
            raise ValueError(f"Rank {rank} out of range for group of size {group.size}")
        self.group = group
        self._rank = rank

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self.group.size

    def _share(self, value: Any) -> List[Any]:
        group = self.group
        group.slots[self._rank] = value
        group.wait()
        out = list(group.slots)
        group.wait()
        return out

    def alltoall(self, send: List[Any]) -> List[Any]:
        if len(send) != self.size:
            raise ValueError(f"Expected {self.size} messages, got {len(send)}.")
        return [msgs[self._rank] for msgs in self._share(send)]

    def allreduce(self, value: Any, op: ReduceOp = "sum") -> Any:
        return _reduce_in_order(self._share(value), op)

    def allgather(self, value: Any) -> List[Any]:
        return self._share(value)

    def barrier(self):
        self.group.wait()


def run_in_threads(target: Callable[[Communicator], T], size: int) -> List[T]:
    """
    Run `target(comm)` on `size` ranks of a fresh ThreadGroup.

    Returns:
        The return values ordered by rank.

    Raises:
        The first exception raised by any rank. The other ranks are released from
        their pending collectives.
    """
    group = ThreadGroup(size)
    results: List[Any] = [None] * size
    errors: List[Optional[BaseException]] = [None] * size

    def worker(rank: int):
        try:
            results[rank] = target(ThreadCommunicator(group, rank))
        except BaseException as e:
            errors[rank] = e
            group.abort()

    threads = [
        threading.Thread(target=worker, args=(rank,), name=f"rank-{rank}")
        for rank in range(size)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    raised = [e for e in errors if e is not None]
    if raised:
        primary = [e for e in raised if not isinstance(e, threading.BrokenBarrierError)]
        raise (primary or raised)[0]
    return results


class HaloExchange:
    """
    Delivers the values of halo DOFs from their owners.

    Args:
        comm: Communicator.
        owned: Sorted global ids of the DOFs owned by this rank.
        halo: Sorted global ids of the DOFs needed from other ranks.
        halo_owners: Rank owning each halo DOF.
    """

    def __init__(
        self,
        comm: Communicator,
        owned: np.ndarray,
        halo: np.ndarray,
        halo_owners: np.ndarray,
    ):
        self.comm = comm
        self.n_owned = owned.size
        self.n_halo = halo.size
        self.recv_idx = [np.flatnonzero(halo_owners == r) for r in range(comm.size)]

        # tell every owner which of its DOFs this rank needs
        requests = [halo[idx] for idx in self.recv_idx]
        incoming = comm.alltoall(requests)
        self.send_idx = []
        for r, gids in enumerate(incoming):
            idx = np.searchsorted(owned, gids)
            if not np.array_equal(owned[np.minimum(idx, owned.size - 1)], gids):
                raise RuntimeError(
                    f"Rank {r} requested DOFs not owned by rank {comm.rank}."
                )
            self.send_idx.append(idx)

    def exchange(self, owned_values: np.ndarray) -> np.ndarray:
        """
        Blocking exchange returning the current values of the halo DOFs.

        Args:
            owned_values: Array with one row per owned DOF, shape (n_owned, ...).

        Returns:
            Array with one row per halo DOF, shape (n_halo, ...).
        """
        if owned_values.ndim == 0 or owned_values.shape[0] != self.n_owned:
            raise ValueError(
                f"Expected {self.n_owned} owned values, got shape {owned_values.shape}."
            )
        received = self.comm.alltoall([owned_values[idx] for idx in self.send_idx])
        out = np.empty((self.n_halo,) + owned_values.shape[1:])
        for idx, values in zip(self.recv_idx, received):
            out[idx] = values
        return out


def gather_global(
    comm: Communicator, gids: np.ndarray, values: np.ndarray, n: int
) -> np.ndarray:
    """
    Assemble the global vector of length `n` from the owned values of every rank.
    """
    out = np.full(n, np.nan)
    for g, v in comm.allgather((gids, values)):
        out[g] = v
    return out
