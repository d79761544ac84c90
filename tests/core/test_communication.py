import numpy as np
import pytest

from hypsys.communication import (
    HaloExchange,
    SerialCommunicator,
    gather_global,
    run_in_threads,
)


def test_serial_communicator():
    comm = SerialCommunicator()
    assert comm.rank == 0 and comm.size == 1 and comm.is_root
    assert comm.allreduce(3.0) == 3.0
    assert comm.allreduce(3.0, op="min") == 3.0
    assert comm.allgather("a") == ["a"]
    assert comm.alltoall(["a"]) == ["a"]
    with pytest.raises(ValueError, match="Expected 1 message"):
        comm.alltoall(["a", "b"])
    with pytest.raises(ValueError, match="Unknown reduction"):
        comm.allreduce(1.0, op="prod")  # type: ignore[arg-type]


@pytest.mark.parametrize("size", [1, 2, 4])
def test_thread_collectives(size):
    def target(comm):
        rank = comm.rank
        return (
            comm.allreduce(rank + 1.0),
            comm.allreduce(rank, op="min"),
            comm.allreduce(rank, op="max"),
            comm.allgather(rank * 10),
            comm.alltoall([(rank, r) for r in range(comm.size)]),
        )

    results = run_in_threads(target, size)
    for rank, (total, lo, hi, gathered, received) in enumerate(results):
        assert total == size * (size + 1) / 2
        assert (lo, hi) == (0, size - 1)
        assert gathered == [10 * r for r in range(size)]
        assert received == [(r, rank) for r in range(size)]


def test_thread_reductions_are_identical_on_every_rank():
    values = [0.1, 1e16, -1e16, 0.3]

    def target(comm):
        return comm.allreduce(values[comm.rank])

    results = run_in_threads(target, 4)
    assert len(set(results)) == 1


@pytest.mark.parametrize("size", [1, 2])
def test_thread_unknown_reduction(size):
    def target(comm):
        return comm.allreduce(1.0, op="prod")

    with pytest.raises(ValueError, match="Unknown reduction"):
        run_in_threads(target, size)


def test_errors_propagate_and_release_other_ranks():
    def target(comm):
        if comm.rank == 1:
            raise ValueError("rank 1 failed")
        comm.barrier()
        return comm.rank

    with pytest.raises(ValueError, match="rank 1 failed"):
        run_in_threads(target, 3)


def test_halo_exchange():
    # 6 global DOFs, rank r owns {2r, 2r + 1} and needs its ring neighbors
    def target(comm):
        r, size = comm.rank, comm.size
        owned = np.array([2 * r, 2 * r + 1])
        halo = np.sort(np.array([(2 * r - 1) % 6, (2 * r + 2) % 6]))
        halo_owners = halo // 2
        exchange = HaloExchange(comm, owned, halo, halo_owners)

        values = 100.0 + owned
        stacked = np.stack([values, -values], axis=1)
        return halo, exchange.exchange(values), exchange.exchange(stacked)

    for halo, received, stacked in run_in_threads(target, 3):
        assert np.array_equal(received, 100.0 + halo)
        assert np.array_equal(stacked[:, 1], -(100.0 + halo))


def test_halo_exchange_rejects_wrong_shape():
    exchange = HaloExchange(
        SerialCommunicator(), np.arange(3), np.empty(0, dtype=int), np.empty(0, dtype=int)
    )
    assert exchange.exchange(np.ones(3)).shape == (0,)
    with pytest.raises(ValueError, match="Expected 3 owned values"):
        exchange.exchange(np.ones(4))


def test_halo_exchange_rejects_unowned_requests():
    def target(comm):
        owned = np.array([comm.rank])
        # both ranks claim DOF 0 is owned by rank 0, but rank 1 requests DOF 5
        halo = np.array([5]) if comm.rank == 1 else np.empty(0, dtype=int)
        owners = np.zeros(halo.size, dtype=int)
        return HaloExchange(comm, owned, halo, owners)

    with pytest.raises(RuntimeError, match="not owned"):
        run_in_threads(target, 2)


def test_gather_global():
    def target(comm):
        gids = np.arange(comm.rank, 6, comm.size)
        return gather_global(comm, gids, gids * 2.0, 6)

    for out in run_in_threads(target, 3):
        assert np.array_equal(out, 2.0 * np.arange(6))
