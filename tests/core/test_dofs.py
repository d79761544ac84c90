import numpy as np
import pytest

from hypsys.dofs import DofInfo, neighbor_pairs
from hypsys.fe_space import DGSpace
from hypsys.mesh import CartesianMesh, partition_elements


def neighborhoods(info: DofInfo) -> dict:
    out = {}
    for row, gid in enumerate(info.owned):
        cols = info.indices[info.indptr[row] : info.indptr[row + 1]]
        out[int(gid)] = info.local[cols].tolist()
    return out


def test_1d_neighborhoods():
    space = DGSpace(CartesianMesh(nx=4), 1)
    info = DofInfo(space, np.zeros(4, dtype=int))

    assert info.n_owned == info.n_local == 8
    assert info.halo.size == 0
    nbhd = neighborhoods(info)
    assert nbhd[0] == [0, 1]
    assert nbhd[2] == [1, 2, 3]
    assert nbhd[3] == [2, 3, 4]
    assert nbhd[7] == [6, 7]


def test_periodic_neighborhoods():
    space = DGSpace(CartesianMesh(nx=4, periodic=(True, False)), 1)
    nbhd = neighborhoods(DofInfo(space, np.zeros(4, dtype=int)))
    assert nbhd[0] == [0, 1, 7]
    assert nbhd[7] == [0, 6, 7]


def test_neighbor_pairs_are_symmetric():
    space = DGSpace(CartesianMesh(nx=3, ny=3), 2)
    rows, cols = neighbor_pairs(space, np.arange(9))
    pairs = set(zip(rows.tolist(), cols.tolist()))
    assert all((c, r) in pairs for r, c in pairs)


def test_edges_exclude_the_diagonal():
    space = DGSpace(CartesianMesh(nx=3, ny=2), 1)
    info = DofInfo(space, np.zeros(6, dtype=int))
    rows, cols = info.edges()
    assert np.all(info.owned_local[rows] != cols)
    assert rows.size == info.indices.size - info.n_owned
    assert np.all(np.diff(rows) >= 0)


@pytest.mark.parametrize("nparts", [2, 3, 5])
def test_partitioned_neighborhoods_match_serial(nparts):
    space = DGSpace(CartesianMesh(nx=5, ny=4, periodic=(True, False)), 2)
    serial = neighborhoods(DofInfo(space, np.zeros(20, dtype=int)))
    parts = partition_elements(space.mesh, nparts)

    owned = []
    for rank in range(nparts):
        info = DofInfo(space, parts, rank)
        owned.append(info.owned)
        assert np.all(parts[info.halo // space.nd] != rank)
        assert np.array_equal(info.halo_owners, parts[info.halo // space.nd])
        for gid, nbrs in neighborhoods(info).items():
            assert nbrs == serial[gid]
    assert np.array_equal(np.sort(np.concatenate(owned)), np.arange(space.n_dofs))


def test_compute_bounds():
    space = DGSpace(CartesianMesh(nx=3), 0)
    info = DofInfo(space, np.zeros(3, dtype=int))
    u_min, u_max = info.compute_bounds(np.array([2.0, -1.0, 5.0]))
    assert np.array_equal(u_min, [-1.0, -1.0, -1.0])
    assert np.array_equal(u_max, [2.0, 5.0, 5.0])

    with pytest.raises(ValueError, match="Expected local values"):
        info.compute_bounds(np.zeros(4))


def test_empty_partition():
    space = DGSpace(CartesianMesh(nx=2), 0)
    with pytest.raises(ValueError, match="owns no elements"):
        DofInfo(space, np.zeros(2, dtype=int), rank=1)
