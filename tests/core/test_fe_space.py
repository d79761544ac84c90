import numpy as np
import pytest

from hypsys.fe_space import DGSpace
from hypsys.mesh import CartesianMesh


def meshes():
    return [
        CartesianMesh(nx=5, xlim=(0.0, 2.0)),
        CartesianMesh(nx=3, ny=4, xlim=(0.0, 1.5), ylim=(-1.0, 1.0)),
    ]


@pytest.mark.parametrize("mesh", meshes())
@pytest.mark.parametrize("p", [0, 1, 2, 3])
def test_lumped_mass(mesh, p):
    space = DGSpace(mesh, p)
    assert space.nd == (p + 1) ** mesh.dim
    assert space.n_dofs == mesh.n_elements * space.nd
    assert np.all(space.lumped_mass > 0)
    assert np.sum(space.lumped_mass) == pytest.approx(space.detJ)

    m = space.mass_vector(np.arange(mesh.n_elements))
    assert m.shape == (space.n_dofs,)
    assert np.sum(m) == pytest.approx(mesh.volume)


@pytest.mark.parametrize("mesh", meshes())
@pytest.mark.parametrize("p", [0, 1, 3])
def test_face_dofs(mesh, p):
    space = DGSpace(mesh, p)
    for f in range(mesh.n_faces):
        others = np.setdiff1d(np.arange(space.nd), space.face_dofs[f])
        assert np.all(space.face_phi[f][:, others] == 0)
        assert np.allclose(np.sum(space.face_phi[f], axis=1), 1.0)


@pytest.mark.parametrize("p", [1, 2])
def test_face_points_match_across_faces(p):
    mesh = CartesianMesh(nx=3, ny=3)
    space = DGSpace(mesh, p)
    nbrs = mesh.face_neighbors
    for f in range(mesh.n_faces):
        e = np.flatnonzero(nbrs[:, f] >= 0)
        here = space.face_points(e, f)
        there = space.face_points(nbrs[e, f], f ^ 1)
        assert np.allclose(here, there)

        # matching face DOFs sit at the same tangential node
        nodes = space.node_points(e)[:, space.face_dofs[f]]
        nbr_nodes = space.node_points(nbrs[e, f])[:, space.face_dofs[f ^ 1]]
        assert np.allclose(nodes, nbr_nodes)


@pytest.mark.parametrize("mesh", meshes())
def test_quadrature_points_lie_in_their_element(mesh):
    space = DGSpace(mesh, 2)
    elements = np.arange(mesh.n_elements)
    x = space.quadrature_points(elements)
    origins = mesh.element_origins()[:, np.newaxis, :]
    assert x.shape == (mesh.n_elements, space.n_quadrature_points, mesh.dim)
    assert np.all((x > origins) & (x < origins + mesh.h))


@pytest.mark.parametrize("mesh", meshes())
@pytest.mark.parametrize("p", [0, 2])
def test_interpolate_constant(mesh, p):
    space = DGSpace(mesh, p)
    elements = np.arange(mesh.n_elements)
    u = space.interpolate(lambda x: np.full(x.shape[0], 0.25), elements)
    assert u.shape == (space.n_dofs,)
    assert np.allclose(space.evaluate(u), 0.25)


def test_interpolate_stays_in_range():
    mesh = CartesianMesh(nx=4, ny=4)
    space = DGSpace(mesh, 3)
    elements = np.arange(mesh.n_elements)
    u = space.interpolate(lambda x: np.sin(5 * x[:, 0]) * np.cos(3 * x[:, 1]), elements)
    values = space.evaluate(u)
    assert np.all(u >= -1) and np.all(u <= 1)
    assert np.all(values >= np.min(u) - 1e-14)
    assert np.all(values <= np.max(u) + 1e-14)


def test_interpolate_linear_function_is_exact():
    mesh = CartesianMesh(nx=4, ny=2)
    space = DGSpace(mesh, 2)
    elements = np.arange(mesh.n_elements)
    u = space.interpolate(lambda x: 2 * x[:, 0] - x[:, 1], elements)
    x = space.quadrature_points(elements)
    assert np.allclose(space.evaluate(u), 2 * x[..., 0] - x[..., 1])


def test_dofs_of():
    space = DGSpace(CartesianMesh(nx=4), 1)
    assert np.array_equal(space.dofs_of(np.array([1, 3])), [2, 3, 6, 7])


def test_negative_order():
    with pytest.raises(ValueError, match="non-negative"):
        DGSpace(CartesianMesh(nx=2), -1)
