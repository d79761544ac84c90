"""
Writers for the MFEM text formats read by GLVis: `MFEM mesh v1.0` meshes and grid
functions of the positive (Bernstein) L2 finite element collection.
"""

from pathlib import Path
from typing import Union

import numpy as np

from ..mesh import CartesianMesh

# MFEM geometry ids
POINT, SEGMENT, SQUARE = 0, 1, 3

# vertex pairs of each face of a counterclockwise quadrilateral
_QUAD_FACE_VERTICES = ((3, 0), (1, 2), (0, 1), (2, 3))


def _format_float(value: float, precision: int) -> str:
    return f"{value:.{precision}g}"


def format_mesh(mesh: CartesianMesh, precision: int = 8) -> str:
    """
    Returns `mesh` in the `MFEM mesh v1.0` format. Boundary elements are written for
    the non-periodic faces with attribute `f + 1`.
    """
    elements = mesh.element_vertices()
    vertices = mesh.vertices()
    neighbors = mesh.face_neighbors

    element_geom = SEGMENT if mesh.dim == 1 else SQUARE
    lines = ["MFEM mesh v1.0", "", "dimension", str(mesh.dim), "", "elements"]
    lines.append(str(len(elements)))
    lines.extend(f"1 {element_geom} " + " ".join(map(str, v)) for v in elements)

    boundary = []
    for f in range(mesh.n_faces):
        for e in np.flatnonzero(neighbors[:, f] < 0):
            if mesh.dim == 1:
                boundary.append(f"{f + 1} {POINT} {elements[e, f]}")
            else:
                a, b = _QUAD_FACE_VERTICES[f]
                boundary.append(
                    f"{f + 1} {SEGMENT} {elements[e, a]} {elements[e, b]}"
                )
    lines.extend(["", "boundary", str(len(boundary))])
    lines.extend(boundary)

    lines.extend(["", "vertices", str(len(vertices)), str(mesh.dim)])
    lines.extend(
        " ".join(_format_float(c, precision) for c in vertex) for vertex in vertices
    )
    return "\n".join(lines) + "\n"


def format_grid_function(
    u: np.ndarray, order: int, dim: int, precision: int = 8
) -> str:
    """
    Returns the element-major Bernstein coefficients `u` as an MFEM grid function.
    """
    header = [
        "FiniteElementSpace",
        f"FiniteElementCollection: L2_T2_{dim}D_P{order}",
        "VDim: 1",
        "Ordering: 0",
        "",
    ]
    values = [_format_float(v, precision) for v in np.asarray(u, dtype=float)]
    return "\n".join(header + values) + "\n"


def write_mesh(mesh: CartesianMesh, path: Union[str, Path], precision: int = 8):
    with open(path, "w") as f:
        f.write(format_mesh(mesh, precision))


def write_grid_function(
    u: np.ndarray,
    order: int,
    dim: int,
    path: Union[str, Path],
    precision: int = 8,
):
    with open(path, "w") as f:
        f.write(format_grid_function(u, order, dim, precision))
