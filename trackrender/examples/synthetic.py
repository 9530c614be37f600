"""Primitive meshes for demos and tests, centred on the body origin."""

from __future__ import annotations

from typing import Tuple

import numpy as np

MeshArrays = Tuple[np.ndarray, np.ndarray]


def grid_plane(size: float, divisions: int = 1) -> MeshArrays:
    """Square in the body's xy-plane facing +z."""
    if divisions <= 0:
        raise ValueError("divisions must be positive.")
    lin = np.linspace(-size / 2.0, size / 2.0, divisions + 1, dtype=np.float64)
    xv, yv = np.meshgrid(lin, lin, indexing="ij")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.zeros(xv.size)])

    faces = []
    for i in range(divisions):
        for j in range(divisions):
            idx0 = i * (divisions + 1) + j
            idx1 = idx0 + 1
            idx2 = idx0 + (divisions + 1)
            idx3 = idx2 + 1
            faces.append([idx0, idx2, idx3])
            faces.append([idx0, idx3, idx1])
    return vertices, np.asarray(faces, dtype=np.int64)


def box(size: Tuple[float, float, float]) -> MeshArrays:
    sx, sy, sz = size
    hx, hy, hz = sx / 2.0, sy / 2.0, sz / 2.0
    vertices = np.array([
        [-hx, -hy, -hz],
        [hx, -hy, -hz],
        [hx, hy, -hz],
        [-hx, hy, -hz],
        [-hx, -hy, hz],
        [hx, -hy, hz],
        [hx, hy, hz],
        [-hx, hy, hz],
    ], dtype=np.float64)

    faces = np.array([
        [0, 2, 1], [0, 3, 2],  # -z
        [4, 5, 6], [4, 6, 7],  # +z
        [0, 1, 5], [0, 5, 4],  # -y
        [1, 2, 6], [1, 6, 5],  # +x
        [2, 3, 7], [2, 7, 6],  # +y
        [3, 0, 4], [3, 4, 7],  # -x
    ], dtype=np.int64)
    return vertices, faces


def triangle(vertices) -> MeshArrays:
    verts = np.asarray(vertices, dtype=np.float64).reshape(3, 3)
    return verts, np.array([[0, 1, 2]], dtype=np.int64)
