from __future__ import annotations
from dataclasses import dataclass
from operator import index as as_index
from typing import List, Optional, Sequence
import numpy as np
from .errors import IndexOutOfRange, InvalidGeometry
from .utils import get_logger

_log = get_logger()


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


def _as_vertices(vertices, body: int) -> np.ndarray:
    try:
        arr = np.array(vertices, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidGeometry(f"Body {body}: vertices are not a numeric (V, 3) array.") from exc
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidGeometry(f"Body {body}: vertices must have shape (V, 3), got {arr.shape}.")
    return arr


def _as_triangles(indices, n_vertices: int, body: int) -> np.ndarray:
    if isinstance(indices, np.ndarray):
        arr = indices
    else:
        rows = list(indices)
        for tri_idx, tri in enumerate(rows):
            count = len(tri) if hasattr(tri, "__len__") else 1
            if count != 3:
                raise InvalidGeometry(
                    f"Body {body}: triangle {tri_idx} has {count} indices, expected 3."
                )
        arr = np.asarray(rows) if rows else np.zeros((0, 3), dtype=np.int64)
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.int64)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidGeometry(f"Body {body}: triangles must have shape (T, 3), got {arr.shape}.")
    if not np.issubdtype(arr.dtype, np.integer):
        raise InvalidGeometry(f"Body {body}: triangle indices must be integers, got {arr.dtype}.")
    arr = arr.astype(np.int64)
    bad = (arr < 0) | (arr >= n_vertices)
    if bad.any():
        tri_idx, corner = np.argwhere(bad)[0]
        raise InvalidGeometry(
            f"Body {body}: triangle {tri_idx} references vertex {arr[tri_idx, corner]} "
            f"outside [0, {n_vertices})."
        )
    return arr


@dataclass(frozen=True)
class Mesh:
    """Reference geometry of one body with derived per-triangle data."""

    vertices: np.ndarray    # (V, 3) float64
    triangles: np.ndarray   # (T, 3) int64
    normals: np.ndarray     # (T, 3) unit, zero for degenerate triangles
    areas: np.ndarray       # (T,)

    @staticmethod
    def from_arrays(vertices, triangles, body: int = 0) -> "Mesh":
        verts = _as_vertices(vertices, body)
        tris = _as_triangles(triangles, len(verts), body)

        corners = verts[tris]
        cross = np.cross(corners[:, 1] - corners[:, 0], corners[:, 2] - corners[:, 0])
        lens = np.linalg.norm(cross, axis=1, keepdims=True)
        normals = np.divide(cross, lens, out=np.zeros_like(cross), where=lens > 0)
        areas = 0.5 * lens[:, 0]
        return Mesh(
            vertices=_frozen(verts),
            triangles=_frozen(tris),
            normals=_frozen(normals),
            areas=_frozen(areas),
        )

    def centroid(self) -> tuple[np.ndarray, float]:
        """Area-weighted surface centroid and the total area used as its weight."""
        weight = float(self.areas.sum())
        if weight > 0.0:
            tri_centers = self.vertices[self.triangles].mean(axis=1)
            center = (tri_centers * self.areas[:, None]).sum(axis=0) / weight
            return center, weight
        if len(self.vertices):
            return self.vertices.mean(axis=0), 0.0
        return np.zeros(3, dtype=np.float64), 0.0


class GeometryStore:
    """Owns the reference mesh of every body plus its cached centroid and weight.

    Geometry is validated on the way in, so the renderer never has to check
    indices on the hot path. All arrays handed out are read-only.
    """
    def __init__(self, vertices: Sequence, indices: Sequence) -> None:
        vertices = list(vertices)
        indices = list(indices)
        if len(vertices) != len(indices):
            raise InvalidGeometry(
                f"Got vertices for {len(vertices)} bodies but triangles for {len(indices)}."
            )
        self._meshes: List[Mesh] = [
            Mesh.from_arrays(v, i, body=b) for b, (v, i) in enumerate(zip(vertices, indices))
        ]
        self._centroids: List[np.ndarray] = []
        self._weights: List[float] = []
        self._revision = 0
        for mesh in self._meshes:
            center, weight = mesh.centroid()
            self._centroids.append(_frozen(center))
            self._weights.append(weight)
        _log.debug(
            "GeometryStore: %d bodies, %d triangles", len(self._meshes), self.triangle_count()
        )

    # -- API --
    def count_bodies(self) -> int:
        return len(self._meshes)

    def __len__(self) -> int:
        return len(self._meshes)

    @property
    def revision(self) -> int:
        """Bumped every time a body's geometry is replaced."""
        return self._revision

    def triangle_count(self) -> int:
        return sum(len(m.triangles) for m in self._meshes)

    def mesh(self, body_index: int) -> Mesh:
        return self._meshes[self._check(body_index)]

    def vertices(self, body_index: Optional[int] = None):
        if body_index is None:
            return [m.vertices for m in self._meshes]
        return self.mesh(body_index).vertices

    def triangles(self, body_index: int) -> np.ndarray:
        return self.mesh(body_index).triangles

    def normals(self, body_index: int) -> np.ndarray:
        return self.mesh(body_index).normals

    def centroid(self, body_index: int) -> np.ndarray:
        return self._centroids[self._check(body_index)]

    def weight(self, body_index: int) -> float:
        return self._weights[self._check(body_index)]

    def replace(self, body_index: int, vertices, indices) -> None:
        """Swap one body's geometry; its centroid and weight are recomputed."""
        body_index = self._check(body_index)
        mesh = Mesh.from_arrays(vertices, indices, body=body_index)
        center, weight = mesh.centroid()
        self._meshes[body_index] = mesh
        self._centroids[body_index] = _frozen(center)
        self._weights[body_index] = weight
        self._revision += 1

    def copy(self) -> "GeometryStore":
        return GeometryStore(
            [m.vertices.copy() for m in self._meshes],
            [m.triangles.copy() for m in self._meshes],
        )

    def _check(self, body_index: int) -> int:
        body_index = as_index(body_index)
        if body_index < 0 or body_index >= len(self._meshes):
            raise IndexOutOfRange(
                f"Body index {body_index} out of range for {len(self._meshes)} bodies."
            )
        return body_index
