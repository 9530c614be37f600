from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, Union
import numpy as np
from .errors import ConfigurationError
from .utils import get_logger, ensure_unit_vectors, row_dot

if TYPE_CHECKING:  # pragma: no cover
    from .camera import PinholeCamera

_log = get_logger()

try:
    import trimesh  # type: ignore
    from trimesh.ray import ray_pyembree  # type: ignore
    _HAVE_EMBREE = True
except Exception:
    trimesh = None  # type: ignore
    ray_pyembree = None  # type: ignore
    _HAVE_EMBREE = False


@dataclass
class RayBundle:
    origins: np.ndarray          # (M, 3)
    directions: np.ndarray       # (M, 3) unit

    def __post_init__(self) -> None:
        assert self.origins.shape == self.directions.shape
        self.directions = ensure_unit_vectors(self.directions)


@dataclass
class TriangleHits:
    """Nearest hit per pixel, already resolved across all triangles."""
    pixel_index: np.ndarray      # (K,) sorted ascending
    t: np.ndarray                # (K,) ray parameter along the camera's pixel direction
    triangle_index: np.ndarray   # (K,) global triangle index

    @staticmethod
    def empty() -> "TriangleHits":
        return TriangleHits(
            pixel_index=np.zeros((0,), dtype=np.int64),
            t=np.zeros((0,), dtype=np.float64),
            triangle_index=np.zeros((0,), dtype=np.int64),
        )


class Intersector(Protocol):
    def intersect(self, triangles: np.ndarray, camera: "PinholeCamera") -> TriangleHits: ...


def usable_triangles(triangles: np.ndarray, epsilon: float) -> np.ndarray:
    """Mask of triangles that are finite and not degenerate (zero area)."""
    if len(triangles) == 0:
        return np.zeros((0,), dtype=bool)
    finite = np.all(np.isfinite(triangles.reshape(len(triangles), -1)), axis=1)
    with np.errstate(invalid="ignore", over="ignore"):
        e1 = triangles[:, 1] - triangles[:, 0]
        e2 = triangles[:, 2] - triangles[:, 0]
        n = np.linalg.norm(np.cross(e1, e2), axis=1)
        scale = np.linalg.norm(e1, axis=1) * np.linalg.norm(e2, axis=1)
        solid = n > epsilon * scale
    return finite & solid


class NumpyIntersector:
    """Pure NumPy z-buffer: bounding-box scan plus Moller-Trumbore per triangle."""

    def __init__(self, epsilon: float = 1e-9) -> None:
        self.epsilon = float(epsilon)

    def _candidate_pixels(self, tri: np.ndarray, camera: "PinholeCamera") -> Optional[np.ndarray]:
        uv, w = camera.project(tri)
        if np.all(w <= self.epsilon):
            # Entirely behind the optical centre.
            return None
        if np.all(w > self.epsilon):
            lo = np.floor(uv.min(axis=0))
            hi = np.ceil(uv.max(axis=0))
            if hi[0] < 0 or hi[1] < 0 or lo[0] > camera.n_cols - 1 or lo[1] > camera.n_rows - 1:
                return None
            c0, r0 = int(max(lo[0], 0)), int(max(lo[1], 0))
            c1 = int(min(hi[0], camera.n_cols - 1))
            r1 = int(min(hi[1], camera.n_rows - 1))
        else:
            # Straddles the camera plane: projection is unbounded, scan everything.
            r0, c0, r1, c1 = 0, 0, camera.n_rows - 1, camera.n_cols - 1
        rr, cc = np.meshgrid(np.arange(r0, r1 + 1), np.arange(c0, c1 + 1), indexing="ij")
        return (rr * camera.n_cols + cc).reshape(-1)

    def _ray_triangle_intersect(self, dirs: np.ndarray, tri: np.ndarray) -> np.ndarray:
        """Ray parameter for rays ``t * dirs`` from the origin; inf on a miss."""
        v0, v1, v2 = tri
        edge1 = v1 - v0
        edge2 = v2 - v0
        normal_len = np.linalg.norm(np.cross(edge1, edge2))
        pvec = np.cross(dirs, edge2)
        det = pvec @ edge1
        valid = np.abs(det) > self.epsilon * np.linalg.norm(dirs, axis=1) * normal_len
        inv_det = np.divide(1.0, det, out=np.zeros_like(det), where=valid)
        tvec = -v0
        u = (pvec @ tvec) * inv_det
        qvec = np.cross(tvec, edge1)
        v = (dirs @ qvec) * inv_det
        t = (edge2 @ qvec) * inv_det
        hit = valid & (u >= 0.0) & (u <= 1.0) & (v >= 0.0) & ((u + v) <= 1.0) & (t > self.epsilon)
        return np.where(hit, t, np.inf)

    def intersect(self, triangles: np.ndarray, camera: "PinholeCamera") -> TriangleHits:
        zbuf = np.full((camera.n_pixels,), np.inf, dtype=np.float64)
        owner = np.full((camera.n_pixels,), -1, dtype=np.int64)
        all_dirs = camera.directions()
        keep = usable_triangles(triangles, self.epsilon)

        for tri_idx in np.flatnonzero(keep):
            tri = triangles[tri_idx]
            pix = self._candidate_pixels(tri, camera)
            if pix is None or pix.size == 0:
                continue
            t = self._ray_triangle_intersect(all_dirs[pix], tri)
            # Strict comparison: on equal depth the earlier triangle keeps the pixel.
            closer = t < zbuf[pix]
            if not closer.any():
                continue
            zbuf[pix[closer]] = t[closer]
            owner[pix[closer]] = tri_idx

        hit_pixels = np.flatnonzero(owner >= 0)
        return TriangleHits(
            pixel_index=hit_pixels.astype(np.int64, copy=False),
            t=zbuf[hit_pixels],
            triangle_index=owner[hit_pixels],
        )


class EmbreeIntersector:
    """Embree via trimesh.ray.ray_pyembree (optional dependency)."""
    def __init__(self, epsilon: float = 1e-9) -> None:
        if not _HAVE_EMBREE:
            raise RuntimeError("pyembree not available. pip install trimesh[ray].")
        self.epsilon = float(epsilon)

    def _build_backend(self, triangles: np.ndarray):
        # Triangle soup: each triangle owns its three vertices so ids map 1:1.
        faces = np.arange(len(triangles) * 3, dtype=np.int64).reshape(-1, 3)
        tm = trimesh.Trimesh(vertices=triangles.reshape(-1, 3), faces=faces, process=False)
        return ray_pyembree.RayMeshIntersector(tm)

    def intersect(self, triangles: np.ndarray, camera: "PinholeCamera") -> TriangleHits:
        keep = np.flatnonzero(usable_triangles(triangles, self.epsilon))
        if keep.size == 0:
            return TriangleHits.empty()

        backend = self._build_backend(triangles[keep])
        bundle = camera.ray_bundle()
        locs, ray_ids, tri_ids = backend.intersects_location(
            bundle.origins, bundle.directions, multiple_hits=True
        )
        if len(ray_ids) == 0:
            return TriangleHits.empty()

        ray_ids = np.asarray(ray_ids, dtype=np.int64)
        dirs = camera.directions()[ray_ids]
        t = row_dot(np.asarray(locs, dtype=np.float64), dirs) / row_dot(dirs, dirs)
        global_ids = keep[np.asarray(tri_ids, dtype=np.int64)]

        front = t > self.epsilon
        ray_ids, t, global_ids = ray_ids[front], t[front], global_ids[front]
        if ray_ids.size == 0:
            return TriangleHits.empty()

        # Per ray: nearest first, lowest triangle index among equal depths.
        order = np.lexsort((global_ids, t, ray_ids))
        _, first = np.unique(ray_ids[order], return_index=True)
        sel = order[first]
        return TriangleHits(
            pixel_index=ray_ids[sel],
            t=t[sel],
            triangle_index=global_ids[sel],
        )


class AutoIntersector:
    """Picks the fastest available backend: Embree if present, else NumPy."""
    def __init__(self, epsilon: float = 1e-9) -> None:
        self.epsilon = float(epsilon)
        self._impl: Optional[Intersector] = None

    def intersect(self, triangles: np.ndarray, camera: "PinholeCamera") -> TriangleHits:
        if self._impl is None:
            self._impl = self._choose()
        return self._impl.intersect(triangles, camera)

    def _choose(self) -> Intersector:
        if _HAVE_EMBREE:
            _log.info("AutoIntersector: using Embree.")
            return EmbreeIntersector(self.epsilon)
        _log.info("AutoIntersector: using NumPy z-buffer intersector.")
        return NumpyIntersector(self.epsilon)


def build_intersector(choice: Union[str, Intersector, None] = "auto", epsilon: float = 1e-9) -> Intersector:
    if choice is None:
        choice = "auto"
    if not isinstance(choice, str):
        return choice
    name = choice.lower()
    if name == "auto":
        return AutoIntersector(epsilon)
    if name == "numpy":
        return NumpyIntersector(epsilon)
    if name == "embree":
        return EmbreeIntersector(epsilon)
    raise ConfigurationError(f"Unknown intersector '{choice}' (expected auto, numpy or embree)")
