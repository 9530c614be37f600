from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union
import numpy as np

from .camera import PinholeCamera
from .errors import ConfigurationError
from .geometry import GeometryStore
from .intersector import Intersector, build_intersector
from .utils import get_logger
from ..motion.adaptors import PoseAdaptor, adaptor_for
from ..motion.pose import BodyPose

_log = get_logger()

DEPTH_MODES = ("z", "range")


@dataclass
class HitList:
    """Sparse render output: one entry per intersected pixel, sorted by pixel."""
    pixel_index: np.ndarray      # (K,) row * n_cols + col
    depth: np.ndarray            # (K,) float32
    body_index: np.ndarray       # (K,) int32
    triangle_index: np.ndarray   # (K,) triangle index within its body

    def __len__(self) -> int:
        return int(self.pixel_index.shape[0])

    @staticmethod
    def empty() -> "HitList":
        return HitList(
            pixel_index=np.zeros((0,), dtype=np.int64),
            depth=np.zeros((0,), dtype=np.float32),
            body_index=np.zeros((0,), dtype=np.int32),
            triangle_index=np.zeros((0,), dtype=np.int64),
        )

    def to_depth_image(self, n_pixels: int) -> np.ndarray:
        image = np.full((n_pixels,), np.inf, dtype=np.float32)
        image[self.pixel_index] = self.depth
        return image

    def to_body_index_image(self, n_pixels: int) -> np.ndarray:
        labels = np.full((n_pixels,), -1, dtype=np.int32)
        labels[self.pixel_index] = self.body_index
        return labels


def convert_depth(depth: np.ndarray, dtype=np.float64, bad_value: Optional[float] = None) -> np.ndarray:
    """Copy a depth image into ``dtype``, replacing non-finite entries by ``bad_value``.

    Finite values are copied exactly. Target types that cannot represent every
    source value (integers, narrower floats) are rejected rather than clamped,
    and so is a finite ``bad_value`` that overflows ``dtype``.
    """
    depth = np.asarray(depth)
    target = np.dtype(dtype)
    if not np.can_cast(depth.dtype, target, casting="safe"):
        raise ConfigurationError(
            f"Cannot convert {depth.dtype} depth to {target} without losing precision"
        )
    with np.errstate(over="ignore"):
        fill = target.type(np.inf if bad_value is None else bad_value)
    if bad_value is not None and np.isfinite(bad_value) and not np.isfinite(fill):
        raise ConfigurationError(f"bad_value {bad_value!r} does not fit into {target}")
    finite = np.isfinite(depth)
    out = np.empty(depth.shape, dtype=target)
    out[finite] = depth[finite]
    out[~finite] = fill
    return out


class Renderer:
    """Depth renderer for a set of posed rigid meshes.

    Holds one pose per body and a cache of the posed triangles; ``set_poses``
    rebuilds that cache and every ``render*`` call reads it. Rendering never
    modifies poses or geometry. Not safe for concurrent use: give each worker
    its own renderer (``GeometryStore.copy()``) or serialise pose/render pairs.
    """
    def __init__(
        self,
        geometry: GeometryStore,
        camera_matrix: Optional[np.ndarray] = None,
        n_rows: Optional[int] = None,
        n_cols: Optional[int] = None,
        *,
        intersector: Union[str, Intersector, None] = "auto",
        depth_mode: str = "z",
        epsilon: float = 1e-9,
    ) -> None:
        if depth_mode not in DEPTH_MODES:
            raise ConfigurationError(f"depth_mode must be one of {DEPTH_MODES}, got '{depth_mode}'")
        self._geometry = geometry
        self.intersector = build_intersector(intersector, epsilon)
        self.depth_mode = depth_mode
        self._camera: Optional[PinholeCamera] = None
        if camera_matrix is not None or n_rows is not None or n_cols is not None:
            self._camera = self._make_camera(camera_matrix, n_rows, n_cols)

        self._poses: List[BodyPose] = [BodyPose.identity() for _ in range(geometry.count_bodies())]
        self._rebuild_enumeration()
        self._triangles = self._transform(self._poses)

    @classmethod
    def from_arrays(cls, vertices: Sequence, indices: Sequence, *args, **kwargs) -> "Renderer":
        return cls(GeometryStore(vertices, indices), *args, **kwargs)

    # -- configuration --
    @property
    def geometry(self) -> GeometryStore:
        return self._geometry

    @property
    def camera(self) -> Optional[PinholeCamera]:
        return self._camera

    def count_bodies(self) -> int:
        return self._geometry.count_bodies()

    def parameters(self, camera_matrix: np.ndarray, n_rows: int, n_cols: int) -> None:
        """Set the intrinsics and resolution used by ``render()`` without arguments."""
        self._camera = self._make_camera(camera_matrix, n_rows, n_cols)

    def poses(self) -> List[BodyPose]:
        return [BodyPose(t=p.t.copy(), R=p.R.copy()) for p in self._poses]

    def set_poses(self, rotations: Sequence, translations: Optional[Sequence] = None) -> None:
        """Replace every body's pose.

        Either ``set_poses(rotations, translations)`` with 3x3 rotations and
        3-vectors, or ``set_poses(transforms)`` with 4x4 / 3x4 affine matrices.
        """
        n = self.count_bodies()
        rotations = list(rotations)
        if translations is None:
            self._check_count(len(rotations), n)
            poses = [BodyPose.from_affine(m) for m in rotations]
        else:
            translations = list(translations)
            self._check_count(len(rotations), n)
            self._check_count(len(translations), n)
            poses = [BodyPose(t=t, R=R) for R, t in zip(rotations, translations)]
        self.set_body_poses(poses)

    def set_body_poses(self, poses: Sequence[BodyPose]) -> None:
        poses = list(poses)
        self._check_count(len(poses), self.count_bodies())
        if all(new.same_as(old) for new, old in zip(poses, self._poses)):
            _log.debug("Renderer: poses unchanged, keeping transformed geometry.")
            return
        poses = [BodyPose(t=p.t.copy(), R=p.R.copy()) for p in poses]
        triangles = self._transform(poses)
        self._poses = poses
        self._triangles = triangles
        _log.debug("Renderer: posed %d bodies, %d triangles", len(poses), len(triangles))

    # -- rendering --
    def render_hits(
        self,
        camera_matrix: Optional[np.ndarray] = None,
        n_rows: Optional[int] = None,
        n_cols: Optional[int] = None,
    ) -> HitList:
        camera = self._resolve_camera(camera_matrix, n_rows, n_cols)
        self._refresh_if_stale()
        if len(self._triangles) == 0:
            return HitList.empty()

        hits = self.intersector.intersect(self._triangles, camera)
        scale = camera.depth_scale(self.depth_mode)[hits.pixel_index]
        _log.debug("Renderer: %d of %d pixels hit", len(hits.pixel_index), camera.n_pixels)
        return HitList(
            pixel_index=hits.pixel_index,
            depth=(hits.t * scale).astype(np.float32),
            body_index=self._body_ids[hits.triangle_index],
            triangle_index=self._local_ids[hits.triangle_index],
        )

    def render(
        self,
        camera_matrix: Optional[np.ndarray] = None,
        n_rows: Optional[int] = None,
        n_cols: Optional[int] = None,
    ) -> np.ndarray:
        """Dense row-major float32 depth image; +inf where nothing was hit."""
        camera = self._resolve_camera(camera_matrix, n_rows, n_cols)
        return self.render_hits(camera.camera_matrix, camera.n_rows, camera.n_cols).to_depth_image(
            camera.n_pixels
        )

    def render_body_index(
        self,
        camera_matrix: Optional[np.ndarray] = None,
        n_rows: Optional[int] = None,
        n_cols: Optional[int] = None,
    ) -> np.ndarray:
        """Dense row-major int32 image of the body seen at each pixel; -1 where nothing was hit."""
        camera = self._resolve_camera(camera_matrix, n_rows, n_cols)
        hits = self.render_hits(camera.camera_matrix, camera.n_rows, camera.n_cols)
        return hits.to_body_index_image(camera.n_pixels)

    def render_state(
        self,
        state,
        dtype=None,
        bad_value: Optional[float] = None,
        adaptor: Optional[PoseAdaptor] = None,
    ) -> np.ndarray:
        """Pose every body from ``state`` and render with the stored camera.

        Without ``dtype``/``bad_value`` the float32 image is returned as-is;
        otherwise it goes through :func:`convert_depth`, into float64 unless
        ``dtype`` says otherwise.
        """
        self.set_state(state, adaptor)
        depth = self.render()
        if dtype is None and bad_value is None:
            return depth
        return convert_depth(depth, np.float64 if dtype is None else dtype, bad_value)

    def set_state(self, state, adaptor: Optional[PoseAdaptor] = None) -> None:
        """Set every body's pose from a tracker state through its :class:`PoseAdaptor`."""
        if adaptor is None:
            adaptor = adaptor_for(state)
        self.set_body_poses(adaptor.poses_for(state))

    def posed_vertices(self, body_index: Optional[int] = None):
        """Camera-frame vertices under the current poses; one body or the list of all."""
        if body_index is None:
            return [self._posed_vertices(b) for b in range(self.count_bodies())]
        return self._posed_vertices(body_index)

    # -- internals --
    @staticmethod
    def _check_count(got: int, expected: int) -> None:
        if got != expected:
            raise ConfigurationError(f"Got {got} poses for {expected} bodies.")

    @staticmethod
    def _make_camera(camera_matrix, n_rows, n_cols) -> PinholeCamera:
        if camera_matrix is None or n_rows is None or n_cols is None:
            raise ConfigurationError("camera_matrix, n_rows and n_cols must be given together")
        return PinholeCamera(camera_matrix, n_rows, n_cols)

    def _resolve_camera(self, camera_matrix, n_rows, n_cols) -> PinholeCamera:
        if camera_matrix is None and n_rows is None and n_cols is None:
            if self._camera is None:
                raise ConfigurationError("No camera configured; call parameters() first.")
            return self._camera
        if (
            self._camera is not None
            and n_rows == self._camera.n_rows
            and n_cols == self._camera.n_cols
            and camera_matrix is not None
            and np.array_equal(np.asarray(camera_matrix), self._camera.camera_matrix)
        ):
            return self._camera
        return self._make_camera(camera_matrix, n_rows, n_cols)

    def _rebuild_enumeration(self) -> None:
        counts = [len(self._geometry.triangles(b)) for b in range(self.count_bodies())]
        self._body_ids = np.repeat(np.arange(len(counts), dtype=np.int32), counts)
        self._local_ids = np.concatenate(
            [np.arange(c, dtype=np.int64) for c in counts] or [np.zeros((0,), dtype=np.int64)]
        )
        self._geometry_revision = self._geometry.revision

    def _refresh_if_stale(self) -> None:
        if self._geometry_revision != self._geometry.revision:
            self._rebuild_enumeration()
            self._triangles = self._transform(self._poses)

    def _posed_vertices(self, body_index: int) -> np.ndarray:
        vertices = self._geometry.vertices(body_index)
        pose = self._poses[body_index]
        return vertices @ pose.R.T + pose.t

    def _transform(self, poses: Sequence[BodyPose]) -> np.ndarray:
        parts = []
        for body, pose in enumerate(poses):
            mesh = self._geometry.mesh(body)
            posed = mesh.vertices @ pose.R.T + pose.t
            parts.append(posed[mesh.triangles])
        if not parts:
            return np.zeros((0, 3, 3), dtype=np.float64)
        return np.concatenate(parts, axis=0)
