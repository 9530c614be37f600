from __future__ import annotations

from dataclasses import dataclass, field
from numbers import Integral
from typing import Optional

import numpy as np

from .errors import ConfigurationError
from .intersector import RayBundle


def _positive_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return int(value)


@dataclass(eq=False)
class PinholeCamera:
    """Intrinsics plus resolution of the depth camera.

    Pixel ``(row, col)`` looks along ``K^-1 @ (col, row, 1)``; points on that
    ray are ``t * d`` for ``t > 0``. The camera looks down +z.
    """

    camera_matrix: np.ndarray
    n_rows: int
    n_cols: int
    _inverse: Optional[np.ndarray] = field(default=None, init=False, repr=False)
    _directions: Optional[np.ndarray] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            matrix = np.array(self.camera_matrix, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("camera_matrix must be a numeric 3x3 matrix") from exc
        if matrix.shape != (3, 3):
            raise ConfigurationError(f"camera_matrix must be 3x3, got shape {matrix.shape}")
        if not np.all(np.isfinite(matrix)):
            raise ConfigurationError("camera_matrix must be finite")
        if abs(np.linalg.det(matrix)) <= 1e-12:
            raise ConfigurationError("camera_matrix must be invertible")
        matrix.flags.writeable = False
        self.camera_matrix = matrix
        self.n_rows = _positive_int(self.n_rows, "n_rows")
        self.n_cols = _positive_int(self.n_cols, "n_cols")

    @staticmethod
    def from_focal(
        n_rows: int,
        n_cols: int,
        focal_px: tuple[float, float],
        principal_px: tuple[float, float] | None = None,
    ) -> "PinholeCamera":
        if principal_px is None:
            principal_px = ((n_cols - 1) / 2.0, (n_rows - 1) / 2.0)
        fx, fy = focal_px
        cx, cy = principal_px
        matrix = np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)
        return PinholeCamera(matrix, n_rows, n_cols)

    @property
    def n_pixels(self) -> int:
        return self.n_rows * self.n_cols

    @property
    def inverse(self) -> np.ndarray:
        if self._inverse is None:
            self._inverse = np.linalg.inv(self.camera_matrix)
        return self._inverse

    def pixel_directions(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        rows = np.asarray(rows, dtype=np.float64).reshape(-1)
        cols = np.asarray(cols, dtype=np.float64).reshape(-1)
        uv1 = np.column_stack([cols, rows, np.ones_like(cols)])
        return uv1 @ self.inverse.T

    def directions(self) -> np.ndarray:
        """Unnormalised ray direction of every pixel, row-major, shape (n_pixels, 3)."""
        if self._directions is None:
            rr, cc = np.meshgrid(
                np.arange(self.n_rows), np.arange(self.n_cols), indexing="ij"
            )
            dirs = self.pixel_directions(rr, cc)
            dirs.flags.writeable = False
            self._directions = dirs
        return self._directions

    def depth_scale(self, mode: str = "z") -> np.ndarray:
        """Per-pixel factor turning a ray parameter ``t`` into depth."""
        dirs = self.directions()
        if mode == "z":
            return dirs[:, 2]
        if mode == "range":
            return np.linalg.norm(dirs, axis=1)
        raise ConfigurationError(f"Unknown depth mode '{mode}' (expected 'z' or 'range')")

    def project(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Project camera-frame points; returns pixel ``(u, v)`` and homogeneous ``w``.

        ``w`` is positive exactly for points in front of the camera.
        """
        homog = np.asarray(points, dtype=np.float64) @ self.camera_matrix.T
        w = homog[:, 2]
        with np.errstate(divide="ignore", invalid="ignore"):
            uv = homog[:, :2] / w[:, None]
        return uv, w

    def ray_bundle(self) -> RayBundle:
        dirs = self.directions()
        return RayBundle(
            origins=np.zeros_like(dirs),
            directions=dirs.copy(),
        )
