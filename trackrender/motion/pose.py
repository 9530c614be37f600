from __future__ import annotations
from dataclasses import dataclass
import numpy as np
from scipy.spatial.transform import Rotation

from ..core.errors import ConfigurationError


def _as_shape(value, shape: tuple[int, ...], name: str) -> np.ndarray:
    try:
        arr = np.array(value, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be numeric") from exc
    if arr.size != int(np.prod(shape)):
        raise ConfigurationError(f"{name} must have {int(np.prod(shape))} entries, got shape {arr.shape}")
    return arr.reshape(shape)


@dataclass(eq=False)
class BodyPose:
    t: np.ndarray   # (3,)
    R: np.ndarray   # (3,3)

    def __post_init__(self) -> None:
        self.t = _as_shape(self.t, (3,), "translation")
        self.R = _as_shape(self.R, (3, 3), "rotation")

    @staticmethod
    def identity() -> "BodyPose":
        return BodyPose(t=np.zeros(3), R=np.eye(3))

    @staticmethod
    def from_xyz_rpy(xyz: tuple[float, float, float], rpy_deg: tuple[float, float, float]) -> "BodyPose":
        rx, ry, rz = np.deg2rad(rpy_deg)
        cx, sx = np.cos(rx), np.sin(rx)
        cy, sy = np.cos(ry), np.sin(ry)
        cz, sz = np.cos(rz), np.sin(rz)
        Rx = np.array([[1, 0, 0], [0, cx, -sx], [0, sx, cx]])
        Ry = np.array([[cy, 0, sy], [0, 1, 0], [-sy, 0, cy]])
        Rz = np.array([[cz, -sz, 0], [sz, cz, 0], [0, 0, 1]])
        R = Rz @ Ry @ Rx
        return BodyPose(t=np.array(xyz, dtype=float), R=R.astype(float))

    @staticmethod
    def from_quaternion(quat_xyzw, xyz=(0.0, 0.0, 0.0)) -> "BodyPose":
        q = _as_shape(quat_xyzw, (4,), "quaternion")
        if not np.linalg.norm(q) > 0.0:
            raise ConfigurationError("quaternion must have non-zero norm")
        return BodyPose(t=np.array(xyz, dtype=float), R=Rotation.from_quat(q).as_matrix())

    @staticmethod
    def from_affine(matrix) -> "BodyPose":
        """Accepts a 4x4 homogeneous or 3x4 affine transform."""
        m = np.asarray(matrix, dtype=np.float64)
        if m.shape not in {(4, 4), (3, 4)}:
            raise ConfigurationError(f"affine transform must be 4x4 or 3x4, got shape {m.shape}")
        return BodyPose(t=m[:3, 3], R=m[:3, :3])

    def as_affine(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.R
        m[:3, 3] = self.t
        return m

    def apply(self, p_body: np.ndarray) -> np.ndarray:
        return (self.R @ p_body.T).T + self.t

    def same_as(self, other: "BodyPose") -> bool:
        return np.array_equal(self.R, other.R) and np.array_equal(self.t, other.t)
