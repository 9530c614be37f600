"""Packed kinematic state for any number of rigid bodies.

Every body occupies 13 consecutive scalars of one float64 array::

    [ px py pz | qx qy qz qw | vx vy vz | wx wy wz ]
      position   orientation   linear     angular
                               velocity   velocity

The quaternion is stored scalar-last, the same order
``scipy.spatial.transform.Rotation`` uses. Accessors named ``get_*`` return
copies; accessors named ``*_view`` return numpy views that write straight
into the backing array. Views stay valid until the state is resized.
"""

from __future__ import annotations

from operator import index as as_index
from typing import Optional

import numpy as np
from scipy.spatial.transform import Rotation

from ..core.errors import ConfigurationError, IndexOutOfRange
from ..motion.pose import BodyPose

COUNT_PER_BODY = 13
POSITION_INDEX, POSITION_COUNT = 0, 3
ORIENTATION_INDEX, ORIENTATION_COUNT = 3, 4
LINEAR_VELOCITY_INDEX, LINEAR_VELOCITY_COUNT = 7, 3
ANGULAR_VELOCITY_INDEX, ANGULAR_VELOCITY_COUNT = 10, 3

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])


def _body_count(count_bodies) -> int:
    try:
        count = as_index(count_bodies)
    except TypeError as exc:
        raise ConfigurationError(f"count_bodies must be an integer, got {count_bodies!r}") from exc
    if count < 0:
        raise ConfigurationError(f"count_bodies must be non-negative, got {count}")
    return count


class MultiBodyState:
    """Dynamically sized multi-body state (see module docstring for the layout)."""

    def __init__(self, count_bodies: int = 0) -> None:
        count = _body_count(count_bodies)
        self._data = np.zeros(count * COUNT_PER_BODY, dtype=np.float64)
        self.reset_quaternions()

    @classmethod
    def from_vector(cls, vector) -> "MultiBodyState":
        """Copy a flat state vector; orientations are taken as they are."""
        arr = np.array(vector, dtype=np.float64)
        if arr.ndim == 2 and arr.shape[1] == 1:
            arr = arr[:, 0]
        if arr.ndim != 1:
            raise ConfigurationError(f"state vector must be one-dimensional, got shape {arr.shape}")
        if arr.size % COUNT_PER_BODY != 0:
            raise ConfigurationError(
                f"state vector length {arr.size} is not a multiple of {COUNT_PER_BODY}"
            )
        obj = cls.__new__(cls)
        obj._adopt(arr)
        return obj

    def _adopt(self, arr: np.ndarray) -> None:
        self._data = np.ascontiguousarray(arr)

    # -- counts --
    def count_state(self) -> int:
        return int(self._data.size)

    def count_bodies(self) -> int:
        return self.count_state() // COUNT_PER_BODY

    @property
    def vector(self) -> np.ndarray:
        """The backing array itself (not a copy)."""
        return self._data

    def resize(self, count_bodies: int) -> None:
        """Grow or shrink in place; new bodies start at rest with identity orientation.

        Views handed out before the call no longer alias the state afterwards.
        """
        count = _body_count(count_bodies)
        old = self.count_bodies()
        data = np.zeros(count * COUNT_PER_BODY, dtype=np.float64)
        keep = min(old, count) * COUNT_PER_BODY
        data[:keep] = self._data[:keep]
        self._data = data
        for body in range(old, count):
            self.orientation_view(body)[:] = IDENTITY_QUATERNION

    def reset_quaternions(self) -> None:
        for body in range(self.count_bodies()):
            self.orientation_view(body)[:] = IDENTITY_QUATERNION

    def copy(self) -> "MultiBodyState":
        return type(self).from_vector(self._data)

    # -- read accessors (copies) --
    def get_position(self, body_index: int = 0) -> np.ndarray:
        return self.position_view(body_index).copy()

    def get_orientation(self, body_index: int = 0) -> np.ndarray:
        return self.orientation_view(body_index).copy()

    def get_quaternion(self, body_index: int = 0) -> Rotation:
        """Normalised rotation; the stored coefficients are left untouched."""
        coeffs = self.get_orientation(body_index)
        if not np.linalg.norm(coeffs) > 0.0:
            raise ConfigurationError(f"body {body_index} has a zero-norm orientation quaternion")
        return Rotation.from_quat(coeffs)

    def rotation_matrix(self, body_index: int = 0) -> np.ndarray:
        return self.get_quaternion(body_index).as_matrix()

    def get_linear_velocity(self, body_index: int = 0) -> np.ndarray:
        return self.linear_velocity_view(body_index).copy()

    def get_angular_velocity(self, body_index: int = 0) -> np.ndarray:
        return self.angular_velocity_view(body_index).copy()

    def get_pose(self, body_index: int = 0) -> BodyPose:
        return BodyPose(t=self.get_position(body_index), R=self.rotation_matrix(body_index))

    def homogeneous_matrix(self, body_index: int = 0) -> np.ndarray:
        return self.get_pose(body_index).as_affine()

    # -- views (write-through) --
    def position_view(self, body_index: int = 0) -> np.ndarray:
        return self._field(body_index, POSITION_INDEX, POSITION_COUNT)

    def orientation_view(self, body_index: int = 0) -> np.ndarray:
        return self._field(body_index, ORIENTATION_INDEX, ORIENTATION_COUNT)

    def linear_velocity_view(self, body_index: int = 0) -> np.ndarray:
        return self._field(body_index, LINEAR_VELOCITY_INDEX, LINEAR_VELOCITY_COUNT)

    def angular_velocity_view(self, body_index: int = 0) -> np.ndarray:
        return self._field(body_index, ANGULAR_VELOCITY_INDEX, ANGULAR_VELOCITY_COUNT)

    def body_view(self, body_index: int) -> np.ndarray:
        return self._field(body_index, 0, COUNT_PER_BODY)

    def __getitem__(self, body_index: int) -> np.ndarray:
        return self.body_view(body_index)

    # -- writers --
    def set_quaternion(self, rotation: Rotation, body_index: int = 0) -> None:
        self.orientation_view(body_index)[:] = rotation.as_quat()

    def set_pose(self, pose: BodyPose, body_index: int = 0) -> None:
        position = self.position_view(body_index)
        self.set_quaternion(Rotation.from_matrix(pose.R), body_index)
        position[:] = pose.t

    def _field(self, body_index: int, offset: int, count: int) -> np.ndarray:
        body_index = as_index(body_index)
        n_bodies = self.count_bodies()
        if body_index < 0 or body_index >= n_bodies:
            raise IndexOutOfRange(f"Body index {body_index} out of range for {n_bodies} bodies.")
        start = body_index * COUNT_PER_BODY + offset
        return self._data[start:start + count]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(count_bodies={self.count_bodies()})"


class FixedMultiBodyState(MultiBodyState):
    """Same surface as :class:`MultiBodyState` with the body count frozen at construction."""

    def __init__(self, count_bodies: int) -> None:
        super().__init__(count_bodies)
        self._fixed_bodies = self.count_bodies()

    @classmethod
    def from_vector(cls, vector, count_bodies: Optional[int] = None) -> "FixedMultiBodyState":
        obj = super().from_vector(vector)
        if count_bodies is not None and obj.count_bodies() != _body_count(count_bodies):
            raise ConfigurationError(
                f"state vector holds {obj.count_bodies()} bodies, expected {count_bodies}"
            )
        return obj

    def _adopt(self, arr: np.ndarray) -> None:
        super()._adopt(arr)
        self._fixed_bodies = self.count_bodies()

    def resize(self, count_bodies: int) -> None:
        if _body_count(count_bodies) != self._fixed_bodies:
            raise ConfigurationError(
                f"{type(self).__name__} holds exactly {self._fixed_bodies} bodies"
            )
