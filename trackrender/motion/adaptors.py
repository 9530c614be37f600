"""Turn external state objects into one :class:`BodyPose` per body.

The renderer does not care how a tracker stores its hypotheses. Each state
representation in use registers a :class:`PoseAdaptor` for its type; the
renderer looks it up along the state's MRO.
"""

from __future__ import annotations

from typing import Dict, List, Protocol, Sequence

from ..core.errors import ConfigurationError
from ..state.multibody import MultiBodyState
from .pose import BodyPose


class PoseAdaptor(Protocol):
    def poses_for(self, state) -> List[BodyPose]: ...


class MultiBodyStateAdaptor:
    """Rotation matrix from the normalised quaternion plus position, in body order."""

    def poses_for(self, state: MultiBodyState) -> List[BodyPose]:
        return [
            BodyPose(t=state.get_position(i), R=state.rotation_matrix(i))
            for i in range(state.count_bodies())
        ]


class PoseSequenceAdaptor:
    """A plain list or tuple of poses is already a pose set."""

    def poses_for(self, state: Sequence[BodyPose]) -> List[BodyPose]:
        poses = list(state)
        for idx, pose in enumerate(poses):
            if not isinstance(pose, BodyPose):
                raise ConfigurationError(f"item {idx} is {type(pose).__name__}, expected BodyPose")
        return poses


_ADAPTORS: Dict[type, PoseAdaptor] = {
    MultiBodyState: MultiBodyStateAdaptor(),
    list: PoseSequenceAdaptor(),
    tuple: PoseSequenceAdaptor(),
}


def register_adaptor(state_type: type, adaptor: PoseAdaptor) -> None:
    _ADAPTORS[state_type] = adaptor


def adaptor_for(state) -> PoseAdaptor:
    for klass in type(state).__mro__:
        adaptor = _ADAPTORS.get(klass)
        if adaptor is not None:
            return adaptor
    raise ConfigurationError(
        f"No pose adaptor registered for {type(state).__name__}; use register_adaptor()."
    )
