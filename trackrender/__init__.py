"""trackrender – depth rendering kernel for rigid-body pose tracking.

This package contains the pieces a particle filter calls for every sample:
- GeometryStore (core.geometry): per-body reference meshes + cached centroids
- Renderer, HitList, convert_depth (core.renderer): z-buffered depth images
- Intersector backends (core.intersector) [NumPy & Embree]
- BodyPose + PoseAdaptor registry (motion)
- MultiBodyState: packed 13-scalar-per-body kinematic state (state.multibody)

Optional dependencies (trimesh/embree) are guarded so the NumPy backend always works.
"""

from .core.errors import ConfigurationError, IndexOutOfRange, InvalidGeometry, TrackRenderError
from .core.geometry import GeometryStore, Mesh
from .core.camera import PinholeCamera
from .core.intersector import (RayBundle, TriangleHits, Intersector,
                               NumpyIntersector, EmbreeIntersector, AutoIntersector,
                               build_intersector)
from .core.renderer import HitList, Renderer, convert_depth
from .motion.pose import BodyPose
from .motion.adaptors import (PoseAdaptor, MultiBodyStateAdaptor, PoseSequenceAdaptor,
                              adaptor_for, register_adaptor)
from .state.multibody import COUNT_PER_BODY, FixedMultiBodyState, MultiBodyState
