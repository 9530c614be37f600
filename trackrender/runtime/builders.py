from __future__ import annotations

from scipy.spatial.transform import Rotation

from ..config.schema import BodyConfig, SceneConfig
from ..core.exporter import NpzWriter
from ..core.geometry import GeometryStore
from ..core.renderer import Renderer
from ..examples.synthetic import MeshArrays, box, grid_plane, triangle
from ..state.multibody import MultiBodyState


def build_body_mesh(body: BodyConfig) -> MeshArrays:
    shape = body.shape
    if shape.kind == "box":
        return box(shape.size)
    if shape.kind == "plane":
        return grid_plane(shape.size, shape.divisions)
    if shape.kind == "triangle":
        return triangle(shape.vertices)
    if shape.kind == "mesh":
        # Raw lists: GeometryStore validates them.
        return shape.vertices, shape.triangles  # type: ignore[return-value]
    raise ValueError(f"Unsupported shape kind: {shape.kind}")


def build_geometry(cfg: SceneConfig) -> GeometryStore:
    meshes = [build_body_mesh(body) for body in cfg.bodies]
    return GeometryStore([m[0] for m in meshes], [m[1] for m in meshes])


def build_state(cfg: SceneConfig) -> MultiBodyState:
    state = MultiBodyState(len(cfg.bodies))
    for idx, body in enumerate(cfg.bodies):
        pose_cfg = body.pose
        state.position_view(idx)[:] = pose_cfg.xyz
        if pose_cfg.quaternion_xyzw is not None:
            state.orientation_view(idx)[:] = pose_cfg.quaternion_xyzw
        elif pose_cfg.rpy_deg is not None:
            # Same convention as BodyPose.from_xyz_rpy: R = Rz @ Ry @ Rx.
            rot = Rotation.from_euler("xyz", pose_cfg.rpy_deg, degrees=True)
            state.set_quaternion(rot, idx)
        state.linear_velocity_view(idx)[:] = body.linear_velocity
        state.angular_velocity_view(idx)[:] = body.angular_velocity
    return state


def build_renderer(cfg: SceneConfig, geometry: GeometryStore) -> Renderer:
    return Renderer(
        geometry,
        cfg.camera.matrix(),
        cfg.camera.n_rows,
        cfg.camera.n_cols,
        intersector=cfg.renderer.intersector,
        depth_mode=cfg.renderer.depth_mode,
        epsilon=cfg.renderer.epsilon,
    )


def build_writer(cfg: SceneConfig) -> NpzWriter:
    suffix = cfg.output.path.suffix.lower()
    if suffix != ".npz":
        raise ValueError(f"Unsupported output extension '{suffix}' (expected .npz)")
    return NpzWriter(str(cfg.output.path))

