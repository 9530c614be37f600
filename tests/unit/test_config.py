from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import yaml
from pydantic import ValidationError

from trackrender.config import SceneConfig, load_config
from trackrender.motion.pose import BodyPose
from trackrender.runtime.builders import build_geometry, build_renderer, build_state, build_writer


def _scene(**overrides) -> dict:
    data = {
        "camera": {"n_rows": 4, "n_cols": 5, "focal_px": [10.0, 10.0]},
        "bodies": [
            {"name": "floor", "shape": {"kind": "plane", "size": 10.0, "divisions": 2}},
            {
                "shape": {"kind": "box", "size": [1.0, 1.0, 1.0]},
                "pose": {"xyz": [0.0, 0.0, 3.0], "rpy_deg": [0.0, 0.0, 90.0]},
                "linear_velocity": [0.1, 0.0, 0.0],
            },
        ],
        "output": {"path": "out/depth.npz"},
    }
    data.update(overrides)
    return data


def test_load_config_resolves_output_next_to_file(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    cfg_path.write_text(yaml.safe_dump(_scene()), encoding="utf-8")
    cfg = load_config(cfg_path)
    assert cfg.output.path == (tmp_path / "out" / "depth.npz").resolve()
    assert cfg.renderer.intersector == "auto"
    assert cfg.output.dtype == "float32"
    assert np.isposinf(cfg.output.bad_value)


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    cfg_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(cfg_path)


def test_focal_camera_defaults_principal_point() -> None:
    cfg = SceneConfig.model_validate(_scene())
    np.testing.assert_allclose(
        cfg.camera.matrix(), [[10.0, 0.0, 2.0], [0.0, 10.0, 1.5], [0.0, 0.0, 1.0]]
    )


@pytest.mark.parametrize(
    "camera",
    [
        {"n_rows": 4, "n_cols": 5},
        {"n_rows": 4, "n_cols": 5, "focal_px": [1.0, 1.0], "camera_matrix": np.eye(3).tolist()},
        {"n_rows": 4, "n_cols": 5, "camera_matrix": [[1.0, 0.0], [0.0, 1.0]]},
        {"n_rows": 0, "n_cols": 5, "focal_px": [1.0, 1.0]},
        {"n_rows": 4, "n_cols": 5, "focal_px": [-1.0, 1.0]},
    ],
)
def test_invalid_camera(camera: dict) -> None:
    with pytest.raises(ValidationError):
        SceneConfig.model_validate(_scene(camera=camera))


def test_invalid_bodies() -> None:
    both = {"shape": {"kind": "box", "size": [1, 1, 1]},
            "pose": {"quaternion_xyzw": [0, 0, 0, 1], "rpy_deg": [0, 0, 0]}}
    with pytest.raises(ValidationError):
        SceneConfig.model_validate(_scene(bodies=[both]))
    with pytest.raises(ValidationError):
        SceneConfig.model_validate(_scene(bodies=[{"shape": {"kind": "sphere"}}]))
    zero_quat = {"shape": {"kind": "box", "size": [1, 1, 1]}, "pose": {"quaternion_xyzw": [0, 0, 0, 0]}}
    with pytest.raises(ValidationError):
        SceneConfig.model_validate(_scene(bodies=[zero_quat]))


def test_builders_follow_config(tmp_path: Path) -> None:
    cfg = SceneConfig.model_validate(_scene(output={"path": str(tmp_path / "x.npz")}))
    geometry = build_geometry(cfg)
    assert geometry.count_bodies() == 2
    assert len(geometry.triangles(0)) == 8
    assert len(geometry.triangles(1)) == 12

    state = build_state(cfg)
    expected = BodyPose.from_xyz_rpy((0.0, 0.0, 3.0), (0.0, 0.0, 90.0))
    np.testing.assert_allclose(state.rotation_matrix(1), expected.R, atol=1e-12)
    np.testing.assert_array_equal(state.get_position(1), [0.0, 0.0, 3.0])
    np.testing.assert_array_equal(state.get_linear_velocity(1), [0.1, 0.0, 0.0])
    np.testing.assert_array_equal(state.get_orientation(0), [0.0, 0.0, 0.0, 1.0])

    renderer = build_renderer(cfg, geometry)
    assert renderer.camera.n_pixels == 20
    assert build_writer(cfg).path == str(tmp_path / "x.npz")


def test_mesh_shape_goes_through_geometry_checks(tmp_path: Path) -> None:
    body = {"shape": {"kind": "mesh", "vertices": [[0, 0, 0], [1, 0, 0], [0, 1, 0]], "triangles": [[0, 1]]}}
    cfg = SceneConfig.model_validate(_scene(bodies=[body], output={"path": str(tmp_path / "x.npz")}))
    with pytest.raises(ValueError):
        build_geometry(cfg)


def test_writer_requires_npz(tmp_path: Path) -> None:
    cfg = SceneConfig.model_validate(_scene(output={"path": str(tmp_path / "x.las")}))
    with pytest.raises(ValueError):
        build_writer(cfg)
