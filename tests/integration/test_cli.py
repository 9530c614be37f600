from __future__ import annotations

from pathlib import Path

import numpy as np
import yaml
from typer.testing import CliRunner

from trackrender.cli.main import app


def _write_scene(path: Path, output_name: str = "depth.npz") -> None:
    config = {
        "camera": {"n_rows": 6, "n_cols": 8, "focal_px": [20.0, 20.0]},
        "renderer": {"intersector": "numpy"},
        "bodies": [
            {"name": "floor", "shape": {"kind": "plane", "size": 50.0, "divisions": 2}, "pose": {"xyz": [0.3, 0.1, 3.0]}},
            {
                "name": "tile",
                "shape": {
                    "kind": "mesh",
                    "vertices": [[-0.1, -0.1, 0.0], [0.1, -0.1, 0.0], [0.1, 0.1, 0.0], [-0.1, 0.1, 0.0]],
                    "triangles": [[0, 1, 2], [0, 2, 3]],
                },
                "pose": {"xyz": [0.01, 0.0, 1.0], "quaternion_xyzw": [0.0, 0.0, 0.0, 1.0]},
            },
        ],
        "output": {"path": output_name},
    }
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config, f)


def test_cli_render_dense(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    _write_scene(cfg_path)

    runner = CliRunner()
    result = runner.invoke(app, ["render", str(cfg_path)])
    assert result.exit_code == 0, result.stdout
    assert "Rendered 2 bodies: 48 of 48 pixels hit" in result.stdout

    with np.load(tmp_path / "depth.npz") as data:
        depth = data["depth"]
        assert depth.shape == (6, 8)
        assert np.all(np.isfinite(depth))
        assert np.isclose(depth.min(), 1.0)
        assert np.any(data["body_index"] == 1)


def test_cli_render_sparse_with_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    _write_scene(cfg_path)
    out_path = tmp_path / "hits.npz"

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "render",
            str(cfg_path),
            "--output",
            str(out_path),
            "--intersector",
            "numpy",
            "--sparse",
            "--log-level",
            "DEBUG",
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert not (tmp_path / "depth.npz").exists()
    with np.load(out_path) as data:
        assert data["pixel_index"].shape == (48,)
        assert "triangle_index" in data.files


def test_cli_render_rejects_unknown_backend(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    _write_scene(cfg_path)
    runner = CliRunner()
    result = runner.invoke(app, ["render", str(cfg_path), "--intersector", "optix"])
    assert result.exit_code != 0


def test_cli_render_rejects_non_npz_output(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    _write_scene(cfg_path)
    runner = CliRunner()
    result = runner.invoke(app, ["render", str(cfg_path), "-o", str(tmp_path / "depth.png")])
    assert result.exit_code != 0
    assert not (tmp_path / "depth.png").exists()


def test_cli_inspect(tmp_path: Path) -> None:
    cfg_path = tmp_path / "scene.yaml"
    _write_scene(cfg_path)
    runner = CliRunner()
    result = runner.invoke(app, ["inspect", str(cfg_path)])
    assert result.exit_code == 0, result.stdout
    lines = result.stdout.strip().splitlines()
    assert lines[0] == "2 bodies, 10 triangles"
    assert lines[1].startswith("0: floor kind=plane triangles=8 weight=2500")
    assert lines[2].startswith("1: tile kind=mesh triangles=2 weight=0.04")
