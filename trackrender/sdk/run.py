from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from ..config import SceneConfig, load_config
from ..core.renderer import convert_depth
from ..core.utils import get_logger
from ..runtime.builders import (
    build_geometry,
    build_renderer,
    build_state,
    build_writer,
)

_log = get_logger()


@dataclass(frozen=True)
class RenderRunResult:
    """Summary of a render driven by a configuration file."""

    stats: Dict[str, int]
    output_path: Path
    config: SceneConfig


def render_from_config(
    config: Union[str, Path, SceneConfig],
    *,
    output: Optional[Path] = None,
    intersector: Optional[str] = None,
    sparse: Optional[bool] = None,
) -> RenderRunResult:
    """Render the scene described by a configuration file or object.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~trackrender.config.schema.SceneConfig`.
    output:
        Optional override for the ``.npz`` file produced by the run.
    intersector:
        Optional override for the backend (``auto``, ``numpy`` or ``embree``).
    sparse:
        Optional override: write the hit list instead of the dense image.

    Returns
    -------
    RenderRunResult
        Includes basic statistics (pixels, hits, bodies), the resolved output
        path, and the configuration object used for the run.
    """

    cfg = load_config(config) if not isinstance(config, SceneConfig) else config.model_copy(deep=True)

    if intersector:
        cfg.renderer.intersector = intersector  # type: ignore[assignment]
    if sparse is not None:
        cfg.output.sparse = sparse
    if output is not None:
        cfg.output.path = Path(output).resolve()
    else:
        cfg.output.path = Path(cfg.output.path).resolve()

    geometry = build_geometry(cfg)
    state = build_state(cfg)
    renderer = build_renderer(cfg, geometry)
    writer = build_writer(cfg)
    camera = renderer.camera
    assert camera is not None

    renderer.set_state(state)
    hits = renderer.render_hits()
    depth = convert_depth(
        hits.to_depth_image(camera.n_pixels), np.dtype(cfg.output.dtype), cfg.output.bad_value
    )
    frame: Dict[str, np.ndarray] = {
        "camera_matrix": camera.camera_matrix,
        "n_rows": np.asarray(camera.n_rows),
        "n_cols": np.asarray(camera.n_cols),
        "state": state.vector,
    }
    if cfg.output.sparse:
        frame["pixel_index"] = hits.pixel_index
        frame["depth"] = depth[hits.pixel_index]
        frame["body_index"] = hits.body_index
        frame["triangle_index"] = hits.triangle_index
    else:
        frame["depth"] = depth.reshape(camera.n_rows, camera.n_cols)
        frame["body_index"] = hits.to_body_index_image(camera.n_pixels).reshape(camera.n_rows, camera.n_cols)

    try:
        writer.write_frame(frame)
    finally:
        writer.close()

    stats = {"pixels": camera.n_pixels, "hits": len(hits), "bodies": geometry.count_bodies()}
    _log.info("Rendered %d bodies: %d of %d pixels hit", stats["bodies"], stats["hits"], stats["pixels"])
    return RenderRunResult(stats=stats, output_path=Path(cfg.output.path), config=cfg)
