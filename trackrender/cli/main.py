from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import numpy as np
import typer

from ..config import load_config
from ..runtime.builders import build_geometry
from ..sdk.run import render_from_config

app = typer.Typer(help="trackrender depth rendering utilities")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("trackrender").setLevel(numeric)


@app.command("render")
def render(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML scene file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (.npz)."),
    intersector: Optional[str] = typer.Option(None, "--intersector", help="Override backend: auto, numpy or embree."),
    sparse: Optional[bool] = typer.Option(None, "--sparse/--dense", help="Write the hit list instead of the dense image."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Render the depth image of a scene specified by a YAML config."""

    _configure_logging(log_level)
    if intersector is not None and intersector.lower() not in {"auto", "numpy", "embree"}:
        raise typer.BadParameter(f"Unknown intersector '{intersector}'", param_hint="--intersector")
    if output is not None and output.suffix.lower() != ".npz":
        raise typer.BadParameter("Output must end with .npz", param_hint="--output")

    result = render_from_config(config, output=output, intersector=intersector, sparse=sparse)
    stats = result.stats
    typer.echo(f"Rendered {stats['bodies']} bodies: {stats['hits']} of {stats['pixels']} pixels hit → {result.output_path}")


@app.command("inspect")
def inspect_scene(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML scene file."),
) -> None:
    """Print triangle counts, surface weights and centroids of every body."""

    cfg = load_config(config)
    geometry = build_geometry(cfg)
    typer.echo(f"{geometry.count_bodies()} bodies, {geometry.triangle_count()} triangles")
    for idx, body in enumerate(cfg.bodies):
        name = body.name or f"body{idx}"
        center = np.array2string(geometry.centroid(idx), precision=4)
        typer.echo(
            f"{idx}: {name} kind={body.shape.kind} triangles={len(geometry.triangles(idx))} "
            f"weight={geometry.weight(idx):.6g} centroid={center}"
        )


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
