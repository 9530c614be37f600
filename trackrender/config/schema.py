from __future__ import annotations

import math
from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

import numpy as np
import yaml
from pydantic import BaseModel, Field, model_validator


class CameraConfig(BaseModel):
    n_rows: int = Field(gt=0)
    n_cols: int = Field(gt=0)
    camera_matrix: Optional[List[List[float]]] = None
    focal_px: Optional[tuple[float, float]] = None
    principal_px: Optional[tuple[float, float]] = None

    @model_validator(mode="after")
    def _validate_intrinsics(self) -> "CameraConfig":
        if (self.camera_matrix is None) == (self.focal_px is None):
            raise ValueError("Provide exactly one of camera_matrix or focal_px")
        if self.camera_matrix is not None:
            if len(self.camera_matrix) != 3 or any(len(row) != 3 for row in self.camera_matrix):
                raise ValueError("camera_matrix must be 3x3")
        if self.focal_px is not None and (self.focal_px[0] <= 0 or self.focal_px[1] <= 0):
            raise ValueError("focal_px must be positive")
        return self

    def matrix(self) -> np.ndarray:
        if self.camera_matrix is not None:
            return np.asarray(self.camera_matrix, dtype=np.float64)
        fx, fy = self.focal_px  # type: ignore[misc]
        if self.principal_px is None:
            cx, cy = (self.n_cols - 1) / 2.0, (self.n_rows - 1) / 2.0
        else:
            cx, cy = self.principal_px
        return np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)


class BoxShapeConfig(BaseModel):
    kind: Literal["box"]
    size: tuple[float, float, float]


class PlaneShapeConfig(BaseModel):
    kind: Literal["plane"]
    size: float = Field(1.0, gt=0)
    divisions: int = Field(1, gt=0)


class TriangleShapeConfig(BaseModel):
    kind: Literal["triangle"]
    vertices: tuple[
        tuple[float, float, float],
        tuple[float, float, float],
        tuple[float, float, float],
    ]


class MeshShapeConfig(BaseModel):
    kind: Literal["mesh"]
    vertices: List[tuple[float, float, float]]
    # Triangle arity is checked by GeometryStore.
    triangles: List[List[int]]


ShapeConfig = Annotated[
    Union[BoxShapeConfig, PlaneShapeConfig, TriangleShapeConfig, MeshShapeConfig],
    Field(discriminator="kind"),
]


class PoseConfig(BaseModel):
    xyz: tuple[float, float, float] = (0.0, 0.0, 0.0)
    quaternion_xyzw: Optional[tuple[float, float, float, float]] = None
    rpy_deg: Optional[tuple[float, float, float]] = None

    @model_validator(mode="after")
    def _one_orientation(self) -> "PoseConfig":
        if self.quaternion_xyzw is not None and self.rpy_deg is not None:
            raise ValueError("Give either quaternion_xyzw or rpy_deg, not both")
        if self.quaternion_xyzw is not None and not math.hypot(*self.quaternion_xyzw) > 0.0:
            raise ValueError("quaternion_xyzw must have non-zero norm")
        return self


class BodyConfig(BaseModel):
    name: Optional[str] = None
    shape: ShapeConfig
    pose: PoseConfig = PoseConfig()
    linear_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)
    angular_velocity: tuple[float, float, float] = (0.0, 0.0, 0.0)


class RendererConfigModel(BaseModel):
    intersector: Literal["auto", "numpy", "embree"] = "auto"
    depth_mode: Literal["z", "range"] = "z"
    epsilon: float = Field(1e-9, gt=0)


class OutputConfig(BaseModel):
    path: Path
    dtype: Literal["float32", "float64"] = "float32"
    bad_value: float = math.inf
    sparse: bool = False


class SceneConfig(BaseModel):
    camera: CameraConfig
    renderer: RendererConfigModel = RendererConfigModel()
    bodies: List[BodyConfig] = Field(default_factory=list)
    output: OutputConfig


def load_config(path: str | Path) -> SceneConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = SceneConfig.model_validate(data)
    cfg.output.path = (path.parent / cfg.output.path).resolve()
    return cfg
