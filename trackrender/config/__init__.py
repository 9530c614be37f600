"""Configuration loading utilities for trackrender."""

from .schema import (
    SceneConfig,
    load_config,
)

__all__ = ["SceneConfig", "load_config"]
