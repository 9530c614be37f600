"""Exception hierarchy shared by the renderer, geometry store and state containers."""

from __future__ import annotations


class TrackRenderError(Exception):
    """Base class for every error raised by trackrender."""


class ConfigurationError(TrackRenderError, ValueError):
    """Malformed inputs: pose count mismatch, bad intrinsics, unknown backend."""


class InvalidGeometry(ConfigurationError):
    """A mesh that cannot be rendered safely (bad shapes or out-of-range indices)."""


class IndexOutOfRange(TrackRenderError, IndexError):
    """A body index outside ``[0, count_bodies())``."""
