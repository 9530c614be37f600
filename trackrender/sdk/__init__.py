from .run import RenderRunResult, render_from_config

__all__ = ["RenderRunResult", "render_from_config"]
