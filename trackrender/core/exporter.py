from __future__ import annotations
from typing import Dict, List
import numpy as np
import pathlib

from .utils import get_logger

_log = get_logger()


class NpzWriter:
    """Collects render frames and writes them into one compressed ``.npz``.

    A single frame is stored as-is; several frames are stacked along a new
    leading axis per key.
    """
    def __init__(self, path: str) -> None:
        self.path = path
        self._frames: List[Dict[str, np.ndarray]] = []

    def write_frame(self, frame: Dict[str, np.ndarray]) -> None:
        self._frames.append({k: np.asarray(v) for k, v in frame.items()})

    def close(self) -> None:
        if not self._frames:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if len(self._frames) == 1:
            out = self._frames[0]
        else:
            keys = sorted({k for f in self._frames for k in f.keys()})
            missing = [k for k in keys if any(k not in f for f in self._frames)]
            if missing:
                raise ValueError(f"Frames disagree on keys: {missing}")
            out = {k: np.stack([f[k] for f in self._frames]) for k in keys}
        np.savez_compressed(path, **out)
        _log.info("NpzWriter: wrote %d frame(s) to %s", len(self._frames), path)
        self._frames = []
