from __future__ import annotations

from pathlib import Path

import numpy as np
from PIL import Image

from viewsynth.buffers import ViewBuffer


def color_image(buffer: ViewBuffer) -> Image.Image:
    """RGBA raster of a buffer; alpha in [0,1] is scaled to 0..255."""
    w = buffer.width
    rgba = np.empty((buffer.size, 4), dtype=np.float64)
    rgba[:, :3] = buffer.rgb
    rgba[:, 3] = buffer.alpha * 255.0
    arr = np.clip(np.floor(rgba + 0.5), 0.0, 255.0).astype(np.uint8).reshape(w, w, 4)
    return Image.fromarray(arr)


def depth_image(buffer: ViewBuffer) -> Image.Image:
    """
    Grayscale depth raster, min-max normalized over surface pixels.

    No-surface pixels map to 0. A constant depth maps to 255.
    """
    w = buffer.width
    gray = np.zeros((buffer.size,), dtype=np.float64)
    if buffer.surface.any():
        d = buffer.depth[buffer.surface]
        lo, hi = float(d.min()), float(d.max())
        if hi > lo:
            gray[buffer.surface] = (d - lo) / (hi - lo) * 255.0
        else:
            gray[buffer.surface] = 255.0
    arr = np.clip(np.floor(gray + 0.5), 0.0, 255.0).astype(np.uint8).reshape(w, w)
    return Image.fromarray(arr)


def save_rasters(buffer: ViewBuffer, prefix: str | Path) -> tuple[Path, Path]:
    prefix = Path(prefix)
    prefix.parent.mkdir(parents=True, exist_ok=True)
    color_path = prefix.with_name(f"{prefix.name}_color.png")
    depth_path = prefix.with_name(f"{prefix.name}_depth.png")
    color_image(buffer).save(color_path)
    depth_image(buffer).save(depth_path)
    return color_path, depth_path
