from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import numpy as np

REQUIRED_FIELDS = ("r", "g", "b", "a", "d")


class MalformedBufferError(ValueError):
    pass


@dataclass(frozen=True)
class PixelSample:
    """One pixel of one view. `d is None` means the pixel ray hit no surface."""

    r: int
    g: int
    b: int
    a: float
    d: float | None

    @property
    def has_surface(self) -> bool:
        return self.d is not None


@dataclass(frozen=True)
class ViewBuffer:
    """
    Square color+depth buffer, row-major with row 0 at the top.

    Storage:
    - rgb: (N,3) float64 in [0,255]
    - alpha: (N,) float64 in [0,1]
    - depth: (N,) float64, NaN wherever `surface` is False
    - surface: (N,) bool

    Sample buffers carry normalized depth in [0,1]; synthesized buffers carry
    view depth in camera-space units.
    """

    rgb: np.ndarray
    alpha: np.ndarray
    depth: np.ndarray
    surface: np.ndarray

    def __post_init__(self) -> None:
        n = int(self.surface.shape[0])
        if self.rgb.shape != (n, 3) or self.alpha.shape != (n,) or self.depth.shape != (n,):
            raise MalformedBufferError("rgb/alpha/depth/surface shapes disagree")
        square_width(n)

    @property
    def size(self) -> int:
        return int(self.surface.shape[0])

    @property
    def width(self) -> int:
        return square_width(self.size)

    @property
    def height(self) -> int:
        return self.width

    def pixel(self, index: int) -> PixelSample:
        i = int(index)
        d = float(self.depth[i]) if bool(self.surface[i]) else None
        r, g, b = (int(round(float(c))) for c in self.rgb[i])
        return PixelSample(r=r, g=g, b=b, a=float(self.alpha[i]), d=d)

    def pixel_at(self, x: int, y: int) -> PixelSample:
        return self.pixel(int(y) * self.width + int(x))

    def rgba(self) -> np.ndarray:
        return np.concatenate([self.rgb, self.alpha[:, None]], axis=1)

    @classmethod
    def from_arrays(
        cls,
        rgb: np.ndarray,
        alpha: np.ndarray,
        depth: np.ndarray,
        surface: np.ndarray | None = None,
    ) -> "ViewBuffer":
        """
        Build a buffer from flat or (H,W,...) arrays.

        When `surface` is omitted it is derived from finite depth values.
        """
        rgb = np.asarray(rgb, dtype=np.float64).reshape(-1, 3)
        alpha = np.asarray(alpha, dtype=np.float64).reshape(-1)
        depth = np.asarray(depth, dtype=np.float64).reshape(-1)
        if surface is None:
            surface = np.isfinite(depth)
        surface = np.asarray(surface, dtype=bool).reshape(-1)
        depth = np.where(surface, depth, np.nan)
        return cls(rgb=rgb, alpha=alpha, depth=depth, surface=surface)

    @classmethod
    def filled(cls, width: int, rgb: Sequence[float], alpha: float = 1.0, depth: float | None = None) -> "ViewBuffer":
        n = int(width) * int(width)
        has_surface = depth is not None
        return cls.from_arrays(
            rgb=np.tile(np.asarray(rgb, dtype=np.float64).reshape(1, 3), (n, 1)),
            alpha=np.full((n,), float(alpha)),
            depth=np.full((n,), float(depth) if has_surface else np.nan),
            surface=np.full((n,), has_surface),
        )


def square_width(n: int) -> int:
    """Side length of a square buffer with `n` pixels."""
    if n <= 0:
        raise MalformedBufferError("buffer is empty")
    w = math.isqrt(int(n))
    if w * w != n:
        raise MalformedBufferError(f"buffer length {n} is not a perfect square")
    return w


def parse_buffer(records: list[dict[str, Any]], normalized_depth: bool = True) -> ViewBuffer:
    """
    Parse wire-format records `[{r,g,b,a,d}, ...]`.

    With `normalized_depth`, non-null depth must lie in [0,1] (sample buffers).
    """
    if not isinstance(records, list):
        raise MalformedBufferError("buffer must be a JSON array of pixel records")
    n = len(records)
    square_width(n)

    rgb = np.empty((n, 3), dtype=np.float64)
    alpha = np.empty((n,), dtype=np.float64)
    depth = np.full((n,), np.nan, dtype=np.float64)
    surface = np.zeros((n,), dtype=bool)

    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise MalformedBufferError(f"record {i} is not an object")
        for key in REQUIRED_FIELDS:
            if key not in rec:
                raise MalformedBufferError(f"record {i} missing field: {key}")
            v = rec[key]
            if key == "d" and v is None:
                continue
            if isinstance(v, bool) or not isinstance(v, (int, float)):
                raise MalformedBufferError(f"record {i} field {key} is not a number: {v!r}")
        rgb[i] = (rec["r"], rec["g"], rec["b"])
        alpha[i] = rec["a"]
        if rec["d"] is not None:
            depth[i] = rec["d"]
            surface[i] = True

    if not np.all(np.isfinite(rgb)) or not np.all(np.isfinite(alpha)):
        raise MalformedBufferError("non-finite color or alpha values")
    if not np.all(np.isfinite(depth[surface])):
        raise MalformedBufferError("non-finite depth values")
    if np.any(rgb < 0.0) or np.any(rgb > 255.0):
        raise MalformedBufferError("r, g, b must lie within [0,255]")
    if np.any(alpha < 0.0) or np.any(alpha > 1.0):
        raise MalformedBufferError("a must lie within [0,1]")
    if normalized_depth and surface.any():
        d = depth[surface]
        if d.min() < 0.0 or d.max() > 1.0:
            raise MalformedBufferError("depth must be null or within [0,1]")

    return ViewBuffer(rgb=rgb, alpha=alpha, depth=depth, surface=surface)


def load_buffer(path: str | Path, normalized_depth: bool = True) -> ViewBuffer:
    p = Path(path)
    records = json.loads(p.read_text(encoding="utf-8"))
    try:
        return parse_buffer(records, normalized_depth=normalized_depth)
    except MalformedBufferError as e:
        raise MalformedBufferError(f"{p}: {e}") from e


def buffer_to_records(buffer: ViewBuffer) -> list[dict[str, Any]]:
    """
    Serialize to wire records. Colors are rounded to integers in [0,255],
    alpha is clipped to [0,1].
    """
    rgb = np.clip(np.floor(buffer.rgb + 0.5), 0.0, 255.0).astype(np.int64)
    alpha = np.clip(buffer.alpha, 0.0, 1.0)
    out: list[dict[str, Any]] = []
    for i in range(buffer.size):
        r, g, b = (int(c) for c in rgb[i])
        d = float(buffer.depth[i]) if bool(buffer.surface[i]) else None
        out.append({"r": r, "g": g, "b": b, "a": float(alpha[i]), "d": d})
    return out


def save_buffer(path: str | Path, buffer: ViewBuffer) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(buffer_to_records(buffer)), encoding="utf-8")
    return p
