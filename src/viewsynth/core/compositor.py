from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from viewsynth.buffers import ViewBuffer, square_width


class ZBufferCompositor:
    """
    Resolves overlapping contributions per destination pixel.

    A contribution survives when its depth lies within `depth_tolerance` of
    the nearest depth seen at its pixel over everything added; survivors are
    averaged by weight. With the default tolerance of 0 only contributions at
    exactly the nearest depth survive: a nearer one replaces, an equal one
    accumulates, a farther one is occluded.

    The nearest depth is tracked as contributions arrive and the band is
    applied against its final value in `finalize`, so batches may be added
    in any order. Contributions with weight <= 0 are ignored.

    `source` tags (one per sample view) let `source_count` report how many
    distinct views reached each pixel.
    """

    def __init__(self, width: int, height: int | None = None, depth_tolerance: float = 0.0) -> None:
        height = width if height is None else height
        if int(width) != int(height):
            raise ValueError("buffers are square: width must equal height")
        self.width = int(width)
        self.height = int(height)
        self.depth_tolerance = float(depth_tolerance)
        if self.depth_tolerance < 0.0:
            raise ValueError("depth_tolerance must be >= 0")

        self._zbuf = np.full((self.width * self.height,), np.inf, dtype=np.float64)
        # (index, rgba, depth, weight, source) per accepted batch
        self._pending: list[tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]] = []
        self._finalized = False

    @property
    def size(self) -> int:
        return self.width * self.height

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("compositor already finalized")

    def add(self, index: int, rgba: Sequence[float], depth: float, weight: float, source: int = 0) -> None:
        self.splat(
            np.asarray([index], dtype=np.int64),
            np.asarray(rgba, dtype=np.float64).reshape(1, 4),
            np.asarray([depth], dtype=np.float64),
            weight,
            source=source,
        )

    def splat(self, indices: np.ndarray, rgba: np.ndarray, depths: np.ndarray, weight, source: int = 0) -> None:
        """
        Add a batch of contributions. `weight` is a scalar or one value per contribution.
        """
        self._check_open()
        idx = np.asarray(indices, dtype=np.int64).reshape(-1)
        if idx.size == 0:
            return
        c = np.asarray(rgba, dtype=np.float64).reshape(-1, 4)
        d = np.asarray(depths, dtype=np.float64).reshape(-1)
        w = np.broadcast_to(np.asarray(weight, dtype=np.float64), d.shape)
        if c.shape[0] != idx.size or d.size != idx.size:
            raise ValueError("indices, rgba and depths must have the same length")
        if np.any(idx < 0) or np.any(idx >= self.size):
            raise IndexError("destination index out of range")

        live = w > 0.0
        if not live.any():
            return
        idx, c, d, w = idx[live], c[live], d[live], w[live]
        np.minimum.at(self._zbuf, idx, d)
        self._pending.append((idx, c, d, np.array(w), np.full(idx.shape, int(source), dtype=np.int64)))

    def _survivors(self) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        if not self._pending:
            return (
                np.empty((0,), dtype=np.int64),
                np.empty((0, 4), dtype=np.float64),
                np.empty((0,), dtype=np.float64),
                np.empty((0,), dtype=np.int64),
            )
        idx, c, d, w, src = (np.concatenate(parts) for parts in zip(*self._pending))
        keep = d <= self._zbuf[idx] + self.depth_tolerance
        return idx[keep], c[keep] * w[keep, None], w[keep], src[keep]

    @property
    def contribution_count(self) -> np.ndarray:
        """Number of surviving contributions per pixel."""
        self._check_open()
        idx, _, _, _ = self._survivors()
        return np.bincount(idx, minlength=self.size)

    @property
    def source_count(self) -> np.ndarray:
        """Number of distinct sources with a surviving contribution per pixel."""
        self._check_open()
        idx, _, _, src = self._survivors()
        if idx.size == 0:
            return np.zeros((self.size,), dtype=np.int64)
        pairs = np.unique(np.stack([idx, src], axis=1), axis=0)
        return np.bincount(pairs[:, 0], minlength=self.size)

    def finalize(self) -> ViewBuffer:
        """
        Normalize accumulated colors and hand the result over. Callable once.
        """
        self._check_open()
        idx, weighted, w, _ = self._survivors()
        self._finalized = True

        acc = np.zeros((self.size, 4), dtype=np.float64)
        wsum = np.zeros((self.size,), dtype=np.float64)
        np.add.at(acc, idx, weighted)
        np.add.at(wsum, idx, w)

        written = wsum > 0.0
        out = np.zeros((self.size, 4), dtype=np.float64)
        out[written] = acc[written] / wsum[written, None]
        depth = np.where(written, self._zbuf, np.nan)

        result = ViewBuffer(rgb=out[:, :3], alpha=out[:, 3], depth=depth, surface=written)
        self._pending = []
        self._zbuf = None  # type: ignore[assignment]
        return result


def composite(
    contributions: Iterable[tuple[int, Sequence[float], float, float]],
    width: int,
    depth_tolerance: float = 0.0,
) -> ViewBuffer:
    """
    Composite `(dest_index, rgba, view_depth, weight)` tuples into one buffer.
    """
    square_width(int(width) * int(width))
    comp = ZBufferCompositor(width, depth_tolerance=depth_tolerance)
    for index, rgba, depth, weight in contributions:
        comp.add(index, rgba, depth, weight)
    return comp.finalize()
