from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

# Pitch and yaw decide which faces are visible; roll only spins the image.
AXIS_WEIGHTS = (2.0, 2.0, 1.0)
AXIS_PERIODS = (180.0, 360.0, 360.0)
DEFAULT_FALLOFF = 0.1


@dataclass(frozen=True)
class PoseAngles:
    """Declared capture angles in degrees."""

    pitch: float
    yaw: float
    roll: float = 0.0

    def as_tuple(self) -> tuple[float, float, float]:
        return (float(self.pitch), float(self.yaw), float(self.roll))


@dataclass(frozen=True)
class BlendWeight:
    index: int  # position in the library
    name: str
    distance: float
    weight: float


def circular_difference(a: float, b: float, period: float) -> float:
    d = abs(float(a) - float(b)) % period
    return min(d, period - d)


def angular_distance(target: PoseAngles, sample: PoseAngles) -> float:
    """
    Weighted Euclidean norm of per-axis circular differences.

    Periods are 180 deg for pitch and 360 deg for yaw and roll.
    """
    total = 0.0
    for a, b, period, w in zip(target.as_tuple(), sample.as_tuple(), AXIS_PERIODS, AXIS_WEIGHTS):
        d = circular_difference(a, b, period)
        total += w * d * d
    return math.sqrt(total)


def blend_weights(distances: Sequence[float], falloff: float = DEFAULT_FALLOFF) -> np.ndarray:
    """
    exp(-distance * falloff), normalized to sum to 1.

    Shifted by the smallest distance before exponentiation; the normalized
    result is unchanged and the sum cannot underflow to zero. Each weight is
    floored at the smallest positive float so no selected sample drops to 0.
    """
    d = np.asarray(distances, dtype=np.float64).reshape(-1)
    if d.size == 0:
        raise ValueError("distances must be non-empty")
    if falloff < 0.0:
        raise ValueError("falloff must be >= 0")
    w = np.maximum(np.exp(-(d - d.min()) * float(falloff)), np.finfo(np.float64).tiny)
    return w / np.sum(w)


def select_and_weight(
    target: PoseAngles,
    library: Sequence[PoseAngles],
    k: int = 3,
    falloff: float = DEFAULT_FALLOFF,
    names: Sequence[str] | None = None,
) -> list[BlendWeight]:
    """
    Pick the `k` library poses nearest to `target` and assign blend weights.

    Ties keep library order. Larger `falloff` approaches winner-take-all.
    """
    if len(library) == 0:
        raise ValueError("library is empty")
    if int(k) < 1:
        raise ValueError("k must be >= 1")
    if names is not None and len(names) != len(library):
        raise ValueError("names and library must have the same length")

    distances = np.array([angular_distance(target, s) for s in library], dtype=np.float64)
    order = np.argsort(distances, kind="stable")[: int(k)]
    weights = blend_weights(distances[order], falloff=falloff)

    out: list[BlendWeight] = []
    for idx, w in zip(order.tolist(), weights.tolist()):
        name = str(names[idx]) if names is not None else str(idx)
        out.append(BlendWeight(index=int(idx), name=name, distance=float(distances[idx]), weight=float(w)))
    return out
