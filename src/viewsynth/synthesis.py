from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

import numpy as np

from viewsynth.buffers import MalformedBufferError, ViewBuffer, load_buffer
from viewsynth.core.camera import CameraPose, build_camera
from viewsynth.core.compositor import ZBufferCompositor
from viewsynth.core.projection import reproject_points, unproject_buffer
from viewsynth.core.selection import DEFAULT_FALLOFF, BlendWeight, PoseAngles, select_and_weight
from viewsynth.meta import LibraryMeta, SampleSpec, ViewVolume

BlendMethod = Literal["reproject", "aligned"]

# Background written by the aligned blend where no sample has a surface.
ALIGNED_BACKGROUND_RGBA = (240.0, 240.0, 240.0, 1.0)


@dataclass(frozen=True)
class SampleView:
    """A captured view: declared angles, derived pose and its buffer."""

    name: str
    angles: PoseAngles
    pose: CameraPose
    buffer: ViewBuffer


@dataclass(frozen=True)
class SynthesisResult:
    buffer: ViewBuffer
    weights: tuple[BlendWeight, ...]
    target_pose: CameraPose
    stats: dict[str, float]


def load_samples(
    library: LibraryMeta,
    specs: Sequence[SampleSpec],
    workers: int | None = None,
    loader: Callable[[SampleSpec], ViewBuffer] | None = None,
) -> list[SampleView]:
    """
    Load sample buffers concurrently and join before returning.

    Any load failure propagates to the caller.
    """
    if loader is None:

        def loader(spec: SampleSpec) -> ViewBuffer:
            return load_buffer(library.buffer_path(spec), normalized_depth=True)

    specs = list(specs)
    if not specs:
        return []
    max_workers = len(specs) if workers is None else max(1, int(workers))
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        buffers = list(pool.map(loader, specs))

    return [
        SampleView(
            name=spec.name,
            angles=spec.angles,
            pose=build_camera(spec.angles.pitch, spec.angles.yaw, spec.angles.roll, library.distance),
            buffer=buf,
        )
        for spec, buf in zip(specs, buffers)
    ]


def _common_width(samples: Sequence[SampleView]) -> int:
    widths = {s.buffer.width for s in samples}
    if len(widths) != 1:
        raise MalformedBufferError(f"sample buffers disagree on width: {sorted(widths)}")
    return widths.pop()


def reproject_blend(
    samples: Sequence[SampleView],
    weights: Sequence[float],
    target_pose: CameraPose,
    volume: ViewVolume,
    depth_tolerance: float = 0.0,
) -> tuple[ViewBuffer, np.ndarray]:
    """
    Unproject every surface pixel of every sample, reproject it into the
    target camera and z-buffer composite the result.

    Returns (buffer, number of distinct samples per pixel).
    """
    width = _common_width(samples)
    comp = ZBufferCompositor(width, depth_tolerance=depth_tolerance)
    for source, (sample, weight) in enumerate(zip(samples, weights, strict=True)):
        buf = sample.buffer
        points, src = unproject_buffer(buf.depth, buf.surface, sample.pose, volume, width)
        if src.size == 0:
            continue
        dest, view_depth, valid = reproject_points(points, target_pose, volume, width, width)
        rgba = buf.rgba()[src[valid]]
        comp.splat(dest[valid], rgba, view_depth[valid], float(weight), source=source)
    counts = comp.source_count
    return comp.finalize(), counts


def aligned_blend(samples: Sequence[SampleView], weights: Sequence[float]) -> tuple[ViewBuffer, np.ndarray]:
    """
    Same-index blend without reprojection.

    Assumes the selected views are nearly aligned with the target; it is an
    approximation and not used unless asked for. Per pixel:
    - no sample has a surface: background
    - exactly one has: that pixel is copied
    - otherwise: color of the sample maximizing weight * (1 - d), alpha 1,
      depth = weight-averaged over samples with a surface
    """
    width = _common_width(samples)
    n = width * width
    w = np.asarray(weights, dtype=np.float64).reshape(-1, 1)
    surface = np.stack([s.buffer.surface for s in samples], axis=0)  # (S,N)
    depth = np.stack([np.where(s.buffer.surface, s.buffer.depth, 0.0) for s in samples], axis=0)
    rgba = np.stack([s.buffer.rgba() for s in samples], axis=0)  # (S,N,4)

    counts = surface.sum(axis=0)
    out = np.tile(np.asarray(ALIGNED_BACKGROUND_RGBA, dtype=np.float64), (n, 1))
    out_depth = np.full((n,), np.nan, dtype=np.float64)

    score = np.where(surface, w * (1.0 - depth), -np.inf)
    best = np.argmax(score, axis=0)
    cols = np.arange(n)

    single = counts == 1
    out[single] = rgba[best[single], cols[single]]
    out_depth[single] = depth[best[single], cols[single]]

    multi = counts > 1
    out[multi, :3] = rgba[best[multi], cols[multi], :3]
    out[multi, 3] = 1.0
    wm = np.where(surface, w, 0.0)
    out_depth[multi] = (np.sum(wm * depth, axis=0)[multi]) / np.sum(wm, axis=0)[multi]

    result = ViewBuffer(rgb=out[:, :3], alpha=out[:, 3], depth=out_depth, surface=counts > 0)
    return result, counts


def blend_stats(counts: np.ndarray) -> dict[str, float]:
    n = float(max(1, counts.size))
    return {
        "background_fraction": float(np.sum(counts == 0)) / n,
        "single_source_fraction": float(np.sum(counts == 1)) / n,
        "blended_fraction": float(np.sum(counts > 1)) / n,
        "n_pixels": float(counts.size),
    }


def synthesize_view(
    target: PoseAngles,
    library: LibraryMeta,
    *,
    k: int = 3,
    falloff: float = DEFAULT_FALLOFF,
    method: BlendMethod = "reproject",
    depth_tolerance: float = 0.0,
    workers: int | None = None,
    loader: Callable[[SampleSpec], ViewBuffer] | None = None,
) -> SynthesisResult:
    """
    Synthesize the color+depth buffer seen from `target`.

    Only the `k` nearest samples are loaded. `loader` replaces file loading
    (buffers already in memory, tests).
    """
    if method not in ("reproject", "aligned"):
        raise ValueError(f"unknown method: {method}")

    weights = select_and_weight(
        target,
        [s.angles for s in library.samples],
        k=k,
        falloff=falloff,
        names=[s.name for s in library.samples],
    )
    specs = [library.samples[bw.index] for bw in weights]
    samples = load_samples(library, specs, workers=workers, loader=loader)
    target_pose = build_camera(target.pitch, target.yaw, target.roll, library.distance)
    w = [bw.weight for bw in weights]

    if method == "reproject":
        buffer, counts = reproject_blend(samples, w, target_pose, library.view_volume, depth_tolerance=depth_tolerance)
    else:
        buffer, counts = aligned_blend(samples, w)

    return SynthesisResult(buffer=buffer, weights=tuple(weights), target_pose=target_pose, stats=blend_stats(counts))
