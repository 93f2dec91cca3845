from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from viewsynth.buffers import ViewBuffer, save_buffer
from viewsynth.core.camera import CameraPose, build_camera
from viewsynth.core.projection import camera_points
from viewsynth.core.selection import PoseAngles
from viewsynth.meta import LIBRARY_FILENAME, LibraryMeta, ViewVolume

BACKGROUND_RGB = (240.0, 240.0, 240.0)

# Face order: +x, -x, +y, -y, +z, -z.
FACE_COLORS = np.array(
    [
        [0x00, 0xFF, 0x00],
        [0x00, 0xDD, 0x00],
        [0x00, 0xBB, 0x00],
        [0x00, 0x99, 0x00],
        [0x00, 0x77, 0x00],
        [0x00, 0x55, 0x00],
    ],
    dtype=np.float64,
)

AMBIENT = 0.5
# (direction towards the light, intensity)
DIRECTIONAL_LIGHTS = (
    ((5.0, 5.0, 5.0), 0.7),
    ((-5.0, 3.0, 5.0), 0.4),
    ((0.0, 8.0, -5.0), 0.3),
)


def _lambert(normals: np.ndarray) -> np.ndarray:
    shade = np.full((normals.shape[0],), AMBIENT, dtype=np.float64)
    for direction, intensity in DIRECTIONAL_LIGHTS:
        light = np.asarray(direction, dtype=np.float64)
        light = light / np.linalg.norm(light)
        shade += intensity * np.clip(normals @ light, 0.0, None)
    return shade


def _ray_box(origins: np.ndarray, direction: np.ndarray, half_extent: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Slab test of parallel rays against the box [-h,h]^3.

    Returns (t_enter (N,), t_exit (N,), entry axis (N,)).
    """
    n = origins.shape[0]
    t_lo = np.empty((n, 3), dtype=np.float64)
    t_hi = np.empty((n, 3), dtype=np.float64)
    h = float(half_extent)
    for axis in range(3):
        o = origins[:, axis]
        d = float(direction[axis])
        if abs(d) < 1e-12:
            inside = (o >= -h) & (o <= h)
            t_lo[:, axis] = np.where(inside, -np.inf, np.inf)
            t_hi[:, axis] = np.where(inside, np.inf, -np.inf)
            continue
        t1 = (-h - o) / d
        t2 = (h - o) / d
        t_lo[:, axis] = np.minimum(t1, t2)
        t_hi[:, axis] = np.maximum(t1, t2)
    return t_lo.max(axis=1), t_hi.min(axis=1), t_lo.argmax(axis=1)


def render_cube_view(
    angles: PoseAngles,
    volume: ViewVolume,
    size: int,
    distance: float = 20.0,
    half_extent: float = 1.0,
) -> ViewBuffer:
    """
    Ray-cast a flat-shaded cube centered at the origin.

    Rays leave the camera plane along `forward` through each pixel center
    using the same pixel/NDC mapping as the unprojector, so a rendered depth
    unprojects exactly onto the cube surface.
    """
    size = int(size)
    if size < 2:
        raise ValueError("size must be >= 2")
    pose = build_camera(angles.pitch, angles.yaw, angles.roll, distance)
    return _render(pose, volume, size, half_extent)


def _render(pose: CameraPose, volume: ViewVolume, size: int, half_extent: float) -> ViewBuffer:
    ys, xs = np.meshgrid(np.arange(size), np.arange(size), indexing="ij")
    # Camera-space offsets on the near plane; depth is recomputed from the hit below.
    q = camera_points(xs.reshape(-1), ys.reshape(-1), 0.0, volume, size, size)
    origins = pose.position[None, :] + q[:, 0:1] * pose.right[None, :] + q[:, 1:2] * pose.up[None, :]

    t_enter, t_exit, axis = _ray_box(origins, pose.forward, half_extent)
    hit = (t_enter <= t_exit) & (t_enter >= volume.near) & (t_enter <= volume.far)

    n = size * size
    rgb = np.tile(np.asarray(BACKGROUND_RGB, dtype=np.float64), (n, 1))
    depth = np.full((n,), np.nan, dtype=np.float64)

    if hit.any():
        ax = axis[hit]
        sign = -np.sign(pose.forward[ax])
        normals = np.zeros((ax.size, 3), dtype=np.float64)
        normals[np.arange(ax.size), ax] = sign
        face = 2 * ax + (sign < 0).astype(np.int64)
        shaded = FACE_COLORS[face] * _lambert(normals)[:, None]
        rgb[hit] = np.clip(np.floor(shaded + 0.5), 0.0, 255.0)
        depth[hit] = (t_enter[hit] - volume.near) / (volume.far - volume.near)

    return ViewBuffer(rgb=rgb, alpha=np.ones((n,), dtype=np.float64), depth=depth, surface=hit)


def write_sample_library(
    out_dir: Path,
    library: LibraryMeta,
    size: int,
    half_extent: float = 1.0,
) -> Path:
    """
    Render every sample of `library` and write its buffers plus library.json.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for spec in library.samples:
        buf = render_cube_view(spec.angles, library.view_volume, size, distance=library.distance, half_extent=half_extent)
        save_buffer(out_dir / spec.buffer, buf)

    path = out_dir / LIBRARY_FILENAME
    path.write_text(json.dumps(library.to_dict(), indent=2), encoding="utf-8")
    return path
