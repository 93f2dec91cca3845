"""
Orthographic unprojection (sample pixel -> object space) and reprojection
(object space -> target pixel).

Pixel conventions:
- x grows to the right, y grows downward (row 0 is the top row)
- NDC y grows upward, so y is flipped between pixel and NDC space
- pixel centers sit exactly on NDC -1 and +1 at the image borders
"""

from __future__ import annotations

import numpy as np

from viewsynth.core.camera import CameraPose, to_camera_space, to_world_space
from viewsynth.meta import ViewVolume


def pixel_to_ndc(x, y, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    ndc_x = (x / (width - 1)) * 2.0 - 1.0
    ndc_y = 1.0 - (y / (height - 1)) * 2.0
    return ndc_x, ndc_y


def ndc_to_pixel(ndc_x, ndc_y, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """Continuous -> integer pixel coordinates, rounding halves up."""
    u = ((np.asarray(ndc_x, dtype=np.float64) + 1.0) / 2.0) * (width - 1)
    v = ((1.0 - np.asarray(ndc_y, dtype=np.float64)) / 2.0) * (height - 1)
    return np.floor(u + 0.5).astype(np.int64), np.floor(v + 0.5).astype(np.int64)


def camera_points(x, y, depth, volume: ViewVolume, width: int, height: int) -> np.ndarray:
    """
    Pixel + normalized depth -> camera-space points (...,3).

    Orthographic depth is linear between the near and far planes.
    """
    ndc_x, ndc_y = pixel_to_ndc(x, y, width, height)
    depth = np.asarray(depth, dtype=np.float64)
    cam_x = ndc_x * volume.half_width
    cam_y = ndc_y * volume.half_height
    cam_z = -(depth * (volume.far - volume.near) + volume.near)
    cam_x, cam_y, cam_z = np.broadcast_arrays(cam_x, cam_y, cam_z)
    return np.stack([cam_x, cam_y, cam_z], axis=-1)


def unproject(
    x: int,
    y: int,
    depth: float | None,
    volume: ViewVolume,
    width: int,
    height: int,
    pose: CameraPose,
) -> np.ndarray | None:
    """
    One sample pixel -> object-space point (3,), or None for a no-surface pixel.
    """
    if depth is None or not np.isfinite(depth):
        return None
    q = camera_points(x, y, float(depth), volume, width, height)
    return to_world_space(q, pose)


def reproject(
    point: np.ndarray,
    camera: CameraPose,
    volume: ViewVolume,
    width: int,
    height: int,
) -> tuple[int, int, float] | None:
    """
    Object-space point -> (x, y, view_depth) in the target image.

    Returns None when the point falls outside the view volume's x/y extent or
    off the image after rounding. view_depth grows away from the camera.
    """
    idx, view_depth, valid = reproject_points(np.asarray(point, dtype=np.float64).reshape(1, 3), camera, volume, width, height)
    if not bool(valid[0]):
        return None
    i = int(idx[0])
    return i % width, i // width, float(view_depth[0])


def reproject_points(
    points: np.ndarray,
    camera: CameraPose,
    volume: ViewVolume,
    width: int,
    height: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Vectorized reprojection of (M,3) object-space points.

    Returns (dest_index (M,), view_depth (M,), valid (M,)). Entries with
    valid=False carry index -1.
    """
    q = to_camera_space(np.asarray(points, dtype=np.float64).reshape(-1, 3), camera)
    ndc_x = q[:, 0] / volume.half_width
    ndc_y = q[:, 1] / volume.half_height
    in_volume = (ndc_x >= -1.0) & (ndc_x <= 1.0) & (ndc_y >= -1.0) & (ndc_y <= 1.0)

    xi, yi = ndc_to_pixel(ndc_x, ndc_y, width, height)
    on_image = (xi >= 0) & (xi < width) & (yi >= 0) & (yi < height)

    valid = in_volume & on_image
    idx = np.where(valid, yi * width + xi, -1)
    return idx, -q[:, 2], valid


def unproject_buffer(
    depth: np.ndarray,
    surface: np.ndarray,
    pose: CameraPose,
    volume: ViewVolume,
    width: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Unproject every surface pixel of a square buffer.

    Returns (points (M,3), source_index (M,)).
    """
    surface = np.asarray(surface, dtype=bool).reshape(-1)
    src = np.flatnonzero(surface)
    ys, xs = np.divmod(src, width)
    q = camera_points(xs, ys, np.asarray(depth, dtype=np.float64).reshape(-1)[src], volume, width, width)
    return to_world_space(q.reshape(-1, 3), pose), src
