from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from viewsynth.core.vector import add, apply_mat3, cross, normalize, scale, subtract

# Polar angle is kept this far (radians) from the poles so forward x world-up never vanishes.
POLE_EPSILON = 1e-4
WORLD_UP = np.array([0.0, 1.0, 0.0], dtype=np.float64)


@dataclass(frozen=True)
class CameraPose:
    """
    Orthographic camera looking at the object center (the origin).

    Convention:
    - camera space is right-handed with +x = right, +y = up and the camera
      looking down -z (OpenGL style)
    - `to_camera_space(p) = R (p - position)` with rows R = [right; up; -forward]
    """

    position: np.ndarray  # (3,)
    right: np.ndarray  # (3,)
    up: np.ndarray  # (3,)
    forward: np.ndarray  # (3,)

    @property
    def rotation(self) -> np.ndarray:
        """World -> camera rotation (3,3)."""
        return np.stack([self.right, self.up, -self.forward], axis=0)


def build_camera(pitch_deg: float, yaw_deg: float, roll_deg: float, distance: float = 20.0) -> CameraPose:
    """
    Build the camera basis from declared angles.

    yaw is the azimuth around +y, pitch the polar angle from +y, roll rotates
    right/up inside the image plane.
    """
    theta = math.radians(float(yaw_deg) % 360.0)
    phi = math.radians(float(pitch_deg) % 360.0)
    phi = max(POLE_EPSILON, min(math.pi - POLE_EPSILON, phi))

    distance = float(distance)
    position = np.array(
        [
            distance * math.sin(phi) * math.cos(theta),
            distance * math.cos(phi),
            distance * math.sin(phi) * math.sin(theta),
        ],
        dtype=np.float64,
    )

    forward = normalize(-position)
    right = normalize(cross(forward, WORLD_UP))
    up = cross(right, forward)

    roll = math.radians(float(roll_deg) % 360.0)
    c, s = math.cos(roll), math.sin(roll)
    rolled_right = subtract(scale(right, c), scale(up, s))
    rolled_up = add(scale(right, s), scale(up, c))

    return CameraPose(position=position, right=rolled_right, up=rolled_up, forward=forward)


def to_camera_space(p: np.ndarray, cam: CameraPose) -> np.ndarray:
    """Object/world space -> camera space, for (3,) or (...,3) points."""
    return apply_mat3(cam.rotation, subtract(p, cam.position))


def to_world_space(q: np.ndarray, cam: CameraPose) -> np.ndarray:
    """Exact inverse of `to_camera_space`."""
    return add(apply_mat3(cam.rotation.T, q), cam.position)
