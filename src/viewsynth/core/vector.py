from __future__ import annotations

import numpy as np


def as_vec3(v) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    if v.shape[-1:] != (3,):
        raise ValueError(f"expected (...,3) array, got shape {v.shape}")
    return v


def dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.sum(as_vec3(a) * as_vec3(b), axis=-1)


def cross(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.cross(as_vec3(a), as_vec3(b))


def norm(v: np.ndarray) -> np.ndarray:
    return np.linalg.norm(as_vec3(v), axis=-1)


def normalize(v: np.ndarray) -> np.ndarray:
    """
    Unit vector(s) along `v`. Zero-length inputs map to the zero vector.
    """
    v = as_vec3(v)
    n = np.linalg.norm(v, axis=-1, keepdims=True)
    safe = np.where(n > 0.0, n, 1.0)
    return np.where(n > 0.0, v / safe, 0.0)


def add(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return as_vec3(a) + as_vec3(b)


def subtract(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return as_vec3(a) - as_vec3(b)


def scale(v: np.ndarray, s) -> np.ndarray:
    """Scale vector(s) by a scalar or by one scalar per vector."""
    s = np.asarray(s, dtype=np.float64)
    if s.ndim:
        s = s[..., None]
    return as_vec3(v) * s


def apply_mat3(m: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Apply a 3x3 matrix to one vector (3,) or a stack of vectors (...,3).
    """
    m = np.asarray(m, dtype=np.float64).reshape(3, 3)
    return as_vec3(v) @ m.T
