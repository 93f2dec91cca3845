import numpy as np

from viewsynth.core.camera import POLE_EPSILON, build_camera, to_camera_space, to_world_space
from viewsynth.core.vector import apply_mat3, cross, dot, norm, normalize, scale


def test_vector_primitives():
    a = np.array([1.0, 2.0, 3.0])
    b = np.array([-2.0, 0.5, 4.0])
    assert dot(a, b) == 1.0 * -2.0 + 2.0 * 0.5 + 3.0 * 4.0
    c = cross(a, b)
    assert abs(dot(c, a)) < 1e-12
    assert abs(dot(c, b)) < 1e-12
    assert abs(norm(normalize(a)) - 1.0) < 1e-12
    assert np.all(normalize(np.zeros(3)) == 0.0)
    assert np.allclose(scale(np.stack([a, b]), [2.0, -1.0]), np.stack([2.0 * a, -b]))
    m = np.arange(9, dtype=np.float64).reshape(3, 3)
    assert np.allclose(apply_mat3(m, a), m @ a)


def test_camera_on_x_axis():
    cam = build_camera(90.0, 0.0, 0.0, distance=20.0)
    assert np.allclose(cam.position, [20.0, 0.0, 0.0], atol=1e-12)
    assert np.allclose(cam.forward, [-1.0, 0.0, 0.0], atol=1e-12)
    assert np.allclose(cam.right, [0.0, 0.0, -1.0], atol=1e-12)
    assert np.allclose(cam.up, [0.0, 1.0, 0.0], atol=1e-12)


def test_roll_rotates_right_and_up_in_plane():
    cam = build_camera(90.0, 0.0, 90.0, distance=20.0)
    assert np.allclose(cam.right, [0.0, -1.0, 0.0], atol=1e-12)
    assert np.allclose(cam.up, [0.0, 0.0, -1.0], atol=1e-12)
    assert np.allclose(cam.forward, [-1.0, 0.0, 0.0], atol=1e-12)


def test_basis_is_orthonormal_for_any_angles():
    rng = np.random.default_rng(0)
    angles = rng.uniform(-720.0, 720.0, size=(200, 3))
    angles[:4, 0] = (0.0, 180.0, 360.0, -180.0)  # poles are clamped
    for pitch, yaw, roll in angles:
        cam = build_camera(pitch, yaw, roll, distance=15.0)
        basis = np.stack([cam.right, cam.up, cam.forward])
        assert np.max(np.abs(basis @ basis.T - np.eye(3))) < 1e-9
        assert abs(np.linalg.norm(cam.position) - 15.0) < 1e-9
        assert np.allclose(cam.forward, -cam.position / np.linalg.norm(cam.position), atol=1e-12)
        # right, up, -forward is right-handed
        assert np.allclose(np.cross(cam.right, cam.up), -cam.forward, atol=1e-9)


def test_pole_is_clamped():
    cam = build_camera(0.0, 0.0, 0.0, distance=20.0)
    assert cam.position[1] < 20.0
    assert abs(cam.position[1] - 20.0 * np.cos(POLE_EPSILON)) < 1e-9
    assert np.all(np.isfinite(cam.right))


def test_camera_world_roundtrip():
    rng = np.random.default_rng(1)
    for _ in range(50):
        pitch, yaw, roll = rng.uniform(0.0, 360.0, size=3)
        cam = build_camera(pitch, yaw, roll)
        p = rng.uniform(-30.0, 30.0, size=(100, 3))
        p2 = to_world_space(to_camera_space(p, cam), cam)
        assert np.max(np.abs(p2 - p)) < 1e-9


def test_origin_is_straight_ahead():
    cam = build_camera(40.0, 130.0, 25.0, distance=20.0)
    q = to_camera_space(np.zeros(3), cam)
    assert np.allclose(q, [0.0, 0.0, -20.0], atol=1e-9)
