import numpy as np
import pytest

from raypose.core.geometry import pose_cost, quaternion_to_rotation_matrix
from raypose.core.monomials import quaternion_monomials
from raypose.sim.synthetic import generate_synthetic_scene, random_unit_quaternion
from raypose.upnp.cost import (
    DegenerateConfigurationError,
    UpnpInputError,
    compute_h_matrix_and_outer_products,
    compute_upnp_cost_parameters,
    evaluate_upnp_cost,
    validate_correspondences,
)


def _unit(v: np.ndarray) -> np.ndarray:
    return v / np.linalg.norm(v, axis=-1, keepdims=True)


def _random_correspondences(n: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    origins = rng.normal(scale=0.5, size=(n, 3))
    directions = _unit(rng.normal(size=(n, 3)))
    points = rng.normal(scale=4.0, size=(n, 3))
    return origins, directions, points


def test_h_matrix_is_symmetric_positive_definite():
    _o, d, _p = _random_correspondences(15)
    H, outer = compute_h_matrix_and_outer_products(d)
    assert outer.shape == (15, 3, 3)
    assert np.allclose(outer[3], np.outer(d[3], d[3]))
    assert np.allclose(H, H.T)
    assert np.all(np.linalg.eigvalsh(H) > 0.0)
    assert np.allclose(H @ (15 * np.eye(3) - outer.sum(axis=0)), np.eye(3), atol=1e-12)


def test_h_matrix_two_non_parallel_rays_is_invertible():
    d = np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0]])
    H, _outer = compute_h_matrix_and_outer_products(d)
    assert np.all(np.isfinite(H))
    assert np.all(np.linalg.eigvalsh(H) > 0.0)


def test_h_matrix_parallel_rays_are_degenerate():
    d = np.tile(np.array([[0.0, 0.6, 0.8]]), (7, 1))
    with pytest.raises(DegenerateConfigurationError):
        compute_h_matrix_and_outer_products(d)
    with pytest.raises(DegenerateConfigurationError):
        compute_h_matrix_and_outer_products(np.zeros((0, 3)))


def test_cost_matrices_are_psd_and_gamma_non_negative():
    for seed in range(5):
        o, d, p = _random_correspondences(12, seed=seed)
        params = compute_upnp_cost_parameters(o, d, p)
        A = params.a_matrix
        assert A.shape == (10, 10)
        assert params.b_vector.shape == (10,)
        assert np.allclose(A, A.T)
        assert np.min(np.linalg.eigvalsh(A)) >= -1e-9 * max(1.0, np.abs(A).max())
        assert params.gamma >= 0.0
        M = params.homogeneous_matrix()
        assert np.min(np.linalg.eigvalsh(M)) >= -1e-9 * max(1.0, np.abs(M).max())


def test_quadratic_form_equals_point_to_ray_cost_at_optimal_translation():
    o, d, p = _random_correspondences(9, seed=7)
    params = compute_upnp_cost_parameters(o, d, p)
    rng = np.random.default_rng(11)
    for _ in range(5):
        q = random_unit_quaternion(rng)
        rot = quaternion_to_rotation_matrix(q)
        t = params.translation(q)
        expected = pose_cost(rot, t, o, d, p)
        assert np.isclose(evaluate_upnp_cost(params, q), expected, rtol=1e-9, atol=1e-9)
        v = quaternion_monomials(q)
        assert np.isclose(v @ params.homogeneous_matrix() @ v, expected, rtol=1e-9, atol=1e-9)

        # t = G q̂ - J minimizes the cost for the fixed rotation.
        for delta in np.eye(3) * 1e-3:
            assert pose_cost(rot, t + delta, o, d, p) > expected


def test_central_camera_has_no_linear_term():
    scene = generate_synthetic_scene(10, n_cameras=1, seed=3)
    params = compute_upnp_cost_parameters(scene.ray_origins, scene.ray_directions, scene.world_points)
    assert np.allclose(params.j_vector, 0.0)
    assert np.allclose(params.b_vector, 0.0)
    assert params.gamma == 0.0


def test_validate_correspondences_rejects_bad_input():
    o, d, p = _random_correspondences(6)
    with pytest.raises(UpnpInputError):
        validate_correspondences(o, d[:5], p)
    with pytest.raises(UpnpInputError):
        validate_correspondences(o, 2.0 * d, p)
    with pytest.raises(UpnpInputError):
        validate_correspondences(o[:, :2], d, p)
    bad = p.copy()
    bad[2, 1] = np.nan
    with pytest.raises(UpnpInputError):
        validate_correspondences(o, d, bad)
    # UpnpInputError is a ValueError for callers that do not import it.
    with pytest.raises(ValueError):
        validate_correspondences(o, d, p[:1])
