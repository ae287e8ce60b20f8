import numpy as np

from raypose.core.geometry import quaternion_to_rotation_matrix
from raypose.core.monomials import (
    NORM_SQUARED_WEIGHTS,
    NORM_VECTOR,
    left_multiply_matrix,
    moment_matrix,
    monomial_hessian_sum,
    monomial_jacobian,
    quaternion_monomials,
)


def _random_unit_quaternions(n: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    q = rng.normal(size=(n, 4))
    return q / np.linalg.norm(q, axis=-1, keepdims=True)


def test_left_multiply_matches_rotation_matrix():
    rng = np.random.default_rng(1)
    for q in _random_unit_quaternions(20):
        p = rng.normal(scale=3.0, size=3)
        rot = quaternion_to_rotation_matrix(q)
        phi = left_multiply_matrix(p)
        assert phi.shape == (3, 10)
        assert np.allclose(phi @ quaternion_monomials(q), rot @ p, atol=1e-12)


def test_left_multiply_ignores_norm_direction():
    p = np.array([0.3, -1.2, 2.5])
    assert np.allclose(left_multiply_matrix(p) @ NORM_VECTOR, 0.0)


def test_moment_matrix_and_norm_forms():
    rng = np.random.default_rng(2)
    for _ in range(10):
        q = rng.normal(size=4)  # not unit on purpose
        v = quaternion_monomials(q)
        assert np.allclose(moment_matrix(v), np.outer(q, q))
        assert np.isclose(NORM_VECTOR @ v, q @ q)
        assert np.isclose(v @ (NORM_SQUARED_WEIGHTS * v), (q @ q) ** 2)


def test_jacobian_matches_finite_differences_and_hessian_sum():
    rng = np.random.default_rng(3)
    q = rng.normal(size=4)
    Jv = monomial_jacobian(q)
    eps = 1e-6
    for i in range(4):
        dq = np.zeros(4)
        dq[i] = eps
        fd = (quaternion_monomials(q + dq) - quaternion_monomials(q - dq)) / (2 * eps)
        assert np.allclose(Jv[:, i], fd, atol=1e-8)

    # Euler relation for homogeneous quadratics.
    assert np.allclose(Jv @ q, 2.0 * quaternion_monomials(q))

    c = rng.normal(size=10)
    assert np.allclose(Jv.T @ c, monomial_hessian_sum(c) @ q)


def test_helpers_accept_stacks_of_quaternions():
    Q = _random_unit_quaternions(7, seed=4)
    V = quaternion_monomials(Q)
    Jv = monomial_jacobian(Q)
    C = np.random.default_rng(5).normal(size=(7, 10))
    H = monomial_hessian_sum(C)
    M = moment_matrix(V)
    assert V.shape == (7, 10) and Jv.shape == (7, 10, 4) and H.shape == (7, 4, 4) and M.shape == (7, 4, 4)
    for k in range(7):
        assert np.allclose(V[k], quaternion_monomials(Q[k]))
        assert np.allclose(Jv[k], monomial_jacobian(Q[k]))
        assert np.allclose(H[k], monomial_hessian_sum(C[k]))
        assert np.allclose(M[k], np.outer(Q[k], Q[k]))
