"""
Quadratic monomials of a quaternion.

A quaternion q = (w, x, y, z) is lifted to the 10-vector

  q̂ = [w², x², y², z², wx, wy, wz, xy, xz, yz]

Every entry of the rotation matrix R(q) is linear in q̂, which turns the
point-to-ray cost into a quadratic form in q̂. All helpers here share this
ordering; `left_multiply_matrix` relies on it entry by entry.
"""

from __future__ import annotations

import numpy as np

N_MONOMIALS = 10

# e^T q̂ = w² + x² + y² + z²
NORM_VECTOR = np.array([1.0, 1.0, 1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0], dtype=np.float64)

# q̂^T D q̂ = (q^T q)²  (cross terms appear twice in the expansion)
NORM_SQUARED_WEIGHTS = np.array([1.0, 1.0, 1.0, 1.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0], dtype=np.float64)

# (row, col) of the symmetric 4x4 moment matrix q q^T for each monomial.
_MOMENT_INDEX = (
    (0, 0),
    (1, 1),
    (2, 2),
    (3, 3),
    (0, 1),
    (0, 2),
    (0, 3),
    (1, 2),
    (1, 3),
    (2, 3),
)


def quaternion_monomials(q: np.ndarray) -> np.ndarray:
    """q̂ of a quaternion (4,) or of a stack of quaternions (...,4)."""
    q = np.asarray(q, dtype=np.float64)
    w, x, y, z = q[..., 0], q[..., 1], q[..., 2], q[..., 3]
    return np.stack([w * w, x * x, y * y, z * z, w * x, w * y, w * z, x * y, x * z, y * z], axis=-1)


def monomial_jacobian(q: np.ndarray) -> np.ndarray:
    """Jacobian d q̂ / d q, shape (...,10,4). Linear in q."""
    q = np.asarray(q, dtype=np.float64)
    w, x, y, z = q[..., 0], q[..., 1], q[..., 2], q[..., 3]
    Jv = np.zeros(q.shape[:-1] + (N_MONOMIALS, 4), dtype=np.float64)
    Jv[..., 0, 0] = 2.0 * w
    Jv[..., 1, 1] = 2.0 * x
    Jv[..., 2, 2] = 2.0 * y
    Jv[..., 3, 3] = 2.0 * z
    Jv[..., 4, 0], Jv[..., 4, 1] = x, w
    Jv[..., 5, 0], Jv[..., 5, 2] = y, w
    Jv[..., 6, 0], Jv[..., 6, 3] = z, w
    Jv[..., 7, 1], Jv[..., 7, 2] = y, x
    Jv[..., 8, 1], Jv[..., 8, 3] = z, x
    Jv[..., 9, 2], Jv[..., 9, 3] = z, y
    return Jv


def monomial_hessian_sum(c: np.ndarray) -> np.ndarray:
    """
    Sum_k c_k * d²q̂_k/dq², shape (...,4,4) for c of shape (...,10).

    Also satisfies monomial_jacobian(q).T @ c == monomial_hessian_sum(c) @ q.
    """
    c = np.asarray(c, dtype=np.float64)
    out = np.zeros(c.shape[:-1] + (4, 4), dtype=np.float64)
    for k, (i, j) in enumerate(_MOMENT_INDEX):
        if i == j:
            out[..., i, i] = 2.0 * c[..., k]
        else:
            out[..., i, j] = c[..., k]
            out[..., j, i] = c[..., k]
    return out


def moment_matrix(v: np.ndarray) -> np.ndarray:
    """
    Symmetric matrix Q with Q == q q^T whenever v == quaternion_monomials(q).

    Accepts (10,) or (...,10) and returns (...,4,4).
    """
    v = np.asarray(v, dtype=np.float64)
    Q = np.zeros(v.shape[:-1] + (4, 4), dtype=np.float64)
    for k, (i, j) in enumerate(_MOMENT_INDEX):
        Q[..., i, j] = v[..., k]
        Q[..., j, i] = v[..., k]
    return Q


def left_multiply_matrix(point: np.ndarray) -> np.ndarray:
    """
    Phi(p), shape (3,10), such that Phi(p) @ q̂ == R(q) @ p.
    """
    px, py, pz = np.asarray(point, dtype=np.float64).reshape(3)
    phi = np.zeros((3, N_MONOMIALS), dtype=np.float64)

    phi[0, 0] = px
    phi[0, 1] = px
    phi[0, 2] = -px
    phi[0, 3] = -px
    phi[0, 5] = 2.0 * pz
    phi[0, 6] = -2.0 * py
    phi[0, 7] = 2.0 * py
    phi[0, 8] = 2.0 * pz

    phi[1, 0] = py
    phi[1, 1] = -py
    phi[1, 2] = py
    phi[1, 3] = -py
    phi[1, 4] = -2.0 * pz
    phi[1, 6] = 2.0 * px
    phi[1, 7] = 2.0 * px
    phi[1, 9] = 2.0 * pz

    phi[2, 0] = pz
    phi[2, 1] = -pz
    phi[2, 2] = -pz
    phi[2, 3] = pz
    phi[2, 4] = 2.0 * py
    phi[2, 5] = -2.0 * px
    phi[2, 8] = 2.0 * px
    phi[2, 9] = 2.0 * py
    return phi
