"""
Quadratic cost of the generalized-camera pose problem.

For rays (o_i, d_i) in the camera frame and world points p_i, the pose (R, t)
mapping world to camera is scored with point-to-ray distances:

  f(R, t) = sum_i || (I - d_i d_i^T) (R p_i + t - o_i) ||²

The optimal translation for a given rotation is linear in the monomial
vector q̂ of the rotation quaternion, t = G q̂ - J, so after eliminating t:

  f(q̂) = q̂^T A q̂ + 2 b^T q̂ + gamma

The stages below build H, (G, J) and (A, b, gamma) in that order.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from raypose.core.monomials import (
    N_MONOMIALS,
    NORM_VECTOR,
    left_multiply_matrix,
    quaternion_monomials,
)


class UpnpInputError(ValueError):
    pass


class DegenerateConfigurationError(ValueError):
    """The ray directions do not constrain the translation (e.g. all parallel)."""


@dataclass(frozen=True)
class UpnpCostParameters:
    a_matrix: np.ndarray  # (10,10)
    b_vector: np.ndarray  # (10,)
    gamma: float
    h_matrix: np.ndarray  # (3,3)
    g_matrix: np.ndarray  # (3,10)
    j_vector: np.ndarray  # (3,)
    n_correspondences: int

    def homogeneous_matrix(self) -> np.ndarray:
        """
        M such that q̂^T M q̂ equals the cost for every unit quaternion:
        M = A + b e^T + e b^T + gamma e e^T, with e^T q̂ = |q|².
        """
        e = NORM_VECTOR
        b = self.b_vector.reshape(N_MONOMIALS)
        M = self.a_matrix + np.outer(b, e) + np.outer(e, b) + float(self.gamma) * np.outer(e, e)
        return 0.5 * (M + M.T)

    def translation(self, q: np.ndarray) -> np.ndarray:
        return self.g_matrix @ quaternion_monomials(np.asarray(q, dtype=np.float64).reshape(4)) - self.j_vector


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise UpnpInputError(msg)


def _as_vectors(x: np.ndarray, name: str) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return x.reshape(0, 3)
    _require(x.ndim == 2 and x.shape[1] == 3, f"{name} must be (N,3), got {x.shape}")
    _require(bool(np.all(np.isfinite(x))), f"{name} contains non-finite values")
    return x


def validate_correspondences(
    ray_origins: np.ndarray,
    ray_directions: np.ndarray,
    world_points: np.ndarray,
    unit_norm_tolerance: float = 1e-6,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Check shapes, lengths and unit directions. Directions are not renormalized.
    """
    o = _as_vectors(ray_origins, "ray_origins")
    d = _as_vectors(ray_directions, "ray_directions")
    P = _as_vectors(world_points, "world_points")
    _require(
        o.shape[0] == d.shape[0] == P.shape[0],
        f"ray_origins, ray_directions and world_points must have the same length "
        f"(got {o.shape[0]}, {d.shape[0]}, {P.shape[0]})",
    )
    if d.shape[0]:
        norm_err = np.abs(np.linalg.norm(d, axis=-1) - 1.0)
        worst = int(np.argmax(norm_err))
        _require(
            float(norm_err[worst]) <= unit_norm_tolerance,
            f"ray_directions must be unit norm (row {worst} deviates by {float(norm_err[worst]):.3g})",
        )
    return o, d, P


def compute_h_matrix_and_outer_products(
    ray_directions: np.ndarray, max_condition_number: float = 1e10
) -> tuple[np.ndarray, np.ndarray]:
    """
    H = (N I - sum_i d_i d_i^T)^-1 and the outer products d_i d_i^T, shape (N,3,3).

    Raises DegenerateConfigurationError when the sum is singular, which happens
    when fewer than two non-parallel directions are present.
    """
    d = np.asarray(ray_directions, dtype=np.float64).reshape(-1, 3)
    outer_products = d[:, :, None] * d[:, None, :]
    h_inverse = d.shape[0] * np.eye(3, dtype=np.float64) - np.sum(outer_products, axis=0)

    s = np.linalg.svd(h_inverse, compute_uv=False)
    if not s[0] > 0.0 or s[-1] * float(max_condition_number) < s[0]:
        raise DegenerateConfigurationError(
            f"direction matrix is singular (singular values {s.tolist()}); rays are parallel or too few"
        )
    h_matrix = np.linalg.inv(h_inverse)
    return 0.5 * (h_matrix + h_matrix.T), outer_products


def left_multiply_matrices(world_points: np.ndarray) -> np.ndarray:
    """Stacked Phi(p_i), shape (N,3,10)."""
    P = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
    if P.shape[0] == 0:
        return np.zeros((0, 3, N_MONOMIALS), dtype=np.float64)
    return np.stack([left_multiply_matrix(p) for p in P], axis=0)


def compute_helper_matrices(
    world_points: np.ndarray,
    ray_origins: np.ndarray,
    outer_products: np.ndarray,
    h_matrix: np.ndarray,
) -> tuple[np.ndarray, np.ndarray]:
    """
    G = sum_i V_i Phi(p_i) and J = sum_i V_i o_i with V_i = H (d_i d_i^T - I).
    """
    o = np.asarray(ray_origins, dtype=np.float64).reshape(-1, 3)
    if o.shape[0] != outer_products.shape[0]:
        raise UpnpInputError("ray_origins and outer_products must have the same length")
    phi = left_multiply_matrices(world_points)
    v_matrices = np.matmul(h_matrix[None, :, :], outer_products - np.eye(3)[None, :, :])
    g_matrix = np.einsum("nij,njk->ik", v_matrices, phi)
    j_vector = np.einsum("nij,nj->i", v_matrices, o)
    return g_matrix, j_vector


def compute_cost_matrices(
    world_points: np.ndarray,
    ray_origins: np.ndarray,
    outer_products: np.ndarray,
    g_matrix: np.ndarray,
    j_vector: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, float]:
    """
    Per correspondence:
      A_i = (d d^T - I)(Phi(p_i) + G)
      b_i = -(d d^T - I)(o_i + J)
    Returns (sum A_i^T A_i, sum A_i^T b_i, sum |b_i|²).
    """
    o = np.asarray(ray_origins, dtype=np.float64).reshape(-1, 3)
    phi = left_multiply_matrices(world_points)
    proj = outer_products - np.eye(3)[None, :, :]

    temp_a = np.matmul(proj, phi + g_matrix[None, :, :])  # (N,3,10)
    temp_b = -np.einsum("nij,nj->ni", proj, o + j_vector[None, :])  # (N,3)

    a_matrix = np.einsum("nki,nkj->ij", temp_a, temp_a)
    b_vector = np.einsum("nki,nk->i", temp_a, temp_b)
    gamma = float(np.sum(temp_b * temp_b))
    return 0.5 * (a_matrix + a_matrix.T), b_vector, gamma


def compute_upnp_cost_parameters(
    ray_origins: np.ndarray,
    ray_directions: np.ndarray,
    world_points: np.ndarray,
    max_condition_number: float = 1e10,
) -> UpnpCostParameters:
    """
    Stages 1-3 on already validated inputs (see `validate_correspondences`).
    """
    o = np.asarray(ray_origins, dtype=np.float64).reshape(-1, 3)
    d = np.asarray(ray_directions, dtype=np.float64).reshape(-1, 3)
    P = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)

    h_matrix, outer_products = compute_h_matrix_and_outer_products(d, max_condition_number=max_condition_number)
    g_matrix, j_vector = compute_helper_matrices(P, o, outer_products, h_matrix)
    a_matrix, b_vector, gamma = compute_cost_matrices(P, o, outer_products, g_matrix, j_vector)
    return UpnpCostParameters(
        a_matrix=a_matrix,
        b_vector=b_vector,
        gamma=gamma,
        h_matrix=h_matrix,
        g_matrix=g_matrix,
        j_vector=j_vector,
        n_correspondences=int(d.shape[0]),
    )


def evaluate_upnp_cost(params: UpnpCostParameters, q: np.ndarray) -> float:
    """
    q̂^T A q̂ + 2 b^T q̂ + gamma for a unit quaternion (w, x, y, z).

    Equals the point-to-ray cost of the pose (R(q), G q̂ - J).
    """
    v = quaternion_monomials(np.asarray(q, dtype=np.float64).reshape(4))
    return float(v @ params.a_matrix @ v + 2.0 * params.b_vector @ v + params.gamma)
