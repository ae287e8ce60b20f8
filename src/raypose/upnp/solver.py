from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache

import numpy as np
from scipy.spatial.transform import Rotation as R  # type: ignore
from scipy.stats import qmc  # type: ignore

from raypose.core.geometry import canonical_quaternion, quaternion_to_rotation_matrix
from raypose.core.monomials import (
    NORM_SQUARED_WEIGHTS,
    monomial_hessian_sum,
    monomial_jacobian,
    moment_matrix,
    quaternion_monomials,
)
from raypose.upnp.cost import (
    DegenerateConfigurationError,
    UpnpCostParameters,
    compute_upnp_cost_parameters,
    evaluate_upnp_cost,
    validate_correspondences,
)
from raypose.upnp.eigen import EigenSolver, SymmetricEigenSolver

logger = logging.getLogger(__name__)

# Descent constants; curvature and rounding are relative to |M|_F.
_MAX_STEP = 0.5
_ARMIJO = 1e-4
_MAX_BACKTRACKS = 30
_CURVATURE_FLOOR = 1e-10
_ROUNDING = 1e-12


@dataclass(frozen=True)
class UpnpOptions:
    unit_norm_tolerance: float = 1e-6
    max_condition_number: float = 1e10
    # Halton rotations added to the 60 icosahedral ones as descent seeds.
    n_grid_seeds: int = 512
    max_descent_iterations: int = 100
    max_polish_iterations: int = 20
    polish_step_tolerance: float = 1e-12
    # Relative to the Frobenius norm of the homogeneous cost matrix.
    stationarity_tolerance: float = 1e-8
    minimum_tolerance: float = 1e-8
    duplicate_tolerance: float = 1e-6
    max_candidates: int = 16


@dataclass(frozen=True)
class UpnpSolutions:
    """
    Candidate poses X_cam = R(q) X_world + t, index-aligned.

    - `rotations`: (K,4) unit quaternions (w, x, y, z), w >= 0
    - `translations`: (K,3)
    - `costs`: (K,) point-to-ray cost of each candidate

    K == 0 for degenerate input; candidates come by increasing cost.
    """

    rotations: np.ndarray
    translations: np.ndarray
    costs: np.ndarray
    cost_parameters: UpnpCostParameters | None = field(default=None, repr=False)

    def __len__(self) -> int:
        return int(self.rotations.shape[0])

    def rotation_matrices(self) -> np.ndarray:
        if len(self) == 0:
            return np.zeros((0, 3, 3), dtype=np.float64)
        return np.stack([quaternion_to_rotation_matrix(q) for q in self.rotations], axis=0)

    @classmethod
    def empty(cls, cost_parameters: UpnpCostParameters | None = None) -> "UpnpSolutions":
        return cls(
            rotations=np.zeros((0, 4), dtype=np.float64),
            translations=np.zeros((0, 3), dtype=np.float64),
            costs=np.zeros((0,), dtype=np.float64),
            cost_parameters=cost_parameters,
        )


def _normalize_rows(Q: np.ndarray) -> np.ndarray:
    return Q / np.linalg.norm(Q, axis=-1, keepdims=True)


@lru_cache(maxsize=4)
def _grid_quaternions(n: int) -> np.ndarray:
    """
    Fixed rotations spread over SO(3): the 60 icosahedral rotations followed
    by n Halton points pushed through Shoemake's uniform quaternion map.
    """
    x, y, z, w = R.create_group("I").as_quat().T
    grid = [np.stack([w, x, y, z], axis=-1)]
    if n > 0:
        u = qmc.Halton(d=3, scramble=False).random(int(n))
        a, b = np.sqrt(1.0 - u[:, 0]), np.sqrt(u[:, 0])
        t1, t2 = 2.0 * np.pi * u[:, 1], 2.0 * np.pi * u[:, 2]
        grid.append(np.stack([a * np.sin(t1), a * np.cos(t1), b * np.sin(t2), b * np.cos(t2)], axis=-1))
    out = np.concatenate(grid, axis=0)
    out.setflags(write=False)
    return out


def _eigen_seeds(eigenvectors: np.ndarray) -> np.ndarray:
    """
    All four eigenvectors of the moment matrix Q(v) of every pencil eigenvector v.

    For an exact monomial vector Q(v) = q q^T. Eigenvectors of the pencil are
    only known up to the null space of M, which holds e for central cameras
    and grows further for planar scenes, so q can sit on any of them.
    """
    V = np.asarray(eigenvectors, dtype=np.float64).T
    V = V[np.all(np.isfinite(V), axis=-1)]
    if V.shape[0] == 0:
        return np.zeros((0, 4), dtype=np.float64)
    _lam, U = np.linalg.eigh(moment_matrix(V))
    return np.swapaxes(U, -1, -2).reshape(-1, 4)


def _objective(M: np.ndarray, Q: np.ndarray) -> np.ndarray:
    v = quaternion_monomials(Q)
    return np.einsum("bi,ij,bj->b", v, M, v)


def _sphere_derivatives(M: np.ndarray, Q: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    F(q) = q̂^T M q̂ with its Riemannian gradient and Hessian on the unit
    sphere, one row of Q per quaternion.
    """
    v = quaternion_monomials(Q)
    c = v @ M
    F = np.einsum("bi,bi->b", v, c)
    Hc = monomial_hessian_sum(c)
    grad = 2.0 * np.einsum("bij,bj->bi", Hc, Q)
    Jv = monomial_jacobian(Q)
    hess = 2.0 * np.swapaxes(Jv, -1, -2) @ (M @ Jv) + 2.0 * Hc

    # F is homogeneous of degree 4, so q^T grad = 4F is twice the multiplier.
    s = np.einsum("bi,bi->b", Q, grad)
    tangent_grad = grad - s[:, None] * Q
    P = np.eye(4)[None, :, :] - Q[:, :, None] * Q[:, None, :]
    tangent_hess = P @ (hess - s[:, None, None] * np.eye(4)[None, :, :]) @ P
    return F, tangent_grad, 0.5 * (tangent_hess + np.swapaxes(tangent_hess, -1, -2))


def _newton_directions(Q: np.ndarray, grad: np.ndarray, hess: np.ndarray, floor: float) -> np.ndarray:
    """
    Tangent Newton steps with the Hessian eigenvalues replaced by their
    magnitudes, so every step points downhill, capped at _MAX_STEP.
    """
    lam, U = np.linalg.eigh(hess)
    coef = np.einsum("bji,bj->bi", U, grad) / np.maximum(np.abs(lam), floor)
    p = -np.einsum("bij,bj->bi", U, coef)
    p -= np.einsum("bi,bi->b", p, Q)[:, None] * Q
    norms = np.linalg.norm(p, axis=-1, keepdims=True)
    return p * np.minimum(1.0, _MAX_STEP / np.maximum(norms, np.finfo(np.float64).tiny))


def _descend(M: np.ndarray, seeds: np.ndarray, options: UpnpOptions, scale: float) -> np.ndarray:
    """
    Monotone descent of F from every seed with an Armijo backtracking line search.

    A row leaves the active set once its accepted step is negligible or no
    step length decreases F any more.
    """
    Q = _normalize_rows(np.array(seeds, dtype=np.float64))
    floor = _CURVATURE_FLOOR * scale
    F, grad, hess = _sphere_derivatives(M, Q)
    active = np.ones(Q.shape[0], dtype=bool)

    for _ in range(int(options.max_descent_iterations)):
        if not np.any(active):
            break
        idx = np.flatnonzero(active)
        p = _newton_directions(Q[idx], grad[idx], hess[idx], floor)
        slope = np.einsum("bi,bi->b", grad[idx], p)
        alpha = np.ones(idx.size, dtype=np.float64)
        pending = np.ones(idx.size, dtype=bool)
        for _ in range(_MAX_BACKTRACKS):
            if not np.any(pending):
                break
            k = np.flatnonzero(pending)
            trial = _normalize_rows(Q[idx[k]] + alpha[k, None] * p[k])
            ok = _objective(M, trial) <= F[idx[k]] + _ARMIJO * alpha[k] * slope[k]
            Q[idx[k[ok]]] = trial[ok]
            pending[k[ok]] = False
            alpha[k[~ok]] *= 0.5

        step = alpha * np.linalg.norm(p, axis=-1)
        active[idx[pending | (step <= options.polish_step_tolerance)]] = False
        F[idx], grad[idx], hess[idx] = _sphere_derivatives(M, Q[idx])
    return Q


def _polish(
    M: np.ndarray, Q: np.ndarray, options: UpnpOptions, scale: float
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Full Newton steps, kept while they shrink the gradient without raising F.

    The line search in _descend stalls once changes of F fall below rounding;
    the gradient still carries information there.
    """
    Q = Q.copy()
    floor = _CURVATURE_FLOOR * scale
    F, grad, hess = _sphere_derivatives(M, Q)
    gnorm = np.linalg.norm(grad, axis=-1)
    active = np.isfinite(gnorm) & np.isfinite(F)

    for _ in range(int(options.max_polish_iterations)):
        if not np.any(active):
            break
        idx = np.flatnonzero(active)
        p = _newton_directions(Q[idx], grad[idx], hess[idx], floor)
        trial = _normalize_rows(Q[idx] + p)
        F_t, grad_t, hess_t = _sphere_derivatives(M, trial)
        gnorm_t = np.linalg.norm(grad_t, axis=-1)
        better = (gnorm_t < gnorm[idx]) & (F_t <= F[idx] + _ROUNDING * scale)

        acc = idx[better]
        Q[acc], F[acc], grad[acc], hess[acc], gnorm[acc] = (
            trial[better],
            F_t[better],
            grad_t[better],
            hess_t[better],
            gnorm_t[better],
        )
        small = np.linalg.norm(p, axis=-1) <= options.polish_step_tolerance
        active[idx[~better | small]] = False
    return Q, F, grad, hess


def _local_minimum_mask(Q: np.ndarray, hess: np.ndarray, tol: float) -> np.ndarray:
    """Tangent Hessian positive semidefinite within tol (the normal direction is skipped)."""
    if Q.shape[0] == 0:
        return np.zeros((0,), dtype=bool)
    lam, U = np.linalg.eigh(hess)
    normal = np.argmax(np.abs(np.einsum("bji,bj->bi", U, Q)), axis=-1)
    lam = lam.copy()
    lam[np.arange(lam.shape[0]), normal] = np.inf
    return np.min(lam, axis=-1) >= -tol


def solve_constrained_quadratic(
    params: UpnpCostParameters,
    options: UpnpOptions | None = None,
    eigen_solver: EigenSolver | None = None,
) -> np.ndarray:
    """
    Minimize q̂^T A q̂ + 2 b^T q̂ + gamma over unit quaternions.

    With M the homogenized cost and D the quadratic form of (q^T q)², the
    Lagrangian of q̂^T M q̂ - lam (q̂^T D q̂ - 1) is stationary on the
    eigenpairs of M v = lam D v. The eigenvectors are read back as
    quaternions through their moment matrices and, together with a fixed
    grid over SO(3), seed a batched descent of the quartic cost on the unit
    sphere. Converged points that are local minima are kept, and the lowest
    cost point reached is kept in every case.

    Returns (K,4) quaternions by increasing cost, possibly K == 0.
    """
    options = options or UpnpOptions()
    eigen_solver = eigen_solver or SymmetricEigenSolver()

    M = params.homogeneous_matrix()
    if not np.all(np.isfinite(M)):
        logger.debug("non-finite cost matrix, no solution")
        return np.zeros((0, 4), dtype=np.float64)
    D = np.diag(NORM_SQUARED_WEIGHTS)
    scale = max(1.0, float(np.linalg.norm(M)))

    eigenvalues, eigenvectors = eigen_solver.solve(M, D)
    seeds = np.concatenate([_eigen_seeds(eigenvectors), _grid_quaternions(int(options.n_grid_seeds))], axis=0)

    Q = _descend(M, seeds, options, scale)
    Q, F, grad, hess = _polish(M, Q, options, scale)

    finite = np.all(np.isfinite(Q), axis=-1) & np.isfinite(F)
    keep = finite & (np.linalg.norm(grad, axis=-1) <= options.stationarity_tolerance * scale)
    keep[keep] = _local_minimum_mask(Q[keep], hess[keep], options.minimum_tolerance * scale)
    if np.any(finite):
        keep[int(np.argmin(np.where(finite, F, np.inf)))] = True

    order = np.flatnonzero(keep)
    order = order[np.argsort(F[order], kind="stable")]
    candidates: list[np.ndarray] = []
    for i in order:
        q = canonical_quaternion(Q[i])
        if any(1.0 - abs(float(q @ c)) <= options.duplicate_tolerance for c in candidates):
            continue
        candidates.append(q)
        if len(candidates) >= int(options.max_candidates):
            break

    logger.debug(
        "%d candidate rotation(s) from %d seeds (%d eigenpairs)", len(candidates), seeds.shape[0], eigenvalues.shape[0]
    )
    if not candidates:
        return np.zeros((0, 4), dtype=np.float64)
    return np.stack(candidates, axis=0)


def reconstruct_pose(q: np.ndarray, params: UpnpCostParameters) -> tuple[np.ndarray, np.ndarray]:
    """Rotation matrix R(q) and the optimal translation t = G q̂ - J."""
    q = np.asarray(q, dtype=np.float64).reshape(4)
    return quaternion_to_rotation_matrix(q), params.translation(q)


def solve_upnp(
    ray_origins: np.ndarray,
    ray_directions: np.ndarray,
    world_points: np.ndarray,
    *,
    options: UpnpOptions | None = None,
    eigen_solver: EigenSolver | None = None,
) -> UpnpSolutions:
    """
    Absolute pose of a generalized camera from N ray/point correspondences.

    Rays (origin, unit direction) are expressed in the camera frame, points in
    the world frame. Returns every admissible candidate pose; an empty result
    means the input was degenerate (parallel rays, too few points) or no real
    minimum was found. Malformed input raises UpnpInputError.
    """
    options = options or UpnpOptions()
    o, d, P = validate_correspondences(
        ray_origins, ray_directions, world_points, unit_norm_tolerance=options.unit_norm_tolerance
    )

    try:
        params = compute_upnp_cost_parameters(o, d, P, max_condition_number=options.max_condition_number)
    except DegenerateConfigurationError as e:
        logger.debug("degenerate correspondences: %s", e)
        return UpnpSolutions.empty()

    quaternions = solve_constrained_quadratic(params, options=options, eigen_solver=eigen_solver)

    rotations: list[np.ndarray] = []
    translations: list[np.ndarray] = []
    costs: list[float] = []
    for q in quaternions:
        _rot, t = reconstruct_pose(q, params)
        cost = evaluate_upnp_cost(params, q)
        if not (np.all(np.isfinite(t)) and np.isfinite(cost)):
            continue
        rotations.append(q)
        translations.append(t)
        costs.append(cost)

    if not rotations:
        return UpnpSolutions.empty(params)
    return UpnpSolutions(
        rotations=np.stack(rotations, axis=0),
        translations=np.stack(translations, axis=0),
        costs=np.asarray(costs, dtype=np.float64),
        cost_parameters=params,
    )
