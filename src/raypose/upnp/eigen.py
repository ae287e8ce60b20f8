from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np
import scipy.linalg  # type: ignore


class EigenSolver(Protocol):
    """
    Real eigenpairs of the pencil (M, D): M v = lam D v.

    Implementations return (eigenvalues (K,), eigenvectors (n,K)) with real
    entries, eigenvalues ascending and each column scaled so v^T D v = 1.
    """

    def solve(self, M: np.ndarray, D: np.ndarray) -> tuple[np.ndarray, np.ndarray]: ...


def _normalize_columns(vecs: np.ndarray, D: np.ndarray) -> np.ndarray:
    norms2 = np.einsum("ik,ij,jk->k", vecs, D, vecs)
    return vecs / np.sqrt(np.maximum(norms2, np.finfo(np.float64).tiny))


@dataclass(frozen=True)
class SymmetricEigenSolver:
    """Symmetric-definite pencil (M symmetric, D symmetric positive-definite)."""

    def solve(self, M: np.ndarray, D: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        M = np.asarray(M, dtype=np.float64)
        D = np.asarray(D, dtype=np.float64)
        vals, vecs = scipy.linalg.eigh(0.5 * (M + M.T), 0.5 * (D + D.T))
        return vals, _normalize_columns(vecs, D)


@dataclass(frozen=True)
class GeneralEigenSolver:
    """
    Real, possibly non-symmetric pencil. Complex eigenvalues are dropped.

    An eigenvalue is kept when |imag| <= imaginary_tolerance * max(1, |real|).
    """

    imaginary_tolerance: float = 1e-8

    def solve(self, M: np.ndarray, D: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        M = np.asarray(M, dtype=np.float64)
        D = np.asarray(D, dtype=np.float64)
        vals, vecs = scipy.linalg.eig(M, D)

        keep = np.isfinite(vals) & (np.abs(vals.imag) <= self.imaginary_tolerance * np.maximum(1.0, np.abs(vals.real)))
        vals = vals[keep].real
        vecs = vecs[:, keep]

        # Real eigenvectors come back with an arbitrary complex phase.
        real_vecs = np.zeros(vecs.shape, dtype=np.float64)
        for k in range(vecs.shape[1]):
            v = vecs[:, k]
            i = int(np.argmax(np.abs(v)))
            real_vecs[:, k] = (v * np.conj(v[i]) / np.abs(v[i])).real

        order = np.argsort(vals, kind="stable")
        return vals[order], _normalize_columns(real_vecs[:, order], D)
