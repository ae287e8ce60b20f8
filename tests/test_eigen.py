import numpy as np
import pytest

from raypose.upnp.eigen import GeneralEigenSolver, SymmetricEigenSolver

SOLVERS = [SymmetricEigenSolver(), GeneralEigenSolver()]


@pytest.mark.parametrize("solver", SOLVERS)
def test_diagonal_pencil(solver):
    M = np.diag([3.0, 1.0, 2.0])
    vals, vecs = solver.solve(M, np.eye(3))
    assert np.allclose(vals, [1.0, 2.0, 3.0])
    assert np.allclose(np.abs(vecs), np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]))


@pytest.mark.parametrize("solver", SOLVERS)
def test_generalized_pencil_is_d_normalized(solver):
    M = np.diag([2.0, 6.0])
    D = np.diag([1.0, 2.0])
    vals, vecs = solver.solve(M, D)
    assert np.allclose(vals, [2.0, 3.0])
    for k in range(2):
        v = vecs[:, k]
        assert np.isclose(v @ D @ v, 1.0)
        assert np.allclose(M @ v, vals[k] * D @ v)


def test_general_solver_drops_complex_eigenvalues():
    M = np.array([[0.0, -1.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 5.0]])
    vals, vecs = GeneralEigenSolver().solve(M, np.eye(3))
    assert vals.shape == (1,)
    assert np.isclose(vals[0], 5.0)
    assert np.allclose(np.abs(vecs[:, 0]), [0.0, 0.0, 1.0])
    assert vecs.dtype == np.float64


def test_solvers_agree_on_random_symmetric_definite_pencil():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(10, 10))
    M = X @ X.T
    D = np.diag([1.0, 1.0, 1.0, 1.0, 2.0, 2.0, 2.0, 2.0, 2.0, 2.0])
    vals_s, vecs_s = SymmetricEigenSolver().solve(M, D)
    vals_g, vecs_g = GeneralEigenSolver().solve(M, D)
    assert np.allclose(vals_s, vals_g, rtol=1e-8, atol=1e-8)
    for k in range(10):
        assert np.isclose(abs(vecs_s[:, k] @ D @ vecs_g[:, k]), 1.0, atol=1e-6)
