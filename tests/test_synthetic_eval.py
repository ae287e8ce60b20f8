from pathlib import Path

import numpy as np
import pytest

from raypose.core.geometry import point_to_ray_residuals
from raypose.eval.synthetic_eval import run_noise_sweep, run_synthetic_eval
from raypose.sim.synthetic import generate_synthetic_scene, perturb_directions


def test_synthetic_scene_is_consistent():
    scene = generate_synthetic_scene(30, n_cameras=4, seed=0)
    assert scene.ray_origins.shape == (30, 3)
    assert np.allclose(np.linalg.norm(scene.ray_directions, axis=-1), 1.0)
    res = point_to_ray_residuals(
        scene.rotation_matrix, scene.translation, scene.ray_origins, scene.ray_directions, scene.world_points
    )
    assert np.max(np.abs(res)) < 1e-12
    assert np.allclose(scene.ray_origins, scene.camera_centers[scene.camera_ids])


def test_central_scene_rays_share_origin():
    scene = generate_synthetic_scene(10, seed=1)
    assert np.all(scene.ray_origins == 0.0)


def test_perturb_directions_keeps_unit_norm():
    rng = np.random.default_rng(0)
    d = generate_synthetic_scene(100, seed=2).ray_directions
    noisy = perturb_directions(d, 1e-3, rng)
    assert np.allclose(np.linalg.norm(noisy, axis=-1), 1.0)
    angles = np.arccos(np.clip(np.sum(noisy * d, axis=-1), -1.0, 1.0))
    assert 0.0 < np.median(angles) < 5e-3


def test_generate_rejects_bad_arguments():
    with pytest.raises(ValueError):
        generate_synthetic_scene(5, n_cameras=0)
    with pytest.raises(ValueError):
        generate_synthetic_scene(5, depth_range=(0.0, 1.0))


def test_run_synthetic_eval_noiseless():
    stats = run_synthetic_eval(trials=5, n_points=12, n_cameras=2, seed=3)
    assert stats["solved_ratio"] == 1.0
    assert stats["rot_err_p95_deg"] < 1e-5
    assert stats["trans_err_p95"] < 1e-6


def test_run_noise_sweep(tmp_path: Path):
    path = run_noise_sweep(tmp_path / "sweep.json", [0.0, 1e-3], trials=2, n_points=20)
    assert path.exists()
