from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from raypose.api.correspondence_io import load_correspondences, save_correspondences, save_solutions
from raypose.meta import CorrespondenceValidationError, GroundTruthPose
from raypose.sim.synthetic import generate_synthetic_scene
from raypose.upnp.solver import UpnpSolutions, solve_upnp


def test_save_and_load_correspondences(tmp_path: Path) -> None:
    scene = generate_synthetic_scene(15, n_cameras=2, seed=0)
    gt = GroundTruthPose(
        rotation_wxyz=tuple(float(c) for c in scene.rotation_wxyz),
        translation=tuple(float(c) for c in scene.translation),
    )
    json_path = save_correspondences(
        tmp_path / "corr", scene.ray_origins, scene.ray_directions, scene.world_points, units="m", ground_truth=gt
    )
    assert json_path.name == "correspondences.json"

    corr = load_correspondences(tmp_path / "corr")
    assert corr.meta.n_correspondences == 15
    assert corr.meta.units == "m"
    assert corr.meta.ground_truth == gt
    assert np.array_equal(corr.ray_directions, scene.ray_directions)
    assert np.array_equal(corr.world_points, scene.world_points)


def test_load_correspondences_rejects_wrong_length(tmp_path: Path) -> None:
    scene = generate_synthetic_scene(6, seed=1)
    save_correspondences(tmp_path, scene.ray_origins, scene.ray_directions, scene.world_points)
    meta = json.loads((tmp_path / "correspondences.json").read_text(encoding="utf-8"))
    meta["n_correspondences"] = 7
    (tmp_path / "correspondences.json").write_text(json.dumps(meta), encoding="utf-8")
    with pytest.raises(CorrespondenceValidationError):
        load_correspondences(tmp_path)


def test_load_correspondences_missing_dir(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_correspondences(tmp_path / "nope")


def test_save_solutions_json(tmp_path: Path) -> None:
    scene = generate_synthetic_scene(10, seed=2)
    sols = solve_upnp(scene.ray_origins, scene.ray_directions, scene.world_points)
    path = save_solutions(tmp_path / "out" / "solutions.json", sols)
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["schema_version"] == "raypose.solutions.v0"
    assert data["n_solutions"] == len(sols) >= 1
    assert len(data["solutions"][0]["rotation_wxyz"]) == 4

    empty = save_solutions(tmp_path / "empty.json", UpnpSolutions.empty())
    assert json.loads(empty.read_text(encoding="utf-8"))["solutions"] == []
