from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from raypose.meta import (
    ARRAY_NAMES,
    SCHEMA_CORRESPONDENCES,
    CorrespondenceMeta,
    CorrespondenceValidationError,
    GroundTruthPose,
    parse_correspondence_meta,
)
from raypose.upnp.solver import UpnpSolutions

SCHEMA_SOLUTIONS = "raypose.solutions.v0"


@dataclass(frozen=True)
class CorrespondenceSet:
    ray_origins: np.ndarray  # (N,3)
    ray_directions: np.ndarray  # (N,3)
    world_points: np.ndarray  # (N,3)
    meta: CorrespondenceMeta


def _to_float_array(x: np.ndarray, n: int, name: str) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    if x.shape != (n, 3):
        raise CorrespondenceValidationError(f"{name} must be ({n},3), got {x.shape}")
    if not np.all(np.isfinite(x)):
        raise CorrespondenceValidationError(f"{name} has non-finite values")
    return x


def save_correspondences(
    out_dir: Path,
    ray_origins: np.ndarray,
    ray_directions: np.ndarray,
    world_points: np.ndarray,
    *,
    units: str = "unitless",
    ground_truth: GroundTruthPose | None = None,
) -> Path:
    """
    Save correspondences into a directory:

      correspondences.json + arrays.npz

    The JSON holds metadata (and optional ground truth); the NPZ stores arrays.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    o = np.asarray(ray_origins, dtype=np.float64).reshape(-1, 3)
    d = np.asarray(ray_directions, dtype=np.float64).reshape(-1, 3)
    P = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)
    if not (o.shape[0] == d.shape[0] == P.shape[0]):
        raise ValueError("ray_origins, ray_directions and world_points must have the same length")

    arrays_path = out_dir / "arrays.npz"
    np.savez_compressed(arrays_path, ray_origins=o, ray_directions=d, world_points=P)

    meta: dict[str, Any] = {
        "schema_version": SCHEMA_CORRESPONDENCES,
        "n_correspondences": int(o.shape[0]),
        "units": str(units),
        "arrays": {
            "format": "npz",
            "path": arrays_path.name,
            "keys": {name: name for name in ARRAY_NAMES},
        },
    }
    if ground_truth is not None:
        meta["ground_truth"] = {
            "rotation_wxyz": [float(c) for c in ground_truth.rotation_wxyz],
            "translation": [float(c) for c in ground_truth.translation],
        }

    json_path = out_dir / "correspondences.json"
    json_path.write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")
    return json_path


def load_correspondences(corr_dir: Path) -> CorrespondenceSet:
    corr_dir = Path(corr_dir)
    json_path = corr_dir / "correspondences.json"
    if not json_path.exists():
        raise FileNotFoundError(f"Missing {json_path}")
    meta = parse_correspondence_meta(json.loads(json_path.read_text(encoding="utf-8")))

    arrays_path = corr_dir / meta.arrays_path
    if not arrays_path.exists():
        raise FileNotFoundError(f"Missing {arrays_path}")
    n = meta.n_correspondences
    with np.load(str(arrays_path)) as npz:
        for name in ARRAY_NAMES:
            if meta.array_keys[name] not in npz:
                raise CorrespondenceValidationError(f"{arrays_path} missing key: {meta.array_keys[name]}")
        o = _to_float_array(npz[meta.array_keys["ray_origins"]], n, "ray_origins")
        d = _to_float_array(npz[meta.array_keys["ray_directions"]], n, "ray_directions")
        P = _to_float_array(npz[meta.array_keys["world_points"]], n, "world_points")

    return CorrespondenceSet(ray_origins=o, ray_directions=d, world_points=P, meta=meta)


def solutions_to_dict(solutions: UpnpSolutions) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_SOLUTIONS,
        "n_solutions": len(solutions),
        "solutions": [
            {
                "rotation_wxyz": np.asarray(q, dtype=np.float64).tolist(),
                "translation": np.asarray(t, dtype=np.float64).tolist(),
                "cost": float(c),
            }
            for q, t, c in zip(solutions.rotations, solutions.translations, solutions.costs)
        ],
    }


def save_solutions(json_path: Path, solutions: UpnpSolutions) -> Path:
    json_path = Path(json_path)
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(json.dumps(solutions_to_dict(solutions), indent=2, sort_keys=True), encoding="utf-8")
    return json_path
