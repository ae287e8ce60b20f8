from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SCHEMA_CORRESPONDENCES = "raypose.correspondences.v0"
ARRAY_NAMES = ("ray_origins", "ray_directions", "world_points")


class CorrespondenceValidationError(ValueError):
    pass


@dataclass(frozen=True)
class GroundTruthPose:
    rotation_wxyz: tuple[float, float, float, float]
    translation: tuple[float, float, float]


@dataclass(frozen=True)
class CorrespondenceMeta:
    schema_version: str
    n_correspondences: int
    arrays_path: str
    array_keys: dict[str, str]
    units: str = "unitless"
    ground_truth: GroundTruthPose | None = None


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise CorrespondenceValidationError(msg)


def load_correspondence_meta(path: Path) -> CorrespondenceMeta:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_correspondence_meta(data)


def parse_correspondence_meta(data: dict[str, Any]) -> CorrespondenceMeta:
    schema_version = data.get("schema_version")
    _require(schema_version == SCHEMA_CORRESPONDENCES, f"schema_version must be {SCHEMA_CORRESPONDENCES}")

    n_raw = data.get("n_correspondences")
    _require(n_raw is not None, "n_correspondences is required")
    n = int(n_raw)
    _require(n >= 0, "n_correspondences must be >= 0")

    arrays = data.get("arrays", {})
    _require(isinstance(arrays, dict), "arrays must be an object")
    _require(arrays.get("format", "npz") == "npz", "arrays.format must be npz")
    path = arrays.get("path")
    _require(isinstance(path, str) and len(path) > 0, "arrays.path is required")

    keys = arrays.get("keys", {})
    _require(isinstance(keys, dict), "arrays.keys must be an object")
    array_keys = {name: str(keys.get(name, name)) for name in ARRAY_NAMES}

    units = str(data.get("units", "unitless"))

    gt = data.get("ground_truth")
    ground_truth = None
    if gt is not None:
        _require(isinstance(gt, dict), "ground_truth must be an object")
        rot = gt.get("rotation_wxyz")
        t = gt.get("translation")
        _require(isinstance(rot, (list, tuple)) and len(rot) == 4, "ground_truth.rotation_wxyz must be [w,x,y,z]")
        _require(isinstance(t, (list, tuple)) and len(t) == 3, "ground_truth.translation must be [tx,ty,tz]")
        qw, qx, qy, qz = (float(c) for c in rot)
        _require(abs((qw * qw + qx * qx + qy * qy + qz * qz) - 1.0) < 1e-6, "ground_truth.rotation_wxyz must be unit norm")
        ground_truth = GroundTruthPose(
            rotation_wxyz=(qw, qx, qy, qz),
            translation=(float(t[0]), float(t[1]), float(t[2])),
        )

    return CorrespondenceMeta(
        schema_version=schema_version,
        n_correspondences=n,
        arrays_path=path,
        array_keys=array_keys,
        units=units,
        ground_truth=ground_truth,
    )
