import pytest

from raypose.meta import CorrespondenceValidationError, parse_correspondence_meta


def _meta(**overrides):
    data = {
        "schema_version": "raypose.correspondences.v0",
        "n_correspondences": 12,
        "units": "m",
        "arrays": {"format": "npz", "path": "arrays.npz", "keys": {"world_points": "P"}},
    }
    data.update(overrides)
    return data


def test_parse_correspondence_meta_ok():
    m = parse_correspondence_meta(
        _meta(ground_truth={"rotation_wxyz": [1.0, 0.0, 0.0, 0.0], "translation": [0.1, 0.2, 0.3]})
    )
    assert m.n_correspondences == 12
    assert m.units == "m"
    assert m.array_keys == {"ray_origins": "ray_origins", "ray_directions": "ray_directions", "world_points": "P"}
    assert m.ground_truth is not None
    assert m.ground_truth.translation == (0.1, 0.2, 0.3)


def test_parse_correspondence_meta_rejects_bad_schema():
    with pytest.raises(CorrespondenceValidationError):
        parse_correspondence_meta(_meta(schema_version="raypose.correspondences.v9"))


def test_parse_correspondence_meta_rejects_missing_arrays_path():
    with pytest.raises(CorrespondenceValidationError):
        parse_correspondence_meta(_meta(arrays={"format": "npz"}))


def test_parse_correspondence_meta_rejects_non_unit_ground_truth():
    with pytest.raises(CorrespondenceValidationError):
        parse_correspondence_meta(_meta(ground_truth={"rotation_wxyz": [2.0, 0.0, 0.0, 0.0], "translation": [0, 0, 0]}))
