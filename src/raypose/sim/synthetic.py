from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from raypose.core.geometry import canonical_quaternion, quaternion_to_rotation_matrix


@dataclass(frozen=True)
class SyntheticScene:
    """
    Ray/point correspondences generated from a known pose X_cam = R X_world + t.

    Rays are expressed in the rig (camera) frame; `camera_ids` tells which
    rig camera observed each point. A single camera gives a central model.
    """

    rotation_wxyz: np.ndarray  # (4,)
    translation: np.ndarray  # (3,)
    camera_centers: np.ndarray  # (C,3)
    camera_ids: np.ndarray  # (N,)
    ray_origins: np.ndarray  # (N,3)
    ray_directions: np.ndarray  # (N,3)
    world_points: np.ndarray  # (N,3)

    @property
    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_rotation_matrix(self.rotation_wxyz)


def random_unit_quaternion(rng: np.random.Generator) -> np.ndarray:
    q = rng.normal(size=4)
    return canonical_quaternion(q / np.linalg.norm(q))


def perturb_directions(directions: np.ndarray, noise_rad: float, rng: np.random.Generator) -> np.ndarray:
    """
    Tilt each unit direction by a small random angle (std ~ noise_rad per tangent axis).
    """
    d = np.asarray(directions, dtype=np.float64).reshape(-1, 3)
    if noise_rad <= 0.0:
        return d.copy()
    n = rng.normal(scale=float(noise_rad), size=d.shape)
    n -= np.sum(n * d, axis=-1, keepdims=True) * d
    out = d + n
    return out / np.linalg.norm(out, axis=-1, keepdims=True)


def generate_synthetic_scene(
    n_points: int,
    n_cameras: int = 1,
    noise_rad: float = 0.0,
    rig_radius: float = 0.5,
    depth_range: tuple[float, float] = (4.0, 8.0),
    field_of_view: float = 1.0,
    translation_scale: float = 1.0,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
) -> SyntheticScene:
    """
    Random pose, random rig and random points in front of each rig camera.

    `field_of_view` is the full width of the normalized image plane (x=X/Z, y=Y/Z)
    sampled for each point. With n_cameras == 1 all rays start at the origin.
    """
    if n_points < 0:
        raise ValueError("n_points must be >= 0")
    if n_cameras < 1:
        raise ValueError("n_cameras must be >= 1")
    z_min, z_max = float(depth_range[0]), float(depth_range[1])
    if not 0.0 < z_min <= z_max:
        raise ValueError("depth_range must satisfy 0 < min <= max")
    if rng is None:
        rng = np.random.default_rng(seed)

    q = random_unit_quaternion(rng)
    rot = quaternion_to_rotation_matrix(q)
    t = rng.normal(scale=float(translation_scale), size=3)

    if n_cameras == 1:
        centers = np.zeros((1, 3), dtype=np.float64)
    else:
        centers = rng.normal(scale=float(rig_radius), size=(n_cameras, 3))

    cam_ids = np.arange(n_points, dtype=np.int64) % n_cameras
    half = 0.5 * float(field_of_view)
    xy = rng.uniform(-half, half, size=(n_points, 2))
    z = rng.uniform(z_min, z_max, size=(n_points,))
    offsets = np.concatenate([xy, np.ones((n_points, 1))], axis=-1) * z[:, None]

    origins = centers[cam_ids]
    X_cam = origins + offsets
    directions = offsets / np.linalg.norm(offsets, axis=-1, keepdims=True)
    world_points = (rot.T @ (X_cam - t[None, :]).T).T

    return SyntheticScene(
        rotation_wxyz=q,
        translation=t,
        camera_centers=centers,
        camera_ids=cam_ids,
        ray_origins=origins,
        ray_directions=perturb_directions(directions, noise_rad, rng),
        world_points=world_points,
    )
