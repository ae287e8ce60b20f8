"""
Cross-check the closed-form generalized solver against OpenCV on a central
pinhole camera.

Random scenes are projected to pixels, then solved twice:
- OpenCV `solvePnP` (SQPnP) from pixels + intrinsics,
- `solve_upnp` from back-projected unit rays sharing the camera center.
Both poses use the X_cam = R X_world + t convention and should agree.
"""
from __future__ import annotations

import cv2
import numpy as np
from scipy.spatial.transform import Rotation as R  # type: ignore

from raypose.core.geometry import (
    PinholeCamera,
    quaternion_distance_deg,
    quaternion_to_rotation_matrix,
    rotation_matrix_to_quaternion,
)
from raypose.eval.synthetic_eval import best_candidate_index
from raypose.sim.synthetic import random_unit_quaternion
from raypose.upnp.solver import solve_upnp


def main(trials: int = 100, n_points: int = 30, pixel_noise: float = 0.5, seed: int = 0) -> None:
    rng = np.random.default_rng(seed)
    cam = PinholeCamera(fx=800.0, fy=800.0, cx=320.0, cy=240.0)
    K = cam.matrix()

    rot_diffs = []
    trans_diffs = []
    for _ in range(trials):
        q = random_unit_quaternion(rng)
        rot = quaternion_to_rotation_matrix(q)
        t = rng.normal(size=3)

        P_cam = np.stack(
            [rng.uniform(-2.0, 2.0, n_points), rng.uniform(-1.5, 1.5, n_points), rng.uniform(4.0, 10.0, n_points)],
            axis=-1,
        )
        P_world = (rot.T @ (P_cam - t).T).T
        uv = cam.project(P_cam) + rng.normal(scale=pixel_noise, size=(n_points, 2))

        ok, rvec, tvec = cv2.solvePnP(P_world, uv, K, None, flags=cv2.SOLVEPNP_SQPNP)
        if not ok:
            continue
        q_cv = rotation_matrix_to_quaternion(R.from_rotvec(rvec.reshape(3)).as_matrix())

        dirs = cam.ray_directions_cam(uv[:, 0], uv[:, 1])
        sols = solve_upnp(np.zeros_like(dirs), dirs, P_world)
        k = best_candidate_index(sols)
        if k is None:
            continue
        rot_diffs.append(quaternion_distance_deg(sols.rotations[k], q_cv))
        trans_diffs.append(float(np.linalg.norm(sols.translations[k] - tvec.reshape(3))))

    rot_diffs_arr = np.asarray(rot_diffs)
    trans_diffs_arr = np.asarray(trans_diffs)
    print(f"solved {len(rot_diffs)}/{trials}")
    print(f"rotation difference: median={np.median(rot_diffs_arr):.4g} deg  p95={np.quantile(rot_diffs_arr, 0.95):.4g} deg")
    print(f"translation difference: median={np.median(trans_diffs_arr):.4g}  p95={np.quantile(trans_diffs_arr, 0.95):.4g}")


if __name__ == "__main__":
    main()
