from __future__ import annotations

from dataclasses import dataclass, field

import cv2
import numpy as np
from scipy.spatial.transform import Rotation as R  # type: ignore


def quaternion_to_rotation_matrix(q: np.ndarray) -> np.ndarray:
    """
    Rotation matrix of a scalar-first quaternion q = (w, x, y, z).

    The quaternion is normalized by scipy; callers pass unit quaternions.
    """
    q = np.asarray(q, dtype=np.float64).reshape(4)
    return R.from_quat([q[1], q[2], q[3], q[0]]).as_matrix()


def rotation_matrix_to_quaternion(rot: np.ndarray) -> np.ndarray:
    """Scalar-first unit quaternion of a rotation matrix, with w >= 0."""
    x, y, z, w = R.from_matrix(np.asarray(rot, dtype=np.float64).reshape(3, 3)).as_quat()
    return canonical_quaternion(np.array([w, x, y, z], dtype=np.float64))


def canonical_quaternion(q: np.ndarray) -> np.ndarray:
    """
    Pick the representative of {q, -q} with a non-negative leading component.

    Ties on w are broken by the first non-zero vector component.
    """
    q = np.asarray(q, dtype=np.float64).reshape(4).copy()
    for c in q:
        if c > 0.0:
            return q
        if c < 0.0:
            return -q
    return q


def quaternion_distance_deg(q1: np.ndarray, q2: np.ndarray) -> float:
    """Angle (degrees) of the relative rotation between two unit quaternions."""
    q1 = np.asarray(q1, dtype=np.float64).reshape(4)
    q2 = np.asarray(q2, dtype=np.float64).reshape(4)
    c = abs(float(np.dot(q1, q2)) / (np.linalg.norm(q1) * np.linalg.norm(q2)))
    return float(np.degrees(2.0 * np.arccos(min(1.0, c))))


def point_to_ray_residuals(
    rot: np.ndarray, t: np.ndarray, ray_origins: np.ndarray, ray_directions: np.ndarray, world_points: np.ndarray
) -> np.ndarray:
    """
    Residuals (N,3): (I - d d^T) (R p + t - o) for each correspondence.

    Zero when the transformed world point lies on its ray (either side of the origin).
    """
    rot = np.asarray(rot, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(1, 3)
    o = np.asarray(ray_origins, dtype=np.float64).reshape(-1, 3)
    d = np.asarray(ray_directions, dtype=np.float64).reshape(-1, 3)
    P = np.asarray(world_points, dtype=np.float64).reshape(-1, 3)

    r = (rot @ P.T).T + t - o
    proj = np.sum(r * d, axis=-1, keepdims=True) * d
    return r - proj


def pose_cost(
    rot: np.ndarray, t: np.ndarray, ray_origins: np.ndarray, ray_directions: np.ndarray, world_points: np.ndarray
) -> float:
    """Sum of squared point-to-ray distances."""
    res = point_to_ray_residuals(rot, t, ray_origins, ray_directions, world_points)
    return float(np.sum(res * res))


@dataclass(frozen=True)
class PinholeCamera:
    """
    Central camera with intrinsics in pixels; rays start at the camera center.

    `dist_coeffs` follows the OpenCV layout (k1, k2, p1, p2[, k3, ...]); empty
    means an ideal pinhole.
    """

    fx: float
    fy: float
    cx: float
    cy: float
    dist_coeffs: tuple[float, ...] = field(default=())

    def ray_directions_cam(self, u_px: np.ndarray, v_px: np.ndarray) -> np.ndarray:
        if self.dist_coeffs:
            uv = np.stack([np.asarray(u_px, dtype=np.float64), np.asarray(v_px, dtype=np.float64)], axis=-1)
            shape = uv.shape[:-1]
            xy = cv2.undistortPoints(uv.reshape(-1, 1, 2), self.matrix(), self.dist_array()).reshape(-1, 2)
            return self.ray_directions_cam_from_norm(xy[:, 0], xy[:, 1]).reshape(shape + (3,))
        x = (np.asarray(u_px, dtype=np.float64) - self.cx) / float(self.fx)
        y = (np.asarray(v_px, dtype=np.float64) - self.cy) / float(self.fy)
        return self.ray_directions_cam_from_norm(x, y)

    def ray_directions_cam_from_norm(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        """
        Rays from normalized camera coordinates x=X/Z, y=Y/Z.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        dirs = np.stack([x, y, np.ones_like(x)], axis=-1)
        norms = np.linalg.norm(dirs, axis=-1, keepdims=True)
        return dirs / norms

    def project(self, P_cam: np.ndarray) -> np.ndarray:
        """Pixel coordinates (N,2) of camera-frame points."""
        P_cam = np.asarray(P_cam, dtype=np.float64).reshape(-1, 3)
        if self.dist_coeffs:
            zero = np.zeros(3, dtype=np.float64)
            uv, _jac = cv2.projectPoints(P_cam.reshape(-1, 1, 3), zero, zero, self.matrix(), self.dist_array())
            return uv.reshape(-1, 2)
        u = self.fx * P_cam[:, 0] / P_cam[:, 2] + self.cx
        v = self.fy * P_cam[:, 1] / P_cam[:, 2] + self.cy
        return np.stack([u, v], axis=-1)

    def matrix(self) -> np.ndarray:
        return np.array([[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]], dtype=np.float64)

    def dist_array(self) -> np.ndarray:
        return np.asarray(self.dist_coeffs, dtype=np.float64).reshape(-1)
