from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

import numpy as np

from panostitch.core.distortion import (
    BrownDistortion,
    FisheyeDistortion,
    brown_from_dict,
    brown_to_dict,
    fisheye_from_dict,
    fisheye_to_dict,
)


class PoseLike(Protocol):
    def depth(self, points: np.ndarray) -> np.ndarray: ...


class IntrinsicLike(Protocol):
    def project(self, pose: Any, points: np.ndarray, apply_distortion: bool = True) -> np.ndarray: ...


def _as_points(points: np.ndarray) -> np.ndarray:
    return np.asarray(points, dtype=np.float64).reshape(-1, 3)


@dataclass(frozen=True)
class CameraPose:
    """
    Rigid placement of a camera in the shared world frame.

    Convention: X_cam = R (X_world - C), camera axes x right, y down, z forward.
    World up is +Z.
    """

    rotation: np.ndarray  # (3,3), world -> camera
    center: np.ndarray = field(default_factory=lambda: np.zeros((3,), dtype=np.float64))  # (3,)

    @classmethod
    def from_rotation(cls, rotation: np.ndarray, center: np.ndarray | None = None, atol: float = 1e-6) -> "CameraPose":
        R = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
        if not np.all(np.isfinite(R)):
            raise ValueError("rotation has non-finite values")
        if np.max(np.abs(R @ R.T - np.eye(3))) > atol or abs(np.linalg.det(R) - 1.0) > atol:
            raise ValueError("rotation must be orthonormal with det=+1")
        C = np.zeros((3,), dtype=np.float64) if center is None else np.asarray(center, dtype=np.float64).reshape(3)
        return cls(rotation=R, center=C)

    @classmethod
    def looking_at(cls, yaw_deg: float, pitch_deg: float = 0.0, roll_deg: float = 0.0) -> "CameraPose":
        """
        Camera at the origin whose optical axis points at (yaw, pitch) on the sphere.

        yaw is measured in the XY plane from +X towards +Y, pitch towards +Z.
        """
        yaw = math.radians(yaw_deg)
        pitch = math.radians(pitch_deg)
        roll = math.radians(roll_deg)
        forward = np.array(
            [math.cos(pitch) * math.cos(yaw), math.cos(pitch) * math.sin(yaw), math.sin(pitch)],
            dtype=np.float64,
        )
        up = np.array([0.0, 0.0, 1.0]) if abs(forward[2]) < 0.999999 else np.array([1.0, 0.0, 0.0])
        right = np.cross(forward, up)
        right /= np.linalg.norm(right)
        down = np.cross(forward, right)
        if roll != 0.0:
            right, down = (
                math.cos(roll) * right + math.sin(roll) * down,
                -math.sin(roll) * right + math.cos(roll) * down,
            )
        return cls.from_rotation(np.stack([right, down, forward], axis=0))

    def transform(self, points: np.ndarray) -> np.ndarray:
        """World points (N,3) -> camera frame (N,3)."""
        return (_as_points(points) - self.center) @ self.rotation.T

    def depth(self, points: np.ndarray) -> np.ndarray:
        """Signed depth along the optical axis; negative means behind the camera."""
        return self.transform(points)[:, 2]

    def directions_to_world(self, d_cam: np.ndarray) -> np.ndarray:
        return _as_points(d_cam) @ self.rotation


@dataclass(frozen=True)
class PinholeIntrinsic:
    width: int
    height: int
    focal_px: float
    cx_px: float
    cy_px: float
    distortion: BrownDistortion = field(default_factory=BrownDistortion)

    def project(self, pose: CameraPose, points: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        """
        Backward projection of world points into pixel coordinates (N,2).

        No bounds check: coordinates outside the image are a valid answer.
        """
        X = pose.transform(points)
        with np.errstate(divide="ignore", invalid="ignore"):
            x = X[:, 0] / X[:, 2]
            y = X[:, 1] / X[:, 2]
        if apply_distortion:
            x, y = self.distortion.distort(x, y)
        return np.stack([self.focal_px * x + self.cx_px, self.focal_px * y + self.cy_px], axis=-1)

    def unproject(self, u_px: np.ndarray, v_px: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        """Pixel coordinates -> unit ray directions in the camera frame (N,3)."""
        x = (np.asarray(u_px, dtype=np.float64).reshape(-1) - self.cx_px) / self.focal_px
        y = (np.asarray(v_px, dtype=np.float64).reshape(-1) - self.cy_px) / self.focal_px
        if apply_distortion:
            x, y = self.distortion.undistort(x, y)
        d = np.stack([x, y, np.ones_like(x)], axis=-1)
        return d / np.linalg.norm(d, axis=-1, keepdims=True)


@dataclass(frozen=True)
class FisheyeIntrinsic:
    """
    Equidistant fisheye: the image radius grows linearly with the incidence angle
    (r = f * theta_d), so fields of view close to 180 degrees stay representable.
    """

    width: int
    height: int
    focal_px: float
    cx_px: float
    cy_px: float
    distortion: FisheyeDistortion = field(default_factory=FisheyeDistortion)

    def project(self, pose: CameraPose, points: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        X = pose.transform(points)
        r = np.hypot(X[:, 0], X[:, 1])
        theta = np.arctan2(r, X[:, 2])
        theta_d = self.distortion.distort_theta(theta) if apply_distortion else theta
        with np.errstate(divide="ignore", invalid="ignore"):
            # Near the optical axis theta_d / r tends to 1/Z.
            scale = np.where(r > 1e-12, theta_d / np.maximum(r, 1e-12), 1.0 / X[:, 2])
        return np.stack(
            [self.cx_px + self.focal_px * scale * X[:, 0], self.cy_px + self.focal_px * scale * X[:, 1]],
            axis=-1,
        )

    def unproject(self, u_px: np.ndarray, v_px: np.ndarray, apply_distortion: bool = True) -> np.ndarray:
        dx = (np.asarray(u_px, dtype=np.float64).reshape(-1) - self.cx_px) / self.focal_px
        dy = (np.asarray(v_px, dtype=np.float64).reshape(-1) - self.cy_px) / self.focal_px
        theta_d = np.hypot(dx, dy)
        theta = self.distortion.undistort_theta(theta_d) if apply_distortion else theta_d
        phi = np.arctan2(dy, dx)
        s = np.sin(theta)
        return np.stack([s * np.cos(phi), s * np.sin(phi), np.cos(theta)], axis=-1)


Intrinsic = Union[PinholeIntrinsic, FisheyeIntrinsic]


def pose_from_dict(d: dict) -> CameraPose:
    """
    Accepts exactly one of:
      rotation: 3x3 world->camera matrix
      rotvec: rotation vector (radians)
      euler_deg: {"seq": "xyz", "angles": [a, b, c]}
    """
    keys = [k for k in ("rotation", "rotvec", "euler_deg") if k in d]
    if len(keys) != 1:
        raise ValueError("pose needs exactly one of rotation|rotvec|euler_deg")
    center = d.get("center")

    if keys[0] == "rotation":
        R = np.asarray(d["rotation"], dtype=np.float64)
        if R.shape != (3, 3):
            raise ValueError("pose.rotation must be 3x3")
        return CameraPose.from_rotation(R, center)

    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    if keys[0] == "rotvec":
        rotvec = np.asarray(d["rotvec"], dtype=np.float64)
        if rotvec.shape != (3,):
            raise ValueError("pose.rotvec must have 3 values")
        return CameraPose.from_rotation(Rot.from_rotvec(rotvec).as_matrix(), center)

    euler = d["euler_deg"]
    if not isinstance(euler, dict) or "angles" not in euler:
        raise ValueError("pose.euler_deg must be {seq, angles}")
    seq = str(euler.get("seq", "xyz"))
    angles = np.asarray(euler["angles"], dtype=np.float64).reshape(-1)
    if angles.shape != (len(seq),):
        raise ValueError("pose.euler_deg.angles must match seq length")
    return CameraPose.from_rotation(Rot.from_euler(seq, angles, degrees=True).as_matrix(), center)


def pose_to_dict(pose: CameraPose) -> dict:
    return {
        "rotation": np.asarray(pose.rotation, dtype=np.float64).tolist(),
        "center": np.asarray(pose.center, dtype=np.float64).reshape(3).tolist(),
    }


def intrinsic_from_dict(d: dict) -> Intrinsic:
    kind = str(d.get("type", "pinhole"))
    w = int(d["width"])
    h = int(d["height"])
    if w <= 0 or h <= 0:
        raise ValueError("intrinsic width/height must be > 0")
    focal = float(d["focal_px"])
    if not focal > 0.0:
        raise ValueError("intrinsic focal_px must be > 0")
    pp = d.get("principal_point_px", [w / 2.0, h / 2.0])
    if not isinstance(pp, (list, tuple)) or len(pp) != 2:
        raise ValueError("intrinsic principal_point_px must be [cx,cy]")
    cx, cy = float(pp[0]), float(pp[1])
    dist = d.get("distortion", {}) or {}

    if kind == "pinhole":
        return PinholeIntrinsic(width=w, height=h, focal_px=focal, cx_px=cx, cy_px=cy, distortion=brown_from_dict(dist))
    if kind == "fisheye":
        return FisheyeIntrinsic(width=w, height=h, focal_px=focal, cx_px=cx, cy_px=cy, distortion=fisheye_from_dict(dist))
    raise ValueError(f"unsupported intrinsic type: {kind}")


def intrinsic_to_dict(intrinsic: Intrinsic) -> dict:
    if isinstance(intrinsic, FisheyeIntrinsic):
        kind, dist = "fisheye", fisheye_to_dict(intrinsic.distortion)
    else:
        kind, dist = "pinhole", brown_to_dict(intrinsic.distortion)
    return {
        "type": kind,
        "width": int(intrinsic.width),
        "height": int(intrinsic.height),
        "focal_px": float(intrinsic.focal_px),
        "principal_point_px": [float(intrinsic.cx_px), float(intrinsic.cy_px)],
        "distortion": dist,
    }
