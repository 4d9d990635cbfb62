from __future__ import annotations

import numpy as np

from panostitch.core.geometry import CameraPose, PinholeIntrinsic
from panostitch.core.visibility import project_rays


class _RecordingIntrinsic:
    """Wraps an intrinsic and keeps every batch of points it was asked to project."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.calls: list[np.ndarray] = []

    def project(self, pose, points, apply_distortion=True):
        self.calls.append(np.array(points, copy=True))
        return self.inner.project(pose, points, apply_distortion)


def _camera(w: int = 100, h: int = 80):
    pose = CameraPose.from_rotation(np.eye(3))  # looks along +Z
    intr = PinholeIntrinsic(width=w, height=h, focal_px=50.0, cx_px=w / 2.0, cy_px=h / 2.0)
    return pose, intr


def test_ray_behind_camera_never_projected():
    pose, intr = _camera()
    spy = _RecordingIntrinsic(intr)
    uv, mask = project_rays(pose, spy, np.array([[0.0, 0.0, -1.0]]), 100, 80)
    assert not mask.any()
    assert np.all(np.isnan(uv))
    assert spy.calls == []


def test_only_front_rays_reach_the_projection():
    pose, intr = _camera()
    spy = _RecordingIntrinsic(intr)
    rays = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, -1.0], [0.1, 0.0, 0.995], [0.0, 0.6, -0.8]])
    uv, mask = project_rays(pose, spy, rays, 100, 80)
    assert mask.tolist() == [True, False, True, False]
    assert len(spy.calls) == 1
    assert np.all(pose.depth(spy.calls[0]) >= 0.0)
    assert np.allclose(uv[0], [50.0, 40.0])


def test_out_of_bounds_is_no_contribution():
    pose, intr = _camera()
    # 60 degrees off-axis lands at 50 + 50*tan(60deg) ~ 136.6 > width.
    ray = np.array([[np.sin(np.pi / 3.0), 0.0, np.cos(np.pi / 3.0)]])
    uv, mask = project_rays(pose, intr, ray, 100, 80)
    assert not mask[0]


def test_bounds_are_half_open():
    pose = CameraPose.from_rotation(np.eye(3))
    intr = PinholeIntrinsic(width=10, height=10, focal_px=1.0, cx_px=0.0, cy_px=0.0)
    # Project exactly onto u=0 (inside) and u=10 (outside).
    rays = np.array([[0.0, 0.0, 1.0], [10.0, 0.0, 1.0]])
    _uv, mask = project_rays(pose, intr, rays, 10, 10)
    assert mask.tolist() == [True, False]
