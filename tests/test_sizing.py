from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from panostitch.core.geometry import CameraPose, PinholeIntrinsic
from panostitch.core.sizing import estimate_panorama_size
from panostitch.meta import ConfigError, DatasetError, NoValidViewsError, Scene, View


def _scene(*views: View) -> Scene:
    intr = PinholeIntrinsic(width=1000, height=500, focal_px=500.0, cx_px=500.0, cy_px=250.0)
    return Scene(views=tuple(views), intrinsics={0: intr}, poses={0: CameraPose.from_rotation(np.eye(3))})


def _view(view_id: int, w: int, h: int, orientation: str = "normal", pose_id: int | None = 0) -> View:
    return View(view_id, Path(f"{view_id}.png"), w, h, orientation, intrinsic_id=0, pose_id=pose_id)


def test_single_normal_view():
    assert estimate_panorama_size(_scene(_view(0, 1000, 500)), scale_factor=0.2) == (200, 100)


def test_rotated_views_swap_dimensions():
    scene = _scene(_view(0, 1000, 500), _view(1, 1000, 500, "right"), _view(2, 800, 600, "left_reversed"))
    # width: 1000 + 500 + 600, height: max(500, 1000, 800)
    assert estimate_panorama_size(scene, scale_factor=1.0) == (2100, 1000)


def test_invalid_views_are_ignored():
    scene = _scene(_view(0, 1000, 500), _view(1, 4000, 3000, pose_id=None))
    assert estimate_panorama_size(scene, scale_factor=0.5) == (500, 250)


def test_scale_truncates():
    assert estimate_panorama_size(_scene(_view(0, 999, 333)), scale_factor=0.1) == (99, 33)


def test_override_bypasses_heuristic():
    scene = _scene(_view(0, 1000, 500))
    assert estimate_panorama_size(scene, scale_factor=0.2, panorama_size=(4096, 2048)) == (4096, 2048)


def test_partial_override_falls_back_to_heuristic():
    scene = _scene(_view(0, 1000, 500))
    assert estimate_panorama_size(scene, scale_factor=0.2, panorama_size=(0, 300)) == (200, 100)
    assert estimate_panorama_size(scene, scale_factor=0.2, panorama_size=(640, 0)) == (200, 100)


def test_non_positive_scale_is_a_config_error():
    scene = _scene(_view(0, 1000, 500))
    for scale in (0.0, -0.5):
        with pytest.raises(ConfigError):
            estimate_panorama_size(scene, scale_factor=scale)


def test_no_valid_views_is_fatal():
    with pytest.raises(NoValidViewsError):
        estimate_panorama_size(_scene(_view(0, 1000, 500, pose_id=None)), scale_factor=0.2)
    with pytest.raises(NoValidViewsError):
        estimate_panorama_size(_scene(), panorama_size=(100, 50))


def test_degenerate_size_is_rejected():
    with pytest.raises(DatasetError):
        estimate_panorama_size(_scene(_view(0, 4, 2)), scale_factor=0.2)
