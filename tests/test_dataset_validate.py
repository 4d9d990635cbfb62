from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from panostitch.api.dataset_io import load_scene
from panostitch.meta import DatasetError, NoValidViewsError
from panostitch.sim.dataset_validate import validate_dataset
from panostitch.sim.rig import generate_rig_dataset, ring_poses


def _edit(dataset: Path, fn) -> None:
    data = json.loads(dataset.read_text(encoding="utf-8"))
    fn(data)
    dataset.write_text(json.dumps(data, indent=2), encoding="utf-8")


def test_generated_dataset_is_valid(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=3, width=32, height=24, unposed_views=2)
    scene = validate_dataset(dataset)
    assert len(scene.views) == 5
    assert [v.view_id for v in scene.valid_views()] == [0, 1, 2]


def test_dataset_paths_are_relative(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=2, width=32, height=24, image_format="png")
    data = json.loads(dataset.read_text(encoding="utf-8"))
    assert data["views"][0]["path"] == "images/view_000.png"
    # Moving the whole directory keeps it loadable.
    moved = (tmp_path / "ds").rename(tmp_path / "moved")
    scene = load_scene(moved / "dataset.json")
    assert scene.views[0].path == moved / "images" / "view_000.png"
    assert np.allclose(scene.poses[1].rotation, ring_poses(2)[1].rotation)


def test_missing_image(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=2, width=32, height=24)
    (tmp_path / "ds" / "images" / "view_001.npy").unlink()
    with pytest.raises(FileNotFoundError):
        validate_dataset(dataset)
    validate_dataset(dataset, check_images=False)


def test_image_size_mismatch(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=2, width=32, height=24)
    np.save(tmp_path / "ds" / "images" / "view_000.npy", np.zeros((10, 10, 3), dtype=np.float32))
    with pytest.raises(DatasetError):
        validate_dataset(dataset)


def test_view_intrinsic_size_mismatch(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=2, width=32, height=24)

    def shrink(data):
        data["views"][0]["width"] = 16

    _edit(dataset, shrink)
    with pytest.raises(DatasetError):
        validate_dataset(dataset, check_images=False)


def test_no_posed_views(tmp_path: Path) -> None:
    dataset = generate_rig_dataset(tmp_path / "ds", cameras=2, width=32, height=24)

    def drop_poses(data):
        data["poses"] = []

    _edit(dataset, drop_poses)
    with pytest.raises(NoValidViewsError):
        validate_dataset(dataset)


def test_invalid_json(tmp_path: Path) -> None:
    p = tmp_path / "dataset.json"
    p.write_text("{", encoding="utf-8")
    with pytest.raises(DatasetError):
        validate_dataset(p)
    with pytest.raises(FileNotFoundError):
        validate_dataset(tmp_path / "missing.json")
