from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from panostitch.core.geometry import intrinsic_to_dict, pose_to_dict
from panostitch.meta import SCHEMA_VERSION, DatasetError, Scene, View, parse_scene


def _view_path(view: View, base_dir: Path) -> str:
    try:
        return view.path.resolve().relative_to(base_dir.resolve()).as_posix()
    except ValueError:
        return str(view.path)


def scene_to_dict(scene: Scene, base_dir: Path) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "intrinsics": [{"id": int(i), **intrinsic_to_dict(m)} for i, m in sorted(scene.intrinsics.items())],
        "poses": [{"id": int(i), **pose_to_dict(p)} for i, p in sorted(scene.poses.items())],
        "views": [
            {
                "id": int(v.view_id),
                "path": _view_path(v, base_dir),
                "width": int(v.width),
                "height": int(v.height),
                "orientation": v.orientation,
                "intrinsic_id": v.intrinsic_id,
                "pose_id": v.pose_id,
            }
            for v in scene.views
        ],
    }


def save_scene(path: Path, scene: Scene) -> Path:
    """
    Save a scene as a single JSON file. View paths inside the file's directory
    are stored relative to it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = scene_to_dict(scene, path.parent)
    path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_scene(path: Path) -> Scene:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise DatasetError(f"{path} is not valid JSON: {e}") from e
    return parse_scene(data, base_dir=path.parent)
