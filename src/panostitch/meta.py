from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from panostitch.core.geometry import CameraPose, Intrinsic, intrinsic_from_dict, pose_from_dict

SCHEMA_VERSION = "panostitch.dataset.v0"

# EXIF orientation codes -> tags.
EXIF_ORIENTATIONS = {
    1: "normal",
    2: "reversed",
    3: "upside_down",
    4: "upside_down_reversed",
    5: "left_reversed",
    6: "right",
    7: "right_reversed",
    8: "left",
}
ORIENTATIONS = frozenset(EXIF_ORIENTATIONS.values()) | {"unknown"}
# Portrait-style orientations: the stored width is the displayed height.
ROTATED_ORIENTATIONS = frozenset({"right", "left", "right_reversed", "left_reversed"})


class DatasetError(ValueError):
    pass


class NoValidViewsError(DatasetError):
    pass


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class View:
    view_id: int
    path: Path
    width: int
    height: int
    orientation: str = "normal"
    intrinsic_id: int | None = None
    pose_id: int | None = None

    @property
    def is_rotated(self) -> bool:
        return self.orientation in ROTATED_ORIENTATIONS


@dataclass(frozen=True)
class Scene:
    """Views of a nodal-point capture together with the poses and intrinsics they reference."""

    views: tuple[View, ...]
    intrinsics: dict[int, Intrinsic]
    poses: dict[int, CameraPose]

    def is_valid(self, view: View) -> bool:
        """Both pose and intrinsic are defined for the view."""
        return view.pose_id in self.poses and view.intrinsic_id in self.intrinsics

    def valid_views(self) -> list[View]:
        return [v for v in self.views if self.is_valid(v)]

    def pose_of(self, view: View) -> CameraPose:
        if view.pose_id not in self.poses:
            raise DatasetError(f"view {view.view_id} has no pose")
        return self.poses[view.pose_id]

    def intrinsic_of(self, view: View) -> Intrinsic:
        if view.intrinsic_id not in self.intrinsics:
            raise DatasetError(f"view {view.view_id} has no intrinsic")
        return self.intrinsics[view.intrinsic_id]


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise DatasetError(msg)


def parse_orientation(raw: Any) -> str:
    if raw is None:
        return "normal"
    if isinstance(raw, bool):
        raise DatasetError("orientation must be an EXIF code or a tag")
    if isinstance(raw, int):
        return EXIF_ORIENTATIONS.get(raw, "unknown")
    tag = str(raw).strip().lower()
    _require(tag in ORIENTATIONS, f"unknown orientation: {raw!r}")
    return tag


def _optional_id(raw: Any) -> int | None:
    return None if raw is None else int(raw)


def parse_view(data: dict[str, Any], base_dir: Path | None = None) -> View:
    _require(isinstance(data, dict), "view must be an object")
    _require("id" in data, "view.id is required")
    _require("path" in data, f"view {data['id']}: path is required")
    _require("width" in data and "height" in data, f"view {data['id']}: width and height are required")

    w = int(data["width"])
    h = int(data["height"])
    _require(w > 0 and h > 0, f"view {data['id']}: width and height must be > 0")

    path = Path(str(data["path"]))
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path

    return View(
        view_id=int(data["id"]),
        path=path,
        width=w,
        height=h,
        orientation=parse_orientation(data.get("orientation")),
        intrinsic_id=_optional_id(data.get("intrinsic_id")),
        pose_id=_optional_id(data.get("pose_id")),
    )


def parse_scene(data: dict[str, Any], base_dir: Path | None = None) -> Scene:
    _require(isinstance(data, dict), "dataset must be an object")
    _require(data.get("schema_version") == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    intrinsics: dict[int, Intrinsic] = {}
    for item in data.get("intrinsics", []):
        _require(isinstance(item, dict) and "id" in item, "intrinsic.id is required")
        iid = int(item["id"])
        _require(iid not in intrinsics, f"duplicate intrinsic id {iid}")
        try:
            intrinsics[iid] = intrinsic_from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise DatasetError(f"intrinsic {iid}: {e}") from e

    poses: dict[int, CameraPose] = {}
    for item in data.get("poses", []):
        _require(isinstance(item, dict) and "id" in item, "pose.id is required")
        pid = int(item["id"])
        _require(pid not in poses, f"duplicate pose id {pid}")
        try:
            poses[pid] = pose_from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise DatasetError(f"pose {pid}: {e}") from e

    views = tuple(parse_view(item, base_dir) for item in data.get("views", []))
    ids = [v.view_id for v in views]
    _require(len(set(ids)) == len(ids), "view ids must be unique")

    return Scene(views=views, intrinsics=intrinsics, poses=poses)
