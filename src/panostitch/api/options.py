from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from panostitch.meta import ConfigError

PARALLEL_STRATEGIES = ("pixels", "views")


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


@dataclass(frozen=True)
class StitchOptions:
    """
    Knobs of the compositing run.

    - scale_factor: multiplies the heuristic canvas size
    - panorama_size: (width, height) override; (0, 0) means automatic
    - fisheye_masking: fade samples out near the fisheye image circle
    - fisheye_masking_margin: fraction of the circle radius treated as invalid
    - transition_size: width of the fade band in source pixels
    - workers: worker threads
    - parallel: "pixels" splits output rows between workers for each view,
      "views" gives each worker its own views and partial buffer
    """

    scale_factor: float = 0.2
    panorama_size: tuple[int, int] = (0, 0)
    fisheye_masking: bool = False
    fisheye_masking_margin: float = 0.05
    transition_size: float = 10.0
    workers: int = 1
    parallel: str = "pixels"

    def __post_init__(self) -> None:
        _require(self.scale_factor > 0.0, "scale_factor must be > 0")
        _require(
            isinstance(self.panorama_size, tuple) and len(self.panorama_size) == 2,
            "panorama_size must be (width, height)",
        )
        _require(all(int(s) >= 0 for s in self.panorama_size), "panorama_size values must be >= 0")
        _require(0.0 <= self.fisheye_masking_margin < 1.0, "fisheye_masking_margin must be in [0, 1)")
        # Checked even with masking disabled: the sigmoid divides by it.
        _require(self.transition_size > 0.0, "transition_size must be > 0")
        _require(self.workers >= 1, "workers must be >= 1")
        _require(self.parallel in PARALLEL_STRATEGIES, f"parallel must be one of {PARALLEL_STRATEGIES}")

    def replace(self, **overrides: Any) -> "StitchOptions":
        """Copy with the given fields replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "panorama_size" in changes:
            changes["panorama_size"] = tuple(int(s) for s in changes["panorama_size"])
        try:
            return dataclasses.replace(self, **changes)
        except TypeError as e:
            raise ConfigError(str(e)) from e


def parse_stitch_options(data: dict[str, Any]) -> StitchOptions:
    _require(isinstance(data, dict), "options must be an object")
    known = {f.name for f in dataclasses.fields(StitchOptions)}
    unknown = sorted(set(data) - known - {"schema_version"})
    _require(not unknown, f"unknown options: {unknown}")
    schema = data.get("schema_version", "panostitch.options.v0")
    _require(schema == "panostitch.options.v0", "schema_version must be panostitch.options.v0")

    kwargs: dict[str, Any] = {}
    try:
        if "scale_factor" in data:
            kwargs["scale_factor"] = float(data["scale_factor"])
        if "panorama_size" in data:
            size = data["panorama_size"]
            _require(isinstance(size, (list, tuple)) and len(size) == 2, "panorama_size must be [width, height]")
            kwargs["panorama_size"] = (int(size[0]), int(size[1]))
        if "fisheye_masking" in data:
            _require(isinstance(data["fisheye_masking"], bool), "fisheye_masking must be a boolean")
            kwargs["fisheye_masking"] = data["fisheye_masking"]
        if "fisheye_masking_margin" in data:
            kwargs["fisheye_masking_margin"] = float(data["fisheye_masking_margin"])
        if "transition_size" in data:
            kwargs["transition_size"] = float(data["transition_size"])
        if "workers" in data:
            kwargs["workers"] = int(data["workers"])
        if "parallel" in data:
            kwargs["parallel"] = str(data["parallel"])
    except (TypeError, ValueError) as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(f"invalid option value: {e}") from e
    return StitchOptions(**kwargs)


def load_stitch_options(path: Path) -> StitchOptions:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e
    return parse_stitch_options(data)
