from __future__ import annotations

import math
from pathlib import Path
from typing import Callable

import numpy as np

from panostitch.api.dataset_io import save_scene
from panostitch.core.distortion import BrownDistortion, FisheyeDistortion
from panostitch.core.geometry import CameraPose, FisheyeIntrinsic, Intrinsic, PinholeIntrinsic
from panostitch.core.image_io import save_linear_rgb
from panostitch.core.spherical import pixel_of
from panostitch.meta import Scene, View

Environment = Callable[[np.ndarray], np.ndarray]


def gradient_environment(rays: np.ndarray) -> np.ndarray:
    """Smooth color field on the sphere: each channel follows one ray axis."""
    rays = np.asarray(rays, dtype=np.float64)
    return 0.5 + 0.5 * rays


def checker_environment(rays: np.ndarray, cells: int = 12) -> np.ndarray:
    """Longitude/latitude checkerboard over the gradient, handy for eyeballing seams."""
    rays = np.asarray(rays, dtype=np.float64)
    # One checker cell per pixel of a cells x cells/2 equirectangular grid.
    x, y = pixel_of(rays, cells, cells // 2)
    parity = (np.floor(x) + np.floor(y)) % 2.0
    return gradient_environment(rays) * (0.6 + 0.4 * parity[..., None])


ENVIRONMENTS: dict[str, Environment] = {"gradient": gradient_environment, "checker": checker_environment}


def make_intrinsic(
    model: str,
    width: int,
    height: int,
    fov_deg: float,
    distort_strength: float = 0.0,
    rng: np.random.Generator | None = None,
) -> Intrinsic:
    """
    Intrinsic with a horizontal field of view `fov_deg` (pinhole) or an image
    circle inscribed in the frame covering `fov_deg` (fisheye).
    """
    if not 0.0 < fov_deg < (180.0 if model == "pinhole" else 360.0):
        raise ValueError("fov_deg out of range for the camera model")
    rng = rng or np.random.default_rng(0)
    half = math.radians(fov_deg) / 2.0
    cx, cy = width / 2.0, height / 2.0
    if model == "pinhole":
        focal = (width / 2.0) / math.tan(half)
        dist = BrownDistortion()
        if distort_strength > 0.0:
            k = distort_strength * rng.uniform(-1.0, 1.0, size=2)
            dist = BrownDistortion(k1=float(0.1 * k[0]), k2=float(0.02 * k[1]))
        return PinholeIntrinsic(width=width, height=height, focal_px=focal, cx_px=cx, cy_px=cy, distortion=dist)
    if model == "fisheye":
        focal = (min(width, height) / 2.0) / half
        dist = FisheyeDistortion()
        if distort_strength > 0.0:
            k = distort_strength * rng.uniform(-1.0, 1.0, size=2)
            dist = FisheyeDistortion(k1=float(0.02 * k[0]), k2=float(0.005 * k[1]))
        return FisheyeIntrinsic(width=width, height=height, focal_px=focal, cx_px=cx, cy_px=cy, distortion=dist)
    raise ValueError("model must be pinhole|fisheye")


def ring_poses(cameras: int, pitch_deg: float = 0.0, yaw_offset_deg: float = 0.0) -> list[CameraPose]:
    """Cameras sharing the origin, evenly spread in yaw."""
    if cameras < 1:
        raise ValueError("cameras must be >= 1")
    step = 360.0 / cameras
    return [CameraPose.looking_at(yaw_offset_deg + k * step, pitch_deg) for k in range(cameras)]


def render_view(
    pose: CameraPose,
    intrinsic: Intrinsic,
    environment: Environment = gradient_environment,
    fov_deg: float | None = None,
) -> np.ndarray:
    """
    Render what a camera at the nodal point sees of `environment`, (H,W,3) linear.

    For fisheye intrinsics, pixels beyond the `fov_deg` image circle are black,
    like the dead border of a real fisheye frame.
    """
    h, w = int(intrinsic.height), int(intrinsic.width)
    vv, uu = np.meshgrid(np.arange(h, dtype=np.float64), np.arange(w, dtype=np.float64), indexing="ij")
    d_cam = intrinsic.unproject(uu.reshape(-1), vv.reshape(-1))
    rgb = environment(pose.directions_to_world(d_cam))
    if isinstance(intrinsic, FisheyeIntrinsic) and fov_deg is not None:
        outside = np.arccos(np.clip(d_cam[:, 2], -1.0, 1.0)) > math.radians(fov_deg) / 2.0
        rgb[outside] = 0.0
    return rgb.reshape(h, w, 3).astype(np.float32)


def generate_rig_dataset(
    out_root: Path,
    cameras: int = 6,
    width: int = 160,
    height: int = 120,
    model: str = "pinhole",
    fov_deg: float = 90.0,
    pitch_deg: float = 0.0,
    orientation: str = "normal",
    environment: str = "gradient",
    image_format: str = "npy",
    distort_strength: float = 0.0,
    unposed_views: int = 0,
    seed: int = 0,
) -> Path:
    """
    Write a synthetic nodal-point capture: one image per camera plus dataset.json.

    `unposed_views` extra images are listed without a pose, as a dataset
    would after a partial pose estimation. Returns the dataset.json path.
    """
    if environment not in ENVIRONMENTS:
        raise ValueError(f"environment must be one of {sorted(ENVIRONMENTS)}")
    if image_format not in ("npy", "png"):
        raise ValueError("image_format must be npy|png")
    rng = np.random.default_rng(seed)
    out_root = Path(out_root)
    images_dir = out_root / "images"
    images_dir.mkdir(parents=True, exist_ok=True)

    intrinsic = make_intrinsic(model, width, height, fov_deg, distort_strength, rng)
    poses = ring_poses(cameras, pitch_deg=pitch_deg)
    env = ENVIRONMENTS[environment]

    views: list[View] = []
    for k, pose in enumerate(poses):
        path = images_dir / f"view_{k:03d}.{image_format}"
        save_linear_rgb(path, render_view(pose, intrinsic, env, fov_deg))
        views.append(View(view_id=k, path=path, width=width, height=height, orientation=orientation, intrinsic_id=0, pose_id=k))

    for j in range(unposed_views):
        k = cameras + j
        path = images_dir / f"view_{k:03d}.{image_format}"
        save_linear_rgb(path, np.zeros((height, width, 3), dtype=np.float32))
        views.append(View(view_id=k, path=path, width=width, height=height, orientation=orientation, intrinsic_id=0, pose_id=None))

    scene = Scene(views=tuple(views), intrinsics={0: intrinsic}, poses=dict(enumerate(poses)))
    return save_scene(out_root / "dataset.json", scene)
