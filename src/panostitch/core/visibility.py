from __future__ import annotations

import numpy as np

from panostitch.core.geometry import IntrinsicLike, PoseLike


def project_rays(
    pose: PoseLike,
    intrinsic: IntrinsicLike,
    rays: np.ndarray,
    width: int,
    height: int,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Find where each ray lands in a source image of size (width, height).

    Returns (uv_px, mask): uv_px is (N,2) with NaN for rays that do not
    contribute, mask is (N,) True where the ray is in front of the camera and
    lands inside [0,width) x [0,height). Rays behind the camera are never
    handed to the intrinsic projection.
    """
    rays = np.asarray(rays, dtype=np.float64).reshape(-1, 3)
    n = rays.shape[0]
    uv = np.full((n, 2), np.nan, dtype=np.float64)
    mask = np.zeros((n,), dtype=bool)

    front = np.flatnonzero(np.asarray(pose.depth(rays)) >= 0.0)
    if front.size == 0:
        return uv, mask

    pix = np.asarray(intrinsic.project(pose, rays[front], True), dtype=np.float64).reshape(-1, 2)
    u = pix[:, 0]
    v = pix[:, 1]
    with np.errstate(invalid="ignore"):
        inside = (u >= 0.0) & (u < width) & (v >= 0.0) & (v < height)

    hit = front[inside]
    uv[hit] = pix[inside]
    mask[hit] = True
    return uv, mask
