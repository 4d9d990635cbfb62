"""
Equirectangular <-> unit sphere mapping.

Output column x maps linearly to longitude, row y to latitude (row 0 is the
north pole, +Z). Pixel coordinates are used as given (no half-pixel shift).
"""

from __future__ import annotations

import numpy as np


def ray_of(x: np.ndarray, y: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Map output pixel coordinates to unit rays, shape (..., 3).

    The longitude term subtracts the full width, so longitudes span [-2pi, 0]
    for x in [0, width]. On the sphere this equals longitude 2pi*x/width.
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)

    xp = x - width
    yp = height / 2.0 - y

    longitude = 2.0 * np.pi * xp / width
    latitude = np.pi * yp / height  # [-pi/2, pi/2]

    cos_lat = np.cos(latitude)
    return np.stack([cos_lat * np.cos(longitude), cos_lat * np.sin(longitude), np.sin(latitude)], axis=-1)


def equirectangular_rays(width: int, height: int, row_start: int = 0, row_stop: int | None = None) -> np.ndarray:
    """Rays for a band of output rows, shape (rows, width, 3)."""
    if row_stop is None:
        row_stop = height
    yy, xx = np.meshgrid(
        np.arange(row_start, row_stop, dtype=np.float64),
        np.arange(width, dtype=np.float64),
        indexing="ij",
    )
    return ray_of(xx, yy, width, height)


def pixel_of(rays: np.ndarray, width: int, height: int) -> tuple[np.ndarray, np.ndarray]:
    """
    Forward mapping: unit rays -> output pixel coordinates (x, y).

    Inverse of `ray_of` with x wrapped into [0, width).
    """
    rays = np.asarray(rays, dtype=np.float64)
    longitude = np.arctan2(rays[..., 1], rays[..., 0])
    latitude = np.arcsin(np.clip(rays[..., 2], -1.0, 1.0))
    x = np.mod(width * longitude / (2.0 * np.pi), width)
    y = height / 2.0 - height * latitude / np.pi
    return x, y
