from __future__ import annotations

import numpy as np


def bilinear_sample(image: np.ndarray, y: np.ndarray, x: np.ndarray) -> np.ndarray:
    """
    Bilinear interpolation of an (H,W) or (H,W,C) image at continuous (y, x).

    Coordinates are clamped to the border, so the 2x2 footprint of a point in
    [W-1, W) reuses the last column. Returns (N,C) float64 ((N,) for 2D images).
    """
    image = np.asarray(image)
    h, w = image.shape[:2]
    x = np.clip(np.asarray(x, dtype=np.float64).reshape(-1), 0.0, w - 1)
    y = np.clip(np.asarray(y, dtype=np.float64).reshape(-1), 0.0, h - 1)

    x0 = np.floor(x).astype(np.intp)
    y0 = np.floor(y).astype(np.intp)
    x1 = np.minimum(x0 + 1, w - 1)
    y1 = np.minimum(y0 + 1, h - 1)
    fx = x - x0
    fy = y - y0

    if image.ndim == 3:
        fx = fx[:, None]
        fy = fy[:, None]

    top = image[y0, x0] * (1.0 - fx) + image[y0, x1] * fx
    bottom = image[y1, x0] * (1.0 - fx) + image[y1, x1] * fx
    return (top * (1.0 - fy) + bottom * fy).astype(np.float64)
