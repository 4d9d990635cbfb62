from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.special import expit


def sigmoid(x: np.ndarray, width: float, mid: float) -> np.ndarray:
    """
    Decreasing logistic step: 1 / (1 + exp(10 (x - mid) / width)).

    Equals 0.5 at x == mid; `width` sets how wide the falloff band is.
    """
    if not width > 0.0:
        raise ValueError("sigmoid width must be > 0")
    return expit(-10.0 * (np.asarray(x, dtype=np.float64) - mid) / width)


@dataclass(frozen=True)
class FisheyeVignette:
    """
    Fades out samples towards the border of a fisheye image circle.

    The circle is inscribed in the image, shrunk by `margin` (fraction of the
    radius). Samples beyond it get weight 0; inside, the weight follows a
    sigmoid centered `transition_size / 2` pixels inside the circle.
    """

    margin: float = 0.05
    transition_size: float = 10.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.margin < 1.0:
            raise ValueError("fisheye margin must be in [0, 1)")
        if not self.transition_size > 0.0:
            raise ValueError("transition_size must be > 0")

    def max_radius(self, width: int, height: int) -> float:
        return 0.5 * min(width, height) * (1.0 - self.margin)

    def blur_mid(self, width: int, height: int) -> float:
        return self.max_radius(width, height) - self.transition_size / 2.0

    def weights(self, uv_px: np.ndarray, width: int, height: int) -> np.ndarray:
        uv_px = np.asarray(uv_px, dtype=np.float64).reshape(-1, 2)
        dist = np.hypot(uv_px[:, 0] - width / 2.0, uv_px[:, 1] - height / 2.0)
        w = sigmoid(dist, self.transition_size, self.blur_mid(width, height))
        w[dist > self.max_radius(width, height)] = 0.0
        return w


def uniform_weights(uv_px: np.ndarray) -> np.ndarray:
    return np.ones((np.asarray(uv_px).reshape(-1, 2).shape[0],), dtype=np.float64)
