from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class BrownDistortion:
    """
    Radial + tangential lens distortion for pinhole intrinsics.

    Acts on normalized camera coordinates (x=X/Z, y=Y/Z), OpenCV coefficient order:
      radial: k1, k2, k3
      tangential: p1, p2
    """

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    @property
    def is_identity(self) -> bool:
        return not any((self.k1, self.k2, self.p1, self.p2, self.k3))

    def _radial(self, r2: np.ndarray) -> np.ndarray:
        return 1.0 + r2 * (self.k1 + r2 * (self.k2 + r2 * self.k3))

    def _tangential(self, x: np.ndarray, y: np.ndarray, r2: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        dx = 2.0 * self.p1 * x * y + self.p2 * (r2 + 2.0 * x * x)
        dy = self.p1 * (r2 + 2.0 * y * y) + 2.0 * self.p2 * x * y
        return dx, dy

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if self.is_identity:
            return x, y
        r2 = x * x + y * y
        radial = self._radial(r2)
        dx, dy = self._tangential(x, y, r2)
        return x * radial + dx, y * radial + dy

    def undistort(self, xd: np.ndarray, yd: np.ndarray, iterations: int = 10) -> tuple[np.ndarray, np.ndarray]:
        """
        Fixed-point inverse of distort(); adequate for small/moderate distortion.
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        if self.is_identity:
            return xd, yd
        x = xd.copy()
        y = yd.copy()
        for _ in range(int(iterations)):
            r2 = x * x + y * y
            dx, dy = self._tangential(x, y, r2)
            radial = self._radial(r2)
            x = (xd - dx) / radial
            y = (yd - dy) / radial
        return x, y


@dataclass(frozen=True)
class FisheyeDistortion:
    """
    Equidistant fisheye polynomial on the incidence angle theta:

      theta_d = theta * (1 + k1 theta^2 + k2 theta^4 + k3 theta^6 + k4 theta^8)
    """

    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    k4: float = 0.0

    @property
    def is_identity(self) -> bool:
        return not any((self.k1, self.k2, self.k3, self.k4))

    def distort_theta(self, theta: np.ndarray) -> np.ndarray:
        theta = np.asarray(theta, dtype=np.float64)
        t2 = theta * theta
        return theta * (1.0 + t2 * (self.k1 + t2 * (self.k2 + t2 * (self.k3 + t2 * self.k4))))

    def undistort_theta(self, theta_d: np.ndarray, iterations: int = 10) -> np.ndarray:
        theta_d = np.asarray(theta_d, dtype=np.float64)
        if self.is_identity:
            return theta_d
        theta = theta_d.copy()
        for _ in range(int(iterations)):
            t2 = theta * theta
            deriv = 1.0 + t2 * (3.0 * self.k1 + t2 * (5.0 * self.k2 + t2 * (7.0 * self.k3 + t2 * 9.0 * self.k4)))
            theta = theta - (self.distort_theta(theta) - theta_d) / deriv
        return theta


def brown_from_dict(d: dict) -> BrownDistortion:
    return BrownDistortion(**{k: float(d.get(k, 0.0)) for k in ("k1", "k2", "p1", "p2", "k3")})


def brown_to_dict(m: BrownDistortion) -> dict:
    return {"k1": m.k1, "k2": m.k2, "p1": m.p1, "p2": m.p2, "k3": m.k3}


def fisheye_from_dict(d: dict) -> FisheyeDistortion:
    return FisheyeDistortion(**{k: float(d.get(k, 0.0)) for k in ("k1", "k2", "k3", "k4")})


def fisheye_to_dict(m: FisheyeDistortion) -> dict:
    return {"k1": m.k1, "k2": m.k2, "k3": m.k3, "k4": m.k4}
