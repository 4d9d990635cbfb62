from __future__ import annotations

import numpy as np

# Cells whose accumulated weight does not exceed this are left empty.
WEIGHT_EPSILON = 1e-4


class AccumulatorStateError(RuntimeError):
    pass


class PanoramaAccumulator:
    """
    Running (r, g, b, weight) sums for every output pixel.

    Colors are stored premultiplied by their weights until `normalize()`, which
    divides by the accumulated weight exactly once and keeps the weight in the
    alpha channel. Sums are kept in float64 so the result barely depends on the
    order in which views (or partial buffers) are added.
    """

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("accumulator width/height must be > 0")
        self._cells = np.zeros((int(height), int(width), 4), dtype=np.float64)
        self._normalized = False

    @property
    def width(self) -> int:
        return int(self._cells.shape[1])

    @property
    def height(self) -> int:
        return int(self._cells.shape[0])

    @property
    def normalized(self) -> bool:
        return self._normalized

    @property
    def weights(self) -> np.ndarray:
        """Read-only view of the accumulated weights, shape (H,W)."""
        w = self._cells[..., 3].view()
        w.flags.writeable = False
        return w

    def _check_open(self) -> None:
        if self._normalized:
            raise AccumulatorStateError("panorama is already normalized")

    def add(self, row_start: int, mask: np.ndarray, colors: np.ndarray, weights: np.ndarray) -> int:
        """
        Fold one view's samples into a band of rows.

        mask: (rows, W) bool, True where the view has a sample.
        colors: (N,3) and weights: (N,) for the True cells of `mask`, in
        row-major order. Samples with zero weight are skipped. Each cell must
        appear at most once per call; disjoint bands may be added from
        different threads. Returns the number of cells that received weight.
        """
        self._check_open()
        mask = np.asarray(mask, dtype=bool)
        if mask.ndim != 2 or mask.shape[1] != self.width or row_start < 0 or row_start + mask.shape[0] > self.height:
            raise ValueError("mask does not fit the panorama")
        colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
        weights = np.asarray(weights, dtype=np.float64).reshape(-1)
        ys, xs = np.nonzero(mask)
        if colors.shape[0] != ys.size or weights.shape[0] != ys.size:
            raise ValueError("colors/weights must match the number of masked cells")
        if not np.all(np.isfinite(weights)) or np.any(weights < 0.0):
            raise ValueError("weights must be finite and >= 0")

        keep = weights > 0.0
        ys = ys[keep] + int(row_start)
        xs = xs[keep]
        w = weights[keep]
        self._cells[ys, xs, :3] += colors[keep] * w[:, None]
        self._cells[ys, xs, 3] += w
        return int(w.size)

    def merge(self, other: "PanoramaAccumulator") -> None:
        """Cell-wise sum of another, not yet normalized, accumulator."""
        self._check_open()
        if other.normalized:
            raise AccumulatorStateError("cannot merge a normalized panorama")
        if other._cells.shape != self._cells.shape:
            raise ValueError("accumulators must have the same size")
        self._cells += other._cells

    def normalize(self) -> np.ndarray:
        """
        Divide colors by the accumulated weight, once.

        Returns an (H,W,4) float32 RGBA image whose alpha is the accumulated
        weight. Cells with weight <= WEIGHT_EPSILON come out as (0,0,0,0).
        """
        self._check_open()
        self._normalized = True

        w = self._cells[..., 3]
        filled = w > WEIGHT_EPSILON
        self._cells[filled, :3] /= w[filled][:, None]
        self._cells[~filled] = 0.0
        return self._cells.astype(np.float32)
