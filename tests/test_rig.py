from __future__ import annotations

import numpy as np

from panostitch.core.spherical import ray_of
from panostitch.sim.rig import checker_environment, gradient_environment


def test_checker_cells_alternate_along_longitude_and_latitude():
    cells = 12
    x = np.arange(cells) + 0.5
    for row in (1, 2, 3):
        rays = ray_of(x, np.full(cells, row + 0.5), cells, cells // 2)
        ratio = checker_environment(rays, cells) / gradient_environment(rays)
        expected = 0.6 + 0.4 * ((np.arange(cells) + row) % 2)
        assert np.allclose(ratio, expected[:, None])
