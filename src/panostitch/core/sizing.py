from __future__ import annotations

import logging

from panostitch.meta import ConfigError, DatasetError, NoValidViewsError, Scene

logger = logging.getLogger(__name__)


def estimate_panorama_size(
    scene: Scene,
    scale_factor: float = 0.2,
    panorama_size: tuple[int, int] = (0, 0),
) -> tuple[int, int]:
    """
    Output (width, height) of the equirectangular canvas.

    An override with both dimensions set is used as-is; a partial override is
    ignored. Otherwise the valid views are laid side by side: widths add up
    (heights for portrait orientations) and the tallest view sets the height,
    then both are scaled by `scale_factor`. This is a plausible canvas size,
    not an optimal one.
    """
    if not scale_factor > 0.0:
        raise ConfigError("scale_factor must be > 0")
    valid = scene.valid_views()
    if not valid:
        raise NoValidViewsError("no view has both a pose and an intrinsic")

    ow, oh = int(panorama_size[0]), int(panorama_size[1])
    if ow > 0 and oh > 0:
        size = (ow, oh)
    else:
        width = 0
        height = 0
        for view in valid:
            if view.is_rotated:
                width += view.height
                height = max(height, view.width)
            else:
                width += view.width
                height = max(height, view.height)
            logger.debug("Panorama size after view %d: %d x %d", view.view_id, width, height)
        size = (int(width * scale_factor), int(height * scale_factor))

    if size[0] <= 0 or size[1] <= 0:
        raise DatasetError(f"panorama size must be > 0, got {size}")
    logger.info("Output panorama size: %d x %d (%d valid views)", size[0], size[1], len(valid))
    return size
