from __future__ import annotations

import logging
from pathlib import Path

from panostitch.api.dataset_io import load_scene
from panostitch.core.image_io import image_size
from panostitch.meta import DatasetError, NoValidViewsError, Scene

logger = logging.getLogger(__name__)


def validate_dataset(dataset_path: Path, check_images: bool = True) -> Scene:
    """
    Structural checks on a dataset file before a long stitching run.

    Every valid view must agree with its intrinsic's image size and, when
    `check_images` is set, point to an existing image of that size. Views
    without pose or intrinsic are reported and skipped.
    """
    scene = load_scene(Path(dataset_path))

    for view in scene.views:
        if view.intrinsic_id is not None and view.intrinsic_id not in scene.intrinsics:
            logger.warning("View %d references unknown intrinsic %d", view.view_id, view.intrinsic_id)
        if view.pose_id is not None and view.pose_id not in scene.poses:
            logger.warning("View %d references unknown pose %d", view.view_id, view.pose_id)

    valid = scene.valid_views()
    skipped = len(scene.views) - len(valid)
    if skipped:
        logger.warning("%d views have no pose or intrinsic and will be skipped", skipped)
    if not valid:
        raise NoValidViewsError(f"{dataset_path} has no view with both a pose and an intrinsic")

    for view in valid:
        intrinsic = scene.intrinsic_of(view)
        if (intrinsic.width, intrinsic.height) != (view.width, view.height):
            raise DatasetError(
                f"view {view.view_id} size {(view.width, view.height)} != intrinsic {(intrinsic.width, intrinsic.height)}"
            )
        if not check_images:
            continue
        if not view.path.exists():
            raise FileNotFoundError(f"Missing image {view.path}")
        size = image_size(view.path)
        if size != (view.width, view.height):
            raise DatasetError(f"{view.path} size {size} != dataset {(view.width, view.height)}")

    logger.info("%s: %d valid views out of %d", dataset_path, len(valid), len(scene.views))
    return scene
