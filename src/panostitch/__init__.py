from panostitch import meta
from panostitch.api import (
    PanoramaAccumulator,
    StitchOptions,
    load_scene,
    save_scene,
    stitch_dataset,
    stitch_panorama,
)

__all__ = [
    "meta",
    "PanoramaAccumulator",
    "StitchOptions",
    "load_scene",
    "save_scene",
    "stitch_dataset",
    "stitch_panorama",
]
