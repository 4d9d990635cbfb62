from panostitch.api.accumulator import AccumulatorStateError, PanoramaAccumulator
from panostitch.api.dataset_io import load_scene, save_scene
from panostitch.api.options import ConfigError, StitchOptions, load_stitch_options, parse_stitch_options
from panostitch.api.stitching import StitchCancelled, composite_view, stitch_dataset, stitch_panorama

__all__ = [
    "AccumulatorStateError",
    "ConfigError",
    "PanoramaAccumulator",
    "StitchCancelled",
    "StitchOptions",
    "composite_view",
    "load_scene",
    "load_stitch_options",
    "parse_stitch_options",
    "save_scene",
    "stitch_dataset",
    "stitch_panorama",
]
