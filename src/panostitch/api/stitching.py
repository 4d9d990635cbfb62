from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

import numpy as np

from panostitch.api.accumulator import PanoramaAccumulator
from panostitch.api.dataset_io import load_scene
from panostitch.api.options import StitchOptions
from panostitch.core.geometry import IntrinsicLike, PoseLike
from panostitch.core.image_io import load_linear_rgb, write_rgba
from panostitch.core.sampling import bilinear_sample
from panostitch.core.sizing import estimate_panorama_size
from panostitch.core.spherical import equirectangular_rays
from panostitch.core.vignette import FisheyeVignette, uniform_weights
from panostitch.core.visibility import project_rays
from panostitch.meta import Scene, View

logger = logging.getLogger(__name__)

ImageLoader = Callable[[View], np.ndarray]
ProgressCallback = Callable[[int, int, View], None]

# Output pixels handled by one composite_view call; bounds the ray and
# projection temporaries independently of the panorama size.
BAND_PIXELS = 1 << 18


class StitchCancelled(RuntimeError):
    pass


def load_view_image(view: View) -> np.ndarray:
    logger.info("Reading %s", view.path)
    image = load_linear_rgb(view.path)
    h, w = image.shape[:2]
    if (w, h) != (view.width, view.height):
        logger.warning("View %d: image is %dx%d, dataset says %dx%d", view.view_id, w, h, view.width, view.height)
    return image


def vignette_for(options: StitchOptions) -> FisheyeVignette | None:
    if not options.fisheye_masking:
        return None
    return FisheyeVignette(margin=options.fisheye_masking_margin, transition_size=options.transition_size)


def composite_view(
    acc: PanoramaAccumulator,
    pose: PoseLike,
    intrinsic: IntrinsicLike,
    image: np.ndarray,
    vignette: FisheyeVignette | None = None,
    row_start: int = 0,
    row_stop: int | None = None,
) -> int:
    """
    Add one source image's contribution to rows [row_start, row_stop) of the panorama.

    Returns the number of panorama pixels that received a positive weight.
    """
    if row_stop is None:
        row_stop = acc.height
    rays = equirectangular_rays(acc.width, acc.height, row_start, row_stop).reshape(-1, 3)
    src_h, src_w = image.shape[:2]

    uv, mask = project_rays(pose, intrinsic, rays, src_w, src_h)
    hit = np.flatnonzero(mask)
    uv_hit = uv[hit]
    weights = vignette.weights(uv_hit, src_w, src_h) if vignette is not None else uniform_weights(uv_hit)

    keep = weights > 0.0
    mask[hit[~keep]] = False
    uv_hit = uv_hit[keep]
    colors = bilinear_sample(image, uv_hit[:, 1], uv_hit[:, 0])
    return acc.add(row_start, mask.reshape(row_stop - row_start, acc.width), colors, weights[keep])


def _check_cancel(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise StitchCancelled("stitching cancelled between view passes")


def _row_bands(height: int, width: int, parts: int = 1) -> list[tuple[int, int]]:
    """Row bands of at most BAND_PIXELS output pixels; `parts` or more of them when rows allow."""
    rows = -(-height // max(parts, 1))
    rows = max(1, min(rows, BAND_PIXELS // width))
    return [(start, min(start + rows, height)) for start in range(0, height, rows)]


def _stitch_by_pixels(
    scene: Scene,
    views: list[View],
    acc: PanoramaAccumulator,
    vignette: FisheyeVignette | None,
    workers: int,
    load: ImageLoader,
    cancel: threading.Event | None,
    progress: ProgressCallback | None,
) -> None:
    # One view at a time; its rows are split into disjoint bands so workers
    # never touch the same cell. The next image loads in the background.
    bands = _row_bands(acc.height, acc.width, workers * 4 if workers > 1 else 1)
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="panostitch-load") as loader, ThreadPoolExecutor(
        max_workers=workers, thread_name_prefix="panostitch-band"
    ) as pool:
        pending = loader.submit(load, views[0])
        for i, view in enumerate(views):
            _check_cancel(cancel)
            image = pending.result()
            if i + 1 < len(views):
                pending = loader.submit(load, views[i + 1])

            logger.info("Compositing view %d (%d/%d)", view.view_id, i + 1, len(views))
            task = functools.partial(composite_view, acc, scene.pose_of(view), scene.intrinsic_of(view), image, vignette)
            n = sum(pool.map(lambda band: task(*band), bands))
            logger.debug("View %d contributed to %d pixels", view.view_id, n)
            del image
            if progress is not None:
                progress(i + 1, len(views), view)


def _reduce_pairwise(partials: list[PanoramaAccumulator]) -> PanoramaAccumulator:
    while len(partials) > 1:
        merged = []
        for a, b in zip(partials[0::2], partials[1::2]):
            a.merge(b)
            merged.append(a)
        if len(partials) % 2:
            merged.append(partials[-1])
        partials = merged
    return partials[0]


def _stitch_by_views(
    scene: Scene,
    views: list[View],
    size: tuple[int, int],
    vignette: FisheyeVignette | None,
    workers: int,
    load: ImageLoader,
    cancel: threading.Event | None,
    progress: ProgressCallback | None,
) -> PanoramaAccumulator:
    # Each worker owns a private buffer; buffers are summed once all are done.
    workers = min(workers, len(views))
    bands = _row_bands(size[1], size[0])
    chunks = [views[k::workers] for k in range(workers)]
    lock = threading.Lock()
    done = 0

    def run(chunk: list[View]) -> PanoramaAccumulator:
        nonlocal done
        partial = PanoramaAccumulator(*size)
        for view in chunk:
            _check_cancel(cancel)
            image = load(view)
            pose, intrinsic = scene.pose_of(view), scene.intrinsic_of(view)
            n = sum(composite_view(partial, pose, intrinsic, image, vignette, a, b) for a, b in bands)
            logger.debug("View %d contributed to %d pixels", view.view_id, n)
            del image
            with lock:
                done += 1
                logger.info("Composited view %d (%d/%d)", view.view_id, done, len(views))
                if progress is not None:
                    progress(done, len(views), view)
        return partial

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="panostitch-view") as pool:
        partials = list(pool.map(run, chunks))
    return _reduce_pairwise(partials)


def stitch_panorama(
    scene: Scene,
    options: StitchOptions | None = None,
    *,
    load_image: ImageLoader | None = None,
    cancel: threading.Event | None = None,
    progress: ProgressCallback | None = None,
) -> np.ndarray:
    """
    Composite every valid view of `scene` into an equirectangular panorama.

    Returns an (H,W,4) float32 RGBA array: linear color averaged over the
    contributing views, alpha holding the accumulated contribution weight.
    `cancel` is only looked at between view passes; once set, the run stops
    with StitchCancelled and nothing is returned.
    """
    options = options or StitchOptions()
    views = scene.valid_views()
    logger.info("%d valid views out of %d", len(views), len(scene.views))
    size = estimate_panorama_size(scene, options.scale_factor, options.panorama_size)
    vignette = vignette_for(options)
    load = load_image or load_view_image

    if options.parallel == "views" and options.workers > 1:
        acc = _stitch_by_views(scene, views, size, vignette, options.workers, load, cancel, progress)
    else:
        acc = PanoramaAccumulator(*size)
        _stitch_by_pixels(scene, views, acc, vignette, options.workers, load, cancel, progress)

    _check_cancel(cancel)
    rgba = acc.normalize()
    filled = int(np.count_nonzero(rgba[..., 3]))
    logger.info("Filled %d of %d panorama pixels", filled, size[0] * size[1])
    return rgba


def stitch_dataset(dataset_path: Path, output_path: Path, options: StitchOptions | None = None, **kwargs) -> Path:
    """Load a dataset file, stitch it and write the panorama. Nothing is written on failure."""
    scene = load_scene(dataset_path)
    rgba = stitch_panorama(scene, options, **kwargs)
    return write_rgba(output_path, rgba)
