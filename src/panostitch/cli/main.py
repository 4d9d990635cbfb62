from __future__ import annotations

import argparse
import logging
from pathlib import Path

from panostitch.api.dataset_io import load_scene
from panostitch.api.options import ConfigError, StitchOptions, load_stitch_options
from panostitch.api.stitching import stitch_dataset
from panostitch.core.image_io import ImageFormatError
from panostitch.core.sizing import estimate_panorama_size
from panostitch.meta import ORIENTATIONS, DatasetError
from panostitch.sim.dataset_validate import validate_dataset
from panostitch.sim.rig import ENVIRONMENTS, generate_rig_dataset

logger = logging.getLogger("panostitch")

VERBOSE_LEVELS = {
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=VERBOSE_LEVELS[level],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _add_option_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", type=Path, default=None, help="JSON file with stitching options (CLI flags win).")
    p.add_argument(
        "--scale-factor",
        type=float,
        default=None,
        help="Scale of the automatic output resolution (e.g. 0.5 for half resolution). Default 0.2.",
    )
    p.add_argument(
        "--panorama-size",
        type=int,
        nargs=2,
        metavar=("WIDTH", "HEIGHT"),
        default=None,
        help="Explicit output size; bypasses the automatic size when both are > 0.",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="panostitch",
        description="Stitch calibrated images shot around a nodal point into a 360 equirectangular panorama.",
    )
    parser.add_argument(
        "--verbose-level",
        "-v",
        default="info",
        choices=list(VERBOSE_LEVELS),
        help="Verbosity level.",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    st = sub.add_parser("stitch", help="Composite a dataset into an equirectangular RGBA panorama.")
    st.add_argument("--input", "-i", type=Path, required=True, help="Dataset JSON file.")
    st.add_argument(
        "--output",
        "-o",
        type=Path,
        required=True,
        help="Output panorama (.npz/.npy/.exr/.tif keep float weights, .png is an 8-bit preview).",
    )
    _add_option_args(st)
    st.add_argument(
        "--fisheye-masking",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="For fisheye images, skip the invalid pixels on the borders.",
    )
    st.add_argument(
        "--fisheye-masking-margin",
        type=float,
        default=None,
        help="Margin for fisheye images (fraction of the image circle radius). Default 0.05.",
    )
    st.add_argument(
        "--transition-size",
        type=float,
        default=None,
        help="Size of the transition between images (in pixels). Default 10.",
    )
    st.add_argument("--workers", type=int, default=None, help="Worker threads. Default 1.")
    st.add_argument(
        "--parallel",
        type=str,
        default=None,
        choices=["pixels", "views"],
        help="Split each view's pass over output rows (pixels) or give each worker its own views (views).",
    )

    est = sub.add_parser("estimate-size", help="Print the output panorama size a dataset would get.")
    est.add_argument("dataset", type=Path)
    _add_option_args(est)

    val = sub.add_parser("validate-dataset", help="Validate a dataset file and the images it references.")
    val.add_argument("dataset", type=Path)
    val.add_argument("--no-images", action="store_true", help="Only check the JSON, not the image files.")

    gen = sub.add_parser("generate-rig-dataset", help="Render a synthetic nodal-point camera ring.")
    gen.add_argument("--out", type=Path, required=True)
    gen.add_argument("--cameras", type=int, default=6)
    gen.add_argument("--width", type=int, default=160)
    gen.add_argument("--height", type=int, default=120)
    gen.add_argument("--model", type=str, default="pinhole", choices=["pinhole", "fisheye"])
    gen.add_argument("--fov-deg", type=float, default=90.0, help="Horizontal FOV (pinhole) or image circle FOV (fisheye).")
    gen.add_argument("--pitch-deg", type=float, default=0.0)
    gen.add_argument("--orientation", type=str, default="normal", choices=sorted(ORIENTATIONS))
    gen.add_argument("--environment", type=str, default="checker", choices=sorted(ENVIRONMENTS))
    gen.add_argument("--image-format", type=str, default="png", choices=["png", "npy"])
    gen.add_argument("--distort-strength", type=float, default=0.0)
    gen.add_argument("--unposed-views", type=int, default=0, help="Extra images listed without a pose.")
    gen.add_argument("--seed", type=int, default=0)

    args = parser.parse_args(argv)
    configure_logging(args.verbose_level)

    try:
        return _run(args)
    except (DatasetError, ConfigError, ImageFormatError, OSError) as e:
        logger.error("%s", e)
        return 1


def _options_from_args(args: argparse.Namespace) -> StitchOptions:
    base = load_stitch_options(args.config) if args.config is not None else StitchOptions()
    return base.replace(
        scale_factor=args.scale_factor,
        panorama_size=args.panorama_size,
        fisheye_masking=getattr(args, "fisheye_masking", None),
        fisheye_masking_margin=getattr(args, "fisheye_masking_margin", None),
        transition_size=getattr(args, "transition_size", None),
        workers=getattr(args, "workers", None),
        parallel=getattr(args, "parallel", None),
    )


def _run(args: argparse.Namespace) -> int:
    if args.cmd == "stitch":
        options = _options_from_args(args)
        logger.debug("Options: %s", options)
        out = stitch_dataset(args.input, args.output, options)
        print(f"Wrote {out}")
        return 0

    if args.cmd == "estimate-size":
        options = _options_from_args(args)
        w, h = estimate_panorama_size(load_scene(args.dataset), options.scale_factor, options.panorama_size)
        print(f"{w} {h}")
        return 0

    if args.cmd == "validate-dataset":
        scene = validate_dataset(args.dataset, check_images=not args.no_images)
        print(f"{len(scene.valid_views())} valid views out of {len(scene.views)}")
        return 0

    if args.cmd == "generate-rig-dataset":
        path = generate_rig_dataset(
            out_root=args.out,
            cameras=args.cameras,
            width=args.width,
            height=args.height,
            model=args.model,
            fov_deg=args.fov_deg,
            pitch_deg=args.pitch_deg,
            orientation=args.orientation,
            environment=args.environment,
            image_format=args.image_format,
            distort_strength=args.distort_strength,
            unposed_views=args.unposed_views,
            seed=args.seed,
        )
        print(f"Wrote {path}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
