from __future__ import annotations

import logging
import os
from pathlib import Path

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

# Float formats go through OpenCV; everything else through Pillow.
_CV2_SUFFIXES = {".exr", ".hdr", ".tif", ".tiff"}
_ARRAY_SUFFIXES = {".npy", ".npz"}
_PREVIEW_SUFFIXES = {".png", ".webp"}


class ImageFormatError(ValueError):
    pass


def srgb_to_linear(c: np.ndarray) -> np.ndarray:
    c = np.asarray(c, dtype=np.float32)
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4).astype(np.float32)


def linear_to_srgb(c: np.ndarray) -> np.ndarray:
    c = np.clip(np.asarray(c, dtype=np.float32), 0.0, 1.0)
    return np.where(c <= 0.0031308, c * 12.92, 1.055 * np.power(c, 1.0 / 2.4) - 0.055).astype(np.float32)


def _cv2():
    # EXR support is opt-in in OpenCV builds and must be enabled before import.
    os.environ.setdefault("OPENCV_IO_ENABLE_OPENEXR", "1")
    try:
        import cv2  # type: ignore
    except ImportError as e:
        raise ImageFormatError("float image formats (.exr/.hdr/.tif) need opencv-python") from e
    return cv2


def _to_rgb(arr: np.ndarray) -> np.ndarray:
    if arr.ndim == 2:
        arr = np.repeat(arr[..., None], 3, axis=-1)
    if arr.ndim != 3 or arr.shape[-1] not in (3, 4):
        raise ImageFormatError(f"expected a gray, RGB or RGBA image, got shape {arr.shape}")
    return arr[..., :3]


def load_linear_rgb(path: str | Path) -> np.ndarray:
    """
    Load an image as an (H,W,3) float32 buffer in linear color.

    Integer images are treated as sRGB-encoded and decoded to linear; float
    images (.exr/.hdr/float .tif, .npy arrays) are taken as already linear.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing image {p}")
    suffix = p.suffix.lower()

    if suffix == ".npy":
        arr = np.load(p)
        return np.ascontiguousarray(_to_rgb(arr), dtype=np.float32)

    if suffix in _CV2_SUFFIXES:
        cv2 = _cv2()
        img = cv2.imread(str(p), cv2.IMREAD_UNCHANGED)
        if img is None:
            raise OSError(f"OpenCV could not decode {p}")
        if img.ndim == 3:
            # OpenCV channel order is BGR(A).
            img = img[..., [2, 1, 0, 3][: img.shape[-1]]]
        rgb = _to_rgb(img)
        if np.issubdtype(rgb.dtype, np.integer):
            return srgb_to_linear(rgb.astype(np.float32) / float(np.iinfo(rgb.dtype).max))
        return np.ascontiguousarray(rgb, dtype=np.float32)

    with Image.open(p) as im:
        im = im.convert("RGB")
        arr = np.asarray(im, dtype=np.uint8)
    return srgb_to_linear(arr.astype(np.float32) / 255.0)


def image_size(path: str | Path) -> tuple[int, int]:
    """(width, height) of an image file without decoding pixels where possible."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing image {p}")
    suffix = p.suffix.lower()
    if suffix == ".npy":
        shape = np.load(p, mmap_mode="r").shape
        return int(shape[1]), int(shape[0])
    if suffix in _CV2_SUFFIXES:
        h, w = load_linear_rgb(p).shape[:2]
        return int(w), int(h)
    with Image.open(p) as im:
        return im.size


def save_linear_rgb(path: str | Path, rgb: np.ndarray) -> None:
    """Write a linear RGB buffer: .npy as-is, other formats as 8-bit sRGB via Pillow."""
    p = Path(path)
    rgb = np.asarray(rgb, dtype=np.float32)
    if p.suffix.lower() == ".npy":
        np.save(p, rgb)
        return
    u8 = np.clip(linear_to_srgb(rgb) * 255.0 + 0.5, 0.0, 255.0).astype(np.uint8)
    Image.fromarray(u8).save(p)


def write_rgba(path: str | Path, rgba: np.ndarray) -> Path:
    """
    Write a float RGBA panorama whose alpha holds accumulated weights.

    .npy/.npz/.exr/.tif keep float values; .png/.webp are 8-bit sRGB previews
    with alpha clipped to [0,1]. The file is written under a temporary name and
    renamed, so a failed write never leaves a partial output behind.
    """
    p = Path(path)
    rgba = np.asarray(rgba, dtype=np.float32)
    if rgba.ndim != 3 or rgba.shape[-1] != 4:
        raise ValueError("rgba must be (H,W,4)")
    suffix = p.suffix.lower()
    if suffix not in _ARRAY_SUFFIXES | _CV2_SUFFIXES | _PREVIEW_SUFFIXES or suffix == ".hdr":
        raise ImageFormatError(f"unsupported output format: {p.suffix}")

    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_name(f".{p.stem}.partial{p.suffix}")
    try:
        if suffix == ".npy":
            np.save(tmp, rgba)
        elif suffix == ".npz":
            np.savez_compressed(tmp, rgba=rgba)
        elif suffix in _CV2_SUFFIXES:
            cv2 = _cv2()
            if not cv2.imwrite(str(tmp), np.ascontiguousarray(rgba[..., [2, 1, 0, 3]])):
                raise OSError(f"OpenCV could not write {p}")
        else:
            logger.warning("%s is an 8-bit preview: accumulated weights are clipped to [0, 1]", p.name)
            rgb = np.clip(linear_to_srgb(rgba[..., :3]) * 255.0 + 0.5, 0.0, 255.0)
            alpha = np.clip(rgba[..., 3:] * 255.0 + 0.5, 0.0, 255.0)
            out = np.concatenate([rgb, alpha], axis=-1).astype(np.uint8)
            Image.fromarray(out).save(tmp)
        os.replace(tmp, p)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return p


def read_rgba(path: str | Path) -> np.ndarray:
    """Read back a panorama written by `write_rgba` (.npy/.npz only)."""
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".npy":
        return np.load(p).astype(np.float32)
    if suffix == ".npz":
        with np.load(p) as data:
            return data["rgba"].astype(np.float32)
    raise ImageFormatError(f"read_rgba supports .npy/.npz, got {p.suffix}")
