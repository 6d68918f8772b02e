"""Image optimization applied to every photo before it leaves the process.

Goals:
- bound the longer side (IMAGE_MAX_SIDE_PX) to keep provider payloads small
- percentile-based contrast stretch so dim or washed-out plates stay readable
- always re-encode as JPEG, whatever the input format
- decode browser-style data URLs / base64 strings as well as raw bytes
"""

import base64
import binascii
import logging
import time
from io import BytesIO
from typing import Dict, Tuple, Union

import numpy as np
from PIL import Image, ImageOps

from glucimiam.config import (
    CONTRAST_HIGH_PERCENTILE,
    CONTRAST_LOW_PERCENTILE,
    IMAGE_MAX_SIDE_PX,
)

logger = logging.getLogger(__name__)

JPEG_QUALITY = 85

ImageInput = Union[bytes, str]


def decode_image_input(image: ImageInput) -> bytes:
    """Accept raw bytes, a base64 string or a data URL; return raw bytes."""
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    data = image.strip()
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Image string is not valid base64: {e}") from e


def to_base64(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("utf-8")


def resize_image(img: Image.Image, max_side: int = IMAGE_MAX_SIDE_PX) -> Image.Image:
    """Shrink so that the longer side is at most max_side, keep aspect ratio."""
    img = img.copy()
    img.thumbnail((max_side, max_side))
    return img


def stretch_contrast(
    arr: np.ndarray,
    low_pct: float = CONTRAST_LOW_PERCENTILE,
    high_pct: float = CONTRAST_HIGH_PERCENTILE,
) -> np.ndarray:
    """
    Map the [low_pct, high_pct] percentile range onto [0, 255].

    Flat images (no spread between the percentiles) are returned unchanged.
    """
    lo, hi = np.percentile(arr, (low_pct, high_pct))
    if hi - lo < 1:
        return arr
    stretched = (arr.astype(np.float32) - lo) * (255.0 / (hi - lo))
    return np.clip(stretched, 0, 255).astype(np.uint8)


def optimize_image(
    image_bytes: bytes,
    max_side: int = IMAGE_MAX_SIDE_PX,
    low_pct: float = CONTRAST_LOW_PERCENTILE,
    high_pct: float = CONTRAST_HIGH_PERCENTILE,
) -> Tuple[bytes, Dict[str, object]]:
    """
    Resize + contrast-stretch one photo and re-encode it as JPEG.

    Returns:
        (jpeg_bytes, timings_dict)

    An image that cannot be processed is returned untouched, with the error
    recorded in the timings dict.
    """
    t0 = time.time()
    timings: Dict[str, object] = {}
    try:
        with Image.open(BytesIO(image_bytes)) as src:
            timings["image_input_resolution"] = {"width": src.width, "height": src.height}
            img = ImageOps.exif_transpose(src).convert("RGB")

        t = time.time()
        img = resize_image(img, max_side)
        timings["resize_ms"] = round((time.time() - t) * 1000, 2)

        t = time.time()
        arr = stretch_contrast(np.asarray(img), low_pct, high_pct)
        timings["contrast_ms"] = round((time.time() - t) * 1000, 2)

        out = BytesIO()
        Image.fromarray(arr).save(out, format="JPEG", quality=JPEG_QUALITY)
        result = out.getvalue()
        timings["image_output_resolution"] = {"width": img.width, "height": img.height}
    except Exception as e:
        logger.warning("Image optimization failed, sending original: %s", e)
        timings["error"] = str(e)
        result = image_bytes

    timings["total_ms"] = round((time.time() - t0) * 1000, 2)
    logger.info(
        "Image optimized in %sms (in=%s, out=%s, %.1fkb -> %.1fkb)",
        timings["total_ms"],
        timings.get("image_input_resolution"),
        timings.get("image_output_resolution"),
        len(image_bytes) / 1024,
        len(result) / 1024,
    )
    return result, timings
