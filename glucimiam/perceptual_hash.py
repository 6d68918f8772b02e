"""Average-hash fingerprints for spotting re-submitted meal photos."""

import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)

GRID_SIZE = 16
FINGERPRINT_BITS = GRID_SIZE * GRID_SIZE
FINGERPRINT_HEX_LEN = FINGERPRINT_BITS // 4


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG/PNG/...) to a BGR array."""
    if not image_bytes:
        raise ValueError("Empty image data")
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("cv2.imdecode() could not decode image data")
    return img


def fingerprint_array(img: np.ndarray, grid_size: int = GRID_SIZE) -> str:
    """
    Downsample to a grid_size x grid_size luma grid and threshold on its mean.

    Cells at or above the mean become 1 bits; bits are packed row-major into
    a hex string of grid_size**2 / 4 characters.
    """
    if img.ndim == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    small = cv2.resize(img, (grid_size, grid_size), interpolation=cv2.INTER_AREA)
    luma = small.astype(np.float32)
    bits = (luma >= luma.mean()).flatten()
    return np.packbits(bits).tobytes().hex()


def compute_fingerprint(image_bytes: bytes, grid_size: int = GRID_SIZE) -> str:
    return fingerprint_array(decode_image(image_bytes), grid_size)


def hamming_distance(a: str, b: str) -> int:
    """Number of differing bits between two equal-length hex fingerprints."""
    if len(a) != len(b):
        raise ValueError(
            f"Fingerprints differ in length ({len(a)} vs {len(b)} hex chars)"
        )
    return bin(int(a, 16) ^ int(b, 16)).count("1")
