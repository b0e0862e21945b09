"""
Binarization utilities for the glyph segmentation engine.

Provides:
- Fixed-threshold binarization on luma
- Otsu threshold selection and binarization
- Foreground (ink) masks shared by the downstream stages
"""

import logging

import numpy as np

from .pixels import PixelBuffer

logger = logging.getLogger(__name__)

# Samples below this value count as ink in binary buffers
FOREGROUND_LEVEL = 128

# Threshold used when no split of the histogram separates two classes
DEFAULT_THRESHOLD = 128

FOREGROUND = 0
BACKGROUND = 255


# ============================================================================
# Core Binarization Functions
# ============================================================================

def foreground_mask(buffer: PixelBuffer) -> np.ndarray:
    """
    Boolean (height, width) mask of ink pixels.

    A pixel is ink when its luma is below 128. On a binarized buffer this is
    exactly the set of 0-valued pixels.
    """
    return buffer.luma() < FOREGROUND_LEVEL


def binarize(buffer: PixelBuffer, threshold: float = DEFAULT_THRESHOLD) -> PixelBuffer:
    """
    Convert a buffer to two levels.

    Args:
        buffer: Gray, RGB or RGBA buffer
        threshold: Pixels with luma strictly below this become ink (0),
            everything else background (255)

    Returns:
        New single-channel buffer holding only 0 and 255
    """
    binary = np.where(buffer.luma() < threshold, FOREGROUND, BACKGROUND).astype(np.uint8)
    return PixelBuffer(binary[:, :, np.newaxis])


def luma_histogram(buffer: PixelBuffer) -> np.ndarray:
    """256-bin histogram of rounded luma values."""
    levels = np.clip(np.round(buffer.luma()), 0, 255).astype(np.int64)
    return np.bincount(levels.ravel(), minlength=256)


def compute_otsu_level(buffer: PixelBuffer) -> int:
    """
    Pick the Otsu threshold of a buffer.

    For every candidate t the histogram is split into bins 0..t and
    t+1..255 and the between-class variance w0*w1*(mean0-mean1)^2 (scaled
    by the squared pixel count) is computed. The lowest t with the largest
    variance wins. Splits that leave a class empty are ignored; if no split
    has positive variance the default of 128 is returned.
    """
    histogram = luma_histogram(buffer).astype(np.float64)
    total = histogram.sum()
    if total == 0:
        return DEFAULT_THRESHOLD

    levels = np.arange(256, dtype=np.float64)
    w0 = np.cumsum(histogram)
    w1 = total - w0
    sum0 = np.cumsum(levels * histogram)
    sum1 = sum0[-1] - sum0

    valid = (w0 > 0) & (w1 > 0)
    if not valid.any():
        logger.debug("Otsu: single-class histogram, using default threshold")
        return DEFAULT_THRESHOLD

    variance = np.zeros(256, dtype=np.float64)
    mean0 = sum0[valid] / w0[valid]
    mean1 = sum1[valid] / w1[valid]
    variance[valid] = w0[valid] * w1[valid] * (mean0 - mean1) ** 2 / (total * total)

    best = int(np.argmax(variance))
    if variance[best] <= 0:
        return DEFAULT_THRESHOLD

    logger.debug(f"Otsu threshold: {best} (variance {variance[best]:.3f})")
    return best


def otsu_threshold(buffer: PixelBuffer) -> PixelBuffer:
    """
    Binarize a buffer at its Otsu threshold.

    Same rule as ``binarize``: ink is luma strictly below the level, so the
    top bin of the dark class lands on the paper side. On a clean two-level
    image the level is the ink value itself and nothing is marked as ink.
    """
    return binarize(buffer, compute_otsu_level(buffer))


def ink_ratio(buffer: PixelBuffer) -> float:
    """Fraction of ink pixels in a buffer (0 for an empty buffer)."""
    mask = foreground_mask(buffer)
    if mask.size == 0:
        return 0.0
    return float(mask.mean())
