"""
Shape features for glyph crops.

A feature vector is the concatenation, in this order, of:
- HOG-like cells: per-cell histograms of forward-difference gradient
  orientations, L1-normalized
- Projection features: row and column ink counts, each scaled by its max
- Contour features: boundary density, ink aspect ratio, ink ratio and the
  ink box size relative to the crop

Crops are resampled to a fixed size first so every vector of one extractor
has the same arity.
"""

import logging
import math
from typing import List, Optional

import numpy as np

from .config import FeatureConfig
from .exceptions import EmptyInput
from .images import foreground_mask
from .pixels import PixelBuffer

logger = logging.getLogger(__name__)

CONTOUR_FEATURE_COUNT = 5


# ============================================================================
# Individual Feature Families
# ============================================================================

def hog_like(buffer: PixelBuffer, cell_size: int = 8, bins: int = 9) -> np.ndarray:
    """
    Histogram-of-gradients style descriptor.

    Gradients are forward differences of luma (gx = L[y, x+1] - L[y, x],
    gy = L[y+1, x] - L[y, x]) for every pixel that has a right and a lower
    neighbour. Orientation in degrees (-180..180] is binned as
    floor((angle + 180) / (360 / bins)) mod bins and magnitudes are summed
    per bin. Each cell histogram is L1-normalized unless it is all zero.

    Returns:
        Array of length bins * ceil(width / cell_size) * ceil(height / cell_size)
    """
    luma = buffer.luma()
    height, width = luma.shape
    cells_x = math.ceil(width / cell_size)
    cells_y = math.ceil(height / cell_size)
    histograms = np.zeros((cells_y, cells_x, bins), dtype=np.float64)

    if width > 1 and height > 1:
        gx = luma[:-1, 1:] - luma[:-1, :-1]
        gy = luma[1:, :-1] - luma[:-1, :-1]
        magnitude = np.sqrt(gx * gx + gy * gy)
        orientation = np.degrees(np.arctan2(gy, gx))
        bin_index = np.floor((orientation + 180) / (360 / bins)).astype(np.int64) % bins

        rows, cols = np.indices(magnitude.shape)
        np.add.at(
            histograms,
            (rows // cell_size, cols // cell_size, bin_index),
            magnitude,
        )

    sums = histograms.sum(axis=2, keepdims=True)
    np.divide(histograms, sums, out=histograms, where=sums > 0)
    return histograms.reshape(-1)


def projection_features(buffer: PixelBuffer) -> np.ndarray:
    """
    Row counts then column counts of ink, each divided by its own max.

    A profile without ink is emitted as zeros so the length is always
    height + width.
    """
    mask = foreground_mask(buffer)
    horizontal = mask.sum(axis=1).astype(np.float64)
    vertical = mask.sum(axis=0).astype(np.float64)

    if horizontal.max(initial=0) > 0:
        horizontal /= horizontal.max()
    if vertical.max(initial=0) > 0:
        vertical /= vertical.max()

    return np.concatenate([horizontal, vertical])


def contour_features(buffer: PixelBuffer) -> np.ndarray:
    """
    Five scalar shape statistics.

    - boundary density: interior ink pixels with a background 4-neighbour,
      divided by the crop area
    - aspect ratio of the ink bounding box (width / height)
    - ink ratio of the crop
    - ink box width relative to the crop width
    - ink box height relative to the crop height

    A crop without ink yields [0, 1, 0, 0, 0].
    """
    mask = foreground_mask(buffer)
    height, width = mask.shape
    area = width * height

    if not mask.any():
        return np.array([0.0, 1.0, 0.0, 0.0, 0.0])

    boundary = 0
    if height > 2 and width > 2:
        center = mask[1:-1, 1:-1]
        touches_background = (
            ~mask[:-2, 1:-1] | ~mask[2:, 1:-1] | ~mask[1:-1, :-2] | ~mask[1:-1, 2:]
        )
        boundary = int((center & touches_background).sum())

    ys, xs = np.nonzero(mask)
    ink_width = int(xs.max() - xs.min() + 1)
    ink_height = int(ys.max() - ys.min() + 1)

    return np.array([
        boundary / area,
        ink_width / ink_height,
        float(mask.sum()) / area,
        ink_width / width,
        ink_height / height,
    ])


# ============================================================================
# Feature Extractor
# ============================================================================

class FeatureExtractor:
    """
    Turns glyph crops into fixed-length feature vectors.

    Example:
        >>> extractor = FeatureExtractor()
        >>> vector = extractor.extract(crop)
        >>> len(vector) == extractor.arity
        True
    """

    def __init__(self, config: Optional[FeatureConfig] = None):
        self.config = config or FeatureConfig()

    @property
    def arity(self) -> Optional[int]:
        """Vector length, or None when crops keep their native size."""
        if self.config.sample_size is None:
            return None
        width, height = self.config.sample_size
        cells = math.ceil(width / self.config.cell_size) * math.ceil(height / self.config.cell_size)
        return (
            self.config.orientation_bins * cells
            + width + height
            + CONTOUR_FEATURE_COUNT
        )

    def normalize(self, buffer: PixelBuffer) -> PixelBuffer:
        """Resample a crop to the configured sample size."""
        if self.config.sample_size is None:
            return buffer
        width, height = self.config.sample_size
        return buffer.resize(width, height)

    def extract(self, buffer: PixelBuffer) -> np.ndarray:
        """Full feature vector: HOG-like ++ projection ++ contour."""
        if buffer.width == 0 or buffer.height == 0:
            raise EmptyInput(f"Cannot extract features from a {buffer.width}x{buffer.height} buffer")
        sample = self.normalize(buffer)
        return np.concatenate([
            hog_like(sample, self.config.cell_size, self.config.orientation_bins),
            projection_features(sample),
            contour_features(sample),
        ])

    def extract_batch(self, buffers: List[PixelBuffer]) -> np.ndarray:
        """Stack the vectors of several crops into a (n, arity) array."""
        if not buffers:
            return np.empty((0, self.arity or 0))
        batch = np.vstack([self.extract(b) for b in buffers])
        logger.debug(f"Extracted {len(batch)} feature vectors of length {batch.shape[1]}")
        return batch


def all_features(buffer: PixelBuffer, config: Optional[FeatureConfig] = None) -> np.ndarray:
    """Convenience wrapper around FeatureExtractor.extract."""
    return FeatureExtractor(config).extract(buffer)
