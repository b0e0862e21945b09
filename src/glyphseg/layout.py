"""
Projection-profile segmentation for the glyph segmentation engine.

Provides:
- Row/column foreground histograms
- Range extraction from a 1-D histogram with gap tolerance
- Two-pass (row bands, then column bands) character segmentation
- Reading-order sorting of boxes
"""

import functools
import logging
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional, Sequence, TypeVar

import numpy as np

from .images import binarize, foreground_mask
from .pixels import BoundingBox, PixelBuffer, Segment

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ProjectionProfile:
    """Foreground pixel counts per row (horizontal) and per column (vertical)."""
    horizontal: np.ndarray
    vertical: np.ndarray


class Range(NamedTuple):
    """Half-open index range [start, end)."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


# ============================================================================
# Projection Profiles
# ============================================================================

def projection(binary: PixelBuffer) -> ProjectionProfile:
    """
    Count foreground pixels per row and per column.

    horizontal[y] is the ink count of row y, vertical[x] the ink count of
    column x. Both sum to the total number of ink pixels.
    """
    mask = foreground_mask(binary)
    return ProjectionProfile(
        horizontal=mask.sum(axis=1).astype(np.int64),
        vertical=mask.sum(axis=0).astype(np.int64),
    )


def find_ranges(histogram: Sequence[float], min_gap: int = 1) -> List[Range]:
    """
    Extract contiguous non-empty ranges from a 1-D histogram.

    A range opens at a positive value that follows a zero (or the array
    start). When a zero is met inside an open range, the zero run starting
    there is measured; the range closes at that index if the run is at least
    ``min_gap`` long or the index is the last one. Shorter gaps are absorbed
    into the range. A range still open at the end closes at ``len(histogram)``.

    Example:
        >>> find_ranges([0, 0, 3, 4, 0, 0, 0, 5, 2, 0], min_gap=1)
        [Range(start=2, end=4), Range(start=7, end=9)]
    """
    values = list(histogram)
    n = len(values)
    ranges: List[Range] = []
    in_range = False
    start = 0

    for i, value in enumerate(values):
        if value > 0:
            if not in_range:
                start = i
                in_range = True
        elif in_range:
            gap = 0
            j = i
            while j < n and values[j] == 0:
                gap += 1
                j += 1

            if gap >= min_gap or i == n - 1:
                ranges.append(Range(start, i))
                in_range = False

    if in_range:
        ranges.append(Range(start, n))

    return ranges


# ============================================================================
# Projection Segmentation
# ============================================================================

def segment_by_projection(
    buffer: PixelBuffer,
    min_char_width: int = 10,
    min_char_height: int = 10,
    min_gap: int = 1,
    threshold: float = 128,
    min_ink_ratio: float = 0.05,
    max_ink_ratio: float = 0.95
) -> List[Segment]:
    """
    Split a page into character candidates using projection profiles.

    Rows are found from the horizontal projection; inside each row band the
    vertical projection is recomputed over that band only and split into
    columns. Every (row, column) pair becomes a candidate box.

    Args:
        buffer: Source image
        min_char_width: Column bands narrower than this are skipped
        min_char_height: Row bands shorter than this are skipped
        min_gap: Zero-run length that separates two ranges
        threshold: Binarization threshold
        min_ink_ratio: Candidates at or below this ink ratio are noise
        max_ink_ratio: Candidates at or above this ink ratio are solid blocks

    Returns:
        Segments in row-major order, each carrying its binary crop
    """
    binary = binarize(buffer, threshold)
    mask = foreground_mask(binary)
    profile = projection(binary)

    segments: List[Segment] = []
    for row in find_ranges(profile.horizontal, min_gap):
        if row.length < min_char_height:
            continue

        row_vertical = mask[row.start:row.end].sum(axis=0)

        for col in find_ranges(row_vertical, min_gap):
            if col.length < min_char_width:
                continue

            ratio = float(mask[row.start:row.end, col.start:col.end].mean())
            if not (min_ink_ratio < ratio < max_ink_ratio):
                logger.debug(
                    f"Dropping candidate at ({col.start}, {row.start}): ink ratio {ratio:.3f}"
                )
                continue

            segments.append(Segment(
                x=col.start,
                y=row.start,
                width=col.length,
                height=row.length,
                pixels=binary.crop(col.start, row.start, col.length, row.length),
            ))

    logger.debug(f"Projection segmentation found {len(segments)} candidates")
    return segments


# ============================================================================
# Reading Order
# ============================================================================

def sort_reading_order(
    items: Sequence[T],
    row_tolerance: float = 20,
    key: Optional[Callable[[T], BoundingBox]] = None
) -> List[T]:
    """
    Sort items top-to-bottom, then left-to-right within a row.

    Two items are on the same row when their top edges differ by at most
    ``row_tolerance`` pixels. The sort is stable.

    Args:
        items: Boxes, or any objects ``key`` maps to a BoundingBox
        row_tolerance: Maximum vertical offset of items on one row
        key: Returns the BoundingBox of an item (identity by default)
    """
    if key is None:
        key = lambda item: item  # noqa: E731

    def compare(a: T, b: T) -> int:
        box_a, box_b = key(a), key(b)
        dy = box_a.y - box_b.y
        if abs(dy) > row_tolerance:
            return -1 if dy < 0 else 1
        dx = box_a.x - box_b.x
        if dx == 0:
            return 0
        return -1 if dx < 0 else 1

    return sorted(items, key=functools.cmp_to_key(compare))
