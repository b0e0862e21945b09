"""
Heuristic quality score for a chosen glyph segment.
"""

from typing import Optional

from .config import ScoringConfig
from .pixels import Segment


def _in_range(value: float, bounds) -> bool:
    low, high = bounds
    return low <= value <= high


def segmentation_score(segment: Segment, config: Optional[ScoringConfig] = None) -> float:
    """
    Score a segment between 0.5 and 1.

    Half of the score comes from the ink ratio (ideal 0.10-0.40), half from
    the width/height ratio (ideal 0.3-3).
    """
    config = config or ScoringConfig()

    if _in_range(segment.ink_ratio, config.ink_ratio_range):
        ratio_score = config.in_range_score
    else:
        ratio_score = config.out_of_range_score

    if _in_range(segment.width / segment.height, config.aspect_range):
        aspect_score = config.in_range_score
    else:
        aspect_score = config.out_of_range_score

    return (ratio_score + aspect_score) / 2
