"""
Configuration and constants for the glyph segmentation engine.

This module provides:
- Engine options (which pipeline stages run, model sizes)
- Feature extraction settings
- Segmentation and scoring thresholds
- Correction-pass constants
- Environment overrides
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .exceptions import ConfigurationError


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class FeatureConfig:
    """Feature extraction configuration."""
    # Crops are resampled to this (width, height) so every vector has one arity.
    # None keeps the native crop size.
    sample_size: Optional[Tuple[int, int]] = (32, 32)
    cell_size: int = 8
    orientation_bins: int = 9

    def __post_init__(self):
        if self.cell_size < 1:
            raise ConfigurationError(f"cell_size must be >= 1, got {self.cell_size}")
        if self.sample_size is not None:
            w, h = self.sample_size
            if w < 1 or h < 1:
                raise ConfigurationError(f"sample_size must be positive, got {self.sample_size}")


@dataclass
class SegmentationConfig:
    """Projection and component segmentation configuration."""
    binarize_threshold: int = 128
    min_char_width: int = 10
    min_char_height: int = 10
    min_gap: int = 1
    # Ink-ratio window for projection candidates (exclusive bounds)
    min_ink_ratio: float = 0.05
    max_ink_ratio: float = 0.95
    # Components with a box smaller than this in either dimension are dropped
    min_component_size: int = 5


@dataclass
class ScoringConfig:
    """Segmentation quality scoring constants."""
    ink_ratio_range: Tuple[float, float] = (0.10, 0.40)
    aspect_range: Tuple[float, float] = (0.3, 3.0)
    in_range_score: float = 1.0
    out_of_range_score: float = 0.5
    # Score given when exactly one component is found
    single_component_score: float = 0.8
    # Score given when nothing could be segmented
    fallback_score: float = 0.5


@dataclass
class CorrectionConfig:
    """Constants used by classification and the correction passes."""
    knn_confidence_threshold: float = 0.6
    tree_confidence_floor: float = 0.7
    cluster_min_ocr_confidence: float = 50.0
    cluster_confidence_floor: float = 0.6
    context_max_ocr_confidence: float = 40.0
    context_penalty: float = 20.0
    row_tolerance: float = 20.0
    # Weights of the final blended confidence
    ocr_weight: float = 0.4
    segmentation_weight: float = 0.3
    ml_weight: float = 0.3


@dataclass
class EngineConfig:
    """Main engine configuration."""
    use_segmentation: bool = True
    use_kmeans: bool = True
    use_knn: bool = True
    use_decision_tree: bool = True
    kmeans_clusters: int = 10
    knn_neighbors: int = 5
    tree_max_depth: int = 5
    tree_min_samples: int = 5

    # None = fresh entropy on every fit
    seed: Optional[int] = None
    # Threads used for per-candidate segmentation and feature extraction
    workers: int = 1

    features: FeatureConfig = field(default_factory=FeatureConfig)
    segmentation: SegmentationConfig = field(default_factory=SegmentationConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    correction: CorrectionConfig = field(default_factory=CorrectionConfig)

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigurationError for out-of-range values."""
        for name in ("kmeans_clusters", "knn_neighbors", "workers", "tree_max_depth"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value!r}")


# ============================================================================
# Default Configuration Instance
# ============================================================================

def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def get_config() -> EngineConfig:
    """Get the default engine configuration with environment overrides."""
    config = EngineConfig()

    clusters = _env_int("GLYPHSEG_KMEANS_CLUSTERS")
    if clusters is not None:
        config.kmeans_clusters = clusters

    neighbors = _env_int("GLYPHSEG_KNN_NEIGHBORS")
    if neighbors is not None:
        config.knn_neighbors = neighbors

    workers = _env_int("GLYPHSEG_WORKERS")
    if workers is not None:
        config.workers = workers

    config.seed = _env_int("GLYPHSEG_SEED")

    if os.environ.get("GLYPHSEG_NO_SEGMENTATION", "").lower() == "true":
        config.use_segmentation = False

    config.validate()
    return config
