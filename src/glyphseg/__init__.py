"""
Glyph Segmentation Engine
=========================

Post-OCR character segmentation and classification. Takes rough character
boxes and guesses from an external recognizer, tightens each box to the
actual glyph, extracts shape features, clusters similar glyphs and uses
k-NN / decision-tree classifiers trained on operator corrections to raise or
correct confidence.

Main components:
- Binarization (fixed threshold, Otsu)
- Projection-profile and connected-component segmentation
- Shape feature extraction (HOG-like, projection, contour)
- K-means clustering, k-NN and decision tree classifiers
- Cluster-majority and reading-order context correction
"""

__version__ = "1.0.0"
__author__ = "Glyph Segmentation Team"

from .config import EngineConfig, get_config
from .engine import GlyphCandidate, GlyphEngine, RecognitionResult
from .exceptions import (
    ConfigurationError,
    EmptyInput,
    GlyphSegError,
    MalformedTrainingData,
    RenderTargetUnavailable,
)
from .ocr_text import OCRSymbol
from .pixels import BoundingBox, PixelBuffer, Segment

__all__ = [
    "BoundingBox",
    "ConfigurationError",
    "EmptyInput",
    "EngineConfig",
    "GlyphCandidate",
    "GlyphEngine",
    "GlyphSegError",
    "MalformedTrainingData",
    "OCRSymbol",
    "PixelBuffer",
    "RecognitionResult",
    "RenderTargetUnavailable",
    "Segment",
    "get_config",
]
