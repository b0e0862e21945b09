"""
Glyph refinement engine.

Composes the segmentation and classification stages for every OCR-detected
glyph:
1. Local segmentation (Otsu + connected components) to tighten each box
2. Feature extraction on the refined crops
3. K-means clustering of all candidates
4. k-NN / decision-tree confidence refinement from operator training data
5. Cluster-majority correction
6. Reading-order context correction
7. Weighted confidence blend

Also owns the session's training samples (add / clear / export / import).
"""

import dataclasses
import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

from .classifiers import KNN, DecisionTree, TrainingSample
from .clustering import KMeans
from .components import connected_components
from .config import EngineConfig
from .exceptions import ConfigurationError, MalformedTrainingData, RenderTargetUnavailable
from .features import FeatureExtractor
from .images import otsu_threshold
from .layout import sort_reading_order
from .ocr_text import OCRSymbol
from .pixels import BoundingBox, PixelBuffer
from .scoring import segmentation_score

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class GlyphCandidate:
    """An OCR guess enriched by the engine."""
    id: str
    char: str
    bbox: BoundingBox
    ocr_confidence: float
    segmentation_score: float = 0.5
    ml_confidence: float = 0.0
    cluster_id: Optional[int] = None
    ml_label: Optional[str] = None
    # Final blended score (0-100), set by the last stage
    confidence: Optional[int] = None

    @classmethod
    def from_symbol(cls, symbol: OCRSymbol) -> 'GlyphCandidate':
        return cls(
            id=symbol.id,
            char=symbol.char,
            bbox=dataclasses.replace(symbol.bbox),
            ocr_confidence=float(symbol.confidence),
            ml_confidence=float(symbol.confidence) / 100,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "char": self.char,
            "bbox": self.bbox.to_dict(),
            "ocr_confidence": self.ocr_confidence,
            "segmentation_score": self.segmentation_score,
            "ml_confidence": self.ml_confidence,
            "confidence": self.confidence,
        }
        if self.cluster_id is not None:
            result["cluster_id"] = self.cluster_id
        if self.ml_label is not None:
            result["ml_label"] = self.ml_label
        return result


@dataclass
class RecognitionStats:
    """Aggregate counts for display."""
    total: int = 0
    unique: int = 0
    groups: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "unique": self.unique, "groups": self.groups}


@dataclass
class RecognitionResult:
    """Candidates in recognition order plus their stats."""
    candidates: List[GlyphCandidate] = field(default_factory=list)
    stats: RecognitionStats = field(default_factory=RecognitionStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "stats": self.stats.to_dict(),
        }


def character_stats(candidates: Sequence[GlyphCandidate]) -> RecognitionStats:
    """
    Group candidates by their first character.

    Groups are listed most frequent first; equal counts keep first-seen order.
    """
    counts: Dict[str, int] = {}
    for candidate in candidates:
        key = candidate.char[:1]
        counts[key] = counts.get(key, 0) + 1

    groups = sorted(
        ({"char": char, "count": count} for char, count in counts.items()),
        key=lambda g: -g["count"]
    )
    return RecognitionStats(total=len(candidates), unique=len(counts), groups=groups)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ============================================================================
# Training Data Serialization
# ============================================================================

def parse_training_data(serialized: str) -> List[TrainingSample]:
    """
    Parse a JSON list of ``{"features": [...], "label": "..."}`` objects.

    Raises:
        MalformedTrainingData: invalid JSON, wrong structure, non-numeric
            features, empty labels or mixed feature lengths
    """
    try:
        entries = json.loads(serialized)
    except (TypeError, ValueError) as e:
        raise MalformedTrainingData(f"Training data is not valid JSON: {e}")

    if not isinstance(entries, list):
        raise MalformedTrainingData("Training data must be a JSON list")

    samples = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise MalformedTrainingData(f"Entry {index} is not an object")

        label = entry.get("label")
        if not isinstance(label, str) or not label:
            raise MalformedTrainingData(f"Entry {index} has no label")

        features = entry.get("features")
        if not isinstance(features, list) or not features:
            raise MalformedTrainingData(f"Entry {index} has no feature list")
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in features):
            raise MalformedTrainingData(f"Entry {index} has non-numeric features")

        vector = np.asarray(features, dtype=np.float64)
        if not np.isfinite(vector).all():
            raise MalformedTrainingData(f"Entry {index} has non-finite features")
        samples.append(TrainingSample(vector, label))

    arities = {len(s.features) for s in samples}
    if len(arities) > 1:
        raise MalformedTrainingData(f"Entries have mixed feature lengths: {sorted(arities)}")

    return samples


# ============================================================================
# Engine
# ============================================================================

class GlyphEngine:
    """
    Refines OCR symbol guesses against the source image.

    Example:
        >>> engine = GlyphEngine(EngineConfig(kmeans_clusters=4, seed=0))
        >>> result = engine.recognize(image, symbols)
        >>> [c.char for c in result.candidates]
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.extractor = FeatureExtractor(self.config.features)
        self.training_data: List[TrainingSample] = []

        # Fitted models from the last run
        self.kmeans: Optional[KMeans] = None
        self.knn: Optional[KNN] = None
        self.tree: Optional[DecisionTree] = None

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def set_options(self, **changes):
        """
        Update engine options.

        Changing ``kmeans_clusters`` or ``knn_neighbors`` discards the
        corresponding fitted model.
        """
        try:
            new_config = dataclasses.replace(self.config, **changes)
        except TypeError as e:
            raise ConfigurationError(f"Unknown engine option: {e}")

        if new_config.kmeans_clusters != self.config.kmeans_clusters:
            self.kmeans = None
        if new_config.knn_neighbors != self.config.knn_neighbors:
            self.knn = None
        if new_config.features != self.config.features:
            self.extractor = FeatureExtractor(new_config.features)

        self.config = new_config
        logger.debug(f"Engine options updated: {sorted(changes)}")

    # ------------------------------------------------------------------
    # Recognition
    # ------------------------------------------------------------------

    def recognize(self, image: PixelBuffer, symbols: Iterable[OCRSymbol]) -> RecognitionResult:
        """
        Refine a list of OCR symbols.

        Args:
            image: Full-resolution image the symbol boxes refer to
            symbols: Recognizer output, in recognition order

        Returns:
            RecognitionResult with one candidate per symbol, same order
        """
        symbols = list(symbols)
        if not symbols:
            logger.info("No candidates to refine")
            return RecognitionResult()

        candidates = self._map(lambda s: self.refine_candidate(image, s), symbols)

        features: List[Optional[np.ndarray]] = [None] * len(candidates)
        if self._needs_features():
            features = self._map(lambda c: self._features_for(image, c), candidates)

        # Fitting stages see every candidate before any correction runs
        if self.config.use_kmeans:
            self._cluster(candidates, features)
        self._classify(candidates, features)

        corrected = 0
        if self.config.use_kmeans:
            corrected = self.cluster_majority_correction(candidates)
        penalized = self.context_correction(candidates)
        self.blend_confidence(candidates)

        stats = character_stats(candidates)
        logger.info(
            f"Refined {stats.total} glyphs ({stats.unique} unique), "
            f"{corrected} cluster corrections, {penalized} context penalties"
        )
        return RecognitionResult(candidates=candidates, stats=stats)

    def refine_candidate(self, image: PixelBuffer, symbol: OCRSymbol) -> GlyphCandidate:
        """
        Tighten one symbol's box to its glyph.

        More than one component: re-anchor to the largest and score it.
        Exactly one: keep the box with the single-component score. None, or
        no usable crop: keep the box with the fallback score.
        """
        candidate = GlyphCandidate.from_symbol(symbol)
        scoring = self.config.scoring
        candidate.segmentation_score = scoring.fallback_score

        if not self.config.use_segmentation:
            return candidate

        x, y, width, height = symbol.bbox.pixel_region()
        try:
            region = image.crop(x, y, width, height)
        except RenderTargetUnavailable as e:
            logger.warning(f"Keeping unrefined box for {symbol.id}: {e}")
            return candidate

        result = connected_components(
            otsu_threshold(region),
            min_size=self.config.segmentation.min_component_size
        )

        if result.count > 1:
            best = result.largest()
            candidate.bbox = best.to_bbox(max(0, x), max(0, y))
            candidate.segmentation_score = segmentation_score(best, scoring)
        elif result.count == 1:
            candidate.segmentation_score = scoring.single_component_score

        return candidate

    def _needs_features(self) -> bool:
        if self.config.use_kmeans:
            return True
        return bool(self.training_data) and (self.config.use_knn or self.config.use_decision_tree)

    def _features_for(self, image: PixelBuffer, candidate: GlyphCandidate) -> Optional[np.ndarray]:
        try:
            region = image.crop(*candidate.bbox.pixel_region())
        except RenderTargetUnavailable as e:
            logger.warning(f"No features for {candidate.id}: {e}")
            return None
        return self.extractor.extract(region)

    def _map(self, func: Callable[[T], R], items: Sequence[T]) -> List[R]:
        """Apply ``func`` to every item, fanning out over threads if configured."""
        if self.config.workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
                return list(executor.map(func, items))
        return [func(item) for item in items]

    @staticmethod
    def _stack(features: Sequence[Optional[np.ndarray]]) -> Tuple[List[int], Optional[np.ndarray]]:
        """Indices of candidates with features and their stacked matrix."""
        indices = [i for i, f in enumerate(features) if f is not None]
        if not indices:
            return [], None
        arities = {len(features[i]) for i in indices}
        if len(arities) > 1:
            logger.warning(f"Feature vectors have mixed lengths {sorted(arities)}; skipping")
            return [], None
        return indices, np.vstack([features[i] for i in indices])

    def _cluster(self, candidates: List[GlyphCandidate], features: Sequence[Optional[np.ndarray]]):
        indices, matrix = self._stack(features)
        if matrix is None:
            return

        k = min(self.config.kmeans_clusters, len(matrix))
        self.kmeans = KMeans(k, seed=self.config.seed)
        self.kmeans.fit(matrix)

        for i, cluster_id in zip(indices, self.kmeans.predict_batch(matrix)):
            candidates[i].cluster_id = int(cluster_id)

    def _classify(self, candidates: List[GlyphCandidate], features: Sequence[Optional[np.ndarray]]):
        if not self.training_data:
            return
        if not (self.config.use_knn or self.config.use_decision_tree):
            return

        indices, matrix = self._stack(features)
        if matrix is None:
            return

        training_arities = {len(s.features) for s in self.training_data}
        if training_arities != {matrix.shape[1]}:
            logger.warning(
                f"Training features have length {sorted(training_arities)}, candidates "
                f"{matrix.shape[1]}; skipping classification"
            )
            return

        correction = self.config.correction

        if self.config.use_knn:
            self.knn = self.knn or KNN(self.config.knn_neighbors)
            self.knn.fit(self.training_data)
            for i, row in zip(indices, matrix):
                label, confidence = self.knn.predict_with_confidence(row)
                if label and confidence > correction.knn_confidence_threshold:
                    candidate = candidates[i]
                    candidate.ml_confidence = max(candidate.ml_confidence, confidence)
                    candidate.ml_label = label

        if self.config.use_decision_tree:
            self.tree = DecisionTree(
                max_depth=self.config.tree_max_depth,
                min_samples_split=self.config.tree_min_samples
            )
            self.tree.fit(self.training_data)
            for i, row in zip(indices, matrix):
                label = self.tree.predict(row)
                if label:
                    candidate = candidates[i]
                    candidate.ml_confidence = max(
                        candidate.ml_confidence, correction.tree_confidence_floor
                    )
                    if candidate.ml_label is None:
                        candidate.ml_label = label

    # ------------------------------------------------------------------
    # Correction passes
    # ------------------------------------------------------------------

    def cluster_majority_correction(self, candidates: Sequence[GlyphCandidate]) -> int:
        """
        Relabel low-confidence outliers inside each cluster.

        When one character holds a strict majority of a cluster (of two or
        more members), members with another character and OCR confidence
        below the limit take the majority character and get their ML
        confidence floored.

        Returns:
            Number of relabelled candidates
        """
        correction = self.config.correction
        clusters: Dict[int, List[GlyphCandidate]] = {}
        for candidate in candidates:
            if candidate.cluster_id is not None:
                clusters.setdefault(candidate.cluster_id, []).append(candidate)

        corrected = 0
        for cluster_id, members in clusters.items():
            if len(members) < 2:
                continue

            counts: Dict[str, int] = {}
            for member in members:
                counts[member.char] = counts.get(member.char, 0) + 1

            majority, majority_count = "", 0
            for char, count in counts.items():
                if count > majority_count:
                    majority, majority_count = char, count

            if majority_count <= len(members) / 2:
                continue

            for member in members:
                if member.char != majority and member.ocr_confidence < correction.cluster_min_ocr_confidence:
                    logger.debug(
                        f"Cluster {cluster_id}: {member.id} {member.char!r} -> {majority!r}"
                    )
                    member.char = majority
                    member.ml_confidence = max(member.ml_confidence, correction.cluster_confidence_floor)
                    corrected += 1

        return corrected

    def context_correction(self, candidates: Sequence[GlyphCandidate]) -> int:
        """
        Penalize repeated low-confidence characters in reading order.

        Walking the candidates in reading order, when two neighbours carry
        the same character and both OCR confidences are below the limit, the
        second loses the penalty (never below 0).

        Returns:
            Number of penalized candidates
        """
        correction = self.config.correction
        ordered = sort_reading_order(candidates, correction.row_tolerance, key=lambda c: c.bbox)

        penalized = 0
        for prev, curr in zip(ordered, ordered[1:]):
            if (
                prev.char == curr.char
                and prev.ocr_confidence < correction.context_max_ocr_confidence
                and curr.ocr_confidence < correction.context_max_ocr_confidence
            ):
                curr.ocr_confidence = max(0.0, curr.ocr_confidence - correction.context_penalty)
                penalized += 1

        return penalized

    def blend_confidence(self, candidates: Sequence[GlyphCandidate]):
        """Final score: weighted OCR, segmentation and ML confidence on a 0-100 scale."""
        correction = self.config.correction
        for candidate in candidates:
            candidate.confidence = round_half_up(
                candidate.ocr_confidence * correction.ocr_weight
                + candidate.segmentation_score * 100 * correction.segmentation_weight
                + candidate.ml_confidence * 100 * correction.ml_weight
            )

    # ------------------------------------------------------------------
    # Training data
    # ------------------------------------------------------------------

    @property
    def training_data_count(self) -> int:
        return len(self.training_data)

    def add_training_sample(self, region: PixelBuffer, label: str):
        """Store the features of an operator-labelled glyph crop."""
        if not label:
            raise ValueError("Training samples need a non-empty label")
        self.training_data.append(TrainingSample(self.extractor.extract(region), label))

    def add_training_samples(self, batch: Iterable[Tuple[PixelBuffer, str]]):
        for region, label in batch:
            self.add_training_sample(region, label)

    def clear_training_data(self):
        self.training_data = []

    def export_training_data(self) -> str:
        """Training samples as a JSON list of feature/label objects."""
        return json.dumps([s.to_dict() for s in self.training_data])

    def import_training_data(self, serialized: str, strict: bool = False) -> bool:
        """
        Replace the training samples with serialized ones.

        Nothing is applied unless the whole input is valid.

        Returns:
            True on success; False if the input was rejected (logged), unless
            ``strict`` is set, in which case MalformedTrainingData is raised
        """
        try:
            samples = parse_training_data(serialized)
        except MalformedTrainingData as e:
            logger.error(f"Failed to import training data: {e}")
            if strict:
                raise
            return False

        self.training_data = samples
        logger.info(f"Imported {len(samples)} training samples")
        return True
