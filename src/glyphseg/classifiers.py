"""
Supervised classifiers used to refine OCR confidence.

Provides:
- TrainingSample: a labelled feature vector
- KNN: k-nearest-neighbour voting, plain and distance-weighted
- DecisionTree: shallow entropy-based binary tree
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

# Added to distances before inverting them into vote weights
DISTANCE_EPSILON = 0.001


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class TrainingSample:
    """A feature vector with its operator-confirmed label."""
    features: np.ndarray
    label: str

    def __post_init__(self):
        self.features = np.asarray(self.features, dtype=np.float64)

    def to_dict(self) -> Dict[str, object]:
        return {"features": self.features.tolist(), "label": self.label}


@dataclass
class Leaf:
    """Terminal tree node."""
    label: str


@dataclass
class Internal:
    """Split node: samples with features[feature_index] <= threshold go left."""
    feature_index: int
    threshold: float
    left: 'DecisionNode'
    right: 'DecisionNode'


DecisionNode = Union[Leaf, Internal]


def _stack_samples(samples: Sequence[TrainingSample]) -> Tuple[np.ndarray, List[str]]:
    """Stack sample features into a matrix, rejecting mixed arity."""
    arities = {len(s.features) for s in samples}
    if len(arities) > 1:
        raise ValueError(f"Training samples have mixed feature lengths: {sorted(arities)}")
    matrix = np.vstack([s.features for s in samples])
    return matrix, [s.label for s in samples]


def _majority(labels: Sequence[str]) -> str:
    """Most frequent label; the first one to reach the top count wins ties."""
    counts: Dict[str, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1

    best_label, best_count = "", 0
    for label, count in counts.items():
        if count > best_count:
            best_label, best_count = label, count
    return best_label


# ============================================================================
# K-Nearest Neighbours
# ============================================================================

class KNN:
    """
    K-nearest-neighbour classifier over raw training vectors.

    Unlabelled samples are stored but never vote.
    """

    def __init__(self, k: int = 5):
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.k = k
        self.samples: List[TrainingSample] = []
        self._matrix: Optional[np.ndarray] = None

    def fit(self, samples: Sequence[TrainingSample]) -> 'KNN':
        """Store the training samples (replacing any previous ones)."""
        samples = list(samples)
        if samples:
            _stack_samples(samples)
        self.samples = samples
        self._matrix = None
        return self

    def add_sample(self, sample: TrainingSample):
        if self.samples and len(sample.features) != len(self.samples[0].features):
            raise ValueError(
                f"Sample has {len(sample.features)} features, "
                f"expected {len(self.samples[0].features)}"
            )
        self.samples.append(sample)
        self._matrix = None

    def clear(self):
        self.samples = []
        self._matrix = None

    def _neighbors(self, features: Sequence[float]) -> List[Tuple[str, float]]:
        """The k nearest labelled samples as (label, distance), nearest first."""
        labelled = [s for s in self.samples if s.label]
        if not labelled:
            return []
        if self._matrix is None or len(self._matrix) != len(labelled):
            self._matrix = np.vstack([s.features for s in labelled])

        query = np.asarray(features, dtype=np.float64)
        distances = np.sqrt(((self._matrix - query) ** 2).sum(axis=1))
        order = np.argsort(distances, kind="stable")[:min(self.k, len(labelled))]
        return [(labelled[i].label, float(distances[i])) for i in order]

    def predict(self, features: Sequence[float]) -> Optional[str]:
        """Majority label among the k nearest samples, or None without data."""
        neighbors = self._neighbors(features)
        if not neighbors:
            return None
        return _majority([label for label, _ in neighbors])

    def predict_batch(self, data: Sequence[Sequence[float]]) -> List[Optional[str]]:
        return [self.predict(row) for row in data]

    def predict_with_confidence(self, features: Sequence[float]) -> Tuple[Optional[str], float]:
        """
        Distance-weighted vote.

        Each neighbour votes with weight 1 / (distance + 0.001); the
        confidence is the winning weight over the total weight.

        Returns:
            (label, confidence), or (None, 0.0) without training data
        """
        neighbors = self._neighbors(features)
        if not neighbors:
            return None, 0.0

        votes: Dict[str, float] = {}
        total = 0.0
        for label, distance in neighbors:
            weight = 1.0 / (distance + DISTANCE_EPSILON)
            votes[label] = votes.get(label, 0.0) + weight
            total += weight

        best_label, best_weight = None, 0.0
        for label, weight in votes.items():
            if weight > best_weight:
                best_label, best_weight = label, weight

        confidence = best_weight / total if total > 0 else 0.0
        return best_label, confidence


# ============================================================================
# Decision Tree
# ============================================================================

def entropy(counts: np.ndarray, sizes: np.ndarray) -> np.ndarray:
    """
    Shannon entropy (base 2) of each row of a label-count matrix.

    Probabilities are taken over ``sizes`` (the row's sample count), so
    unlabelled samples dilute the distribution without adding a class.
    Rows with size 0 have entropy 0.
    """
    sizes = np.asarray(sizes, dtype=np.float64)[:, np.newaxis]
    p = np.divide(counts, sizes, out=np.zeros_like(counts, dtype=np.float64), where=sizes > 0)
    logs = np.log2(p, out=np.zeros_like(p), where=p > 0)
    return -(p * logs).sum(axis=1)


class DecisionTree:
    """
    Shallow binary decision tree grown by information gain.

    Args:
        max_depth: Nodes at this depth become majority leaves
        min_samples_split: Nodes with fewer samples become majority leaves
    """

    def __init__(self, max_depth: int = 5, min_samples_split: int = 5):
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.root: Optional[DecisionNode] = None

    @property
    def is_fitted(self) -> bool:
        return self.root is not None

    def fit(self, samples: Sequence[TrainingSample]) -> 'DecisionTree':
        samples = list(samples)
        if not samples:
            return self
        matrix, labels = _stack_samples(samples)
        self.root = self._build(matrix, np.array(labels, dtype=object), depth=0)
        logger.debug(f"Decision tree fitted on {len(samples)} samples, depth {self.depth()}")
        return self

    def predict(self, features: Sequence[float]) -> Optional[str]:
        """Label of the leaf ``features`` falls into, or None if unfitted."""
        if self.root is None:
            return None
        node = self.root
        while isinstance(node, Internal):
            node = node.left if features[node.feature_index] <= node.threshold else node.right
        return node.label or None

    def predict_batch(self, data: Sequence[Sequence[float]]) -> List[Optional[str]]:
        return [self.predict(row) for row in data]

    def depth(self) -> int:
        """Number of split levels below the root."""
        def walk(node: Optional[DecisionNode]) -> int:
            if not isinstance(node, Internal):
                return 0
            return 1 + max(walk(node.left), walk(node.right))
        return walk(self.root)

    def _build(self, matrix: np.ndarray, labels: np.ndarray, depth: int) -> DecisionNode:
        distinct = {label for label in labels if label}
        if len(distinct) == 1:
            return Leaf(next(iter(distinct)))

        if depth >= self.max_depth or len(labels) < self.min_samples_split:
            return Leaf(_majority([label for label in labels if label]))

        feature_index, threshold = self._best_split(matrix, labels)
        goes_left = matrix[:, feature_index] <= threshold

        if goes_left.all() or not goes_left.any():
            return Leaf(_majority([label for label in labels if label]))

        return Internal(
            feature_index=feature_index,
            threshold=threshold,
            left=self._build(matrix[goes_left], labels[goes_left], depth + 1),
            right=self._build(matrix[~goes_left], labels[~goes_left], depth + 1),
        )

    def _best_split(self, matrix: np.ndarray, labels: np.ndarray) -> Tuple[int, float]:
        """
        Best (feature, threshold) by information gain.

        Candidate thresholds are midpoints between consecutive sorted values
        of each feature; splits with an empty side are skipped. Features and
        thresholds are scanned in order and only a strictly larger gain
        replaces the current best. Falls back to (0, 0.0) when no split
        separates anything.
        """
        n, num_features = matrix.shape
        classes, encoded = np.unique(labels.astype(str), return_inverse=True)
        one_hot = np.zeros((n, len(classes)), dtype=np.float64)
        one_hot[np.arange(n), encoded] = 1.0
        # Unlabelled samples count towards sizes but not towards entropy
        one_hot[labels == ""] = 0.0

        parent = float(entropy(one_hot.sum(axis=0)[np.newaxis, :], np.array([n]))[0])

        best_gain = -math.inf
        best_feature, best_threshold = 0, 0.0
        if n < 2:
            return best_feature, best_threshold

        for feature_index in range(num_features):
            order = np.argsort(matrix[:, feature_index], kind="stable")
            values = matrix[order, feature_index]

            thresholds = (values[:-1] + values[1:]) / 2
            # Samples with value <= threshold go left
            left_sizes = np.searchsorted(values, thresholds, side="right")
            right_sizes = n - left_sizes

            cumulative = np.vstack([np.zeros(len(classes)), np.cumsum(one_hot[order], axis=0)])
            left_counts = cumulative[left_sizes]
            right_counts = cumulative[-1] - left_counts

            gains = parent - (
                left_sizes / n * entropy(left_counts, left_sizes)
                + right_sizes / n * entropy(right_counts, right_sizes)
            )
            gains[right_sizes == 0] = -math.inf

            # argmax keeps the first threshold among equal gains
            i = int(np.argmax(gains))
            if gains[i] > best_gain:
                best_gain = float(gains[i])
                best_feature = feature_index
                best_threshold = float(thresholds[i])

        return best_feature, best_threshold
