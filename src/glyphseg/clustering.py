"""
K-means clustering of glyph feature vectors.

Seeding follows k-means++; refinement uses Lloyd iterations. Randomness comes
from a numpy Generator so a fixed seed gives reproducible clusters.
"""

import logging
from typing import Optional, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, Sequence[Sequence[float]]]


def euclidean_distances(points: np.ndarray, centers: np.ndarray) -> np.ndarray:
    """(n, k) matrix of Euclidean distances between rows of two arrays."""
    diff = points[:, np.newaxis, :] - centers[np.newaxis, :, :]
    return np.sqrt((diff * diff).sum(axis=2))


class KMeans:
    """
    K-means with k-means++ seeding.

    Args:
        k: Number of clusters
        max_iterations: Hard cap on Lloyd iterations; hitting it is accepted
        tolerance: Converged when no centroid moves farther than this
        seed: Seed for the random generator (None = fresh entropy)
    """

    def __init__(
        self,
        k: int,
        max_iterations: int = 100,
        tolerance: float = 0.001,
        seed: Optional[int] = None
    ):
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.k = k
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.seed = seed
        self.centroids = np.empty((0, 0))
        self.n_iter_ = 0
        self.converged_ = False
        self._rng = np.random.default_rng(seed)

    @property
    def is_fitted(self) -> bool:
        return len(self.centroids) > 0

    def fit(self, data: ArrayLike) -> np.ndarray:
        """
        Cluster the rows of ``data``.

        Returns:
            The (k, d) centroid array; empty input gives an empty array and
            leaves the model unfitted
        """
        points = np.asarray(data, dtype=np.float64)
        if points.size == 0:
            self.centroids = np.empty((0, 0))
            self.n_iter_ = 0
            self.converged_ = False
            return self.centroids
        if points.ndim != 2:
            raise ValueError(f"Expected a 2-D array of feature vectors, got shape {points.shape}")

        centroids = self._initialize_centroids(points)

        iterations = 0
        converged = False
        while not converged and iterations < self.max_iterations:
            assignments = self._nearest(points, centroids)

            new_centroids = centroids.copy()
            for i in range(self.k):
                members = points[assignments == i]
                # Empty clusters keep their previous centroid
                if len(members) > 0:
                    new_centroids[i] = members.mean(axis=0)

            shift = np.sqrt(((new_centroids - centroids) ** 2).sum(axis=1))
            converged = bool((shift <= self.tolerance).all())
            centroids = new_centroids
            iterations += 1

        self.centroids = centroids
        self.n_iter_ = iterations
        self.converged_ = converged

        if converged:
            logger.debug(f"K-means (k={self.k}) converged after {iterations} iterations")
        else:
            logger.debug(f"K-means (k={self.k}) stopped at the {self.max_iterations} iteration cap")
        return self.centroids

    def predict(self, point: Sequence[float]) -> int:
        """Index of the centroid nearest to ``point``."""
        return int(self.predict_batch([point])[0])

    def predict_batch(self, data: ArrayLike) -> np.ndarray:
        """Nearest-centroid index of every row, without refitting."""
        if not self.is_fitted:
            raise RuntimeError("KMeans model is not fitted")
        points = np.asarray(data, dtype=np.float64)
        if points.size == 0:
            return np.empty(0, dtype=np.int64)
        return self._nearest(points, self.centroids)

    def _initialize_centroids(self, points: np.ndarray) -> np.ndarray:
        """k-means++: uniform first pick, then picks weighted by squared distance."""
        n = len(points)
        chosen = [points[self._rng.integers(n)]]

        while len(chosen) < self.k:
            distances = euclidean_distances(points, np.array(chosen)).min(axis=1)
            weights = distances * distances
            cumulative = np.cumsum(weights)
            target = self._rng.random() * cumulative[-1]
            # First index whose running total reaches the target
            index = int(np.searchsorted(cumulative, target, side="left"))
            chosen.append(points[min(index, n - 1)])

        return np.array(chosen, dtype=np.float64)

    @staticmethod
    def _nearest(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        # argmin returns the first minimum on ties
        return np.argmin(euclidean_distances(points, centroids), axis=1)
