"""Centralised k-means clustering with k-means++ seeding."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import numpy as np

from fedmnist.mnist import IMAGE_SIZE, load_idx_images

log = logging.getLogger(__name__)

DEFAULT_IMAGES = "../data/train-images.idx3-ubyte"
DEFAULT_CLUSTERS = 10


class CentralizedKMeans:
    """Lloyd's k-means over rows of a data matrix; centroids are float32."""

    def __init__(
        self,
        k: int,
        max_iters: int = 100,
        tolerance: float = 1e-5,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k
        self.max_iters = max_iters
        self.tolerance = tolerance
        self._rng = rng if rng is not None else np.random.default_rng()
        self.centroids: Optional[np.ndarray] = None
        self.iterations = 0
        self.converged = False

    @staticmethod
    def _as_data(data) -> np.ndarray:
        points = np.asarray(data, dtype=np.float64)
        if points.ndim != 2 or points.shape[0] == 0:
            raise ValueError("data must be a non-empty two-dimensional array")
        return points

    @staticmethod
    def _squared_distances(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        centres = centroids.astype(np.float64)
        distances = (
            (points * points).sum(axis=1)[:, None]
            - 2.0 * (points @ centres.T)
            + (centres * centres).sum(axis=1)[None, :]
        )
        return np.maximum(distances, 0.0)

    def _initialize_plus_plus(self, points: np.ndarray, centroids: np.ndarray) -> None:
        samples = len(points)
        first = int(self._rng.integers(samples))
        centroids[0] = points[first]
        nearest = self._squared_distances(points, centroids[:1])[:, 0]

        for c in range(1, self.k):
            total = float(nearest.sum())
            target = self._rng.uniform(0.0, total)
            chosen = int(np.searchsorted(np.cumsum(nearest), target, side="left"))
            if chosen < samples:
                centroids[c] = points[chosen]
            nearest = np.minimum(
                nearest, self._squared_distances(points, centroids[c : c + 1])[:, 0]
            )

    def _update(self, points: np.ndarray, assignments: np.ndarray, centroids: np.ndarray) -> None:
        counts = np.bincount(assignments, minlength=self.k)
        sums = np.zeros((self.k, points.shape[1]), dtype=np.float64)
        np.add.at(sums, assignments, points)
        filled = counts > 0
        centroids[filled] = (sums[filled] / counts[filled, None]).astype(np.float32)

    def fit(self, data) -> "CentralizedKMeans":
        """Seed with k-means++ and iterate until the inertia stops changing."""
        points = self._as_data(data)
        centroids = np.zeros((self.k, points.shape[1]), dtype=np.float32)
        self._initialize_plus_plus(points, centroids)

        self.converged = False
        self.iterations = 0
        previous = sys.float_info.max
        for iteration in range(self.max_iters):
            self.iterations = iteration + 1
            assignments = np.argmin(self._squared_distances(points, centroids), axis=1)
            self._update(points, assignments, centroids)
            current = float(self._squared_distances(points, centroids).min(axis=1).sum())
            if abs(previous - current) < self.tolerance:
                log.info("Centralized K-means converged at iteration %d", iteration)
                self.converged = True
                break
            previous = current
            if iteration % 10 == 0:
                log.info(
                    "Centralized K-means iteration %d, inertia: %s", iteration, current
                )

        self.centroids = centroids
        return self

    def calculate_inertia(self, data) -> float:
        """Sum of squared distances from each row to its nearest centroid."""
        if self.centroids is None:
            raise RuntimeError("the model has not been fitted")
        points = self._as_data(data)
        if points.shape[1] != self.centroids.shape[1]:
            raise ValueError(
                f"expected rows of {self.centroids.shape[1]} values, got {points.shape[1]}"
            )
        return float(self._squared_distances(points, self.centroids).min(axis=1).sum())


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Cluster the MNIST training images and print the final inertia."""
    parser = argparse.ArgumentParser(description="Centralised k-means on MNIST images.")
    parser.add_argument("images", nargs="?", default=DEFAULT_IMAGES)
    args = parser.parse_args(argv)

    try:
        pixels = load_idx_images(args.images)
        samples = pixels.size // IMAGE_SIZE
        data = (
            pixels[: samples * IMAGE_SIZE].astype(np.float32) / np.float32(255.0)
        ).reshape(samples, IMAGE_SIZE)
        print(f"Loaded {samples} training samples")

        kmeans = CentralizedKMeans(DEFAULT_CLUSTERS, 100, 1e-5)
        print("Starting centralized K-means training...")
        kmeans.fit(data)

        final_inertia = kmeans.calculate_inertia(data)
        print("=== Centralized Baseline Results ===")
        print(f"Final inertia: {final_inertia}")
        print(f"Number of clusters: {DEFAULT_CLUSTERS}")
        print(f"Training samples: {samples}")
        print("=================================")
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0