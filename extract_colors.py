"""
Extract frequency-weighted colors from pixels and cluster them into dominant
colors with weighted k-means.

Weighted points are (n, 4) arrays with columns [r, g, b, count]; rows are in
order of first appearance in the pixel buffer.
"""

import logging
from typing import Optional

import numpy as np
from scipy.spatial.distance import cdist

from color_space import round_half_up, saturation_array, valid_pixel_mask
from visual_metadata import Color

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10
CONVERGENCE_DISTANCE = 1.0  # Squared RGB distance a centroid may still move


# =============================================================================
# Weighted Points
# =============================================================================

def extract_weighted_points(rgb: np.ndarray, log: Optional[logging.Logger] = None) -> np.ndarray:
    """
    Count distinct colors in a set of pixels.

    Args:
        rgb: Array of shape (n, 3) with channel values 0-255
        log: Receives a warning when pixels are dropped (module logger if None)

    Returns:
        numpy array of shape (n_colors, 4) where columns are [r, g, b, count],
        ordered by first appearance. Pixels with a channel that is not an
        integer in 0-255 are dropped.
    """
    log = log or logger
    pixels = np.asarray(rgb, dtype=np.float64).reshape(-1, 3)
    valid = valid_pixel_mask(pixels)

    dropped = len(pixels) - int(np.count_nonzero(valid))
    if dropped:
        log.warning('Invalid color key for %d of %d pixels', dropped, len(pixels))

    pixels = pixels[valid]
    if len(pixels) == 0:
        return np.empty((0, 4), dtype=np.float64)

    unique, first_index, counts = np.unique(
        pixels, axis=0, return_index=True, return_counts=True
    )

    # Restore first-appearance order so sampling and sort ties are reproducible
    order = np.argsort(first_index, kind='stable')
    return np.column_stack([unique[order], counts[order].astype(np.float64)])


def boost_saturation(points: np.ndarray, saturation_factor: float = 1.0) -> np.ndarray:
    """
    Scale counts by (1 + saturation_factor * saturation).

    Keeps low-frequency but visually striking accent colors from being
    absorbed by large muted areas during quantization.
    """
    boosted = np.array(points, dtype=np.float64, copy=True)
    if len(boosted) == 0 or saturation_factor == 0:
        return boosted
    boosted[:, 3] *= 1 + saturation_factor * saturation_array(boosted[:, :3])
    return boosted


# =============================================================================
# Weighted K-Means
# =============================================================================

def _weighted_choice(weights: np.ndarray, rng: np.random.Generator) -> int:
    """Index of the first entry whose running weight reaches a random draw."""
    cumulative = np.cumsum(weights)
    target = rng.random() * cumulative[-1]
    index = int(np.searchsorted(cumulative, target, side='left'))
    return min(index, len(weights) - 1)


def initialize_centroids_kmeans_pp(points: np.ndarray, k: int,
                                   rng: np.random.Generator) -> np.ndarray:
    """
    Pick k starting centroids with frequency-weighted k-means++.

    The first centroid is drawn proportional to pixel count; each following
    one proportional to count * squared distance to the nearest centroid
    chosen so far.
    """
    coords = points[:, :3]
    weights = points[:, 3]

    centroids = [coords[_weighted_choice(weights, rng)]]

    while len(centroids) < k:
        nearest = cdist(coords, np.array(centroids), 'sqeuclidean').min(axis=1)
        centroids.append(coords[_weighted_choice(nearest * weights, rng)])

    return np.array(centroids, dtype=np.float64)


def kmeans_clustering(points: np.ndarray, centroids: np.ndarray,
                      max_iterations: int = DEFAULT_MAX_ITERATIONS,
                      rng: Optional[np.random.Generator] = None,
                      log: Optional[logging.Logger] = None) -> tuple[np.ndarray, np.ndarray]:
    """
    Run weighted Lloyd iterations.

    Args:
        points: Weighted points [r, g, b, count]
        centroids: Starting centroids, shape (k, 3)
        max_iterations: Iteration cap
        rng: Source for reseeding empty clusters

    Returns:
        (centroids, cluster_weights) after convergence or the iteration cap.
        An empty cluster is reseeded to a uniformly random input point and
        reported with weight 0.
    """
    log = log or logger
    if rng is None:
        rng = np.random.default_rng()

    coords = points[:, :3]
    weights = points[:, 3]
    centroids = np.array(centroids, dtype=np.float64, copy=True)
    k = len(centroids)
    cluster_weights = np.zeros(k)

    for iteration in range(max_iterations):
        # argmin keeps the first minimum, so ties go to the lowest index
        labels = cdist(coords, centroids, 'sqeuclidean').argmin(axis=1)

        weight_sums = np.bincount(labels, weights=weights, minlength=k)
        channel_sums = np.column_stack([
            np.bincount(labels, weights=coords[:, c] * weights, minlength=k)
            for c in range(3)
        ])

        converged = True
        for i in range(k):
            if weight_sums[i] > 0:
                new_centroid = channel_sums[i] / weight_sums[i]
                if np.sum((centroids[i] - new_centroid) ** 2) > CONVERGENCE_DISTANCE:
                    converged = False
                centroids[i] = new_centroid
                cluster_weights[i] = weight_sums[i]
            else:
                centroids[i] = coords[rng.integers(len(coords))]
                cluster_weights[i] = 0
                converged = False

        if converged:
            log.debug('k-means converged after %d iterations', iteration + 1)
            break

    return centroids, cluster_weights


def extract_dominant_colors(points: np.ndarray, k: int,
                            max_iterations: int = DEFAULT_MAX_ITERATIONS,
                            rng: Optional[np.random.Generator] = None,
                            log: Optional[logging.Logger] = None) -> list[Color]:
    """
    Cluster weighted colors into k dominant colors.

    Args:
        points: Weighted points from extract_weighted_points()
        k: Number of clusters
        max_iterations: Lloyd iteration cap
        rng: Random source for seeding (fresh default_rng() if None)

    Returns:
        Up to k Colors sorted by cluster weight descending. If there are no
        more than k distinct colors they are returned unclustered, sorted by
        count descending.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 4)
    if len(points) == 0 or k < 1:
        return []

    if len(points) <= k:
        order = np.argsort(-points[:, 3], kind='stable')
        return [Color.from_rgb(p[:3]) for p in points[order]]

    if rng is None:
        rng = np.random.default_rng()

    centroids = initialize_centroids_kmeans_pp(points, k, rng)
    centroids, cluster_weights = kmeans_clustering(
        points, centroids, max_iterations=max_iterations, rng=rng, log=log
    )

    # Most represented cluster first
    order = np.argsort(-cluster_weights, kind='stable')
    rgb = np.clip(round_half_up(centroids[order]), 0, 255)

    return [Color.from_rgb(c) for c in rgb]
