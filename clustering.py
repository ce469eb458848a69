"""
K-means clustering of sampled pixels and formatting of the resulting centroids.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.cluster.vq import ClusterError, kmeans2

from color_utils import format_rgb, rgb_to_hex, round_channels
from errors import ClusteringError, ConfigurationError, EmptyInputError

logger = logging.getLogger(__name__)

SEED_STRATEGIES = ('fixed', 'per_run')
KMEANS_ITERATIONS = 100


@dataclass
class ClusterResult:
    """Output of a single clustering run."""
    centroids: np.ndarray  # (k, 3) float centroids
    labels: np.ndarray  # (n,) cluster index per sample

    @property
    def k(self) -> int:
        return len(self.centroids)

    @property
    def sample_count(self) -> int:
        return len(self.labels)


@dataclass
class FormattedColor:
    """A centroid rounded once and rendered as its canonical string."""
    key: str  # "rgb(r,g,b)" or "#rrggbb"; the identity used for merging
    rgb: tuple  # rounded (r, g, b)
    value: np.ndarray  # original real-valued centroid


def validate_k(samples: np.ndarray, k: int) -> None:
    """Reject k values that clustering cannot honor exactly."""
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k <= 0:
        raise ConfigurationError(f"k must be a positive integer, got {k!r}",
                                 operation="cluster", parameter="k")
    if len(samples) == 0:
        raise EmptyInputError("no pixels were sampled; the image has zero area",
                              operation="cluster")
    distinct = len(np.unique(samples, axis=0))
    if k > distinct:
        raise ConfigurationError(
            f"k={k} exceeds the {distinct} distinct sampled colors",
            operation="cluster", parameter="k",
        )


def run_kmeans(samples: np.ndarray, k: int, seed: Optional[int] = None) -> ClusterResult:
    """
    Cluster RGB samples into exactly k centroids.

    Uses k-means++ initialization and KMEANS_ITERATIONS refinement passes.
    An empty cluster is reported as an error rather than returning fewer
    than k colors.

    Raises:
        ClusteringError: If the clustering routine fails.
    """
    data = np.asarray(samples, dtype=np.float64)
    try:
        centroids, labels = kmeans2(data, k, iter=KMEANS_ITERATIONS, minit='++',
                                    missing='raise', rng=seed)
    except (ClusterError, ValueError, np.linalg.LinAlgError) as e:
        raise ClusteringError(f"k-means failed with k={k}, seed={seed}: {e}",
                              operation="cluster", parameter="k") from e

    if len(centroids) != k:
        raise ClusteringError(f"expected {k} centroids, got {len(centroids)}",
                              operation="cluster", parameter="k")

    return ClusterResult(centroids=centroids, labels=labels.astype(np.int64))


def run_seeds(runs: int, seed: Optional[int], strategy: str = 'fixed') -> list:
    """
    Seeds for each clustering run.

    'fixed' (the default) uses the same seed for every run, so runs over the
    same samples agree key for key and the palette holds at most k colors.
    'per_run' offsets the base seed by the run index; nearby centroids from
    different runs then round to different keys and the palette can grow
    past k. A seed of None leaves every run unseeded.
    """
    if isinstance(runs, bool) or not isinstance(runs, (int, np.integer)) or runs <= 0:
        raise ConfigurationError(f"runs must be a positive integer, got {runs!r}",
                                 operation="cluster", parameter="runs")
    if strategy not in SEED_STRATEGIES:
        raise ConfigurationError(
            f"unknown seed strategy {strategy!r}, expected one of {SEED_STRATEGIES}",
            operation="cluster", parameter="seed_strategy",
        )
    if seed is None:
        return [None] * runs
    if strategy == 'fixed':
        return [seed] * runs
    return [seed + i for i in range(runs)]


def cluster_runs(samples_for_run: Callable[[int, Optional[int]], np.ndarray],
                 k: int, seeds: list, workers: int = 1) -> list:
    """
    Run k-means once per seed.

    Args:
        samples_for_run: Called with (run_index, seed), returns that run's samples
        k: Number of clusters
        seeds: One seed per run (see run_seeds)
        workers: Threads to spread runs over; 1 runs them in order

    Returns:
        List of (samples, ClusterResult) pairs in run order.
    """
    if isinstance(workers, bool) or not isinstance(workers, (int, np.integer)) or workers <= 0:
        raise ConfigurationError(f"workers must be a positive integer, got {workers!r}",
                                 operation="cluster", parameter="workers")

    # Validate every run's samples up front so no clustering starts on bad input
    run_samples = [samples_for_run(i, s) for i, s in enumerate(seeds)]
    for samples in run_samples:
        validate_k(samples, k)

    def one_run(index):
        result = run_kmeans(run_samples[index], k, seeds[index])
        logger.debug("Run %d (seed=%s): cluster sizes %s", index, seeds[index],
                     np.bincount(result.labels, minlength=k).tolist())
        return run_samples[index], result

    if workers == 1 or len(seeds) == 1:
        return [one_run(i) for i in range(len(seeds))]

    with ThreadPoolExecutor(max_workers=min(workers, len(seeds))) as executor:
        return list(executor.map(one_run, range(len(seeds))))


def format_centroids(centroids: np.ndarray, use_hex: bool = False) -> list[FormattedColor]:
    """Round each centroid once and build its rgb() or hex key."""
    formatted = []
    for centroid in centroids:
        rgb = round_channels(centroid)
        key = rgb_to_hex(rgb) if use_hex else format_rgb(rgb)
        formatted.append(FormattedColor(key=key, rgb=rgb, value=np.asarray(centroid)))
    return formatted
