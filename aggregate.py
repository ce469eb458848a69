"""
Merge colors from several clustering runs into one ranked palette.

Each run contributes its formatted centroids with the fraction of samples
assigned to them. Runs are folded together by exact color key, averaging the
ratios of keys that recur, then ranked by ratio with brighter colors winning
exact ties. The top of the ranking is the dominant color.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

import numpy as np

from clustering import FormattedColor
from color_utils import delta_e, relative_luminance
from errors import EmptyInputError

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 20.0  # CIEDE2000 units


@dataclass(frozen=True)
class RankedColor:
    """A formatted color with its prevalence."""
    key: str
    rgb: tuple
    value: np.ndarray = field(compare=False)
    ratio: float = 0.0
    count: int = 1  # runs in which this key occurred

    @property
    def luminance(self) -> float:
        return relative_luminance(self.rgb)


def color_ratios(labels: np.ndarray, k: int) -> np.ndarray:
    """Fraction of samples assigned to each of the k clusters."""
    labels = np.asarray(labels, dtype=np.int64)
    if len(labels) == 0:
        return np.zeros(k)
    return np.bincount(labels, minlength=k)[:k] / len(labels)


def rank_run(colors: list[FormattedColor], ratios: np.ndarray) -> list[RankedColor]:
    """Attach each run color's ratio, keeping centroid order."""
    return [
        RankedColor(key=c.key, rgb=c.rgb, value=c.value, ratio=float(r))
        for c, r in zip(colors, ratios)
    ]


def filter_similar_colors(colors: list[FormattedColor], ratios: np.ndarray,
                          threshold: float = SIMILARITY_THRESHOLD) -> list[RankedColor]:
    """
    Fold perceptually similar colors of one run into each other.

    Colors are visited in centroid order. A color closer than `threshold`
    (CIEDE2000) to an already accepted color adds its ratio to the first
    such color; otherwise it is accepted as a new entry.
    """
    accepted = []
    for color, ratio in zip(colors, ratios):
        if accepted:
            distances = delta_e(color.rgb, np.array([a.rgb for a in accepted]))
            close = np.flatnonzero(distances < threshold)
            if len(close):
                target = close[0]
                accepted[target] = replace(accepted[target],
                                           ratio=accepted[target].ratio + float(ratio))
                continue
        accepted.append(RankedColor(key=color.key, rgb=color.rgb,
                                    value=color.value, ratio=float(ratio)))
    return accepted


def stabilize_colors(run_colors: Iterable[list[RankedColor]]) -> list[RankedColor]:
    """
    Merge colors across runs by exact key.

    Returns a new list, in first-occurrence order, where each key's ratio
    is the mean of its ratios over the runs it appeared in.
    """
    totals = {}
    for colors in run_colors:
        for color in colors:
            if color.key not in totals:
                totals[color.key] = (color, color.ratio, 1)
            else:
                first, ratio_sum, count = totals[color.key]
                totals[color.key] = (first, ratio_sum + color.ratio, count + 1)

    return [
        replace(first, ratio=ratio_sum / count, count=count)
        for first, ratio_sum, count in totals.values()
    ]


def sort_colors_by_ratio(colors: list[RankedColor]) -> list[RankedColor]:
    """Sort by ratio descending, then luminance descending. Stable on full ties."""
    return sorted(colors, key=lambda c: (-c.ratio, -c.luminance))


def dominant_color(sorted_colors: list[RankedColor]) -> RankedColor:
    if not sorted_colors:
        raise EmptyInputError("no colors to choose a dominant color from",
                              operation="dominant_color")
    return sorted_colors[0]


def aggregate(run_colors: Iterable[list[RankedColor]]) -> list[RankedColor]:
    """
    Stabilize and rank colors from all runs.

    Returns:
        Ranked colors, dominant first.

    Raises:
        EmptyInputError: If no run produced any color.
    """
    stabilized = stabilize_colors(run_colors)
    if not stabilized:
        raise EmptyInputError("clustering runs produced no colors",
                              operation="aggregate")

    ranked = sort_colors_by_ratio(stabilized)
    logger.debug("Aggregated %d distinct colors; dominant %s (ratio %.3f)",
                 len(ranked), ranked[0].key, ranked[0].ratio)
    return ranked
