from __future__ import annotations

from typing import List, Sequence

from .config import DEFAULT_TUNING, TuningConfig
from .pipeline_types import PreferenceWeight


def find_natural_split(
    weights: Sequence[float],
    min_threshold: float | None = None,
    tuning: TuningConfig = DEFAULT_TUNING,
) -> int:
    """
    Return how many leading entries of a descending weight list to keep.

    Scans the first ``gap_scan_pairs`` adjacent pairs for the largest drop
    above ``max(gap_floor, top * gap_top_share)``; a drop that is large
    relative to the current weight also qualifies, and a very large one ends
    the scan. Without a qualifying gap, keep up to ``fallback_top_n`` entries
    above ``min_threshold``. Never returns less than 1 for a non-empty list.
    """
    n = len(weights)
    if n <= 3:
        return n
    if min_threshold is None:
        min_threshold = tuning.min_weight

    split_idx = n
    max_gap = 0.0
    gap_threshold = max(tuning.gap_floor, weights[0] * tuning.gap_top_share)
    for i in range(min(n - 1, tuning.gap_scan_pairs)):
        current = weights[i]
        gap = current - weights[i + 1]
        relative = gap / current if current > 0 else 0.0
        if (gap > max_gap and gap > gap_threshold) or relative > tuning.relative_gap:
            max_gap = gap
            split_idx = i + 1
            if relative > tuning.strong_relative_gap:
                break

    if split_idx == n:
        above = sum(1 for w in weights if w > min_threshold)
        return max(1, min(tuning.fallback_top_n, above))
    return split_idx


def select_top(
    ranked: Sequence[PreferenceWeight],
    tuning: TuningConfig = DEFAULT_TUNING,
) -> List[PreferenceWeight]:
    """Cut a descending list at its natural split and drop weak entries."""
    if not ranked:
        return []
    split_idx = find_natural_split([p.weight for p in ranked], tuning=tuning)
    return [p for p in ranked[:split_idx] if p.weight > tuning.min_weight]
