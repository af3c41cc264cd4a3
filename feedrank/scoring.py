from __future__ import annotations

"""
Per-record preference scores and the closed-form interest scorer.

Both scoring strategies share :func:`preference_score`: explicit feedback adds
fixed weights, and records without any explicit feedback fall back to a
dwell-time signal centred on half the item's duration. The heuristic scorer
folds those scores into one weight per topic/hashtag.
"""

from typing import Iterable, List, Sequence

import numpy as np
from loguru import logger

from .config import DEFAULT_TUNING, TuningConfig
from .ledger import InteractionRecord
from .pipeline_types import HASHTAG, TOPIC, InterestSnapshot, PreferenceWeight

DISENGAGED = 0
NEUTRAL = 1
ENGAGED = 2
NUM_CLASSES = 3


def preference_score(record: InteractionRecord, tuning: TuningConfig = DEFAULT_TUNING) -> float:
    score = 0.0
    if record.liked:
        score += tuning.weight_liked
    if record.interested:
        score += tuning.weight_interested
    if record.not_interested:
        score += tuning.weight_not_interested
    if record.commented:
        score += tuning.weight_commented
    if not record.has_explicit_feedback:
        duration = record.duration_ms or tuning.default_duration_ms
        ratio = (record.time_spent_ms or 0.0) / duration
        score += (ratio - 0.5) * 2
    return score


def engagement_class(score: float, tuning: TuningConfig = DEFAULT_TUNING) -> int:
    if score <= tuning.disengaged_threshold:
        return DISENGAGED
    if score >= tuning.engaged_threshold:
        return ENGAGED
    return NEUTRAL


def has_enough_signal(window: Sequence[InteractionRecord], tuning: TuningConfig = DEFAULT_TUNING) -> bool:
    return len(window) >= tuning.min_interactions


def sort_weights(weights: List[PreferenceWeight]) -> List[PreferenceWeight]:
    # stable, so equal weights keep vocabulary order
    return sorted(weights, key=lambda p: -p.weight)


def _score_names(
    names: Iterable[str],
    memberships: List[List[str]],
    scores: np.ndarray,
    window_size: int,
    domain: str,
    tuning: TuningConfig,
) -> List[PreferenceWeight]:
    positive = np.where(scores > 0, scores, 0.0)
    negative = np.where(scores < 0, -scores, 0.0)

    out: List[PreferenceWeight] = []
    for name in names:
        mask = np.array([name in m for m in memberships], dtype=bool)
        count = int(mask.sum())
        if count == 0:
            continue
        total = float(positive[mask].sum() - negative[mask].sum())
        avg = total / count
        weight = avg * tuning.heuristic_avg_share + (total / max(1, window_size)) * tuning.heuristic_total_share
        if weight == 0:
            continue
        out.append(PreferenceWeight(name=name, weight=weight, domain=domain))
    return sort_weights(out)


class HeuristicScorer:
    """
    Closed-form scorer used until the classifier has been trained.

    For every vocabulary name that occurs in the window:
      weight = avg * 0.6 + (total / window_size) * 0.4
    where total is the signed sum of record scores carrying the name and avg
    is total divided by the number of such records.
    """

    def __init__(self, tuning: TuningConfig = DEFAULT_TUNING) -> None:
        self.tuning = tuning

    def score(
        self,
        window: Sequence[InteractionRecord],
        topics: Sequence[str],
        hashtags: Sequence[str],
    ) -> InterestSnapshot:
        if not has_enough_signal(window, self.tuning):
            return InterestSnapshot()

        scores = np.array([preference_score(r, self.tuning) for r in window], dtype="float64")
        result = InterestSnapshot(
            topics=_score_names(topics, [r.topics for r in window], scores, len(window), TOPIC, self.tuning),
            hashtags=_score_names(hashtags, [r.hashtags for r in window], scores, len(window), HASHTAG, self.tuning),
        )
        logger.debug(
            "Heuristic scoring over {} records: {} topics, {} hashtags",
            len(window),
            len(result.topics),
            len(result.hashtags),
        )
        return result
