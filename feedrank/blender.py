from __future__ import annotations

"""
Temporal blending of interest results across scoring cycles.

Each completed cycle is appended to a small per-domain history (FIFO, 5
entries by default). A fresh result is blended against that history before it
is sent to the gateway, so interests fade out over several cycles instead of
vanishing the moment one window stops mentioning them.

Blending is sequential and compounding: for every retained snapshot, oldest
first, a name already in the result becomes

    w = w * 0.7 + prior * 0.3 * 0.8 ** (k - 1 - i)

so each later snapshot blends against the already-updated value. Names that
only appear in a snapshot are revived at ``prior * 0.4 * recency`` when the
prior weight exceeded 0.3.
"""

from collections import deque
from typing import Deque, Dict, Iterable, List, Sequence

from .config import DEFAULT_TUNING, TuningConfig
from .pipeline_types import HASHTAG, TOPIC, InterestSnapshot, PreferenceWeight
from .scoring import sort_weights


class SnapshotHistory:
    """Last few blended results, kept independently per domain."""

    def __init__(self, tuning: TuningConfig = DEFAULT_TUNING) -> None:
        self.tuning = tuning
        self.topics: Deque[List[PreferenceWeight]] = deque(maxlen=tuning.max_snapshots)
        self.hashtags: Deque[List[PreferenceWeight]] = deque(maxlen=tuning.max_snapshots)

    def __len__(self) -> int:
        return max(len(self.topics), len(self.hashtags))

    def append(self, snapshot: InterestSnapshot) -> None:
        # empty lists carry no signal and would only push real history out
        if snapshot.topics:
            self.topics.append([PreferenceWeight(p.name, p.weight, TOPIC) for p in snapshot.topics])
        if snapshot.hashtags:
            self.hashtags.append([PreferenceWeight(p.name, p.weight, HASHTAG) for p in snapshot.hashtags])

    def latest(self) -> InterestSnapshot:
        return InterestSnapshot(
            topics=list(self.topics[-1]) if self.topics else [],
            hashtags=list(self.hashtags[-1]) if self.hashtags else [],
        )

    def replace(self, topics: Iterable[List[PreferenceWeight]], hashtags: Iterable[List[PreferenceWeight]]) -> None:
        self.topics = deque(topics, maxlen=self.tuning.max_snapshots)
        self.hashtags = deque(hashtags, maxlen=self.tuning.max_snapshots)


def recency_weights(count: int, tuning: TuningConfig = DEFAULT_TUNING) -> List[float]:
    """Weights for ``count`` snapshots ordered oldest -> newest; newest is 1.0."""
    return [tuning.recency_decay ** (count - 1 - i) for i in range(count)]


def blend_domain(
    current: Sequence[PreferenceWeight],
    history: Sequence[Sequence[PreferenceWeight]],
    domain: str,
    tuning: TuningConfig = DEFAULT_TUNING,
) -> List[PreferenceWeight]:
    blended: Dict[str, float] = {p.name: p.weight for p in current}

    for recency, prior_list in zip(recency_weights(len(history), tuning), history):
        for prior in prior_list:
            if prior.name in blended:
                blended[prior.name] = (
                    blended[prior.name] * tuning.blend_current_share
                    + prior.weight * tuning.blend_prior_share * recency
                )
            elif prior.weight > tuning.revive_min_weight:
                blended[prior.name] = prior.weight * tuning.revive_share * recency

    out = [PreferenceWeight(name=name, weight=weight, domain=domain) for name, weight in blended.items()]
    return [p for p in sort_weights(out) if p.weight > tuning.min_weight]


def blend_with_history(
    current: InterestSnapshot,
    history: SnapshotHistory,
    tuning: TuningConfig = DEFAULT_TUNING,
) -> InterestSnapshot:
    """Blend each domain against its own retained snapshots."""
    if not history.topics and not history.hashtags:
        return current
    return InterestSnapshot(
        topics=blend_domain(current.topics, list(history.topics), TOPIC, tuning) if history.topics else list(current.topics),
        hashtags=blend_domain(current.hashtags, list(history.hashtags), HASHTAG, tuning) if history.hashtags else list(current.hashtags),
    )
