from __future__ import annotations

"""
Stateless batch selection over a read-only corpus.

  1) Relevant pool:
       weighted prefs -> score = sum of matching topic + hashtag weights,
                         stable sort desc, top ``2 * limit`` of the
                         items scoring above zero
       names only     -> items sharing any topic or hashtag name
       nothing        -> the whole corpus
  2) Exploration noise: ``floor(limit * 0.3)`` items drawn without
     replacement from outside the pool.
  3) Shuffle pool + noise, keep ``limit``.

No relevance order survives into the batch; the shuffle is what keeps the feed
from locking onto a narrow set of items.

A weighted query matching few items yields a batch shorter than ``limit``:
with no matches at all it is the noise alone (3 items for ``limit=10``).
Sessions page through short batches quickly, since they reload once fewer
than two items remain.
"""

import math
import random
from typing import Any, Dict, List, Optional

import pandas as pd
from loguru import logger

from .config import DEFAULT_LIMIT, DEFAULT_TUNING, TuningConfig
from .corpus import to_records
from .preferences import NamedPreferences, PreferenceQuery, Preferences, WeightedPreferences


def _weight_map(prefs: Preferences) -> Dict[str, float]:
    if isinstance(prefs, WeightedPreferences):
        return prefs.as_map()
    if isinstance(prefs, NamedPreferences):
        return {name: 1.0 for name in prefs.names}
    return {}


def _name_set(prefs: Preferences) -> set[str]:
    if isinstance(prefs, NamedPreferences):
        return set(prefs.names)
    if isinstance(prefs, WeightedPreferences):
        return {name for name, _ in prefs.weights}
    return set()


def score_items(corpus: pd.DataFrame, query: PreferenceQuery) -> pd.Series:
    """Sum of topic and hashtag weights per item; unknown names count 0."""
    topic_w = _weight_map(query.topics)
    tag_w = _weight_map(query.hashtags)
    topic_scores = corpus["topics"].apply(lambda names: sum(topic_w.get(n, 0.0) for n in names))
    tag_scores = corpus["hashtags"].apply(lambda names: sum(tag_w.get(n, 0.0) for n in names))
    return (topic_scores + tag_scores).astype(float)


def relevant_positions(
    corpus: pd.DataFrame,
    query: PreferenceQuery,
    limit: int,
    tuning: TuningConfig = DEFAULT_TUNING,
) -> List[int]:
    """Row positions of the relevant pool, in pool order."""
    if query.is_weighted:
        scores = score_items(corpus, query).reset_index(drop=True)
        ranked = scores[scores > 0].sort_values(ascending=False, kind="stable")
        return [int(i) for i in ranked.index[: tuning.pool_multiplier * limit]]

    if query.has_names:
        topics = _name_set(query.topics)
        tags = _name_set(query.hashtags)
        out: List[int] = []
        for pos, (item_topics, item_tags) in enumerate(zip(corpus["topics"], corpus["hashtags"])):
            if any(t in topics for t in item_topics) or any(h in tags for h in item_tags):
                out.append(pos)
        return out

    return list(range(len(corpus)))


def select_batch(
    corpus: pd.DataFrame,
    query: PreferenceQuery,
    limit: int = DEFAULT_LIMIT,
    rng: Optional[random.Random] = None,
    tuning: TuningConfig = DEFAULT_TUNING,
) -> Dict[str, Any]:
    """Return ``{"items", "limit", "total"}`` for one batch request."""
    rng = rng or random.Random()
    total = len(corpus)

    pool = relevant_positions(corpus, query, limit, tuning)
    noise_count = math.floor(limit * tuning.noise_share)
    in_pool = set(pool)
    complement = [pos for pos in range(total) if pos not in in_pool]
    noise = rng.sample(complement, min(noise_count, len(complement)))

    candidates = pool + noise
    rng.shuffle(candidates)
    chosen = candidates[:limit]

    logger.debug(
        "Batch: pool={} noise={} returned={} of {} items",
        len(pool),
        len(noise),
        len(chosen),
        total,
    )
    return {
        "items": to_records(corpus.iloc[chosen]) if chosen else [],
        "limit": limit,
        "total": total,
    }
