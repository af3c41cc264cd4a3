import pytest

from feedrank.blender import SnapshotHistory, blend_domain, blend_with_history, recency_weights
from feedrank.config import TuningConfig
from feedrank.pipeline_types import HASHTAG, TOPIC, InterestSnapshot, PreferenceWeight


def _snap(topics=(), hashtags=()):
    return InterestSnapshot(
        topics=[PreferenceWeight(n, w, TOPIC) for n, w in topics],
        hashtags=[PreferenceWeight(n, w, HASHTAG) for n, w in hashtags],
    )


def test_recency_weights_newest_is_one():
    w = recency_weights(5)
    assert w[-1] == pytest.approx(1.0)
    assert w[0] == pytest.approx(0.8 ** 4)
    assert w == sorted(w)


def test_blend_compounds_across_snapshots():
    history = SnapshotHistory()
    for weight in [0.9, 0.8, 0.7, 0.6, 0.5]:
        history.append(_snap(topics=[("sports", weight)]))

    result = blend_with_history(_snap(topics=[("sports", 0.2)]), history)
    sports = result.topics[0]

    naive = (0.2 + 0.9 + 0.8 + 0.7 + 0.6 + 0.5) / 6
    assert 0.2 < sports.weight < naive
    # each snapshot blends against the already-updated value
    assert sports.weight == pytest.approx(0.4189709792)


def test_empty_history_returns_current_unchanged():
    current = _snap(topics=[("sports", 0.9), ("news", 0.05)])
    result = blend_with_history(current, SnapshotHistory())
    assert result is current


def test_domain_without_history_passes_through():
    history = SnapshotHistory()
    history.append(_snap(topics=[("sports", 0.9)]))
    current = _snap(topics=[("sports", 0.9)], hashtags=[("#goal", 0.5)])

    result = blend_with_history(current, history)
    assert [p.name for p in result.hashtags] == ["#goal"]
    assert result.hashtags[0].weight == pytest.approx(0.5)


def test_strong_prior_names_are_revived():
    history = SnapshotHistory()
    history.append(_snap(topics=[("cooking", 0.8), ("travel", 0.25)]))

    result = blend_domain([PreferenceWeight("sports", 1.0)], list(history.topics), TOPIC)
    by_name = {p.name: p.weight for p in result}
    assert by_name["sports"] == pytest.approx(1.0)
    assert by_name["cooking"] == pytest.approx(0.8 * 0.4)
    # below the revive threshold
    assert "travel" not in by_name


def test_blended_output_is_sorted_and_above_min_weight():
    history = SnapshotHistory()
    history.append(_snap(topics=[("a", 0.35), ("b", 0.9)]))
    history.append(_snap(topics=[("c", 0.31)]))

    result = blend_domain([PreferenceWeight("d", 0.11)], list(history.topics), TOPIC)
    weights = [p.weight for p in result]
    assert weights == sorted(weights, reverse=True)
    assert all(w > 0.1 for w in weights)
    assert all(p.domain == TOPIC for p in result)


def test_history_is_fifo_capped_and_skips_empty_lists():
    history = SnapshotHistory(TuningConfig(max_snapshots=3))
    for i in range(5):
        history.append(_snap(topics=[(f"t{i}", 0.5)]))
    history.append(_snap())

    assert len(history.topics) == 3
    assert [snap[0].name for snap in history.topics] == ["t2", "t3", "t4"]
    assert len(history.hashtags) == 0
    assert history.latest().topics[0].name == "t4"
