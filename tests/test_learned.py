import asyncio
import time

import numpy as np
import pytest

from feedrank.config import TuningConfig
from feedrank.learned import (
    EngagementClassifier,
    LearnedScorer,
    ModelState,
    build_training_rows,
    hashtag_probe_rows,
)
from feedrank.ledger import InteractionRecord
from feedrank.pipeline_types import PreferenceWeight
from feedrank.scoring import DISENGAGED, ENGAGED, NEUTRAL


def _window():
    # interleaved so the trailing validation rows hold both classes
    out = []
    for i in range(6):
        out.append(InteractionRecord(item_id=f"s{i}", topics=["sports"], hashtags=["#goal"], liked=True))
        if i < 4:
            out.append(InteractionRecord(item_id=f"n{i}", topics=["news"], not_interested=True))
    return out


def test_training_rows_one_hot_and_classes():
    window = _window()
    xs, ys = build_training_rows(window, ("sports", "news"))
    assert xs.shape == (10, 2)
    assert ys.shape == (10, 3)
    assert xs[0].tolist() == [1.0, 0.0]
    assert ys[0].argmax() == ENGAGED
    assert xs[1].tolist() == [0.0, 1.0]
    assert ys[1].argmax() == DISENGAGED

    neutral = InteractionRecord(item_id="x", topics=["sports"], time_spent_ms=5000, duration_ms=10000)
    _, ys = build_training_rows([neutral], ("sports",))
    assert ys[0].argmax() == NEUTRAL


def test_history_rows_reinforce_strong_names():
    history = [[PreferenceWeight("sports", 0.9), PreferenceWeight("news", 0.4), PreferenceWeight("art", 0.2)]]
    xs, ys = build_training_rows([], ("sports", "news", "art"), history)

    # art is below the row threshold
    assert xs.shape == (2, 3)
    assert xs[0].tolist() == [1.0, 0.5, 0.5]
    assert ys[0][ENGAGED] == pytest.approx(1.0)
    assert xs[1].tolist() == [0.5, 1.0, 0.5]
    assert ys[1][ENGAGED] == pytest.approx(0.8)


def test_hashtag_probe_rows_mark_co_occurring_topics():
    rows = hashtag_probe_rows(_window(), ["#goal", "#unused"], ("sports", "news"))
    assert rows.tolist() == [[1.0, 0.0], [0.0, 0.0]]


def test_classifier_shape_follows_vocabulary():
    model = EngagementClassifier.for_vocabulary(4)
    assert model.hidden.out_features == 16
    assert model.second.out_features == 8
    assert model.head.out_features == 3

    model = EngagementClassifier.for_vocabulary(40)
    assert model.hidden.out_features == 40


def test_concurrent_training_runs_a_single_fit(monkeypatch):
    calls = []

    def slow_fit(self, xs, ys):
        calls.append(xs.shape)
        time.sleep(0.05)
        return EngagementClassifier.for_vocabulary(xs.shape[1])

    monkeypatch.setattr(LearnedScorer, "fit", slow_fit)
    scorer = LearnedScorer()
    state = ModelState()
    window = _window()

    async def run():
        first = scorer.train(state, window, ("sports", "news"))
        second = scorer.train(state, window, ("sports", "news"))
        return await asyncio.gather(first, second)

    results = asyncio.run(run())
    assert results == [True, True]
    assert len(calls) == 1
    assert state.fit_count == 1
    assert state.trained
    assert state.status == "trained"
    assert state.training_task is None


def test_failed_fit_keeps_previous_model(monkeypatch):
    scorer = LearnedScorer()
    previous = EngagementClassifier.for_vocabulary(1)
    state = ModelState(model=previous, feature_topics=("sports",), trained=True, fit_count=1)

    def broken_fit(self, xs, ys):
        raise RuntimeError("boom")

    monkeypatch.setattr(LearnedScorer, "fit", broken_fit)
    ok = asyncio.run(scorer.train(state, _window(), ("sports", "news")))

    assert ok is False
    assert state.model is previous
    assert state.feature_topics == ("sports",)
    assert state.fit_count == 1
    assert state.training_task is None


def test_train_skips_without_signal_or_topics():
    scorer = LearnedScorer()
    state = ModelState()
    assert asyncio.run(scorer.train(state, _window()[:5], ("sports",))) is False
    assert asyncio.run(scorer.train(state, _window(), ())) is False
    assert state.model is None


def test_score_is_empty_until_trained():
    snapshot = asyncio.run(LearnedScorer().score(ModelState(), _window(), ["#goal"]))
    assert snapshot.is_empty()


def test_trained_model_ranks_liked_topic_first():
    tuning = TuningConfig(learning_rate=0.05, epochs=150)
    scorer = LearnedScorer(tuning, seed=0)
    state = ModelState()
    window = _window()

    assert asyncio.run(scorer.train(state, window, ("sports", "news")))
    snapshot = asyncio.run(scorer.score(state, window, ["#goal"]))

    topics = {p.name: p.weight for p in snapshot.topics}
    assert topics["sports"] > topics["news"]
    assert snapshot.topics[0].name == "sports"
    assert all(-1.0 <= w <= 1.0 for w in topics.values())
    assert snapshot.hashtags[0].name == "#goal"
    assert snapshot.hashtags[0].weight > 0
    assert np.isfinite(snapshot.hashtags[0].weight)
