import asyncio

import pytest

from feedrank.blender import SnapshotHistory
from feedrank.persistence import MemoryStore, save_history
from feedrank.pipeline_types import InterestSnapshot, PreferenceWeight
from feedrank.session import FeedSession


def _items(prefix="p", n=10, topic="sports"):
    return [{"id": f"{prefix}{i}", "topics": [topic], "hashtags": ["#" + topic], "duration_ms": 10000} for i in range(n)]


class FakeSource:
    def __init__(self, batches=None, fail=False):
        self.batches = list(batches or [])
        self.fail = fail
        self.calls = []

    async def fetch_batch(self, snapshot, limit, auth_headers=None):
        self.calls.append((snapshot, limit))
        if self.fail:
            raise RuntimeError("gateway down")
        return self.batches.pop(0) if self.batches else _items(prefix=f"b{len(self.calls)}-")


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def _session(source=None, **kwargs):
    kwargs.setdefault("idle_train_seconds", None)
    kwargs.setdefault("seed", 0)
    return FeedSession(source or FakeSource(), **kwargs)


def test_analyze_uses_heuristic_until_trained():
    store = MemoryStore()
    session = _session(store=store)
    session.vocabulary.add(topics=["sports", "news"])
    for item in _items(n=6):
        session.record("like", item)
    for item in _items(prefix="n", n=4, topic="news"):
        session.record("not_interested", item)

    result = asyncio.run(session.analyze())

    assert session.model_status == "untrained"
    assert [p.name for p in result.topics] == ["sports"]
    assert result.topics[0].weight == pytest.approx(2.52)
    assert len(session.history.topics) == 1
    assert store.get("modelPreviousTopics") is not None
    assert session.last_analyzed is result


def test_analyze_needs_vocabulary_and_signal():
    session = _session()
    for item in _items(n=10):
        session.record("like", item)
    # vocabulary is only fed by served batches
    assert asyncio.run(session.analyze()).is_empty()

    session = _session()
    session.vocabulary.add(topics=["sports"])
    for item in _items(n=9):
        session.record("like", item)
    assert asyncio.run(session.analyze()).is_empty()
    assert len(session.history) == 0


def test_load_batch_trains_and_feeds_vocabulary():
    source = FakeSource()
    session = _session(source)

    asyncio.run(session.load_batch())
    assert len(session.batch) == 10
    assert "sports" in session.vocabulary
    assert source.calls[0][0].is_empty()
    assert source.calls[0][1] == 10

    for item in list(session.batch):
        session.record("like", item)
    asyncio.run(session.load_batch())

    assert session.model_status == "trained"
    assert session.model_state.fit_count == 1
    assert len(source.calls) == 2
    assert session.current == 0


def test_fetch_failure_leaves_empty_batch():
    session = _session(FakeSource(fail=True))
    session.batch = _items()
    session.current = 5

    asyncio.run(session.load_batch())
    assert session.batch == []
    assert session.current == 0
    assert session.current_item is None


def test_initialize_restores_previous_snapshots():
    store = MemoryStore()
    history = SnapshotHistory()
    history.append(InterestSnapshot(topics=[PreferenceWeight("sports", 0.9)]))
    save_history(store, history)

    session = _session(store=store)
    status = session.initialize()
    assert status == {"has_previous_data": True, "previous_topics_count": 1, "previous_hashtags_count": 0}
    assert session.history.latest().topics[0].name == "sports"

    assert _session(store=MemoryStore()).initialize()["has_previous_data"] is False


def test_view_time_follows_clock_and_pauses():
    clock = FakeClock()
    session = _session(clock=clock)
    item = _items(n=1)[0]

    session.start_viewing(item)
    clock.t = 1.0
    session.pause()
    clock.t = 30.0
    session.resume()
    clock.t = 31.5
    session.stop_viewing()

    assert session.ledger.get("p0").time_spent_ms == pytest.approx(2500.0)


def test_engagement_on_viewed_item_banks_time_once():
    clock = FakeClock()
    session = _session(clock=clock)
    item = _items(n=1)[0]

    session.start_viewing(item)
    clock.t = 2.0
    session.record("comment", item)
    clock.t = 3.0
    session.stop_viewing()

    record = session.ledger.get("p0")
    assert record.commented
    assert record.time_spent_ms == pytest.approx(3000.0)


def test_show_reloads_near_end_of_batch():
    source = FakeSource()
    session = _session(source)

    async def run():
        await session.load_batch()
        first = await session.show(3)
        reloaded = await session.show(8)
        return first, reloaded

    first, reloaded = asyncio.run(run())
    assert first["id"] == "b1-3"
    assert len(source.calls) == 2
    assert session.current == 0
    assert reloaded["id"] == "b2-0"


def test_record_without_item_is_ignored():
    session = _session()
    assert session.record("like") is None
    assert len(session.ledger) == 0


def test_idle_timer_starts_training():
    session = _session(idle_train_seconds=0.01)
    item = _items(n=1)[0]

    async def run():
        session.record("like", item)
        await asyncio.sleep(0.05)
        task = session._idle_task
        result = await task if task is not None else None
        session.close()
        return task, result

    task, result = asyncio.run(run())
    assert task is not None
    # nothing to train on yet: one record, empty vocabulary
    assert result is False
