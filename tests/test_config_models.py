import pytest
from pydantic import ValidationError

from feedrank.config import DEFAULT_TUNING, BatchRequest, BatchResponse, HealthResponse, TuningConfig, WeightedName


def test_default_tuning_values():
    t = DEFAULT_TUNING
    assert (t.weight_liked, t.weight_interested, t.weight_not_interested, t.weight_commented) == (3.0, 2.0, -4.0, 1.5)
    assert t.ledger_capacity == 100
    assert t.max_snapshots == 5
    assert t.recency_decay == 0.8
    assert (t.gap_floor, t.gap_top_share, t.relative_gap, t.strong_relative_gap) == (0.1, 0.25, 0.4, 0.6)


def test_tuning_rejects_nonsense_capacity():
    with pytest.raises(ValidationError):
        TuningConfig(ledger_capacity=0)


def test_batch_request_keeps_raw_preference_fields():
    req = BatchRequest(topics=[{"name": "sports", "weight": "high"}], hashtags="#goal,#news", limit="lots")
    # classified later by the handler, never rejected here
    assert req.topics == [{"name": "sports", "weight": "high"}]
    assert req.hashtags == "#goal,#news"
    assert req.limit == "lots"
    assert BatchRequest().limit is None


def test_weighted_name_defaults_to_weight_one():
    assert WeightedName(name="sports").weight == 1.0


def test_batch_response_structure():
    resp = BatchResponse(items=[{"id": "1"}], limit=10, total=1)
    assert len(resp.items) == 1


def test_health_response():
    health = HealthResponse(status="healthy")
    assert health.status == "healthy"
