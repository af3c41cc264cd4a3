import asyncio
import json

import httpx

from feedrank.client import GatewayClient, build_params
from feedrank.pipeline_types import HASHTAG, InterestSnapshot, PreferenceWeight


def _snapshot():
    return InterestSnapshot(
        topics=[PreferenceWeight("sports", 0.9)],
        hashtags=[PreferenceWeight("#goal", 0.4, HASHTAG)],
    )


def test_build_params_encodes_weighted_lists():
    params = build_params(_snapshot(), 10)
    assert params["limit"] == "10"
    assert json.loads(params["topics"]) == [{"name": "sports", "weight": 0.9}]
    assert json.loads(params["hashtags"]) == [{"name": "#goal", "weight": 0.4}]

    params = build_params(InterestSnapshot(), 5)
    assert params == {"limit": "5"}


def test_fetch_batch_sends_query_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["topics"] = request.url.params.get("topics")
        seen["proof"] = request.headers.get("X-ZKP-Proof")
        return httpx.Response(200, json={"items": [{"id": "1"}, "junk"], "limit": 10, "total": 1})

    gw = GatewayClient("http://gateway", transport=httpx.MockTransport(handler))
    items = asyncio.run(gw.fetch_batch(_snapshot(), 10, {"X-ZKP-Proof": "p"}))

    assert items == [{"id": "1"}]
    assert seen["path"] == "/api/items"
    assert json.loads(seen["topics"])[0]["name"] == "sports"
    assert seen["proof"] == "p"


def test_fetch_batch_failures_become_empty():
    def server_error(request):
        return httpx.Response(503)

    def not_json(request):
        return httpx.Response(200, text="<html>")

    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    for handler in (server_error, not_json, timeout):
        gw = GatewayClient("http://gateway", transport=httpx.MockTransport(handler))
        assert asyncio.run(gw.fetch_batch(_snapshot(), 10)) == []
