from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional

import httpx
from loguru import logger

from .config import BATCH_PATH, GATEWAY_URL, HTTP_TIMEOUT, HTTP_USER_AGENT
from .pipeline_types import InterestSnapshot


def build_params(snapshot: InterestSnapshot, limit: int) -> Dict[str, str]:
    """Query parameters for a batch request; weighted lists go as JSON arrays."""
    params: Dict[str, str] = {"limit": str(limit)}
    if snapshot.topics:
        params["topics"] = json.dumps([p.as_dict() for p in snapshot.topics])
    if snapshot.hashtags:
        params["hashtags"] = json.dumps([p.as_dict() for p in snapshot.hashtags])
    return params


class GatewayClient:
    """
    Async batch fetcher for the ranking gateway.

    Any failure (timeout, transport error, HTTP error, non-JSON body) is
    logged and turned into an empty batch; nothing is retried here.
    """

    def __init__(
        self,
        base_url: str = GATEWAY_URL,
        timeout: float = HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def fetch_batch(
        self,
        snapshot: InterestSnapshot,
        limit: int,
        auth_headers: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        headers = {"User-Agent": HTTP_USER_AGENT}
        if auth_headers:
            headers.update(auth_headers)
        params = build_params(snapshot, limit)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self.transport,
            ) as client:
                r = await client.get(BATCH_PATH, params=params, headers=headers)
                if r.status_code >= 400:
                    logger.warning("Batch fetch: HTTP {} from {}", r.status_code, self.base_url)
                    return []
                payload = r.json()
        except httpx.TimeoutException:
            logger.warning("Batch fetch timed out after {}s", self.timeout)
            return []
        except Exception as e:
            logger.warning("Batch fetch failed: {}", e)
            return []

        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            logger.warning("Batch fetch: response has no item list")
            return []
        return [item for item in items if isinstance(item, dict)]
