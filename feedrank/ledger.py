from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional

from loguru import logger

from .config import DEFAULT_TUNING, TuningConfig


class EngagementKind(str, Enum):
    LIKE = "like"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    COMMENT = "comment"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InteractionRecord:
    """Aggregate of explicit and implicit feedback for one viewed item."""

    item_id: str
    topics: List[str] = field(default_factory=list)
    hashtags: List[str] = field(default_factory=list)
    liked: bool = False
    interested: bool = False
    not_interested: bool = False
    commented: bool = False
    time_spent_ms: float = 0.0
    duration_ms: Optional[float] = None
    timestamp: datetime = field(default_factory=_now)

    @property
    def has_explicit_feedback(self) -> bool:
        return self.liked or self.interested or self.not_interested or self.commented


def _item_id(item: Mapping[str, Any]) -> str:
    raw = item.get("id")
    if raw is None or raw == "":
        raise ValueError("item has no id")
    return str(raw)


class InteractionLedger:
    """
    Bounded per-item engagement history.

    Records are kept in first-engagement order; once the ledger exceeds its
    capacity the oldest inserted record is evicted, regardless of how recently
    it was touched.
    """

    def __init__(self, tuning: TuningConfig = DEFAULT_TUNING) -> None:
        self.tuning = tuning
        self._records: "OrderedDict[str, InteractionRecord]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def get(self, item_id: str) -> Optional[InteractionRecord]:
        return self._records.get(str(item_id))

    def window(self) -> List[InteractionRecord]:
        """Records oldest -> newest by insertion."""
        return list(self._records.values())

    def _record_for(self, item: Mapping[str, Any]) -> InteractionRecord:
        item_id = _item_id(item)
        record = self._records.get(item_id)
        if record is None:
            duration = item.get("duration_ms")
            record = InteractionRecord(
                item_id=item_id,
                topics=list(item.get("topics") or []),
                hashtags=list(item.get("hashtags") or []),
                duration_ms=float(duration) if duration and float(duration) > 0 else None,
            )
            self._records[item_id] = record
        return record

    def _touch(self, record: InteractionRecord) -> None:
        record.timestamp = _now()
        while len(self._records) > self.tuning.ledger_capacity:
            evicted_id, _ = self._records.popitem(last=False)
            logger.debug("Ledger full; evicted record for item {}", evicted_id)

    def record_engagement(self, item: Mapping[str, Any], kind: EngagementKind | str) -> InteractionRecord:
        kind = EngagementKind(kind)
        record = self._record_for(item)
        previous = (record.liked, record.interested, record.not_interested)

        if kind is EngagementKind.LIKE:
            record.liked = not record.liked
        elif kind is EngagementKind.INTERESTED:
            record.interested = True
            record.not_interested = False
        elif kind is EngagementKind.NOT_INTERESTED:
            record.not_interested = True
            record.interested = False
        elif kind is EngagementKind.COMMENT:
            record.commented = True

        logger.debug(
            "Interaction updated for item {}: {} (liked, interested, not_interested) {} -> {}",
            record.item_id,
            kind.value,
            previous,
            (record.liked, record.interested, record.not_interested),
        )
        self._touch(record)
        return record

    def accrue_view_time(self, item: Mapping[str, Any], elapsed_ms: float) -> Optional[InteractionRecord]:
        """
        Add dwell time to an item's record. Spans outside (0, max_view_ms]
        are treated as measurement noise and dropped.
        """
        if not (0 < elapsed_ms <= self.tuning.max_view_ms):
            return None
        record = self._record_for(item)
        record.time_spent_ms += elapsed_ms
        self._touch(record)
        return record
