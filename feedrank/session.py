"""
Client-side feed session.

Owns every piece of per-viewer state (ledger, vocabulary, classifier state,
snapshot history, current batch) and drives the cycle

    engagement -> ledger -> score -> select -> blend -> gateway -> batch

All methods run on one asyncio loop. The only work that leaves the loop is
the classifier fit and its probes, so engagement keeps being recorded while a
training pass is in flight.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from loguru import logger

from .blender import SnapshotHistory, blend_with_history
from .config import BATCH_SIZE, DEFAULT_TUNING, IDLE_TRAIN_SECONDS, TuningConfig
from .learned import LearnedScorer, ModelState
from .ledger import EngagementKind, InteractionLedger, InteractionRecord
from .persistence import KeyValueStore, load_history, save_history
from .pipeline_types import InterestSnapshot
from .scoring import HeuristicScorer, has_enough_signal
from .selector import select_top
from .vocabulary import Vocabulary

Item = Mapping[str, Any]


class BatchSource(Protocol):
    async def fetch_batch(
        self,
        snapshot: InterestSnapshot,
        limit: int,
        auth_headers: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]: ...


class FeedSession:
    def __init__(
        self,
        source: BatchSource,
        store: Optional[KeyValueStore] = None,
        tuning: TuningConfig = DEFAULT_TUNING,
        batch_size: int = BATCH_SIZE,
        idle_train_seconds: Optional[float] = IDLE_TRAIN_SECONDS,
        auth_headers: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.monotonic,
        seed: Optional[int] = None,
    ) -> None:
        self.source = source
        self.store = store
        self.tuning = tuning
        self.batch_size = batch_size
        self.idle_train_seconds = idle_train_seconds
        self.auth_headers = auth_headers
        self.clock = clock

        self.ledger = InteractionLedger(tuning)
        self.vocabulary = Vocabulary()
        self.model_state = ModelState()
        self.history = SnapshotHistory(tuning)
        self.heuristic = HeuristicScorer(tuning)
        self.learned = LearnedScorer(tuning, seed=seed)

        self.batch: List[Dict[str, Any]] = []
        self.current = 0
        self.last_analyzed = InterestSnapshot()

        self._viewing: Optional[Item] = None
        self._view_started: Optional[float] = None
        self._idle_handle: Optional[asyncio.TimerHandle] = None
        self._idle_task: Optional["asyncio.Task[bool]"] = None
        self._loading = False

    # ---------------------------
    # Startup
    # ---------------------------

    def initialize(self) -> Dict[str, Any]:
        """Restore snapshot history from the store, if there is one."""
        load_history(self.store, self.history)
        return {
            "has_previous_data": len(self.history.topics) > 0,
            "previous_topics_count": len(self.history.topics),
            "previous_hashtags_count": len(self.history.hashtags),
        }

    @property
    def model_status(self) -> str:
        return self.model_state.status

    @property
    def current_item(self) -> Optional[Dict[str, Any]]:
        if 0 <= self.current < len(self.batch):
            return self.batch[self.current]
        return None

    # ---------------------------
    # Engagement
    # ---------------------------

    def record(self, kind: EngagementKind | str, item: Optional[Item] = None) -> Optional[InteractionRecord]:
        item = item if item is not None else self.current_item
        if item is None or not item.get("id"):
            return None

        record = self.ledger.record_engagement(item, kind)
        if self._viewing is not None and self._viewing.get("id") == item.get("id"):
            self._flush_view_time()
        self._reset_idle_timer()
        return record

    def start_viewing(self, item: Item) -> None:
        self._flush_view_time()
        self._viewing = item
        self._view_started = self.clock()

    def stop_viewing(self) -> None:
        self._flush_view_time()
        self._viewing = None
        self._view_started = None

    def pause(self) -> None:
        """Feed hidden: bank the dwell time so far and stop the clock."""
        self._flush_view_time()
        self._view_started = None

    def resume(self) -> None:
        if self._viewing is not None:
            self._view_started = self.clock()

    def _flush_view_time(self) -> None:
        if self._viewing is None or self._view_started is None:
            return
        now = self.clock()
        self.ledger.accrue_view_time(self._viewing, (now - self._view_started) * 1000.0)
        self._view_started = now

    # ---------------------------
    # Idle training
    # ---------------------------

    def _reset_idle_timer(self) -> None:
        if self.idle_train_seconds is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._idle_handle is not None:
            self._idle_handle.cancel()
        self._idle_handle = loop.call_later(self.idle_train_seconds, self._on_idle)

    def _on_idle(self) -> None:
        self._idle_handle = None
        if self.model_state.training:
            return
        logger.info("Idle timeout reached, training model...")
        self._idle_task = asyncio.ensure_future(self.train())

    def close(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    # ---------------------------
    # Scoring cycle
    # ---------------------------

    async def train(self, use_history: bool = True) -> bool:
        return await self.learned.train(
            self.model_state,
            self.ledger.window(),
            self.vocabulary.topics,
            list(self.history.topics),
            use_history=use_history,
        )

    async def analyze(self, blend: bool = True) -> InterestSnapshot:
        """
        Score the ledger, cut each list at its natural split, blend with
        earlier cycles and remember the result.
        """
        window = self.ledger.window()
        if not len(self.vocabulary) or not has_enough_signal(window, self.tuning):
            return InterestSnapshot()

        if self.model_state.trained:
            raw = await self.learned.score(self.model_state, window, self.vocabulary.hashtags)
        else:
            raw = self.heuristic.score(window, self.vocabulary.topics, self.vocabulary.hashtags)

        result = InterestSnapshot(
            topics=select_top(raw.topics, self.tuning),
            hashtags=select_top(raw.hashtags, self.tuning),
        )
        if blend:
            result = blend_with_history(result, self.history, self.tuning)

        self.history.append(result)
        save_history(self.store, self.history)
        self.last_analyzed = result
        return result

    # ---------------------------
    # Paging
    # ---------------------------

    async def load_batch(self) -> List[Dict[str, Any]]:
        if self._loading:
            return self.batch
        self._loading = True
        try:
            self._flush_view_time()
            await self.train()
            snapshot = await self.analyze()
            items = await self.source.fetch_batch(snapshot, self.batch_size, self.auth_headers)
            self.batch = list(items)
            self.vocabulary.observe(self.batch)
            logger.info("Loaded batch of {} items", len(self.batch))
        except Exception as e:
            logger.exception("Error loading batch: {}", e)
            self.batch = []
        finally:
            self.current = 0
            self._loading = False
        return self.batch

    async def show(self, idx: int) -> Optional[Dict[str, Any]]:
        self._flush_view_time()
        if not self.batch or idx < 0 or idx >= len(self.batch) - 2:
            await self.load_batch()
            idx = 0

        self.current = idx
        item = self.current_item
        if item is not None:
            self.start_viewing(item)
        else:
            self.stop_viewing()
        return item

    async def advance(self) -> Optional[Dict[str, Any]]:
        if self.current < len(self.batch) - 1:
            return await self.show(self.current + 1)
        await self.load_batch()
        return await self.show(0)

    async def back(self) -> Optional[Dict[str, Any]]:
        if self.current > 0:
            return await self.show(self.current - 1)
        return self.current_item
