from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from loguru import logger

from .blender import SnapshotHistory
from .config import SNAPSHOT_KEY_HASHTAGS, SNAPSHOT_KEY_TOPICS
from .pipeline_types import HASHTAG, TOPIC, PreferenceWeight


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """Process-local store; what a session falls back to without durable storage."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore:
    """
    String key-value pairs in a single JSON object on disk.
    The file is re-read on every access; it is tiny.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return {str(k): str(v) for k, v in raw.items()}

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as f:
            json.dump(data, f)


def _encode(history: List[List[PreferenceWeight]]) -> str:
    return json.dumps([[p.as_dict() for p in snap] for snap in history])


def _decode(raw: Optional[str], domain: str) -> List[List[PreferenceWeight]]:
    if not raw:
        return []
    payload = json.loads(raw)
    out: List[List[PreferenceWeight]] = []
    for snap in payload:
        out.append([PreferenceWeight(name=str(p["name"]), weight=float(p["weight"]), domain=domain) for p in snap])
    return out


def save_history(store: Optional[KeyValueStore], history: SnapshotHistory) -> bool:
    """Mirror the history into the store. Failures are logged, never raised."""
    if store is None:
        return False
    try:
        store.set(SNAPSHOT_KEY_TOPICS, _encode(list(history.topics)))
        store.set(SNAPSHOT_KEY_HASHTAGS, _encode(list(history.hashtags)))
    except Exception as e:
        logger.warning("Could not save snapshot history: {}", e)
        return False
    return True


def load_history(store: Optional[KeyValueStore], history: SnapshotHistory) -> bool:
    """
    Replace ``history`` with what the store holds. On any failure the history
    is left as it was and the session continues with in-memory results only.
    """
    if store is None:
        return False
    try:
        topics = _decode(store.get(SNAPSHOT_KEY_TOPICS), TOPIC)
        hashtags = _decode(store.get(SNAPSHOT_KEY_HASHTAGS), HASHTAG)
    except Exception as e:
        logger.warning("Could not load stored snapshot history: {}", e)
        return False
    history.replace(topics, hashtags)
    if topics or hashtags:
        logger.info("Restored {} topic and {} hashtag snapshots", len(history.topics), len(history.hashtags))
    return True
