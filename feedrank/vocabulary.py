from __future__ import annotations

from typing import Any, Iterable, Mapping, Tuple

from loguru import logger


class Vocabulary:
    """
    Every topic and hashtag name seen on served items.

    Names keep first-seen order and are never removed. Accessors hand out
    tuples so callers can't mutate the underlying sets.
    """

    def __init__(self, topics: Iterable[str] = (), hashtags: Iterable[str] = ()) -> None:
        self._topics: dict[str, None] = {}
        self._hashtags: dict[str, None] = {}
        self.add(topics=topics, hashtags=hashtags)

    @property
    def topics(self) -> Tuple[str, ...]:
        return tuple(self._topics)

    @property
    def hashtags(self) -> Tuple[str, ...]:
        return tuple(self._hashtags)

    def add(self, topics: Iterable[str] = (), hashtags: Iterable[str] = ()) -> int:
        """Union new names in; returns how many were actually new."""
        added = 0
        for name in topics:
            if name and name not in self._topics:
                self._topics[name] = None
                added += 1
        for name in hashtags:
            if name and name not in self._hashtags:
                self._hashtags[name] = None
                added += 1
        return added

    def observe(self, items: Iterable[Mapping[str, Any]]) -> int:
        added = 0
        for item in items:
            added += self.add(
                topics=item.get("topics") or [],
                hashtags=item.get("hashtags") or [],
            )
        if added:
            logger.debug(
                "Vocabulary grew by {} names ({} topics, {} hashtags)",
                added,
                len(self._topics),
                len(self._hashtags),
            )
        return added

    def __contains__(self, name: object) -> bool:
        return name in self._topics or name in self._hashtags

    def __len__(self) -> int:
        return len(self._topics) + len(self._hashtags)
