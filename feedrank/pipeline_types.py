"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

TOPIC = "topic"
HASHTAG = "hashtag"


@dataclass
class PreferenceWeight:
    """A named interest paired with a signed relevance score."""

    name: str
    weight: float
    domain: str = TOPIC

    def as_dict(self) -> Dict[str, object]:
        return {"name": self.name, "weight": self.weight}


@dataclass
class InterestSnapshot:
    """Topic and hashtag interests produced by one scoring cycle."""

    topics: List[PreferenceWeight] = field(default_factory=list)
    hashtags: List[PreferenceWeight] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.topics and not self.hashtags

    def copy(self) -> "InterestSnapshot":
        return InterestSnapshot(
            topics=[PreferenceWeight(p.name, p.weight, p.domain) for p in self.topics],
            hashtags=[PreferenceWeight(p.name, p.weight, p.domain) for p in self.hashtags],
        )
