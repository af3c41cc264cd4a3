from __future__ import annotations

"""
Parsing of the preference inputs accepted by the batch query surface.

Each of ``topics`` / ``hashtags`` arrives as one of:
  - a JSON array of ``{"name", "weight"}`` objects   -> WeightedPreferences
  - a JSON array of bare names                       -> NamedPreferences
  - anything unparsable: comma-separated names       -> WeightedPreferences at weight 1
  - missing / blank / empty array                    -> NoPreferences

Everything downstream switches on the variant instead of re-inspecting raw
request shapes.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from .config import WeightedName


@dataclass(frozen=True)
class WeightedPreferences:
    weights: Tuple[Tuple[str, float], ...]

    def as_map(self) -> Dict[str, float]:
        out: Dict[str, float] = {}
        for name, weight in self.weights:
            out[name] = weight
        return out


@dataclass(frozen=True)
class NamedPreferences:
    names: Tuple[str, ...]


@dataclass(frozen=True)
class NoPreferences:
    pass


Preferences = Union[WeightedPreferences, NamedPreferences, NoPreferences]


@dataclass(frozen=True)
class PreferenceQuery:
    topics: Preferences = field(default_factory=NoPreferences)
    hashtags: Preferences = field(default_factory=NoPreferences)

    @property
    def is_weighted(self) -> bool:
        return isinstance(self.topics, WeightedPreferences) or isinstance(self.hashtags, WeightedPreferences)

    @property
    def has_names(self) -> bool:
        return isinstance(self.topics, NamedPreferences) or isinstance(self.hashtags, NamedPreferences)


def _split_names(raw: str) -> List[str]:
    return [name.strip() for name in raw.split(",") if name.strip()]


def _is_name(value: Any) -> bool:
    # nested containers are never names
    return isinstance(value, (str, int, float))


def _coerce_weight(value: Any) -> float:
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return 0.0
    return weight if math.isfinite(weight) else 0.0


def from_values(values: Optional[Iterable[Any]]) -> Preferences:
    """Classify an already-decoded list (JSON array or request body field)."""
    if values is None:
        return NoPreferences()
    values = list(values)
    if not values:
        return NoPreferences()

    first = values[0]
    if isinstance(first, (dict, WeightedName)):
        weights: List[Tuple[str, float]] = []
        for v in values:
            if isinstance(v, WeightedName):
                weights.append((v.name, float(v.weight)))
            elif isinstance(v, dict) and _is_name(v.get("name")):
                weights.append((str(v["name"]), _coerce_weight(v.get("weight", 1.0))))
        return WeightedPreferences(tuple(weights)) if weights else NoPreferences()

    names = tuple(
        v.name if isinstance(v, WeightedName) else str(v)
        for v in values
        if isinstance(v, WeightedName) or (_is_name(v) and v != "")
    )
    return NamedPreferences(names) if names else NoPreferences()


def parse_preference_param(raw: Optional[str]) -> Preferences:
    """Parse one query-string preference parameter. Never raises."""
    if raw is None or not raw.strip():
        return NoPreferences()
    try:
        decoded = json.loads(raw)
    except (ValueError, RecursionError):
        logger.debug("Preference param is not JSON; reading it as comma-separated names: {!r}", raw[:100])
        names = _split_names(raw)
        return WeightedPreferences(tuple((n, 1.0) for n in names)) if names else NoPreferences()

    if isinstance(decoded, list):
        return from_values(decoded)
    # a bare JSON scalar ("sports" quoted, 42, true) is still just names
    names = _split_names(decoded if isinstance(decoded, str) else raw)
    return WeightedPreferences(tuple((n, 1.0) for n in names)) if names else NoPreferences()


def from_body_value(value: Any) -> Preferences:
    """
    Classify one preference field of a JSON request body. Strings take the
    same path as a query parameter; anything else unexpected becomes names.
    """
    if value is None:
        return NoPreferences()
    if isinstance(value, str):
        return parse_preference_param(value)
    if isinstance(value, (list, tuple)):
        return from_values(value)
    if isinstance(value, (dict, WeightedName)):
        return from_values([value])
    return parse_preference_param(str(value))


def parse_query(topics: Optional[str], hashtags: Optional[str]) -> PreferenceQuery:
    return PreferenceQuery(topics=parse_preference_param(topics), hashtags=parse_preference_param(hashtags))
