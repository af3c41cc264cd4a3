from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
CORPUS_PATH = Path(os.getenv("FEEDRANK_CORPUS_PATH", str(DATA_DIR / "mock_posts.json")))
SNAPSHOT_PATH = Path(os.getenv("FEEDRANK_SNAPSHOT_PATH", str(DATA_DIR / "snapshots.json")))


# ---------------------------
# Gateway settings
# ---------------------------

DEFAULT_LIMIT = int(os.getenv("FEEDRANK_DEFAULT_LIMIT", "10"))

# Membership check is delegated to an external verifier; this only decides
# whether a request without one is let through.
REQUIRE_AUTH = os.getenv("FEEDRANK_REQUIRE_AUTH", "0").strip().lower() in {"1", "true", "yes"}

AUTH_PROOF_HEADER = "X-ZKP-Proof"
AUTH_SIGNALS_HEADER = "X-ZKP-PublicSignals"


# ---------------------------
# Client settings
# ---------------------------

GATEWAY_URL = os.getenv("FEEDRANK_GATEWAY_URL", "http://localhost:3000")
BATCH_PATH = "/api/items"

HTTP_TIMEOUT = float(os.getenv("FEEDRANK_HTTP_TIMEOUT", "10.0"))
HTTP_USER_AGENT = "feedrank-client/1.0"

BATCH_SIZE = 10
IDLE_TRAIN_SECONDS = float(os.getenv("FEEDRANK_IDLE_TRAIN_SECONDS", "10.0"))

# Keys used in the string key-value collaborator
SNAPSHOT_KEY_TOPICS = "modelPreviousTopics"
SNAPSHOT_KEY_HASHTAGS = "modelPreviousHashtags"


# ---------------------------
# Tuning
# ---------------------------

class TuningConfig(BaseModel):
    """
    Every weight and threshold used by the scoring, selection and blending
    stages. Components take an instance so tests can vary one knob at a time.
    """

    # Per-record engagement weights
    weight_liked: float = 3.0
    weight_interested: float = 2.0
    weight_not_interested: float = -4.0
    weight_commented: float = 1.5
    default_duration_ms: float = 10_000.0

    # Ledger
    ledger_capacity: int = Field(default=100, ge=1)
    max_view_ms: float = 300_000.0
    min_interactions: int = Field(default=10, ge=1)

    # Heuristic scorer
    heuristic_avg_share: float = 0.6
    heuristic_total_share: float = 0.4

    # Learned scorer
    engaged_threshold: float = 1.5
    disengaged_threshold: float = -1.5
    hidden_units_min: int = 16
    hidden_units_second: int = 8
    l2_penalty: float = 0.001
    learning_rate: float = 0.001
    epochs: int = 25
    batch_size: int = 8
    validation_split: float = 0.2
    history_row_min_weight: float = 0.3
    history_strong_weight: float = 0.6
    history_strong_label: float = 1.0
    history_soft_label: float = 0.8
    history_neighbour_value: float = 0.5

    # Rank selector
    min_weight: float = 0.1
    gap_floor: float = 0.1
    gap_top_share: float = 0.25
    relative_gap: float = 0.4
    strong_relative_gap: float = 0.6
    gap_scan_pairs: int = 10
    fallback_top_n: int = 5

    # Temporal blender
    max_snapshots: int = Field(default=5, ge=1)
    recency_decay: float = 0.8
    blend_current_share: float = 0.7
    blend_prior_share: float = 0.3
    revive_min_weight: float = 0.3
    revive_share: float = 0.4

    # Gateway
    pool_multiplier: int = 2
    noise_share: float = 0.3


DEFAULT_TUNING = TuningConfig()


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class WeightedName(BaseModel):
    """
    A named interest with its weight, as carried over the batch query surface.
    """

    name: str
    weight: float = 1.0


class BatchRequest(BaseModel):
    """
    JSON body for POST /api/items. Each preference field takes weighted
    objects, bare names or a comma-separated string. Fields are left loose and
    classified in the handler, so malformed values degrade instead of failing
    validation.
    """

    limit: Optional[Any] = None
    topics: Optional[Any] = None
    hashtags: Optional[Any] = None


class BatchResponse(BaseModel):
    """
    Response body for the batch endpoints.
    """

    items: List[Dict[str, Any]]
    limit: int
    total: int


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str
