from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from loguru import logger

from .config import CORPUS_PATH


# ---------------------------
# Column detection / standardization
# ---------------------------

# Post dumps come from a few generators; accept the common spellings.
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "post_id", "postId", "item_id", "itemId"],
    "topics": ["topics", "topic", "categories"],
    "hashtags": ["hashtags", "tags", "hashtag"],
    "title": ["title", "headline", "name"],
    "body": ["body", "text", "content", "description"],
    "duration_ms": ["duration_ms", "durationMs", "duration"],
}

CORPUS_COLUMNS = ["id", "topics", "hashtags", "title", "body", "duration_ms"]


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    col_map: Dict[str, str] = {}
    lower_to_original = {c.lower(): c for c in df.columns}

    for canon, candidates in COLUMN_CANDIDATES.items():
        for candidate in candidates:
            if candidate in df.columns:
                col_map[candidate] = canon
                break
            cand_lower = candidate.lower()
            if cand_lower in lower_to_original:
                col_map[lower_to_original[cand_lower]] = canon
                break

    df_std = df.rename(columns=col_map)
    if "id" not in df_std.columns:
        logger.warning("Corpus has no id column; every row will be dropped.")
    return df_std


# ---------------------------
# Field parsing helpers
# ---------------------------

def parse_name_list_field(value: Any) -> List[str]:
    """
    Turn a topics/hashtags cell into a de-duplicated list of names.

    Lists are taken as-is; strings are split on , ; | and whitespace-only
    entries are dropped. Hashtags keep whatever leading '#' the source used.
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return []

    if isinstance(value, (list, tuple)) or hasattr(value, "tolist"):
        tokens = [str(v) for v in (value.tolist() if hasattr(value, "tolist") else value)]
    else:
        tokens = re.split(r"[;,|]+", str(value))

    names: List[str] = []
    for tok in tokens:
        name = tok.strip()
        if name and name not in names:
            names.append(name)
    return names


def _parse_duration(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return None
    return duration if duration > 0 else None


# ---------------------------
# Corpus normalization
# ---------------------------

def normalize_corpus_df(df_raw: pd.DataFrame) -> pd.DataFrame:
    """
    Canonical corpus schema:

    - id (str, unique)
    - topics (List[str])
    - hashtags (List[str])
    - title (str)
    - body (str)
    - duration_ms (float or None)

    Extra columns from the source are kept after the canonical ones.
    """
    df = _standardize_columns(df_raw.copy())
    if "id" not in df.columns:
        return pd.DataFrame(columns=CORPUS_COLUMNS)

    df = df[df["id"].notna()].copy()
    df["id"] = df["id"].astype(str).str.strip()
    df = df[df["id"] != ""]
    before = len(df)
    df = df.drop_duplicates(subset=["id"]).reset_index(drop=True)
    if len(df) < before:
        logger.warning("Dropped {} duplicate corpus ids", before - len(df))

    for col in ("topics", "hashtags"):
        if col in df.columns:
            df[col] = df[col].apply(parse_name_list_field)
        else:
            df[col] = [[] for _ in range(len(df))]

    for col in ("title", "body"):
        df[col] = df[col].fillna("").astype(str) if col in df.columns else ""

    if "duration_ms" in df.columns:
        df["duration_ms"] = df["duration_ms"].apply(_parse_duration).astype(object)
    else:
        df["duration_ms"] = None

    extra = [c for c in df.columns if c not in CORPUS_COLUMNS]
    return df[CORPUS_COLUMNS + extra]


# ---------------------------
# IO helpers
# ---------------------------

def load_corpus(path: Path = CORPUS_PATH) -> pd.DataFrame:
    """
    Load and normalize the post corpus from a JSON array of records or a
    Parquet file.
    """
    path = Path(path)
    logger.info("Loading corpus from {}", path)
    if path.suffix.lower() == ".parquet":
        df_raw = pd.read_parquet(path)
    else:
        with path.open("r", encoding="utf-8") as f:
            df_raw = pd.DataFrame(json.load(f))
    df = normalize_corpus_df(df_raw)
    logger.info("Loaded corpus with {} items", len(df))
    return df


def corpus_from_records(records: List[Dict[str, Any]]) -> pd.DataFrame:
    return normalize_corpus_df(pd.DataFrame(records))


def to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows as plain JSON-ready dicts."""
    out: List[Dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        item = {}
        for key, value in row.items():
            if isinstance(value, float) and pd.isna(value):
                value = None
            item[key] = value
        out.append(item)
    return out
