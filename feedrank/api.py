from __future__ import annotations

"""
FastAPI application for the batch ranking gateway.

- GET  /health
- GET  /api/items?limit=&topics=&hashtags=   (topics/hashtags: JSON or comma list)
- POST /api/items                            (same fields as a JSON body)

Membership proofs are checked by an external verifier installed with
:func:`set_membership_verifier`; this module only maps its verdict to HTTP.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional

import pandas as pd
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .config import (
    AUTH_PROOF_HEADER,
    AUTH_SIGNALS_HEADER,
    CORPUS_PATH,
    DEFAULT_LIMIT,
    REQUIRE_AUTH,
    BatchRequest,
    BatchResponse,
    HealthResponse,
)
from .corpus import load_corpus
from .gateway import select_batch
from .preferences import PreferenceQuery, from_body_value, parse_query


# -----------------------
# Membership boundary
# -----------------------

class AuthFailure(str, Enum):
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_PROOF = "invalid_proof"
    ROOT_MISMATCH = "root_mismatch"
    MALFORMED_CREDENTIAL = "malformed_credential"


@dataclass
class MembershipCheck:
    authenticated: bool
    failure: Optional[AuthFailure] = None


_FAILURE_RESPONSES = {
    AuthFailure.MISSING_CREDENTIAL: (401, "Authentication required"),
    AuthFailure.INVALID_PROOF: (403, "Invalid authentication proof"),
    AuthFailure.ROOT_MISMATCH: (403, "Merkle root mismatch"),
    AuthFailure.MALFORMED_CREDENTIAL: (400, "Malformed authentication data"),
}

MembershipVerifier = Callable[[Mapping[str, str]], MembershipCheck]

membership_verifier: Optional[MembershipVerifier] = None
require_auth: bool = REQUIRE_AUTH


def set_membership_verifier(verifier: Optional[MembershipVerifier]) -> None:
    global membership_verifier
    membership_verifier = verifier


def require_membership(request: Request) -> bool:
    if membership_verifier is None:
        if require_auth:
            logger.warning("Auth required but no membership verifier installed")
            raise HTTPException(status_code=401, detail="Authentication required")
        return False

    headers = request.headers
    if not headers.get(AUTH_PROOF_HEADER) or not headers.get(AUTH_SIGNALS_HEADER):
        check = MembershipCheck(authenticated=False, failure=AuthFailure.MISSING_CREDENTIAL)
    else:
        check = membership_verifier(headers)

    if not check.authenticated:
        failure = check.failure or AuthFailure.INVALID_PROOF
        status, detail = _FAILURE_RESPONSES[failure]
        logger.warning("Rejected batch request: {}", failure.value)
        raise HTTPException(status_code=status, detail=detail)
    return True


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

_corpus_df: Optional[pd.DataFrame] = None
_rng = random.Random()


@app.on_event("startup")
def startup_event() -> None:
    global _corpus_df
    try:
        _corpus_df = load_corpus(CORPUS_PATH)
    except Exception as e:
        logger.error("Failed to load corpus from {}: {}", CORPUS_PATH, e)
        _corpus_df = None


def _coerce_limit(raw: object) -> int:
    try:
        limit = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_LIMIT
    return limit if limit > 0 else DEFAULT_LIMIT


def _serve(query: PreferenceQuery, limit: int) -> BatchResponse:
    if _corpus_df is None:
        raise HTTPException(status_code=500, detail="Corpus not loaded")
    return BatchResponse(**select_batch(_corpus_df, query, limit=limit, rng=_rng))


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.get("/api/items", response_model=BatchResponse)
def get_items(
    limit: Optional[str] = None,
    topics: Optional[str] = None,
    hashtags: Optional[str] = None,
    _authenticated: bool = Depends(require_membership),
) -> BatchResponse:
    return _serve(parse_query(topics, hashtags), _coerce_limit(limit))


@app.post("/api/items", response_model=BatchResponse)
def post_items(
    req: BatchRequest,
    _authenticated: bool = Depends(require_membership),
) -> BatchResponse:
    query = PreferenceQuery(topics=from_body_value(req.topics), hashtags=from_body_value(req.hashtags))
    return _serve(query, _coerce_limit(req.limit))
