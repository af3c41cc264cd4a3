from __future__ import annotations

import argparse
import asyncio
import random
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from feedrank import config
from feedrank.corpus import load_corpus
from feedrank.gateway import select_batch
from feedrank.persistence import JsonFileStore, MemoryStore
from feedrank.pipeline_types import InterestSnapshot
from feedrank.preferences import PreferenceQuery, from_values
from feedrank.session import FeedSession


class LocalGateway:
    """In-process stand-in for the HTTP gateway, same call shape as GatewayClient."""

    def __init__(self, corpus: pd.DataFrame, seed: Optional[int] = None) -> None:
        self.corpus = corpus
        self.rng = random.Random(seed)

    async def fetch_batch(
        self,
        snapshot: InterestSnapshot,
        limit: int,
        auth_headers: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        query = PreferenceQuery(
            topics=from_values([p.as_dict() for p in snapshot.topics]),
            hashtags=from_values([p.as_dict() for p in snapshot.hashtags]),
        )
        return select_batch(self.corpus, query, limit=limit, rng=self.rng)["items"]


def _fmt(snapshot: InterestSnapshot) -> str:
    topics = ", ".join(f"{p.name}={p.weight:.3f}" for p in snapshot.topics) or "-"
    hashtags = ", ".join(f"{p.name}={p.weight:.3f}" for p in snapshot.hashtags) or "-"
    return f"topics[{topics}] hashtags[{hashtags}]"


async def run(corpus_path: Path, favourite: str, batches: int, snapshot_path: Optional[Path], seed: int) -> None:
    corpus = load_corpus(corpus_path)
    store = JsonFileStore(snapshot_path) if snapshot_path else MemoryStore()
    session = FeedSession(LocalGateway(corpus, seed=seed), store=store, idle_train_seconds=None, seed=seed)
    print(f"Session start: {session.initialize()}")

    await session.load_batch()
    for n in range(batches):
        for item in list(session.batch):
            if favourite in (item.get("topics") or []):
                session.record("like", item)
            else:
                session.record("not_interested", item)
        await session.load_batch()
        print(f"Batch {n + 1}: model={session.model_status} {_fmt(session.last_analyzed)}")
    session.close()


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Drive a feed session with a scripted persona.")
    ap.add_argument("--corpus", type=Path, default=config.CORPUS_PATH)
    ap.add_argument("--favourite", default="sports", help="topic the persona likes")
    ap.add_argument("--batches", type=int, default=5)
    ap.add_argument(
        "--snapshots",
        type=Path,
        default=config.SNAPSHOT_PATH,
        help="JSON file for cross-session snapshots",
    )
    ap.add_argument("--no-persist", action="store_true", help="keep snapshots in memory only")
    ap.add_argument("--seed", type=int, default=7)
    return ap


def main() -> None:
    args = build_parser().parse_args()
    snapshots = None if args.no_persist else args.snapshots
    asyncio.run(run(args.corpus, args.favourite, args.batches, snapshots, args.seed))


if __name__ == "__main__":
    main()
