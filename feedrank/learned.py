"""Small online-trained engagement classifier and the scorer built on it."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import torch.optim as optim
from loguru import logger

from .config import DEFAULT_TUNING, TuningConfig
from .ledger import InteractionRecord
from .pipeline_types import HASHTAG, TOPIC, InterestSnapshot, PreferenceWeight
from .scoring import (
    DISENGAGED,
    ENGAGED,
    NUM_CLASSES,
    engagement_class,
    has_enough_signal,
    preference_score,
    sort_weights,
)

DEVICE = torch.device("cpu")


class EngagementClassifier(nn.Module):
    """
    Feed-forward classifier over {disengaged, neutral, engaged}:
    Linear(V -> max(16, V)) -> ReLU -> Linear(-> 8) -> ReLU -> Linear(-> 3)
    Both hidden layers carry an L2 penalty, applied in the training loss.
    """

    def __init__(self, input_dim: int, hidden_units: int, second_units: int) -> None:
        super().__init__()
        self.input_dim = input_dim
        self.hidden = nn.Linear(input_dim, hidden_units)
        self.second = nn.Linear(hidden_units, second_units)
        self.head = nn.Linear(second_units, NUM_CLASSES)

    @classmethod
    def for_vocabulary(cls, vocab_size: int, tuning: TuningConfig = DEFAULT_TUNING) -> "EngagementClassifier":
        return cls(
            input_dim=vocab_size,
            hidden_units=max(tuning.hidden_units_min, vocab_size),
            second_units=tuning.hidden_units_second,
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Return raw class logits."""
        h = F.relu(self.hidden(x))
        h = F.relu(self.second(h))
        return self.head(h)

    def l2_penalty(self) -> torch.Tensor:
        return self.hidden.weight.pow(2).sum() + self.second.weight.pow(2).sum()

    def predict_proba(self, x: torch.Tensor) -> torch.Tensor:
        return torch.softmax(self.forward(x), dim=-1)


@dataclass
class ModelState:
    """
    Everything the session knows about its classifier.

    ``model`` and ``feature_topics`` are only replaced together after a
    successful fit, so a failed attempt leaves the last good model usable.
    """

    model: Optional[EngagementClassifier] = None
    feature_topics: Tuple[str, ...] = ()
    trained: bool = False
    training_task: Optional["asyncio.Task[bool]"] = None
    fit_count: int = 0

    @property
    def training(self) -> bool:
        return self.training_task is not None and not self.training_task.done()

    @property
    def status(self) -> str:
        if self.training:
            return "training"
        return "trained" if self.trained else "untrained"


def soft_cross_entropy(logits: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    """Categorical cross-entropy that accepts soft (non one-hot) targets."""
    return -(targets * F.log_softmax(logits, dim=-1)).sum(dim=-1).mean()


def build_training_rows(
    window: Sequence[InteractionRecord],
    feature_topics: Sequence[str],
    history_topics: Sequence[Sequence[PreferenceWeight]] = (),
    tuning: TuningConfig = DEFAULT_TUNING,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    One row per record (one-hot topics, class from the preference score),
    plus synthetic rows reinforcing names that were strong in earlier
    snapshots.
    """
    index = {name: i for i, name in enumerate(feature_topics)}
    xs: List[np.ndarray] = []
    ys: List[np.ndarray] = []

    for record in window:
        x = np.zeros(len(feature_topics), dtype="float32")
        for topic in record.topics:
            if topic in index:
                x[index[topic]] = 1.0
        y = np.zeros(NUM_CLASSES, dtype="float32")
        y[engagement_class(preference_score(record, tuning), tuning)] = 1.0
        xs.append(x)
        ys.append(y)

    for snapshot in history_topics:
        names = {p.name for p in snapshot}
        for prior in snapshot:
            if prior.weight <= tuning.history_row_min_weight:
                continue
            x = np.array(
                [
                    1.0 if t == prior.name else (tuning.history_neighbour_value if t in names else 0.0)
                    for t in feature_topics
                ],
                dtype="float32",
            )
            y = np.zeros(NUM_CLASSES, dtype="float32")
            y[ENGAGED] = (
                tuning.history_strong_label
                if prior.weight > tuning.history_strong_weight
                else tuning.history_soft_label
            )
            xs.append(x)
            ys.append(y)

    if not xs:
        return np.zeros((0, len(feature_topics)), dtype="float32"), np.zeros((0, NUM_CLASSES), dtype="float32")
    return np.stack(xs), np.stack(ys)


def fit_model(
    xs: np.ndarray,
    ys: np.ndarray,
    tuning: TuningConfig = DEFAULT_TUNING,
    seed: Optional[int] = None,
) -> EngagementClassifier:
    """
    Train a fresh classifier. The trailing ``validation_split`` share of rows
    is held out and only used for the logged validation loss.
    """
    if seed is not None:
        torch.manual_seed(seed)

    model = EngagementClassifier.for_vocabulary(xs.shape[1], tuning).to(DEVICE)
    optimizer = optim.Adam(model.parameters(), lr=tuning.learning_rate)

    x_all = torch.tensor(xs, dtype=torch.float32, device=DEVICE)
    y_all = torch.tensor(ys, dtype=torch.float32, device=DEVICE)
    n_train = int(len(xs) * (1.0 - tuning.validation_split)) or len(xs)
    x_train, y_train = x_all[:n_train], y_all[:n_train]
    x_val, y_val = x_all[n_train:], y_all[n_train:]

    model.train()
    loss = torch.tensor(0.0)
    for _ in range(tuning.epochs):
        perm = torch.randperm(n_train)
        for start in range(0, n_train, tuning.batch_size):
            idx = perm[start:start + tuning.batch_size]
            optimizer.zero_grad()
            logits = model(x_train[idx])
            loss = soft_cross_entropy(logits, y_train[idx]) + tuning.l2_penalty * model.l2_penalty()
            loss.backward()
            optimizer.step()

    model.eval()
    if len(x_val):
        with torch.no_grad():
            val_loss = float(soft_cross_entropy(model(x_val), y_val).item())
        logger.info("Classifier fit on {} rows: loss={:.4f} val_loss={:.4f}", n_train, float(loss.item()), val_loss)
    else:
        logger.info("Classifier fit on {} rows: loss={:.4f}", n_train, float(loss.item()))
    return model


def hashtag_probe_rows(
    window: Sequence[InteractionRecord],
    hashtags: Sequence[str],
    feature_topics: Sequence[str],
) -> np.ndarray:
    """Row per hashtag: 1 where the hashtag co-occurred with that topic on some record."""
    index = {name: i for i, name in enumerate(feature_topics)}
    rows = np.zeros((len(hashtags), len(feature_topics)), dtype="float32")
    h_index = {name: i for i, name in enumerate(hashtags)}
    for record in window:
        for tag in record.hashtags:
            if tag not in h_index:
                continue
            for topic in record.topics:
                if topic in index:
                    rows[h_index[tag], index[topic]] = 1.0
    return rows


def _predict_weights(model: EngagementClassifier, rows: np.ndarray) -> np.ndarray:
    if rows.shape[0] == 0:
        return np.zeros((0,), dtype="float32")
    with torch.no_grad():
        probs = model.predict_proba(torch.tensor(rows, dtype=torch.float32, device=DEVICE)).cpu().numpy()
    return probs[:, ENGAGED] - probs[:, DISENGAGED]


class LearnedScorer:
    """
    Scores interests with the session's classifier.

    Training is single-flight per :class:`ModelState`: while a fit is in
    progress every further ``train`` call awaits that same task. The fit and
    the probes run in a worker thread so the event loop keeps accepting
    engagement events.
    """

    def __init__(self, tuning: TuningConfig = DEFAULT_TUNING, seed: Optional[int] = None) -> None:
        self.tuning = tuning
        self.seed = seed

    def fit(self, xs: np.ndarray, ys: np.ndarray) -> EngagementClassifier:
        return fit_model(xs, ys, self.tuning, self.seed)

    async def train(
        self,
        state: ModelState,
        window: Sequence[InteractionRecord],
        topics: Sequence[str],
        history_topics: Sequence[Sequence[PreferenceWeight]] = (),
        use_history: bool = True,
    ) -> bool:
        """Train (or join the running training). Returns True if the fit succeeded."""
        task = state.training_task
        if task is None or task.done():
            if not topics or not has_enough_signal(window, self.tuning):
                return False
            task = asyncio.ensure_future(
                self._train_once(
                    state,
                    list(window),
                    tuple(topics),
                    [list(s) for s in history_topics] if use_history else [],
                )
            )
            state.training_task = task
        else:
            logger.debug("Training already in progress; waiting for it")
        return await asyncio.shield(task)

    async def _train_once(
        self,
        state: ModelState,
        window: List[InteractionRecord],
        topics: Tuple[str, ...],
        history_topics: List[List[PreferenceWeight]],
    ) -> bool:
        try:
            xs, ys = build_training_rows(window, topics, history_topics, self.tuning)
            if xs.shape[0] == 0 or xs.shape[1] == 0:
                return False
            logger.info("Training classifier on {} rows over {} topics", xs.shape[0], xs.shape[1])
            model = await asyncio.to_thread(self.fit, xs, ys)
        except Exception as e:
            logger.warning("Classifier training failed; keeping previous model: {}", e)
            return False
        finally:
            state.training_task = None

        state.model = model
        state.feature_topics = topics
        state.trained = True
        state.fit_count += 1
        return True

    async def score(
        self,
        state: ModelState,
        window: Sequence[InteractionRecord],
        hashtags: Sequence[str],
    ) -> InterestSnapshot:
        """
        Probe the trained model: one-hot rows for every topic it was trained
        on, co-occurrence rows for hashtags. weight = P(engaged) - P(disengaged).
        """
        model = state.model
        feature_topics = state.feature_topics
        if not state.trained or model is None or not feature_topics:
            return InterestSnapshot()
        if not has_enough_signal(window, self.tuning):
            return InterestSnapshot()

        topic_rows = np.eye(len(feature_topics), dtype="float32")
        tag_rows = hashtag_probe_rows(window, hashtags, feature_topics)
        topic_w, tag_w = await asyncio.to_thread(
            lambda: (_predict_weights(model, topic_rows), _predict_weights(model, tag_rows))
        )

        return InterestSnapshot(
            topics=sort_weights(
                [PreferenceWeight(name, float(w), TOPIC) for name, w in zip(feature_topics, topic_w)]
            ),
            hashtags=sort_weights(
                [PreferenceWeight(name, float(w), HASHTAG) for name, w in zip(hashtags, tag_w)]
            ),
        )
