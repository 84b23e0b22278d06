"""Chunk-and-aggregate classification of documents longer than the model input.

The model only sees `max_length` tokens at a time. A long document is split
into word chunks of at most `max_length - chunk_margin` characters, each chunk
is classified on its own, and the per-chunk probabilities are combined into a
single document-level decision.

Aggregation weights every chunk by the classifier's confidence in its own top
class, `max(p0, p1)`, and averages the probability vectors with those weights.
Confident chunks dominate the vote. This is a heuristic: nothing stops an
overconfident but wrong chunk from outweighing several hesitant correct ones.
It is kept as-is so that results stay comparable with earlier deployments.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Final, Iterable, Iterator, Protocol

from doc_validator.config import DEFAULT_CHUNK_MARGIN, DEFAULT_MAX_LENGTH, NUM_CLASSES
from doc_validator.errors import ClassificationError, DegenerateAggregationError, InputError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
PROBABILITY_SUM_TOLERANCE: Final[float] = 1e-5


@dataclass(frozen=True)
class Prediction:
    """Classification of a single piece of text."""

    predicted_class: int
    probabilities: tuple[float, float]

    def __post_init__(self) -> None:
        if len(self.probabilities) != NUM_CLASSES:
            raise ClassificationError(f"Expected {NUM_CLASSES} class probabilities, got {len(self.probabilities)}")
        if self.predicted_class not in range(NUM_CLASSES):
            raise ClassificationError(f"Predicted class must be 0 or 1, got {self.predicted_class!r}")
        if not all(math.isfinite(p) and 0.0 <= p <= 1.0 for p in self.probabilities):
            raise ClassificationError(f"Probabilities must be finite and within [0, 1], got {list(self.probabilities)}")
        if abs(math.fsum(self.probabilities) - 1.0) > PROBABILITY_SUM_TOLERANCE:
            raise ClassificationError(f"Probabilities must sum to 1, got {list(self.probabilities)}")

    @property
    def confidence(self) -> float:
        """Probability of the top class, used as this prediction's vote weight."""
        return max(self.probabilities)


@dataclass(frozen=True)
class AggregateResult:
    """Document-level decision plus the chunk predictions it was derived from."""

    predicted_class: int
    probabilities: tuple[float, float]
    chunks: tuple[str, ...]
    chunk_predictions: tuple[Prediction, ...]

    @property
    def num_chunks(self) -> int:
        return len(self.chunks)


class Classifier(Protocol):
    def predict(self, text: str) -> Prediction: ...


def normalize_text(text: str | None) -> str:
    """Lowercase and trim `text`, rejecting missing or blank input."""
    if text is None:
        raise InputError("Input text must not be None.")
    normalized = text.lower().strip()
    if not normalized:
        raise InputError("Input text must not be empty or whitespace-only.")
    return normalized


def split_into_chunks(text: str, budget: int) -> Iterator[str]:
    """Lazily split `text` into word chunks of at most `budget` characters.

    Words are kept whole and in order. Every word counts for its length plus
    one separator. A single word longer than `budget` becomes a chunk of its
    own; truncating it is left to the tokenizer.

    Raises:
        ValueError: If `budget` is not positive.
    """
    if budget <= 0:
        raise ValueError("`budget` must be > 0.")

    current: list[str] = []
    count = 0
    for word in _WHITESPACE_RE.split(text):
        if not word:
            continue
        if current and count + len(word) + 1 > budget:
            yield " ".join(current)
            current = []
            count = 0
        current.append(word)
        count += len(word) + 1
    if current:
        yield " ".join(current)


def aggregate_predictions(predictions: Iterable[Prediction]) -> tuple[int, tuple[float, float]]:
    """Combine chunk predictions by confidence-weighted averaging.

    Returns the final class and the averaged probability vector. Ties between
    the two classes resolve to class 1. Sums are exactly rounded, so the result
    does not depend on the order of `predictions`.

    Raises:
        DegenerateAggregationError: If there are no predictions or their total
            weight is not positive.
    """
    predictions = list(predictions)
    if not predictions:
        raise DegenerateAggregationError("Cannot aggregate zero chunk predictions.")

    weights = [p.confidence for p in predictions]
    total_weight = math.fsum(weights)
    if not total_weight > 0.0:
        raise DegenerateAggregationError(
            f"Total confidence weight of the chunk predictions is not positive: {total_weight}"
        )

    weighted = [
        math.fsum(p.probabilities[c] * w for p, w in zip(predictions, weights)) for c in range(NUM_CLASSES)
    ]
    avg = (weighted[0] / total_weight, weighted[1] / total_weight)
    predicted_class = 0 if avg[0] > avg[1] else 1
    return predicted_class, avg


def predict_long_document(
    classifier: Classifier,
    text: str | None,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
    chunk_margin: int = DEFAULT_CHUNK_MARGIN,
) -> AggregateResult:
    """Classify a document of any length with `classifier`.

    Chunks are classified strictly one after another. The first failing chunk
    aborts the whole call; its error propagates unchanged.

    Raises:
        InputError: If `text` is missing or blank.
        ClassificationError: If the classifier fails on any chunk.
        DegenerateAggregationError: If no chunk could be produced.
    """
    normalized = normalize_text(text)

    chunks: list[str] = []
    predictions: list[Prediction] = []
    for index, chunk in enumerate(split_into_chunks(normalized, max_length - chunk_margin)):
        prediction = classifier.predict(chunk)
        logger.info("Chunk %d: %r", index, chunk)
        logger.info(
            "Chunk %d predicted class=%d probabilities=%s",
            index,
            prediction.predicted_class,
            list(prediction.probabilities),
        )
        chunks.append(chunk)
        predictions.append(prediction)

    predicted_class, probabilities = aggregate_predictions(predictions)
    logger.info(
        "Document predicted class=%d probabilities=%s over %d chunks",
        predicted_class,
        list(probabilities),
        len(chunks),
    )
    return AggregateResult(
        predicted_class=predicted_class,
        probabilities=probabilities,
        chunks=tuple(chunks),
        chunk_predictions=tuple(predictions),
    )
