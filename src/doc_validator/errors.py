"""Error taxonomy for document classification.

Business errors (bad input) and inference errors (tokenizer or runtime
failures) are kept apart so callers can map them to different responses.
Model-loading problems are not part of this hierarchy; they surface as the
underlying library or filesystem error.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INPUT = "input"
    CLASSIFICATION = "classification"
    DEGENERATE_AGGREGATION = "degenerate_aggregation"


class DocumentValidationError(Exception):
    """Base class for all errors raised while classifying a document."""

    kind: ErrorKind


class InputError(DocumentValidationError, ValueError):
    """The input text is missing, empty, or whitespace-only after normalization."""

    kind = ErrorKind.INPUT


class ClassificationError(DocumentValidationError):
    """The tokenizer or the model could not process a piece of text."""

    kind = ErrorKind.CLASSIFICATION


class DegenerateAggregationError(DocumentValidationError):
    """There is nothing to aggregate: no chunks, or a total confidence weight of zero."""

    kind = ErrorKind.DEGENERATE_AGGREGATION
