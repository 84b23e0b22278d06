"""doc_validator package.

Binary document classification with a fine-tuned BERT model. Short texts are
classified directly; long documents are split into word chunks that fit the
model's sequence length and the per-chunk probabilities are combined by
confidence-weighted averaging.
"""

from doc_validator.errors import (
    ClassificationError,
    DegenerateAggregationError,
    DocumentValidationError,
    ErrorKind,
    InputError,
)
from doc_validator.long_document import AggregateResult, Prediction, predict_long_document, split_into_chunks

__all__ = [
    "AggregateResult",
    "ClassificationError",
    "DegenerateAggregationError",
    "DocumentValidationError",
    "ErrorKind",
    "InputError",
    "Prediction",
    "predict_long_document",
    "split_into_chunks",
]
