from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Final, Sequence

import numpy as np
import onnxruntime as ort
from transformers import (
    AutoModelForSequenceClassification,
    AutoTokenizer,
    PreTrainedModel,
    PreTrainedTokenizerBase,
    PreTrainedTokenizerFast,
)

from doc_validator.config import DEFAULT_MAX_LENGTH

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS: Final[tuple[str, ...]] = ("CPUExecutionProvider",)
TOKENIZER_FILE_SUFFIX: Final[str] = ".json"
DEFAULT_PAD_TOKEN: Final[str] = "[PAD]"


def build_tokenizer(tokenizer_path: Path | str, *, use_fast: bool = True) -> PreTrainedTokenizerBase:
    """Build a tokenizer from a `tokenizer.json` file, a local directory, or a hub name."""
    path = Path(tokenizer_path)
    if path.suffix == TOKENIZER_FILE_SUFFIX:
        if not path.is_file():
            raise FileNotFoundError(f"Tokenizer file not found: {path}")
        # A bare tokenizer.json does not declare its special tokens.
        return PreTrainedTokenizerFast(tokenizer_file=str(path), pad_token=DEFAULT_PAD_TOKEN)
    return AutoTokenizer.from_pretrained(str(tokenizer_path), use_fast=use_fast)


def build_onnx_session(
    model_path: Path,
    *,
    providers: Sequence[str] | None = None,
) -> ort.InferenceSession:
    """Create an ONNX Runtime session for an exported sequence classification model."""
    if not model_path.is_file():
        raise FileNotFoundError(f"ONNX model not found: {model_path}")
    options = ort.SessionOptions()
    final_providers = list(providers) if providers else list(DEFAULT_PROVIDERS)
    logger.info("Loading ONNX model from %s (providers=%s)", model_path, final_providers)
    return ort.InferenceSession(str(model_path), sess_options=options, providers=final_providers)


def build_pretrained_model(model_name_or_path: Path | str) -> PreTrainedModel:
    """Build a sequence classification model in eval mode."""
    logger.info("Loading PyTorch model from %s", model_name_or_path)
    model = AutoModelForSequenceClassification.from_pretrained(str(model_name_or_path))
    model.eval()
    return model


def encode_text(
    tokenizer: PreTrainedTokenizerBase,
    text: str,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> dict[str, Any]:
    """Tokenize one text into `(1, max_length)` int64 arrays, zero-padded and truncated."""
    encoding = tokenizer(
        text,
        padding="max_length",
        truncation=True,
        max_length=max_length,
        return_tensors="np",
    )
    return {name: np.asarray(values, dtype=np.int64) for name, values in encoding.items()}
