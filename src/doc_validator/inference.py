"""Single-text inference backends.

Both backends follow the same recipe: lowercase and trim the text, tokenize it
to a fixed `max_length` (truncating and zero-padding), run the model, and turn
the two logits into a `Prediction` with a softmax. They differ only in the
runtime: ONNX Runtime for exported models, PyTorch for Hugging Face checkpoints.

Classifiers own their runtime handle. Create them once, pass them explicitly
to whoever needs them, and release them with `close()` or by using them as
context managers.
"""

from __future__ import annotations

import abc
import contextlib
import logging
from typing import Any, Iterator

import numpy as np
import onnxruntime as ort
import torch
from transformers import PreTrainedModel, PreTrainedTokenizerBase

from doc_validator.config import BACKEND_ONNX, DEFAULT_MAX_LENGTH, NUM_CLASSES, InferenceConfig
from doc_validator.errors import ClassificationError
from doc_validator.long_document import Prediction, normalize_text
from doc_validator.model import build_onnx_session, build_pretrained_model, build_tokenizer, encode_text

logger = logging.getLogger(__name__)


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over a 1-D logit vector."""
    shifted = np.asarray(logits, dtype=np.float64) - np.max(logits)
    exp = np.exp(shifted)
    return exp / exp.sum()


def prediction_from_logits(logits: Any) -> Prediction:
    """Convert a single row of binary logits into a `Prediction`."""
    row = np.asarray(logits, dtype=np.float64).reshape(-1)
    if row.shape[0] != NUM_CLASSES:
        raise ClassificationError(f"Expected {NUM_CLASSES} logits from the model, got shape {np.shape(logits)}")
    if not np.all(np.isfinite(row)):
        raise ClassificationError(f"Model returned non-finite logits: {row.tolist()}")
    probabilities = softmax(row)
    return Prediction(
        predicted_class=int(np.argmax(row)),
        probabilities=(float(probabilities[0]), float(probabilities[1])),
    )


class _BaseClassifier(abc.ABC):
    def __init__(self, tokenizer: PreTrainedTokenizerBase, *, max_length: int = DEFAULT_MAX_LENGTH) -> None:
        if max_length <= 0:
            raise ValueError("`max_length` must be > 0.")
        self.tokenizer = tokenizer
        self.max_length = max_length
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def predict(self, text: str | None) -> Prediction:
        """Classify a single text, truncated to `max_length` tokens.

        Raises:
            InputError: If `text` is missing or blank.
            ClassificationError: If tokenization or inference fails.
        """
        normalized = normalize_text(text)
        if self._closed:
            raise ClassificationError(f"{type(self).__name__} is closed.")
        logits = self._logits(normalized)
        logger.debug("Logits: %s", np.asarray(logits).tolist())
        return prediction_from_logits(logits)

    @abc.abstractmethod
    def _logits(self, text: str) -> Any: ...

    @abc.abstractmethod
    def _release(self) -> None: ...

    def close(self) -> None:
        """Release the runtime handle. Calling it again is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._release()

    def __enter__(self) -> _BaseClassifier:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class OnnxClassifier(_BaseClassifier):
    """Classifier backed by an ONNX Runtime session."""

    def __init__(
        self,
        session: ort.InferenceSession,
        tokenizer: PreTrainedTokenizerBase,
        *,
        max_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        super().__init__(tokenizer, max_length=max_length)
        self._session = session
        self._input_names = [node.name for node in session.get_inputs()]

    def _logits(self, text: str) -> Any:
        try:
            encoding = encode_text(self.tokenizer, text, max_length=self.max_length)
        except Exception as exc:
            raise ClassificationError(f"Failed to tokenize text: {exc}") from exc

        feeds: dict[str, np.ndarray] = {}
        for name in self._input_names:
            if name in encoding:
                feeds[name] = encoding[name]
            elif name == "token_type_ids":
                feeds[name] = np.zeros_like(encoding["input_ids"])
            else:
                raise ClassificationError(f"Model expects an input the tokenizer does not produce: {name!r}")

        try:
            outputs = self._session.run(None, feeds)
        except Exception as exc:
            raise ClassificationError(f"ONNX Runtime inference failed: {exc}") from exc
        return outputs[0]

    def _release(self) -> None:
        # InferenceSession has no explicit close; dropping the last reference frees it.
        self._session = None


class TransformersClassifier(_BaseClassifier):
    """Classifier backed by a PyTorch `AutoModelForSequenceClassification`."""

    def __init__(
        self,
        model: PreTrainedModel,
        tokenizer: PreTrainedTokenizerBase,
        *,
        max_length: int = DEFAULT_MAX_LENGTH,
        device: str | None = None,
    ) -> None:
        super().__init__(tokenizer, max_length=max_length)
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self._model = model.to(self.device)

    def _logits(self, text: str) -> Any:
        try:
            encoding = self.tokenizer(
                text,
                padding="max_length",
                truncation=True,
                max_length=self.max_length,
                return_tensors="pt",
            )
        except Exception as exc:
            raise ClassificationError(f"Failed to tokenize text: {exc}") from exc

        inputs = {name: tensor.to(self.device) for name, tensor in encoding.items()}
        try:
            with torch.no_grad():
                outputs = self._model(**inputs)
        except Exception as exc:
            raise ClassificationError(f"PyTorch inference failed: {exc}") from exc
        return outputs.logits.detach().cpu().numpy()

    def _release(self) -> None:
        self._model = None
        if self.device.startswith("cuda"):
            torch.cuda.empty_cache()


def load_classifier(config: InferenceConfig) -> OnnxClassifier | TransformersClassifier:
    """Build the classifier backend described by `config`."""
    tokenizer = build_tokenizer(config.tokenizer_path if config.tokenizer_path is not None else config.model_path)
    if config.backend == BACKEND_ONNX:
        session = build_onnx_session(config.model_path)
        classifier: OnnxClassifier | TransformersClassifier = OnnxClassifier(
            session, tokenizer, max_length=config.max_length
        )
    else:
        model = build_pretrained_model(config.model_path)
        classifier = TransformersClassifier(model, tokenizer, max_length=config.max_length)
    logger.info("Model and tokenizer loaded (backend=%s)", config.backend)
    return classifier


@contextlib.contextmanager
def open_classifier(config: InferenceConfig) -> Iterator[OnnxClassifier | TransformersClassifier]:
    """Load a classifier and guarantee it is released when the block exits.

    Failures while releasing are logged and do not mask the block's outcome.
    """
    classifier = load_classifier(config)
    try:
        yield classifier
    finally:
        try:
            classifier.close()
        except Exception as exc:
            logger.warning("Failed to release inference resources: %s", exc)
