from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL_PATH: Final[Path] = Path("model/bert_finetuned/bert_finetuned.onnx")
DEFAULT_TOKENIZER_PATH: Final[Path] = Path("tokenizer/tokenizer.json")
DEFAULT_MAX_LENGTH: Final[int] = 128
DEFAULT_CHUNK_MARGIN: Final[int] = 10
NUM_CLASSES: Final[int] = 2

BACKEND_ONNX: Final[str] = "onnx"
BACKEND_TRANSFORMERS: Final[str] = "transformers"
SUPPORTED_BACKENDS: Final[tuple[str, ...]] = (BACKEND_ONNX, BACKEND_TRANSFORMERS)

ENV_PREFIX: Final[str] = "DOC_VALIDATOR_"


@dataclass(frozen=True)
class InferenceConfig:
    """Where the model lives and how texts are fed to it.

    `model_path` is an `.onnx` file for the `onnx` backend and a Hugging Face
    checkpoint directory (or hub name) for the `transformers` backend. When
    `tokenizer_path` is `None` the tokenizer is loaded from `model_path`,
    which only makes sense for the `transformers` backend.
    """

    model_path: Path = DEFAULT_MODEL_PATH
    tokenizer_path: Path | None = DEFAULT_TOKENIZER_PATH
    backend: str = BACKEND_ONNX
    max_length: int = DEFAULT_MAX_LENGTH
    chunk_margin: int = DEFAULT_CHUNK_MARGIN

    def __post_init__(self) -> None:
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(f"Unsupported backend {self.backend!r}. Expected one of {list(SUPPORTED_BACKENDS)}")
        if self.max_length <= 0:
            raise ValueError("`max_length` must be > 0.")
        if self.chunk_margin < 0:
            raise ValueError("`chunk_margin` must be >= 0.")
        if self.chunk_budget <= 0:
            raise ValueError("`max_length - chunk_margin` must be > 0.")
        if self.tokenizer_path is None and self.backend == BACKEND_ONNX:
            raise ValueError("The `onnx` backend needs an explicit `tokenizer_path`.")

    @property
    def chunk_budget(self) -> int:
        """Maximum number of characters per chunk for long documents."""
        return self.max_length - self.chunk_margin

    @classmethod
    def from_env(cls) -> InferenceConfig:
        """Build a config from `DOC_VALIDATOR_*` environment variables, falling back to defaults."""
        return InferenceSettings().to_config()


class InferenceSettings(BaseSettings):
    """Environment view of `InferenceConfig`, used by the API process."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        protected_namespaces=(),
    )

    model_path: Path = Field(default=DEFAULT_MODEL_PATH, description="ONNX model file or checkpoint directory.")
    tokenizer_path: Path | None = Field(
        default=None,
        description="tokenizer.json file or directory. Defaults per backend when unset.",
    )
    backend: Literal["onnx", "transformers"] = Field(default=BACKEND_ONNX, description="Inference backend.")
    max_length: int = Field(default=DEFAULT_MAX_LENGTH, gt=0, description="Model input length in tokens.")
    chunk_margin: int = Field(default=DEFAULT_CHUNK_MARGIN, ge=0, description="Characters kept free per chunk.")

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value

    def to_config(self) -> InferenceConfig:
        tokenizer_path = self.tokenizer_path
        if tokenizer_path is None and self.backend == BACKEND_ONNX:
            tokenizer_path = DEFAULT_TOKENIZER_PATH
        return InferenceConfig(
            model_path=self.model_path,
            tokenizer_path=tokenizer_path,
            backend=self.backend,
            max_length=self.max_length,
            chunk_margin=self.chunk_margin,
        )
