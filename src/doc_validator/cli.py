"""Command line entrypoint: classify a text or a text file and print the result as JSON."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer

from doc_validator.config import (
    BACKEND_ONNX,
    DEFAULT_CHUNK_MARGIN,
    DEFAULT_MAX_LENGTH,
    DEFAULT_MODEL_PATH,
    DEFAULT_TOKENIZER_PATH,
    InferenceConfig,
)
from doc_validator.errors import DocumentValidationError
from doc_validator.inference import open_classifier
from doc_validator.long_document import predict_long_document

logger = logging.getLogger(__name__)

app = typer.Typer(add_completion=False, help="Classify documents with a fine-tuned BERT model.")


@app.command()
def classify(
    text: str | None = typer.Argument(None, help="Text to classify. Use --input-file for documents on disk."),
    input_file: Path | None = typer.Option(
        None, "--input-file", "-f", exists=True, dir_okay=False, help="Read the document from a UTF-8 text file."
    ),
    model_path: Path = typer.Option(DEFAULT_MODEL_PATH, help="ONNX model file or Hugging Face checkpoint directory."),
    tokenizer_path: Path | None = typer.Option(
        DEFAULT_TOKENIZER_PATH, help="tokenizer.json file or tokenizer directory."
    ),
    backend: str = typer.Option(BACKEND_ONNX, help="Inference backend: `onnx` or `transformers`."),
    max_length: int = typer.Option(DEFAULT_MAX_LENGTH, help="Model input length in tokens."),
    chunk_margin: int = typer.Option(
        DEFAULT_CHUNK_MARGIN, help="Characters kept free per chunk: chunks hold at most max_length - margin."
    ),
    single: bool = typer.Option(
        False, "--single", help="Classify the text as a single (truncated) model input instead of chunking it."
    ),
) -> None:
    """Classify a document and print its predicted class and probabilities."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if (text is None) == (input_file is None):
        raise typer.BadParameter("Pass exactly one of TEXT or --input-file.")
    document = text
    if input_file is not None:
        try:
            document = input_file.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise typer.BadParameter(f"{input_file} is not valid UTF-8: {exc}", param_hint="--input-file") from exc

    try:
        config = InferenceConfig(
            model_path=model_path,
            tokenizer_path=tokenizer_path,
            backend=backend,
            max_length=max_length,
            chunk_margin=chunk_margin,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    logger.info("backend=%s model_path=%s tokenizer_path=%s", config.backend, config.model_path, config.tokenizer_path)

    try:
        with open_classifier(config) as classifier:
            if single:
                prediction = classifier.predict(document)
                payload: dict[str, Any] = {
                    "predicted_class": prediction.predicted_class,
                    "probabilities": list(prediction.probabilities),
                    "num_chunks": 1,
                }
            else:
                result = predict_long_document(
                    classifier,
                    document,
                    max_length=config.max_length,
                    chunk_margin=config.chunk_margin,
                )
                payload = {
                    "predicted_class": result.predicted_class,
                    "probabilities": list(result.probabilities),
                    "num_chunks": result.num_chunks,
                }
    except DocumentValidationError as exc:
        typer.echo(f"Error ({exc.kind.value}): {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(json.dumps(payload, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
