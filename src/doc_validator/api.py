"""FastAPI application entrypoint.

The classifier is loaded once when the application starts and released when it
shuts down. Requests are served one at a time: the model handle is shared and
documents are classified chunk by chunk in a single pass.

Run with `uvicorn doc_validator.api:app`. The model location is read from the
`DOC_VALIDATOR_*` environment variables (see `InferenceConfig.from_env`).
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import Any, Callable, ContextManager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from doc_validator.config import InferenceConfig
from doc_validator.errors import DocumentValidationError, InputError
from doc_validator.inference import open_classifier
from doc_validator.long_document import Classifier, normalize_text, predict_long_document

ClassifierFactory = Callable[[InferenceConfig], ContextManager[Classifier]]


class PredictRequest(BaseModel):
    text: str | None = Field(None, description="Document text to classify.")
    long_document: bool = Field(True, description="Split the text into chunks instead of truncating it.")


class PredictResponse(BaseModel):
    predicted_class: int
    probabilities: list[float]
    num_chunks: int


def create_app(
    config: InferenceConfig | None = None,
    *,
    classifier_factory: ClassifierFactory = open_classifier,
) -> FastAPI:
    """Build the application. `config` defaults to `InferenceConfig.from_env()` at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        final_config = config or InferenceConfig.from_env()
        with classifier_factory(final_config) as classifier:
            app.state.config = final_config
            app.state.classifier = classifier
            app.state.lock = threading.Lock()
            yield

    app = FastAPI(title="doc-validator", lifespan=lifespan)

    @app.exception_handler(DocumentValidationError)
    async def _handle_validation_error(request: Request, exc: DocumentValidationError) -> JSONResponse:
        status_code = 422 if isinstance(exc, InputError) else 500
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "kind": exc.kind.value})

    @app.get("/healthz")
    def healthz() -> dict[str, Any]:
        return {"status": "ok"}

    @app.post("/predict", response_model=PredictResponse)
    def predict(payload: PredictRequest, request: Request) -> PredictResponse:
        state = request.app.state
        text = normalize_text(payload.text)
        with state.lock:
            if payload.long_document:
                result = predict_long_document(
                    state.classifier,
                    text,
                    max_length=state.config.max_length,
                    chunk_margin=state.config.chunk_margin,
                )
                return PredictResponse(
                    predicted_class=result.predicted_class,
                    probabilities=list(result.probabilities),
                    num_chunks=result.num_chunks,
                )
            prediction = state.classifier.predict(text)
        return PredictResponse(
            predicted_class=prediction.predicted_class,
            probabilities=list(prediction.probabilities),
            num_chunks=1,
        )

    return app


app = create_app()
