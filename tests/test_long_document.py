from __future__ import annotations

import itertools
import logging
import math
from types import SimpleNamespace
from typing import Iterator

import pytest

from doc_validator.errors import ClassificationError, DegenerateAggregationError, InputError
from doc_validator.long_document import (
    Prediction,
    aggregate_predictions,
    normalize_text,
    predict_long_document,
    split_into_chunks,
)

LOREM = (
    "Acordo de Confidencialidade de Participação em Projeto nº 7223 1. Partes 1.1. Empresa: Pereira Garcia - EI, "
    "com sede em Vereda de Garcia, 51, Vila Nova Gameleira 1ª Seção, inscrito no CNPJ sob o nº "
    "67.289.053/0001-45.\n\n2. Objeto do Acordo\tEste acordo tem como objetivo garantir a confidencialidade "
    "das informações relacionadas ao Projeto, no qual o Participante atuará como consultor/colaborador."
)


class DummyClassifier:
    """Returns canned predictions in order and records every text it receives."""

    def __init__(self, predictions: list[Prediction] | None = None, *, fail_on_call: int | None = None):
        self._predictions = predictions
        self._fail_on_call = fail_on_call
        self.calls: list[str] = []

    def predict(self, text: str) -> Prediction:
        self.calls.append(text)
        if self._fail_on_call is not None and len(self.calls) == self._fail_on_call:
            raise ClassificationError("model exploded")
        if self._predictions is None:
            return Prediction(0, (0.75, 0.25))
        return self._predictions[(len(self.calls) - 1) % len(self._predictions)]


def test_split_single_short_chunk():
    assert list(split_into_chunks("hello world", 118)) == ["hello world"]


def test_split_is_lazy():
    assert isinstance(split_into_chunks("hello world", 118), Iterator)


def test_split_is_greedy():
    assert list(split_into_chunks("aa bb cc", 6)) == ["aa bb", "cc"]


def test_split_collapses_whitespace_runs():
    assert list(split_into_chunks("  a\t\tb \n c  ", 118)) == ["a b c"]


@pytest.mark.parametrize("text", ["", "   ", "\n\t  \r\n"])
def test_split_whitespace_only_yields_nothing(text):
    assert list(split_into_chunks(text, 10)) == []


@pytest.mark.parametrize("budget", [0, -5])
def test_split_rejects_non_positive_budget(budget):
    with pytest.raises(ValueError, match="budget"):
        list(split_into_chunks("hello", budget))


def test_split_keeps_long_word_whole():
    word = "x" * 200
    assert list(split_into_chunks(word, 10)) == [word]


def test_split_long_word_between_short_words():
    word = "y" * 50
    assert list(split_into_chunks(f"hi {word} there", 10)) == ["hi", word, "there"]


@pytest.mark.parametrize("budget", [1, 5, 12, 40, 118])
def test_split_respects_budget(budget):
    for chunk in split_into_chunks(LOREM, budget):
        assert chunk
        assert len(chunk) <= budget or " " not in chunk


@pytest.mark.parametrize("budget", [1, 5, 12, 40, 118, 10_000])
def test_split_preserves_words_and_order(budget):
    chunks = list(split_into_chunks(LOREM, budget))
    assert " ".join(chunks).split() == LOREM.split()
    assert all(chunk == chunk.strip() for chunk in chunks)


def test_normalize_text_lowercases_and_trims():
    assert normalize_text("  Hello WORLD \n") == "hello world"


@pytest.mark.parametrize("text", [None, "", "   ", "\t\n"])
def test_normalize_text_rejects_blank(text):
    with pytest.raises(InputError):
        normalize_text(text)


def test_prediction_requires_two_probabilities():
    with pytest.raises(ClassificationError, match="2 class probabilities"):
        Prediction(0, (0.2, 0.3, 0.5))


def test_prediction_requires_binary_class():
    with pytest.raises(ClassificationError, match="0 or 1"):
        Prediction(2, (0.5, 0.5))


@pytest.mark.parametrize(
    "probabilities",
    [(math.nan, math.nan), (math.inf, 0.0), (-0.5, 1.5), (1.2, -0.2)],
)
def test_prediction_rejects_invalid_probabilities(probabilities):
    with pytest.raises(ClassificationError, match=r"within \[0, 1\]"):
        Prediction(0, probabilities)


def test_prediction_rejects_probabilities_not_summing_to_one():
    with pytest.raises(ClassificationError, match="sum to 1"):
        Prediction(0, (0.6, 0.6))


def test_prediction_accepts_rounding_noise():
    prediction = Prediction(1, (0.3, 0.7 + 5e-6))
    assert prediction.confidence == pytest.approx(0.7, abs=1e-5)


def test_prediction_confidence_is_top_probability():
    assert Prediction(1, (0.3, 0.7)).confidence == 0.7


def test_aggregate_two_chunks_one_confident():
    predicted_class, probabilities = aggregate_predictions(
        [Prediction(0, (0.9, 0.1)), Prediction(1, (0.4, 0.6))]
    )
    assert predicted_class == 0
    assert probabilities == pytest.approx((0.7, 0.3))


def test_aggregate_single_prediction_is_unchanged():
    predicted_class, probabilities = aggregate_predictions([Prediction(1, (0.35, 0.65))])
    assert predicted_class == 1
    assert probabilities == pytest.approx((0.35, 0.65))


@pytest.mark.parametrize(
    "predictions",
    [
        [Prediction(0, (0.5, 0.5))],
        [Prediction(0, (0.8, 0.2)), Prediction(1, (0.2, 0.8))],
    ],
)
def test_aggregate_tie_resolves_to_class_one(predictions):
    predicted_class, probabilities = aggregate_predictions(predictions)
    assert probabilities[0] == probabilities[1]
    assert predicted_class == 1


def test_aggregate_is_order_independent():
    predictions = [
        Prediction(0, (0.91, 0.09)),
        Prediction(1, (0.33, 0.67)),
        Prediction(1, (0.12, 0.88)),
        Prediction(0, (0.51, 0.49)),
    ]
    expected = aggregate_predictions(predictions)
    for permutation in itertools.permutations(predictions):
        assert aggregate_predictions(permutation) == expected


def test_aggregate_probabilities_are_bounded_and_sum_to_one():
    predictions = [Prediction(int(p < 0.5), (p, 1.0 - p)) for p in (0.01, 0.2, 0.45, 0.5, 0.73, 0.99)]
    _, probabilities = aggregate_predictions(predictions)
    assert all(0.0 <= p <= 1.0 for p in probabilities)
    assert sum(probabilities) == pytest.approx(1.0, abs=1e-5)


def test_aggregate_rejects_empty():
    with pytest.raises(DegenerateAggregationError):
        aggregate_predictions([])


def test_aggregate_rejects_zero_total_weight():
    with pytest.raises(DegenerateAggregationError, match="weight"):
        aggregate_predictions([SimpleNamespace(probabilities=(0.0, 0.0), confidence=0.0)])


def test_aggregate_rejects_nan_weight():
    with pytest.raises(DegenerateAggregationError, match="not positive"):
        aggregate_predictions([SimpleNamespace(probabilities=(math.nan, math.nan), confidence=math.nan)])


@pytest.mark.parametrize("text", [None, "", "   "])
def test_predict_long_document_rejects_blank_input(text):
    classifier = DummyClassifier()
    with pytest.raises(InputError):
        predict_long_document(classifier, text)
    assert classifier.calls == []


def test_predict_long_document_single_chunk_matches_chunk_prediction():
    classifier = DummyClassifier([Prediction(1, (0.2, 0.8))])
    result = predict_long_document(classifier, "  Hello World ")

    assert classifier.calls == ["hello world"]
    assert result.chunks == ("hello world",)
    assert result.num_chunks == 1
    assert result.predicted_class == 1
    assert result.probabilities == pytest.approx((0.2, 0.8))


def test_predict_long_document_two_chunks():
    classifier = DummyClassifier([Prediction(0, (0.9, 0.1)), Prediction(1, (0.4, 0.6))])
    result = predict_long_document(classifier, "aaaa bbbb", max_length=15, chunk_margin=10)

    assert classifier.calls == ["aaaa", "bbbb"]
    assert result.predicted_class == 0
    assert result.probabilities == pytest.approx((0.7, 0.3))
    assert result.chunk_predictions == (Prediction(0, (0.9, 0.1)), Prediction(1, (0.4, 0.6)))


def test_predict_long_document_uses_default_budget():
    words = ["palavra"] * 60
    classifier = DummyClassifier()
    result = predict_long_document(classifier, " ".join(words))

    assert result.num_chunks > 1
    assert all(len(chunk) <= 118 for chunk in result.chunks)
    assert " ".join(result.chunks).split() == words


def test_predict_long_document_aborts_on_first_failure():
    classifier = DummyClassifier(fail_on_call=2)
    with pytest.raises(ClassificationError, match="model exploded"):
        predict_long_document(classifier, "aaaa bbbb cccc dddd", max_length=15, chunk_margin=10)
    assert classifier.calls == ["aaaa", "bbbb"]


def test_predict_long_document_rejects_invalid_chunk_probabilities():
    class NanClassifier:
        def predict(self, text: str) -> Prediction:
            return Prediction(0, (math.nan, math.nan))

    with pytest.raises(ClassificationError, match="finite"):
        predict_long_document(NanClassifier(), "some text")


def test_predict_long_document_logs_chunk_diagnostics(caplog):
    classifier = DummyClassifier([Prediction(0, (0.9, 0.1))])
    with caplog.at_level(logging.INFO, logger="doc_validator.long_document"):
        predict_long_document(classifier, "hello world")

    messages = [record.getMessage() for record in caplog.records]
    assert any("Chunk 0: 'hello world'" in message for message in messages)
    assert any("Document predicted class=0" in message for message in messages)
