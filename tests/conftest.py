from __future__ import annotations

import pytest
from transformers import BertTokenizerFast

VOCAB = ["[PAD]", "[UNK]", "[CLS]", "[SEP]", "[MASK]", "hello", "world", "contrato", "de", "locação"]


@pytest.fixture
def bert_tokenizer(tmp_path) -> BertTokenizerFast:
    vocab_path = tmp_path / "vocab.txt"
    vocab_path.write_text("\n".join(VOCAB), encoding="utf-8")
    return BertTokenizerFast(vocab_file=str(vocab_path), do_lower_case=True)
