"""Unit tests for the keyword vocabulary and its curation helpers."""

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from marketlens.errors import VocabularyLoadError
from marketlens.vocabulary import (
    ENTITY,
    GENERIC,
    FileVocabularySource,
    Vocabulary,
    clean_keywords,
    load_vocabulary,
    split_keywords,
)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestVocabulary:
    def test_normalisation(self):
        vocab = Vocabulary.from_lines(["  Bitcoin ", "ETH"], ["Price\t", ""])
        assert vocab.entities == ("bitcoin", "eth")
        assert vocab.generic == ("price",)

    def test_blank_lines_dropped(self):
        vocab = Vocabulary.from_lines(["", "   ", "fed"], ["\t"])
        assert vocab.entities == ("fed",)
        assert vocab.generic == ()

    def test_case_insensitive_dedupe_keeps_first_order(self):
        vocab = Vocabulary.from_lines(["Trump", "biden", "TRUMP"], [])
        assert vocab.entities == ("trump", "biden")

    def test_entity_wins_on_overlap(self):
        vocab = Vocabulary.from_lines(["Fed", "bitcoin"], ["fed", "rate cut"])
        assert "fed" in vocab.entities
        assert "fed" not in vocab.generic
        assert vocab.generic == ("rate cut",)
        assert vocab.classify("FED") == ENTITY
        assert vocab.classify("rate cut") == GENERIC
        assert vocab.classify("unknown") is None

    def test_len_and_empty(self):
        assert Vocabulary().is_empty
        vocab = Vocabulary.from_lines(["a"], ["b", "c"])
        assert len(vocab) == 3
        assert not vocab.is_empty


class TestLoadVocabulary:
    def test_load_files(self, tmp_path):
        entity = _write(tmp_path / "entity.txt", "Bitcoin\nNvidia\n")
        generic = _write(tmp_path / "generic.txt", "price\nelection\n")
        vocab = load_vocabulary(entity, generic)
        assert vocab.entities == ("bitcoin", "nvidia")
        assert vocab.generic == ("price", "election")

    def test_windows_line_endings(self, tmp_path):
        entity = tmp_path / "entity.txt"
        entity.write_bytes(b"bitcoin\r\nsuper bowl\r\n")
        generic = _write(tmp_path / "generic.txt", "")
        vocab = load_vocabulary(str(entity), generic)
        assert vocab.entities == ("bitcoin", "super bowl")

    def test_empty_file_is_valid(self, tmp_path):
        entity = _write(tmp_path / "entity.txt", "")
        generic = _write(tmp_path / "generic.txt", "price")
        vocab = load_vocabulary(entity, generic)
        assert vocab.entities == ()
        assert vocab.generic == ("price",)

    def test_missing_file_raises(self, tmp_path):
        generic = _write(tmp_path / "generic.txt", "price")
        with pytest.raises(VocabularyLoadError) as exc:
            load_vocabulary(str(tmp_path / "nope.txt"), generic)
        assert "nope.txt" in str(exc.value)

    def test_file_source(self, tmp_path):
        entity = _write(tmp_path / "entity.txt", "trump")
        generic = _write(tmp_path / "generic.txt", "poll")
        vocab = FileVocabularySource(entity, generic).load_vocabulary()
        assert vocab.entities == ("trump",)
        assert vocab.generic == ("poll",)


class TestCurationTools:
    def test_clean_keywords(self):
        cleaned = clean_keywords([" bitcoin", "x", "", "Apple", "apple", "Zebra", "bitcoin "])
        assert cleaned == ["Apple", "bitcoin", "Zebra"]

    def test_split_keywords(self):
        entities, generic, uncertain = split_keywords([
            "Donald Trump", "NVDA", "Champions League", "price", "election", "50%", "will", "zebra",
        ])
        assert "Donald Trump" in entities
        assert "NVDA" in entities
        assert "Champions League" in entities
        assert "price" in generic
        assert "election" in generic
        assert "50%" in generic
        assert "will" in generic
        assert uncertain == ["zebra"]

    def test_split_short_keywords_not_entities(self):
        entities, generic, _ = split_keywords(["ai"])
        assert "ai" not in entities
        assert "ai" in generic
