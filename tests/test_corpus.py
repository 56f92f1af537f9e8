"""Tests for loading category-per-directory corpora."""

from __future__ import annotations

from pathlib import Path

import pytest

from hashlearn.corpus import label_from_path, load_corpus, read_document


class TestLabelFromPath:
    def test_newsgroup_layout(self):
        label = label_from_path("data/20news-bydate-train/sci.space/60155")
        assert label.split == "20news-bydate-train"
        assert label.category == "sci.space"

    def test_too_shallow(self):
        with pytest.raises(ValueError, match="no <split>/<category>/ prefix"):
            label_from_path("sci.space/60155")


class TestLoadCorpus:
    def test_loads_every_category(self, corpus_dir: Path, corpus):
        docs, labels = load_corpus(corpus_dir / "news-train")
        assert len(docs) == len(corpus[0])
        assert set(labels) == {"comp.graphics", "rec.sport.hockey", "talk.politics"}

    def test_path_order(self, corpus_dir: Path):
        docs, labels = load_corpus(corpus_dir / "news-train")
        assert [d.identifier for d in docs] == sorted(d.identifier for d in docs)
        assert labels == sorted(labels)

    def test_identifier_is_path(self, corpus_dir: Path):
        docs, labels = load_corpus(corpus_dir / "news-test")
        assert Path(docs[0].identifier).parent.name == labels[0]

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_corpus(tmp_path / "nope")

    def test_root_is_file(self, tmp_path: Path):
        f = tmp_path / "file.txt"
        f.write_text("x", encoding="utf-8")
        with pytest.raises(ValueError, match="not a directory"):
            load_corpus(f)

    def test_empty_root(self, tmp_path: Path):
        assert load_corpus(tmp_path) == ([], [])


def test_read_document_replaces_bad_bytes(tmp_path: Path):
    path = tmp_path / "msg"
    path.write_bytes(b"Subject: caf\xe9\n")
    doc = read_document(path)
    assert doc.text.startswith("Subject: caf")
    assert "�" in doc.text
