"""Tokenization and vocabulary filtering for raw text documents.

Tokenizing is a two-phase operation. The rare-token set depends on term
counts over the whole training corpus, so :meth:`Tokenizer.fit` must see
every training document before any of them is tokenized for training:

1. Aggregate -- :func:`count_tokens` and :func:`find_rare_tokens`
2. Transform -- :meth:`Tokenizer.tokenize`, one document at a time

Filters applied to each lowercased piece of ``text`` split on ``\\W+``:

- pieces containing a digit are dropped
- stopwords are dropped
- pieces shorter than ``min_length`` (default 2) are dropped
- pieces seen fewer than ``min_token_count`` times corpus-wide are dropped

Duplicates are preserved; term frequency is derived later by hashing.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Union

from .errors import InvalidHyperparameterError

logger = logging.getLogger(__name__)

_NON_WORD_RE = re.compile(r"\W+")
_DIGIT_RE = re.compile(r"[0-9]")

STOP_WORDS: frozenset[str] = frozenset({
    "the", "a", "an", "of", "or", "in", "for", "by", "on", "but", "is",
    "not", "with", "as", "was", "if", "they", "are", "this", "and", "it",
    "have", "from", "at", "my", "be", "that", "to",
})

Text = Union[str, bytes]


def _as_text(text: Text) -> str:
    if isinstance(text, (bytes, bytearray)):
        return bytes(text).decode("utf-8", errors="replace")
    return text


def split_words(text: Text) -> list[str]:
    """Whitespace split with no normalization (the raw-token baseline)."""
    return _as_text(text).split(" ")


def _pieces(text: Text) -> list[str]:
    """Split on runs of non-word characters and lowercase, keeping empties out."""
    return [p.lower() for p in _NON_WORD_RE.split(_as_text(text)) if p]


def _has_digit(token: str) -> bool:
    return _DIGIT_RE.search(token) is not None


def count_tokens(texts: Iterable[Text]) -> Counter[str]:
    """Count digit-free lowercased pieces across a corpus."""
    counts: Counter[str] = Counter()
    for text in texts:
        counts.update(p for p in _pieces(text) if not _has_digit(p))
    return counts


def find_rare_tokens(counts: Counter[str], min_count: int = 2) -> frozenset[str]:
    """Return tokens whose corpus-wide count is below ``min_count``."""
    return frozenset(token for token, n in counts.items() if n < min_count)


@dataclass
class Tokenizer:
    """Regex tokenizer with stopword, length, digit, and rare-token filters.

    Args:
        stopwords: Terms removed after lowercasing.
        min_length: Minimum token length kept.
        min_token_count: Corpus count below which a token is rare.
    """

    stopwords: frozenset[str] = STOP_WORDS
    min_length: int = 2
    min_token_count: int = 2

    # Learned state
    rare_tokens_: frozenset[str] = field(default_factory=frozenset, repr=False)
    _fitted: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.min_length < 1:
            raise InvalidHyperparameterError("min_length must be at least 1")
        if self.min_token_count < 1:
            raise InvalidHyperparameterError("min_token_count must be at least 1")
        self.stopwords = frozenset(self.stopwords)

    @property
    def is_fitted(self) -> bool:
        """Whether the corpus-wide rare-token set has been computed."""
        return self._fitted

    def fit(self, texts: Iterable[Text]) -> "Tokenizer":
        """Compute the rare-token set from the full training corpus."""
        counts = count_tokens(texts)
        self.rare_tokens_ = find_rare_tokens(counts, self.min_token_count)
        self._fitted = True
        logger.info(
            "Tokenizer fitted: %d distinct tokens, %d rare",
            len(counts), len(self.rare_tokens_),
        )
        return self

    def tokenize(self, text: Text) -> list[str]:
        """Return the ordered list of retained tokens for one document."""
        rare = self.rare_tokens_
        return [
            token
            for token in _pieces(text)
            if not _has_digit(token)
            and token not in self.stopwords
            and token not in rare
            and len(token) >= self.min_length
        ]

    def to_dict(self) -> dict:
        return {
            "stopwords": sorted(self.stopwords),
            "min_length": self.min_length,
            "min_token_count": self.min_token_count,
            "rare_tokens": sorted(self.rare_tokens_),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tokenizer":
        tok = cls(
            stopwords=frozenset(data["stopwords"]),
            min_length=data["min_length"],
            min_token_count=data["min_token_count"],
        )
        tok.rare_tokens_ = frozenset(data["rare_tokens"])
        tok._fitted = True
        return tok
