"""Feature hashing and inverse-document-frequency weighting.

The hashing trick maps an unbounded vocabulary onto ``D`` fixed feature
indices. Each token is hashed with a 32-bit BLAKE2b digest (stable across
processes, unlike Python's salted ``hash()``), reduced modulo ``D``, and
counted. Collisions are accepted and summed.

Changing the hash function invalidates every previously trained model, so
it is recorded in serialized state as ``HASH_NAME``.

IDF uses the smoothed form ``ln((N + 1) / (df + 1))`` which is zero only
for a feature present in every document.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Union

from .errors import (
    DimensionMismatchError,
    EmptyTrainingSetError,
    InvalidHyperparameterError,
    PipelineError,
)
from .models import Document, SparseReadable, SparseVector, SparseVectorBuilder
from .preprocessing import Tokenizer, split_words

logger = logging.getLogger(__name__)

HASH_NAME = "blake2b-32"
DEFAULT_NUM_FEATURES = 2 ** 18


def stable_hash(token: str) -> int:
    """Unsigned 32-bit BLAKE2b hash of the UTF-8 encoded token."""
    digest = hashlib.blake2b(token.encode("utf-8", errors="replace"), digest_size=4).digest()
    return int.from_bytes(digest, "little", signed=False)


# ---------------------------------------------------------------------------
# Feature Hasher
# ---------------------------------------------------------------------------

class FeatureHasher:
    """Map token sequences to term-frequency vectors of fixed dimension.

    Args:
        num_features: Output dimension ``D``. Powers of two are expected;
            other positive values work but are logged as a warning.
    """

    def __init__(self, num_features: int = DEFAULT_NUM_FEATURES) -> None:
        if num_features <= 0:
            raise InvalidHyperparameterError(
                f"num_features must be positive, got {num_features}"
            )
        if num_features & (num_features - 1):
            logger.warning("num_features=%d is not a power of two", num_features)
        self.num_features = num_features

    def index_of(self, token: str) -> int:
        return stable_hash(token) % self.num_features

    def transform(self, tokens: Iterable[str]) -> SparseVector:
        builder = SparseVectorBuilder(self.num_features)
        for token in tokens:
            builder.add(self.index_of(token), 1.0)
        return builder.build()

    def transform_many(self, token_lists: Iterable[Iterable[str]]) -> list[SparseVector]:
        return [self.transform(tokens) for tokens in token_lists]


# ---------------------------------------------------------------------------
# IDF
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IDFWeights:
    """Per-index IDF weights learned from one corpus.

    Snapshots are never updated in place; refitting produces a new object.

    Attributes:
        size: Dimension of the vectors these weights apply to.
        num_docs: Corpus size ``N`` used during fitting.
        doc_freq: Document frequency per observed index.
        weights: IDF weight per observed index.
    """

    size: int
    num_docs: int
    doc_freq: dict[int, int] = field(default_factory=dict, repr=False)
    weights: dict[int, float] = field(default_factory=dict, repr=False)

    def weight(self, index: int) -> float:
        return self.weights.get(index, 0.0)

    def transform(self, vector: SparseReadable) -> SparseVector:
        """Multiply term frequencies by IDF, dropping indices never fitted."""
        if vector.size != self.size:
            raise DimensionMismatchError(
                f"vector of size {vector.size} does not match IDF size {self.size}"
            )
        indices: list[int] = []
        values: list[float] = []
        for idx, tf in vector.items():
            w = self.weights.get(idx)
            if w is None:
                continue
            indices.append(idx)
            values.append(tf * w)
        return SparseVector(self.size, tuple(indices), tuple(values))

    def transform_many(self, vectors: Iterable[SparseVector]) -> list[SparseVector]:
        return [self.transform(v) for v in vectors]

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "num_docs": self.num_docs,
            "doc_freq": {str(k): v for k, v in self.doc_freq.items()},
            "weights": {str(k): v for k, v in self.weights.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IDFWeights":
        return cls(
            size=int(data["size"]),
            num_docs=int(data["num_docs"]),
            doc_freq={int(k): int(v) for k, v in data["doc_freq"].items()},
            weights={int(k): float(v) for k, v in data["weights"].items()},
        )


@dataclass
class IDFEstimator:
    """Estimate smoothed IDF weights from a corpus of TF vectors.

    Args:
        min_doc_freq: Indices seen in fewer documents get weight 0.
    """

    min_doc_freq: int = 0

    def fit(self, corpus: Sequence[SparseVector]) -> IDFWeights:
        """Compute document frequencies and IDF weights.

        Raises:
            EmptyTrainingSetError: If the corpus is empty.
            DimensionMismatchError: If the vectors differ in size.
        """
        if self.min_doc_freq < 0:
            raise InvalidHyperparameterError("min_doc_freq must be non-negative")
        if not corpus:
            raise EmptyTrainingSetError("cannot fit IDF on an empty corpus")

        size = corpus[0].size
        doc_freq: dict[int, int] = {}
        for vec in corpus:
            if vec.size != size:
                raise DimensionMismatchError(
                    f"corpus mixes vector sizes {size} and {vec.size}"
                )
            for idx, val in vec.items():
                if val != 0:
                    doc_freq[idx] = doc_freq.get(idx, 0) + 1

        n_docs = len(corpus)
        weights: dict[int, float] = {}
        for idx, df in doc_freq.items():
            if df < self.min_doc_freq:
                weights[idx] = 0.0
            else:
                weights[idx] = math.log((n_docs + 1) / (df + 1))

        logger.info("IDF fitted on %d documents, %d active features", n_docs, len(weights))
        return IDFWeights(size=size, num_docs=n_docs, doc_freq=doc_freq, weights=weights)


def tfidf_range(vectors: Iterable[SparseVector]) -> tuple[float, float]:
    """Global (min, max) over all stored values; (0.0, 0.0) if there are none."""
    lo = math.inf
    hi = -math.inf
    for vec in vectors:
        if vec.values:
            lo = min(lo, min(vec.values))
            hi = max(hi, max(vec.values))
    if lo == math.inf:
        return 0.0, 0.0
    return lo, hi


# ---------------------------------------------------------------------------
# Two-phase TF-IDF pipeline
# ---------------------------------------------------------------------------

DocumentLike = Union[Document, str, bytes]


def as_documents(items: Iterable[DocumentLike]) -> list[Document]:
    """Wrap bare strings as documents with positional identifiers."""
    docs = []
    for i, item in enumerate(items):
        docs.append(item if isinstance(item, Document) else Document(f"doc-{i}", item))
    return docs


class TfidfPipeline:
    """Tokenize, hash, and IDF-weight documents.

    ``fit`` performs both corpus-wide aggregation passes (rare tokens, then
    document frequencies) before anything downstream runs; ``transform``
    is per-document afterwards.

    Args:
        tokenizer: Tokenizer to fit; a default one is created if omitted.
        num_features: Hashing dimension ``D``.
        use_idf: When False, ``transform`` yields raw TF vectors.
        min_doc_freq: Passed to :class:`IDFEstimator`.
        raw_tokens: Hash :func:`split_words` pieces as-is, bypassing every
            tokenizer filter. Combined with ``use_idf=False`` this is the
            raw-token baseline.
    """

    def __init__(
        self,
        tokenizer: Optional[Tokenizer] = None,
        num_features: int = DEFAULT_NUM_FEATURES,
        use_idf: bool = True,
        min_doc_freq: int = 0,
        raw_tokens: bool = False,
    ) -> None:
        self.tokenizer = tokenizer or Tokenizer()
        self.hasher = FeatureHasher(num_features)
        self.use_idf = use_idf
        self.raw_tokens = raw_tokens
        self.estimator = IDFEstimator(min_doc_freq=min_doc_freq)
        self.idf_: Optional[IDFWeights] = None

    @property
    def num_features(self) -> int:
        return self.hasher.num_features

    @property
    def is_fitted(self) -> bool:
        tokens_ready = self.raw_tokens or self.tokenizer.is_fitted
        return tokens_ready and (self.idf_ is not None or not self.use_idf)

    def tokens(self, text: str) -> list[str]:
        if self.raw_tokens:
            return split_words(text)
        return self.tokenizer.tokenize(text)

    def term_frequencies(self, documents: Sequence[Document]) -> list[SparseVector]:
        vectors = []
        for doc in documents:
            try:
                vectors.append(self.hasher.transform(self.tokens(doc.text)))
            except Exception as exc:
                raise PipelineError("hash", doc.identifier, exc) from exc
        return vectors

    def fit(self, documents: Iterable[DocumentLike]) -> "TfidfPipeline":
        self.fit_transform(documents)
        return self

    def fit_transform(self, documents: Iterable[DocumentLike]) -> list[SparseVector]:
        docs = as_documents(documents)
        if not self.raw_tokens:
            try:
                self.tokenizer.fit(doc.text for doc in docs)
            except Exception as exc:
                raise PipelineError("tokenize", None, exc) from exc

        tf = self.term_frequencies(docs)
        if not self.use_idf:
            return tf

        try:
            self.idf_ = self.estimator.fit(tf)
        except Exception as exc:
            raise PipelineError("idf", None, exc) from exc
        return self.idf_.transform_many(tf)

    def transform(self, documents: Iterable[DocumentLike]) -> list[SparseVector]:
        if not self.is_fitted:
            raise RuntimeError("Pipeline has not been fitted. Call fit() first.")
        tf = self.term_frequencies(as_documents(documents))
        if not self.use_idf:
            return tf
        assert self.idf_ is not None
        return self.idf_.transform_many(tf)

    def to_dict(self) -> dict:
        return {
            "hash": HASH_NAME,
            "num_features": self.num_features,
            "use_idf": self.use_idf,
            "raw_tokens": self.raw_tokens,
            "min_doc_freq": self.estimator.min_doc_freq,
            "tokenizer": self.tokenizer.to_dict(),
            "idf": self.idf_.to_dict() if self.idf_ is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TfidfPipeline":
        if data.get("hash", HASH_NAME) != HASH_NAME:
            raise ValueError(f"Unsupported feature hash: {data['hash']}")
        pipe = cls(
            tokenizer=Tokenizer.from_dict(data["tokenizer"]),
            num_features=data["num_features"],
            use_idf=data["use_idf"],
            min_doc_freq=data.get("min_doc_freq", 0),
            raw_tokens=data.get("raw_tokens", False),
        )
        if data.get("idf") is not None:
            pipe.idf_ = IDFWeights.from_dict(data["idf"])
        return pipe
