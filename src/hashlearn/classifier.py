"""Document classification with hashed TF-IDF features and Naive Bayes.

Provides the batch path of the system in pure Python:

- Multinomial Naive Bayes with additive (Lidstone) smoothing over
  fixed-dimension hashed feature vectors
- A high-level :class:`DocumentClassifier` that owns the tokenizer,
  hasher, IDF weights, label encoding, and model
- Train/test evaluation and stratified k-fold cross-validation
- Model persistence (JSON serialization)
"""

from __future__ import annotations

import json
import logging
import math
import random
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from .errors import (
    DimensionMismatchError,
    EmptyTrainingSetError,
    HashLearnError,
    InvalidHyperparameterError,
    PipelineError,
)
from .evaluation import ClassificationMetrics, compute_metrics
from .features import DocumentLike, TfidfPipeline, as_documents
from .models import LabeledVector, LabelEncoder, SparseReadable, SparseVector
from .preprocessing import Tokenizer

logger = logging.getLogger(__name__)

MODEL_FORMAT_VERSION = "1.0"


# ---------------------------------------------------------------------------
# Multinomial Naive Bayes
# ---------------------------------------------------------------------------

def _class_index(label: float) -> int:
    index = int(label)
    if index != label or index < 0:
        raise ValueError(f"class labels must be non-negative integers, got {label!r}")
    return index


@dataclass
class NaiveBayesClassifier:
    """Multinomial Naive Bayes over sparse vectors of dimension ``D``.

    For class ``c`` and feature ``f``::

        log P(f | c) = log((sum_f_c + alpha) / (total_c + alpha * D))

    Only indices seen during training are scored. A feature the class never
    saw uses the per-class ``unseen_log_prob_``; an index absent from the
    whole training set contributes nothing.

    Args:
        alpha: Additive smoothing (``lambda``); must be positive.
    """

    alpha: float = 0.1

    # Learned parameters
    num_features_: int = 0
    classes_: list[int] = field(default_factory=list, repr=False)
    class_log_prior_: dict[int, float] = field(default_factory=dict, repr=False)
    feature_log_prob_: dict[int, dict[int, float]] = field(default_factory=dict, repr=False)
    unseen_log_prob_: dict[int, float] = field(default_factory=dict, repr=False)
    vocabulary_: frozenset[int] = field(default_factory=frozenset, repr=False)

    def fit(self, data: Sequence[LabeledVector]) -> "NaiveBayesClassifier":
        """Train on labeled vectors whose labels are class indices.

        Raises:
            InvalidHyperparameterError: If ``alpha`` is not positive.
            EmptyTrainingSetError: If ``data`` is empty.
            DimensionMismatchError: If vectors differ in size.
            ValueError: On negative feature values or non-integer labels.
        """
        if self.alpha <= 0:
            raise InvalidHyperparameterError(f"alpha must be positive, got {self.alpha}")
        if not data:
            raise EmptyTrainingSetError("cannot train Naive Bayes on zero examples")

        num_features = data[0].features.size
        class_counts: dict[int, int] = defaultdict(int)
        feature_sums: dict[int, dict[int, float]] = defaultdict(lambda: defaultdict(float))
        vocabulary: set[int] = set()

        for point in data:
            vec = point.features
            if vec.size != num_features:
                raise DimensionMismatchError(
                    f"training vectors mix sizes {num_features} and {vec.size}"
                )
            cls = _class_index(point.label)
            class_counts[cls] += 1
            sums = feature_sums[cls]
            for feat, value in vec.items():
                if value < 0:
                    raise ValueError(
                        f"Naive Bayes requires non-negative features, got {value} at {feat}"
                    )
                sums[feat] += value
                vocabulary.add(feat)

        n_total = len(data)
        self.num_features_ = num_features
        self.classes_ = sorted(class_counts)
        self.vocabulary_ = frozenset(vocabulary)
        self.class_log_prior_ = {}
        self.feature_log_prob_ = {}
        self.unseen_log_prob_ = {}

        for cls in self.classes_:
            self.class_log_prior_[cls] = math.log(class_counts[cls] / n_total)

            sums = feature_sums[cls]
            log_denom = math.log(sum(sums.values()) + self.alpha * num_features)
            self.feature_log_prob_[cls] = {
                feat: math.log(total + self.alpha) - log_denom
                for feat, total in sums.items()
            }
            self.unseen_log_prob_[cls] = math.log(self.alpha) - log_denom

        logger.info(
            "Naive Bayes trained on %d examples, %d classes, %d active features",
            n_total, len(self.classes_), len(self.vocabulary_),
        )
        return self

    def _check_fitted(self) -> None:
        if not self.classes_:
            raise RuntimeError("Classifier has not been fitted. Call fit() first.")

    def _compute_log_scores(self, vec: SparseReadable) -> dict[int, float]:
        """Compute unnormalized log posterior scores for each class."""
        if vec.size != self.num_features_:
            raise DimensionMismatchError(
                f"vector of size {vec.size} does not match model size {self.num_features_}"
            )
        observed = [(feat, w) for feat, w in vec.items() if feat in self.vocabulary_]
        scores: dict[int, float] = {}
        for cls in self.classes_:
            score = self.class_log_prior_[cls]
            log_probs = self.feature_log_prob_[cls]
            unseen = self.unseen_log_prob_[cls]
            for feat, weight in observed:
                score += weight * log_probs.get(feat, unseen)
            scores[cls] = score
        return scores

    def predict(self, vec: SparseReadable) -> int:
        """Return the highest-scoring class; ties go to the lowest index."""
        self._check_fitted()
        scores = self._compute_log_scores(vec)
        best_cls = self.classes_[0]
        best = scores[best_cls]
        for cls in self.classes_[1:]:
            if scores[cls] > best:
                best_cls, best = cls, scores[cls]
        return best_cls

    def predict_many(self, vectors: Sequence[SparseVector]) -> list[int]:
        return [self.predict(vec) for vec in vectors]

    def predict_proba(self, vec: SparseReadable) -> dict[int, float]:
        """Class probabilities for one vector, via log-sum-exp."""
        self._check_fitted()
        log_scores = self._compute_log_scores(vec)
        max_score = max(log_scores.values())
        exp_scores = {cls: math.exp(s - max_score) for cls, s in log_scores.items()}
        total = sum(exp_scores.values())
        return {cls: score / total for cls, score in exp_scores.items()}

    def most_informative_features(
        self,
        class_index: int,
        top_n: int = 20,
    ) -> list[tuple[int, float]]:
        """Return feature indices most indicative of ``class_index``.

        Scores are the class log-likelihood minus the mean log-likelihood
        of the other classes.

        Raises:
            ValueError: If ``class_index`` is not a fitted class.
        """
        if class_index not in self.classes_:
            raise ValueError(f"Unknown class: {class_index}. Known: {self.classes_}")

        others = [c for c in self.classes_ if c != class_index]

        def log_prob(cls: int, feat: int) -> float:
            return self.feature_log_prob_[cls].get(feat, self.unseen_log_prob_[cls])

        ratios: list[tuple[int, float]] = []
        for feat in self.vocabulary_:
            target = log_prob(class_index, feat)
            if others:
                target -= sum(log_prob(c, feat) for c in others) / len(others)
            ratios.append((feat, round(target, 4)))

        ratios.sort(key=lambda x: (-x[1], x[0]))
        return ratios[:top_n]

    def to_dict(self) -> dict:
        """Serialize classifier state."""
        return {
            "alpha": self.alpha,
            "num_features": self.num_features_,
            "classes": self.classes_,
            "class_log_prior": {str(c): p for c, p in self.class_log_prior_.items()},
            "feature_log_prob": {
                str(c): {str(f): lp for f, lp in probs.items()}
                for c, probs in self.feature_log_prob_.items()
            },
            "unseen_log_prob": {str(c): p for c, p in self.unseen_log_prob_.items()},
            "vocabulary": sorted(self.vocabulary_),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NaiveBayesClassifier":
        """Deserialize classifier from a dictionary."""
        nb = cls(alpha=data["alpha"])
        nb.num_features_ = int(data["num_features"])
        nb.classes_ = [int(c) for c in data["classes"]]
        nb.class_log_prior_ = {int(c): float(p) for c, p in data["class_log_prior"].items()}
        nb.feature_log_prob_ = {
            int(c): {int(f): float(lp) for f, lp in probs.items()}
            for c, probs in data["feature_log_prob"].items()
        }
        nb.unseen_log_prob_ = {int(c): float(p) for c, p in data["unseen_log_prob"].items()}
        nb.vocabulary_ = frozenset(int(f) for f in data["vocabulary"])
        return nb


# ---------------------------------------------------------------------------
# Cross-Validation
# ---------------------------------------------------------------------------

def stratified_k_fold(
    labels: Sequence[str],
    k: int = 5,
    seed: int = 42,
) -> list[tuple[list[int], list[int]]]:
    """Generate stratified k-fold train/test index splits.

    Each fold keeps approximately the class distribution of the full
    dataset.

    Args:
        labels: List of class labels.
        k: Number of folds.
        seed: Random seed for reproducibility.

    Returns:
        List of (train_indices, test_indices) tuples.
    """
    if k < 2:
        raise InvalidHyperparameterError("k must be at least 2")
    rng = random.Random(seed)

    class_indices: dict[str, list[int]] = defaultdict(list)
    for idx, label in enumerate(labels):
        class_indices[label].append(idx)

    fold_assignments: list[int] = [0] * len(labels)
    for label in sorted(class_indices):
        indices = class_indices[label]
        rng.shuffle(indices)
        for i, idx in enumerate(indices):
            fold_assignments[idx] = i % k

    folds: list[tuple[list[int], list[int]]] = []
    for fold_idx in range(k):
        test_indices = [i for i, f in enumerate(fold_assignments) if f == fold_idx]
        train_indices = [i for i, f in enumerate(fold_assignments) if f != fold_idx]
        folds.append((train_indices, test_indices))

    return folds


def cross_validate(
    documents: Sequence[DocumentLike],
    labels: Sequence[str],
    k: int = 5,
    pipeline_kwargs: Optional[dict] = None,
    classifier_kwargs: Optional[dict] = None,
    seed: int = 42,
) -> list[ClassificationMetrics]:
    """Run stratified k-fold cross-validation.

    A fresh pipeline is fitted on each training fold so IDF and rare-token
    statistics never leak from the held-out fold. A class with fewer than
    ``k`` documents is absent from some training folds; its held-out
    documents are then scored as misses.

    Returns:
        List of ClassificationMetrics (one per fold).
    """
    docs = as_documents(documents)
    results: list[ClassificationMetrics] = []

    for train_idx, test_idx in stratified_k_fold(labels, k=k, seed=seed):
        classifier = DocumentClassifier(pipeline_kwargs, classifier_kwargs)
        classifier.train([docs[i] for i in train_idx], [labels[i] for i in train_idx])
        metrics = classifier.evaluate(
            [docs[i] for i in test_idx],
            [labels[i] for i in test_idx],
            allow_unknown=True,
        )
        results.append(metrics)

    return results


# ---------------------------------------------------------------------------
# Classification Pipeline (High-Level API)
# ---------------------------------------------------------------------------

@dataclass
class ClassificationResult:
    """Posterior over category names for one document."""

    predicted_class: str
    confidence: float
    probabilities: dict[str, float]

    def ranked(self, top_n: Optional[int] = None) -> list[tuple[str, float]]:
        """Categories by descending probability, ties by name."""
        order = sorted(self.probabilities.items(), key=lambda x: (-x[1], x[0]))
        return order if top_n is None else order[:top_n]

    def to_dict(self) -> dict:
        return {
            "class": self.predicted_class,
            "confidence": round(self.confidence, 4),
            "ranking": [
                {"class": name, "probability": round(p, 4)} for name, p in self.ranked()
            ],
        }


class DocumentClassifier:
    """High-level document classification pipeline.

    Wraps tokenization, feature hashing, IDF weighting, label encoding and
    Naive Bayes into a train/predict interface with model persistence.

    Example::

        classifier = DocumentClassifier({"num_features": 2 ** 18})
        classifier.train(train_docs, train_labels)

        metrics = classifier.evaluate(test_docs, test_labels)
        print(metrics.accuracy, metrics.weighted_f1)

        classifier.save("model.json")
        loaded = DocumentClassifier.load("model.json")

    Args:
        pipeline_kwargs: Options for :class:`TfidfPipeline` plus the
            tokenizer options ``min_token_count`` and ``min_length``.
        classifier_kwargs: Options for :class:`NaiveBayesClassifier`.
    """

    def __init__(
        self,
        pipeline_kwargs: Optional[dict] = None,
        classifier_kwargs: Optional[dict] = None,
    ) -> None:
        self._pipe_kwargs = dict(pipeline_kwargs or {})
        self._cls_kwargs = dict(classifier_kwargs or {})
        self._pipeline: Optional[TfidfPipeline] = None
        self._encoder = LabelEncoder()
        self._classifier: Optional[NaiveBayesClassifier] = None

    @property
    def is_trained(self) -> bool:
        return self._classifier is not None and self._pipeline is not None

    @property
    def classes(self) -> list[str]:
        return list(self._encoder.classes_)

    @property
    def pipeline(self) -> TfidfPipeline:
        if self._pipeline is None:
            raise RuntimeError("Classifier not trained. Call train() first.")
        return self._pipeline

    @property
    def model(self) -> NaiveBayesClassifier:
        if self._classifier is None:
            raise RuntimeError("Classifier not trained. Call train() first.")
        return self._classifier

    def _build_pipeline(self) -> TfidfPipeline:
        kwargs = dict(self._pipe_kwargs)
        tok_kwargs = {
            key: kwargs.pop(key)
            for key in ("min_token_count", "min_length", "stopwords")
            if key in kwargs
        }
        return TfidfPipeline(tokenizer=Tokenizer(**tok_kwargs), **kwargs)

    def train(
        self,
        documents: Sequence[DocumentLike],
        labels: Sequence[str],
    ) -> ClassificationMetrics:
        """Fit the feature pipeline and classifier.

        The previous model, if any, is replaced only after training succeeds.

        Returns:
            ClassificationMetrics on the training set (for sanity checking).

        Raises:
            PipelineError: Naming the stage (and document, when known) that
                failed.
        """
        if len(documents) != len(labels):
            raise ValueError(
                f"documents ({len(documents)}) and labels ({len(labels)}) must have same length"
            )
        if not documents:
            raise PipelineError(
                "train", None, EmptyTrainingSetError("no labeled documents to train on")
            )

        docs = as_documents(documents)
        pipeline = self._build_pipeline()
        vectors = pipeline.fit_transform(docs)

        encoder = LabelEncoder().fit(labels)
        codes = encoder.encode_many(labels)
        data = [LabeledVector(code, vec) for code, vec in zip(codes, vectors)]

        try:
            classifier = NaiveBayesClassifier(**self._cls_kwargs).fit(data)
        except (HashLearnError, ValueError) as exc:
            raise PipelineError("train", None, exc) from exc

        self._pipeline = pipeline
        self._encoder = encoder
        self._classifier = classifier

        predictions = classifier.predict_many(vectors)
        return compute_metrics(codes, predictions, names=encoder.classes_)

    def transform(self, documents: Sequence[DocumentLike]) -> list[SparseVector]:
        """TF-IDF vectors for documents under the trained pipeline."""
        return self.pipeline.transform(documents)

    def predict(self, documents: Sequence[DocumentLike]) -> list[str]:
        vectors = self.transform(documents)
        return [self._encoder.decode(c) for c in self.model.predict_many(vectors)]

    def classify(self, text: DocumentLike) -> ClassificationResult:
        """Classify a single document."""
        return self.classify_batch([text])[0]

    def classify_batch(self, texts: Sequence[DocumentLike]) -> list[ClassificationResult]:
        """Classify multiple documents."""
        vectors = self.transform(texts)
        results = []
        for vec in vectors:
            proba = {
                self._encoder.decode(c): p for c, p in self.model.predict_proba(vec).items()
            }
            predicted = self._encoder.decode(self.model.predict(vec))
            results.append(ClassificationResult(
                predicted_class=predicted,
                confidence=proba[predicted],
                probabilities=proba,
            ))
        return results

    def evaluate(
        self,
        documents: Sequence[DocumentLike],
        labels: Sequence[str],
        allow_unknown: bool = False,
    ) -> ClassificationMetrics:
        """Score the trained model on a held-out labeled set.

        Args:
            allow_unknown: Count documents whose label was never seen in
                training as misses instead of raising. Such labels get codes
                after the trained classes so they still appear in the report.

        Raises:
            PipelineError: If a test label was never seen in training (unless
                ``allow_unknown``), or prediction fails for a document.
        """
        if len(documents) != len(labels):
            raise ValueError(
                f"documents ({len(documents)}) and labels ({len(labels)}) must have same length"
            )
        docs = as_documents(documents)
        vectors = self.transform(docs)

        names = list(self._encoder.classes_)
        known = self._encoder.index
        y_true: list[int] = []
        y_pred: list[int] = []
        for doc, label, vec in zip(docs, labels, vectors):
            if label not in known:
                if not allow_unknown:
                    exc = ValueError(f"Unknown label: {label}. Known: {self._encoder.classes_}")
                    raise PipelineError("evaluate", doc.identifier, exc)
                known[label] = len(names)
                names.append(label)
            y_true.append(known[label])
            try:
                y_pred.append(self.model.predict(vec))
            except HashLearnError as exc:
                raise PipelineError("predict", doc.identifier, exc) from exc

        metrics = compute_metrics(y_true, y_pred, names=names)
        logger.info(
            "Evaluated %d documents: accuracy=%.4f weighted_f1=%.4f",
            len(docs), metrics.accuracy, metrics.weighted_f1,
        )
        return metrics

    def cross_validate(
        self,
        documents: Sequence[DocumentLike],
        labels: Sequence[str],
        k: int = 5,
        seed: int = 42,
    ) -> list[ClassificationMetrics]:
        """Run k-fold cross-validation with this classifier's settings."""
        return cross_validate(
            documents,
            labels,
            k=k,
            pipeline_kwargs=self._pipe_kwargs,
            classifier_kwargs=self._cls_kwargs,
            seed=seed,
        )

    def most_informative_features(
        self,
        class_name: str,
        top_n: int = 20,
    ) -> list[tuple[int, float]]:
        """Most discriminative hashed feature indices for a class."""
        return self.model.most_informative_features(self._encoder.encode(class_name), top_n)

    def to_dict(self) -> dict:
        if not self.is_trained:
            raise RuntimeError("Cannot save untrained classifier.")
        return {
            "version": MODEL_FORMAT_VERSION,
            "pipeline": self.pipeline.to_dict(),
            "labels": self._encoder.to_dict(),
            "classifier": self.model.to_dict(),
            "pipeline_kwargs": {
                k: (sorted(v) if isinstance(v, (set, frozenset)) else v)
                for k, v in self._pipe_kwargs.items()
            },
            "classifier_kwargs": self._cls_kwargs,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DocumentClassifier":
        if data.get("version") != MODEL_FORMAT_VERSION:
            raise ValueError(f"Unsupported model version: {data.get('version')}")
        dc = cls(
            pipeline_kwargs=data.get("pipeline_kwargs", {}),
            classifier_kwargs=data.get("classifier_kwargs", {}),
        )
        dc._pipeline = TfidfPipeline.from_dict(data["pipeline"])
        dc._encoder = LabelEncoder.from_dict(data["labels"])
        dc._classifier = NaiveBayesClassifier.from_dict(data["classifier"])
        return dc

    def save(self, path: str | Path) -> None:
        """Save the trained model to a JSON file."""
        model_data = self.to_dict()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(model_data, f)

    @classmethod
    def load(cls, path: str | Path) -> "DocumentClassifier":
        """Load a trained model from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)


def train_test_evaluate(
    train_documents: Sequence[DocumentLike],
    train_labels: Sequence[str],
    test_documents: Sequence[DocumentLike],
    test_labels: Sequence[str],
    pipeline_kwargs: Optional[dict] = None,
    classifier_kwargs: Optional[dict] = None,
) -> tuple[DocumentClassifier, ClassificationMetrics]:
    """Run the full batch path once: train on one split, score on the other."""
    classifier = DocumentClassifier(pipeline_kwargs, classifier_kwargs)
    classifier.train(train_documents, train_labels)
    return classifier, classifier.evaluate(test_documents, test_labels)
