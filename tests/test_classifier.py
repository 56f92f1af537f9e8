"""Tests for the Naive Bayes classifier and the document classification pipeline.

Covers likelihood estimation, prediction and tie-breaking, serialization,
cross-validation, and the high-level DocumentClassifier API on a small
synthetic newsgroup-style corpus.
"""

from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from hashlearn.classifier import (
    ClassificationResult,
    DocumentClassifier,
    NaiveBayesClassifier,
    cross_validate,
    stratified_k_fold,
    train_test_evaluate,
)
from hashlearn.errors import (
    DimensionMismatchError,
    EmptyTrainingSetError,
    InvalidHyperparameterError,
    PipelineError,
)
from hashlearn.evaluation import ClassificationMetrics
from hashlearn.models import Document, LabeledVector, SparseVector


def _lv(label, size: int, mapping: dict[int, float]) -> LabeledVector:
    return LabeledVector(label, SparseVector.from_dict(size, mapping))


# ---------------------------------------------------------------------------
# NaiveBayesClassifier Tests
# ---------------------------------------------------------------------------

class TestNaiveBayesClassifier:
    """Tests for multinomial Naive Bayes over hashed vectors."""

    @pytest.fixture
    def model(self) -> NaiveBayesClassifier:
        data = [
            _lv(0, 4, {0: 2.0, 1: 1.0}),
            _lv(1, 4, {1: 3.0}),
        ]
        return NaiveBayesClassifier(alpha=0.1).fit(data)

    def test_priors(self):
        data = [_lv(0, 4, {0: 1.0})] * 3 + [_lv(1, 4, {1: 1.0})]
        nb = NaiveBayesClassifier().fit(data)
        assert nb.class_log_prior_[0] == pytest.approx(math.log(0.75))
        assert nb.class_log_prior_[1] == pytest.approx(math.log(0.25))

    def test_conditional_log_likelihoods(self, model):
        denom = 3.0 + 0.1 * 4
        assert model.feature_log_prob_[0][0] == pytest.approx(math.log(2.1 / denom))
        assert model.feature_log_prob_[0][1] == pytest.approx(math.log(1.1 / denom))
        assert model.feature_log_prob_[1][1] == pytest.approx(math.log(3.1 / denom))
        assert model.unseen_log_prob_[1] == pytest.approx(math.log(0.1 / denom))

    def test_vocabulary_and_classes(self, model):
        assert model.classes_ == [0, 1]
        assert model.vocabulary_ == frozenset({0, 1})
        assert model.num_features_ == 4

    def test_predict(self, model):
        assert model.predict(SparseVector.from_dict(4, {0: 1.0})) == 0
        assert model.predict(SparseVector.from_dict(4, {1: 5.0})) == 1

    def test_single_class_always_predicted(self):
        nb = NaiveBayesClassifier().fit([_lv(3, 8, {1: 1.0}), _lv(3, 8, {2: 4.0})])
        for mapping in ({}, {0: 9.0}, {1: 1.0, 7: 2.0}):
            assert nb.predict(SparseVector.from_dict(8, mapping)) == 3

    def test_ties_go_to_lowest_class(self):
        vec = {0: 1.0, 1: 1.0}
        nb = NaiveBayesClassifier().fit([_lv(2, 4, vec), _lv(1, 4, vec)])
        assert nb.predict(SparseVector.from_dict(4, vec)) == 1
        assert nb.predict(SparseVector(4)) == 1

    def test_unobserved_index_contributes_nothing(self):
        data = [_lv(0, 8, {0: 1.0})] * 3 + [_lv(1, 8, {1: 1.0})]
        nb = NaiveBayesClassifier().fit(data)
        proba = nb.predict_proba(SparseVector.from_dict(8, {5: 100.0}))
        assert proba[0] == pytest.approx(0.75)
        assert proba[1] == pytest.approx(0.25)

    def test_predict_proba_sums_to_one(self, model):
        proba = model.predict_proba(SparseVector.from_dict(4, {0: 1.0, 1: 2.0}))
        assert sum(proba.values()) == pytest.approx(1.0)
        assert all(p >= 0 for p in proba.values())

    def test_float_class_labels_accepted(self):
        nb = NaiveBayesClassifier().fit([_lv(1.0, 4, {0: 1.0}), _lv(0.0, 4, {1: 1.0})])
        assert nb.classes_ == [0, 1]

    def test_fractional_label_raises(self):
        with pytest.raises(ValueError, match="non-negative integers"):
            NaiveBayesClassifier().fit([_lv(0.5, 4, {0: 1.0})])

    def test_negative_feature_raises(self):
        with pytest.raises(ValueError, match="non-negative features"):
            NaiveBayesClassifier().fit([_lv(0, 4, {0: -1.0})])

    def test_empty_training_set_raises(self):
        with pytest.raises(EmptyTrainingSetError):
            NaiveBayesClassifier().fit([])

    @pytest.mark.parametrize("alpha", [0.0, -0.1])
    def test_non_positive_smoothing_raises(self, alpha):
        with pytest.raises(InvalidHyperparameterError):
            NaiveBayesClassifier(alpha=alpha).fit([_lv(0, 4, {0: 1.0})])

    def test_mixed_sizes_raise(self):
        with pytest.raises(DimensionMismatchError):
            NaiveBayesClassifier().fit([_lv(0, 4, {0: 1.0}), _lv(1, 8, {0: 1.0})])

    def test_predict_size_mismatch_raises(self, model):
        with pytest.raises(DimensionMismatchError):
            model.predict(SparseVector(5))

    def test_predict_without_fit_raises(self):
        with pytest.raises(RuntimeError, match="not been fitted"):
            NaiveBayesClassifier().predict(SparseVector(4))

    def test_most_informative_features(self, model):
        top = model.most_informative_features(0, top_n=1)
        assert top[0][0] == 0
        assert top[0][1] > 0

    def test_most_informative_unknown_class_raises(self, model):
        with pytest.raises(ValueError, match="Unknown class"):
            model.most_informative_features(9)

    def test_serialization_roundtrip(self, model):
        data = json.loads(json.dumps(model.to_dict()))
        restored = NaiveBayesClassifier.from_dict(data)
        assert restored.classes_ == model.classes_
        assert restored.class_log_prior_ == model.class_log_prior_
        assert restored.feature_log_prob_ == model.feature_log_prob_
        assert restored.unseen_log_prob_ == model.unseen_log_prob_
        assert restored.vocabulary_ == model.vocabulary_
        vec = SparseVector.from_dict(4, {0: 1.0, 1: 1.0})
        assert restored.predict_proba(vec) == model.predict_proba(vec)


# ---------------------------------------------------------------------------
# Cross-Validation Tests
# ---------------------------------------------------------------------------

class TestCrossValidation:
    """Tests for stratified k-fold cross-validation."""

    def test_stratified_no_overlap_and_full_coverage(self):
        labels = ["a"] * 10 + ["b"] * 10
        folds = stratified_k_fold(labels, k=5)
        assert len(folds) == 5
        all_test = set()
        for train_idx, test_idx in folds:
            assert not set(train_idx) & set(test_idx)
            all_test.update(test_idx)
        assert all_test == set(range(20))

    def test_stratified_class_distribution(self):
        labels = ["a"] * 20 + ["b"] * 20
        for _, test_idx in stratified_k_fold(labels, k=5):
            test_labels = [labels[i] for i in test_idx]
            assert test_labels.count("a") == test_labels.count("b") == 4

    def test_stratified_reproducible_with_seed(self):
        labels = ["a"] * 10 + ["b"] * 10
        assert stratified_k_fold(labels, k=5, seed=7) == stratified_k_fold(labels, k=5, seed=7)

    def test_k_below_two_raises(self):
        with pytest.raises(InvalidHyperparameterError):
            stratified_k_fold(["a", "b"], k=1)

    def test_cross_validate_returns_k_results(self, corpus, small_pipeline_kwargs):
        docs, labels = corpus
        results = cross_validate(docs, labels, k=3, pipeline_kwargs=small_pipeline_kwargs)
        assert len(results) == 3
        assert all(isinstance(r, ClassificationMetrics) for r in results)

    def test_class_smaller_than_k_is_scored_as_miss(
        self, small_pipeline_kwargs, hockey_docs, graphics_docs
    ):
        docs = hockey_docs[:4] + graphics_docs[:4] + ["The senator spoke about taxes."]
        labels = ["hockey"] * 4 + ["graphics"] * 4 + ["politics"]
        results = cross_validate(docs, labels, k=3, pipeline_kwargs=small_pipeline_kwargs)
        assert len(results) == 3
        held_out = [r for r in results if r.support.get("politics") == 1]
        assert len(held_out) == 1
        assert held_out[0].per_class["politics"]["recall"] == 0.0
        assert held_out[0].accuracy < 1.0


# ---------------------------------------------------------------------------
# DocumentClassifier (High-Level API) Tests
# ---------------------------------------------------------------------------

class TestDocumentClassifier:
    """Tests for the high-level DocumentClassifier."""

    @pytest.fixture
    def trained(self, corpus, small_pipeline_kwargs) -> DocumentClassifier:
        docs, labels = corpus
        clf = DocumentClassifier(small_pipeline_kwargs)
        clf.train(docs, labels)
        return clf

    def test_train_returns_training_metrics(self, corpus, small_pipeline_kwargs):
        docs, labels = corpus
        clf = DocumentClassifier(small_pipeline_kwargs)
        metrics = clf.train(docs, labels)
        assert clf.is_trained
        assert metrics.accuracy > 0.8

    def test_classes_are_sorted_names(self, trained):
        assert trained.classes == ["comp.graphics", "rec.sport.hockey", "talk.politics"]

    def test_classify_hockey(self, trained):
        result = trained.classify("The goalie made a great save on the ice.")
        assert isinstance(result, ClassificationResult)
        assert result.predicted_class == "rec.sport.hockey"
        assert 0 <= result.confidence <= 1

    def test_result_ranking(self):
        result = ClassificationResult("b", 0.5, {"a": 0.25, "b": 0.5, "c": 0.25})
        assert result.ranked() == [("b", 0.5), ("a", 0.25), ("c", 0.25)]
        assert result.ranked(top_n=1) == [("b", 0.5)]
        assert result.to_dict()["ranking"][0] == {"class": "b", "probability": 0.5}

    def test_classify_politics(self, trained):
        result = trained.classify("The senate will vote on the legislation.")
        assert result.predicted_class == "talk.politics"

    def test_classify_batch(self, trained):
        results = trained.classify_batch([
            "Rendering polygon shaders for the image.",
            "Voters and the senator discussed taxes.",
        ])
        assert [r.predicted_class for r in results] == ["comp.graphics", "talk.politics"]

    def test_predict_returns_names(self, trained):
        assert trained.predict(["puck and goalie on the ice"]) == ["rec.sport.hockey"]

    def test_evaluate_held_out(self, trained, corpus):
        docs, labels = corpus
        metrics = trained.evaluate(docs, labels)
        assert metrics.accuracy > 0.8
        assert 0 < metrics.weighted_f1 <= 1
        assert set(metrics.support) == set(trained.classes)

    def test_evaluate_unknown_label_reports_document(self, trained):
        with pytest.raises(PipelineError) as exc_info:
            trained.evaluate([Document("test/sci.space/1", "orbit")], ["sci.space"])
        assert exc_info.value.stage == "evaluate"
        assert exc_info.value.source == "test/sci.space/1"

    def test_evaluate_allow_unknown_counts_miss(self, trained):
        metrics = trained.evaluate(
            ["orbit launch", "goalie puck on the ice"],
            ["sci.space", "rec.sport.hockey"],
            allow_unknown=True,
        )
        assert metrics.accuracy == 0.5
        assert metrics.support["sci.space"] == 1
        assert metrics.per_class["sci.space"]["recall"] == 0.0

    def test_raw_token_baseline_keeps_stopwords_and_case(self):
        clf = DocumentClassifier({"num_features": 2 ** 12, "use_idf": False, "raw_tokens": True})
        clf.train(["The Goalie, 2 pucks", "shader pixel"], ["hockey", "graphics"])
        vec = clf.transform(["The"])[0]
        assert vec.indices == (clf.pipeline.hasher.index_of("The"),)
        assert clf.classify("The").predicted_class == "hockey"

    def test_raw_token_mode_survives_save(self, tmp_path: Path):
        clf = DocumentClassifier({"num_features": 2 ** 12, "use_idf": False, "raw_tokens": True})
        clf.train(["The Goalie", "shader pixel"], ["hockey", "graphics"])
        clf.save(tmp_path / "raw.json")
        loaded = DocumentClassifier.load(tmp_path / "raw.json")
        assert loaded.pipeline.raw_tokens
        assert loaded.transform(["The Goalie"]) == clf.transform(["The Goalie"])

    def test_single_category_corpus(self, small_pipeline_kwargs, hockey_docs, graphics_docs):
        clf = DocumentClassifier(small_pipeline_kwargs)
        clf.train(hockey_docs, ["rec.sport.hockey"] * len(hockey_docs))
        for text in graphics_docs:
            assert clf.classify(text).predicted_class == "rec.sport.hockey"

    def test_empty_training_set(self):
        with pytest.raises(PipelineError) as exc_info:
            DocumentClassifier().train([], [])
        assert exc_info.value.stage == "train"
        assert isinstance(exc_info.value.cause, EmptyTrainingSetError)

    def test_invalid_smoothing_is_a_train_failure(self, corpus, small_pipeline_kwargs):
        docs, labels = corpus
        clf = DocumentClassifier(small_pipeline_kwargs, {"alpha": 0})
        with pytest.raises(PipelineError) as exc_info:
            clf.train(docs, labels)
        assert exc_info.value.stage == "train"
        assert isinstance(exc_info.value.cause, InvalidHyperparameterError)
        assert not clf.is_trained

    def test_mismatched_lengths_raises(self):
        with pytest.raises(ValueError, match="same length"):
            DocumentClassifier().train(["a"], ["x", "y"])

    def test_classify_without_training_raises(self):
        with pytest.raises(RuntimeError, match="not trained"):
            DocumentClassifier().classify("some text")

    def test_raw_term_frequency_mode(self, corpus):
        docs, labels = corpus
        clf = DocumentClassifier({"num_features": 2 ** 12, "min_token_count": 1, "use_idf": False})
        clf.train(docs, labels)
        assert clf.pipeline.idf_ is None
        assert clf.classify("goalie puck ice").predicted_class == "rec.sport.hockey"

    def test_most_informative_features(self, trained):
        features = trained.most_informative_features("rec.sport.hockey", top_n=5)
        assert len(features) == 5
        assert all(isinstance(f[0], int) for f in features)
        scores = [f[1] for f in features]
        assert scores == sorted(scores, reverse=True)

    def test_cross_validate_uses_settings(self, corpus, small_pipeline_kwargs):
        docs, labels = corpus
        results = DocumentClassifier(small_pipeline_kwargs).cross_validate(docs, labels, k=3)
        assert len(results) == 3

    def test_save_and_load(self, trained, tmp_path: Path):
        text = "The goalie and the puck"
        original = trained.classify(text)

        model_path = tmp_path / "nested" / "model.json"
        trained.save(model_path)
        data = json.loads(model_path.read_text(encoding="utf-8"))
        assert data["version"] == "1.0"
        assert data["pipeline"]["hash"] == "blake2b-32"
        assert {"pipeline", "labels", "classifier"} <= set(data)

        loaded = DocumentClassifier.load(model_path)
        assert loaded.is_trained
        assert loaded.classes == trained.classes
        restored = loaded.classify(text)
        assert restored.predicted_class == original.predicted_class
        assert restored.confidence == pytest.approx(original.confidence)

    def test_save_without_training_raises(self, tmp_path: Path):
        with pytest.raises(RuntimeError, match="untrained"):
            DocumentClassifier().save(tmp_path / "model.json")

    def test_load_rejects_unknown_version(self, trained, tmp_path: Path):
        path = tmp_path / "model.json"
        trained.save(path)
        data = json.loads(path.read_text(encoding="utf-8"))
        data["version"] = "0.1"
        path.write_text(json.dumps(data), encoding="utf-8")
        with pytest.raises(ValueError, match="Unsupported model version"):
            DocumentClassifier.load(path)


def test_train_test_evaluate(corpus, small_pipeline_kwargs):
    docs, labels = corpus
    clf, metrics = train_test_evaluate(
        docs, labels, docs, labels, pipeline_kwargs=small_pipeline_kwargs,
        classifier_kwargs={"alpha": 0.1},
    )
    assert clf.is_trained
    assert metrics.accuracy > 0.8
