"""hashlearn -- hashed TF-IDF text classification and streaming regression."""

__version__ = "0.1.0"

from .classifier import (
    ClassificationResult,
    DocumentClassifier,
    NaiveBayesClassifier,
    cross_validate,
    stratified_k_fold,
    train_test_evaluate,
)
from .config import PipelineConfig, StreamingConfig
from .corpus import label_from_path, load_corpus
from .errors import (
    DimensionMismatchError,
    EmptyTrainingSetError,
    HashLearnError,
    InvalidHyperparameterError,
    MalformedRecordError,
    PipelineError,
)
from .evaluation import (
    ClassificationMetrics,
    ConfusionMatrix,
    RegressionMetrics,
    accuracy,
    compute_metrics,
    regression_metrics,
    weighted_f_measure,
)
from .features import (
    FeatureHasher,
    IDFEstimator,
    IDFWeights,
    TfidfPipeline,
    stable_hash,
    tfidf_range,
)
from .models import (
    Document,
    LabeledVector,
    LabelEncoder,
    SparseReadable,
    SparseVector,
    SparseVectorBuilder,
    cosine_similarity,
)
from .preprocessing import STOP_WORDS, Tokenizer, count_tokens, find_rare_tokens
from .streaming import (
    BatchReport,
    LinearModel,
    ModelState,
    QueueBatchSource,
    SocketBatchSource,
    StreamingLinearRegression,
    decode_batch,
    parse_record,
)

__all__ = [
    # Data model
    "Document",
    "SparseReadable",
    "SparseVector",
    "SparseVectorBuilder",
    "LabeledVector",
    "LabelEncoder",
    "cosine_similarity",
    # Errors
    "HashLearnError",
    "EmptyTrainingSetError",
    "DimensionMismatchError",
    "InvalidHyperparameterError",
    "MalformedRecordError",
    "PipelineError",
    # Text features
    "STOP_WORDS",
    "Tokenizer",
    "count_tokens",
    "find_rare_tokens",
    "FeatureHasher",
    "IDFEstimator",
    "IDFWeights",
    "TfidfPipeline",
    "stable_hash",
    "tfidf_range",
    # Classification
    "NaiveBayesClassifier",
    "DocumentClassifier",
    "ClassificationResult",
    "cross_validate",
    "stratified_k_fold",
    "train_test_evaluate",
    # Evaluation
    "ConfusionMatrix",
    "ClassificationMetrics",
    "RegressionMetrics",
    "accuracy",
    "weighted_f_measure",
    "compute_metrics",
    "regression_metrics",
    # Streaming
    "LinearModel",
    "ModelState",
    "StreamingLinearRegression",
    "BatchReport",
    "SocketBatchSource",
    "QueueBatchSource",
    "parse_record",
    "decode_batch",
    # Configuration and corpus
    "PipelineConfig",
    "StreamingConfig",
    "label_from_path",
    "load_corpus",
]
