"""Exception types raised by the feature, training, and streaming code."""

from __future__ import annotations

from typing import Optional


class HashLearnError(Exception):
    """Base class for all hashlearn errors."""


class EmptyTrainingSetError(HashLearnError, ValueError):
    """Raised when an estimator is fitted on zero labeled examples."""


class DimensionMismatchError(HashLearnError, ValueError):
    """Raised when a vector's size or an index falls outside the configured range."""


class InvalidHyperparameterError(HashLearnError, ValueError):
    """Raised for non-positive smoothing, step size, or dimension."""


class MalformedRecordError(HashLearnError, ValueError):
    """Raised when a streaming record cannot be decoded."""

    def __init__(self, message: str, line: Optional[str] = None) -> None:
        super().__init__(message)
        self.line = line


class PipelineError(HashLearnError):
    """A batch-pipeline failure annotated with the stage and input that failed.

    Attributes:
        stage: Pipeline stage name (``tokenize``, ``hash``, ``idf``,
            ``train``, ``predict``, ``evaluate``).
        source: Identifier of the offending document, if known.
    """

    def __init__(self, stage: str, source: Optional[str], cause: Exception) -> None:
        where = f" on {source}" if source else ""
        super().__init__(f"{stage} stage failed{where}: {cause}")
        self.stage = stage
        self.source = source
        self.cause = cause
