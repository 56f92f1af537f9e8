"""Runtime settings for the batch pipeline and the streaming job.

Defaults match the newsgroup classification run and the streaming
regression job. Any field can be overridden by keyword or through the
environment (a ``.env`` file in the working directory is honored).
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from .errors import InvalidHyperparameterError

T = TypeVar("T")


def _env(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise InvalidHyperparameterError(f"{name}={raw!r} is not valid: {exc}") from exc


def _bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError("expected a boolean")


@dataclass
class PipelineConfig:
    """Settings for tokenization, hashing, IDF, and Naive Bayes."""

    num_features: int = 2 ** 18
    min_token_count: int = 2
    min_token_length: int = 2
    min_doc_freq: int = 0
    use_idf: bool = True
    raw_tokens: bool = False
    smoothing: float = 0.1

    def validate(self) -> "PipelineConfig":
        if self.num_features <= 0:
            raise InvalidHyperparameterError("num_features must be positive")
        if self.smoothing <= 0:
            raise InvalidHyperparameterError("smoothing must be positive")
        if self.min_token_count < 1 or self.min_token_length < 1:
            raise InvalidHyperparameterError("token thresholds must be at least 1")
        if self.min_doc_freq < 0:
            raise InvalidHyperparameterError("min_doc_freq must be non-negative")
        return self

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "PipelineConfig":
        load_dotenv(dotenv_path)
        d = cls()
        return cls(
            num_features=_env("HASHLEARN_NUM_FEATURES", d.num_features, int),
            min_token_count=_env("HASHLEARN_MIN_TOKEN_COUNT", d.min_token_count, int),
            min_token_length=_env("HASHLEARN_MIN_TOKEN_LENGTH", d.min_token_length, int),
            min_doc_freq=_env("HASHLEARN_MIN_DOC_FREQ", d.min_doc_freq, int),
            use_idf=_env("HASHLEARN_USE_IDF", d.use_idf, _bool),
            raw_tokens=_env("HASHLEARN_RAW_TOKENS", d.raw_tokens, _bool),
            smoothing=_env("HASHLEARN_SMOOTHING", d.smoothing, float),
        ).validate()

    def pipeline_kwargs(self) -> dict:
        """Keyword arguments for ``DocumentClassifier``'s feature pipeline."""
        return {
            "num_features": self.num_features,
            "min_token_count": self.min_token_count,
            "min_length": self.min_token_length,
            "min_doc_freq": self.min_doc_freq,
            "use_idf": self.use_idf,
            "raw_tokens": self.raw_tokens,
        }

    def classifier_kwargs(self) -> dict:
        return {"alpha": self.smoothing}

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class StreamingConfig:
    """Settings for the streaming regression job."""

    num_features: int = 100
    step_size: float = 0.01
    num_iterations: int = 1
    batch_interval: float = 10.0
    host: str = "localhost"
    port: int = 9999
    fit_intercept: bool = False

    def validate(self) -> "StreamingConfig":
        if self.num_features <= 0:
            raise InvalidHyperparameterError("num_features must be positive")
        if self.step_size <= 0:
            raise InvalidHyperparameterError("step_size must be positive")
        if self.num_iterations < 1:
            raise InvalidHyperparameterError("num_iterations must be at least 1")
        if self.batch_interval <= 0:
            raise InvalidHyperparameterError("batch_interval must be positive")
        return self

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "StreamingConfig":
        load_dotenv(dotenv_path)
        d = cls()
        return cls(
            num_features=_env("HASHLEARN_STREAM_FEATURES", d.num_features, int),
            step_size=_env("HASHLEARN_STEP_SIZE", d.step_size, float),
            num_iterations=_env("HASHLEARN_NUM_ITERATIONS", d.num_iterations, int),
            batch_interval=_env("HASHLEARN_BATCH_INTERVAL", d.batch_interval, float),
            host=_env("HASHLEARN_STREAM_HOST", d.host, str),
            port=_env("HASHLEARN_STREAM_PORT", d.port, int),
            fit_intercept=_env("HASHLEARN_FIT_INTERCEPT", d.fit_intercept, _bool),
        ).validate()

    def to_dict(self) -> dict:
        return asdict(self)
