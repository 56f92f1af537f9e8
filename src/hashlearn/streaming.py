"""Online linear regression trained by SGD on a stream of micro-batches.

A single :class:`StreamingLinearRegression` owns one :class:`LinearModel`
and applies one update per arriving batch, strictly in arrival order.
Batches are pulled from a blocking source (a TCP socket or an in-process
queue); between batches the loop does no work.

Records on the wire are ``"<label>\\t<f1,f2,...,fn>"`` lines. A batch is
decoded and validated as a whole: one malformed record, or one vector of
the wrong dimension, rejects the entire batch and leaves the model as it
was. The loop logs the failure and moves on to the next batch.
"""

from __future__ import annotations

import logging
import math
import queue
import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import (
    DimensionMismatchError,
    HashLearnError,
    InvalidHyperparameterError,
    MalformedRecordError,
)
from .evaluation import regression_metrics
from .models import LabeledVector, SparseVector

logger = logging.getLogger(__name__)

DEFAULT_NUM_FEATURES = 100
DEFAULT_STEP_SIZE = 0.01
DEFAULT_BATCH_INTERVAL = 10.0


# ---------------------------------------------------------------------------
# Record decoding
# ---------------------------------------------------------------------------

def parse_record(line: str, num_features: Optional[int] = None) -> LabeledVector:
    """Decode one ``label<TAB>f1,f2,...`` line into a labeled dense vector.

    Raises:
        MalformedRecordError: If the line does not have two tab-separated
            fields or a value is not a finite number.
        DimensionMismatchError: If ``num_features`` is given and the record
            has a different number of features.
    """
    parts = line.rstrip("\r\n").split("\t")
    if len(parts) != 2:
        raise MalformedRecordError(f"expected 2 tab-separated fields, got {len(parts)}", line)

    try:
        label = float(parts[0])
        values = [float(x) for x in parts[1].split(",")]
    except ValueError as exc:
        raise MalformedRecordError(f"non-numeric value in record: {exc}", line) from exc

    if not math.isfinite(label) or not all(math.isfinite(v) for v in values):
        raise MalformedRecordError("record contains a non-finite value", line)
    if num_features is not None and len(values) != num_features:
        raise DimensionMismatchError(
            f"record has {len(values)} features, expected {num_features}"
        )
    return LabeledVector(label, SparseVector.from_dense(values))


def decode_batch(lines: Iterable[str], num_features: Optional[int] = None) -> list[LabeledVector]:
    """Decode every non-blank line; any failure fails the whole batch."""
    return [parse_record(line, num_features) for line in lines if line.strip()]


# ---------------------------------------------------------------------------
# Model state
# ---------------------------------------------------------------------------

class ModelState(str, Enum):
    """Lifecycle of a linear model; it never returns to UNINITIALIZED."""

    UNINITIALIZED = "uninitialized"
    TRAINED = "trained"


@dataclass
class LinearModel:
    """Weight vector plus intercept, mutated in place by streaming updates.

    Attributes:
        weights: Dense weights, one per feature.
        intercept: Bias term (left at 0.0 unless intercept fitting is on).
        updates: Number of batches applied so far.
    """

    weights: list[float]
    intercept: float = 0.0
    updates: int = 0

    @classmethod
    def zeros(cls, num_features: int = DEFAULT_NUM_FEATURES) -> "LinearModel":
        if num_features <= 0:
            raise InvalidHyperparameterError(
                f"num_features must be positive, got {num_features}"
            )
        return cls(weights=[0.0] * num_features)

    @property
    def num_features(self) -> int:
        return len(self.weights)

    @property
    def state(self) -> ModelState:
        return ModelState.TRAINED if self.updates else ModelState.UNINITIALIZED

    def predict(self, features: SparseVector) -> float:
        return features.dot_dense(self.weights) + self.intercept

    def to_dict(self) -> dict:
        return {
            "weights": list(self.weights),
            "intercept": self.intercept,
            "updates": self.updates,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LinearModel":
        return cls(
            weights=[float(w) for w in data["weights"]],
            intercept=float(data.get("intercept", 0.0)),
            updates=int(data.get("updates", 0)),
        )


@dataclass
class BatchReport:
    """Outcome of processing one streamed batch."""

    index: int
    size: int
    applied: bool
    error: Optional[str] = None
    mse: Optional[float] = None
    weights_norm: float = 0.0

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "size": self.size,
            "applied": self.applied,
            "error": self.error,
            "mse": self.mse,
            "weights_norm": round(self.weights_norm, 6),
        }


# ---------------------------------------------------------------------------
# Streaming SGD
# ---------------------------------------------------------------------------

RawBatch = Sequence[Union[str, LabeledVector]]


class StreamingLinearRegression:
    """Least-squares linear regression updated once per incoming batch.

    Each pass over a batch visits observations in arrival order and applies
    ``w -= (step_size / n) * (w.x + b - y) * x`` per observation, so the
    effective step does not grow with batch size.

    Args:
        model: Model to train; mutated in place.
        step_size: SGD step size; must be positive.
        num_iterations: Passes over each batch.
        fit_intercept: Also update the intercept.
    """

    def __init__(
        self,
        model: Optional[LinearModel] = None,
        step_size: float = DEFAULT_STEP_SIZE,
        num_iterations: int = 1,
        fit_intercept: bool = False,
    ) -> None:
        _check_hyperparameters(step_size, num_iterations)
        self.model = model or LinearModel.zeros()
        self.step_size = step_size
        self.num_iterations = num_iterations
        self.fit_intercept = fit_intercept
        self._lock = threading.Lock()

    def _validate(self, batch: Sequence[LabeledVector]) -> None:
        dim = self.model.num_features
        for point in batch:
            vec = point.features
            if vec.size != dim or (vec.indices and vec.indices[-1] >= dim):
                raise DimensionMismatchError(
                    f"record of size {vec.size} does not match model size {dim}"
                )

    def update(
        self,
        batch: Sequence[LabeledVector],
        step_size: Optional[float] = None,
        num_iterations: Optional[int] = None,
    ) -> LinearModel:
        """Apply one batch to the model.

        Updates are computed on a copy of the weights and committed only
        when the whole batch succeeds. Empty batches are no-ops.

        Raises:
            DimensionMismatchError: If any record has the wrong dimension;
                the model is left untouched.
        """
        eta = self.step_size if step_size is None else step_size
        passes = self.num_iterations if num_iterations is None else num_iterations
        _check_hyperparameters(eta, passes)

        if not batch:
            logger.debug("Empty batch, model unchanged")
            return self.model

        if not self._lock.acquire(blocking=False):
            raise RuntimeError("another update is already in progress on this model")
        try:
            self._validate(batch)

            weights = list(self.model.weights)
            intercept = self.model.intercept
            scale = eta / len(batch)

            for _ in range(passes):
                for point in batch:
                    error = point.features.dot_dense(weights) + intercept - point.label
                    step = scale * error
                    for idx, value in point.features.items():
                        weights[idx] -= step * value
                    if self.fit_intercept:
                        intercept -= step

            self.model.weights = weights
            self.model.intercept = intercept
            self.model.updates += 1
        finally:
            self._lock.release()

        logger.debug("Applied batch of %d records (update #%d)", len(batch), self.model.updates)
        return self.model

    def predict_on(self, batch: Sequence[LabeledVector]) -> list[float]:
        """Predictions for each record under the current weights."""
        self._validate(batch)
        return [self.model.predict(point.features) for point in batch]

    def _decode(self, raw: RawBatch) -> list[LabeledVector]:
        if all(isinstance(item, LabeledVector) for item in raw):
            return list(raw)  # type: ignore[arg-type]
        return decode_batch(raw, self.model.num_features)  # type: ignore[arg-type]

    def process_batch(self, index: int, raw: RawBatch) -> BatchReport:
        """Decode, score, and apply one batch, reporting instead of raising."""
        try:
            batch = self._decode(raw)
            mse = None
            if batch:
                predictions = self.predict_on(batch)
                mse = regression_metrics(
                    zip(predictions, (p.label for p in batch))
                ).mean_squared_error
            self.update(batch)
        except HashLearnError as exc:
            logger.warning("Rejected batch %d (%d records): %s", index, len(raw), exc)
            return BatchReport(index=index, size=len(raw), applied=False, error=str(exc))

        norm = math.sqrt(sum(w * w for w in self.model.weights))
        return BatchReport(
            index=index, size=len(batch), applied=bool(batch), mse=mse, weights_norm=norm,
        )

    def train_on(
        self,
        batches: Iterable[RawBatch],
        stop_event: Optional[threading.Event] = None,
        on_batch: Optional[Callable[[BatchReport], None]] = None,
        on_error: Optional[Callable[[BatchReport], None]] = None,
    ) -> int:
        """Consume batches until the source ends or ``stop_event`` is set.

        Each batch is fully processed before the next is pulled, and the
        stop flag is checked between batches only, so an in-flight update
        always completes. If the source has a ``close`` method it is called
        on exit. ``on_error`` receives the report of every rejected batch.

        Returns:
            Number of batches that changed the model.
        """
        applied = 0
        iterator = iter(batches)
        try:
            for index, raw in enumerate(iterator):
                if stop_event is not None and stop_event.is_set():
                    break
                report = self.process_batch(index, raw)
                if report.applied:
                    applied += 1
                elif report.error and on_error is not None:
                    on_error(report)
                if on_batch is not None:
                    on_batch(report)
                if stop_event is not None and stop_event.is_set():
                    break
        finally:
            for resource in (iterator, batches):
                close = getattr(resource, "close", None)
                if callable(close):
                    close()
        logger.info("Streaming stopped after %d applied batches", applied)
        return applied


def _check_hyperparameters(step_size: float, num_iterations: int) -> None:
    if step_size <= 0:
        raise InvalidHyperparameterError(f"step_size must be positive, got {step_size}")
    if num_iterations < 1:
        raise InvalidHyperparameterError(
            f"num_iterations must be at least 1, got {num_iterations}"
        )


# ---------------------------------------------------------------------------
# Batch sources
# ---------------------------------------------------------------------------

@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(OSError),
    reraise=True,
)
def _open_connection(host: str, port: int, timeout: float) -> socket.socket:
    logger.debug("Connecting to %s:%d", host, port)
    return socket.create_connection((host, port), timeout=timeout)


class SocketBatchSource:
    """Group newline-delimited records from a TCP socket into time windows.

    Iterating yields one list of lines per ``batch_interval`` seconds,
    including empty lists for idle windows. When the peer closes the
    connection the pending window is flushed and iteration ends. After
    :meth:`close` iteration ends at the next poll and the pending partial
    window is discarded.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 9999,
        batch_interval: float = DEFAULT_BATCH_INTERVAL,
        connect_timeout: float = 5.0,
        poll_interval: float = 0.5,
    ) -> None:
        if batch_interval <= 0:
            raise InvalidHyperparameterError("batch_interval must be positive")
        self.host = host
        self.port = port
        self.batch_interval = batch_interval
        self.connect_timeout = connect_timeout
        self.poll_interval = poll_interval
        self._closed = threading.Event()

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[list[str]]:
        sock = _open_connection(self.host, self.port, self.connect_timeout)
        logger.info("Listening for records on %s:%d", self.host, self.port)
        buffer = b""
        batch: list[str] = []
        deadline = time.monotonic() + self.batch_interval
        try:
            while not self._closed.is_set():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    yield batch
                    batch = []
                    deadline += self.batch_interval
                    continue

                sock.settimeout(min(remaining, self.poll_interval))
                try:
                    chunk = sock.recv(65536)
                except socket.timeout:
                    continue

                if not chunk:
                    if buffer:
                        batch.append(buffer.decode("utf-8", errors="replace"))
                    if batch:
                        yield batch
                    return

                buffer += chunk
                *complete, buffer = buffer.split(b"\n")
                batch.extend(line.decode("utf-8", errors="replace") for line in complete)
        finally:
            sock.close()


class QueueBatchSource:
    """Pull batches from a bounded in-process queue.

    Producers ``put`` batches (lists of lines or labeled vectors) and
    ``None`` to signal the end of the stream.
    """

    def __init__(
        self,
        batches: "queue.Queue[Optional[RawBatch]]",
        stop_event: Optional[threading.Event] = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.batches = batches
        self.stop_event = stop_event or threading.Event()
        self.poll_interval = poll_interval

    def close(self) -> None:
        self.stop_event.set()

    def __iter__(self) -> Iterator[RawBatch]:
        while not self.stop_event.is_set():
            try:
                item = self.batches.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            if item is None:
                return
            yield item
