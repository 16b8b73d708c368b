"""
Export pipeline

A bounded span buffer drained by one supervised worker thread that groups
spans into batches and hands each batch to an exporter backend.

State machine: OPEN -> DRAINING -> CLOSED.
- OPEN: enqueue() buffers spans; the worker batches by size or delay.
- DRAINING: intake is cut off, buffered spans flush without waiting for the
  batch delay.
- CLOSED: the buffer is empty, or whatever was left when the drain timeout
  elapsed (buffered spans and an abandoned in-flight batch) has been dropped
  and counted.

Accounting holds at every observation point:
    enqueued == exported + dropped_overflow + dropped_export + dropped_shutdown + pending
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional, Tuple

from loadtrace.config import ExporterConfig, OverflowPolicy, RetryPolicy
from loadtrace.errors import PipelineClosedError
from loadtrace.exporters.exporter_factory import ExporterFactory
from loadtrace.exporters.exporter_interface import ExporterBackend, ExportResult
from loadtrace.pipeline.backoff import BackoffTimer
from loadtrace.telemetry.metrics import (
    EXPORT_RETRIES,
    SPANS_DROPPED,
    SPANS_ENQUEUED,
    SPANS_EXPORTED,
    increment_counter,
)
from loadtrace.trace.span import Span

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    OPEN = "open"
    DRAINING = "draining"
    CLOSED = "closed"


@dataclass(frozen=True)
class PipelineStats:
    """Point-in-time snapshot of pipeline counters"""
    enqueued: int = 0
    exported: int = 0
    dropped_overflow: int = 0
    dropped_export: int = 0
    dropped_shutdown: int = 0
    pending: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    retries: int = 0

    @property
    def dropped(self) -> int:
        return self.dropped_overflow + self.dropped_export + self.dropped_shutdown

    def __add__(self, other: "PipelineStats") -> "PipelineStats":
        return PipelineStats(**{
            name: getattr(self, name) + getattr(other, name)
            for name in self.__dataclass_fields__
        })


class ExportPipeline:
    """Bounded buffer plus background batching worker for one backend"""

    def __init__(self,
                 backend: ExporterBackend,
                 batch_max_size: int = 512,
                 batch_max_delay: float = 1.0,
                 max_queue_size: int = 2048,
                 overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST,
                 block_timeout: float = 0.05,
                 retry_policy: Optional[RetryPolicy] = None,
                 abort_grace: float = 1.0):
        """Initialize the pipeline (the worker starts with start())

        Args:
            backend: Exporter backend batches are sent to
            batch_max_size: Maximum spans per batch
            batch_max_delay: Seconds a forming batch waits after its oldest span
            max_queue_size: Buffer capacity in spans
            overflow_policy: Behaviour of enqueue on a full buffer
            block_timeout: Maximum wait of enqueue under the BLOCK policy
            retry_policy: Retry policy for retryable export failures
            abort_grace: Seconds to wait for an in-flight export after a drain times out
        """
        self.backend = backend
        self.batch_max_size = batch_max_size
        self.batch_max_delay = batch_max_delay
        self.max_queue_size = max_queue_size
        self.overflow_policy = overflow_policy
        self.block_timeout = block_timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.abort_grace = abort_grace

        self._buffer: Deque[Tuple[float, Span]] = deque()
        self._cond = threading.Condition()
        self._state = PipelineState.OPEN
        self._abort = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._in_flight = 0
        self._in_flight_abandoned = False
        self._drain_deadline: Optional[float] = None
        self._flush_waiters = 0
        self._drained_cleanly: Optional[bool] = None
        self._warned_overflow = False
        self._warned_export = False

        self._enqueued = 0
        self._exported = 0
        self._dropped_overflow = 0
        self._dropped_export = 0
        self._dropped_shutdown = 0
        self._batches_sent = 0
        self._batches_failed = 0
        self._retries = 0

    @classmethod
    def from_config(cls, config: ExporterConfig, backend: Optional[ExporterBackend] = None) -> "ExportPipeline":
        """Build a pipeline (and its backend, unless given) from a configuration"""
        return cls(
            backend=backend or ExporterFactory.create(config),
            batch_max_size=config.batch_max_size,
            batch_max_delay=config.batch_max_delay,
            max_queue_size=config.max_queue_size,
            overflow_policy=config.overflow_policy,
            block_timeout=config.block_timeout,
            retry_policy=config.retry_policy,
        )

    @property
    def state(self) -> PipelineState:
        return self._state

    def start(self) -> None:
        """Start the background worker (idempotent)"""
        with self._cond:
            if self._worker is not None or self._state != PipelineState.OPEN:
                return
            self._worker = threading.Thread(
                target=self._run,
                name=f"loadtrace-export-{self.backend.kind}",
                daemon=True,
            )
            self._worker.start()
        logger.info(
            f"Export pipeline started for {self.backend!r}, batch size: {self.batch_max_size}, "
            f"batch delay: {self.batch_max_delay}s, queue size: {self.max_queue_size}"
        )

    def enqueue(self, span: Span) -> bool:
        """Hand a finished span to the pipeline

        Never blocks under DROP_OLDEST; waits at most block_timeout under BLOCK.

        Args:
            span: Finished span; ownership passes to the pipeline

        Returns:
            bool: True if the span was buffered, False if it was dropped

        Raises:
            PipelineClosedError: If the pipeline is draining or closed
        """
        dropped = 0
        accepted = True
        with self._cond:
            if self._state != PipelineState.OPEN:
                raise PipelineClosedError(f"export pipeline is {self._state.value}")

            if len(self._buffer) >= self.max_queue_size:
                if self.overflow_policy == OverflowPolicy.DROP_OLDEST:
                    self._buffer.popleft()
                    dropped = 1
                else:
                    deadline = time.monotonic() + self.block_timeout
                    while len(self._buffer) >= self.max_queue_size and self._state == PipelineState.OPEN:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            break
                        self._cond.wait(remaining)
                    if self._state != PipelineState.OPEN:
                        raise PipelineClosedError(f"export pipeline is {self._state.value}")
                    if len(self._buffer) >= self.max_queue_size:
                        dropped = 1
                        accepted = False

            self._enqueued += 1
            self._dropped_overflow += dropped
            if accepted:
                self._buffer.append((time.monotonic(), span))
                self._cond.notify_all()
            first_overflow = dropped and not self._warned_overflow
            if first_overflow:
                self._warned_overflow = True

        increment_counter(SPANS_ENQUEUED, 1, {"exporter": self.backend.kind})
        if dropped:
            increment_counter(SPANS_DROPPED, dropped, {"exporter": self.backend.kind, "reason": "overflow"})
            if first_overflow:
                logger.warning(f"Span buffer full ({self.max_queue_size} spans), dropping spans ({self.overflow_policy.value})")
            else:
                logger.debug("Span buffer full, span dropped")
        return accepted

    def _next_batch(self) -> Optional[List[Span]]:
        with self._cond:
            while True:
                while not self._buffer:
                    if self._state != PipelineState.OPEN or self._abort.is_set():
                        return None
                    self._cond.wait()

                if self._state == PipelineState.OPEN:
                    deadline = self._buffer[0][0] + self.batch_max_delay
                    while (len(self._buffer) < self.batch_max_size
                           and self._state == PipelineState.OPEN
                           and not self._flush_waiters):
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            break
                        self._cond.wait(remaining)

                if self._abort.is_set():
                    return None
                if not self._buffer:
                    continue

                count = min(len(self._buffer), self.batch_max_size)
                batch = [self._buffer.popleft()[1] for _ in range(count)]
                self._in_flight = count
                self._cond.notify_all()
                return batch

    def _export(self, batch: List[Span]) -> None:
        timer = BackoffTimer.from_policy(self.retry_policy)
        attempts = 0
        result = ExportResult.FATAL_FAILURE
        try:
            while True:
                attempts += 1
                result = self.backend.send(batch, timeout=self._send_timeout())
                if result != ExportResult.RETRYABLE_FAILURE or attempts >= self.retry_policy.max_attempts:
                    break
                with self._cond:
                    self._retries += 1
                increment_counter(EXPORT_RETRIES, 1, {"exporter": self.backend.kind})
                if not timer.wait(self._abort):
                    break
        except Exception as e:
            logger.exception(f"Unexpected error exporting batch of {len(batch)} spans: {str(e)}")
            result = ExportResult.FATAL_FAILURE

        size = len(batch)
        with self._cond:
            self._in_flight = 0
            if self._in_flight_abandoned:
                # Already counted as dropped_shutdown by drain()
                self._cond.notify_all()
                logger.debug(f"Ignoring late {result.value} for batch of {size} spans abandoned at shutdown")
                return
            if result == ExportResult.SUCCESS:
                self._exported += size
                self._batches_sent += 1
            else:
                self._dropped_export += size
                self._batches_failed += 1
            first_failure = result != ExportResult.SUCCESS and not self._warned_export
            if first_failure:
                self._warned_export = True
            self._cond.notify_all()

        if result == ExportResult.SUCCESS:
            increment_counter(SPANS_EXPORTED, size, {"exporter": self.backend.kind})
            return

        increment_counter(SPANS_DROPPED, size, {"exporter": self.backend.kind, "reason": "export"})
        message = f"Dropped batch of {size} spans after {attempts} attempt(s): {result.value}"
        if first_failure:
            logger.warning(message)
        else:
            logger.debug(message)

    def _send_timeout(self) -> Optional[float]:
        """Seconds left before the drain deadline, None while not draining"""
        deadline = self._drain_deadline
        if deadline is None:
            return None
        return max(deadline - time.monotonic(), 0.0)

    def _run(self) -> None:
        logger.debug(f"Export worker running for {self.backend!r}")
        while True:
            batch = self._next_batch()
            if batch is None:
                break
            self._export(batch)
        logger.debug(f"Export worker stopped for {self.backend!r}")

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until everything buffered so far has been exported or dropped

        Does not change the pipeline state.

        Returns:
            bool: True if the buffer emptied within the timeout
        """
        with self._cond:
            self._flush_waiters += 1
            self._cond.notify_all()
            try:
                return self._cond.wait_for(
                    lambda: not self._buffer and not self._in_flight,
                    timeout,
                )
            finally:
                self._flush_waiters -= 1

    def begin_drain(self, deadline: Optional[float] = None) -> None:
        """Cut off intake; buffered spans keep flowing to the backend

        Args:
            deadline: time.monotonic() value export calls are capped at
        """
        with self._cond:
            if deadline is not None and self._drain_deadline is None:
                self._drain_deadline = deadline
            if self._state == PipelineState.OPEN:
                self._state = PipelineState.DRAINING
                logger.info(f"Draining export pipeline, {len(self._buffer)} spans buffered")
            self._cond.notify_all()

    def drain(self, timeout: float = 5.0) -> bool:
        """Drain the buffer and close the pipeline

        Export calls made while draining are capped at the time left before
        the deadline. A batch still in flight once the worker has been
        aborted (and given abort_grace to stop) is counted as dropped at
        shutdown; a late result for it is ignored.

        Args:
            timeout: Seconds to wait for buffered spans to be exported

        Returns:
            bool: True if everything buffered was handed to the backend in time,
                False if spans had to be dropped at the deadline
        """
        timeout = max(timeout, 0.0)
        self.begin_drain(time.monotonic() + timeout)
        with self._cond:
            if self._state == PipelineState.CLOSED:
                return bool(self._drained_cleanly)

        clean = True
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                clean = False
                self._abort.set()
                with self._cond:
                    self._cond.notify_all()
                worker.join(self.abort_grace)

        with self._cond:
            if self._state == PipelineState.CLOSED:
                # A concurrent drain finished first
                return bool(self._drained_cleanly)
            leftover = len(self._buffer)
            self._buffer.clear()
            abandoned = 0
            if self._in_flight and worker is not None and worker.is_alive():
                abandoned = self._in_flight
                self._in_flight = 0
                self._in_flight_abandoned = True
            if leftover or abandoned:
                clean = False
                self._dropped_shutdown += leftover + abandoned
            self._state = PipelineState.CLOSED
            self._drained_cleanly = clean
            self._cond.notify_all()

        if leftover or abandoned:
            increment_counter(SPANS_DROPPED, leftover + abandoned, {"exporter": self.backend.kind, "reason": "shutdown"})
            logger.warning(
                f"Drain timed out, dropped {leftover} buffered spans and "
                f"{abandoned} spans of an in-flight batch"
            )

        stats = self.stats()
        logger.info(
            f"Export pipeline closed: {stats.exported} exported, {stats.dropped} dropped "
            f"({stats.dropped_overflow} overflow, {stats.dropped_export} export, "
            f"{stats.dropped_shutdown} shutdown), {stats.pending} pending"
        )
        return clean

    def stats(self) -> PipelineStats:
        """Snapshot of the pipeline counters"""
        with self._cond:
            return PipelineStats(
                enqueued=self._enqueued,
                exported=self._exported,
                dropped_overflow=self._dropped_overflow,
                dropped_export=self._dropped_export,
                dropped_shutdown=self._dropped_shutdown,
                pending=len(self._buffer) + self._in_flight,
                batches_sent=self._batches_sent,
                batches_failed=self._batches_failed,
                retries=self._retries,
            )
