"""
Shutdown coordination

The coordinator owns every export pipeline in the process, one per distinct
exporter configuration, and is the single rendezvous point at teardown: it
cuts intake on all pipelines, drains them against one shared deadline and
then releases the backends.
"""

import atexit
import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

from loadtrace.config import ExporterConfig
from loadtrace.exporters.exporter_factory import ExporterFactory
from loadtrace.exporters.exporter_interface import ExporterBackend
from loadtrace.pipeline.export_pipeline import ExportPipeline, PipelineStats

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_TIMEOUT = 5.0


class ShutdownCoordinator:
    """Process-wide owner of export pipelines and their shutdown"""

    def __init__(self, backend_factory: Callable[[ExporterConfig], ExporterBackend] = ExporterFactory.create):
        """Initialize the coordinator

        Args:
            backend_factory: Builds the backend for a new pipeline
        """
        self._backend_factory = backend_factory
        self._lock = threading.Lock()
        self._pipelines: "OrderedDict[Tuple, ExportPipeline]" = OrderedDict()
        self._shutdown_started = False
        self._shutdown_done = threading.Event()
        self._result: Optional[bool] = None

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_started

    @property
    def pipelines(self) -> List[ExportPipeline]:
        with self._lock:
            return list(self._pipelines.values())

    def pipeline_for(self, config: ExporterConfig) -> ExportPipeline:
        """Get the shared pipeline for a configuration, creating it on first use

        After shutdown a closed pipeline is returned, so late clients keep
        working but their spans are not exported.

        Args:
            config: Exporter configuration

        Returns:
            ExportPipeline: Shared pipeline
        """
        key = config.key()
        with self._lock:
            pipeline = self._pipelines.get(key)
            if pipeline is not None:
                return pipeline

            pipeline = ExportPipeline.from_config(config, backend=self._backend_factory(config))
            if self._shutdown_started:
                logger.warning("Tracing already shut down, spans from new clients will not be exported")
                pipeline.drain(0)
                pipeline.backend.close()
                return pipeline

            self._pipelines[key] = pipeline
            pipeline.start()
            return pipeline

    def stats(self) -> PipelineStats:
        """Counters summed over every pipeline"""
        total = PipelineStats()
        for pipeline in self.pipelines:
            total = total + pipeline.stats()
        return total

    def shutdown(self, timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> bool:
        """Drain every pipeline and close every backend

        Idempotent: only the first call does any work; later calls return its
        outcome (waiting at most `timeout` if it is still in progress).

        Args:
            timeout: Seconds available for flushing buffered spans

        Returns:
            bool: True if every buffered span was handed to a backend in time
        """
        with self._lock:
            first_call = not self._shutdown_started
            self._shutdown_started = True
            pipelines = list(self._pipelines.values())

        if not first_call:
            self._shutdown_done.wait(timeout)
            return bool(self._result)

        logger.info(f"Shutting down tracing, {len(pipelines)} pipeline(s), timeout: {timeout}s")
        deadline = time.monotonic() + timeout

        for pipeline in pipelines:
            pipeline.begin_drain(deadline)

        clean = True
        for pipeline in pipelines:
            remaining = max(deadline - time.monotonic(), 0.0)
            clean = pipeline.drain(remaining) and clean

        for pipeline in pipelines:
            try:
                pipeline.backend.close()
            except Exception as e:
                logger.warning(f"Error closing {pipeline.backend!r}: {str(e)}")

        stats = self.stats()
        logger.info(
            f"Tracing shut down: {stats.exported} spans exported, {stats.dropped} dropped, "
            f"{stats.pending} still in flight"
        )

        self._result = clean
        self._shutdown_done.set()
        return clean


_default_coordinator: Optional[ShutdownCoordinator] = None
_default_lock = threading.Lock()


def get_coordinator() -> ShutdownCoordinator:
    """Get the process-wide coordinator, creating it on first use

    The coordinator is also registered with atexit as a last-resort flush for
    runtimes that exit without calling teardown.
    """
    global _default_coordinator

    with _default_lock:
        if _default_coordinator is None:
            _default_coordinator = ShutdownCoordinator()
            atexit.register(_default_coordinator.shutdown)
        return _default_coordinator


def reset_coordinator() -> ShutdownCoordinator:
    """Replace the process-wide coordinator with a fresh one (used by tests)"""
    global _default_coordinator

    with _default_lock:
        previous = _default_coordinator
        _default_coordinator = None
    if previous is not None:
        previous.shutdown(timeout=0)
    return get_coordinator()
