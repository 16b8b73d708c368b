"""
Host runtime lifecycle hooks

A load-test runtime calls setup() once before virtual users start and
teardown() once after they finish; teardown drains every export pipeline.
"""

import logging

from loadtrace._version import __version__
from loadtrace.pipeline.export_pipeline import PipelineStats
from loadtrace.pipeline.shutdown import DEFAULT_SHUTDOWN_TIMEOUT, get_coordinator

logger = logging.getLogger(__name__)

version = __version__


def setup() -> str:
    """Announce the tracing layer and return its version"""
    logger.info(f"loadtrace {version} enabled")
    return version


def shutdown(timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> bool:
    """Flush buffered spans and release exporter resources

    Safe to call more than once; only the first call does any work.

    Args:
        timeout: Seconds available for flushing

    Returns:
        bool: True if every buffered span was handed to a backend in time
    """
    return get_coordinator().shutdown(timeout)


def teardown(timeout: float = DEFAULT_SHUTDOWN_TIMEOUT) -> bool:
    return shutdown(timeout)


def stats() -> PipelineStats:
    """Export counters summed over all pipelines"""
    return get_coordinator().stats()
