"""
Span export pipeline

- export_pipeline: bounded buffer + batching worker per backend
- shutdown: process-wide coordinator that drains pipelines at teardown
- backoff: retry backoff timer
"""

from .backoff import BackoffTimer
from .export_pipeline import ExportPipeline, PipelineState, PipelineStats
from .shutdown import ShutdownCoordinator, get_coordinator, reset_coordinator

__all__ = [
    "BackoffTimer",
    "ExportPipeline",
    "PipelineState",
    "PipelineStats",
    "ShutdownCoordinator",
    "get_coordinator",
    "reset_coordinator",
]
