"""
Exporter factory

Creates the exporter backend for a configuration. Dispatch happens once, when
the shared pipeline for a configuration is built.
"""

from typing import Optional

import requests

from loadtrace.config import ExporterConfig, ExporterKind
from loadtrace.errors import ConfigurationError
from loadtrace.exporters.crocospans.exporter import CrocospansExporter
from loadtrace.exporters.exporter_interface import ExporterBackend
from loadtrace.exporters.jaeger.exporter import JaegerExporter
from loadtrace.exporters.otlp.exporter import OTLPExporter


class ExporterFactory:
    """Factory for exporter backends"""

    @staticmethod
    def create(config: ExporterConfig, session: Optional[requests.Session] = None) -> ExporterBackend:
        """Create the exporter backend for a configuration

        Args:
            config: Validated exporter configuration
            session: Optional HTTP session shared with the backend

        Returns:
            ExporterBackend: Backend instance

        Raises:
            ConfigurationError: Unknown exporter kind
        """
        if config.exporter == ExporterKind.OTLP:
            return OTLPExporter(config, session)
        elif config.exporter == ExporterKind.JAEGER:
            return JaegerExporter(config, session)
        elif config.exporter == ExporterKind.CROCOSPANS:
            return CrocospansExporter(config, session)
        else:
            raise ConfigurationError(f"unknown exporter: {config.exporter}")
