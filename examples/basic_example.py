#!/usr/bin/env python
"""
Basic Tracing Example

Sends a few traced requests with each exporter/propagator pair and prints the
trace id of every response. Point LOADTRACE_ENDPOINT at a collector to see the
spans arrive; without one the spans are dropped and counted.
"""

import logging
import sys

import loadtrace
from loadtrace.config import ExporterConfig


def setup_logging():
    """Setup logging configuration"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def run_requests(http: loadtrace.Http, url: str, count: int = 3):
    """Send `count` traced GET requests

    Args:
        http: Tracing client
        url: Target URL
        count: Number of requests
    """
    for i in range(count):
        try:
            res = http.get(url, tags={"group": "::example"})
            print(f"[{i}] {res.status} in {res.timings.duration:.2f}ms, trace id: {res.trace_id}")
        except Exception as e:
            print(f"[{i}] request failed: {str(e)}")


def main():
    """Run main example flow"""
    setup_logging()
    url = sys.argv[1] if len(sys.argv) > 1 else "https://httpbin.org/get"

    print("===== loadtrace basic example =====")
    loadtrace.setup()

    # Configuration from LOADTRACE_* environment variables
    config = ExporterConfig.from_env()
    print(f"Using configuration: {config.to_dict()}")
    run_requests(loadtrace.Http(config), url)

    # Configuration the way a script passes it
    jaeger = loadtrace.Http({"exporter": "jaeger", "propagator": "jaeger"})
    run_requests(jaeger, url)

    loadtrace.teardown(timeout=5)
    stats = loadtrace.stats()
    print(f"Exported: {stats.exported}, dropped: {stats.dropped}, pending: {stats.pending}")


if __name__ == "__main__":
    main()
