#!/usr/bin/env python
"""
Virtual Users Benchmark

Runs N threads ("virtual users"), each with its own traced client, against a
target URL and reports request latency plus what the export pipeline did with
the spans. Useful to check that tracing overhead stays flat when the collector
is slow or down.
"""

import argparse
import logging
import statistics
import threading
import time
from typing import List

import loadtrace


def virtual_user(options: dict, url: str, iterations: int, latencies: List[float], lock: threading.Lock):
    """Run one virtual user

    Args:
        options: Tracing configuration
        url: Target URL
        iterations: Requests to send
        latencies: Shared list collecting request durations (ms)
        lock: Guards latencies
    """
    http = loadtrace.Http(options, tags={"scenario": "benchmark"})
    for _ in range(iterations):
        try:
            res = http.get(url)
        except Exception:
            continue
        with lock:
            latencies.append(res.timings.duration)
    http.close()


def main():
    parser = argparse.ArgumentParser(description="loadtrace virtual users benchmark")
    parser.add_argument("url", help="Target URL")
    parser.add_argument("--users", type=int, default=10)
    parser.add_argument("--iterations", type=int, default=50)
    parser.add_argument("--exporter", default="otlp")
    parser.add_argument("--propagator", default="w3c")
    parser.add_argument("--endpoint", default=None)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    options = {"exporter": args.exporter, "propagator": args.propagator}
    if args.endpoint:
        options["endpoint"] = args.endpoint

    latencies: List[float] = []
    lock = threading.Lock()
    threads = [
        threading.Thread(target=virtual_user, args=(options, args.url, args.iterations, latencies, lock))
        for _ in range(args.users)
    ]

    start_time = time.time()
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    elapsed = time.time() - start_time

    flushed = loadtrace.shutdown(timeout=5)
    stats = loadtrace.stats()

    print(f"\n=== {args.users} users x {args.iterations} iterations in {elapsed:.2f}s ===")
    if latencies:
        print(f"Requests: {len(latencies)}")
        print(f"Latency avg: {statistics.mean(latencies):.2f}ms, "
              f"p50: {statistics.median(latencies):.2f}ms, max: {max(latencies):.2f}ms")
    print(f"Spans enqueued: {stats.enqueued}, exported: {stats.exported}, dropped: {stats.dropped} "
          f"(overflow {stats.dropped_overflow}, export {stats.dropped_export}, shutdown {stats.dropped_shutdown})")
    print(f"Flushed cleanly: {flushed}")


if __name__ == "__main__":
    main()
