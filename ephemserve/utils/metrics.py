# ephemserve/utils/metrics.py
from __future__ import annotations

from typing import Final

from prometheus_client import CollectorRegistry, Counter, Histogram, REGISTRY, generate_latest

# Metric names are part of the operational contract (dashboards); keep them stable.
CACHE_REQUESTS: Final = Counter(
    "ephemserve_body_cache_requests_total", "Body cache lookups", ["result"]
)
CACHE_CLEARS: Final = Counter(
    "ephemserve_body_cache_clears_total", "Body cache invalidations", ["scope"]
)
LOADER_FAILURES: Final = Counter(
    "ephemserve_loader_candidate_failures_total", "Loader candidates that failed", ["kind"]
)
ARCHIVE_LOADS: Final = Counter(
    "ephemserve_archive_loads_total", "Ephemeris archive decode attempts", ["outcome"]
)
ARCHIVE_LOAD_SECONDS: Final = Histogram(
    "ephemserve_archive_load_seconds", "Ephemeris archive decode latency"
)


def export_prometheus(registry: CollectorRegistry = REGISTRY) -> str:
    """Text exposition of the registry (Prometheus format)."""
    return generate_latest(registry).decode("utf-8")


__all__ = [
    "CACHE_REQUESTS",
    "CACHE_CLEARS",
    "LOADER_FAILURES",
    "ARCHIVE_LOADS",
    "ARCHIVE_LOAD_SECONDS",
    "export_prometheus",
]
