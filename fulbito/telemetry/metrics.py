"""
Prometheus metrics for provider, record store and cache observability.

Labels are restricted to LOW-CARDINALITY values only:
- provider:     "api_football"
- endpoint:     "fixtures", "fixtures/rounds", "leagues", "standings"
- status_code:  "200", "404", "500", "0" (0 = no response)
- error_code:   "timeout", "request_error", "http_4xx", "http_5xx", "invalid_json", "api_error"
- collection:   "groups", "group_members", "predictions"
- method:       "list", "get", "create", "update"
- result:       "hit", "miss"

Fixture ids, user ids, group ids and round names are FORBIDDEN as labels.
Use logs for those.

All helpers are best-effort and never raise into the request path.
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

fulbito_provider_requests_total = Counter(
    "fulbito_provider_requests_total",
    "Total requests to the fixtures provider",
    ["provider", "endpoint", "status_code"],
)

fulbito_provider_errors_total = Counter(
    "fulbito_provider_errors_total",
    "Total errors from the fixtures provider",
    ["provider", "error_code"],
)

fulbito_provider_latency_ms = Histogram(
    "fulbito_provider_latency_ms",
    "Provider request latency in milliseconds",
    ["provider", "endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

# =============================================================================
# RECORD STORE METRICS
# =============================================================================

fulbito_record_store_requests_total = Counter(
    "fulbito_record_store_requests_total",
    "Total requests to the record store",
    ["collection", "method", "status_code"],
)

# =============================================================================
# CACHE METRICS
# =============================================================================

fulbito_score_map_cache_total = Counter(
    "fulbito_score_map_cache_total",
    "Score map cache lookups",
    ["result"],
)


def record_provider_request(
    provider: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
) -> None:
    """Record a provider request count and latency."""
    try:
        fulbito_provider_requests_total.labels(
            provider=provider,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        fulbito_provider_latency_ms.labels(
            provider=provider,
            endpoint=endpoint,
        ).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_provider_error(provider: str, error_code: str) -> None:
    """Record a provider error."""
    try:
        fulbito_provider_errors_total.labels(provider=provider, error_code=error_code).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider error metric: {e}")


def record_record_store_request(collection: str, method: str, status_code: int) -> None:
    try:
        fulbito_record_store_requests_total.labels(
            collection=collection,
            method=method,
            status_code=str(status_code),
        ).inc()
    except Exception as e:
        logger.warning(f"Failed to record record store metric: {e}")


def record_score_map_cache(hit: bool) -> None:
    try:
        fulbito_score_map_cache_total.labels(result="hit" if hit else "miss").inc()
    except Exception as e:
        logger.warning(f"Failed to record cache metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
