"""
Telemetry: Prometheus metrics and Sentry error tracking.
"""

from fulbito.telemetry.metrics import (
    fulbito_provider_requests_total,
    fulbito_provider_errors_total,
    fulbito_provider_latency_ms,
    fulbito_record_store_requests_total,
    fulbito_score_map_cache_total,
    record_provider_request,
    record_provider_error,
    record_record_store_request,
    record_score_map_cache,
    get_metrics_text,
)

__all__ = [
    "fulbito_provider_requests_total",
    "fulbito_provider_errors_total",
    "fulbito_provider_latency_ms",
    "fulbito_record_store_requests_total",
    "fulbito_score_map_cache_total",
    "record_provider_request",
    "record_provider_error",
    "record_record_store_request",
    "record_score_map_cache",
    "get_metrics_text",
]
