"""Shared in-process telemetry counters.

Singleton-by-import: main.py and routers import from this module to share the
same counters. Exposed at /telemetry.
"""

# =============================================================================
# TELEMETRY COUNTERS (aggregated, no high-cardinality labels)
# =============================================================================
# Simple increments under the GIL; no locks needed for counters.

_telemetry = {
    # Score map cache
    "score_map_cache_hit": 0,
    "score_map_cache_miss": 0,
    # Fixture source
    "fixtures_source_live": 0,
    "fixtures_source_static": 0,
    "fixtures_source_empty": 0,
    "fixtures_round_fallback": 0,
    # Default fecha selection
    "fecha_reason_live": 0,
    "fecha_reason_upcoming": 0,
    "fecha_reason_completed": 0,
    "fecha_reason_first": 0,
    "fecha_reason_empty": 0,
    # Provider payloads
    "fixture_parse_errors": 0,
    # Writes
    "prediction_upserts": 0,
}


def _incr(key: str, amount: int = 1) -> None:
    """Increment a telemetry counter."""
    _telemetry[key] = _telemetry.get(key, 0) + amount


def get_telemetry_snapshot() -> dict:
    return dict(_telemetry)
