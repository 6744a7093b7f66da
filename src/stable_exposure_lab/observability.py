"""Prometheus metrics for upstream fetches, cache behaviour and metric values."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

# === SOURCE FETCHES ===
source_fetch_total = Counter(
    "stable_exposure_source_fetch_total",
    "Upstream fetches by outcome",
    ["kind", "outcome"],
)

source_retries_total = Counter(
    "stable_exposure_source_retries_total",
    "Retried upstream fetch attempts",
    ["kind"],
)

# === CACHE ===
cache_events_total = Counter(
    "stable_exposure_cache_events_total",
    "Query cache events (hit, stale, coalesced, miss, evicted)",
    ["kind", "event"],
)

# === METRIC VALUES ===
metric_value = Gauge(
    "stable_exposure_metric_value",
    "Latest resolved value per stablecoin metric",
    ["symbol", "metric"],
)

metric_unavailable = Gauge(
    "stable_exposure_metric_unavailable",
    "1 when the metric could not be resolved from any source",
    ["symbol", "metric"],
)


def record_fetch(kind: str, ok: bool) -> None:
    source_fetch_total.labels(kind=kind, outcome="success" if ok else "failure").inc()


def record_retry(kind: str) -> None:
    source_retries_total.labels(kind=kind).inc()


def record_cache_event(kind: str, event: str) -> None:
    cache_events_total.labels(kind=kind, event=event).inc()


def record_snapshot(snapshot) -> None:
    """Publish every metric of a :class:`StablecoinSnapshot` as gauges."""

    for key, result in snapshot.metrics.items():
        if result.loading:
            continue
        metric_value.labels(symbol=snapshot.symbol, metric=key).set(result.numeric())
        metric_unavailable.labels(symbol=snapshot.symbol, metric=key).set(
            1 if result.unavailable else 0
        )


__all__ = [
    "source_fetch_total",
    "source_retries_total",
    "cache_events_total",
    "metric_value",
    "metric_unavailable",
    "record_fetch",
    "record_retry",
    "record_cache_event",
    "record_snapshot",
]
