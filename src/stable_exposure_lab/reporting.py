from __future__ import annotations

from datetime import UTC, datetime
import json
import math
from pathlib import Path
from typing import Any

import pandas as pd

from .core import METRIC_LABELS, METRIC_SECTIONS, MetricResult, SnapshotRepository

PERCENT_METRICS = frozenset({"supply_on_mainnet_percent"})
RATIO_METRICS = frozenset({"collateralization_ratio", "factor_of_safety"})

NOT_AVAILABLE = "N/A"
LOADING = "…"


def _ensure_outdir(outdir: str | Path) -> Path:
    p = Path(outdir)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        return True


def format_amount(value: Any) -> str:
    """Dollar amount abbreviated to B/M/K with two decimals."""

    if _is_missing(value):
        return NOT_AVAILABLE
    num = float(value)
    sign = "-" if num < 0 else ""
    num = abs(num)
    if num >= 1e9:
        return f"{sign}${num / 1e9:.2f}B"
    if num >= 1e6:
        return f"{sign}${num / 1e6:.2f}M"
    if num >= 1e3:
        return f"{sign}${num / 1e3:.2f}K"
    return f"{sign}${num:,.2f}"


def format_percentage(ratio: Any) -> str:
    if _is_missing(ratio):
        return NOT_AVAILABLE
    return f"{float(ratio) * 100:.1f}%"


def format_ratio(ratio: Any) -> str:
    if _is_missing(ratio):
        return NOT_AVAILABLE
    return f"{float(ratio):.2f}"


def format_value(key: str, value: Any) -> str:
    if key in PERCENT_METRICS:
        return format_percentage(value)
    if key in RATIO_METRICS:
        return format_ratio(value)
    return format_amount(value)


def render_metric(key: str, result: MetricResult[Any]) -> str:
    """Display string: a loading marker, ``N/A`` when unavailable, else the value."""

    if result.loading:
        return LOADING
    if result.unavailable:
        return NOT_AVAILABLE
    return format_value(key, result.value)


def snapshot_table(repo: SnapshotRepository) -> pd.DataFrame:
    """Rendered metrics, one row per metric grouped by section, one column per stablecoin."""

    index = pd.MultiIndex.from_tuples(
        [(section, METRIC_LABELS[key]) for section, keys in METRIC_SECTIONS.items() for key in keys],
        names=["section", "metric"],
    )
    columns: dict[str, list[str]] = {}
    for snapshot in repo:
        columns[snapshot.symbol] = [
            render_metric(key, snapshot.get(key))
            for keys in METRIC_SECTIONS.values()
            for key in keys
        ]
    return pd.DataFrame(columns, index=index)


def export_csv(repo: SnapshotRepository, outdir: str | Path) -> Path:
    """Write the formatted summary, one row per stablecoin."""

    out = _ensure_outdir(outdir)
    stamp = datetime.now(tz=UTC).isoformat()
    rows: list[dict[str, Any]] = []
    for snapshot in repo:
        row: dict[str, Any] = {
            "Stablecoin": snapshot.name or snapshot.symbol,
            "Category": snapshot.category.replace("_", " "),
        }
        for keys in METRIC_SECTIONS.values():
            for key in keys:
                row[METRIC_LABELS[key]] = render_metric(key, snapshot.get(key))
        row["Last Updated"] = stamp
        rows.append(row)
    path = out / "exposure_metrics.csv"
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


def export_detailed_csv(repo: SnapshotRepository, outdir: str | Path) -> Path:
    """Write one row per (stablecoin, metric) with raw values, sources and breakdowns."""

    out = _ensure_outdir(outdir)
    rows: list[dict[str, Any]] = []
    for snapshot in repo:
        for key, result in snapshot.metrics.items():
            rows.append(
                {
                    "symbol": snapshot.symbol,
                    "name": snapshot.name,
                    "category": snapshot.category,
                    "metric": key,
                    "label": METRIC_LABELS.get(key, key),
                    "value": float("nan") if result.unavailable else result.numeric(),
                    "formatted": render_metric(key, result),
                    "unavailable": result.unavailable,
                    "loading": result.loading,
                    "error": result.error or "",
                    "source": result.source,
                    "last_updated": result.last_updated,
                    "breakdown": json.dumps(dict(result.breakdown), sort_keys=True),
                    "missing": ";".join(result.missing),
                }
            )
    path = out / "exposure_metrics_detailed.csv"
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


__all__ = [
    "format_amount",
    "format_percentage",
    "format_ratio",
    "format_value",
    "render_metric",
    "snapshot_table",
    "export_csv",
    "export_detailed_csv",
]
