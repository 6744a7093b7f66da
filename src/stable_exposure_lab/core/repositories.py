"""In-memory repository for collected stablecoin snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

import pandas as pd

from .models import StablecoinSnapshot


class SnapshotRepository:
    """Lightweight collection of :class:`StablecoinSnapshot` with pandas export."""

    def __init__(self, snapshots: Iterable[StablecoinSnapshot] | None = None) -> None:
        self._snapshots: list[StablecoinSnapshot] = list(snapshots) if snapshots else []

    def add(self, snapshot: StablecoinSnapshot) -> None:
        self._snapshots.append(snapshot)

    def extend(self, items: Iterable[StablecoinSnapshot]) -> None:
        self._snapshots.extend(items)

    def get(self, symbol: str) -> StablecoinSnapshot | None:
        for snapshot in self._snapshots:
            if snapshot.symbol == symbol:
                return snapshot
        return None

    def filter(
        self,
        *,
        symbols: list[str] | None = None,
        categories: list[str] | None = None,
        errors_only: bool = False,
    ) -> "SnapshotRepository":
        res: list[StablecoinSnapshot] = []
        for snapshot in self._snapshots:
            if symbols and snapshot.symbol not in symbols:
                continue
            if categories and snapshot.category not in categories:
                continue
            if errors_only and not snapshot.has_error:
                continue
            res.append(snapshot)
        return SnapshotRepository(res)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per stablecoin, one column per metric value.

        Unavailable metrics become ``NaN`` so they stay distinguishable from a
        measured zero.
        """

        rows: list[dict[str, Any]] = []
        for snapshot in self._snapshots:
            row: dict[str, Any] = {
                "symbol": snapshot.symbol,
                "name": snapshot.name,
                "category": snapshot.category,
            }
            for key, metric in snapshot.metrics.items():
                row[key] = float("nan") if metric.unavailable else metric.numeric()
            row["is_loading"] = snapshot.is_loading
            row["has_error"] = snapshot.has_error
            rows.append(row)
        return pd.DataFrame(rows)

    def aggregate_stats(self) -> dict[str, Any]:
        def _total(key: str) -> float:
            return sum(s.get(key).numeric() for s in self._snapshots)

        return {
            "total_supply_across_all": _total("total_supply"),
            "total_liquidity_across_all": _total("total_mainnet_liquidity"),
            "total_lending_across_all": _total("total_lending_markets"),
            "total_insurance_fund_across_all": _total("insurance_fund"),
            "any_loading": any(s.is_loading for s in self._snapshots),
            "all_loaded": all(not s.is_loading for s in self._snapshots),
            "stablecoins_with_errors": sum(1 for s in self._snapshots if s.has_error),
            "total_stablecoins": len(self._snapshots),
        }

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[StablecoinSnapshot]:
        return iter(self._snapshots)


__all__ = ["SnapshotRepository"]
