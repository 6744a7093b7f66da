"""Immutable data models used throughout StableExposureLab."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from .addresses import is_sentinel, usable_addresses

T = TypeVar("T")


def _now() -> float:
    return datetime.now(tz=UTC).timestamp()


@dataclass(frozen=True)
class MetricResult(Generic[T]):
    """Outcome of resolving one logical metric.

    ``unavailable=True`` with ``value=0`` means "no usable data", which is not
    the same as a measured zero.
    """

    value: T
    unavailable: bool = False
    loading: bool = False
    error: str | None = None
    source: str = "unknown"
    last_updated: float | None = None  # unix epoch
    breakdown: Mapping[str, float] = field(default_factory=dict)
    missing: tuple[str, ...] = ()  # sub-sources that were unavailable

    @classmethod
    def of(
        cls,
        value: T,
        source: str,
        *,
        breakdown: Mapping[str, float] | None = None,
        missing: Iterable[str] = (),
        last_updated: float | None = None,
    ) -> "MetricResult[T]":
        return cls(
            value=value,
            source=source,
            breakdown=dict(breakdown or {}),
            missing=tuple(missing),
            last_updated=_now() if last_updated is None else last_updated,
        )

    @classmethod
    def not_available(
        cls, source: str, error: str | None = None, zero: Any = 0.0
    ) -> "MetricResult[Any]":
        return cls(value=zero, unavailable=True, error=error, source=source)

    @classmethod
    def pending(cls, source: str, zero: Any = 0.0) -> "MetricResult[Any]":
        return cls(value=zero, loading=True, source=source)

    @property
    def is_usable(self) -> bool:
        """``True`` once the value is settled and backed by data."""

        return not self.unavailable and not self.loading

    def numeric(self) -> float:
        """Value as ``float``; unavailable or non-numeric values count as 0."""

        if self.unavailable:
            return 0.0
        try:
            return float(self.value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0

    def with_source(self, source: str) -> "MetricResult[T]":
        return replace(self, source=source)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["breakdown"] = dict(self.breakdown)
        data["missing"] = list(self.missing)
        return data


def sum_results(
    results: Iterable[tuple[str, MetricResult[Any]]], source: str
) -> MetricResult[float]:
    """Add up labelled results, tolerating partial failure.

    Unavailable inputs count as 0 and are listed in ``missing``; the sum is
    unavailable only when every input is unavailable. ``loading`` is the OR
    of the inputs and ``last_updated`` the oldest input timestamp.
    """

    items = list(results)
    if not items:
        return MetricResult.not_available(source=source)

    total = 0.0
    breakdown: dict[str, float] = {}
    missing: list[str] = []
    stamps: list[float] = []
    loading = False
    for label, result in items:
        if result.loading:
            loading = True
            breakdown[label] = 0.0
            continue
        if result.unavailable:
            missing.append(label)
            breakdown[label] = 0.0
            continue
        value = result.numeric()
        total += value
        breakdown[label] = value
        if result.last_updated is not None:
            stamps.append(result.last_updated)

    if not loading and len(missing) == len(items):
        errors = [r.error for _, r in items if r.error]
        return MetricResult(
            value=0.0,
            unavailable=True,
            error="; ".join(dict.fromkeys(errors)) or None,
            source=source,
            breakdown=breakdown,
            missing=tuple(missing),
        )
    return MetricResult(
        value=total,
        loading=loading,
        source=source,
        last_updated=min(stamps) if stamps else None,
        breakdown=breakdown,
        missing=tuple(missing),
    )


@dataclass(frozen=True)
class LPSpec:
    """Liquidity-pool position monitored as part of an insurance fund."""

    lp_token_address: str
    pool_address: str
    underlying_tokens: tuple[str, ...] = ()
    protocol: str = ""

    @property
    def is_valid(self) -> bool:
        return bool(self.lp_token_address) and bool(self.pool_address)

    @property
    def is_priceable(self) -> bool:
        """Everything the LP valuation service needs is present."""

        return (
            self.is_valid
            and len(self.underlying_tokens) == 2
            and all(self.underlying_tokens)
            and bool(self.protocol)
        )

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LPSpec":
        return cls(
            lp_token_address=str(raw.get("lp_token_address") or raw.get("lpTokenAddress") or ""),
            pool_address=str(raw.get("pool_address") or raw.get("poolAddress") or ""),
            underlying_tokens=tuple(
                str(t) for t in (raw.get("underlying_tokens") or raw.get("underlyingTokens") or ())
            ),
            protocol=str(raw.get("protocol", "")),
        )


@dataclass(frozen=True)
class InsuranceFundConfig:
    """Insurance fund description; the active variant follows from its fields.

    ``kind`` may pin the variant (``"fdv"``, ``"balance"`` or ``"api"``); when
    it is ``None`` the variant is inferred from which fields are populated.
    """

    kind: str | None = None
    rlp_coingecko_id: str = ""
    rlp_token_address: str = ""
    monitored_addresses: tuple[str, ...] = ()
    tokens_to_monitor: tuple[str, ...] = ()
    lp_tokens_to_monitor: tuple[LPSpec, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> "InsuranceFundConfig":
        if not raw:
            return cls()
        kind = raw.get("kind", raw.get("type"))
        return cls(
            kind=str(kind).lower() if kind else None,
            rlp_coingecko_id=str(raw.get("rlp_coingecko_id") or raw.get("rlpCoingeckoId") or ""),
            rlp_token_address=str(
                raw.get("rlp_token_address") or raw.get("rlpTokenAddress") or ""
            ),
            monitored_addresses=tuple(
                raw.get("monitored_addresses") or raw.get("monitoredAddresses") or ()
            ),
            tokens_to_monitor=tuple(
                raw.get("tokens_to_monitor") or raw.get("tokensToMonitor") or ()
            ),
            lp_tokens_to_monitor=tuple(
                LPSpec.from_dict(lp)
                for lp in (raw.get("lp_tokens_to_monitor") or raw.get("lpTokensToMonitor") or ())
            ),
        )


@dataclass(frozen=True)
class SourcePolicy:
    """Caching and retry behaviour attached to one source kind.

    Times are in seconds. Backoff between attempts is
    ``min(backoff_cap, backoff_base * 2**attempt)``.
    """

    stale_time: float = 300.0
    cache_time: float = 1800.0
    max_retries: int = 1
    refetch_on_focus: bool = False
    refetch_on_reconnect: bool = True
    refetch_on_mount: bool = True
    timeout: float = 10.0
    backoff_base: float = 0.5
    backoff_cap: float = 8.0

    def backoff(self, attempt: int) -> float:
        if self.backoff_base <= 0:
            return 0.0
        return min(self.backoff_cap, self.backoff_base * (2**attempt))


@dataclass(frozen=True)
class StablecoinConfig:
    """Static description of one tracked stablecoin."""

    symbol: str
    name: str = ""
    category: str = ""
    coingecko_ids: tuple[str, ...] = ()
    # ordered (role, address) pairs; the first pair is the primary contract
    contract_addresses: tuple[tuple[str, str], ...] = ()
    staked_coingecko_id: str = ""
    staked_token_address: str = ""
    staking_contract: str = ""
    insurance_fund: InsuranceFundConfig = field(default_factory=InsuranceFundConfig)
    manual_metrics: tuple[str, ...] = ()

    @property
    def addresses(self) -> dict[str, str]:
        return dict(self.contract_addresses)

    @property
    def primary_address(self) -> str:
        if not self.contract_addresses:
            return ""
        address = self.contract_addresses[0][1]
        return "" if is_sentinel(address) else address

    @property
    def additional_addresses(self) -> list[str]:
        return usable_addresses(addr for _, addr in self.contract_addresses[1:])

    @property
    def contract_address_list(self) -> list[str]:
        """Primary followed by additional addresses, sentinels removed."""

        return usable_addresses(addr for _, addr in self.contract_addresses)

    @property
    def lending_addresses(self) -> list[str]:
        """Regular plus staked token addresses."""

        return usable_addresses([*self.contract_address_list, self.staked_token_address])

    @property
    def family_addresses(self) -> list[str]:
        return self.lending_addresses


@dataclass(frozen=True)
class StablecoinSnapshot:
    """One stablecoin's metrics with roll-up loading and error flags."""

    symbol: str
    metrics: Mapping[str, MetricResult[Any]]
    name: str = ""
    category: str = ""
    collected_at: float = 0.0

    @property
    def is_loading(self) -> bool:
        return any(m.loading for m in self.metrics.values())

    @property
    def has_error(self) -> bool:
        return any(m.error for m in self.metrics.values())

    @property
    def errors(self) -> dict[str, str]:
        return {key: m.error for key, m in self.metrics.items() if m.error}

    def __getitem__(self, key: str) -> MetricResult[Any]:
        return self.metrics[key]

    def get(self, key: str) -> MetricResult[Any]:
        """Return the metric or an unavailable placeholder for unknown keys."""

        return self.metrics.get(key) or MetricResult.not_available(source="unknown")

    def values(self) -> dict[str, float]:
        return {key: m.numeric() for key, m in self.metrics.items()}

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "category": self.category,
            "collected_at": self.collected_at,
            "is_loading": self.is_loading,
            "has_error": self.has_error,
            "metrics": {key: m.to_dict() for key, m in self.metrics.items()},
        }


__all__ = [
    "sum_results",
    "MetricResult",
    "LPSpec",
    "InsuranceFundConfig",
    "SourcePolicy",
    "StablecoinConfig",
    "StablecoinSnapshot",
]
