"""Memoizing async query cache with stale-while-revalidate and bounded retries.

Every upstream call in the engine goes through :class:`SourceQuery`. Entries
are keyed by ``(source kind, *params)``; identical in-flight requests share one
task, stale entries are served immediately while a refresh runs in the
background, and failures settle into an unavailable :class:`MetricResult`
after ``policy.max_retries`` retries instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .. import observability
from ..core import ConfigurationError, MetricResult, SourcePolicy, UpstreamDataError

logger = logging.getLogger(__name__)

QueryKey = tuple[Hashable, ...]
Fetcher = Callable[[], Awaitable[Any]]


class QueryState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    STALE = "stale"
    REVALIDATING = "revalidating"


@dataclass(frozen=True)
class CacheEntry:
    result: MetricResult[Any]
    fetched_at: float
    policy: SourcePolicy
    fetcher: Fetcher
    zero: Any = 0.0


class SourceQuery:
    """Per-key cache shared by every metric of every stablecoin.

    Parameters
    ----------
    clock:
        Monotonic time source used for staleness and eviction.
    sleep:
        Coroutine used for backoff between attempts.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._inflight: dict[QueryKey, asyncio.Task[MetricResult[Any]]] = {}
        self._failed: set[QueryKey] = set()
        self._background: set[asyncio.Task[MetricResult[Any]]] = set()

    # -----------------
    # Public API
    # -----------------

    async def fetch(
        self,
        key: Sequence[Hashable],
        policy: SourcePolicy,
        fetcher: Fetcher,
        *,
        zero: Any = 0.0,
    ) -> MetricResult[Any]:
        key = tuple(key)
        kind = str(key[0])
        entry = self._live_entry(key)
        inflight = self._inflight.get(key)

        if entry is not None:
            if self._clock() - entry.fetched_at < policy.stale_time:
                observability.record_cache_event(kind, "hit")
                return entry.result
            observability.record_cache_event(kind, "stale")
            if inflight is None and policy.refetch_on_mount:
                self._start(key, policy, fetcher, zero, background=True)
            return entry.result

        if inflight is not None:
            observability.record_cache_event(kind, "coalesced")
            logger.debug("Joining in-flight fetch for %s", key)
            return await asyncio.shield(inflight)

        observability.record_cache_event(kind, "miss")
        task = self._start(key, policy, fetcher, zero)
        return await asyncio.shield(task)

    def state(self, key: Sequence[Hashable]) -> QueryState:
        key = tuple(key)
        entry = self._live_entry(key)
        if key in self._inflight:
            return QueryState.REVALIDATING if entry is not None else QueryState.PENDING
        if entry is None:
            return QueryState.FAILED if key in self._failed else QueryState.IDLE
        if key in self._failed:
            return QueryState.FAILED
        if self._clock() - entry.fetched_at >= entry.policy.stale_time:
            return QueryState.STALE
        return QueryState.SUCCESS

    def peek(self, key: Sequence[Hashable]) -> MetricResult[Any] | None:
        """Current cached value without fetching; a pending marker while loading."""

        key = tuple(key)
        entry = self._live_entry(key)
        if entry is not None:
            return entry.result
        if key in self._inflight:
            return MetricResult.pending(source=str(key[0]))
        return None

    def invalidate(self, kind: str, *params: Hashable) -> int:
        """Drop cached entries for ``kind`` (all of them when no params given)."""

        if params:
            targets = [(kind, *params)]
        else:
            targets = [k for k in self._entries if k and k[0] == kind]
        dropped = 0
        for key in targets:
            if self._entries.pop(tuple(key), None) is not None:
                dropped += 1
            self._failed.discard(tuple(key))
        return dropped

    def clear(self) -> None:
        self._entries.clear()
        self._failed.clear()

    def evict_expired(self) -> int:
        """Drop every entry past its ``cache_time``, requested again or not."""

        expired = [key for key in list(self._entries) if self._live_entry(key) is None]
        if expired:
            logger.debug("Evicted %d expired cache entries", len(expired))
        return len(expired)

    def on_focus(self) -> int:
        return self._revalidate_where(lambda policy: policy.refetch_on_focus)

    def on_reconnect(self) -> int:
        return self._revalidate_where(lambda policy: policy.refetch_on_reconnect)

    async def drain(self) -> None:
        """Wait for background revalidations to settle."""

        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        self.evict_expired()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, tuple) and self._live_entry(key) is not None

    # -----------------
    # Internals
    # -----------------

    def _live_entry(self, key: QueryKey) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at >= entry.policy.cache_time:
            del self._entries[key]
            self._failed.discard(key)
            observability.record_cache_event(str(key[0]), "evicted")
            return None
        return entry

    def _revalidate_where(self, predicate: Callable[[SourcePolicy], bool]) -> int:
        started = 0
        now = self._clock()
        for key, entry in list(self._entries.items()):
            if key in self._inflight or not predicate(entry.policy):
                continue
            if now - entry.fetched_at < entry.policy.stale_time:
                continue
            self._start(key, entry.policy, entry.fetcher, entry.zero, background=True)
            started += 1
        return started

    def _start(
        self,
        key: QueryKey,
        policy: SourcePolicy,
        fetcher: Fetcher,
        zero: Any,
        *,
        background: bool = False,
    ) -> asyncio.Task[MetricResult[Any]]:
        task = asyncio.create_task(self._run(key, policy, fetcher, zero))
        self._inflight[key] = task

        def _done(t: asyncio.Task[MetricResult[Any]], k: QueryKey = key) -> None:
            if self._inflight.get(k) is t:
                del self._inflight[k]
            self._background.discard(t)

        task.add_done_callback(_done)
        if background:
            self._background.add(task)
        return task

    async def _run(
        self, key: QueryKey, policy: SourcePolicy, fetcher: Fetcher, zero: Any
    ) -> MetricResult[Any]:
        kind = str(key[0])
        attempts = max(0, int(policy.max_retries)) + 1
        last_error: str | None = None

        for attempt in range(attempts):
            if attempt:
                observability.record_retry(kind)
                delay = policy.backoff(attempt - 1)
                if delay > 0:
                    await self._sleep(delay)
            try:
                if policy.timeout and policy.timeout > 0:
                    raw = await asyncio.wait_for(fetcher(), timeout=policy.timeout)
                else:
                    raw = await fetcher()
            except ConfigurationError as exc:
                logger.debug("Skipping %s: %s", key, exc)
                return MetricResult.not_available(source="unconfigured", zero=zero)
            except UpstreamDataError as exc:
                last_error = str(exc) or type(exc).__name__
                break
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
                logger.debug("Attempt %d for %s failed: %s", attempt + 1, key, last_error)
                continue

            result = self._to_result(raw, kind)
            self._entries[key] = CacheEntry(result, self._clock(), policy, fetcher, zero)
            self._failed.discard(key)
            observability.record_fetch(kind, True)
            return result

        observability.record_fetch(kind, False)
        logger.warning("Source %s failed: %s", key, last_error)
        self._failed.add(key)
        previous = self._entries.get(key)
        if previous is not None:
            return previous.result
        return MetricResult.not_available(source=kind, error=last_error, zero=zero)

    @staticmethod
    def _to_result(raw: Any, kind: str) -> MetricResult[Any]:
        if isinstance(raw, MetricResult):
            if raw.source == "unknown":
                raw = raw.with_source(kind)
            return raw
        return MetricResult.of(raw, source=kind)


__all__ = ["SourceQuery", "QueryState", "CacheEntry", "QueryKey", "Fetcher"]
