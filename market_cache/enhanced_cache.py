"""
Enhanced cache manager: get-or-fetch over the tiered cache, market-aware TTLs,
retry with exponential backoff and per-key background polling.

The manager is constructed once per process and injected into every consumer.
``init()`` starts the tier sweeper, ``shutdown_all()`` stops every polling
job and the sweeper.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from config.settings import settings
from market_cache.market_hours import MarketCalendar, default_calendar
from market_cache.tiered_cache import MISS, TieredCache
from schemas.cache_schemas import CacheConfig, PolledCacheConfig, PollingConfig, RefreshOutcome

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]
SleepFn = Callable[[float], Awaitable[None]]


def _log_event(level: int, event: str, key: str, message: str = "", **fields: Any) -> None:
    """Emit one structured cache/poll event carrying at least key and event kind."""
    details = " ".join(f"{name}={value}" for name, value in fields.items())
    logger.log(
        level,
        "%s event=%s key=%s %s",
        message or event,
        event,
        key,
        details,
        extra={"event": event, "cache_key": key, **{f"event_{k}": v for k, v in fields.items()}},
    )


class PollingJob:
    """Registered background refresh for one cache key."""

    def __init__(self, config: CacheConfig, polling: PollingConfig, fetch_fn: FetchFn):
        self.key = config.key
        self.config = config
        self.polling = polling
        self.fetch_fn = fetch_fn
        self.task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


class PollingRegistry:
    """
    Resource key -> polling job. Registering a key always cancels the prior
    job for that key first, so at most one timer exists per key.
    """

    def __init__(self):
        self._jobs: Dict[str, PollingJob] = {}

    def register(self, job: PollingJob) -> Optional[PollingJob]:
        previous = self._jobs.pop(job.key, None)
        if previous is not None:
            previous.cancel()
        self._jobs[job.key] = job
        return previous

    def unregister(self, key: str) -> Optional[PollingJob]:
        job = self._jobs.pop(key, None)
        if job is not None:
            job.cancel()
        return job

    def clear(self) -> List[str]:
        keys = list(self._jobs)
        for job in self._jobs.values():
            job.cancel()
        self._jobs.clear()
        return keys

    def get(self, key: str) -> Optional[PollingJob]:
        return self._jobs.get(key)

    def keys(self) -> List[str]:
        return list(self._jobs)

    def configs(self) -> Dict[str, PollingConfig]:
        return {key: job.polling for key, job in self._jobs.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)


class EnhancedCacheManager:
    """
    Orchestrates reads and writes through the cache tiers.

    The manager owns polling jobs and a last-refresh timestamp per key; the
    tiers own the entries.
    """

    def __init__(
        self,
        tiers: Optional[TieredCache] = None,
        calendar: Optional[MarketCalendar] = None,
        retry_initial_delay_ms: Optional[float] = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.tiers = tiers or TieredCache()
        self.calendar = calendar or default_calendar()
        self.retry_initial_delay_ms = (
            settings.retry_initial_delay_ms if retry_initial_delay_ms is None else retry_initial_delay_ms
        )
        self._sleep = sleep
        self._clock = clock
        self._registry = PollingRegistry()
        self._timestamps: Dict[str, float] = {}
        self._last_outcomes: Dict[str, RefreshOutcome] = {}
        self._inflight: Set[asyncio.Future] = set()

    # ── Lifecycle ────────────────────────────────────────────────

    def init(self) -> None:
        """Start background housekeeping; call from inside the running loop."""
        self.tiers.start_sweeper()
        logger.info("Enhanced cache manager started")

    async def shutdown_all(self) -> None:
        self.stop_all_polling()
        await self.tiers.stop_sweeper()
        logger.info("Enhanced cache manager stopped")

    dispose = shutdown_all

    # ── Read path ────────────────────────────────────────────────

    async def get_with_cache(
        self,
        config: CacheConfig,
        fetch_fn: FetchFn,
        polling: Optional[PollingConfig] = None,
    ) -> Any:
        """
        Return the cached value for ``config.key`` or fetch, store and return
        a fresh one. Errors raised by ``fetch_fn`` propagate unchanged.
        """
        store = self.tiers.tier(config.tier)

        if not config.force_refresh:
            cached = store.get(config.key)
            if cached is not MISS:
                _log_event(logging.DEBUG, "cache_hit", config.key, "Cache hit", tier=config.tier)
                return cached

        _log_event(logging.DEBUG, "cache_miss", config.key, "Cache miss, fetching fresh data", tier=config.tier)
        data = await fetch_fn()

        # Register first so the store records the refresh time for the poller.
        if polling is not None:
            self._setup_polling(config, fetch_fn, polling)
        self._store(config, data)

        return data

    async def get_resource(self, config: CacheConfig, fetch_fn: FetchFn) -> Any:
        """``get_with_cache`` that arms polling when the config carries a policy."""
        polling = config.polling if isinstance(config, PolledCacheConfig) else None
        return await self.get_with_cache(config, fetch_fn, polling)

    def _store(self, config: CacheConfig, data: Any) -> None:
        ttl_ms = self.calendar.get_recommended_ttl(config.ttl_ms)
        self.tiers.tier(config.tier).set(config.key, data, ttl_ms / 1000)
        # Only the poll freshness check reads refresh times.
        if config.key in self._registry:
            self._timestamps[config.key] = self._clock()
        _log_event(logging.DEBUG, "cache_set", config.key, "Data cached", tier=config.tier, ttl_ms=ttl_ms)

    # ── Retry ────────────────────────────────────────────────────

    async def fetch_with_retry(
        self,
        fetch_fn: FetchFn,
        max_attempts: int,
        backoff_multiplier: float,
        key: str = "",
    ) -> Any:
        """
        Call ``fetch_fn`` up to ``max_attempts`` times, sleeping between
        attempts with exponential backoff. Re-raises the last error.
        ``key`` only labels the retry log events.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        delay_ms = float(self.retry_initial_delay_ms)
        attempt = 0
        while True:
            try:
                return await fetch_fn()
            except Exception as exc:
                attempt += 1
                if attempt >= max_attempts:
                    raise
                _log_event(
                    logging.WARNING,
                    "fetch_retry",
                    key,
                    "Fetch attempt failed, retrying",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay_ms=round(delay_ms),
                    error=exc,
                )
                await self._sleep(delay_ms / 1000)
                delay_ms *= backoff_multiplier

    # ── Polling ──────────────────────────────────────────────────

    def _setup_polling(self, config: CacheConfig, fetch_fn: FetchFn, polling: PollingConfig) -> None:
        job = PollingJob(config, polling, fetch_fn)
        self._registry.register(job)
        job.task = asyncio.create_task(self._poll_loop(job), name=f"poll:{config.key}")
        _log_event(logging.INFO, "polling_started", config.key, "Polling setup", interval_ms=polling.interval_ms)

    async def _poll_loop(self, job: PollingJob) -> None:
        interval = job.polling.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            # Cancelling the timer must not abort a refresh that already started.
            cycle = asyncio.ensure_future(self._run_cycle(job))
            self._inflight.add(cycle)
            cycle.add_done_callback(self._inflight.discard)
            await asyncio.shield(cycle)

    async def refresh(self, key: str) -> RefreshOutcome:
        """Run one polling cycle for ``key`` immediately."""
        job = self._registry.get(key)
        if job is None:
            return RefreshOutcome.NOT_POLLED
        return await self._run_cycle(job)

    async def _run_cycle(self, job: PollingJob) -> RefreshOutcome:
        key = job.key
        if not self.calendar.is_market_open():
            outcome = RefreshOutcome.SKIPPED_MARKET_CLOSED
            _log_event(logging.DEBUG, "poll_skipped_market_closed", key, "Market closed, skipping polling refresh")
        elif self._is_fresh(job):
            outcome = RefreshOutcome.SKIPPED_FRESH
            _log_event(logging.DEBUG, "poll_skipped_fresh", key, "Cached data still fresh")
        else:
            try:
                data = await self.fetch_with_retry(
                    job.fetch_fn, job.polling.retry_attempts, job.polling.backoff_multiplier, key
                )
            except Exception as exc:
                # Stale-but-present beats absent: the entry is left in place.
                outcome = RefreshOutcome.FAILED_KEPT_STALE
                _log_event(logging.WARNING, "poll_failed", key, "Polling refresh failed", error=exc)
            else:
                self._store(job.config, data)
                outcome = RefreshOutcome.REFRESHED
                _log_event(logging.DEBUG, "poll_refreshed", key, "Polling refresh")

        # A cycle that finishes after its job was stopped leaves no trace.
        if self._registry.get(key) is job:
            self._last_outcomes[key] = outcome
        return outcome

    def _is_fresh(self, job: PollingJob) -> bool:
        store = self.tiers.tier(job.config.tier)
        entry = store.peek(job.key)
        if entry is None or store.is_expired(entry):
            return False
        age_ms = (self._clock() - self._timestamps.get(job.key, 0.0)) * 1000
        return age_ms < job.polling.max_age_ms

    def is_polling(self, key: str) -> bool:
        return key in self._registry

    def last_outcome(self, key: str) -> Optional[RefreshOutcome]:
        return self._last_outcomes.get(key)

    def stop_polling(self, key: str) -> None:
        """Cancel the polling timer for ``key``; a no-op for unknown keys."""
        self._forget(key)
        if self._registry.unregister(key) is not None:
            _log_event(logging.INFO, "polling_stopped", key, "Polling stopped")

    def stop_all_polling(self) -> None:
        for key in self._registry.clear():
            _log_event(logging.INFO, "polling_stopped", key, "Polling stopped")
        self._timestamps.clear()
        self._last_outcomes.clear()

    def _forget(self, key: str) -> None:
        self._timestamps.pop(key, None)
        self._last_outcomes.pop(key, None)

    def invalidate(self, key: str) -> None:
        """Delete ``key`` from every tier and stop its polling."""
        self.tiers.delete_everywhere(key)
        self.stop_polling(key)
        _log_event(logging.INFO, "cache_invalidated", key, "Cache invalidated")

    # ── Observability ────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        return {
            "tiers": self.tiers.metrics(),
            "polling": {
                "active_keys": self._registry.keys(),
                "configs": {key: cfg.model_dump() for key, cfg in self._registry.configs().items()},
                "last_outcomes": {key: outcome.value for key, outcome in self._last_outcomes.items()},
            },
        }


class MarketDataPoller:
    """Tracks which stock/index quotes the UI has subscribed to for polling."""

    KINDS = ("stock", "index")

    def __init__(self, manager: EnhancedCacheManager):
        self._manager = manager
        self._active: Set[str] = set()

    def _key(self, symbol: str, kind: str) -> str:
        if kind not in self.KINDS:
            raise ValueError(f"Unsupported polling type: {kind}. Must be one of: {', '.join(self.KINDS)}")
        return f"{kind}:{symbol.strip().upper()}"

    def start_polling(self, symbol: str, kind: str = "stock") -> bool:
        key = self._key(symbol, kind)
        if key in self._active:
            return False
        self._active.add(key)
        logger.info("Started market data polling symbol=%s type=%s", symbol, kind)
        return True

    def stop_polling(self, symbol: str, kind: str = "stock") -> bool:
        key = self._key(symbol, kind)
        if key not in self._active:
            return False
        self._active.discard(key)
        self._manager.stop_polling(f"nse:{key}:quote")
        logger.info("Stopped market data polling symbol=%s type=%s", symbol, kind)
        return True

    def stop_all_polling(self) -> None:
        for key in self._active:
            self._manager.stop_polling(f"nse:{key}:quote")
        self._active.clear()
        logger.info("Stopped all market data polling")

    def get_active_polling(self) -> List[str]:
        return sorted(self._active)
