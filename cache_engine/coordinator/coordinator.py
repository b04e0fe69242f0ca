"""
Market Mage — Global Data Coordinator
──────────────────────────────────────
Owns the "is this category fresh enough to skip refetching" decision for
one session, so several consumers of the same data never trigger duplicate
fetches.

  ensure_fresh(name)  — single-flight per category; skips when fresh
  refresh(name)       — invalidate the category's keys, then fetch
  invalidate(name)    — forget freshness, drop the cached rows
  load(name)          — lazy first load, no-op afterwards

Freshness ends at fresh_until, fixed when a fetch lands (cache_duration
may be computed, e.g. "until next UTC midnight"). Interval jobs fetch on
every tick regardless of it. An invalidate() during a fetch leaves that
fetch's result stale.

Storage is reached only through fetch_through() and the tier's
invalidate(), so there is one invalidation path.

The coordinator adds no timeout of its own. A producer that never returns
leaves its category in "fetching"; producers own their timeouts.
"""

import asyncio
import contextlib
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from cache_engine.cache.fetch_through import Fetched, fetch_through
from cache_engine.cache.tiers import CacheTier
from cache_engine.coordinator.categories import (
    CategorySpec, CategoryState, DataCategory, Notice,
)
from cache_engine.errors import UnknownCategoryError

log = logging.getLogger("mc.coordinator")

Subscriber     = Callable[[str, Any], None]
NoticeListener = Callable[[Notice], None]


def _describe(value: Any) -> str:
    if isinstance(value, dict):
        sized = [len(v) for v in value.values() if isinstance(v, (list, tuple))]
        if sized:
            return f"{sum(sized)} items"
    if isinstance(value, (list, tuple)):
        return f"{len(value)} items"
    return "latest data"


class DataCoordinator:

    def __init__(
        self,
        tiers: Dict[str, CacheTier],
        categories: Iterable[CategorySpec] = (),
        clock: Callable[[], float] = time.time,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._tiers = dict(tiers)
        self._clock = clock
        self._categories: Dict[str, DataCategory] = {}
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._notice_listeners: List[NoticeListener] = []
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._started = False
        self._closed = False
        for spec in categories:
            self.register(spec)

    # ── Registration ──────────────────────────────────────────
    def register(self, spec: CategorySpec) -> None:
        if spec.name in self._categories:
            raise ValueError(f"category {spec.name!r} already registered")
        if spec.tier not in self._tiers:
            raise ValueError(f"category {spec.name!r} uses unknown tier {spec.tier!r}")
        self._categories[spec.name] = DataCategory(spec=spec)
        self._subscribers[spec.name] = []
        if self._started and spec.refresh_interval:
            self._schedule(spec)

    def _get(self, name: str) -> DataCategory:
        try:
            return self._categories[name]
        except KeyError:
            raise UnknownCategoryError(name) from None

    @property
    def categories(self) -> List[str]:
        return list(self._categories)

    # ── Read access ───────────────────────────────────────────
    def value(self, name: str) -> Any:
        """Last resolved value; survives failed refreshes."""
        return self._get(name).value

    def status(self, name: str) -> dict:
        return self._get(name).status()

    def snapshot(self) -> Dict[str, dict]:
        return {name: cat.status() for name, cat in self._categories.items()}

    # ── Freshness ─────────────────────────────────────────────
    async def ensure_fresh(self, name: str) -> Any:
        """
        Make sure the category holds data younger than its cache_duration.

        Concurrent callers share one in-flight fetch and all see its value
        or its error. On failure the previous value is kept and the error
        is re-raised.
        """
        cat = self._get(name)
        cat.requested = True
        if cat.inflight is not None:
            return await asyncio.shield(cat.inflight)
        if cat.is_fresh(self._clock()):
            log.debug(f"{name}: fresh, skipping fetch")
            return cat.value
        cat.inflight = self._start_fetch(cat, invalidate_first=False)
        return await asyncio.shield(cat.inflight)

    async def refresh(self, name: str) -> Any:
        """Force a fetch that cannot be served the pre-refresh cached value."""
        cat = self._get(name)
        log.info(f"{name}: manual refresh requested")
        while cat.inflight is not None:
            with contextlib.suppress(Exception):
                await asyncio.shield(cat.inflight)
        cat.requested = True
        cat.inflight = self._start_fetch(cat, invalidate_first=True)
        return await asyncio.shield(cat.inflight)

    async def invalidate(self, name: str) -> None:
        cat = self._get(name)
        cat.last_updated = None
        cat.fresh_until  = None
        cat.generation  += 1
        if cat.state is CategoryState.FRESH:
            cat.state = CategoryState.STALE
        await self._invalidate_keys(cat)
        log.info(f"{name}: invalidated")

    async def load(self, name: str) -> Any:
        """First call fetches; later calls return what the category holds."""
        cat = self._get(name)
        if not cat.requested:
            log.info(f"{name}: loading on demand")
            return await self.ensure_fresh(name)
        if cat.inflight is not None:
            return await asyncio.shield(cat.inflight)
        return cat.value

    # ── Fetch pipeline ────────────────────────────────────────
    def _start_fetch(self, cat: DataCategory, invalidate_first: bool) -> "asyncio.Task":
        cat.state = CategoryState.FETCHING
        task = asyncio.ensure_future(self._fetch(cat, invalidate_first))
        # waiters may all be cancelled; keep the outcome from going unobserved
        task.add_done_callback(lambda t: t.cancelled() or t.exception())
        return task

    async def _fetch(self, cat: DataCategory, invalidate_first: bool) -> Any:
        spec = cat.spec
        tier = self._tiers[spec.tier]
        generation = cat.generation
        try:
            if invalidate_first:
                await self._invalidate_keys(cat)
            log.info(f"{spec.name}: fetching via {tier.name} cache")
            fetched: Fetched = await fetch_through(
                spec.cache_key, spec.producer, spec.tier_ttl, tier,
                decode=spec.decode, encode=spec.encode,
            )
            if cat.generation != generation:
                await self._invalidate_keys(cat)
        except asyncio.CancelledError:
            cat.state = CategoryState.STALE
            raise
        except Exception as e:
            cat.state = CategoryState.STALE
            cat.error = e
            log.error(f"{spec.name}: fetch failed: {e}")
            self._emit(Notice(
                severity="error",
                summary=f"{spec.display_name} Error",
                detail=f"Failed to fetch {spec.display_name.lower()}. "
                       + ("Using cached data." if cat.has_value else "No data available yet."),
                category=spec.name,
            ))
            raise
        finally:
            cat.inflight = None

        cat.value     = fetched.value
        cat.has_value = True
        cat.error     = None

        if cat.generation != generation:
            # invalidated while this fetch ran: hand the value to its waiters, never mark it fresh
            cat.state = CategoryState.STALE
            log.info(f"{spec.name}: invalidated during fetch, result not trusted")
            return cat.value

        now = self._clock()
        cat.last_updated = now
        cat.fresh_until  = now + spec.window
        cat.state        = CategoryState.FRESH

        source = "cache" if fetched.from_cache else "upstream"
        log.info(f"{spec.name}: updated from {source}")
        self._emit(Notice(
            severity="info" if fetched.from_cache else "success",
            summary=f"{spec.display_name} Updated",
            detail=(f"Loaded {_describe(fetched.value)} from cache" if fetched.from_cache
                    else f"Fetched fresh {_describe(fetched.value)}"),
            category=spec.name,
        ))
        self._publish(cat)
        return cat.value

    async def _invalidate_keys(self, cat: DataCategory) -> None:
        tier = self._tiers[cat.spec.tier]
        for key in cat.spec.keys:
            await tier.invalidate(key)

    # ── Subscribers / notices ─────────────────────────────────
    def subscribe(self, name: str, callback: Subscriber) -> Callable[[], None]:
        """callback(name, value) after every successful update."""
        subs = self._subscribers[self._get(name).name]
        subs.append(callback)

        def unsubscribe() -> None:
            if callback in subs:
                subs.remove(callback)

        return unsubscribe

    def on_notice(self, listener: NoticeListener) -> Callable[[], None]:
        self._notice_listeners.append(listener)

        def remove() -> None:
            if listener in self._notice_listeners:
                self._notice_listeners.remove(listener)

        return remove

    def _publish(self, cat: DataCategory) -> None:
        for callback in list(self._subscribers[cat.name]):
            try:
                callback(cat.name, cat.value)
            except Exception as e:
                log.warning(f"{cat.name}: subscriber failed: {e}")

    def _emit(self, notice: Notice) -> None:
        for listener in list(self._notice_listeners):
            try:
                listener(notice)
            except Exception as e:
                log.warning(f"Notice listener failed: {e}")

    # ── Periodic refresh ──────────────────────────────────────
    @property
    def scheduler(self) -> Optional[AsyncIOScheduler]:
        return self._scheduler

    def start(self) -> None:
        """
        Register per-category refresh jobs and begin background loads for
        preload categories. Call from inside the event loop.
        """
        if self._started:
            log.warning("Coordinator already started — ignoring start call")
            return
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone="UTC")
        for cat in self._categories.values():
            if cat.spec.refresh_interval:
                self._schedule(cat.spec)
        if not self._scheduler.running:
            self._scheduler.start()
        self._started = True
        for cat in self._categories.values():
            if cat.spec.preload and cat.inflight is None:
                log.info(f"{cat.name}: preloading")
                cat.requested = True
                cat.inflight = self._start_fetch(cat, invalidate_first=False)
        log.info(f"Coordinator live — {len(self.scheduled_jobs())} refresh jobs")

    def _schedule(self, spec: CategorySpec) -> None:
        self._scheduler.add_job(
            self._periodic_refresh,
            IntervalTrigger(seconds=spec.refresh_interval),
            args=[spec.name],
            id=f"refresh:{spec.name}",
            name=f"Periodic {spec.display_name} refresh",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

    def scheduled_jobs(self) -> List[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()
                if job.id.startswith("refresh:")]

    async def _periodic_refresh(self, name: str) -> None:
        """Interval tick: fetch through the tier even inside the freshness window."""
        cat = self._get(name)
        log.info(f"{name}: periodic refresh triggered")
        if cat.inflight is None:
            cat.requested = True
            cat.inflight = self._start_fetch(cat, invalidate_first=False)
        try:
            await asyncio.shield(cat.inflight)
        except Exception as e:
            log.warning(f"{name}: periodic refresh failed: {e}")

    async def aclose(self) -> None:
        """Cancel timers and in-flight fetches. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        if self._scheduler is not None:
            for job_id in self.scheduled_jobs():
                self._scheduler.remove_job(job_id)
            if self._owns_scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                # shutdown is deferred to the loop; let it run
                await asyncio.sleep(0)
        pending = [c.inflight for c in self._categories.values() if c.inflight is not None]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("Coordinator closed")
