"""
Trending recalculation.
A periodic batch job that scores every active item per time window and
replaces the trending snapshot for that window.
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from discovery.core.telemetry import (
    TRENDING_RUN_SECONDS,
    TRENDING_WINDOW_FAILURES,
    get_tracer,
)
from discovery.models.interfaces import ContentStore, TrendingStore
from discovery.models.schemas import (
    ContentFilter,
    ContentItem,
    ContentMetrics,
    ContentOrder,
    TrendingRunSummary,
    TrendingSnapshot,
    TrendingWindow,
    utcnow,
)
from discovery.services.scoring import age_days, trending_score

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

JOB_ID = "trending_recalculation"


def compute_window(
    items: Sequence[ContentItem],
    metrics: Dict[str, ContentMetrics],
    window: TrendingWindow,
    now: datetime,
    top_k: int = 100,
    min_score: float = 0.05,
) -> List[TrendingSnapshot]:
    """
    Trending rows for one window, best first.

    Items without metrics are skipped; scores at or below ``min_score`` are dropped.
    """
    rows = []
    for item in items:
        item_metrics = metrics.get(item.id)
        if item_metrics is None:
            continue

        score = trending_score(item_metrics, age_days(item.created_at, now), window)
        if score <= min_score:
            continue

        rows.append(
            TrendingSnapshot(
                content_id=item.id,
                time_window=window,
                interaction_count=(
                    item_metrics.likes_count
                    + item_metrics.saves_count
                    + item_metrics.shares_count
                ),
                like_count=item_metrics.likes_count,
                save_count=item_metrics.saves_count,
                share_count=item_metrics.shares_count,
                trending_score=score,
                calculated_at=now,
            )
        )

    rows.sort(key=lambda r: r.trending_score, reverse=True)
    return rows[:top_k]


class TrendingCalculator:
    """
    Recomputes trending snapshots for the hour, day and week windows.

    Only one run may be in flight per process; a trigger during a run is
    logged and skipped. Each window is refreshed independently.
    """

    def __init__(
        self,
        content_store: ContentStore,
        trending_store: TrendingStore,
        top_k: int = 100,
        min_score: float = 0.05,
        page_size: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._content_store = content_store
        self._trending_store = trending_store
        self._top_k = top_k
        self._min_score = min_score
        self._page_size = page_size
        self._clock = clock
        self._running = False
        self._last_summary: Optional[TrendingRunSummary] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def last_summary(self) -> Optional[TrendingRunSummary]:
        return self._last_summary

    async def run_once(self) -> TrendingRunSummary:
        """
        Run one full recalculation.

        Returns:
            Summary of rows written and per-window errors; never raises for
            store failures
        """
        if self._running:
            logger.info("Trending calculation already in progress, skipping")
            return TrendingRunSummary(skipped=True)

        self._running = True
        start_time = time.time()
        summary = TrendingRunSummary()

        try:
            with tracer.start_as_current_span("trending.run_once"):
                try:
                    items, metrics = await self._load()
                except Exception as e:
                    logger.error(f"Trending load failed: {e}")
                    summary.errors["load"] = str(e)
                    return summary

                summary.items_considered = len(items)
                now = self._clock()

                for window in TrendingWindow:
                    await self._refresh_window(window, items, metrics, now, summary)
        finally:
            elapsed = time.time() - start_time
            summary.duration_ms = elapsed * 1000
            TRENDING_RUN_SECONDS.observe(elapsed)
            self._running = False
            self._last_summary = summary

        logger.info(
            f"Trending calculation completed: items={summary.items_considered} "
            f"windows={summary.windows_written} errors={len(summary.errors)} "
            f"elapsed_ms={summary.duration_ms:.2f}"
        )
        return summary

    async def get_trending(self, window: TrendingWindow, limit: int = 20) -> List[TrendingSnapshot]:
        """Snapshot rows for ``window``, computed on demand if the snapshot is empty."""
        rows = await self._trending_store.get_trending(window, limit)
        if rows:
            return rows

        logger.info("No trending snapshot, calculating on demand", extra={"time_window": window.value})
        items, metrics = await self._load()
        return compute_window(items, metrics, window, self._clock(), limit, self._min_score)

    async def _refresh_window(
        self,
        window: TrendingWindow,
        items: List[ContentItem],
        metrics: Dict[str, ContentMetrics],
        now: datetime,
        summary: TrendingRunSummary,
    ) -> None:
        try:
            rows = compute_window(items, metrics, window, now, self._top_k, self._min_score)
            if not rows:
                logger.info("No trending items for window", extra={"time_window": window.value})
                return

            await self._trending_store.replace_trending_snapshot(window, rows)
            summary.windows_written[window.value] = len(rows)
            logger.info(
                f"Updated {len(rows)} trending items",
                extra={"time_window": window.value},
            )
        except Exception as e:
            TRENDING_WINDOW_FAILURES.labels(time_window=window.value).inc()
            summary.errors[window.value] = str(e)
            logger.error(
                f"Trending refresh failed: {e}",
                extra={"time_window": window.value},
            )

    async def _load(self):
        """All active items and their metrics, page by page."""
        items: List[ContentItem] = []
        metrics: Dict[str, ContentMetrics] = {}
        offset = 0

        while True:
            page = await self._content_store.query_active_content(
                content_filter=ContentFilter(),
                order_by=ContentOrder.CREATED_AT,
                limit=self._page_size,
                offset=offset,
            )
            if not page:
                break
            items.extend(page)
            metrics.update(await self._content_store.get_metrics([item.id for item in page]))
            if len(page) < self._page_size:
                break
            offset += self._page_size

        return items, metrics


class TrendingScheduler:
    """Runs ``TrendingCalculator.run_once`` on a fixed interval."""

    def __init__(self, calculator: TrendingCalculator, interval_minutes: int = 15) -> None:
        self._calculator = calculator
        self._interval_minutes = interval_minutes
        self._scheduler = AsyncIOScheduler()
        self._initial_run: Optional[asyncio.Task] = None
        self.is_running = False

    def start(self) -> None:
        """Schedule the job and run it once immediately. Needs a running event loop."""
        if self.is_running:
            logger.warning("Trending scheduler is already running")
            return

        self._scheduler.add_job(
            self._calculator.run_once,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=JOB_ID,
            name="Recalculate trending snapshots",
            replace_existing=True,
            max_instances=1,
        )
        self._scheduler.start()
        self.is_running = True
        logger.info(f"Trending scheduler started, will run every {self._interval_minutes} minutes")

        self._initial_run = asyncio.create_task(self._calculator.run_once())

    def stop(self) -> None:
        if not self.is_running:
            return
        self._scheduler.shutdown(wait=False)
        if self._initial_run is not None and not self._initial_run.done():
            self._initial_run.cancel()
        self.is_running = False
        logger.info("Trending scheduler stopped")

    def get_status(self) -> dict:
        job = self._scheduler.get_job(JOB_ID) if self.is_running else None
        last = self._calculator.last_summary
        return {
            "running": self.is_running,
            "interval_minutes": self._interval_minutes,
            "next_run": job.next_run_time.isoformat() if job and job.next_run_time else None,
            "last_run_errors": dict(last.errors) if last else {},
        }
