"""
Incremental synchronization of the history series.
One SeriesSynchronizer owns one series: its watermark, its upstream client and its retry policy.
HourlyFetcher walks all series once an hour and pulls the trailing hour for each.
"""
import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from prometheus_client import Counter, Gauge, Histogram
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, stop_never, wait_fixed

from app.core.config import get_settings
from app.core.database import AsyncSessionLocal
from app.core.exceptions import RateLimitedError, TransientUpstreamError, UpstreamError, UpstreamStatusError
from app.core.logging_config import get_logger
from app.db.models import SyncCheckpoint
from app.ingestion.client import MidgardClient
from app.ingestion.decoder import decode_batch
from app.schemas.series import Interval, SeriesSchema
from app.services.interval_store import latest_end_time, upsert_intervals

logger = get_logger("synchronizer")

RATE_LIMIT_PHRASE = "slow down"

SYNC_INTERVALS_STORED = Counter('sync_intervals_stored_total', 'New intervals persisted', ['series'])
SYNC_RETRIES = Counter('sync_upstream_retries_total', 'Upstream requests retried', ['series', 'reason'])
SYNC_WATERMARK = Gauge('sync_watermark_timestamp_seconds', 'End time of the last fully persisted batch', ['series'])
SYNC_BATCH_DURATION = Histogram('sync_batch_duration_seconds', 'Time spent persisting one batch', ['series'])

# --- Checkpoint Logic ---

async def get_checkpoint(session, series: str) -> SyncCheckpoint | None:
    result = await session.execute(
        select(SyncCheckpoint).where(SyncCheckpoint.series == series)
    )
    return result.scalars().first()

async def update_checkpoint(session, series: str, status: str, records: int, duration: int, error: str | None = None, watermark: datetime | None = None):
    cp = await get_checkpoint(session, series)

    if cp:
        cp.last_status = status
        cp.records_processed = records
        cp.run_duration_ms = duration
        cp.error_log = error
        if watermark is not None:
            cp.watermark = watermark
    else:
        cp = SyncCheckpoint(
            series=series,
            last_status=status,
            records_processed=records,
            run_duration_ms=duration,
            error_log=error,
            watermark=watermark
        )
        session.add(cp)


class SeriesSynchronizer:
    def __init__(
        self,
        schema: SeriesSchema,
        client: Optional[MidgardClient] = None,
        session_factory: Callable = AsyncSessionLocal,
        *,
        interval: Interval = Interval.HOUR,
        batch_size: Optional[int] = None,
        start_from: Optional[datetime] = None,
        retry_delay: Optional[float] = None,
        cycle_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        latest_hour_attempts: Optional[int] = None,
        sleep: Callable = asyncio.sleep,
    ):
        settings = get_settings()
        self.schema = schema
        self.client = client or MidgardClient()
        self.session_factory = session_factory
        self.interval = interval
        self.batch_size = batch_size or settings.SYNC_BATCH_SIZE
        self.start_from = start_from or datetime.fromtimestamp(settings.SYNC_START_TIMESTAMP, tz=timezone.utc)
        self.retry_delay = settings.SYNC_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.cycle_delay = settings.SYNC_CYCLE_DELAY_SECONDS if cycle_delay is None else cycle_delay
        self.max_attempts = settings.SYNC_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.latest_hour_attempts = settings.LATEST_HOUR_MAX_ATTEMPTS if latest_hour_attempts is None else latest_hour_attempts
        self._sleep = sleep
        self.watermark: Optional[datetime] = None

    # --- Fetching ---

    def _log_retry(self, retry_state):
        error = retry_state.outcome.exception()
        reason = type(error).__name__
        SYNC_RETRIES.labels(series=self.schema.id, reason=reason).inc()
        logger.warning(
            "upstream_retry",
            series=self.schema.id,
            attempt=retry_state.attempt_number,
            reason=reason,
            error=str(error),
            snippet=getattr(error, "snippet", None),
            delay_s=self.retry_delay,
        )

    async def _request_batch(self, from_time, to_time, count) -> List[Dict[str, Any]]:
        body, status = await self.client.fetch_page(self.schema, self.interval, from_time, to_time, count)

        # Throttling comes back as a 200 with a plain-text body
        if RATE_LIMIT_PHRASE in body.lower():
            raise RateLimitedError(f"{self.schema.id} history is rate limited")
        if status != 200:
            raise UpstreamStatusError(status, body)

        return decode_batch(self.schema, body)

    async def fetch_batch(
        self,
        from_time: Optional[datetime] = None,
        to_time: Optional[datetime] = None,
        count: Optional[int] = None,
        attempts: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Fetches and decodes one batch, repeating the identical request on any transient failure.
        attempts <= 0 means retry forever.
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientUpstreamError),
            wait=wait_fixed(self.retry_delay),
            stop=stop_after_attempt(attempts) if attempts > 0 else stop_never,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        started = time.time()
        try:
            async for attempt in retrying:
                with attempt:
                    batch = await self._request_batch(from_time, to_time, count)
        except UpstreamError as e:
            logger.error("upstream_gave_up", series=self.schema.id, error=str(e), error_type=type(e).__name__)
            await self._record_failure(started, e)
            raise
        return batch

    # --- Persisting ---

    async def _record_checkpoint(self, status: str, records: int, started: float, error: str | None = None):
        duration_ms = int((time.time() - started) * 1000)
        async with self.session_factory() as session:
            await update_checkpoint(session, self.schema.id, status, records, duration_ms, error=error, watermark=self.watermark)
            await session.commit()

    async def _record_failure(self, started: float, error: Exception):
        try:
            await self._record_checkpoint("failure", 0, started, error=str(error))
        except SQLAlchemyError as checkpoint_error:
            logger.error("checkpoint_write_failed", series=self.schema.id, error=str(checkpoint_error))

    async def persist(self, intervals: List[Dict[str, Any]]) -> int:
        started = time.time()
        async with self.session_factory() as session:
            try:
                inserted = await upsert_intervals(session, self.schema, intervals)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("sync_store_failed", series=self.schema.id, error=str(e))
                await self._record_failure(started, e)
                raise

        SYNC_INTERVALS_STORED.labels(series=self.schema.id).inc(inserted)
        SYNC_BATCH_DURATION.labels(series=self.schema.id).observe(time.time() - started)
        return inserted

    # --- Watermark ---

    async def resume_point(self) -> datetime:
        async with self.session_factory() as session:
            stored = await latest_end_time(session, self.schema)
        return stored or self.start_from

    def advance(self, end_time: datetime):
        if self.watermark is None or end_time > self.watermark:
            self.watermark = end_time
        SYNC_WATERMARK.labels(series=self.schema.id).set(self.watermark.timestamp())

    # --- Modes ---

    async def sync_once(self) -> int:
        """One cycle: fetch everything after the watermark, persist it, then advance."""
        if self.watermark is None:
            self.watermark = await self.resume_point()
            logger.info("sync_resume", series=self.schema.id, watermark=self.watermark.isoformat())

        started = time.time()
        batch = await self.fetch_batch(from_time=self.watermark, count=self.batch_size, attempts=self.max_attempts)
        if not batch:
            logger.info("sync_up_to_date", series=self.schema.id, watermark=self.watermark.isoformat())
            return 0

        inserted = await self.persist(batch)
        self.advance(batch[-1]["end_time"])
        await self._record_checkpoint("success", inserted, started)

        logger.info(
            "sync_batch_stored",
            series=self.schema.id,
            fetched=len(batch),
            inserted=inserted,
            watermark=self.watermark.isoformat(),
        )
        return inserted

    async def run_forever(self):
        logger.info("sync_task_started", series=self.schema.id)
        while True:
            await self.sync_once()
            await self._sleep(self.cycle_delay)

    async def fetch_latest_hour(self, now: Optional[datetime] = None) -> int:
        """Pulls the trailing one-hour window, independent of the watermark."""
        now = now or datetime.now(timezone.utc)
        started = time.time()
        batch = await self.fetch_batch(
            from_time=now - timedelta(hours=1),
            to_time=now,
            attempts=self.latest_hour_attempts,
        )
        inserted = await self.persist(batch) if batch else 0
        await self._record_checkpoint("success", inserted, started)
        logger.info("latest_hour_stored", series=self.schema.id, fetched=len(batch), inserted=inserted)
        return inserted

    async def fetch_initial(self, now: Optional[datetime] = None) -> int:
        """Backfills the most recent batch_size intervals up to now."""
        now = now or datetime.now(timezone.utc)
        started = time.time()
        batch = await self.fetch_batch(to_time=now, count=self.batch_size, attempts=self.latest_hour_attempts)
        inserted = await self.persist(batch) if batch else 0
        await self._record_checkpoint("success", inserted, started)
        logger.info("initial_history_stored", series=self.schema.id, fetched=len(batch), inserted=inserted)
        return inserted


class HourlyFetcher:
    def __init__(
        self,
        synchronizers: Sequence[SeriesSynchronizer],
        step_delay: Optional[float] = None,
        check_interval: Optional[float] = None,
        sleep: Callable = asyncio.sleep,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        settings = get_settings()
        self.synchronizers = list(synchronizers)
        self.step_delay = settings.HOURLY_STEP_DELAY_SECONDS if step_delay is None else step_delay
        self.check_interval = settings.HOURLY_CHECK_SECONDS if check_interval is None else check_interval
        self._sleep = sleep
        self._clock = clock
        self.last_run = clock()

    async def run_cycle(self) -> Dict[str, Optional[int]]:
        """Runs every series in turn, pausing between them to stay under upstream rate limits."""
        logger.info("hourly_cycle_start")
        results = {}
        for index, synchronizer in enumerate(self.synchronizers):
            if index:
                await self._sleep(self.step_delay)
            series = synchronizer.schema.id
            try:
                results[series] = await synchronizer.fetch_latest_hour()
            except Exception as e:
                # One broken series must not stop the others
                logger.error("hourly_fetch_failed", series=series, error=str(e), error_type=type(e).__name__)
                results[series] = None
        logger.info("hourly_cycle_finish", results=results)
        return results

    async def run_forever(self):
        logger.info("hourly_fetcher_started")
        while True:
            now = self._clock()
            if now - self.last_run >= timedelta(hours=1):
                self.last_run = now
                await self.run_cycle()
            await self._sleep(self.check_interval)
