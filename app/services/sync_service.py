"""
Wires synchronizer tasks into the application lifecycle.
"""
import asyncio
from typing import Dict, List, Optional

from app.core.config import get_settings
from app.core.logging_config import get_logger
from app.ingestion.client import MidgardClient
from app.ingestion.synchronizer import HourlyFetcher, SeriesSynchronizer
from app.schemas.series import SERIES

logger = get_logger("sync_service")


def build_synchronizers() -> List[SeriesSynchronizer]:
    # Each synchronizer gets its own upstream client
    return [SeriesSynchronizer(schema, MidgardClient()) for schema in SERIES.values()]


def _log_task_exit(task: asyncio.Task):
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        # Not restarted: the task stays down until the process restarts
        logger.error("sync_task_failed", task=task.get_name(), error=str(error), error_type=type(error).__name__)


class SyncRuntime:
    def __init__(self):
        self.tasks: List[asyncio.Task] = []
        self.synchronizers: List[SeriesSynchronizer] = []
        self.hourly: Optional[HourlyFetcher] = None

    def spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(_log_task_exit)
        self.tasks.append(task)
        return task

    async def stop(self):
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        clients = {id(s.client): s.client for s in self.synchronizers}
        if self.hourly:
            clients.update({id(s.client): s.client for s in self.hourly.synchronizers})
        for client in clients.values():
            await client.aclose()
        self.tasks.clear()


async def fetch_initial_data(synchronizers: List[SeriesSynchronizer]):
    logger.info("initial_fetch_start")
    for synchronizer in synchronizers:
        await synchronizer.fetch_initial()
    logger.info("initial_fetch_finish")


async def _backfill_then_sync(runtime: SyncRuntime, backfill: bool, continuous: bool):
    # Continuous tasks resume from the newest stored row, so they start after the backfill lands
    if backfill:
        await fetch_initial_data(runtime.synchronizers)
    if continuous:
        for synchronizer in runtime.synchronizers:
            runtime.spawn(synchronizer.run_forever(), name=f"sync_{synchronizer.schema.id}")


async def start_sync_jobs() -> SyncRuntime:
    """
    Starts whatever sync modes are enabled.
    Upstream rate limits are tight, so the continuous tasks are off by default.
    """
    settings = get_settings()
    runtime = SyncRuntime()

    if settings.ENABLE_INITIAL_BACKFILL or settings.ENABLE_CONTINUOUS_SYNC:
        runtime.synchronizers = build_synchronizers()

    if runtime.synchronizers:
        runtime.spawn(
            _backfill_then_sync(runtime, settings.ENABLE_INITIAL_BACKFILL, settings.ENABLE_CONTINUOUS_SYNC),
            name="startup_sync",
        )

    if settings.ENABLE_HOURLY_SYNC:
        runtime.hourly = HourlyFetcher(build_synchronizers())
        runtime.spawn(runtime.hourly.run_forever(), name="hourly_fetcher")

    logger.info("sync_jobs_started", tasks=[t.get_name() for t in runtime.tasks])
    return runtime


async def run_hourly_cycle_now() -> Dict[str, Optional[int]]:
    fetcher = HourlyFetcher(build_synchronizers())
    try:
        return await fetcher.run_cycle()
    finally:
        for synchronizer in fetcher.synchronizers:
            await synchronizer.client.aclose()
