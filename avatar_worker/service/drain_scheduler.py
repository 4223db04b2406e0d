import asyncio
import traceback
from typing import Iterable, Optional
from avatar_worker.app.drain_loop import run_drain
from avatar_worker.app.models import RunReport, WorkKind, WorkUnitStore
from avatar_worker.utils import get_logger

logger = get_logger(__name__)


class DrainScheduler:
    """Runs a drain for each kind on a fixed interval in a background task."""

    def __init__(
        self,
        store: WorkUnitStore,
        interval: float,
        kinds: Iterable[WorkKind] = (WorkKind.THUMBNAIL_COUNT, WorkKind.SERVE_TIME),
        timeout: Optional[float] = None,
    ):
        self.store = store
        self.interval = interval
        self.kinds = list(kinds)
        self.timeout = timeout
        self.runs = 0
        self._task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task  # type: ignore
        self._stopped.clear()
        self._task = asyncio.create_task(self._run(), name="drain-scheduler")
        logger.info(f"🚀 Drain scheduler started (every {self.interval}s)")
        return self._task

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("✓ Drain scheduler stopped")

    async def tick(self) -> list[RunReport]:
        """Drain every configured kind once."""
        reports = []
        for kind in self.kinds:
            report = await run_drain(self.store, kind, timeout=self.timeout)
            if report.run_failed:
                logger.error(f"Scheduled {kind.value} drain failed: {report.error}")
            reports.append(report)
        self.runs += 1
        return reports

    async def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Unexpected error in drain scheduler: {e}")
                logger.error(f"Traceback:\n{traceback.format_exc()}")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
