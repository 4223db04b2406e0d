"""
Queue drain loop.

Claims work units from the store one at a time and applies them until the
store reports the queue empty. One bad unit never stops the run; a failing
store ends it, and the partial report is still returned.
"""
import asyncio
import traceback
from typing import Optional
from avatar_worker.app.aggregator import ResultAggregator
from avatar_worker.app.models import ApplyResult, RunReport, WorkKind, WorkUnit, WorkUnitStore
from avatar_worker.utils import get_logger

logger = get_logger(__name__)


class DrainLoop:
    def __init__(self, store: WorkUnitStore, kind: WorkKind):
        self.store = store
        self.kind = kind

    async def drain(self, timeout: Optional[float] = None) -> RunReport:
        """Drain the queue for ``self.kind`` and return the run report.

        Args:
            timeout: Optional bound in seconds. On timeout the units handled
                so far are still reported and ``error`` is set.
        """
        aggregator = ResultAggregator()
        logger.info(f"Draining {self.kind.value} queue...")

        try:
            if timeout:
                await asyncio.wait_for(self._drain_into(aggregator), timeout=timeout)
            else:
                await self._drain_into(aggregator)
        except asyncio.TimeoutError:
            logger.warning(f"Drain of {self.kind.value} queue timed out after {timeout}s")
            aggregator.fail_run(f"Drain timed out after {timeout}s")

        report = aggregator.snapshot()
        logger.info(
            f"{self.kind.value} drain complete. "
            f"Processed: {report.processed_count}, Failed: {report.failed_count}"
        )
        return report

    async def _drain_into(self, aggregator: ResultAggregator) -> None:
        while True:
            try:
                unit = await self.store.claim_next(self.kind)
            except Exception as e:
                logger.error(f"Failed to claim next {self.kind.value} unit: {e}")
                aggregator.fail_run(str(e))
                return

            if unit is None:
                return

            try:
                result = await self._apply(unit)
                aggregator.record(unit.subject_id, result.success, result.message)
                if not result.success:
                    logger.warning(f"✗ {self.kind.value} unit for {unit.subject_id} failed: {result.message}")
                await self.store.mark_applied(unit)
            except asyncio.CancelledError:
                await self._return_claim(unit)
                raise
            except Exception as e:
                logger.error(f"Failed to release {self.kind.value} unit {unit.unit_id}: {e}")
                aggregator.fail_run(str(e))
                return

    async def _return_claim(self, unit: WorkUnit) -> None:
        # cancelled mid-unit: hand it back so the next run claims it again
        logger.warning(f"Drain cancelled while handling {unit.unit_id}, returning it to the queue")
        try:
            await self.store.release_claim(unit)
        except Exception as e:
            logger.error(f"Failed to return {self.kind.value} unit {unit.unit_id}: {e}")

    async def _apply(self, unit: WorkUnit) -> ApplyResult:
        logger.debug(f"Applying {unit.kind.value} unit {unit.unit_id} for {unit.subject_id}")
        try:
            return await self.store.apply_effect(unit)
        except Exception as e:
            logger.error(f"Exception applying {unit.kind.value} unit for {unit.subject_id}: {e}")
            logger.error(f"Traceback:\n{traceback.format_exc()}")
            return ApplyResult(success=False, message=str(e) or type(e).__name__)


async def run_drain(store: WorkUnitStore, kind: WorkKind, timeout: Optional[float] = None) -> RunReport:
    """Run one drain of ``kind`` against ``store``."""
    return await DrainLoop(store, kind).drain(timeout=timeout)
