"""Background reconciliation loops."""

import asyncio
import logging
from typing import Dict, Optional

from ...domain.services.reconciliation_service import ReconciliationService
from ...domain.services.recording_poller import RecordingPoller

logger = logging.getLogger(__name__)


class StreamPollScheduler:
    """Runs periodic sweeps and per-stream recording polls as asyncio tasks.

    Webhooks are a latency optimisation; this loop is what guarantees every
    active stream converges even when events are lost.
    """

    def __init__(
        self,
        reconciliation_service: ReconciliationService,
        interval_seconds: float = 30.0,
        poller: Optional[RecordingPoller] = None,
    ):
        """Initialize the scheduler.

        Args:
            reconciliation_service: Engine to sweep
            interval_seconds: Seconds between sweeps; 0 disables the sweep loop
            poller: Recording poller used for manual recording checks
        """
        self._engine = reconciliation_service
        self._interval = interval_seconds
        self._poller = poller or RecordingPoller(reconciliation_service)
        self._sweep_task: Optional[asyncio.Task] = None
        self._recording_tasks: Dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    @property
    def poller(self) -> RecordingPoller:
        return self._poller

    @property
    def pending_recording_checks(self) -> int:
        return len(self._recording_tasks)

    def start(self) -> None:
        """Start the sweep loop."""
        if self._interval <= 0:
            logger.info("⏸️ Background sweep disabled")
            return
        if self.is_running:
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"🔁 Background sweep every {self._interval:.0f}s")

    async def stop(self) -> None:
        """Cancel the sweep loop and any running recording checks."""
        tasks = list(self._recording_tasks.values())
        if self._sweep_task is not None:
            tasks.append(self._sweep_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None
        self._recording_tasks.clear()
        logger.info("🛑 Background reconciliation stopped")

    async def run_once(self) -> Dict[str, int]:
        """Run a single sweep."""
        return await self._engine.sweep()

    async def _sweep_loop(self) -> None:
        try:
            while True:
                try:
                    summary = await self.run_once()
                    if summary["reconciled"] or summary["failed"]:
                        logger.info(f"📊 Sweep: {summary['reconciled']} reconciled, {summary['failed']} failed")
                except Exception as e:
                    logger.error(f"❌ Sweep failed: {e}")
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            logger.info("🛑 Sweep loop cancelled")
            raise

    def schedule_recording_check(self, stream_id: str) -> bool:
        """Start polling a stream's recording in the background.

        Returns:
            False if a check for this stream is already running
        """
        task = self._recording_tasks.get(stream_id)
        if task is not None and not task.done():
            return False
        task = asyncio.create_task(self._recording_check(stream_id))
        self._recording_tasks[stream_id] = task
        return True

    async def _recording_check(self, stream_id: str) -> None:
        try:
            await self._poller.poll(stream_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Recording check failed for stream {stream_id}: {e}")
        finally:
            self._recording_tasks.pop(stream_id, None)
