"""Polls for a stream's recording until it is ready or the wait runs out."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_delay,
    wait_exponential,
)
from tenacity.stop import stop_base

from ..models.stream import Stream, StreamStatus
from .reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


def _still_waiting(stream: Stream) -> bool:
    """Keep polling while the session runs or its recording is unsettled."""
    if stream.status in (StreamStatus.ARMED, StreamStatus.LIVE):
        return True
    return stream.status == StreamStatus.COMPLETED and not stream.recording_settled


class RecordingPoller:
    """Repeats reconciliation passes with exponential backoff.

    Recording readiness is not always pushed by webhook, so after a session
    ends the poller keeps asking the provider until a ready asset shows up.
    When the wall-clock ceiling passes it flags the stream for manual
    follow-up instead of raising.
    """

    def __init__(
        self,
        reconciliation_service: ReconciliationService,
        stop: Optional[stop_base] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the poller.

        Args:
            reconciliation_service: Engine running each pass
            stop: Override of the stop strategy (defaults to the policy's
                recording timeout)
            sleep: Coroutine used between attempts
        """
        self._engine = reconciliation_service
        policy = reconciliation_service.policy
        self._stop = stop or stop_after_delay(policy.recording_timeout_seconds)
        self._wait = wait_exponential(
            multiplier=policy.recording_poll_initial_delay_seconds,
            min=policy.recording_poll_initial_delay_seconds,
            max=policy.recording_poll_max_delay_seconds,
        )
        self._sleep = sleep

    async def poll(self, stream_id: str) -> Stream:
        """Poll until the recording settles.

        Args:
            stream_id: Stream id

        Returns:
            Stream after the last pass
        """
        logger.info(f"📹 Polling recording for stream {stream_id}")
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_result(_still_waiting),
                stop=self._stop,
                wait=self._wait,
                sleep=self._sleep,
            ):
                with attempt:
                    stream = await self._engine.reconcile(stream_id)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(stream)
        except RetryError:
            return await self._engine.mark_recording_timeout(stream_id)

        if stream.recording_ready:
            logger.info(f"✅ Recording settled for stream {stream_id}")
        return stream
