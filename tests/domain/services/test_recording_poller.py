"""Tests for recording polling."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from tenacity import stop_after_attempt

from stream_reconciler.domain.exceptions import StreamNotFoundError
from stream_reconciler.domain.models.provider_state import RecordingState
from stream_reconciler.domain.models.stream import StreamStatus
from stream_reconciler.domain.services.recording_poller import RecordingPoller

from conftest import T0, make_asset


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.mark.asyncio
async def test_polls_until_recording_ready(engine, video_provider, live_stream, sleep):
    video_provider.recordings = [make_asset("a1", T0 + timedelta(seconds=2))]
    poller = RecordingPoller(engine, sleep=sleep)

    stream = await poller.poll(live_stream.id)

    assert stream.status == StreamStatus.COMPLETED
    assert stream.recording_ready
    # Three offline checks; the third also attaches the recording
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_backoff_grows_between_attempts(engine, video_provider, live_stream, sleep):
    await engine.stop_stream(live_stream.id)
    video_provider.recordings = [make_asset("a1", T0, state=RecordingState.PROCESSING)]
    poller = RecordingPoller(engine, stop=stop_after_attempt(4), sleep=sleep)

    await poller.poll(live_stream.id)

    delays = [call.args[0] for call in sleep.await_args_list]
    assert delays == sorted(delays)
    assert delays[0] >= engine.policy.recording_poll_initial_delay_seconds
    assert max(delays) <= engine.policy.recording_poll_max_delay_seconds


@pytest.mark.asyncio
async def test_timeout_flags_manual_check(engine, live_stream, sleep):
    await engine.stop_stream(live_stream.id)
    poller = RecordingPoller(engine, stop=stop_after_attempt(3), sleep=sleep)

    stream = await poller.poll(live_stream.id)

    assert stream.status == StreamStatus.COMPLETED
    assert stream.needs_manual_recording_check is True
    assert stream.recording is None


@pytest.mark.asyncio
async def test_settled_stream_returns_immediately(engine, live_stream, sleep):
    await engine.stop_stream(live_stream.id)
    await engine.mark_recording_timeout(live_stream.id)
    poller = RecordingPoller(engine, sleep=sleep)

    stream = await poller.poll(live_stream.id)

    assert stream.needs_manual_recording_check is True
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_stream_raises(engine, sleep):
    poller = RecordingPoller(engine, sleep=sleep)

    with pytest.raises(StreamNotFoundError):
        await poller.poll("missing")
