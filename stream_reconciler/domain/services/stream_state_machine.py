"""Pure transition rules for the stream lifecycle.

Every planner takes the stored stream plus fresh observations and returns
the partial update to write. An empty dict means nothing changes.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ..models.policy import ReconciliationPolicy
from ..models.provider_state import LiveStatus, RecordingAsset, RecordingState
from ..models.stream import LIFECYCLE_ORDER, Recording, Stream, StreamStatus


def is_forward(current: StreamStatus, target: StreamStatus) -> bool:
    """Whether ``target`` comes strictly after ``current`` in the lifecycle."""
    if StreamStatus.ERROR in (current, target):
        return False
    return LIFECYCLE_ORDER.index(target) > LIFECYCLE_ORDER.index(current)


def can_force(current: StreamStatus, target: StreamStatus) -> bool:
    """Administrative overrides move forward, into error, or out of error."""
    if current == StreamStatus.ERROR or target == StreamStatus.ERROR:
        return True
    return is_forward(current, target)


def plan_live_check(
    stream: Stream,
    live: LiveStatus,
    now: datetime,
    policy: ReconciliationPolicy,
) -> Dict[str, Any]:
    """Apply one live-status observation.

    Args:
        stream: Stored stream
        live: Fresh live status from the provider
        now: Reconciliation time
        policy: Engine thresholds

    Returns:
        Partial update
    """
    if stream.status == StreamStatus.ARMED:
        if live.is_live:
            return {
                "status": StreamStatus.LIVE,
                "started_at": stream.started_at or now,
                "consecutive_offline_checks": 0,
            }
        return {}

    if stream.status != StreamStatus.LIVE:
        return {}

    if live.is_live:
        return {"consecutive_offline_checks": 0}

    # Unreadable vendor state says nothing about the broadcast
    if not live.is_reliable:
        return {}

    misses = stream.consecutive_offline_checks + 1
    if misses >= policy.offline_check_threshold:
        return plan_end(stream, now)
    return {"consecutive_offline_checks": misses}


def plan_end(stream: Stream, now: datetime) -> Dict[str, Any]:
    """Explicit end of a session (stop action or vendor "ended" event)."""
    if stream.status not in (StreamStatus.ARMED, StreamStatus.LIVE):
        return {}
    return {
        "status": StreamStatus.COMPLETED,
        "ended_at": stream.ended_at or now,
        "consecutive_offline_checks": 0,
    }


def select_recording_asset(
    assets: Iterable[RecordingAsset],
    started_at: Optional[datetime],
    tolerance: timedelta = timedelta(0),
) -> Optional[RecordingAsset]:
    """Pick the asset belonging to the session that began at ``started_at``.

    Inputs can be reused across broadcasts, so the newest asset is not
    necessarily ours. The earliest asset created on or after the start
    (less ``tolerance``) wins. Without a start time the newest asset wins.
    """
    dated = [asset for asset in assets if asset.created_at is not None]
    if started_at is None:
        return max(dated, key=lambda asset: asset.created_at, default=None)

    earliest = started_at - tolerance
    candidates = [asset for asset in dated if asset.created_at >= earliest]
    return min(candidates, key=lambda asset: asset.created_at, default=None)


def plan_recording(
    stream: Stream,
    assets: List[RecordingAsset],
    now: datetime,
    policy: ReconciliationPolicy,
) -> Dict[str, Any]:
    """Attach a ready recording or flag the stream for manual follow-up.

    Args:
        stream: Stored (or projected) stream
        assets: Recordings listed by the provider
        now: Reconciliation time
        policy: Engine thresholds

    Returns:
        Partial update
    """
    if stream.status != StreamStatus.COMPLETED or stream.recording_ready:
        return {}

    tolerance = timedelta(seconds=policy.recording_match_tolerance_seconds)
    asset = select_recording_asset(assets, stream.started_at, tolerance)

    if asset is not None and asset.is_ready:
        return {
            "provider_asset_id": asset.asset_id,
            "recording": Recording(
                ready=True,
                asset_id=asset.asset_id,
                playback_url=asset.playback_url,
                duration=asset.duration,
                thumbnail_url=asset.thumbnail_url,
            ),
            "needs_manual_recording_check": False,
        }

    changes: Dict[str, Any] = {}
    if asset is not None:
        changes["provider_asset_id"] = asset.asset_id
        if asset.state == RecordingState.ERRORED:
            changes["needs_manual_recording_check"] = True
            return changes

    if recording_timed_out(stream, now, policy):
        changes["needs_manual_recording_check"] = True
    return changes


def recording_timed_out(stream: Stream, now: datetime, policy: ReconciliationPolicy) -> bool:
    """Whether the wait for a recording has exceeded the poll ceiling."""
    if stream.ended_at is None:
        return False
    waited = (now - stream.ended_at).total_seconds()
    return waited >= policy.recording_timeout_seconds


def diff_changes(stream: Stream, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Drop fields whose new value equals the stored one."""
    return {
        name: value
        for name, value in changes.items()
        if getattr(stream, name) != value
    }
