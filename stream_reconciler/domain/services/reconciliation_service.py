"""Reconciliation engine for the memorial livestream lifecycle."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..exceptions import (
    PermissionDeniedError,
    ProviderError,
    ProviderNotConfiguredError,
    StreamConflictError,
    StreamReconcilerError,
)
from ..models.memorial import Actor
from ..models.policy import ReconciliationPolicy
from ..models.provider_state import LiveStatus, RecordingAsset
from ..models.stream import (
    StatusOverride,
    Stream,
    StreamEventMark,
    StreamStatus,
    VideoProvider,
)
from ..models.webhook_event import WebhookEvent, WebhookEventKind
from ..ports.memorial_repository import MemorialRepositoryPort
from ..ports.stream_repository import StreamRepositoryPort
from ..ports.video_provider import VideoProviderPort
from . import stream_state_machine as machine
from .stream_leases import StreamLeaseManager

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("stream_reconciler.audit")

# Streams a sweep has to look at.
ACTIVE_STATUSES = (StreamStatus.ARMED, StreamStatus.LIVE, StreamStatus.COMPLETED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService:
    """Drives streams through scheduled → armed → live → completed.

    Every pass holds the stream's lease, reads the stored record, queries
    the provider and writes back only the fields that changed. Passes for
    different streams run independently.
    """

    def __init__(
        self,
        repository: StreamRepositoryPort,
        memorials: MemorialRepositoryPort,
        providers: Mapping[VideoProvider, VideoProviderPort],
        leases: Optional[StreamLeaseManager] = None,
        policy: Optional[ReconciliationPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the engine.

        Args:
            repository: Stream store
            memorials: Memorial reader used for permission checks
            providers: Adapter per video provider
            leases: Lease manager shared with other stream writers
            policy: Engine thresholds
            clock: Source of the current time
        """
        self._repository = repository
        self._memorials = memorials
        self._providers = providers
        self._leases = leases or StreamLeaseManager()
        self._policy = policy or ReconciliationPolicy()
        self._clock = clock

    @property
    def policy(self) -> ReconciliationPolicy:
        return self._policy

    def provider_for(self, stream: Stream) -> VideoProviderPort:
        """Adapter backing ``stream``.

        Raises:
            ProviderNotConfiguredError: If no adapter is registered
        """
        provider = self._providers.get(stream.provider)
        if provider is None:
            raise ProviderNotConfiguredError(
                f"No video provider configured for '{stream.provider.value}'"
            )
        return provider

    async def reconcile(self, stream_id: str) -> Stream:
        """Run one reconciliation pass.

        Args:
            stream_id: Stream id

        Returns:
            Stream after the pass

        Raises:
            StreamNotFoundError: If the stream does not exist
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            return await self._reconcile_locked(stream)

    async def _reconcile_locked(self, stream: Stream) -> Stream:
        if stream.status in (StreamStatus.SCHEDULED, StreamStatus.ERROR):
            logger.debug(f"Stream {stream.id} is {stream.status.value}; nothing to reconcile")
            return stream
        if not stream.provider_input_id:
            if stream.status == StreamStatus.COMPLETED and not stream.recording_settled:
                # Nothing was ever ingested, so no recording can appear
                logger.warning(f"⚠️ Stream {stream.id} completed without a provider input; flagging for follow-up")
                return await self._commit(stream, {"needs_manual_recording_check": True}, strict=False)
            logger.warning(f"⚠️ Stream {stream.id} is {stream.status.value} without a provider input")
            return stream

        provider = self.provider_for(stream)
        now = self._clock()
        changes: Dict[str, Any] = {}

        if stream.status in (StreamStatus.ARMED, StreamStatus.LIVE):
            live = await provider.get_live_status(stream.provider_input_id)
            if not live.is_reliable:
                logger.warning(f"⚠️ Unreliable live status for stream {stream.id}: {live.warning}")
            changes.update(machine.plan_live_check(stream, live, now, self._policy))

        projected = stream.model_copy(update=changes)
        if projected.status == StreamStatus.COMPLETED and not projected.recording_ready:
            changes.update(await self._plan_recording(projected, provider, now))

        return await self._commit(stream, changes, strict=False)

    async def _plan_recording(
        self,
        stream: Stream,
        provider: VideoProviderPort,
        now: datetime,
    ) -> Dict[str, Any]:
        assets: List[RecordingAsset] = []
        try:
            assets = await provider.list_recordings(stream.provider_input_id)
        except ProviderError as e:
            # Polling retries later; only the timeout can still fire
            logger.warning(f"⚠️ Could not list recordings for stream {stream.id}: {e}")

        changes = machine.plan_recording(stream, assets, now, self._policy)
        if changes.get("recording") is not None:
            logger.info(f"📹 Recording ready for stream {stream.id}: {changes['provider_asset_id']}")
        elif changes.get("needs_manual_recording_check") and not stream.needs_manual_recording_check:
            logger.warning(f"⚠️ Recording for stream {stream.id} needs manual follow-up")
        return changes

    async def apply_event(self, stream_id: str, event: WebhookEvent) -> Stream:
        """Apply a normalized vendor event to a stream.

        Re-delivering an event that is already reflected in the record is a
        no-op.

        Args:
            stream_id: Stream owning the event's resource
            event: Normalized webhook event

        Returns:
            Stream after the event
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            now = self._clock()
            changes: Dict[str, Any] = {}

            if event.kind == WebhookEventKind.STARTED:
                changes = machine.plan_live_check(stream, LiveStatus(is_live=True), now, self._policy)

            elif event.kind == WebhookEventKind.ENDED:
                changes = machine.plan_end(stream, now)

            elif event.kind in (WebhookEventKind.ASSET_READY, WebhookEventKind.ASSET_ERRORED):
                # A finished asset means the session is over
                changes = machine.plan_end(stream, now)
                projected = stream.model_copy(update=changes)
                if projected.status == StreamStatus.COMPLETED and not projected.recording_ready:
                    provider = self.provider_for(stream)
                    changes.update(await self._plan_recording(projected, provider, now))

            elif event.kind == WebhookEventKind.ERRORED:
                if stream.status not in (StreamStatus.COMPLETED, StreamStatus.ERROR):
                    changes = {
                        "status": StreamStatus.ERROR,
                        "error_detail": event.detail or "Provider reported an error",
                    }

            if machine.diff_changes(stream, changes):
                changes["last_event"] = StreamEventMark(
                    kind=event.kind.value,
                    at=event.occurred_at or now,
                )
            return await self._commit(stream, changes, strict=False)

    async def stop_stream(self, stream_id: str) -> Stream:
        """Explicitly end a session.

        Raises:
            StreamConflictError: If the stream never left ``scheduled`` or is in error
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            if stream.status == StreamStatus.COMPLETED:
                return stream
            if stream.status not in (StreamStatus.ARMED, StreamStatus.LIVE):
                raise StreamConflictError(
                    f"Cannot stop stream {stream_id} in status '{stream.status.value}'"
                )
            logger.info(f"⏹️ Stopping stream {stream_id}")
            return await self._commit(stream, machine.plan_end(stream, self._clock()), strict=False)

    async def force_status(
        self,
        stream_id: str,
        status: StreamStatus,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Stream:
        """Administrative override bypassing provider guards.

        Args:
            stream_id: Stream id
            status: Requested status
            actor: Caller, who must administer the owning memorial
            reason: Free-text note kept in the audit trail

        Returns:
            Stream after the override

        Raises:
            PermissionDeniedError: If the actor may not administer the memorial
            StreamConflictError: If the override moves backwards or breaks the
                single-live rule
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            memorial = await self._memorials.get(stream.memorial_id)
            if not memorial.can_administer(actor):
                raise PermissionDeniedError(
                    f"Actor {actor.uid} may not manage streams of memorial {memorial.id}"
                )

            if status == stream.status:
                return stream
            if not machine.can_force(stream.status, status):
                raise StreamConflictError(
                    f"Cannot force stream {stream_id} from '{stream.status.value}' back to '{status.value}'"
                )

            now = self._clock()
            changes: Dict[str, Any] = {
                "status": status,
                "consecutive_offline_checks": 0,
                "last_override": StatusOverride(
                    actor_id=actor.uid,
                    actor_role=actor.role.value,
                    from_status=stream.status,
                    to_status=status,
                    reason=reason,
                    at=now,
                ),
            }
            if status == StreamStatus.LIVE and stream.started_at is None:
                changes["started_at"] = now
            if status == StreamStatus.COMPLETED and stream.ended_at is None:
                changes["ended_at"] = now
            if status == StreamStatus.COMPLETED and not stream.provider_input_id and not stream.recording_ready:
                changes["needs_manual_recording_check"] = True
            if status == StreamStatus.ERROR:
                changes["error_detail"] = reason or "Forced into error by administrator"
            elif stream.status == StreamStatus.ERROR:
                changes["error_detail"] = None

            updated = await self._commit(stream, changes, strict=True)
            audit_logger.warning(
                f"🛠️ Status override on stream {stream_id}: {stream.status.value} → {status.value} "
                f"by {actor.uid} ({actor.role.value}) reason={reason!r}"
            )
            return updated

    async def mark_recording_timeout(self, stream_id: str) -> Stream:
        """Give up waiting for a recording and flag the stream for follow-up."""
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            if stream.status != StreamStatus.COMPLETED or stream.recording_ready:
                return stream
            logger.warning(f"⚠️ Recording wait timed out for stream {stream_id}")
            return await self._commit(stream, {"needs_manual_recording_check": True}, strict=False)

    async def sweep(self) -> Dict[str, int]:
        """Reconcile every stream that may still change on its own.

        Returns:
            Counts of reconciled and failed streams
        """
        streams = await self._repository.list_by_status(ACTIVE_STATUSES)
        pending = [
            stream for stream in streams
            if stream.status != StreamStatus.COMPLETED or not stream.recording_settled
        ]
        if not pending:
            return {"reconciled": 0, "failed": 0}

        logger.info(f"🔍 Sweeping {len(pending)} active streams")
        results = await asyncio.gather(*(self._sweep_one(stream.id) for stream in pending))
        failed = results.count(False)
        return {"reconciled": len(results) - failed, "failed": failed}

    async def _sweep_one(self, stream_id: str) -> bool:
        try:
            await self.reconcile(stream_id)
            return True
        except StreamReconcilerError as e:
            logger.error(f"❌ Reconciliation failed for stream {stream_id}: {e}")
        except Exception:
            logger.exception(f"❌ Unexpected error reconciling stream {stream_id}")
        return False

    async def _commit(self, stream: Stream, changes: Dict[str, Any], strict: bool) -> Stream:
        """Write the effective part of ``changes``.

        A transition into ``live`` is checked against the other streams of
        the same memorial under the memorial lease. ``strict`` raises on a
        clash; otherwise the transition is dropped and the rest is written.
        """
        changes = machine.diff_changes(stream, changes)
        if not changes:
            return stream

        if changes.get("status") != StreamStatus.LIVE:
            return await self._write(stream, changes)

        async with self._leases.memorial(stream.memorial_id):
            live_streams = await self._repository.list_by_memorial(
                stream.memorial_id, status=StreamStatus.LIVE
            )
            others = [other.id for other in live_streams if other.id != stream.id]
            if others:
                message = (
                    f"Memorial {stream.memorial_id} already has a live stream ({others[0]}); "
                    f"stream {stream.id} stays '{stream.status.value}'"
                )
                if strict:
                    raise StreamConflictError(message)
                logger.warning(f"⚠️ {message}")
                for name in ("status", "started_at", "last_event"):
                    changes.pop(name, None)
                if not changes:
                    return stream
                return await self._write(stream, changes)

            logger.info(f"🔴 Stream {stream.id} is live")
            return await self._write(stream, changes)

    async def _write(self, stream: Stream, changes: Dict[str, Any]) -> Stream:
        projected = stream.model_copy(update=changes)
        projected.check_invariants()
        if "status" in changes:
            logger.info(
                f"✅ Stream {stream.id}: {stream.status.value} → {changes['status'].value}"
            )
        return await self._repository.update(stream.id, changes)
