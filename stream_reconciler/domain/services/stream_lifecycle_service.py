"""Domain service for stream creation, arming and administrative overlays."""

import logging
from datetime import datetime
from typing import List, Mapping, Optional

from ..exceptions import (
    PermissionDeniedError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    StreamConflictError,
)
from ..models.memorial import Actor, Memorial
from ..models.provider_state import LiveInputRequest, ResourceKind
from ..models.stream import (
    IngestCredentials,
    Stream,
    StreamStatus,
    StreamVisibility,
    VideoProvider,
)
from ..ports.memorial_repository import MemorialRepositoryPort
from ..ports.stream_repository import StreamRepositoryPort
from ..ports.video_provider import VideoProviderPort
from .stream_leases import StreamLeaseManager

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("stream_reconciler.audit")


class StreamLifecycleService:
    """Operator-driven stream operations outside the automated engine.

    Shares the lease manager with the reconciliation engine so that every
    write to a given stream is serialized.
    """

    def __init__(
        self,
        repository: StreamRepositoryPort,
        memorials: MemorialRepositoryPort,
        providers: Mapping[VideoProvider, VideoProviderPort],
        leases: StreamLeaseManager,
    ):
        self._repository = repository
        self._memorials = memorials
        self._providers = providers
        self._leases = leases

    def _provider(self, provider: VideoProvider) -> VideoProviderPort:
        adapter = self._providers.get(provider)
        if adapter is None:
            raise ProviderNotConfiguredError(f"No video provider configured for '{provider.value}'")
        return adapter

    async def _authorize(self, stream: Stream, actor: Actor) -> Memorial:
        memorial = await self._memorials.get(stream.memorial_id)
        if not memorial.can_administer(actor):
            raise PermissionDeniedError(
                f"Actor {actor.uid} may not manage streams of memorial {memorial.id}"
            )
        return memorial

    async def create_stream(
        self,
        memorial_id: str,
        provider: VideoProvider,
        title: Optional[str] = None,
        created_by: Optional[str] = None,
        arm: bool = True,
        scheduled_start_time: Optional[datetime] = None,
    ) -> Stream:
        """Create a stream for a memorial, optionally arming it right away.

        Args:
            memorial_id: Owning memorial
            provider: Video vendor to allocate the live input with
            title: Display title, also used as the vendor input name
            created_by: Uid of the creating operator
            arm: Allocate ingest credentials immediately
            scheduled_start_time: Planned start of the service

        Returns:
            The stored stream (``armed`` when ``arm`` is set)

        Raises:
            MemorialNotFoundError: If the memorial does not exist
            ProviderNotConfiguredError: If the provider has no adapter
        """
        await self._memorials.get(memorial_id)
        self._provider(provider)

        stream = Stream(
            memorial_id=memorial_id,
            provider=provider,
            title=title,
            created_by=created_by,
            scheduled_start_time=scheduled_start_time,
        )
        stream_id = await self._repository.create(stream)
        logger.info(f"✅ Created stream {stream_id} for memorial {memorial_id} ({provider.value})")

        if arm:
            return await self.arm_stream(stream_id)
        return await self._repository.get(stream_id)

    async def arm_stream(self, stream_id: str) -> Stream:
        """Allocate a live input and move ``scheduled → armed``.

        Raises:
            StreamConflictError: If the stream is past ``armed``
            ProviderRejectedError: Vendor refused; the stream moves to ``error``
            ProviderUnavailableError: Vendor unreachable; the stream stays ``scheduled``
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            if stream.status == StreamStatus.ARMED:
                return stream
            if stream.status != StreamStatus.SCHEDULED:
                raise StreamConflictError(
                    f"Cannot arm stream {stream_id} in status '{stream.status.value}'"
                )

            adapter = self._provider(stream.provider)
            request = LiveInputRequest(
                name=stream.title or f"memorial-{stream.memorial_id}",
                memorial_id=stream.memorial_id,
                stream_id=stream_id,
            )
            try:
                allocation = await adapter.create_live_input(request)
            except ProviderRejectedError as e:
                logger.error(f"❌ Provider rejected live input for stream {stream_id}: {e}")
                await self._repository.update(
                    stream_id,
                    {"status": StreamStatus.ERROR, "error_detail": str(e)},
                )
                raise

            logger.info(f"🎬 Stream {stream_id} armed with input {allocation.provider_input_id}")
            return await self._repository.update(
                stream_id,
                {
                    "status": StreamStatus.ARMED,
                    "provider_input_id": allocation.provider_input_id,
                    "ingest_credentials": allocation.ingest_credentials,
                    "error_detail": None,
                },
            )

    async def set_visibility(self, stream_id: str, visibility: StreamVisibility) -> Stream:
        """Change the visibility overlay without touching lifecycle fields."""
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            if stream.visibility == visibility:
                return stream
            logger.info(f"👁️ Stream {stream_id} visibility: {stream.visibility.value} → {visibility.value}")
            return await self._repository.update(stream_id, {"visibility": visibility})

    async def get_ingest_credentials(self, stream_id: str, actor: Actor) -> Optional[IngestCredentials]:
        """Full ingest credentials, for operators of the owning memorial."""
        stream = await self._repository.get(stream_id)
        await self._authorize(stream, actor)
        return stream.ingest_credentials

    async def list_by_memorial(
        self,
        memorial_id: str,
        status: Optional[StreamStatus] = None,
        visibility: Optional[StreamVisibility] = None,
    ) -> List[Stream]:
        return await self._repository.list_by_memorial(memorial_id, status=status, visibility=visibility)

    async def delete_stream(self, stream_id: str, actor: Actor) -> None:
        """Delete a stream and, best effort, its vendor resources.

        Raises:
            PermissionDeniedError: If the actor may not administer the memorial
        """
        async with self._leases.stream(stream_id):
            stream = await self._repository.get(stream_id)
            await self._authorize(stream, actor)

            adapter = self._providers.get(stream.provider)
            if adapter is None:
                logger.warning(f"⚠️ No adapter for {stream.provider.value}; vendor resources of {stream_id} left in place")
            else:
                if stream.provider_input_id:
                    await adapter.delete_resource(stream.provider_input_id, ResourceKind.LIVE_INPUT)
                if stream.provider_asset_id:
                    await adapter.delete_resource(stream.provider_asset_id, ResourceKind.ASSET)

            await self._repository.delete(stream_id)
            audit_logger.warning(
                f"🗑️ Stream {stream_id} of memorial {stream.memorial_id} deleted by {actor.uid} ({actor.role.value})"
            )
