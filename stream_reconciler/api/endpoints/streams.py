"""API endpoints for memorial livestreams."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ...domain.exceptions import StreamReconcilerError
from ...domain.models.memorial import Actor, ActorRole
from ...domain.models.stream import Stream, StreamStatus, StreamVisibility, VideoProvider
from ...domain.ports.stream_repository import StreamRepositoryPort
from ...domain.services.reconciliation_service import ReconciliationService
from ...domain.services.stream_lifecycle_service import StreamLifecycleService
from ...infrastructure.dependencies import (
    get_lifecycle_service,
    get_poll_scheduler,
    get_reconciliation_service,
    get_stream_repository,
)
from ...infrastructure.scheduling.poll_scheduler import StreamPollScheduler
from ..errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/streams", tags=["streams"])
memorial_router = APIRouter(prefix="/memorials", tags=["streams"])


# Request Models
class CamelModel(BaseModel):
    """Request body accepting camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateStreamRequest(CamelModel):
    """Request to create a stream for a memorial."""
    memorial_id: str = Field(..., min_length=1)
    provider: VideoProvider
    title: Optional[str] = None
    arm: bool = Field(True, description="Allocate ingest credentials immediately")
    scheduled_start_time: Optional[datetime] = None


class VisibilityRequest(CamelModel):
    """Request to change the visibility overlay."""
    visibility: StreamVisibility


class ForceStatusRequest(CamelModel):
    """Administrative status override."""
    status: StreamStatus
    reason: Optional[str] = None


def stream_payload(stream: Stream) -> Dict[str, Any]:
    """Public representation: camelCase, masked stream key, derived isVisible."""
    payload = stream.model_dump(mode="json", by_alias=True)
    if stream.ingest_credentials is not None:
        payload["ingestCredentials"] = stream.ingest_credentials.masked().model_dump(mode="json", by_alias=True)
    payload["isVisible"] = stream.is_visible
    return payload


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Caller identity forwarded by the authenticating gateway."""
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id / X-Actor-Role headers")
    try:
        return Actor(uid=x_actor_id, role=ActorRole(x_actor_role))
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown actor role: {x_actor_role}")


@router.post("", status_code=201)
async def create_stream(
    request: CreateStreamRequest,
    x_actor_id: Optional[str] = Header(None),
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Create a stream, armed unless ``arm`` is false.

    Args:
        request: Stream creation request
        x_actor_id: Uid of the creating operator
        lifecycle_service: Stream lifecycle service

    Returns:
        Created stream
    """
    logger.info(f"🎬 Creating {request.provider.value} stream for memorial {request.memorial_id}")
    try:
        stream = await lifecycle_service.create_stream(
            memorial_id=request.memorial_id,
            provider=request.provider,
            title=request.title,
            created_by=x_actor_id,
            arm=request.arm,
            scheduled_start_time=request.scheduled_start_time,
        )
        return stream_payload(stream)
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.get("/{stream_id}")
async def get_stream(
    stream_id: str,
    repository: StreamRepositoryPort = Depends(get_stream_repository),
) -> Dict[str, Any]:
    """Read a stream record."""
    try:
        return stream_payload(await repository.get(stream_id))
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.post("/{stream_id}/arm")
async def arm_stream(
    stream_id: str,
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Allocate a live input for a scheduled stream."""
    try:
        return stream_payload(await lifecycle_service.arm_stream(stream_id))
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.post("/{stream_id}/reconcile")
async def reconcile_stream(
    stream_id: str,
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    """Run one reconciliation pass against the provider."""
    try:
        return stream_payload(await reconciliation_service.reconcile(stream_id))
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.post("/{stream_id}/stop")
async def stop_stream(
    stream_id: str,
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    """End a session explicitly."""
    try:
        return stream_payload(await reconciliation_service.stop_stream(stream_id))
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.post("/{stream_id}/recording-check", status_code=202)
async def check_recording(
    stream_id: str,
    repository: StreamRepositoryPort = Depends(get_stream_repository),
    scheduler: StreamPollScheduler = Depends(get_poll_scheduler),
) -> Dict[str, Any]:
    """Poll the provider for the stream's recording in the background."""
    try:
        await repository.get(stream_id)
    except StreamReconcilerError as e:
        raise to_http_exception(e)

    scheduled = scheduler.schedule_recording_check(stream_id)
    logger.info(f"📹 Recording check for stream {stream_id}: {'scheduled' if scheduled else 'already running'}")
    return {"streamId": stream_id, "scheduled": scheduled}


@router.put("/{stream_id}/visibility")
async def set_visibility(
    stream_id: str,
    request: VisibilityRequest,
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Change the visibility overlay; lifecycle status is untouched."""
    try:
        return stream_payload(await lifecycle_service.set_visibility(stream_id, request.visibility))
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.post("/{stream_id}/force-status")
async def force_status(
    stream_id: str,
    request: ForceStatusRequest,
    actor: Actor = Depends(get_actor),
    reconciliation_service: ReconciliationService = Depends(get_reconciliation_service),
) -> Dict[str, Any]:
    """Administrative status override, recorded in the audit log."""
    try:
        stream = await reconciliation_service.force_status(
            stream_id,
            request.status,
            actor,
            reason=request.reason,
        )
        return stream_payload(stream)
    except StreamReconcilerError as e:
        raise to_http_exception(e)


@router.get("/{stream_id}/credentials")
async def get_credentials(
    stream_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> Dict[str, Any]:
    """Unmasked ingest credentials for the memorial's operators."""
    try:
        credentials = await lifecycle_service.get_ingest_credentials(stream_id, actor)
    except StreamReconcilerError as e:
        raise to_http_exception(e)
    if credentials is None:
        raise HTTPException(status_code=404, detail=f"Stream {stream_id} has no ingest credentials yet")
    return credentials.model_dump(mode="json", by_alias=True)


@router.delete("/{stream_id}", status_code=204)
async def delete_stream(
    stream_id: str,
    actor: Actor = Depends(get_actor),
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> Response:
    """Delete a stream and its vendor resources."""
    try:
        await lifecycle_service.delete_stream(stream_id, actor)
    except StreamReconcilerError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@memorial_router.get("/{memorial_id}/streams")
async def list_memorial_streams(
    memorial_id: str,
    status: Optional[StreamStatus] = None,
    visibility: Optional[StreamVisibility] = None,
    lifecycle_service: StreamLifecycleService = Depends(get_lifecycle_service),
) -> List[Dict[str, Any]]:
    """List a memorial's streams, optionally filtered by status and visibility."""
    try:
        streams = await lifecycle_service.list_by_memorial(memorial_id, status=status, visibility=visibility)
    except StreamReconcilerError as e:
        raise to_http_exception(e)
    return [stream_payload(stream) for stream in streams]
