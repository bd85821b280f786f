"""Domain model for memorial livestreams."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

from ..exceptions import InvalidStreamError


class StreamStatus(str, Enum):
    """Lifecycle status of a stream."""
    SCHEDULED = "scheduled"
    ARMED = "armed"
    LIVE = "live"
    COMPLETED = "completed"
    ERROR = "error"


# Forward order of the lifecycle; ERROR sits outside it.
LIFECYCLE_ORDER = (
    StreamStatus.SCHEDULED,
    StreamStatus.ARMED,
    StreamStatus.LIVE,
    StreamStatus.COMPLETED,
)


class StreamVisibility(str, Enum):
    """Administrative visibility overlay, independent of status."""
    PUBLIC = "public"
    HIDDEN = "hidden"
    ARCHIVED = "archived"


class VideoProvider(str, Enum):
    """Video vendor backing a stream."""
    CLOUDFLARE = "cloudflare"
    MUX = "mux"


class DocumentModel(BaseModel):
    """Base for models persisted as camelCase documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class IngestCredentials(DocumentModel):
    """Connection details a broadcaster needs to push video."""

    ingest_url: Optional[str] = None
    stream_key: Optional[str] = None
    whip_url: Optional[str] = None
    playback_url: Optional[str] = None

    def masked(self) -> "IngestCredentials":
        """Copy with the stream key hidden."""
        if not self.stream_key:
            return self.model_copy()
        return self.model_copy(update={"stream_key": "****" + self.stream_key[-4:]})


class Recording(DocumentModel):
    """Recording attached to a completed stream."""

    ready: bool = False
    asset_id: Optional[str] = None
    playback_url: Optional[str] = None
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None


class StatusOverride(DocumentModel):
    """Audit trail of the last administrative status override."""

    actor_id: str
    actor_role: str
    from_status: StreamStatus
    to_status: StreamStatus
    reason: Optional[str] = None
    at: datetime


class StreamEventMark(DocumentModel):
    """Last webhook event that changed the record."""

    kind: str
    at: datetime


class Stream(DocumentModel):
    """A livestream broadcast belonging to one memorial."""

    id: Optional[str] = None
    memorial_id: str = Field(..., min_length=1)
    title: Optional[str] = None
    provider: VideoProvider
    status: StreamStatus = StreamStatus.SCHEDULED
    visibility: StreamVisibility = StreamVisibility.PUBLIC

    provider_input_id: Optional[str] = None
    provider_asset_id: Optional[str] = None
    ingest_credentials: Optional[IngestCredentials] = None

    scheduled_start_time: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    recording: Optional[Recording] = None
    needs_manual_recording_check: bool = False
    consecutive_offline_checks: int = 0
    error_detail: Optional[str] = None
    last_override: Optional[StatusOverride] = None
    last_event: Optional[StreamEventMark] = None

    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_visible(self) -> bool:
        return self.visibility == StreamVisibility.PUBLIC

    @property
    def recording_ready(self) -> bool:
        return bool(self.recording and self.recording.ready)

    @property
    def recording_settled(self) -> bool:
        """True once polling for a recording should stop."""
        return self.recording_ready or self.needs_manual_recording_check

    def check_invariants(self) -> None:
        """Raise InvalidStreamError if the record is internally inconsistent."""
        if self.recording_ready:
            if not self.provider_asset_id:
                raise InvalidStreamError("Ready recording requires providerAssetId")
            if not self.recording.playback_url:
                raise InvalidStreamError("Ready recording requires a playback URL")
        if self.started_at and self.ended_at and self.ended_at < self.started_at:
            raise InvalidStreamError("endedAt precedes startedAt")

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store (id lives in the document key)."""
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Stream":
        """Rebuild a stream from a stored document."""
        return cls.model_validate({**data, "id": doc_id})


# Fields fixed at creation.
IMMUTABLE_FIELDS = frozenset({"id", "memorial_id", "provider", "created_at", "created_by"})


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a partial update keyed by attribute name into document fields.

    Args:
        fields: Attribute name -> new value

    Returns:
        camelCase field name -> JSON-compatible value

    Raises:
        InvalidStreamError: If a field is unknown or immutable
    """
    encoded = {}
    for name, value in fields.items():
        if name not in Stream.model_fields:
            raise InvalidStreamError(f"Unknown stream field: {name}")
        if name in IMMUTABLE_FIELDS:
            raise InvalidStreamError(f"Stream field is immutable: {name}")
        encoded[to_camel(name)] = to_jsonable_python(value, by_alias=True)
    return encoded
