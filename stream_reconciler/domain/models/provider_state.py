"""Vendor-neutral views of video provider state."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .stream import IngestCredentials


class RecordingState(Enum):
    """Normalized processing state of a recorded asset."""
    PROCESSING = "processing"
    READY = "ready"
    ERRORED = "errored"


class ResourceKind(Enum):
    """Kind of vendor resource to delete."""
    LIVE_INPUT = "live_input"
    ASSET = "asset"


@dataclass
class LiveInputRequest:
    """Parameters for allocating a live input."""
    name: str
    memorial_id: str
    stream_id: Optional[str] = None


@dataclass
class LiveInputAllocation:
    """Result of allocating a live input."""
    provider_input_id: str
    ingest_credentials: IngestCredentials


@dataclass
class LiveStatus:
    """Live status of an ingest endpoint.

    A negative status with a warning means the vendor could not be read,
    not that the broadcast stopped.
    """
    is_live: bool
    preview_url: Optional[str] = None
    hls_url: Optional[str] = None
    vendor_state: Optional[str] = None
    warning: Optional[str] = None

    @property
    def is_reliable(self) -> bool:
        return self.warning is None


@dataclass
class RecordingAsset:
    """A recorded VOD asset produced from a live input."""
    asset_id: str
    state: RecordingState
    playback_url: Optional[str] = None
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_ready(self) -> bool:
        return self.state == RecordingState.READY and bool(self.playback_url)
