"""Domain model for normalized vendor webhook events."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .stream import VideoProvider


class WebhookEventKind(Enum):
    """What a vendor event means for a stream."""
    STARTED = "started"
    ENDED = "ended"
    ASSET_READY = "asset_ready"
    ASSET_ERRORED = "asset_errored"
    ERRORED = "errored"


@dataclass
class WebhookEvent:
    """Vendor event reduced to the fields the engine needs."""
    provider: VideoProvider
    kind: WebhookEventKind
    provider_input_id: Optional[str] = None
    provider_asset_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    event_id: Optional[str] = None
    detail: Optional[str] = None
    raw_type: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        """Key identifying redeliveries of the same event."""
        if self.event_id:
            return f"{self.provider.value}:{self.event_id}"
        resource = self.provider_asset_id or self.provider_input_id or "-"
        when = self.occurred_at.isoformat() if self.occurred_at else "-"
        return f"{self.provider.value}:{self.kind.value}:{resource}:{when}"


class WebhookOutcomeStatus(Enum):
    """How an inbound event was handled."""
    APPLIED = "applied"
    NOOP = "noop"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"


@dataclass
class WebhookOutcome:
    """Result of ingesting one webhook payload."""
    status: WebhookOutcomeStatus
    stream_id: Optional[str] = None
    kind: Optional[WebhookEventKind] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'stream_id': self.stream_id,
            'kind': self.kind.value if self.kind else None,
            'message': self.message,
        }
