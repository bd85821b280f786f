"""Turns inbound vendor webhooks into reconciliation engine calls."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cachetools import TTLCache

from ..exceptions import StreamNotFoundError, StreamReconcilerError
from ..models.stream import VideoProvider
from ..models.webhook_event import (
    WebhookEvent,
    WebhookEventKind,
    WebhookOutcome,
    WebhookOutcomeStatus,
)
from ..ports.stream_repository import StreamRepositoryPort
from .reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

CLOUDFLARE_NOTIFICATION_KINDS = {
    "live_input.connected": WebhookEventKind.STARTED,
    "live_input.disconnected": WebhookEventKind.ENDED,
    "live_input.errored": WebhookEventKind.ERRORED,
}

CLOUDFLARE_LIVE_INPUT_KINDS = {
    "live-input.connected": WebhookEventKind.STARTED,
    "live-input.disconnected": WebhookEventKind.ENDED,
    "live-input.recording.ready": WebhookEventKind.ASSET_READY,
}

CLOUDFLARE_VIDEO_KINDS = {
    "ready": WebhookEventKind.ASSET_READY,
    "error": WebhookEventKind.ASSET_ERRORED,
}

# video.live_stream.disconnected is left out: within the reconnect window it is a flap.
MUX_KINDS = {
    "video.live_stream.active": WebhookEventKind.STARTED,
    "video.live_stream.idle": WebhookEventKind.ENDED,
    "video.asset.ready": WebhookEventKind.ASSET_READY,
    "video.asset.errored": WebhookEventKind.ASSET_ERRORED,
}


def _parse_time(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings or unix seconds; anything else is None."""
    if value in (None, ""):
        return None
    try:
        if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        logger.debug(f"Unparseable event time: {value!r}")
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    """Payload ids and type tags must be non-empty strings; anything else is None."""
    return value if isinstance(value, str) and value else None


def detect_provider(payload: Dict[str, Any]) -> Optional[VideoProvider]:
    """Guess the vendor from the envelope shape."""
    event_type = payload.get("type")
    if isinstance(event_type, str) and event_type.startswith("video."):
        return VideoProvider.MUX
    if "eventType" in payload or "uid" in payload or "event_type" in _as_dict(payload.get("data")):
        return VideoProvider.CLOUDFLARE
    return None


def normalize_cloudflare_event(payload: Dict[str, Any]) -> Optional[WebhookEvent]:
    """Map the three Cloudflare Stream webhook shapes onto a WebhookEvent."""
    data = _as_dict(payload.get("data"))
    event_type, input_id = _as_str(data.get("event_type")), _as_str(data.get("input_id"))
    if event_type in CLOUDFLARE_NOTIFICATION_KINDS and input_id:
        error = _as_dict(_as_dict(data.get("live_input_errored")).get("error"))
        return WebhookEvent(
            provider=VideoProvider.CLOUDFLARE,
            kind=CLOUDFLARE_NOTIFICATION_KINDS[event_type],
            provider_input_id=input_id,
            occurred_at=_parse_time(data.get("updated_at") or payload.get("ts")),
            detail=_as_str(error.get("message")),
            raw_type=event_type,
        )

    event_type = _as_str(payload.get("eventType"))
    input_id = _as_str(_as_dict(payload.get("liveInput")).get("uid"))
    if event_type in CLOUDFLARE_LIVE_INPUT_KINDS and input_id:
        return WebhookEvent(
            provider=VideoProvider.CLOUDFLARE,
            kind=CLOUDFLARE_LIVE_INPUT_KINDS[event_type],
            provider_input_id=input_id,
            provider_asset_id=_as_str(_as_dict(payload.get("recording")).get("uid")),
            occurred_at=_parse_time(payload.get("eventTime")),
            raw_type=event_type,
        )

    status = _as_dict(payload.get("status"))
    state, asset_id = _as_str(status.get("state")), _as_str(payload.get("uid"))
    if asset_id and state in CLOUDFLARE_VIDEO_KINDS:
        return WebhookEvent(
            provider=VideoProvider.CLOUDFLARE,
            kind=CLOUDFLARE_VIDEO_KINDS[state],
            provider_input_id=_as_str(payload.get("liveInput")),
            provider_asset_id=asset_id,
            occurred_at=_parse_time(payload.get("modified")),
            detail=_as_str(status.get("errReasonText")),
            raw_type=f"video.{state}",
        )
    return None


def normalize_mux_event(payload: Dict[str, Any]) -> Optional[WebhookEvent]:
    """Map a Mux webhook envelope onto a WebhookEvent."""
    event_type = _as_str(payload.get("type"))
    kind = MUX_KINDS.get(event_type) if event_type else None
    if kind is None:
        return None

    data = _as_dict(payload.get("data"))
    obj = _as_dict(payload.get("object"))
    if kind in (WebhookEventKind.STARTED, WebhookEventKind.ENDED):
        input_id, asset_id = _as_str(obj.get("id")) or _as_str(data.get("id")), None
    else:
        input_id = _as_str(data.get("live_stream_id"))
        asset_id = _as_str(data.get("id")) or _as_str(obj.get("id"))

    if not (input_id or asset_id):
        return None

    errors = _as_dict(data.get("errors"))
    messages = errors.get("messages")
    if not isinstance(messages, list):
        messages = []
    return WebhookEvent(
        provider=VideoProvider.MUX,
        kind=kind,
        provider_input_id=input_id,
        provider_asset_id=asset_id,
        occurred_at=_parse_time(payload.get("created_at")),
        event_id=_as_str(payload.get("id")),
        detail="; ".join(str(message) for message in messages) or None,
        raw_type=event_type,
    )


class WebhookIngestionService:
    """Validates vendor webhooks and hands them to the engine.

    Business conditions (unknown event, unknown stream, replay, rejected
    transition) are acknowledged, never raised, so vendors do not retry
    them forever; polling covers any event lost this way.
    """

    def __init__(
        self,
        repository: StreamRepositoryPort,
        reconciliation_service: ReconciliationService,
        dedup_ttl: float = 3600,
        dedup_maxsize: int = 10000,
    ):
        """Initialize the ingestion service.

        Args:
            repository: Stream store used to resolve vendor ids
            reconciliation_service: Engine applying the events
            dedup_ttl: Seconds an applied event key is remembered
            dedup_maxsize: Maximum remembered event keys
        """
        self._repository = repository
        self._engine = reconciliation_service
        self._seen = TTLCache(maxsize=dedup_maxsize, ttl=dedup_ttl)

    def normalize(
        self,
        payload: Dict[str, Any],
        provider: Optional[VideoProvider] = None,
    ) -> Optional[WebhookEvent]:
        """Normalize a raw payload, or None if it is not a recognised event."""
        provider = provider or detect_provider(payload)
        if provider == VideoProvider.CLOUDFLARE:
            return normalize_cloudflare_event(payload)
        if provider == VideoProvider.MUX:
            return normalize_mux_event(payload)
        return None

    async def handle_webhook_event(
        self,
        payload: Dict[str, Any],
        provider: Optional[VideoProvider] = None,
    ) -> WebhookOutcome:
        """Ingest one vendor webhook payload.

        Args:
            payload: Decoded JSON body
            provider: Vendor tag when known from the endpoint

        Returns:
            How the event was handled
        """
        event = self.normalize(payload, provider)
        if event is None:
            raw_type = payload.get("type") or payload.get("eventType") or _as_dict(payload.get("data")).get("event_type")
            logger.info(f"ℹ️ Ignoring unrecognised webhook: {raw_type!r}")
            return WebhookOutcome(status=WebhookOutcomeStatus.IGNORED, message=f"Unrecognised event: {raw_type}")

        if event.dedup_key in self._seen:
            logger.info(f"🔁 Duplicate webhook {event.dedup_key}")
            return WebhookOutcome(
                status=WebhookOutcomeStatus.DUPLICATE,
                stream_id=self._seen[event.dedup_key],
                kind=event.kind,
            )

        stream = await self._repository.find_by_provider_id(
            event.provider,
            provider_input_id=event.provider_input_id,
        ) if event.provider_input_id else None
        if stream is None and event.provider_asset_id:
            stream = await self._repository.find_by_provider_id(
                event.provider,
                provider_asset_id=event.provider_asset_id,
            )
        if stream is None:
            logger.warning(
                f"⚠️ No stream for {event.provider.value} webhook {event.raw_type} "
                f"(input={event.provider_input_id}, asset={event.provider_asset_id})"
            )
            return WebhookOutcome(
                status=WebhookOutcomeStatus.UNMATCHED,
                kind=event.kind,
                message="Stream not found, ignoring",
            )

        logger.info(f"📡 {event.provider.value} webhook {event.raw_type} → stream {stream.id}")
        try:
            updated = await self._engine.apply_event(stream.id, event)
        except StreamNotFoundError:
            return WebhookOutcome(status=WebhookOutcomeStatus.UNMATCHED, kind=event.kind, message="Stream deleted")
        except StreamReconcilerError as e:
            logger.warning(f"⚠️ Webhook for stream {stream.id} not applied: {e}")
            return WebhookOutcome(
                status=WebhookOutcomeStatus.IGNORED,
                stream_id=stream.id,
                kind=event.kind,
                message=str(e),
            )

        self._seen[event.dedup_key] = stream.id
        changed = updated.model_dump(exclude={"updated_at"}) != stream.model_dump(exclude={"updated_at"})
        return WebhookOutcome(
            status=WebhookOutcomeStatus.APPLIED if changed else WebhookOutcomeStatus.NOOP,
            stream_id=stream.id,
            kind=event.kind,
        )
