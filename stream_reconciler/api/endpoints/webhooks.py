"""Inbound video provider webhooks."""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ...domain.models.stream import VideoProvider
from ...domain.services.webhook_ingestion_service import WebhookIngestionService
from ...infrastructure.dependencies import get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_payload(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("⚠️ Webhook body is not valid JSON")
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")
    return payload


async def _ingest(
    request: Request,
    webhook_service: WebhookIngestionService,
    provider: Optional[VideoProvider],
) -> Dict[str, Any]:
    payload = await _read_payload(request)
    outcome = await webhook_service.handle_webhook_event(payload, provider=provider)
    return outcome.to_dict()


@router.post("/cloudflare")
async def cloudflare_webhook(
    request: Request,
    webhook_service: WebhookIngestionService = Depends(get_webhook_service),
) -> Dict[str, Any]:
    """Cloudflare Stream live input and video notifications."""
    return await _ingest(request, webhook_service, VideoProvider.CLOUDFLARE)


@router.post("/mux")
async def mux_webhook(
    request: Request,
    webhook_service: WebhookIngestionService = Depends(get_webhook_service),
) -> Dict[str, Any]:
    """Mux live stream and asset notifications."""
    return await _ingest(request, webhook_service, VideoProvider.MUX)


@router.post("")
async def generic_webhook(
    request: Request,
    webhook_service: WebhookIngestionService = Depends(get_webhook_service),
) -> Dict[str, Any]:
    """Webhook with the provider detected from the envelope."""
    return await _ingest(request, webhook_service, None)
