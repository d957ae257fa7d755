"""Webhook handling endpoints."""

from fastapi import APIRouter, Depends, Header, Query, Request
from typing import Optional
import logging

from jira_integration.schemas.integration import ProcessorStatus, WebhookAccepted, WebhookEventResponse
from jira_integration.services import WebhookProcessor, WebhookService
from jira_integration.api.dependencies import (
    get_current_user,
    get_webhook_processor,
    get_webhook_service,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/jira/{project_id}")
async def handle_jira_webhook(
    project_id: str,
    request: Request,
    x_hub_signature: Optional[str] = Header(None),
    service: WebhookService = Depends(get_webhook_service),
):
    """Receive a Jira webhook. Processing happens after the response."""
    body = await request.body()
    event, queued = await service.ingest(project_id, body, x_hub_signature)
    return {"success": True, "data": WebhookAccepted(event_id=event.id, queued=queued)}


@router.get("/events")
async def list_webhook_events(
    integration_id: Optional[str] = None,
    processed: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=500),
    current_user=Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service),
):
    """Recent webhook deliveries, newest first."""
    events = await service.list_events(integration_id, processed, limit)
    return {
        "success": True,
        "data": [WebhookEventResponse(**event.model_dump()) for event in events],
    }


@router.get("/events/{event_id}")
async def get_webhook_event(
    event_id: str,
    current_user=Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service),
):
    """One stored delivery, including its payload."""
    event = await service.get_event(event_id)
    return {"success": True, "data": event.model_dump()}


@router.get("/processor")
async def get_processor_status(
    current_user=Depends(get_current_user),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Queue depth, in-flight work and recent failures."""
    return {"success": True, "data": ProcessorStatus(**processor.status())}


@router.post("/events/{integration_id}/replay")
async def replay_webhook_events(
    integration_id: str,
    current_user=Depends(get_current_user),
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Queue an integration's unprocessed events again."""
    count = await processor.replay(integration_id)
    return {"success": True, "data": {"replayed": count}}
