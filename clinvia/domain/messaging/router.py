"""
Messaging routes
Gateway webhooks (public, signed, rate limited), outbound sends and ticket resolution from the panel
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_panel_caller
from ...database import get_db
from ...rate_limiter import webhook_rate_limit
from ...shared.validators import validate_webhook_payload
from ...webhook_security import verify_gateway_webhook
from .conversation_service import ConversationService
from .schemas import ResolveConversationResponse, SendMessageRequest, SendMessageResponse
from .send_service import MessageSendService
from .webhook_service import WebhookRejected, WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messaging"])


def get_webhook_service(db: Session = Depends(get_db)) -> WebhookService:
    return WebhookService(db)


def get_send_service(db: Session = Depends(get_db)) -> MessageSendService:
    return MessageSendService(db)


def get_conversation_service(db: Session = Depends(get_db)) -> ConversationService:
    return ConversationService(db)


async def _read_webhook_payload(request: Request) -> dict:
    """Signature check, JSON parse and payload validation shared by both webhooks"""
    _, raw_body = await verify_gateway_webhook(request, config.WEBHOOK_HMAC_SECRET)

    try:
        payload = json.loads(raw_body.decode() or "null")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    errors = validate_webhook_payload(payload)
    if errors:
        logger.warning(f"🚫 Rejected webhook payload: {errors}")
        raise HTTPException(status_code=400, detail="; ".join(errors))

    return payload


@router.post("/webhooks/message")
async def message_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
    _: None = Depends(webhook_rate_limit),
):
    """
    Message events from the gateway - Rate limited per client IP

    Security:
    - HMAC-SHA256 signature when WEBHOOK_HMAC_SECRET is set
    - Payload validation before any database work
    """
    payload = await _read_webhook_payload(request)
    try:
        return await service.handle_message(payload)
    except WebhookRejected as e:
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})


@router.post("/webhooks/status")
async def status_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
    _: None = Depends(webhook_rate_limit),
):
    """Read receipts and ACK events from the gateway"""
    payload = await _read_webhook_payload(request)
    return service.handle_status(payload)


@router.post("/messages/send", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    caller: dict = Depends(get_panel_caller),
    service: MessageSendService = Depends(get_send_service),
):
    """
    Send a text or media message on a conversation (opened on demand for agents)
    Callers are a signed-in agent (Bearer JWT) or an automation (x-api-key)
    """
    return await service.send(request, caller["agent"])


@router.post("/conversations/{conversation_id}/resolve", response_model=ResolveConversationResponse)
async def resolve_conversation(
    conversation_id: str,
    caller: dict = Depends(get_panel_caller),
    service: ConversationService = Depends(get_conversation_service),
):
    """Close a ticket: status resolved, unread counter cleared, follow-up stopped"""
    return service.resolve(conversation_id, caller["agent"])
