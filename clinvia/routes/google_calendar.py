"""
Google Calendar Integration Routes
Handles OAuth connection, connection settings and calendar syncing
"""

import logging
from typing import Literal, Optional

from cryptography.fernet import InvalidToken
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import config
from ..api_key import require_api_key
from ..auth import get_panel_caller, resolve_tenant_id
from ..database import get_db
from ..models import Professional
from ..models_google_calendar import ProfessionalGoogleCalendar
from ..services import google_calendar_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-calendar", tags=["google-calendar"])


class OAuthCallbackRequest(BaseModel):
    code: str
    state: str
    redirect_uri: Optional[str] = None


class DisconnectRequest(BaseModel):
    user_id: Optional[str] = None
    connection_id: Optional[str] = None
    professional_id: Optional[str] = None


class SettingsUpdate(BaseModel):
    user_id: Optional[str] = None
    sync_mode: Literal["one_way", "two_way"]


class SyncRequest(BaseModel):
    user_id: str
    appointment_id: str
    action: Literal["sync_appointment", "delete_appointment"] = "sync_appointment"


class PollRequest(BaseModel):
    user_id: str
    connection_id: Optional[str] = None


def _connection_summary(connection: ProfessionalGoogleCalendar) -> dict:
    return {
        "id": connection.id,
        "professional_id": connection.professional_id,
        "professional_name": connection.professional.name if connection.professional else None,
        "google_account_email": connection.google_account_email,
        "calendar_id": connection.calendar_id,
        "sync_mode": connection.sync_mode,
        "is_active": connection.is_active,
        "last_synced_at": connection.last_synced_at,
    }


@router.get("/connect")
async def initiate_google_calendar_oauth(
    user_id: Optional[str] = None,
    professional_id: Optional[str] = None,
    caller: dict = Depends(get_panel_caller),
    db: Session = Depends(get_db),
):
    """Build the Google consent URL for the clinic (or one professional)"""
    tenant_id = resolve_tenant_id(caller, user_id)

    if not config.GOOGLE_CLIENT_ID:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    if professional_id:
        professional = (
            db.query(Professional)
            .filter(Professional.id == professional_id, Professional.user_id == tenant_id)
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")

    state = google_calendar_service.build_oauth_state(tenant_id, professional_id)
    logger.info(f"🔗 Google Calendar connect started for user {tenant_id} (professional={professional_id or 'clinic'})")
    return {"authorization_url": google_calendar_service.build_authorization_url(state)}


@router.post("/callback")
async def handle_google_calendar_callback(payload: OAuthCallbackRequest, db: Session = Depends(get_db)):
    """
    Complete the OAuth flow.
    The frontend receives the redirect from Google and posts code + state here.
    """
    if not payload.code or not payload.state:
        raise HTTPException(status_code=400, detail="Missing code or state")

    return await google_calendar_service.complete_oauth(db, payload.code, payload.state, payload.redirect_uri)


@router.get("/status")
async def get_google_calendar_status(
    user_id: Optional[str] = None,
    caller: dict = Depends(get_panel_caller),
    db: Session = Depends(get_db),
):
    """Connections of the account, clinic first"""
    tenant_id = resolve_tenant_id(caller, user_id)

    connections = (
        db.query(ProfessionalGoogleCalendar)
        .filter(ProfessionalGoogleCalendar.user_id == tenant_id)
        .order_by(
            ProfessionalGoogleCalendar.professional_id.isnot(None),
            ProfessionalGoogleCalendar.created_at.asc(),
        )
        .all()
    )
    clinic = next((c for c in connections if c.professional_id is None and c.is_active), None)

    return {
        "connected": any(c.is_active for c in connections),
        "sync_mode": clinic.sync_mode if clinic else None,
        "connections": [_connection_summary(c) for c in connections],
    }


@router.post("/disconnect")
async def disconnect_google_calendar(
    payload: DisconnectRequest,
    caller: dict = Depends(get_panel_caller),
    db: Session = Depends(get_db),
):
    """Revoke (best effort) and deactivate one connection, or the clinic connection by default"""
    tenant_id = resolve_tenant_id(caller, payload.user_id)

    query = db.query(ProfessionalGoogleCalendar).filter(
        ProfessionalGoogleCalendar.user_id == tenant_id,
        ProfessionalGoogleCalendar.is_active.is_(True),
    )
    if payload.connection_id:
        query = query.filter(ProfessionalGoogleCalendar.id == payload.connection_id)
    elif payload.professional_id:
        query = query.filter(ProfessionalGoogleCalendar.professional_id == payload.professional_id)
    else:
        query = query.filter(ProfessionalGoogleCalendar.professional_id.is_(None))

    connection = query.first()
    if not connection:
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    try:
        token = google_calendar_service.decrypt_token(connection.refresh_token)
    except InvalidToken:
        logger.warning(f"⚠️ Could not decrypt token of connection {connection.id}, skipping revoke")
        token = None
    if token:
        await google_calendar_service.revoke_token(token)

    connection.is_active = False
    db.commit()

    logger.info(f"🔌 Google Calendar connection {connection.id} disconnected")
    return {"success": True, "message": "Google Calendar disconnected"}


@router.patch("/settings")
async def update_google_calendar_settings(
    payload: SettingsUpdate,
    caller: dict = Depends(get_panel_caller),
    db: Session = Depends(get_db),
):
    """Change sync_mode for every connection of the account"""
    tenant_id = resolve_tenant_id(caller, payload.user_id)

    connections = (
        db.query(ProfessionalGoogleCalendar)
        .filter(ProfessionalGoogleCalendar.user_id == tenant_id)
        .all()
    )
    if not connections:
        raise HTTPException(status_code=404, detail="Google Calendar not connected")

    for connection in connections:
        connection.sync_mode = payload.sync_mode
    db.commit()

    logger.info(f"⚙️ sync_mode={payload.sync_mode} for user {tenant_id}")
    return {"success": True, "sync_mode": payload.sync_mode, "updated": len(connections)}


@router.post("/sync", dependencies=[Depends(require_api_key)])
async def sync_appointment(payload: SyncRequest, db: Session = Depends(get_db)):
    """Push (or delete) one appointment on every matching calendar"""
    return await google_calendar_service.sync_appointment(
        db, payload.appointment_id, payload.user_id, payload.action
    )


@router.post("/poll", dependencies=[Depends(require_api_key)])
async def poll_google_calendar(payload: PollRequest, db: Session = Depends(get_db)):
    """Reconcile a tenant's calendars now instead of waiting for the worker"""
    return await google_calendar_service.poll_connections(db, payload.user_id, payload.connection_id)
