"""
Google Calendar Service
Handles OAuth tokens, event formatting, two-way sync and polling
"""

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote, urlencode
from zoneinfo import ZoneInfo

import httpx
from cryptography.fernet import Fernet, InvalidToken
from dateutil import parser as date_parser
from fastapi import HTTPException
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .. import config
from ..models import Appointment, Professional
from ..models_google_calendar import AppointmentGoogleEvent, ProfessionalGoogleCalendar
from ..shared import outbound
from ..shared.timezones import get_tenant_timezone, local_to_utc, utc_to_local, utcnow

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

TOKEN_REFRESH_MARGIN = timedelta(minutes=5)
OAUTH_STATE_MAX_AGE = timedelta(hours=1)
OAUTH_STATE_SALT = "google-calendar-oauth"
POLL_WINDOW_DAYS = 60
EVENT_COLOR_ID = "5"
APPOINTMENT_ID_PROPERTY = "clinvia_appointment_id"

STATUS_LABELS = {
    "pending": "Pendente",
    "confirmed": "Confirmado",
    "rescheduled": "Reagendado",
    "completed": "Concluído",
    "canceled": "Cancelado",
}


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


def _cipher() -> Fernet:
    # Any SECRET_KEY maps onto a valid 32-byte Fernet key
    key = base64.urlsafe_b64encode(hashlib.sha256(config.SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(token: str) -> str:
    return _cipher().encrypt(token.encode()).decode()


def decrypt_token(token: str) -> str:
    return _cipher().decrypt(token.encode()).decode()


# ============================================================================
# OAUTH
# ============================================================================


def _state_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.SECRET_KEY, salt=OAUTH_STATE_SALT)


def build_oauth_state(user_id: str, professional_id: Optional[str] = None) -> str:
    """Sign the tenant and professional being connected into a time-limited OAuth state"""
    state = {
        "user_id": user_id,
        "professional_id": professional_id,
        "nonce": secrets.token_hex(16),
    }
    return _state_serializer().dumps(state)


def decode_oauth_state(state: str, max_age: Optional[timedelta] = None) -> dict:
    """
    Verify and decode an OAuth state

    Raises:
        ValueError: expired, tampered or malformed state
    """
    max_age = max_age if max_age is not None else OAUTH_STATE_MAX_AGE
    try:
        data = _state_serializer().loads(state, max_age=int(max_age.total_seconds()))
    except SignatureExpired as e:
        logger.warning("⚠️ Expired Google OAuth state")
        raise ValueError("State expired, please reconnect") from e
    except BadSignature as e:
        logger.warning("🚫 Google OAuth state with invalid signature")
        raise ValueError("Invalid state parameter") from e

    if not isinstance(data, dict) or not data.get("user_id"):
        raise ValueError("Missing user_id in state")
    return data


def build_authorization_url(state: str, redirect_uri: Optional[str] = None) -> str:
    params = {
        "client_id": config.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri or config.GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str, redirect_uri: Optional[str] = None) -> dict:
    """Exchange an authorization code for tokens"""
    async with outbound.client() as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": config.GOOGLE_CLIENT_ID,
                "client_secret": config.GOOGLE_CLIENT_SECRET,
                "redirect_uri": redirect_uri or config.GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )

    try:
        tokens = response.json()
    except ValueError:
        tokens = {}
    if response.status_code != 200 or tokens.get("error"):
        message = tokens.get("error_description") or tokens.get("error") or "Failed to exchange code for tokens"
        logger.error(f"❌ Token exchange failed: {message}")
        raise HTTPException(status_code=400, detail=message)

    if not tokens.get("refresh_token"):
        raise HTTPException(
            status_code=400,
            detail="No refresh token received. Please revoke app access in your Google account and try again.",
        )

    return tokens


async def fetch_google_email(access_token: str) -> str:
    try:
        async with outbound.client() as client:
            response = await client.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
        if response.status_code == 200:
            return response.json().get("email") or ""
        logger.warning(f"⚠️ Failed to get Google user info: {response.status_code}")
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Failed to get Google user info: {str(e)}")
    return ""


async def create_secondary_calendar(access_token: str, name: str) -> Optional[str]:
    """Create a sub-calendar (one per professional); None on failure"""
    try:
        async with outbound.client() as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/calendars",
                headers={"Authorization": f"Bearer {access_token}"},
                json={"summary": name},
            )
        if response.status_code in (200, 201):
            return response.json().get("id")
        logger.error(f"❌ Failed to create calendar '{name}': {response.status_code} {response.text[:300]}")
    except httpx.HTTPError as e:
        logger.error(f"❌ Failed to create calendar '{name}': {str(e)}")
    return None


async def revoke_token(token: str) -> None:
    """Best-effort token revocation"""
    try:
        async with outbound.client() as client:
            await client.post(GOOGLE_REVOKE_URL, params={"token": token})
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Failed to revoke Google token: {str(e)}")


def save_connection(
    db: Session,
    user_id: str,
    professional_id: Optional[str],
    tokens: dict,
    google_email: str,
    calendar_id: str,
) -> ProfessionalGoogleCalendar:
    """
    Insert or update the connection for (user, professional).
    Professional connections inherit sync_mode from the clinic connection.
    """
    clinic = (
        db.query(ProfessionalGoogleCalendar)
        .filter(
            ProfessionalGoogleCalendar.user_id == user_id,
            ProfessionalGoogleCalendar.professional_id.is_(None),
        )
        .order_by(ProfessionalGoogleCalendar.updated_at.desc())
        .first()
    )
    inherited_sync_mode = clinic.sync_mode if clinic and clinic.sync_mode else "one_way"

    connection = (
        db.query(ProfessionalGoogleCalendar)
        .filter(
            ProfessionalGoogleCalendar.user_id == user_id,
            ProfessionalGoogleCalendar.professional_id == professional_id
            if professional_id
            else ProfessionalGoogleCalendar.professional_id.is_(None),
        )
        .first()
    )

    if connection is None:
        connection = ProfessionalGoogleCalendar(
            user_id=user_id,
            professional_id=professional_id,
            sync_mode=inherited_sync_mode,
        )
        db.add(connection)
    elif professional_id:
        connection.sync_mode = inherited_sync_mode

    connection.access_token = encrypt_token(tokens["access_token"])
    connection.refresh_token = encrypt_token(tokens["refresh_token"])
    connection.token_expiry = utcnow() + timedelta(seconds=tokens.get("expires_in") or 3600)
    connection.google_account_email = google_email
    connection.calendar_id = calendar_id
    connection.is_active = True
    connection.updated_at = utcnow()

    db.commit()
    db.refresh(connection)
    logger.info(f"✅ Google Calendar connected for user {user_id} (professional={professional_id or 'clinic'})")
    return connection


async def complete_oauth(db: Session, code: str, state: str, redirect_uri: Optional[str] = None) -> dict:
    """
    Finish the OAuth flow started by /google-calendar/connect.

    Professional connections get their own sub-calendar (reused when one exists).
    A clinic connection writes to "primary" and creates a sub-calendar for every
    professional that has none yet.
    """
    try:
        state_data = decode_oauth_state(state)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if not config.GOOGLE_CLIENT_ID or not config.GOOGLE_CLIENT_SECRET:
        logger.error("❌ Google OAuth credentials not configured")
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    user_id = state_data["user_id"]
    professional_id = state_data.get("professional_id")

    tokens = await exchange_code(code, redirect_uri)
    google_email = await fetch_google_email(tokens["access_token"])

    if professional_id:
        professional = (
            db.query(Professional)
            .filter(Professional.id == professional_id, Professional.user_id == user_id)
            .first()
        )
        if not professional:
            raise HTTPException(status_code=404, detail="Professional not found")

        calendar_id = await _professional_calendar_id(db, user_id, professional, tokens["access_token"])
        connection = save_connection(db, user_id, professional_id, tokens, google_email, calendar_id)
    else:
        connection = save_connection(db, user_id, None, tokens, google_email, "primary")
        for professional in db.query(Professional).filter(Professional.user_id == user_id).all():
            existing = _connection_for(db, user_id, professional.id)
            if existing and existing.calendar_id and existing.calendar_id != "primary":
                continue
            calendar_id = await create_secondary_calendar(tokens["access_token"], professional.name)
            if not calendar_id:
                logger.warning(f"⚠️ Skipping calendar for {professional.name}: creation failed")
                continue
            save_connection(db, user_id, professional.id, tokens, google_email, calendar_id)

    return {
        "success": True,
        "connection_id": connection.id,
        "google_account_email": google_email,
        "calendar_id": connection.calendar_id,
        "sync_mode": connection.sync_mode,
    }


def _connection_for(db: Session, user_id: str, professional_id: str) -> Optional[ProfessionalGoogleCalendar]:
    return (
        db.query(ProfessionalGoogleCalendar)
        .filter(
            ProfessionalGoogleCalendar.user_id == user_id,
            ProfessionalGoogleCalendar.professional_id == professional_id,
        )
        .first()
    )


async def _professional_calendar_id(
    db: Session, user_id: str, professional: Professional, access_token: str
) -> str:
    existing = _connection_for(db, user_id, professional.id)
    if existing and existing.calendar_id and existing.calendar_id != "primary":
        logger.info(f"♻️ Reusing calendar {existing.calendar_id} for {professional.name}")
        return existing.calendar_id

    calendar_id = await create_secondary_calendar(access_token, professional.name)
    if not calendar_id:
        logger.warning(f"⚠️ Calendar creation failed for {professional.name}, falling back to primary")
        return "primary"
    return calendar_id


async def get_valid_access_token(connection: ProfessionalGoogleCalendar, db: Session) -> Optional[str]:
    """
    Reuse the stored access token while more than 5 minutes remain,
    otherwise refresh it and persist the new one. Returns None if refresh fails.
    """
    try:
        expiry = connection.token_expiry
        if connection.access_token and expiry and expiry - utcnow() > TOKEN_REFRESH_MARGIN:
            return decrypt_token(connection.access_token)

        logger.info(f"🔄 Refreshing Google access token for connection {connection.id}")
        refresh_token = decrypt_token(connection.refresh_token)

        async with outbound.client() as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": config.GOOGLE_CLIENT_ID,
                    "client_secret": config.GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text[:300]}")
            return None

        tokens = response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            logger.error("❌ No access token in refresh response")
            return None

        connection.access_token = encrypt_token(access_token)
        connection.token_expiry = utcnow() + timedelta(seconds=tokens.get("expires_in") or 3600)
        db.commit()
        logger.info("✅ Google Calendar token refreshed successfully")
        return access_token

    except (InvalidToken, httpx.HTTPError) as e:
        logger.error(f"❌ Error getting valid access token: {str(e)}")
        return None


# ============================================================================
# EVENT FORMAT
# ============================================================================


def format_price_brl(value: float) -> str:
    """1234.5 -> 'R$ 1.234,50'"""
    formatted = f"{float(value):,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def build_event_body(appointment: Appointment, tz: ZoneInfo) -> dict[str, Any]:
    professional_name = appointment.professional.name if appointment.professional else "Profissional"
    contact_name = (
        appointment.contact.push_name if appointment.contact and appointment.contact.push_name else "Paciente"
    )
    service_name = appointment.service.name if appointment.service else "Consulta"

    lines = [
        f"Profissional: {professional_name}",
        f"Serviço: {service_name}",
        f"Paciente: {contact_name}",
        f"Status: {STATUS_LABELS.get(appointment.status, appointment.status)}",
    ]
    if appointment.price:
        lines.append(f"Valor: {format_price_brl(appointment.price)}")
    if appointment.description:
        lines.append(f"Obs: {appointment.description}")
    lines.append("\nAgendado via Clinvia")

    return {
        "summary": f"{service_name} – {contact_name}",
        "description": "\n".join(lines),
        "start": {"dateTime": utc_to_local(appointment.start_time, tz).isoformat(), "timeZone": tz.key},
        "end": {"dateTime": utc_to_local(appointment.end_time, tz).isoformat(), "timeZone": tz.key},
        "colorId": EVENT_COLOR_ID,
        "extendedProperties": {"private": {APPOINTMENT_ID_PROPERTY: appointment.id}},
    }


def parse_event_time(value: dict, tz: ZoneInfo) -> Optional[datetime]:
    """Google event start/end (dateTime or all-day date) -> naive UTC"""
    if not value:
        return None
    if value.get("dateTime"):
        parsed = date_parser.isoparse(value["dateTime"])
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        return parsed.astimezone(timezone.utc).replace(tzinfo=None)
    if value.get("date"):
        day = date_parser.isoparse(value["date"]).date()
        return local_to_utc(day, datetime.min.time(), tz)
    return None


def _events_url(calendar_id: Optional[str]) -> str:
    return f"{GOOGLE_CALENDAR_API}/calendars/{quote(calendar_id or 'primary', safe='')}/events"


async def _upsert_event(
    client: httpx.AsyncClient, base_url: str, headers: dict, body: dict, event_id: Optional[str]
) -> tuple[Optional[str], Optional[str]]:
    """
    PUT an existing event, falling back to POST when Google no longer has it.

    Returns:
        Tuple of (event_id, error)
    """
    if event_id:
        response = await client.put(f"{base_url}/{event_id}", headers=headers, json=body)
        if response.status_code == 404:
            logger.info(f"ℹ️ Event {event_id} not found in Google Calendar, creating a new one")
            response = await client.post(base_url, headers=headers, json=body)
    else:
        response = await client.post(base_url, headers=headers, json=body)

    if response.status_code not in (200, 201):
        return None, f"Google API {response.status_code}: {response.text[:500]}"
    return response.json().get("id"), None


def _event_link(
    db: Session, appointment: Appointment, connection: ProfessionalGoogleCalendar
) -> Optional[AppointmentGoogleEvent]:
    return (
        db.query(AppointmentGoogleEvent)
        .filter(
            AppointmentGoogleEvent.appointment_id == appointment.id,
            AppointmentGoogleEvent.connection_id == connection.id,
        )
        .first()
    )


def stored_event_id(
    db: Session, appointment: Appointment, connection: ProfessionalGoogleCalendar
) -> Optional[str]:
    """Event id of the appointment on this connection's calendar"""
    link = _event_link(db, appointment, connection)
    if link:
        return link.event_id
    # Rows written before per-connection ids only know the calendar that created them
    if appointment.google_event_id and appointment.google_calendar_sync_id in (None, connection.id):
        return appointment.google_event_id
    return None


def remember_event_id(
    db: Session, appointment: Appointment, connection: ProfessionalGoogleCalendar, event_id: str
) -> None:
    link = _event_link(db, appointment, connection)
    if link is None:
        db.add(AppointmentGoogleEvent(appointment_id=appointment.id, connection_id=connection.id, event_id=event_id))
    else:
        link.event_id = event_id

    if not appointment.google_event_id:
        appointment.google_event_id = event_id
        appointment.google_calendar_sync_id = connection.id
    db.commit()


def _is_known_event(db: Session, event: dict) -> bool:
    """Events pushed by us (tagged, or with a stored id) are never imported back"""
    private = ((event.get("extendedProperties") or {}).get("private")) or {}
    if private.get(APPOINTMENT_ID_PROPERTY):
        return True
    if db.query(AppointmentGoogleEvent.id).filter(AppointmentGoogleEvent.event_id == event["id"]).first():
        return True
    return db.query(Appointment.id).filter(Appointment.google_event_id == event["id"]).first() is not None


# ============================================================================
# SYNC
# ============================================================================


def _active_connections(db: Session, user_id: str, professional_id: Optional[str]):
    return (
        db.query(ProfessionalGoogleCalendar)
        .filter(
            ProfessionalGoogleCalendar.user_id == user_id,
            ProfessionalGoogleCalendar.is_active.is_(True),
            or_(
                ProfessionalGoogleCalendar.professional_id == professional_id,
                ProfessionalGoogleCalendar.professional_id.is_(None),
            ),
        )
        .all()
    )


async def sync_appointment(
    db: Session, appointment_id: str, user_id: str, action: str = "sync_appointment"
) -> dict:
    """
    Push one appointment to every matching calendar (its professional's and the clinic's).
    action is sync_appointment (create/update) or delete_appointment.
    Per-connection failures are collected, never raised.
    """
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.user_id == user_id)
        .first()
    )
    if not appointment:
        raise HTTPException(status_code=404, detail="Appointment not found")

    connections = _active_connections(db, user_id, appointment.professional_id)
    if not connections:
        logger.info(f"ℹ️ No active Google Calendar connections for user {user_id}")
        return {"success": True, "synced": 0, "message": "No active connections"}

    tz = get_tenant_timezone(db, user_id)
    synced = 0
    errors: list[str] = []

    async with outbound.client() as client:
        for connection in connections:
            try:
                access_token = await get_valid_access_token(connection, db)
                if not access_token:
                    errors.append(f"Connection {connection.id}: Could not refresh token")
                    continue

                base_url = _events_url(connection.calendar_id)
                headers = {"Authorization": f"Bearer {access_token}"}

                event_id = stored_event_id(db, appointment, connection)

                if action == "delete_appointment":
                    if event_id:
                        response = await client.delete(f"{base_url}/{event_id}", headers=headers)
                        if response.status_code not in (200, 204, 404):
                            errors.append(
                                f"Connection {connection.id}: Delete failed ({response.status_code}): {response.text[:300]}"
                            )
                            continue
                        link = _event_link(db, appointment, connection)
                        if link:
                            db.delete(link)
                            db.commit()
                        logger.info(f"🗑️ Deleted event {event_id} from {connection.calendar_id}")
                    synced += 1
                    continue

                event_id, error = await _upsert_event(
                    client, base_url, headers, build_event_body(appointment, tz), event_id
                )
                if error:
                    errors.append(f"Connection {connection.id}: {error}")
                    logger.error(f"❌ Sync failed for appointment {appointment.id}: {error}")
                    continue

                if event_id:
                    remember_event_id(db, appointment, connection, event_id)

                logger.info(f"✅ Synced event {event_id} to calendar {connection.calendar_id}")
                synced += 1

            except httpx.HTTPError as e:
                errors.append(f"Connection {connection.id}: {str(e)}")
                logger.error(f"❌ Google Calendar error on connection {connection.id}: {str(e)}")

    result: dict[str, Any] = {"success": True, "synced": synced}
    if errors:
        result["errors"] = errors
    return result


async def poll_connections(db: Session, user_id: str, connection_id: Optional[str] = None) -> dict:
    """
    Periodic reconciliation for a tenant.
    Phase 1 pushes upcoming appointments (today to +60 days) to Google.
    Phase 2 (two_way connections only) imports unknown Google events as absences.
    """
    query = db.query(ProfessionalGoogleCalendar).filter(
        ProfessionalGoogleCalendar.user_id == user_id,
        ProfessionalGoogleCalendar.is_active.is_(True),
    )
    if connection_id:
        query = query.filter(ProfessionalGoogleCalendar.id == connection_id)
    connections = query.all()

    if not connections:
        return {"success": True, "message": "No active connections", "synced": 0, "imported": 0}

    tz = get_tenant_timezone(db, user_id)
    today = utc_to_local(utcnow(), tz).date()
    window_start = local_to_utc(today, datetime.min.time(), tz)
    window_end = window_start + timedelta(days=POLL_WINDOW_DAYS)

    total_synced = 0
    total_imported = 0
    errors: list[str] = []

    async with outbound.client() as client:
        for connection in connections:
            try:
                access_token = await get_valid_access_token(connection, db)
                if not access_token:
                    errors.append(f"Connection {connection.id}: Could not get valid access token")
                    continue

                base_url = _events_url(connection.calendar_id)
                headers = {"Authorization": f"Bearer {access_token}"}

                appointments_query = db.query(Appointment).filter(
                    Appointment.user_id == user_id,
                    Appointment.type == "appointment",
                    Appointment.status != "canceled",
                    Appointment.start_time >= window_start,
                    Appointment.start_time <= window_end,
                )
                if connection.professional_id:
                    appointments_query = appointments_query.filter(
                        Appointment.professional_id == connection.professional_id
                    )

                for appointment in appointments_query.all():
                    event_id, error = await _upsert_event(
                        client,
                        base_url,
                        headers,
                        build_event_body(appointment, tz),
                        stored_event_id(db, appointment, connection),
                    )
                    if error:
                        errors.append(f"Apt {appointment.id}: {error}")
                        continue
                    if event_id:
                        remember_event_id(db, appointment, connection, event_id)
                    total_synced += 1

                if connection.sync_mode == "two_way":
                    total_imported += await _import_external_events(
                        db, client, connection, base_url, headers, window_start, window_end, tz
                    )

                connection.last_synced_at = utcnow()
                db.commit()

            except httpx.HTTPError as e:
                errors.append(f"Connection {connection.id}: {str(e)}")
                logger.error(f"❌ Poll failed for connection {connection.id}: {str(e)}")

    logger.info(f"📅 Poll done for user {user_id}: synced={total_synced}, imported={total_imported}")
    result: dict[str, Any] = {"success": True, "synced": total_synced, "imported": total_imported}
    if errors:
        result["errors"] = errors
    return result


async def _import_external_events(
    db: Session,
    client: httpx.AsyncClient,
    connection: ProfessionalGoogleCalendar,
    base_url: str,
    headers: dict,
    window_start: datetime,
    window_end: datetime,
    tz: ZoneInfo,
) -> int:
    response = await client.get(
        base_url,
        headers=headers,
        params={
            "timeMin": window_start.isoformat() + "Z",
            "timeMax": window_end.isoformat() + "Z",
            "singleEvents": "true",
            "maxResults": "250",
        },
    )
    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch Google events: {response.status_code} {response.text[:300]}")
        return 0

    imported = 0
    for event in response.json().get("items", []):
        if event.get("status") == "cancelled" or not event.get("id"):
            continue

        start = parse_event_time(event.get("start"), tz)
        end = parse_event_time(event.get("end"), tz)
        if not start or not end:
            continue

        if _is_known_event(db, event):
            continue

        db.add(
            Appointment(
                user_id=connection.user_id,
                professional_id=connection.professional_id,
                start_time=start,
                end_time=end,
                type="absence",
                status="confirmed",
                google_event_id=event["id"],
                google_calendar_sync_id=connection.id,
                description=f"Bloqueio importado do Google Calendar: {event.get('summary') or 'Evento externo'}",
            )
        )
        db.commit()
        imported += 1
        logger.info(f"📥 Imported absence from Google: {event.get('summary') or event['id']}")

    return imported


def connected_tenant_ids(db: Session) -> list[str]:
    """Tenants with at least one active calendar connection"""
    rows = (
        db.query(ProfessionalGoogleCalendar.user_id)
        .filter(ProfessionalGoogleCalendar.is_active.is_(True))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]
