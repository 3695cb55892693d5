"""Tenant timezone helpers - appointments are stored as naive UTC"""

import logging
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ..config import DEFAULT_TIMEZONE
from ..models import SchedulingSettings, User

logger = logging.getLogger(__name__)


def load_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve a timezone name, falling back to the default zone"""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"⚠️ Unknown timezone '{name}', using {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def get_tenant_timezone(db: Session, user_id: str) -> ZoneInfo:
    """Scheduling settings win over the user profile"""
    settings = db.query(SchedulingSettings).filter(SchedulingSettings.user_id == user_id).first()
    if settings and settings.timezone:
        return load_zone(settings.timezone)

    user = db.query(User).filter(User.id == user_id).first()
    return load_zone(user.timezone if user else None)


def parse_date(value: str) -> date:
    """Parse YYYY-MM-DD"""
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def parse_time(value: str) -> time:
    """Parse HH:MM (seconds are tolerated and dropped)"""
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return time(int(parts[0]), int(parts[1]))


def local_to_utc(day: date, at: time, tz: ZoneInfo) -> datetime:
    """Combine a local wall-clock date and time into naive UTC"""
    local = datetime.combine(day, at).replace(tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_local(value: datetime, tz: ZoneInfo) -> datetime:
    """Convert naive UTC into a timezone-aware local datetime"""
    return value.replace(tzinfo=timezone.utc).astimezone(tz)


def local_day_bounds_utc(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive UTC bounds [start, end) of a local calendar day"""
    start = local_to_utc(day, time(0, 0), tz)
    next_day = date.fromordinal(day.toordinal() + 1)
    end = local_to_utc(next_day, time(0, 0), tz)
    return start, end


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
