"""
In-app Notification Service
Rows in the notifications table feed the panel's notification bell
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import Notification

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    related_user_id: str,
    notification_type: str,
    title: str,
    description: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> Notification:
    """Insert a notification for the account owner and commit"""
    notification = Notification(
        user_id=related_user_id,
        related_user_id=related_user_id,
        type=notification_type,
        title=title,
        description=description,
        meta=metadata or {},
    )
    if created_at is not None:
        notification.created_at = created_at
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.info(f"🔔 {notification_type} notification created for user {related_user_id}")
    return notification


def notify_safely(db: Session, **kwargs) -> Optional[Notification]:
    """
    Create a notification without ever failing the caller.
    Used after the main write has already been committed.
    """
    try:
        return create_notification(db, **kwargs)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create {kwargs.get('notification_type')} notification: {e}")
        return None


def notification_exists(
    db: Session, notification_type: str, key: str, value: str, since: Optional[datetime] = None
) -> bool:
    """Whether a notification of this type already carries metadata[key] == value"""
    query = db.query(Notification).filter(Notification.type == notification_type)
    if since is not None:
        query = query.filter(Notification.created_at >= since)
    return any((n.meta or {}).get(key) == value for n in query.all())
