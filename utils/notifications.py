"""Notification persistence and realtime fan-out, idempotent by event id."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import NOTIFICATION_PRIORITIES, Notification
from utils.realtime import emit_to_user, presence


def event_key(*parts) -> str:
    return ":".join(str(p) for p in parts if p is not None).lower()[:150]


def notify(user_id: str, event_id: str, title: str, message: str, **options) -> Notification:
    """Persist a notification for ``user_id`` and push it if the user is connected.

    Commits its own unit of work, so callers commit their domain changes first.
    A repeated ``event_id`` returns the stored record without emitting again.
    """
    notification, _ = dispatch(user_id, event_id, title, message, **options)
    return notification


def dispatch(
    user_id: str,
    event_id: str,
    title: str,
    message: str,
    *,
    type: str = "system",
    priority: str = "medium",
    data: Optional[Dict] = None,
    link: Optional[str] = None,
) -> Tuple[Notification, bool]:
    """Same as ``notify`` but also reports whether a new record was stored."""
    if priority not in NOTIFICATION_PRIORITIES:
        raise ValueError("Invalid notification priority")

    existing = Notification.query.filter_by(user_id=user_id, event_id=event_id).first()
    if existing:
        current_app.logger.debug("Duplicate notification suppressed", extra={"user_id": user_id, "event_id": event_id})
        return existing, False

    notification = Notification(
        user_id=user_id,
        event_id=event_id,
        type=type,
        title=title[:200],
        message=message[:1000],
        data=data,
        link=link,
        priority=priority,
    )
    db.session.add(notification)
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent request stored the same event first.
        db.session.rollback()
        return Notification.query.filter_by(user_id=user_id, event_id=event_id).one(), False

    current_app.logger.info(
        "Notification stored",
        extra={"user_id": user_id, "event_id": event_id, "type": type, "notification_id": notification.id},
    )
    deliver(notification)
    return notification, True


def deliver(notification: Notification) -> bool:
    """Emit a stored notification when its owner has a live socket."""
    if notification.delivered_at is not None:
        return False
    if not presence.is_online(notification.user_id):
        return False
    notification.delivered_at = datetime.utcnow()
    db.session.commit()
    emit_to_user(notification.user_id, "notification", notification.to_dict())
    return True


def notifications_for_user(user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    query = Notification.query.filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.id.desc()).limit(limit).all()


def unread_count(user_id: str) -> int:
    return Notification.query.filter_by(user_id=user_id, read=False).count()


def mark_read(notification_id: int, user_id: str) -> Optional[Notification]:
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        return None
    if not notification.read:
        notification.read = True
        notification.read_at = datetime.utcnow()
        db.session.commit()
    return notification


def mark_all_read(user_id: str) -> int:
    now = datetime.utcnow()
    updated = (
        Notification.query.filter_by(user_id=user_id, read=False)
        .update({"read": True, "read_at": now}, synchronize_session=False)
    )
    db.session.commit()
    return updated
