# ecobin/services/notifications.py
from __future__ import annotations

from typing import Iterable

from flask import current_app

from ecobin.constants import NOTIFICATION_CHANNELS, NOTIFICATION_PRIORITIES, NOTIFICATION_TYPES, STAFF_ROLES
from ecobin.extensions import db
from ecobin.models import Notification, User

# Roles that receive operational broadcasts (damaged bins, cancellations).
BROADCAST_ROLES = ("operator", "admin")


def notify(
    recipient_id: int,
    *,
    notification_type: str,
    title: str,
    message: str,
    priority: str = "medium",
    channel: Iterable[str] = ("in-app",),
    related_entity: tuple[str, int] | None = None,
) -> Notification:
    """
    Queue one notification. Does not commit; the caller's transaction owns it.
    """
    if notification_type not in NOTIFICATION_TYPES:
        notification_type = "general"
    if priority not in NOTIFICATION_PRIORITIES:
        priority = "medium"
    channels = [c for c in channel if c in NOTIFICATION_CHANNELS] or ["in-app"]

    entity_type, entity_id = related_entity if related_entity else (None, None)

    n = Notification(
        recipient_id=recipient_id,
        type=notification_type,
        title=title,
        message=message,
        priority=priority,
        channel=channels,
        status="pending",
        related_entity_type=entity_type,
        related_entity_id=entity_id,
    )
    db.session.add(n)
    return n


def active_staff(roles: Iterable[str] = BROADCAST_ROLES) -> list[User]:
    wanted = [r for r in roles if r in STAFF_ROLES]
    return (
        User.query
        .filter(User.role.in_(wanted), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )


def notify_staff(**kwargs) -> list[Notification]:
    """Send the same notification to every active operator and admin."""
    staff = active_staff()
    sent = [notify(u.id, **kwargs) for u in staff]
    current_app.logger.info("Broadcast '%s' to %d staff", kwargs.get("title"), len(sent))
    return sent
