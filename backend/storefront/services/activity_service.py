# Overview: Activity log writes and queries (who changed what, with before/after snapshots).

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import ActivityLog


def log_activity(
    *,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id=None,
    changes: dict | None = None,
) -> ActivityLog:
    """
    Append an activity entry to the current transaction.

    Does not commit: the entry is written together with the change it describes.
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        changes=changes,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    return entry


def list_activity_query(*, action: str | None = None, entity_type: str | None = None, user_id: int | None = None):
    query = db.session.query(ActivityLog)
    if action:
        query = query.filter(ActivityLog.action == action)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
