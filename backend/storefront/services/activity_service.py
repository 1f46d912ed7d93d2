# Overview: Append-only activity log writes and admin queries.

from ..extensions import db
from ..models import ActivityLog


def log_activity(
    user_id: str,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
    commit: bool = True,
) -> ActivityLog:
    """
    Append one audit entry.

    Pass commit=False to make the entry part of the caller's transaction.
    """
    entry = ActivityLog(
        user_id=str(user_id),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return entry


def list_activity(
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ActivityLog], int]:
    query = db.session.query(ActivityLog)
    if action:
        query = query.filter(ActivityLog.action == action)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(ActivityLog.entity_id == entity_id)

    total = query.count()
    entries = query.order_by(ActivityLog.id.desc()).limit(limit).offset(offset).all()
    return entries, total
