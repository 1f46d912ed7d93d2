from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only audit trail of state-changing actions.

    user_id is a string so unauthenticated triggers can be attributed to
    "system" (gateway webhooks, sweeps) or "mobile_user" (app submissions).

    IMMUTABLE: Never update or delete.
    """
    __tablename__ = "activity_log"
    __table_args__ = (
        db.Index("ix_activity_log_entity", "entity_type", "entity_id"),
        db.Index("ix_activity_log_timestamp", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False, index=True)  # order_created, submission_approved, ...
    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.String(64), nullable=True)
    details = db.Column(db.JSON, nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "details": self.details,
            "timestamp": to_utc_z(self.timestamp),
        }
