"""Shared helpers for test modules."""

from storefront.extensions import db
from storefront.models import ActivityLog, InventoryRecord, Order


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


def stock_of(card_id, version):
    """Read stock straight from the database, bypassing the identity map."""
    return db.session.execute(
        db.select(InventoryRecord.stock).where(
            InventoryRecord.card_id == card_id,
            InventoryRecord.version == version,
        )
    ).scalar_one()


def order_count(payment_id=None):
    query = db.session.query(Order)
    if payment_id is not None:
        query = query.filter_by(payment_id=payment_id)
    return query.count()


def activity_actions(entity_id=None):
    query = db.session.query(ActivityLog)
    if entity_id is not None:
        query = query.filter_by(entity_id=entity_id)
    return [entry.action for entry in query.order_by(ActivityLog.id)]
