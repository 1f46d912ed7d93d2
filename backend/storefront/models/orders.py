from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ._money import money_to_json


class Order(db.Model):
    """
    One fulfilled gateway payment.

    payment_id is UNIQUE: it is the idempotency key for fulfillment. A second
    insert for the same payment fails at the database and the fulfillment
    transaction (including its stock decrements) is rolled back.

    IMMUTABLE apart from the fee columns, which a later reconciliation pass
    backfills from gateway fee data.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("payment_id", name="uq_orders_payment_id"),
        db.Index("ix_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.String(64), nullable=False)
    external_reference = db.Column(db.String(128), nullable=True, index=True)

    # Snapshot of the mapped payment items with their per-item outcome
    items = db.Column(db.JSON, nullable=False)

    customer_email = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="approved")

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    mp_fee_amount = db.Column(db.Numeric(12, 2), nullable=True)
    net_received_amount = db.Column(db.Numeric(12, 2), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="CLP")

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} payment_id={self.payment_id!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "paymentId": self.payment_id,
            "externalReference": self.external_reference,
            "items": self.items,
            "customerEmail": self.customer_email,
            "status": self.status,
            "totalAmount": money_to_json(self.total_amount),
            "mpFeeAmount": money_to_json(self.mp_fee_amount),
            "netReceivedAmount": money_to_json(self.net_received_amount),
            "currency": self.currency,
            "paidAt": to_utc_z(self.paid_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
