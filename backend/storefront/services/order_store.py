# Overview: Persistence boundary for fulfillment (orders, stock, activity log).

"""
Order/Stock Store Adapter

WHY: Keep the fulfillment engine free of SQL so it can run against this
adapter in production and an in-memory fake in tests.

DESIGN:
- No business logic; every method is a single persistence primitive
- Stock decrements are conditional UPDATEs (WHERE stock >= qty), never
  read-modify-write
- insert_order translates the unique-key violation on orders.payment_id
  into DuplicatePaymentId
- transaction() commits everything done inside it or nothing
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import ActivityLog, InventoryRecord, Order


class DuplicatePaymentId(Exception):
    """Raised when an Order already exists for the payment id."""

    def __init__(self, payment_id: str):
        super().__init__(f"Order already exists for payment {payment_id}")
        self.payment_id = payment_id


class StoreWriteFailure(Exception):
    """Raised when the store fails for any reason other than the idempotency key."""


class SqlAlchemyOrderStore:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def get_order_by_payment_id(self, payment_id: str) -> Order | None:
        try:
            return self.session.query(Order).filter_by(payment_id=payment_id).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreWriteFailure(f"Could not read order for payment {payment_id}: {exc}") from exc

    def get_stock(self, item_id: str, version: str) -> int | None:
        record = self.session.get(InventoryRecord, (item_id, version))
        return record.stock if record is not None else None

    def conditional_decrement_stock(self, item_id: str, version: str, quantity: int) -> int:
        """Decrement only if enough stock remains. Returns rows affected (0 or 1)."""
        stmt = (
            update(InventoryRecord)
            .where(
                InventoryRecord.card_id == item_id,
                InventoryRecord.version == version,
                InventoryRecord.stock >= quantity,
            )
            .values(stock=InventoryRecord.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount or 0

    def insert_order(self, **fields: Any) -> Order:
        order = Order(**fields)
        self.session.add(order)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if "payment_id" in str(exc.orig):
                raise DuplicatePaymentId(fields.get("payment_id")) from exc
            raise StoreWriteFailure(f"Could not insert order: {exc.orig}") from exc
        return order

    def insert_activity_log(
        self,
        user_id: str,
        action: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        details: dict | None = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.session.commit()
        except (DuplicatePaymentId, StoreWriteFailure):
            self.session.rollback()
            raise
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreWriteFailure(str(exc)) from exc
        except Exception:
            self.session.rollback()
            raise
