# Overview: Background reconciliation against the gateway (missing orders, fee backfill).

"""
Reconciliation Service

WHY: Fulfillment is driven by notifications, and notifications get lost.
Two passes compare our records with the gateway:

- sweep_unfulfilled_payments: approved gateway payments that have no Order
  are re-run through the normal pipeline (idempotent, safe to repeat)
- backfill_order_fees: orders created without fee data get the gateway's
  fee and net amounts filled in
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import Order
from ..time_utils import utcnow
from .fulfillment_service import PaymentNotApproved, STATUS_ITEMS_EMPTY
from .gateway_client import GatewayError, PAYMENT_STATUS_APPROVED, get_gateway_client
from .order_store import SqlAlchemyOrderStore, StoreWriteFailure
from .payment_pipeline import SOURCE_SWEEP, fulfill_gateway_payment


logger = logging.getLogger(__name__)


class ReconciliationError(Exception):
    """Raised for reconciliation input errors."""


@dataclass
class SweepReport:
    scanned: int = 0
    already_fulfilled: int = 0
    fulfilled: list = field(default_factory=list)
    items_empty: list = field(default_factory=list)
    failed: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "alreadyFulfilled": self.already_fulfilled,
            "fulfilled": [r.to_dict() for r in self.fulfilled],
            "itemsEmpty": self.items_empty,
            "failed": self.failed,
        }


def sweep_unfulfilled_payments(
    since: datetime | None = None,
    until: datetime | None = None,
    page_size: int = 50,
    max_pages: int = 20,
    gateway=None,
    store=None,
) -> SweepReport:
    """
    Find approved gateway payments without an Order and fulfill them.

    Per-payment failures are collected in the report; gateway search
    failures propagate.
    """
    gateway = gateway if gateway is not None else get_gateway_client()
    store = store if store is not None else SqlAlchemyOrderStore()
    since = since or (utcnow() - timedelta(hours=24))

    report = SweepReport()
    offset = 0
    for _ in range(max_pages):
        page, total = gateway.search_payments(
            status=PAYMENT_STATUS_APPROVED,
            begin_date=since,
            end_date=until,
            limit=page_size,
            offset=offset,
        )
        for payment in page:
            report.scanned += 1
            if store.get_order_by_payment_id(payment.payment_id) is not None:
                report.already_fulfilled += 1
                continue
            try:
                result = fulfill_gateway_payment(payment, SOURCE_SWEEP, store=store)
            except (PaymentNotApproved, StoreWriteFailure) as exc:
                logger.error("Sweep could not fulfill payment %s: %s", payment.payment_id, exc)
                report.failed.append({"paymentId": payment.payment_id, "error": str(exc)})
                continue
            if result.order_created:
                report.fulfilled.append(result)
            elif result.overall_status == STATUS_ITEMS_EMPTY:
                report.items_empty.append(payment.payment_id)
            else:
                # another worker recorded the order between our check and insert
                report.already_fulfilled += 1

        offset += len(page)
        if not page or offset >= total:
            break

    logger.info(
        "Reconciliation sweep: scanned=%d already=%d fulfilled=%d empty=%d failed=%d",
        report.scanned, report.already_fulfilled, len(report.fulfilled), len(report.items_empty), len(report.failed),
    )
    return report


def backfill_order_fees(payment_id: str | None = None, update_all: bool = False, gateway=None) -> list[dict]:
    """
    Fill mp_fee_amount / net_received_amount from the gateway.

    Args:
        payment_id: update the single order for this payment
        update_all: update every order with no (or zero) fee recorded

    Returns:
        One result dict per order attempted

    Raises:
        ReconciliationError: neither option given, or no order for payment_id
    """
    if payment_id:
        order = db.session.query(Order).filter_by(payment_id=str(payment_id)).first()
        if order is None:
            raise ReconciliationError(f"Order not found for payment {payment_id}")
        orders = [order]
    elif update_all:
        orders = db.session.query(Order).filter(
            or_(Order.mp_fee_amount.is_(None), Order.mp_fee_amount == 0)
        ).order_by(Order.id).all()
    else:
        raise ReconciliationError("Either updateAll or paymentId is required")

    gateway = gateway if gateway is not None else get_gateway_client()

    results = []
    for order in orders:
        try:
            payment = gateway.fetch_payment(order.payment_id)
        except GatewayError as exc:
            logger.warning("Fee backfill failed for payment %s: %s", order.payment_id, exc)
            results.append({"paymentId": order.payment_id, "success": False, "error": str(exc)})
            continue

        order.mp_fee_amount = payment.fee_amount if payment.fee_amount is not None else 0
        if payment.net_received_amount is not None:
            order.net_received_amount = payment.net_received_amount
        db.session.commit()

        results.append({
            "paymentId": order.payment_id,
            "success": True,
            "mpFeeAmount": float(order.mp_fee_amount),
            "netReceivedAmount": (
                float(order.net_received_amount) if order.net_received_amount is not None else None
            ),
        })

    return results
