# Overview: Turns an approved gateway payment into exactly one Order plus stock decrements.

"""
Fulfillment Engine

WHY: The business has already collected the money when this runs. The job is
to record exactly one Order per payment and take the sold cards out of stock,
even when some lines cannot be served.

STATE MACHINE:
    RECEIVED -> VALIDATED -> ALREADY_PROCESSED | ITEMS_EMPTY | PROCESSING
    PROCESSING -> SUCCESS | PARTIAL_SUCCESS
    any step -> FAILED (store error, surfaced to the caller)

GUARANTEES:
- At most one Order per payment_id (unique key on orders.payment_id)
- Stock decrements, the Order insert and the audit entry share one
  transaction: no decrement is committed for a payment that does not end
  up with exactly one Order row
- Per-item failures (insufficient stock, unknown card) never block the
  other items and never trigger refunds
- No retries here; webhook redelivery and the manual trigger are the retry path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..time_utils import utcnow
from .item_mapper import PaymentItem
from .order_store import DuplicatePaymentId, StoreWriteFailure
from .gateway_client import PAYMENT_STATUS_APPROVED


logger = logging.getLogger(__name__)


class FulfillmentError(Exception):
    """Base class for invocation-level fulfillment errors."""


class PaymentNotApproved(FulfillmentError):
    """Raised when the payment is not approved; nothing was mutated."""

    def __init__(self, payment_id: str, status: str):
        super().__init__(f"Payment {payment_id} status is {status}, not approved")
        self.payment_id = payment_id
        self.status = status


# =============================================================================
# STATES AND OUTCOMES (CONSTANTS)
# =============================================================================

STATE_RECEIVED = "RECEIVED"
STATE_VALIDATED = "VALIDATED"
STATE_PROCESSING = "PROCESSING"
STATE_FAILED = "FAILED"

STATUS_ALREADY_PROCESSED = "ALREADY_PROCESSED"
STATUS_ITEMS_EMPTY = "ITEMS_EMPTY"
STATUS_PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
STATUS_SUCCESS = "SUCCESS"

OUTCOME_FULFILLED = "FULFILLED"
OUTCOME_INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
OUTCOME_ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
OUTCOME_SKIPPED_UNKNOWN = "SKIPPED_UNKNOWN"
OUTCOME_INVALID_QUANTITY = "INVALID_QUANTITY"

ACTION_ORDER_CREATED = "order_created"
SYSTEM_USER = "system"


@dataclass
class ConfirmedPayment:
    payment_id: str
    status: str
    items: list[PaymentItem]
    external_reference: str | None = None
    customer_email: str | None = None
    total_amount: Decimal | None = None
    fee_amount: Decimal | None = None
    net_received_amount: Decimal | None = None
    currency: str = "CLP"


@dataclass(frozen=True)
class ItemResult:
    item_id: str
    version: str
    quantity_requested: int
    quantity_fulfilled: int
    outcome: str

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "version": self.version,
            "quantityRequested": self.quantity_requested,
            "quantityFulfilled": self.quantity_fulfilled,
            "outcome": self.outcome,
        }


@dataclass
class FulfillmentResult:
    payment_id: str
    overall_status: str
    order_id: int | None = None
    per_item_results: list[ItemResult] = field(default_factory=list)

    @property
    def order_created(self) -> bool:
        return self.overall_status in (STATUS_SUCCESS, STATUS_PARTIAL_SUCCESS)

    def to_dict(self) -> dict:
        return {
            "paymentId": self.payment_id,
            "orderId": self.order_id,
            "overallStatus": self.overall_status,
            "perItemResults": [r.to_dict() for r in self.per_item_results],
        }


def _advance(payment_id: str, current: str, new: str) -> str:
    logger.debug("Fulfillment %s: %s -> %s", payment_id, current, new)
    return new


def _decrement_item(store, item: PaymentItem) -> ItemResult:
    if item.is_unknown:
        return ItemResult(item.id, item.version, item.quantity, 0, OUTCOME_SKIPPED_UNKNOWN)

    if item.quantity <= 0:
        return ItemResult(item.id, item.version, item.quantity, 0, OUTCOME_INVALID_QUANTITY)

    if store.conditional_decrement_stock(item.id, item.version, item.quantity) == 1:
        return ItemResult(item.id, item.version, item.quantity, item.quantity, OUTCOME_FULFILLED)

    # Zero rows: tell a missing inventory row apart from a short one
    if store.get_stock(item.id, item.version) is None:
        outcome = OUTCOME_ITEM_NOT_FOUND
    else:
        outcome = OUTCOME_INSUFFICIENT_STOCK
    return ItemResult(item.id, item.version, item.quantity, 0, outcome)


def _already_processed(store, payment_id: str, order=None) -> FulfillmentResult:
    order = order or store.get_order_by_payment_id(payment_id)
    if order is None:
        raise StoreWriteFailure(
            f"Payment {payment_id} reported as duplicate but no order was found"
        )
    logger.info("Payment %s already fulfilled by order %s", payment_id, order.id)
    return FulfillmentResult(
        payment_id=payment_id,
        overall_status=STATUS_ALREADY_PROCESSED,
        order_id=order.id,
    )


def process_confirmed_payment(store, payment: ConfirmedPayment) -> FulfillmentResult:
    """
    Fulfill a payment exactly once.

    Args:
        store: Order/stock store adapter (SqlAlchemyOrderStore or a fake)
        payment: Payment data re-read from the gateway

    Returns:
        FulfillmentResult with ALREADY_PROCESSED, ITEMS_EMPTY, SUCCESS or PARTIAL_SUCCESS

    Raises:
        PaymentNotApproved: status is not "approved" (nothing mutated)
        StoreWriteFailure: store failed; the transaction was rolled back
    """
    payment_id = str(payment.payment_id)
    state = STATE_RECEIVED

    try:
        # Idempotency guard; the unique key on insert closes the race window
        existing = store.get_order_by_payment_id(payment_id)
        if existing is not None:
            return _already_processed(store, payment_id, existing)

        if payment.status != PAYMENT_STATUS_APPROVED:
            raise PaymentNotApproved(payment_id, payment.status)
        state = _advance(payment_id, state, STATE_VALIDATED)

        # Lines without an id map to the "unknown" placeholder; never record a zero-item order
        if all(i.is_unknown for i in payment.items):
            logger.warning("Approved payment %s has no recognizable items; nothing fulfilled", payment_id)
            return FulfillmentResult(payment_id=payment_id, overall_status=STATUS_ITEMS_EMPTY)

        state = _advance(payment_id, state, STATE_PROCESSING)

        try:
            with store.transaction():
                results = [_decrement_item(store, item) for item in payment.items]

                all_fulfilled = all(r.outcome == OUTCOME_FULFILLED for r in results)
                overall = STATUS_SUCCESS if all_fulfilled else STATUS_PARTIAL_SUCCESS

                total = payment.total_amount
                if total is None:
                    total = sum((i.price * i.quantity for i in payment.items), Decimal("0"))

                snapshot = [
                    {**item.to_dict(), "outcome": r.outcome, "quantityFulfilled": r.quantity_fulfilled}
                    for item, r in zip(payment.items, results)
                ]
                order = store.insert_order(
                    payment_id=payment_id,
                    external_reference=payment.external_reference,
                    items=snapshot,
                    customer_email=payment.customer_email,
                    status=PAYMENT_STATUS_APPROVED,
                    total_amount=total,
                    mp_fee_amount=payment.fee_amount,
                    net_received_amount=payment.net_received_amount,
                    currency=payment.currency,
                    paid_at=utcnow(),
                )

                store.insert_activity_log(
                    user_id=SYSTEM_USER,
                    action=ACTION_ORDER_CREATED,
                    entity_type="order",
                    entity_id=str(order.id),
                    details={
                        "paymentId": payment_id,
                        "externalReference": payment.external_reference,
                        "customerEmail": payment.customer_email,
                        "overallStatus": overall,
                        "items": [r.to_dict() for r in results],
                    },
                )
                order_id = order.id
        except DuplicatePaymentId:
            # A concurrent invocation won the insert; our decrements were rolled back
            logger.info("Payment %s lost the fulfillment race; treating as processed", payment_id)
            return _already_processed(store, payment_id)

    except (PaymentNotApproved, StoreWriteFailure):
        _advance(payment_id, state, STATE_FAILED)
        raise

    _advance(payment_id, state, overall)
    failed = [r for r in results if r.outcome != OUTCOME_FULFILLED]
    if failed:
        logger.warning(
            "Payment %s fulfilled partially by order %s; failed items: %s",
            payment_id, order_id, [(r.item_id, r.version, r.outcome) for r in failed],
        )
    else:
        logger.info("Payment %s fulfilled by order %s", payment_id, order_id)

    return FulfillmentResult(
        payment_id=payment_id,
        overall_status=overall,
        order_id=order_id,
        per_item_results=results,
    )
