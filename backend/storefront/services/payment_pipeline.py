# Overview: Shared admission path from a payment id to the fulfillment engine.

"""
Payment Pipeline

Every entry point (gateway webhook, admin manual trigger, reconciliation
sweep, CLI) goes through here so they all behave the same way:

    payment id -> gateway fetch -> item mapping -> fulfillment engine

Amounts, status and items always come from the gateway, never from the
notification that triggered the run.
"""

from __future__ import annotations

import logging

from flask import current_app

from .fulfillment_service import ConfirmedPayment, FulfillmentResult, process_confirmed_payment
from .gateway_client import GatewayPayment, get_gateway_client
from .item_mapper import map_gateway_items_to_payment_items
from .order_store import SqlAlchemyOrderStore


logger = logging.getLogger(__name__)

SOURCE_WEBHOOK = "webhook"
SOURCE_MANUAL = "manual"
SOURCE_SWEEP = "sweep"
SOURCE_CLI = "cli"


def confirmed_payment_from_gateway(payment: GatewayPayment, default_currency: str = "CLP") -> ConfirmedPayment:
    """Translate gateway state into the engine's input."""
    hints = payment.metadata.get("line_items")
    items = map_gateway_items_to_payment_items(
        payment.items,
        variant_hints=hints if isinstance(hints, list) else None,
    )
    return ConfirmedPayment(
        payment_id=payment.payment_id,
        status=payment.status,
        items=items,
        external_reference=payment.external_reference or "unknown",
        customer_email=payment.payer_email,
        total_amount=payment.transaction_amount,
        fee_amount=payment.fee_amount,
        net_received_amount=payment.net_received_amount,
        currency=payment.currency or default_currency,
    )


def fulfill_gateway_payment(payment: GatewayPayment, source: str, store=None) -> FulfillmentResult:
    """Run fulfillment for a payment already fetched from the gateway."""
    store = store if store is not None else SqlAlchemyOrderStore()
    confirmed = confirmed_payment_from_gateway(
        payment, current_app.config.get("STORE_CURRENCY", "CLP")
    )
    logger.info(
        "Fulfilling payment %s from %s: status=%s amount=%s items=%d",
        payment.payment_id, source, payment.status, payment.transaction_amount, len(confirmed.items),
    )
    return process_confirmed_payment(store, confirmed)


def fulfill_payment(payment_id: str, source: str, gateway=None, store=None) -> tuple[GatewayPayment, FulfillmentResult]:
    """
    Fetch a payment from the gateway and fulfill it.

    Raises whatever the gateway client or the engine raise: GatewayError and
    subclasses, PaymentNotApproved, StoreWriteFailure.
    """
    gateway = gateway if gateway is not None else get_gateway_client()
    payment = gateway.fetch_payment(str(payment_id))
    return payment, fulfill_gateway_payment(payment, source, store=store)
