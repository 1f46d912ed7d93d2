# Overview: Builds a hosted-checkout preference from a customer's cart.

"""
Checkout Service

WHY: The cart lives in the browser; the server re-prices it from the catalog
before asking the gateway for a hosted checkout page, so a tampered cart
cannot buy cards at a made-up price.

Each cart line carries its printing (normal/foil) into the preference both
in the title and as a structured metadata tag, so the payment callback does
not depend on parsing titles.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Card
from ..models.catalog import VALID_VERSIONS
from .gateway_client import CheckoutPreference, InvalidItems, get_gateway_client, validate_checkout_items


logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    """Raised when a cart cannot be checked out (unknown card, no stock)."""

    def __init__(self, message: str, item_id: str | None = None):
        super().__init__(message)
        self.item_id = item_id


def price_cart(items: list[dict]) -> list[dict]:
    """Return cart lines with catalog names/prices; raises CheckoutError/InvalidItems."""
    priced = []
    for item in validate_checkout_items(items):
        version = item.get("version") or "normal"
        if version not in VALID_VERSIONS:
            raise InvalidItems(f"Invalid item version: {version}", item=dict(item))

        card = db.session.get(Card, str(item["id"]))
        if card is None or card.status != "approved":
            raise CheckoutError(f"Card {item['id']} is not available", item_id=str(item["id"]))

        quantity = item["quantity"]
        if card.stock_for(version) < quantity:
            raise CheckoutError(
                f"Not enough stock for {card.name} ({version})", item_id=card.id
            )

        price = card.price_for(version)
        if not price or price <= 0:
            raise CheckoutError(f"{card.name} ({version}) has no price", item_id=card.id)

        priced.append({
            "id": card.id,
            "name": card.name,
            "image": card.image or item.get("image") or "",
            "price": price,
            "quantity": quantity,
            "version": version,
        })
    return priced


def create_checkout(
    items: list[dict],
    customer_email: str | None,
    user_id: int | None = None,
    shipping: dict | None = None,
    gateway=None,
) -> CheckoutPreference:
    """
    Create the gateway preference for a cart.

    Raises:
        InvalidItems: malformed cart lines
        CheckoutError: card unavailable, out of stock or unpriced
        GatewayUnavailable: gateway not configured or create call failed
    """
    priced = price_cart(items)
    gateway = gateway if gateway is not None else get_gateway_client()

    metadata = {"user_id": str(user_id)} if user_id is not None else {}
    preference = gateway.create_checkout_preference(
        priced,
        shipping=shipping,
        customer_email=customer_email,
        metadata=metadata,
    )
    logger.info(
        "Checkout preference %s created for %s (%d lines, ref %s)",
        preference.preference_id, customer_email, len(priced), preference.external_reference,
    )
    return preference
