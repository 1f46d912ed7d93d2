# Overview: Maps gateway line items back to catalog items and printings.

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from ..models.catalog import VERSION_FOIL, VERSION_NORMAL, VALID_VERSIONS
from .gateway_client import GatewayLineItem


logger = logging.getLogger(__name__)

UNKNOWN_ITEM_ID = "unknown"
FOIL_TITLE_MARKER = "Foil"


@dataclass(frozen=True)
class PaymentItem:
    id: str
    name: str
    quantity: int
    version: str
    price: Decimal

    @property
    def is_unknown(self) -> bool:
        return self.id == UNKNOWN_ITEM_ID

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "version": self.version,
            "price": float(self.price),
        }


def variant_from_title(title: str | None) -> str:
    """Best-effort printing from free text: case-sensitive "Foil" means foil."""
    if title and FOIL_TITLE_MARKER in title:
        return VERSION_FOIL
    return VERSION_NORMAL


def _structured_variant(hints: Sequence[Any], index: int, item_id: str | None) -> str | None:
    if index >= len(hints) or not isinstance(hints[index], dict):
        return None
    hint = hints[index]
    if item_id is None or str(hint.get("id")) != item_id:
        return None
    version = hint.get("version")
    return version if version in VALID_VERSIONS else None


def map_gateway_items_to_payment_items(
    items: Iterable[GatewayLineItem],
    variant_hints: Sequence[Any] | None = None,
) -> list[PaymentItem]:
    """
    Convert gateway line items into PaymentItems.

    The printing comes from the structured tag the checkout stored in the
    preference metadata (matched by position and id). When that tag is missing
    the title heuristic is used and the fallback is logged. Items without an id
    become UNKNOWN_ITEM_ID so fulfillment can skip them.
    """
    hints = list(variant_hints or [])
    mapped = []
    for index, item in enumerate(items):
        version = _structured_variant(hints, index, item.id)
        if version is None:
            version = variant_from_title(item.title)
            logger.warning(
                "Variant for line item %s (%r) inferred from title as %s",
                item.id or UNKNOWN_ITEM_ID, item.title, version,
            )

        quantity = item.quantity if item.quantity is not None else 1
        mapped.append(PaymentItem(
            id=item.id or UNKNOWN_ITEM_ID,
            name=item.title or "Unknown",
            quantity=quantity,
            version=version,
            price=item.unit_price if item.unit_price is not None else Decimal("0"),
        ))
    return mapped
