# Overview: Service-layer operations for the card catalog, stock and prices.

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from ..extensions import db
from ..models import Card, InventoryRecord
from ..models.catalog import VALID_VERSIONS
from . import activity_service


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    pass


class CardNotFound(CatalogError):
    pass


def _parse_price(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise CatalogError(f"{field_name} must be a number")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise CatalogError(f"{field_name} must be a number")
    if not price.is_finite():
        raise CatalogError(f"{field_name} must be a number")
    # negative prices are clamped, matching the admin price tools
    return max(Decimal("0"), price)


def _parse_stock(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise CatalogError("stock must be an integer")
    try:
        stock = int(value)
    except ValueError:
        raise CatalogError("stock must be an integer")
    if stock < 0:
        raise CatalogError("stock cannot be negative")
    return stock


# =============================================================================
# QUERIES
# =============================================================================

def list_cards(
    set_code: str | None = None,
    rarity: str | None = None,
    search: str | None = None,
    in_stock: bool = False,
    include_unapproved: bool = False,
) -> list[Card]:
    query = db.session.query(Card)
    if not include_unapproved:
        query = query.filter(Card.status == "approved")
    if set_code:
        query = query.filter(Card.set_code == set_code)
    if rarity:
        query = query.filter(Card.rarity == rarity)
    if search:
        query = query.filter(Card.name.ilike(f"%{search}%"))
    if in_stock:
        query = query.filter(
            Card.id.in_(db.session.query(InventoryRecord.card_id).filter(InventoryRecord.stock > 0))
        )
    return query.order_by(Card.set_code, Card.number, Card.id).all()


def get_card(card_id: str) -> Card:
    card = db.session.get(Card, card_id)
    if not card:
        raise CardNotFound(f"Card {card_id} not found")
    return card


# =============================================================================
# MUTATIONS
# =============================================================================

def create_card(data: dict, actor_id: str, commit: bool = True) -> Card:
    """
    Create a card with empty normal/foil inventory rows.

    Required: id, name. Optional: set, number, rarity, type, image, price,
    foilPrice, normalStock, foilStock.
    """
    card_id = (data.get("id") or "").strip()
    name = (data.get("name") or "").strip()
    if not card_id or not name:
        raise CatalogError("Card id and name are required")
    if db.session.get(Card, card_id):
        raise CatalogError(f"Card {card_id} already exists")

    card = Card(
        id=card_id,
        name=name,
        set_code=data.get("set"),
        number=data.get("number"),
        rarity=data.get("rarity"),
        card_type=data.get("type"),
        image=data.get("image"),
        price=_parse_price(data.get("price", 0), "price"),
        foil_price=_parse_price(data.get("foilPrice", 0), "foilPrice"),
        status="approved",
    )
    db.session.add(card)
    db.session.add(InventoryRecord(card_id=card_id, version="normal", stock=_parse_stock(data.get("normalStock", 0))))
    db.session.add(InventoryRecord(card_id=card_id, version="foil", stock=_parse_stock(data.get("foilStock", 0))))
    db.session.flush()

    activity_service.log_activity(
        user_id=actor_id,
        action="card_created",
        entity_type="card",
        entity_id=card_id,
        details={"name": name},
        commit=False,
    )
    if commit:
        db.session.commit()
    return card


def set_stock(card_id: str, version: str, stock: Any, actor_id: str) -> InventoryRecord:
    """Admin override of a printing's stock count."""
    if version not in VALID_VERSIONS:
        raise CatalogError(f"version must be one of {list(VALID_VERSIONS)}")
    stock = _parse_stock(stock)
    get_card(card_id)

    record = db.session.get(InventoryRecord, (card_id, version))
    previous = record.stock if record else None
    if record is None:
        record = InventoryRecord(card_id=card_id, version=version, stock=stock)
        db.session.add(record)
    else:
        record.stock = stock

    activity_service.log_activity(
        user_id=actor_id,
        action="card_updated",
        entity_type="card",
        entity_id=card_id,
        details={"field": f"{version}Stock", "from": previous, "to": stock},
        commit=False,
    )
    db.session.commit()
    return record


def update_prices(card_id: str, actor_id: str, price: Any = None, foil_price: Any = None) -> Card:
    """Update one card's normal and/or foil price."""
    if price is None and foil_price is None:
        raise CatalogError("No valid price fields to update")
    card = get_card(card_id)

    changes = {}
    if price is not None:
        card.price = _parse_price(price, "price")
        changes["price"] = float(card.price)
    if foil_price is not None:
        card.foil_price = _parse_price(foil_price, "foilPrice")
        changes["foilPrice"] = float(card.foil_price)

    activity_service.log_activity(
        user_id=actor_id,
        action="card_updated",
        entity_type="card",
        entity_id=card_id,
        details=changes,
        commit=False,
    )
    db.session.commit()
    return card


def bulk_update_prices(updates: list[dict], actor_id: str) -> dict:
    """
    Apply many price updates; one bad entry does not stop the others.

    Returns {"success": n, "failed": n, "errors": [{cardId, error}]}.
    """
    results = {"success": 0, "failed": 0, "errors": []}
    for update in updates:
        card_id = update.get("cardId") if isinstance(update, dict) else None
        if not card_id:
            results["failed"] += 1
            results["errors"].append({"cardId": card_id or "unknown", "error": "Card ID is required"})
            continue
        try:
            update_prices(card_id, actor_id, price=update.get("price"), foil_price=update.get("foilPrice"))
        except CatalogError as exc:
            db.session.rollback()
            results["failed"] += 1
            results["errors"].append({"cardId": card_id, "error": str(exc)})
            continue
        results["success"] += 1
    return results
