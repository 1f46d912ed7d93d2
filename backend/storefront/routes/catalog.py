# Overview: Flask API routes for the public card catalog.

from flask import Blueprint, jsonify, request

from ..services import catalog_service
from ..services.catalog_service import CardNotFound


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/cards")


@catalog_bp.get("")
def list_cards_route():
    """
    List approved cards with per-version stock.

    Query: set, rarity, search, inStock=true
    """
    cards = catalog_service.list_cards(
        set_code=request.args.get("set"),
        rarity=request.args.get("rarity"),
        search=request.args.get("search"),
        in_stock=request.args.get("inStock", "").lower() == "true",
    )
    return jsonify({"cards": [c.to_dict() for c in cards], "total": len(cards)}), 200


@catalog_bp.get("/<card_id>")
def get_card_route(card_id: str):
    try:
        card = catalog_service.get_card(card_id)
    except CardNotFound as e:
        return jsonify({"error": str(e)}), 404
    if card.status != "approved":
        return jsonify({"error": f"Card {card_id} not found"}), 404
    return jsonify({"card": card.to_dict()}), 200
