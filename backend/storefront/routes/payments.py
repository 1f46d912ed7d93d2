# Overview: Flask API routes for checkout; turns a cart into a hosted-checkout preference.

# backend/storefront/routes/payments.py
"""
Checkout API Routes

DESIGN:
- The cart is re-priced from the catalog before the gateway is called
- The customer email comes from the authenticated session, not the body

SECURITY:
- Authenticated users only, rate-limited with the "api" preset
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import checkout_service
from ..services.checkout_service import CheckoutError
from ..services.gateway_client import GatewayUnavailable, InvalidItems
from ..services.rate_limit_service import rate_limited


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payment")


@payments_bp.post("/create-preference")
@rate_limited("api")
@require_auth
def create_preference_route():
    """
    Create a hosted-checkout preference.

    Request body:
    {
        "items": [{"id": "tfc-1", "name": "...", "price": 1000, "quantity": 2, "version": "foil"}],
        "shipping": {"cost": 3000, "address": {"street": "...", "city": "...", "region": "...", "zipCode": "..."}}  (optional)
    }

    Returns:
        200: {preferenceId, initPoint, sandboxInitPoint, externalReference}
        400: Malformed items
        409: Card unavailable, out of stock or unpriced
        503: Gateway not configured or unreachable
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items")
    if not isinstance(items, list):
        return jsonify({"error": "items must be an array"}), 400

    shipping = data.get("shipping")
    if shipping is not None and not isinstance(shipping, dict):
        return jsonify({"error": "shipping must be an object"}), 400

    try:
        preference = checkout_service.create_checkout(
            items,
            customer_email=g.auth.email,
            user_id=g.auth.user_id,
            shipping=shipping,
        )
    except InvalidItems as e:
        return jsonify({"error": str(e), "item": e.item}), 400
    except CheckoutError as e:
        return jsonify({"error": str(e), "itemId": e.item_id}), 409
    except GatewayUnavailable as e:
        current_app.logger.error("Checkout unavailable: %s", e)
        return jsonify({"error": "Payment gateway unavailable"}), 503

    return jsonify(preference.to_dict()), 200
