# Overview: Flask API routes for admin operations; payments recovery, orders, logs, inventory and roles.

# backend/storefront/routes/admin.py
"""
Admin API Routes

DESIGN:
- Manual payment processing reuses the webhook pipeline, so it is
  idempotent: a second call for the same payment is ALREADY_PROCESSED
- Results are returned in full (per-item outcomes) so an admin can decide
  whether to adjust stock or contact the customer; nothing here refunds

SECURITY:
- Every route requires an authenticated admin (AuthContext.is_admin)
"""

from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..extensions import db
from ..models import Order
from ..services import (
    activity_service,
    auth_service,
    catalog_service,
    payment_pipeline,
    reconciliation_service,
)
from ..services.auth_service import UserError
from ..services.catalog_service import CardNotFound, CatalogError
from ..services.fulfillment_service import PaymentNotApproved, STATUS_ITEMS_EMPTY
from ..services.gateway_client import GatewayError, GatewayUnavailable, PaymentNotFound, get_gateway_client
from ..services.order_store import StoreWriteFailure
from ..services.rate_limit_service import rate_limited
from ..services.reconciliation_service import ReconciliationError
from ..time_utils import parse_iso_datetime, utcnow


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _gateway_error_response(e: GatewayError, payment_id: str):
    if isinstance(e, PaymentNotFound):
        return jsonify({"error": f"Payment {payment_id} not found"}), 404
    if isinstance(e, GatewayUnavailable):
        return jsonify({"error": str(e)}), 503
    return jsonify({"error": str(e), "gatewayStatus": e.status_code}), 502


def _page_args(default_limit: int = 50) -> tuple[int, int]:
    limit = min(max(request.args.get("limit", default_limit, type=int), 1), 500)
    offset = max(request.args.get("offset", 0, type=int), 0)
    return limit, offset


# =============================================================================
# PAYMENT RECOVERY
# =============================================================================

@admin_bp.post("/process-payment")
@require_auth
@require_admin
@rate_limited("admin")
def process_payment_route():
    """
    Process a payment manually (recovers missed webhooks).

    Request body:
    {
        "paymentId": "131919510493"
    }

    Returns:
        200: FulfillmentResult (SUCCESS, PARTIAL_SUCCESS, ALREADY_PROCESSED, ITEMS_EMPTY)
        400: Missing paymentId
        404: Payment unknown to the gateway
        409: Payment not approved
        502/503: Gateway failure
        500: Store failure
    """
    data = request.get_json(silent=True) or {}
    payment_id = data.get("paymentId")
    if not payment_id:
        return jsonify({"error": "Payment ID is required"}), 400
    payment_id = str(payment_id)

    current_app.logger.info("Manual processing of payment %s by user %s", payment_id, g.auth.user_id)

    try:
        payment, result = payment_pipeline.fulfill_payment(payment_id, payment_pipeline.SOURCE_MANUAL)
    except PaymentNotApproved as e:
        return jsonify({
            "error": str(e),
            "status": e.status,
        }), 409
    except GatewayError as e:
        return _gateway_error_response(e, payment_id)
    except StoreWriteFailure as e:
        current_app.logger.exception("Store failure processing payment %s manually", payment_id)
        return jsonify({"error": "Store write failure", "detail": str(e), "paymentId": payment_id}), 500

    if result.order_created:
        activity_service.log_activity(
            user_id=g.auth.actor_id,
            action="payment_processed",
            entity_type="payment",
            entity_id=payment_id,
            details={"source": payment_pipeline.SOURCE_MANUAL, **result.to_dict()},
        )

    return jsonify({
        "success": result.overall_status != STATUS_ITEMS_EMPTY,
        "result": result.to_dict(),
        "payment": payment.summary(),
    }), 200


@admin_bp.post("/inspect-payment")
@require_auth
@require_admin
def inspect_payment_route():
    """Return the raw gateway payment plus the fee fields we extract from it."""
    data = request.get_json(silent=True) or {}
    payment_id = data.get("paymentId")
    if not payment_id:
        return jsonify({"error": "Payment ID is required"}), 400
    payment_id = str(payment_id)

    try:
        payment = get_gateway_client().fetch_payment(payment_id)
    except GatewayError as e:
        return _gateway_error_response(e, payment_id)

    order = db.session.query(Order).filter_by(payment_id=payment_id).first()
    return jsonify({
        "paymentId": payment_id,
        "summary": payment.summary(),
        "feeInfo": payment.fee_info(),
        "order": order.to_dict() if order else None,
        "fullPayment": payment.raw,
    }), 200


@admin_bp.post("/update-order-fees")
@require_auth
@require_admin
def update_order_fees_route():
    """
    Backfill gateway fee data onto orders.

    Request body: {"paymentId": "..."} or {"updateAll": true}
    """
    data = request.get_json(silent=True) or {}
    try:
        results = reconciliation_service.backfill_order_fees(
            payment_id=data.get("paymentId"),
            update_all=bool(data.get("updateAll")),
        )
    except ReconciliationError as e:
        status = 404 if "not found" in str(e) else 400
        return jsonify({"error": str(e)}), status
    except GatewayUnavailable as e:
        return jsonify({"error": str(e)}), 503

    updated = sum(1 for r in results if r["success"])
    return jsonify({
        "message": f"Updated {updated} orders. {len(results) - updated} failed.",
        "results": results,
        "summary": {"total": len(results), "updated": updated, "failed": len(results) - updated},
    }), 200


@admin_bp.post("/reconcile")
@require_auth
@require_admin
@rate_limited("strict")
def reconcile_route():
    """
    Sweep approved gateway payments that have no order and fulfill them.

    Request body (optional):
    {"hours": 24} or {"since": ISO-8601, "until": ISO-8601}
    """
    data = request.get_json(silent=True) or {}
    try:
        since = parse_iso_datetime(data.get("since"))
        until = parse_iso_datetime(data.get("until"))
        if since is None and data.get("hours") is not None:
            hours = float(data["hours"])
            if hours <= 0:
                raise ValueError("hours must be positive")
            since = utcnow() - timedelta(hours=hours)
    except (TypeError, ValueError):
        return jsonify({"error": "hours must be a positive number; since/until ISO-8601 datetimes"}), 400

    try:
        report = reconciliation_service.sweep_unfulfilled_payments(since=since, until=until)
    except GatewayError as e:
        return _gateway_error_response(e, "search")

    activity_service.log_activity(
        user_id=g.auth.actor_id,
        action="payments_reconciled",
        entity_type="payment",
        details={
            "scanned": report.scanned,
            "fulfilled": [r.payment_id for r in report.fulfilled],
            "failed": report.failed,
        },
    )
    return jsonify(report.to_dict()), 200


# =============================================================================
# ORDERS AND LOGS
# =============================================================================

@admin_bp.get("/orders")
@require_auth
@require_admin
def list_orders_route():
    limit, offset = _page_args()
    query = db.session.query(Order)
    status = request.args.get("status")
    if status:
        query = query.filter(Order.status == status)

    total = query.count()
    orders = query.order_by(Order.id.desc()).limit(limit).offset(offset).all()
    return jsonify({"orders": [o.to_dict() for o in orders], "total": total}), 200


@admin_bp.get("/logs")
@require_auth
@require_admin
def list_logs_route():
    limit, offset = _page_args(default_limit=100)
    entries, total = activity_service.list_activity(
        action=request.args.get("action"),
        entity_type=request.args.get("entityType"),
        entity_id=request.args.get("entityId"),
        limit=limit,
        offset=offset,
    )
    return jsonify({"logs": [e.to_dict() for e in entries], "total": total}), 200


# =============================================================================
# INVENTORY AND PRICES
# =============================================================================

@admin_bp.post("/inventory")
@require_auth
@require_admin
def set_stock_route():
    """
    Set stock for one printing.

    Request body: {"cardId": "tfc-1", "version": "foil", "stock": 3}
    """
    data = request.get_json(silent=True) or {}
    card_id = data.get("cardId")
    if not card_id or data.get("stock") is None:
        return jsonify({"error": "cardId and stock are required"}), 400

    try:
        record = catalog_service.set_stock(
            card_id, data.get("version", "normal"), data["stock"], g.auth.actor_id
        )
    except CardNotFound as e:
        return jsonify({"error": str(e)}), 404
    except CatalogError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"inventory": record.to_dict()}), 200


@admin_bp.post("/update-prices")
@require_auth
@require_admin
def update_prices_route():
    """
    Update prices for one card or many.

    Single: {"cardId": "tfc-1", "price": 1000, "foilPrice": 2500}
    Bulk:   {"updates": [{"cardId": ..., "price": ..., "foilPrice": ...}, ...]}
    """
    data = request.get_json(silent=True) or {}

    updates = data.get("updates")
    if updates is not None:
        if not isinstance(updates, list):
            return jsonify({"error": "updates must be an array"}), 400
        results = catalog_service.bulk_update_prices(updates, g.auth.actor_id)
        return jsonify({"results": results}), 200

    card_id = data.get("cardId")
    if not card_id:
        return jsonify({"error": "cardId is required"}), 400
    try:
        card = catalog_service.update_prices(
            card_id, g.auth.actor_id, price=data.get("price"), foil_price=data.get("foilPrice")
        )
    except CardNotFound as e:
        return jsonify({"error": str(e)}), 404
    except CatalogError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"card": card.to_dict()}), 200


# =============================================================================
# USERS AND ROLES
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    return jsonify({"users": [u.to_dict() for u in auth_service.list_users()]}), 200


@admin_bp.post("/users/<int:user_id>/role")
@require_auth
@require_admin
def grant_role_route(user_id: int):
    try:
        user = auth_service.grant_admin(user_id, g.auth.actor_id)
    except UserError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"user": user.to_dict()}), 200


@admin_bp.delete("/users/<int:user_id>/role")
@require_auth
@require_admin
def revoke_role_route(user_id: int):
    try:
        user = auth_service.revoke_admin(user_id, g.auth.actor_id)
    except UserError as e:
        status = 404 if "not found" in str(e) else 400
        return jsonify({"error": str(e)}), status
    return jsonify({"user": user.to_dict()}), 200
