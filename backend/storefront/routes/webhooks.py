# Overview: Flask API routes for gateway notifications; admits untrusted webhooks into fulfillment.

# backend/storefront/routes/webhooks.py
"""
Mercado Pago Webhook Receiver

SECURITY:
- The notification is only a hint: the payment is re-fetched from the
  gateway by id and nothing else in the body is used
- Optional HMAC check of the x-signature header when
  MERCADOPAGO_WEBHOOK_SECRET is configured

RESPONSES:
- 200 with a small JSON ack once the notification is logged, whatever the
  fulfillment outcome, so the gateway does not hot-loop on our failures
- 400 for malformed notifications, 401 for bad signatures
- 500 only if the notification could not be logged (the gateway retries)
"""

import hashlib
import hmac

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..services import activity_service, payment_pipeline
from ..services.fulfillment_service import PaymentNotApproved, SYSTEM_USER
from ..services.gateway_client import GatewayError, GatewayUnavailable, PaymentNotFound
from ..services.order_store import StoreWriteFailure


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")

PAYMENT_TOPIC = "payment"
PAYMENT_ACTIONS = {"payment.created", "payment.updated"}


class MalformedNotification(ValueError):
    pass


def _parse_notification() -> tuple[str | None, str | None, str | None]:
    """
    Extract (topic, action, payment_id) from a webhook or legacy IPN request.

    Accepted shapes:
    - body {"type": "payment", "action": "payment.updated", "data": {"id": "123"}}
    - query ?type=payment&data.id=123
    - query ?topic=payment&id=123 (IPN)
    """
    body = request.get_json(silent=True)
    if body is None:
        if request.get_data():
            raise MalformedNotification("Body is not valid JSON")
        body = {}
    if not isinstance(body, dict):
        raise MalformedNotification("Body must be a JSON object")

    data = body.get("data")
    if data is not None and not isinstance(data, dict):
        raise MalformedNotification("data must be an object")
    data = data or {}

    topic = body.get("type") or body.get("topic") or request.args.get("type") or request.args.get("topic")
    action = body.get("action")

    payment_id = data.get("id") or request.args.get("data.id")
    if not payment_id and topic == PAYMENT_TOPIC:
        payment_id = request.args.get("id")

    if not topic and not action:
        raise MalformedNotification("Notification type is required")

    return topic, action, str(payment_id) if payment_id else None


def _signature_valid(payment_id: str | None) -> bool:
    secret = current_app.config.get("MERCADOPAGO_WEBHOOK_SECRET")
    if not secret:
        return True

    header = request.headers.get("x-signature", "")
    parts = dict(
        part.strip().split("=", 1) for part in header.split(",") if "=" in part
    )
    ts, received = parts.get("ts"), parts.get("v1")
    if not ts or not received:
        return False

    data_id = request.args.get("data.id") or payment_id or ""
    manifest = f"id:{data_id.lower()};"
    request_id = request.headers.get("x-request-id")
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"

    expected = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


@webhooks_bp.post("/mercadopago")
def mercadopago_webhook_route():
    try:
        topic, action, payment_id = _parse_notification()
    except MalformedNotification as e:
        return jsonify({"error": str(e)}), 400

    is_payment = topic == PAYMENT_TOPIC or action in PAYMENT_ACTIONS
    if not is_payment:
        return jsonify({"received": True, "ignored": True}), 200

    if not payment_id:
        return jsonify({"error": "Payment notification without payment id"}), 400

    if not _signature_valid(payment_id):
        current_app.logger.warning("Rejected webhook for payment %s: bad signature", payment_id)
        return jsonify({"error": "Invalid signature"}), 401

    current_app.logger.info("Webhook received: type=%s action=%s payment=%s", topic, action, payment_id)

    try:
        activity_service.log_activity(
            user_id=SYSTEM_USER,
            action="payment_webhook",
            entity_type="payment",
            entity_id=payment_id,
            details={"type": topic, "action": action, "paymentId": payment_id},
        )
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to log webhook for payment %s", payment_id)
        return jsonify({"error": "Internal server error"}), 500

    response = {"received": True, "paymentId": payment_id}
    try:
        _, result = payment_pipeline.fulfill_payment(payment_id, payment_pipeline.SOURCE_WEBHOOK)
        response["outcome"] = result.overall_status
        response["orderId"] = result.order_id
    except PaymentNotApproved as e:
        current_app.logger.info("Payment %s not approved (%s); no action", payment_id, e.status)
        response["outcome"] = "NOT_APPROVED"
    except PaymentNotFound:
        current_app.logger.warning("Webhook referenced unknown payment %s", payment_id)
        response["outcome"] = "PAYMENT_NOT_FOUND"
    except GatewayUnavailable:
        current_app.logger.exception("Gateway unavailable while handling payment %s", payment_id)
        response["outcome"] = "GATEWAY_UNAVAILABLE"
    except GatewayError:
        current_app.logger.exception("Gateway error while handling payment %s", payment_id)
        response["outcome"] = "GATEWAY_ERROR"
    except StoreWriteFailure:
        current_app.logger.exception("Store failure while fulfilling payment %s", payment_id)
        response["outcome"] = "FAILED"

    return jsonify(response), 200


@webhooks_bp.get("/mercadopago")
def mercadopago_webhook_status_route():
    return jsonify({"message": "Mercado Pago Webhook Endpoint", "status": "active"}), 200
