"""
Mercado Pago webhook tests.

Verifies:
- Notifications are only hints: the payment is re-fetched by id
- Webhook redelivery is idempotent
- Non-payment topics are acknowledged and ignored
- Malformed notifications get 400, bad signatures 401
- Fulfillment failures still acknowledge with 200
"""

import hashlib
import hmac

import pytest

from storefront.services.gateway_client import GatewayUnavailable

from fakes import payment_payload
from helpers import activity_actions, order_count, stock_of


WEBHOOK = "/api/webhooks/mercadopago"


@pytest.fixture
def elsa_payment(gateway, make_card):
    make_card("tfc-1", "Elsa - Snow Queen", normal_stock=1)
    return gateway.add_payment(payment_payload(
        "1001",
        items=[{"id": "tfc-1", "title": "Elsa - Snow Queen (Normal)", "quantity": 1, "unit_price": 1000}],
        line_items=[{"id": "tfc-1", "version": "normal"}],
    ))


class TestPaymentNotifications:
    def test_webhook_fulfills_payment(self, client, elsa_payment):
        resp = client.post(WEBHOOK, json={"type": "payment", "action": "payment.created", "data": {"id": "1001"}})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["received"] is True
        assert body["paymentId"] == "1001"
        assert body["outcome"] == "SUCCESS"
        assert body["orderId"] is not None
        assert stock_of("tfc-1", "normal") == 0
        assert activity_actions("1001") == ["payment_webhook"]

    def test_redelivery_is_already_processed(self, client, elsa_payment):
        client.post(WEBHOOK, json={"type": "payment", "data": {"id": "1001"}})
        resp = client.post(WEBHOOK, json={"type": "payment", "data": {"id": "1001"}})

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "ALREADY_PROCESSED"
        assert order_count("1001") == 1
        assert stock_of("tfc-1", "normal") == 0

    def test_ipn_query_format(self, client, gateway, elsa_payment):
        resp = client.post(f"{WEBHOOK}?topic=payment&id=1001")

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "SUCCESS"
        assert gateway.fetch_calls == ["1001"]

    def test_query_data_id_format(self, client, elsa_payment):
        resp = client.post(f"{WEBHOOK}?type=payment&data.id=1001")

        assert resp.get_json()["outcome"] == "SUCCESS"

    def test_body_amounts_are_not_trusted(self, client, gateway, make_card):
        make_card("tfc-2", "Mickey Mouse", foil_stock=3)
        gateway.add_payment(payment_payload("1002", status="pending", items=[
            {"id": "tfc-2", "title": "Mickey Mouse (Foil)", "quantity": 1, "unit_price": 2500},
        ]))

        resp = client.post(WEBHOOK, json={
            "type": "payment",
            "data": {"id": "1002", "status": "approved", "transaction_amount": 1},
        })

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "NOT_APPROVED"
        assert order_count("1002") == 0
        assert stock_of("tfc-2", "foil") == 3

    def test_unknown_payment_is_acknowledged(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, json={"type": "payment", "data": {"id": "999"}})

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "PAYMENT_NOT_FOUND"

    def test_gateway_down_is_acknowledged(self, client, gateway, db_session):
        gateway.fetch_error = GatewayUnavailable("Mercado Pago timed out")

        resp = client.post(WEBHOOK, json={"type": "payment", "data": {"id": "1001"}})

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "GATEWAY_UNAVAILABLE"
        assert activity_actions("1001") == ["payment_webhook"]

    def test_empty_items_are_acknowledged(self, client, gateway, db_session):
        gateway.add_payment(payment_payload("1003", items=[], amount=5000))

        resp = client.post(WEBHOOK, json={"type": "payment", "data": {"id": "1003"}})

        assert resp.get_json()["outcome"] == "ITEMS_EMPTY"
        assert order_count("1003") == 0


class TestIgnoredAndMalformed:
    def test_non_payment_topic_ignored(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, json={"type": "merchant_order", "data": {"id": "55"}})

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True, "ignored": True}
        assert gateway.fetch_calls == []

    def test_missing_type_is_400(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, json={"data": {"id": "1001"}})
        assert resp.status_code == 400

    def test_non_object_body_is_400(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, json=["payment"])
        assert resp.status_code == 400

    def test_invalid_json_is_400(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, data="{not json", content_type="application/json")
        assert resp.status_code == 400

    def test_payment_without_id_is_400(self, client, gateway, db_session):
        resp = client.post(WEBHOOK, json={"type": "payment", "data": {}})
        assert resp.status_code == 400

    def test_liveness(self, client):
        resp = client.get(WEBHOOK)
        assert resp.status_code == 200
        assert resp.get_json() == {"message": "Mercado Pago Webhook Endpoint", "status": "active"}


class TestSignature:
    SECRET = "whsec-test"

    def _signature(self, data_id, request_id, ts="1760000000"):
        manifest = f"id:{data_id};request-id:{request_id};ts:{ts};"
        digest = hmac.new(self.SECRET.encode(), manifest.encode(), hashlib.sha256).hexdigest()
        return f"ts={ts},v1={digest}"

    def test_valid_signature_accepted(self, app, client, elsa_payment, monkeypatch):
        monkeypatch.setitem(app.config, "MERCADOPAGO_WEBHOOK_SECRET", self.SECRET)

        resp = client.post(
            f"{WEBHOOK}?type=payment&data.id=1001",
            json={"type": "payment", "data": {"id": "1001"}},
            headers={"x-signature": self._signature("1001", "req-1"), "x-request-id": "req-1"},
        )

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "SUCCESS"

    def test_bad_signature_rejected(self, app, client, elsa_payment, monkeypatch):
        monkeypatch.setitem(app.config, "MERCADOPAGO_WEBHOOK_SECRET", self.SECRET)

        resp = client.post(
            WEBHOOK,
            json={"type": "payment", "data": {"id": "1001"}},
            headers={"x-signature": "ts=1,v1=deadbeef", "x-request-id": "req-1"},
        )

        assert resp.status_code == 401
        assert order_count("1001") == 0
        assert stock_of("tfc-1", "normal") == 1

    def test_missing_signature_rejected(self, app, client, elsa_payment, monkeypatch):
        monkeypatch.setitem(app.config, "MERCADOPAGO_WEBHOOK_SECRET", self.SECRET)

        resp = client.post(WEBHOOK, json={"type": "payment", "data": {"id": "1001"}})

        assert resp.status_code == 401
