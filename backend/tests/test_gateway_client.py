"""
Mercado Pago client tests (httpx.MockTransport, no network).

Verifies:
- Payment parsing: items, fees, metadata tags
- Error mapping: 404 -> PaymentNotFound, other non-2xx -> GatewayError,
  transport failures -> GatewayUnavailable
- Checkout preference body and idempotency header
- Payment search paging
"""

import json
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from storefront.services.gateway_client import (
    GatewayError,
    GatewaySettings,
    GatewayUnavailable,
    InvalidItems,
    MercadoPagoClient,
    PaymentNotFound,
    parse_payment,
)

from fakes import payment_payload


def make_client(handler, **settings):
    settings.setdefault("access_token", "TEST-0000")
    settings.setdefault("api_base", "https://api.mercadopago.test")
    settings.setdefault("public_base_url", "https://shop.test")
    return MercadoPagoClient(GatewaySettings(**settings), transport=httpx.MockTransport(handler))


CART = [
    {"id": "tfc-1", "name": "Elsa - Snow Queen", "price": 2500, "quantity": 1, "version": "foil", "image": "/img/tfc-1.png"},
    {"id": "tfc-2", "name": "Mickey Mouse", "price": Decimal("1000"), "quantity": 2},
]


# =============================================================================
# PARSING
# =============================================================================


class TestParsePayment:
    def test_fields_and_fee_sum(self):
        payment = parse_payment(payment_payload(
            "131919510493",
            items=[{"id": "tfc-1", "title": "Elsa (Foil)", "quantity": "2", "unit_price": 2500}],
            line_items=[{"id": "tfc-1", "version": "foil"}],
            fee_details=[{"type": "mercadopago_fee", "amount": 150}, {"type": "financing_fee", "amount": 50.5}],
            net_received_amount=4799.5,
        ))

        assert payment.payment_id == "131919510493"
        assert payment.is_approved
        assert payment.transaction_amount == Decimal("5000")
        assert payment.fee_amount == Decimal("200.5")
        assert payment.net_received_amount == Decimal("4799.5")
        assert payment.items[0].quantity == 2
        assert payment.items[0].unit_price == Decimal("2500")
        assert payment.metadata["line_items"] == [{"id": "tfc-1", "version": "foil"}]

    def test_missing_optional_sections(self):
        payment = parse_payment({"id": 1, "status": "pending", "transaction_amount": 100})

        assert payment.items == ()
        assert payment.fee_amount is None
        assert payment.net_received_amount is None
        assert payment.payer_email is None
        assert not payment.is_approved


# =============================================================================
# FETCH
# =============================================================================


class TestFetchPayment:
    def test_fetch_uses_bearer_token(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=payment_payload("42", items=[{"id": "tfc-1", "unit_price": 10}]))

        payment = make_client(handler).fetch_payment("42")

        assert payment.payment_id == "42"
        assert seen == {"path": "/v1/payments/42", "auth": "Bearer TEST-0000"}

    def test_404_is_payment_not_found(self):
        client = make_client(lambda request: httpx.Response(404, json={"message": "not found"}))
        with pytest.raises(PaymentNotFound):
            client.fetch_payment("missing")

    def test_server_error_is_gateway_error(self):
        client = make_client(lambda request: httpx.Response(500, json={"message": "boom"}))
        with pytest.raises(GatewayError) as exc_info:
            client.fetch_payment("42")
        assert not isinstance(exc_info.value, PaymentNotFound)
        assert exc_info.value.status_code == 500

    def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailable):
            make_client(handler).fetch_payment("42")

    def test_connection_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GatewayUnavailable):
            make_client(handler).fetch_payment("42")

    def test_missing_token_is_unavailable(self):
        with pytest.raises(GatewayUnavailable):
            MercadoPagoClient(GatewaySettings(access_token=None))


# =============================================================================
# CHECKOUT PREFERENCE
# =============================================================================


class TestCheckoutPreference:
    def test_preference_body(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["idempotency"] = request.headers.get("X-Idempotency-Key")
            return httpx.Response(201, json={
                "id": "pref-123",
                "init_point": "https://mp.test/init",
                "sandbox_init_point": "https://mp.test/sandbox",
            })

        preference = make_client(handler, statement_descriptor="GA Company").create_checkout_preference(
            CART,
            shipping={"cost": 3000, "address": {"street": "Av. Siempre Viva 742", "city": "Santiago", "region": "RM"}},
            customer_email="buyer@lorcana.test",
            metadata={"user_id": "7"},
        )

        body = seen["body"]
        assert preference.preference_id == "pref-123"
        assert preference.redirect_url == "https://mp.test/init"
        assert preference.external_reference == body["external_reference"]
        assert body["external_reference"].startswith("order-")
        assert seen["idempotency"] == body["external_reference"]

        assert [i["title"] for i in body["items"]] == ["Elsa - Snow Queen (Foil)", "Mickey Mouse (Normal)"]
        assert [i["unit_price"] for i in body["items"]] == [2500, 1000]
        assert body["items"][0]["picture_url"] == "https://shop.test/img/tfc-1.png"
        assert body["metadata"] == {
            "user_id": "7",
            "line_items": [{"id": "tfc-1", "version": "foil"}, {"id": "tfc-2", "version": "normal"}],
        }
        assert body["payer"] == {"email": "buyer@lorcana.test"}
        assert body["notification_url"] == "https://shop.test/api/webhooks/mercadopago"
        assert body["back_urls"]["success"] == "https://shop.test/payment/success"
        assert body["payment_methods"]["installments"] == 6
        assert body["payment_methods"]["excluded_payment_types"] == [{"id": "ticket"}, {"id": "atm"}]
        assert body["shipments"]["cost"] == 3000
        assert body["shipments"]["receiver_address"]["city_name"] == "Santiago"
        assert body["statement_descriptor"] == "GA Company"

    @pytest.mark.parametrize("items", [
        [],
        [{"id": "tfc-1", "name": "Elsa", "price": 1000}],
        [{"id": "tfc-1", "name": "Elsa", "price": 0, "quantity": 1}],
        [{"id": "tfc-1", "name": "Elsa", "price": 1000, "quantity": -1}],
    ])
    def test_invalid_items_never_reach_gateway(self, items):
        def handler(request):
            raise AssertionError("gateway must not be called")

        with pytest.raises(InvalidItems):
            make_client(handler).create_checkout_preference(items)

    def test_rejected_preference_is_unavailable(self):
        client = make_client(lambda request: httpx.Response(400, json={"message": "invalid"}))
        with pytest.raises(GatewayUnavailable):
            client.create_checkout_preference(CART)


# =============================================================================
# SEARCH
# =============================================================================


class TestSearchPayments:
    def test_search_params_and_paging(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={
                "results": [payment_payload("1"), payment_payload("2")],
                "paging": {"total": 7, "limit": 2, "offset": 4},
            })

        page, total = make_client(handler).search_payments(
            begin_date=datetime(2026, 10, 18, 12, 0, 0), limit=2, offset=4
        )

        assert [p.payment_id for p in page] == ["1", "2"]
        assert total == 7
        assert seen["params"]["status"] == "approved"
        assert seen["params"]["range"] == "date_created"
        assert seen["params"]["begin_date"] == "2026-10-18T12:00:00.000-00:00"
        assert seen["params"]["offset"] == "4"

    def test_search_failure_is_gateway_error(self):
        client = make_client(lambda request: httpx.Response(503))
        with pytest.raises(GatewayError):
            client.search_payments()
