"""
Checkout preference tests.

Verifies:
- Carts are re-priced from the catalog before reaching the gateway
- Stock, availability and item shape are checked up front
- Gateway outages surface as 503
"""

import pytest

from storefront.services.gateway_client import GatewayUnavailable


CREATE = "/api/payment/create-preference"


def cart_line(id="tfc-1", price=1, quantity=1, version="normal", name="Elsa - Snow Queen"):
    return {"id": id, "name": name, "price": price, "quantity": quantity, "version": version}


class TestCreatePreference:
    def test_requires_auth(self, client, db_session):
        resp = client.post(CREATE, json={"items": [cart_line()]})
        assert resp.status_code == 401

    def test_reprices_from_catalog(self, client, customer_headers, customer_user, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=2, foil_stock=1, price="1000", foil_price="2500")

        resp = client.post(CREATE, json={
            "items": [cart_line(price=1, quantity=2), cart_line(price=1, version="foil")],
        }, headers=customer_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["preferenceId"] == "pref-1"
        assert body["initPoint"].endswith("pref-1")

        sent = gateway.preferences[0]
        assert [(i["price"], i["quantity"], i["version"]) for i in sent["items"]] == [
            (1000, 2, "normal"),
            (2500, 1, "foil"),
        ]
        assert sent["customer_email"] == "buyer@lorcana.test"
        assert sent["metadata"] == {"user_id": str(customer_user.id)}

    def test_insufficient_stock_is_conflict(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=1)

        resp = client.post(CREATE, json={"items": [cart_line(quantity=2)]}, headers=customer_headers)

        assert resp.status_code == 409
        assert resp.get_json()["itemId"] == "tfc-1"
        assert gateway.preferences == []

    def test_unapproved_card_is_conflict(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5, status="pending")

        resp = client.post(CREATE, json={"items": [cart_line()]}, headers=customer_headers)

        assert resp.status_code == 409

    def test_unpriced_card_is_conflict(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5, price="0")

        resp = client.post(CREATE, json={"items": [cart_line()]}, headers=customer_headers)

        assert resp.status_code == 409

    def test_invalid_items(self, client, customer_headers, gateway):
        assert client.post(CREATE, json={"items": []}, headers=customer_headers).status_code == 400
        assert client.post(CREATE, json={}, headers=customer_headers).status_code == 400
        resp = client.post(CREATE, json={"items": [{"id": "tfc-1", "name": "Elsa"}]}, headers=customer_headers)
        assert resp.status_code == 400

    @pytest.mark.parametrize("quantity", ["2.5", 1.5, "two", True])
    def test_fractional_or_non_numeric_quantity(self, client, customer_headers, gateway, make_card, quantity):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5)

        resp = client.post(CREATE, json={"items": [cart_line(quantity=quantity)]}, headers=customer_headers)

        assert resp.status_code == 400
        assert gateway.preferences == []

    def test_whole_number_quantity_strings_accepted(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5)

        resp = client.post(CREATE, json={"items": [cart_line(quantity="2")]}, headers=customer_headers)

        assert resp.status_code == 200
        assert gateway.preferences[0]["items"][0]["quantity"] == 2

    def test_invalid_version(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5)

        resp = client.post(CREATE, json={"items": [cart_line(version="gold")]}, headers=customer_headers)

        assert resp.status_code == 400

    def test_gateway_unavailable(self, client, customer_headers, gateway, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=5)
        gateway.checkout_error = GatewayUnavailable("Mercado Pago is not configured")

        resp = client.post(CREATE, json={"items": [cart_line()]}, headers=customer_headers)

        assert resp.status_code == 503
