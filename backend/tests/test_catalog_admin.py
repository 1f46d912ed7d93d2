"""
Catalog, inventory and price administration tests.
"""

from helpers import activity_actions, stock_of


# =============================================================================
# PUBLIC CATALOG
# =============================================================================


class TestCatalog:
    def test_lists_approved_cards_only(self, client, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=2)
        make_card("tfc-2", "Mickey Mouse")
        make_card("tfc-3", "Maleficent", status="pending")

        body = client.get("/api/cards").get_json()

        assert body["total"] == 2
        assert [c["id"] for c in body["cards"]] == ["tfc-1", "tfc-2"]
        assert body["cards"][0]["normalStock"] == 2
        assert body["cards"][0]["price"] == 1000.0

    def test_filters(self, client, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=2)
        make_card("tfc-2", "Mickey Mouse")

        assert client.get("/api/cards?inStock=true").get_json()["total"] == 1
        assert client.get("/api/cards?search=mickey").get_json()["cards"][0]["id"] == "tfc-2"

    def test_get_card(self, client, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", foil_stock=1)
        make_card("tfc-3", "Maleficent", status="pending")

        assert client.get("/api/cards/tfc-1").get_json()["card"]["foilStock"] == 1
        assert client.get("/api/cards/tfc-3").status_code == 404
        assert client.get("/api/cards/nope").status_code == 404


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventory:
    def test_set_stock(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", foil_stock=1)

        resp = client.post(
            "/api/admin/inventory",
            json={"cardId": "tfc-1", "version": "foil", "stock": 7},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        assert resp.get_json()["inventory"]["stock"] == 7
        assert stock_of("tfc-1", "foil") == 7
        assert activity_actions("tfc-1") == ["card_updated"]

    def test_invalid_stock(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen", normal_stock=1)

        for body in (
            {"cardId": "tfc-1", "stock": -1},
            {"cardId": "tfc-1", "stock": "lots"},
            {"cardId": "tfc-1", "version": "gold", "stock": 1},
            {"cardId": "tfc-1"},
        ):
            assert client.post("/api/admin/inventory", json=body, headers=admin_headers).status_code == 400
        assert stock_of("tfc-1", "normal") == 1

    def test_unknown_card(self, client, admin_headers):
        resp = client.post("/api/admin/inventory", json={"cardId": "nope", "stock": 1}, headers=admin_headers)
        assert resp.status_code == 404


# =============================================================================
# PRICES
# =============================================================================


class TestPrices:
    def test_single_update(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen")

        resp = client.post(
            "/api/admin/update-prices",
            json={"cardId": "tfc-1", "foilPrice": 3200},
            headers=admin_headers,
        )

        assert resp.status_code == 200
        card = resp.get_json()["card"]
        assert card["price"] == 1000.0
        assert card["foilPrice"] == 3200.0

    def test_negative_price_clamped(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen")

        resp = client.post("/api/admin/update-prices", json={"cardId": "tfc-1", "price": -5}, headers=admin_headers)

        assert resp.get_json()["card"]["price"] == 0.0

    def test_no_price_fields(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen")
        resp = client.post("/api/admin/update-prices", json={"cardId": "tfc-1"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_bulk_update_collects_errors(self, client, admin_headers, make_card):
        make_card("tfc-1", "Elsa - Snow Queen")
        make_card("tfc-2", "Mickey Mouse")

        resp = client.post("/api/admin/update-prices", json={"updates": [
            {"cardId": "tfc-1", "price": 1100},
            {"cardId": "tfc-2", "price": "abc"},
            {"price": 10},
            {"cardId": "nope", "price": 10},
        ]}, headers=admin_headers)

        results = resp.get_json()["results"]
        assert results["success"] == 1
        assert results["failed"] == 3
        assert [e["cardId"] for e in results["errors"]] == ["tfc-2", "unknown", "nope"]

        cards = {c["id"]: c for c in client.get("/api/cards").get_json()["cards"]}
        assert cards["tfc-1"]["price"] == 1100.0
        assert cards["tfc-2"]["price"] == 1000.0


# =============================================================================
# HEALTH
# =============================================================================


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["cards"] == 0
