"""
HTTP surface: checkout, payments, receipts, inventory diagnostics, health.
"""

import pytest

from selfcheckout.extensions import db
from selfcheckout.models import InventoryRecord, PaymentCallback, Purchase


ITEMS = [{"id": "P-1", "name": "Milk 1L", "price": 4.5, "quantity": 2}]


def _stock(record_id):
    db.session.expire_all()
    return db.session.get(InventoryRecord, record_id).stock_level


@pytest.fixture
def shelf(make_record):
    make_record("inv-a", 5, primary="P-1")
    make_record("inv-b", 5, secondary="P-1")


class TestCheckoutRoutes:

    def test_record_purchase(self, client, station, shelf):
        response = client.post("/api/checkout/record", json={
            "station_id": "KIOSK-01",
            "items": ITEMS,
            "amount": 9.00,
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data["already_finalized"] is False
        assert len(data["receipt_token"]) == 32
        assert _stock("inv-a") == 3

    def test_record_accepts_legacy_keys(self, client, station, shelf):
        response = client.post("/api/checkout/record", json={
            "stationId": "KIOSK-01",
            "cart": ITEMS,
            "amount_cents": "900",
            "paymentMethod": "billplz",
        })

        assert response.status_code == 201
        purchase = db.session.get(Purchase, response.get_json()["purchase_id"])
        assert purchase.payment_status == "Paid (Billplz)"

    def test_major_units_round_half_up(self, client, station, shelf):
        response = client.post("/api/checkout/record", json={
            "station_id": "KIOSK-01",
            "items": ITEMS,
            "amount": "10.005",
        })

        assert response.status_code == 201
        purchase = db.session.get(Purchase, response.get_json()["purchase_id"])
        assert purchase.total_cents == 1001

    def test_missing_station(self, client, db_session):
        response = client.post("/api/checkout/record", json={"items": ITEMS, "amount": 9})

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_request"

    def test_unknown_station(self, client, db_session, shelf):
        response = client.post("/api/checkout/record", json={
            "station_id": "KIOSK-99",
            "items": ITEMS,
            "amount": 9,
        })

        assert response.status_code == 403
        assert response.get_json()["error"] == "Unknown stationId."

    @pytest.mark.parametrize("payload", [
        {"amount": 0},
        {"amount": "abc"},
        {"amount_cents": "9.5"},
        {},
    ])
    def test_invalid_amount(self, client, station, payload):
        response = client.post("/api/checkout/record", json={"station_id": "KIOSK-01", "items": ITEMS, **payload})

        assert response.status_code == 400

    def test_insufficient_stock_details(self, client, station, shelf):
        response = client.post("/api/checkout/record", json={
            "station_id": "KIOSK-01",
            "items": [{"id": "P-1", "quantity": 6}],
            "amount": 27,
        })

        assert response.status_code == 409
        data = response.get_json()
        assert data["code"] == "insufficient_stock"
        assert data["details"] == {"product_id": "P-1", "current_stock": 5, "requested": 6}

    def test_finalize_twice(self, client, station, shelf, billplz):
        billplz.set_paid("bill-1", 900, reference="KIOSK-01")
        payload = {
            "provider": "BILLPLZ",
            "payment_ref": "bill-1",
            "station_id": "KIOSK-01",
            "items": ITEMS,
            "amount": 9,
        }

        first = client.post("/api/checkout/finalize", json=payload)
        second = client.post("/api/checkout/finalize", json=payload)

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.get_json()["already_finalized"] is False
        assert second.get_json()["already_finalized"] is True
        assert second.get_json()["purchase_id"] == first.get_json()["purchase_id"]
        assert _stock("inv-a") == 3

    def test_finalize_unpaid(self, client, station, shelf, billplz):
        billplz.set_unpaid("bill-1", 900)

        response = client.post("/api/checkout/finalize", json={
            "provider": "BILLPLZ",
            "payment_ref": "bill-1",
            "station_id": "KIOSK-01",
            "items": ITEMS,
            "amount": 9,
        })

        assert response.status_code == 409
        assert response.get_json()["code"] == "payment_not_confirmed"

    def test_finalize_requires_provider_and_ref(self, client, station):
        response = client.post("/api/checkout/finalize", json={"station_id": "KIOSK-01", "amount": 9})

        assert response.status_code == 400


class TestPaymentRoutes:

    def test_register_and_refresh(self, client, station, billplz):
        response = client.post("/api/payments/", json={
            "provider": "BILLPLZ",
            "payment_ref": "bill-1",
            "station_id": "KIOSK-01",
            "amount": 9,
            "checkout_url": "https://billplz.example/bills/bill-1",
        })
        assert response.status_code == 201
        assert response.get_json()["payment"]["amount_cents"] == 900

        billplz.set_unpaid("bill-1", 900, state="due")
        response = client.get("/api/payments/BILLPLZ/bill-1")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"]["paid"] is False
        assert data["payment"]["provider_state"] == "due"
        assert data["purchase"] is None

    def test_refresh_unconfigured_provider(self, client, db_session):
        response = client.get("/api/payments/NOPE/x")

        assert response.status_code == 400

    def test_callback_always_acknowledged(self, client, db_session):
        ok = client.post("/api/payments/billplz/callback", data={"id": "bill-1", "paid": "true"})
        bad = client.post("/api/payments/paypal/callback", json={"id": "x"})

        assert ok.status_code == 200
        assert bad.status_code == 200
        assert db.session.query(PaymentCallback).count() == 1


class TestReceiptRoutes:

    def test_public_receipt(self, client, station, shelf):
        token = client.post("/api/checkout/record", json={
            "station_id": "KIOSK-01",
            "items": ITEMS,
            "amount": 9,
        }).get_json()["receipt_token"]

        response = client.get(f"/api/receipts/{token}")

        assert response.status_code == 200
        receipt = response.get_json()["receipt"]
        assert receipt["total_cents"] == 900
        assert receipt["station_id"] == "KIOSK-01"
        assert receipt["items"][0]["quantity"] == 2

    def test_unknown_receipt(self, client, db_session):
        assert client.get("/api/receipts/" + "0" * 32).status_code == 404
        assert client.get("/api/receipts/not-a-token").status_code == 404


class TestInventoryAndHealthRoutes:

    def test_resolve(self, client, shelf):
        response = client.get("/api/inventory/P-1/resolve")

        assert response.status_code == 200
        data = response.get_json()
        assert data["canonical"]["record"]["id"] == "inv-a"
        assert [m["scheme"] for m in data["matches"]] == ["primary_field", "secondary_field"]

    def test_resolve_missing(self, client, db_session):
        response = client.get("/api/inventory/P-404/resolve")

        assert response.status_code == 409
        assert response.get_json()["code"] == "no_inventory_record"

    def test_health(self, client, station):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["details"]["active_stations"] == 1
        assert "SIMULATED" in data["payment_providers"]
