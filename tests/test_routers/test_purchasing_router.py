"""
Integration tests for the /purchase-orders and /invoices routers.

Decimal fields serialize as JSON strings, so figures are compared as strings.
"""

import pytest

from fastapi.testclient import TestClient


@pytest.fixture
def po_payload(sample_supplier, sample_site, sample_location, sample_stage) -> dict:
    return {
        "supplier_id": sample_supplier.id,
        "site_id": sample_site.id,
        "location_id": sample_location.id,
        "stage_id": sample_stage.id,
        "po_date": "2025-03-14",
        "description": "Ready-mix concrete",
        "net_amount": "1000",
        "vat_rate": "0.23",
        "line_items": [
            {"description": "C30 concrete", "quantity": "8", "unit": "m3", "unit_price": "125"}
        ],
    }


def _create_po(client, headers, payload) -> dict:
    response = client.post("/purchase-orders", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


class TestPurchaseOrders:
    def test_create_and_read_back(self, client: TestClient, staff_user, auth_headers, po_payload):
        created = _create_po(client, auth_headers(staff_user), po_payload)

        assert created["po_number"] == "R503001"
        assert created["supplier"] == "Murphy Concrete Ltd"
        assert created["location"] == "Plot 1"
        assert created["total_amount"] == "1230.00"
        assert created["uninvoiced_net"] == "1000.00"
        assert created["uninvoiced_gross"] == "1230.00"
        assert created["reconciliation_state"] == "open"
        assert created["line_items"][0]["line_total"] == "1000.00"

        response = client.get(f"/purchase-orders/{created['id']}", headers=auth_headers(staff_user))
        assert response.status_code == 200
        assert response.json()["po_number"] == "R503001"

    def test_viewer_can_read_but_not_write(
        self, client: TestClient, staff_user, viewer_user, auth_headers, po_payload
    ):
        _create_po(client, auth_headers(staff_user), po_payload)

        listing = client.get("/purchase-orders", headers=auth_headers(viewer_user))
        assert listing.status_code == 200
        assert [row["po_number"] for row in listing.json()] == ["R503001"]

        denied = client.post("/purchase-orders", json=po_payload, headers=auth_headers(viewer_user))
        assert denied.status_code == 403

    def test_invoices_reduce_the_balance(
        self, client: TestClient, staff_user, auth_headers, po_payload
    ):
        headers = auth_headers(staff_user)
        po = _create_po(client, headers, po_payload)

        for number, net in (("MC-1", "400"), ("MC-1-CN", "-100")):
            response = client.post(
                "/invoices",
                json={
                    "purchase_order_id": po["id"],
                    "invoice_number": number,
                    "invoice_date": "2025-03-31",
                    "net_amount": net,
                    "vat_rate": "23",
                },
                headers=headers,
            )
            assert response.status_code == 201, response.text

        detail = client.get(f"/purchase-orders/{po['id']}", headers=headers).json()
        assert detail["invoiced_net"] == "300.00"
        assert detail["uninvoiced_net"] == "700.00"
        assert detail["uninvoiced_gross"] == "861.00"
        assert len(detail["invoices"]) == 2

        listed = client.get("/invoices", params={"po_id": po["id"]}, headers=headers).json()
        assert {inv["invoice_number"] for inv in listed} == {"MC-1", "MC-1-CN"}

    def test_cancel_with_invoices_is_409_then_succeeds(
        self, client: TestClient, staff_user, admin_user, auth_headers, po_payload
    ):
        po = _create_po(client, auth_headers(staff_user), po_payload)
        invoice = client.post(
            "/invoices",
            json={
                "purchase_order_id": po["id"],
                "invoice_number": "X-1",
                "invoice_date": "2025-03-31",
                "net_amount": "10",
                "vat_rate": "0.23",
            },
            headers=auth_headers(staff_user),
        ).json()

        staff_cancel = client.delete(f"/purchase-orders/{po['id']}", headers=auth_headers(staff_user))
        assert staff_cancel.status_code == 403

        refused = client.delete(f"/purchase-orders/{po['id']}", headers=auth_headers(admin_user))
        assert refused.status_code == 409
        assert refused.json() == {
            "error": "conflict",
            "message": "Cannot cancel PO with existing invoices",
        }

        assert client.delete(
            f"/invoices/{invoice['id']}", headers=auth_headers(staff_user)
        ).json()["status"] == "cancelled"
        cancelled = client.delete(f"/purchase-orders/{po['id']}", headers=auth_headers(admin_user))
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancelled_at"] is not None

    def test_bad_vat_rate_is_400(self, client: TestClient, staff_user, auth_headers, po_payload):
        po_payload["vat_rate"] = "0.2"
        po_payload["line_items"] = []
        response = client.post("/purchase-orders", json=po_payload, headers=auth_headers(staff_user))
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_missing_po_is_404(self, client: TestClient, staff_user, auth_headers):
        response = client.get("/purchase-orders/9999", headers=auth_headers(staff_user))
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_schema_errors_keep_fastapi_422(self, client: TestClient, staff_user, auth_headers):
        response = client.post("/purchase-orders", json={}, headers=auth_headers(staff_user))
        assert response.status_code == 422
