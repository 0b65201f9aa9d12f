"""
Return workflow tests: creation against a sale, cumulative quantity guard,
status transitions and one-time stock restoration.
"""

import pytest

from storefront.extensions import db
from storefront.models import Product, Return, StockMovement
from storefront.time_utils import utcnow


@pytest.fixture
def sold(client, staff_headers, make_product):
    """A product with 10 units of which 3 were sold at a 10% discount."""
    product = make_product(name="Jacket", price=1000, stock=10, discount=10)
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": product.id, "quantity": 3}], "cash_received": 5000},
        headers=staff_headers,
    )
    assert resp.status_code == 201
    return product, resp.get_json()["sale"]


def _create_return(client, headers, sale_id, product_id, quantity, **extra):
    return client.post(
        "/api/returns",
        json={"sale_id": sale_id, "items": [{"product_id": product_id, "quantity": quantity, **extra}]},
        headers=headers,
    )


class TestCreateReturn:

    def test_pending_return_with_refund(self, client, staff_headers, sold):
        product, sale = sold
        resp = _create_return(client, staff_headers, sale["id"], product.id, 2)
        assert resp.status_code == 201, resp.get_json()
        ret = resp.get_json()["return"]

        assert ret["status"] == "pending"
        assert ret["return_number"] == f"RET-{utcnow().year}-0001"
        assert ret["sale_number"] == sale["sale_number"]
        assert ret["total_refund"] == 1800
        assert ret["items"][0]["refund_amount"] == 1800
        assert ret["stock_restored_at"] is None

        # Pending returns do not touch stock
        assert db.session.get(Product, product.id).stock == 7

    def test_product_not_in_sale(self, client, staff_headers, sold, make_product):
        _, sale = sold
        other = make_product(name="Other")
        resp = _create_return(client, staff_headers, sale["id"], other.id, 1)
        assert resp.status_code == 400
        assert "not found in original sale" in resp.get_json()["error"]

    def test_quantity_exceeds_sold(self, client, staff_headers, sold):
        product, sale = sold
        resp = _create_return(client, staff_headers, sale["id"], product.id, 4)
        assert resp.status_code == 400
        assert "exceeds sold quantity" in resp.get_json()["error"]

    def test_cumulative_guard_across_returns(self, client, staff_headers, sold):
        product, sale = sold
        assert _create_return(client, staff_headers, sale["id"], product.id, 2).status_code == 201
        resp = _create_return(client, staff_headers, sale["id"], product.id, 2)
        assert resp.status_code == 400

    def test_rejected_returns_free_the_quantity(self, client, staff_headers, sold):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 3).get_json()["return"]["id"]
        client.patch(f"/api/returns/{ret_id}", json={"status": "rejected"}, headers=staff_headers)
        assert _create_return(client, staff_headers, sale["id"], product.id, 3).status_code == 201

    def test_unknown_sale(self, client, staff_headers, sold):
        product, _ = sold
        assert _create_return(client, staff_headers, 999999, product.id, 1).status_code == 404

    def test_items_required(self, client, staff_headers, sold):
        _, sale = sold
        resp = client.post("/api/returns", json={"sale_id": sale["id"], "items": []}, headers=staff_headers)
        assert resp.status_code == 400


class TestReturnStatus:

    def test_approval_restores_stock_once(self, client, staff_headers, sold):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 2).get_json()["return"]["id"]

        resp = client.patch(f"/api/returns/{ret_id}", json={"status": "approved"}, headers=staff_headers)
        assert resp.status_code == 200
        body = resp.get_json()["return"]
        assert body["status"] == "approved"
        assert body["stock_restored_at"] is not None
        assert db.session.get(Product, product.id).stock == 9

        # Approving again is a no-op
        resp = client.patch(f"/api/returns/{ret_id}", json={"status": "approved"}, headers=staff_headers)
        assert resp.status_code == 200
        assert db.session.get(Product, product.id).stock == 9
        assert db.session.query(StockMovement).filter_by(reason="return").count() == 1

    def test_rejection_leaves_stock(self, client, staff_headers, sold):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 1).get_json()["return"]["id"]
        resp = client.patch(f"/api/returns/{ret_id}", json={"status": "rejected", "notes": "Worn"},
                            headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["return"]["notes"] == "Worn"
        assert db.session.get(Product, product.id).stock == 7

    @pytest.mark.parametrize("first,second", [("approved", "rejected"), ("rejected", "approved"),
                                              ("approved", "pending")])
    def test_terminal_states_are_final(self, client, staff_headers, sold, first, second):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 1).get_json()["return"]["id"]
        assert client.patch(f"/api/returns/{ret_id}", json={"status": first}, headers=staff_headers).status_code == 200
        resp = client.patch(f"/api/returns/{ret_id}", json={"status": second}, headers=staff_headers)
        assert resp.status_code == 400
        assert db.session.get(Return, ret_id).status == first

    def test_invalid_status(self, client, staff_headers, sold):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 1).get_json()["return"]["id"]
        resp = client.patch(f"/api/returns/{ret_id}", json={"status": "refunded"}, headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_return(self, client, staff_headers, db_session):
        resp = client.patch("/api/returns/999999", json={"status": "approved"}, headers=staff_headers)
        assert resp.status_code == 404

    def test_sized_return_restores_bucket(self, client, staff_headers, make_product):
        product = make_product(name="Boot", price=2000, stock_by_size={"41": 2, "42": 2})
        sale = client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": 1, "size": "42"}], "cash_received": 2000},
            headers=staff_headers,
        ).get_json()["sale"]

        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 1, size="42").get_json()["return"]["id"]
        client.patch(f"/api/returns/{ret_id}", json={"status": "approved"}, headers=staff_headers)

        product = db.session.get(Product, product.id)
        assert product.stock_by_size == {"41": 2, "42": 2}
        assert product.stock == 4

    def test_deleted_product_is_skipped(self, client, staff_headers, admin_headers, sold):
        product, sale = sold
        ret_id = _create_return(client, staff_headers, sale["id"], product.id, 1).get_json()["return"]["id"]
        assert client.delete(f"/api/products/{product.id}", headers=admin_headers).status_code == 200

        resp = client.patch(f"/api/returns/{ret_id}", json={"status": "approved"}, headers=staff_headers)
        assert resp.status_code == 200
        assert db.session.query(StockMovement).filter_by(reason="return").count() == 0


class TestReturnListing:

    def test_filter_by_status(self, client, staff_headers, sold):
        product, sale = sold
        first = _create_return(client, staff_headers, sale["id"], product.id, 1).get_json()["return"]["id"]
        _create_return(client, staff_headers, sale["id"], product.id, 1)
        client.patch(f"/api/returns/{first}", json={"status": "approved"}, headers=staff_headers)

        body = client.get("/api/returns?status=pending", headers=staff_headers).get_json()
        assert body["pagination"]["total"] == 1
        assert body["returns"][0]["status"] == "pending"

        assert client.get(f"/api/returns/{first}", headers=staff_headers).get_json()["return"]["status"] == "approved"
        assert client.get("/api/returns?status=bogus", headers=staff_headers).status_code == 400
