"""
Checkout workflow tests.

Covers totals and price snapshots, stock decrements and movements, the
all-or-nothing guarantee, per-year sale numbering, size buckets, customer
upsert with loyalty, and best-effort account linking.
"""

from datetime import timedelta

from storefront.extensions import db
from storefront.models import ActivityLog, Customer, Product, Sale, SaleLine, StockMovement
from storefront.services import inventory_service, sales_service
from storefront.services.auth_service import create_user
from storefront.time_utils import utcnow


def _sell(client, headers, items, cash, **extra):
    return client.post("/api/sales", json={"items": items, "cash_received": cash, **extra}, headers=headers)


class TestCreateSale:

    def test_discounted_sale_totals_and_stock(self, client, staff_headers, staff_user, make_product):
        product = make_product(name="Sneaker", price=1000, purchase_price=600, stock=5, discount=10)

        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 2}], 2000)
        assert resp.status_code == 201, resp.get_json()
        sale = resp.get_json()["sale"]

        assert sale["subtotal"] == 1800
        assert sale["discount_amount"] == 200
        assert sale["tax"] == 0
        assert sale["total"] == 1800
        assert sale["change"] == 200
        assert sale["total_cost"] == 1200
        assert sale["total_profit"] == 600
        assert sale["staff_id"] == staff_user.id
        assert sale["staff_name"] == "Staff User"

        line = sale["items"][0]
        assert line["unit_price"] == 1000
        assert line["final_price"] == 900
        assert line["discount_percentage"] == 10
        assert line["subtotal"] == 1800

        assert db.session.get(Product, product.id).stock == 3
        movement = db.session.query(StockMovement).filter_by(reason="sale").one()
        assert movement.quantity_change == -2
        assert movement.reference_type == "sale"
        assert movement.reference_id == sale["id"]

        assert db.session.query(ActivityLog).filter_by(action="complete_sale").count() == 1

    def test_tax_is_added_to_total(self, client, staff_headers, make_product):
        product = make_product(price=1000)
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1200, tax=180)
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["total"] == 1180
        assert sale["change"] == 20

    def test_expired_discount_not_applied(self, client, staff_headers, make_product):
        product = make_product(price=1000, discount=50, discount_end_time=utcnow() - timedelta(hours=1))
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000)
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["total"] == 1000
        assert sale["items"][0]["discount_percentage"] is None

    def test_sale_numbers_are_sequential_per_year(self, client, staff_headers, make_product):
        product = make_product(stock=10)
        year = utcnow().year
        numbers = []
        for _ in range(3):
            resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000)
            assert resp.status_code == 201
            numbers.append(resp.get_json()["sale"]["sale_number"])
        assert numbers == [f"SALE-{year}-0001", f"SALE-{year}-0002", f"SALE-{year}-0003"]

    def test_item_id_alias_accepted(self, client, staff_headers, make_product):
        product = make_product()
        resp = _sell(client, staff_headers, [{"id": product.id, "quantity": 1}], 1000)
        assert resp.status_code == 201


class TestSaleRejections:

    def test_insufficient_stock_persists_nothing(self, client, staff_headers, make_product):
        plenty = make_product(name="Plenty", stock=10)
        scarce = make_product(name="Scarce", stock=1)

        resp = _sell(
            client, staff_headers,
            [{"product_id": plenty.id, "quantity": 2}, {"product_id": scarce.id, "quantity": 2}],
            10000,
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "Insufficient stock for Scarce. Available: 1, Requested: 2"
        assert body["details"]["available"] == 1

        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleLine).count() == 0
        assert db.session.query(StockMovement).count() == 0
        assert db.session.get(Product, plenty.id).stock == 10
        assert db.session.get(Product, scarce.id).stock == 1

    def test_duplicate_lines_are_summed_against_stock(self, client, staff_headers, make_product):
        product = make_product(name="Cap", stock=3)
        resp = _sell(
            client, staff_headers,
            [{"product_id": product.id, "quantity": 2}, {"product_id": product.id, "quantity": 2}],
            10000,
        )
        assert resp.status_code == 400
        assert "Requested: 4" in resp.get_json()["error"]

    def test_insufficient_cash(self, client, staff_headers, make_product):
        product = make_product(price=1000, stock=5)
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 2}], 1500)
        assert resp.status_code == 400
        assert resp.get_json()["error"].startswith("Insufficient cash. Total: 2,000")
        assert db.session.query(Sale).count() == 0
        assert db.session.get(Product, product.id).stock == 5

    def test_failed_sale_does_not_consume_a_number(self, client, staff_headers, make_product):
        product = make_product(price=1000, stock=5)
        assert _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 10).status_code == 400
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000)
        assert resp.get_json()["sale"]["sale_number"].endswith("-0001")

    def test_unknown_product(self, client, staff_headers, db_session):
        resp = _sell(client, staff_headers, [{"product_id": 999999, "quantity": 1}], 1000)
        assert resp.status_code == 404

    def test_empty_cart(self, client, staff_headers):
        resp = _sell(client, staff_headers, [], 1000)
        assert resp.status_code == 400

    def test_missing_cash(self, client, staff_headers, make_product):
        product = make_product()
        resp = client.post("/api/sales", json={"items": [{"product_id": product.id, "quantity": 1}]},
                           headers=staff_headers)
        assert resp.status_code == 400
        assert "cash_received" in resp.get_json()["error"]

    def test_non_positive_quantity(self, client, staff_headers, make_product):
        product = make_product()
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 0}], 1000)
        assert resp.status_code == 400

    def test_oversized_money_rejected(self, client, staff_headers, make_product):
        product = make_product(price=1000, stock=5)
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 10**20)
        assert resp.status_code == 400
        assert "cash_received" in resp.get_json()["error"]

        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 5000, tax=10**20)
        assert resp.status_code == 400
        assert "tax" in resp.get_json()["error"]
        assert db.session.query(Sale).count() == 0


class TestSaleRollback:

    def test_failed_decrement_rolls_back_whole_sale(self, client, staff_headers, make_product, monkeypatch):
        first = make_product(name="A", price=1000, stock=5)
        second = make_product(name="B", price=1000, stock=5)
        real_apply = inventory_service.apply_stock_delta

        def fail_second(product_id, delta, size=None):
            if product_id == second.id:
                return False
            return real_apply(product_id, delta, size)

        monkeypatch.setattr(inventory_service, "apply_stock_delta", fail_second)
        resp = _sell(
            client, staff_headers,
            [{"product_id": first.id, "quantity": 2}, {"product_id": second.id, "quantity": 1}],
            5000, customer_name="Awa", customer_phone="771112233",
        )
        assert resp.status_code == 400

        db.session.expire_all()
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleLine).count() == 0
        assert db.session.query(StockMovement).count() == 0
        assert db.session.query(Customer).count() == 0
        assert db.session.query(ActivityLog).filter_by(action="complete_sale").count() == 0
        assert db.session.get(Product, first.id).stock == 5

        monkeypatch.setattr(inventory_service, "apply_stock_delta", real_apply)
        resp = _sell(client, staff_headers, [{"product_id": first.id, "quantity": 1}], 1000)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["sale_number"].endswith("-0001")

    def test_lost_decrement_reports_current_stock(self, client, staff_headers, make_product, monkeypatch):
        product = make_product(name="B", price=1000, stock=4)
        real_apply = inventory_service.apply_stock_delta

        # Another checkout drains the product between the stock check and the decrement
        def drained(product_id, delta, size=None):
            real_apply(product_id, -4, size)
            return False

        monkeypatch.setattr(inventory_service, "apply_stock_delta", drained)
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Insufficient stock for B. Available: 0, Requested: 1"
        assert resp.get_json()["details"]["available"] == 0

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock == 4


class TestSaleLookup:

    def test_unexpected_error_is_json(self, client, staff_headers, monkeypatch):
        def broken(sale_id):
            raise RuntimeError("db exploded")

        monkeypatch.setattr(sales_service, "get_sale", broken)
        resp = client.get("/api/sales/1", headers=staff_headers)
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Internal server error"}


class TestSizedProducts:

    def test_decrements_the_sold_size_only(self, client, staff_headers, make_product):
        product = make_product(name="Tee", price=500, stock_by_size={"M": 3, "L": 2})

        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 2, "size": "M"}], 1000)
        assert resp.status_code == 201

        product = db.session.get(Product, product.id)
        assert product.stock_by_size == {"M": 1, "L": 2}
        assert product.stock == 3
        movement = db.session.query(StockMovement).filter_by(reason="sale").one()
        assert movement.size == "M"

    def test_insufficient_size_bucket(self, client, staff_headers, make_product):
        product = make_product(name="Tee", stock_by_size={"M": 1, "L": 5})
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 2, "size": "M"}], 5000)
        assert resp.status_code == 400
        assert resp.get_json()["error"].startswith("Insufficient stock for Tee (Size M). Available: 1, Requested: 2")

    def test_unknown_size_has_no_stock(self, client, staff_headers, make_product):
        product = make_product(name="Tee", stock_by_size={"M": 4})
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1, "size": "XXL"}], 5000)
        assert resp.status_code == 400
        assert "Available: 0" in resp.get_json()["error"]

    def test_size_required(self, client, staff_headers, make_product):
        product = make_product(name="Tee", stock_by_size={"M": 4})
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 5000)
        assert resp.status_code == 400
        assert "Size is required" in resp.get_json()["error"]


class TestCustomerResolution:

    def test_new_customer_created_with_loyalty(self, client, staff_headers, make_product):
        product = make_product(price=2500, stock=5)
        resp = _sell(
            client, staff_headers, [{"product_id": product.id, "quantity": 1}], 2500,
            customer_name="Awa", customer_phone="771112233",
        )
        assert resp.status_code == 201

        customer = db.session.query(Customer).filter_by(phone="771112233").one()
        assert customer.name == "Awa"
        assert customer.total_spent == 2500
        assert customer.purchase_count == 1
        assert customer.loyalty_points == 2
        assert resp.get_json()["sale"]["customer_id"] == customer.id

    def test_existing_customer_aggregates_updated(self, client, staff_headers, make_product):
        product = make_product(price=1000, stock=5)
        customer = Customer(name="Moussa", phone="775550000", tags=[])
        db.session.add(customer)
        db.session.commit()

        for _ in range(2):
            assert _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000,
                         customer_phone="775550000").status_code == 201

        customer = db.session.get(Customer, customer.id)
        assert customer.purchase_count == 2
        assert customer.total_spent == 2000
        assert customer.loyalty_points == 2
        assert customer.last_purchase_date is not None

    def test_phone_without_name_creates_no_customer(self, client, staff_headers, make_product):
        product = make_product()
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000,
                     customer_phone="779999999")
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["customer_id"] is None
        assert db.session.query(Customer).count() == 0


class TestAccountLinking:

    def test_links_by_email_case_insensitive(self, client, staff_headers, customer_user, make_product):
        product = make_product()
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000,
                     customer_email="Customer@Shop.TEST")
        assert resp.get_json()["sale"]["user_id"] == customer_user.id

    def test_links_by_unique_phone(self, client, staff_headers, customer_user, make_product):
        product = make_product()
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000,
                     customer_phone=customer_user.phone)
        assert resp.get_json()["sale"]["user_id"] == customer_user.id

    def test_ambiguous_phone_is_not_linked(self, client, staff_headers, customer_user, make_product):
        create_user(name="Twin", email="twin@shop.test", password="Password123", phone=customer_user.phone)
        product = make_product()
        resp = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000,
                     customer_phone=customer_user.phone)
        assert resp.status_code == 201
        assert resp.get_json()["sale"]["user_id"] is None

    def test_link_user_after_the_fact(self, client, staff_headers, customer_user, make_product):
        product = make_product()
        sale_id = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000).get_json()["sale"]["id"]

        resp = client.post("/api/sales/link-user", json={"sale_id": sale_id, "user_email": customer_user.email},
                           headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["user_id"] == customer_user.id

    def test_link_user_unknown(self, client, staff_headers, make_product):
        product = make_product()
        sale_id = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000).get_json()["sale"]["id"]
        resp = client.post("/api/sales/link-user", json={"sale_id": sale_id, "user_email": "nobody@shop.test"},
                           headers=staff_headers)
        assert resp.status_code == 404

    def test_link_user_ambiguous_phone(self, client, staff_headers, customer_user, make_product):
        create_user(name="Twin", email="twin@shop.test", password="Password123", phone=customer_user.phone)
        product = make_product()
        sale_id = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000).get_json()["sale"]["id"]
        resp = client.post("/api/sales/link-user", json={"sale_id": sale_id, "user_phone": customer_user.phone},
                           headers=staff_headers)
        assert resp.status_code == 409


class TestSaleListing:

    def test_paginated_newest_first(self, client, staff_headers, make_product):
        product = make_product(stock=20)
        for _ in range(12):
            _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000)

        resp = client.get("/api/sales", headers=staff_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert len(body["sales"]) == 10
        assert body["pagination"]["total"] == 12
        assert body["pagination"]["totalPages"] == 2
        assert body["pagination"]["hasNext"] is True
        assert body["sales"][0]["sale_number"].endswith("-0012")

        page2 = client.get("/api/sales?page=2", headers=staff_headers).get_json()
        assert len(page2["sales"]) == 2
        assert page2["pagination"]["hasPrev"] is True

    def test_invalid_date_filter(self, client, staff_headers):
        resp = client.get("/api/sales?start_date=yesterday", headers=staff_headers)
        assert resp.status_code == 400

    def test_get_sale(self, client, staff_headers, make_product):
        product = make_product()
        sale_id = _sell(client, staff_headers, [{"product_id": product.id, "quantity": 1}], 1000).get_json()["sale"]["id"]
        resp = client.get(f"/api/sales/{sale_id}", headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["items"][0]["product_id"] == product.id
        assert client.get("/api/sales/999999", headers=staff_headers).status_code == 404
