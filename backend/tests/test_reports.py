"""
Analytics and financial report tests.
"""

from datetime import datetime, timedelta

import pytest

from storefront.extensions import db
from storefront.models import Sale
from storefront.services.reporting_service import ReportError, date_range, period_key
from storefront.time_utils import utcnow


def _sell(client, headers, product, quantity=1, **extra):
    resp = client.post("/api/sales", json={
        "items": [{"product_id": product.id, "quantity": quantity}],
        "cash_received": 100000,
        **extra,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["sale"]


class TestDateRanges:

    def test_today_starts_at_midnight(self):
        now = datetime(2025, 6, 1, 15, 30)
        assert date_range("today", now) == (datetime(2025, 6, 1), now)
        assert date_range("week", now)[0] == now - timedelta(days=7)
        assert date_range(None, now)[0] == now - timedelta(days=30)

    def test_unknown_timeframe(self):
        with pytest.raises(ReportError):
            date_range("decade")

    def test_period_keys(self):
        dt = datetime(2025, 2, 3, 14, 5)
        assert period_key(dt, "today") == "14:00"
        assert period_key(dt, "month") == "2025-02-03"
        assert period_key(dt, "quarter") == "2025-W06"
        assert period_key(dt, "year") == "2025-02"


class TestSalesAnalytics:

    def test_all_metrics(self, client, staff_headers, make_product, category):
        shoe = make_product(name="Shoe", price=1000, discount=10, category_id=category.id)
        cap = make_product(name="Cap", price=500)
        _sell(client, staff_headers, shoe, 2)
        _sell(client, staff_headers, cap, 1)

        body = client.get("/api/analytics/sales?timeframe=month", headers=staff_headers).get_json()
        assert body["total_transactions"] == 2
        assert body["total_revenue"] == 2300
        assert body["average_transaction_value"] == 1150
        assert [p["product_name"] for p in body["top_products"]] == ["Shoe", "Cap"]
        assert body["top_products"][0]["revenue"] == 1800
        assert sum(row["sales_count"] for row in body["trends"]) == 2
        assert sum(row["sales_count"] for row in body["peak_hours"]) == 2
        assert body["category_sales"] == [
            {"category_id": category.id, "category_name": "Shoes", "quantity_sold": 2, "revenue": 1800},
        ]

    def test_single_metric(self, client, staff_headers, make_product):
        _sell(client, staff_headers, make_product())
        body = client.get("/api/analytics/sales?metric=top_products", headers=staff_headers).get_json()
        assert "top_products" in body
        assert "trends" not in body

    def test_bad_parameters(self, client, staff_headers):
        assert client.get("/api/analytics/sales?timeframe=decade", headers=staff_headers).status_code == 400
        assert client.get("/api/analytics/sales?metric=margin", headers=staff_headers).status_code == 400

    def test_old_sales_excluded(self, client, staff_headers, make_product):
        sale = _sell(client, staff_headers, make_product())
        db.session.query(Sale).filter_by(id=sale["id"]).update({Sale.created_at: utcnow() - timedelta(days=8)})
        db.session.commit()
        body = client.get("/api/analytics/sales?timeframe=week", headers=staff_headers).get_json()
        assert body["total_transactions"] == 0
        assert body["average_transaction_value"] == 0


class TestCustomerAnalytics:

    def test_segments(self, client, staff_headers, make_product):
        product = make_product(price=1000, stock=20)
        _sell(client, staff_headers, product, customer_name="Awa", customer_phone="771112233")
        _sell(client, staff_headers, product, customer_name="Awa", customer_phone="771112233")
        _sell(client, staff_headers, product, 3, customer_name="Ibou", customer_phone="779990000")
        _sell(client, staff_headers, product)

        body = client.get("/api/analytics/customers", headers=staff_headers).get_json()
        assert body["total_customers"] == 2
        assert body["customers_with_purchases"] == 2
        assert body["repeat_customers"] == 1
        assert body["repeat_customer_rate"] == 50.0
        assert body["average_lifetime_value"] == 2500
        assert [c["name"] for c in body["top_customers"]] == ["Ibou", "Awa"]
        assert body["segments"] == {"vip": 1, "regular": 0, "new": 1}


class TestFinancialReport:

    def test_summary_with_expenses(self, client, staff_headers, make_product):
        product = make_product(price=1000, purchase_price=600, discount=10)
        _sell(client, staff_headers, product, 2)
        client.post("/api/expenses", json={"category": "utilities", "amount": 100, "description": "Water"},
                    headers=staff_headers)

        body = client.get("/api/reports/financial?timeframe=month", headers=staff_headers).get_json()
        summary = body["summary"]
        assert summary["total_revenue"] == 1800
        assert summary["total_cost"] == 1200
        assert summary["gross_profit"] == 600
        assert summary["total_expenses"] == 100
        assert summary["net_profit"] == 500
        assert summary["profit_margin"] == 33.33
        assert body["expense_breakdown"] == [{"category": "utilities", "amount": 100}]
        assert body["growth"]["revenue_growth"] == 0.0

    def test_growth_against_previous_window(self, client, staff_headers, make_product):
        product = make_product(price=1000, purchase_price=600)
        old = _sell(client, staff_headers, product, 1)
        db.session.query(Sale).filter_by(id=old["id"]).update({Sale.created_at: utcnow() - timedelta(days=40)})
        db.session.commit()
        _sell(client, staff_headers, product, 2)

        body = client.get("/api/reports/financial?timeframe=month", headers=staff_headers).get_json()
        assert body["summary"]["total_revenue"] == 2000
        assert body["growth"]["revenue_growth"] == 100.0
        assert body["growth"]["profit_growth"] == 100.0

    def test_group_by_category(self, client, staff_headers):
        client.post("/api/expenses", json={"category": "rent", "amount": 500, "description": "Rent"},
                    headers=staff_headers)
        body = client.get("/api/reports/financial?group_by=category", headers=staff_headers).get_json()
        assert body["charts"]["expense_data"] == [["rent", 500]]
        assert body["charts"]["revenue_data"] == []

    def test_invalid_group_by(self, client, staff_headers):
        assert client.get("/api/reports/financial?group_by=staff", headers=staff_headers).status_code == 400

    def test_customers_forbidden(self, client, customer_headers):
        assert client.get("/api/reports/financial", headers=customer_headers).status_code == 403
