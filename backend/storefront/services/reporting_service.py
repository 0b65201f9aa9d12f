# Overview: Service-layer operations for reporting; read-only aggregations over sales and expenses.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Category, Customer, Expense, Product, Sale, SaleLine
from storefront.time_utils import to_utc_z, utcnow

TIMEFRAMES = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "quarter": timedelta(days=90),
    "year": timedelta(days=365),
}
SALES_METRICS = ("all", "top_products", "trends", "peak_hours", "avg_transaction", "by_category")


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def date_range(timeframe: str | None, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Resolve a timeframe name to [start, end]. "today" starts at midnight
    (UTC); the others look back a fixed number of days.
    """
    now = now or utcnow()
    timeframe = timeframe or "month"
    if timeframe == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0), now
    if timeframe not in TIMEFRAMES:
        raise ReportError("timeframe must be one of today, week, month, quarter, year")
    return now - TIMEFRAMES[timeframe], now


def period_key(dt: datetime, timeframe: str) -> str:
    """Chart bucket label; labels sort chronologically as plain strings."""
    if timeframe == "today":
        return dt.strftime("%H:00")
    if timeframe in ("week", "month"):
        return dt.strftime("%Y-%m-%d")
    if timeframe == "quarter":
        iso = dt.isocalendar()
        return f"{iso[0]}-W{iso[1]:02d}"
    return dt.strftime("%Y-%m")


def _sales_between(start: datetime, end: datetime, *, inclusive_end: bool = True) -> list[Sale]:
    query = db.session.query(Sale).filter(Sale.created_at >= start)
    query = query.filter(Sale.created_at <= end if inclusive_end else Sale.created_at < end)
    return query.order_by(Sale.created_at.asc(), Sale.id.asc()).all()


def _expenses_between(start: datetime, end: datetime, *, inclusive_end: bool = True) -> list[Expense]:
    query = db.session.query(Expense).filter(Expense.date >= start)
    query = query.filter(Expense.date <= end if inclusive_end else Expense.date < end)
    return query.order_by(Expense.date.asc(), Expense.id.asc()).all()


def _pct(part: float, whole: float, digits: int = 2) -> float:
    return round(part / whole * 100, digits) if whole else 0.0


def sales_analytics(timeframe: str | None = None, metric: str | None = None, now: datetime | None = None) -> dict:
    metric = metric or "all"
    if metric not in SALES_METRICS:
        raise ReportError(f"metric must be one of {', '.join(SALES_METRICS)}")
    timeframe = timeframe or "month"
    start, end = date_range(timeframe, now)
    sales = _sales_between(start, end)
    result: dict = {"timeframe": timeframe, "start": to_utc_z(start), "end": to_utc_z(end)}

    if metric in ("all", "top_products"):
        products: dict = {}
        for sale in sales:
            for line in sale.lines:
                key = line.product_id if line.product_id is not None else f"deleted:{line.product_name}"
                row = products.setdefault(key, {
                    "product_id": line.product_id,
                    "product_name": line.product_name,
                    "quantity_sold": 0,
                    "revenue": 0,
                })
                row["quantity_sold"] += line.quantity
                row["revenue"] += line.subtotal
        result["top_products"] = sorted(products.values(), key=lambda r: (-r["quantity_sold"], -r["revenue"]))[:10]

    if metric in ("all", "trends"):
        trends: dict[str, dict] = {}
        for sale in sales:
            key = period_key(sale.created_at, timeframe)
            row = trends.setdefault(key, {"period": key, "sales_count": 0, "revenue": 0})
            row["sales_count"] += 1
            row["revenue"] += sale.total
        result["trends"] = [trends[k] for k in sorted(trends)]

    if metric in ("all", "peak_hours"):
        hours: dict[int, int] = defaultdict(int)
        for sale in sales:
            hours[sale.created_at.hour] += 1
        ranked = sorted(hours.items(), key=lambda item: (-item[1], item[0]))[:5]
        result["peak_hours"] = [{"hour": hour, "sales_count": count} for hour, count in ranked]

    if metric in ("all", "avg_transaction"):
        revenue = sum(sale.total for sale in sales)
        result["total_transactions"] = len(sales)
        result["total_revenue"] = revenue
        result["average_transaction_value"] = round(revenue / len(sales), 2) if sales else 0

    if metric in ("all", "by_category"):
        result["category_sales"] = _category_sales(start, end)

    return result


def _category_sales(start: datetime, end: datetime) -> list[dict]:
    rows = (
        db.session.query(
            Category.id,
            Category.name,
            SaleLine.quantity,
            SaleLine.subtotal,
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .join(Product, Product.id == SaleLine.product_id)
        .join(Category, Category.id == Product.category_id)
        .filter(Sale.created_at >= start, Sale.created_at <= end)
        .all()
    )
    grouped: dict[int, dict] = {}
    for category_id, name, quantity, subtotal in rows:
        row = grouped.setdefault(category_id, {
            "category_id": category_id,
            "category_name": name,
            "quantity_sold": 0,
            "revenue": 0,
        })
        row["quantity_sold"] += quantity
        row["revenue"] += subtotal
    return sorted(grouped.values(), key=lambda r: -r["revenue"])


def customer_analytics(timeframe: str | None = None, now: datetime | None = None) -> dict:
    timeframe = timeframe or "month"
    start, end = date_range(timeframe, now)
    total_customers = db.session.query(Customer).count()

    ltv: dict[int, dict] = {}
    for sale in _sales_between(start, end):
        if sale.customer_id is None:
            continue
        row = ltv.setdefault(sale.customer_id, {
            "customer_id": sale.customer_id,
            "name": sale.customer.name if sale.customer else sale.customer_name,
            "lifetime_value": 0,
            "purchase_count": 0,
            "last_purchase": None,
        })
        row["lifetime_value"] += sale.total
        row["purchase_count"] += 1
        row["last_purchase"] = to_utc_z(sale.created_at)

    buyers = list(ltv.values())
    with_purchases = len(buyers)
    repeat = sum(1 for row in buyers if row["purchase_count"] > 1)
    ranked = sorted(buyers, key=lambda r: -r["lifetime_value"])
    top = ranked[:10]

    # VIP: top 10% of the top-10 list (at least one when anyone bought)
    vip_ids = {row["customer_id"] for row in top[: -(-len(top) // 10)]}
    top_ids = {row["customer_id"] for row in top}
    regular = sum(1 for row in buyers if row["customer_id"] not in top_ids and row["purchase_count"] > 1)
    new = sum(1 for row in buyers if row["purchase_count"] == 1)

    return {
        "timeframe": timeframe,
        "total_customers": total_customers,
        "customers_with_purchases": with_purchases,
        "repeat_customers": repeat,
        "repeat_customer_rate": _pct(repeat, with_purchases),
        "average_lifetime_value": round(sum(r["lifetime_value"] for r in buyers) / with_purchases, 2) if buyers else 0,
        "average_purchase_frequency": round(sum(r["purchase_count"] for r in buyers) / with_purchases, 2) if buyers else 0,
        "top_customers": top,
        "segments": {"vip": len(vip_ids), "regular": regular, "new": new},
    }


def financial_report(timeframe: str | None = None, group_by: str | None = None, now: datetime | None = None) -> dict:
    timeframe = timeframe or "month"
    group_by = group_by or "period"
    if group_by not in ("period", "category"):
        raise ReportError("group_by must be one of period, category")
    start, end = date_range(timeframe, now)

    sales = _sales_between(start, end)
    expenses = _expenses_between(start, end)

    revenue = sum(s.total for s in sales)
    cost = sum(s.total_cost for s in sales)
    gross_profit = sum(s.total_profit for s in sales)
    total_expenses = sum(e.amount for e in expenses)
    net_profit = gross_profit - total_expenses

    breakdown: dict[str, int] = defaultdict(int)
    for expense in expenses:
        breakdown[expense.category] += expense.amount

    revenue_data: dict[str, int] = defaultdict(int)
    expense_data: dict[str, int] = defaultdict(int)
    profit_data: dict[str, int] = {}
    if group_by == "period":
        for sale in sales:
            revenue_data[period_key(sale.created_at, timeframe)] += sale.total
        for expense in expenses:
            expense_data[period_key(expense.date, timeframe)] += expense.amount
        for key in set(revenue_data) | set(expense_data):
            profit_data[key] = revenue_data.get(key, 0) - expense_data.get(key, 0)
    else:
        expense_data.update(breakdown)

    # Previous window of equal length, ending where this one starts
    previous_start = start - (end - start)
    previous_sales = _sales_between(previous_start, start, inclusive_end=False)
    previous_expenses = _expenses_between(previous_start, start, inclusive_end=False)
    previous_revenue = sum(s.total for s in previous_sales)
    previous_profit = sum(s.total_profit for s in previous_sales)
    previous_net = previous_profit - sum(e.amount for e in previous_expenses)

    def _series(data: dict) -> list[list]:
        return [[key, data[key]] for key in sorted(data)]

    return {
        "timeframe": timeframe,
        "group_by": group_by,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "summary": {
            "total_revenue": revenue,
            "total_cost": cost,
            "gross_profit": gross_profit,
            "total_expenses": total_expenses,
            "net_profit": net_profit,
            "profit_margin": _pct(gross_profit, revenue),
            "net_profit_margin": _pct(net_profit, revenue),
            "total_sales": len(sales),
        },
        "growth": {
            "revenue_growth": _pct(revenue - previous_revenue, previous_revenue, 1) if previous_revenue > 0 else 0.0,
            "profit_growth": _pct(gross_profit - previous_profit, previous_profit, 1) if previous_profit > 0 else 0.0,
            "net_profit_growth": _pct(net_profit - previous_net, abs(previous_net), 1) if previous_net else 0.0,
        },
        "charts": {
            "revenue_data": _series(revenue_data),
            "expense_data": _series(expense_data),
            "profit_data": _series(profit_data),
        },
        "expense_breakdown": [{"category": k, "amount": v} for k, v in sorted(breakdown.items())],
    }
