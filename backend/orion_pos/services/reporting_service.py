# Overview: Service-layer operations for reporting; dashboard figures computed from sales and expenses.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Expense, Product, Sale, SaleItem
from ..time_utils import local_date, period_start, utcnow


CHART_PERIODS = ("week", "month")
TOP_PRODUCTS_LIMIT = 10


class ReportError(ValueError):
    """Raised when report parameters are invalid."""
    pass


def _tz() -> str:
    return current_app.config["BUSINESS_TIMEZONE"]


def _sales_totals(since: datetime) -> tuple[int, int]:
    row = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
    ).filter(Sale.created_at >= since).one()
    return int(row[0] or 0), int(row[1] or 0)


def dashboard_stats(now: datetime | None = None) -> dict:
    """
    Headline figures for the admin dashboard.

    profit uses the unit cost snapshotted on each sale item, so later
    purchase price edits do not rewrite history.
    """
    tz_name = _tz()
    now = now or utcnow()
    today_start = period_start("today", tz_name, now)
    month_start = period_start("month", tz_name, now)

    today_count, today_revenue = _sales_totals(today_start)
    month_count, month_revenue = _sales_totals(month_start)

    critical = db.session.query(func.count(Product.id)).filter(
        Product.quantity <= Product.min_stock
    ).scalar()

    profit = db.session.query(
        func.coalesce(
            func.sum((SaleItem.unit_price_cents - SaleItem.unit_cost_cents) * SaleItem.quantity),
            0,
        )
    ).join(Sale, SaleItem.sale_id == Sale.id).filter(Sale.created_at >= month_start).scalar()

    expenses = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.status == "validated",
        Expense.created_at >= month_start,
    ).scalar()

    profit = int(profit or 0)
    expenses = int(expenses or 0)
    return {
        "today_sales": today_count,
        "today_revenue_cents": today_revenue,
        "month_sales": month_count,
        "month_revenue_cents": month_revenue,
        "critical_stock": int(critical or 0),
        "month_profit_cents": profit,
        "month_expenses_cents": expenses,
        "net_profit_cents": profit - expenses,
    }


def revenue_chart(period: str | None = "month", now: datetime | None = None) -> list[dict]:
    """
    Revenue and sale count per business-local day, oldest first.

    Days without sales are omitted. Grouping happens in Python so the
    local-day boundary is the same on SQLite and PostgreSQL.
    """
    period = period or "month"
    if period not in CHART_PERIODS:
        raise ReportError("period must be week or month")

    tz_name = _tz()
    since = period_start(period, tz_name, now)

    rows = db.session.query(Sale.created_at, Sale.total_cents).filter(
        Sale.created_at >= since
    ).all()

    buckets: dict = {}
    for created_at, total_cents in rows:
        day = local_date(created_at, tz_name)
        bucket = buckets.setdefault(day, {"revenue_cents": 0, "sales": 0})
        bucket["revenue_cents"] += total_cents or 0
        bucket["sales"] += 1

    return [
        {"date": day.isoformat(), "revenue_cents": b["revenue_cents"], "sales": b["sales"]}
        for day, b in sorted(buckets.items())
    ]


def top_products(limit: int = TOP_PRODUCTS_LIMIT, now: datetime | None = None) -> list[dict]:
    """Best sellers by units over the last 30 days, with line revenue."""
    since = period_start("month", _tz(), now)

    total_sold = func.sum(SaleItem.quantity).label("total_sold")
    revenue = func.sum(SaleItem.line_total_cents).label("revenue_cents")
    rows = (
        db.session.query(
            SaleItem.product_id,
            func.max(SaleItem.product_name).label("product_name"),
            total_sold,
            revenue,
        )
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.created_at >= since)
        .group_by(SaleItem.product_id)
        .order_by(total_sold.desc(), revenue.desc())
        .limit(limit)
        .all()
    )

    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "total_sold": int(row.total_sold or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]
