# Overview: Service-layer read models for reports; aggregates over committed ledger entries.

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta

from ..errors import ValidationError
from ..extensions import db
from ..models import Deposit, Expense, Sale, SaleItem
from shopledger.time_utils import day_bounds, utcnow


PERIOD_DAY = "day"
PERIOD_MONTH = "month"
VALID_PERIODS = (PERIOD_DAY, PERIOD_MONTH)


def _sale_rows(start: datetime, end: datetime) -> list[tuple[int, datetime, int, int]]:
    """(sale_id, created_at, total, items_sold) for sales in [start, end)."""
    rows = (
        db.session.query(
            Sale.id,
            Sale.created_at,
            Sale.total,
            db.func.coalesce(db.func.sum(SaleItem.quantity), 0),
        )
        .outerjoin(SaleItem, SaleItem.sale_id == Sale.id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .group_by(Sale.id, Sale.created_at, Sale.total)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
    return [(r[0], r[1], int(r[2]), int(r[3])) for r in rows]


def _totals(rows) -> dict:
    return {
        "total": sum(r[2] for r in rows),
        "items": sum(r[3] for r in rows),
        "sales_count": len(rows),
    }


def percent_change(current: int, previous: int) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 1)


def daily_summary(day: date | None = None) -> dict:
    """Totals for ``day`` (default today, UTC) against the previous day."""
    day = day or utcnow().date()
    start, end = day_bounds(day)
    prev_start = start - timedelta(days=1)

    today = _totals(_sale_rows(start, end))
    yesterday = _totals(_sale_rows(prev_start, start))

    return {
        "date": day.isoformat(),
        "today": today,
        "yesterday": yesterday,
        "change": {
            key: percent_change(today[key], yesterday[key])
            for key in ("total", "items", "sales_count")
        },
    }


def sales_by_period(period: str = PERIOD_DAY, since: date | None = None) -> list[dict]:
    """
    Sales grouped by calendar day ("2025-01-31") or month ("2025-01"),
    newest group first.
    """
    if period not in VALID_PERIODS:
        raise ValidationError(
            f"period must be one of: {', '.join(VALID_PERIODS)}",
            details={"field": "period"},
        )

    today = utcnow().date()
    if since is None:
        since = today - timedelta(days=90 if period == PERIOD_DAY else 365)
    start, _ = day_bounds(since)
    _, end = day_bounds(today)

    groups: "OrderedDict[str, list]" = OrderedDict()
    for row in _sale_rows(start, end):
        created_at = row[1]
        key = created_at.strftime("%Y-%m-%d" if period == PERIOD_DAY else "%Y-%m")
        groups.setdefault(key, []).append(row)

    return [
        {"period": key, **_totals(rows), "sale_ids": [r[0] for r in rows]}
        for key, rows in groups.items()
    ]


def expense_summary(start: date, end: date) -> dict:
    """Cash and online expense totals for the inclusive date range."""
    range_start, _ = day_bounds(start)
    _, range_end = day_bounds(end)
    row = (
        db.session.query(
            db.func.coalesce(db.func.sum(Expense.cash_amount), 0),
            db.func.coalesce(db.func.sum(Expense.online_amount), 0),
            db.func.count(Expense.id),
        )
        .filter(Expense.created_at >= range_start, Expense.created_at < range_end)
        .one()
    )
    cash, online, count = int(row[0]), int(row[1]), int(row[2])
    return {"cash": cash, "online": online, "total": cash + online, "count": count}


def deposit_summary(start: date, end: date) -> dict:
    range_start, _ = day_bounds(start)
    _, range_end = day_bounds(end)
    row = (
        db.session.query(
            db.func.coalesce(db.func.sum(Deposit.amount), 0),
            db.func.count(Deposit.id),
        )
        .filter(Deposit.created_at >= range_start, Deposit.created_at < range_end)
        .one()
    )
    return {"total": int(row[0]), "count": int(row[1])}
