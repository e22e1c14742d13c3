"""
Sales Service - atomic sale recording

WHY: A sale moves stock out and money in. Both halves, plus the immutable
sale entry, commit together or not at all; concurrent sales and expenses
contend on the same balances row, so the whole read-validate-write runs
under the balances lock.
"""

from __future__ import annotations

from ..errors import CategoryNotFound, PaymentMismatch, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem
from ..validation import parse_int, parse_text
from .change_feed_service import ACTION_INSERT, STREAM_SALES, record_change
from .concurrency import begin_write, run_with_retry
from .ledger_service import SaleLine, apply_sale, lock_balances, lock_categories
from . import notification_service
from .auth_service import get_profile


def _parse_items(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("A sale needs at least one item", details={"field": "items"})

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        category_id = parse_int(item.get("category_id"), f"items[{index}].category_id", minimum=1)
        quantity = parse_int(item.get("quantity"), f"items[{index}].quantity", minimum=1)
        parsed.append((category_id, quantity))
    return parsed


def record_sale(
    actor_id: int,
    items: list[dict],
    cash: int,
    online: int,
    slip_url: str | None = None,
) -> Sale:
    """
    Record a completed sale.

    Preconditions (checked against locked state, before any write):
    - every referenced category exists (CategoryNotFound)
    - cash + online equals sum(price x quantity) (PaymentMismatch)
    - every category has enough stock for its total quantity in this sale
      (InsufficientStock naming the category; no item is applied)

    Effects (one transaction): sale + items inserted with a price/stock
    snapshot, stock decremented, shop_balance += cash, bank_balance += online,
    change events recorded. A sale notification follows the commit.
    """
    parsed = _parse_items(items)
    cash = parse_int(cash, "cash")
    online = parse_int(online, "online")
    slip_url = parse_text(slip_url, "slip_url", required=False, max_length=1024)

    def _op():
        begin_write()
        actor = get_profile(actor_id)

        balance = lock_balances()
        categories = lock_categories([category_id for category_id, _ in parsed])

        missing = sorted({cid for cid, _ in parsed if cid not in categories})
        if missing:
            raise CategoryNotFound(
                "Category not found",
                details={"category_ids": missing},
            )

        lines = [SaleLine(category=categories[cid], quantity=qty) for cid, qty in parsed]
        total = sum(line.category.price * line.quantity for line in lines)
        if cash + online != total:
            raise PaymentMismatch(
                "Payment does not match the sale total",
                details={"total": total, "cash": cash, "online": online, "paid": cash + online},
            )

        sale = Sale(
            created_by_user_id=actor.id,
            total=total,
            cash_amount=cash,
            online_amount=online,
            slip_url=slip_url,
        )
        db.session.add(sale)
        db.session.flush()

        for position, line in enumerate(lines, start=1):
            db.session.add(SaleItem(
                sale_id=sale.id,
                position=position,
                category_id=line.category.id,
                price=line.category.price,
                stock_at_sale=line.category.stock,
                quantity=line.quantity,
                line_total=line.category.price * line.quantity,
            ))

        apply_sale(balance, lines, cash, online)
        record_change(STREAM_SALES, ACTION_INSERT, sale.id)

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    notification_service.emit(notification_service.notify_sale, sale)
    return sale


def get_sale(sale_id: int) -> Sale | None:
    return db.session.get(Sale, sale_id)


def list_recent_sales(limit: int = 50) -> list[Sale]:
    """Newest first; creator profile and items are loaded with the sale."""
    return (
        db.session.query(Sale)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .all()
    )
