# Overview: Service-layer operations for the ledger store; balances and per-category stock.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import true
from sqlalchemy.exc import IntegrityError

from ..errors import (
    CategoryNotFound,
    DuplicatePrice,
    InsufficientBankBalance,
    InsufficientShopBalance,
    InsufficientStock,
    ValidationError,
)
from ..extensions import db
from ..models import Balance, Category, SaleItem, BALANCE_RECORD_ID
from shopledger.time_utils import utcnow
from .change_feed_service import (
    ACTION_DELETE,
    ACTION_INSERT,
    ACTION_UPDATE,
    STREAM_BALANCES,
    STREAM_CATEGORIES,
    record_change,
)
from .concurrency import begin_write, lock_for_update, run_with_retry

"""
Ledger Store invariants (authoritative)

- Exactly one balances row exists (id = 1); shop_balance and bank_balance
  are never negative after a commit.
- Category stock is never negative; prices are positive and unique.
- Every mutation validates against the locked current state before its
  first write. A failed validation leaves no trace: the session is rolled
  back by run_with_retry.
- Only the functions in this module (and the procedures that call the
  apply_* helpers inside their own transaction) write balances or stock.
"""


@dataclass(frozen=True)
class CategoryState:
    id: int
    price: int
    stock: int


@dataclass(frozen=True)
class LedgerSnapshot:
    shop_balance: int
    bank_balance: int
    last_updated: datetime | None
    categories: tuple[CategoryState, ...] = field(default_factory=tuple)

    def stock_by_price(self) -> dict[int, int]:
        return {c.price: c.stock for c in self.categories}

    def to_dict(self) -> dict:
        return {
            "shop_balance": self.shop_balance,
            "bank_balance": self.bank_balance,
            "categories": [
                {"id": c.id, "price": c.price, "stock": c.stock} for c in self.categories
            ],
        }


@dataclass(frozen=True)
class SaleLine:
    """A validated sale line: locked category plus requested quantity."""
    category: Category
    quantity: int


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_balances() -> Balance:
    """Return the committed balances row, creating the singleton if missing."""
    balance = db.session.get(Balance, BALANCE_RECORD_ID)
    if balance is None:
        balance = _create_balance_record()
        db.session.commit()
    return balance


def get_snapshot() -> LedgerSnapshot:
    """
    Read balances and every category in a single SELECT.

    One statement sees one committed state on every backend, so a commit
    cannot land between the balances and the categories. Columns rather than
    entities are selected so the identity map cannot serve older values.
    """
    get_balances()
    rows = (
        db.session.query(
            Balance.shop_balance,
            Balance.bank_balance,
            Balance.last_updated,
            Category.id,
            Category.price,
            Category.stock,
        )
        .outerjoin(Category, true())
        .filter(Balance.id == BALANCE_RECORD_ID)
        .order_by(Category.price.asc())
        .all()
    )
    first = rows[0]
    return LedgerSnapshot(
        shop_balance=first[0],
        bank_balance=first[1],
        last_updated=first[2],
        categories=tuple(
            CategoryState(id=r[3], price=r[4], stock=r[5]) for r in rows if r[3] is not None
        ),
    )


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.price.asc()).all()


# ---------------------------------------------------------------------------
# Locking
# ---------------------------------------------------------------------------

def _create_balance_record() -> Balance:
    balance = Balance(id=BALANCE_RECORD_ID, shop_balance=0, bank_balance=0, last_updated=utcnow())
    db.session.add(balance)
    db.session.flush()
    return balance


def lock_balances() -> Balance:
    """
    Exclusive lock on the balances row for the rest of the transaction.

    Callers must have opened the transaction with begin_write().
    """
    balance = lock_for_update(db.session.query(Balance).filter_by(id=BALANCE_RECORD_ID)).first()
    if balance is None:
        balance = _create_balance_record()
    return balance


def lock_categories(category_ids: list[int]) -> dict[int, Category]:
    """Lock the given categories (ascending id order to avoid deadlocks)."""
    if not category_ids:
        return {}
    rows = (
        lock_for_update(
            db.session.query(Category)
            .filter(Category.id.in_(sorted(set(category_ids))))
            .order_by(Category.id.asc())
        ).all()
    )
    return {c.id: c for c in rows}


# ---------------------------------------------------------------------------
# In-transaction apply helpers (used by the mutation procedures)
# ---------------------------------------------------------------------------

def apply_sale(balance: Balance, lines: list[SaleLine], cash: int, online: int) -> None:
    """
    Decrement stock for every line and credit the balances.

    All stock checks run before the first decrement, so an insufficient line
    anywhere in the sale means no line is applied.
    """
    needed: dict[int, int] = {}
    for line in lines:
        needed[line.category.id] = needed.get(line.category.id, 0) + line.quantity

    by_id = {line.category.id: line.category for line in lines}
    for category_id, qty in needed.items():
        category = by_id[category_id]
        if category.stock < qty:
            raise InsufficientStock(
                f"Insufficient stock for the {category.price} category",
                details={
                    "category_id": category.id,
                    "price": category.price,
                    "requested_quantity": qty,
                    "stock": category.stock,
                },
            )

    for category_id, qty in needed.items():
        category = by_id[category_id]
        category.stock = category.stock - qty
        record_change(STREAM_CATEGORIES, ACTION_UPDATE, category.id)

    balance.shop_balance = balance.shop_balance + cash
    balance.bank_balance = balance.bank_balance + online
    balance.last_updated = utcnow()
    record_change(STREAM_BALANCES, ACTION_UPDATE, balance.id)


def apply_expense(balance: Balance, cash_amount: int, online_amount: int) -> None:
    if cash_amount > balance.shop_balance:
        raise InsufficientShopBalance(
            "Cash amount exceeds available shop balance",
            details={"requested": cash_amount, "available": balance.shop_balance},
        )
    if online_amount > balance.bank_balance:
        raise InsufficientBankBalance(
            "Online amount exceeds available bank balance",
            details={"requested": online_amount, "available": balance.bank_balance},
        )

    balance.shop_balance = balance.shop_balance - cash_amount
    balance.bank_balance = balance.bank_balance - online_amount
    balance.last_updated = utcnow()
    record_change(STREAM_BALANCES, ACTION_UPDATE, balance.id)


def apply_deposit(balance: Balance, amount: int) -> None:
    if amount > balance.shop_balance:
        raise InsufficientShopBalance(
            "Deposit amount exceeds available shop balance",
            details={"requested": amount, "available": balance.shop_balance},
        )

    balance.shop_balance = balance.shop_balance - amount
    balance.bank_balance = balance.bank_balance + amount
    balance.last_updated = utcnow()
    record_change(STREAM_BALANCES, ACTION_UPDATE, balance.id)


# ---------------------------------------------------------------------------
# Inventory management mutations (each its own transaction)
# ---------------------------------------------------------------------------

def _require_price(price: int) -> None:
    if price <= 0:
        raise ValidationError("Price must be a positive amount", details={"price": price})


def _ensure_price_free(price: int, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(Category.price == price)
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise DuplicatePrice(
            f"A category priced {price} already exists",
            details={"price": price},
        )


def _flush_price(price: int) -> None:
    # Unique constraint backstop for backends without BEGIN IMMEDIATE
    try:
        db.session.flush()
    except IntegrityError:
        raise DuplicatePrice(
            f"A category priced {price} already exists",
            details={"price": price},
        )


def _locked_category(category_id: int) -> Category:
    category = lock_for_update(db.session.query(Category).filter_by(id=category_id)).first()
    if category is None:
        raise CategoryNotFound("Category not found", details={"category_id": category_id})
    return category


def add_category(price: int, actor_id: int | None = None, stock: int = 0) -> Category:
    """Create a new price tier."""
    _require_price(price)
    if stock < 0:
        raise ValidationError("Stock cannot be negative", details={"stock": stock})

    def _op():
        begin_write()
        _ensure_price_free(price)
        category = Category(price=price, stock=stock, user_id=actor_id)
        db.session.add(category)
        _flush_price(price)
        record_change(STREAM_CATEGORIES, ACTION_INSERT, category.id)
        db.session.commit()
        return category

    return run_with_retry(_op)


def adjust_category(category_id: int, stock: int | None = None, price: int | None = None) -> Category:
    """
    Set stock and/or price of a tier in one transaction.

    Both values are validated before either is written; a duplicate price
    leaves the stock untouched too.
    """
    if stock is None and price is None:
        raise ValidationError("stock or price required")
    if stock is not None and stock < 0:
        raise ValidationError("Stock cannot be negative", details={"stock": stock})
    if price is not None:
        _require_price(price)

    def _op():
        begin_write()
        category = _locked_category(category_id)
        if price is not None:
            _ensure_price_free(price, exclude_id=category.id)
        if stock is not None:
            category.stock = stock
        if price is not None:
            category.price = price
            _flush_price(price)
        record_change(STREAM_CATEGORIES, ACTION_UPDATE, category.id)
        db.session.commit()
        return category

    return run_with_retry(_op)


def adjust_stock(category_id: int, stock: int) -> Category:
    """Set a category's stock to an absolute, non-negative count."""
    return adjust_category(category_id, stock=stock)


def adjust_price(category_id: int, price: int) -> Category:
    """Re-price a tier; the new price must not collide with another tier."""
    return adjust_category(category_id, price=price)


def remove_category(category_id: int) -> None:
    """
    Delete a tier. Historical sale items keep their price/stock snapshot and
    lose only the category reference.
    """
    def _op():
        begin_write()
        category = _locked_category(category_id)
        db.session.query(SaleItem).filter(SaleItem.category_id == category.id).update(
            {SaleItem.category_id: None}, synchronize_session=False
        )
        db.session.delete(category)
        record_change(STREAM_CATEGORIES, ACTION_DELETE, category_id)
        db.session.commit()

    run_with_retry(_op)
