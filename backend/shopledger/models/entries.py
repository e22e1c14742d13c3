from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


def _creator_dict(profile) -> dict:
    if profile is None:
        return {"name": "Unknown", "designation": "Unknown"}
    return {"name": profile.name, "designation": profile.designation}


class Sale(db.Model):
    """
    Append-only sale ledger entry.

    WHY: A committed sale is evidence of stock that left the shop and money
    that came in; it is never edited. Totals and the cash/online split are
    stored as recorded.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("cash_amount + online_amount = total", name="ck_sales_payment_matches_total"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    total = db.Column(db.Integer, nullable=False)
    cash_amount = db.Column(db.Integer, nullable=False, default=0)
    online_amount = db.Column(db.Integer, nullable=False, default=0)
    slip_url = db.Column(db.String(1024), nullable=True)

    creator = db.relationship("Profile")
    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.position",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_by": self.created_by_user_id,
            "timestamp": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "payment": {
                "cash": self.cash_amount,
                "online": self.online_amount,
                "slip_url": self.slip_url,
            },
            "creator": _creator_dict(self.creator),
        }


class SaleItem(db.Model):
    """
    One line of a sale with a denormalized snapshot of its category.

    category_id is cleared when the category is later removed; price and
    stock_at_sale keep the historical record intact.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_items_position"),
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)
    price = db.Column(db.Integer, nullable=False)
    stock_at_sale = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "category": {
                "id": self.category_id,
                "price": self.price,
                "stock": self.stock_at_sale,
            },
            "quantity": self.quantity,
            "line_total": self.line_total,
        }


class Expense(db.Model):
    """Append-only expense entry paid from the shop till and/or the bank."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("cash_amount + online_amount = amount", name="ck_expenses_amount_split"),
        db.Index("ix_expenses_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    purpose = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    cash_amount = db.Column(db.Integer, nullable=False, default=0)
    online_amount = db.Column(db.Integer, nullable=False, default=0)
    receipt_url = db.Column(db.String(1024), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    creator = db.relationship("Profile")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_by": self.created_by_user_id,
            "purpose": self.purpose,
            "amount": self.amount,
            "cash_amount": self.cash_amount,
            "online_amount": self.online_amount,
            "receipt_url": self.receipt_url,
            "timestamp": to_utc_z(self.created_at),
            "creator": _creator_dict(self.creator),
        }


class Deposit(db.Model):
    """Cash physically moved from the shop till into the bank."""
    __tablename__ = "deposits"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_deposits_amount_positive"),
        db.Index("ix_deposits_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    deposited_by_user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    received_by_user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    slip_url = db.Column(db.String(1024), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    depositor = db.relationship("Profile", foreign_keys=[deposited_by_user_id])
    receiver = db.relationship("Profile", foreign_keys=[received_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposited_by": self.deposited_by_user_id,
            "received_by": self.received_by_user_id,
            "amount": self.amount,
            "description": self.description,
            "slip_url": self.slip_url,
            "timestamp": to_utc_z(self.created_at),
            "depositor": _creator_dict(self.depositor),
            "receiver": _creator_dict(self.receiver),
        }
