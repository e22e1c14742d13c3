from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


BALANCE_RECORD_ID = 1


class Balance(db.Model):
    """
    The singleton shop/bank balances record.

    Exactly one row (id = 1) exists; it is written only by the transactional
    mutation procedures while holding its row lock.
    """
    __tablename__ = "balances"
    __table_args__ = (
        db.CheckConstraint(f"id = {BALANCE_RECORD_ID}", name="ck_balances_singleton"),
        db.CheckConstraint("shop_balance >= 0", name="ck_balances_shop_non_negative"),
        db.CheckConstraint("bank_balance >= 0", name="ck_balances_bank_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=False, default=BALANCE_RECORD_ID)
    shop_balance = db.Column(db.Integer, nullable=False, default=0)
    bank_balance = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self, include_bank: bool = True) -> dict:
        return {
            "shop_balance": self.shop_balance,
            "bank_balance": self.bank_balance if include_bank else None,
            "last_updated": to_utc_z(self.last_updated),
        }


class Category(db.Model):
    """
    Price tier of goods with its own stock counter.

    The unit price is the natural key: two categories never share a price.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("price", name="uq_categories_price"),
        db.CheckConstraint("price > 0", name="ck_categories_price_positive"),
        db.CheckConstraint("stock >= 0", name="ck_categories_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    price = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    owner = db.relationship("Profile")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price": self.price,
            "stock": self.stock,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
