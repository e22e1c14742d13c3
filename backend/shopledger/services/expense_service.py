# Overview: Service-layer operations for expenses; locked read-validate-write on balances.

from __future__ import annotations

from ..errors import RoleNotPermitted, UnsupportedRole, ValidationError
from ..extensions import db
from ..models import Expense, KNOWN_ROLES
from ..validation import parse_int, parse_text
from .concurrency import begin_write, run_with_retry
from .ledger_service import apply_expense, lock_balances
from . import notification_service
from .auth_service import get_profile


def record_expense(
    actor_id: int,
    purpose: str,
    cash_amount: int,
    online_amount: int,
    receipt_url: str | None = None,
) -> Expense:
    """
    Record an expense paid from the till (cash) and/or the bank (online).

    The balances row is locked before it is read, so two concurrent expenses
    that are each valid against a stale balance cannot both commit: the
    second one validates against the first one's result.

    Raises InsufficientShopBalance / InsufficientBankBalance, RoleNotPermitted
    (online spend by a non-Owner), UnsupportedRole (creator role with no
    notification policy).
    """
    purpose = parse_text(purpose, "purpose")
    cash_amount = parse_int(cash_amount, "cash_amount")
    online_amount = parse_int(online_amount, "online_amount")
    receipt_url = parse_text(receipt_url, "receipt_url", required=False, max_length=1024)

    if cash_amount + online_amount <= 0:
        raise ValidationError("Expense amount must be greater than zero", details={"field": "amount"})

    def _op():
        begin_write()
        actor = get_profile(actor_id)

        if actor.designation not in KNOWN_ROLES:
            raise UnsupportedRole(
                f"Expenses by role {actor.designation!r} are not supported",
                details={"designation": actor.designation},
            )
        if online_amount > 0 and not actor.is_owner:
            raise RoleNotPermitted("Only Owners can record online expenses")

        balance = lock_balances()
        apply_expense(balance, cash_amount, online_amount)

        expense = Expense(
            created_by_user_id=actor.id,
            purpose=purpose,
            amount=cash_amount + online_amount,
            cash_amount=cash_amount,
            online_amount=online_amount,
            receipt_url=receipt_url,
        )
        db.session.add(expense)
        db.session.commit()
        return expense

    expense = run_with_retry(_op)
    notification_service.emit(notification_service.notify_expense, expense)
    return expense


def list_expenses(limit: int = 50) -> list[Expense]:
    return (
        db.session.query(Expense)
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .limit(limit)
        .all()
    )
