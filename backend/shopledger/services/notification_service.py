from __future__ import annotations

from flask import current_app

from ..errors import NotificationNotFound, UnsupportedRole
from ..extensions import db
from ..models import (
    Deposit,
    Expense,
    Notification,
    Profile,
    Sale,
    ROLE_OWNER,
    ROLE_STORE_MANAGER,
)


TYPE_SALE = "sale"
TYPE_EXPENSE = "expense"
TYPE_DEPOSIT = "deposit"
TYPE_APPROVAL = "approval"


def emit(notifier, entity) -> int | None:
    """
    Run a notifier after its ledger transaction has committed.

    Best effort: a failure here is logged and rolled back on its own; the
    committed ledger entry stands. Returns the number of notifications
    written, or None on failure.
    """
    try:
        count = notifier(entity)
        db.session.commit()
        return count
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to emit %s for %s %s",
            getattr(notifier, "__name__", "notification"),
            type(entity).__name__,
            getattr(entity, "id", None),
        )
        return None


def _money(amount: int) -> str:
    return f"{current_app.config.get('CURRENCY_SYMBOL', '')}{amount}"


def _fan_out(recipients, *, title: str, description: str, type_: str, metadata: dict) -> int:
    count = 0
    for recipient_id in recipients:
        db.session.add(Notification(
            user_id=recipient_id,
            title=title,
            description=description,
            type=type_,
            metadata_json=metadata,
        ))
        count += 1
    db.session.flush()
    return count


def _approved_except(user_id: int) -> list[int]:
    rows = (
        db.session.query(Profile.id)
        .filter(Profile.is_approved.is_(True), Profile.id != user_id)
        .order_by(Profile.id.asc())
        .all()
    )
    return [r[0] for r in rows]


def _owners_except(user_id: int) -> list[int]:
    rows = (
        db.session.query(Profile.id)
        .filter(Profile.designation == ROLE_OWNER, Profile.id != user_id)
        .order_by(Profile.id.asc())
        .all()
    )
    return [r[0] for r in rows]


def expense_recipients(creator: Profile) -> list[int]:
    """
    Managers' expenses are broadcast to every approved actor; Owners'
    expenses go to the other Owners only. Any other role has no agreed rule.
    """
    if creator.designation == ROLE_STORE_MANAGER:
        return _approved_except(creator.id)
    if creator.designation == ROLE_OWNER:
        return _owners_except(creator.id)
    raise UnsupportedRole(
        f"No expense notification policy for role {creator.designation!r}",
        details={"designation": creator.designation},
    )


def notify_sale(sale: Sale) -> int:
    creator = sale.creator
    creator_name = creator.name if creator else "Unknown"
    return _fan_out(
        _approved_except(sale.created_by_user_id),
        title="New Sale",
        description=f"New sale of {_money(sale.total)} by {creator_name}",
        type_=TYPE_SALE,
        metadata={
            "sale_id": sale.id,
            "amount": sale.total,
            "creator_id": sale.created_by_user_id,
            "creator_name": creator_name,
        },
    )


def notify_expense(expense: Expense) -> int:
    creator = expense.creator
    return _fan_out(
        expense_recipients(creator),
        title="New Expense",
        description=f"New expense of {_money(expense.amount)} for {expense.purpose} by {creator.name}",
        type_=TYPE_EXPENSE,
        metadata={
            "expense_id": expense.id,
            "amount": expense.amount,
            "purpose": expense.purpose,
            "creator_id": creator.id,
            "creator_name": creator.name,
        },
    )


def notify_deposit(deposit: Deposit) -> int:
    depositor = deposit.depositor
    depositor_name = depositor.name if depositor else "Unknown"
    return _fan_out(
        _owners_except(deposit.deposited_by_user_id),
        title="New Deposit",
        description=f"New deposit of {_money(deposit.amount)} by {depositor_name}",
        type_=TYPE_DEPOSIT,
        metadata={
            "deposit_id": deposit.id,
            "amount": deposit.amount,
            "creator_id": deposit.deposited_by_user_id,
            "creator_name": depositor_name,
        },
    )


def notify_new_profile(profile: Profile) -> int:
    if profile.is_admin:
        return 0
    admins = [
        r[0]
        for r in db.session.query(Profile.id).filter(Profile.is_admin.is_(True)).order_by(Profile.id.asc()).all()
    ]
    return _fan_out(
        admins,
        title="New User Signup",
        description=f"New user {profile.name} ({profile.phone}) signed up as {profile.designation}",
        type_=TYPE_APPROVAL,
        metadata={
            "user_id": profile.id,
            "name": profile.name,
            "phone": profile.phone,
            "designation": profile.designation,
        },
    )


def list_for_user(user_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    q = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return (
        db.session.query(db.func.count(Notification.id))
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .scalar()
    ) or 0


def mark_read(user_id: int, notification_id: int) -> Notification:
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .first()
    )
    if notification is None:
        raise NotificationNotFound("Notification not found", details={"notification_id": notification_id})
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    count = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return count
