# Overview: Service-layer operations for deposits; moves cash from the till to the bank.

from __future__ import annotations

from ..errors import RoleNotPermitted, ValidationError
from ..extensions import db
from ..models import Deposit
from ..validation import parse_int, parse_text
from .concurrency import begin_write, run_with_retry
from .ledger_service import apply_deposit, lock_balances
from . import notification_service
from .auth_service import get_profile


def record_deposit(
    depositor_id: int,
    receiver_id: int,
    amount: int,
    description: str | None = None,
    slip_url: str | None = None,
) -> Deposit:
    """
    Record cash handed over by ``depositor_id`` and banked by ``receiver_id``.

    shop_balance -= amount, bank_balance += amount; the total is unchanged.
    Same locked read-validate-write discipline as expenses.
    """
    amount = parse_int(amount, "amount", minimum=1)
    description = parse_text(description, "description", required=False)
    slip_url = parse_text(slip_url, "slip_url", required=False, max_length=1024)

    def _op():
        begin_write()
        depositor = get_profile(depositor_id)
        receiver = get_profile(receiver_id)
        if not receiver.is_owner:
            raise RoleNotPermitted("Only Owners can receive deposits")
        if not depositor.is_approved and not depositor.is_admin:
            raise ValidationError("Depositor account is not approved", details={"field": "depositor_id"})

        balance = lock_balances()
        apply_deposit(balance, amount)

        deposit = Deposit(
            deposited_by_user_id=depositor.id,
            received_by_user_id=receiver.id,
            amount=amount,
            description=description,
            slip_url=slip_url,
        )
        db.session.add(deposit)
        db.session.commit()
        return deposit

    deposit = run_with_retry(_op)
    notification_service.emit(notification_service.notify_deposit, deposit)
    return deposit


def list_deposits(limit: int = 50) -> list[Deposit]:
    return (
        db.session.query(Deposit)
        .order_by(Deposit.created_at.desc(), Deposit.id.desc())
        .limit(limit)
        .all()
    )
