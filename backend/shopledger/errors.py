# Overview: Typed ledger errors shared by the server procedures and the client.

"""
Every failure on a ledger mutation path is one of these classes.

Each class carries a stable machine ``code`` (sent over the wire as
``{"error": message, "code": code, "details": {...}}``) and the HTTP status the
routes answer with. The client maps the code back to the same class, so
callers branch on types, never on message text.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all domain failures raised before any write."""

    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem (missing field, non-integer amount, ...)."""

    code = "VALIDATION_ERROR"


class InsufficientStock(LedgerError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class InsufficientShopBalance(LedgerError):
    code = "INSUFFICIENT_SHOP_BALANCE"
    status_code = 409


class InsufficientBankBalance(LedgerError):
    code = "INSUFFICIENT_BANK_BALANCE"
    status_code = 409


class CategoryNotFound(LedgerError):
    code = "CATEGORY_NOT_FOUND"
    status_code = 404


class DuplicatePrice(LedgerError):
    code = "DUPLICATE_PRICE"
    status_code = 409


class PaymentMismatch(LedgerError):
    code = "PAYMENT_MISMATCH"


class ProfileNotFound(LedgerError):
    code = "PROFILE_NOT_FOUND"
    status_code = 404


class NotificationNotFound(LedgerError):
    code = "NOTIFICATION_NOT_FOUND"
    status_code = 404


class RoleNotPermitted(LedgerError):
    code = "ROLE_NOT_PERMITTED"
    status_code = 403


class UnsupportedRole(LedgerError):
    """Creator role outside the known designations; needs a product decision."""

    code = "UNSUPPORTED_ROLE"
    status_code = 422


class AuthenticationFailed(LedgerError):
    code = "AUTHENTICATION_FAILED"
    status_code = 401


class ApprovalPending(LedgerError):
    code = "APPROVAL_PENDING"
    status_code = 403


class DuplicatePhone(LedgerError):
    code = "DUPLICATE_PHONE"
    status_code = 409


_ERRORS_BY_CODE: dict[str, type[LedgerError]] = {
    cls.code: cls
    for cls in (
        LedgerError,
        ValidationError,
        InsufficientStock,
        InsufficientShopBalance,
        InsufficientBankBalance,
        CategoryNotFound,
        DuplicatePrice,
        PaymentMismatch,
        ProfileNotFound,
        NotificationNotFound,
        RoleNotPermitted,
        UnsupportedRole,
        AuthenticationFailed,
        ApprovalPending,
        DuplicatePhone,
    )
}


def error_for_code(code: str | None) -> type[LedgerError] | None:
    """Resolve a wire ``code`` to its error class (None when unknown)."""
    if not code:
        return None
    return _ERRORS_BY_CODE.get(code)
