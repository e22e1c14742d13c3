# Overview: Client-side error types and the mapping from HTTP responses to typed errors.

from __future__ import annotations

from typing import Optional

import httpx

from ..errors import ApprovalPending, AuthenticationFailed, LedgerError, error_for_code


class ClientError(Exception):
    """Failure that did not come from the ledger error taxonomy."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(ClientError):
    """Network failure or backend unreachable."""

    def __init__(self, message: str = "Unable to reach the server. Check your connection and try again."):
        super().__init__(message)


class SessionExpired(ClientError):
    pass


class AccessDenied(ClientError):
    pass


class ServerError(ClientError):
    pass


def is_session_error(exc: BaseException) -> bool:
    """Errors that end the signed-in session (expired token, unapproved account)."""
    return isinstance(exc, (SessionExpired, AccessDenied, AuthenticationFailed, ApprovalPending))


def user_message(exc: BaseException) -> str:
    if isinstance(exc, (LedgerError, ClientError)):
        return exc.message
    return "Something went wrong. Please try again."


def error_from_response(response: httpx.Response) -> Exception:
    """
    Build the typed error for a non-2xx response.

    Ledger codes map back to the server's LedgerError subclasses; anything
    else falls back on the HTTP status.
    """
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    status = response.status_code
    message = body.get("error") or f"Request failed with status {status}"

    cls = error_for_code(body.get("code"))
    if cls is not None:
        return cls(message, details=body.get("details") or {})

    if status == 401:
        return SessionExpired(message, status)
    if status == 403:
        return AccessDenied(message, status)
    if status >= 500:
        return ServerError(message, status)
    return ClientError(message, status)
