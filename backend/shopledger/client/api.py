# Overview: Thin async HTTP wrapper over the ledger API (httpx.AsyncClient).

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from .errors import TransportError, error_from_response


class LedgerApiClient:
    """
    HTTP client wrapper with bearer authentication.

    Every method returns decoded JSON or raises a typed error: a LedgerError
    subclass for ledger failures, TransportError when the request never got
    an answer, and the other ClientError subclasses otherwise.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)
        self.token: Optional[str] = None
        self.service_key: Optional[str] = None

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "LedgerApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.service_key:
            headers["X-Service-Key"] = self.service_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, path, headers=self._headers(), json=json, params=params)
        except httpx.TransportError as exc:
            raise TransportError() from exc

        if response.status_code >= 400:
            raise error_from_response(response)
        return response.json()

    # -- session ------------------------------------------------------------

    async def login(self, phone: str, pin: str) -> Dict[str, Any]:
        """Authenticate and store token; returns the profile."""
        data = await self._request("POST", "/api/auth/login", json={"phone": phone, "pin": pin})
        self.token = data["token"]
        return data["profile"]

    async def logout(self) -> None:
        if not self.token:
            return
        try:
            await self._request("POST", "/api/auth/logout")
        finally:
            self.token = None

    async def me(self) -> Dict[str, Any]:
        return (await self._request("GET", "/api/auth/me"))["profile"]

    async def register(self, phone: str, pin: str, name: str, designation: str = "Store Manager") -> Dict[str, Any]:
        data = await self._request("POST", "/api/auth/register", json={
            "phone": phone,
            "pin": pin,
            "name": name,
            "designation": designation,
        })
        return data["profile"]

    async def verify_pin(self, pin: str) -> Dict[str, Any]:
        return await self._request("POST", "/api/auth/verify-pin", json={"pin": pin})

    async def set_approval(self, profile_id: int, approved: bool) -> Dict[str, Any]:
        return await self._request("POST", f"/api/profiles/{profile_id}/approval", json={"approved": approved})

    # -- reads --------------------------------------------------------------

    async def fetch_categories(self) -> List[Dict[str, Any]]:
        return (await self._request("GET", "/api/categories/"))["categories"]

    async def fetch_recent_sales(self, limit: int = 50) -> List[Dict[str, Any]]:
        return (await self._request("GET", "/api/sales/", params={"limit": limit}))["sales"]

    async def fetch_balances(self) -> Dict[str, Any]:
        return (await self._request("GET", "/api/balances/"))["balances"]

    async def fetch_changes(
        self,
        after: int,
        streams: Optional[Iterable[str]] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        params: Dict[str, Any] = {"after": after}
        if streams:
            params["streams"] = ",".join(streams)
        data = await self._request("GET", "/api/changes/", params=params)
        return data["changes"], data["cursor"]

    async def latest_cursor(self) -> int:
        return (await self._request("GET", "/api/changes/cursor"))["cursor"]

    async def fetch_notifications(self, unread_only: bool = False) -> Dict[str, Any]:
        params = {"unread": "true"} if unread_only else None
        return await self._request("GET", "/api/notifications/", params=params)

    # -- mutations ----------------------------------------------------------

    async def create_category(self, price: int, stock: int = 0) -> Dict[str, Any]:
        data = await self._request("POST", "/api/categories/", json={"price": price, "stock": stock})
        return data["category"]

    async def update_category(
        self,
        category_id: int,
        stock: Optional[int] = None,
        price: Optional[int] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if stock is not None:
            body["stock"] = stock
        if price is not None:
            body["price"] = price
        data = await self._request("PATCH", f"/api/categories/{category_id}", json=body)
        return data["category"]

    async def delete_category(self, category_id: int) -> None:
        await self._request("DELETE", f"/api/categories/{category_id}")

    async def record_sale(
        self,
        items: List[Dict[str, int]],
        cash: int,
        online: int,
        slip_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", "/api/sales/", json={
            "items": items,
            "cash": cash,
            "online": online,
            "slip_url": slip_url,
        })

    async def record_expense(
        self,
        purpose: str,
        cash_amount: int,
        online_amount: int,
        receipt_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", "/api/expenses/", json={
            "purpose": purpose,
            "cash_amount": cash_amount,
            "online_amount": online_amount,
            "receipt_url": receipt_url,
        })

    async def record_deposit(
        self,
        depositor_id: int,
        amount: int,
        description: Optional[str] = None,
        slip_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request("POST", "/api/deposits/", json={
            "depositor_id": depositor_id,
            "amount": amount,
            "description": description,
            "slip_url": slip_url,
        })
