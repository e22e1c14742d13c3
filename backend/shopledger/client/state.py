# Overview: Immutable client-side view of the ledger and the store that publishes it.

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

logger = logging.getLogger(__name__)


class SyncPhase(enum.Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    SYNCING = "syncing"
    LIVE = "live"


@dataclass(frozen=True)
class CategoryView:
    id: int
    price: int
    stock: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryView":
        return cls(id=int(data["id"]), price=int(data["price"]), stock=int(data["stock"]))

    def to_dict(self) -> Dict[str, int]:
        return {"id": self.id, "price": self.price, "stock": self.stock}


@dataclass(frozen=True)
class BalancesView:
    shop_balance: int
    # None when the signed-in profile may not see the bank figure
    bank_balance: Optional[int]
    last_updated: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BalancesView":
        bank = data.get("bank_balance")
        return cls(
            shop_balance=int(data["shop_balance"]),
            bank_balance=None if bank is None else int(bank),
            last_updated=data.get("last_updated"),
        )

    @classmethod
    def from_cache(cls, data: Dict[str, Any]) -> "BalancesView":
        bank = data.get("bankBalance")
        return cls(shop_balance=int(data["shopBalance"]), bank_balance=None if bank is None else int(bank))

    def to_cache(self) -> Dict[str, Optional[int]]:
        return {"shopBalance": self.shop_balance, "bankBalance": self.bank_balance}


@dataclass(frozen=True)
class SaleLineView:
    category_id: Optional[int]
    price: int
    quantity: int


@dataclass(frozen=True)
class SaleView:
    id: int
    total: int
    cash: int
    online: int
    timestamp: Optional[str]
    creator_name: str
    items: Tuple[SaleLineView, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SaleView":
        payment = data.get("payment") or {}
        items = tuple(
            SaleLineView(
                category_id=item["category"].get("id"),
                price=int(item["category"]["price"]),
                quantity=int(item["quantity"]),
            )
            for item in data.get("items") or []
        )
        return cls(
            id=int(data["id"]),
            total=int(data["total"]),
            cash=int(payment.get("cash", 0)),
            online=int(payment.get("online", 0)),
            timestamp=data.get("timestamp"),
            creator_name=(data.get("creator") or {}).get("name", "Unknown"),
            items=items,
        )


def _sorted_categories(categories) -> Tuple[CategoryView, ...]:
    return tuple(sorted(categories, key=lambda c: (c.price, c.id)))


@dataclass(frozen=True)
class Snapshot:
    """
    One consistent, read-only view of local state.

    ``provisional`` is True while the categories/balances come from the
    persisted cache rather than a server fetch. ``pending`` holds the logical
    keys of optimistic writes that are still awaiting the server.
    """
    phase: SyncPhase = SyncPhase.UNINITIALIZED
    categories: Tuple[CategoryView, ...] = ()
    recent_sales: Tuple[SaleView, ...] = ()
    balances: Optional[BalancesView] = None
    profile: Optional[Dict[str, Any]] = None
    initialized: bool = False
    provisional: bool = False
    pending: FrozenSet[str] = field(default_factory=frozenset)

    def category(self, category_id: int) -> Optional[CategoryView]:
        for c in self.categories:
            if c.id == category_id:
                return c
        return None

    def category_by_price(self, price: int) -> Optional[CategoryView]:
        for c in self.categories:
            if c.price == price:
                return c
        return None

    def stock_by_price(self) -> Dict[int, int]:
        return {c.price: c.stock for c in self.categories}

    def with_category(self, category: CategoryView) -> "Snapshot":
        """Insert or replace ``category``, keeping price order."""
        others = [c for c in self.categories if c.id != category.id]
        return replace(self, categories=_sorted_categories(others + [category]))

    def without_category(self, category_id: int) -> "Snapshot":
        return replace(self, categories=tuple(c for c in self.categories if c.id != category_id))


Listener = Callable[[Snapshot], None]


class StateStore:
    """
    Holds the current Snapshot and notifies subscribers on every change.

    State only changes by swapping in a whole new Snapshot, so a reader never
    sees categories from one fetch next to sales from another.
    """

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._snapshot = snapshot or Snapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    def replace(self, **changes) -> Snapshot:
        return self.apply(lambda s: replace(s, **changes))

    def apply(self, fn: Callable[[Snapshot], Snapshot]) -> Snapshot:
        self._snapshot = fn(self._snapshot)
        self._publish()
        return self._snapshot

    def reset(self) -> Snapshot:
        self._snapshot = Snapshot()
        self._publish()
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        snapshot = self._snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # A broken subscriber must not block the others
                logger.exception("State listener %r failed", listener)
