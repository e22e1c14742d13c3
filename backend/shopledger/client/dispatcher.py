# Overview: Optimistic write protocol (capture, apply, remote call, reconcile or roll back).

"""
Every user-initiated write goes through MutationDispatcher.dispatch():

1. capture the slice of local state the mutation touches
2. apply the optimistic change to the StateStore
3. call the server
4. on success, trust the optimistic value (or refetch, for sales/expenses/
   deposits whose effects span balances and stock)
5. on failure, put the captured slice back exactly and re-raise

Captures are kept per logical key (e.g. "category:3:stock") and refreshed
on every dispatch. When dispatches on one field key overlap, an older one
that fails hands its capture to the next newer one instead of reverting, so
it can never wipe out a newer optimistic value.

Sales, expenses and deposits shift balances by an amount, so several can be
in flight at once and each one's effect must stay separate. Those are
"accumulating" mutations: the key keeps a base snapshot plus its pending
mutations in dispatch order, and a failure rebuilds the view as base plus
the remaining pending mutations. A success folds its effect into the base.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import LedgerError
from .errors import ClientError, is_session_error, user_message
from .state import BalancesView, CategoryView, Snapshot
from .sync import SyncLayer

logger = logging.getLogger(__name__)

LEDGER_KEY = "ledger"


@dataclass
class Mutation:
    key: str
    apply: Callable[[Snapshot], Snapshot]
    remote: Callable[[], Awaitable[Any]]
    capture: Callable[[Snapshot], Any]
    restore: Callable[[Snapshot, Any], Snapshot]
    # Applied with the server result on success (e.g. swap a temporary id)
    reconcile: Optional[Callable[[Snapshot, Any], Snapshot]] = None
    refetch: bool = False
    # Wait for the debounce window; skip the call if a newer dispatch arrives
    coalesce: bool = False
    # Effects add up (balance deltas); failures are replayed, never handed over
    accumulate: bool = False


class _Pending:
    __slots__ = ("generation", "capture", "epoch", "mutation")

    def __init__(self, generation: int, capture: Any, epoch: int, mutation: Mutation):
        self.generation = generation
        self.capture = capture
        self.epoch = epoch
        self.mutation = mutation


def _set_category_field(snapshot: Snapshot, category_id: int, field: str, value: int) -> Snapshot:
    category = snapshot.category(category_id)
    if category is None:
        return snapshot
    return snapshot.with_category(replace(category, **{field: value}))


def _restore_category(category_id: int) -> Callable[[Snapshot, Optional[CategoryView]], Snapshot]:
    def restore(snapshot: Snapshot, captured: Optional[CategoryView]) -> Snapshot:
        if captured is None:
            return snapshot.without_category(category_id)
        return snapshot.with_category(captured)
    return restore


def _field_mutation(category_id: int, field: str, value: int, remote, coalesce: bool) -> Mutation:
    def capture(snapshot: Snapshot):
        category = snapshot.category(category_id)
        return None if category is None else getattr(category, field)

    def restore(snapshot: Snapshot, captured):
        if captured is None:
            return snapshot
        return _set_category_field(snapshot, category_id, field, captured)

    return Mutation(
        key=f"category:{category_id}:{field}",
        apply=lambda s: _set_category_field(s, category_id, field, value),
        remote=remote,
        capture=capture,
        restore=restore,
        coalesce=coalesce,
    )


def _ledger_capture(category_ids):
    def capture(snapshot: Snapshot):
        stocks = {}
        for category_id in category_ids:
            category = snapshot.category(category_id)
            if category is not None:
                stocks[category_id] = category.stock
        return snapshot.balances, stocks
    return capture


def _ledger_restore(snapshot: Snapshot, captured) -> Snapshot:
    balances, stocks = captured
    for category_id, stock in stocks.items():
        snapshot = _set_category_field(snapshot, category_id, "stock", stock)
    return replace(snapshot, balances=balances)


def _shift_balances(balances: Optional[BalancesView], shop: int, bank: int) -> Optional[BalancesView]:
    """Provisional delta; display only, never a sufficiency check."""
    if balances is None:
        return None
    bank_balance = balances.bank_balance
    if bank_balance is not None:
        bank_balance = max(0, bank_balance + bank)
    return replace(balances, shop_balance=max(0, balances.shop_balance + shop), bank_balance=bank_balance)


class MutationDispatcher:
    def __init__(self, sync: SyncLayer, debounce: Optional[float] = None):
        self.sync = sync
        self.store = sync.store
        self.api = sync.api
        self.debounce = sync.settings.debounce_seconds if debounce is None else debounce
        self._generations = itertools.count(1)
        self._temp_ids = itertools.count(-1, -1)
        self._pending: Dict[str, List[_Pending]] = {}
        self._confirmed: Dict[str, int] = {}
        # Accumulating keys only: last known state with no pending effect applied
        self._bases: Dict[str, Snapshot] = {}

    # -- protocol -----------------------------------------------------------

    def _pending_keys(self) -> frozenset:
        return frozenset(key for key, entries in self._pending.items() if entries)

    def _update(self, fn: Callable[[Snapshot], Snapshot]) -> None:
        self.store.apply(lambda s: replace(fn(s), pending=self._pending_keys()))

    def _successor(self, key: str, entry: _Pending) -> Optional[_Pending]:
        for other in self._pending.get(key, ()):
            if other.generation > entry.generation:
                return other
        return None

    def _retire(self, key: str, entry: _Pending) -> Optional[_Pending]:
        """Drop ``entry``; returns the next newer in-flight dispatch on the same key."""
        successor = self._successor(key, entry)
        entries = self._pending.get(key, [])
        if entry in entries:
            entries.remove(entry)
        if not entries:
            self._pending.pop(key, None)
        return successor

    def _stale(self, entry: _Pending) -> bool:
        return entry.epoch != self.sync.epoch

    def _live_entries(self, key: str) -> List[_Pending]:
        return [e for e in self._pending.get(key, ()) if not self._stale(e)]

    async def dispatch(self, mutation: Mutation) -> Any:
        key = mutation.key
        snapshot = self.store.snapshot
        entry = _Pending(next(self._generations), mutation.capture(snapshot), self.sync.epoch, mutation)
        if mutation.accumulate and not self._live_entries(key):
            self._bases[key] = snapshot
        self._pending.setdefault(key, []).append(entry)
        self._update(mutation.apply)

        try:
            if mutation.coalesce and self.debounce > 0:
                await asyncio.sleep(self.debounce)
                if self._successor(key, entry) is not None:
                    # Superseded before it was sent; the newer dispatch now owns the capture
                    successor = self._retire(key, entry)
                    successor.capture = entry.capture
                    self._update(lambda s: s)
                    return None
            result = await mutation.remote()
        except (Exception, asyncio.CancelledError) as exc:
            self._rollback(mutation, entry)
            if isinstance(exc, (LedgerError, ClientError)) and is_session_error(exc):
                await self.sync.sign_out(revoke=False)
            raise

        self._commit(mutation, entry, result)
        if mutation.refetch and not self._stale(entry):
            await self._refresh(key)
        return result

    def _rollback(self, mutation: Mutation, entry: _Pending) -> None:
        key = mutation.key
        successor = self._retire(key, entry)
        if self._stale(entry):
            return
        if mutation.accumulate:
            self._replay(key, failed=mutation)
        elif successor is not None:
            successor.capture = entry.capture
            self._update(lambda s: s)
        elif self._confirmed.get(key, 0) > entry.generation:
            # A newer value on this key is already confirmed by the server
            self._update(lambda s: s)
        else:
            self._update(lambda s: mutation.restore(s, entry.capture))

    def _replay(self, key: str, failed: Mutation) -> None:
        """
        Rebuild an accumulating key's slice as base + the still-pending
        mutations, so only the failed mutation's effect disappears.
        """
        remaining = self._live_entries(key)
        view = self._bases.get(key)
        if view is None:
            return
        for other in remaining:
            view = other.mutation.apply(view)

        touched = [failed] + [other.mutation for other in remaining]

        def rebuild(snapshot: Snapshot) -> Snapshot:
            for m in touched:
                snapshot = m.restore(snapshot, m.capture(view))
            return snapshot

        self._update(rebuild)
        if not remaining:
            self._bases.pop(key, None)

    def _commit(self, mutation: Mutation, entry: _Pending, result: Any) -> None:
        key = mutation.key
        self._retire(key, entry)
        self._confirmed[key] = max(self._confirmed.get(key, 0), entry.generation)
        if self._stale(entry):
            return
        if mutation.accumulate:
            # The server applied it: later failures must keep this effect
            base = self._bases.get(key)
            if self._live_entries(key) and base is not None:
                self._bases[key] = mutation.apply(base)
            else:
                self._bases.pop(key, None)
        if mutation.reconcile is not None:
            self._update(lambda s: mutation.reconcile(s, result))
        else:
            self._update(lambda s: s)

    async def _refresh(self, key: str) -> None:
        try:
            await self.sync.refetch_all()
        except (LedgerError, ClientError) as exc:
            # Committed server-side already; the change feed converges later
            logger.warning("Refetch after %s failed: %s", key, user_message(exc))
            return
        self._rebase(key)

    def _rebase(self, key: str) -> None:
        """After a refetch, put still-pending accumulating effects back on top."""
        remaining = self._live_entries(key)
        if not remaining or not remaining[0].mutation.accumulate:
            return
        self._bases[key] = self.store.snapshot

        def reapply(snapshot: Snapshot) -> Snapshot:
            for other in remaining:
                snapshot = other.mutation.apply(snapshot)
            return snapshot

        self._update(reapply)

    # -- inventory ----------------------------------------------------------

    async def add_category(self, price: int, stock: int = 0) -> CategoryView:
        temp_id = next(self._temp_ids)
        provisional = CategoryView(id=temp_id, price=price, stock=stock)

        def reconcile(snapshot: Snapshot, created) -> Snapshot:
            return snapshot.without_category(temp_id).with_category(CategoryView.from_dict(created))

        created = await self.dispatch(Mutation(
            key=f"category:{temp_id}",
            apply=lambda s: s.with_category(provisional),
            remote=lambda: self.api.create_category(price, stock),
            capture=lambda s: s.category(temp_id),
            restore=_restore_category(temp_id),
            reconcile=reconcile,
        ))
        return CategoryView.from_dict(created)

    async def set_stock(self, category_id: int, stock: int, coalesce: bool = True) -> Optional[CategoryView]:
        """
        Set a category's stock. Rapid repeated calls on the same category are
        coalesced: only the latest value is sent. Returns None for a call that
        was superseded before it was sent.
        """
        updated = await self.dispatch(_field_mutation(
            category_id,
            "stock",
            stock,
            remote=lambda: self.api.update_category(category_id, stock=stock),
            coalesce=coalesce,
        ))
        return None if updated is None else CategoryView.from_dict(updated)

    async def set_price(self, category_id: int, price: int) -> CategoryView:
        updated = await self.dispatch(_field_mutation(
            category_id,
            "price",
            price,
            remote=lambda: self.api.update_category(category_id, price=price),
            coalesce=False,
        ))
        return CategoryView.from_dict(updated)

    async def remove_category(self, category_id: int) -> None:
        await self.dispatch(Mutation(
            key=f"category:{category_id}",
            apply=lambda s: s.without_category(category_id),
            remote=lambda: self.api.delete_category(category_id),
            capture=lambda s: s.category(category_id),
            restore=_restore_category(category_id),
        ))

    # -- ledger entries -----------------------------------------------------

    async def complete_sale(
        self,
        items: List[Dict[str, int]],
        cash: int,
        online: int,
        slip_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Dispatch a sale. Stock is decremented locally for display only; the
        server decides whether there is enough.
        """
        category_ids = [int(item["category_id"]) for item in items]

        def apply(snapshot: Snapshot) -> Snapshot:
            for item in items:
                category = snapshot.category(int(item["category_id"]))
                if category is not None:
                    remaining = max(0, category.stock - int(item["quantity"]))
                    snapshot = _set_category_field(snapshot, category.id, "stock", remaining)
            return replace(snapshot, balances=_shift_balances(snapshot.balances, cash, online))

        return await self.dispatch(Mutation(
            key=LEDGER_KEY,
            apply=apply,
            remote=lambda: self.api.record_sale(items, cash, online, slip_url),
            capture=_ledger_capture(category_ids),
            restore=_ledger_restore,
            refetch=True,
            accumulate=True,
        ))

    async def add_expense(
        self,
        purpose: str,
        cash_amount: int,
        online_amount: int,
        receipt_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.dispatch(Mutation(
            key=LEDGER_KEY,
            apply=lambda s: replace(s, balances=_shift_balances(s.balances, -cash_amount, -online_amount)),
            remote=lambda: self.api.record_expense(purpose, cash_amount, online_amount, receipt_url),
            capture=_ledger_capture(()),
            restore=_ledger_restore,
            refetch=True,
            accumulate=True,
        ))

    async def add_deposit(
        self,
        depositor_id: int,
        amount: int,
        description: Optional[str] = None,
        slip_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.dispatch(Mutation(
            key=LEDGER_KEY,
            apply=lambda s: replace(s, balances=_shift_balances(s.balances, -amount, amount)),
            remote=lambda: self.api.record_deposit(depositor_id, amount, description, slip_url),
            capture=_ledger_capture(()),
            restore=_ledger_restore,
            refetch=True,
            accumulate=True,
        ))
