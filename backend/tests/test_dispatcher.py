"""
Mutation dispatcher tests.

Verifies:
- A failed write restores exactly the captured state
- Overlapping writes on one key never revert a newer optimistic value
- Coalesced stock edits send only the latest value
- Sales/expenses refetch authoritative state on success
"""

import asyncio
from dataclasses import replace

import httpx
import pytest

from shopledger.client import ClientSettings, LedgerApiClient, LocalCache, Mutation, MutationDispatcher, StateStore, SyncLayer, SyncPhase
from shopledger.client.dispatcher import LEDGER_KEY
from shopledger.client.errors import TransportError
from shopledger.client.state import BalancesView, CategoryView, Snapshot
from shopledger.errors import AuthenticationFailed, InsufficientShopBalance, PaymentMismatch
from shopledger.services import ledger_service, session_service

from conftest import ADMIN_PHONE, MANAGER_PHONE, PIN, failing_transport, flask_transport

BASE_URL = "http://ledger.test"


class Switchable:
    """Wraps the Flask transport; flip ``offline`` to simulate a dead network."""

    def __init__(self, flask_client):
        self.inner = flask_transport(flask_client)
        self.offline = False
        self.requests = []

    def transport(self) -> httpx.MockTransport:
        def handler(request):
            self.requests.append((request.method, request.url.path))
            if self.offline:
                raise httpx.ConnectError("offline", request=request)
            return self.inner.handler(request)
        return httpx.MockTransport(handler)


async def signed_in(tmp_path, transport, phone=MANAGER_PHONE, debounce=0.0):
    settings = ClientSettings(api_url=BASE_URL, cache_dir=str(tmp_path), poll_interval=60, debounce_seconds=debounce)
    layer = SyncLayer(LedgerApiClient(BASE_URL, transport=transport), cache=LocalCache(tmp_path), settings=settings)
    await layer.sign_in(phone, PIN)
    return layer, MutationDispatcher(layer)


async def close(layer):
    await layer.sign_out()
    await layer.api.aclose()


class TestRollback:
    def test_network_failure_restores_previous_stock(self, tmp_path, client, manager, admin):
        category_id = ledger_service.add_category(75, stock=5).id
        net = Switchable(client)
        seen = []

        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, net.transport())
            layer.store.subscribe(lambda s: seen.append(s.category(category_id).stock if s.category(category_id) else None))

            net.offline = True
            with pytest.raises(TransportError):
                await dispatcher.set_stock(category_id, 6)

            assert layer.snapshot.category(category_id).stock == 5
            assert layer.snapshot.pending == frozenset()
            net.offline = False
            await close(layer)

        asyncio.run(scenario())
        assert seen[:2] == [6, 5]
        assert ledger_service.get_snapshot().stock_by_price() == {75: 5}

    def test_success_keeps_optimistic_value(self, tmp_path, client, manager, category_149):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))
            updated = await dispatcher.set_stock(category_149.id, 11)
            assert updated.stock == 11
            assert layer.snapshot.category(category_149.id).stock == 11
            await close(layer)

        asyncio.run(scenario())
        assert ledger_service.get_snapshot().stock_by_price() == {149: 11}

    def test_failed_sale_restores_exact_slice(self, tmp_path, client, manager, category_149, balances):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))
            before = layer.snapshot

            with pytest.raises(PaymentMismatch):
                await dispatcher.complete_sale([{"category_id": category_149.id, "quantity": 2}], cash=200, online=50)

            assert layer.snapshot.categories == before.categories
            assert layer.snapshot.balances == before.balances
            await close(layer)

        asyncio.run(scenario())

    def test_failed_expense_surfaces_reason(self, tmp_path, client, manager, balances):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))
            before = layer.snapshot.balances

            with pytest.raises(InsufficientShopBalance) as exc_info:
                await dispatcher.add_expense("Generator", cash_amount=5000, online_amount=0)

            assert exc_info.value.message == "Cash amount exceeds available shop balance"
            assert layer.snapshot.balances == before
            await close(layer)

        asyncio.run(scenario())

    def test_remove_failure_puts_category_back(self, tmp_path, client, manager, category_149):
        net = Switchable(client)

        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, net.transport())
            original = layer.snapshot.category(category_149.id)

            net.offline = True
            with pytest.raises(TransportError):
                await dispatcher.remove_category(category_149.id)
            assert layer.snapshot.category(category_149.id) == original
            net.offline = False
            await close(layer)

        asyncio.run(scenario())

    def test_session_error_signs_out(self, tmp_path, client, manager, category_149):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))
            session_service.revoke_session(layer.api.token)

            with pytest.raises(AuthenticationFailed):
                await dispatcher.set_stock(category_149.id, 1)

            assert layer.snapshot.phase is SyncPhase.UNINITIALIZED
            assert layer.api.token is None
            await layer.api.aclose()

        asyncio.run(scenario())


class TestCrossEntity:
    def test_sale_refetches_authoritative_state(self, tmp_path, client, manager, category_149, balances):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))

            result = await dispatcher.complete_sale(
                [{"category_id": category_149.id, "quantity": 2}],
                cash=200,
                online=98,
            )

            snapshot = layer.snapshot
            assert snapshot.category(category_149.id).stock == 8
            assert snapshot.balances.shop_balance == 1200
            # Manager view never carries the bank figure
            assert snapshot.balances.bank_balance is None
            assert [s.id for s in snapshot.recent_sales] == [result["sale_id"]]
            await close(layer)

        asyncio.run(scenario())

    def test_deposit_by_owner(self, tmp_path, client, manager, admin, balances):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client), phone=ADMIN_PHONE)
            await dispatcher.add_deposit(manager.id, 250, description="Till sweep")

            assert layer.snapshot.balances.shop_balance == 750
            assert layer.snapshot.balances.bank_balance == 750
            await close(layer)

        asyncio.run(scenario())

    def test_add_category_swaps_temporary_id(self, tmp_path, client, manager):
        async def scenario():
            layer, dispatcher = await signed_in(tmp_path, flask_transport(client))
            created = await dispatcher.add_category(35, stock=2)

            assert created.id > 0
            assert layer.snapshot.categories == (CategoryView(id=created.id, price=35, stock=2),)
            await close(layer)

        asyncio.run(scenario())


def _offline_dispatcher(tmp_path, snapshot, debounce=0.0):
    settings = ClientSettings(api_url=BASE_URL, cache_dir=str(tmp_path), debounce_seconds=debounce)
    layer = SyncLayer(
        LedgerApiClient(BASE_URL, transport=failing_transport()),
        store=StateStore(snapshot),
        cache=LocalCache(tmp_path),
        settings=settings,
    )
    return layer, MutationDispatcher(layer)


def _stock_mutation(value, remote, coalesce=False):
    def set_stock(snapshot, stock):
        return snapshot.with_category(replace(snapshot.category(1), stock=stock))

    return Mutation(
        key="category:1:stock",
        apply=lambda s: set_stock(s, value),
        remote=remote,
        capture=lambda s: s.category(1).stock,
        restore=set_stock,
        coalesce=coalesce,
    )


class TestOverlappingDispatches:
    """Two in-flight edits of the same stock counter, resolved in different orders."""

    START = Snapshot(categories=(CategoryView(id=1, price=10, stock=5),), balances=BalancesView(0, 0))

    def _gated(self):
        gate = asyncio.Event()
        outcome = {}

        async def remote():
            await gate.wait()
            if outcome.get("error"):
                raise TransportError()
            return outcome.get("value")

        return gate, outcome, remote

    def test_older_failure_does_not_revert_newer_value(self, tmp_path):
        async def scenario():
            layer, dispatcher = _offline_dispatcher(tmp_path, self.START)
            gate_a, outcome_a, remote_a = self._gated()
            gate_b, outcome_b, remote_b = self._gated()

            task_a = asyncio.create_task(dispatcher.dispatch(_stock_mutation(6, remote_a)))
            await asyncio.sleep(0)
            task_b = asyncio.create_task(dispatcher.dispatch(_stock_mutation(7, remote_b)))
            await asyncio.sleep(0)
            assert layer.snapshot.category(1).stock == 7

            outcome_a["error"] = True
            gate_a.set()
            with pytest.raises(TransportError):
                await task_a
            assert layer.snapshot.category(1).stock == 7

            outcome_b["error"] = True
            gate_b.set()
            with pytest.raises(TransportError):
                await task_b
            # A's capture was handed to B, so the original value comes back
            assert layer.snapshot.category(1).stock == 5
            assert layer.snapshot.pending == frozenset()
            await layer.api.aclose()

        asyncio.run(scenario())

    def test_older_failure_after_newer_success_keeps_newer(self, tmp_path):
        async def scenario():
            layer, dispatcher = _offline_dispatcher(tmp_path, self.START)
            gate_a, outcome_a, remote_a = self._gated()
            gate_b, outcome_b, remote_b = self._gated()

            task_a = asyncio.create_task(dispatcher.dispatch(_stock_mutation(6, remote_a)))
            await asyncio.sleep(0)
            task_b = asyncio.create_task(dispatcher.dispatch(_stock_mutation(7, remote_b)))
            await asyncio.sleep(0)

            outcome_b["value"] = "ok"
            gate_b.set()
            assert await task_b == "ok"

            outcome_a["error"] = True
            gate_a.set()
            with pytest.raises(TransportError):
                await task_a
            assert layer.snapshot.category(1).stock == 7
            await layer.api.aclose()

        asyncio.run(scenario())

    def test_newer_failure_first_then_older_failure(self, tmp_path):
        async def scenario():
            layer, dispatcher = _offline_dispatcher(tmp_path, self.START)
            gate_a, outcome_a, remote_a = self._gated()
            gate_b, outcome_b, remote_b = self._gated()

            task_a = asyncio.create_task(dispatcher.dispatch(_stock_mutation(6, remote_a)))
            await asyncio.sleep(0)
            task_b = asyncio.create_task(dispatcher.dispatch(_stock_mutation(7, remote_b)))
            await asyncio.sleep(0)

            outcome_b["error"] = True
            gate_b.set()
            with pytest.raises(TransportError):
                await task_b
            assert layer.snapshot.category(1).stock == 6

            outcome_a["error"] = True
            gate_a.set()
            with pytest.raises(TransportError):
                await task_a
            assert layer.snapshot.category(1).stock == 5
            await layer.api.aclose()

        asyncio.run(scenario())

    def _gated_expenses(self, dispatcher):
        """Replace the expense call with one that waits for a per-purpose gate."""
        gates = {}
        failing = set()

        async def record_expense(purpose, cash_amount, online_amount, receipt_url=None):
            await gates[purpose].wait()
            if purpose in failing:
                raise TransportError()
            return {"expense": {"purpose": purpose, "amount": cash_amount + online_amount}}

        dispatcher.api.record_expense = record_expense
        return gates, failing

    def test_overlapping_expenses_older_failure_keeps_newer_delta(self, tmp_path):
        async def scenario():
            start = replace(self.START, balances=BalancesView(100, 0))
            layer, dispatcher = _offline_dispatcher(tmp_path, start)
            gates, failing = self._gated_expenses(dispatcher)
            gates["A"], gates["B"] = asyncio.Event(), asyncio.Event()

            task_a = asyncio.create_task(dispatcher.add_expense("A", 30, 0))
            await asyncio.sleep(0)
            task_b = asyncio.create_task(dispatcher.add_expense("B", 20, 0))
            await asyncio.sleep(0)
            assert layer.snapshot.balances.shop_balance == 50

            failing.add("A")
            gates["A"].set()
            with pytest.raises(TransportError):
                await task_a
            assert layer.snapshot.balances.shop_balance == 80
            assert layer.snapshot.pending == frozenset({LEDGER_KEY})

            failing.add("B")
            gates["B"].set()
            with pytest.raises(TransportError):
                await task_b
            assert layer.snapshot.balances.shop_balance == 100
            assert layer.snapshot.pending == frozenset()
            await layer.api.aclose()

        asyncio.run(scenario())

    def test_overlapping_expenses_newer_success_then_older_failure(self, tmp_path):
        async def scenario():
            start = replace(self.START, balances=BalancesView(100, 0))
            layer, dispatcher = _offline_dispatcher(tmp_path, start)
            gates, failing = self._gated_expenses(dispatcher)
            gates["A"], gates["B"] = asyncio.Event(), asyncio.Event()

            task_a = asyncio.create_task(dispatcher.add_expense("A", 30, 0))
            await asyncio.sleep(0)
            task_b = asyncio.create_task(dispatcher.add_expense("B", 20, 0))
            await asyncio.sleep(0)

            # B is confirmed; its follow-up refetch fails (offline) and is only logged
            gates["B"].set()
            await task_b
            assert layer.snapshot.balances.shop_balance == 50

            failing.add("A")
            gates["A"].set()
            with pytest.raises(TransportError):
                await task_a
            assert layer.snapshot.balances.shop_balance == 80
            await layer.api.aclose()

        asyncio.run(scenario())

    def test_coalesced_edits_send_only_latest(self, tmp_path):
        calls = []

        def remote_for(value):
            async def remote():
                calls.append(value)
                return value
            return remote

        async def scenario():
            layer, dispatcher = _offline_dispatcher(tmp_path, self.START, debounce=0.05)
            results = await asyncio.gather(
                dispatcher.dispatch(_stock_mutation(6, remote_for(6), coalesce=True)),
                dispatcher.dispatch(_stock_mutation(7, remote_for(7), coalesce=True)),
                dispatcher.dispatch(_stock_mutation(8, remote_for(8), coalesce=True)),
            )
            assert results == [None, None, 8]
            assert layer.snapshot.category(1).stock == 8
            await layer.api.aclose()

        asyncio.run(scenario())
        assert calls == [8]

    def test_coalesced_failure_restores_original(self, tmp_path):
        async def failing():
            raise TransportError()

        async def scenario():
            layer, dispatcher = _offline_dispatcher(tmp_path, self.START, debounce=0.05)
            results = await asyncio.gather(
                dispatcher.dispatch(_stock_mutation(6, failing, coalesce=True)),
                dispatcher.dispatch(_stock_mutation(7, failing, coalesce=True)),
                return_exceptions=True,
            )
            assert results[0] is None
            assert isinstance(results[1], TransportError)
            assert layer.snapshot.category(1).stock == 5
            await layer.api.aclose()

        asyncio.run(scenario())
