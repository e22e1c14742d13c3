# Overview: Client synchronization layer; cold-start hydration, full refetch, and change-feed polling.

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..errors import LedgerError
from .api import LedgerApiClient
from .cache import CACHED_BALANCES, CACHED_CATEGORIES, SESSION_TOKEN, LocalCache
from .config import ClientSettings
from .errors import ClientError, is_session_error, user_message
from .state import BalancesView, CategoryView, SaleView, Snapshot, StateStore, SyncPhase

logger = logging.getLogger(__name__)

FEED_STREAMS = ("sales", "categories", "balances")


class ChangeFeedSubscription:
    """
    Polling subscription to the server change feed, scoped like a resource.

    Each non-empty batch of events is handed to ``on_changes`` once, so a
    burst of events costs one refetch. The cursor only moves past a batch
    after ``on_changes`` succeeded; a failed refetch is retried on the next
    tick. A session error stops polling and is reported through ``on_error``.
    """

    def __init__(
        self,
        api: LedgerApiClient,
        on_changes: Callable[[List[Dict[str, Any]]], Awaitable[Any]],
        interval: float = 2.0,
        streams: Iterable[str] = FEED_STREAMS,
        on_error: Optional[Callable[[Exception], Awaitable[Any]]] = None,
    ):
        self.api = api
        self.on_changes = on_changes
        self.interval = interval
        self.streams = tuple(streams)
        self.on_error = on_error
        self.cursor: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    async def prime(self) -> int:
        """Pin the cursor to the newest event (call before the initial fetch)."""
        if self.cursor is None:
            self.cursor = await self.api.latest_cursor()
        return self.cursor

    async def poll_once(self) -> List[Dict[str, Any]]:
        await self.prime()
        changes, cursor = await self.api.fetch_changes(self.cursor, self.streams)
        if changes:
            await self.on_changes(changes)
        self.cursor = cursor
        return changes

    async def start(self) -> None:
        if self._closed:
            raise RuntimeError("Change feed subscription is closed")
        await self.prime()
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self.poll_once()
            except (LedgerError, ClientError) as exc:
                if is_session_error(exc):
                    if not self._closed:
                        self._closed = True
                        logger.info("Change feed stopped: %s", user_message(exc))
                        if self.on_error is not None:
                            await self.on_error(exc)
                    return
                logger.warning("Change feed poll failed: %s", user_message(exc))
            await asyncio.sleep(self.interval)

    async def close(self) -> None:
        """Stop polling. Safe to call more than once and from inside the poll loop."""
        self._closed = True
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "ChangeFeedSubscription":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class SyncLayer:
    """
    Keeps the local StateStore coherent with the server.

    Phases: UNINITIALIZED -> HYDRATING (cached data painted) -> SYNCING
    (parallel fetch) -> LIVE (change feed open) -> UNINITIALIZED on sign-out.
    """

    def __init__(
        self,
        api: LedgerApiClient,
        store: Optional[StateStore] = None,
        cache: Optional[LocalCache] = None,
        settings: Optional[ClientSettings] = None,
    ):
        self.settings = settings or ClientSettings()
        self.api = api
        self.store = store or StateStore()
        self.cache = cache or LocalCache(self.settings.cache_dir)
        self.feed: Optional[ChangeFeedSubscription] = None
        # Bumped on every sign-out; work started under an older epoch must not touch state
        self.epoch = 0
        self._refetch_lock = asyncio.Lock()

    @property
    def snapshot(self) -> Snapshot:
        return self.store.snapshot

    @property
    def signed_in(self) -> bool:
        return bool(self.api.token)

    async def _call(self, awaitable):
        try:
            return await awaitable
        except (LedgerError, ClientError) as exc:
            if is_session_error(exc):
                await self.sign_out(revoke=False)
            raise

    def _persist(self, key: str, value: Any) -> None:
        try:
            self.cache.write(key, value)
        except OSError as exc:
            logger.warning("Could not persist %s: %s", key, exc)

    # -- cold start ---------------------------------------------------------

    def hydrate(self) -> bool:
        """
        Paint from the persisted cache, if any. Returns True when cached data
        was loaded. The result is provisional until refetch_all() succeeds.
        """
        self.store.replace(phase=SyncPhase.HYDRATING)
        changes: Dict[str, Any] = {}

        raw_categories = self.cache.read(CACHED_CATEGORIES)
        if raw_categories is not None:
            try:
                changes["categories"] = tuple(sorted(
                    (CategoryView.from_dict(c) for c in raw_categories),
                    key=lambda c: (c.price, c.id),
                ))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Ignoring malformed %s: %s", CACHED_CATEGORIES, exc)

        raw_balances = self.cache.read(CACHED_BALANCES)
        if raw_balances is not None:
            try:
                changes["balances"] = BalancesView.from_cache(raw_balances)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Ignoring malformed %s: %s", CACHED_BALANCES, exc)

        if not changes:
            return False
        self.store.replace(provisional=True, **changes)
        return True

    async def initialize(self) -> Snapshot:
        """
        Bring the layer to LIVE.

        Without a session there is nothing to show and the layer goes straight
        to LIVE. With one: hydrate, fetch everything, open the change feed.
        A failed fetch leaves the layer in SYNCING so initialize() can be
        retried.
        """
        snapshot = self.store.snapshot
        if snapshot.phase is SyncPhase.LIVE and (self.feed is not None or not self.signed_in):
            return snapshot

        if not self.signed_in:
            return self.store.replace(phase=SyncPhase.LIVE)

        if snapshot.phase in (SyncPhase.UNINITIALIZED, SyncPhase.LIVE):
            self.hydrate()
        self.store.replace(phase=SyncPhase.SYNCING)

        if self.feed is None or self.feed.closed:
            self.feed = ChangeFeedSubscription(
                self.api,
                self._on_feed_changes,
                interval=self.settings.poll_interval,
                on_error=self._on_feed_error,
            )
        # Cursor first: anything committed during the fetch triggers one more refetch
        await self._call(self.feed.prime())
        await self.refetch_all()
        await self.feed.start()
        return self.store.replace(phase=SyncPhase.LIVE)

    async def refetch_all(self) -> Snapshot:
        """
        Fetch categories, recent sales and balances in parallel and swap them
        in together. On failure the state (and its initialized flag) is left
        as it was and the error propagates.
        """
        async with self._refetch_lock:
            epoch = self.epoch
            raw_categories, raw_sales, raw_balances = await self._call(asyncio.gather(
                self.api.fetch_categories(),
                self.api.fetch_recent_sales(self.settings.recent_sales_limit),
                self.api.fetch_balances(),
            ))
            if epoch != self.epoch:
                return self.store.snapshot

            categories = tuple(sorted(
                (CategoryView.from_dict(c) for c in raw_categories),
                key=lambda c: (c.price, c.id),
            ))
            sales = tuple(SaleView.from_dict(s) for s in raw_sales)
            balances = BalancesView.from_api(raw_balances)

            self._persist(CACHED_CATEGORIES, [c.to_dict() for c in categories])
            self._persist(CACHED_BALANCES, balances.to_cache())

            return self.store.replace(
                categories=categories,
                recent_sales=sales,
                balances=balances,
                initialized=True,
                provisional=False,
            )

    async def _on_feed_changes(self, changes: List[Dict[str, Any]]) -> None:
        logger.debug("Change feed delivered %d event(s); refetching", len(changes))
        await self.refetch_all()

    async def _on_feed_error(self, exc: Exception) -> None:
        await self.sign_out(revoke=False)

    # -- session ------------------------------------------------------------

    async def sign_in(self, phone: str, pin: str) -> Dict[str, Any]:
        profile = await self.api.login(phone, pin)
        self._persist(SESSION_TOKEN, {"token": self.api.token})
        self.store.replace(profile=profile)
        await self.initialize()
        return profile

    async def restore_session(self) -> bool:
        """
        Resume a persisted session token. Returns False if there is none or it
        expired; an expired session also drops the cached ledger data.
        """
        entry = self.cache.read(SESSION_TOKEN)
        token = entry.get("token") if isinstance(entry, dict) else None
        if not token:
            return False

        self.api.token = token
        try:
            profile = await self.api.me()
        except (LedgerError, ClientError) as exc:
            if not is_session_error(exc):
                raise
            self.api.token = None
            self.cache.clear()
            return False

        self.store.replace(profile=profile)
        return True

    async def sign_out(self, revoke: bool = True) -> None:
        """
        End the session: close the change feed first so no late refetch can
        touch the reset state, then revoke the token, drop every cached entry
        (the next profile on this device must not be painted with this one's
        balances) and reset to UNINITIALIZED.
        """
        self.epoch += 1
        feed, self.feed = self.feed, None
        if feed is not None:
            await feed.close()

        if revoke and self.api.token:
            try:
                await self.api.logout()
            except (LedgerError, ClientError) as exc:
                logger.warning("Logout request failed: %s", user_message(exc))

        self.api.token = None
        self.cache.clear()
        self.store.reset()
