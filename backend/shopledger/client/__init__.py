# Overview: Async client for the shop ledger API with local mirroring and optimistic writes.

from .api import LedgerApiClient
from .cache import LocalCache
from .config import ClientSettings
from .dispatcher import Mutation, MutationDispatcher
from .state import Snapshot, StateStore, SyncPhase
from .sync import ChangeFeedSubscription, SyncLayer

__all__ = [
    "ChangeFeedSubscription",
    "ClientSettings",
    "LedgerApiClient",
    "LocalCache",
    "Mutation",
    "MutationDispatcher",
    "Snapshot",
    "StateStore",
    "SyncLayer",
    "SyncPhase",
]
