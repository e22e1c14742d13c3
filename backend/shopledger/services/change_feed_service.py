# Overview: Service-layer operations for the change feed; append and read change events.

from __future__ import annotations

from ..extensions import db
from ..models import ChangeEvent

"""
Change feed invariants

- Append-only; events are never updated or deleted by the application.
- Events are written inside the same DB transaction as the change they
  describe (flush, never commit here).
- Cursor is the last seen event id; reads are strictly "id > cursor",
  ascending.
"""

STREAM_SALES = "sales"
STREAM_CATEGORIES = "categories"
STREAM_BALANCES = "balances"
VALID_STREAMS = (STREAM_SALES, STREAM_CATEGORIES, STREAM_BALANCES)

ACTION_INSERT = "insert"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
VALID_ACTIONS = (ACTION_INSERT, ACTION_UPDATE, ACTION_DELETE)


def record_change(stream: str, action: str, entity_id: int | None = None) -> ChangeEvent:
    if stream not in VALID_STREAMS:
        raise ValueError(f"Unknown change stream: {stream}")
    if action not in VALID_ACTIONS:
        raise ValueError(f"Unknown change action: {action}")

    ev = ChangeEvent(stream=stream, action=action, entity_id=entity_id)
    db.session.add(ev)
    db.session.flush()
    return ev


def latest_cursor() -> int:
    latest = db.session.query(db.func.max(ChangeEvent.id)).scalar()
    return int(latest or 0)


def changes_since(
    cursor: int = 0,
    streams: list[str] | None = None,
    limit: int = 200,
) -> tuple[list[ChangeEvent], int]:
    """
    Return events after ``cursor`` and the cursor to resume from.

    When a stream filter is given, the returned cursor still advances past
    the last event scanned so filtered-out streams are not re-read.
    """
    q = db.session.query(ChangeEvent).filter(ChangeEvent.id > cursor).order_by(ChangeEvent.id.asc())
    scanned = q.limit(limit).all()
    if not scanned:
        return [], cursor

    next_cursor = scanned[-1].id
    if streams:
        wanted = set(streams)
        scanned = [ev for ev in scanned if ev.stream in wanted]
    return scanned, next_cursor
