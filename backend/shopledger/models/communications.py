from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


NOTIFICATION_TYPES = ("sale", "expense", "deposit", "approval")


class Notification(db.Model):
    """
    Per-recipient event record produced after sales, expenses, deposits and
    profile signups. Output contract only; the ledger never reads it.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.CheckConstraint(
            "type IN ('sale', 'expense', 'deposit', 'approval')",
            name="ck_notifications_type",
        ),
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    # "metadata" is reserved on declarative models
    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "is_read": self.is_read,
            "metadata": self.metadata_json or {},
            "created_at": to_utc_z(self.created_at),
        }


class ChangeEvent(db.Model):
    """
    Append-only change feed row.

    Written in the same transaction as the mutation it describes, so a reader
    that sees the event can also see the committed change.
    """
    __tablename__ = "change_events"
    __table_args__ = (
        db.Index("ix_change_events_stream_id", "stream", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stream = db.Column(db.String(16), nullable=False)  # sales, categories, balances
    action = db.Column(db.String(8), nullable=False)  # insert, update, delete
    entity_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stream": self.stream,
            "action": self.action,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
        }
