from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z, utcnow


ROLE_STORE_MANAGER = "Store Manager"
ROLE_OWNER = "Owner"
KNOWN_ROLES = (ROLE_STORE_MANAGER, ROLE_OWNER)


class Profile(db.Model):
    """
    Actor profile: phone/PIN identity plus role and approval flags.

    WHY: Every ledger entry is attributable. Role (designation) gates bank
    visibility, online expenses and deposit receipt; approval gates access.
    """
    __tablename__ = "profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    phone = db.Column(db.String(20), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)

    # Bcrypt hashed 6-digit PIN
    pin_hash = db.Column(db.String(255), nullable=False)

    designation = db.Column(db.String(32), nullable=False, default=ROLE_STORE_MANAGER)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_approved = db.Column(db.Boolean, nullable=False, default=False, index=True)
    avatar_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_owner(self) -> bool:
        return self.designation == ROLE_OWNER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "name": self.name,
            "designation": self.designation,
            "is_admin": self.is_admin,
            "is_approved": self.is_approved,
            "avatar_url": self.avatar_url,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SessionToken(db.Model):
    """
    Bearer session token for an authenticated profile.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute and idle timeouts (see config)
    - Revocable on logout or approval withdrawal
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user = db.relationship("Profile", backref=db.backref("sessions", lazy=True, cascade="all, delete-orphan"))
