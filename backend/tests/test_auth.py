"""
Authentication, approval and session tests.

Verifies:
- Only the admin phone can become an Owner; it is auto-approved
- PIN checks and approval gates at login
- verify_credential / set_approval result contracts
- Session timeouts and revocation
"""

from datetime import timedelta

import pytest

from shopledger.errors import (
    ApprovalPending,
    AuthenticationFailed,
    DuplicatePhone,
    RoleNotPermitted,
    ValidationError,
)
from shopledger.extensions import db
from shopledger.models import ROLE_OWNER, ROLE_STORE_MANAGER
from shopledger.services import auth_service, session_service
from shopledger.time_utils import utcnow

from conftest import ADMIN_PHONE, MANAGER_PHONE, PENDING_PHONE, PIN


class TestRegistration:
    def test_admin_phone_becomes_approved_owner(self, db_session):
        profile = auth_service.register_profile(ADMIN_PHONE, PIN, "Boss", designation=ROLE_STORE_MANAGER)
        assert profile.designation == ROLE_OWNER
        assert profile.is_admin is True
        assert profile.is_approved is True

    def test_new_profiles_start_unapproved(self, pending_manager):
        assert pending_manager.designation == ROLE_STORE_MANAGER
        assert pending_manager.is_approved is False

    def test_owner_self_signup_rejected(self, admin):
        with pytest.raises(RoleNotPermitted):
            auth_service.register_profile("9000000001", PIN, "Wannabe", designation=ROLE_OWNER)

    def test_duplicate_phone(self, manager):
        with pytest.raises(DuplicatePhone):
            auth_service.register_profile(f"+91{MANAGER_PHONE}", PIN, "Again")

    @pytest.mark.parametrize("phone", ["12345", "5123456789", "98765432100", ""])
    def test_invalid_phone(self, db_session, phone):
        with pytest.raises(ValidationError):
            auth_service.register_profile(phone, PIN, "Someone")

    @pytest.mark.parametrize("pin", ["12345", "1234567", "12ab56", None])
    def test_invalid_pin(self, db_session, pin):
        with pytest.raises(ValidationError):
            auth_service.register_profile("9000000002", pin, "Someone")

    def test_pin_is_hashed(self, manager):
        assert manager.pin_hash != PIN
        assert auth_service.check_pin(PIN, manager.pin_hash)


class TestLogin:
    def test_authenticate(self, manager):
        assert auth_service.authenticate(MANAGER_PHONE, PIN).id == manager.id

    def test_wrong_pin(self, manager):
        with pytest.raises(AuthenticationFailed):
            auth_service.authenticate(MANAGER_PHONE, "000000")

    def test_unknown_phone(self, db_session):
        with pytest.raises(AuthenticationFailed):
            auth_service.authenticate("9111111111", PIN)

    def test_pending_profile_cannot_sign_in(self, pending_manager):
        with pytest.raises(ApprovalPending):
            auth_service.authenticate(PENDING_PHONE, PIN)


class TestCredentialAndApproval:
    def test_verify_credential(self, manager):
        assert auth_service.verify_credential(manager.id, PIN) == {"success": True}
        assert auth_service.verify_credential(manager.id, "654321") == {"success": False, "error": "Invalid PIN"}
        assert auth_service.verify_credential(999999, PIN) == {"success": False, "error": "User not found"}

    def test_approve_and_revoke(self, pending_manager):
        assert auth_service.set_approval(pending_manager.id, True) == {"success": True}
        assert auth_service.authenticate(PENDING_PHONE, PIN).id == pending_manager.id

        _, token = session_service.create_session(pending_manager.id)
        assert auth_service.set_approval(pending_manager.id, False) == {"success": True}
        assert session_service.validate_session(token) is None

    def test_admin_cannot_be_unapproved(self, admin):
        result = auth_service.set_approval(admin.id, False)
        assert result["success"] is False
        assert db.session.get(type(admin), admin.id).is_approved is True

    def test_unknown_profile(self, db_session):
        assert auth_service.set_approval(424242, True) == {"success": False, "error": "User not found"}

    def test_change_pin(self, manager):
        auth_service.change_pin(manager.id, PIN, "111111")
        assert auth_service.authenticate(MANAGER_PHONE, "111111").id == manager.id

        with pytest.raises(AuthenticationFailed):
            auth_service.change_pin(manager.id, PIN, "222222")


class TestSessions:
    def test_token_is_stored_hashed(self, manager):
        session, token = session_service.create_session(manager.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_validate_and_revoke(self, manager):
        _, token = session_service.create_session(manager.id)
        assert session_service.validate_session(token).user.id == manager.id

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_idle_timeout(self, manager):
        session, token = session_service.create_session(manager.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_absolute_timeout(self, manager):
        session, token = session_service.create_session(manager.id)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_unknown_token(self, db_session):
        assert session_service.validate_session("not-a-token") is None
        assert session_service.validate_session("") is None
