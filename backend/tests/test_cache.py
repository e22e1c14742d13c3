"""
Client plumbing and CLI tests.

Verifies:
- LocalCache treats corrupt entries as missing
- ClientSettings reads its environment overrides
- HTTP error bodies map back onto the ledger error classes
- Flask CLI bootstrap and profile commands
"""

import httpx

from shopledger.client import ClientSettings, LocalCache
from shopledger.client.cache import CACHED_BALANCES, CACHED_CATEGORIES, SESSION_TOKEN
from shopledger.client.errors import (
    AccessDenied,
    ClientError,
    ServerError,
    SessionExpired,
    error_from_response,
    is_session_error,
)
from shopledger.errors import (
    ApprovalPending,
    InsufficientStock,
    RoleNotPermitted,
)
from shopledger.extensions import db
from shopledger.models import Profile

from conftest import MANAGER_PHONE, PIN


class TestLocalCache:
    def test_write_then_read(self, tmp_path):
        cache = LocalCache(tmp_path / "nested")
        cache.write(CACHED_BALANCES, {"shopBalance": 10, "bankBalance": None})

        assert cache.read(CACHED_BALANCES) == {"shopBalance": 10, "bankBalance": None}
        assert not list((tmp_path / "nested").glob("*.tmp"))

    def test_missing_entry(self, tmp_path):
        assert LocalCache(tmp_path).read(CACHED_CATEGORIES) is None

    def test_corrupt_entry_reads_as_missing(self, tmp_path, caplog):
        (tmp_path / f"{CACHED_CATEGORIES}.json").write_text("{not json", encoding="utf-8")

        assert LocalCache(tmp_path).read(CACHED_CATEGORIES) is None
        assert "Ignoring unreadable cache entry" in caplog.text

    def test_clear_removes_everything(self, tmp_path):
        cache = LocalCache(tmp_path)
        for key in (CACHED_CATEGORIES, CACHED_BALANCES, SESSION_TOKEN):
            cache.write(key, {"k": key})

        cache.clear()
        cache.remove(SESSION_TOKEN)  # already gone

        assert list(tmp_path.iterdir()) == []


class TestClientSettings:
    def test_defaults(self):
        settings = ClientSettings.from_env({})
        assert settings.api_url == "http://127.0.0.1:5001"
        assert settings.poll_interval == 2.0
        assert settings.recent_sales_limit == 50

    def test_environment_overrides(self, tmp_path):
        settings = ClientSettings.from_env({
            "SHOPLEDGER_API_URL": "https://shop.example/",
            "SHOPLEDGER_CACHE_DIR": str(tmp_path),
            "SHOPLEDGER_POLL_INTERVAL": "0.5",
            "SHOPLEDGER_DEBOUNCE_SECONDS": "0",
            "SHOPLEDGER_SALES_LIMIT": "20",
        })
        assert settings.api_url == "https://shop.example"
        assert settings.cache_dir == str(tmp_path)
        assert settings.poll_interval == 0.5
        assert settings.debounce_seconds == 0.0
        assert settings.recent_sales_limit == 20


def _response(status, body=None, content=None):
    request = httpx.Request("GET", "http://ledger.test/api/x")
    if content is not None:
        return httpx.Response(status, content=content, request=request)
    return httpx.Response(status, json=body, request=request)


class TestErrorMapping:
    def test_known_code_maps_to_ledger_class(self):
        exc = error_from_response(_response(409, {
            "error": "Insufficient stock for 49",
            "code": "INSUFFICIENT_STOCK",
            "details": {"price": 49},
        }))
        assert isinstance(exc, InsufficientStock)
        assert exc.message == "Insufficient stock for 49"
        assert exc.details == {"price": 49}

    def test_status_fallbacks(self):
        assert isinstance(error_from_response(_response(401, {"error": "nope"})), SessionExpired)
        assert isinstance(error_from_response(_response(403, {})), AccessDenied)
        assert isinstance(error_from_response(_response(502, content=b"<html>")), ServerError)

        other = error_from_response(_response(418, content=b""))
        assert type(other) is ClientError
        assert other.status_code == 418
        assert other.message == "Request failed with status 418"

    def test_session_errors(self):
        assert is_session_error(SessionExpired("x"))
        assert is_session_error(ApprovalPending("x"))
        assert not is_session_error(RoleNotPermitted("x"))
        assert not is_session_error(ClientError("x"))


class TestCli:
    def test_system_init(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "Balances record ready" in result.output
        assert "No admin profile yet" in result.output

    def test_create_and_approve_user(self, app, db_session, admin):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--phone", MANAGER_PHONE,
            "--name", "Asha Manager",
            "--pin", PIN,
            "--approve",
        ])
        assert result.exit_code == 0, result.output

        profile = db.session.query(Profile).filter_by(phone=MANAGER_PHONE).one()
        assert profile.is_approved is True

        result = runner.invoke(args=["users", "approve", MANAGER_PHONE, "--revoke"])
        assert result.exit_code == 0, result.output
        db.session.refresh(profile)
        assert profile.is_approved is False

        result = runner.invoke(args=["users", "list", "--pending"])
        assert "Asha Manager" in result.output

    def test_create_duplicate_reports_code(self, app, db_session, manager):
        result = app.test_cli_runner().invoke(args=[
            "users", "create",
            "--phone", MANAGER_PHONE,
            "--name", "Again",
            "--pin", PIN,
        ])
        assert result.exit_code != 0
        assert "DUPLICATE_PHONE" in result.output

    def test_approve_unknown_phone(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["users", "approve", "9000000000"])
        assert result.exit_code != 0
        assert "No profile with phone" in result.output

    def test_balances_show(self, app, balances, category_149):
        result = app.test_cli_runner().invoke(args=["balances", "show"])

        assert result.exit_code == 0, result.output
        assert "Shop balance: ₹1000" in result.output
        assert "Bank balance: ₹500" in result.output
        assert "10" in result.output
