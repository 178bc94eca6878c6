"""Tests for Garmin session save/load and GarminAuth."""
import json
from unittest.mock import MagicMock, patch

import pytest

from lifelog.sources.garmin.auth import (
    SESSION_FILE_NAME,
    GarminAuth,
    NoSessionError,
    SessionExpiredError,
)


# ─── Fixtures ─────────────────────────────────────────────────────────────────

FAKE_SESSION_DATA = {
    "display_name": "testrunner",
    "session_cookies": {"SESSIONID": "abc123", "GARMIN-SSO-GUID": "xyz"},
    "login_cookies": {"CASTGC": "TGT-xyz"},
}


@pytest.fixture
def tmp_tokens_dir(tmp_path):
    """A temporary directory to act as the tokens store."""
    return tmp_path / "garmin_session"


@pytest.fixture
def auth(tmp_tokens_dir):
    return GarminAuth(tokens_dir=tmp_tokens_dir)


# ─── Tests: save / load ───────────────────────────────────────────────────────

class TestSaveLoad:
    def test_save_writes_valid_json(self, auth, tmp_tokens_dir):
        auth.save(FAKE_SESSION_DATA)
        parsed = json.loads((tmp_tokens_dir / SESSION_FILE_NAME).read_text())
        assert parsed["display_name"] == "testrunner"

    def test_session_file_property(self, auth, tmp_tokens_dir):
        assert auth.session_file == tmp_tokens_dir / SESSION_FILE_NAME

    def test_load_returns_session_data(self, auth):
        auth.save(FAKE_SESSION_DATA)
        assert auth.load()["session_cookies"] == FAKE_SESSION_DATA["session_cookies"]

    def test_load_raises_no_session_when_missing(self, auth):
        with pytest.raises(NoSessionError, match="python -m lifelog setup"):
            auth.load()

    def test_has_session(self, auth):
        assert auth.has_session() is False
        auth.save(FAKE_SESSION_DATA)
        assert auth.has_session() is True

    def test_clear_removes_session_file(self, auth):
        auth.save(FAKE_SESSION_DATA)
        auth.clear()
        assert not auth.has_session()

    def test_clear_is_safe_when_no_session(self, auth):
        auth.clear()

    def test_saved_file_permissions_owner_only(self, auth, tmp_tokens_dir):
        auth.save(FAKE_SESSION_DATA)
        mode = oct((tmp_tokens_dir / SESSION_FILE_NAME).stat().st_mode)[-3:]
        assert mode == "600", f"Expected 600, got {mode}"

    def test_saved_dir_permissions_owner_only(self, auth, tmp_tokens_dir):
        auth.save(FAKE_SESSION_DATA)
        mode = oct(tmp_tokens_dir.stat().st_mode)[-3:]
        assert mode == "700", f"Expected 700, got {mode}"


# ─── Tests: build_client ──────────────────────────────────────────────────────

class TestBuildClient:
    def test_build_client_from_saved_session(self, auth):
        auth.save(FAKE_SESSION_DATA)
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            MockGarmin.return_value.login.return_value = True
            auth.build_client()
        MockGarmin.assert_called_once_with(session_data=FAKE_SESSION_DATA)
        MockGarmin.return_value.login.assert_called_once()

    def test_build_client_raises_no_session_when_missing(self, auth):
        with pytest.raises(NoSessionError):
            auth.build_client()

    def test_rejected_session_raises_expired(self, auth):
        auth.save(FAKE_SESSION_DATA)
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            MockGarmin.return_value.login.side_effect = Exception("401 Unauthorized")
            with pytest.raises(SessionExpiredError):
                auth.build_client()

    def test_rejected_session_is_audited(self, tmp_tokens_dir):
        log = MagicMock()
        auth = GarminAuth(tmp_tokens_dir, log=log)
        auth.save(FAKE_SESSION_DATA)
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            MockGarmin.return_value.login.side_effect = Exception("401 Unauthorized")
            with pytest.raises(SessionExpiredError):
                auth.build_client()

        level, message = log.log.call_args.args
        assert level == "warning"
        assert log.log.call_args.kwargs["event"] == "session_expired"


# ─── Tests: authenticate_and_save ────────────────────────────────────────────

class TestAuthenticateAndSave:
    def test_saves_session_after_successful_login(self, auth):
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            instance = MockGarmin.return_value
            instance.login.return_value = True
            instance.session_data = FAKE_SESSION_DATA

            auth.authenticate_and_save("user@example.com", "password123")

        assert auth.load()["display_name"] == "testrunner"

    def test_success_is_audited(self, tmp_tokens_dir):
        log = MagicMock()
        auth = GarminAuth(tmp_tokens_dir, log=log)
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            MockGarmin.return_value.session_data = FAKE_SESSION_DATA
            auth.authenticate_and_save("user@example.com", "password123")

        log.log.assert_called_once_with("success", "Garmin session created", event="session_created")

    def test_does_not_save_on_failed_login(self, auth):
        with patch("lifelog.sources.garmin.auth.garminconnect.Garmin") as MockGarmin:
            MockGarmin.return_value.login.side_effect = Exception("401 bad credentials")
            with pytest.raises(Exception, match="401"):
                auth.authenticate_and_save("bad@example.com", "wrongpass")

        assert not auth.has_session()
