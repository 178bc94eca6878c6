"""
Garmin Connect session persistence.

garminconnect logs in through Garmin's SSO flow once, with the account
password, and exposes the resulting cookies as ``session_data``:

    {
        "display_name": "yourname",
        "session_cookies": { ... },
        "login_cookies":  { ... },
    }

That dict is written to disk (owner-only permissions) so scheduled syncs
can restore the session without ever storing the password. When Garmin
rejects the restored cookies the sync fails with SessionExpiredError and
`python -m lifelog setup` has to be run again.
"""
import json
import os
import stat
from pathlib import Path
from typing import Any, Dict, Optional

import garminconnect

from lifelog.sync.logsink import LogSink

SESSION_FILE_NAME = "session.json"
SETUP_HINT = "Run `python -m lifelog setup` to authenticate."


class NoSessionError(RuntimeError):
    """Raised when no saved session exists."""


class SessionExpiredError(RuntimeError):
    """Raised when a saved session is rejected by Garmin's servers."""


class GarminAuth:
    """
    Loads, saves and validates the on-disk Garmin session.

    Usage:
        auth = GarminAuth(settings.garmin_tokens_dir)
        if not auth.has_session():
            auth.authenticate_and_save(email, password)
        api = auth.build_client()   # → garminconnect.Garmin
    """

    def __init__(self, tokens_dir: Path, log: Optional[LogSink] = None):
        self._tokens_dir = Path(tokens_dir)
        self._session_file = self._tokens_dir / SESSION_FILE_NAME
        self._log = log

    @property
    def session_file(self) -> Path:
        return self._session_file

    def has_session(self) -> bool:
        return self._session_file.exists()

    def save(self, session_data: Dict[str, Any]) -> None:
        """Write session_data with 0700 on the directory and 0600 on the file."""
        self._tokens_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._tokens_dir, stat.S_IRWXU)

        self._session_file.write_text(json.dumps(session_data, indent=2))
        os.chmod(self._session_file, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> Dict[str, Any]:
        """
        Raises:
            NoSessionError: if no session file exists.
        """
        if not self._session_file.exists():
            raise NoSessionError(f"No Garmin session found at {self._session_file}. {SETUP_HINT}")
        return json.loads(self._session_file.read_text())

    def clear(self) -> None:
        if self._session_file.exists():
            self._session_file.unlink()

    def authenticate_and_save(self, email: str, password: str) -> garminconnect.Garmin:
        """Log in with credentials (never persisted) and save the session cookies."""
        api = garminconnect.Garmin(email, password)
        api.login()  # raises on bad credentials

        self.save(api.session_data)
        self._audit("success", "Garmin session created", event="session_created")
        return api

    def build_client(self) -> garminconnect.Garmin:
        """
        Restore an authenticated client from the saved session.

        Raises:
            NoSessionError: if no session is saved.
            SessionExpiredError: if Garmin rejects the saved cookies.
        """
        session_data = self.load()

        api = garminconnect.Garmin(session_data=session_data)
        try:
            api.login()
        except Exception as exc:
            # login() fell back to re-authenticating without a password
            self._audit("warning", "Garmin session rejected", event="session_expired", error=str(exc))
            raise SessionExpiredError(f"Garmin session has expired. {SETUP_HINT}") from exc

        return api

    def _audit(self, level: str, message: str, **data: Any) -> None:
        if self._log is not None:
            self._log.log(level, message, **data)
