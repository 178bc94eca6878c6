"""
Interactive setup wizard for the Garmin integration.

Prompts for Garmin credentials once, exchanges them for session cookies,
and saves the session to GARMIN_TOKENS_DIR (default
~/.lifelog/garmin_session/) with owner-only permissions (0700 dir / 0600
file). Credentials are never stored on disk.

Usage:
    python -m lifelog setup
    python -m lifelog.scripts.setup   (direct invocation)

Re-run any time the session expires (typically every few weeks/months).
"""
import getpass
import sys

from lifelog.config import get_settings
from lifelog.db.engine import get_engine
from lifelog.sources.garmin.auth import GarminAuth
from lifelog.sync.logsink import auth_log


def run_setup() -> None:
    settings = get_settings()
    tokens_dir = settings.garmin_tokens_dir
    auth = GarminAuth(tokens_dir, log=auth_log(get_engine(), settings.user_id))

    print("\nLifelog: Garmin Setup\n")
    print("Your credentials will NOT be saved to disk.")
    print(f"The session will be stored in: {tokens_dir}\n")

    if auth.has_session():
        print("An existing session was found.")
        overwrite = input("Overwrite it with a new login? [y/N] ").strip().lower()
        if overwrite != "y":
            print("Setup cancelled. Existing session unchanged.")
            sys.exit(0)

    email = input("Garmin Connect email: ").strip()
    if not email:
        print("Error: email cannot be empty.")
        sys.exit(1)

    password = getpass.getpass("Garmin Connect password: ")
    if not password:
        print("Error: password cannot be empty.")
        sys.exit(1)

    print("\nAuthenticating with Garmin Connect...")
    try:
        auth.authenticate_and_save(email, password)
    except Exception as exc:
        print(f"\nAuthentication failed: {exc}")
        print("Check your email and password and try again.")
        sys.exit(1)

    print(f"\nSession saved to {auth.session_file}")
    print("\nScheduled Garmin syncs will use it until it expires.")
    print("If it does expire, just re-run:  python -m lifelog setup\n")


if __name__ == "__main__":
    run_setup()
