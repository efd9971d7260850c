"""Command-line entry point for the Gmail batch sender."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from datetime import UTC
from pathlib import Path

from google.oauth2.credentials import Credentials
from pydantic import ValidationError

from gmail_batch.auth import GoogleOAuthClient, SessionGate
from gmail_batch.core import (
    AppSettings,
    ConfigurationMissingError,
    configure_logging,
    load_app_settings,
)
from gmail_batch.core.models import AuthSession, BatchResult
from gmail_batch.core.schemas import EmailPayload
from gmail_batch.delivery import EmptyBatchError, send_batch


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Gmail batch sender")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "check-config", "send"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--requests",
        dest="requests_file",
        type=Path,
        default=None,
        help="JSON file with a list of emails (to, subject, body, cc, bcc).",
    )
    parser.add_argument(
        "--token-file",
        dest="token_file",
        type=Path,
        default=None,
        help="Authorized-user token file (google-auth JSON) for the sending account.",
    )
    parser.add_argument(
        "--sender",
        dest="sender",
        default=None,
        help="Address of the authorized account, used for the From header.",
    )
    return parser


@dataclass(slots=True)
class TokenFileSession:
    """Session source backed by a token bundle saved on disk."""

    path: Path
    sender: str

    def load_session(self) -> AuthSession | None:
        """Read an authorized-user file as written by ``Credentials.to_json()``.

        Raises ``ValueError`` when the file lacks the refresh token or client
        fields google-auth requires.
        """
        if not self.path.is_file():
            return None
        creds = Credentials.from_authorized_user_file(str(self.path))
        if not creds.token:
            return None
        # google-auth keeps expiry as naive UTC
        expiry = creds.expiry.replace(tzinfo=UTC) if creds.expiry else None
        scopes = creds.scopes or GoogleOAuthClient.SCOPES
        return AuthSession(
            access_token=creds.token,
            refresh_token=creds.refresh_token,
            expiry=expiry,
            scope=" ".join(scopes),
            account_email=self.sender,
        )


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Gmail batch sender is ready. Configure Google OAuth settings to start.")
        print(f"App domain: {settings.web.domain or '(not set)'}")
        print(f"Redirect URI: {settings.google.redirect_uri or '(not set)'}")
        print(f"Max batch size: {settings.google.max_batch_size}")
        return 0
    if command == "check-config":
        missing = settings.missing_setup_fields()
        if missing:
            print("Setup required. Missing: " + ", ".join(missing))
            return 1
        print("Configuration complete.")
        return 0
    return _run_send(args, settings)


def _run_send(args: argparse.Namespace, settings: AppSettings) -> int:
    """Send a batch read from disk and report the outcome."""
    if not args.requests_file or not args.token_file or not args.sender:
        print("send requires --requests, --token-file and --sender")
        return 2

    try:
        raw_items = json.loads(args.requests_file.read_text(encoding="utf-8"))
        if not isinstance(raw_items, list):
            raw_items = []
        requests = [EmailPayload.model_validate(item).to_request() for item in raw_items]
    except (OSError, json.JSONDecodeError, ValidationError, ValueError) as exc:
        print(f"Could not read requests: {exc}")
        return 2

    gate = SessionGate(settings.google)
    try:
        client = gate.resolve(TokenFileSession(args.token_file, args.sender))
    except ConfigurationMissingError as exc:
        print(str(exc))
        return 1
    except (OSError, json.JSONDecodeError, ValueError) as exc:
        print(f"Could not read token file: {exc}")
        return 2
    if client is None:
        print("No valid token found. Sign in again to obtain a fresh token.")
        return 1

    try:
        result = send_batch(requests, client)
    except EmptyBatchError as exc:
        print(str(exc))
        return 2

    _print_result(result)
    return 0 if not result.failures else 1


def _print_result(result: BatchResult) -> None:
    print(f"Sent {result.success_count} email(s).")
    for entry in result.responses:
        print(f"  [{entry.index}] message {entry.message_id} thread {entry.thread_id}")
    if result.failures:
        print(f"{len(result.failures)} failure(s):")
        for failure in result.failures:
            label = "batch" if failure.index is None else str(failure.index)
            print(f"  [{label}] {failure.error}")


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    sys.exit(execute(args, settings))


if __name__ == "__main__":
    main()
