"""Tests for the command-line interface."""

from __future__ import annotations

import json
from argparse import Namespace
from datetime import UTC, datetime
from pathlib import Path

import pytest
from google.oauth2.credentials import Credentials

from gmail_batch import cli
from gmail_batch.auth import gate as gate_module
from gmail_batch.core.config import AppSettings, GoogleSettings, WebSettings
from gmail_batch.core.models import BatchItemResponse


class AcceptingClient:
    sender_address = "me@example.com"

    def send(self, message):
        return self.submit_batch([message])[0]

    def submit_batch(self, messages):
        return [
            BatchItemResponse(message.correlation_id, f"m{message.correlation_id}", "t")
            for message in messages
        ]


@pytest.fixture
def accepting_factory(monkeypatch: pytest.MonkeyPatch) -> list:
    """Route the real session gate to an in-memory client."""

    sessions: list = []

    def factory(credentials, session, settings):
        sessions.append(session)
        return AcceptingClient()

    monkeypatch.setattr(gate_module, "_default_client_factory", factory)
    return sessions


def _configured() -> AppSettings:
    return AppSettings(
        google=GoogleSettings(
            client_id="id", client_secret="secret", redirect_uri="http://x/cb"
        ),
        web=WebSettings(domain="x"),
    )


def _write_token(path: Path, expiry: datetime | None = datetime(2030, 1, 1)) -> Path:
    creds = Credentials(
        token="ya29.x",
        refresh_token="1//r",
        token_uri="https://oauth2.googleapis.com/token",
        client_id="id",
        client_secret="secret",
        scopes=["https://www.googleapis.com/auth/gmail.send"],
        expiry=expiry,
    )
    path.write_text(creds.to_json(), encoding="utf-8")
    return path


def _send_args(tmp_path: Path, emails: list[dict]) -> Namespace:
    requests_file = tmp_path / "emails.json"
    requests_file.write_text(json.dumps(emails), encoding="utf-8")
    return Namespace(
        command="send",
        requests_file=requests_file,
        token_file=_write_token(tmp_path / "token.json"),
        sender="me@example.com",
    )


def test_check_config_lists_missing_fields(capsys) -> None:
    code = cli.execute(Namespace(command="check-config"), AppSettings())

    assert code == 1
    output = capsys.readouterr().out
    assert "web.domain" in output
    assert "google.client_id" in output


def test_check_config_passes_when_complete(capsys) -> None:
    assert cli.execute(Namespace(command="check-config"), _configured()) == 0
    assert "complete" in capsys.readouterr().out


def test_token_file_session_reads_google_auth_json(tmp_path: Path) -> None:
    path = _write_token(tmp_path / "token.json")

    session = cli.TokenFileSession(path, "me@example.com").load_session()

    assert session is not None
    assert session.access_token == "ya29.x"
    assert session.refresh_token == "1//r"
    assert session.expiry == datetime(2030, 1, 1, tzinfo=UTC)
    assert session.scope == "https://www.googleapis.com/auth/gmail.send"
    assert session.account_email == "me@example.com"
    assert cli.TokenFileSession(tmp_path / "none.json", "x").load_session() is None


def test_token_file_with_naive_expiry_is_read_as_utc(tmp_path: Path) -> None:
    path = tmp_path / "token.json"
    path.write_text(
        json.dumps(
            {
                "token": "ya29.x",
                "refresh_token": "1//r",
                "client_id": "id",
                "client_secret": "secret",
                "expiry": "2020-01-01T00:00:00",
            }
        ),
        encoding="utf-8",
    )

    session = cli.TokenFileSession(path, "me@example.com").load_session()

    assert session is not None
    assert session.expiry == datetime(2020, 1, 1, tzinfo=UTC)
    assert session.is_expired(datetime.now(tz=UTC))


def test_send_reports_results(tmp_path: Path, accepting_factory, capsys) -> None:
    args = _send_args(
        tmp_path,
        [{"to": "a@x.com", "subject": "one"}, {"to": "b@x.com", "subject": "two"}],
    )

    assert cli.execute(args, _configured()) == 0
    assert "Sent 2 email(s)." in capsys.readouterr().out
    assert accepting_factory[0].access_token == "ya29.x"


def test_send_with_expired_token_asks_for_sign_in(
    tmp_path: Path, accepting_factory, capsys
) -> None:
    args = _send_args(tmp_path, [{"to": "a@x.com", "subject": "one"}])
    _write_token(args.token_file, expiry=datetime(2020, 1, 1))

    assert cli.execute(args, _configured()) == 1
    assert "Sign in again" in capsys.readouterr().out
    assert accepting_factory == []


def test_send_returns_failure_code_for_item_errors(
    tmp_path: Path, accepting_factory, capsys
) -> None:
    args = _send_args(tmp_path, [{"to": "a@x.com", "subject": "one"}, {"to": ""}])

    assert cli.execute(args, _configured()) == 1
    output = capsys.readouterr().out
    assert "Sent 1 email(s)." in output
    assert "[1] Email at index 1 missing required fields" in output


def test_send_rejects_token_file_without_client_fields(
    tmp_path: Path, accepting_factory, capsys
) -> None:
    args = _send_args(tmp_path, [{"to": "a@x.com", "subject": "one"}])
    args.token_file.write_text(json.dumps({"token": "ya29.x"}), encoding="utf-8")

    assert cli.execute(args, _configured()) == 2
    assert "Could not read token file" in capsys.readouterr().out


def test_send_without_configuration_reports_setup(tmp_path: Path, capsys) -> None:
    args = _send_args(tmp_path, [{"to": "a@x.com", "subject": "one"}])

    assert cli.execute(args, AppSettings()) == 1
    assert "Setup required" in capsys.readouterr().out


@pytest.mark.parametrize("payload", ["not json", "[]"])
def test_send_rejects_bad_request_files(
    tmp_path: Path, accepting_factory, payload: str
) -> None:
    args = _send_args(tmp_path, [])
    args.requests_file.write_text(payload, encoding="utf-8")

    assert cli.execute(args, _configured()) == 2


def test_send_requires_all_arguments() -> None:
    args = Namespace(command="send", requests_file=None, token_file=None, sender=None)

    assert cli.execute(args, _configured()) == 2
