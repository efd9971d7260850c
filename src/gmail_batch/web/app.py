"""FastAPI web application exposing sign-in and batch sending."""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import time
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from dotenv import dotenv_values, set_key, unset_key
from fastapi import FastAPI, HTTPException, Request, status as http_status
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.datastructures import FormData

from gmail_batch.auth import GoogleOAuthClient, OAuthError, SessionGate
from gmail_batch.auth.gate import ClientFactory
from gmail_batch.core import AppSettings, ConfigurationMissingError, load_app_settings
from gmail_batch.core.interfaces import HistoryRecorder, TemplateRepository
from gmail_batch.core.models import (
    BatchResult,
    EmailRequest,
    EmailTemplate,
    HistoryEntry,
)
from gmail_batch.core.schemas import BatchSendPayload, TemplatePayload
from gmail_batch.delivery import EmptyBatchError, send_batch
from gmail_batch.storage import (
    InMemoryHistoryStore,
    InMemoryTemplateStore,
    TemplateValidationError,
)

from .security import CsrfGuard
from .session import SignedSessionStore

LOGGER = logging.getLogger(__name__)

OAUTH_STATE_COOKIE_NAME = "gmail_batch_oauth_state"
DEFAULT_HISTORY_LIMIT = 50

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_ENV_FILE = _PROJECT_ROOT / ".env"
_ENV_FILE_OVERRIDE_VAR = "GMAIL_BATCH_ENV_FILE"


@dataclass(frozen=True)
class ConfigField:
    """Metadata describing a configurable environment variable."""

    key: str
    label: str
    secret: bool = False


CONFIG_FIELDS: tuple[ConfigField, ...] = (
    ConfigField("GMAIL_BATCH_WEB__DOMAIN", "App Domain"),
    ConfigField("GMAIL_BATCH_GOOGLE__CLIENT_ID", "Google Client ID"),
    ConfigField("GMAIL_BATCH_GOOGLE__CLIENT_SECRET", "Google Client Secret", True),
    ConfigField("GMAIL_BATCH_GOOGLE__REDIRECT_URI", "Google Redirect URI"),
)

CONFIG_FIELD_KEYS: tuple[str, ...] = tuple(field.key for field in CONFIG_FIELDS)


def create_app(
    settings: AppSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    oauth_transport: httpx.AsyncBaseTransport | None = None,
    history: HistoryRecorder | None = None,
    templates: TemplateRepository | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    env_file = _resolve_env_file()
    app_settings = settings or load_app_settings(env_file=env_file)
    app = FastAPI(title="Gmail Batch Sender")

    # Add GZip compression middleware (compress responses > 1KB)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    csrf = CsrfGuard()

    secret_key = app_settings.web.secret_key
    if not secret_key:
        LOGGER.warning(
            "No session secret configured; sessions will not survive a restart"
        )
        secret_key = secrets.token_urlsafe(32)
    session_store = SignedSessionStore(
        secret_key, max_age_days=app_settings.web.session_max_age_days
    )
    history_store: HistoryRecorder = (
        history
        if history is not None
        else InMemoryHistoryStore(app_settings.storage.history_limit)
    )
    template_store: TemplateRepository = (
        templates if templates is not None else InMemoryTemplateStore()
    )

    # Simple in-memory rate limiting for batch sends.
    send_rate_lock = asyncio.Lock()
    send_rate_history: deque[float] = deque()

    def is_secure(request: Request) -> bool:
        return app_settings.web.secure_cookies or request.url.scheme == "https"

    @app.get("/api/config/status")
    async def config_status() -> dict[str, Any]:
        missing = app_settings.missing_setup_fields()
        return {"configured": not missing, "missing": missing}

    @app.get("/api/config")
    async def config_values() -> dict[str, Any]:
        values = _load_env_values(_resolve_env_file())
        return {
            "fields": [
                {
                    "key": field.key,
                    "label": field.label,
                    "value": "" if field.secret else values.get(field.key, ""),
                    "isSet": bool(values.get(field.key)),
                }
                for field in CONFIG_FIELDS
            ]
        }

    @app.post("/config")
    async def update_configuration(request: Request) -> RedirectResponse:
        nonlocal app_settings
        form = await request.form()
        csrf.check(request, _form_text(form, csrf.field_name))
        setup_complete = not app_settings.missing_setup_fields()
        if setup_complete and session_store.read(request) is None:
            raise HTTPException(
                status_code=http_status.HTTP_401_UNAUTHORIZED,
                detail="Sign in to change a completed configuration.",
            )
        env_file = _resolve_env_file()
        redirect_target = _sanitize_redirect(_form_text(form, "redirect_to")) or "/"

        updates = {
            key: _form_text(form, key).strip()
            for key in CONFIG_FIELD_KEYS
            if key in form
        }

        try:
            _write_env_updates(env_file, updates)
        except OSError:
            LOGGER.exception("Failed to write configuration to %s", env_file)
            failure_target = _append_query_param(
                redirect_target, "config_status", "error"
            )
            return RedirectResponse(
                url=failure_target, status_code=http_status.HTTP_303_SEE_OTHER
            )

        for key, value in updates.items():
            if value == "":
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        load_app_settings.cache_clear()
        app_settings = load_app_settings(env_file=_resolve_env_file())
        LOGGER.info("Configuration updated: %s", ", ".join(sorted(updates)))

        success_target = _append_query_param(redirect_target, "config_status", "saved")
        return RedirectResponse(
            url=success_target, status_code=http_status.HTTP_303_SEE_OTHER
        )

    @app.get("/api/auth/signin")
    async def sign_in(request: Request) -> RedirectResponse:
        try:
            oauth = GoogleOAuthClient(app_settings.google, transport=oauth_transport)
        except ConfigurationMissingError:
            return _redirect_with_error("missing_config")

        state = secrets.token_urlsafe(24)
        response = RedirectResponse(
            url=oauth.get_authorization_url(state),
            status_code=http_status.HTTP_303_SEE_OTHER,
        )
        response.set_cookie(
            key=OAUTH_STATE_COOKIE_NAME,
            value=state,
            max_age=10 * 60,
            httponly=True,
            samesite="lax",
            secure=is_secure(request),
        )
        return response

    @app.get("/api/auth/callback")
    async def oauth_callback(request: Request) -> RedirectResponse:
        code = request.query_params.get("code")
        if not code:
            return _redirect_with_error("missing_code")

        expected_state = request.cookies.get(OAUTH_STATE_COOKIE_NAME)
        returned_state = request.query_params.get("state") or ""
        if expected_state and not secrets.compare_digest(
            expected_state, returned_state
        ):
            LOGGER.warning("OAuth callback state mismatch")
            return _redirect_with_error("auth_error")

        try:
            oauth = GoogleOAuthClient(app_settings.google, transport=oauth_transport)
        except ConfigurationMissingError:
            return _redirect_with_error("missing_config")

        try:
            tokens = await oauth.exchange_code_for_tokens(code)
            profile = await oauth.fetch_user_profile(tokens["access_token"])
        except OAuthError as exc:
            LOGGER.error("OAuth callback error: %s", exc)
            return _redirect_with_error("auth_error")

        session = GoogleOAuthClient.build_session(
            tokens, profile, datetime.now(tz=UTC)
        )
        response = RedirectResponse(
            url=_home_url(app_settings, request),
            status_code=http_status.HTTP_303_SEE_OTHER,
        )
        session_store.write(response, session, secure=is_secure(request))
        response.delete_cookie(OAUTH_STATE_COOKIE_NAME)
        LOGGER.info("Signed in %s", session.account_email)
        return response

    @app.get("/api/auth/session")
    async def current_session(request: Request, response: Response) -> dict[str, Any]:
        csrf_token = csrf.issue(response, secure=is_secure(request))
        return {"user": session_store.read_profile(request), "csrfToken": csrf_token}

    @app.post("/api/auth/signout")
    async def sign_out(request: Request) -> JSONResponse:
        csrf.check(request)
        response = JSONResponse({"success": True})
        session_store.clear(response)
        return response

    @app.post("/api/emails/batch")
    async def send_emails(request: Request, payload: BatchSendPayload) -> JSONResponse:
        csrf.check(request)

        try:
            requests = [item.to_request() for item in payload.emails]
        except ValueError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(exc),
            ) from exc

        gate = SessionGate(app_settings.google, client_factory=client_factory)
        try:
            client = gate.resolve(session_store.bind(request))
        except ConfigurationMissingError as exc:
            return JSONResponse(
                {"detail": str(exc), "setupRequired": True, "missing": exc.missing},
                status_code=http_status.HTTP_412_PRECONDITION_FAILED,
            )
        if client is None:
            return JSONResponse(
                {"detail": "Not signed in.", "signInUrl": "/api/auth/signin"},
                status_code=http_status.HTTP_401_UNAUTHORIZED,
            )

        if not requests:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail="Invalid email data: expected a non-empty list",
            )

        async with send_rate_lock:
            now = time.monotonic()
            window = app_settings.web.send_rate_window_seconds
            while send_rate_history and now - send_rate_history[0] > window:
                send_rate_history.popleft()
            if len(send_rate_history) >= app_settings.web.send_rate_limit:
                raise HTTPException(
                    status_code=http_status.HTTP_429_TOO_MANY_REQUESTS,
                    detail="Too many batch sends. Please wait before trying again.",
                )
            send_rate_history.append(now)

        try:
            result = await asyncio.to_thread(send_batch, requests, client)
        except EmptyBatchError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(exc)
            ) from exc

        history_store.record_batch(requests, result)
        return JSONResponse(_serialize_result(result, requests))

    @app.get("/api/history")
    async def email_history(limit: int = DEFAULT_HISTORY_LIMIT) -> dict[str, Any]:
        entries = history_store.list_entries(limit=max(limit, 0))
        return {"history": [_serialize_history_entry(entry) for entry in entries]}

    @app.get("/api/templates")
    async def list_templates() -> dict[str, Any]:
        return {
            "templates": [
                _serialize_template(template)
                for template in template_store.list_templates()
            ]
        }

    @app.post("/api/templates")
    async def save_template(request: Request, payload: TemplatePayload) -> dict[str, Any]:
        csrf.check(request)
        try:
            stored = template_store.save(payload.to_template())
        except TemplateValidationError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=str(exc),
            ) from exc
        return {"success": True, "template": _serialize_template(stored)}

    @app.delete("/api/templates/{template_id}")
    async def delete_template(template_id: str, request: Request) -> dict[str, Any]:
        csrf.check(request)
        return {"success": template_store.delete(template_id)}

    return app


def _serialize_result(
    result: BatchResult, requests: list[EmailRequest]
) -> dict[str, Any]:
    failures: list[dict[str, Any]] = []
    for entry in result.failures:
        item: dict[str, Any] = {"index": entry.index, "error": entry.error}
        if entry.index is not None and entry.index < len(requests):
            item["to"] = requests[entry.index].recipient
            item["subject"] = requests[entry.index].subject
        failures.append(item)
    return {
        "success": result.success_count,
        "failures": failures,
        "responses": [
            {
                "index": entry.index,
                "messageId": entry.message_id,
                "threadId": entry.thread_id,
            }
            for entry in result.responses
        ],
    }


def _serialize_history_entry(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "subject": entry.subject,
        "recipients": list(entry.recipients),
        "timestamp": entry.timestamp.isoformat(),
        "success": entry.success,
        "error": entry.error,
    }


def _serialize_template(template: EmailTemplate) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "subject": template.subject,
        "body": template.body,
    }


def _redirect_with_error(code: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"/?{urlencode({'error': code})}",
        status_code=http_status.HTTP_303_SEE_OTHER,
    )


def _home_url(settings: AppSettings, request: Request) -> str:
    domain = (settings.web.domain or "").strip()
    if not domain:
        return "/"
    scheme = "https" if settings.web.secure_cookies else request.url.scheme
    return f"{scheme}://{domain}/"


def _sanitize_redirect(target: str | None) -> str | None:
    if not target:
        return None
    if not target.startswith("/") or target.startswith("//"):
        return None
    return target


def _form_text(form: FormData, key: str) -> str:
    value = form.get(key)
    return value if isinstance(value, str) else ""


def _resolve_env_file() -> Path:
    return Path(os.getenv(_ENV_FILE_OVERRIDE_VAR) or _DEFAULT_ENV_FILE)


def _load_env_values(env_path: Path) -> dict[str, str]:
    """Return editable values from ``env_path``, falling back to the environment."""
    stored = dotenv_values(env_path) if env_path.is_file() else {}
    return {
        key: stored.get(key) or os.environ.get(key, "") for key in CONFIG_FIELD_KEYS
    }


def _write_env_updates(env_path: Path, updates: Mapping[str, str]) -> None:
    """Set non-empty values in ``env_path`` and remove cleared ones."""
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(exist_ok=True)
    stored = dotenv_values(env_path)
    for key, value in updates.items():
        if value:
            set_key(env_path, key, value, quote_mode="auto")
        elif key in stored:
            unset_key(env_path, key)


def _append_query_param(url: str, key: str, value: str) -> str:
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query[key] = value
    return urlunsplit(parts._replace(query=urlencode(query)))


__all__ = ["CONFIG_FIELD_KEYS", "CONFIG_FIELDS", "create_app"]
