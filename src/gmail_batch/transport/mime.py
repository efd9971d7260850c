"""RFC 2822 message construction for the Gmail ``raw`` field."""

from __future__ import annotations

import base64
import binascii
import logging
import uuid
from email import encoders, message_from_bytes, policy
from email.charset import QP, Charset
from email.message import EmailMessage, Message
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from gmail_batch.core.models import DEFAULT_ATTACHMENT_TYPE, Attachment, EmailRequest

LOGGER = logging.getLogger(__name__)

# Default header handling with CRLF line endings.
SMTP_POLICY = policy.SMTP

# HTML bodies go out as quoted-printable UTF-8.
BODY_CHARSET = Charset("utf-8")
BODY_CHARSET.body_encoding = QP


class MessageBuildError(ValueError):
    """Raised when an email request cannot be turned into a MIME message."""


def missing_required_fields(request: EmailRequest) -> list[str]:
    """Return the names of required request fields that are blank."""
    missing: list[str] = []
    if not (request.recipient or "").strip():
        missing.append("recipient")
    if not (request.subject or "").strip():
        missing.append("subject")
    return missing


def build_message(request: EmailRequest, from_address: str) -> str:
    """Build the MIME message for ``request`` and return it base64url-encoded.

    Raises:
        MessageBuildError: If required fields are blank or an attachment is
            malformed.
    """
    mime_message = build_mime_message(request, from_address)
    return encode_raw(mime_message.as_bytes())


def build_mime_message(request: EmailRequest, from_address: str) -> Message:
    """Build the MIME structure for ``request`` without transport encoding."""
    missing = missing_required_fields(request)
    if missing:
        raise MessageBuildError(
            f"Message is missing required fields: {', '.join(missing)}"
        )

    body_part = MIMEText(
        request.body_html or "", "html", BODY_CHARSET, policy=SMTP_POLICY
    )

    mime_message: Message
    if request.attachments:
        boundary = f"boundary_{uuid.uuid4().hex}"
        mime_message = MIMEMultipart("mixed", boundary=boundary, policy=SMTP_POLICY)
        mime_message.attach(body_part)
        for attachment in request.attachments:
            mime_message.attach(_build_attachment_part(attachment))
    else:
        mime_message = body_part

    try:
        mime_message["From"] = from_address
        mime_message["To"] = request.recipient.strip()
        if request.cc:
            mime_message["Cc"] = ", ".join(request.cc)
        if request.bcc:
            mime_message["Bcc"] = ", ".join(request.bcc)
        mime_message["Subject"] = request.subject
    except (TypeError, ValueError) as exc:
        raise MessageBuildError(f"Invalid header value: {exc}") from exc

    LOGGER.debug(
        "Built MIME message: To=%s, Subject=%s, attachments=%d",
        request.recipient,
        request.subject,
        len(request.attachments),
    )
    return mime_message


def _build_attachment_part(attachment: Attachment) -> MIMEBase:
    filename = (attachment.filename or "").strip()
    if not filename:
        raise MessageBuildError("Attachment is missing a filename")
    if not isinstance(attachment.data, (bytes, bytearray)):
        raise MessageBuildError(f"Attachment {filename!r} content must be bytes")

    content_type = (attachment.content_type or DEFAULT_ATTACHMENT_TYPE).strip()
    maintype, separator, subtype = content_type.partition("/")
    if not separator or not maintype or not subtype or "/" in subtype:
        raise MessageBuildError(
            f"Attachment {filename!r} has an invalid content type: {content_type!r}"
        )

    part = MIMEBase(maintype, subtype, policy=SMTP_POLICY)
    part.set_payload(bytes(attachment.data))
    encoders.encode_base64(part)
    try:
        part.add_header("Content-Disposition", "attachment", filename=filename)
    except (TypeError, ValueError) as exc:
        raise MessageBuildError(f"Invalid attachment filename: {exc}") from exc
    return part


def encode_raw(message_bytes: bytes) -> str:
    """Encode bytes with the URL-safe base64 alphabet and no padding."""
    return base64.urlsafe_b64encode(message_bytes).rstrip(b"=").decode("ascii")


def decode_raw(raw: str) -> bytes:
    """Reverse :func:`encode_raw`."""
    padding = "=" * (-len(raw) % 4)
    try:
        return base64.urlsafe_b64decode(raw + padding)
    except (binascii.Error, ValueError) as exc:
        raise MessageBuildError(f"Raw message is not valid base64url: {exc}") from exc


def decode_message(raw: str) -> EmailMessage:
    """Parse a base64url raw message back into an email message."""
    parsed = message_from_bytes(decode_raw(raw), policy=policy.default)
    return parsed  # type: ignore[return-value]


__all__ = [
    "MessageBuildError",
    "SMTP_POLICY",
    "build_message",
    "build_mime_message",
    "decode_message",
    "decode_raw",
    "encode_raw",
    "missing_required_fields",
]
