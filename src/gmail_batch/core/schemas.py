"""Pydantic payloads for email requests and templates received as JSON."""

from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    DEFAULT_ATTACHMENT_TYPE,
    Attachment,
    EmailRequest,
    EmailTemplate,
)


class AttachmentPayload(BaseModel):
    """Attachment with base64-encoded content."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str = ""
    content_type: str = Field(default=DEFAULT_ATTACHMENT_TYPE, alias="contentType")
    data: str = Field(default="", description="Base64-encoded file content")

    def to_attachment(self) -> Attachment:
        """Decode the payload. Raises ``ValueError`` for invalid base64."""
        try:
            content = base64.b64decode(self.data, validate=True)
        except binascii.Error as exc:
            raise ValueError(
                f"Attachment {self.filename!r} is not valid base64: {exc}"
            ) from exc
        return Attachment(
            filename=self.filename,
            data=content,
            content_type=self.content_type or DEFAULT_ATTACHMENT_TYPE,
        )


class EmailPayload(BaseModel):
    """One email in a batch send request.

    Blank ``to``/``subject`` values are accepted here and reported per item
    by the batch sender.
    """

    to: str = ""
    subject: str = ""
    body: str = ""
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    attachments: list[AttachmentPayload] = Field(default_factory=list)

    def to_request(self) -> EmailRequest:
        return EmailRequest(
            recipient=self.to,
            subject=self.subject,
            body_html=self.body,
            cc=tuple(address for address in self.cc if address.strip()),
            bcc=tuple(address for address in self.bcc if address.strip()),
            attachments=tuple(item.to_attachment() for item in self.attachments),
        )


class BatchSendPayload(BaseModel):
    """Body of ``POST /api/emails/batch``."""

    emails: list[EmailPayload] = Field(default_factory=list)


class TemplatePayload(BaseModel):
    """Body of ``POST /api/templates``."""

    id: str | None = None
    name: str
    subject: str
    body: str = ""

    def to_template(self) -> EmailTemplate:
        return EmailTemplate(
            id=self.id or None, name=self.name, subject=self.subject, body=self.body
        )


__all__ = ["AttachmentPayload", "BatchSendPayload", "EmailPayload", "TemplatePayload"]
