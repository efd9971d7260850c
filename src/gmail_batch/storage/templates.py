"""In-memory email template catalog."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from threading import Lock

from gmail_batch.core.models import EmailTemplate

LOGGER = logging.getLogger(__name__)

DEFAULT_TEMPLATES: tuple[EmailTemplate, ...] = (
    EmailTemplate(
        id="1",
        name="Welcome Email",
        subject="Welcome to our platform!",
        body="<h1>Welcome!</h1><p>Thank you for joining our platform.</p>",
    ),
    EmailTemplate(
        id="2",
        name="Newsletter",
        subject="Monthly Newsletter",
        body="<h1>Newsletter</h1><p>Here are the latest updates...</p>",
    ),
)


class TemplateValidationError(ValueError):
    """Raised when a template is missing its name or subject."""


class InMemoryTemplateStore:
    """Thread-safe template store keyed by template id."""

    def __init__(self, *, seed: bool = True) -> None:
        self._templates: dict[str, EmailTemplate] = {}
        self._lock = Lock()
        if seed:
            for template in DEFAULT_TEMPLATES:
                self._templates[str(template.id)] = replace(template)

    def list_templates(self) -> list[EmailTemplate]:
        with self._lock:
            return list(self._templates.values())

    def get(self, template_id: str) -> EmailTemplate | None:
        with self._lock:
            return self._templates.get(template_id)

    def save(self, template: EmailTemplate) -> EmailTemplate:
        """Insert or replace a template, assigning an id when it has none."""
        if not template.name.strip():
            raise TemplateValidationError("Template name is required")
        if not template.subject.strip():
            raise TemplateValidationError("Template subject is required")

        stored = template if template.id else replace(template, id=uuid.uuid4().hex)
        with self._lock:
            self._templates[str(stored.id)] = stored
        LOGGER.info("Saved template %s (%s)", stored.id, stored.name)
        return stored

    def delete(self, template_id: str) -> bool:
        """Remove a template. Returns ``True`` if it existed."""
        with self._lock:
            removed = self._templates.pop(template_id, None)
        if removed is not None:
            LOGGER.info("Deleted template %s", template_id)
        return removed is not None


__all__ = ["DEFAULT_TEMPLATES", "InMemoryTemplateStore", "TemplateValidationError"]
