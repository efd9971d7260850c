"""In-memory stores for send history and templates."""

from .history import InMemoryHistoryStore
from .templates import InMemoryTemplateStore, TemplateValidationError

__all__ = ["InMemoryHistoryStore", "InMemoryTemplateStore", "TemplateValidationError"]
