"""Invalidation log schema enforcement."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator

INVALIDATION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "event",
        "page_id",
        "scope",
        "site_wide",
        "pages_cleared",
        "entries_cleared",
        "skipped_targets",
        "failures",
        "received_at",
    ],
    "properties": {
        "event": {"type": "string", "enum": ["saved", "deleted"]},
        "page_id": {"type": "integer"},
        "scope": {
            "type": "string",
            "enum": ["none", "this_page", "site_wide", "ancestors", "explicit_list"],
        },
        "effective_scope": {
            "type": ["string", "null"],
            "enum": ["none", "this_page", "site_wide", "ancestors", "explicit_list", None],
        },
        "site_wide": {"type": "boolean"},
        "pages_cleared": {"type": "array", "items": {"type": "integer"}},
        "entries_cleared": {"type": "integer", "minimum": 0},
        "skipped_targets": {"type": "array", "items": {"type": "integer"}},
        "failures": {"type": "array", "items": {"type": "string"}},
        "received_at": {"type": "string", "format": "date-time"},
    },
}

_validator = Draft7Validator(INVALIDATION_SCHEMA)


def validate_invalidation(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"invalidation log validation failed: {messages}")


@dataclass
class InvalidationLogRecord:
    event: str
    page_id: int
    scope: str
    effective_scope: Optional[str] = None
    site_wide: bool = False
    pages_cleared: List[int] = field(default_factory=list)
    entries_cleared: int = 0
    skipped_targets: List[int] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    received_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "event": self.event,
            "page_id": self.page_id,
            "scope": self.scope,
            "effective_scope": self.effective_scope,
            "site_wide": self.site_wide,
            "pages_cleared": list(self.pages_cleared),
            "entries_cleared": self.entries_cleared,
            "skipped_targets": list(self.skipped_targets),
            "failures": list(self.failures),
            "received_at": self.received_at,
        }
        validate_invalidation(payload)
        return payload
