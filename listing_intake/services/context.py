"""Typed access to the schema-less conversation context map.

Handlers never index ``conversation.context`` directly; they read through a
``ContextKey`` so a missing or mistyped value degrades to the key's default.
"""

from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ContextKey(Generic[T]):
    name: str
    kind: type
    default: Optional[T] = None

    def read(self, context: Optional[Mapping[str, Any]]) -> Optional[T]:
        if not context:
            return self.default
        value = context.get(self.name)
        if value is None:
            return self.default
        if self.kind is int and isinstance(value, bool):
            return self.default
        if not isinstance(value, self.kind):
            return self.default
        return value

    def patch(self, value: Optional[T]) -> dict[str, Any]:
        return {self.name: value}


LISTING_ID: ContextKey[str] = ContextKey("listing_id", str)
CURRENT_FIELD: ContextKey[str] = ContextKey("current_field", str)
SUB_STATE: ContextKey[str] = ContextKey("sub_state", str)
EDITING_FIELD: ContextKey[str] = ContextKey("editing_field", str)
PENDING_INTENT: ContextKey[str] = ContextKey("pending_intent", str)
EMAIL_ATTEMPTS: ContextKey[int] = ContextKey("email_attempts", int, 0)
OPTED_OUT: ContextKey[bool] = ContextKey("opted_out", bool, False)
PENDING_EMAIL: ContextKey[str] = ContextKey("pending_email", str)
RESUME_OFFERED: ContextKey[bool] = ContextKey("resume_offered", bool, False)


def merge_context(current: Optional[Mapping[str, Any]], patch: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Partial merge; a ``None`` value in the patch removes the key."""
    merged = dict(current or {})
    for key, value in (patch or {}).items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged
