# src/relay_review/schemas/event.py
"""Protocol event and query filter schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

KIND_METADATA = 0
KIND_TEXT_NOTE = 1
KIND_DELETION = 5
KIND_REPOST = 6
KIND_GENERIC_REPOST = 16
KIND_COMMENT = 1111
KIND_REPORT = 1984
KIND_LABEL = 1985

REPOST_KINDS = (KIND_REPOST, KIND_GENERIC_REPOST)
THREAD_KINDS = (KIND_TEXT_NOTE, KIND_COMMENT)


class Event(BaseModel):
    """Immutable, externally signed protocol event.

    Field names follow the wire format so that relay payloads validate as-is.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Content-derived event identifier")
    pubkey: str = Field(..., min_length=1, description="Author identity key")
    kind: int = Field(..., ge=0)
    created_at: int = Field(..., description="Author-asserted seconds since epoch")
    tags: list[list[str]] = Field(default_factory=list)
    content: str = ""
    sig: str | None = None

    def first_tag(self, name: str) -> list[str] | None:
        """Return the first tag named ``name`` that carries a value."""
        for tag in self.tags:
            if len(tag) >= 2 and tag[0] == name:
                return tag
        return None

    def tag_values(self, name: str) -> list[str]:
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]


class NostrFilter(BaseModel):
    """Relay query filter.

    Tag predicates are keyed by the single-letter tag name (``{"e": [...]}``)
    and serialized as ``#e`` on the wire.
    """

    ids: list[str] | None = None
    authors: list[str] | None = None
    kinds: list[int] | None = None
    tags: dict[str, list[str]] = Field(default_factory=dict)
    since: int | None = None
    until: int | None = None
    limit: int | None = Field(default=None, ge=0)

    def to_wire(self) -> dict[str, object]:
        """Serialize to the relay wire shape."""
        payload: dict[str, object] = {}
        for key in ("ids", "authors", "kinds", "since", "until", "limit"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        for name, values in self.tags.items():
            payload[f"#{name}"] = values
        return payload

    def matches(self, event: Event) -> bool:
        """Return True if ``event`` satisfies every predicate in the filter."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        for name, values in self.tags.items():
            if not set(event.tag_values(name)) & set(values):
                return False
        return True
