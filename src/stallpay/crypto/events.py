"""Nostr event models and NIP-01 canonical serialization."""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

KIND_ENCRYPTED_DM = 4
KIND_NWC_REQUEST = 23194
KIND_NWC_RESPONSE = 23195

Tag = list[str]


class UnsignedEvent(BaseModel):
    """An event template waiting for a signature."""

    model_config = ConfigDict(frozen=True)

    pubkey: str
    created_at: int
    kind: int
    tags: list[Tag] = Field(default_factory=list)
    content: str


class SignedEvent(UnsignedEvent):
    """An event as it travels on the wire."""

    id: str
    sig: str

    def tag_values(self, name: str) -> list[str]:
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == name]


class EventFilter(BaseModel):
    """NIP-01 subscription filter."""

    ids: Optional[list[str]] = None
    kinds: Optional[list[int]] = None
    authors: Optional[list[str]] = None
    p_tags: Optional[list[str]] = None
    e_tags: Optional[list[str]] = None
    since: Optional[int] = None
    until: Optional[int] = None
    limit: Optional[int] = None

    def to_wire(self) -> dict[str, Any]:
        """Render the filter the way relays expect it (``#p``/``#e`` keys)."""
        wire: dict[str, Any] = {}
        for field in ("ids", "kinds", "authors", "since", "until", "limit"):
            value = getattr(self, field)
            if value is not None:
                wire[field] = value
        if self.p_tags is not None:
            wire["#p"] = self.p_tags
        if self.e_tags is not None:
            wire["#e"] = self.e_tags
        return wire

    def matches(self, event: SignedEvent) -> bool:
        """Return True when ``event`` satisfies every constraint but ``limit``."""
        if self.ids is not None and event.id not in self.ids:
            return False
        if self.kinds is not None and event.kind not in self.kinds:
            return False
        if self.authors is not None and event.pubkey not in self.authors:
            return False
        if self.p_tags is not None and not set(self.p_tags) & set(
            event.tag_values("p")
        ):
            return False
        if self.e_tags is not None and not set(self.e_tags) & set(
            event.tag_values("e")
        ):
            return False
        if self.since is not None and event.created_at < self.since:
            return False
        if self.until is not None and event.created_at > self.until:
            return False
        return True


def serialize_event(event: UnsignedEvent) -> bytes:
    """Canonical bytes hashed into the event id."""
    return json.dumps(
        [0, event.pubkey, event.created_at, event.kind, event.tags, event.content],
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def compute_event_id(event: UnsignedEvent) -> str:
    return hashlib.sha256(serialize_event(event)).hexdigest()
