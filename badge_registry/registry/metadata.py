"""Metadata store — opaque per-badge references resolved to URIs."""

from __future__ import annotations

from badge_registry.registry.journal import Journal


class MetadataStore:
    """
    Stores the metadata reference supplied at issuance.

    The registry never interprets a reference. `token_uri` returns the stored
    reference verbatim when one was given, otherwise the base URI followed by
    the badge id.
    """

    def __init__(self, base_uri: str = "") -> None:
        self.base_uri = base_uri
        self._refs: dict[int, str] = {}

    def get(self, token_id: int) -> str:
        return self._refs.get(token_id, "")

    def set(self, token_id: int, ref: str, journal: Journal) -> None:
        journal.set_item(self._refs, token_id, ref)

    def drop(self, token_id: int, journal: Journal) -> None:
        if token_id in self._refs:
            journal.pop_item(self._refs, token_id)

    def set_base_uri(self, base_uri: str, journal: Journal) -> None:
        journal.set_attr(self, "base_uri", base_uri)

    def token_uri(self, token_id: int) -> str:
        ref = self._refs.get(token_id, "")
        if ref:
            return ref
        if self.base_uri:
            return f"{self.base_uri}{token_id}"
        return ""
