"""Event sinks — where the registry hands its events after a successful operation."""

from __future__ import annotations

from typing import Protocol, Sequence

from badge_registry.ledger.service import EventLedgerService
from badge_registry.registry.schema import BadgeEvent, BadgeEventType


class EventSink(Protocol):
    """
    Append-only event destination.

    `publish` receives every event of one operation at once and must either
    record all of them or raise.
    """

    def publish(self, events: Sequence[BadgeEvent]) -> None: ...


class InMemoryEventSink:
    """Keeps events in a list. Useful for tests and embedded use."""

    def __init__(self) -> None:
        self.events: list[BadgeEvent] = []

    def publish(self, events: Sequence[BadgeEvent]) -> None:
        self.events.extend(events)

    def of_type(self, event_type: BadgeEventType) -> list[BadgeEvent]:
        return [e for e in self.events if e.event_type == event_type]


class LedgerEventSink:
    """Writes events to the hash-chained event ledger."""

    def __init__(self, ledger: EventLedgerService) -> None:
        self.ledger = ledger

    def publish(self, events: Sequence[BadgeEvent]) -> None:
        self.ledger.append_events(events)
