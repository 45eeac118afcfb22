"""
Event Ledger Service — append-only, hash-chained record of badge events.

This service provides the core operations for the event ledger:
- Append registry events with automatic hash chain computation
- Verify the integrity of the full hash chain
- Query entries by type, actor, or recency

A batch of events produced by one registry operation is appended in a single
database transaction: either every event of the batch is recorded or none is.
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable
from uuid import UUID, uuid4

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from badge_registry.ledger.models import Base, BadgeEventDB
from badge_registry.registry.schema import BadgeEvent

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Genesis Constants
# ════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain
GENESIS_EVENT_TYPE = "genesis"


class LedgerIntegrityError(Exception):
    """Raised when the hash chain cannot be extended or is broken."""
    pass


def _engine_for(database_url: str):
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False)


class EventLedgerService:
    """
    Event ledger — the permanent audit record of the badge registry.

    Usage:
        service = EventLedgerService("sqlite:///badge_events.db")
        service.initialize()  # Create tables, seed genesis entry

        service.append_events([event1, event2])
        is_valid, verified, message = service.verify_chain()
    """

    def __init__(self, database_url: str) -> None:
        """
        Initialize the ledger service.

        Args:
            database_url: SQLAlchemy connection string (sync driver).
        """
        self.engine = _engine_for(database_url)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create the schema and seed the genesis entry if absent."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            existing = session.execute(
                select(BadgeEventDB).where(BadgeEventDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._build_entry(
                    sequence_number=0,
                    previous_hash=GENESIS_HASH,
                    event_type=GENESIS_EVENT_TYPE,
                    registry_time=0,
                    actor=None,
                    payload={"message": "Genesis of the badge event ledger"},
                )
                session.add(genesis)
                session.commit()
                logger.info("Genesis entry created: hash=%s", genesis.entry_hash[:16])

    def append(self, event: BadgeEvent) -> BadgeEventDB:
        """Append a single event."""
        return self.append_events([event])[0]

    def append_events(self, events: Iterable[BadgeEvent]) -> list[BadgeEventDB]:
        """
        Append a batch of events atomically.

        Raises:
            LedgerIntegrityError: If the ledger has not been initialized.
        """
        events = list(events)
        if not events:
            return []

        with self.SessionLocal() as session:
            last_entry = session.execute(
                select(BadgeEventDB)
                .order_by(BadgeEventDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            if last_entry is None:
                raise LedgerIntegrityError(
                    "Cannot append: no genesis entry found. Call initialize() first."
                )

            sequence_number = last_entry.sequence_number
            previous_hash = last_entry.entry_hash
            entries = []
            for event in events:
                sequence_number += 1
                entry = self._build_entry(
                    sequence_number=sequence_number,
                    previous_hash=previous_hash,
                    event_type=event.event_type.value,
                    registry_time=event.timestamp,
                    actor=event.actor,
                    payload=dict(event.payload),
                )
                session.add(entry)
                entries.append(entry)
                previous_hash = entry.entry_hash

            session.commit()
            for entry in entries:
                session.refresh(entry)

            logger.info(
                "Ledger entries appended: seq=%d..%d types=%s",
                entries[0].sequence_number,
                entries[-1].sequence_number,
                ",".join(e.event_type for e in entries),
            )
            return entries

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Verify the integrity of the entire hash chain.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        with self.SessionLocal() as session:
            entries = session.execute(
                select(BadgeEventDB).order_by(BadgeEventDB.sequence_number.asc())
            ).scalars().all()

            if not entries:
                return False, 0, "No entries found in ledger"

            first = entries[0]
            if first.sequence_number != 0:
                return False, 0, f"First entry has sequence {first.sequence_number}, expected 0"

            if first.previous_hash != GENESIS_HASH:
                return False, 0, "Genesis entry has incorrect previous_hash"

            for i, entry in enumerate(entries):
                expected_hash = self._compute_hash(
                    entry_id=entry.id,
                    sequence_number=entry.sequence_number,
                    previous_hash=entry.previous_hash,
                    event_type=entry.event_type,
                    registry_time=entry.registry_time,
                    actor=entry.actor,
                    payload=entry.payload,
                )

                if entry.entry_hash != expected_hash:
                    return (
                        False, i,
                        f"Hash mismatch at sequence {entry.sequence_number}: "
                        f"stored={entry.entry_hash[:16]}... "
                        f"computed={expected_hash[:16]}..."
                    )

                if i > 0 and entry.previous_hash != entries[i - 1].entry_hash:
                    return (
                        False, i,
                        f"Chain break at sequence {entry.sequence_number}: "
                        f"previous_hash does not match prior entry's hash"
                    )

            return (
                True, len(entries),
                f"Chain verified: {len(entries)} entries, integrity intact"
            )

    def get_by_sequence(self, sequence_number: int) -> BadgeEventDB | None:
        """Retrieve an entry by sequence number."""
        with self.SessionLocal() as session:
            return session.execute(
                select(BadgeEventDB).where(
                    BadgeEventDB.sequence_number == sequence_number
                )
            ).scalar_one_or_none()

    def get_entries_by_type(
        self,
        event_type: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[BadgeEventDB]:
        """Retrieve entries of one event type, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(BadgeEventDB)
                    .where(BadgeEventDB.event_type == event_type)
                    .order_by(BadgeEventDB.sequence_number.desc())
                    .limit(limit)
                    .offset(offset)
                ).scalars().all()
            )

    def get_entries_by_actor(self, actor: str, limit: int = 100) -> list[BadgeEventDB]:
        """Retrieve entries triggered by one identity, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(BadgeEventDB)
                    .where(BadgeEventDB.actor == actor)
                    .order_by(BadgeEventDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_latest_entries(self, limit: int = 50) -> list[BadgeEventDB]:
        """Retrieve the most recent entries, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(BadgeEventDB)
                    .order_by(BadgeEventDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entry_count(self) -> int:
        """Return the total number of entries, genesis included."""
        with self.SessionLocal() as session:
            result = session.execute(
                select(func.count()).select_from(BadgeEventDB)
            )
            return result.scalar() or 0

    # ── Internal ────────────────────────────────────────────────

    def _build_entry(
        self,
        sequence_number: int,
        previous_hash: str,
        event_type: str,
        registry_time: int,
        actor: str | None,
        payload: dict[str, Any],
    ) -> BadgeEventDB:
        entry_id = uuid4()
        entry_hash = self._compute_hash(
            entry_id=entry_id,
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            event_type=event_type,
            registry_time=registry_time,
            actor=actor,
            payload=payload,
        )
        return BadgeEventDB(
            id=entry_id,
            sequence_number=sequence_number,
            previous_hash=previous_hash,
            entry_hash=entry_hash,
            recorded_at=datetime.now(timezone.utc),
            registry_time=registry_time,
            event_type=event_type,
            actor=actor,
            payload=payload,
        )

    @staticmethod
    def _compute_hash(
        entry_id: UUID,
        sequence_number: int,
        previous_hash: str,
        event_type: str,
        registry_time: int,
        actor: str | None,
        payload: dict[str, Any],
    ) -> str:
        """
        Compute the SHA-256 hash for a ledger entry.

        Hash = SHA-256(previous_hash || canonical_json(entry_fields))

        `recorded_at` is not hashed: its stored precision and timezone handling
        vary by database backend.
        """
        hashable = {
            "id": str(entry_id),
            "sequence_number": sequence_number,
            "previous_hash": previous_hash,
            "event_type": event_type,
            "registry_time": registry_time,
            "actor": actor,
            "payload": payload,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (previous_hash + canonical).encode("utf-8")
        ).hexdigest()
