"""
Event Ledger — SQLAlchemy models for the append-only badge audit record.

The event ledger is the persistent audit sink of the registry. It implements
three integrity requirements:

1. Cryptographically Verifiable — SHA-256 hash chain
2. Append-Only — no UPDATE or DELETE; history is never rewritten
3. Independently Auditable — the hash chain can be verified by anyone
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all ledger models."""
    pass


class BadgeEventDB(Base):
    """
    A single entry in the event ledger.

    This table is APPEND-ONLY. Each entry stores the SHA-256 hash of
    (previous_hash || canonical_json(entry_fields)), so any retroactive
    alteration is detectable by recomputing the chain.
    """

    __tablename__ = "badge_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # Chain ordering
    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    # Hash chain
    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    recorded_at = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        comment="Wall-clock time the entry was written",
    )
    registry_time = Column(
        Integer, nullable=False,
        comment="Registry clock reading when the event was emitted",
    )

    event_type = Column(
        String(50), nullable=False, index=True,
        comment="BadgeIssued, BadgeRevoked, BadgeExpired, TierValidityUpdated",
    )
    actor = Column(
        String(100), nullable=True,
        comment="Identity that triggered the event (None for permissionless calls)",
    )
    payload = Column(
        JSON, nullable=False,
        comment="Event fields — structure varies by event_type",
    )

    __table_args__ = (
        Index("ix_badge_event_type_time", "event_type", "registry_time"),
        Index("ix_badge_event_actor", "actor"),
    )

    def __repr__(self) -> str:
        return (
            f"<BadgeEvent seq={self.sequence_number} "
            f"type={self.event_type} hash={self.entry_hash[:12]}...>"
        )
