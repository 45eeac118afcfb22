"""
Registry Schema — Pydantic models for membership badges and their events.

These models are the canonical data structures of the registry. They govern
the shape of membership records, query results, and the events handed to the
audit sink.

Timestamps are integer Unix seconds throughout, as read from the registry's
time source.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, Field, computed_field


# ════════════════════════════════════════════════════════════════
# Constants
# ════════════════════════════════════════════════════════════════

NO_MEMBERSHIP = 0  # Sentinel id: "no membership"
FIRST_MEMBERSHIP_ID = 1

ZERO_IDENTITY = "0x" + "0" * 40

SECONDS_PER_DAY = 24 * 60 * 60

COLLECTION_NAME = "NFT Membership Badges"
COLLECTION_SYMBOL = "BADGE"


def is_null_identity(identity: str | None) -> bool:
    """True for identities that cannot hold a badge."""
    return not identity or identity == ZERO_IDENTITY


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Tier(int, enum.Enum):
    """Ordered membership tiers."""

    BRONZE = 0
    SILVER = 1
    GOLD = 2
    PLATINUM = 3
    DIAMOND = 4

    @property
    def display_name(self) -> str:
        return self.name.title()


def tier_name(tier: Tier | int) -> str:
    """Human-readable tier name (e.g. 'Bronze')."""
    return Tier(tier).display_name


DEFAULT_TIER_VALIDITY: dict[Tier, int] = {
    Tier.BRONZE: 30 * SECONDS_PER_DAY,
    Tier.SILVER: 90 * SECONDS_PER_DAY,
    Tier.GOLD: 180 * SECONDS_PER_DAY,
    Tier.PLATINUM: 365 * SECONDS_PER_DAY,
    Tier.DIAMOND: 730 * SECONDS_PER_DAY,
}


class Capability(str, enum.Enum):
    """Authorization roles checked before privileged operations."""

    ADMIN = "admin"
    ISSUER = "issuer"
    PAUSER = "pauser"


class BadgeEventType(str, enum.Enum):
    """Events appended to the audit sink."""

    BADGE_ISSUED = "BadgeIssued"
    BADGE_REVOKED = "BadgeRevoked"
    BADGE_EXPIRED = "BadgeExpired"
    TIER_VALIDITY_UPDATED = "TierValidityUpdated"


class RevocationReason(str, enum.Enum):
    """Why a badge was destroyed."""

    REVOKED = "revoked"
    SUPERSEDED_BY_ISSUE = "superseded_by_issue"
    SUPERSEDED_BY_TRANSFER = "superseded_by_transfer"


# ════════════════════════════════════════════════════════════════
# Membership Records
# ════════════════════════════════════════════════════════════════


class Membership(BaseModel):
    """
    A single membership badge.

    Records are replaced, never mutated in place, so that the registry's
    undo journal can restore a previous version by reference.
    """

    model_config = {"frozen": True}

    id: int = Field(description="Monotonically assigned badge id (>= 1)")
    tier: Tier
    issued_at: int = Field(description="Issuance time (Unix seconds)")
    expires_at: int = Field(description="Expiry time (Unix seconds)")
    active: bool = True
    issuer: str = Field(description="Identity that issued the badge")
    owner: str = Field(description="Identity currently holding the badge")

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


class MembershipInfo(BaseModel):
    """Read-only view of a membership record at a point in time."""

    tier: Tier
    issued_at: int
    expires_at: int
    active: bool
    issuer: str
    expired: bool


class ActiveMembership(BaseModel):
    """The active membership recorded for an identity, or the zero shape."""

    membership_id: int = NO_MEMBERSHIP
    tier: Tier = Tier.BRONZE
    expires_at: int = 0
    valid: bool = False

    @computed_field
    @property
    def tier_name(self) -> str:
        return self.tier.display_name


# ════════════════════════════════════════════════════════════════
# Events
# ════════════════════════════════════════════════════════════════


class BadgeEvent(BaseModel):
    """
    An audit event emitted by a successful registry operation.

    `payload` carries the event-specific fields, e.g. for BadgeIssued:
    recipient, membership_id, tier, expires_at, metadata_ref.
    """

    model_config = {"frozen": True}

    event_type: BadgeEventType
    timestamp: int = Field(description="Registry time at emission")
    actor: str | None = Field(
        default=None, description="Identity that triggered the event, if any"
    )
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def issued(
        cls,
        timestamp: int,
        actor: str,
        recipient: str,
        membership_id: int,
        tier: Tier,
        expires_at: int,
        metadata_ref: str,
    ) -> BadgeEvent:
        return cls(
            event_type=BadgeEventType.BADGE_ISSUED,
            timestamp=timestamp,
            actor=actor,
            payload={
                "recipient": recipient,
                "membership_id": membership_id,
                "tier": tier.display_name,
                "expires_at": expires_at,
                "metadata_ref": metadata_ref,
            },
        )

    @classmethod
    def revoked(
        cls,
        timestamp: int,
        actor: str | None,
        membership: Membership,
        reason: RevocationReason,
    ) -> BadgeEvent:
        return cls(
            event_type=BadgeEventType.BADGE_REVOKED,
            timestamp=timestamp,
            actor=actor,
            payload={
                "owner": membership.owner,
                "membership_id": membership.id,
                "tier": membership.tier.display_name,
                "reason": reason.value,
            },
        )

    @classmethod
    def expired(cls, timestamp: int, membership: Membership) -> BadgeEvent:
        return cls(
            event_type=BadgeEventType.BADGE_EXPIRED,
            timestamp=timestamp,
            payload={
                "owner": membership.owner,
                "membership_id": membership.id,
                "expires_at": membership.expires_at,
            },
        )

    @classmethod
    def tier_validity_updated(
        cls, timestamp: int, actor: str, tier: Tier, duration: int
    ) -> BadgeEvent:
        return cls(
            event_type=BadgeEventType.TIER_VALIDITY_UPDATED,
            timestamp=timestamp,
            actor=actor,
            payload={"tier": tier.display_name, "duration": duration},
        )
