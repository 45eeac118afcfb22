"""
Membership Registry — lifecycle state machine for membership badges.

The registry owns all membership state and enforces its invariants:

- Single active membership: for every identity, the recorded active
  membership id is either 0 or an active membership owned by that identity.
- Ownership consistency: every active membership is the one recorded for its
  current owner.
- Temporal validity: expires_at > issued_at for every issued membership.

Every mutating operation runs as one transaction under a single re-entrant
lock. Changes are written through an undo journal and events are buffered;
the buffered events reach the sink only after all state changes succeeded,
and any exception (including a failing sink) rolls the journal back. Reads
take the same lock, so no reader ever observes a half-applied operation.

Revocation destroys a record; expiry only deactivates it. After expiry the
record stays queryable through get_membership_info, after revocation it is
gone.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from badge_registry.governance.pause import PauseSwitch
from badge_registry.governance.permissions import Authorizer, CapabilityEngine
from badge_registry.ledger.sink import EventSink, InMemoryEventSink
from badge_registry.registry.clock import Clock, SystemClock
from badge_registry.registry.custody import CustodyError, CustodyLedger
from badge_registry.registry.errors import (
    InvalidDurationError,
    InvalidExpiryError,
    NotFoundError,
    UnauthorizedError,
    ZeroRecipientError,
)
from badge_registry.registry.journal import Journal
from badge_registry.registry.metadata import MetadataStore
from badge_registry.registry.schema import (
    COLLECTION_NAME,
    COLLECTION_SYMBOL,
    DEFAULT_TIER_VALIDITY,
    FIRST_MEMBERSHIP_ID,
    NO_MEMBERSHIP,
    ActiveMembership,
    BadgeEvent,
    Capability,
    Membership,
    MembershipInfo,
    RevocationReason,
    Tier,
    is_null_identity,
)

logger = logging.getLogger(__name__)


class MembershipRegistry:
    """
    The membership registry.

    Usage:
        engine = CapabilityEngine(admin="0xadmin")
        registry = MembershipRegistry(engine, clock=ManualClock(1000))

        badge_id = registry.issue("0xadmin", "0xalice", Tier.BRONZE)
        registry.get_active_membership("0xalice").valid  # True
    """

    def __init__(
        self,
        authorizer: Authorizer,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
        pause_switch: PauseSwitch | None = None,
        custody: CustodyLedger | None = None,
        metadata: MetadataStore | None = None,
        tier_validity: dict[Tier, int] | None = None,
        name: str = COLLECTION_NAME,
        symbol: str = COLLECTION_SYMBOL,
    ) -> None:
        """
        Construct the registry with its collaborators.

        Args:
            authorizer: Capability check used before privileged operations.
            clock: Time source. Defaults to the system clock.
            event_sink: Destination for audit events. Defaults to in-memory.
            pause_switch: Operational flag. Defaults to an unpaused switch
                gated by `authorizer`.
            custody: Custody ledger. Its transfer hook is bound to this
                registry.
            metadata: Metadata reference store.
            tier_validity: Default validity (seconds) per tier, overriding
                the built-in table.
            name: Collection name reported by `name`.
            symbol: Collection symbol reported by `symbol`.
        """
        self.authorizer = authorizer
        self.clock = clock or SystemClock()
        self.event_sink = event_sink or InMemoryEventSink()
        self.pause_switch = pause_switch or PauseSwitch(authorizer)
        self.custody = custody or CustodyLedger()
        self.custody.before_transfer = self.on_transfer
        self.metadata = metadata or MetadataStore()
        self._name = name
        self._symbol = symbol

        self._tier_validity: dict[Tier, int] = dict(DEFAULT_TIER_VALIDITY)
        for tier, duration in (tier_validity or {}).items():
            if duration <= 0:
                raise InvalidDurationError(duration)
            self._tier_validity[Tier(tier)] = duration

        self._next_id = FIRST_MEMBERSHIP_ID
        self._memberships: dict[int, Membership] = {}
        self._active: dict[str, int] = {}

        self._lock = threading.RLock()
        self._journal: Journal | None = None
        self._pending: list[BadgeEvent] = []

    # ── Lifecycle operations ────────────────────────────────────

    def issue(
        self,
        caller: str,
        recipient: str,
        tier: Tier | int,
        custom_expiry: int | None = None,
        metadata_ref: str = "",
    ) -> int:
        """
        Issue a new badge to `recipient`, superseding any active one.

        Args:
            caller: Identity performing the issuance (needs ISSUER).
            recipient: Identity receiving the badge.
            tier: Membership tier.
            custom_expiry: Fixed expiry time. None or 0 means
                now + the tier's validity period.
            metadata_ref: Opaque metadata reference stored with the badge.

        Returns:
            The new membership id.

        Raises:
            UnauthorizedError, NotOperationalError, ZeroRecipientError,
            InvalidExpiryError.
        """
        tier = Tier(tier)
        with self._transaction() as journal:
            self._require(caller, Capability.ISSUER)
            self.pause_switch.require_operational()
            if is_null_identity(recipient):
                raise ZeroRecipientError()

            now = self.clock.now()
            if custom_expiry:
                if custom_expiry <= now:
                    raise InvalidExpiryError(custom_expiry, now)
                expires_at = custom_expiry
            else:
                expires_at = now + self._tier_validity[tier]

            previous_id = self._active.get(recipient, NO_MEMBERSHIP)
            if previous_id != NO_MEMBERSHIP:
                self._destroy(
                    journal,
                    self._memberships[previous_id],
                    RevocationReason.SUPERSEDED_BY_ISSUE,
                    actor=caller,
                )

            membership_id = self._next_id
            journal.set_attr(self, "_next_id", membership_id + 1)

            membership = Membership(
                id=membership_id,
                tier=tier,
                issued_at=now,
                expires_at=expires_at,
                active=True,
                issuer=caller,
                owner=recipient,
            )
            journal.set_item(self._memberships, membership_id, membership)
            journal.set_item(self._active, recipient, membership_id)
            self.metadata.set(membership_id, metadata_ref, journal)
            self.custody.mint(recipient, membership_id, journal)

            self._pending.append(
                BadgeEvent.issued(
                    timestamp=now,
                    actor=caller,
                    recipient=recipient,
                    membership_id=membership_id,
                    tier=tier,
                    expires_at=expires_at,
                    metadata_ref=metadata_ref,
                )
            )

        logger.info(
            "Badge issued: id=%d tier=%s recipient=%s expires_at=%d superseded=%s",
            membership_id, tier.display_name, recipient, expires_at,
            previous_id or "-",
        )
        return membership_id

    def revoke(self, caller: str, membership_id: int) -> None:
        """
        Revoke and destroy a badge.

        Expired badges (checked or not) may be revoked too. Revoking an id
        that no longer exists raises NotFoundError.
        """
        with self._transaction() as journal:
            self._require(caller, Capability.ISSUER)
            membership = self._get(membership_id)
            self._destroy(journal, membership, RevocationReason.REVOKED, actor=caller)

        logger.info("Badge revoked: id=%d owner=%s", membership_id, membership.owner)

    def check_and_expire(self, membership_id: int) -> bool:
        """
        Deactivate a badge whose expiry time has passed. Permissionless.

        Returns:
            True if the badge was deactivated by this call, False if it was
            already inactive or has not yet expired.

        Raises:
            NotFoundError: For a nonexistent or destroyed id.
        """
        with self._transaction() as journal:
            membership = self._get(membership_id)
            now = self.clock.now()
            if not membership.active or not membership.is_expired(now):
                return False

            expired = membership.model_copy(update={"active": False})
            journal.set_item(self._memberships, membership_id, expired)
            if self._active.get(membership.owner) == membership_id:
                journal.pop_item(self._active, membership.owner)
            self._pending.append(BadgeEvent.expired(now, expired))

        logger.info("Badge expired: id=%d owner=%s", membership_id, membership.owner)
        return True

    def on_transfer(self, sender: str, recipient: str, membership_id: int) -> None:
        """
        Synchronize membership state with a custody transfer.

        Called by the custody ledger after it validated a transfer and before
        custody moves. Raising here aborts the transfer. `sender` must be the
        current holder in both the record and the custody ledger.

        The sender loses active status for this badge. If the badge is active,
        any different active badge held by the recipient is destroyed and the
        transferred badge becomes the recipient's active membership. An
        inactive (expired) badge changes hands without conferring active
        status.
        """
        with self._transaction() as journal:
            if is_null_identity(sender) or is_null_identity(recipient):
                raise CustodyError("Transfer hook requires non-null sender and recipient")
            membership = self._get(membership_id)
            if membership.owner != sender or self.custody.owner_of(membership_id) != sender:
                raise CustodyError(
                    f"Sender {sender!r} does not hold membership {membership_id}"
                )

            if self._active.get(sender) == membership_id:
                journal.pop_item(self._active, sender)

            if membership.active:
                current_id = self._active.get(recipient, NO_MEMBERSHIP)
                if current_id not in (NO_MEMBERSHIP, membership_id):
                    self._destroy(
                        journal,
                        self._memberships[current_id],
                        RevocationReason.SUPERSEDED_BY_TRANSFER,
                        actor=None,
                    )
                journal.set_item(self._active, recipient, membership_id)

            journal.set_item(
                self._memberships,
                membership_id,
                membership.model_copy(update={"owner": recipient}),
            )

    def transfer(self, caller: str, sender: str, recipient: str, membership_id: int) -> None:
        """
        Move a badge between identities through the custody ledger.

        The caller must be the current custodian or the approved operator.
        Blocked while the registry is paused.
        """
        with self._transaction() as journal:
            self.pause_switch.require_operational()
            self.custody.transfer(caller, sender, recipient, membership_id, journal)

        logger.info(
            "Badge transferred: id=%d from=%s to=%s", membership_id, sender, recipient
        )

    def approve(self, caller: str, operator: str, membership_id: int) -> None:
        """Allow `operator` to transfer the caller's badge once."""
        with self._transaction() as journal:
            self.custody.approve(caller, operator, membership_id, journal)

    # ── Administration ──────────────────────────────────────────

    def set_tier_validity(self, caller: str, tier: Tier | int, duration: int) -> None:
        """Change a tier's default validity. Existing badges keep their expiry."""
        tier = Tier(tier)
        with self._transaction() as journal:
            self._require(caller, Capability.ADMIN)
            if duration <= 0:
                raise InvalidDurationError(duration)
            journal.set_item(self._tier_validity, tier, duration)
            self._pending.append(
                BadgeEvent.tier_validity_updated(self.clock.now(), caller, tier, duration)
            )

        logger.info("Tier validity updated: tier=%s duration=%d", tier.display_name, duration)

    def set_base_uri(self, caller: str, base_uri: str) -> None:
        with self._transaction() as journal:
            self._require(caller, Capability.ADMIN)
            self.metadata.set_base_uri(base_uri, journal)

    def add_issuer(self, caller: str, identity: str) -> None:
        with self._lock:
            self._grants().grant(caller, identity, Capability.ISSUER)

    def remove_issuer(self, caller: str, identity: str) -> None:
        with self._lock:
            self._grants().revoke_grant(caller, identity, Capability.ISSUER)

    def is_issuer(self, identity: str) -> bool:
        return self.authorizer.check_capability(identity, Capability.ISSUER)

    def pause(self, caller: str) -> None:
        with self._lock:
            self.pause_switch.pause(caller)

    def unpause(self, caller: str) -> None:
        with self._lock:
            self.pause_switch.unpause(caller)

    @property
    def paused(self) -> bool:
        return not self.pause_switch.is_operational()

    # ── Queries ─────────────────────────────────────────────────

    def get_membership_info(self, membership_id: int) -> MembershipInfo:
        """Read a badge record. Does not deactivate expired badges."""
        with self._lock:
            membership = self._get(membership_id)
            return MembershipInfo(
                tier=membership.tier,
                issued_at=membership.issued_at,
                expires_at=membership.expires_at,
                active=membership.active,
                issuer=membership.issuer,
                expired=membership.is_expired(self.clock.now()),
            )

    def get_active_membership(self, owner: str) -> ActiveMembership:
        """The owner's active membership, or the zero shape when none."""
        with self._lock:
            membership_id = self._active.get(owner, NO_MEMBERSHIP)
            if membership_id == NO_MEMBERSHIP:
                return ActiveMembership()
            membership = self._memberships[membership_id]
            return ActiveMembership(
                membership_id=membership_id,
                tier=membership.tier,
                expires_at=membership.expires_at,
                valid=membership.active and not membership.is_expired(self.clock.now()),
            )

    def has_valid_membership(self, owner: str) -> bool:
        return self.get_active_membership(owner).valid

    def active_membership_id(self, owner: str) -> int:
        """The raw active-membership pointer for `owner` (0 when none)."""
        with self._lock:
            return self._active.get(owner, NO_MEMBERSHIP)

    def memberships(self) -> list[Membership]:
        """Every stored (not destroyed) record, ordered by id."""
        with self._lock:
            return [self._memberships[i] for i in sorted(self._memberships)]

    def tier_validity(self, tier: Tier | int) -> int:
        with self._lock:
            return self._tier_validity[Tier(tier)]

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._next_id

    def total_supply(self) -> int:
        with self._lock:
            return self.custody.total_supply()

    def balance_of(self, identity: str) -> int:
        with self._lock:
            return self.custody.balance_of(identity)

    def owner_of(self, membership_id: int) -> str:
        with self._lock:
            return self.custody.owner_of(membership_id)

    def token_uri(self, membership_id: int) -> str:
        with self._lock:
            self._get(membership_id)
            return self.metadata.token_uri(membership_id)

    # ── Internal ────────────────────────────────────────────────

    @contextmanager
    def _transaction(self) -> Iterator[Journal]:
        """
        Run a block as one all-or-nothing operation.

        Nested calls (the custody ledger calling back into on_transfer) join
        the enclosing transaction.
        """
        with self._lock:
            if self._journal is not None:
                yield self._journal
                return

            journal = Journal()
            self._journal = journal
            self._pending = []
            try:
                yield journal
                if self._pending:
                    self.event_sink.publish(list(self._pending))
            except Exception:
                journal.rollback()
                raise
            else:
                journal.commit()
            finally:
                self._journal = None
                self._pending = []

    def _require(self, caller: str, capability: Capability) -> None:
        if not self.authorizer.check_capability(caller, capability):
            logger.warning(
                "Unauthorized: caller=%s capability=%s", caller, capability.value
            )
            raise UnauthorizedError(caller, capability.value)

    def _get(self, membership_id: int) -> Membership:
        membership = self._memberships.get(membership_id)
        if membership is None:
            raise NotFoundError(membership_id)
        return membership

    def _destroy(
        self,
        journal: Journal,
        membership: Membership,
        reason: RevocationReason,
        actor: str | None,
    ) -> None:
        """Deactivate, unlink, and delete a badge record with its custody and metadata."""
        if self._active.get(membership.owner) == membership.id:
            journal.pop_item(self._active, membership.owner)
        journal.pop_item(self._memberships, membership.id)
        self.metadata.drop(membership.id, journal)
        if self.custody.exists(membership.id):
            self.custody.burn(membership.id, journal)
        self._pending.append(
            BadgeEvent.revoked(
                timestamp=self.clock.now(),
                actor=actor,
                membership=membership.model_copy(update={"active": False}),
                reason=reason,
            )
        )

    def _grants(self) -> CapabilityEngine:
        if not isinstance(self.authorizer, CapabilityEngine):
            raise TypeError(
                f"{type(self.authorizer).__name__} does not manage capability grants"
            )
        return self.authorizer
