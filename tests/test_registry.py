"""
Tests for the Membership Registry lifecycle.

Validates:
- Issuance, supersession, and expiry computation
- Revocation (destroy) vs expiry (deactivate)
- Transfer supersession and sender status loss
- All-or-nothing failure semantics
- The single-active-membership invariant
"""

from __future__ import annotations

import threading

import pytest

from badge_registry.governance.permissions import CapabilityEngine
from badge_registry.ledger.sink import InMemoryEventSink
from badge_registry.registry.clock import ManualClock
from badge_registry.registry.custody import CustodyError
from badge_registry.registry.errors import (
    InvalidDurationError,
    InvalidExpiryError,
    NotFoundError,
    NotOperationalError,
    UnauthorizedError,
    ZeroRecipientError,
)
from badge_registry.registry.schema import (
    SECONDS_PER_DAY,
    ZERO_IDENTITY,
    BadgeEventType,
    Capability,
    Tier,
)
from badge_registry.registry.service import MembershipRegistry

ADMIN = "0xadmin"
ISSUER = "0xissuer"
ALICE = "0xalice"
BOB = "0xbob"
CAROL = "0xcarol"
DAVE = "0xdave"
ERIN = "0xerin"


class FailingSink:
    """Event sink that rejects every batch."""

    def publish(self, events):
        raise RuntimeError("event store unavailable")


def assert_invariants(registry: MembershipRegistry, identities) -> None:
    """Single active membership and ownership consistency."""
    for identity in identities:
        active_id = registry.active_membership_id(identity)
        if active_id:
            record = next(m for m in registry.memberships() if m.id == active_id)
            assert record.active
            assert record.owner == identity
    active_owners = [m.owner for m in registry.memberships() if m.active]
    assert len(active_owners) == len(set(active_owners))
    for record in registry.memberships():
        if record.active:
            assert registry.active_membership_id(record.owner) == record.id
        assert record.expires_at > record.issued_at


class RegistryTestBase:
    def setup_method(self):
        self.clock = ManualClock(1000)
        self.sink = InMemoryEventSink()
        self.engine = CapabilityEngine(admin=ADMIN, grants={Capability.ISSUER: [ISSUER]})
        self.registry = MembershipRegistry(self.engine, clock=self.clock, event_sink=self.sink)


class TestIssuance(RegistryTestBase):
    def test_issue_uses_tier_validity(self):
        """Bronze with no custom expiry lasts 30 days from issuance."""
        membership_id = self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        assert membership_id == 1

        info = self.registry.get_membership_info(1)
        assert info.issued_at == 1000
        assert info.expires_at == 1000 + 30 * 86400
        assert info.active is True
        assert info.issuer == ISSUER
        assert info.expired is False

        active = self.registry.get_active_membership(ALICE)
        assert active.membership_id == 1
        assert active.tier == Tier.BRONZE
        assert active.valid is True

    def test_issue_emits_event(self):
        self.registry.issue(ISSUER, ALICE, Tier.SILVER, metadata_ref="ipfs://silver/1")
        (event,) = self.sink.of_type(BadgeEventType.BADGE_ISSUED)
        assert event.payload == {
            "recipient": ALICE,
            "membership_id": 1,
            "tier": "Silver",
            "expires_at": 1000 + 90 * SECONDS_PER_DAY,
            "metadata_ref": "ipfs://silver/1",
        }
        assert event.actor == ISSUER

    def test_custom_expiry_used_verbatim(self):
        custom = 1000 + 60 * SECONDS_PER_DAY
        self.registry.issue(ISSUER, ALICE, Tier.GOLD, custom_expiry=custom)
        assert self.registry.get_membership_info(1).expires_at == custom

    def test_zero_custom_expiry_means_tier_default(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD, custom_expiry=0)
        assert self.registry.get_membership_info(1).expires_at == 1000 + 180 * SECONDS_PER_DAY

    def test_past_expiry_rejected_without_consuming_id(self):
        with pytest.raises(InvalidExpiryError):
            self.registry.issue(ISSUER, BOB, Tier.GOLD, custom_expiry=self.clock.now() - 1)
        assert self.registry.next_id == 1
        assert self.registry.total_supply() == 0
        assert self.sink.events == []

    def test_expiry_equal_to_now_rejected(self):
        with pytest.raises(InvalidExpiryError):
            self.registry.issue(ISSUER, BOB, Tier.GOLD, custom_expiry=self.clock.now())

    @pytest.mark.parametrize("recipient", [None, "", ZERO_IDENTITY])
    def test_null_recipient_rejected(self, recipient):
        with pytest.raises(ZeroRecipientError):
            self.registry.issue(ISSUER, recipient, Tier.BRONZE)
        assert self.registry.next_id == 1

    def test_non_issuer_rejected(self):
        with pytest.raises(UnauthorizedError):
            self.registry.issue(ALICE, BOB, Tier.BRONZE)
        assert self.registry.next_id == 1
        assert self.sink.events == []

    def test_paused_registry_rejects_issuance(self):
        self.registry.pause(ADMIN)
        assert self.registry.paused
        with pytest.raises(NotOperationalError):
            self.registry.issue(ISSUER, ALICE, Tier.BRONZE)

        self.registry.unpause(ADMIN)
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        assert self.registry.balance_of(ALICE) == 1

    def test_reissue_supersedes_previous(self):
        """Issuing Silver to a Bronze holder destroys the Bronze badge."""
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, metadata_ref="bronze")
        new_id = self.registry.issue(ISSUER, ALICE, Tier.SILVER, metadata_ref="silver")

        assert new_id == 2
        with pytest.raises(NotFoundError):
            self.registry.get_membership_info(1)
        with pytest.raises(NotFoundError):
            self.registry.revoke(ISSUER, 1)
        with pytest.raises(NotFoundError):
            self.registry.owner_of(1)

        active = self.registry.get_active_membership(ALICE)
        assert active.membership_id == 2
        assert active.tier == Tier.SILVER
        assert self.registry.balance_of(ALICE) == 1

        revoked = self.sink.of_type(BadgeEventType.BADGE_REVOKED)
        assert [e.payload["membership_id"] for e in revoked] == [1]
        assert revoked[0].payload["reason"] == "superseded_by_issue"

    def test_rapid_reissue_keeps_latest(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        self.registry.issue(ISSUER, ALICE, Tier.SILVER)
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        assert self.registry.balance_of(ALICE) == 1
        assert self.registry.get_active_membership(ALICE).tier == Tier.GOLD
        assert self.registry.total_supply() == 1
        assert_invariants(self.registry, [ALICE])

    def test_ids_never_reused(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        self.registry.revoke(ISSUER, 1)
        assert self.registry.issue(ISSUER, ALICE, Tier.BRONZE) == 2


class TestRevocation(RegistryTestBase):
    def setup_method(self):
        super().setup_method()
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, metadata_ref="ipfs://bronze/1")

    def test_revoke_destroys_record(self):
        self.registry.revoke(ISSUER, 1)

        with pytest.raises(NotFoundError):
            self.registry.get_membership_info(1)
        assert self.registry.active_membership_id(ALICE) == 0
        assert self.registry.has_valid_membership(ALICE) is False
        assert self.registry.balance_of(ALICE) == 0
        assert self.registry.total_supply() == 0
        assert len(self.sink.of_type(BadgeEventType.BADGE_REVOKED)) == 1

    def test_revoke_twice_fails(self):
        self.registry.revoke(ISSUER, 1)
        with pytest.raises(NotFoundError):
            self.registry.revoke(ISSUER, 1)
        assert len(self.sink.of_type(BadgeEventType.BADGE_REVOKED)) == 1

    def test_revoke_nonexistent(self):
        with pytest.raises(NotFoundError):
            self.registry.revoke(ISSUER, 999)

    def test_non_issuer_cannot_revoke(self):
        with pytest.raises(UnauthorizedError):
            self.registry.revoke(BOB, 1)
        assert self.registry.has_valid_membership(ALICE)

    def test_revoke_expired_membership(self):
        """Expired badges, checked or not, remain revocable."""
        self.clock.advance(31 * SECONDS_PER_DAY)
        assert self.registry.check_and_expire(1) is True
        self.registry.revoke(ISSUER, 1)
        with pytest.raises(NotFoundError):
            self.registry.get_membership_info(1)

    def test_revoke_allowed_while_paused(self):
        self.registry.pause(ADMIN)
        self.registry.revoke(ISSUER, 1)
        assert self.registry.total_supply() == 0


class TestExpiry(RegistryTestBase):
    def test_check_and_expire(self):
        """Carol's 60-second badge expires after 61 seconds."""
        membership_id = self.registry.issue(
            ISSUER, CAROL, Tier.BRONZE, custom_expiry=self.clock.now() + 60
        )
        assert self.registry.has_valid_membership(CAROL)

        self.clock.advance(61)
        assert self.registry.check_and_expire(membership_id) is True

        (event,) = self.sink.of_type(BadgeEventType.BADGE_EXPIRED)
        assert event.payload["membership_id"] == membership_id
        assert event.actor is None

        info = self.registry.get_membership_info(membership_id)
        assert info.active is False
        assert info.expired is True
        assert self.registry.has_valid_membership(CAROL) is False
        assert self.registry.active_membership_id(CAROL) == 0

    def test_expired_but_unchecked_is_not_valid(self):
        self.registry.issue(ISSUER, CAROL, Tier.BRONZE, custom_expiry=self.clock.now() + 60)
        self.clock.advance(60)

        info = self.registry.get_membership_info(1)
        assert info.expired is True
        assert info.active is True  # reads never deactivate

        active = self.registry.get_active_membership(CAROL)
        assert active.membership_id == 1
        assert active.valid is False

    def test_repeated_expiry_is_noop(self):
        self.registry.issue(ISSUER, CAROL, Tier.BRONZE, custom_expiry=self.clock.now() + 60)
        self.clock.advance(120)
        assert self.registry.check_and_expire(1) is True
        assert self.registry.check_and_expire(1) is False
        assert self.registry.check_and_expire(1) is False
        assert len(self.sink.of_type(BadgeEventType.BADGE_EXPIRED)) == 1
        assert self.registry.has_valid_membership(CAROL) is False

    def test_not_yet_expired_is_noop(self):
        self.registry.issue(ISSUER, CAROL, Tier.BRONZE)
        assert self.registry.check_and_expire(1) is False
        assert self.registry.get_membership_info(1).active is True
        assert self.sink.of_type(BadgeEventType.BADGE_EXPIRED) == []

    def test_expire_nonexistent(self):
        with pytest.raises(NotFoundError):
            self.registry.check_and_expire(42)

    def test_expire_is_permissionless(self):
        """check_and_expire needs no capability, even when paused."""
        self.registry.issue(ISSUER, CAROL, Tier.BRONZE, custom_expiry=self.clock.now() + 10)
        self.registry.pause(ADMIN)
        self.clock.advance(10)
        assert self.registry.check_and_expire(1) is True

    def test_reissue_after_expiry_keeps_expired_record(self):
        """An expired badge is no longer active, so reissue does not destroy it."""
        self.registry.issue(ISSUER, CAROL, Tier.BRONZE, custom_expiry=self.clock.now() + 10)
        self.clock.advance(10)
        self.registry.check_and_expire(1)

        self.registry.issue(ISSUER, CAROL, Tier.GOLD)
        assert self.registry.get_membership_info(1).active is False
        assert self.registry.get_active_membership(CAROL).membership_id == 2
        assert self.registry.balance_of(CAROL) == 2


class TestTransfer(RegistryTestBase):
    def test_transfer_moves_active_status(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.transfer(ALICE, ALICE, BOB, 1)

        assert self.registry.has_valid_membership(ALICE) is False
        assert self.registry.active_membership_id(ALICE) == 0
        active = self.registry.get_active_membership(BOB)
        assert active.membership_id == 1
        assert active.valid is True
        assert self.registry.owner_of(1) == BOB
        assert next(m for m in self.registry.memberships() if m.id == 1).owner == BOB

    def test_transfer_supersedes_recipient_membership(self):
        """Dave's id=5 sent to Erin (holding id=7) destroys id=7."""
        others = ["0xo1", "0xo2", "0xo3", "0xo4"]
        for identity in others:
            self.registry.issue(ISSUER, identity, Tier.BRONZE)
        assert self.registry.issue(ISSUER, DAVE, Tier.GOLD) == 5
        self.registry.issue(ISSUER, "0xo6", Tier.BRONZE)
        assert self.registry.issue(ISSUER, ERIN, Tier.BRONZE) == 7

        self.registry.transfer(DAVE, DAVE, ERIN, 5)

        with pytest.raises(NotFoundError):
            self.registry.get_membership_info(7)
        assert self.registry.active_membership_id(DAVE) == 0
        assert self.registry.active_membership_id(ERIN) == 5
        assert self.registry.get_active_membership(ERIN).tier == Tier.GOLD
        assert self.registry.balance_of(ERIN) == 1
        assert self.registry.balance_of(DAVE) == 0

        revoked = self.sink.of_type(BadgeEventType.BADGE_REVOKED)
        assert [e.payload["membership_id"] for e in revoked] == [7]
        assert revoked[0].payload["reason"] == "superseded_by_transfer"
        assert_invariants(self.registry, others + [DAVE, ERIN, "0xo6"])

    def test_transfer_of_expired_badge_confers_nothing(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, custom_expiry=self.clock.now() + 10)
        self.registry.issue(ISSUER, BOB, Tier.SILVER)
        self.clock.advance(10)
        self.registry.check_and_expire(1)

        self.registry.transfer(ALICE, ALICE, BOB, 1)

        assert self.registry.owner_of(1) == BOB
        assert self.registry.active_membership_id(BOB) == 2
        assert self.registry.has_valid_membership(BOB)
        assert_invariants(self.registry, [ALICE, BOB])

    def test_approved_operator_can_transfer(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.approve(ALICE, CAROL, 1)
        self.registry.transfer(CAROL, ALICE, BOB, 1)
        assert self.registry.owner_of(1) == BOB
        assert self.registry.custody.get_approved(1) is None

    def test_stranger_cannot_transfer(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(UnauthorizedError):
            self.registry.transfer(BOB, ALICE, BOB, 1)
        assert self.registry.active_membership_id(ALICE) == 1

    def test_transfer_from_wrong_sender(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(CustodyError):
            self.registry.transfer(BOB, BOB, CAROL, 1)

    def test_transfer_to_null_identity(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(CustodyError):
            self.registry.transfer(ALICE, ALICE, ZERO_IDENTITY, 1)
        assert self.registry.owner_of(1) == ALICE

    def test_transfer_blocked_while_paused(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.pause(ADMIN)
        with pytest.raises(NotOperationalError):
            self.registry.transfer(ALICE, ALICE, BOB, 1)
        assert self.registry.owner_of(1) == ALICE


class TestTransferHook(RegistryTestBase):
    """on_transfer called directly, outside a custody transfer."""

    def _assert_untouched(self):
        assert self.registry.active_membership_id(ALICE) == 1
        assert self.registry.active_membership_id(CAROL) == 0
        assert self.registry.get_membership_info(1).active is True
        assert next(m for m in self.registry.memberships() if m.id == 1).owner == ALICE
        assert self.registry.owner_of(1) == ALICE
        assert_invariants(self.registry, [ALICE, BOB, CAROL])

    def test_non_holder_sender_rejected(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(CustodyError):
            self.registry.on_transfer(BOB, CAROL, 1)
        self._assert_untouched()

    def test_non_holder_cannot_supersede_recipient(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.issue(ISSUER, BOB, Tier.SILVER)
        with pytest.raises(CustodyError):
            self.registry.on_transfer(CAROL, BOB, 1)
        assert self.registry.active_membership_id(BOB) == 2
        assert self.registry.get_membership_info(2).active is True
        assert self.sink.of_type(BadgeEventType.BADGE_REVOKED) == []
        self._assert_untouched()

    @pytest.mark.parametrize(
        "sender, recipient",
        [(ZERO_IDENTITY, CAROL), ("", CAROL), (ALICE, ZERO_IDENTITY), (ALICE, "")],
    )
    def test_null_identities_rejected(self, sender, recipient):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(CustodyError):
            self.registry.on_transfer(sender, recipient, 1)
        self._assert_untouched()

    def test_unknown_membership(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        with pytest.raises(NotFoundError):
            self.registry.on_transfer(ALICE, CAROL, 42)
        self._assert_untouched()

    def test_revoked_membership(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.revoke(ISSUER, 1)
        with pytest.raises(NotFoundError):
            self.registry.on_transfer(ALICE, CAROL, 1)


class TestAtomicity(RegistryTestBase):
    def test_failing_sink_rolls_back_issue(self):
        self.registry.event_sink = FailingSink()
        with pytest.raises(RuntimeError):
            self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        assert self.registry.next_id == 1
        assert self.registry.total_supply() == 0
        assert self.registry.active_membership_id(ALICE) == 0
        assert self.registry.memberships() == []

    def test_failing_sink_rolls_back_supersession(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, metadata_ref="bronze")
        self.registry.event_sink = FailingSink()

        with pytest.raises(RuntimeError):
            self.registry.issue(ISSUER, ALICE, Tier.SILVER)

        assert self.registry.active_membership_id(ALICE) == 1
        assert self.registry.get_membership_info(1).active is True
        assert self.registry.owner_of(1) == ALICE
        assert self.registry.token_uri(1) == "bronze"
        assert self.registry.balance_of(ALICE) == 1
        assert self.registry.next_id == 2

    def test_failing_sink_rolls_back_transfer(self):
        self.registry.issue(ISSUER, ALICE, Tier.GOLD)
        self.registry.issue(ISSUER, BOB, Tier.BRONZE)
        self.registry.event_sink = FailingSink()

        with pytest.raises(RuntimeError):
            self.registry.transfer(ALICE, ALICE, BOB, 1)

        assert self.registry.owner_of(1) == ALICE
        assert self.registry.owner_of(2) == BOB
        assert self.registry.active_membership_id(ALICE) == 1
        assert self.registry.active_membership_id(BOB) == 2
        assert self.registry.balance_of(BOB) == 1
        assert_invariants(self.registry, [ALICE, BOB])

    def test_failing_sink_rolls_back_expiry(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, custom_expiry=self.clock.now() + 5)
        self.clock.advance(5)
        self.registry.event_sink = FailingSink()
        with pytest.raises(RuntimeError):
            self.registry.check_and_expire(1)
        assert self.registry.get_membership_info(1).active is True


class TestTierValidity(RegistryTestBase):
    def test_default_periods(self):
        assert self.registry.tier_validity(Tier.BRONZE) == 30 * SECONDS_PER_DAY
        assert self.registry.tier_validity(Tier.SILVER) == 90 * SECONDS_PER_DAY
        assert self.registry.tier_validity(Tier.GOLD) == 180 * SECONDS_PER_DAY
        assert self.registry.tier_validity(Tier.PLATINUM) == 365 * SECONDS_PER_DAY
        assert self.registry.tier_validity(Tier.DIAMOND) == 730 * SECONDS_PER_DAY

    def test_update_applies_to_future_issuances_only(self):
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        self.registry.set_tier_validity(ADMIN, Tier.BRONZE, 45 * SECONDS_PER_DAY)

        (event,) = self.sink.of_type(BadgeEventType.TIER_VALIDITY_UPDATED)
        assert event.payload == {"tier": "Bronze", "duration": 45 * SECONDS_PER_DAY}

        assert self.registry.get_membership_info(1).expires_at == 1000 + 30 * SECONDS_PER_DAY
        self.registry.issue(ISSUER, BOB, Tier.BRONZE)
        assert self.registry.get_membership_info(2).expires_at == 1000 + 45 * SECONDS_PER_DAY

    @pytest.mark.parametrize("duration", [0, -1])
    def test_non_positive_duration_rejected(self, duration):
        with pytest.raises(InvalidDurationError):
            self.registry.set_tier_validity(ADMIN, Tier.GOLD, duration)
        assert self.registry.tier_validity(Tier.GOLD) == 180 * SECONDS_PER_DAY
        assert self.sink.events == []

    def test_issuer_is_not_admin(self):
        with pytest.raises(UnauthorizedError):
            self.registry.set_tier_validity(ISSUER, Tier.GOLD, 10)

    def test_constructor_rejects_non_positive_override(self):
        with pytest.raises(InvalidDurationError):
            MembershipRegistry(self.engine, tier_validity={Tier.GOLD: 0})


class TestAdministration(RegistryTestBase):
    def test_add_and_remove_issuer(self):
        self.registry.add_issuer(ADMIN, ALICE)
        assert self.registry.is_issuer(ALICE)
        self.registry.issue(ALICE, BOB, Tier.BRONZE)

        self.registry.remove_issuer(ADMIN, ALICE)
        assert not self.registry.is_issuer(ALICE)
        with pytest.raises(UnauthorizedError):
            self.registry.issue(ALICE, CAROL, Tier.BRONZE)

    def test_only_admin_manages_issuers(self):
        with pytest.raises(UnauthorizedError):
            self.registry.add_issuer(ISSUER, ALICE)

    def test_only_pauser_pauses(self):
        with pytest.raises(UnauthorizedError):
            self.registry.pause(ISSUER)
        assert not self.registry.paused

    def test_token_uri_resolution(self):
        self.registry.set_base_uri(ADMIN, "https://api.example.com/metadata/")
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE, metadata_ref="ipfs://bronze/1")
        self.registry.issue(ISSUER, BOB, Tier.BRONZE)
        assert self.registry.token_uri(1) == "ipfs://bronze/1"
        assert self.registry.token_uri(2) == "https://api.example.com/metadata/2"

    def test_collection_name_and_symbol(self):
        assert self.registry.name == "NFT Membership Badges"
        assert self.registry.symbol == "BADGE"
        custom = MembershipRegistry(self.engine, name="Guild Passes", symbol="GUILD")
        assert (custom.name, custom.symbol) == ("Guild Passes", "GUILD")

    def test_total_supply_tracks_live_badges(self):
        assert self.registry.total_supply() == 0
        self.registry.issue(ISSUER, ALICE, Tier.BRONZE)
        assert self.registry.total_supply() == 1
        self.registry.issue(ISSUER, BOB, Tier.SILVER)
        assert self.registry.total_supply() == 2
        self.registry.revoke(ISSUER, 1)
        assert self.registry.total_supply() == 1


class TestQueries(RegistryTestBase):
    def test_zero_shape_for_unknown_owner(self):
        active = self.registry.get_active_membership(ALICE)
        assert active.membership_id == 0
        assert active.expires_at == 0
        assert active.valid is False
        assert self.registry.has_valid_membership(ALICE) is False

    def test_info_for_unknown_id(self):
        with pytest.raises(NotFoundError):
            self.registry.get_membership_info(0)


class TestInvariantUnderLoad(RegistryTestBase):
    def test_mixed_sequence_preserves_invariant(self):
        people = [ALICE, BOB, CAROL, DAVE, ERIN]
        for i, person in enumerate(people):
            self.registry.issue(ISSUER, person, Tier(i % 5), custom_expiry=self.clock.now() + 100 * (i + 1))
        self.registry.issue(ISSUER, ALICE, Tier.DIAMOND)
        self.registry.transfer(BOB, BOB, CAROL, 2)
        self.clock.advance(450)
        for membership in self.registry.memberships():
            self.registry.check_and_expire(membership.id)
        self.registry.transfer(ERIN, ERIN, ALICE, 5)
        assert self.registry.active_membership_id(ALICE) == 5
        assert_invariants(self.registry, people)

        self.registry.revoke(ISSUER, 5)
        assert self.registry.active_membership_id(ALICE) == 0
        assert_invariants(self.registry, people)

    def test_concurrent_issuance_to_one_recipient(self):
        errors = []

        def worker():
            try:
                for _ in range(20):
                    self.registry.issue(ISSUER, ALICE, Tier.SILVER)
            except Exception as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert self.registry.next_id == 81
        assert self.registry.total_supply() == 1
        assert self.registry.get_active_membership(ALICE).membership_id == 80
        assert_invariants(self.registry, [ALICE])
