"""
Custody Ledger — who holds which badge id.

The custody ledger is the source of truth for badge custody. The registry
mints and burns through it, and every transfer calls the registry's
`before_transfer` hook before custody actually moves, so a failure in the
hook aborts the transfer with custody unchanged.

The ledger keeps no lock of its own: the registry serializes every call.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable

from badge_registry.registry.errors import (
    NotFoundError,
    RegistryError,
    UnauthorizedError,
)
from badge_registry.registry.journal import Journal
from badge_registry.registry.schema import is_null_identity

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, int], None]


class CustodyError(RegistryError):
    """Raised for an invalid custody change (wrong sender, null recipient)."""

    kind = "InvalidTransfer"


class CustodyLedger:
    """In-process custody bookkeeping for badge ids."""

    def __init__(self, before_transfer: TransferHook | None = None) -> None:
        self.before_transfer = before_transfer
        self._owners: dict[int, str] = {}
        self._balances: dict[str, int] = defaultdict(int)
        self._approvals: dict[int, str] = {}

    # ── Queries ─────────────────────────────────────────────────

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise NotFoundError(token_id)
        return owner

    def balance_of(self, identity: str) -> int:
        return self._balances.get(identity, 0)

    def total_supply(self) -> int:
        return len(self._owners)

    def get_approved(self, token_id: int) -> str | None:
        self.owner_of(token_id)
        return self._approvals.get(token_id)

    # ── Mutations ───────────────────────────────────────────────

    def mint(self, recipient: str, token_id: int, journal: Journal) -> None:
        if is_null_identity(recipient):
            raise CustodyError("Cannot mint to the null identity")
        if token_id in self._owners:
            raise CustodyError(f"Badge {token_id} already minted")
        journal.set_item(self._owners, token_id, recipient)
        journal.set_item(self._balances, recipient, self.balance_of(recipient) + 1)

    def burn(self, token_id: int, journal: Journal) -> None:
        owner = self.owner_of(token_id)
        journal.pop_item(self._owners, token_id)
        journal.set_item(self._balances, owner, self.balance_of(owner) - 1)
        if token_id in self._approvals:
            journal.pop_item(self._approvals, token_id)

    def approve(
        self, caller: str, operator: str, token_id: int, journal: Journal
    ) -> None:
        owner = self.owner_of(token_id)
        if caller != owner:
            raise UnauthorizedError(caller, "owner")
        journal.set_item(self._approvals, token_id, operator)

    def transfer(
        self,
        operator: str,
        sender: str,
        recipient: str,
        token_id: int,
        journal: Journal,
    ) -> None:
        """
        Move custody of `token_id` from `sender` to `recipient`.

        The operator must be the custodian or the approved address for the
        badge. The `before_transfer` hook runs after validation and before
        any custody change.
        """
        owner = self.owner_of(token_id)
        if owner != sender:
            raise CustodyError(
                f"Badge {token_id} is held by {owner!r}, not {sender!r}"
            )
        if is_null_identity(recipient):
            raise CustodyError("Cannot transfer to the null identity")
        if operator != owner and self._approvals.get(token_id) != operator:
            raise UnauthorizedError(operator, "custodian")

        if self.before_transfer is not None:
            self.before_transfer(sender, recipient, token_id)

        if token_id in self._approvals:
            journal.pop_item(self._approvals, token_id)
        journal.set_item(self._balances, sender, self.balance_of(sender) - 1)
        journal.set_item(self._balances, recipient, self.balance_of(recipient) + 1)
        journal.set_item(self._owners, token_id, recipient)

        logger.info(
            "Badge custody moved: id=%d from=%s to=%s", token_id, sender, recipient
        )
