"""
Capability Enforcement — role grants checked before privileged operations.

The registry never inherits access-control behaviour. It is handed an
authorizer and asks it one question before every privileged mutation:

    check_capability(identity, capability) -> bool

Capabilities:

- ADMIN:  grant/revoke capabilities, tier validity, base URI
- ISSUER: issue and revoke badges
- PAUSER: pause and unpause the registry

The bootstrap admin receives all three capabilities at construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol

from badge_registry.registry.errors import InvalidGrantError, UnauthorizedError
from badge_registry.registry.schema import Capability, is_null_identity

logger = logging.getLogger(__name__)


class Authorizer(Protocol):
    """What the registry requires from an authorization collaborator."""

    def check_capability(self, identity: str | None, capability: Capability) -> bool: ...


class CapabilityDecision(str, Enum):
    """Result of a capability check."""

    GRANTED = "granted"
    DENIED = "denied"


@dataclass
class CapabilityCheckResult:
    """Result of checking an identity against a capability."""

    decision: CapabilityDecision
    identity: str | None
    capability: Capability
    reason: str

    @property
    def is_allowed(self) -> bool:
        return self.decision == CapabilityDecision.GRANTED


class CapabilityEngine:
    """
    Central capability registry.

    Holds the set of identities granted each capability. Only an ADMIN may
    change grants; an admin may not revoke its own ADMIN capability, so the
    registry can never be left without an administrator.
    """

    def __init__(
        self,
        admin: str,
        grants: dict[Capability, Iterable[str]] | None = None,
    ) -> None:
        """
        Initialize with a bootstrap admin.

        Args:
            admin: Identity granted every capability.
            grants: Additional initial grants per capability.
        """
        if is_null_identity(admin):
            raise ValueError("Bootstrap admin must be a non-null identity")
        self.grants: dict[Capability, set[str]] = {c: set() for c in Capability}
        for capability in Capability:
            self.grants[capability].add(admin)
        for capability, identities in (grants or {}).items():
            self.grants[Capability(capability)].update(identities)

    def check(self, identity: str | None, capability: Capability) -> CapabilityCheckResult:
        """Check a capability and explain the outcome."""
        if is_null_identity(identity):
            return CapabilityCheckResult(
                decision=CapabilityDecision.DENIED,
                identity=identity,
                capability=capability,
                reason="Null identity holds no capabilities",
            )
        if identity in self.grants[capability]:
            return CapabilityCheckResult(
                decision=CapabilityDecision.GRANTED,
                identity=identity,
                capability=capability,
                reason=f"{identity} holds '{capability.value}'",
            )
        return CapabilityCheckResult(
            decision=CapabilityDecision.DENIED,
            identity=identity,
            capability=capability,
            reason=f"{identity} does not hold '{capability.value}'",
        )

    def check_capability(self, identity: str | None, capability: Capability) -> bool:
        return self.check(identity, capability).is_allowed

    def require(self, identity: str | None, capability: Capability) -> None:
        """Raise UnauthorizedError unless `identity` holds `capability`."""
        result = self.check(identity, capability)
        if not result.is_allowed:
            logger.warning("Capability denied: %s", result.reason)
            raise UnauthorizedError(identity, capability.value)

    def grant(self, caller: str, identity: str, capability: Capability) -> None:
        """Grant a capability (admin only)."""
        self.require(caller, Capability.ADMIN)
        if is_null_identity(identity):
            raise InvalidGrantError("Cannot grant a capability to the null identity")
        self.grants[capability].add(identity)
        logger.info("Capability granted: %s -> %s by %s", capability.value, identity, caller)

    def revoke_grant(self, caller: str, identity: str, capability: Capability) -> None:
        """Revoke a capability (admin only). Revoking a missing grant is a no-op."""
        self.require(caller, Capability.ADMIN)
        if capability == Capability.ADMIN and identity == caller:
            raise InvalidGrantError("An admin cannot revoke its own admin capability")
        self.grants[capability].discard(identity)
        logger.info("Capability revoked: %s -> %s by %s", capability.value, identity, caller)

    def holders(self, capability: Capability) -> set[str]:
        """Return every identity holding `capability`."""
        return set(self.grants[capability])
