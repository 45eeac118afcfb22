"""Registry error hierarchy. Every failed operation leaves state untouched."""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for all registry failures."""

    kind = "RegistryError"


class UnauthorizedError(RegistryError):
    """Raised when the caller lacks the required capability."""

    kind = "Unauthorized"

    def __init__(self, identity: str | None, capability: str) -> None:
        self.identity = identity
        self.capability = capability
        super().__init__(f"{identity!r} lacks capability '{capability}'")


class NotFoundError(RegistryError):
    """Raised for a nonexistent or already destroyed membership id."""

    kind = "NotFound"

    def __init__(self, membership_id: int) -> None:
        self.membership_id = membership_id
        super().__init__(f"Nonexistent membership: {membership_id}")


class ZeroRecipientError(RegistryError):
    kind = "ZeroRecipient"

    def __init__(self) -> None:
        super().__init__("Cannot issue to the null identity")


class InvalidExpiryError(RegistryError):
    kind = "InvalidExpiry"

    def __init__(self, expires_at: int, now: int) -> None:
        self.expires_at = expires_at
        self.now = now
        super().__init__(
            f"Expiry must be in the future: expires_at={expires_at} now={now}"
        )


class InvalidDurationError(RegistryError):
    kind = "InvalidDuration"

    def __init__(self, duration: int) -> None:
        self.duration = duration
        super().__init__(f"Tier validity must be positive, got {duration}")


class NotOperationalError(RegistryError):
    """Raised when the registry is paused."""

    kind = "NotOperational"

    def __init__(self, message: str = "Registry is paused") -> None:
        super().__init__(message)


class InvalidGrantError(RegistryError):
    """Raised for a capability change the engine refuses to apply."""

    kind = "InvalidGrant"

    def __init__(self, message: str) -> None:
        super().__init__(message)
