"""
Pause Switch — halts issuance and transfers while an incident is handled.

While paused, the registry refuses to issue badges or move custody. Revocation,
expiry checks, and all reads keep working so that an operator can still
clean up during an incident.
"""

from __future__ import annotations

import logging

from badge_registry.governance.permissions import Authorizer
from badge_registry.registry.errors import (
    NotOperationalError,
    RegistryError,
    UnauthorizedError,
)
from badge_registry.registry.schema import Capability

logger = logging.getLogger(__name__)


class PauseStateError(RegistryError):
    """Raised when pausing a paused registry or unpausing a running one."""

    kind = "InvalidPauseState"


class PauseSwitch:
    """Operational flag gated by the PAUSER capability."""

    def __init__(self, authorizer: Authorizer, paused: bool = False) -> None:
        self.authorizer = authorizer
        self.paused = paused

    def is_operational(self) -> bool:
        return not self.paused

    def require_operational(self) -> None:
        if self.paused:
            raise NotOperationalError()

    def pause(self, caller: str) -> None:
        """Pause the registry. Pausing twice is an error."""
        self._require_pauser(caller)
        if self.paused:
            raise PauseStateError("Registry is already paused")
        self.paused = True
        logger.warning("Registry paused by %s", caller)

    def unpause(self, caller: str) -> None:
        """Resume the registry. Unpausing an operational registry is an error."""
        self._require_pauser(caller)
        if not self.paused:
            raise PauseStateError("Registry is not paused")
        self.paused = False
        logger.info("Registry unpaused by %s", caller)

    def _require_pauser(self, caller: str) -> None:
        if not self.authorizer.check_capability(caller, Capability.PAUSER):
            raise UnauthorizedError(caller, Capability.PAUSER.value)
