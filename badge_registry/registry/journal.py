"""
Undo journal — all-or-nothing semantics for registry operations.

Every write to registry, custody, or metadata state goes through a Journal.
The journal remembers the previous value of each key it touches; if the
enclosing operation fails, `rollback()` restores those values in reverse
order so no partial change survives.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, MutableMapping

logger = logging.getLogger(__name__)

_MISSING = object()


class Journal:
    """Records inverse actions for a single transaction."""

    def __init__(self) -> None:
        self._undo: list[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._undo)

    def record(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def set_item(self, mapping: MutableMapping, key: Any, value: Any) -> None:
        """`mapping[key] = value`, remembering the previous value."""
        previous = mapping.get(key, _MISSING)
        mapping[key] = value
        self.record(lambda: _restore(mapping, key, previous))

    def pop_item(self, mapping: MutableMapping, key: Any) -> Any:
        """`mapping.pop(key)`, remembering the removed value."""
        previous = mapping.pop(key)
        self.record(lambda: _restore(mapping, key, previous))
        return previous

    def set_attr(self, obj: Any, name: str, value: Any) -> None:
        previous = getattr(obj, name)
        setattr(obj, name, value)
        self.record(lambda: setattr(obj, name, previous))

    def rollback(self) -> None:
        count = len(self._undo)
        while self._undo:
            self._undo.pop()()
        if count:
            logger.debug("Journal rolled back %d change(s)", count)

    def commit(self) -> None:
        self._undo.clear()


def _restore(mapping: MutableMapping, key: Any, previous: Any) -> None:
    if previous is _MISSING:
        mapping.pop(key, None)
    else:
        mapping[key] = previous
