"""Registry: the rules and theorems known to a session, keyed by id."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from nd_workbench.core.errors import RegistryConflict, UnknownRoth
from nd_workbench.rules.roth import (
    BackwardStructure,
    ForwardStructure,
    Roth,
    compile_backward,
    compile_forward,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryEntry:
    roth: Roth
    forward: ForwardStructure
    backward: BackwardStructure


class Registry:
    """Dict-backed collection of compiled roths.

    Read-only after loading except through register(), which is serialized
    by a lock. Entries are immutable, so clones share them.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    def register(self, roth: Roth) -> RegistryEntry:
        """Compile and add ``roth``. Raises RegistryConflict on a duplicate id."""
        entry = RegistryEntry(
            roth=roth,
            forward=compile_forward(roth),
            backward=compile_backward(roth),
        )
        with self._lock:
            if roth.id in self._entries:
                logger.warning("rejected duplicate %s '%s'", roth.kind, roth.id)
                raise RegistryConflict(roth.id)
            self._entries[roth.id] = entry
        logger.debug("registered %s '%s'", roth.kind, roth.id)
        return entry

    def replace(self, roth: Roth) -> RegistryEntry:
        """Register ``roth``, overwriting any entry with the same id."""
        entry = RegistryEntry(
            roth=roth,
            forward=compile_forward(roth),
            backward=compile_backward(roth),
        )
        with self._lock:
            self._entries[roth.id] = entry
        logger.debug("replaced %s '%s'", roth.kind, roth.id)
        return entry

    def entry(self, roth_id: str) -> RegistryEntry:
        try:
            return self._entries[roth_id]
        except KeyError:
            raise UnknownRoth(roth_id) from None

    def get(self, roth_id: str) -> Roth:
        return self.entry(roth_id).roth

    def ids(self) -> list[str]:
        """All ids in registration order."""
        return list(self._entries)

    def rules(self, logic: str | None = None) -> list[Roth]:
        return [
            e.roth for e in self._entries.values()
            if not e.roth.is_theorem and (logic is None or e.roth.logic == logic)
        ]

    def theorems(self) -> list[Roth]:
        return [e.roth for e in self._entries.values() if e.roth.is_theorem]

    def clone(self) -> "Registry":
        new = Registry()
        new._entries = dict(self._entries)
        return new

    def __contains__(self, roth_id: object) -> bool:
        return roth_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())
