"""Derived-value cache keyed by contract/account identity."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Hashable, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A contract or account whose on-chain state derived values depend on."""

    kind: str
    address: str

    @classmethod
    def pool(cls, address: str) -> Identity:
        return cls("pool", address.lower())

    @classmethod
    def account(cls, address: str) -> Identity:
        return cls("account", address.lower())


@dataclass
class _Entry:
    value: Any
    ticket: int
    depends_on: frozenset[Identity]


class DerivedCache:
    """Cache of derived values with a dependency map for invalidation.

    Every read takes a ticket before it starts. A finished read is stored
    only if no newer read for the same key has been stored and none of its
    dependencies were invalidated after the ticket was taken, so racing
    refreshes converge on the latest state.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}
        self._invalidated_at: dict[Identity, int] = {}
        self._counter = itertools.count(1)

    def ticket(self) -> int:
        return next(self._counter)

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def put(self, key: Hashable, value: Any, depends_on: Iterable[Identity], ticket: int) -> bool:
        """Store ``value`` unless it is older than what is cached or was invalidated mid-read."""
        deps = frozenset(depends_on)
        if any(self._invalidated_at.get(d, 0) > ticket for d in deps):
            logger.debug("Discarding stale read for %s (ticket %d)", key, ticket)
            return False
        current = self._entries.get(key)
        if current is not None and current.ticket > ticket:
            return False
        self._entries[key] = _Entry(value=value, ticket=ticket, depends_on=deps)
        return True

    def invalidate(self, identities: Iterable[Identity]) -> list[Hashable]:
        """Drop every entry depending on any of ``identities`` in one step."""
        targets = set(identities)
        stamp = self.ticket()
        for identity in targets:
            self._invalidated_at[identity] = stamp
        dropped = [k for k, e in self._entries.items() if e.depends_on & targets]
        for key in dropped:
            del self._entries[key]
        logger.debug("Invalidated %d cache entries for %s", len(dropped), targets)
        return dropped

    def clear(self) -> None:
        self._entries.clear()
