"""
Handler registries for open extensibility.

A registry maps a type key to a handler. Shape keys may be composite
('event:start'); lookups for a composite key fall back to the base type
('event') when no sub-type specific handler is registered. Built-in
handlers are seeded through a callback so `reset()` can restore them
after tests or plugins have changed the table.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

H = TypeVar("H")


@dataclass
class RegistryEntry(Generic[H]):
    """A registered handler and its human-readable name."""
    key: str
    handler: H
    display_name: str


class HandlerRegistry(Generic[H]):
    """Mutable map from type key to handler, seeded with built-ins."""

    def __init__(self, name: str, seed: Optional[Callable[["HandlerRegistry[H]"], None]] = None):
        self.name = name
        self._seed = seed
        self._entries: dict[str, RegistryEntry[H]] = {}
        if seed is not None:
            seed(self)

    def register(self, key: str, handler: H, display_name: Optional[str] = None):
        """Register (or replace) the handler for a key."""
        if key in self._entries:
            logger.debug("%s: replacing handler for %r", self.name, key)
        self._entries[key] = RegistryEntry(key=key, handler=handler, display_name=display_name or key)

    def unregister(self, key: str) -> bool:
        """Remove a handler. Returns False if the key was not registered."""
        return self._entries.pop(key, None) is not None

    def get(self, key: str) -> Optional[H]:
        """
        Look up a handler, falling back from 'type:subType' to 'type'.

        Returns:
            The handler, or None if neither key is registered
        """
        entry = self._entries.get(key)
        if entry is None and ":" in key:
            entry = self._entries.get(key.split(":", 1)[0])
        return entry.handler if entry else None

    def has(self, key: str) -> bool:
        """Check for an exact registration (no fallback)."""
        return key in self._entries

    def display_name(self, key: str) -> str:
        entry = self._entries.get(key)
        return entry.display_name if entry else key

    def keys(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> list[RegistryEntry[H]]:
        return list(self._entries.values())

    def clear(self):
        self._entries.clear()

    def reset(self):
        """Drop all registrations and re-seed the built-ins."""
        self._entries.clear()
        if self._seed is not None:
            self._seed(self)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
