"""
MemoryWindow — short-term conversation memory for one provider session.

Bounded two ways, both enforced on every insert:
- age: entries older than window_seconds are evicted first
- size: then the oldest entries are trimmed down to capacity

One instance per logical session. Not safe for concurrent mutation; the
session that owns it serializes its requests.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

HEADER = "Recent conversation:"
EMPTY_CONTEXT = "No recent conversation context"

ROLE_LABELS = {
    "client": "Manager",
    "assistant": "Assistant",
    "vision": "Visual",
}


@dataclass(frozen=True)
class MemoryEntry:
    role: str
    content: str
    timestamp: float


class MemoryWindow:
    def __init__(
        self,
        capacity: int = 10,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.window_seconds = window_seconds
        self._clock = clock
        self._entries: list[MemoryEntry] = []

    def append(self, content: str, role: str = "user") -> None:
        self._entries.append(MemoryEntry(role=role, content=content, timestamp=self._clock()))
        self._evict_expired()
        if len(self._entries) > self.capacity:
            self._entries = self._entries[-self.capacity :]

    def render_context(self) -> str:
        self._evict_expired()
        if not self._entries:
            return EMPTY_CONTEXT
        lines = [HEADER]
        for entry in self._entries:
            label = ROLE_LABELS.get(entry.role, "User")
            lines.append(f"{label}: {entry.content}")
        return "\n".join(lines)

    def entries(self) -> list[MemoryEntry]:
        """Oldest-first snapshot (does not evict)."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict_expired(self) -> None:
        now = self._clock()
        self._entries = [e for e in self._entries if now - e.timestamp <= self.window_seconds]
