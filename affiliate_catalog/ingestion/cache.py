"""
Run Cache Module
================

Explicit lookup cache owned by one orchestrator run and passed to the
components that need it, so independent pipelines never share state.

Entries learned inside an item's transaction are staged until the caller
commits; a rollback discards them, so the cache never points at rows that
were rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CacheStats:
    """Hit/miss counters for a run cache."""

    hits: int = 0
    misses: int = 0


@dataclass
class RunCache:
    """Per-run cache of performer ids and normalized product ids."""

    _performer_ids: dict[str, str] = field(default_factory=dict)
    _pending_performer_ids: dict[str, str] = field(default_factory=dict)
    _normalized_ids: dict[tuple[str, str], str] = field(default_factory=dict)
    stats: CacheStats = field(default_factory=CacheStats)

    def get_performer_id(self, name: str) -> str | None:
        """Look up a performer id by normalized name."""
        performer_id = self._pending_performer_ids.get(name) or self._performer_ids.get(name)
        if performer_id is None:
            self.stats.misses += 1
        else:
            self.stats.hits += 1
        return performer_id

    def remember_performer(self, name: str, performer_id: str) -> None:
        """Stage a performer id until the current transaction commits."""
        self._pending_performer_ids[name] = performer_id

    def get_normalized_id(self, family: str, code: str) -> str | None:
        """Look up a previously computed normalized product id."""
        return self._normalized_ids.get((family, code))

    def remember_normalized_id(self, family: str, code: str, normalized_id: str) -> None:
        # Pure function of its inputs, safe to keep across rollbacks
        self._normalized_ids[(family, code)] = normalized_id

    def commit(self) -> None:
        """Promote staged entries after the caller's transaction commits."""
        self._performer_ids.update(self._pending_performer_ids)
        self._pending_performer_ids.clear()

    def rollback(self) -> None:
        """Drop staged entries after the caller's transaction rolls back."""
        self._pending_performer_ids.clear()

    def clear(self) -> None:
        """Forget everything."""
        self._performer_ids.clear()
        self._pending_performer_ids.clear()
        self._normalized_ids.clear()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._performer_ids) + len(self._normalized_ids)
