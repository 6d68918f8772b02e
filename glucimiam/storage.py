"""
Record stores consumed by the analyzer.

The application owns the real persistence engine; the analyzer only needs
append/read access scoped to one record at a time. The in-memory classes
below implement those ports for tests and single-process deployments.

Thread safety: appends are single list/dict operations, no cross-record
transaction is ever needed.
Persistence: data is lost on process restart.
Growth: the cache store keeps at most max_entries_per_user entries per user,
oldest dropped first; correction samples are unbounded.
"""

from copy import deepcopy
from typing import Dict, List, Protocol

from glucimiam.models import CacheEntry, CorrectionSample


class CacheStore(Protocol):
    def add(self, entry: CacheEntry) -> None: ...

    def list_for_user(self, user_id: str) -> List[CacheEntry]: ...


class CorrectionStore(Protocol):
    def add(self, sample: CorrectionSample) -> None: ...

    def recent(self, user_id: str, food_name: str, limit: int) -> List[CorrectionSample]: ...


DEFAULT_MAX_ENTRIES_PER_USER = 50


class InMemoryCacheStore:
    def __init__(self, max_entries_per_user: int = DEFAULT_MAX_ENTRIES_PER_USER) -> None:
        if max_entries_per_user < 1:
            raise ValueError("max_entries_per_user must be at least 1")
        self.max_entries_per_user = max_entries_per_user
        self._entries: Dict[str, List[CacheEntry]] = {}

    def add(self, entry: CacheEntry) -> None:
        entries = self._entries.setdefault(entry.user_id, [])
        entries.append(deepcopy(entry))
        del entries[: -self.max_entries_per_user]

    def list_for_user(self, user_id: str) -> List[CacheEntry]:
        return [deepcopy(e) for e in self._entries.get(user_id, [])]


class InMemoryCorrectionStore:
    def __init__(self) -> None:
        self._samples: List[CorrectionSample] = []

    def add(self, sample: CorrectionSample) -> None:
        self._samples.append(sample)

    def recent(self, user_id: str, food_name: str, limit: int) -> List[CorrectionSample]:
        """Most recent samples first, at most ``limit``."""
        matching = [
            s for s in self._samples if s.user_id == user_id and s.food_name == food_name
        ]
        matching.sort(key=lambda s: s.created_at, reverse=True)
        return matching[:limit]
