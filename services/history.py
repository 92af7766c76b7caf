"""Read-side facade used to seed a viewer's initial view."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Union

from app.schemas import Reading
from datastore.reading_store import MAX_RECENT_LIMIT, ReadingStore, build_default_store

DEFAULT_RECENT_LIMIT = 50


class HistoryService:

    def __init__(
        self,
        store: ReadingStore,
        default_limit: int = DEFAULT_RECENT_LIMIT,
        max_limit: int = MAX_RECENT_LIMIT,
    ) -> None:
        self.store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def resolve_limit(self, raw: Union[str, int, None]) -> int:
        """Clamp a caller-supplied limit; missing or invalid values use the default."""
        if raw is None or isinstance(raw, bool):
            return self.default_limit
        try:
            limit = int(str(raw).strip())
        except ValueError:
            return self.default_limit
        if limit <= 0:
            return self.default_limit
        return min(limit, self.max_limit)

    def latest(self) -> Optional[Reading]:
        return self.store.latest()

    def recent(self, limit: Union[str, int, None] = None) -> list[Reading]:
        """Newest readings in ascending time order, ready to append to a series."""
        return self.store.recent(self.resolve_limit(limit))


@lru_cache
def build_default_history() -> HistoryService:
    return HistoryService(store=build_default_store())
