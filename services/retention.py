"""Background removal of readings past the retention window."""

from __future__ import annotations

import logging
from functools import lru_cache
from threading import Event, Thread
from typing import Optional

from datastore.reading_store import ReadingStore, build_default_store
from settings import get_settings

logger = logging.getLogger(__name__)


class RetentionReaper:
    """Periodically calls :meth:`ReadingStore.purge_expired` on its own thread."""

    def __init__(self, store: ReadingStore, interval_seconds: float = 60.0) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop = Event()
        self._thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        try:
            return self.store.purge_expired()
        except OSError as exc:
            logger.error("Retention sweep failed", extra={"reason": str(exc)})
            return 0

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name="retention-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()


@lru_cache
def build_default_reaper() -> RetentionReaper:
    settings = get_settings()
    return RetentionReaper(
        store=build_default_store(),
        interval_seconds=settings.reaper_interval_seconds,
    )
