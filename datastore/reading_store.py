from __future__ import annotations
import json
import logging
from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import ValidationError

from app.schemas import Reading
from models.errors import InvalidReadingError, PersistenceError
from models.records import SensorSample, is_finite_number
from settings import get_settings

logger = logging.getLogger(__name__)

MAX_RECENT_LIMIT = 500
DEFAULT_RETENTION = timedelta(minutes=30)

_SortKey = Tuple[datetime, int]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReadingStore:
    """Time-ordered, expiring collection of readings.

    Readings are kept sorted by ``(timestamp, insertion sequence)``. Anything
    older than the retention window is filtered out of every read and removed
    for good by :meth:`purge_expired`.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.retention = retention
        self._clock = clock
        self._readings: List[Reading] = []
        self._keys: List[_SortKey] = []
        self._by_id: Dict[str, Reading] = {}
        self._device_index: Dict[str, List[str]] = {}
        self._sequence = 0
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, sample: SensorSample) -> Reading:
        """Validate ``sample``, assign its id and timestamp, and persist it."""
        invalid = [
            name
            for name in ("temperature", "humidity")
            if not is_finite_number(getattr(sample, name))
        ]
        if not isinstance(sample.device_id, str) or not sample.device_id:
            invalid.append("device_id")
        if sample.timestamp is not None and not isinstance(sample.timestamp, datetime):
            invalid.append("timestamp")
        if invalid:
            raise InvalidReadingError(
                f"Invalid reading fields: {', '.join(invalid)}", fields=invalid
            )

        timestamp = sample.timestamp or self._clock()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        reading = Reading(
            id=str(uuid4()),
            device_id=sample.device_id,
            temperature=float(sample.temperature),
            humidity=float(sample.humidity),
            timestamp=timestamp.astimezone(timezone.utc),
        )

        with self._lock:
            self._add(reading)
            try:
                self._persist()
            except OSError as exc:
                self._discard(reading.id)
                raise PersistenceError(
                    f"Failed to persist reading to {self.persistence_path}"
                ) from exc
        return reading

    def latest(self) -> Optional[Reading]:
        with self._lock:
            start = self._first_live_index()
            if start >= len(self._readings):
                return None
            return self._readings[-1]

    def recent(self, limit: int) -> list[Reading]:
        """Return up to ``limit`` of the newest live readings, oldest first."""
        limit = max(0, min(limit, MAX_RECENT_LIMIT))
        if limit == 0:
            return []
        with self._lock:
            start = max(self._first_live_index(), len(self._readings) - limit)
            return self._readings[start:]

    def count(self, device_id: Optional[str] = None) -> int:
        with self._lock:
            cutoff = self._cutoff()
            if device_id is None:
                return len(self._readings) - self._first_live_index()
            ids = self._device_index.get(device_id, [])
            return sum(1 for reading_id in ids if self._by_id[reading_id].timestamp >= cutoff)

    def purge_expired(self) -> int:
        """Physically drop expired readings and return how many were removed."""
        with self._lock:
            start = self._first_live_index()
            if start == 0:
                return 0
            expired = self._readings[:start]
            del self._readings[:start]
            del self._keys[:start]
            for reading in expired:
                self._unindex(reading)
            self._persist()
        logger.info("Purged expired readings", extra={"purged": len(expired)})
        return len(expired)

    def _cutoff(self) -> datetime:
        return self._clock() - self.retention

    def _first_live_index(self) -> int:
        return bisect_left(self._keys, (self._cutoff(), -1))

    def _add(self, reading: Reading) -> None:
        key = (reading.timestamp, self._sequence)
        self._sequence += 1
        position = bisect_right(self._keys, key)
        self._keys.insert(position, key)
        self._readings.insert(position, reading)
        self._by_id[reading.id] = reading
        self._device_index.setdefault(reading.device_id, []).append(reading.id)

    def _discard(self, reading_id: str) -> None:
        reading = self._by_id.get(reading_id)
        if reading is None:
            return
        position = self._readings.index(reading)
        del self._readings[position]
        del self._keys[position]
        self._unindex(reading)

    def _unindex(self, reading: Reading) -> None:
        self._by_id.pop(reading.id, None)
        ids = self._device_index.get(reading.device_id)
        if ids is None:
            return
        ids.remove(reading.id)
        if not ids:
            del self._device_index[reading.device_id]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [reading.to_wire() for reading in self._readings]
        staging = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        staging.write_text(json.dumps(payload, indent=2))
        staging.replace(self.persistence_path)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, ValueError):
            logger.warning(
                "Ignoring unreadable readings file",
                extra={"reason": str(self.persistence_path)},
            )
            data = []

        if not isinstance(data, list):
            data = []
        for position, payload in enumerate(data):
            try:
                reading = Reading.model_validate(payload)
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed stored reading",
                    extra={"reason": f"entry {position}: {exc.error_count()} errors"},
                )
                continue
            self._add(reading)


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(
        name="readings",
        persistence_path=persistence,
        retention=timedelta(seconds=settings.retention_seconds),
    )
