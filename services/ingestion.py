"""Authorize, validate, persist and broadcast incoming device readings."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Sequence

from app.schemas import Reading
from datastore.reading_store import ReadingStore, build_default_store, utc_now
from models.errors import BadRequestError, UnauthorizedError
from models.records import SensorSample, is_finite_number
from services.broadcast import BroadcastHub, build_default_hub
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_DEVICE_FIELDS: tuple[str, ...] = ("deviceId",)
MAX_CLOCK_SKEW = timedelta(seconds=60)


class IngestionGateway:
    """Single entry point for device writes.

    A reading is handed to the broadcast hub only after the store has durably
    accepted it, so anything a viewer sees live is already in history.
    """

    def __init__(
        self,
        store: ReadingStore,
        hub: BroadcastHub,
        api_key: Optional[str],
        default_device_id: str = "esp32-1",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.hub = hub
        self._api_key = api_key
        self.default_device_id = default_device_id
        self._clock = clock

    def ingest(
        self,
        credential: Optional[str],
        payload: Any,
        device_fields: Sequence[str] = DEFAULT_DEVICE_FIELDS,
    ) -> Reading:
        self.authorize(credential)
        sample = self.parse_payload(payload, device_fields)
        reading = self.store.insert(sample)
        delivered = self.hub.publish(reading)
        logger.info(
            "Reading ingested",
            extra={
                "reading_id": reading.id,
                "device_id": reading.device_id,
                "subscriber_count": delivered,
            },
        )
        return reading

    def authorize(self, credential: Optional[str]) -> None:
        if not self._api_key:
            logger.warning("Rejecting ingest: no API key configured on the server")
            raise UnauthorizedError("Unauthorized")
        if not credential or not hmac.compare_digest(
            credential.encode("utf-8"), self._api_key.encode("utf-8")
        ):
            raise UnauthorizedError("Unauthorized")

    def parse_payload(self, payload: Any, device_fields: Sequence[str]) -> SensorSample:
        if not isinstance(payload, Mapping):
            raise BadRequestError("Request body must be a JSON object.")

        invalid = [
            name for name in ("temperature", "humidity") if not is_finite_number(payload.get(name))
        ]
        if invalid:
            raise BadRequestError("temperature & humidity must be numbers", fields=invalid)

        timestamp: Optional[datetime] = None
        raw_timestamp = payload.get("timestamp")
        if raw_timestamp is not None:
            try:
                timestamp = _parse_timestamp(raw_timestamp)
            except ValueError as exc:
                raise BadRequestError(str(exc), fields=["timestamp"]) from exc
            if timestamp - self._clock() > MAX_CLOCK_SKEW:
                raise BadRequestError("timestamp is in the future", fields=["timestamp"])

        return SensorSample(
            device_id=self._resolve_device(payload, device_fields),
            temperature=payload["temperature"],
            humidity=payload["humidity"],
            timestamp=timestamp,
        )

    def _resolve_device(self, payload: Mapping[str, Any], device_fields: Sequence[str]) -> str:
        for name in device_fields:
            value = payload.get(name)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return self.default_device_id


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError("timestamp must be an ISO-8601 string")
    candidate = value.strip()
    if not candidate:
        raise ValueError("timestamp is empty")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError("Invalid timestamp format") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


@lru_cache
def build_default_gateway() -> IngestionGateway:
    settings = get_settings()
    return IngestionGateway(
        store=build_default_store(),
        hub=build_default_hub(),
        api_key=settings.api_key,
        default_device_id=settings.default_device_id,
    )
