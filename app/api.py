"""HTTP route definitions for the service."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from app.schemas import ErrorDetail, HealthResponse, IngestResponse, Reading
from models.errors import (
    BadRequestError,
    InvalidReadingError,
    PayloadTooLargeError,
    PersistenceError,
    UnauthorizedError,
)
from services.history import HistoryService, build_default_history
from services.ingestion import IngestionGateway, build_default_gateway

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_BODY_BYTES = 256 * 1024


def get_gateway() -> IngestionGateway:
    return build_default_gateway()


def get_history() -> HistoryService:
    return build_default_history()


def _error(code: int, error: str, message: str, fields: Sequence[str] = ()) -> HTTPException:
    detail = ErrorDetail(error=error, message=message, fields=list(fields))
    return HTTPException(status_code=code, detail=detail.model_dump())


async def _read_json(request: Request) -> Any:
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > MAX_BODY_BYTES:
        raise PayloadTooLargeError(f"request body exceeds {MAX_BODY_BYTES} bytes")
    body = await request.body()
    if len(body) > MAX_BODY_BYTES:
        raise PayloadTooLargeError(f"request body exceeds {MAX_BODY_BYTES} bytes")
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


async def _ingest(
    request: Request,
    gateway: IngestionGateway,
    api_key: Optional[str],
    device_fields: Sequence[str],
) -> IngestResponse:
    try:
        payload = await _read_json(request)
        reading = gateway.ingest(api_key, payload, device_fields=device_fields)
    except UnauthorizedError as exc:
        raise _error(status.HTTP_401_UNAUTHORIZED, "unauthorized", str(exc)) from exc
    except PayloadTooLargeError as exc:
        raise _error(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "payload_too_large", str(exc)
        ) from exc
    except (BadRequestError, InvalidReadingError) as exc:
        raise _error(
            status.HTTP_400_BAD_REQUEST, "bad_request", str(exc), exc.fields
        ) from exc
    except PersistenceError as exc:
        logger.exception("POST %s failed", request.url.path)
        raise _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", "server error"
        ) from exc
    return IngestResponse(id=reading.id)


@router.post(
    "/api/readings",
    response_model=IngestResponse,
    summary="Ingest a single temperature/humidity reading.",
)
async def create_reading(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    gateway: IngestionGateway = Depends(get_gateway),
) -> IngestResponse:
    return await _ingest(request, gateway, x_api_key, ("deviceId",))


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Device ingest alias; also accepts ``device`` for the device id.",
)
async def ingest_reading(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    gateway: IngestionGateway = Depends(get_gateway),
) -> IngestResponse:
    return await _ingest(request, gateway, x_api_key, ("deviceId", "device"))


@router.get(
    "/api/readings/latest",
    response_model=None,
    summary="Most recent reading, or an empty object when none exists.",
)
async def latest_reading(
    history: HistoryService = Depends(get_history),
) -> dict[str, Any]:
    reading = history.latest()
    return reading.to_wire() if reading is not None else {}


@router.get(
    "/api/readings/recent",
    response_model=list[Reading],
    summary="Most recent readings in ascending time order.",
)
async def recent_readings(
    limit: Optional[str] = Query(default=None, description="Maximum readings (capped at 500)."),
    history: HistoryService = Depends(get_history),
) -> list[Reading]:
    return history.recent(limit)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> HealthResponse:
    return HealthResponse()
