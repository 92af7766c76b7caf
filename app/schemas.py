"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Reading(BaseModel):
    """A persisted sensor reading as exposed over HTTP and the live channel."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Identifier assigned by the store.")
    device_id: str = Field(..., alias="deviceId")
    temperature: float
    humidity: float
    timestamp: datetime

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class IngestResponse(BaseModel):
    """Response payload after a reading has been persisted."""

    ok: bool = True
    id: str = Field(..., description="Identifier of the stored reading.")


class HealthResponse(BaseModel):
    ok: bool = True


class ErrorDetail(BaseModel):
    """Machine-readable error body carried in ``detail``."""

    error: str
    message: str
    fields: List[str] = Field(default_factory=list)


class LiveEvent(BaseModel):
    """Envelope pushed to viewers over the live channel."""

    event: str = "new_reading"
    data: Reading
