from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the readings service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def send_reading(
        self,
        temperature: float,
        humidity: float,
        device_id: Optional[str] = None,
    ) -> str:
        if not self._config.api_key:
            raise typer.BadParameter("An API key is required (--api-key or API_KEY).")

        body: Dict[str, Any] = {"temperature": temperature, "humidity": humidity}
        if device_id:
            body["deviceId"] = device_id
        try:
            response = self._client.post(
                "/api/readings",
                json=body,
                headers={"X-API-Key": self._config.api_key},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        payload = response.json()
        reading_id = payload.get("id")
        if not isinstance(reading_id, str):
            raise typer.BadParameter("Unexpected response payload when sending reading.")
        return reading_id

    def get_latest(self) -> Dict[str, Any]:
        try:
            response = self._client.get("/api/readings/latest")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def get_recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit is not None else None
        try:
            response = self._client.get("/api/readings/recent", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: Any = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
            if isinstance(detail, dict):
                detail = detail.get("message")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
