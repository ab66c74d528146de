from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig

_ANALYTICS_PREFIX = "/api/analytics"


class ApiClient:
    """Minimal HTTP client for the analytics API."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def latest(self) -> Dict[str, Any]:
        return self._get("/temperature/latest")

    def readings(self, start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
        return self._get("/temperature/range", self._period(start, end))

    def alerts(self, start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
        return self._get("/alerts", self._period(start, end))

    def cooling(self, start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
        return self._get("/cooling", self._period(start, end))

    def statistics(self, start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
        return self._get("/statistics", self._period(start, end))

    def rollups(self, granularity: str, start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
        if granularity not in {"hourly", "daily"}:
            raise typer.BadParameter(f"Unknown rollup granularity {granularity!r}.")
        return self._get(f"/{granularity}", self._period(start, end))

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        try:
            response = self._client.get(f"{_ANALYTICS_PREFIX}{path}", params=params or None)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _period(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if start is not None:
            params["start"] = start.isoformat()
        if end is not None:
            params["end"] = end.isoformat()
        return params

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
