"""HTTP client for the ECG downsampling service."""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Protocol

import requests

from holterview.core.errors import classify_exception, error_from_code, error_from_status
from holterview.core.timebase import format_instant
from holterview.core.window import WindowRequest

LOG = logging.getLogger(__name__)

__all__ = ["ServiceTransport", "HttpTransport", "ENDPOINTS"]

ENDPOINTS = {
    "window": "downsample-ecg",
    "chunks": "downsample-ecg-chunked",
    "diagnostics": "get-ecg-diagnostics",
    "aggregates": "aggregate-leads",
    "bounds": "pod-time-bounds",
}


class ServiceTransport(Protocol):
    """Contract between the loaders and the remote downsampling service."""

    async def fetch_window(self, request: WindowRequest) -> Any:
        """Return the raw window payload (record list or parallel arrays)."""

    async def fetch_chunks(
        self,
        request: WindowRequest,
        *,
        offset: int,
        limit: int,
        chunk_minutes: float,
    ) -> Any:
        """Return an ordered list of ``{chunk_start, chunk_end, samples}`` objects."""

    async def fetch_diagnostics(
        self,
        device_id: str,
        start_ms: int,
        end_ms: int,
        *,
        chunk_minutes: float | None = None,
    ) -> Any:
        """Return connection statistics and per-channel quality scores."""

    async def fetch_aggregates(
        self,
        device_id: str,
        start_ms: int,
        end_ms: int,
        *,
        bucket_seconds: int,
    ) -> Any:
        """Return pre-aggregated per-bucket lead quality rows."""

    async def fetch_time_bounds(self, device_id: str) -> Any:
        """Return ``{earliest_time, latest_time}`` for a device."""

    def close(self) -> None:
        """Release network resources."""


class HttpTransport:
    """ServiceTransport backed by a blocking ``requests.Session``.

    Each call is pushed to the running loop's default executor so the event loop stays
    responsive while the socket blocks.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self._session.headers.update(
                {"Authorization": f"Bearer {api_key}", "apikey": api_key}
            )

    async def fetch_window(self, request: WindowRequest) -> Any:
        return await self._call("window", request.to_wire())

    async def fetch_chunks(
        self,
        request: WindowRequest,
        *,
        offset: int,
        limit: int,
        chunk_minutes: float,
    ) -> Any:
        body = request.to_wire()
        body.update({"offset": int(offset), "limit": int(limit), "chunk_minutes": chunk_minutes})
        return await self._call("chunks", body)

    async def fetch_diagnostics(
        self,
        device_id: str,
        start_ms: int,
        end_ms: int,
        *,
        chunk_minutes: float | None = None,
    ) -> Any:
        body: dict[str, Any] = {
            "device_id": device_id,
            "time_start": format_instant(start_ms),
            "time_end": format_instant(end_ms),
        }
        if chunk_minutes is not None:
            body["chunk_minutes"] = chunk_minutes
        return await self._call("diagnostics", body)

    async def fetch_aggregates(
        self,
        device_id: str,
        start_ms: int,
        end_ms: int,
        *,
        bucket_seconds: int,
    ) -> Any:
        body = {
            "device_id": device_id,
            "time_start": format_instant(start_ms),
            "time_end": format_instant(end_ms),
            "bucket_seconds": int(bucket_seconds),
        }
        return await self._call("aggregates", body)

    async def fetch_time_bounds(self, device_id: str) -> Any:
        return await self._call("bounds", {"device_id": device_id})

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    # ------------------------------------------------------------------

    async def _call(self, endpoint: str, body: dict[str, Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._post, endpoint, body))

    def _post(self, endpoint: str, body: dict[str, Any]) -> Any:
        url = f"{self.base_url}/{ENDPOINTS[endpoint]}"
        LOG.info("POST %s %s", url, body)
        try:
            response = self._session.post(url, json=body, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise classify_exception(exc) from exc
        if response.status_code >= 400:
            raise error_from_status(response.status_code, detail=_error_detail(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise classify_exception(exc) from exc
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            err = payload["error"]
            raise error_from_code(str(err.get("code", "")), err.get("message"))
        return payload


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict):
            return str(err.get("message") or err.get("code") or "")
        if err:
            return str(err)
        return str(payload.get("message", ""))
    return str(payload)[:200]
