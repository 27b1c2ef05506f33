"""HTTP client helpers shared by the batch channel and the note client."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from ..errors import NexiaError
from ..store.settings_store import SettingsStore


class ApiError(NexiaError):
    default_message = "The server is not configured."


class ApiClient:
    def __init__(
        self,
        settings: SettingsStore,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings_store = settings
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        api_key = self.settings_store.get().api_key
        if not api_key:
            raise ApiError("API key missing")
        return {"Authorization": f"Bearer {api_key}"}

    def _url(self, path: str) -> str:
        base = self.settings_store.get().server_url.rstrip("/")
        if not base:
            raise ApiError("Server URL missing")
        return f"{base}{path}"

    async def test_connection(self) -> bool:
        try:
            resp = await self._client.get(self._url("/healthz"), headers=self._headers())
        except httpx.HTTPError as exc:
            raise ApiError(str(exc)) from exc
        return resp.status_code == 200

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["ApiClient", "ApiError"]
