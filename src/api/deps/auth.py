"""API key dependency shared by every protected route."""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, WebSocket, status

from ..settings import APISettings, get_settings


def _extract_key(authorization: Optional[str], x_api_key: Optional[str]) -> Optional[str]:
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()
    return None


def is_valid_key(candidate: Optional[str], settings: APISettings) -> bool:
    if not candidate:
        return False
    return any(hmac.compare_digest(candidate, key) for key in settings.api_keys)


async def get_api_key(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
    settings: APISettings = Depends(get_settings),
) -> str:
    key = _extract_key(authorization, x_api_key)
    if not is_valid_key(key, settings):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing API key")
    return key  # type: ignore[return-value]


def websocket_key(websocket: WebSocket) -> Optional[str]:
    key = _extract_key(websocket.headers.get("authorization"), websocket.headers.get("x-api-key"))
    return key or websocket.query_params.get("token")
