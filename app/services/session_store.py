"""
Client for the web app's sessions API (async, httpx).

The web app owns the session records. This backend only reports what it
observes about a live call: room details once known, and how and when the
call ended. Field names are sent in the web app's camelCase.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from app.core.config import get_settings
from app.core.logger import get_logger

log = get_logger(__name__)


_FIELD_NAMES = {
    "status": "status",
    "end_reason": "endReason",
    "ended_at": "endedAt",
    "room_name": "roomName",
    "audio_url": "audioUrl",
    "server_url": "serverUrl",
    "participant_token": "participantToken",
    "egress_id": "egressId",
}


class SessionStoreClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.SESSION_API_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.SESSION_API_TIMEOUT
        self._transport = transport
        self._aclient: Optional[httpx.AsyncClient] = None

    def _get_async_client(self) -> httpx.AsyncClient:
        if self._aclient is None:
            self._aclient = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._aclient

    async def update_session(self, session_id: str, **fields: Any) -> Dict[str, Any]:
        """PATCH a session record.

        Accepts snake_case keyword fields (``status``, ``end_reason``,
        ``ended_at``, ``room_name``, ...); ``None`` values are not sent.

        Returns:
            The updated record, or ``{"ok": False, "error": ...}``.
        """
        if not self.base_url:
            log.debug("SESSION_API_URL not set; skipping update for session %s", session_id)
            return {"ok": False, "error": "Session API URL missing"}

        body: Dict[str, Any] = {}
        for key, value in fields.items():
            if value is None:
                continue
            if key not in _FIELD_NAMES:
                raise TypeError(f"unknown session field: {key}")
            body[_FIELD_NAMES[key]] = value

        url = f"{self.base_url}/api/sessions/{session_id}"
        try:
            client = self._get_async_client()
            resp = await client.patch(url, json=body)
            resp.raise_for_status()
            data = resp.json()
            data.setdefault("ok", True)
            return data
        except Exception as e:
            log.exception("Session update failed for %s: %s", session_id, e)
            return {"ok": False, "error": "Session update failed"}

    async def aclose(self) -> None:
        if self._aclient is not None:
            await self._aclient.aclose()
            self._aclient = None


_client: Optional[SessionStoreClient] = None


def get_session_store() -> SessionStoreClient:
    global _client
    if _client is None:
        _client = SessionStoreClient()
    return _client
