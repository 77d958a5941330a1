"""Result sink for session outcomes.

The fleet never stores results itself. When an admin backend is configured,
status transitions and final results are pushed to it over HTTP; otherwise
the sink is simply absent (``None``) and every call site skips it.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable

import httpx

from trivia_bots.config import Settings, get_settings
from trivia_bots.utils.errors import PersistenceError
from trivia_bots.utils.http_client import AsyncHttpClient

if TYPE_CHECKING:
    from trivia_bots.bot.coordinator import SessionRecord

logger = logging.getLogger(__name__)

SESSIONS_PATH = "/api/v1/sessions"


@runtime_checkable
class ResultSink(Protocol):
    """Receiver of session lifecycle events."""

    async def notify_status(self, session_id: str, status: str, fields: dict[str, Any]) -> None:
        ...

    async def save_session_result(self, record: "SessionRecord") -> None:
        ...


class HttpResultSink:
    """Pushes session events to the admin backend.

    Requests are authenticated with the ``X-API-Key`` header and retried on
    network failures by AsyncHttpClient.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._headers = {"X-API-Key": api_key} if api_key else {}
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> AsyncHttpClient:
        return AsyncHttpClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def notify_status(self, session_id: str, status: str, fields: dict[str, Any]) -> None:
        """Report a status transition.

        Raises:
            PersistenceError: If the backend rejects or cannot be reached
        """
        payload = {"status": status, **fields}
        try:
            async with self._client() as client:
                await client.patch_json(f"{SESSIONS_PATH}/{session_id}", payload)
        except httpx.HTTPError as e:
            raise PersistenceError(
                f"Status update failed for {session_id}: {e}",
                details={"session_id": session_id, "status": status},
            ) from e

        logger.debug(f"[SINK] Session {session_id} status → {status}")

    async def save_session_result(self, record: "SessionRecord") -> None:
        """Store the session summary followed by per-player results.

        Raises:
            PersistenceError: If the backend rejects or cannot be reached
        """
        data = record.to_dict()
        players = [
            {"player_id": player_id, **result}
            for player_id, result in data.pop("players", {}).items()
        ]

        try:
            async with self._client() as client:
                await client.post_json(SESSIONS_PATH, data)
                if players:
                    await client.post_json(
                        f"{SESSIONS_PATH}/{record.session_id}/results", {"results": players}
                    )
        except httpx.HTTPError as e:
            raise PersistenceError(
                f"Saving results failed for {record.session_id}: {e}",
                details={"session_id": record.session_id},
            ) from e

        logger.info(f"[SINK] Saved session {record.session_id} ({len(players)} player results)")


def build_result_sink(settings: Settings | None = None) -> Optional[ResultSink]:
    """Resolve the sink once; None when no admin backend is configured."""
    settings = settings or get_settings()
    if not settings.admin_backend_url:
        logger.debug("[SINK] No admin backend configured, results will not be persisted")
        return None
    return HttpResultSink(settings.admin_backend_url, api_key=settings.internal_api_key)
