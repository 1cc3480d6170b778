"""
SyncClient — push locally paired servers and entities to the web app.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

import config
from core.results import (
    NETWORK_FAILURE,
    NOT_AUTHENTICATED,
    NOT_LOGGED_IN_MESSAGE,
    SESSION_EXPIRED,
    SESSION_EXPIRED_MESSAGE,
    UPSTREAM_REJECTED,
    fail,
    ok,
)
from storage.repository import CredentialRepository
from sync.session_manager import SessionManager

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Backend-reported error, or a generic status-text fallback."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"Sync failed: {response.reason_phrase}"


class SyncClient:
    """
    Uploads the full server/entity snapshot.

    By default an expired session fails fast without a network call and
    without trying to refresh. With refresh_before_push the client asks the
    SessionManager for a valid token first.
    """

    def __init__(
        self,
        repository: CredentialRepository,
        http_client: httpx.AsyncClient,
        session_manager: Optional[SessionManager] = None,
        clock: Callable[[], float] = time.time,
        refresh_before_push: bool = config.SYNC_REFRESH_BEFORE_PUSH,
    ) -> None:
        self._repository = repository
        self._http = http_client
        self._session_manager = session_manager
        self._clock = clock
        self._refresh_before_push = refresh_before_push

    async def push(self) -> Dict[str, Any]:
        """
        Send servers and entities to POST <web_app_url>/api/sync/credentials.

        Returns:
            {"success": True, "servers": n, "entities": n} or a failure with
            error_type not_authenticated, session_expired, network_failure
            or upstream_rejected.
        """
        session = self._repository.get_session()
        if session is None or not session.web_app_url or not session.access_token:
            return fail(NOT_LOGGED_IN_MESSAGE, NOT_AUTHENTICATED)

        access_token: Optional[str] = session.access_token
        if self._refresh_before_push and self._session_manager is not None:
            access_token = await self._session_manager.get_valid_access_token()
            if not access_token:
                return fail(SESSION_EXPIRED_MESSAGE, SESSION_EXPIRED)
        elif session.expires_at and session.expires_at < self._clock():
            logger.info("Cloud session expired, not syncing")
            return fail(SESSION_EXPIRED_MESSAGE, SESSION_EXPIRED)

        servers = self._repository.get_servers()
        entities = self._repository.get_entities()

        try:
            response = await self._http.post(
                f"{session.web_app_url}{config.SYNC_ENDPOINT_PATH}",
                headers={"Authorization": f"Bearer {access_token}"},
                json={
                    "credentials": {},
                    "servers": servers,
                    "entities": entities,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Cloud sync failed: {e}")
            return fail(str(e) or type(e).__name__, NETWORK_FAILURE)

        if response.status_code == 401:
            logger.info("Cloud rejected the access token (401)")
            return fail(SESSION_EXPIRED_MESSAGE, SESSION_EXPIRED)

        if not response.is_success:
            message = _error_message(response)
            logger.error(f"Cloud sync rejected: HTTP {response.status_code} - {message}")
            return fail(message, UPSTREAM_REJECTED)

        logger.info(f"Synced {len(servers)} servers and {len(entities)} entities to cloud")
        return ok(servers=len(servers), entities=len(entities))
