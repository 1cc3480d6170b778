"""
PairingToolApp — application context and UI command surface.

Owns the store, HTTP client, session manager, pairing orchestrator and
sync client. A UI (or the CLI in main.py) calls handle(command, *args)
and receives push notifications through on_notify(channel, payload).

Commands:
    auth.login, auth.logout, auth.getSession
    pairing.start, pairing.stop, pairing.getServers, pairing.getEntities,
    pairing.deleteServer(id), pairing.deleteEntity(id)
    sync.toCloud
    app.openWebApp
"""

import logging
import time
import webbrowser
from typing import Any, Callable, Dict, Optional

import httpx

import config
from capture.surface import CaptureSurface, WebviewSurface
from capture.token_capture import TokenCapture
from core.results import NOT_FOUND, fail, ok
from pairing.engine import PairingEngine, load_engine_factory
from pairing.orchestrator import PairingOrchestrator
from storage.repository import CredentialRepository
from storage.store import JsonFileStore, KeyValueStore
from sync.cloud_sync import SyncClient
from sync.session_manager import SessionManager

logger = logging.getLogger(__name__)

# Command name -> PairingToolApp coroutine method
COMMANDS: Dict[str, str] = {
    "auth.login": "auth_login",
    "auth.logout": "auth_logout",
    "auth.getSession": "auth_get_session",
    "pairing.start": "pairing_start",
    "pairing.stop": "pairing_stop",
    "pairing.getServers": "pairing_get_servers",
    "pairing.getEntities": "pairing_get_entities",
    "pairing.deleteServer": "pairing_delete_server",
    "pairing.deleteEntity": "pairing_delete_entity",
    "sync.toCloud": "sync_to_cloud",
    "app.openWebApp": "open_web_app",
}


def _configured_engine_factory() -> Optional[Callable[[], PairingEngine]]:
    try:
        return load_engine_factory()
    except (ImportError, AttributeError, ValueError) as e:
        logger.error(f"Could not load pairing engine: {e}")
        return None


class PairingToolApp:
    """Explicit owner of every component; teardown lives here."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        surface_factory: Callable[[str], CaptureSurface] = WebviewSurface,
        engine_factory: Optional[Callable[[], PairingEngine]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_notify: Optional[Callable[[str, Any], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            store: Persistent store (defaults to the JSON file in USER_DATA_DIR).
            surface_factory: Builds capture/auth surfaces from a window title.
            engine_factory: Builds pairing engines (defaults to PAIRING_ENGINE).
            http_client: Shared client for backend calls. Closed on shutdown
                only if created here.
            on_notify: Receives (channel, payload) push notifications.
            clock: Epoch-seconds clock for token expiry decisions.
        """
        self.store = store if store is not None else JsonFileStore(config.STORE_FILE)
        self.repository = CredentialRepository(self.store)

        self._owns_http = http_client is None
        self.http = http_client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS)

        self.on_notify = on_notify

        if engine_factory is None:
            engine_factory = _configured_engine_factory()

        self.sessions = SessionManager(self.repository, self.http, surface_factory, clock)
        self.token_capture = TokenCapture(surface_factory)
        self.pairing = PairingOrchestrator(
            self.repository,
            self.token_capture,
            engine_factory,
            notify=self._notify,
        )
        self.sync = SyncClient(self.repository, self.http, self.sessions, clock)

    async def __aenter__(self) -> "PairingToolApp":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def _notify(self, channel: str, payload: Any) -> None:
        if self.on_notify is None:
            return
        try:
            self.on_notify(channel, payload)
        except Exception as e:
            logger.error(f"Notification handler failed for {channel}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle(self, command: str, *args: Any) -> Any:
        """
        Run a UI command.

        Unknown commands and unexpected exceptions come back as
        {"success": False, "error": message}; nothing propagates.
        """
        method_name = COMMANDS.get(command)
        if method_name is None:
            return fail(f"Unknown command: {command}")

        try:
            return await getattr(self, method_name)(*args)
        except Exception as e:
            logger.error(f"Command {command} failed: {e}", exc_info=True)
            return fail(str(e))

    async def shutdown(self) -> None:
        """Stop pairing and release the HTTP client. Called on exit."""
        await self.pairing.shutdown()
        if self._owns_http:
            await self.http.aclose()
        logger.debug("Application shut down")

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def auth_login(self) -> Dict[str, Any]:
        return await self.sessions.login()

    async def auth_logout(self) -> Dict[str, Any]:
        return self.sessions.logout()

    async def auth_get_session(self) -> Optional[Dict[str, Any]]:
        return self.sessions.get_session()

    # ------------------------------------------------------------------
    # Pairing
    # ------------------------------------------------------------------

    async def pairing_start(self) -> Dict[str, Any]:
        return await self.pairing.start()

    async def pairing_stop(self) -> Dict[str, Any]:
        return await self.pairing.stop()

    async def pairing_get_servers(self) -> Dict[str, Any]:
        return self.repository.get_servers()

    async def pairing_get_entities(self) -> Dict[str, Any]:
        return self.repository.get_entities()

    async def pairing_delete_server(self, server_id: str) -> Dict[str, Any]:
        if self.repository.delete_server(server_id):
            logger.info(f"Deleted server {server_id}")
            return ok()
        return fail("Server not found", NOT_FOUND)

    async def pairing_delete_entity(self, entity_id: Any) -> Dict[str, Any]:
        if self.repository.delete_entity(str(entity_id)):
            logger.info(f"Deleted entity {entity_id}")
            return ok()
        return fail("Entity not found", NOT_FOUND)

    # ------------------------------------------------------------------
    # Sync / misc
    # ------------------------------------------------------------------

    async def sync_to_cloud(self) -> Dict[str, Any]:
        return await self.sync.push()

    async def open_web_app(self) -> Dict[str, Any]:
        webbrowser.open(config.WEB_APP_URL)
        return ok()
