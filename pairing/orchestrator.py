"""
PairingOrchestrator — supervises the single active pairing engine.

States: idle -> starting -> listening -> idle (on stop, failure or restart).

At most one engine is live at any time. start() on an active orchestrator
tears the old engine down first and then builds a new one; it never layers
engines. Event subscription happens before the engine is registered or
told to listen, so nothing the engine emits can be missed.

Engine events travel through a bounded asyncio.Queue and are consumed by
one supervisor task per engine, which persists paired servers/entities
and forwards notifications:

    pairing:status(message)
    pairing:server(serverRecord)
    pairing:entity(entityRecord)
    pairing:error(message)
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import config
from capture.token_capture import TokenCapture
from core.results import ENGINE_ERROR, NOT_CONFIGURED, USER_CANCELLED, fail, ok
from pairing.engine import (
    EngineErrorEvent,
    EntityPairedEvent,
    PairingEngine,
    PairingEvent,
    ServerPairedEvent,
    StatusEvent,
)
from storage.records import build_entity_record, build_server_record, now_ms, server_key
from storage.repository import CredentialRepository

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_STARTING = "starting"
STATE_LISTENING = "listening"

RESTARTED_MESSAGE = "Pairing was restarted"


class PairingOrchestrator:
    """Owns the active engine slot and its event supervisor."""

    def __init__(
        self,
        repository: CredentialRepository,
        token_capture: TokenCapture,
        engine_factory: Optional[Callable[[], PairingEngine]],
        notify: Optional[Callable[[str, Any], None]] = None,
        clock_ms: Callable[[], int] = now_ms,
        buffer_size: int = config.PAIRING_EVENT_BUFFER,
    ) -> None:
        self._repository = repository
        self._token_capture = token_capture
        self._engine_factory = engine_factory
        self._notify = notify or (lambda channel, payload: None)
        self._clock_ms = clock_ms
        self._buffer_size = buffer_size

        self.state: str = STATE_IDLE
        self._engine: Optional[PairingEngine] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._events: Optional[asyncio.Queue] = None
        self._supervisor: Optional[asyncio.Task] = None
        self._capture_task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        """True while an engine occupies the slot (registered or not)."""
        return self._engine is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> Dict[str, Any]:
        """
        (Re)start pairing.

        Returns:
            {"success": True} once the engine is listening. On a cancelled or
            timed-out Steam login the engine stays constructed but is never
            registered. Registration/listen failures return engine_error.
        """
        if self._engine_factory is None:
            return fail("Pairing engine not configured. Set PAIRING_ENGINE.", NOT_CONFIGURED)

        if self._engine is not None:
            logger.info("Pairing already active, tearing down previous engine")
            await self._teardown()

        engine = self._engine_factory()
        self._attach(engine)
        self.state = STATE_STARTING

        self._notify("pairing:status", "Opening Steam login...")
        capture_task = asyncio.ensure_future(self._token_capture.capture(config.STEAM_LOGIN_URL))
        self._capture_task = capture_task
        try:
            capture = await capture_task
        except asyncio.CancelledError:
            if self._engine is not engine:
                return fail(RESTARTED_MESSAGE, USER_CANCELLED)
            raise
        finally:
            if self._capture_task is capture_task:
                self._capture_task = None

        if self._engine is not engine:
            return fail(RESTARTED_MESSAGE, USER_CANCELLED)

        if not capture["success"]:
            self.state = STATE_IDLE
            return fail(capture["error"], capture["error_type"])

        try:
            await engine.register_with_token(capture["token"])
            if self._engine is not engine:
                return fail(RESTARTED_MESSAGE, USER_CANCELLED)
            await engine.start_listening()
        except Exception as e:
            logger.error(f"Pairing engine failed to start: {e}")
            if self._engine is engine:
                self.state = STATE_IDLE
            return fail(str(e), ENGINE_ERROR)

        if self._engine is not engine:
            return fail(RESTARTED_MESSAGE, USER_CANCELLED)

        self.state = STATE_LISTENING
        logger.info("Pairing engine listening for notifications")
        return ok()

    async def stop(self) -> Dict[str, Any]:
        """Tear down the active engine. Stopping when idle is a no-op success."""
        if self._engine is not None:
            await self._teardown()
            logger.info("Pairing stopped")
        return ok()

    async def shutdown(self) -> None:
        """Mandatory teardown on application exit."""
        await self.stop()

    async def drain(self) -> None:
        """
        Wait until every event delivered so far has been handled.

        Test hook: the application never awaits this, it lets tests observe
        the store and notifications after emitting engine events.
        """
        await asyncio.sleep(0)
        if self._events is not None:
            await self._events.join()

    # ------------------------------------------------------------------
    # Engine slot
    # ------------------------------------------------------------------

    def _attach(self, engine: PairingEngine) -> None:
        """Subscribe to engine events and launch the supervisor."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._buffer_size)

        def sink(event: PairingEvent) -> None:
            try:
                loop.call_soon_threadsafe(self._enqueue, queue, event)
            except RuntimeError:
                logger.debug("Event loop closed, dropping pairing event")

        self._engine = engine
        self._events = queue
        self._unsubscribe = engine.subscribe(sink)
        self._supervisor = loop.create_task(self._supervise(queue))

    def _enqueue(self, queue: asyncio.Queue, event: PairingEvent) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Pairing event buffer full, dropping {type(event).__name__}")

    async def _teardown(self) -> None:
        """Unsubscribe, destroy and clear the slot. Runs once per engine."""
        engine, self._engine = self._engine, None
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        supervisor, self._supervisor = self._supervisor, None
        self._events = None
        self.state = STATE_IDLE

        if self._capture_task is not None and not self._capture_task.done():
            self._capture_task.cancel()

        if unsubscribe is not None:
            unsubscribe()
        if engine is not None:
            try:
                engine.destroy()
            except Exception as e:
                logger.warning(f"Error while destroying pairing engine: {e}")
        if supervisor is not None:
            supervisor.cancel()
            await asyncio.gather(supervisor, return_exceptions=True)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _supervise(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                self._handle_event(event)
            except Exception as e:
                logger.error(f"Failed to handle {type(event).__name__}: {e}", exc_info=True)
            finally:
                queue.task_done()

    def _handle_event(self, event: PairingEvent) -> None:
        if isinstance(event, StatusEvent):
            self._notify("pairing:status", event.message)

        elif isinstance(event, ServerPairedEvent):
            data = event.data
            record = build_server_record(data, self._clock_ms())
            self._repository.upsert_server(server_key(data.get("ip"), data.get("port")), record)
            self._notify("pairing:server", record)

        elif isinstance(event, EntityPairedEvent):
            data = event.data
            record = build_entity_record(data, self._clock_ms())
            self._repository.upsert_entity(str(data.get("entityId")), record)
            self._notify("pairing:entity", record)

        elif isinstance(event, EngineErrorEvent):
            logger.warning(f"Pairing engine reported an error: {event.message}")
            self._notify("pairing:error", event.message)
