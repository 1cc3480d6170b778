"""
Tests for pairing/orchestrator.py — engine lifecycle, restart semantics and
event handling.
"""

import asyncio
import sys
import unittest
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from core.results import ENGINE_ERROR, NOT_CONFIGURED, USER_CANCELLED
from fakes import EngineFactory, FakeCapture, wait_until
from pairing.engine import (
    EngineErrorEvent,
    EntityPairedEvent,
    ServerPairedEvent,
    StatusEvent,
    event_from_emitter,
    load_engine_factory,
)
from pairing.orchestrator import (
    RESTARTED_MESSAGE,
    STATE_IDLE,
    STATE_LISTENING,
    PairingOrchestrator,
)
from storage.repository import CredentialRepository
from storage.store import MemoryStore

SERVER = {"name": "Rustopia", "ip": "1.2.3.4", "port": 28082, "playerId": "765", "playerToken": -42}


class PairingTestCase(unittest.IsolatedAsyncioTestCase):
    """Orchestrator wired to fakes with a stepping millisecond clock."""

    def setUp(self):
        self.repo = CredentialRepository(MemoryStore())
        self.capture = FakeCapture()
        self.engines = EngineFactory()
        self.notifications = []
        self.ticks = iter(range(1000, 100000, 1000))
        self.orch = PairingOrchestrator(
            self.repo,
            self.capture,
            self.engines,
            notify=lambda channel, payload: self.notifications.append((channel, payload)),
            clock_ms=lambda: next(self.ticks),
        )

    async def asyncTearDown(self):
        await self.orch.shutdown()


class TestLifecycle(PairingTestCase):

    async def test_start_success(self):
        """Subscribe happens before register and listen."""
        result = await self.orch.start()

        self.assertTrue(result["success"])
        self.assertEqual(self.orch.state, STATE_LISTENING)
        engine = self.engines.engines[0]
        self.assertEqual(engine.calls, ["subscribe", "register", "listen"])
        self.assertEqual(engine.token, "steam-token")
        self.assertIn(("pairing:status", "Opening Steam login..."), self.notifications)

    async def test_not_configured(self):
        orch = PairingOrchestrator(self.repo, self.capture, None)
        result = await orch.start()
        self.assertEqual(result["error_type"], NOT_CONFIGURED)
        self.assertEqual(self.capture.calls, 0)

    async def test_stop_is_idempotent(self):
        await self.orch.start()
        self.assertTrue((await self.orch.stop())["success"])
        self.assertTrue((await self.orch.stop())["success"])

        engine = self.engines.engines[0]
        self.assertEqual(engine.destroyed, 1)
        self.assertEqual(engine.unsubscribed, 1)
        self.assertEqual(self.orch.state, STATE_IDLE)
        self.assertFalse(self.orch.is_active)

    async def test_restart_replaces_engine(self):
        """Second start destroys the first engine exactly once."""
        await self.orch.start()
        await self.orch.start()

        first, second = self.engines.engines
        self.assertEqual(first.destroyed, 1)
        self.assertEqual(second.destroyed, 0)
        self.assertEqual(second.calls, ["subscribe", "register", "listen"])
        self.assertEqual(self.orch.state, STATE_LISTENING)

    async def test_cancelled_capture_leaves_engine_unregistered(self):
        self.capture.results = [{
            "success": False,
            "error": "Steam login was cancelled",
            "error_type": USER_CANCELLED,
            "token": None,
        }]
        result = await self.orch.start()

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "Steam login was cancelled")
        engine = self.engines.engines[0]
        self.assertEqual(engine.calls, ["subscribe"])
        self.assertTrue(self.orch.is_active)
        self.assertEqual(self.orch.state, STATE_IDLE)

        await self.orch.stop()
        self.assertEqual(engine.destroyed, 1)

    async def test_register_failure(self):
        self.engines = EngineFactory(fail_register=True)
        self.orch._engine_factory = self.engines

        result = await self.orch.start()

        self.assertEqual(result["error_type"], ENGINE_ERROR)
        self.assertEqual(result["error"], "Registration rejected")
        self.assertEqual(self.engines.engines[0].calls, ["subscribe", "register"])
        self.assertEqual(self.orch.state, STATE_IDLE)

    async def test_restart_during_capture(self):
        """A start issued while the first is still capturing supersedes it."""
        self.capture.gate = asyncio.Event()
        first_call = asyncio.create_task(self.orch.start())
        await wait_until(lambda: self.capture.calls == 1)

        second = await self.orch.start()
        first = await first_call

        self.assertTrue(second["success"])
        self.assertFalse(first["success"])
        self.assertEqual(first["error"], RESTARTED_MESSAGE)

        old, new = self.engines.engines
        self.assertEqual(old.calls, ["subscribe"])
        self.assertEqual(old.destroyed, 1)
        self.assertEqual(new.calls, ["subscribe", "register", "listen"])
        self.assertEqual(self.orch.state, STATE_LISTENING)


class TestEvents(PairingTestCase):

    async def asyncSetUp(self):
        await self.orch.start()
        self.engine = self.engines.engines[0]
        self.notifications.clear()

    async def test_server_paired_is_persisted_then_forwarded(self):
        self.engine.emit(ServerPairedEvent(SERVER))
        await self.orch.drain()

        record = dict(SERVER, pairedAt=1000)
        self.assertEqual(self.repo.get_servers(), {"1.2.3.4:28082": record})
        self.assertEqual(self.notifications, [("pairing:server", record)])

    async def test_repeated_server_last_write_wins(self):
        self.engine.emit(ServerPairedEvent(SERVER))
        self.engine.emit(ServerPairedEvent(dict(SERVER, name="Rustopia EU")))
        await self.orch.drain()

        servers = self.repo.get_servers()
        self.assertEqual(len(servers), 1)
        self.assertEqual(servers["1.2.3.4:28082"]["name"], "Rustopia EU")
        self.assertEqual(servers["1.2.3.4:28082"]["pairedAt"], 2000)

    async def test_entity_defaults(self):
        self.engine.emit(EntityPairedEvent({"entityId": 7, "ip": "1.2.3.4", "port": 28082}))
        await self.orch.drain()

        entity = self.repo.get_entities()["7"]
        self.assertEqual(entity["entityType"], "switch")
        self.assertEqual(entity["entityName"], "Device #7")
        self.assertEqual(entity["serverId"], "1.2.3.4:28082")
        self.assertEqual(self.notifications[0][0], "pairing:entity")

    async def test_error_event_is_not_fatal(self):
        self.engine.emit(EngineErrorEvent("socket hiccup"))
        self.engine.emit(StatusEvent("Listening for pairing notifications"))
        await self.orch.drain()

        self.assertEqual(self.notifications, [
            ("pairing:error", "socket hiccup"),
            ("pairing:status", "Listening for pairing notifications"),
        ])
        self.assertEqual(self.orch.state, STATE_LISTENING)
        self.assertEqual(self.engine.destroyed, 0)

    async def test_events_from_another_thread(self):
        await asyncio.to_thread(self.engine.emit, StatusEvent("from worker"))
        await wait_until(lambda: self.notifications)
        self.assertEqual(self.notifications, [("pairing:status", "from worker")])

    async def test_bad_event_does_not_stop_supervisor(self):
        """A handler failure is logged and later events still arrive."""
        self.repo.upsert_server = None
        with self.assertLogs("pairing.orchestrator", level="ERROR"):
            self.engine.emit(ServerPairedEvent(SERVER))
            await self.orch.drain()
        self.engine.emit(StatusEvent("still alive"))
        await self.orch.drain()
        self.assertIn(("pairing:status", "still alive"), self.notifications)


class TestEngineInterface(unittest.TestCase):

    def test_event_from_emitter(self):
        self.assertEqual(event_from_emitter("status", "hi"), StatusEvent("hi"))
        self.assertEqual(event_from_emitter("server:paired", SERVER), ServerPairedEvent(SERVER))
        self.assertEqual(event_from_emitter("entity:paired", {"entityId": 1}), EntityPairedEvent({"entityId": 1}))
        self.assertEqual(event_from_emitter("error", RuntimeError("boom")), EngineErrorEvent("boom"))
        self.assertIsNone(event_from_emitter("heartbeat", None))

    def test_load_engine_factory(self):
        self.assertIsNone(load_engine_factory(""))
        self.assertIs(load_engine_factory("fakes:EngineFactory"), EngineFactory)
        with self.assertRaises(ValueError):
            load_engine_factory("fakes.EngineFactory")


if __name__ == "__main__":
    unittest.main()
