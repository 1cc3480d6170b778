"""
Tests for core/app.py — command dispatch, structured failures and
application teardown.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import config
from core.app import COMMANDS, PairingToolApp
from core.results import NOT_AUTHENTICATED, NOT_FOUND
from fakes import EngineFactory, FakeCapture, SurfaceFactory
from storage.store import MemoryStore


class AppTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.requests = []
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(self._handler))
        self.engines = EngineFactory()
        self.notifications = []
        self.app = PairingToolApp(
            store=MemoryStore({
                "servers": {"1.2.3.4:28082": {"name": "Main"}},
                "entities": {"7": {"entityId": 7}},
                "cloudSession": None,
            }),
            surface_factory=SurfaceFactory(),
            engine_factory=self.engines,
            http_client=self.http,
            on_notify=lambda channel, payload: self.notifications.append((channel, payload)),
        )
        self.app.pairing._token_capture = FakeCapture()

    def _handler(self, request):
        self.requests.append(request)
        return httpx.Response(200, json={"success": True})

    async def asyncTearDown(self):
        await self.app.shutdown()
        await self.http.aclose()


class TestDispatch(AppTestCase):

    async def test_unknown_command(self):
        result = await self.app.handle("pairing.explode")
        self.assertEqual(result["success"], False)
        self.assertEqual(result["error"], "Unknown command: pairing.explode")

    async def test_every_command_is_routed(self):
        for method_name in COMMANDS.values():
            self.assertTrue(callable(getattr(self.app, method_name)), method_name)

    async def test_get_collections(self):
        self.assertEqual(await self.app.handle("pairing.getServers"), {"1.2.3.4:28082": {"name": "Main"}})
        self.assertEqual(await self.app.handle("pairing.getEntities"), {"7": {"entityId": 7}})
        self.assertIsNone(await self.app.handle("auth.getSession"))

    async def test_delete_missing_is_not_found(self):
        """Deleting unknown ids fails without touching the store."""
        result = await self.app.handle("pairing.deleteServer", "9.9.9.9:1")
        self.assertEqual(result["error"], "Server not found")
        self.assertEqual(result["error_type"], NOT_FOUND)

        result = await self.app.handle("pairing.deleteEntity", 99)
        self.assertEqual(result["error"], "Entity not found")

        self.assertEqual(len(await self.app.handle("pairing.getServers")), 1)
        self.assertEqual(len(await self.app.handle("pairing.getEntities")), 1)

    async def test_delete_existing(self):
        self.assertTrue((await self.app.handle("pairing.deleteServer", "1.2.3.4:28082"))["success"])
        self.assertTrue((await self.app.handle("pairing.deleteEntity", 7))["success"])
        self.assertEqual(await self.app.handle("pairing.getServers"), {})
        self.assertEqual(await self.app.handle("pairing.getEntities"), {})

    async def test_sync_without_session(self):
        result = await self.app.handle("sync.toCloud")
        self.assertEqual(result["error"], "Not logged in to cloud")
        self.assertEqual(result["error_type"], NOT_AUTHENTICATED)
        self.assertEqual(self.requests, [])

    async def test_logout_when_logged_out(self):
        self.assertTrue((await self.app.handle("auth.logout"))["success"])

    async def test_unexpected_exception_becomes_failure(self):
        with patch.object(self.app.repository, "get_servers", side_effect=RuntimeError("disk gone")):
            result = await self.app.handle("pairing.getServers")
        self.assertEqual(result["success"], False)
        self.assertEqual(result["error"], "disk gone")

    async def test_missing_argument_becomes_failure(self):
        result = await self.app.handle("pairing.deleteServer")
        self.assertFalse(result["success"])

    async def test_open_web_app(self):
        with patch("core.app.webbrowser.open") as mock_open:
            result = await self.app.handle("app.openWebApp")
        self.assertTrue(result["success"])
        mock_open.assert_called_once_with(config.WEB_APP_URL)


class TestPairingThroughApp(AppTestCase):

    async def test_start_notifies_and_shutdown_destroys_engine(self):
        result = await self.app.handle("pairing.start")
        self.assertTrue(result["success"])
        self.assertIn(("pairing:status", "Opening Steam login..."), self.notifications)

        await self.app.shutdown()
        self.assertEqual(self.engines.engines[0].destroyed, 1)

    async def test_failing_notify_handler_is_contained(self):
        def broken(channel, payload):
            raise ValueError("renderer gone")

        self.app.on_notify = broken
        with self.assertLogs("core.app", level="ERROR"):
            result = await self.app.handle("pairing.start")
        self.assertTrue(result["success"])


class TestOwnedHttpClient(unittest.IsolatedAsyncioTestCase):

    async def test_shutdown_closes_owned_client(self):
        app = PairingToolApp(store=MemoryStore(), engine_factory=EngineFactory())
        await app.shutdown()
        self.assertTrue(app.http.is_closed)


if __name__ == "__main__":
    unittest.main()
