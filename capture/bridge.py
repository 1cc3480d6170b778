"""
SurfaceSession — await the first well-formed message from a capture surface.

The page-side shim forwards data through the surface bridge; the host side
waits for the first message the parser accepts. Closing the surface is the
cancellation signal. After the surface is closed no further script is run
against it.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Set, Tuple

from capture.surface import CaptureSurface

logger = logging.getLogger(__name__)

# Outcomes of SurfaceSession.run()
CAPTURED = "captured"
CLOSED = "closed"
TIMED_OUT = "timed_out"

# Page-side forwarder. Objects are serialised so the host always receives a
# string; the bridge may not be ready until pywebviewready fires.
_FORWARDER_JS = """
  function forward(data) {
    var payload = typeof data === 'string' ? data : JSON.stringify(data);
    var send = function () { window.pywebview.api.post_message(payload); };
    if (window.pywebview && window.pywebview.api) { send(); }
    else { window.addEventListener('pywebviewready', send, { once: true }); }
  }
"""


def build_shim(body: str) -> str:
    """Wrap a page script so it can call forward(data)."""
    return "(function () {\n" + _FORWARDER_JS + body + "\n})();"


def build_variable_hook(name: str) -> str:
    """
    Shim that turns assignment of window[name] into a bridge message.

    A value that was already assigned before injection is forwarded at once.
    """
    key = json.dumps(name)
    return build_shim(
        f"""
  var key = {key};
  var current = window[key];
  Object.defineProperty(window, key, {{
    configurable: true,
    get: function () {{ return current; }},
    set: function (value) {{ current = value; forward(value); }}
  }});
  if (current) {{ forward(current); }}
"""
    )


class SurfaceSession:
    """Drives one surface from open to close."""

    def __init__(
        self,
        surface: CaptureSurface,
        shim: str,
        parse: Callable[[Any], Any],
    ) -> None:
        """
        Args:
            surface: Unopened surface to drive.
            shim: Script injected after every navigation completes.
            parse: Returns the accepted value for a message, or None to ignore it.
        """
        self._surface = surface
        self._shim = shim
        self._parse = parse
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._outcome: Optional[asyncio.Future] = None
        self._closed = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def run(self, url: str, timeout: Optional[float] = None) -> Tuple[str, Any]:
        """
        Open the surface at url and wait for an outcome.

        Returns:
            (CAPTURED, value), (CLOSED, None) or (TIMED_OUT, None).
            On timeout the surface is closed before returning.
        """
        self._loop = asyncio.get_running_loop()
        self._outcome = self._loop.create_future()

        self._surface.open(
            url,
            on_loaded=self._from_gui(self._handle_loaded),
            on_message=self._from_gui(self._handle_message),
            on_closed=self._from_gui(self._handle_closed),
        )

        try:
            return await asyncio.wait_for(self._outcome, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No message from surface within {timeout}s, closing it")
            self.close()
            return TIMED_OUT, None
        except asyncio.CancelledError:
            self.close()
            raise

    def _from_gui(self, handler: Callable[..., None]) -> Callable[..., None]:
        """Marshal a surface callback onto the session's event loop."""
        loop = self._loop

        def dispatch(*args: Any) -> None:
            try:
                loop.call_soon_threadsafe(handler, *args)
            except RuntimeError:
                logger.debug("Event loop closed, dropping surface event")

        return dispatch

    def _handle_loaded(self) -> None:
        if self._closed or self._outcome.done():
            return
        task = self._loop.create_task(self.evaluate(self._shim))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _handle_message(self, raw: Any) -> None:
        if self._outcome.done():
            return
        value = self._parse(raw)
        if value is not None:
            self._outcome.set_result((CAPTURED, value))

    def _handle_closed(self) -> None:
        self._closed = True
        self._cancel_tasks()
        if not self._outcome.done():
            self._outcome.set_result((CLOSED, None))

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    async def evaluate(self, script: str) -> Any:
        """Run script in the page. Best effort: failures are logged and ignored."""
        if self._closed:
            return None
        try:
            return await asyncio.to_thread(self._surface.evaluate, script)
        except Exception as e:
            # Page might be navigating
            logger.debug(f"Script evaluation failed: {e}")
            return None

    def close(self) -> None:
        """Close the surface. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._cancel_tasks()
        self._surface.close()
