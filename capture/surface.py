"""
Capture surfaces — isolated embedded browser windows.

A surface loads an untrusted page. The page never gets privileged
scripting access: the only thing exposed to it is a bridge object with a
single post_message(data) method. Everything else (script injection,
closing) is driven from the host side.

Surface callbacks may fire on the GUI thread. Consumers must marshal them
onto their own loop (see capture.bridge.SurfaceSession).
"""

import logging
from typing import Any, Callable, Iterable, Optional, Protocol

import config

logger = logging.getLogger(__name__)

_BLANK_HTML = "<!DOCTYPE html><html><body style=\"background:#1a1a1a\"></body></html>"


class CaptureSurface(Protocol):
    """What the capture and login flows need from a browser surface."""

    def clear_site_data(self, origins: Iterable[str]) -> None:
        """Request cookies/site data for origins be cleared before loading."""
        ...

    def open(
        self,
        url: str,
        on_loaded: Callable[[], None],
        on_message: Callable[[Any], None],
        on_closed: Callable[[], None],
    ) -> None:
        ...

    def evaluate(self, script: str) -> Any:
        ...

    def close(self) -> None:
        ...


class _Bridge:
    """The only object exposed to the loaded page (window.pywebview.api)."""

    def __init__(self, on_message: Callable[[Any], None]) -> None:
        self._on_message = on_message

    def post_message(self, data: Any) -> None:
        self._on_message(data)


class WebviewSurface:
    """
    pywebview-backed window kept above other windows.

    pywebview has no parent/child window relationship, so the window is
    not modal in the OS sense; on_top keeps it in front of the host.

    Requires the pywebview GUI loop to be running (webview.start()) before
    open() is called.
    """

    def __init__(
        self,
        title: str,
        width: int = config.SURFACE_WIDTH,
        height: int = config.SURFACE_HEIGHT,
    ) -> None:
        self.title = title
        self.width = width
        self.height = height
        self._window = None
        self._clear_origins: tuple = ()
        self._pending_url: Optional[str] = None
        self._on_loaded: Optional[Callable[[], None]] = None
        self._on_closed: Optional[Callable[[], None]] = None

    def clear_site_data(self, origins: Iterable[str]) -> None:
        self._clear_origins = tuple(origins)

    def open(
        self,
        url: str,
        on_loaded: Callable[[], None],
        on_message: Callable[[Any], None],
        on_closed: Callable[[], None],
    ) -> None:
        """Create the window and start loading url."""
        import webview

        self._on_loaded = on_loaded
        self._on_closed = on_closed

        if self._clear_origins:
            # Load a blank page first so cookies can be cleared before the
            # real page sees them.
            self._pending_url = url
            self._window = webview.create_window(
                self.title,
                html=_BLANK_HTML,
                js_api=_Bridge(on_message),
                width=self.width,
                height=self.height,
                on_top=True,
            )
        else:
            self._window = webview.create_window(
                self.title,
                url=url,
                js_api=_Bridge(on_message),
                width=self.width,
                height=self.height,
                on_top=True,
            )

        self._window.events.loaded += self._handle_loaded
        self._window.events.closed += self._handle_closed
        logger.debug(f"Opened surface '{self.title}'")

    def _handle_loaded(self) -> None:
        if self._pending_url:
            url, self._pending_url = self._pending_url, None
            self._clear_cookies()
            self._window.load_url(url)
            return
        if self._on_loaded:
            self._on_loaded()

    def _handle_closed(self) -> None:
        logger.debug(f"Surface '{self.title}' closed")
        if self._on_closed:
            self._on_closed()

    def _clear_cookies(self) -> None:
        clear = getattr(self._window, "clear_cookies", None)
        if clear is None:
            logger.warning("This pywebview version cannot clear cookies; a cached login may be reused")
            return
        clear()
        logger.info(f"Cleared site data for {len(self._clear_origins)} origins before login")

    def evaluate(self, script: str) -> Any:
        return self._window.evaluate_js(script)

    def close(self) -> None:
        if self._window is not None:
            self._window.destroy()
