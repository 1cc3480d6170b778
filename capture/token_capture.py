"""
TokenCapture — obtain the Rust+ companion token from the Steam login page.

The companion login page has no documented callback API. Its only
integration hook is window.ReactNativeWebView.postMessage (meant for the
mobile app's web view), so the capture shim provides that object and
forwards every posted message to the host, where the recognition policy
picks out the token.
"""

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, Optional, Sequence

import config
from capture.bridge import CLOSED, TIMED_OUT, SurfaceSession, build_shim
from capture.surface import CaptureSurface, WebviewSurface
from core.results import TIMEOUT, USER_CANCELLED, fail, ok

logger = logging.getLogger(__name__)

# Three base64url segments, header segment starting with '{"' (eyJ)
JWT_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")

CAPTURE_SHIM = build_shim(
    """
  window.alert = function (msg) { console.log('Alert:', msg); };
  window.confirm = function () { return true; };
  window.prompt = function () { return null; };
  window.ReactNativeWebView = { postMessage: forward };
"""
)

SUCCESS_PAGE_JS = """
document.body.innerHTML = '<div style="font-family: sans-serif; background: linear-gradient(135deg, #1a1a1a, #2d1a1a); color: #fff; display: flex; align-items: center; justify-content: center; height: 100vh; margin: 0;"><div style="text-align: center; padding: 40px; background: rgba(30,30,30,0.9); border-radius: 16px; border: 1px solid rgba(46,204,113,0.3);"><div style="font-size: 48px; margin-bottom: 16px;">&#10003;</div><h2 style="color: #2ecc71; margin: 0 0 8px 0;">Steam Linked!</h2><p style="color: #888; margin: 0;">This window will close automatically.</p></div></div>';
"""


def extract_token(raw: Any, aliases: Sequence[str] = config.TOKEN_FIELD_ALIASES) -> Optional[str]:
    """
    Pick the token out of a message posted by the login page.

    Structured parse first: the first non-empty field among aliases. Only if
    the message is not JSON, fall back to the first JWT-shaped substring.

    Args:
        raw: Message as received from the bridge.
        aliases: Field names to try, in order.

    Returns:
        The token, or None if the message carries none.
    """
    if not isinstance(raw, str):
        return None

    try:
        parsed = json.loads(raw)
    except ValueError:
        match = JWT_PATTERN.search(raw)
        return match.group(0) if match else None

    if not isinstance(parsed, dict):
        return None
    for alias in aliases:
        value = parsed.get(alias)
        if value:
            return str(value)
    return None


class TokenCapture:
    """Opens the capture surface and waits for the token."""

    def __init__(
        self,
        surface_factory: Callable[[str], CaptureSurface] = WebviewSurface,
        grace_seconds: float = config.CAPTURE_SUCCESS_GRACE_SECONDS,
    ) -> None:
        """
        Args:
            surface_factory: Builds a surface given its window title.
            grace_seconds: How long the success page stays up before closing.
        """
        self._surface_factory = surface_factory
        self._grace_seconds = grace_seconds

    async def capture(
        self,
        login_url: str = config.STEAM_LOGIN_URL,
        aliases: Sequence[str] = config.TOKEN_FIELD_ALIASES,
        timeout: float = config.CAPTURE_TIMEOUT_SECONDS,
    ) -> Dict[str, Any]:
        """
        Capture a token from login_url.

        Returns:
            {"success": True, "token": str} on capture.
            error_type "user_cancelled" if the window was closed first,
            "timeout" if nothing arrived within timeout seconds.
            Neither failure is retried here.
        """
        session = SurfaceSession(
            self._surface_factory("Steam Login"),
            CAPTURE_SHIM,
            lambda raw: extract_token(raw, aliases),
        )

        logger.info(f"Opening Steam login: {login_url}")
        outcome, token = await session.run(login_url, timeout)

        if outcome == CLOSED:
            logger.info("Steam login window closed before a token was captured")
            return fail("Steam login was cancelled", USER_CANCELLED)
        if outcome == TIMED_OUT:
            return fail(f"Steam login timed out after {int(timeout)} seconds", TIMEOUT)

        logger.info("Steam token captured")
        try:
            await session.evaluate(SUCCESS_PAGE_JS)
            await asyncio.sleep(self._grace_seconds)
        finally:
            session.close()
        return ok(token=token)
