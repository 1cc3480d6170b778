"""
SessionManager — cloud login, logout and access-token lifecycle.

Login happens on the web app inside an isolated auth surface. The web
app's desktop-callback page assigns its result to
window.__DESKTOP_AUTH_DATA__; the injected hook forwards that assignment
through the surface bridge.

Refresh is lazy: get_valid_access_token() renews the token only when it
is asked for one and the stored token is within the safety margin of
expiry. There is no background renewal timer.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

import config
from capture.bridge import CAPTURED, SurfaceSession, build_variable_hook
from capture.surface import CaptureSurface, WebviewSurface
from core.results import USER_CANCELLED, fail, ok
from storage.records import CloudSession
from storage.repository import CredentialRepository

logger = logging.getLogger(__name__)

AUTH_DATA_VARIABLE = "__DESKTOP_AUTH_DATA__"
AUTH_SHIM = build_variable_hook(AUTH_DATA_VARIABLE)


def parse_auth_payload(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Accept a desktop-callback payload.

    Expected shape: {success, accessToken, refreshToken, expiresAt,
    userId, email, name}. Only successful payloads with a non-empty
    accessToken are accepted.
    """
    if not isinstance(raw, str):
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    if not data.get("success") or not data.get("accessToken"):
        return None
    return data


class SessionManager:
    """Owns the persisted CloudSession."""

    def __init__(
        self,
        repository: CredentialRepository,
        http_client: httpx.AsyncClient,
        surface_factory: Callable[[str], CaptureSurface] = WebviewSurface,
        clock: Callable[[], float] = time.time,
        web_app_url: str = config.WEB_APP_URL,
        supabase_url: str = config.SUPABASE_URL,
        supabase_key: str = config.SUPABASE_ANON_KEY,
    ) -> None:
        self._repository = repository
        self._http = http_client
        self._surface_factory = surface_factory
        self._clock = clock
        self._web_app_url = web_app_url.rstrip("/")
        self._supabase_url = supabase_url.rstrip("/")
        self._supabase_key = supabase_key

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    async def login(self) -> Dict[str, Any]:
        """
        Sign in through the web app.

        Site data for the identity provider and backend origins is cleared
        first so a second login can switch accounts.

        Returns:
            {"success": True, "user": {...}, "access_token", "refresh_token",
            "expires_at"} on success, or a "user_cancelled" outcome if the
            window was closed first. There is no timeout.
        """
        surface = self._surface_factory("Sign in to Rust Insight")
        surface.clear_site_data(config.AUTH_CLEAR_ORIGINS)

        session = SurfaceSession(surface, AUTH_SHIM, parse_auth_payload)
        outcome, payload = await session.run(f"{self._web_app_url}{config.AUTH_CALLBACK_PATH}")

        if outcome != CAPTURED:
            logger.info("Login window closed before sign-in completed")
            return fail("Login cancelled", USER_CANCELLED)

        session.close()

        cloud_session = CloudSession(
            access_token=payload["accessToken"],
            refresh_token=payload.get("refreshToken") or "",
            expires_at=int(payload.get("expiresAt") or self._clock() + config.DEFAULT_TOKEN_LIFETIME_SECONDS),
            web_app_url=self._web_app_url,
        )
        self._repository.save_session(cloud_session)

        user = {
            "id": payload.get("userId"),
            "email": payload.get("email"),
            "name": payload.get("name") or None,
        }
        logger.info(f"Logged in to cloud as {user['email'] or 'unknown'}")
        return ok(
            user=user,
            access_token=cloud_session.access_token,
            refresh_token=cloud_session.refresh_token,
            expires_at=cloud_session.expires_at,
        )

    def logout(self) -> Dict[str, Any]:
        """Forget the stored session. Always succeeds."""
        self._repository.clear_session()
        logger.info("Logged out of cloud")
        return ok()

    def get_session(self) -> Optional[Dict[str, Any]]:
        """The stored session as persisted, or None when logged out."""
        return self._repository.get_session_data()

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    async def get_valid_access_token(self) -> Optional[str]:
        """
        Return an access token good for at least the safety margin.

        Returns:
            The current token if it expires more than
            TOKEN_REFRESH_MARGIN_SECONDS from now, otherwise a refreshed
            token. None when there is no session, no refresh token, or the
            refresh failed for any reason. Never raises.
        """
        session = self._repository.get_session()
        if session is None:
            return None

        now = self._clock()
        if session.seconds_remaining(now) > config.TOKEN_REFRESH_MARGIN_SECONDS:
            return session.access_token

        if not session.refresh_token:
            logger.info("Access token expiring and no refresh token stored, re-login required")
            return None

        return await self._refresh(session)

    async def _refresh(self, session: CloudSession) -> Optional[str]:
        """Exchange the refresh token. Failures are not retried."""
        url = f"{self._supabase_url}/auth/v1/token"
        try:
            response = await self._http.post(
                url,
                params={"grant_type": "refresh_token"},
                headers={"apikey": self._supabase_key},
                json={"refresh_token": session.refresh_token},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Token refresh failed: {e}")
            return None

        if not response.is_success:
            logger.warning(f"Token refresh rejected: HTTP {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Token refresh returned invalid JSON: {e}")
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.warning("Token refresh response had no access token")
            return None

        try:
            lifetime = int(data.get("expires_in") or config.DEFAULT_TOKEN_LIFETIME_SECONDS)
        except (TypeError, ValueError):
            logger.warning(f"Token refresh returned unusable expires_in: {data.get('expires_in')!r}")
            lifetime = config.DEFAULT_TOKEN_LIFETIME_SECONDS

        refreshed = CloudSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or session.refresh_token,
            expires_at=int(self._clock()) + lifetime,
            web_app_url=session.web_app_url,
        )
        try:
            self._repository.save_session(refreshed)
        except OSError as e:
            logger.warning(f"Could not persist refreshed session: {e}")
            return None
        logger.info("Cloud access token refreshed")
        return refreshed.access_token
