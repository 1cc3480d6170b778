"""
Structured outcomes shared by every component.

Operations never raise for expected failures. They return a dict:
    {"success": bool, "error": str | None, "error_type": str | None, ...}

error_type values:
    user_cancelled     surface closed before completion (not an error)
    timeout            hard capture ceiling exceeded
    not_authenticated  operation requires a session that is absent
    session_expired    session present but stale, re-login required
    network_failure    transport-level failure reaching a backend
    upstream_rejected  backend returned a non-success status
    engine_error       pairing engine failed during registration/listening
    not_found          delete targeted a key that does not exist
    not_configured     a required collaborator or setting is missing
"""

from typing import Any, Dict, Optional

USER_CANCELLED = "user_cancelled"
TIMEOUT = "timeout"
NOT_AUTHENTICATED = "not_authenticated"
SESSION_EXPIRED = "session_expired"
NETWORK_FAILURE = "network_failure"
UPSTREAM_REJECTED = "upstream_rejected"
ENGINE_ERROR = "engine_error"
NOT_FOUND = "not_found"
NOT_CONFIGURED = "not_configured"

SESSION_EXPIRED_MESSAGE = "Session expired. Please log out and log back in."
NOT_LOGGED_IN_MESSAGE = "Not logged in to cloud"


def ok(**extra: Any) -> Dict[str, Any]:
    """Build a successful outcome, merging any extra fields."""
    result: Dict[str, Any] = {"success": True, "error": None, "error_type": None}
    result.update(extra)
    return result


def fail(error: str, error_type: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    """Build a failed outcome."""
    result: Dict[str, Any] = {"success": False, "error": error, "error_type": error_type}
    result.update(extra)
    return result
