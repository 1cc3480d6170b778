"""Record shapes for the cloud session and paired servers/entities."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import config


def now_ms() -> int:
    """Current time in epoch milliseconds (pairedAt stamps)."""
    return int(time.time() * 1000)


@dataclass
class CloudSession:
    """
    The user's authenticated cloud identity.

    expires_at (epoch seconds) is the only source of truth for refresh
    decisions.
    """

    access_token: str
    refresh_token: str
    expires_at: int
    web_app_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "web_app_url": self.web_app_url,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["CloudSession"]:
        """Rebuild a session from its stored form, or None if absent/empty."""
        if not isinstance(data, dict) or not data.get("access_token"):
            return None
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=int(data.get("expires_at") or 0),
            web_app_url=data.get("web_app_url") or "",
        )

    def seconds_remaining(self, now: float) -> float:
        return self.expires_at - now


def server_key(ip: Any, port: Any) -> str:
    """Composite identity of a paired server."""
    return f"{ip}:{port}"


def build_server_record(payload: Dict[str, Any], paired_at: int) -> Dict[str, Any]:
    """
    Build the stored record for a server-paired event.

    The record is the event payload as-is (name, ip, port, playerId,
    playerToken, ...) stamped with pairedAt.
    """
    record = dict(payload)
    record["pairedAt"] = paired_at
    return record


def _entity_id(value: Any) -> Any:
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def build_entity_record(payload: Dict[str, Any], paired_at: int) -> Dict[str, Any]:
    """
    Build the stored record for an entity-paired event.

    Missing entityType defaults to a switch and missing entityName to
    "Device #<id>". serverId is a weak back-reference to a server key.
    """
    entity_id = payload.get("entityId")
    return {
        "entityId": _entity_id(entity_id),
        "entityType": payload.get("entityType") or config.DEFAULT_ENTITY_TYPE,
        "entityName": payload.get("entityName") or f"Device #{entity_id}",
        "serverId": server_key(payload.get("ip"), payload.get("port")),
        "serverName": payload.get("name") or config.DEFAULT_SERVER_NAME,
        "pairedAt": paired_at,
    }
