"""
Pairing engine interface.

The engine is an external component that speaks the Rust+ pairing
protocol. It reports what happens as tagged events pushed into a sink the
orchestrator hands it. The sink is thread-safe, so engines may emit from
their own network threads.
"""

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Union

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    """Progress text, forwarded verbatim."""

    message: str


@dataclass(frozen=True)
class ServerPairedEvent:
    """A server was paired. data carries name, ip, port, playerId, playerToken."""

    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityPairedEvent:
    """A device (switch, alarm, ...) was paired on a server."""

    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineErrorEvent:
    """Non-fatal engine error. The engine keeps running."""

    message: str


PairingEvent = Union[StatusEvent, ServerPairedEvent, EntityPairedEvent, EngineErrorEvent]
EventSink = Callable[[PairingEvent], None]

# Event names used by emitter-style engines
_EMITTER_EVENTS = {
    "status": lambda payload: StatusEvent(str(payload)),
    "server:paired": lambda payload: ServerPairedEvent(dict(payload or {})),
    "entity:paired": lambda payload: EntityPairedEvent(dict(payload or {})),
    "error": lambda payload: EngineErrorEvent(str(getattr(payload, "message", None) or payload)),
}


def event_from_emitter(name: str, payload: Any) -> Optional[PairingEvent]:
    """
    Translate a named emitter event into its tagged variant.

    Returns:
        The event, or None for names the orchestrator does not consume.
    """
    build = _EMITTER_EVENTS.get(name)
    return build(payload) if build else None


class PairingEngine(Protocol):
    """What the orchestrator needs from a pairing engine."""

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        """Start delivering events to sink. Returns an unsubscribe callable."""
        ...

    async def register_with_token(self, token: str) -> None:
        ...

    async def start_listening(self) -> None:
        ...

    def destroy(self) -> None:
        """Release network listeners and resources."""
        ...


def load_engine_factory(target: str = config.PAIRING_ENGINE) -> Optional[Callable[[], PairingEngine]]:
    """
    Resolve the configured engine factory.

    Args:
        target: "package.module:attribute", usually from PAIRING_ENGINE.

    Returns:
        The factory, or None if no engine is configured.

    Raises:
        ValueError: If target is malformed.
        ImportError / AttributeError: If the target cannot be found.
    """
    if not target:
        return None

    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"PAIRING_ENGINE must look like 'package.module:attribute', got '{target}'")

    module = importlib.import_module(module_name)
    factory = getattr(module, attribute)
    logger.info(f"Using pairing engine {target}")
    return factory
