"""
Pairing package — pairing-engine interface and orchestration.
"""

from pairing.engine import (
    EngineErrorEvent,
    EntityPairedEvent,
    PairingEngine,
    ServerPairedEvent,
    StatusEvent,
    load_engine_factory,
)
from pairing.orchestrator import PairingOrchestrator

__all__ = [
    "EngineErrorEvent",
    "EntityPairedEvent",
    "PairingEngine",
    "PairingOrchestrator",
    "ServerPairedEvent",
    "StatusEvent",
    "load_engine_factory",
]
