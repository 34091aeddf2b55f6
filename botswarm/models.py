"""Data models shared by sessions, the pool and the console.

Wire events use the envelope ``{"event_type": ..., "data": ...}``; the
parse helpers below turn an envelope into a typed ProtocolEvent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Endpoint:
    """A host/port pair (target server or SOCKS5 relay)."""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_endpoint(value: str) -> Endpoint:
    """Parse an ``ip:port`` string into an Endpoint."""
    host, _, port = value.strip().rpartition(":")
    if not host or not port.isdigit():
        raise ValueError(f"invalid endpoint: {value!r}")
    return Endpoint(host=host, port=int(port))


class LifecycleState(str, Enum):
    CONNECTING = "Connecting"
    AUTHENTICATING = "Authenticating"
    ACTIVE = "Active"
    ENDED = "Ended"


class EndReason(str, Enum):
    CONNECT_FAILURE = "ConnectFailure"
    PROXY_FAILURE = "ProxyFailure"
    KICKED = "Kicked"
    DISCONNECTED = "Disconnected"
    SHUTDOWN = "Shutdown"


class EventKind(str, Enum):
    """Lifecycle events emitted by a protocol client."""

    ESTABLISHED = "established"
    SPAWNED = "spawned"
    HEALTH = "health"
    KICKED = "kicked"
    ENDED = "ended"
    ERROR = "error"
    MESSAGE = "message"
    TICK = "tick"


@dataclass(frozen=True)
class ProtocolEvent:
    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Message / reason text carried by the event, if any."""
        for key in ("message", "reason"):
            value = self.data.get(key)
            if value is not None:
                return value if isinstance(value, str) else str(value)
        return ""


@dataclass(frozen=True)
class Position:
    x: float
    y: float
    z: float

    def __str__(self) -> str:
        return f"{int(self.x)}, {int(self.y)}, {int(self.z)}"


@dataclass
class Telemetry:
    """Last-known health/position snapshot for one session."""

    health: float = 20.0
    food: float = 20.0
    position: Position | None = None
    messages_received: int = 0
    last_message: str | None = None


@dataclass(frozen=True)
class SessionInfo:
    """Read-only copy of a session's state, handed to the console."""

    index: int
    identity: str
    state: LifecycleState
    relay: Endpoint | None
    reconnect_count: int
    health: float
    food: float
    position: Position | None
    messages_received: int

    @property
    def active(self) -> bool:
        return self.state is LifecycleState.ACTIVE


# Server-side event_type -> EventKind
_WIRE_EVENTS: dict[str, EventKind] = {
    "login_success": EventKind.ESTABLISHED,
    "spawn": EventKind.SPAWNED,
    "health": EventKind.HEALTH,
    "kick": EventKind.KICKED,
    "chat": EventKind.MESSAGE,
    "error": EventKind.ERROR,
}


def parse_position(data: Any) -> Position | None:
    """Parse a ``{"x", "y", "z"}`` dict; None when absent or malformed."""
    if not isinstance(data, dict):
        return None
    try:
        return Position(x=float(data["x"]), y=float(data["y"]), z=float(data["z"]))
    except (KeyError, TypeError, ValueError):
        return None


def parse_event(msg: dict) -> ProtocolEvent | None:
    """Parse a wire envelope; None for unknown event types."""
    event_type = msg.get("event_type")
    if not isinstance(event_type, str):
        return None
    kind = _WIRE_EVENTS.get(event_type)
    if kind is None:
        return None
    data = msg.get("data")
    if isinstance(data, str):
        # Bare strings are accepted for kick/chat/error payloads
        key = "reason" if kind is EventKind.KICKED else "message"
        data = {key: data}
    elif not isinstance(data, dict):
        data = {}
    return ProtocolEvent(kind=kind, data=data)
