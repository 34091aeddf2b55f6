"""JSON-over-WebSocket game protocol client.

Runs the WebSocket handshake over a socket opened by the
ConnectionEstablisher, sends the login envelope, then turns every inbound
``{"event_type": ..., "data": ...}`` message into a ProtocolEvent. When
the socket closes a final ENDED event is yielded.

Sessions only rely on the ProtocolClient interface, so other protocols
can be plugged in through a different ClientFactory.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from typing import Any, AsyncIterator, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from .config import ConnectionConfig
from .errors import ConnectFailure
from .models import Endpoint, EventKind, ProtocolEvent, parse_event

logger = logging.getLogger(__name__)


class ProtocolClient(Protocol):
    def events(self) -> AsyncIterator[ProtocolEvent]: ...

    async def send_text(self, text: str) -> None: ...

    async def send_action(self, kind: str, **data: Any) -> None: ...

    async def quit(self) -> None: ...


class ClientFactory(Protocol):
    async def __call__(
        self, sock: socket.socket, target: Endpoint, username: str, version: str
    ) -> ProtocolClient: ...


class GameClient:
    """One logged-in WebSocket connection."""

    def __init__(self, ws: Any, username: str) -> None:
        self._ws = ws
        self.username = username

    async def events(self) -> AsyncIterator[ProtocolEvent]:
        reason = ""
        try:
            async for raw_message in self._ws:
                try:
                    msg = json.loads(raw_message)
                except json.JSONDecodeError as e:
                    logger.warning("Invalid JSON for %s: %s", self.username, e)
                    continue
                if not isinstance(msg, dict):
                    continue
                event = parse_event(msg)
                if event is not None:
                    yield event
        except ConnectionClosed as e:
            reason = str(e)
        reason = reason or getattr(self._ws, "close_reason", "") or "connection closed"
        yield ProtocolEvent(EventKind.ENDED, {"reason": reason})

    async def send_text(self, text: str) -> None:
        await self._send("chat", {"message": text})

    async def send_action(self, kind: str, **data: Any) -> None:
        await self._send("action", {"kind": kind, **data})

    async def quit(self) -> None:
        await self._ws.close()

    async def _send(self, event_type: str, data: dict[str, Any]) -> None:
        await self._ws.send(json.dumps({"event_type": event_type, "data": data}))


class WebSocketClientFactory:
    """Default ClientFactory: WebSocket handshake + login envelope."""

    def __init__(self, config: ConnectionConfig) -> None:
        self._config = config

    async def __call__(
        self, sock: socket.socket, target: Endpoint, username: str, version: str
    ) -> GameClient:
        uri = f"ws://{target.host}:{target.port}/"
        try:
            ws = await websockets.connect(
                uri,
                sock=sock,
                open_timeout=self._config.connect_timeout_seconds,
                ping_interval=self._config.ping_interval_seconds,
                ping_timeout=20,
            )
        except (
            InvalidHandshake, ConnectionClosed, OSError, asyncio.TimeoutError
        ) as e:
            sock.close()
            raise ConnectFailure(f"handshake with {target} failed: {e}") from e

        client = GameClient(ws, username)
        try:
            await client._send("login", {"username": username, "version": version})
        except ConnectionClosed as e:
            await ws.close()
            raise ConnectFailure(f"{target} closed during login: {e}") from e
        return client
