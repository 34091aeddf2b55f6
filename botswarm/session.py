"""One bot's connection lifecycle.

Each lifecycle instance walks CONNECTING -> AUTHENTICATING -> ACTIVE ->
ENDED. Reaching ENDED (other than through pool shutdown) runs the
reconnect policy, which may schedule a fresh instance on the pool's
Scheduler. Every completed instance adds to exactly one of the
``failed`` / ``kicked`` / ``timed_out`` counters.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import socket
from contextlib import aclosing
from typing import Callable

from .config import SwarmConfig
from .connection import ConnectionEstablisher
from .errors import (
    AuthFailure,
    ConnectFailure,
    ProxyFailure,
    RemoteDisconnect,
    RemoteKick,
    SessionFailure,
    TransientError,
)
from .game_client import ClientFactory, ProtocolClient
from .models import (
    EndReason,
    Endpoint,
    EventKind,
    LifecycleState,
    ProtocolEvent,
    SessionInfo,
    Telemetry,
    parse_position,
)
from .responder import AuthResponder
from .scheduler import Scheduler
from .stats import Stats

logger = logging.getLogger(__name__)

IDLE_ACTIONS = ("look", "move", "jump")
MOVE_DIRECTIONS = ("forward", "back", "left", "right")
LOW_HEALTH = 10


class Session:
    """A single bot: identity, relay assignment and connection state."""

    def __init__(
        self,
        index: int,
        identity: str,
        relay: Endpoint | None,
        *,
        config: SwarmConfig,
        establisher: ConnectionEstablisher,
        client_factory: ClientFactory,
        stats: Stats,
        scheduler: Scheduler,
        is_running: Callable[[], bool],
        responder: AuthResponder | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._index = index
        self._identity = identity
        self._relay = relay
        self._target = Endpoint(config.target.host, config.target.port)
        self._version = config.target.version
        self._reconnect = config.reconnect
        self._behavior = config.behavior
        self._establisher = establisher
        self._client_factory = client_factory
        self._stats = stats
        self._scheduler = scheduler
        self._is_running = is_running
        self._responder = responder or AuthResponder()
        self._rng = rng or random.Random()

        self.state = LifecycleState.CONNECTING
        self.reconnect_count = 0
        self.telemetry = Telemetry()
        self.last_end_reason: EndReason | None = None
        self.messages_sent = 0
        self.commands_executed = 0

        self._sock: socket.socket | None = None
        self._client: ProtocolClient | None = None
        self._ticker: asyncio.Task | None = None
        self._stopping = False

    @property
    def index(self) -> int:
        return self._index

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def relay(self) -> Endpoint | None:
        return self._relay

    @property
    def active(self) -> bool:
        return self.state is LifecycleState.ACTIVE

    def info(self) -> SessionInfo:
        """Snapshot for console queries."""
        t = self.telemetry
        return SessionInfo(
            index=self._index,
            identity=self._identity,
            state=self.state,
            relay=self._relay,
            reconnect_count=self.reconnect_count,
            health=t.health,
            food=t.food,
            position=t.position,
            messages_received=t.messages_received,
        )

    # --- Lifecycle ---

    def start(self) -> asyncio.Task:
        """Begin a lifecycle instance on the scheduler."""
        return self._scheduler.spawn(self.run_lifecycle(), name=f"bot-{self._index}")

    async def run_lifecycle(self) -> EndReason | None:
        """Run one lifecycle instance to ENDED, then apply reconnect policy."""
        if self._stopping or not self._is_running():
            return None

        self.state = LifecycleState.CONNECTING
        self._stats.sent += 1
        try:
            reason = await self._connect_and_run()
            if self._stopping:
                reason = EndReason.SHUTDOWN
            self._record_end(reason)
        finally:
            self._stop_ticker()
            await self._teardown()
            self.state = LifecycleState.ENDED

        self._maybe_reconnect(reason)
        return reason

    async def _connect_and_run(self) -> EndReason:
        try:
            self._sock = await self._establisher.connect(self._target, self._relay)
        except ProxyFailure as e:
            logger.warning("Bot %d proxy failed: %s", self._index, e)
            return EndReason.PROXY_FAILURE
        except ConnectFailure as e:
            logger.warning("Bot %d connect failed: %s", self._index, e)
            return EndReason.CONNECT_FAILURE

        if self._stopping or not self._is_running():
            return EndReason.SHUTDOWN

        try:
            self._client = await self._client_factory(
                self._sock, self._target, self._identity, self._version
            )
        except (SessionFailure, OSError) as e:
            logger.warning("Bot %d handshake failed: %s", self._index, e)
            return EndReason.CONNECT_FAILURE
        # The client owns the socket from here on
        self._sock = None

        if self._stopping or not self._is_running():
            return EndReason.SHUTDOWN

        self.state = LifecycleState.AUTHENTICATING
        try:
            async with aclosing(self._client.events()) as events:
                async for event in events:
                    reason = await self.handle_event(event)
                    if reason is not None:
                        return reason
        except OSError as e:
            logger.warning("Bot %d transport error: %s", self._index, e)
        except Exception as e:
            # Ends this instance only; it is still counted and may reconnect
            logger.error(
                "Bot %d event handling failed: %s",
                self._index,
                TransientError(repr(e)),
                exc_info=e,
            )
        return EndReason.DISCONNECTED

    def _record_end(self, reason: EndReason) -> None:
        self.state = LifecycleState.ENDED
        self.last_end_reason = reason
        if reason in (EndReason.CONNECT_FAILURE, EndReason.PROXY_FAILURE):
            self._stats.failed += 1
        elif reason is EndReason.KICKED:
            self._stats.kicked += 1
        elif reason is EndReason.DISCONNECTED:
            self._stats.timed_out += 1

    def _maybe_reconnect(self, reason: EndReason) -> None:
        if reason is EndReason.SHUTDOWN or self._stopping or not self._is_running():
            return
        if self.reconnect_count >= self._reconnect.max_reconnects:
            logger.warning("Bot %d max reconnect attempts reached", self._index)
            return

        self.reconnect_count += 1
        self._stats.reconnects += 1
        delay = self.reconnect_delay(self.reconnect_count)
        logger.info(
            "Bot %d reconnecting in %gs (attempt %d/%d)",
            self._index,
            delay,
            self.reconnect_count,
            self._reconnect.max_reconnects,
        )
        self._scheduler.call_later(
            delay, self.run_lifecycle, name=f"bot-{self._index}-reconnect"
        )

    def reconnect_delay(self, attempt: int) -> float:
        return min(
            self._reconnect.base_delay_seconds * attempt,
            self._reconnect.delay_ceiling_seconds,
        )

    async def disconnect(self) -> None:
        """Tear down the transport for good; no further reconnects."""
        self._stopping = True
        self._stop_ticker()
        await self._teardown()
        self.state = LifecycleState.ENDED

    async def _teardown(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            sock.close()
        client, self._client = self._client, None
        if client is not None:
            try:
                await client.quit()
            except Exception as e:
                logger.debug("Bot %d quit failed: %s", self._index, e)

    # --- Event dispatch ---

    async def handle_event(self, event: ProtocolEvent) -> EndReason | None:
        """Apply one protocol event; returns the end reason if it ends the instance."""
        kind = event.kind
        if kind is EventKind.ESTABLISHED:
            self._on_established()
        elif kind is EventKind.SPAWNED:
            self.telemetry.position = parse_position(event.data.get("position"))
            logger.info("Bot %d spawned in world", self._index)
        elif kind is EventKind.HEALTH:
            self._on_health(event.data)
        elif kind is EventKind.KICKED:
            kick = RemoteKick(event.text or "no reason")
            logger.warning("Bot %d kicked: %s", self._index, kick.reason)
            return EndReason.KICKED
        elif kind is EventKind.ENDED:
            # Rejected logins surface as a plain close; counted like any other
            if self.state is LifecycleState.AUTHENTICATING:
                err: Exception = AuthFailure(event.text or "closed before login")
            else:
                err = RemoteDisconnect(event.text or "unknown")
            logger.warning("Bot %d connection ended: %r", self._index, err)
            return EndReason.DISCONNECTED
        elif kind is EventKind.ERROR:
            err = TransientError(event.text or "protocol error")
            logger.error("Bot %d error: %s", self._index, err)
        elif kind is EventKind.MESSAGE:
            await self._on_message(event.text)
        elif kind is EventKind.TICK:
            await self._on_tick()
        return None

    def _on_established(self) -> None:
        if self.state is not LifecycleState.AUTHENTICATING:
            return
        self.state = LifecycleState.ACTIVE
        self._stats.joined += 1
        self.reconnect_count = 0
        logger.info("Bot %d connected as %s", self._index, self._identity)
        self._ticker = self._scheduler.spawn(
            self._tick_loop(), name=f"bot-{self._index}-ticker"
        )

    def _on_health(self, data: dict) -> None:
        self.telemetry.health = _number(data.get("health"), self.telemetry.health)
        self.telemetry.food = _number(data.get("food"), self.telemetry.food)
        if self.telemetry.health < LOW_HEALTH:
            logger.warning("Bot %d low health: %g", self._index, self.telemetry.health)

    async def _on_message(self, text: str) -> None:
        self.telemetry.messages_received += 1
        self.telemetry.last_message = text
        if self._identity.lower() in text.lower():
            logger.info("Bot %d mentioned: %s", self._index, text)

        reply = self._responder.reply_for(text, self._identity)
        if reply is not None:
            logger.info("Bot %d answering auth prompt", self._index)
            await self._send(reply)

    # --- Idle behavior ---

    async def _tick_loop(self) -> None:
        while self.state is LifecycleState.ACTIVE:
            await asyncio.sleep(self._behavior.tick_interval_seconds)
            await self.handle_event(ProtocolEvent(EventKind.TICK))

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and ticker is not asyncio.current_task():
            ticker.cancel()

    async def _on_tick(self) -> None:
        if self.state is not LifecycleState.ACTIVE or self._client is None:
            return
        if self._rng.random() >= self._behavior.idle_action_chance:
            return
        action = self._rng.choice(IDLE_ACTIONS)
        try:
            if action == "look":
                await self._client.send_action(
                    "look", yaw=self._rng.uniform(0, 2 * math.pi), pitch=0.0
                )
            elif action == "move":
                await self._client.send_action(
                    "move", direction=self._rng.choice(MOVE_DIRECTIONS), duration_ms=1000
                )
            else:
                await self._client.send_action("jump")
        except Exception as e:
            logger.debug("Bot %d idle %s failed: %s", self._index, action, e)

    # --- Operator side effects ---

    def send_chat(self, text: str) -> bool:
        """Queue a chat message; False unless the session is active."""
        if not self.active:
            return False
        self.messages_sent += 1
        self._stats.messages_sent += 1
        self._scheduler.spawn(self._send(text), name=f"bot-{self._index}-chat")
        return True

    def execute_command(self, command: str) -> bool:
        """Queue a raw command string; False unless the session is active."""
        if not self.active:
            return False
        self.commands_executed += 1
        self._stats.commands_executed += 1
        logger.info("Bot %d executing: %s", self._index, command)
        self._scheduler.spawn(self._send(command), name=f"bot-{self._index}-cmd")
        return True

    async def _send(self, text: str) -> None:
        client = self._client
        if client is None:
            return
        try:
            await client.send_text(text)
        except Exception as e:
            logger.error("Bot %d send failed: %s", self._index, TransientError(str(e)))


def _number(value: object, default: float) -> float:
    """``value`` as a float, or ``default`` when it is not a real number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)
