"""Shared test fixtures and protocol stubs for botswarm tests."""

from __future__ import annotations

import asyncio
from typing import Callable
from unittest.mock import MagicMock

import pytest

from botswarm.config import (
    BehaviorConfig,
    ConsoleConfig,
    ReconnectConfig,
    SwarmConfig,
    TargetConfig,
)
from botswarm.models import Endpoint, EventKind, ProtocolEvent
from botswarm.stats import Stats


def make_config(
    max_reconnects: int = 0,
    idle_action_chance: float = 0.0,
    **overrides,
) -> SwarmConfig:
    """SwarmConfig with delays small enough for tests."""
    values = dict(
        target=TargetConfig(host="127.0.0.1", port=25565, version="1.20.1"),
        reconnect=ReconnectConfig(
            max_reconnects=max_reconnects,
            base_delay_seconds=0.01,
            delay_ceiling_seconds=0.05,
        ),
        behavior=BehaviorConfig(
            tick_interval_seconds=0.01, idle_action_chance=idle_action_chance
        ),
        console=ConsoleConfig(macro_step_delay_seconds=0.0),
    )
    values.update(overrides)
    return SwarmConfig(**values)


class StubClient:
    """In-memory protocol client fed from a queue of events."""

    def __init__(self, script: list[ProtocolEvent] | None = None) -> None:
        self.queue: asyncio.Queue[ProtocolEvent | None] = asyncio.Queue()
        for event in script or []:
            self.queue.put_nowait(event)
        self.sent: list[str] = []
        self.actions: list[tuple[str, dict]] = []
        self.quit_calls = 0

    async def events(self):
        while True:
            event = await self.queue.get()
            if event is None:
                yield ProtocolEvent(EventKind.ENDED, {"reason": "closed"})
                return
            yield event

    def push(self, kind: EventKind, **data) -> None:
        self.queue.put_nowait(ProtocolEvent(kind, data))

    def close(self) -> None:
        self.queue.put_nowait(None)

    async def send_text(self, text: str) -> None:
        self.sent.append(text)

    async def send_action(self, kind: str, **data) -> None:
        self.actions.append((kind, data))

    async def quit(self) -> None:
        self.quit_calls += 1
        self.close()


class StubClientFactory:
    """Hands out StubClients that start with ``script``."""

    def __init__(self, script: tuple[EventKind, ...] = (EventKind.ESTABLISHED,)) -> None:
        self.script = script
        self.clients: list[StubClient] = []
        self.calls: list[tuple[Endpoint, str, str]] = []

    async def __call__(self, sock, target: Endpoint, username: str, version: str) -> StubClient:
        self.calls.append((target, username, version))
        client = StubClient([ProtocolEvent(kind) for kind in self.script])
        self.clients.append(client)
        return client


class StubEstablisher:
    """Connects instantly, or raises ``fail`` on every attempt."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.calls: list[tuple[Endpoint, Endpoint | None]] = []
        self.sockets: list[MagicMock] = []

    async def connect(self, target: Endpoint, relay: Endpoint | None = None):
        self.calls.append((target, relay))
        if self.fail is not None:
            raise self.fail
        sock = MagicMock()
        self.sockets.append(sock)
        return sock


@pytest.fixture
def config() -> SwarmConfig:
    return make_config()


@pytest.fixture
def stats() -> Stats:
    return Stats()


@pytest.fixture
def target() -> Endpoint:
    return Endpoint("127.0.0.1", 25565)


@pytest.fixture
def wait_until() -> Callable:
    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait
