"""Session pool: spawns bots and fans out operator commands to them.

Members are keyed by a 1-based index assigned in spawn order. Indices are
never reused, and members that run out of reconnects stay in the pool so
they can still be inspected.
"""

from __future__ import annotations

import asyncio
import logging
import random

from .config import SwarmConfig
from .connection import ConnectionEstablisher
from .errors import SessionNotFound
from .game_client import ClientFactory, WebSocketClientFactory
from .identity import generate_username
from .proxy_pool import ProxyPool
from .responder import AuthResponder
from .scheduler import Scheduler
from .session import Session
from .stats import Stats

logger = logging.getLogger(__name__)


class SessionPool:
    """Owns every Session and the scheduler their tasks run on."""

    def __init__(
        self,
        config: SwarmConfig,
        stats: Stats | None = None,
        proxies: ProxyPool | None = None,
        establisher: ConnectionEstablisher | None = None,
        client_factory: ClientFactory | None = None,
        responder: AuthResponder | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self.stats = stats or Stats()
        self.proxies = proxies or ProxyPool(self.stats)
        self._establisher = establisher or ConnectionEstablisher(
            config.connection.connect_timeout_seconds
        )
        self._client_factory = client_factory or WebSocketClientFactory(
            config.connection
        )
        self._responder = responder or AuthResponder()
        self._rng = rng or random.Random()

        self.members: dict[int, Session] = {}
        self.running = True
        self.scheduler = Scheduler(lambda: self.running)
        self.final_stats: Stats | None = None
        self._next_index = 1
        self._shutdown: asyncio.Future[Stats] | None = None

    def __len__(self) -> int:
        return len(self.members)

    def is_running(self) -> bool:
        return self.running

    # --- Spawning ---

    def add_session(self) -> Session:
        """Create the next member and start its first lifecycle instance."""
        index = self._next_index
        self._next_index += 1
        relay = self.proxies.next(index - 1)
        session = Session(
            index,
            generate_username(self._rng),
            relay,
            config=self._config,
            establisher=self._establisher,
            client_factory=self._client_factory,
            stats=self.stats,
            scheduler=self.scheduler,
            is_running=self.is_running,
            responder=self._responder,
            rng=self._rng,
        )
        self.members[index] = session
        session.start()
        logger.info(
            "Spawned bot %d (%s) via %s",
            index,
            session.identity,
            relay or "direct connection",
        )
        return session

    async def spawn(
        self, count: int, interval: float, jitter_max: float = 0.0
    ) -> int:
        """Create ``count`` sessions, spaced by ``interval + U(0, jitter_max)``.

        Stops early once the pool is no longer running. Returns how many
        sessions were created.
        """
        spawned = 0
        for n in range(count):
            if not self.running:
                break
            self.add_session()
            spawned += 1
            if n < count - 1:
                await asyncio.sleep(interval + self._rng.uniform(0, jitter_max))

        if spawned == count:
            logger.info("All %d bots spawned", count)
        else:
            logger.info("Spawning stopped after %d/%d bots", spawned, count)
        return spawned

    # --- Fan-out ---

    def broadcast(self, text: str) -> int:
        """Send a chat line from every active member."""
        if not text:
            return 0
        sent = sum(1 for s in self.members.values() if s.send_chat(text))
        logger.info("Broadcasted to %d bots: %s", sent, text)
        return sent

    def dispatch(self, command: str) -> int:
        """Execute a raw command on every active member."""
        if not command:
            return 0
        executed = sum(1 for s in self.members.values() if s.execute_command(command))
        logger.info("Executed on %d bots: %s", executed, command)
        return executed

    # --- Queries ---

    def query(self, index: int) -> Session:
        try:
            return self.members[index]
        except KeyError:
            raise SessionNotFound(index) from None

    def sessions(self) -> list[Session]:
        return [self.members[i] for i in sorted(self.members)]

    def active_count(self) -> int:
        return sum(1 for s in self.members.values() if s.active)

    # --- Shutdown ---

    async def shutdown_all(self) -> Stats:
        """Stop every member and all pending work. Safe to call repeatedly."""
        if self._shutdown is None:
            self.running = False
            self._shutdown = asyncio.ensure_future(self._shutdown_members())
        return await asyncio.shield(self._shutdown)

    async def _shutdown_members(self) -> Stats:
        logger.info("Stopping all %d bots...", len(self.members))

        await asyncio.gather(
            *(s.disconnect() for s in self.members.values()),
            return_exceptions=True,
        )
        await self.scheduler.cancel_all()

        self.final_stats = self.stats.snapshot()
        logger.info(
            "Session complete: sent=%d joined=%d failed=%d kicked=%d timed_out=%d",
            self.final_stats.sent,
            self.final_stats.joined,
            self.final_stats.failed,
            self.final_stats.kicked,
            self.final_stats.timed_out,
        )
        return self.final_stats
