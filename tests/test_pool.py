"""Tests for the SessionPool: spawning, fan-out and shutdown."""

from __future__ import annotations

import asyncio
import random
from collections import Counter

import pytest

from botswarm.errors import ConnectFailure, SessionNotFound
from botswarm.models import EventKind, LifecycleState
from botswarm.pool import SessionPool
from botswarm.proxy_pool import ProxyPool
from botswarm.stats import Stats

from conftest import StubClientFactory, StubEstablisher, make_config


def _make_pool(
    max_reconnects: int = 0,
    establisher: StubEstablisher | None = None,
    verified: list[str] | None = None,
) -> tuple[SessionPool, StubEstablisher, StubClientFactory]:
    stats = Stats()
    proxies = ProxyPool(stats)
    proxies.verified = list(verified or [])
    proxies.candidates = set(proxies.verified)
    establisher = establisher or StubEstablisher()
    factory = StubClientFactory()
    pool = SessionPool(
        make_config(max_reconnects=max_reconnects),
        stats=stats,
        proxies=proxies,
        establisher=establisher,
        client_factory=factory,
        rng=random.Random(3),
    )
    return pool, establisher, factory


class TestSpawn:
    @pytest.mark.asyncio
    async def test_spawn_three_all_active(self, wait_until) -> None:
        pool, _, _ = _make_pool()
        assert await pool.spawn(3, 0, 0) == 3
        await wait_until(lambda: pool.active_count() == 3)

        assert pool.stats.joined == 3
        assert pool.stats.sent == 3
        assert sorted(pool.members) == [1, 2, 3]
        assert all(s.state is LifecycleState.ACTIVE for s in pool.sessions())
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_members_kept_when_sessions_fail(self, wait_until) -> None:
        """Indices 1..n exist after spawning however many ended up active."""
        pool, _, _ = _make_pool(establisher=StubEstablisher(ConnectFailure("refused")))
        await pool.spawn(4, 0, 0)
        await wait_until(lambda: pool.stats.failed == 4)

        assert sorted(pool.members) == [1, 2, 3, 4]
        assert pool.active_count() == 0
        assert pool.query(2).state is LifecycleState.ENDED
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_round_robin_relays(self) -> None:
        relays = ["1.1.1.1:1080", "2.2.2.2:1080", "3.3.3.3:1080"]
        pool, _, _ = _make_pool(verified=relays)
        await pool.spawn(7, 0, 0)

        counts = Counter(str(s.relay) for s in pool.sessions())
        assert set(counts) == set(relays)
        assert sorted(counts.values()) == [2, 2, 3]
        assert str(pool.query(1).relay) == "1.1.1.1:1080"
        assert str(pool.query(4).relay) == "1.1.1.1:1080"
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_direct_when_no_relays(self) -> None:
        pool, _, _ = _make_pool()
        await pool.spawn(2, 0, 0)
        assert all(s.relay is None for s in pool.sessions())
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_spawn_stops_when_pool_stops(self, wait_until) -> None:
        pool, _, _ = _make_pool()
        task = asyncio.create_task(pool.spawn(10, 0.05, 0))
        await wait_until(lambda: len(pool) >= 2)

        await pool.shutdown_all()
        spawned = await task
        assert spawned < 10
        assert len(pool) == spawned

    @pytest.mark.asyncio
    async def test_indices_never_reused(self) -> None:
        pool, _, _ = _make_pool()
        await pool.spawn(2, 0, 0)
        del pool.members[2]
        session = pool.add_session()
        assert session.index == 3
        await pool.shutdown_all()


class TestFanOut:
    @pytest.mark.asyncio
    async def test_broadcast_skips_inactive(self, wait_until) -> None:
        pool, _, factory = _make_pool()
        await pool.spawn(3, 0, 0)
        await wait_until(lambda: pool.active_count() == 3)

        factory.clients[2].push(EventKind.KICKED, reason="bye")
        await wait_until(lambda: pool.query(3).state is LifecycleState.ENDED)

        assert pool.broadcast("hi") == 2
        assert [s.messages_sent for s in pool.sessions()] == [1, 1, 0]
        assert pool.stats.messages_sent == 2
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_dispatch_counts_commands(self, wait_until) -> None:
        pool, _, factory = _make_pool()
        await pool.spawn(2, 0, 0)
        await wait_until(lambda: pool.active_count() == 2)

        assert pool.dispatch("/warp spawn") == 2
        await wait_until(lambda: all(c.sent for c in factory.clients))
        assert pool.stats.commands_executed == 2
        assert [c.sent for c in factory.clients] == [["/warp spawn"], ["/warp spawn"]]
        await pool.shutdown_all()

    @pytest.mark.asyncio
    async def test_empty_text_sends_nothing(self) -> None:
        pool, _, _ = _make_pool()
        assert pool.broadcast("") == 0
        assert pool.dispatch("") == 0

    def test_query_missing(self) -> None:
        pool, _, _ = _make_pool()
        with pytest.raises(SessionNotFound):
            pool.query(42)
        with pytest.raises(KeyError):
            pool.query(42)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, wait_until) -> None:
        pool, _, factory = _make_pool(max_reconnects=3)
        await pool.spawn(2, 0, 0)
        await wait_until(lambda: pool.active_count() == 2)

        first = await pool.shutdown_all()
        second = await pool.shutdown_all()

        assert first is second
        assert pool.running is False
        assert pool.active_count() == 0
        assert [c.quit_calls for c in factory.clients] == [1, 1]
        assert first.ended == 0
        assert first.reconnects == 0

    @pytest.mark.asyncio
    async def test_concurrent_shutdown_calls(self) -> None:
        pool, _, _ = _make_pool()
        await pool.spawn(2, 0, 0)
        a, b = await asyncio.gather(pool.shutdown_all(), pool.shutdown_all())
        assert a is b

    @pytest.mark.asyncio
    async def test_pending_reconnects_abandoned(self) -> None:
        pool, establisher, _ = _make_pool(
            max_reconnects=3, establisher=StubEstablisher(ConnectFailure("refused"))
        )
        pool.add_session()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        await pool.shutdown_all()
        attempts = len(establisher.calls)

        await asyncio.sleep(0.1)
        assert len(establisher.calls) == attempts
        assert len(pool.scheduler) == 0
