"""Aggregate swarm counters.

A single Stats instance is created with the pool and shared by every
session and the console. All mutation happens on the event loop thread,
so plain attribute increments are safe.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Stats:
    sent: int = 0
    joined: int = 0
    kicked: int = 0
    timed_out: int = 0
    failed: int = 0
    reconnects: int = 0
    messages_sent: int = 0
    commands_executed: int = 0
    proxies_found: int = 0
    proxies_working: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def ended(self) -> int:
        """Completed lifecycle instances (failed + kicked + timed out)."""
        return self.failed + self.kicked + self.timed_out

    @property
    def join_rate(self) -> float:
        """Fraction of connection attempts that reached the active state."""
        return self.joined / self.sent if self.sent else 0.0

    def uptime_seconds(self, now: datetime | None = None) -> int:
        now = now or datetime.now()
        return max(0, int((now - self.started_at).total_seconds()))

    def snapshot(self) -> Stats:
        """Return an independent copy for reporting."""
        return dataclasses.replace(self)
