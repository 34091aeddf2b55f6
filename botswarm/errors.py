"""Failure taxonomy for sessions, relays and the pool.

Per-session failures never leave the Session that raised them; they are
counted, logged and fed into the reconnect policy.
"""

from __future__ import annotations


class SwarmError(Exception):
    """Base class for all botswarm errors."""


class SessionFailure(SwarmError):
    """A lifecycle instance could not establish its transport."""


class ConnectFailure(SessionFailure):
    """The target could not be reached directly (refused, timeout, DNS)."""


class ProxyFailure(SessionFailure):
    """The relay was unreachable or refused the SOCKS5 handshake."""


class AuthFailure(SwarmError):
    """The remote rejected session establishment."""


class RemoteKick(SwarmError):
    """The remote explicitly terminated the session."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RemoteDisconnect(SwarmError):
    """The transport closed without an explicit kick."""


class TransientError(SwarmError):
    """Mid-session protocol error; the session keeps running."""


class SessionNotFound(SwarmError, KeyError):
    """No pool member has the requested index."""

    def __init__(self, index: int) -> None:
        super().__init__(index)
        self.index = index

    def __str__(self) -> str:
        return f"no bot with index {self.index}"
