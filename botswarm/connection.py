"""Direct and SOCKS5-relayed transport establishment.

Both paths hand back a connected, non-blocking ``socket.socket`` that the
protocol client takes over. A socket that did not finish connecting is
closed before the failure is raised.
"""

from __future__ import annotations

import asyncio
import logging
import socket

import socks

from .errors import ConnectFailure, ProxyFailure
from .models import Endpoint

logger = logging.getLogger(__name__)


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        pass


class ConnectionEstablisher:
    """Opens transports to the target, optionally through a relay."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    async def connect(
        self, target: Endpoint, relay: Endpoint | None = None
    ) -> socket.socket:
        """Open a transport to ``target``.

        Raises ConnectFailure for direct connections and ProxyFailure when
        going through ``relay``.
        """
        if relay is None:
            return await self._connect_direct(target)
        return await self._connect_via_relay(target, relay, self._timeout)

    async def test_relay(
        self, relay: Endpoint, target: Endpoint, timeout: float
    ) -> bool:
        """True if ``relay`` completes a SOCKS5 CONNECT to ``target``."""
        try:
            sock = await self._connect_via_relay(target, relay, timeout)
        except ProxyFailure as e:
            logger.debug("Relay %s rejected: %s", relay, e)
            return False
        _close_quietly(sock)
        return True

    # --- Direct ---

    async def _connect_direct(self, target: Endpoint) -> socket.socket:
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(target.host, target.port, type=socket.SOCK_STREAM),
                self._timeout,
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ConnectFailure(f"cannot resolve {target}: {e}") from e

        last_error: Exception | None = None
        for family, type_, proto, _, addr in infos:
            sock = socket.socket(family, type_, proto)
            sock.setblocking(False)
            try:
                await asyncio.wait_for(loop.sock_connect(sock, addr), self._timeout)
            except (OSError, asyncio.TimeoutError) as e:
                _close_quietly(sock)
                last_error = e
                continue
            except asyncio.CancelledError:
                _close_quietly(sock)
                raise
            return sock

        reason = last_error or "no addresses"
        if isinstance(last_error, asyncio.TimeoutError):
            reason = f"timed out after {self._timeout:g}s"
        raise ConnectFailure(f"{target}: {reason}")

    # --- SOCKS5 ---

    async def _connect_via_relay(
        self, target: Endpoint, relay: Endpoint, timeout: float
    ) -> socket.socket:
        # PySocks is blocking; the handshake runs in a worker thread.
        future = asyncio.ensure_future(
            asyncio.to_thread(_socks5_connect, target, relay, timeout)
        )
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            future.add_done_callback(_close_abandoned)
            raise


def _socks5_connect(
    target: Endpoint, relay: Endpoint, timeout: float
) -> socket.socket:
    sock = socks.socksocket(socket.AF_INET, socket.SOCK_STREAM)
    sock.set_proxy(socks.SOCKS5, relay.host, relay.port)
    sock.settimeout(timeout)
    try:
        sock.connect((target.host, target.port))
    except (socks.ProxyError, OSError) as e:
        _close_quietly(sock)
        raise ProxyFailure(f"relay {relay} -> {target}: {e}") from e

    # Hand the fd to a plain socket so asyncio sees an ordinary stream.
    plain = socket.socket(sock.family, sock.type, sock.proto, fileno=sock.detach())
    plain.setblocking(False)
    return plain


def _close_abandoned(future: asyncio.Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    _close_quietly(future.result())
