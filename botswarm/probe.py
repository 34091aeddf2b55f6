"""Server reachability probe run once before spawning."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    latency_ms: float | None = None
    error: str | None = None


async def probe(host: str, port: int, timeout: float = 5.0) -> ProbeResult:
    """Open and immediately close a TCP connection to ``host:port``."""
    started = time.monotonic()
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout
        )
    except asyncio.TimeoutError:
        return ProbeResult(reachable=False, error=f"timeout after {timeout:g}s")
    except OSError as e:
        return ProbeResult(reachable=False, error=str(e) or type(e).__name__)

    latency_ms = (time.monotonic() - started) * 1000
    writer.close()
    try:
        await writer.wait_closed()
    except OSError as e:
        logger.debug("Probe socket close failed: %s", e)
    return ProbeResult(reachable=True, latency_ms=latency_ms)
