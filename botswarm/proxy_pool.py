"""Candidate SOCKS5 relays and the subset verified against the target.

Sources are operator-supplied: HTTP(S) URLs fetched with aiohttp or
local files, each containing one ``ip:port`` per line. Verification runs
in fixed-size batches and stops as soon as enough relays are found.
Once spawning starts ``verified`` is only read.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Iterable

import aiohttp

from .models import Endpoint, parse_endpoint
from .stats import Stats

logger = logging.getLogger(__name__)

_ENDPOINT_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3}):(\d{1,5})$")

RelayTester = Callable[[Endpoint, Endpoint, float], Awaitable[bool]]


def is_valid_endpoint(line: str) -> bool:
    m = _ENDPOINT_RE.match(line)
    if m is None:
        return False
    *octets, port = (int(g) for g in m.groups())
    return all(o <= 255 for o in octets) and 1 <= port <= 65535


def parse_endpoints(text: str) -> list[str]:
    """Keep the lines of ``text`` that are strict ``ip:port`` endpoints."""
    result: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if is_valid_endpoint(line):
            result.append(line)
    return result


class ProxyPool:
    """Deduplicated relay candidates plus the verified round-robin list."""

    def __init__(self, stats: Stats | None = None) -> None:
        self.candidates: set[str] = set()
        self.verified: list[str] = []
        self._stats = stats

    def __len__(self) -> int:
        return len(self.verified)

    # --- Collection ---

    def add_candidates(self, endpoints: Iterable[str]) -> None:
        self.candidates.update(e for e in endpoints if is_valid_endpoint(e))
        if self._stats is not None:
            self._stats.proxies_found = len(self.candidates)

    async def collect(
        self,
        sources: Iterable[str],
        timeout: float = 15.0,
        http: aiohttp.ClientSession | None = None,
    ) -> set[str]:
        """Fetch every source and merge its endpoints into ``candidates``.

        A failing source contributes nothing; it is logged and skipped.
        """
        sources = list(sources)
        owns_session = http is None
        if http is None:
            http = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=timeout)
            )
        try:
            for index, source in enumerate(sources, start=1):
                logger.info(
                    "Fetching proxy list %d/%d: %s", index, len(sources), source
                )
                text = await self._fetch(http, source)
                found = parse_endpoints(text)
                self.add_candidates(found)
                logger.info(
                    "Got %d endpoint(s) from %s (%d unique so far)",
                    len(found),
                    source,
                    len(self.candidates),
                )
        finally:
            if owns_session:
                await http.close()
        return self.candidates

    async def _fetch(self, http: aiohttp.ClientSession, source: str) -> str:
        if not source.startswith(("http://", "https://")):
            path = Path(source.removeprefix("file:"))
            try:
                return await asyncio.to_thread(path.read_text)
            except OSError as e:
                logger.warning("Cannot read proxy file %s: %s", path, e)
                return ""
        try:
            async with http.get(source) as response:
                response.raise_for_status()
                return await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("Proxy source %s failed: %s", source, e)
            return ""

    # --- Verification ---

    async def verify(
        self,
        target: Endpoint,
        want_count: int,
        tester: RelayTester,
        batch_size: int = 100,
        timeout: float = 3.0,
    ) -> list[str]:
        """Test candidates in batches until ``want_count`` relays pass.

        ``tester(relay, target, timeout)`` returns True when the relay
        completes a handshake to the target. Failures are never retried.
        """
        pending = sorted(self.candidates)
        batches = [
            pending[i : i + batch_size] for i in range(0, len(pending), batch_size)
        ]

        for number, batch in enumerate(batches, start=1):
            if len(self.verified) >= want_count:
                break
            logger.info(
                "Testing proxy batch %d/%d (found: %d)",
                number,
                len(batches),
                len(self.verified),
            )
            results = await asyncio.gather(
                *(self._test_one(candidate, target, tester, timeout) for candidate in batch)
            )
            for candidate, works in zip(batch, results):
                if works and len(self.verified) < want_count:
                    self.verified.append(candidate)
            if self._stats is not None:
                self._stats.proxies_working = len(self.verified)

        if not self.verified:
            logger.warning("No working proxies found; bots will connect directly")
        else:
            logger.info("Found %d working proxies", len(self.verified))
        return self.verified

    @staticmethod
    async def _test_one(
        candidate: str, target: Endpoint, tester: RelayTester, timeout: float
    ) -> bool:
        try:
            return await tester(parse_endpoint(candidate), target, timeout)
        except Exception as e:
            logger.debug("Proxy test for %s errored: %s", candidate, e)
            return False

    # --- Assignment ---

    def next(self, after_index: int) -> Endpoint | None:
        """Round-robin relay for the session at zero-based ``after_index``."""
        if not self.verified:
            return None
        return parse_endpoint(self.verified[after_index % len(self.verified)])
