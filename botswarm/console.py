"""Operator command console.

Reads lines from stdin, parses them into built-in commands, raw protocol
commands (prefixed, routed to ``dispatch``) or free text (routed to
``broadcast``). Macros replay on their own task, so new input is
accepted while a macro is still running.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .config import ConsoleConfig
from .errors import SessionNotFound
from .formatter import (
    format_final_stats,
    format_help,
    format_session_info,
    format_session_list,
    format_stats,
)
from .pool import SessionPool

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\x1b[2J\x1b[H"

BUILTINS: dict[str, str] = {
    "help": "help",
    "?": "help",
    "say": "say",
    "chat": "say",
    "cmd": "cmd",
    "command": "cmd",
    "stats": "stats",
    "list": "list",
    "bots": "list",
    "info": "info",
    "macro": "macro",
    "clear": "clear",
    "stop": "stop",
    "exit": "exit",
    "quit": "exit",
}


class CommandKind(str, Enum):
    EMPTY = "empty"
    BUILTIN = "builtin"
    RAW = "raw"
    TEXT = "text"


@dataclass(frozen=True)
class ParsedCommand:
    kind: CommandKind
    name: str = ""
    argument: str = ""


def parse_line(line: str, prefix: str = "/") -> ParsedCommand:
    """Classify one line of operator input."""
    text = line.strip()
    if not text:
        return ParsedCommand(CommandKind.EMPTY)

    word, _, rest = text.partition(" ")
    name = BUILTINS.get(word.lower())
    if name is not None:
        return ParsedCommand(CommandKind.BUILTIN, name, rest.strip())
    if text.startswith(prefix):
        return ParsedCommand(CommandKind.RAW, argument=text)
    return ParsedCommand(CommandKind.TEXT, argument=text)


async def open_stdin() -> asyncio.StreamReader:
    """Wrap stdin in an asyncio StreamReader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), sys.stdin
    )
    return reader


class CommandConsole:
    """Routes operator input to the session pool."""

    def __init__(
        self,
        pool: SessionPool,
        config: ConsoleConfig,
        write: Callable[[str], None] = print,
    ) -> None:
        self._pool = pool
        self._config = config
        self._write = write
        self.history: list[str] = []
        self.exit_requested = asyncio.Event()

    @property
    def macros(self) -> dict[str, list[str]]:
        return self._config.macros

    async def run(self, reader: asyncio.StreamReader | None = None) -> None:
        """Read and handle lines until ``exit`` or end of input."""
        reader = reader or await open_stdin()
        while not self.exit_requested.is_set():
            raw = await reader.readline()
            if not raw:
                logger.info("Console input closed")
                await self.exit()
                break
            try:
                await self.handle(raw.decode(errors="replace"))
            except Exception as e:
                logger.error("Command failed: %s", e, exc_info=True)

    async def handle(self, line: str) -> None:
        parsed = parse_line(line, self._config.command_prefix)
        if parsed.kind is CommandKind.EMPTY:
            return
        self.history.append(line.strip())

        if parsed.kind is CommandKind.RAW:
            self.execute(parsed.argument)
        elif parsed.kind is CommandKind.TEXT:
            self.broadcast(parsed.argument)
        else:
            await self._builtin(parsed.name, parsed.argument)

    async def _builtin(self, name: str, arg: str) -> None:
        if name == "help":
            self._write(format_help(self._config.command_prefix))
        elif name == "say":
            self.broadcast(arg)
        elif name == "cmd":
            self.execute(arg)
        elif name == "stats":
            self._write(format_stats(self._pool.stats, self._pool.active_count()))
        elif name == "list":
            self._write(format_session_list([s.info() for s in self._pool.sessions()]))
        elif name == "info":
            self.show_info(arg)
        elif name == "macro":
            self.play_macro(arg)
        elif name == "clear":
            self._write(CLEAR_SCREEN + format_stats(self._pool.stats, self._pool.active_count()))
        elif name == "stop":
            await self.stop()
        elif name == "exit":
            await self.exit()

    # --- Routing ---

    def route(self, text: str) -> int:
        """Apply the prefix rule: prefixed text is a command, else chat."""
        if text.startswith(self._config.command_prefix):
            return self.execute(text)
        return self.broadcast(text)

    def broadcast(self, text: str) -> int:
        if not text:
            return 0
        sent = self._pool.broadcast(text)
        self._write(f"broadcasted to {sent} bots: {text}")
        return sent

    def execute(self, command: str) -> int:
        if not command:
            return 0
        executed = self._pool.dispatch(command)
        self._write(f"executed on {executed} bots: {command}")
        return executed

    def show_info(self, arg: str) -> None:
        try:
            session = self._pool.query(int(arg))
        except ValueError:
            self._write("usage: info <index>")
            return
        except SessionNotFound as e:
            self._write(str(e))
            return
        self._write(format_session_info(session.info()))

    # --- Macros ---

    def play_macro(self, name: str) -> asyncio.Task | None:
        if not name:
            available = ", ".join(sorted(self.macros)) or "none"
            self._write(f"macros: {available}")
            return None
        steps = self.macros.get(name)
        if steps is None:
            self._write(f"macro '{name}' not found")
            return None
        self._write(f"playing macro '{name}' ({len(steps)} steps)")
        return self._pool.scheduler.spawn(
            self._play(list(steps)), name=f"macro-{name}"
        )

    async def _play(self, steps: list[str]) -> None:
        delay = self._config.macro_step_delay_seconds
        for number, step in enumerate(steps):
            if number:
                await asyncio.sleep(delay)
            if not self._pool.running:
                return
            self.route(step)

    # --- Stop / exit ---

    async def stop(self) -> None:
        self._write("stopping all bots...")
        final = await self._pool.shutdown_all()
        self._write(format_final_stats(final))

    async def exit(self) -> None:
        await self.stop()
        self.exit_requested.set()
