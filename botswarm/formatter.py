"""Plain-text rendering for the terminal console.

  - format_stats():        live counters table (``stats`` command)
  - format_final_stats():  end-of-run summary (``stop`` / ``exit``)
  - format_session_list(): one row per bot (``list``)
  - format_session_info(): details of one bot (``info <i>``)
"""

from __future__ import annotations

from .models import SessionInfo
from .probe import ProbeResult
from .stats import Stats

RULE = "─" * 44

USAGE = """\
usage: botswarm <host[:port]> <version> [max_bots=10] [delay_ms=3000]
                [--config FILE] [--no-proxy]

examples:
  botswarm localhost:25565 1.20.1 10 3000
  botswarm 127.0.0.1 1.8.9 50 2000 --config swarm.yaml"""


def format_usage() -> str:
    return USAGE


def format_uptime(seconds: int) -> str:
    minutes, secs = divmod(max(0, seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"


# ---------------------------------------------------------------------------
#  Statistics
# ---------------------------------------------------------------------------


def format_stats(stats: Stats, active: int | None = None) -> str:
    """Two-column counters table."""
    rows = [
        ("joined", stats.joined, "failed", stats.failed),
        ("sent", stats.sent, "kicked", stats.kicked),
        ("timeout", stats.timed_out, "proxies", f"{stats.proxies_working}/{stats.proxies_found}"),
        ("messages", stats.messages_sent, "commands", stats.commands_executed),
        ("reconnects", stats.reconnects, "uptime", format_uptime(stats.uptime_seconds())),
    ]
    lines = ["live statistics", RULE]
    if active is not None:
        lines.append(f"{'active':<12}{active:<10}")
    for left, lval, right, rval in rows:
        lines.append(f"{left:<12}{str(lval):<10}{right:<12}{rval}")
    lines.append(RULE)
    return "\n".join(lines)


def format_stats_line(stats: Stats, active: int, total: int) -> str:
    """Compact one-liner for the periodic refresh."""
    return (
        f"active {active}/{total} | joined {stats.joined} | failed {stats.failed} "
        f"| kicked {stats.kicked} | timeout {stats.timed_out} "
        f"| reconnects {stats.reconnects} | up {format_uptime(stats.uptime_seconds())}"
    )


def format_final_stats(stats: Stats) -> str:
    return "\n".join(
        [
            "final session statistics",
            RULE,
            f"total runtime      {format_uptime(stats.uptime_seconds())}",
            f"bots sent          {stats.sent}",
            f"successful joins   {stats.joined}",
            f"failed connections {stats.failed}",
            f"kicked/banned      {stats.kicked}",
            f"timeouts           {stats.timed_out}",
            f"reconnects         {stats.reconnects}",
            f"messages sent      {stats.messages_sent}",
            f"commands executed  {stats.commands_executed}",
            f"working proxies    {stats.proxies_working}/{stats.proxies_found}",
            f"join rate          {stats.join_rate:.0%}",
            RULE,
        ]
    )


# ---------------------------------------------------------------------------
#  Sessions
# ---------------------------------------------------------------------------


def format_session_list(infos: list[SessionInfo]) -> str:
    if not infos:
        return "no bots spawned yet"

    lines = [f"{'#':>4}  {'username':<18}{'status':<16}{'health':<9}{'proxy':<7}msgs", RULE]
    for info in infos:
        lines.append(
            f"{info.index:>4}  {info.identity:<18}{info.state.value:<16}"
            f"{_health(info.health):<9}{'yes' if info.relay else 'no':<7}"
            f"{info.messages_received}"
        )
    return "\n".join(lines)


def format_session_info(info: SessionInfo) -> str:
    position = str(info.position) if info.position else "unknown"
    relay = str(info.relay) if info.relay else "direct"
    return "\n".join(
        [
            f"bot {info.index}",
            RULE,
            f"username    {info.identity}",
            f"status      {info.state.value}",
            f"connected   {'yes' if info.active else 'no'}",
            f"relay       {relay}",
            f"reconnects  {info.reconnect_count}",
            f"health      {_health(info.health)}",
            f"food        {_health(info.food)}",
            f"position    {position}",
            f"messages    {info.messages_received}",
        ]
    )


def _health(value: float) -> str:
    return f"{value:g}/20"


# ---------------------------------------------------------------------------
#  Console help / probe
# ---------------------------------------------------------------------------


def format_help(prefix: str = "/") -> str:
    rows = [
        ("say <message>", "broadcast a chat message to all bots"),
        ("cmd <command>", f"execute a command on all bots (e.g. cmd {prefix}spawn)"),
        ("list", "show all bots"),
        ("info <index>", "show details of one bot"),
        ("macro <name>", "play a configured macro (no name lists them)"),
        ("stats", "show current statistics"),
        ("clear", "clear the screen and show statistics"),
        ("stop", "disconnect all bots"),
        ("exit", "disconnect all bots and quit"),
    ]
    lines = [f"{cmd:<16}{desc}" for cmd, desc in rows]
    lines.append("")
    lines.append(f"any other text is broadcast; text starting with {prefix} is executed")
    return "\n".join(lines)


def format_probe(host: str, port: int, result: ProbeResult) -> str:
    if result.reachable:
        return f"server {host}:{port} is online ({result.latency_ms:.0f} ms)"
    return f"server {host}:{port} is offline: {result.error}"
