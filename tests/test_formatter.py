"""Tests for console text rendering."""

from __future__ import annotations

from datetime import datetime, timedelta

from botswarm.formatter import (
    RULE,
    format_final_stats,
    format_help,
    format_session_info,
    format_session_list,
    format_stats,
    format_stats_line,
    format_uptime,
    format_usage,
)
from botswarm.models import Endpoint, LifecycleState, Position, SessionInfo
from botswarm.stats import Stats


def _info(**overrides) -> SessionInfo:
    values = dict(
        index=1,
        identity="Shadow123",
        state=LifecycleState.ACTIVE,
        relay=None,
        reconnect_count=0,
        health=20,
        food=20,
        position=None,
        messages_received=0,
    )
    values.update(overrides)
    return SessionInfo(**values)


class TestUptime:
    def test_minutes(self) -> None:
        assert format_uptime(0) == "0m 0s"
        assert format_uptime(125) == "2m 5s"

    def test_hours(self) -> None:
        assert format_uptime(3 * 3600 + 61) == "3h 1m 1s"

    def test_negative_clamped(self) -> None:
        assert format_uptime(-5) == "0m 0s"


class TestStats:
    def test_live_table(self) -> None:
        stats = Stats(sent=10, joined=7, failed=2, kicked=1, proxies_found=40, proxies_working=8)
        text = format_stats(stats, active=6)

        lines = text.splitlines()
        assert lines[0] == "live statistics"
        assert lines[1] == RULE
        assert "active      6" in text
        assert "joined      7" in text
        assert "8/40" in text

    def test_final_summary(self) -> None:
        stats = Stats(sent=4, joined=3, failed=1)
        stats.started_at = datetime.now() - timedelta(seconds=75)
        text = format_final_stats(stats)

        assert text.startswith("final session statistics")
        assert "total runtime      1m 15s" in text
        assert "successful joins   3" in text
        assert "join rate          75%" in text

    def test_zero_sent_join_rate(self) -> None:
        assert "join rate          0%" in format_final_stats(Stats())

    def test_refresh_line(self) -> None:
        line = format_stats_line(Stats(joined=2, reconnects=1), active=2, total=3)
        assert line.startswith("active 2/3 | joined 2")
        assert "reconnects 1" in line


class TestSessions:
    def test_empty_list(self) -> None:
        assert format_session_list([]) == "no bots spawned yet"

    def test_list_rows(self) -> None:
        text = format_session_list(
            [
                _info(),
                _info(
                    index=2,
                    identity="Ghost9",
                    state=LifecycleState.ENDED,
                    relay=Endpoint("1.2.3.4", 1080),
                    health=7.5,
                    messages_received=4,
                ),
            ]
        )
        rows = text.splitlines()[2:]
        assert len(rows) == 2
        assert "Shadow123" in rows[0] and "Active" in rows[0] and "20/20" in rows[0]
        assert "Ghost9" in rows[1] and "Ended" in rows[1] and "7.5/20" in rows[1]
        assert " yes " in rows[1]

    def test_info_details(self) -> None:
        text = format_session_info(
            _info(
                index=3,
                relay=Endpoint("1.2.3.4", 1080),
                position=Position(10.9, 64, -5.5),
                reconnect_count=2,
            )
        )
        assert text.startswith("bot 3")
        assert "relay       1.2.3.4:1080" in text
        assert "position    10, 64, -5" in text
        assert "reconnects  2" in text
        assert "connected   yes" in text

    def test_info_defaults(self) -> None:
        text = format_session_info(_info(state=LifecycleState.CONNECTING))
        assert "relay       direct" in text
        assert "position    unknown" in text
        assert "connected   no" in text


class TestHelpAndUsage:
    def test_help_lists_commands(self) -> None:
        text = format_help("/")
        for command in ("say", "cmd", "list", "info", "macro", "stats", "clear", "stop", "exit"):
            assert command in text
        assert "cmd /spawn" in text

    def test_usage(self) -> None:
        assert format_usage().startswith("usage: botswarm <host[:port]> <version>")
