"""Scripted replies to common auth-plugin chat prompts.

Matching is plain substring search over the inbound text. Rules are
checked in order and the first match wins, so one message never yields
more than one reply.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from .identity import CredentialStrategy, ReversedNamePassword


@dataclass(frozen=True)
class ResponseRule:
    name: str
    needle: str
    build: Callable[[str], str]  # password -> reply
    case_sensitive: bool = True

    def matches(self, text: str) -> bool:
        if self.case_sensitive:
            return self.needle in text
        return self.needle.lower() in text.lower()


DEFAULT_RULES: tuple[ResponseRule, ...] = (
    ResponseRule("register", "/register", lambda pw: f"/register {pw} {pw}"),
    ResponseRule(
        "authme",
        "please, login with the command",
        lambda pw: f"/login {pw}",
        case_sensitive=False,
    ),
    ResponseRule("login", "/login", lambda pw: f"/login {pw}"),
    ResponseRule("premium", "premium", lambda _pw: "/nlogin", case_sensitive=False),
)


class AuthResponder:
    """Picks at most one reply for an inbound chat line."""

    def __init__(
        self,
        credentials: CredentialStrategy | None = None,
        rules: tuple[ResponseRule, ...] = DEFAULT_RULES,
    ) -> None:
        self._credentials = credentials or ReversedNamePassword()
        self._rules = rules

    def match(self, text: str) -> ResponseRule | None:
        for rule in self._rules:
            if rule.matches(text):
                return rule
        return None

    def reply_for(self, text: str, username: str) -> str | None:
        rule = self.match(text)
        if rule is None:
            return None
        return rule.build(self._credentials.password_for(username))
