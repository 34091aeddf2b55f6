"""Bot usernames and the passwords derived from them."""

from __future__ import annotations

import random
from typing import Protocol

NAME_PREFIXES = (
    "Storm",
    "Thunder",
    "Lightning",
    "Shadow",
    "Phantom",
    "Ghost",
    "Ninja",
    "Dragon",
)


def generate_username(rng: random.Random | None = None) -> str:
    """Random display name such as ``Shadow48213``."""
    rng = rng or random
    return f"{rng.choice(NAME_PREFIXES)}{rng.randrange(99999)}"


class CredentialStrategy(Protocol):
    def password_for(self, username: str) -> str: ...


class ReversedNamePassword:
    """Password is the username reversed. Guessable; test servers only."""

    def password_for(self, username: str) -> str:
        return username[::-1]
