"""Per-tenant limits enforced by the session store."""

from __future__ import annotations

import os
from dataclasses import dataclass

MAX_SESSION_KEY_LENGTH = 64
MAX_SESSION_DATA_BYTES = 16 * 1024
MAX_SESSION_COUNT = 50_000


def utf16_length(text: str) -> int:
    """Length of a string in UTF-16 code units.

    Characters outside the Basic Multilingual Plane count twice, which keeps
    key limits identical to clients that measure strings in UTF-16.
    """
    return len(text) + sum(1 for ch in text if ord(ch) > 0xFFFF)


@dataclass(frozen=True)
class SessionLimits:
    """Hard limits injected into the store at construction.

    Attributes:
        max_key_length: Keys must be strictly shorter than this (UTF-16 units)
        max_data_bytes: Largest accepted payload, inclusive
        max_session_count: Largest number of keys a tenant may hold
    """

    max_key_length: int = MAX_SESSION_KEY_LENGTH
    max_data_bytes: int = MAX_SESSION_DATA_BYTES
    max_session_count: int = MAX_SESSION_COUNT

    def __post_init__(self) -> None:
        for name in ("max_key_length", "max_data_bytes", "max_session_count"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")

    @classmethod
    def from_env(cls) -> SessionLimits:
        """Create limits from environment variables, falling back to defaults.

        Environment variables:
        - BOT_SESSIONS_MAX_KEY_LENGTH
        - BOT_SESSIONS_MAX_DATA_BYTES
        - BOT_SESSIONS_MAX_SESSION_COUNT
        """
        return cls(
            max_key_length=int(
                os.environ.get("BOT_SESSIONS_MAX_KEY_LENGTH", MAX_SESSION_KEY_LENGTH)
            ),
            max_data_bytes=int(
                os.environ.get("BOT_SESSIONS_MAX_DATA_BYTES", MAX_SESSION_DATA_BYTES)
            ),
            max_session_count=int(
                os.environ.get("BOT_SESSIONS_MAX_SESSION_COUNT", MAX_SESSION_COUNT)
            ),
        )
