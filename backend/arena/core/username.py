"""In-game Ludo username rules for room players and claims."""

from __future__ import annotations

import unicodedata

import regex

MAX_LUDO_USERNAME_GRAPHEMES = 20
_GRAPHEME = regex.compile(r"\X")
_CONTROL_CHARS = regex.compile(r"\p{Cc}")


class UsernameValidationError(ValueError):
    """Raised when a Ludo username cannot identify a player in the game client."""


def count_graphemes(value: str) -> int:
    """Count user-visible characters using grapheme clusters."""
    return len(_GRAPHEME.findall(value))


def normalize_and_validate_username(raw_username: str) -> str:
    """Return the canonical (trimmed, NFC) Ludo username or raise."""
    username = unicodedata.normalize("NFC", raw_username.strip())
    if not username:
        raise UsernameValidationError("ludo username must not be blank")
    if _CONTROL_CHARS.search(username):
        raise UsernameValidationError("ludo username must not contain control characters")
    if count_graphemes(username) > MAX_LUDO_USERNAME_GRAPHEMES:
        raise UsernameValidationError(
            f"ludo username must be at most {MAX_LUDO_USERNAME_GRAPHEMES} graphemes"
        )
    return username
