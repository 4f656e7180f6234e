from __future__ import annotations

import os

from .constants import NAME_MAX_CHARS


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def normalize_name(value, max_chars: int = NAME_MAX_CHARS) -> str | None:
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None

    if max_chars > 0 and len(s) > int(max_chars):
        return None

    # A name is one token: private messages end the recipient at whitespace.
    if "\x00" in s or any(ch.isspace() for ch in s):
        return None

    try:
        s.encode("utf-8", "strict")
    except UnicodeError:
        return None

    return s
