from __future__ import annotations

import re

_STORE_NUMBER = re.compile(r"#\d+")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_store_name(name: str) -> str:
    """Lowercase, drop ``#123`` store numbers and punctuation, collapse spaces."""

    value = name.lower()
    value = _STORE_NUMBER.sub("", value)
    value = _NON_ALNUM.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def store_names_match(registered: str | None, extracted: str | None) -> bool:
    if not extracted or not registered:
        return False
    left = normalize_store_name(registered)
    right = normalize_store_name(extracted)
    if not left or not right:
        return False
    return left == right or left in right or right in left
