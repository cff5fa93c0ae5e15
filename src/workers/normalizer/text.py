"""
Text and number cleanup shared by every normalizer.

All helpers are pure and total: unexpected input types come back as
``None`` / empty string instead of raising.
"""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import urlsplit

# ── Markdown stripping (order matters: bold before italic) ────────────

_MARKDOWN_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"\*(.+?)\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"_(.+?)_"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"`(.+?)`"), r"\1"),
    (re.compile(r"^#+\s*", re.MULTILINE), ""),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"\|"), " "),
]

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]", re.ASCII)
_NON_KEY_CHARS = re.compile(r"[^a-z0-9]")


def collapse_whitespace(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def clean_text(value: Any) -> str:
    """Strip markdown emphasis, links, headers, list markers and pipes."""
    if not isinstance(value, str):
        return ""
    text = value
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return collapse_whitespace(text)


def canonicalize(value: Any) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    if not isinstance(value, str) or not value:
        return ""
    return collapse_whitespace(_PUNCTUATION.sub("", value.lower()))


def normalize_key(value: Any) -> str:
    """Case and punctuation insensitive key used for dedup ("Fish & Chips" → "fishchips")."""
    if not isinstance(value, str):
        return ""
    return _NON_KEY_CHARS.sub("", value.lower())


def optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


# ── Numbers ───────────────────────────────────────────────────────────

def round_half_up(value: float, digits: int = 2) -> float:
    """Round like a cash register: 0.125 → 0.13, -0.125 → -0.12."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def finite_number(value: Any) -> float | None:
    """Accept ints/floats (not bools); reject NaN and ±inf."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def money(value: Any) -> float | None:
    number = finite_number(value)
    if number is None:
        return None
    return round_half_up(number, 2)


def non_negative_int(value: Any) -> int | None:
    number = finite_number(value)
    if number is None:
        return None
    return max(0, int(round_half_up(number, 0)))


def price_level_text(value: Any) -> str | None:
    """Price level as text: ``2`` → "2", "$$" stays, NaN/inf → None."""
    if isinstance(value, str):
        return optional_text(value)
    number = finite_number(value)
    if number is None:
        return None
    return str(int(number))


# ── URLs ──────────────────────────────────────────────────────────────

def extract_domain(url: Any) -> str | None:
    """Hostname without a leading ``www.``; ``None`` when the URL does not parse."""
    if not isinstance(url, str) or not url.strip():
        return None
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    if not host:
        return None
    return strip_www(host)


def website_domain(website: Any) -> str | None:
    """Like :func:`extract_domain` but tolerates bare ``example.com`` websites."""
    if not isinstance(website, str) or not website.strip():
        return None
    candidate = website.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    return extract_domain(candidate)


def strip_www(domain: str) -> str:
    return domain[4:] if domain.startswith("www.") else domain


def strip_query_params(url: Any) -> str:
    """``scheme://host/path`` with query string and fragment removed."""
    if not isinstance(url, str) or not url:
        return ""
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return url
    if not parts.scheme or not host:
        return url
    path = parts.path or "/"
    return f"{parts.scheme}://{host}{path}"
