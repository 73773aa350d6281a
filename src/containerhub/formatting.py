"""
Human-readable formatting of sizes, timestamps and digests.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

__all__ = ["format_bytes", "format_relative_time", "short_digest"]

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB", "PB"]


def format_bytes(size: int, decimals: int = 2) -> str:
    """
    Format a byte count with binary (1024) multiples.

    Values are rounded to ``decimals`` places and trailing zeros dropped:
    ``format_bytes(1536) == "1.5 KB"``, ``format_bytes(1073741824) == "1 GB"``.
    """
    if size <= 0:
        return "0 Bytes"
    index = 0
    value = float(size)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.{max(decimals, 0)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[index]}"


def format_relative_time(when: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Render ``when`` as "5 minutes ago" style text, "never" for None."""
    if when is None:
        return "never"
    now = now or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    seconds = int((now - when).total_seconds())
    if seconds < 0:
        return "in the future"
    if seconds < 60:
        return "just now"

    for unit, length in (("year", 365 * 86400), ("month", 30 * 86400), ("day", 86400),
                         ("hour", 3600), ("minute", 60)):
        if seconds >= length:
            count = seconds // length
            return f"{count} {unit}{'s' if count != 1 else ''} ago"
    return "just now"


def short_digest(digest: Optional[str], length: int = 12) -> str:
    """``sha256:0123456789abcdef...`` -> ``0123456789ab``."""
    if not digest:
        return ""
    _, _, value = digest.partition(":")
    return (value or digest)[:length]
