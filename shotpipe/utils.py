"""Utility helpers for URL normalization and path handling."""

from __future__ import annotations

import re
from typing import Optional

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_ID_PATTERN = re.compile(r"[?&]id=(\d+)")

COMMUNITY_ORIGIN = "https://steamcommunity.com"


def slugify(value: str, fallback: str = "item") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def absolute_detail_url(href: str) -> str:
    """Turn a site-relative detail link into its absolute form."""
    if href.startswith("/"):
        return f"{COMMUNITY_ORIGIN}{href}"
    return href


def screenshot_id(detail_url: str) -> Optional[str]:
    """Return the numeric file id embedded in a detail page URL, if any."""
    match = _ID_PATTERN.search(detail_url)
    return match.group(1) if match else None
