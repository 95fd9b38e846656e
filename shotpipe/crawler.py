"""Discovery of screenshot detail pages across a profile's listing views."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from .config import (
    COLLECTION_PATH,
    DETAIL_BASE_URL,
    EMPTY_PAGE_LIMIT,
    FALLBACK_SCREENSHOT_COUNT,
    MIN_PAGES,
    PAGE_SAFETY_MARGIN,
    PAGE_SIZE,
    PROFILE_BASE_URL,
    VIEW_DESCRIPTORS,
)
from .fetching import FetchError
from .utils import absolute_detail_url

logger = logging.getLogger("shotpipe")

ACCESS_DENIED_MARKERS = (
    "The specified profile is private",
    "This profile is private",
    "The specified profile could not be found",
    "This user has not yet set up their Steam Community profile",
    "profile is set to private",
    "No screenshots",
)

COUNT_PATTERNS = (
    re.compile(r"(\d+) screenshots", re.IGNORECASE),
    re.compile(r"(\d+) Screenshot", re.IGNORECASE),
    re.compile(r"Screenshots \((\d+)\)", re.IGNORECASE),
    re.compile(r"Showing (\d+) screenshots", re.IGNORECASE),
)
_WALL_ROW_PATTERN = re.compile(r'<div class="imageWallRow">')

HREF_PATTERNS = (
    re.compile(r'href="((?:https://steamcommunity\.com)?/sharedfiles/filedetails/\?id=\d+)"'),
    re.compile(r"href='((?:https://steamcommunity\.com)?/sharedfiles/filedetails/\?id=\d+)'"),
)
ID_PATTERNS = (
    re.compile(r'SharedFileBindMouseHover\(\s*"(\d+)"'),
    re.compile(r'data-screenshot-id="(\d+)"'),
    re.compile(r"onclick=\"ViewScreenshot\('(\d+)'\)\""),
    re.compile(r"ShowModalContent\( 'shared_file_(\d+)'"),
)


class TextFetcher(Protocol):
    async def fetch_text(self, url: str) -> str: ...


class Membership(Protocol):
    def contains(self, identifier: str) -> bool: ...


def listing_url(source_id: str) -> str:
    return f"{PROFILE_BASE_URL}/{source_id}/{COLLECTION_PATH}"


def page_url(base: str, view: str, page: int) -> str:
    separator = "&" if "?" in view else "?"
    return f"{base}{view}{separator}p={page}"


def is_access_denied(html: str) -> bool:
    return any(marker in html for marker in ACCESS_DENIED_MARKERS)


def estimate_total(html: str) -> int:
    """Best-effort screenshot count read from the profile markup."""
    for pattern in COUNT_PATTERNS:
        match = pattern.search(html)
        if match:
            return int(match.group(1))
    rows = len(_WALL_ROW_PATTERN.findall(html))
    if rows:
        return rows * 10
    return FALLBACK_SCREENSHOT_COUNT


def max_page_for(total: int) -> int:
    return max(MIN_PAGES, math.ceil(total / PAGE_SIZE) + PAGE_SAFETY_MARGIN)


def extract_identifiers(html: str) -> List[str]:
    """All detail page URLs referenced by a listing page, in match order."""
    found: List[str] = []
    for pattern in HREF_PATTERNS:
        found.extend(absolute_detail_url(m.group(1)) for m in pattern.finditer(html))
    for pattern in ID_PATTERNS:
        found.extend(f"{DETAIL_BASE_URL}{m.group(1)}" for m in pattern.finditer(html))
    return found


def _merge_new(
    candidates: Iterable[str],
    seen: Dict[str, None],
    ledger: Optional[Membership],
) -> int:
    added = 0
    for url in candidates:
        if url in seen or (ledger is not None and ledger.contains(url)):
            continue
        seen[url] = None
        added += 1
    return added


async def crawl_view(
    fetcher: TextFetcher,
    base: str,
    view: str,
    max_page: int,
    seen: Dict[str, None],
    ledger: Optional[Membership] = None,
    page_delay: float = 1.0,
) -> int:
    """Walk one view's pages until ``max_page`` or a run of empty pages."""
    empty_run = 0
    total_added = 0
    for page in range(1, max_page + 1):
        if page > 1 and page_delay > 0:
            await asyncio.sleep(page_delay)
        url = page_url(base, view, page)
        try:
            html = await fetcher.fetch_text(url)
        except FetchError as exc:
            logger.warning("Error fetching page %s: %s", url, exc)
            continue

        added = _merge_new(extract_identifiers(html), seen, ledger)
        total_added += added
        logger.debug("Found %d new screenshots on %s", added, url)
        if added:
            empty_run = 0
            continue
        empty_run += 1
        if empty_run >= EMPTY_PAGE_LIMIT:
            logger.debug(
                "%d empty pages in a row, moving on from view %r", empty_run, view or "default"
            )
            break
    return total_added


async def crawl_source(
    fetcher: TextFetcher,
    source_id: str,
    ledger: Optional[Membership] = None,
    views: Sequence[str] = VIEW_DESCRIPTORS,
    page_delay: float = 1.0,
    max_page: Optional[int] = None,
) -> List[str]:
    """Return unique, not yet processed detail page URLs for ``source_id``.

    ``max_page`` overrides the page budget derived from the profile markup.
    """
    base = listing_url(source_id)
    try:
        profile_html = await fetcher.fetch_text(base)
    except FetchError as exc:
        logger.error("Failed to access profile %s: %s", source_id, exc)
        return []

    if is_access_denied(profile_html):
        logger.error(
            "Profile %s is private, doesn't exist, or has no screenshots", source_id
        )
        return []

    if max_page is None:
        total = estimate_total(profile_html)
        max_page = max_page_for(total)
        logger.info(
            "Profile %s has roughly %d screenshots; checking up to %d pages",
            source_id,
            total,
            max_page,
        )

    seen: Dict[str, None] = {}
    for view in views:
        added = await crawl_view(
            fetcher, base, view, max_page, seen, ledger=ledger, page_delay=page_delay
        )
        logger.debug("View %r yielded %d new screenshots", view or "default", added)

    logger.info("Found %d unique screenshot pages for %s", len(seen), source_id)
    return list(seen)
