"""Detail page parsing: media URL recovery, quality tiers and metadata."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from .fetching import FetchError, PageFetcher
from .models import CandidateItem, QualityTier

logger = logging.getLogger("shotpipe")

HIGH_RES_QUERY = "imw=5000&imh=5000&ima=fit&impolicy=Letterbox"
HIGH_RES_MARKERS = ("/1920x1080/", "/2560x1440/", "/3840x2160/", "_original")

_SCRIPT_IMAGE_PATTERN = re.compile(r'ScreenshotImage[^"]+"([^"]+)"')
_CLOUDFRONT_PATTERN = re.compile(r'(https://[^"]+\.cloudfront\.net/[^"]+\.jpg)')
_CDN_JPG_PATTERN = re.compile(r'src="(https://steamuserimages[^"]+\.jpg[^"]*)"')
_ANY_IMAGE_PATTERN = re.compile(
    r'<img[^>]+src="(https://[^"]+\.(?:jpg|png|jpeg))[^"]*"', re.IGNORECASE
)
_RESOLUTION_PATTERN = re.compile(r"(\d+)x(\d+)")

# Checked in order; the first marker found decides the tier.
_TIER_MARKERS: Tuple[Tuple[Tuple[str, ...], QualityTier], ...] = (
    (("original", "5000", "3840x2160"), QualityTier.ULTRA),
    (("2560x1440",), QualityTier.VERY_HIGH),
    (("1920x1080",), QualityTier.HIGH),
)


@dataclass
class DetailPage:
    """Raw and parsed forms of a screenshot detail page."""

    html: str
    soup: BeautifulSoup

    @classmethod
    def parse(cls, html: str) -> "DetailPage":
        return cls(html=html, soup=BeautifulSoup(html, "html.parser"))


Strategy = Callable[[DetailPage], Optional[str]]


def _tag_attr(tag, attr: str) -> Optional[str]:
    if tag is None:
        return None
    value = tag.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    value = (value or "").strip()
    return value or None


def og_image(page: DetailPage) -> Optional[str]:
    return _tag_attr(page.soup.find("meta", attrs={"property": "og:image"}), "content")


def image_src_link(page: DetailPage) -> Optional[str]:
    return _tag_attr(page.soup.find("link", attrs={"rel": "image_src"}), "href")


def actual_media(page: DetailPage) -> Optional[str]:
    url = _tag_attr(page.soup.find("img", id="ActualMedia"), "src")
    if url and "?" not in url:
        url = f"{url}?{HIGH_RES_QUERY}"
    return url


def script_image(page: DetailPage) -> Optional[str]:
    for pattern in (_SCRIPT_IMAGE_PATTERN, _CLOUDFRONT_PATTERN):
        match = pattern.search(page.html)
        if match:
            return match.group(1)
    return None


def details_image(page: DetailPage) -> Optional[str]:
    url = _tag_attr(page.soup.find("img", class_="screenshotDetailsImage"), "src")
    return url.split("?")[0] if url else None


def _encoded_area(url: str) -> int:
    match = _RESOLUTION_PATTERN.search(url)
    if not match:
        return 0
    return int(match.group(1)) * int(match.group(2))


def best_resolution_scan(page: DetailPage) -> Optional[str]:
    """Pick the CDN asset with the largest resolution hint."""
    urls: List[str] = []
    for match in _CDN_JPG_PATTERN.finditer(page.html):
        url = match.group(1).split("?")[0]
        if any(marker in url for marker in HIGH_RES_MARKERS):
            return url
        urls.append(url)
    if not urls:
        return None
    # max() keeps the earliest URL on ties.
    return max(urls, key=_encoded_area)


def any_image_scan(page: DetailPage) -> Optional[str]:
    matches = [match.group(1) for match in _ANY_IMAGE_PATTERN.finditer(page.html)]
    if not matches:
        return None
    return max(matches, key=len)


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    og_image,
    image_src_link,
    actual_media,
    script_image,
    details_image,
    best_resolution_scan,
    any_image_scan,
)


def find_media_url(
    page: DetailPage, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES
) -> Optional[str]:
    """Return the URL from the first strategy that yields one."""
    for strategy in strategies:
        url = strategy(page)
        if url:
            logger.debug("Media URL found by %s", strategy.__name__)
            return url
    return None


def is_resizing_cdn(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    return host.startswith("steamuserimages") or host.endswith("steamusercontent.com")


def normalize_media_url(url: str) -> str:
    """Drop the query and ask resizing CDNs for their largest rendition."""
    base = url.split("?")[0]
    if is_resizing_cdn(base):
        return f"{base}?{HIGH_RES_QUERY}"
    return base


def classify_quality(url: str) -> QualityTier:
    for markers, tier in _TIER_MARKERS:
        if any(marker in url for marker in markers):
            return tier
    return QualityTier.STANDARD


def _div_text(page: DetailPage, class_name: str) -> Optional[str]:
    tag = page.soup.find("div", class_=class_name)
    if tag is None:
        return None
    text = tag.get_text(strip=True)
    return text or None


def extract_candidate(
    html: str,
    detail_url: str,
    source_id: str,
    now: Optional[datetime] = None,
    strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
) -> Optional[CandidateItem]:
    """Build a ``CandidateItem`` from detail page HTML, or ``None`` on a miss."""
    page = DetailPage.parse(html)
    raw_url = find_media_url(page, strategies)
    if not raw_url:
        logger.info("Failed to extract image URL from page: %s", detail_url)
        return None

    media_url = normalize_media_url(raw_url)
    tier = classify_quality(media_url)
    logger.debug("Found %s image: %.50s...", tier.value, media_url)
    return CandidateItem(
        detail_url=detail_url,
        media_url=media_url,
        quality_tier=tier,
        title=_div_text(page, "screenshotName"),
        category=_div_text(page, "screenshotAppName"),
        source_id=source_id,
        discovered_at=now or datetime.now(timezone.utc),
    )


async def fetch_candidate(
    fetcher: PageFetcher,
    detail_url: str,
    source_id: str,
) -> Optional[CandidateItem]:
    """Fetch a detail page and extract it; network failures yield ``None``."""
    try:
        html = await fetcher.fetch_text(detail_url)
    except FetchError as exc:
        logger.warning("Error fetching screenshot details from %s: %s", detail_url, exc)
        return None
    return extract_candidate(html, detail_url, source_id)
