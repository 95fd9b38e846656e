from datetime import datetime, timezone

import pytest

from shotpipe.extractor import (
    HIGH_RES_QUERY,
    DetailPage,
    actual_media,
    best_resolution_scan,
    classify_quality,
    extract_candidate,
    fetch_candidate,
    normalize_media_url,
)
from shotpipe.models import QualityTier

from conftest import FakeFetcher

DETAIL = "https://steamcommunity.com/sharedfiles/filedetails/?id=42"
CDN = "https://steamuserimages-a.akamaihd.net/ugc/123/ABCDEF"


def test_earlier_strategy_wins_over_broad_scan():
    html = """
    <html><head>
      <meta property="og:image" content="https://cdn.example.com/meta.jpg">
    </head><body>
      <img src="https://other.example.com/a-much-longer-broad-scan-image-name.jpg">
    </body></html>
    """
    item = extract_candidate(html, DETAIL, "src")
    assert item is not None
    assert item.media_url == "https://cdn.example.com/meta.jpg"


def test_broad_scan_is_used_when_nothing_else_matches():
    html = """
    <img src="https://a.example.com/x.png">
    <img src="https://a.example.com/longer-name.jpg?w=10">
    """
    item = extract_candidate(html, DETAIL, "src")
    assert item.media_url == "https://a.example.com/longer-name.jpg"


def test_image_src_link_precedes_actual_media():
    html = f"""
    <link rel="image_src" href="{CDN}/link.jpg">
    <img id="ActualMedia" src="{CDN}/media.jpg">
    """
    item = extract_candidate(html, DETAIL, "src")
    assert item.media_url == f"{CDN}/link.jpg?{HIGH_RES_QUERY}"


def test_actual_media_gets_default_size_parameters():
    page = DetailPage.parse(f'<img class="x" id="ActualMedia" src="{CDN}/">')
    assert actual_media(page) == f"{CDN}/?{HIGH_RES_QUERY}"

    page = DetailPage.parse(f'<img id="ActualMedia" src="{CDN}/?imw=100">')
    assert actual_media(page) == f"{CDN}/?imw=100"


def test_best_resolution_scan_prefers_explicit_marker():
    html = (
        f'<img src="{CDN}/shot_3000x2000.jpg?x=1">'
        f'<img src="{CDN}/1920x1080/shot.jpg">'
    )
    assert best_resolution_scan(DetailPage.parse(html)) == f"{CDN}/1920x1080/shot.jpg"


def test_best_resolution_scan_ranks_by_area():
    html = f'<img src="{CDN}/small_640x360.jpg"><img src="{CDN}/big_1280x720.jpg">'
    assert best_resolution_scan(DetailPage.parse(html)) == f"{CDN}/big_1280x720.jpg"


def test_normalize_keeps_bare_url_for_unknown_hosts():
    assert normalize_media_url("https://img.example.com/a.jpg?size=s") == (
        "https://img.example.com/a.jpg"
    )
    assert normalize_media_url(f"{CDN}/?imw=200&imh=100") == f"{CDN}/?{HIGH_RES_QUERY}"
    assert normalize_media_url("https://images.steamusercontent.com/ugc/1/") == (
        f"https://images.steamusercontent.com/ugc/1/?{HIGH_RES_QUERY}"
    )


@pytest.mark.parametrize(
    "url, tier",
    [
        ("https://x.example.com/a_original.jpg", QualityTier.ULTRA),
        ("https://x.example.com/3840x2160/a.jpg", QualityTier.ULTRA),
        ("https://x.example.com/2560x1440/a.jpg", QualityTier.VERY_HIGH),
        ("https://x.example.com/1920x1080/a.jpg", QualityTier.HIGH),
        ("https://x.example.com/a.jpg", QualityTier.STANDARD),
    ],
)
def test_classify_quality(url, tier):
    assert classify_quality(url) == tier


def test_metadata_is_optional():
    html = """
    <meta property="og:image" content="https://x.example.com/2560x1440/a.jpg">
    <div class="screenshotName">  Sunset over the bay </div>
    <div class="screenshotAppName">Cyberpunk 2077</div>
    """
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    item = extract_candidate(html, DETAIL, "7656", now=now)
    assert item.title == "Sunset over the bay"
    assert item.category == "Cyberpunk 2077"
    assert item.quality_tier == QualityTier.VERY_HIGH
    assert item.source_id == "7656"
    assert item.discovered_at == now

    bare = extract_candidate(
        '<meta property="og:image" content="https://x.example.com/a.jpg">', DETAIL, "s"
    )
    assert bare.title is None and bare.category is None


def test_page_without_media_yields_nothing():
    assert extract_candidate("<html><body>nothing here</body></html>", DETAIL, "s") is None


@pytest.mark.asyncio
async def test_fetch_candidate_swallows_fetch_errors():
    fetcher = FakeFetcher({})
    assert await fetch_candidate(fetcher, DETAIL, "s") is None
    assert fetcher.requested == [DETAIL]


@pytest.mark.asyncio
async def test_fetch_candidate_extracts_from_fetched_page():
    fetcher = FakeFetcher(
        {DETAIL: '<meta property="og:image" content="https://x.example.com/a.jpg">'}
    )
    item = await fetch_candidate(fetcher, DETAIL, "s")
    assert item.detail_url == DETAIL
    assert item.media_url == "https://x.example.com/a.jpg"
