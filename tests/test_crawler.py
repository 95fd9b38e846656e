import pytest

from shotpipe.crawler import (
    crawl_source,
    estimate_total,
    extract_identifiers,
    listing_url,
    max_page_for,
    page_url,
)
from shotpipe.fetching import FetchError

from conftest import FakeFetcher, MemoryLedger

SOURCE = "76561198000000000"
BASE = listing_url(SOURCE)
DETAIL = "https://steamcommunity.com/sharedfiles/filedetails/?id={}"


def _links(*ids):
    return "".join(f'<a href="/sharedfiles/filedetails/?id={i}">shot</a>' for i in ids)


def test_listing_and_page_urls():
    assert BASE == f"https://steamcommunity.com/profiles/{SOURCE}/screenshots"
    assert page_url(BASE, "", 3) == f"{BASE}?p=3"
    assert page_url(BASE, "?tab=all", 2) == f"{BASE}?tab=all&p=2"


def test_extract_identifiers_covers_both_families():
    html = (
        '<a href="https://steamcommunity.com/sharedfiles/filedetails/?id=1">a</a>'
        "<a href='/sharedfiles/filedetails/?id=2'>b</a>"
        '<div onmouseover="SharedFileBindMouseHover( "3", false )"></div>'
        '<div data-screenshot-id="4"></div>'
        "<a onclick=\"ViewScreenshot('5')\"></a>"
        "ShowModalContent( 'shared_file_6'"
    )
    assert extract_identifiers(html) == [DETAIL.format(i) for i in range(1, 7)]


@pytest.mark.parametrize(
    "html, total",
    [
        ("<span>Showing 95 screenshots</span>", 95),
        ("<h2>Screenshots (12)</h2>", 12),
        ('<div class="imageWallRow"></div>' * 3, 30),
        ("<html></html>", 1000),
    ],
)
def test_estimate_total(html, total):
    assert estimate_total(html) == total


def test_max_page_has_floor_and_margin():
    assert max_page_for(0) == 10
    assert max_page_for(95) == 14
    assert max_page_for(1000) == 44


@pytest.mark.asyncio
async def test_view_stops_after_three_empty_pages():
    pages = {BASE: "<html>profile</html>"}
    for page, ids in {1: (1, 2), 2: (3,), 3: (4, 5)}.items():
        pages[page_url(BASE, "", page)] = _links(*ids)
    for page in (4, 5, 6):
        pages[page_url(BASE, "", page)] = _links(1, 3)
    pages[page_url(BASE, "", 7)] = _links(99)
    fetcher = FakeFetcher(pages)

    found = await crawl_source(fetcher, SOURCE, views=("",), page_delay=0, max_page=20)

    assert found == [DETAIL.format(i) for i in (1, 2, 3, 4, 5)]
    assert page_url(BASE, "", 6) in fetcher.requested
    assert page_url(BASE, "", 7) not in fetcher.requested


@pytest.mark.asyncio
async def test_private_profile_short_circuits():
    fetcher = FakeFetcher({BASE: "<p>This profile is private.</p>"}, default=_links(1))
    assert await crawl_source(fetcher, SOURCE, page_delay=0) == []
    assert fetcher.requested == [BASE]


@pytest.mark.asyncio
async def test_unreachable_profile_returns_nothing():
    fetcher = FakeFetcher({})
    assert await crawl_source(fetcher, SOURCE, page_delay=0) == []


@pytest.mark.asyncio
async def test_failed_page_is_skipped_without_counting_as_empty():
    pages = {
        BASE: "<html>profile</html>",
        page_url(BASE, "", 1): _links(1),
        page_url(BASE, "", 2): FetchError("boom"),
        page_url(BASE, "", 3): _links(2),
    }
    fetcher = FakeFetcher(pages, default="<html></html>")

    found = await crawl_source(fetcher, SOURCE, views=("",), page_delay=0, max_page=10)

    assert found == [DETAIL.format(1), DETAIL.format(2)]
    # pages 4, 5 and 6 are empty, so the view ends there
    assert fetcher.requested[-1] == page_url(BASE, "", 6)


@pytest.mark.asyncio
async def test_ledger_members_and_duplicates_across_views_are_skipped():
    ledger = MemoryLedger([DETAIL.format(1)])
    pages = {
        BASE: "<span>2 screenshots</span>",
        page_url(BASE, "", 1): _links(1, 2),
        page_url(BASE, "?tab=all", 1): _links(2, 3),
    }
    fetcher = FakeFetcher(pages, default="")

    found = await crawl_source(
        fetcher, SOURCE, ledger=ledger, views=("", "?tab=all"), page_delay=0
    )

    assert found == [DETAIL.format(2), DETAIL.format(3)]
