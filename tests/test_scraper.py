"""Unit tests for matchbook.services.scraper.

HTML parsing is tested directly on fixture markup; the browser-driven path
runs against a fake session manager and page.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError

from matchbook.config import Settings
from matchbook.core.exceptions import ScrapeError
from matchbook.services.scraper import (
    CONSENT_BUTTON_WORDS,
    CONSENT_CLICK_SCRIPT,
    CONSENT_COOKIE,
    USER_AGENT,
    MapsScraper,
    extract_fields,
)

PLACE_URL = (
    "https://www.google.com/maps/place/Big+Ben/"
    "data=!4m2!3m1!1s0x487604c38c8cd1d9:0xb78f2474b9a45aa9"
)

BIG_BEN_HTML = """
<html>
<head>
  <meta property="og:title" content="Big Ben · London SW1A 0AA, United Kingdom">
  <meta property="og:image" content="https://maps.google.com/maps/api/staticmap?center=51.5007292%2C-0.1246254&amp;zoom=16&amp;size=256x256">
</head>
<body>
  <div role="main">
    <h1 class="DUwDvf">Big Ben</h1>
    <div class="F7nice">
      <span aria-hidden="true">4.6</span>
      <span aria-label="4.6 stars"></span>
    </div>
    <button aria-label="118,542 reviews">(118,542)</button>
    <button class="DkEaL">Historical landmark</button>
    <button data-item-id="address"><div></div><div>London SW1A 0AA, United Kingdom</div></button>
    <div data-item-id="oh">Open 24 hours</div>
    <a data-item-id="authority" href="https://www.google.com/url?q=x&amp;url=https%3A%2F%2Fwww.parliament.uk%2Fbigben&amp;sa=t">parliament.uk</a>
    <button data-item-id="phone:tel:02072193000"><div></div><div>020 7219 3000</div></button>
  </div>
</body>
</html>
"""


class TestExtractFields:
    def test_full_page(self):
        fields = extract_fields(BIG_BEN_HTML, PLACE_URL)
        assert fields.name == "Big Ben"
        assert fields.address == "London SW1A 0AA, United Kingdom"
        assert fields.phone == "020 7219 3000"
        assert fields.website == "https://www.parliament.uk/bigben"
        assert fields.rating == 4.6
        assert fields.rating_count == 118542
        assert fields.category == "Historical landmark"
        assert fields.opening_hours == "Open 24 hours"
        assert fields.final_url == PLACE_URL

    def test_coordinates_from_map_preview(self):
        fields = extract_fields(BIG_BEN_HTML, PLACE_URL)
        assert fields.coordinates.lat == pytest.approx(51.5007292)
        assert fields.coordinates.lng == pytest.approx(-0.1246254)

    def test_url_coordinates_take_precedence(self):
        url = "https://www.google.com/maps/place/Big+Ben/@51.5,-0.12,17z/data=!3d51.5007!4d-0.1246"
        fields = extract_fields(BIG_BEN_HTML, url)
        assert fields.coordinates.lat == pytest.approx(51.5007)

    def test_address_from_aria_label(self):
        html = '<h1>No. 10</h1><button aria-label="Address: 10 Downing St, London"></button>'
        fields = extract_fields(html, PLACE_URL)
        assert fields.address == "10 Downing St, London"

    def test_address_from_url_fragment(self):
        url = "https://www.google.com/maps/place/10+Downing+St,+London/@51.5034,-0.1276,17z"
        fields = extract_fields("<h1>Downing Street</h1>", url)
        assert fields.address == "10 Downing St, London"

    def test_name_from_og_title(self):
        html = '<meta property="og:title" content="Big Ben · London">'
        assert extract_fields(html, PLACE_URL).name == "Big Ben"

    def test_generic_og_title_ignored(self):
        html = '<meta property="og:title" content="Google Maps">'
        assert extract_fields(html, PLACE_URL).name is None

    def test_empty_page(self):
        fields = extract_fields("", PLACE_URL)
        assert fields.name is None
        assert fields.address is None
        assert fields.coordinates is None
        assert fields.has_identity is False


# ---------------------------------------------------------------------------
# Browser-driven path
# ---------------------------------------------------------------------------


class FakePage:
    def __init__(
        self, redirects=None, html=BIG_BEN_HTML, goto_error=None, goto_delay=0.0, click_target=None
    ):
        self.url = "about:blank"
        self.redirects = redirects or {}
        self.html = html
        self.goto_error = goto_error
        self.goto_delay = goto_delay
        self.visited: list[str] = []
        self.click_target = click_target
        self.scripts: list[tuple] = []

    async def goto(self, url, wait_until=None, timeout=None):
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        if self.goto_error is not None:
            raise self.goto_error
        self.visited.append(url)
        self.url = self.redirects.get(url, url)

    async def evaluate(self, script, arg=None):
        self.scripts.append((script, arg))
        if self.click_target is None:
            return False
        self.url = self.click_target
        return True

    async def wait_for_url(self, predicate, timeout=None):
        pass

    async def wait_for_selector(self, selector, timeout=None):
        pass

    async def wait_for_timeout(self, ms):
        pass

    async def content(self):
        return self.html


class FakeManager:
    def __init__(self, page: FakePage):
        self._page = page
        self.page_kwargs: list[dict] = []

    @asynccontextmanager
    async def page(self, user_agent=None, cookies=None):
        self.page_kwargs.append({"user_agent": user_agent, "cookies": cookies})
        yield self._page


def _scraper(page: FakePage, **overrides) -> tuple[MapsScraper, FakeManager]:
    manager = FakeManager(page)
    settings = Settings(SCRAPE_SETTLE_MS=0, **overrides)
    return MapsScraper(manager=manager, settings=settings), manager


class TestMapsScraper:
    @pytest.mark.asyncio
    async def test_scrapes_place_page(self):
        page = FakePage()
        scraper, manager = _scraper(page)
        fields = await scraper.scrape(PLACE_URL)
        assert fields.name == "Big Ben"
        assert fields.final_url == PLACE_URL
        assert manager.page_kwargs == [{"user_agent": USER_AGENT, "cookies": [CONSENT_COOKIE]}]

    @pytest.mark.asyncio
    async def test_consent_bypassed_via_continue_target(self):
        consent = (
            "https://consent.google.com/ml?continue="
            "https%3A%2F%2Fwww.google.com%2Fmaps%2Fplace%2FBig%2BBen&gl=GB"
        )
        page = FakePage(redirects={PLACE_URL: consent})
        scraper, _ = _scraper(page)
        fields = await scraper.scrape(PLACE_URL)
        assert page.visited == [PLACE_URL, "https://www.google.com/maps/place/Big+Ben"]
        assert fields.final_url == "https://www.google.com/maps/place/Big+Ben"
        assert fields.name == "Big Ben"

    @pytest.mark.asyncio
    async def test_consent_bypassed_by_click(self):
        consent = "https://consent.google.com/ml?continue=https%3A%2F%2Fwww.google.com%2Fmaps&gl=GB"
        page = FakePage(redirects={PLACE_URL: consent}, click_target=PLACE_URL)
        scraper, _ = _scraper(page)
        fields = await scraper.scrape(PLACE_URL)
        assert page.visited == [PLACE_URL]
        assert page.scripts == [(CONSENT_CLICK_SCRIPT, CONSENT_BUTTON_WORDS)]
        assert fields.final_url == PLACE_URL

    def test_continue_buttons_count_as_consent(self):
        assert "continue" in CONSENT_BUTTON_WORDS

    @pytest.mark.asyncio
    async def test_navigation_failure(self):
        page = FakePage(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        scraper, _ = _scraper(page)
        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(PLACE_URL)
        assert exc_info.value.reason.startswith("navigation failed")

    @pytest.mark.asyncio
    async def test_non_maps_destination(self):
        page = FakePage(redirects={PLACE_URL: "https://accounts.google.com/signin"})
        scraper, _ = _scraper(page)
        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(PLACE_URL)
        assert "outside Google Maps" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_total_timeout(self):
        page = FakePage(goto_delay=1.0)
        scraper, _ = _scraper(page, SCRAPE_TOTAL_TIMEOUT=0.05)
        with pytest.raises(ScrapeError) as exc_info:
            await scraper.scrape(PLACE_URL)
        assert "timed out" in exc_info.value.reason
