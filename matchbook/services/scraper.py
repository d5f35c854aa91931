"""Google Maps place page scraper.

Last-resort source of place data when the Places API has nothing usable.
A page is rendered in the shared headless browser, the consent interstitial
is bypassed if it shows up, and the rendered HTML is parsed with
BeautifulSoup. Google renames its CSS classes regularly, so every field is
read through an ordered list of selectors and the first well-formed match
wins.
"""

import asyncio
import logging
import re
from typing import Protocol
from urllib.parse import parse_qs, unquote, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, Page
from pydantic import ValidationError

from matchbook.config import Settings, settings as default_settings
from matchbook.core.exceptions import ScrapeError
from matchbook.schemas.place import Coordinates, ScrapedFields
from matchbook.services.browser import BrowserSessionManager, browser_manager
from matchbook.services.url_classifier import (
    consent_continue_target,
    extract_address_fragment,
    extract_coordinates,
    is_consent_url,
    is_maps_destination,
)

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Pre-accepted consent cookie; avoids the interstitial in most EU regions.
CONSENT_COOKIE = {
    "name": "CONSENT",
    "value": "YES+cb.20210720-07-p0.en+FX+410",
    "domain": ".google.com",
    "path": "/",
}

ADDRESS_WAIT_SELECTOR = (
    "button[data-item-id='address'], [data-item-id='address'], "
    "div[data-section-id='ad'] button"
)
ADDRESS_WAIT_TIMEOUT_MS = 3000

# Button text or aria-label words that mark a consent action.
CONSENT_BUTTON_WORDS = ["accept", "agree", "continue"]

# Clicks the first button labelled with one of the words, else the first submit.
CONSENT_CLICK_SCRIPT = """
(words) => {
    const selectors = [
        'button[aria-label*="Accept all"]',
        'button[aria-label*="Accept"]',
        'button[aria-label*="Agree"]',
        'button[jsname]',
        'form button',
        'button',
    ];
    for (const selector of selectors) {
        for (const btn of document.querySelectorAll(selector)) {
            const text = (btn.textContent || '').toLowerCase();
            const label = (btn.getAttribute('aria-label') || '').toLowerCase();
            if (words.some((w) => text.includes(w) || label.includes(w))) {
                btn.click();
                return true;
            }
        }
    }
    const submit = document.querySelector('button[type="submit"], input[type="submit"]');
    if (submit) {
        submit.click();
        return true;
    }
    return false;
}
"""


class PlaceScraper(Protocol):
    """What the resolver needs from a scraper."""

    async def scrape(self, url: str) -> ScrapedFields: ...


# ---------------------------------------------------------------------------
# HTML extraction (pure)
# ---------------------------------------------------------------------------

NAME_SELECTORS = ["h1.DUwDvf", "div[role='main'] h1", "h1"]

ADDRESS_SELECTORS = [
    "button[data-item-id='address']",
    "[data-item-id='address']",
    "div[data-section-id='ad'] button",
    "button[aria-label*='address' i]",
    "[data-tooltip*='address' i]",
]

RATING_FALLBACK_SELECTORS = [".F7nice span", ".ceNzKf", ".fontDisplayLarge"]

_ROAD_WORDS = re.compile(
    r"\b(?:street|st|road|rd|lane|ln|ave|avenue|blvd|boulevard|drive|dr|way|"
    r"place|pl|square|sq|highway|hwy|strasse|straße|rue|via|calle)\b",
    re.I,
)
_ADDRESS_LABEL_PREFIX = re.compile(r"^\s*address:\s*", re.I)
_PHONE = re.compile(r"[\d()+\-\s]{7,}")
_SINGLE_DECIMAL = re.compile(r"^\d\.\d$")


def _strip_icons(text: str) -> str:
    """Strip Google icon font characters (Unicode Private Use Area)."""
    return re.sub(r"[\ue000-\uf8ff]", "", text).strip()


def _looks_like_address(text: str) -> bool:
    return bool(re.search(r"\d", text) or _ROAD_WORDS.search(text) or "," in text)


def _extract_name(soup: BeautifulSoup) -> str | None:
    for selector in NAME_SELECTORS:
        el = soup.select_one(selector)
        if el:
            name = _strip_icons(el.get_text(" ", strip=True))
            if name:
                return name

    og_title = soup.select_one("meta[property='og:title']")
    if og_title and og_title.get("content"):
        # "Big Ben · London SW1A 0AA, United Kingdom"
        name = og_title["content"].split("·")[0].strip()
        if name and name.lower() != "google maps":
            return name
    return None


def _extract_address(soup: BeautifulSoup) -> str | None:
    for selector in ADDRESS_SELECTORS:
        el = soup.select_one(selector)
        if not el:
            continue
        text = _strip_icons(el.get_text(" ", strip=True))
        text = _ADDRESS_LABEL_PREFIX.sub("", text)
        if text and _looks_like_address(text):
            logger.debug(f"Address found via {selector}")
            return text

    for btn in soup.select("button[aria-label]"):
        label = btn.get("aria-label", "")
        if "address:" in label.lower():
            address = _ADDRESS_LABEL_PREFIX.sub("", label).strip()
            if address:
                logger.debug("Address found via aria-label")
                return address
    return None


def _extract_phone(soup: BeautifulSoup) -> str | None:
    el = soup.select_one("[data-item-id^='phone']")
    if not el:
        return None
    raw = _strip_icons(el.get_text(" ", strip=True))
    match = _PHONE.search(raw)
    if match:
        return match.group().strip()
    return raw or None


def _extract_website(soup: BeautifulSoup) -> str | None:
    el = soup.select_one("a[data-item-id='authority']") or soup.select_one(
        "[data-item-id='authority']"
    )
    if not el:
        return None
    href = el.get("href", "")
    if not href:
        a_tag = el.select_one("a[href]")
        if a_tag:
            href = a_tag.get("href", "")
    if href:
        # Google may wrap in redirects, extract the actual URL
        redirect = re.search(r"[?&]url=([^&]+)", href)
        if redirect:
            return unquote(redirect.group(1))
        if href.startswith("http"):
            return href
    return _strip_icons(el.get_text(" ", strip=True)) or None


def _extract_hours(soup: BeautifulSoup) -> str | None:
    el = soup.select_one("[data-item-id^='oh']")
    if not el:
        return None
    text = _strip_icons(el.get_text(" ", strip=True))
    return text or el.get("aria-label") or None


def _extract_rating(soup: BeautifulSoup) -> float | None:
    stars = soup.select_one("span[aria-label*='stars']")
    if stars:
        match = re.search(r"([\d.]+)\s*stars?", stars.get("aria-label", ""))
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                pass

    for span in soup.select("span[aria-hidden='true']"):
        text = span.get_text(strip=True)
        if _SINGLE_DECIMAL.match(text):
            return float(text)

    for selector in RATING_FALLBACK_SELECTORS:
        el = soup.select_one(selector)
        if el:
            try:
                return float(el.get_text(strip=True))
            except ValueError:
                continue
    return None


def _extract_rating_count(soup: BeautifulSoup) -> int | None:
    for btn in soup.select("button[jsaction*='reviews'], button[aria-label*='reviews']"):
        match = re.search(r"([\d,]+)\s*reviews?", btn.get("aria-label", ""), re.I)
        if match:
            try:
                return int(match.group(1).replace(",", ""))
            except ValueError:
                continue

    el = soup.select_one(".UY7F9")
    if el:
        try:
            return int(el.get_text(strip=True).strip("()").replace(",", ""))
        except ValueError:
            pass
    return None


def _extract_category(soup: BeautifulSoup) -> str | None:
    el = soup.select_one("button.DkEaL")
    if el:
        return _strip_icons(el.get_text(strip=True)) or None
    return None


def _coordinates_from_og_image(soup: BeautifulSoup) -> Coordinates | None:
    """The static map preview is centred on the place: ``...&center=51.5%2C-0.12``."""
    meta = soup.select_one("meta[property='og:image'], meta[itemprop='image']")
    if not meta or not meta.get("content"):
        return None
    center = parse_qs(urlparse(meta["content"]).query).get("center")
    if not center:
        return None
    parts = center[0].split(",")
    if len(parts) != 2:
        return None
    try:
        return Coordinates(lat=float(parts[0]), lng=float(parts[1]))
    except (ValueError, ValidationError):
        return None


def extract_fields(html: str, final_url: str) -> ScrapedFields:
    """Parse a rendered Google Maps place page."""
    soup = BeautifulSoup(html or "", "lxml")

    coordinates, _ = extract_coordinates(final_url)
    if coordinates is None:
        coordinates = _coordinates_from_og_image(soup)

    address = _extract_address(soup)
    if not address:
        address = extract_address_fragment(final_url)
        if address:
            logger.debug(f"Address taken from URL path: {address}")

    return ScrapedFields(
        name=_extract_name(soup),
        address=address,
        phone=_extract_phone(soup),
        website=_extract_website(soup),
        rating=_extract_rating(soup),
        rating_count=_extract_rating_count(soup),
        opening_hours=_extract_hours(soup),
        category=_extract_category(soup),
        coordinates=coordinates,
        final_url=final_url,
    )


# ---------------------------------------------------------------------------
# Browser-driven scraping
# ---------------------------------------------------------------------------


class MapsScraper:
    def __init__(
        self,
        manager: BrowserSessionManager | None = None,
        settings: Settings | None = None,
    ):
        self._manager = manager or browser_manager
        self._settings = settings or default_settings

    async def scrape(self, url: str) -> ScrapedFields:
        """Render *url* and extract place fields.

        Raises:
            ScrapeError: navigation failed, timed out, or ended outside
                Google Maps.
        """
        timeout = self._settings.SCRAPE_TOTAL_TIMEOUT
        try:
            return await asyncio.wait_for(self._scrape(url), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ScrapeError(url, f"timed out after {timeout:.0f}s") from e

    async def _scrape(self, url: str) -> ScrapedFields:
        async with self._manager.page(
            user_agent=USER_AGENT, cookies=[CONSENT_COOKIE]
        ) as page:
            try:
                await page.goto(
                    url,
                    wait_until="domcontentloaded",
                    timeout=self._settings.SCRAPE_NAVIGATION_TIMEOUT,
                )
            except PlaywrightError as e:
                raise ScrapeError(url, f"navigation failed: {e}") from e

            if is_consent_url(page.url):
                await self._bypass_consent(page)

            if not is_maps_destination(page.url):
                raise ScrapeError(url, f"landed outside Google Maps at {page.url}")

            await self._wait_for_content(page)
            html = await page.content()
            final_url = page.url

        fields = extract_fields(html, final_url)
        logger.info(
            f"Scraped {final_url}: name={fields.name!r} address={fields.address!r} "
            f"coordinates={'yes' if fields.coordinates else 'no'}"
        )
        return fields

    async def _bypass_consent(self, page: Page):
        consent_url = page.url
        logger.info("On consent page, attempting to bypass")

        try:
            clicked = await page.evaluate(CONSENT_CLICK_SCRIPT, CONSENT_BUTTON_WORDS)
        except PlaywrightError as e:
            logger.info(f"Consent click failed: {e}")
            clicked = False

        if clicked:
            try:
                await page.wait_for_url(
                    lambda u: not is_consent_url(u),
                    timeout=self._settings.SCRAPE_SELECTOR_TIMEOUT,
                )
            except PlaywrightError:
                logger.debug("No navigation after consent click")
            if not is_consent_url(page.url):
                logger.info("Consent page bypassed by click")
                return

        target = consent_continue_target(consent_url)
        if not target:
            logger.info("Could not bypass consent page, no continue target")
            return
        try:
            await page.goto(
                target,
                wait_until="domcontentloaded",
                timeout=self._settings.SCRAPE_NAVIGATION_TIMEOUT,
            )
            logger.info("Consent page bypassed via continue target")
        except PlaywrightError as e:
            logger.info(f"Navigation to consent continue target failed: {e}")

    async def _wait_for_content(self, page: Page):
        try:
            await page.wait_for_selector(
                "h1", timeout=self._settings.SCRAPE_SELECTOR_TIMEOUT
            )
        except PlaywrightError:
            logger.debug("Place heading not found within timeout, continuing")

        await page.wait_for_timeout(self._settings.SCRAPE_SETTLE_MS)

        try:
            await page.wait_for_selector(
                ADDRESS_WAIT_SELECTOR, timeout=ADDRESS_WAIT_TIMEOUT_MS
            )
        except PlaywrightError:
            logger.debug("Address selector not found within timeout, continuing")
