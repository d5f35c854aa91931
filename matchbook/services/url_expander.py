"""Expansion of shortened map links (``maps.app.goo.gl``, ``goo.gl/maps``).

A HEAD request with redirects followed is enough for most links. When it
fails, a GET is tried instead, which also exposes the place name embedded in
the page's inline data. Consent interstitials are unwrapped via their
``continue`` parameter.
"""

import json
import logging
import re
from dataclasses import dataclass

import httpx

from matchbook.config import Settings, settings as default_settings
from matchbook.core.exceptions import ExpansionFailedError
from matchbook.core.metrics import link_expansions_total
from matchbook.services.url_classifier import (
    consent_continue_target,
    is_consent_url,
    is_maps_destination,
)

logger = logging.getLogger(__name__)

HEAD_USER_AGENT = "Mozilla/5.0 (compatible; Matchbook/1.0)"
GET_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# ["0x47d8a00baf21de75:0x52963a5addd52a99","Eiffel Tower",null,null
_EMBEDDED_NAME = re.compile(r'\["0x[0-9a-f]+:0x[0-9a-f]+","((?:[^"\\]|\\.)+)",null,null')


@dataclass
class ExpandedLink:
    url: str
    via_consent: bool = False
    embedded_name: str | None = None


def extract_embedded_name(html: str) -> str | None:
    m = _EMBEDDED_NAME.search(html or "")
    if not m:
        return None
    raw = m.group(1)
    try:
        name = json.loads(f'"{raw}"')
    except ValueError:
        name = raw
    return name.strip() or None


class LinkExpander:
    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or default_settings
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._settings.EXPANSION_TIMEOUT,
            follow_redirects=True,
        )

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def _head(self, short_url: str) -> str | None:
        try:
            response = await self._client.head(
                short_url,
                headers={"User-Agent": HEAD_USER_AGENT},
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.info(f"HEAD expansion failed for {short_url}: {e}")
            return None
        if response.status_code >= 400:
            logger.info(f"HEAD expansion of {short_url} returned {response.status_code}")
            return None
        return str(response.url)

    async def _get(self, short_url: str) -> tuple[str, str | None] | None:
        try:
            response = await self._client.get(
                short_url, headers=GET_HEADERS, follow_redirects=True
            )
        except httpx.HTTPError as e:
            logger.warning(f"GET expansion failed for {short_url}: {e}")
            return None
        if response.status_code >= 400:
            logger.warning(f"GET expansion of {short_url} returned {response.status_code}")
            return None
        return str(response.url), extract_embedded_name(response.text)

    async def expand(self, short_url: str) -> ExpandedLink:
        """Follow *short_url* to its Google Maps destination.

        Raises:
            ExpansionFailedError: every request failed, or the redirect chain
                ended somewhere other than Google Maps.
        """
        embedded_name = None
        final_url = await self._head(short_url)
        if final_url is None:
            fetched = await self._get(short_url)
            if fetched is None:
                link_expansions_total.labels(outcome="failed").inc()
                raise ExpansionFailedError(
                    f"Could not expand {short_url}", short_url=short_url
                )
            final_url, embedded_name = fetched

        via_consent = False
        if is_consent_url(final_url):
            target = consent_continue_target(final_url)
            if target:
                logger.info("Expanded link landed on consent page, using continue target")
                final_url = target
                via_consent = True

        if not is_maps_destination(final_url):
            link_expansions_total.labels(outcome="not_maps").inc()
            raise ExpansionFailedError(
                f"Redirect from {short_url} did not lead to Google Maps",
                short_url=short_url,
            )

        link_expansions_total.labels(outcome="consent" if via_consent else "ok").inc()
        logger.debug(f"Expanded {short_url} -> {final_url}")
        return ExpandedLink(
            url=final_url, via_consent=via_consent, embedded_name=embedded_name
        )
