"""Shared fixtures: in-memory fakes for the resolver's collaborators and an
HTTP client bound to the FastAPI app."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from matchbook.api.deps import get_resolver
from matchbook.core.exceptions import ExpansionFailedError
from matchbook.main import app
from matchbook.schemas.place import NormalizedPlace, PlaceSource, ScrapedFields
from matchbook.services.resolver import PlaceResolver
from matchbook.services.url_expander import ExpandedLink


class FakePlacesClient:
    """Records calls and answers from canned dicts keyed by id / query."""

    def __init__(self, details=None, search_results=None, configured=True):
        self.details = details or {}
        self.search_results = search_results or {}
        self.is_configured = configured
        self.detail_calls: list[str] = []
        self.search_calls: list[tuple] = []

    async def get_details(self, external_id, api_key=None):
        self.detail_calls.append(external_id)
        result = self.details.get(external_id)
        if isinstance(result, Exception):
            raise result
        return result

    async def search(self, query, api_key=None, location_bias=None):
        self.search_calls.append((query, location_bias))
        result = self.search_results.get(query)
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        pass


class FakeScraper:
    def __init__(self, fields: ScrapedFields | None = None, error: Exception | None = None):
        self.fields = fields
        self.error = error
        self.calls: list[str] = []

    async def scrape(self, url):
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if self.fields is None:
            return ScrapedFields(final_url=url)
        return self.fields


class FakeExpander:
    def __init__(self, targets: dict[str, ExpandedLink] | None = None):
        self.targets = targets or {}
        self.calls: list[str] = []

    async def expand(self, short_url):
        self.calls.append(short_url)
        if short_url not in self.targets:
            raise ExpansionFailedError(f"Could not expand {short_url}", short_url=short_url)
        return self.targets[short_url]

    async def aclose(self):
        pass


def _make_place(name="Big Ben", lat=51.5007292, lng=-0.1246254, **kwargs) -> NormalizedPlace:
    defaults = {
        "address": "London SW1A 0AA, United Kingdom",
        "external_id": "ChIJ2dGMjMMEdkgRqVqkuXQkj7c",
        "source": PlaceSource.PLACES_DETAILS,
    }
    defaults.update(kwargs)
    return NormalizedPlace(name=name, lat=lat, lng=lng, **defaults)


@pytest.fixture
def make_place():
    return _make_place


@pytest.fixture
def fake_places():
    return FakePlacesClient()


@pytest.fixture
def fake_scraper():
    return FakeScraper()


@pytest.fixture
def fake_expander():
    return FakeExpander()


@pytest.fixture
def resolver(fake_places, fake_scraper, fake_expander):
    return PlaceResolver(places=fake_places, scraper=fake_scraper, expander=fake_expander)


@pytest_asyncio.fixture
async def client(resolver):
    app.dependency_overrides[get_resolver] = lambda: resolver
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
