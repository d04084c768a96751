"""Shared fixtures: in-memory Search/Extract providers and a controllable clock."""

from types import SimpleNamespace

import pytest

from product_research.config.domains import load_source_lists
from product_research.config.settings import Settings
from product_research.extraction.schemas import (
    COMPATIBILITY_SCHEMA,
    FAQ_SCHEMA,
    IMAGES_SCHEMA,
    PACKAGING_SCHEMA,
    RELATED_SCHEMA,
)
from product_research.tools.domain_tiers import SourceTierClassifier
from product_research.tools.search_models import SearchHit

SCHEMA_CATEGORY = {
    id(PACKAGING_SCHEMA): "logistics",
    id(COMPATIBILITY_SCHEMA): "compatibility",
    id(RELATED_SCHEMA): "related",
    id(FAQ_SCHEMA): "faq",
    id(IMAGES_SCHEMA): "images",
}


class FakeSearch:
    """Search capability backed by a dict of query-substring -> URLs.

    Values may also be an Exception instance (raised) or a callable taking
    the query. `side_effects`, when given, is consumed one entry per call
    before the mapping is consulted.
    """

    name = "fake"

    def __init__(self, results=None, fallback=(), side_effects=None, independent_limits=False):
        self.results = results or {}
        self.fallback = fallback if callable(fallback) else list(fallback)
        self.side_effects = list(side_effects or [])
        self.independent_limits = independent_limits
        self.calls = []

    def search(self, query, limit, locale=None, result_kind="web"):
        self.calls.append(SimpleNamespace(query=query, limit=limit, locale=locale, result_kind=result_kind))
        if self.side_effects:
            value = self.side_effects.pop(0)
        else:
            value = self.fallback
            for key, candidate in self.results.items():
                if key in query:
                    value = candidate
                    break
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(query)
        return [SearchHit(url=u, provider=self.name) for u in value]


class FakeExtract:
    """Extract capability returning canned payloads per category."""

    def __init__(self, payloads=None):
        self.payloads = payloads or {}
        self.calls = []

    def extract(self, urls, instruction, schema):
        category = SCHEMA_CATEGORY[id(schema)]
        self.calls.append(SimpleNamespace(category=category, urls=list(urls), instruction=instruction))
        value = self.payloads.get(category, {})
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value(urls)
        return value


class FakeClock:
    """Millisecond clock advancing by `step` on every read."""

    def __init__(self, start=0, step=0):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def source_lists():
    return load_source_lists()


@pytest.fixture
def classifier(source_lists):
    return SourceTierClassifier(source_lists)


@pytest.fixture
def settings():
    return Settings(_env_file=None, FIRECRAWL_API_KEY="test-key", RATE_LIMIT_BACKOFF_SECONDS=5.0)


@pytest.fixture
def sleeps():
    """List collecting every backoff requested through the injected sleeper."""
    return []


@pytest.fixture
def fake_search():
    return FakeSearch


@pytest.fixture
def fake_extract():
    return FakeExtract


@pytest.fixture
def fake_clock():
    return FakeClock
