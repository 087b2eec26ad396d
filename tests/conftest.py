"""Shared fixtures: hermetic settings, a temp database, and fake collaborators."""

from datetime import datetime

import pytest

from appintel.config import CachePolicy, Settings
from appintel.database import initialize_database
from appintel.errors import CatalogError
from appintel.llm_client import LLMResult
from appintel.models import App, AppDetails, Review, rating_band

NOW = datetime(2025, 7, 1, 12, 0, 0)


def make_review(review_id, rating, content="", title="", app_id="100"):
    return Review(review_id=str(review_id), rating=rating, title=title, content=content,
                  author="someone", version="1.0", app_id=app_id)


def make_app(app_id, rank, keyword="meditation", name=None, **kwargs):
    fields = dict(developer="Dev Co", rating=4.5, rating_count=1000,
                  description=f"Description of app {app_id}")
    fields.update(kwargs)
    return App(app_id=str(app_id), keyword=keyword, name=name or f"App {app_id}",
               search_rank=rank, **fields)


class FakeFetcher:
    """
    Catalog fetcher with canned data. `reviews` maps app_id to the full list of
    reviews for that app; app_ids in `failing` raise CatalogError the way
    CatalogFetcher does when the first feed page fails.
    """

    def __init__(self, apps=None, reviews=None, failing=(), details=None, images=None):
        self.apps = apps or []
        self.reviews = reviews or {}
        self.failing = set(failing)
        self.details = details or {}
        self.images = images or {}
        self.search_calls = []
        self.review_calls = []

    def search(self, keyword, limit=10, country="us"):
        self.search_calls.append((keyword, limit, country))
        return [App(**{**a.__dict__, "keyword": keyword}) for a in self.apps[:limit]]

    def fetch_reviews(self, app_id, country="us", band=None):
        self.review_calls.append(app_id)
        if app_id in self.failing:
            raise CatalogError(f"Reviews unavailable for app {app_id}: network down")
        return [r for r in self.reviews.get(app_id, []) if band is None or rating_band(r.rating) == band]

    def fetch_app_details(self, app_id):
        return self.details.get(app_id)

    def download_screenshot(self, url):
        return self.images.get(url)


class FakeLLM:
    """Answers by system prompt; `default` answers everything else."""

    def __init__(self, responses=None, default='{"summary": "ok"}', error=None):
        self.responses = responses or {}
        self.default = default
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_content, model=None, temperature=0.7):
        self.calls.append({"system": system_prompt, "user": user_content, "model": model})
        if self.error:
            return LLMResult(model=model, error=self.error)
        return LLMResult(text=self.responses.get(system_prompt, self.default), model=model or "test-model")


@pytest.fixture
def settings(tmp_path):
    policy = CachePolicy(app_delay_seconds=0, page_delay_seconds=0,
                         screenshot_app_delay_seconds=0, scraper_delay_seconds=0)
    return Settings(api_key="test-key", db_path=str(tmp_path / "test.sqlite3"),
                    model="test-model", aso_model="test-aso-model", cache=policy)


@pytest.fixture
def db_path(settings):
    initialize_database(settings.db_path)
    return settings.db_path


@pytest.fixture
def no_sleep():
    calls = []
    return calls.append, calls


@pytest.fixture
def app_details():
    return AppDetails(app_id="100", app_name="Calm Mind",
                      screenshot_urls=["https://img/1.png", "https://img/2.png"])
