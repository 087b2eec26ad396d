"""
Catalog fetcher — everything we pull from Apple's public iTunes endpoints.

    - search:            iTunes Search API, ranked apps for a keyword
    - fetch_reviews:     customer-reviews RSS feed (JSON flavour), 50 per page
    - fetch_app_details: iTunes Lookup API, mainly for screenshot URLs
    - download_screenshot

Note:
    Apple's RSS feed only exposes the most recent ~500 reviews (10 pages).
    That's plenty for spotting patterns across a whole keyword.
"""

import time
from datetime import datetime
from typing import Callable, Optional

import requests

from appintel.config import Settings
from appintel.errors import CatalogError
from appintel.models import App, AppDetails, Review, BANDS, HIGH_RATINGS, LOW_RATINGS

SEARCH_URL = "https://itunes.apple.com/search"
LOOKUP_URL = "https://itunes.apple.com/lookup"
RSS_BASE_URL = "https://itunes.apple.com"


def _label(entry: dict, *keys):
    """Walk Apple's {"x": {"label": ...}} nesting; None when anything is missing."""
    node = entry
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    if isinstance(node, dict):
        return node.get("label")
    return node


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        # Apple sends e.g. 2025-07-01T09:15:00-07:00; keep wall-clock time
        return datetime.fromisoformat(value).replace(tzinfo=None)
    except ValueError:
        return None


def parse_search_results(data: dict, keyword: str) -> list[App]:
    """Map iTunes Search API results to App objects, ranked 1..N."""
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        return []

    apps = []
    for index, item in enumerate(data["results"]):
        apps.append(App(
            app_id=str(item.get("trackId")),
            keyword=keyword,
            name=item.get("trackName"),
            developer=item.get("artistName"),
            bundle_id=item.get("bundleId"),
            price=item.get("price"),
            currency=item.get("currency"),
            rating=item.get("averageUserRating"),
            rating_count=item.get("userRatingCount"),
            version=item.get("version"),
            description=item.get("description"),
            icon_url=item.get("artworkUrl512") or item.get("artworkUrl100"),
            search_rank=index + 1,
        ))
    return apps


def parse_review_entry(entry: dict, app_id: str) -> Optional[Review]:
    """
    One RSS entry -> Review. Entries without a star rating are app metadata,
    not reviews, and are skipped.
    """
    rating = _label(entry, "im:rating")
    if rating is None:
        return None
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        return None

    return Review(
        review_id=_label(entry, "id"),
        rating=rating,
        title=_label(entry, "title"),
        content=_label(entry, "content"),
        author=_label(entry, "author", "name"),
        version=_label(entry, "im:version"),
        published_at=_parse_date(_label(entry, "updated")),
        app_id=app_id,
    )


class CatalogFetcher:
    """Thin client over the iTunes endpoints, configured once from Settings."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.session = session or requests.Session()
        self.sleep = sleep

    def _get(self, url: str, **kwargs) -> requests.Response:
        return self.session.get(url, timeout=self.settings.http_timeout, **kwargs)

    def search(self, keyword: str, limit: int = 10, country: str = "us") -> list[App]:
        """
        Top `limit` apps for a keyword, in App Store search order.
        HTTP errors raise CatalogError; an empty result is just an empty list.
        """
        params = {"term": keyword, "country": country, "entity": "software", "limit": limit}
        response = self._get(SEARCH_URL, params=params)
        if not response.ok:
            raise CatalogError(f"App Store API error: {response.status_code} - {response.reason}")

        data = response.json()
        if self.settings.debug:
            print(f"DEBUG: Results count: {data.get('resultCount') if isinstance(data, dict) else '?'}")
        return parse_search_results(data, keyword)

    def fetch_all_reviews(self, app_id: str, country: str = "us",
                          max_pages: Optional[int] = None) -> list[Review]:
        """
        Walk the RSS feed page by page, every rating included.

        Raises CatalogError when the first page can't be fetched, since then
        we know nothing about the app. A later page failing ends the walk and
        whatever was collected so far is returned.
        """
        max_pages = max_pages or self.settings.cache.review_pages
        all_reviews = []

        for page in range(1, max_pages + 1):
            url = (f"{RSS_BASE_URL}/{country}/rss/customerreviews/page={page}"
                   f"/id={app_id}/sortBy=mostRecent/json")
            try:
                response = self._get(url)
                response.raise_for_status()
                data = response.json()
                if not isinstance(data, dict):
                    raise ValueError(f"unexpected feed payload: {type(data).__name__}")
            except (requests.RequestException, ValueError) as e:
                if page == 1:
                    raise CatalogError(f"Reviews unavailable for app {app_id}: {e}") from e
                print(f"  Error fetching reviews for app {app_id}, page {page}: {e}")
                break

            entries = (data.get("feed") or {}).get("entry") or []
            # A feed with a single entry comes back as an object, not a list
            if isinstance(entries, dict):
                entries = [entries]
            if not entries:
                break

            for entry in entries:
                review = parse_review_entry(entry, app_id)
                if review is not None and review.review_id:
                    all_reviews.append(review)

            self.sleep(self.settings.cache.page_delay_seconds)

        return all_reviews

    def fetch_reviews(self, app_id: str, country: str = "us",
                      band: Optional[str] = None) -> list[Review]:
        """
        Reviews of one rating band: "low" (1-2 stars) or "high" (4-5 stars).
        With no band, one walk of the feed returns both bands for the caller
        to split; 3-star reviews are dropped either way.
        """
        ratings = BANDS[band] if band else LOW_RATINGS + HIGH_RATINGS
        return [r for r in self.fetch_all_reviews(app_id, country) if r.rating in ratings]

    def fetch_app_details(self, app_id: str) -> Optional[AppDetails]:
        """iTunes lookup for one app. None when the lookup fails or finds nothing."""
        try:
            response = self._get(LOOKUP_URL, params={"id": app_id})
            response.raise_for_status()
            results = response.json().get("results") or []
        except (requests.RequestException, ValueError) as e:
            print(f"Error fetching app details for {app_id}: {e}")
            return None

        if not results:
            return None

        info = results[0]
        return AppDetails(
            app_id=app_id,
            app_name=info.get("trackName"),
            bundle_id=info.get("bundleId"),
            version=info.get("version"),
            rating=info.get("averageUserRating"),
            rating_count=info.get("userRatingCount"),
            artwork_url=info.get("artworkUrl512"),
            screenshot_urls=info.get("screenshotUrls") or [],
            ipad_screenshot_urls=info.get("ipadScreenshotUrls") or [],
            description=info.get("description"),
            release_notes=info.get("releaseNotes"),
        )

    def download_screenshot(self, url: str) -> Optional[tuple[bytes, str]]:
        """Image bytes and content type, or None if the download fails."""
        try:
            response = self._get(url)
            response.raise_for_status()
        except requests.RequestException as e:
            print(f"Error downloading screenshot from {url}: {e}")
            return None
        return response.content, response.headers.get("content-type", "image/png")
