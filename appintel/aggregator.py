"""
Review aggregator — collects the apps and reviews behind one keyword.

For every run it decides, piece by piece, whether the cache is good enough:

    1. App list:  reuse the cached apps if enough of them are recent,
                  otherwise search the App Store again.
    2. Reviews:   per app, reuse stored reviews if its feed was walked
                  recently, otherwise walk the RSS feed once and split the
                  result into the low and high bands.

One app failing (timeout, HTTP error) never stops the loop; it is reported
and skipped. Finding nothing at all is not an error either; the caller gets
an empty AggregationResult and decides what to tell the user.
"""

import time
from datetime import datetime
from typing import Callable, Optional

import requests

from appintel.catalog import CatalogFetcher
from appintel.config import Settings
from appintel.database import (
    initialize_database,
    upsert_app,
    get_apps_for_keyword,
    delete_keyword_apps,
    upsert_reviews,
    get_reviews_for_app,
    get_latest_review_created_at,
    mark_reviews_fetched,
)
from appintel.errors import CatalogError
from appintel.freshness import app_list_is_stale, reviews_are_stale
from appintel.models import AggregationResult, App, BAND_HIGH, BAND_LOW


class ReviewAggregator:
    def __init__(self, settings: Settings, fetcher: Optional[CatalogFetcher] = None,
                 db_path: Optional[str] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.settings = settings
        self.fetcher = fetcher or CatalogFetcher(settings)
        self.db_path = db_path or settings.db_path
        self.sleep = sleep
        initialize_database(self.db_path)

    # ---- app list ----

    def _ranked_apps(self, keyword: str) -> list[App]:
        # Apps stored without a search rank (an ASO target) are not search results
        return [a for a in get_apps_for_keyword(self.db_path, keyword) if a.search_rank is not None]

    def _cached_apps(self, keyword: str, limit: int, now: datetime) -> Optional[list[App]]:
        """The cached app list if it's still fresh, else None."""
        cached = self._ranked_apps(keyword)
        ttl = self.settings.cache.app_list_ttl
        if app_list_is_stale([a.created_at for a in cached], limit, now, ttl):
            return None
        return cached[:limit]

    def _search_apps(self, keyword: str, limit: int, country: str, now: datetime) -> list[App]:
        print(f"Searching App Store for '{keyword}' (top {limit}, {country})...")
        try:
            found = self.fetcher.search(keyword, limit=limit, country=country)
        except (requests.RequestException, CatalogError) as e:
            print(f"  Search failed: {e}")
            stale = self._ranked_apps(keyword)[:limit]
            if stale:
                print(f"  Falling back to {len(stale)} cached apps")
            return stale

        refresh_before = now - self.settings.cache.app_list_ttl
        return [upsert_app(self.db_path, app, now, refresh_before) for app in found]

    def find_apps(self, keyword: str, limit: int = 10, country: str = "us",
                  force: bool = False, now: Optional[datetime] = None) -> tuple[list[App], bool]:
        """
        Apps for a keyword in rank order: the cached list when enough of it is
        recent, otherwise a fresh search. Returns (apps, searched).
        """
        now = now or datetime.now()
        if force:
            deleted = delete_keyword_apps(self.db_path, keyword)
            if deleted:
                print(f"Force refresh: dropped {deleted} cached apps for '{keyword}'")
        else:
            cached = self._cached_apps(keyword, limit, now)
            if cached is not None:
                print(f"Using {len(cached)} cached apps for '{keyword}'")
                return cached, False
        return self._search_apps(keyword, limit, country, now), True

    # ---- reviews ----

    def _last_fetched(self, app: App) -> Optional[datetime]:
        """When the feed was last walked for this row, else when its newest review was stored."""
        if app.reviews_fetched_at is not None:
            return app.reviews_fetched_at
        return get_latest_review_created_at(self.db_path, app.id)

    def _app_reviews(self, app: App, country: str, now: datetime) -> tuple[list, list, int]:
        """
        Both bands for one app row, from cache or one walk of the feed.
        Returns (low, high, newly_stored_count). Network errors propagate.
        """
        if reviews_are_stale(self._last_fetched(app), now, self.settings.cache.review_ttl):
            fetched = self.fetcher.fetch_reviews(app.app_id, country=country)
            # 3-star reviews are never stored, whatever the fetcher hands back
            fetched = [r for r in fetched if r.band in (BAND_LOW, BAND_HIGH)]
            inserted = upsert_reviews(self.db_path, app.id, fetched, now)
            mark_reviews_fetched(self.db_path, app.id, now)
        else:
            inserted = 0
        return (get_reviews_for_app(self.db_path, app.id, BAND_LOW),
                get_reviews_for_app(self.db_path, app.id, BAND_HIGH),
                inserted)

    # ---- orchestration ----

    def aggregate(self, keyword: str, limit: int = 10, country: str = "us",
                  force: bool = False, now: Optional[datetime] = None) -> AggregationResult:
        """
        Gather apps plus low (1-2 star) and high (4-5 star) reviews for a keyword.

        Args:
            force: Forget everything cached under this keyword first.
            now:   Reference time for every freshness decision (default: now).
        """
        now = now or datetime.now()
        result = AggregationResult(keyword=keyword)

        apps, result.searched = self.find_apps(keyword, limit, country, force, now)

        if not apps:
            print(f"No apps found for '{keyword}'")
            return result
        result.apps = apps

        for index, app in enumerate(apps):
            print(f"  [{index + 1}/{len(apps)}] {app.name}")
            try:
                low, high, new = self._app_reviews(app, country, now)
            except (requests.RequestException, CatalogError) as e:
                print(f"    Skipping {app.name}: {e}")
                result.failed_apps.append(app.app_id)
            else:
                result.low_reviews.extend(low)
                result.high_reviews.extend(high)
                result.new_reviews += new
                print(f"    {len(low)} low, {len(high)} high ({new} new)")

            # Pause even when everything came from cache
            if index < len(apps) - 1:
                self.sleep(self.settings.cache.app_delay_seconds)

        print(f"Collected {result.total_low_reviews} low and {result.total_high_reviews} "
              f"high reviews from {len(apps) - len(result.failed_apps)} apps")
        return result
