"""
Metadata scraper — subtitle and promotional text from the App Store web page.

The iTunes APIs don't expose either field, so we read them off
apps.apple.com. Apple's markup changes often, so every field has a list of
CSS selectors to try, and the page's JSON-LD block is the last resort.

This scraper never raises to its caller: a page we can't fetch or parse
becomes an all-empty AppMetadata with success=False.
"""

import json
import time
from typing import Callable, Optional

import requests
from bs4 import BeautifulSoup

from appintel.config import Settings
from appintel.errors import RateLimitError
from appintel.models import AppMetadata

BASE_URL = "https://apps.apple.com"

BROWSER_HEADERS = {
    "User-Agent": ("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                   "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

SUBTITLE_SELECTORS = [
    "h2.subtitle",
    'h2[class*="subtitle"]',
    ".product-header__subtitle",
    "h2.product-header__subtitle",
]

PROMO_TEXT_SELECTORS = [
    "p.attributes",
    ".section--hero .we-truncate__child",
    ".product-hero__editorial-content",
    ".section--hero p",
]

JSON_LD_APP_TYPES = ("SoftwareApplication", "MobileApplication")
PROMO_TEXT_LIMIT = 170


def _first_text(soup: BeautifulSoup, selectors: list[str]) -> Optional[str]:
    for selector in selectors:
        element = soup.select_one(selector)
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if text:
            return text
    return None


def _json_ld(soup: BeautifulSoup) -> Optional[dict]:
    """subtitle/promotional_text from the first app-typed JSON-LD block."""
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and data.get("@type") in JSON_LD_APP_TYPES:
            description = data.get("description")
            return {
                "subtitle": data.get("alternativeHeadline"),
                "promotional_text": description[:PROMO_TEXT_LIMIT] if description else None,
            }
    return None


def parse_page(html: str) -> AppMetadata:
    """Pull subtitle and promotional text out of an App Store product page."""
    soup = BeautifulSoup(html, "html.parser")

    subtitle = _first_text(soup, SUBTITLE_SELECTORS)
    promotional_text = _first_text(soup, PROMO_TEXT_SELECTORS)

    if subtitle is None or promotional_text is None:
        fallback = _json_ld(soup)
        if fallback:
            subtitle = subtitle or fallback["subtitle"]
            promotional_text = promotional_text or fallback["promotional_text"]

    subtitle = subtitle.strip() if subtitle else None
    promotional_text = promotional_text.strip() if promotional_text else None
    return AppMetadata(
        subtitle=subtitle,
        promotional_text=promotional_text,
        success=bool(subtitle or promotional_text),
    )


class MetadataScraper:
    """
    Scrapes product pages one at a time, at most one request every
    `scraper_delay_seconds`, backing off exponentially (2s, 4s, 8s) on 429s
    and timeouts.
    """

    def __init__(self, settings: Settings, country: str = "us",
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings
        self.country = country
        self.session = session or requests.Session()
        self.sleep = sleep
        self.clock = clock
        self._last_request_at: Optional[float] = None

    def build_url(self, app_id: str) -> str:
        return f"{BASE_URL}/{self.country}/app/id{app_id}"

    def _rate_limit(self) -> None:
        delay = self.settings.cache.scraper_delay_seconds
        if self._last_request_at is not None:
            elapsed = self.clock() - self._last_request_at
            if elapsed < delay:
                self.sleep(delay - elapsed)
        self._last_request_at = self.clock()

    def _fetch_with_retry(self, url: str) -> requests.Response:
        max_retries = self.settings.cache.scraper_max_retries
        retries = 0
        while True:
            try:
                self._rate_limit()
                response = self.session.get(url, headers=BROWSER_HEADERS,
                                            timeout=self.settings.http_timeout)
                if response.status_code == 429:
                    raise RateLimitError("Rate limited by Apple")
                return response
            except (RateLimitError, requests.Timeout) as e:
                retries += 1
                if retries > max_retries:
                    raise
                backoff = 2 ** retries
                if self.settings.debug:
                    print(f"   Retrying in {backoff}s after: {e}")
                self.sleep(backoff)

    def fetch_metadata(self, app_id: str) -> AppMetadata:
        url = self.build_url(app_id)
        try:
            response = self._fetch_with_retry(url)
        except (RateLimitError, requests.RequestException) as e:
            print(f"Warning: Failed to fetch metadata for app {app_id}: {e}")
            return AppMetadata(success=False, error=str(e))

        if not response.ok:
            if self.settings.debug:
                print(f"Warning: HTTP {response.status_code} for app {app_id}")
            return AppMetadata(success=False, error=f"HTTP {response.status_code}")

        metadata = parse_page(response.text)
        if self.settings.debug:
            print(f"DEBUG: App {app_id} - subtitle: {(metadata.subtitle or '')[:30]}, "
                  f"promo: {(metadata.promotional_text or '')[:30]}")
        return metadata

    def fetch_all_metadata(self, app_ids: list[str]) -> dict[str, AppMetadata]:
        results = {}
        for index, app_id in enumerate(app_ids):
            if self.settings.debug:
                print(f"   Fetching metadata {index + 1}/{len(app_ids)}...")
            results[app_id] = self.fetch_metadata(app_id)
        return results
