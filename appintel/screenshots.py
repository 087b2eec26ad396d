"""
Screenshot intelligence — what competitors show on their App Store pages.

Screenshots go to a vision-capable model as base64 data URLs inside one
multimodal user message. Analyses are cached per app for a week.
"""

import base64
import mimetypes
import os
import time
from datetime import datetime
from typing import Callable, Optional

import requests

from appintel.aggregator import ReviewAggregator
from appintel.catalog import CatalogFetcher
from appintel.config import Settings, require_api_key
from appintel.database import get_latest_screenshot_analysis, insert_screenshot_analysis
from appintel.errors import AnalysisFailedError, InvalidPathError, NoAppsFoundError
from appintel.freshness import screenshot_analysis_is_stale
from appintel.llm_client import LLMClient, LLMResult
from appintel.models import App, ScreenshotAnalysis

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")

SCREENSHOT_SYSTEM_PROMPT = (
    "You are an expert UI/UX analyst specializing in mobile app design and App Store optimization."
)

ANALYZE_INSTRUCTIONS = """You are analyzing App Store screenshots for the app '{app_name}'. Please provide:

1. A description of each screenshot in order (what is shown, key features highlighted)
2. An overall analysis of:
   - Keywords and text used across screenshots
   - Visual style and design patterns
   - Content themes and messaging
   - Target audience insights based on the screenshots

Be specific and detailed in your analysis."""

COMPARE_INSTRUCTIONS = """Compare two sets of App Store screenshots: the first set is from
'{competitor_name}', the second set is mine.

1. Summarize the messaging and visual approach of each set
2. Where is the competitor's set stronger? Where is mine stronger?
3. Give concrete, prioritized changes I should make to my screenshots

Be specific: refer to screenshots by their labels."""


def to_data_url(data: bytes, content_type: str = "image/png") -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def build_image_content(instructions: str, labelled_images: list[tuple[str, str]]) -> list[dict]:
    """One text part with the instructions, then a label + image part per screenshot."""
    parts = [{"type": "text", "text": instructions}]
    for label, data_url in labelled_images:
        parts.append({"type": "text", "text": f"\n{label}:"})
        parts.append({"type": "image_url", "image_url": {"url": data_url}})
    return parts


# ============================================================
# STORE SCREENSHOTS (per app, cached)
# ============================================================

def analyze_app_screenshots(llm: LLMClient, fetcher: CatalogFetcher, app: App,
                            model: Optional[str] = None) -> Optional[tuple[LLMResult, list]]:
    """
    Download one app's screenshots and ask the model about them.
    Returns (result, downloaded_urls), or None when there is nothing to
    analyze. URLs that failed to download are left out.
    """
    details = fetcher.fetch_app_details(app.app_id)
    if details is None:
        print("    Failed to fetch app details")
        return None
    if not details.screenshot_urls:
        print("    No screenshots found for this app")
        return None

    print(f"    Found {len(details.screenshot_urls)} screenshots")
    images, urls = [], []
    for index, url in enumerate(details.screenshot_urls):
        downloaded = fetcher.download_screenshot(url)
        if downloaded is None:
            continue
        data, content_type = downloaded
        images.append((f"Screenshot {index + 1}", to_data_url(data, content_type)))
        urls.append(url)

    if not images:
        print("    Could not download any screenshots")
        return None

    content = build_image_content(ANALYZE_INSTRUCTIONS.format(app_name=app.name), images)
    result = llm.complete(SCREENSHOT_SYSTEM_PROMPT, content, model=model, temperature=0.7)
    return result, urls


def run_screenshot_analysis(settings: Settings, keyword: str, limit: int = 10,
                            country: str = "us", force: bool = False,
                            model: Optional[str] = None,
                            llm: Optional[LLMClient] = None,
                            fetcher: Optional[CatalogFetcher] = None,
                            aggregator: Optional[ReviewAggregator] = None,
                            now: Optional[datetime] = None,
                            sleep: Callable[[float], None] = time.sleep) -> list[tuple[App, ScreenshotAnalysis, bool]]:
    """
    Screenshot analyses for the top apps of a keyword.

    Returns (app, analysis, cached) for every app that has one. Apps whose
    details, downloads or LLM call fail are reported and skipped.
    """
    require_api_key(settings)
    now = now or datetime.now()
    llm = llm or LLMClient(settings)
    fetcher = fetcher or CatalogFetcher(settings)
    aggregator = aggregator or ReviewAggregator(settings, fetcher=fetcher)

    print("=" * 60)
    print(f"SCREENSHOTS: {keyword}")
    print("=" * 60)

    apps, _ = aggregator.find_apps(keyword, limit=limit, country=country, now=now)
    if not apps:
        raise NoAppsFoundError(f"No apps found for '{keyword}'")

    results = []
    for index, app in enumerate(apps):
        print(f"\n[{index + 1}/{len(apps)}] {app.name} ({app.app_id})")

        existing = get_latest_screenshot_analysis(aggregator.db_path, app.id)
        latest_at = existing.created_at if existing else None
        if not force and not screenshot_analysis_is_stale(latest_at, now, settings.cache.screenshot_ttl):
            print(f"    Using cached analysis from {latest_at:%Y-%m-%d %H:%M}")
            results.append((app, existing, True))
            continue

        try:
            outcome = analyze_app_screenshots(llm, fetcher, app, model=model or settings.model)
        except requests.RequestException as e:
            print(f"    Error: {e}")
            outcome = None

        if outcome is not None:
            result, urls = outcome
            if result.ok and result.text:
                record = insert_screenshot_analysis(aggregator.db_path, ScreenshotAnalysis(
                    app_ref=app.id, screenshot_count=len(urls), analysis=result.text,
                    screenshot_urls=urls, llm_model=result.model,
                ), now)
                print("    Analysis saved")
                results.append((app, record, False))
            else:
                print(f"    Failed to analyze screenshots: {result.error or 'empty response'}")

        if index < len(apps) - 1:
            sleep(settings.cache.screenshot_app_delay_seconds)

    return results


# ============================================================
# LOCAL COMPARISON (two folders of images)
# ============================================================

def load_local_screenshots(directory: str) -> list[str]:
    """Image files in a directory, sorted by name. Invalid or empty dirs raise."""
    if not os.path.isdir(directory):
        raise InvalidPathError(f"Not a directory: {directory}")
    files = sorted(
        os.path.join(directory, name) for name in os.listdir(directory)
        if name.lower().endswith(IMAGE_EXTENSIONS)
    )
    if not files:
        raise InvalidPathError(
            f"No image files found in {directory} (supported: {', '.join(IMAGE_EXTENSIONS)})"
        )
    return files


def _file_data_url(path: str) -> str:
    content_type = mimetypes.guess_type(path)[0] or "image/png"
    with open(path, "rb") as f:
        return to_data_url(f.read(), content_type)


def compare_local_screenshots(settings: Settings, competitor_dir: str, your_dir: str,
                              competitor_name: str = "Competitor",
                              model: Optional[str] = None,
                              llm: Optional[LLMClient] = None) -> str:
    """Side-by-side critique of a competitor's screenshots and yours."""
    competitor_files = load_local_screenshots(competitor_dir)
    your_files = load_local_screenshots(your_dir)
    require_api_key(settings)
    llm = llm or LLMClient(settings)

    print(f"Comparing {len(competitor_files)} {competitor_name} screenshots "
          f"with {len(your_files)} of yours...")
    images = [(f"{competitor_name} screenshot {i + 1}", _file_data_url(path))
              for i, path in enumerate(competitor_files)]
    images += [(f"Your screenshot {i + 1}", _file_data_url(path))
               for i, path in enumerate(your_files)]

    content = build_image_content(COMPARE_INSTRUCTIONS.format(competitor_name=competitor_name), images)
    result = llm.complete(SCREENSHOT_SYSTEM_PROMPT, content, model=model or settings.model)
    if not result.ok:
        raise AnalysisFailedError(result.error)
    return result.text
