"""
ASO analysis — how your listing compares to the apps ranking for a keyword.

Inputs are the ranked search results (minus your own app) plus the subtitle
and promotional text scraped from each App Store page. The LLM answers with
a JSON block of recommendations that is stored as-is.

A stored analysis is reused for a week, unless the number of competitors
moved by more than 20% since it was made.
"""

from datetime import datetime
from typing import Optional

from appintel.aggregator import ReviewAggregator
from appintel.analyzer import truncate
from appintel.assembler import parse_json_block
from appintel.catalog import CatalogFetcher
from appintel.config import Settings, require_api_key
from appintel.database import get_latest_aso_analysis, insert_aso_analysis, get_app, upsert_app
from appintel.errors import AnalysisFailedError, NoAppsFoundError
from appintel.freshness import aso_analysis_is_stale
from appintel.llm_client import LLMClient
from appintel.metadata import MetadataScraper
from appintel.models import App, AppMetadata, AsoAnalysis

ASO_SYSTEM_PROMPT = (
    "You are an expert App Store Optimization (ASO) consultant with deep knowledge of keyword "
    "optimization, competitive positioning, and conversion rate optimization for mobile apps."
)


def build_aso_prompt(user_app: dict, competitors: list[dict], keyword: str) -> str:
    competitors_text = "\n".join(
        f"{i + 1}. {c['name']} (Rank #{c.get('rank')})\n"
        f"   Subtitle: {c.get('subtitle') or 'Not available'}\n"
        f"   Rating: {c.get('rating')}/5 ({c.get('rating_count')} reviews)\n"
        f"   Description (first 300 chars): {truncate(c.get('description'), 300)}"
        for i, c in enumerate(competitors)
    )
    return f"""Analyze the following app metadata and provide ASO recommendations to improve
discoverability and conversion for the keyword "{keyword}".

YOUR APP TO OPTIMIZE:
- Name: {user_app['name']}
- Current Subtitle: {user_app.get('subtitle') or 'None set'}
- Current Promotional Text: {user_app.get('promotional_text') or 'None set'}
- Rating: {user_app.get('rating')}/5 ({user_app.get('rating_count')} reviews)
- Description (first 500 chars): {truncate(user_app.get('description'), 500)}

COMPETITOR APPS (ranked by App Store search for "{keyword}"):
{competitors_text}

Provide specific, actionable ASO recommendations. Format as valid JSON:
{{
  "name_recommendations": {{"current_analysis": "...", "suggestions": ["..."], "keywords_to_include": ["..."]}},
  "subtitle_recommendations": {{"current_analysis": "...", "suggested_subtitles": ["30-char option"],
                                "competitor_patterns": "..."}},
  "promotional_text_recommendations": {{"current_analysis": "...", "suggested_text": "170-char text",
                                        "key_themes": ["..."]}},
  "keyword_recommendations": {{"primary_keywords": ["..."], "secondary_keywords": ["..."],
                               "competitor_keywords": ["..."], "gap_keywords": ["..."]}},
  "description_recommendations": {{"current_analysis": "...", "suggested_opening": "...",
                                   "key_features_to_highlight": ["..."], "keyword_placement_tips": "..."}},
  "competitive_summary": {{"your_current_position": "...",
                           "top_3_priorities": ["Change 1", "Change 2", "Change 3"],
                           "unique_angles": ["..."]}}
}}

IMPORTANT:
- Subtitles MUST be under 30 characters
- Promotional text MUST be under 170 characters
- Base suggestions on gaps you see vs competitors"""


def _listing(app: App, metadata: Optional[AppMetadata]) -> dict:
    return {
        "app_id": app.app_id,
        "name": app.name,
        "rank": app.search_rank,
        "rating": app.rating,
        "rating_count": app.rating_count,
        "description": app.description,
        "subtitle": metadata.subtitle if metadata else None,
        "promotional_text": metadata.promotional_text if metadata else None,
    }


def _resolve_user_app(settings: Settings, db_path: str, fetcher: CatalogFetcher,
                      app_id: str, keyword: str, ranked: list[App], now: datetime) -> App:
    """The user's app as a stored row under this keyword (needed as the analysis owner)."""
    for app in ranked:
        if app.app_id == app_id:
            return app
    existing = get_app(db_path, app_id, keyword)
    if existing:
        return existing

    details = fetcher.fetch_app_details(app_id)
    if details is None or not details.app_name:
        raise NoAppsFoundError(f"App {app_id} not found in the App Store")
    # Not ranked for this keyword, so stored without a search rank
    app = App(app_id=app_id, keyword=keyword, name=details.app_name, bundle_id=details.bundle_id,
              version=details.version, rating=details.rating, rating_count=details.rating_count,
              description=details.description, icon_url=details.artwork_url)
    return upsert_app(db_path, app, now, now - settings.cache.app_list_ttl)


def run_aso_analysis(settings: Settings, app_id: str, keyword: str, limit: int = 10,
                     country: str = "us", force: bool = False, model: Optional[str] = None,
                     llm: Optional[LLMClient] = None,
                     fetcher: Optional[CatalogFetcher] = None,
                     scraper: Optional[MetadataScraper] = None,
                     aggregator: Optional[ReviewAggregator] = None,
                     now: Optional[datetime] = None) -> tuple[AsoAnalysis, bool]:
    """
    ASO recommendations for `app_id` against the top apps for `keyword`.
    Returns (analysis, cached).
    """
    require_api_key(settings)
    now = now or datetime.now()
    llm = llm or LLMClient(settings)
    fetcher = fetcher or CatalogFetcher(settings)
    scraper = scraper or MetadataScraper(settings, country=country)
    aggregator = aggregator or ReviewAggregator(settings, fetcher=fetcher)
    db_path = aggregator.db_path

    print("=" * 60)
    print(f"ASO: app {app_id} for '{keyword}'")
    print("=" * 60)

    ranked, _ = aggregator.find_apps(keyword, limit=limit, country=country, force=force, now=now)
    user_app = _resolve_user_app(settings, db_path, fetcher, app_id, keyword, ranked, now)
    competitors = [a for a in ranked if a.app_id != app_id]
    if not competitors:
        raise NoAppsFoundError(f"No competitor apps found for '{keyword}'")
    print(f"Your app: {user_app.name} | {len(competitors)} competitors")

    stored = get_latest_aso_analysis(db_path, user_app.id, keyword)
    if not force and not aso_analysis_is_stale(stored, now, settings.cache, len(competitors)):
        print(f"Using cached ASO analysis from {stored.created_at:%Y-%m-%d %H:%M}")
        return stored, True

    print("Scraping subtitles and promotional text...")
    metadata = scraper.fetch_all_metadata([user_app.app_id] + [a.app_id for a in competitors])
    scraped = sum(1 for m in metadata.values() if m.success)
    print(f"  Got metadata for {scraped}/{len(metadata)} apps")

    prompt = build_aso_prompt(
        _listing(user_app, metadata.get(user_app.app_id)),
        [_listing(a, metadata.get(a.app_id)) for a in competitors],
        keyword,
    )
    print("Asking the model for recommendations...")
    result = llm.complete(ASO_SYSTEM_PROMPT, prompt, model=model or settings.aso_model, temperature=0.7)
    if not result.ok:
        raise AnalysisFailedError(result.error)

    recommendations = parse_json_block(result.text)
    if recommendations is None:
        print("  Warning: could not parse recommendations JSON; raw text kept")

    record = insert_aso_analysis(db_path, AsoAnalysis(
        app_ref=user_app.id,
        keyword=keyword,
        competitor_count=len(competitors),
        competitor_app_ids=[a.app_id for a in competitors],
        llm_analysis=result.text,
        recommendations=recommendations or {},
        llm_model=result.model,
    ), now)
    return record, False
