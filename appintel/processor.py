"""
Analysis pipeline — keyword in, stored analysis out.

Steps:
    1. Aggregate apps and reviews (cache-aware, see aggregator.py)
    2. Reuse the latest stored analysis if it's still fresh
    3. Otherwise: persona phrases (regex, no LLM), then the LLM calls:
       main analysis, persona grouping, insider language, keyword gaps
    4. Assemble everything into one ComprehensiveAnalysis and store it

The --low-only mode skips step 3's enrichment and produces a SimpleAnalysis
from 1-2 star reviews alone.
"""

from datetime import datetime
from typing import Optional

from appintel.aggregator import ReviewAggregator
from appintel.analyzer import (
    analyze_all_reviews,
    analyze_reviews,
    normalize_personas,
    extract_insider_language,
    extract_keyword_opportunities,
)
from appintel.assembler import assemble, assemble_simple, reload
from appintel.config import Settings, require_api_key
from appintel.database import get_latest_analysis, insert_analysis
from appintel.errors import AnalysisFailedError, NoAppsFoundError
from appintel.freshness import analysis_is_stale
from appintel.llm_client import LLMClient
from appintel.metadata import MetadataScraper
from appintel.models import AggregationResult, KIND_COMPREHENSIVE, KIND_SIMPLE
from appintel.personas import extract_personas


def competitor_metadata(aggregation: AggregationResult,
                        scraper: Optional[MetadataScraper] = None) -> list[dict]:
    """
    Listing data for keyword research. Subtitles come from the web page,
    so they're only filled in when a scraper is given.
    """
    scraped = scraper.fetch_all_metadata([a.app_id for a in aggregation.apps]) if scraper else {}
    apps = []
    for app in aggregation.apps:
        metadata = scraped.get(app.app_id)
        apps.append({
            "app_id": app.app_id,
            "name": app.name,
            "rank": app.search_rank,
            "rating": app.rating,
            "rating_count": app.rating_count,
            "subtitle": metadata.subtitle if metadata else None,
            "description": app.description,
        })
    return apps


def _report_empty(aggregation: AggregationResult) -> None:
    if not aggregation.apps:
        raise NoAppsFoundError(f"No apps found for '{aggregation.keyword}'")
    raise NoAppsFoundError(f"No 1-2 or 4-5 star reviews found for '{aggregation.keyword}'")


def run_analysis(settings: Settings, keyword: str, limit: int = 10, country: str = "us",
                 model: Optional[str] = None, force: bool = False, low_only: bool = False,
                 llm: Optional[LLMClient] = None,
                 aggregator: Optional[ReviewAggregator] = None,
                 scraper: Optional[MetadataScraper] = None,
                 now: Optional[datetime] = None,
                 progress_callback=None) -> dict:
    """
    Main analysis entry point.

    Returns {"analysis", "aggregation", "cached"}. Raises NoAppsFoundError
    when there is nothing to analyze and AnalysisFailedError when the main
    LLM call fails. Enrichment failures only leave their fields empty.

    Args:
        scraper: Used for competitor subtitles in keyword research. When None
                 a MetadataScraper is built; pass False to skip scraping.
        progress_callback: optional function(current_step, total_steps, message)
    """
    require_api_key(settings)
    now = now or datetime.now()
    model = model or settings.model
    llm = llm or LLMClient(settings)
    aggregator = aggregator or ReviewAggregator(settings)
    policy = settings.cache
    kind = KIND_SIMPLE if low_only else KIND_COMPREHENSIVE
    total_steps = 3 if low_only else 6

    def progress(step, message):
        print(f"\n[{step}/{total_steps}] {message}")
        if progress_callback:
            progress_callback(step, total_steps, message)

    print("=" * 60)
    print(f"ANALYSIS: {keyword}" + (" (low ratings only)" if low_only else ""))
    print("=" * 60)

    # ---- Step 1: apps + reviews ----
    progress(1, "Collecting apps and reviews")
    aggregation = aggregator.aggregate(keyword, limit=limit, country=country, force=force, now=now)
    low_count = aggregation.total_low_reviews
    high_count = 0 if low_only else aggregation.total_high_reviews
    if not aggregation.apps or low_count + high_count == 0:
        _report_empty(aggregation)

    # ---- Step 2: cache ----
    progress(2, "Checking for a recent analysis")
    stored = get_latest_analysis(aggregator.db_path, keyword, kind=kind)
    if not force and not analysis_is_stale(stored, now, policy, low_count, high_count, kind=kind):
        print(f"  Reusing analysis #{stored.id} from {stored.created_at:%Y-%m-%d %H:%M}")
        return {"analysis": reload(stored), "aggregation": aggregation, "cached": True}

    # ---- Simple mode: one LLM call ----
    if low_only:
        progress(3, f"Analyzing {low_count} low-rating reviews")
        result = analyze_reviews(llm, aggregation.low_reviews, keyword, model=model,
                                 limit=policy.simple_prompt_reviews)
        if not result.ok:
            raise AnalysisFailedError(result.error)
        analysis = assemble_simple(result.text, keyword=keyword, total_reviews=low_count,
                                   model=result.model)
        insert_analysis(aggregator.db_path, analysis, now)
        print(f"  Stored analysis #{analysis.id}")
        return {"analysis": analysis, "aggregation": aggregation, "cached": False}

    # ---- Step 3: main analysis ----
    progress(3, f"Analyzing {low_count} low and {high_count} high-rating reviews")
    result = analyze_all_reviews(llm, aggregation.low_reviews, aggregation.high_reviews, keyword,
                                 model=model, per_band=policy.prompt_reviews_per_band)
    if not result.ok:
        raise AnalysisFailedError(result.error)

    # ---- Step 4: personas (regex first, LLM groups the top phrases) ----
    progress(4, "Extracting personas")
    extraction = extract_personas(aggregation.all_reviews)
    print(f"  {len(extraction.phrases)} persona phrases in {extraction.reviews_with_matches} reviews")
    personas = normalize_personas(llm, extraction.top(policy.persona_prefix), keyword, model=model)

    # ---- Step 5: insider language + keyword gaps ----
    progress(5, "Extracting insider language and keyword opportunities")
    insider_language = extract_insider_language(llm, aggregation.all_reviews, keyword, model=model)
    if scraper is None:
        scraper = MetadataScraper(settings, country=country)
    apps_metadata = competitor_metadata(aggregation, scraper or None)
    keyword_opportunities = extract_keyword_opportunities(llm, apps_metadata, keyword,
                                                          model=settings.aso_model)

    # ---- Step 6: assemble + store ----
    progress(6, "Saving analysis")
    analysis = assemble(
        result.text,
        keyword=keyword,
        low_count=low_count,
        high_count=high_count,
        personas=personas,
        raw_persona_extractions=[p.to_dict() for p in extraction.phrases],
        insider_language=insider_language,
        keyword_opportunities=keyword_opportunities,
        model=result.model,
    )
    insert_analysis(aggregator.db_path, analysis, now)
    print(f"  Stored analysis #{analysis.id}")
    return {"analysis": analysis, "aggregation": aggregation, "cached": False}
