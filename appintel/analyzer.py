"""
LLM analyses — what we ask the model, and how we read the answers.

Each task has a constant system prompt (the "job description") and a user
prompt built from the review data. Review text is truncated and the number of
reviews per prompt is capped.

Comprehensive and simple analyses return the raw LLMResult; the assembler
turns the text into structure. The smaller enrichment tasks (persona grouping,
insider language, keyword opportunities) parse their own JSON and fall back to
empty values.
"""

import json
from typing import Optional

from appintel.assembler import parse_json_block
from appintel.llm_client import LLMClient, LLMResult
from appintel.models import PersonaPhrase, Review

REVIEW_TEXT_LIMIT = 200

COMPREHENSIVE_SYSTEM_PROMPT = (
    "You are an expert product analyst specializing in mobile app user experience, "
    "market opportunities, and competitive positioning."
)

SIMPLE_SYSTEM_PROMPT = (
    "You are an expert product analyst specializing in mobile app user experience "
    "and market opportunities."
)

PERSONA_SYSTEM_PROMPT = (
    "You are a user researcher who groups self-descriptions from app reviews into "
    "clear, distinct user segments."
)

INSIDER_LANGUAGE_SYSTEM_PROMPT = (
    "You are a community linguist who spots the slang, shorthand and in-group phrasing "
    "that users of an app category share."
)

KEYWORD_SYSTEM_PROMPT = (
    "You are an expert App Store Optimization (ASO) keyword researcher with deep knowledge "
    "of Apple's App Store search algorithm, keyword weighting, and competitive keyword intelligence."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a concise business analyst who explains complex market research in simple, "
    "direct language."
)


def truncate(text: Optional[str], length: int) -> str:
    if not text:
        return ""
    return text[:length] + "..." if len(text) > length else text


def format_review(review: Review) -> str:
    return (f"App: {review.app_name or review.app_id or 'Unknown'}\n"
            f"Rating: {review.rating}/5\n"
            f"Title: {review.title or ''}\n"
            f"Review: {truncate(review.content, REVIEW_TEXT_LIMIT)}\n---")


def _format_reviews(reviews: list[Review], limit: int) -> str:
    return "\n\n".join(format_review(r) for r in reviews[:limit])


# ============================================================
# COMPREHENSIVE ANALYSIS (both bands)
# ============================================================

def build_comprehensive_prompt(low_reviews: list[Review], high_reviews: list[Review],
                               keyword: str, per_band: int = 30) -> str:
    return f"""Analyze the following reviews from the top apps for the keyword "{keyword}".

You have two sets of reviews:
1. LOW-RATING REVIEWS (1-2 stars): Dissatisfied users highlighting problems and missing features
2. HIGH-RATING REVIEWS (4-5 stars): Satisfied users praising features they love

Your task is to:
1. From the HIGH-RATING reviews, identify "table stakes" features: the core features users expect
   and praise across multiple apps.
2. From the LOW-RATING reviews, identify pain points and opportunities for differentiation.
3. Synthesize both into the top 3 table stakes and the top 3 differentiators.

LOW-RATING REVIEWS (1-2 stars):

{_format_reviews(low_reviews, per_band)}

HIGH-RATING REVIEWS (4-5 stars):

{_format_reviews(high_reviews, per_band)}

Format your response as valid JSON with this structure:
{{
  "summary": "Brief executive summary of the competitive landscape",
  "table_stakes": [{{"feature": "...", "description": "...", "evidence": "..."}}],
  "pain_points": [{{"category": "...", "description": "...", "frequency": "..."}}],
  "differentiators": [{{"opportunity": "...", "description": "...", "rationale": "..."}}],
  "competitive_summary": {{
    "top_3_table_stakes": ["Feature 1", "Feature 2", "Feature 3"],
    "top_3_differentiators": ["Differentiator 1", "Differentiator 2", "Differentiator 3"]
  }}
}}"""


def analyze_all_reviews(llm: LLMClient, low_reviews: list[Review], high_reviews: list[Review],
                        keyword: str, model: Optional[str] = None, per_band: int = 30) -> LLMResult:
    if not low_reviews and not high_reviews:
        return LLMResult(model=model, error="No reviews to analyze")
    prompt = build_comprehensive_prompt(low_reviews, high_reviews, keyword, per_band)
    return llm.complete(COMPREHENSIVE_SYSTEM_PROMPT, prompt, model=model, temperature=0.7)


# ============================================================
# SIMPLE ANALYSIS (low band only)
# ============================================================

def build_simple_prompt(reviews: list[Review], keyword: str, limit: int = 50) -> str:
    return f"""Analyze the following 1-2 star reviews from the top apps for the keyword "{keyword}".

These are negative reviews from dissatisfied users. Your task is to:
1. Identify common patterns and pain points across these reviews
2. Categorize the main complaints (UI/UX, performance, missing features, pricing...)
3. Suggest specific opportunities for a new app that addresses these shortcomings
4. Prioritize the opportunities by potential impact and feasibility

Reviews to analyze:

{_format_reviews(reviews, limit)}

Format your response as valid JSON with this structure:
{{
  "summary": "Brief executive summary",
  "patterns": [{{"category": "...", "description": "...", "frequency": "...", "examples": ["..."]}}],
  "opportunities": [{{"title": "...", "description": "...", "priority": "high/medium/low"}}]
}}"""


def analyze_reviews(llm: LLMClient, reviews: list[Review], keyword: str,
                    model: Optional[str] = None, limit: int = 50) -> LLMResult:
    if not reviews:
        return LLMResult(model=model, error="No reviews to analyze")
    prompt = build_simple_prompt(reviews, keyword, limit)
    return llm.complete(SIMPLE_SYSTEM_PROMPT, prompt, model=model, temperature=0.7)


# ============================================================
# ENRICHMENT: personas, insider language, keywords
# ============================================================

def normalize_personas(llm: LLMClient, phrases: list[PersonaPhrase], keyword: str,
                       model: Optional[str] = None) -> list:
    """
    Group raw persona phrases into named segments. The caller decides how many
    phrases to send; we send them in the order given (most frequent first).
    """
    if not phrases:
        return []

    lines = "\n".join(f'- "{p.phrase}" ({p.count} mentions, {len(p.review_ids)} reviews)'
                      for p in phrases)
    prompt = f"""Reviewers of "{keyword}" apps described themselves with these phrases:

{lines}

Group them into 3-8 user segments. Merge synonyms ("mom", "mother of two"), drop phrases
that are not about who the user is.

Respond with valid JSON:
{{
  "personas": [
    {{"name": "Segment name", "description": "Who they are and what they need",
      "phrases": ["raw phrase", "..."], "mention_count": 0}}
  ]
}}"""
    result = llm.complete(PERSONA_SYSTEM_PROMPT, prompt, model=model, temperature=0.3)
    if not result.ok:
        print(f"  Persona grouping failed: {result.error}")
        return []
    parsed = parse_json_block(result.text) or {}
    personas = parsed.get("personas")
    return personas if isinstance(personas, list) else []


def extract_insider_language(llm: LLMClient, reviews: list[Review], keyword: str,
                             model: Optional[str] = None, limit: int = 60) -> dict:
    if not reviews:
        return {}

    prompt = f"""Here are reviews of "{keyword}" apps:

{_format_reviews(reviews, limit)}

Find recurring slang, abbreviations, jargon and in-group phrasing users share. Ignore generic
app-review vocabulary ("crashes", "love it").

Respond with valid JSON:
{{
  "terms": [{{"term": "...", "meaning": "...", "example": "quote", "frequency": "..."}}],
  "community_maturity": "low/medium/high",
  "notes": "What this vocabulary says about the community"
}}"""
    result = llm.complete(INSIDER_LANGUAGE_SYSTEM_PROMPT, prompt, model=model, temperature=0.3)
    if not result.ok:
        print(f"  Insider language extraction failed: {result.error}")
        return {}
    parsed = parse_json_block(result.text) or {}
    return {
        "terms": parsed.get("terms") if isinstance(parsed.get("terms"), list) else [],
        "community_maturity": parsed.get("community_maturity"),
        "notes": parsed.get("notes"),
    }


KEYWORD_LIST_FIELDS = ("high_frequency_keywords", "title_keywords", "subtitle_keywords",
                       "description_keywords", "keyword_gaps")


def build_keyword_prompt(apps_metadata: list[dict], keyword: str) -> str:
    apps_text = "\n".join(
        f"{i + 1}. {app.get('name')} (Rank #{app.get('rank')})\n"
        f"   Subtitle: {app.get('subtitle') or 'Not available'}\n"
        f"   Rating: {app.get('rating')}/5 ({app.get('rating_count')} reviews)\n"
        f"   Description (first 500 chars): {truncate(app.get('description'), 500)}"
        for i, app in enumerate(apps_metadata)
    )
    return f"""Analyze the following competitor app metadata from the App Store search results
for "{keyword}" and extract keyword intelligence.

COMPETITOR APPS (ranked by App Store search):
{apps_text}

Respond with valid JSON:
{{
  "high_frequency_keywords": [{{"keyword": "term", "competitor_count": 0, "found_in": ["App"]}}],
  "title_keywords": [{{"app_name": "App", "keywords": ["..."]}}],
  "subtitle_keywords": [{{"app_name": "App", "subtitle": "...", "keywords": ["..."]}}],
  "description_keywords": [{{"keyword": "term", "competitor_count": 0, "context": "..."}}],
  "keyword_gaps": [{{"keyword": "term", "used_by_count": 1, "used_by": ["App"], "opportunity_note": "..."}}],
  "suggested_keyword_field": {{"keywords": "comma,separated", "character_count": 0, "rationale": "..."}}
}}

IMPORTANT: only use keywords found in the metadata; the suggested keyword field MUST be
100 characters or fewer."""


def extract_keyword_opportunities(llm: LLMClient, apps_metadata: list[dict], keyword: str,
                                  model: Optional[str] = None) -> dict:
    """Keyword intelligence from competitor listings; every field defaults to empty."""
    if not apps_metadata:
        return {}
    result = llm.complete(KEYWORD_SYSTEM_PROMPT, build_keyword_prompt(apps_metadata, keyword),
                          model=model, temperature=0.5)
    if not result.ok:
        print(f"  Keyword extraction failed: {result.error}")
        return {}
    parsed = parse_json_block(result.text) or {}
    opportunities = {name: parsed.get(name) if isinstance(parsed.get(name), list) else []
                     for name in KEYWORD_LIST_FIELDS}
    field = parsed.get("suggested_keyword_field")
    opportunities["suggested_keyword_field"] = field if isinstance(field, dict) else {}
    opportunities["app_count"] = len(apps_metadata)
    return opportunities


def generate_simple_summary(llm: LLMClient, research_data, simple_prompt: str,
                            model: Optional[str] = None) -> LLMResult:
    """Plain-language summary of research data (any JSON-serializable value or text)."""
    if not research_data:
        return LLMResult(model=model, error="No research data provided")
    if not isinstance(research_data, str):
        research_data = json.dumps(research_data, indent=2, default=str)

    result = llm.complete(SUMMARY_SYSTEM_PROMPT,
                          f"{simple_prompt}\n\nRESEARCH DATA:\n{research_data}",
                          model=model, temperature=0.5)
    if result.ok and result.text:
        result.text = result.text.strip()
    return result
