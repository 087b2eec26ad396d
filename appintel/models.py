"""
Data models — the structure of our data.

Every component speaks in these shapes: the catalog fetcher produces App and
Review objects, the database stores and returns them, the persona extractor
and the LLM prompts read the same Review type.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

LOW_RATINGS = (1, 2)
HIGH_RATINGS = (4, 5)
BAND_LOW = "low"
BAND_HIGH = "high"
BANDS = {BAND_LOW: LOW_RATINGS, BAND_HIGH: HIGH_RATINGS}

KIND_SIMPLE = "simple"
KIND_COMPREHENSIVE = "comprehensive"
SIMPLE_SCHEMA_VERSION = 1
COMPREHENSIVE_SCHEMA_VERSION = 2


def rating_band(rating: Optional[int]) -> Optional[str]:
    """Map a star rating to "low" / "high". Three stars belong to neither band."""
    for band, ratings in BANDS.items():
        if rating in ratings:
            return band
    return None


@dataclass
class App:
    """One App Store listing, as found under one search keyword."""
    app_id: str                     # iTunes trackId
    keyword: str
    name: str
    developer: Optional[str] = None
    bundle_id: Optional[str] = None
    version: Optional[str] = None
    rating: Optional[float] = None  # averageUserRating
    rating_count: Optional[int] = None
    search_rank: Optional[int] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = None
    id: Optional[int] = None        # database row id
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    reviews_fetched_at: Optional[datetime] = None


@dataclass
class Review:
    """A single customer review. review_id is unique across all apps."""
    review_id: str
    rating: int                     # 1 to 5 stars
    title: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    version: Optional[str] = None
    published_at: Optional[datetime] = None
    app_id: Optional[str] = None    # iTunes trackId of the app it was fetched for
    app_name: Optional[str] = None
    app_ref: Optional[int] = None   # database row id of the owning App
    created_at: Optional[datetime] = None

    @property
    def band(self) -> Optional[str]:
        return rating_band(self.rating)


@dataclass
class PersonaPhrase:
    """A self-identifying phrase ("busy mom") and which reviews used it."""
    phrase: str
    count: int = 0
    review_ids: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"phrase": self.phrase, "count": self.count, "review_ids": list(self.review_ids)}


@dataclass
class PersonaExtraction:
    phrases: list = field(default_factory=list)   # list[PersonaPhrase], most frequent first
    reviews_with_matches: int = 0

    def top(self, n: int) -> list:
        return self.phrases[:n]


@dataclass
class AggregationResult:
    """Everything the orchestrator collected for one keyword."""
    keyword: str
    apps: list = field(default_factory=list)
    low_reviews: list = field(default_factory=list)
    high_reviews: list = field(default_factory=list)
    failed_apps: list = field(default_factory=list)   # app_ids whose fetch failed
    searched: bool = False          # False when the cached app list was reused
    new_reviews: int = 0

    @property
    def total_low_reviews(self) -> int:
        return len(self.low_reviews)

    @property
    def total_high_reviews(self) -> int:
        return len(self.high_reviews)

    @property
    def total_reviews(self) -> int:
        return self.total_low_reviews + self.total_high_reviews

    @property
    def is_empty(self) -> bool:
        return not self.apps or self.total_reviews == 0

    @property
    def all_reviews(self) -> list:
        return self.low_reviews + self.high_reviews


@dataclass
class SimpleAnalysis:
    """Low-rating-only analysis: pain-point patterns and opportunities."""
    keyword: str
    llm_analysis: str
    summary: Optional[str] = None
    patterns: list = field(default_factory=list)
    opportunities: list = field(default_factory=list)
    total_reviews_analyzed: int = 0
    llm_model: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    kind: str = KIND_SIMPLE
    schema_version: int = SIMPLE_SCHEMA_VERSION


@dataclass
class ComprehensiveAnalysis:
    """Both rating bands: table stakes, pain points, differentiators, personas."""
    keyword: str
    llm_analysis: str
    summary: Optional[str] = None
    table_stakes: list = field(default_factory=list)
    pain_points: list = field(default_factory=list)
    differentiators: list = field(default_factory=list)
    competitive_summary: dict = field(default_factory=dict)
    total_low_reviews_analyzed: int = 0
    total_high_reviews_analyzed: int = 0
    personas: list = field(default_factory=list)
    raw_persona_extractions: list = field(default_factory=list)
    insider_language: dict = field(default_factory=dict)
    keyword_opportunities: dict = field(default_factory=dict)
    llm_model: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    kind: str = KIND_COMPREHENSIVE
    schema_version: int = COMPREHENSIVE_SCHEMA_VERSION

    @property
    def total_reviews_analyzed(self) -> int:
        return self.total_low_reviews_analyzed + self.total_high_reviews_analyzed


Analysis = Union[SimpleAnalysis, ComprehensiveAnalysis]


@dataclass
class ScreenshotAnalysis:
    app_ref: int                    # database row id of the App
    screenshot_count: int
    analysis: str
    screenshot_urls: list = field(default_factory=list)
    llm_model: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def summary(self) -> Optional[str]:
        """First paragraph of the analysis, capped at 200 characters."""
        if not self.analysis:
            return None
        first_paragraph = self.analysis.split("\n\n")[0]
        if len(first_paragraph) > 200:
            return first_paragraph[:197] + "..."
        return first_paragraph


@dataclass
class AsoAnalysis:
    app_ref: int
    keyword: str
    competitor_count: int
    competitor_app_ids: list = field(default_factory=list)
    llm_analysis: Optional[str] = None
    recommendations: dict = field(default_factory=dict)
    llm_model: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def summary(self) -> Optional[list]:
        if not self.recommendations:
            return None
        priorities = (self.recommendations.get("competitive_summary") or {}).get("top_3_priorities")
        return priorities[:3] if priorities else None


@dataclass
class AppDetails:
    """iTunes lookup result, mostly used for screenshots."""
    app_id: str
    app_name: Optional[str] = None
    bundle_id: Optional[str] = None
    version: Optional[str] = None
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    artwork_url: Optional[str] = None
    screenshot_urls: list = field(default_factory=list)
    ipad_screenshot_urls: list = field(default_factory=list)
    description: Optional[str] = None
    release_notes: Optional[str] = None


@dataclass
class AppMetadata:
    """What the App Store web page shows but the iTunes API doesn't."""
    subtitle: Optional[str] = None
    promotional_text: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
