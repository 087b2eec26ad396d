"""
Configuration loader.
Reads settings from the .env file and the environment, and bundles them into
a Settings object that gets handed to every collaborator when it's built.

Nothing in the package reads os.environ at call time. Build one Settings per
invocation with load_settings() and pass it down.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from dotenv import load_dotenv

from appintel.errors import MissingCredentialError

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "google/gemini-2.5-pro"
DEFAULT_ASO_MODEL = "google/gemini-3-flash-preview"
DEFAULT_DB_PATH = os.path.join(PROJECT_ROOT, "data", "app_store_reviews.sqlite3")


@dataclass(frozen=True)
class CachePolicy:
    """
    How long each cached artifact stays fresh, and how much the underlying
    data may drift before a cached result is thrown away.
    """
    app_list_ttl: timedelta = timedelta(days=2)
    review_ttl: timedelta = timedelta(days=3)
    analysis_ttl: timedelta = timedelta(days=3)
    screenshot_ttl: timedelta = timedelta(days=7)
    aso_ttl: timedelta = timedelta(days=7)
    analysis_drift_pct: float = 10.0       # review-count change that invalidates an analysis
    competitor_drift_pct: float = 20.0     # competitor-count change that invalidates ASO

    # Throttling
    app_delay_seconds: float = 1.0         # between apps while aggregating reviews
    page_delay_seconds: float = 1.0        # between review RSS pages
    screenshot_app_delay_seconds: float = 2.0
    scraper_delay_seconds: float = 2.0     # minimum gap between App Store page requests
    scraper_max_retries: int = 3

    # Volume caps
    review_pages: int = 10                 # Apple's RSS feed stops at page 10
    persona_prefix: int = 50               # phrases forwarded to the LLM for grouping
    prompt_reviews_per_band: int = 30
    simple_prompt_reviews: int = 50


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str]
    base_url: str = OPENROUTER_BASE_URL
    model: str = DEFAULT_MODEL
    aso_model: str = DEFAULT_ASO_MODEL
    db_path: str = DEFAULT_DB_PATH
    http_timeout: float = 10.0
    debug: bool = False
    dashboard_username: str = "admin"
    dashboard_password: str = "changeme123"
    cache: CachePolicy = field(default_factory=CachePolicy)


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def load_settings(env: Optional[dict] = None) -> Settings:
    """
    Build Settings from a mapping (defaults to os.environ after loading .env).

    Passing `env` explicitly skips the .env file, which keeps tests hermetic.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    return Settings(
        api_key=env.get("OPENROUTER_API_KEY") or None,
        base_url=env.get("OPENROUTER_BASE_URL", OPENROUTER_BASE_URL),
        model=env.get("APPINTEL_MODEL", DEFAULT_MODEL),
        aso_model=env.get("APPINTEL_ASO_MODEL", DEFAULT_ASO_MODEL),
        db_path=env.get("APPINTEL_DB_PATH", DEFAULT_DB_PATH),
        http_timeout=float(env.get("APPINTEL_HTTP_TIMEOUT", "10")),
        debug=_env_flag(env.get("DEBUG")),
        dashboard_username=env.get("DASHBOARD_USERNAME", "admin"),
        dashboard_password=env.get("DASHBOARD_PASSWORD", "changeme123"),
    )


def require_api_key(settings: Settings) -> None:
    """Pre-flight check: refuse to start any LLM work without a credential."""
    if not settings.api_key or not settings.api_key.strip():
        raise MissingCredentialError(
            "OPENROUTER_API_KEY not set. Copy .env.example to .env and add your key."
        )
