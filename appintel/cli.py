"""
Command-line interface.

    appintel analyze "meditation" --limit 5
    appintel history "meditation"
    appintel show 12 --plain
    appintel apps "meditation"
    appintel screenshots "meditation"
    appintel screenshots-history "meditation"
    appintel compare ./theirs ./mine --competitor-name Calm
    appintel aso 1234567890 "meditation"

Every command loads Settings once and passes it down. Precondition
failures (no API key, no apps, bad paths) print a message and exit 1.
"""

import argparse
import sys
from typing import Optional

from appintel.aso import run_aso_analysis
from appintel.assembler import reload
from appintel.analyzer import generate_simple_summary
from appintel.config import Settings, load_settings, require_api_key
from appintel.database import (
    initialize_database,
    get_apps_for_keyword,
    count_reviews_for_app,
    count_rows,
    list_analyses,
    get_analysis,
    list_screenshot_analyses,
)
from appintel.errors import AnalysisFailedError, AppIntelError
from appintel.llm_client import LLMClient
from appintel.models import BAND_LOW
from appintel.processor import run_analysis
from appintel.report import (
    format_analysis,
    format_apps,
    format_aso,
    format_history,
    format_screenshot_analysis,
)
from appintel.screenshots import compare_local_screenshots, run_screenshot_analysis

PLAIN_SUMMARY_PROMPT = (
    "Explain this market research to a founder who has five minutes. Three short paragraphs: "
    "what users expect, what frustrates them, and where the opening is. No jargon, no lists."
)


def cmd_analyze(settings: Settings, args) -> int:
    outcome = run_analysis(settings, args.keyword, limit=args.limit, country=args.country,
                           model=args.model, force=args.force, low_only=args.low_only)
    aggregation = outcome["aggregation"]
    if aggregation.failed_apps:
        print(f"\nWarning: reviews unavailable for {len(aggregation.failed_apps)} apps")
    print()
    print(format_analysis(outcome["analysis"]))
    print(f"\nCache: {count_rows(settings.db_path, 'apps')} apps, "
          f"{count_rows(settings.db_path, 'reviews')} reviews, "
          f"{count_rows(settings.db_path, 'analyses')} analyses stored")
    return 0


def cmd_history(settings: Settings, args) -> int:
    print(f"Analyses for '{args.keyword}':")
    print(format_history(list_analyses(settings.db_path, args.keyword, limit=args.limit)))
    return 0


def cmd_show(settings: Settings, args) -> int:
    analysis = get_analysis(settings.db_path, args.id)
    if analysis is None:
        print(f"No analysis with id {args.id}")
        return 1
    analysis = reload(analysis)
    print(format_analysis(analysis))

    if args.plain:
        require_api_key(settings)
        result = generate_simple_summary(LLMClient(settings), analysis.llm_analysis,
                                         PLAIN_SUMMARY_PROMPT, model=args.model)
        if not result.ok:
            raise AnalysisFailedError(result.error)
        print(f"\nIN PLAIN WORDS\n{result.text}")
    return 0


def cmd_apps(settings: Settings, args) -> int:
    apps = get_apps_for_keyword(settings.db_path, args.keyword)
    if not apps:
        print(f"No cached apps for '{args.keyword}'. Run: appintel analyze \"{args.keyword}\"")
        return 1
    low_counts = {app.id: count_reviews_for_app(settings.db_path, app.id, BAND_LOW) for app in apps}
    print(format_apps(apps, low_counts))
    return 0


def cmd_screenshots(settings: Settings, args) -> int:
    results = run_screenshot_analysis(settings, args.keyword, limit=args.limit,
                                      country=args.country, force=args.force, model=args.model)
    print()
    for app, record, cached in results:
        print(format_screenshot_analysis(app, record, full=args.full))
        print()
    print(f"{len(results)} apps with screenshot analyses")
    return 0


def cmd_screenshots_history(settings: Settings, args) -> int:
    apps = get_apps_for_keyword(settings.db_path, args.keyword)
    if not apps:
        print(f"No apps found for keyword: {args.keyword}")
        return 1
    for app in apps:
        records = list_screenshot_analyses(settings.db_path, app.id, limit=5)
        if not records:
            continue
        print(f"\n{app.name}:")
        for record in records:
            print(f"  - {record.created_at:%Y-%m-%d %H:%M} - {record.screenshot_count} screenshots")
    return 0


def cmd_compare(settings: Settings, args) -> int:
    text = compare_local_screenshots(settings, args.competitor_dir, args.your_dir,
                                     competitor_name=args.competitor_name, model=args.model)
    print()
    print(text)
    return 0


def cmd_aso(settings: Settings, args) -> int:
    analysis, cached = run_aso_analysis(settings, args.app_id, args.keyword, limit=args.limit,
                                        country=args.country, force=args.force, model=args.model)
    print()
    print(format_aso(analysis))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="appintel",
        description="App Store review intelligence: what users love, hate and need, per keyword.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def fetch_options(p, with_low_only=False):
        p.add_argument("--limit", type=int, default=10, help="Number of top apps to include.")
        p.add_argument("--country", default="us", help="App Store country code.")
        p.add_argument("--model", default=None, help="OpenRouter model id (default from settings).")
        p.add_argument("--force", action="store_true", help="Ignore cached data and refetch.")
        if with_low_only:
            p.add_argument("--low-only", action="store_true",
                           help="Analyze 1-2 star reviews only (simple analysis).")

    p = sub.add_parser("analyze", help="Analyze reviews of the top apps for a keyword.")
    p.add_argument("keyword")
    fetch_options(p, with_low_only=True)
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("history", help="Past analyses for a keyword.")
    p.add_argument("keyword")
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("show", help="Show one stored analysis.")
    p.add_argument("id", type=int)
    p.add_argument("--plain", action="store_true", help="Add a plain-language summary (one LLM call).")
    p.add_argument("--model", default=None)
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("apps", help="Cached apps for a keyword.")
    p.add_argument("keyword")
    p.set_defaults(func=cmd_apps)

    p = sub.add_parser("screenshots", help="Analyze screenshots of the top apps for a keyword.")
    p.add_argument("keyword")
    fetch_options(p)
    p.add_argument("--full", action="store_true", help="Print full analyses, not summaries.")
    p.set_defaults(func=cmd_screenshots)

    p = sub.add_parser("screenshots-history", help="Past screenshot analyses for a keyword.")
    p.add_argument("keyword")
    p.set_defaults(func=cmd_screenshots_history)

    p = sub.add_parser("compare", help="Compare your screenshots against a competitor's.")
    p.add_argument("competitor_dir")
    p.add_argument("your_dir")
    p.add_argument("--competitor-name", default="Competitor")
    p.add_argument("--model", default=None)
    p.set_defaults(func=cmd_compare)

    p = sub.add_parser("aso", help="ASO recommendations for your app against a keyword.")
    p.add_argument("app_id")
    p.add_argument("keyword")
    fetch_options(p)
    p.set_defaults(func=cmd_aso)

    return parser


def main(argv: Optional[list] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or load_settings()
    initialize_database(settings.db_path)
    try:
        return args.func(settings, args)
    except AppIntelError as e:
        print(f"\nError: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
