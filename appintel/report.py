"""
Report builders — console text for the CLI, DataFrames and figures for the dashboard.

Everything here reads the assembled analysis objects and nothing else, so a
cached analysis and a fresh one render identically. LLM output is loose:
list items may be dicts with the keys we asked for, dicts with other keys,
or bare strings, and every helper copes with all three.
"""

from typing import Optional

import pandas as pd
import plotly.graph_objects as go

from appintel.models import (
    App, AsoAnalysis, ComprehensiveAnalysis, ScreenshotAnalysis, KIND_SIMPLE,
)

RULE = "=" * 60


def item_text(item, title_keys: tuple, detail_keys: tuple = ("description",)) -> str:
    """'Title: detail' for a dict item, str() for anything else."""
    if not isinstance(item, dict):
        return str(item)
    title = next((item[k] for k in title_keys if item.get(k)), None)
    detail = next((item[k] for k in detail_keys if item.get(k)), None)
    if title and detail:
        return f"{title}: {detail}"
    return str(title or detail or "")


def _section(lines: list, heading: str, items: list, title_keys: tuple,
             detail_keys: tuple = ("description",)) -> None:
    if not items:
        return
    lines.append("")
    lines.append(heading)
    lines.append("-" * len(heading))
    for index, item in enumerate(items, start=1):
        lines.append(f"{index}. {item_text(item, title_keys, detail_keys)}")


# ============================================================
# CONSOLE
# ============================================================

def format_analysis(analysis) -> str:
    lines = [RULE, f"ANALYSIS #{analysis.id or '-'}: {analysis.keyword}", RULE]
    if analysis.created_at:
        lines.append(f"Created: {analysis.created_at:%Y-%m-%d %H:%M} | Model: {analysis.llm_model or '-'}")

    if analysis.kind == KIND_SIMPLE:
        lines.append(f"Reviews analyzed: {analysis.total_reviews_analyzed} (1-2 stars)")
    else:
        lines.append(f"Reviews analyzed: {analysis.total_reviews_analyzed} "
                     f"({analysis.total_low_reviews_analyzed} low, "
                     f"{analysis.total_high_reviews_analyzed} high)")

    if analysis.summary:
        lines += ["", "SUMMARY", analysis.summary]

    if analysis.kind == KIND_SIMPLE:
        _section(lines, "PATTERNS", analysis.patterns, ("category", "title"))
        _section(lines, "OPPORTUNITIES", analysis.opportunities, ("title", "opportunity"))
        return "\n".join(lines)

    _section(lines, "TABLE STAKES", analysis.table_stakes, ("feature",))
    _section(lines, "PAIN POINTS", analysis.pain_points, ("category",))
    _section(lines, "DIFFERENTIATORS", analysis.differentiators, ("opportunity", "title"))

    summary = analysis.competitive_summary
    if summary.get("top_3_table_stakes") or summary.get("top_3_differentiators"):
        lines += ["", "COMPETITIVE SUMMARY"]
        for label, key in (("Table stakes", "top_3_table_stakes"),
                           ("Differentiators", "top_3_differentiators")):
            values = summary.get(key) or []
            if values:
                lines.append(f"  {label}: {', '.join(str(v) for v in values)}")

    _section(lines, "PERSONAS", analysis.personas, ("name",))
    terms = analysis.insider_language.get("terms") or []
    _section(lines, "INSIDER LANGUAGE", terms, ("term",), ("meaning",))
    gaps = analysis.keyword_opportunities.get("keyword_gaps") or []
    _section(lines, "KEYWORD GAPS", gaps, ("keyword",), ("opportunity_note",))
    suggested = analysis.keyword_opportunities.get("suggested_keyword_field") or {}
    if suggested.get("keywords"):
        lines += ["", f"Suggested keyword field: {suggested['keywords']}"]
    return "\n".join(lines)


def format_history(analyses: list) -> str:
    if not analyses:
        return "No analyses stored yet."
    lines = []
    for a in analyses:
        summary = (a.summary or "")[:80]
        lines.append(f"#{a.id:<5} {a.created_at:%Y-%m-%d %H:%M}  {a.kind:<13} "
                     f"{a.total_reviews_analyzed:>5} reviews  {summary}")
    return "\n".join(lines)


def format_apps(apps: list[App], low_counts: Optional[dict] = None) -> str:
    low_counts = low_counts or {}
    lines = []
    for app in apps:
        rating = f"{app.rating:.1f}" if app.rating is not None else "-"
        lines.append(f"{app.search_rank or '-':>3}. {app.name} ({app.app_id}) "
                     f"rating {rating}, {low_counts.get(app.id, 0)} low-rating reviews cached")
    return "\n".join(lines)


def format_screenshot_analysis(app: App, record: ScreenshotAnalysis, full: bool = False) -> str:
    header = (f"{app.name}: {record.screenshot_count} screenshots, "
              f"{record.created_at:%Y-%m-%d %H:%M}" if record.created_at else app.name)
    return f"{header}\n{record.analysis if full else record.summary}"


def format_aso(analysis: AsoAnalysis) -> str:
    lines = [RULE, f"ASO: {analysis.keyword} ({analysis.competitor_count} competitors)", RULE]
    recs = analysis.recommendations
    if not recs:
        lines.append(analysis.llm_analysis or "No recommendations.")
        return "\n".join(lines)

    priorities = analysis.summary or []
    if priorities:
        lines.append("TOP PRIORITIES")
        lines += [f"{i}. {p}" for i, p in enumerate(priorities, start=1)]

    subtitles = (recs.get("subtitle_recommendations") or {}).get("suggested_subtitles") or []
    if subtitles:
        lines += ["", "SUBTITLE OPTIONS"] + [f"- {s} ({len(s)} chars)" for s in subtitles]
    promo = (recs.get("promotional_text_recommendations") or {}).get("suggested_text")
    if promo:
        lines += ["", "PROMOTIONAL TEXT", promo]
    keywords = recs.get("keyword_recommendations") or {}
    for label, key in (("Primary keywords", "primary_keywords"), ("Gap keywords", "gap_keywords")):
        if keywords.get(key):
            lines.append(f"{label}: {', '.join(keywords[key])}")
    return "\n".join(lines)


# ============================================================
# DATAFRAMES
# ============================================================

def items_frame(items: list, title_keys: tuple, detail_keys: tuple = ("description",),
                columns: tuple = ("Item", "Detail")) -> pd.DataFrame:
    rows = []
    for item in items or []:
        if isinstance(item, dict):
            title = next((item[k] for k in title_keys if item.get(k)), "")
            detail = next((item[k] for k in detail_keys if item.get(k)), "")
        else:
            title, detail = str(item), ""
        rows.append({columns[0]: title, columns[1]: detail})
    return pd.DataFrame(rows, columns=list(columns))


def persona_phrase_frame(analysis: ComprehensiveAnalysis, top: int = 15) -> pd.DataFrame:
    """Raw persona phrases and their counts, most frequent first."""
    rows = [{"phrase": p.get("phrase"), "count": p.get("count", 0),
             "reviews": len(p.get("review_ids") or [])}
            for p in analysis.raw_persona_extractions[:top] if isinstance(p, dict)]
    return pd.DataFrame(rows, columns=["phrase", "count", "reviews"])


def apps_frame(apps: list[App], low_counts: Optional[dict] = None) -> pd.DataFrame:
    low_counts = low_counts or {}
    rows = [{
        "rank": app.search_rank,
        "name": app.name,
        "developer": app.developer,
        "rating": app.rating,
        "ratings": app.rating_count,
        "low reviews cached": low_counts.get(app.id, 0),
    } for app in apps]
    return pd.DataFrame(rows, columns=["rank", "name", "developer", "rating", "ratings",
                                       "low reviews cached"])


def history_frame(analyses: list) -> pd.DataFrame:
    rows = [{
        "id": a.id,
        "created": a.created_at,
        "kind": a.kind,
        "reviews": a.total_reviews_analyzed,
        "model": a.llm_model,
        "summary": a.summary,
    } for a in analyses]
    return pd.DataFrame(rows, columns=["id", "created", "kind", "reviews", "model", "summary"])


# ============================================================
# FIGURES
# ============================================================

def apply_chart_style(fig):
    fig.update_layout(
        font=dict(family="Inter, sans-serif", color="#9c9588"),
        paper_bgcolor="rgba(0,0,0,0)", plot_bgcolor="rgba(0,0,0,0)",
        title_font=dict(size=14, color="#e8e0d5"),
        xaxis=dict(gridcolor="rgba(255,235,205,0.04)", tickfont=dict(color="#9c9588")),
        yaxis=dict(gridcolor="rgba(255,235,205,0.04)", tickfont=dict(color="#9c9588")),
        margin=dict(l=40, r=20, t=45, b=35),
    )
    return fig


def persona_chart(frame: pd.DataFrame):
    """Horizontal bars, most frequent phrase on top. None when there's nothing to plot."""
    if frame.empty:
        return None
    ordered = frame.iloc[::-1]
    fig = go.Figure(go.Bar(
        x=ordered["count"], y=ordered["phrase"], orientation="h",
        marker_color="#d97757", text=ordered["count"], textposition="outside",
    ))
    fig.update_layout(title="Who reviewers say they are", height=max(300, 28 * len(frame)),
                      xaxis_title="Mentions")
    return apply_chart_style(fig)


def app_rating_chart(frame: pd.DataFrame):
    if frame.empty:
        return None
    fig = go.Figure(go.Bar(
        x=frame["name"], y=frame["rating"], marker_color="#8aad6e",
        text=[f"{v:.1f}" if pd.notna(v) else "" for v in frame["rating"]], textposition="outside",
    ))
    fig.update_layout(title="Average rating by app", height=370, yaxis_range=[0, 5])
    return apply_chart_style(fig)
