"""
Analysis assembler — turns raw LLM text into the structured analysis the
reports read.

LLM responses are messy: JSON wrapped in markdown fences, prose before and
after the object, sometimes half an object. Whatever comes back, the assembler
returns the same shape, with every structured field defaulted to an empty list
or dict and the raw text kept for inspection. It never raises on bad input.

Two ways in:
    - Fresh: raw text straight from the LLM.
    - Cache reuse: a stored analysis row. Its raw text is parsed again (old rows
      may predate some fields), then the row's own columns fill the gaps, and
      as a last resort the summary is pulled out with a regex.
"""

import json
import re
from typing import Optional

from appintel.models import ComprehensiveAnalysis, SimpleAnalysis

FENCE_OPEN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
FENCE_CLOSE = re.compile(r"```\s*$", re.MULTILINE)
SUMMARY_PATTERN = re.compile(r'"summary"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)


def strip_code_fences(text: str) -> str:
    if "```" not in text:
        return text
    return FENCE_CLOSE.sub("", FENCE_OPEN.sub("", text))


def find_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} substring, or None.
    Braces inside JSON string literals don't count toward the balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here on; try the next opening brace
        start = text.find("{", start + 1)
    return None


def parse_json_block(text: Optional[str]) -> Optional[dict]:
    """Strip fences, find the first JSON object, parse it. None on any failure."""
    if not text:
        return None
    candidate = find_json_object(strip_code_fences(text))
    if candidate is None:
        return None
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_summary(text: Optional[str]) -> Optional[str]:
    """
    Pull "summary": "..." out of text that isn't valid JSON as a whole,
    undoing backslash escapes.
    """
    if not text:
        return None
    match = SUMMARY_PATTERN.search(strip_code_fences(text))
    if not match:
        return None
    return re.sub(r"\\(.)", r"\1", match.group(1))


def _list(value) -> list:
    return value if isinstance(value, list) else []


def _dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _count(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _first_list(*candidates) -> list:
    for value in candidates:
        if isinstance(value, list) and value:
            return value
    return []


def _first_dict(*candidates) -> dict:
    for value in candidates:
        if isinstance(value, dict) and value:
            return value
    return {}


def assemble(raw_text: Optional[str], baseline: Optional[ComprehensiveAnalysis] = None, *,
             keyword: Optional[str] = None,
             low_count: Optional[int] = None, high_count: Optional[int] = None,
             personas: Optional[list] = None,
             raw_persona_extractions: Optional[list] = None,
             insider_language: Optional[dict] = None,
             keyword_opportunities: Optional[dict] = None,
             model: Optional[str] = None) -> ComprehensiveAnalysis:
    """
    Build a ComprehensiveAnalysis from LLM text, optionally backed by a
    previously stored analysis.

    Args:
        raw_text:   LLM output (fresh path) or the stored llm_analysis text.
        baseline:   Stored analysis whose columns fill fields the text lacks.
        low_count / high_count: Authoritative review counts. When omitted, the
                    counts embedded in the JSON are used, then the baseline's.
        personas, raw_persona_extractions, insider_language, keyword_opportunities:
                    Freshly computed values; when None the baseline's are kept.
    """
    raw_text = raw_text if raw_text is not None else (baseline.llm_analysis if baseline else "")
    parsed = parse_json_block(raw_text) or {}

    summary = parsed.get("summary")
    if not summary:
        summary = extract_summary(raw_text) or (baseline.summary if baseline else None)

    def counted(explicit, key, fallback):
        if explicit is not None:
            return explicit
        if key in parsed:
            return _count(parsed.get(key))
        return _count(fallback)

    return ComprehensiveAnalysis(
        keyword=keyword or (baseline.keyword if baseline else ""),
        llm_analysis=raw_text,
        summary=summary,
        table_stakes=_first_list(parsed.get("table_stakes"), baseline and baseline.table_stakes),
        pain_points=_first_list(parsed.get("pain_points"), baseline and baseline.pain_points),
        differentiators=_first_list(parsed.get("differentiators"), baseline and baseline.differentiators),
        competitive_summary=_first_dict(parsed.get("competitive_summary"),
                                        baseline and baseline.competitive_summary),
        total_low_reviews_analyzed=counted(low_count, "total_low_reviews_analyzed",
                                           baseline.total_low_reviews_analyzed if baseline else 0),
        total_high_reviews_analyzed=counted(high_count, "total_high_reviews_analyzed",
                                            baseline.total_high_reviews_analyzed if baseline else 0),
        personas=_list(personas) if personas is not None else _list(baseline and baseline.personas),
        raw_persona_extractions=(_list(raw_persona_extractions) if raw_persona_extractions is not None
                                 else _list(baseline and baseline.raw_persona_extractions)),
        insider_language=(_dict(insider_language) if insider_language is not None
                          else _dict(baseline and baseline.insider_language)),
        keyword_opportunities=(_dict(keyword_opportunities) if keyword_opportunities is not None
                               else _dict(baseline and baseline.keyword_opportunities)),
        llm_model=model or (baseline.llm_model if baseline else None),
        id=baseline.id if baseline else None,
        created_at=baseline.created_at if baseline else None,
    )


def assemble_simple(raw_text: Optional[str], baseline: Optional[SimpleAnalysis] = None, *,
                    keyword: Optional[str] = None, total_reviews: Optional[int] = None,
                    model: Optional[str] = None) -> SimpleAnalysis:
    """Same recovery rules as assemble(), for the low-rating-only shape."""
    raw_text = raw_text if raw_text is not None else (baseline.llm_analysis if baseline else "")
    parsed = parse_json_block(raw_text) or {}

    summary = parsed.get("summary")
    if not summary:
        summary = extract_summary(raw_text) or (baseline.summary if baseline else None)

    if total_reviews is None:
        total_reviews = baseline.total_reviews_analyzed if baseline else 0

    return SimpleAnalysis(
        keyword=keyword or (baseline.keyword if baseline else ""),
        llm_analysis=raw_text,
        summary=summary,
        patterns=_first_list(parsed.get("patterns"), baseline and baseline.patterns),
        opportunities=_first_list(parsed.get("opportunities"), baseline and baseline.opportunities),
        total_reviews_analyzed=_count(total_reviews),
        llm_model=model or (baseline.llm_model if baseline else None),
        id=baseline.id if baseline else None,
        created_at=baseline.created_at if baseline else None,
    )


def reload(stored):
    """Re-assemble a stored analysis row through the cache-reuse path."""
    if isinstance(stored, SimpleAnalysis):
        return assemble_simple(stored.llm_analysis, stored)
    # Counts come from the row's columns, which were authoritative at write time
    return assemble(stored.llm_analysis, stored,
                    low_count=stored.total_low_reviews_analyzed or None,
                    high_count=stored.total_high_reviews_analyzed or None)
