"""
Persona extractor — mines reviews for the way people describe themselves.

"As a busy mom...", "I'm a nurse and...", "As someone who travels a lot..."
These self-identifying clauses are the raw material for user segments. We find
them with a handful of lexical patterns, throw away the grammatical look-alikes
("as a result", "as a matter of fact"), and count how often each phrase shows up.

The counted list is deterministic: most frequent first, ties in the order the
phrases were first seen. Only the top of the list goes to the LLM for grouping.
"""

import re
from typing import Iterable

from appintel.models import PersonaExtraction, PersonaPhrase

# Each capture runs up to sentence punctuation or a stop word, so
# "as a teacher I love it" yields "teacher" and not the rest of the sentence.
PERSONA_PATTERNS = [
    # "As a ___"
    re.compile(r"\bas\s+a\s+([^,.!?]{3,50}?)(?=[,.!?]|\s+(?:i|who|and|this|the|it)\b)", re.IGNORECASE),
    # "I'm a ___" / "I am a ___"
    re.compile(r"\bi(?:'m|’m|\s+am)\s+a\s+([^,.!?]{3,50}?)(?=[,.!?]|\s+(?:and|who|so|that|this)\b)", re.IGNORECASE),
    # "Being a ___"
    re.compile(r"\bbeing\s+a\s+([^,.!?]{3,50}?)(?=[,.!?]|\s+(?:i|this|and|it)\b)", re.IGNORECASE),
    # "As someone who ___"
    re.compile(r"\bas\s+someone\s+who\s+([^,.!?]{5,60}?)(?=[,.!?])", re.IGNORECASE),
]

# Same grammar, not a persona
EXCLUSIONS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"^result", r"^matter\s+of", r"^whole", r"^way\s+to", r"^bonus",
        r"^gift", r"^treat", r"^surprise", r"^reminder", r"^reference",
        r"^starting\s+point", r"^test", r"^trial", r"^backup", r"^replacement",
        r"^default", r"^last\s+resort", r"^first\s+step", r"^side\s+effect",
        r"^consequence",
    )
]

STOP_WORD_ONLY = re.compile(r"^(the|a|an|very|really|just|only|also)\s*$", re.IGNORECASE)

MIN_PHRASE_LENGTH = 3


def _searchable_text(review) -> str:
    """Title and content joined; either may be missing."""
    parts = [getattr(review, "title", None), getattr(review, "content", None)]
    return " ".join(p for p in parts if p)


def accept_phrase(raw: str):
    """Normalize a captured phrase, or return None if it isn't a persona."""
    phrase = raw.strip().lower()
    if len(phrase) < MIN_PHRASE_LENGTH:
        return None
    if any(exclusion.search(phrase) for exclusion in EXCLUSIONS):
        return None
    if STOP_WORD_ONLY.match(phrase):
        return None
    return phrase


def find_phrases(text: str) -> list[str]:
    """
    All accepted phrases in one piece of text, in pattern order.
    Repeats are kept: every accepted match counts.
    """
    found = []
    if not text:
        return found
    for pattern in PERSONA_PATTERNS:
        for match in pattern.finditer(text):
            phrase = accept_phrase(match.group(1))
            if phrase:
                found.append(phrase)
    return found


def extract_personas(reviews: Iterable) -> PersonaExtraction:
    """
    Scan reviews for persona phrases and count them.

    Args:
        reviews: Review objects (anything with review_id, title, content).

    Returns:
        PersonaExtraction with phrases sorted by count (desc, stable) and the
        number of reviews that produced at least one accepted phrase.
    """
    matches: dict[str, PersonaPhrase] = {}
    reviews_with_matches = 0

    for review in reviews:
        review_id = getattr(review, "review_id", None)
        phrases = find_phrases(_searchable_text(review))
        if phrases:
            reviews_with_matches += 1

        for phrase in phrases:
            entry = matches.get(phrase)
            if entry is None:
                entry = matches[phrase] = PersonaPhrase(phrase=phrase)
            entry.count += 1
            if review_id not in entry.review_ids:
                entry.review_ids.append(review_id)

    # sorted() is stable: equal counts keep first-seen order
    ranked = sorted(matches.values(), key=lambda m: -m.count)
    return PersonaExtraction(phrases=ranked, reviews_with_matches=reviews_with_matches)


def extract_from_text(text: str) -> list[str]:
    """Unique phrases from a raw string. Handy for eyeballing the patterns."""
    return list(dict.fromkeys(find_phrases(text)))
