from appintel.models import Review
from appintel.personas import (
    EXCLUSIONS, MIN_PHRASE_LENGTH, accept_phrase, extract_from_text, extract_personas, find_phrases,
)

from conftest import make_review


class TestFindPhrases:
    def test_as_a(self):
        assert find_phrases("As a busy mom, this app saves me.") == ["busy mom"]

    def test_i_am_a(self):
        assert find_phrases("I'm a nurse and I work nights.") == ["nurse"]
        assert find_phrases("I am a student so money is tight.") == ["student"]

    def test_being_a(self):
        assert find_phrases("Being a teacher I need structure.") == ["teacher"]

    def test_as_someone_who(self):
        assert find_phrases("As someone who travels a lot, this is great.") == ["travels a lot"]

    def test_capture_stops_at_stop_word(self):
        assert find_phrases("As a runner who hates mornings") == ["runner"]

    def test_exclusions_dropped(self):
        assert find_phrases("As a result, it crashed. As a matter of fact, twice.") == []

    def test_too_short_never_matches(self):
        assert find_phrases("As a dj, great") == []

    def test_empty_text(self):
        assert find_phrases("") == []
        assert find_phrases(None) == []

    def test_extract_from_text_is_unique(self):
        assert extract_from_text("As a nurse, fine. As a nurse, good.") == ["nurse"]


class TestAcceptPhrase:
    def test_normalizes(self):
        assert accept_phrase("  Busy Mom ") == "busy mom"

    def test_rejects_short(self):
        assert accept_phrase(" ab ") is None

    def test_rejects_stop_word_only(self):
        assert accept_phrase("Very") is None
        assert accept_phrase("really") is None

    def test_rejects_exclusion(self):
        assert accept_phrase("reminder to breathe") is None


class TestExtractPersonas:
    def test_empty(self):
        result = extract_personas([])
        assert result.phrases == []
        assert result.reviews_with_matches == 0

    def test_null_fields_do_not_raise(self):
        review = Review(review_id="1", rating=1, title=None, content=None)
        result = extract_personas([review])
        assert result.phrases == []
        assert result.reviews_with_matches == 0

    def test_counts_matches_and_dedupes_review_ids(self):
        reviews = [
            make_review("r1", 5, title="As a nurse.", content="As a nurse, I love this."),
            make_review("r2", 1, content="I'm a nurse and exhausted."),
        ]
        result = extract_personas(reviews)

        assert len(result.phrases) == 1
        nurse = result.phrases[0]
        assert nurse.phrase == "nurse"
        assert nurse.count == 3
        assert nurse.review_ids == ["r1", "r2"]
        assert result.reviews_with_matches == 2

    def test_sorted_by_count_with_stable_ties(self):
        reviews = [
            make_review("r1", 5, content="As a teacher, great."),
            make_review("r2", 5, content="As a runner, great."),
            make_review("r3", 5, content="As a parent, great."),
            make_review("r4", 1, content="As a parent, awful."),
        ]
        phrases = [p.phrase for p in extract_personas(reviews).phrases]
        assert phrases == ["parent", "teacher", "runner"]

    def test_one_review_many_phrases(self):
        review = make_review("r1", 4, content="As a nurse, and being a mom I never sleep.")
        result = extract_personas([review])
        assert {p.phrase for p in result.phrases} == {"nurse", "mom"}
        assert result.reviews_with_matches == 1

    def test_no_short_or_excluded_phrases(self):
        texts = [
            "As a result, nothing works.", "As a whole, fine.", "As a gift, lovely.",
            "I'm a big fan and I use it daily.", "As a new user, confusing.",
            "Being a trial I expected less.", "As a way to relax, it works.",
        ]
        reviews = [make_review(i, 4, content=t) for i, t in enumerate(texts)]
        result = extract_personas(reviews)

        assert result.phrases
        for p in result.phrases:
            assert len(p.phrase) >= MIN_PHRASE_LENGTH
            assert not any(e.search(p.phrase) for e in EXCLUSIONS)

    def test_count_sum_equals_accepted_matches(self):
        reviews = [
            make_review("a", 5, content="As a nurse, and as a mom, I love it."),
            make_review("b", 1, content="I'm a mom and this is slow."),
        ]
        result = extract_personas(reviews)
        expected = sum(len(find_phrases(f"{r.title} {r.content}")) for r in reviews)
        assert sum(p.count for p in result.phrases) == expected == 3
