import sqlite3
from datetime import timedelta

import pytest

from appintel.database import (
    count_reviews_for_app, count_rows, delete_keyword_apps, get_analysis, get_app,
    get_apps_for_keyword, get_latest_analysis, get_latest_aso_analysis,
    get_latest_review_created_at, get_latest_screenshot_analysis, get_reviews_for_app,
    initialize_database, insert_analysis, insert_aso_analysis, insert_screenshot_analysis, list_analyses,
    list_analyzed_keywords, mark_reviews_fetched, upsert_app, upsert_reviews,
)
from appintel.errors import DataIntegrityError
from appintel.models import (
    AsoAnalysis, ComprehensiveAnalysis, ScreenshotAnalysis, SimpleAnalysis,
    BAND_HIGH, BAND_LOW, KIND_COMPREHENSIVE, KIND_SIMPLE,
)

from conftest import NOW, make_app, make_review

TTL = timedelta(days=7)


def store_app(db_path, app_id="100", rank=1, keyword="meditation", when=NOW, **kwargs):
    return upsert_app(db_path, make_app(app_id, rank, keyword=keyword, **kwargs), when, when - TTL)


class TestApps:
    def test_insert_assigns_id_and_timestamps(self, db_path):
        app = store_app(db_path)
        assert app.id is not None
        assert app.created_at == NOW
        assert app.updated_at == NOW

    def test_same_app_two_keywords_two_rows(self, db_path):
        first = store_app(db_path, keyword="meditation")
        second = store_app(db_path, keyword="sleep")
        assert first.id != second.id
        assert count_rows(db_path, "apps") == 2

    def test_fresh_row_left_untouched(self, db_path):
        store_app(db_path, name="Old Name")
        later = NOW + timedelta(days=1)
        app = upsert_app(db_path, make_app("100", 1, name="New Name"), later, later - TTL)
        assert app.name == "Old Name"
        assert app.updated_at == NOW

    def test_stale_row_refreshed_but_keeps_identity(self, db_path):
        original = store_app(db_path, name="Old Name")
        later = NOW + timedelta(days=8)
        app = upsert_app(db_path, make_app("100", 1, name="New Name"), later, later - TTL)
        assert app.name == "New Name"
        assert app.id == original.id
        assert app.created_at == NOW
        assert app.updated_at == later

    def test_rejects_missing_name(self, db_path):
        app = make_app("100", 1)
        app.name = ""
        with pytest.raises(DataIntegrityError):
            upsert_app(db_path, app, NOW, NOW - TTL)

    def test_ordered_by_rank(self, db_path):
        store_app(db_path, "300", rank=3)
        store_app(db_path, "100", rank=1)
        store_app(db_path, "200", rank=2)
        assert [a.app_id for a in get_apps_for_keyword(db_path, "meditation")] == ["100", "200", "300"]

    def test_get_app(self, db_path):
        store_app(db_path)
        assert get_app(db_path, "100", "meditation").name == "App 100"
        assert get_app(db_path, "100", "sleep") is None

    def test_mark_reviews_fetched(self, db_path):
        app = store_app(db_path)
        assert app.reviews_fetched_at is None

        mark_reviews_fetched(db_path, app.id, NOW + timedelta(hours=1))
        stored = get_app(db_path, "100", "meditation")
        assert stored.reviews_fetched_at == NOW + timedelta(hours=1)

        upsert_app(db_path, make_app(100, 1, name="Renamed"), NOW + timedelta(days=9), NOW + timedelta(days=8))
        assert get_app(db_path, "100", "meditation").reviews_fetched_at == NOW + timedelta(hours=1)

    def test_adds_fetch_column_to_older_database(self, tmp_path):
        path = str(tmp_path / "old.sqlite3")
        conn = sqlite3.connect(path)
        conn.execute("""
            CREATE TABLE apps (
                id INTEGER PRIMARY KEY AUTOINCREMENT, app_id TEXT NOT NULL, keyword TEXT NOT NULL,
                name TEXT NOT NULL, developer TEXT, bundle_id TEXT, price REAL, currency TEXT,
                average_rating REAL, rating_count INTEGER, version TEXT, description TEXT,
                icon_url TEXT, search_rank INTEGER, created_at TEXT NOT NULL, updated_at TEXT NOT NULL,
                UNIQUE(app_id, keyword)
            )
        """)
        conn.commit()
        conn.close()

        initialize_database(path)
        initialize_database(path)

        app = upsert_app(path, make_app(100, 1), NOW, NOW)
        assert app.reviews_fetched_at is None


class TestReviews:
    def test_upsert_is_idempotent(self, db_path):
        app = store_app(db_path)
        reviews = [make_review(1, 1), make_review(2, 5)]

        assert upsert_reviews(db_path, app.id, reviews, NOW) == 2
        assert upsert_reviews(db_path, app.id, reviews, NOW + timedelta(hours=1)) == 0
        assert count_rows(db_path, "reviews") == 2

    def test_update_keeps_created_at(self, db_path):
        app = store_app(db_path)
        upsert_reviews(db_path, app.id, [make_review(1, 1, content="first")], NOW)
        upsert_reviews(db_path, app.id, [make_review(1, 2, content="edited")],
                       NOW + timedelta(days=2))

        [review] = get_reviews_for_app(db_path, app.id)
        assert review.content == "edited"
        assert review.rating == 2
        assert review.created_at == NOW

    def test_review_moves_to_latest_owner(self, db_path):
        first = store_app(db_path, keyword="meditation")
        second = store_app(db_path, keyword="sleep")
        upsert_reviews(db_path, first.id, [make_review(1, 1)], NOW)
        upsert_reviews(db_path, second.id, [make_review(1, 1)], NOW)

        assert count_reviews_for_app(db_path, first.id) == 0
        assert count_reviews_for_app(db_path, second.id) == 1

    @pytest.mark.parametrize("rating", [0, 6, None])
    def test_bad_rating_rejected(self, db_path, rating):
        app = store_app(db_path)
        with pytest.raises(DataIntegrityError):
            upsert_reviews(db_path, app.id, [make_review(1, 5), make_review(2, rating)], NOW)
        assert count_rows(db_path, "reviews") == 0

    def test_band_filters(self, db_path):
        app = store_app(db_path)
        upsert_reviews(db_path, app.id, [make_review(i, r) for i, r in enumerate([1, 2, 3, 4, 5])], NOW)

        assert {r.rating for r in get_reviews_for_app(db_path, app.id, BAND_LOW)} == {1, 2}
        assert {r.rating for r in get_reviews_for_app(db_path, app.id, BAND_HIGH)} == {4, 5}
        assert count_reviews_for_app(db_path, app.id) == 5
        assert count_reviews_for_app(db_path, app.id, BAND_LOW) == 2

    def test_reviews_carry_app_identity(self, db_path):
        app = store_app(db_path, name="Calm Mind")
        upsert_reviews(db_path, app.id, [make_review(1, 1)], NOW)
        [review] = get_reviews_for_app(db_path, app.id)
        assert review.app_id == "100"
        assert review.app_name == "Calm Mind"
        assert review.app_ref == app.id

    def test_latest_created_at_per_band(self, db_path):
        app = store_app(db_path)
        upsert_reviews(db_path, app.id, [make_review(1, 1)], NOW)
        upsert_reviews(db_path, app.id, [make_review(2, 5)], NOW + timedelta(hours=2))

        assert get_latest_review_created_at(db_path, app.id, BAND_LOW) == NOW
        assert get_latest_review_created_at(db_path, app.id, BAND_HIGH) == NOW + timedelta(hours=2)
        assert get_latest_review_created_at(db_path, 999) is None


class TestCascade:
    def test_delete_keyword_removes_children(self, db_path):
        app = store_app(db_path)
        other = store_app(db_path, "200", keyword="sleep")
        upsert_reviews(db_path, app.id, [make_review(1, 1)], NOW)
        upsert_reviews(db_path, other.id, [make_review(2, 1)], NOW)
        insert_screenshot_analysis(db_path, ScreenshotAnalysis(app_ref=app.id, screenshot_count=2,
                                                               analysis="text"), NOW)
        insert_aso_analysis(db_path, AsoAnalysis(app_ref=app.id, keyword="meditation",
                                                 competitor_count=3), NOW)

        assert delete_keyword_apps(db_path, "meditation") == 1

        assert count_rows(db_path, "apps") == 1
        assert count_rows(db_path, "reviews") == 1
        assert count_rows(db_path, "screenshot_analyses") == 0
        assert count_rows(db_path, "aso_analyses") == 0

    def test_unknown_table(self, db_path):
        with pytest.raises(ValueError):
            count_rows(db_path, "sqlite_master")


class TestAnalyses:
    def test_comprehensive_round_trip(self, db_path):
        analysis = ComprehensiveAnalysis(
            keyword="meditation", llm_analysis="{}", summary="S",
            table_stakes=[{"feature": "Timer"}], pain_points=[{"category": "Ads"}],
            differentiators=[{"opportunity": "Offline"}],
            competitive_summary={"top_3_table_stakes": ["Timer"]},
            total_low_reviews_analyzed=3, total_high_reviews_analyzed=4,
            personas=[{"name": "Parents"}], raw_persona_extractions=[{"phrase": "busy mom", "count": 2}],
            insider_language={"terms": []}, keyword_opportunities={"app_count": 3},
            llm_model="m",
        )
        saved = insert_analysis(db_path, analysis, NOW)
        loaded = get_analysis(db_path, saved.id)

        assert loaded.kind == KIND_COMPREHENSIVE
        assert loaded.pain_points == [{"category": "Ads"}]
        assert loaded.differentiators == [{"opportunity": "Offline"}]
        assert loaded.personas == [{"name": "Parents"}]
        assert loaded.raw_persona_extractions == [{"phrase": "busy mom", "count": 2}]
        assert loaded.keyword_opportunities == {"app_count": 3}
        assert loaded.total_reviews_analyzed == 7
        assert loaded.created_at == NOW

    def test_simple_round_trip(self, db_path):
        saved = insert_analysis(db_path, SimpleAnalysis(
            keyword="meditation", llm_analysis="{}", patterns=[{"category": "Bugs"}],
            total_reviews_analyzed=12), NOW)
        loaded = get_analysis(db_path, saved.id)

        assert isinstance(loaded, SimpleAnalysis)
        assert loaded.patterns == [{"category": "Bugs"}]
        assert loaded.total_reviews_analyzed == 12

    def test_latest_by_kind(self, db_path):
        insert_analysis(db_path, ComprehensiveAnalysis(keyword="k", llm_analysis="a"), NOW)
        insert_analysis(db_path, SimpleAnalysis(keyword="k", llm_analysis="b"), NOW + timedelta(hours=1))

        assert get_latest_analysis(db_path, "k").kind == KIND_SIMPLE
        assert get_latest_analysis(db_path, "k", kind=KIND_COMPREHENSIVE).llm_analysis == "a"
        assert get_latest_analysis(db_path, "k", since=NOW + timedelta(hours=2)) is None

    def test_history_and_keywords(self, db_path):
        insert_analysis(db_path, SimpleAnalysis(keyword="sleep", llm_analysis="x"), NOW)
        for hours in range(3):
            insert_analysis(db_path, SimpleAnalysis(keyword="meditation", llm_analysis=str(hours)),
                            NOW + timedelta(hours=hours + 1))

        history = list_analyses(db_path, "meditation", limit=2)
        assert [a.llm_analysis for a in history] == ["2", "1"]
        assert list_analyzed_keywords(db_path) == ["meditation", "sleep"]

    def test_requires_keyword(self, db_path):
        with pytest.raises(DataIntegrityError):
            insert_analysis(db_path, SimpleAnalysis(keyword="", llm_analysis="x"), NOW)


class TestScreenshotAndAso:
    def test_screenshot_count_must_be_positive(self, db_path):
        app = store_app(db_path)
        with pytest.raises(DataIntegrityError):
            insert_screenshot_analysis(db_path, ScreenshotAnalysis(app_ref=app.id, screenshot_count=0,
                                                                   analysis="text"), NOW)

    def test_latest_screenshot_analysis(self, db_path):
        app = store_app(db_path)
        for hours, text in ((0, "old"), (1, "new")):
            insert_screenshot_analysis(db_path, ScreenshotAnalysis(
                app_ref=app.id, screenshot_count=1, analysis=text,
                screenshot_urls=["https://img/1.png"]), NOW + timedelta(hours=hours))

        latest = get_latest_screenshot_analysis(db_path, app.id)
        assert latest.analysis == "new"
        assert latest.screenshot_urls == ["https://img/1.png"]

    def test_aso_round_trip(self, db_path):
        app = store_app(db_path)
        recs = {"competitive_summary": {"top_3_priorities": ["a", "b", "c", "d"]}}
        insert_aso_analysis(db_path, AsoAnalysis(app_ref=app.id, keyword="meditation", competitor_count=4,
                                                 competitor_app_ids=["1", "2"], recommendations=recs), NOW)

        stored = get_latest_aso_analysis(db_path, app.id, "meditation")
        assert stored.recommendations == recs
        assert stored.competitor_app_ids == ["1", "2"]
        assert stored.summary == ["a", "b", "c"]
        assert get_latest_aso_analysis(db_path, app.id, "sleep") is None

    def test_aso_negative_competitors_rejected(self, db_path):
        app = store_app(db_path)
        with pytest.raises(DataIntegrityError):
            insert_aso_analysis(db_path, AsoAnalysis(app_ref=app.id, keyword="k", competitor_count=-1), NOW)
