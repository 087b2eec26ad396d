"""
Database layer — the cache behind every fetch-or-reuse decision.

One SQLite file holds everything:
    - apps:                 one row per (app_id, keyword); the same app found
                            under two keywords is two independent rows
    - reviews:              one row per review_id, owned by an app row
    - analyses:             append-only LLM syntheses, keyed by keyword
    - screenshot_analyses:  append-only, owned by an app row
    - aso_analyses:         append-only, owned by an app row + keyword

Deleting an app row cascades to its reviews and analyses.
Nested structures (pain points, personas, recommendations...) are stored as
JSON text and decoded on the way out. Timestamps are ISO strings written by
Python, so they compare correctly against the `now` the caller passes in.
"""

import json
import os
import sqlite3
from datetime import datetime
from typing import Optional

from appintel.errors import DataIntegrityError
from appintel.models import (
    App, AsoAnalysis, ComprehensiveAnalysis, Review, ScreenshotAnalysis, SimpleAnalysis,
    BANDS, KIND_COMPREHENSIVE, KIND_SIMPLE, COMPREHENSIVE_SCHEMA_VERSION, SIMPLE_SCHEMA_VERSION,
)

# Fields refreshed when a cached app row is older than the app-list TTL
APP_MUTABLE_FIELDS = ("name", "developer", "version", "average_rating", "rating_count")


def _get_connection(db_path: str) -> sqlite3.Connection:
    """Open the database with dict-like rows and foreign keys enforced."""
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _table_exists(cursor, table_name: str) -> bool:
    cursor.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
        (table_name,)
    )
    return cursor.fetchone() is not None


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def _dump(value) -> str:
    return json.dumps(value if value is not None else None)


def _load(value, default):
    """Decode a JSON column, falling back to `default` for NULL or junk."""
    if value is None or value == "":
        return default
    try:
        decoded = json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return default
    return decoded if isinstance(decoded, type(default)) else default


def initialize_database(db_path: str) -> None:
    """
    Create all tables. Safe to call on every run: 'IF NOT EXISTS' leaves
    existing tables and data alone.
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS apps (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            app_id          TEXT NOT NULL,
            keyword         TEXT NOT NULL,
            name            TEXT NOT NULL,
            developer       TEXT,
            bundle_id       TEXT,
            price           REAL,
            currency        TEXT,
            average_rating  REAL,
            rating_count    INTEGER,
            version         TEXT,
            description     TEXT,
            icon_url        TEXT,
            search_rank     INTEGER,
            reviews_fetched_at TEXT,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            UNIQUE(app_id, keyword)
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_apps_keyword ON apps(keyword)")
    # Databases created before reviews_fetched_at existed
    cursor.execute("PRAGMA table_info(apps)")
    if "reviews_fetched_at" not in [row["name"] for row in cursor.fetchall()]:
        cursor.execute("ALTER TABLE apps ADD COLUMN reviews_fetched_at TEXT")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS reviews (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            app_ref         INTEGER NOT NULL REFERENCES apps(id) ON DELETE CASCADE,
            review_id       TEXT NOT NULL UNIQUE,
            author          TEXT,
            title           TEXT,
            content         TEXT,
            rating          INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
            version         TEXT,
            published_at    TEXT,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_reviews_app ON reviews(app_ref, rating)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS analyses (
            id                          INTEGER PRIMARY KEY AUTOINCREMENT,
            keyword                     TEXT NOT NULL,
            kind                        TEXT NOT NULL,
            schema_version              INTEGER NOT NULL,
            llm_analysis                TEXT,
            summary                     TEXT,
            patterns                    TEXT,
            opportunities               TEXT,
            table_stakes                TEXT,
            competitive_summary         TEXT,
            total_reviews_analyzed      INTEGER DEFAULT 0,
            total_low_reviews_analyzed  INTEGER DEFAULT 0,
            total_high_reviews_analyzed INTEGER DEFAULT 0,
            personas                    TEXT DEFAULT '[]',
            raw_persona_extractions     TEXT DEFAULT '[]',
            insider_language            TEXT DEFAULT '{}',
            keyword_opportunities       TEXT DEFAULT '{}',
            llm_model                   TEXT,
            created_at                  TEXT NOT NULL
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_analyses_keyword ON analyses(keyword, created_at)")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS screenshot_analyses (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            app_ref             INTEGER NOT NULL REFERENCES apps(id) ON DELETE CASCADE,
            screenshot_count    INTEGER NOT NULL CHECK (screenshot_count > 0),
            analysis            TEXT NOT NULL,
            screenshot_urls     TEXT DEFAULT '[]',
            llm_model           TEXT,
            created_at          TEXT NOT NULL
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS aso_analyses (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            app_ref             INTEGER NOT NULL REFERENCES apps(id) ON DELETE CASCADE,
            keyword             TEXT NOT NULL,
            competitor_count    INTEGER NOT NULL,
            competitor_app_ids  TEXT DEFAULT '[]',
            llm_analysis        TEXT,
            recommendations     TEXT DEFAULT '{}',
            llm_model           TEXT,
            created_at          TEXT NOT NULL
        )
    """)
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_aso_app_keyword ON aso_analyses(app_ref, keyword)")

    conn.commit()
    conn.close()


# ============================================================
# APPS
# ============================================================

def _row_to_app(row) -> App:
    return App(
        id=row["id"],
        app_id=row["app_id"],
        keyword=row["keyword"],
        name=row["name"],
        developer=row["developer"],
        bundle_id=row["bundle_id"],
        price=row["price"],
        currency=row["currency"],
        rating=row["average_rating"],
        rating_count=row["rating_count"],
        version=row["version"],
        description=row["description"],
        icon_url=row["icon_url"],
        search_rank=row["search_rank"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        reviews_fetched_at=_parse_ts(row["reviews_fetched_at"]),
    )


def upsert_app(db_path: str, app: App, now: datetime, refresh_before: datetime) -> App:
    """
    Create the (app_id, keyword) row if it's new. If it exists and was created
    before `refresh_before`, overwrite the mutable listing fields; identity and
    created_at never change. Otherwise leave it untouched.
    """
    if not app.app_id or not app.name or not app.keyword:
        raise DataIntegrityError(f"App requires app_id, name and keyword (got {app.app_id!r})")

    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM apps WHERE app_id = ? AND keyword = ?", (app.app_id, app.keyword))
    existing = cursor.fetchone()

    if existing is None:
        cursor.execute("""
            INSERT INTO apps
            (app_id, keyword, name, developer, bundle_id, price, currency, average_rating,
             rating_count, version, description, icon_url, search_rank, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            app.app_id, app.keyword, app.name, app.developer, app.bundle_id, app.price,
            app.currency, app.rating, app.rating_count, app.version, app.description,
            app.icon_url, app.search_rank, _ts(now), _ts(now),
        ))
        row_id = cursor.lastrowid
    else:
        row_id = existing["id"]
        created_at = _parse_ts(existing["created_at"])
        if created_at is None or created_at < refresh_before:
            cursor.execute(f"""
                UPDATE apps SET {", ".join(f"{col} = ?" for col in APP_MUTABLE_FIELDS)}, updated_at = ?
                WHERE id = ?
            """, (app.name, app.developer, app.version, app.rating, app.rating_count,
                  _ts(now), row_id))

    conn.commit()
    cursor.execute("SELECT * FROM apps WHERE id = ?", (row_id,))
    stored = _row_to_app(cursor.fetchone())
    conn.close()
    return stored


def get_apps_for_keyword(db_path: str, keyword: str) -> list[App]:
    """Cached apps for a keyword, in search-rank order."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "apps"):
        conn.close()
        return []
    cursor.execute(
        "SELECT * FROM apps WHERE keyword = ? ORDER BY search_rank IS NULL, search_rank ASC, id ASC",
        (keyword,)
    )
    apps = [_row_to_app(row) for row in cursor.fetchall()]
    conn.close()
    return apps


def get_app(db_path: str, app_id: str, keyword: str) -> Optional[App]:
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("SELECT * FROM apps WHERE app_id = ? AND keyword = ?", (app_id, keyword))
    row = cursor.fetchone()
    conn.close()
    return _row_to_app(row) if row else None


def delete_keyword_apps(db_path: str, keyword: str) -> int:
    """
    Forget every app cached under a keyword. Reviews, screenshot analyses and
    ASO analyses go with them (ON DELETE CASCADE). Returns apps deleted.
    """
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "apps"):
        conn.close()
        return 0
    cursor.execute("DELETE FROM apps WHERE keyword = ?", (keyword,))
    deleted = cursor.rowcount
    conn.commit()
    conn.close()
    return deleted


def mark_reviews_fetched(db_path: str, app_ref: int, now: datetime) -> None:
    """Record a completed review-feed walk for one app row, even one that found nothing."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("UPDATE apps SET reviews_fetched_at = ? WHERE id = ?", (_ts(now), app_ref))
    conn.commit()
    conn.close()


# ============================================================
# REVIEWS
# ============================================================

def _row_to_review(row) -> Review:
    return Review(
        review_id=row["review_id"],
        rating=row["rating"],
        title=row["title"],
        content=row["content"],
        author=row["author"],
        version=row["version"],
        published_at=_parse_ts(row["published_at"]),
        app_ref=row["app_ref"],
        app_id=row["app_id"],
        app_name=row["app_name"],
        created_at=_parse_ts(row["created_at"]),
    )


def _validate_review(review: Review) -> None:
    if not review.review_id:
        raise DataIntegrityError("Review is missing review_id")
    if not isinstance(review.rating, int) or not 1 <= review.rating <= 5:
        raise DataIntegrityError(f"Review {review.review_id} has rating {review.rating!r}, expected 1-5")


def upsert_reviews(db_path: str, app_ref: int, reviews: list[Review], now: datetime) -> int:
    """
    Save reviews for one app row.

    Upserts by review_id, so a review found again (even through another app
    row) is updated in place, never duplicated; its created_at is kept.
    Validation failures raise DataIntegrityError. A row SQLite rejects is
    reported and skipped so the rest of the batch still lands.

    Returns the number of reviews that were new.
    """
    for review in reviews:
        _validate_review(review)

    conn = _get_connection(db_path)
    cursor = conn.cursor()

    inserted = 0
    for review in reviews:
        cursor.execute("SELECT 1 FROM reviews WHERE review_id = ?", (review.review_id,))
        is_new = cursor.fetchone() is None
        try:
            cursor.execute("""
                INSERT INTO reviews
                (app_ref, review_id, author, title, content, rating, version, published_at,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(review_id) DO UPDATE SET
                    app_ref = excluded.app_ref,
                    author = excluded.author,
                    title = excluded.title,
                    content = excluded.content,
                    rating = excluded.rating,
                    version = excluded.version,
                    published_at = excluded.published_at,
                    updated_at = excluded.updated_at
            """, (
                app_ref, review.review_id, review.author, review.title, review.content,
                review.rating, review.version, _ts(review.published_at), _ts(now), _ts(now),
            ))
            if is_new:
                inserted += 1
        except sqlite3.IntegrityError as e:
            print(f"  Error storing review {review.review_id}: {e}")

    conn.commit()
    conn.close()
    return inserted


def _band_clause(band: Optional[str]) -> tuple[str, tuple]:
    if band is None:
        return "", ()
    ratings = BANDS[band]
    return f" AND r.rating IN ({', '.join('?' for _ in ratings)})", tuple(ratings)


def get_reviews_for_app(db_path: str, app_ref: int, band: Optional[str] = None) -> list[Review]:
    """Stored reviews of one app row, newest first, optionally one rating band."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "reviews"):
        conn.close()
        return []
    clause, params = _band_clause(band)
    cursor.execute(f"""
        SELECT r.*, a.app_id AS app_id, a.name AS app_name
        FROM reviews r JOIN apps a ON a.id = r.app_ref
        WHERE r.app_ref = ?{clause}
        ORDER BY r.published_at DESC, r.id ASC
    """, (app_ref, *params))
    reviews = [_row_to_review(row) for row in cursor.fetchall()]
    conn.close()
    return reviews


def get_latest_review_created_at(db_path: str, app_ref: int,
                                 band: Optional[str] = None) -> Optional[datetime]:
    """When we last stored a review for this app (and band)."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "reviews"):
        conn.close()
        return None
    clause, params = _band_clause(band)
    cursor.execute(f"SELECT MAX(r.created_at) FROM reviews r WHERE r.app_ref = ?{clause}",
                   (app_ref, *params))
    row = cursor.fetchone()
    conn.close()
    return _parse_ts(row[0]) if row else None


def count_reviews_for_app(db_path: str, app_ref: int, band: Optional[str] = None) -> int:
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "reviews"):
        conn.close()
        return 0
    clause, params = _band_clause(band)
    cursor.execute(f"SELECT COUNT(*) FROM reviews r WHERE r.app_ref = ?{clause}", (app_ref, *params))
    count = cursor.fetchone()[0]
    conn.close()
    return count


def count_rows(db_path: str, table: str) -> int:
    """Total rows in one of our tables. The analyze command prints these after a run."""
    if table not in ("apps", "reviews", "analyses", "screenshot_analyses", "aso_analyses"):
        raise ValueError(f"Unknown table: {table}")
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, table):
        conn.close()
        return 0
    cursor.execute(f"SELECT COUNT(*) FROM {table}")
    count = cursor.fetchone()[0]
    conn.close()
    return count


# ============================================================
# TEXTUAL ANALYSES
# ============================================================

def _row_to_analysis(row):
    """Rebuild the analysis variant recorded in the row's `kind` column."""
    common = dict(
        id=row["id"],
        keyword=row["keyword"],
        llm_analysis=row["llm_analysis"] or "",
        summary=row["summary"],
        llm_model=row["llm_model"],
        created_at=_parse_ts(row["created_at"]),
    )
    if row["kind"] == KIND_SIMPLE:
        return SimpleAnalysis(
            patterns=_load(row["patterns"], []),
            opportunities=_load(row["opportunities"], []),
            total_reviews_analyzed=row["total_reviews_analyzed"] or 0,
            schema_version=row["schema_version"],
            **common,
        )
    return ComprehensiveAnalysis(
        table_stakes=_load(row["table_stakes"], []),
        pain_points=_load(row["patterns"], []),
        differentiators=_load(row["opportunities"], []),
        competitive_summary=_load(row["competitive_summary"], {}),
        total_low_reviews_analyzed=row["total_low_reviews_analyzed"] or 0,
        total_high_reviews_analyzed=row["total_high_reviews_analyzed"] or 0,
        personas=_load(row["personas"], []),
        raw_persona_extractions=_load(row["raw_persona_extractions"], []),
        insider_language=_load(row["insider_language"], {}),
        keyword_opportunities=_load(row["keyword_opportunities"], {}),
        schema_version=row["schema_version"],
        **common,
    )


def insert_analysis(db_path: str, analysis, now: datetime):
    """
    Append an analysis row. The variant's kind and schema version are written
    alongside it so reads never have to guess the shape from the text.
    Returns the analysis with id and created_at filled in.
    """
    if not analysis.keyword:
        raise DataIntegrityError("Analysis requires a keyword")

    if analysis.kind == KIND_SIMPLE:
        values = dict(
            kind=KIND_SIMPLE, schema_version=SIMPLE_SCHEMA_VERSION,
            patterns=_dump(analysis.patterns), opportunities=_dump(analysis.opportunities),
            table_stakes=_dump([]), competitive_summary=_dump({}),
            total_reviews_analyzed=analysis.total_reviews_analyzed,
            total_low_reviews_analyzed=analysis.total_reviews_analyzed,
            total_high_reviews_analyzed=0,
            personas=_dump([]), raw_persona_extractions=_dump([]),
            insider_language=_dump({}), keyword_opportunities=_dump({}),
        )
    else:
        values = dict(
            kind=KIND_COMPREHENSIVE, schema_version=COMPREHENSIVE_SCHEMA_VERSION,
            patterns=_dump(analysis.pain_points), opportunities=_dump(analysis.differentiators),
            table_stakes=_dump(analysis.table_stakes),
            competitive_summary=_dump(analysis.competitive_summary),
            total_reviews_analyzed=analysis.total_reviews_analyzed,
            total_low_reviews_analyzed=analysis.total_low_reviews_analyzed,
            total_high_reviews_analyzed=analysis.total_high_reviews_analyzed,
            personas=_dump(analysis.personas),
            raw_persona_extractions=_dump(analysis.raw_persona_extractions),
            insider_language=_dump(analysis.insider_language),
            keyword_opportunities=_dump(analysis.keyword_opportunities),
        )
    values.update(
        keyword=analysis.keyword, llm_analysis=analysis.llm_analysis, summary=analysis.summary,
        llm_model=analysis.llm_model, created_at=_ts(now),
    )

    conn = _get_connection(db_path)
    cursor = conn.cursor()
    columns = list(values)
    cursor.execute(
        f"INSERT INTO analyses ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
        tuple(values[c] for c in columns)
    )
    analysis.id = cursor.lastrowid
    analysis.created_at = now
    conn.commit()
    conn.close()
    return analysis


def get_latest_analysis(db_path: str, keyword: str, kind: Optional[str] = None,
                        since: Optional[datetime] = None):
    """Newest analysis for a keyword, optionally of one kind and created after `since`."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "analyses"):
        conn.close()
        return None
    query = "SELECT * FROM analyses WHERE keyword = ?"
    params = [keyword]
    if kind:
        query += " AND kind = ?"
        params.append(kind)
    if since:
        query += " AND created_at > ?"
        params.append(_ts(since))
    cursor.execute(query + " ORDER BY created_at DESC, id DESC LIMIT 1", params)
    row = cursor.fetchone()
    conn.close()
    return _row_to_analysis(row) if row else None


def list_analyses(db_path: str, keyword: str, limit: int = 10) -> list:
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "analyses"):
        conn.close()
        return []
    cursor.execute(
        "SELECT * FROM analyses WHERE keyword = ? ORDER BY created_at DESC, id DESC LIMIT ?",
        (keyword, limit)
    )
    rows = [_row_to_analysis(row) for row in cursor.fetchall()]
    conn.close()
    return rows


def get_analysis(db_path: str, analysis_id: int):
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "analyses"):
        conn.close()
        return None
    cursor.execute("SELECT * FROM analyses WHERE id = ?", (analysis_id,))
    row = cursor.fetchone()
    conn.close()
    return _row_to_analysis(row) if row else None


def list_analyzed_keywords(db_path: str) -> list[str]:
    """Keywords with at least one stored analysis, most recently analyzed first."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "analyses"):
        conn.close()
        return []
    cursor.execute("SELECT keyword FROM analyses GROUP BY keyword ORDER BY MAX(created_at) DESC")
    keywords = [row[0] for row in cursor.fetchall()]
    conn.close()
    return keywords


# ============================================================
# SCREENSHOT ANALYSES
# ============================================================

def _row_to_screenshot_analysis(row) -> ScreenshotAnalysis:
    return ScreenshotAnalysis(
        id=row["id"],
        app_ref=row["app_ref"],
        screenshot_count=row["screenshot_count"],
        analysis=row["analysis"],
        screenshot_urls=_load(row["screenshot_urls"], []),
        llm_model=row["llm_model"],
        created_at=_parse_ts(row["created_at"]),
    )


def insert_screenshot_analysis(db_path: str, record: ScreenshotAnalysis,
                               now: datetime) -> ScreenshotAnalysis:
    if not record.screenshot_count or record.screenshot_count <= 0 or not record.analysis:
        raise DataIntegrityError("Screenshot analysis needs a positive screenshot_count and text")

    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO screenshot_analyses
        (app_ref, screenshot_count, analysis, screenshot_urls, llm_model, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (record.app_ref, record.screenshot_count, record.analysis,
          _dump(record.screenshot_urls), record.llm_model, _ts(now)))
    record.id = cursor.lastrowid
    record.created_at = now
    conn.commit()
    conn.close()
    return record


def list_screenshot_analyses(db_path: str, app_ref: int, limit: int = 5) -> list[ScreenshotAnalysis]:
    """Screenshot analyses for one app row, newest first."""
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "screenshot_analyses"):
        conn.close()
        return []
    cursor.execute(
        "SELECT * FROM screenshot_analyses WHERE app_ref = ? ORDER BY created_at DESC, id DESC LIMIT ?",
        (app_ref, limit)
    )
    rows = [_row_to_screenshot_analysis(row) for row in cursor.fetchall()]
    conn.close()
    return rows


def get_latest_screenshot_analysis(db_path: str, app_ref: int) -> Optional[ScreenshotAnalysis]:
    rows = list_screenshot_analyses(db_path, app_ref, limit=1)
    return rows[0] if rows else None


# ============================================================
# ASO ANALYSES
# ============================================================

def _row_to_aso_analysis(row) -> AsoAnalysis:
    return AsoAnalysis(
        id=row["id"],
        app_ref=row["app_ref"],
        keyword=row["keyword"],
        competitor_count=row["competitor_count"],
        competitor_app_ids=_load(row["competitor_app_ids"], []),
        llm_analysis=row["llm_analysis"],
        recommendations=_load(row["recommendations"], {}),
        llm_model=row["llm_model"],
        created_at=_parse_ts(row["created_at"]),
    )


def insert_aso_analysis(db_path: str, record: AsoAnalysis, now: datetime) -> AsoAnalysis:
    if not record.keyword or record.competitor_count is None or record.competitor_count < 0:
        raise DataIntegrityError("ASO analysis needs a keyword and a competitor_count")

    conn = _get_connection(db_path)
    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO aso_analyses
        (app_ref, keyword, competitor_count, competitor_app_ids, llm_analysis,
         recommendations, llm_model, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    """, (record.app_ref, record.keyword, record.competitor_count,
          _dump(record.competitor_app_ids), record.llm_analysis,
          _dump(record.recommendations), record.llm_model, _ts(now)))
    record.id = cursor.lastrowid
    record.created_at = now
    conn.commit()
    conn.close()
    return record


def get_latest_aso_analysis(db_path: str, app_ref: int, keyword: str) -> Optional[AsoAnalysis]:
    conn = _get_connection(db_path)
    cursor = conn.cursor()
    if not _table_exists(cursor, "aso_analyses"):
        conn.close()
        return None
    cursor.execute("""
        SELECT * FROM aso_analyses WHERE app_ref = ? AND keyword = ?
        ORDER BY created_at DESC, id DESC LIMIT 1
    """, (app_ref, keyword))
    row = cursor.fetchone()
    conn.close()
    return _row_to_aso_analysis(row) if row else None
