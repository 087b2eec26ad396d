from unittest.mock import MagicMock

import pytest
import requests

from appintel.catalog import CatalogFetcher, parse_review_entry, parse_search_results
from appintel.errors import CatalogError
from appintel.models import BAND_HIGH, BAND_LOW


def response(json_data=None, status=200, content=b"", headers=None):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.reason = "Error" if status >= 400 else "OK"
    resp.json.return_value = json_data
    resp.content = content
    resp.headers = headers or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}")
    return resp


def rss_entry(review_id, rating, title="t", content="c"):
    return {
        "id": {"label": review_id},
        "im:rating": {"label": str(rating)},
        "title": {"label": title},
        "content": {"label": content, "attributes": {"type": "text"}},
        "author": {"name": {"label": "someone"}},
        "im:version": {"label": "2.1"},
        "updated": {"label": "2025-06-30T08:00:00-07:00"},
    }


def feed(*entries):
    return {"feed": {"entry": list(entries)}}


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def fetcher(settings, session):
    return CatalogFetcher(settings, session=session, sleep=lambda s: None)


class TestParsers:
    def test_search_results_ranked(self):
        data = {"resultCount": 2, "results": [
            {"trackId": 11, "trackName": "Calm", "artistName": "Calm.com", "averageUserRating": 4.8,
             "userRatingCount": 1000, "artworkUrl100": "https://icon"},
            {"trackId": 22, "trackName": "Headspace"},
        ]}
        apps = parse_search_results(data, "meditation")

        assert [(a.app_id, a.search_rank) for a in apps] == [("11", 1), ("22", 2)]
        assert apps[0].rating == 4.8
        assert apps[0].icon_url == "https://icon"
        assert all(a.keyword == "meditation" for a in apps)

    def test_search_results_malformed(self):
        assert parse_search_results({}, "k") == []
        assert parse_search_results({"results": "nope"}, "k") == []
        assert parse_search_results(None, "k") == []

    def test_review_entry(self):
        review = parse_review_entry(rss_entry("r1", 2, title="Bad"), "11")
        assert review.review_id == "r1"
        assert review.rating == 2
        assert review.title == "Bad"
        assert review.author == "someone"
        assert review.app_id == "11"
        assert review.published_at.hour == 8
        assert review.published_at.tzinfo is None

    def test_entry_without_rating_is_skipped(self):
        # The first feed entry is the app itself
        assert parse_review_entry({"id": {"label": "app"}, "im:name": {"label": "Calm"}}, "11") is None


class TestSearch:
    def test_search(self, fetcher, session):
        session.get.return_value = response({"results": [{"trackId": 1, "trackName": "A"}]})

        apps = fetcher.search("sleep", limit=5, country="gb")

        assert apps[0].app_id == "1"
        _, kwargs = session.get.call_args
        assert kwargs["params"] == {"term": "sleep", "country": "gb", "entity": "software", "limit": 5}

    def test_http_error(self, fetcher, session):
        session.get.return_value = response(status=503)
        with pytest.raises(CatalogError):
            fetcher.search("sleep")


class TestReviews:
    def test_walks_pages_until_empty(self, fetcher, session):
        session.get.side_effect = [
            response(feed(rss_entry("1", 1), rss_entry("2", 5))),
            response(feed(rss_entry("3", 3))),
            response({"feed": {}}),
        ]
        reviews = fetcher.fetch_all_reviews("11")

        assert [r.review_id for r in reviews] == ["1", "2", "3"]
        assert session.get.call_count == 3
        assert "page=2/id=11" in session.get.call_args_list[1][0][0]

    def test_single_entry_object(self, fetcher, session):
        session.get.side_effect = [response({"feed": {"entry": rss_entry("1", 4)}}), response({"feed": {}})]
        assert len(fetcher.fetch_all_reviews("11")) == 1

    def test_failed_page_keeps_earlier_pages(self, fetcher, session):
        session.get.side_effect = [response(feed(rss_entry("1", 1))), response(status=500)]
        assert [r.review_id for r in fetcher.fetch_all_reviews("11")] == ["1"]

    def test_stops_at_page_cap(self, fetcher, session):
        session.get.return_value = response(feed(rss_entry("1", 1)))
        fetcher.fetch_all_reviews("11", max_pages=3)
        assert session.get.call_count == 3

    def test_band_filter(self, fetcher, session):
        entries = feed(*(rss_entry(str(r), r) for r in range(1, 6)))
        session.get.side_effect = [response(entries), response({"feed": {}})]
        assert {r.rating for r in fetcher.fetch_reviews("11", band=BAND_LOW)} == {1, 2}

        session.get.side_effect = [response(entries), response({"feed": {}})]
        assert {r.rating for r in fetcher.fetch_reviews("11", band=BAND_HIGH)} == {4, 5}

    def test_no_band_keeps_both_bands_from_one_walk(self, fetcher, session):
        entries = feed(*(rss_entry(str(r), r) for r in range(1, 6)))
        session.get.side_effect = [response(entries), response({"feed": {}})]

        assert sorted(r.rating for r in fetcher.fetch_reviews("11")) == [1, 2, 4, 5]
        assert session.get.call_count == 2

    def test_first_page_failure_raises(self, fetcher, session):
        session.get.side_effect = requests.ConnectionError("offline")
        with pytest.raises(CatalogError):
            fetcher.fetch_all_reviews("11")

    def test_first_page_http_error_raises(self, fetcher, session):
        session.get.return_value = response(status=503)
        with pytest.raises(CatalogError):
            fetcher.fetch_all_reviews("11")

    def test_feed_without_entries_is_empty_not_an_error(self, fetcher, session):
        session.get.return_value = response({"feed": {}})
        assert fetcher.fetch_all_reviews("11") == []


class TestDetailsAndScreenshots:
    def test_details(self, fetcher, session):
        session.get.return_value = response({"results": [{
            "trackName": "Calm", "bundleId": "com.calm", "screenshotUrls": ["https://s/1.png"],
            "averageUserRating": 4.7, "userRatingCount": 50,
        }]})
        details = fetcher.fetch_app_details("11")

        assert details.app_name == "Calm"
        assert details.screenshot_urls == ["https://s/1.png"]
        assert details.ipad_screenshot_urls == []
        assert details.rating_count == 50

    def test_details_not_found(self, fetcher, session):
        session.get.return_value = response({"results": []})
        assert fetcher.fetch_app_details("11") is None

    def test_details_network_error(self, fetcher, session):
        session.get.side_effect = requests.ConnectionError("down")
        assert fetcher.fetch_app_details("11") is None

    def test_download(self, fetcher, session):
        session.get.return_value = response(content=b"\x89PNG", headers={"content-type": "image/jpeg"})
        assert fetcher.download_screenshot("https://s/1.png") == (b"\x89PNG", "image/jpeg")

    def test_download_failure(self, fetcher, session):
        session.get.return_value = response(status=404)
        assert fetcher.download_screenshot("https://s/1.png") is None
