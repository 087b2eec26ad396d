import json
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import requests

from appintel.metadata import MetadataScraper, parse_page


def page(body):
    return f"<html><head></head><body>{body}</body></html>"


def response(status=200, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.text = text
    return resp


class TestParsePage:
    def test_selectors(self):
        html = page('<h2 class="product-header__subtitle"> Sleep better </h2>'
                    '<section class="section--hero"><p>New: <b>winter</b> stories</p></section>')
        metadata = parse_page(html)

        assert metadata.subtitle == "Sleep better"
        assert metadata.promotional_text == "New: winter stories"
        assert metadata.success is True

    def test_json_ld_fallback(self):
        ld = {"@type": "SoftwareApplication", "alternativeHeadline": "Breathe",
              "description": "x" * 300}
        html = page(f'<script type="application/ld+json">{json.dumps(ld)}</script>')
        metadata = parse_page(html)

        assert metadata.subtitle == "Breathe"
        assert len(metadata.promotional_text) == 170

    def test_ignores_other_json_ld_types(self):
        ld = {"@type": "Organization", "alternativeHeadline": "Nope"}
        html = page('<script type="application/ld+json">not json</script>'
                    f'<script type="application/ld+json">{json.dumps(ld)}</script>')
        assert parse_page(html).subtitle is None

    def test_nothing_found(self):
        metadata = parse_page(page("<div>hello</div>"))
        assert metadata.subtitle is None
        assert metadata.promotional_text is None
        assert metadata.success is False


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def scraper(settings, session, sleeps):
    return MetadataScraper(settings, country="gb", session=session, sleep=sleeps.append)


class TestScraper:
    def test_url(self, scraper):
        assert scraper.build_url("123") == "https://apps.apple.com/gb/app/id123"

    def test_retries_429_with_backoff(self, scraper, session, sleeps):
        session.get.side_effect = [
            response(429), response(429),
            response(200, page('<h2 class="subtitle">Focus</h2>')),
        ]
        metadata = scraper.fetch_metadata("123")

        assert metadata.subtitle == "Focus"
        assert sleeps == [2, 4]

    def test_gives_up_after_max_retries(self, scraper, session, sleeps):
        session.get.return_value = response(429)
        metadata = scraper.fetch_metadata("123")

        assert metadata.success is False
        assert "Rate limited" in metadata.error
        assert sleeps == [2, 4, 8]
        assert session.get.call_count == 4

    def test_timeout_is_retried(self, scraper, session, sleeps):
        session.get.side_effect = [requests.Timeout("slow"), response(200, page('<h2 class="subtitle">A</h2>'))]
        assert scraper.fetch_metadata("123").subtitle == "A"
        assert sleeps == [2]

    def test_http_error(self, scraper, session):
        session.get.return_value = response(404)
        metadata = scraper.fetch_metadata("123")
        assert metadata.success is False
        assert metadata.error == "HTTP 404"

    def test_connection_error_not_retried(self, scraper, session, sleeps):
        session.get.side_effect = requests.ConnectionError("down")
        assert scraper.fetch_metadata("123").success is False
        assert sleeps == []

    def test_rate_limit_between_requests(self, settings, session, sleeps):
        slow = replace(settings, cache=replace(settings.cache, scraper_delay_seconds=2.0))
        ticks = iter([0.0, 0.5, 2.5])
        scraper = MetadataScraper(slow, session=session, sleep=sleeps.append, clock=lambda: next(ticks))
        session.get.return_value = response(200, page(""))

        scraper.fetch_all_metadata(["1", "2"])

        assert sleeps == [1.5]

    def test_fetch_all(self, scraper, session):
        session.get.side_effect = [response(200, page('<h2 class="subtitle">A</h2>')), response(500)]
        results = scraper.fetch_all_metadata(["1", "2"])
        assert results["1"].success is True
        assert results["2"].success is False
