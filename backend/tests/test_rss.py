"""Tests for feed parsing and image candidate extraction."""

from datetime import UTC, datetime

import httpx
import pytest

from newsroom.services.images import filter_candidates, images_from_html, is_placeholder
from newsroom.services.language import detect_language
from newsroom.services.rss import FeedError, fetch_feed, parse_feed

FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example News</title>
    <item>
      <title>Parliament approves the 2026 budget</title>
      <link>https://news.test/politics/budget-approved</link>
      <guid>news-test-1001</guid>
      <pubDate>Tue, 03 Mar 2026 09:30:00 +0530</pubDate>
      <description><![CDATA[<p>The budget passed with 150 votes.</p><img src="https://cdn.test/img/logo.png"/>]]></description>
      <media:content url="https://cdn.test/photos/parliament.jpg" medium="image"/>
    </item>
    <item>
      <link>https://news.test/sports/cricket</link>
      <description><![CDATA[<p>Match report.</p><img src="/photos/stadium.jpg" width="800"/>]]></description>
    </item>
    <item>
      <title>No link here</title>
      <description>Skipped</description>
    </item>
  </channel>
</rss>
"""


class TestParseFeed:
    def test_normalizes_entries(self) -> None:
        items = parse_feed(FEED, "https://news.test/rss")

        assert len(items) == 2
        budget = items[0]
        assert budget.title == "Parliament approves the 2026 budget"
        assert budget.guid == "news-test-1001"
        assert budget.dedup_key == "news-test-1001"
        assert budget.published_at == datetime(2026, 3, 3, 4, 0, tzinfo=UTC)
        assert budget.content_text == "The budget passed with 150 votes."
        assert budget.image_url == "https://cdn.test/photos/parliament.jpg"
        assert budget.image_urls == ["https://cdn.test/photos/parliament.jpg"]

    def test_untitled_entry_uses_link_as_key_and_resolves_images(self) -> None:
        cricket = parse_feed(FEED)[1]

        assert cricket.title == "Untitled"
        assert cricket.dedup_key == "https://news.test/sports/cricket"
        assert cricket.image_url == "https://news.test/photos/stadium.jpg"

    def test_garbage_raises_feed_error(self) -> None:
        with pytest.raises(FeedError):
            parse_feed(b"\x00\x01 not a feed <<<", "https://news.test/broken")


class TestFetchFeed:
    async def test_http_errors_propagate(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await fetch_feed(client, "https://news.test/rss")

    async def test_parses_downloaded_feed(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=FEED))
        async with httpx.AsyncClient(transport=transport) as client:
            items = await fetch_feed(client, "https://news.test/rss")

        assert [item.url for item in items] == [
            "https://news.test/politics/budget-approved",
            "https://news.test/sports/cricket",
        ]


class TestImages:
    @pytest.mark.parametrize(
        "url",
        [
            "https://cdn.test/static/logo.png",
            "https://cdn.test/favicon.ico",
            "https://ads.test/ad-banner.gif",
            "https://cdn.test/img/photo-50x50.jpg",
        ],
    )
    def test_placeholders_are_rejected(self, url: str) -> None:
        assert is_placeholder(url)

    def test_real_photos_are_kept(self) -> None:
        assert not is_placeholder("https://cdn.test/photos/road-accident-1200x800.jpg")
        assert not is_placeholder("https://cdn.test/photos/silicon-valley.jpg")

    def test_og_image_and_small_images(self) -> None:
        html = """
        <html><head><meta property="og:image" content="https://cdn.test/og/lead.jpg"></head>
        <body><img src="https://cdn.test/tiny.gif" width="1" height="1"><img src="/photos/a.jpg"></body></html>
        """
        assert images_from_html(html, base_url="https://news.test/story") == [
            "https://cdn.test/og/lead.jpg",
            "https://news.test/photos/a.jpg",
        ]

    def test_filter_candidates_dedupes_in_order(self) -> None:
        urls = ["https://a.test/1.jpg", None, "ftp://a.test/2.jpg", "https://a.test/1.jpg", "https://a.test/3.jpg"]
        assert filter_candidates(urls) == ["https://a.test/1.jpg", "https://a.test/3.jpg"]


class TestLanguageDetection:
    def test_scripts(self) -> None:
        assert detect_language("Floods close roads in Colombo") == "en"
        assert detect_language("බස්නාහිර පළාතේ ගංවතුර තත්ත්වය") == "si"
        assert detect_language("கொழும்பில் வெள்ளம்") == "ta"

    def test_falls_back_to_hint(self) -> None:
        assert detect_language("2026", hint="si") == "si"
        assert detect_language("") == "unk"
