"""RSS/Atom fetching and entry normalization."""

import logging
from datetime import UTC, datetime
from time import struct_time
from typing import Any

import feedparser
import httpx

from newsroom.schemas.feed import FeedItem
from newsroom.services.images import filter_candidates, images_from_html, is_http_url
from newsroom.utils.text import strip_html, truncate

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 400


class FeedError(Exception):
    """The feed could not be downloaded or parsed."""


async def fetch_feed(client: httpx.AsyncClient, url: str) -> list[FeedItem]:
    """Download and parse one feed. HTTP errors propagate for the retry layer."""
    response = await client.get(url)
    response.raise_for_status()
    return parse_feed(response.content, url)


def parse_feed(content: bytes | str, url: str = "") -> list[FeedItem]:
    """Parse feed bytes into normalized items, skipping unusable entries."""
    parsed = feedparser.parse(content)
    if parsed.bozo and not parsed.entries:
        raise FeedError(f"Unparseable feed {url}: {parsed.get('bozo_exception')}")

    items: list[FeedItem] = []
    for entry in parsed.entries:
        item = normalize_entry(entry)
        if item is not None:
            items.append(item)
    return items


def normalize_entry(entry: Any) -> FeedItem | None:
    """Turn one feedparser entry into a FeedItem; None when it has no usable link."""
    link = (entry.get("link") or "").strip()
    if not is_http_url(link):
        return None

    html = _entry_html(entry)
    text = strip_html(html)
    images = filter_candidates([*_media_images(entry), *images_from_html(html, base_url=link)])

    return FeedItem(
        title=strip_html(entry.get("title")) or "Untitled",
        url=link,
        guid=entry.get("id") or entry.get("guid") or None,
        published_at=_entry_datetime(entry),
        content_text=text or None,
        excerpt=truncate(text, EXCERPT_CHARS) if text else None,
        image_url=images[0] if images else None,
        image_urls=images,
    )


def _entry_html(entry: Any) -> str:
    content = entry.get("content")
    if content:
        return content[0].get("value", "")
    return entry.get("summary") or entry.get("description") or ""


def _media_images(entry: Any) -> list[str]:
    """Images declared by media:content, media:thumbnail and enclosures, in that order."""
    urls: list[str] = []
    for media in entry.get("media_content") or []:
        medium = media.get("medium") or ""
        mime = media.get("type") or ""
        if media.get("url") and (medium == "image" or mime.startswith("image/") or not (medium or mime)):
            urls.append(media["url"])
    for thumb in entry.get("media_thumbnail") or []:
        if thumb.get("url"):
            urls.append(thumb["url"])
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/") and enclosure.get("href"):
            urls.append(enclosure["href"])
    return urls


def _entry_datetime(entry: Any) -> datetime | None:
    parsed: struct_time | None = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6], tzinfo=UTC)
