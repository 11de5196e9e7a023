"""Image candidate extraction and filtering."""

import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup

PLACEHOLDER_PATTERNS = re.compile(
    r"logo|(?<![a-z])icon|favicon|sprite|avatar|(?<![a-z])ad-|/ads/|banner|pixel|spacer|blank\.(?:gif|png)"
    r"|tracking|beacon|share|social|placeholder|default[-_]image",
    re.IGNORECASE,
)
DIMENSION_RE = re.compile(r"(\d{2,4})x(\d{2,4})")
MIN_DIMENSION = 100


def is_http_url(url: str | None) -> bool:
    return bool(url) and url.lower().startswith(("http://", "https://"))


def is_placeholder(url: str, width: int | None = None, height: int | None = None) -> bool:
    """Whether `url` looks like a logo, tracker or thumbnail too small to use."""
    if PLACEHOLDER_PATTERNS.search(url):
        return True
    if width is not None and width < MIN_DIMENSION:
        return True
    if height is not None and height < MIN_DIMENSION:
        return True
    match = DIMENSION_RE.search(url)
    if match and (int(match.group(1)) < MIN_DIMENSION or int(match.group(2)) < MIN_DIMENSION):
        return True
    return False


def images_from_html(html: str | None, base_url: str | None = None) -> list[str]:
    """Collect <img> and og:image URLs from an HTML document or fragment."""
    if not html or "<" not in html:
        return []
    soup = BeautifulSoup(html, "lxml")
    found: list[str] = []

    for meta in soup.find_all("meta", attrs={"property": ["og:image", "twitter:image"]}):
        if meta.get("content"):
            found.append(meta["content"])
    for meta in soup.find_all("meta", attrs={"name": ["og:image", "twitter:image"]}):
        if meta.get("content"):
            found.append(meta["content"])

    for img in soup.find_all("img"):
        src = img.get("src") or img.get("data-src")
        if not src:
            continue
        width = _int_attr(img.get("width"))
        height = _int_attr(img.get("height"))
        if (width is not None and width < MIN_DIMENSION) or (height is not None and height < MIN_DIMENSION):
            continue
        found.append(src)

    if base_url:
        found = [urljoin(base_url, url) for url in found]
    return found


def filter_candidates(urls: list[str | None]) -> list[str]:
    """Dedupe preserving order and drop non-http and placeholder images."""
    seen: set[str] = set()
    kept: list[str] = []
    for url in urls:
        if not url or not is_http_url(url):
            continue
        url = url.strip()
        if url in seen or is_placeholder(url):
            continue
        seen.add(url)
        kept.append(url)
    return kept


def _int_attr(value: str | None) -> int | None:
    if not value:
        return None
    digits = re.match(r"\d+", str(value))
    return int(digits.group()) if digits else None
