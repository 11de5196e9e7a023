"""Text helpers shared by ingestion, clustering and quality checks."""

import re
import unicodedata

from bs4 import BeautifulSoup

WORD_RE = re.compile(r"\w+", re.UNICODE)
NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)*")
SENTENCE_END_RE = re.compile(r"[.!?।]+(?:\s|$)")


def strip_html(html: str | None) -> str:
    """Return the visible text of an HTML fragment with whitespace collapsed."""
    if not html:
        return ""
    if "<" not in html:
        return " ".join(html.split())
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def truncate(text: str, limit: int) -> str:
    """Cut `text` at a word boundary so it fits in `limit` characters."""
    text = text.strip()
    if len(text) <= limit:
        return text
    cut = text[: limit - 1].rsplit(" ", 1)[0].rstrip(" ,;:-")
    return f"{cut}…"


def word_count(text: str) -> int:
    return len(WORD_RE.findall(text))


def sentence_count(text: str) -> int:
    return len(SENTENCE_END_RE.findall(text.strip() + " "))


def extract_numbers(text: str) -> set[str]:
    """Numbers as written, with thousands separators removed."""
    return {n.replace(",", "") for n in NUMBER_RE.findall(text)}


def slugify(text: str, max_length: int = 80) -> str:
    """ASCII slug suitable for URLs."""
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-")
