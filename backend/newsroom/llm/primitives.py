"""
Text-generation primitives.

Each function is one prompt and one model call. Both the agent tools and
the fallback implementations are built on these, so the two paths share
prompts and output normalization.
"""

import re
from typing import Any

from newsroom.constants import CATEGORIES, DEFAULT_CATEGORY
from newsroom.exceptions import LLMError
from newsroom.llm.generator import TextGenerator
from newsroom.llm.json_output import parse_json_object
from newsroom.schemas.enrichment import ArticleSnippet, SEOText
from newsroom.utils.text import truncate

LANGUAGE_NAMES = {"en": "English", "si": "Sinhala", "ta": "Tamil"}

MAX_ARTICLE_CHARS = 1500

SUMMARY_SYSTEM = """You are a neutral news editor for a Sri Lankan news service.
Write factual summaries that combine every source. Never add facts, numbers or
quotes that are not in the sources. No opinions, no emojis, no headings, no lists."""

SUMMARY_PROMPT = """Summarize the following {count} reports about one news event in {language}.

Requirements:
- About {target_words} words, in at least 3 complete sentences
- Lead with what happened, where and when
- Mention where sources agree and where they differ
{feedback}{previous}
Sources:
{sources}

Return only the summary text."""

TRANSLATE_SYSTEM = """You are a professional news translator. Translate faithfully,
keep names, numbers and dates exactly, and write natural {target} prose."""

TRANSLATE_PROMPT = """Translate this news {kind} from {source} to {target}.
Return only the translation, nothing else.

{text}"""

SEO_SYSTEM = """You write search metadata for news stories. Respond with JSON only."""

SEO_PROMPT = """Create SEO metadata for this news story.

Headline: {headline}

Summary:
{summary}

Sources: {sources}

Return JSON with exactly these keys:
{{"title": "English SEO title, max 60 characters",
 "description": "English meta description, max 155 characters",
 "topics": ["sri-lanka or world", "content topic", ...],
 "keywords": ["5-8 search keywords"],
 "district": "Sri Lankan district if the story is local, else null",
 "primary_entity": "main person, organisation or place",
 "event_type": "short event type such as election, flood, court-ruling",
 "key_facts": ["up to 5 short factual statements from the summary"]}}"""

LOCALIZED_SEO_PROMPT = """Write an SEO title (max 60 characters) and meta description
(max 155 characters) in {language} for this news story.

Headline: {headline}
Summary: {summary}

Return JSON: {{"title": "...", "description": "..."}}"""

CATEGORY_SYSTEM = """You classify news stories. Answer with one word."""

CATEGORY_PROMPT = """Classify this news story into exactly one category:
{categories}

If you are unsure, answer "{default}".

Headline: {headline}
Summary: {summary}

Category:"""

IMAGE_SYSTEM = """You choose the lead image for a news story. Respond with JSON only."""

IMAGE_PROMPT = """Pick the image that best illustrates this story. Prefer photos of the
event, people or place involved. Avoid logos, stock graphics and ads.

Headline: {headline}
Summary: {summary}

Candidates:
{candidates}

Return JSON: {{"index": <candidate number>, "relevance": <0-1>, "quality": <0-1>}}"""


def format_sources(articles: list[ArticleSnippet], limit: int = MAX_ARTICLE_CHARS) -> str:
    blocks = []
    for number, article in enumerate(articles, start=1):
        source = f" ({article.source_name})" if article.source_name else ""
        body = truncate(article.content or "", limit)
        blocks.append(f"[{number}]{source} {article.title}\n{body}".strip())
    return "\n\n".join(blocks)


async def summarize(
    generator: TextGenerator,
    articles: list[ArticleSnippet],
    *,
    language: str = "en",
    target_words: int = 250,
    previous_summary: str | None = None,
    feedback: list[str] | None = None,
    model: str | None = None,
    temperature: float = 0.3,
) -> str:
    """Generate one summary of `articles` in `language`."""
    feedback_text = ""
    if feedback:
        feedback_text = "- Fix these problems from the last draft: " + "; ".join(feedback) + "\n"
    previous_text = ""
    if previous_summary:
        previous_text = f"\nThe previous summary was:\n{truncate(previous_summary, 1500)}\nUpdate it with new information.\n"

    prompt = SUMMARY_PROMPT.format(
        count=len(articles),
        language=LANGUAGE_NAMES.get(language, "English"),
        target_words=target_words,
        feedback=feedback_text,
        previous=previous_text,
        sources=format_sources(articles),
    )
    return await generator.complete(
        prompt,
        system=SUMMARY_SYSTEM,
        model=model,
        max_tokens=max(512, target_words * 3),
        temperature=temperature,
        task="summary",
    )


async def translate(
    generator: TextGenerator,
    text: str,
    *,
    source_lang: str,
    target_lang: str,
    kind: str = "summary",
    model: str | None = None,
) -> str:
    """Translate a headline or summary between en, si and ta."""
    target = LANGUAGE_NAMES[target_lang]
    prompt = TRANSLATE_PROMPT.format(
        kind=kind,
        source=LANGUAGE_NAMES.get(source_lang, "English"),
        target=target,
        text=text,
    )
    translated = await generator.complete(
        prompt,
        system=TRANSLATE_SYSTEM.format(target=target),
        model=model,
        max_tokens=2048 if kind == "summary" else 256,
        temperature=0.2,
        task="translation",
    )
    return translated.strip().strip('"')


async def generate_seo(
    generator: TextGenerator,
    headline: str,
    summary: str,
    articles: list[ArticleSnippet],
    *,
    model: str | None = None,
) -> dict[str, Any]:
    """English SEO metadata plus topics, keywords and entities as a dict."""
    names = sorted({a.source_name for a in articles if a.source_name})
    prompt = SEO_PROMPT.format(
        headline=headline,
        summary=truncate(summary, 2000),
        sources=", ".join(names) or "unknown",
    )
    text = await generator.complete(
        prompt, system=SEO_SYSTEM, model=model, max_tokens=800, temperature=0.2, task="seo"
    )
    try:
        return parse_json_object(text)
    except ValueError as e:
        raise LLMError(f"Unparseable SEO response: {e}") from e


async def generate_localized_seo(
    generator: TextGenerator,
    headline: str,
    summary: str,
    *,
    language: str,
    model: str | None = None,
) -> SEOText:
    prompt = LOCALIZED_SEO_PROMPT.format(
        language=LANGUAGE_NAMES[language],
        headline=headline,
        summary=truncate(summary, 1000),
    )
    text = await generator.complete(
        prompt, system=SEO_SYSTEM, model=model, max_tokens=400, temperature=0.2, task="seo"
    )
    try:
        data = parse_json_object(text)
        return SEOText(title=data["title"], description=data["description"])
    except (ValueError, KeyError) as e:
        raise LLMError(f"Unparseable {language} SEO response: {e}") from e


def normalize_category(answer: str) -> str | None:
    """Map a free-text answer onto the category vocabulary."""
    cleaned = re.sub(r"[^a-z]", " ", answer.lower()).split()
    for word in cleaned:
        if word in CATEGORIES:
            return word
    for word in cleaned:
        for category in CATEGORIES:
            if category.startswith(word[:5]) and len(word) >= 4:
                return category
    return None


async def categorize(
    generator: TextGenerator,
    headline: str,
    summary: str,
    *,
    model: str | None = None,
) -> str:
    """One category from the vocabulary; unrecognized answers become the default."""
    prompt = CATEGORY_PROMPT.format(
        categories=", ".join(CATEGORIES),
        default=DEFAULT_CATEGORY,
        headline=headline,
        summary=truncate(summary, 800),
    )
    answer = await generator.complete(
        prompt, system=CATEGORY_SYSTEM, model=model, max_tokens=10, temperature=0, task="category"
    )
    return normalize_category(answer) or DEFAULT_CATEGORY


async def rank_images(
    generator: TextGenerator,
    headline: str,
    summary: str,
    candidates: list[str],
    *,
    model: str | None = None,
) -> tuple[int, float, float]:
    """Index of the best candidate with relevance and quality scores."""
    listing = "\n".join(f"{number}. {url}" for number, url in enumerate(candidates, start=1))
    prompt = IMAGE_PROMPT.format(headline=headline, summary=truncate(summary, 600), candidates=listing)
    text = await generator.complete(
        prompt, system=IMAGE_SYSTEM, model=model, max_tokens=100, temperature=0, task="image"
    )
    try:
        data = parse_json_object(text)
        index = int(data["index"]) - 1
    except (ValueError, KeyError, TypeError) as e:
        raise LLMError(f"Unparseable image ranking: {e}") from e
    if not 0 <= index < len(candidates):
        raise LLMError(f"Image ranking picked candidate {index + 1} of {len(candidates)}")
    relevance = _unit(data.get("relevance"), 0.7)
    quality = _unit(data.get("quality"), 0.7)
    return index, relevance, quality


def _unit(value: Any, default: float) -> float:
    try:
        return min(1.0, max(0.0, float(value)))
    except (TypeError, ValueError):
        return default
