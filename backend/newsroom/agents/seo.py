"""SEO capability - per-language metadata, topics and entities."""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any

from strands import tool

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, parse_agent_output
from newsroom.agents.policy import AgentPolicy
from newsroom.constants import GEOGRAPHIC_TOPICS
from newsroom.constants import Capability as CapabilityName
from newsroom.exceptions import LLMError
from newsroom.llm import primitives
from newsroom.llm.generator import TextGenerator
from newsroom.schemas.enrichment import SEOInput, SEOResult, SEOText
from newsroom.utils.text import slugify, truncate

logger = logging.getLogger(__name__)

MAX_TOPICS = 6
MAX_KEYWORDS = 10
MAX_KEY_FACTS = 5


@dataclass(frozen=True)
class SEOConfig:
    model: str | None = None


def default_seo(headline: str, summary: str) -> SEOText:
    """Metadata derived by truncation when generation is unavailable."""
    return SEOText(title=truncate(headline, 60), description=truncate(summary, 160))


def normalize_topics(topics: list[Any]) -> list[str]:
    """Slug-style topics with a geographic scope first."""
    cleaned: list[str] = []
    for topic in topics:
        slug = slugify(str(topic), max_length=40)
        if slug and slug not in cleaned:
            cleaned.append(slug)
    geographic = [t for t in cleaned if t in GEOGRAPHIC_TOPICS] or [GEOGRAPHIC_TOPICS[0]]
    content = [t for t in cleaned if t not in GEOGRAPHIC_TOPICS]
    return (geographic[:1] + content)[:MAX_TOPICS]


def make_slug(title: str, fallback: str) -> str:
    return slugify(title) or slugify(fallback) or "story"


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text and text.lower() not in {"null", "none", "n/a"} else None


def _string_list(value: Any, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()][:limit]


async def generate_seo_metadata(generator: TextGenerator, config: SEOConfig, data: SEOInput) -> SEOResult:
    """English metadata from one model call plus a localized call per extra language."""
    raw = await primitives.generate_seo(generator, data.headline, data.summary, data.articles, model=config.model)

    english = default_seo(data.headline, data.summary)
    if raw.get("title") and raw.get("description"):
        english = SEOText(title=str(raw["title"]), description=str(raw["description"]))

    seo = {"en": english}
    for language, text in data.localized.items():
        if language == "en":
            continue
        try:
            seo[language] = await primitives.generate_localized_seo(
                generator, text.headline, text.summary, language=language, model=config.model
            )
        except LLMError as e:
            logger.warning("Localized SEO for %s failed, using truncated text: %s", language, e)
            seo[language] = default_seo(text.headline, text.summary)

    return SEOResult(
        seo=seo,
        slug=make_slug(english.title, data.headline),
        topics=normalize_topics(raw.get("topics") or []),
        keywords=_string_list(raw.get("keywords"), MAX_KEYWORDS),
        key_facts=_string_list(raw.get("key_facts"), MAX_KEY_FACTS),
        district=_optional_text(raw.get("district")),
        primary_entity=_optional_text(raw.get("primary_entity")),
        event_type=_optional_text(raw.get("event_type")),
    )


def build_seo_tools(generator: TextGenerator, config: SEOConfig, data: SEOInput) -> list[Any]:
    @tool
    async def english_metadata() -> dict[str, Any]:
        """
        Generate English SEO title, description, topics, keywords and entities.

        Returns:
            Dict with title, description, topics, keywords, district,
            primary_entity, event_type and key_facts
        """
        return await primitives.generate_seo(
            generator, data.headline, data.summary, data.articles, model=config.model
        )

    @tool
    async def localized_metadata(language: str) -> dict[str, str]:
        """
        Generate the SEO title and description in Sinhala or Tamil.

        Args:
            language: "si" or "ta"

        Returns:
            Dict with title and description
        """
        text = data.localized.get(language)
        headline = text.headline if text else data.headline
        summary = text.summary if text else data.summary
        try:
            result = await primitives.generate_localized_seo(
                generator, headline, summary, language=language, model=config.model
            )
        except LLMError:
            result = default_seo(headline, summary)
        return result.model_dump()

    @tool
    def suggest_slug(title: str) -> str:
        """
        Build a URL slug from an English title.

        Args:
            title: English SEO title

        Returns:
            Lowercase hyphenated slug
        """
        return make_slug(title, data.headline)

    return [english_metadata, localized_metadata, suggest_slug]


class SEOAgent:
    NAME = "seo_agent"

    INSTRUCTIONS = """You prepare search metadata for one news story.

1. Call english_metadata.
2. Call localized_metadata for each of: {languages}.
3. Call suggest_slug with the English title.

Titles must stay under 60 characters and descriptions under 155. Topics must
include "sri-lanka" or "world" plus content topics. If unsure of the district,
use null.

Respond with JSON only:
{{"seo": {{"en": {{"title": "...", "description": "..."}}, "<lang>": {{...}}}},
 "slug": "...", "topics": [...], "keywords": [...], "key_facts": [...],
 "district": null, "primary_entity": "...", "event_type": "..."}}"""

    def __init__(self, runner: AgentRunner, generator: TextGenerator, config: SEOConfig, model: str):
        self.runner = runner
        self.generator = generator
        self.config = config
        self.model = model

    async def __call__(self, data: SEOInput) -> SEOResult:
        languages = [language for language in data.localized if language != "en"]
        spec = AgentSpec(
            name=self.NAME,
            instructions=self.INSTRUCTIONS.format(languages=", ".join(languages) or "none"),
            tools=build_seo_tools(self.generator, self.config, data),
            model=self.model,
        )
        result = parse_agent_output(await self.runner.run(spec, '{"task": "seo"}'), SEOResult)

        seo = dict(result.seo)
        seo.setdefault("en", default_seo(data.headline, data.summary))
        for language in languages:
            text = data.localized[language]
            seo.setdefault(language, default_seo(text.headline, text.summary))
        return result.model_copy(
            update={
                "seo": seo,
                "slug": make_slug(result.slug, data.headline),
                "topics": normalize_topics(result.topics),
            }
        )


def build_seo_capability(
    runner: AgentRunner, generator: TextGenerator, policy: AgentPolicy
) -> Capability[SEOInput, SEOResult]:
    config = SEOConfig(model=policy.model_for(CapabilityName.SEO))
    return Capability(
        name=CapabilityName.SEO,
        agent=SEOAgent(runner, generator, config, config.model or ""),
        fallback=partial(generate_seo_metadata, generator, config),
        timeout=policy.timeout_for(CapabilityName.SEO),
    )
