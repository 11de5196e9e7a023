"""Category capability - one label from a closed vocabulary."""

import logging
import re
from dataclasses import dataclass
from functools import partial
from typing import Any

from strands import tool

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, parse_agent_output
from newsroom.agents.policy import AgentPolicy
from newsroom.constants import CATEGORIES, DEFAULT_CATEGORY
from newsroom.constants import Capability as CapabilityName
from newsroom.exceptions import LLMError
from newsroom.llm import primitives
from newsroom.llm.generator import TextGenerator
from newsroom.schemas.enrichment import CategoryInput, CategoryResult

logger = logging.getLogger(__name__)

KEYWORDS: dict[str, tuple[str, ...]] = {
    "politics": ("election", "parliament", "minister", "president", "cabinet", "party", "government", "vote", "policy"),
    "economy": ("economy", "rupee", "inflation", "imf", "budget", "tax", "bank", "trade", "export", "market", "debt"),
    "sports": ("cricket", "match", "tournament", "football", "rugby", "athlete", "olympic", "wicket", "team"),
    "technology": ("technology", "digital", "internet", "software", "cyber", "mobile", "startup", "satellite"),
    "health": ("health", "hospital", "dengue", "disease", "doctor", "medical", "vaccine", "patients", "virus"),
    "education": ("school", "university", "student", "exam", "teacher", "education", "a/l", "o/l"),
}


@dataclass(frozen=True)
class CategoryConfig:
    model: str | None = None


def keyword_scores(text: str) -> dict[str, int]:
    lowered = text.lower()
    return {
        category: sum(len(re.findall(rf"\b{re.escape(word)}", lowered)) for word in words)
        for category, words in KEYWORDS.items()
    }


def keyword_category(text: str) -> CategoryResult:
    """Deterministic keyword vote; politics on ties with nothing matched."""
    scores = keyword_scores(text)
    best = max(CATEGORIES, key=lambda c: scores.get(c, 0))
    total = sum(scores.values())
    if total == 0:
        return CategoryResult(category=DEFAULT_CATEGORY, confidence=0.3)
    return CategoryResult(category=best, confidence=round(min(0.8, 0.4 + scores[best] / total / 2), 2))


async def categorize_cluster(generator: TextGenerator, config: CategoryConfig, data: CategoryInput) -> CategoryResult:
    try:
        category = await primitives.categorize(generator, data.headline, data.summary, model=config.model)
    except LLMError as e:
        logger.warning("Model categorization failed, using keywords: %s", e)
        return keyword_category(f"{data.headline} {data.summary}")
    return CategoryResult(category=category, confidence=0.8)


def build_category_tools(generator: TextGenerator, config: CategoryConfig, data: CategoryInput) -> list[Any]:
    @tool
    async def classify_story() -> str:
        """
        Ask the model for the story category.

        Returns:
            One of politics, economy, sports, technology, health, education
        """
        return await primitives.categorize(generator, data.headline, data.summary, model=config.model)

    @tool
    def keyword_evidence() -> dict[str, int]:
        """
        Count category keywords in the headline, summary and article titles.

        Returns:
            Keyword hits per category
        """
        titles = " ".join(a.title for a in data.articles)
        return keyword_scores(f"{data.headline} {data.summary} {titles}")

    return [classify_story, keyword_evidence]


class CategoryAgent:
    NAME = "category_agent"

    INSTRUCTIONS = """You assign exactly one category to a news story.

Allowed categories: {categories}.
Call classify_story and keyword_evidence, then decide. If uncertain, use "{default}".

Respond with JSON only: {{"category": "<category>", "confidence": 0-1}}"""

    def __init__(self, runner: AgentRunner, generator: TextGenerator, config: CategoryConfig, model: str):
        self.runner = runner
        self.generator = generator
        self.config = config
        self.model = model

    async def __call__(self, data: CategoryInput) -> CategoryResult:
        spec = AgentSpec(
            name=self.NAME,
            instructions=self.INSTRUCTIONS.format(categories=", ".join(CATEGORIES), default=DEFAULT_CATEGORY),
            tools=build_category_tools(self.generator, self.config, data),
            model=self.model,
            max_tokens=512,
        )
        return parse_agent_output(await self.runner.run(spec, '{"task": "categorize"}'), CategoryResult)


def build_category_capability(
    runner: AgentRunner, generator: TextGenerator, policy: AgentPolicy
) -> Capability[CategoryInput, CategoryResult]:
    config = CategoryConfig(model=policy.model_for(CapabilityName.CATEGORY))
    return Capability(
        name=CapabilityName.CATEGORY,
        agent=CategoryAgent(runner, generator, config, config.model or ""),
        fallback=partial(categorize_cluster, generator, config),
        timeout=policy.timeout_for(CapabilityName.CATEGORY),
        quality=lambda result: result.confidence,
    )
