"""Summary capability - multi-source summaries with a quality-controlled retry loop."""

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Any

from pydantic import BaseModel, Field
from strands import tool

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, parse_agent_output
from newsroom.agents.policy import AgentPolicy
from newsroom.agents.quality import score_summary
from newsroom.config import Settings
from newsroom.constants import Capability as CapabilityName
from newsroom.exceptions import LLMError
from newsroom.llm import primitives
from newsroom.llm.generator import TextGenerator
from newsroom.schemas.enrichment import ArticleSnippet, SummaryInput, SummaryResult
from newsroom.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

PROMPT_VERSION = "v2"
RECENT = timedelta(hours=6)


@dataclass(frozen=True)
class SummaryConfig:
    target_words: int = 250
    min_words: int = 80
    max_words: int = 700
    max_articles: int = 5
    quality_threshold: float = 0.7
    max_attempts: int = 3
    model: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings, policy: AgentPolicy) -> "SummaryConfig":
        return cls(
            target_words=settings.summary_target_words,
            min_words=settings.summary_min_words,
            max_words=settings.summary_max_words,
            max_articles=settings.max_summary_articles,
            quality_threshold=policy.quality_threshold,
            max_attempts=policy.max_attempts,
            model=policy.model_for(CapabilityName.SUMMARY),
        )


def weight_sources(articles: list[ArticleSnippet]) -> list[ArticleSnippet]:
    """
    Order articles by how much they should shape the summary.

    The earliest report leads, recent and substantial reports get a small
    boost.
    """
    now = utcnow()
    weighted = []
    for index, article in enumerate(articles):
        weight = 1.5 if index == 0 else 1.0
        published = ensure_utc(article.published_at)
        if published and now - published <= RECENT:
            weight += 0.2
        if len(article.content) > 600:
            weight += 0.1
        weighted.append(article.model_copy(update={"weight": round(weight, 2)}))
    return sorted(weighted, key=lambda a: a.weight, reverse=True)


def source_texts(articles: list[ArticleSnippet]) -> list[str]:
    return [f"{a.title} {a.content}" for a in articles]


async def summarize_with_quality_control(
    generator: TextGenerator, config: SummaryConfig, data: SummaryInput
) -> SummaryResult:
    """
    Generate, score and regenerate until the score passes the threshold.

    Each retry adjusts the target length toward the failed bound, feeds
    the issues back into the prompt and lowers the temperature. After
    `max_attempts` the best-scoring draft wins.
    """
    articles = weight_sources(data.articles)[: config.max_articles]
    references = source_texts(data.articles)
    target_words = config.target_words
    temperature = 0.3
    feedback: list[str] | None = None
    best: SummaryResult | None = None

    for attempt in range(1, config.max_attempts + 1):
        text = await primitives.summarize(
            generator,
            articles,
            language=data.source_lang,
            target_words=target_words,
            previous_summary=data.previous_summary,
            feedback=feedback,
            model=config.model,
            temperature=temperature,
        )
        report = score_summary(
            text,
            min_words=config.min_words,
            max_words=config.max_words,
            source_texts=references,
        )
        if best is None or report.score > best.quality_score:
            best = SummaryResult(
                summary=text,
                source_lang=data.source_lang,
                quality_score=report.score,
                word_count=report.word_count,
                issues=report.issues,
            )
        if report.score >= config.quality_threshold:
            break

        logger.info(
            "Summary attempt %d scored %.2f (%s), regenerating",
            attempt,
            report.score,
            ", ".join(report.issues),
        )
        feedback = report.issues
        if "too_short" in report.issues:
            target_words = int(target_words * 1.2)
        elif "too_long" in report.issues:
            target_words = int(target_words * 0.8)
        temperature = max(0.1, temperature - 0.1)

    if best is None:
        raise LLMError(f"Summary needs at least one attempt, got max_attempts={config.max_attempts}")
    return best.model_copy(update={"attempts": attempt})


class SummaryDraft(BaseModel):
    summary: str = Field(..., min_length=1)


def build_summary_tools(generator: TextGenerator, config: SummaryConfig, data: SummaryInput) -> list[Any]:
    """Tools bound to one summarization request."""
    articles = weight_sources(data.articles)[: config.max_articles]
    references = source_texts(data.articles)

    @tool
    def weigh_sources() -> list[dict[str, Any]]:
        """
        List the source articles ordered by importance.

        Returns:
            Articles with title, source name and weight, most important first
        """
        return [{"title": a.title, "source": a.source_name, "weight": a.weight} for a in articles]

    @tool
    async def draft_summary(target_words: int = config.target_words, feedback: list[str] | None = None) -> str:
        """
        Write a summary of the source articles.

        Args:
            target_words: Desired length in words
            feedback: Problems from a previous draft that must be fixed

        Returns:
            The summary text
        """
        return await primitives.summarize(
            generator,
            articles,
            language=data.source_lang,
            target_words=target_words,
            previous_summary=data.previous_summary,
            feedback=feedback,
            model=config.model,
        )

    @tool
    def check_summary_quality(summary: str) -> dict[str, Any]:
        """
        Score a draft summary between 0 and 1.

        Args:
            summary: The draft to check

        Returns:
            Dict with score, issues, word_count and passes
        """
        report = score_summary(
            summary,
            min_words=config.min_words,
            max_words=config.max_words,
            source_texts=references,
        )
        return {
            "score": report.score,
            "issues": report.issues,
            "word_count": report.word_count,
            "passes": report.score >= config.quality_threshold,
        }

    return [weigh_sources, draft_summary, check_summary_quality]


class SummaryAgent:
    """Summary generation through a tool-using agent."""

    NAME = "summary_agent"

    INSTRUCTIONS = """You produce the summary of one news story reported by several outlets.

Process:
1. Call weigh_sources to see the reports.
2. Call draft_summary with target_words={target_words}.
3. Call check_summary_quality on the draft. A draft passes at {threshold} or more.
4. If it fails, call draft_summary again passing the issues as feedback, adjusting
   target_words up when too short and down when too long. At most {attempts} drafts.
5. Keep the best-scoring draft.

Never invent facts. Respond with JSON only: {{"summary": "<best draft>"}}"""

    def __init__(self, runner: AgentRunner, generator: TextGenerator, config: SummaryConfig, model: str):
        self.runner = runner
        self.generator = generator
        self.config = config
        self.model = model

    async def __call__(self, data: SummaryInput) -> SummaryResult:
        spec = AgentSpec(
            name=self.NAME,
            instructions=self.INSTRUCTIONS.format(
                target_words=self.config.target_words,
                threshold=self.config.quality_threshold,
                attempts=self.config.max_attempts,
            ),
            tools=build_summary_tools(self.generator, self.config, data),
            model=self.model,
        )
        prompt = json.dumps(
            {
                "task": "summarize",
                "language": data.source_lang,
                "articles": len(data.articles),
                "has_previous_summary": bool(data.previous_summary),
            }
        )
        draft = parse_agent_output(await self.runner.run(spec, prompt), SummaryDraft)

        report = score_summary(
            draft.summary,
            min_words=self.config.min_words,
            max_words=self.config.max_words,
            source_texts=source_texts(data.articles),
        )
        return SummaryResult(
            summary=draft.summary.strip(),
            source_lang=data.source_lang,
            quality_score=report.score,
            word_count=report.word_count,
            issues=report.issues,
        )


def build_summary_capability(
    runner: AgentRunner, generator: TextGenerator, policy: AgentPolicy, config: SummaryConfig
) -> Capability[SummaryInput, SummaryResult]:
    return Capability(
        name=CapabilityName.SUMMARY,
        agent=SummaryAgent(runner, generator, config, config.model or ""),
        fallback=partial(summarize_with_quality_control, generator, config),
        timeout=policy.timeout_for(CapabilityName.SUMMARY),
        quality=lambda result: result.quality_score,
    )
