"""Translation capability - headline and summary in every supported language."""

import json
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any

from pydantic import BaseModel
from strands import tool

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, parse_agent_output
from newsroom.agents.policy import AgentPolicy
from newsroom.agents.quality import score_translation
from newsroom.constants import Capability as CapabilityName
from newsroom.exceptions import AgentOutputError, LLMError
from newsroom.llm import primitives
from newsroom.llm.generator import TextGenerator
from newsroom.schemas.enrichment import LocalizedText, TranslationInput, TranslationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationConfig:
    quality_threshold: float = 0.7
    attempts_per_text: int = 2
    model: str | None = None


async def translate_checked(
    generator: TextGenerator,
    config: TranslationConfig,
    text: str,
    *,
    source_lang: str,
    target_lang: str,
    kind: str,
) -> tuple[str, float]:
    """Translate and score, retrying once below threshold. Returns the best attempt."""
    best_text, best_score = "", 0.0
    for _ in range(config.attempts_per_text):
        translated = await primitives.translate(
            generator, text, source_lang=source_lang, target_lang=target_lang, kind=kind, model=config.model
        )
        score = score_translation(text, translated, target_lang, kind=kind)
        if score > best_score or not best_text:
            best_text, best_score = translated, score
        if score >= config.quality_threshold:
            break
    return best_text, best_score


async def ensure_translations(
    generator: TextGenerator, config: TranslationConfig, data: TranslationInput
) -> TranslationResult:
    """
    Fill every target language.

    Existing translations at or above the threshold are kept. A language
    whose translation fails falls back to the source text with quality 0
    so readers still get the story.
    """
    translations: dict[str, LocalizedText] = {}
    for language in data.target_langs:
        if language == data.source_lang:
            translations[language] = LocalizedText(
                headline=data.headline, summary=data.summary, headline_quality=1.0, summary_quality=1.0
            )
            continue

        existing = data.existing.get(language)
        if existing and existing.quality >= config.quality_threshold:
            translations[language] = existing
            continue

        try:
            headline, headline_quality = await translate_checked(
                generator, config, data.headline, source_lang=data.source_lang, target_lang=language, kind="headline"
            )
            summary, summary_quality = await translate_checked(
                generator, config, data.summary, source_lang=data.source_lang, target_lang=language, kind="summary"
            )
        except LLMError as e:
            logger.error("Translation to %s failed, keeping %s text: %s", language, data.source_lang, e)
            translations[language] = LocalizedText(headline=data.headline, summary=data.summary)
            continue

        translations[language] = LocalizedText(
            headline=headline,
            summary=summary,
            headline_quality=headline_quality,
            summary_quality=summary_quality,
        )
    return TranslationResult(translations=translations)


class TranslatedPair(BaseModel):
    headline: str
    summary: str


class AgentTranslations(BaseModel):
    translations: dict[str, TranslatedPair]


def build_translation_tools(generator: TextGenerator, config: TranslationConfig, data: TranslationInput) -> list[Any]:
    sources = {"headline": data.headline, "summary": data.summary}

    @tool
    async def translate_text(kind: str, target_lang: str) -> str:
        """
        Translate the story headline or summary.

        Args:
            kind: "headline" or "summary"
            target_lang: Target language code, "en", "si" or "ta"

        Returns:
            The translated text
        """
        return await primitives.translate(
            generator,
            sources[kind],
            source_lang=data.source_lang,
            target_lang=target_lang,
            kind=kind,
            model=config.model,
        )

    @tool
    def check_translation(kind: str, target_lang: str, translated: str) -> dict[str, Any]:
        """
        Score a translation between 0 and 1.

        Args:
            kind: "headline" or "summary"
            target_lang: Language the text was translated into
            translated: The translated text

        Returns:
            Dict with score and passes
        """
        score = score_translation(sources[kind], translated, target_lang, kind=kind)
        return {"score": score, "passes": score >= config.quality_threshold}

    return [translate_text, check_translation]


class TranslationAgent:
    NAME = "translation_agent"

    INSTRUCTIONS = """You translate one news story from {source} into: {targets}.

For each target language translate both the headline and the summary with
translate_text, then verify each with check_translation. Retranslate once when a
check does not pass. Keep names, numbers and dates exactly as in the source.

Respond with JSON only:
{{"translations": {{"<lang>": {{"headline": "...", "summary": "..."}}}}}}"""

    def __init__(self, runner: AgentRunner, generator: TextGenerator, config: TranslationConfig, model: str):
        self.runner = runner
        self.generator = generator
        self.config = config
        self.model = model

    async def __call__(self, data: TranslationInput) -> TranslationResult:
        pending = [
            language
            for language in data.target_langs
            if language != data.source_lang
            and not (language in data.existing and data.existing[language].quality >= self.config.quality_threshold)
        ]
        translations: dict[str, LocalizedText] = {
            language: data.existing[language] for language in data.target_langs if language in data.existing
        }
        if data.source_lang in data.target_langs:
            translations[data.source_lang] = LocalizedText(
                headline=data.headline, summary=data.summary, headline_quality=1.0, summary_quality=1.0
            )
        if not pending:
            return TranslationResult(translations=translations)

        spec = AgentSpec(
            name=self.NAME,
            instructions=self.INSTRUCTIONS.format(source=data.source_lang, targets=", ".join(pending)),
            tools=build_translation_tools(self.generator, self.config, data),
            model=self.model,
        )
        prompt = json.dumps({"task": "translate", "source_lang": data.source_lang, "targets": pending})
        output = parse_agent_output(await self.runner.run(spec, prompt), AgentTranslations)

        for language in pending:
            pair = output.translations.get(language)
            if pair is None:
                raise AgentOutputError(f"Agent returned no {language} translation")
            translations[language] = LocalizedText(
                headline=pair.headline,
                summary=pair.summary,
                headline_quality=score_translation(data.headline, pair.headline, language, kind="headline"),
                summary_quality=score_translation(data.summary, pair.summary, language, kind="summary"),
            )
        return TranslationResult(translations=translations)


def build_translation_capability(
    runner: AgentRunner, generator: TextGenerator, policy: AgentPolicy
) -> Capability[TranslationInput, TranslationResult]:
    config = TranslationConfig(
        quality_threshold=policy.quality_threshold,
        model=policy.model_for(CapabilityName.TRANSLATION),
    )
    return Capability(
        name=CapabilityName.TRANSLATION,
        agent=TranslationAgent(runner, generator, config, config.model or ""),
        fallback=partial(ensure_translations, generator, config),
        timeout=policy.timeout_for(CapabilityName.TRANSLATION),
        quality=lambda result: result.average_quality,
    )
