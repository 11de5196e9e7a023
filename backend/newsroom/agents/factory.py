"""Wiring of capabilities and the orchestrator from settings."""

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.agents.base import AgentRunner, StrandsAgentRunner
from newsroom.agents.category import build_category_capability
from newsroom.agents.image import PageImageFetcher, build_image_capability
from newsroom.agents.operations import OperationRecorder
from newsroom.agents.orchestrator import CapabilitySet, Orchestrator
from newsroom.agents.policy import AgentPolicy
from newsroom.agents.seo import build_seo_capability
from newsroom.agents.summary import SummaryConfig, build_summary_capability
from newsroom.agents.translation import build_translation_capability
from newsroom.config import Settings
from newsroom.llm.generator import TextGenerator, get_text_generator


def build_capabilities(
    settings: Settings,
    policy: AgentPolicy,
    generator: TextGenerator,
    runner: AgentRunner,
    http_client: httpx.AsyncClient | None = None,
) -> CapabilitySet:
    fetcher = PageImageFetcher(http_client) if http_client is not None else None
    return CapabilitySet(
        summary=build_summary_capability(runner, generator, policy, SummaryConfig.from_settings(settings, policy)),
        translation=build_translation_capability(runner, generator, policy),
        seo=build_seo_capability(runner, generator, policy),
        image=build_image_capability(runner, generator, policy, fetcher),
        category=build_category_capability(runner, generator, policy),
    )


def build_orchestrator(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None,
    generator: TextGenerator | None = None,
    runner: AgentRunner | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Orchestrator:
    """Orchestrator with an immutable policy taken from `settings`."""
    policy = AgentPolicy.from_settings(settings)
    capabilities = build_capabilities(
        settings,
        policy,
        generator or get_text_generator(settings),
        runner or StrandsAgentRunner(settings.anthropic_api_key),
        http_client,
    )
    return Orchestrator(policy, capabilities, OperationRecorder(session_factory))
