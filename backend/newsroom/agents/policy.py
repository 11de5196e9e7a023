"""Agent rollout policy and the agent-vs-fallback decision."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from newsroom.config import Settings
from newsroom.constants import Capability, Complexity
from newsroom.schemas.enrichment import ImageInput, SummaryInput
from newsroom.services.images import filter_candidates

COMPLEX_SUMMARY_ARTICLES = 3
COMPLEX_PREVIOUS_SUMMARY_CHARS = 500
MAX_SIMPLE_IMAGE_CANDIDATES = 5


@dataclass(frozen=True)
class AgentPolicy:
    """Immutable agent configuration, built once at startup."""

    enabled: bool = False
    rollout_percentage: float = 0.0
    use_agents_for_complex: bool = True
    quality_threshold: float = 0.7
    max_attempts: int = 3
    models: Mapping[Capability, str] = field(default_factory=lambda: MappingProxyType({}))
    timeouts: Mapping[Capability, float] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentPolicy":
        return cls(
            enabled=settings.agent_enabled,
            rollout_percentage=settings.agent_rollout_percentage,
            use_agents_for_complex=settings.agent_use_for_complex,
            quality_threshold=settings.agent_quality_threshold,
            max_attempts=settings.agent_max_retries,
            models=MappingProxyType(
                {
                    Capability.SUMMARY: settings.summary_model,
                    Capability.TRANSLATION: settings.translation_model,
                    Capability.SEO: settings.seo_model,
                    Capability.IMAGE: settings.image_model,
                    Capability.CATEGORY: settings.category_model,
                }
            ),
            timeouts=MappingProxyType(
                {
                    Capability.SUMMARY: settings.agent_timeout_summary,
                    Capability.TRANSLATION: settings.agent_timeout_translation,
                    Capability.SEO: settings.agent_timeout_seo,
                    Capability.IMAGE: settings.agent_timeout_image,
                    Capability.CATEGORY: settings.agent_timeout_category,
                }
            ),
        )

    def timeout_for(self, capability: Capability) -> float:
        return self.timeouts.get(capability, 30.0)

    def model_for(self, capability: Capability) -> str | None:
        return self.models.get(capability)


def should_use_agent(policy: AgentPolicy, complexity: Complexity, draw: float) -> bool:
    """
    Pure routing decision.

    `draw` is a uniform sample from [0, 1). Complex inputs go to the agent
    whenever agents are enabled and complex routing is on; everything
    else is subject to the rollout percentage.
    """
    if not policy.enabled:
        return False
    if complexity is Complexity.COMPLEX and policy.use_agents_for_complex:
        return True
    return draw * 100 < policy.rollout_percentage


def summary_complexity(data: SummaryInput) -> Complexity:
    if len(data.articles) > COMPLEX_SUMMARY_ARTICLES:
        return Complexity.COMPLEX
    if data.previous_summary and len(data.previous_summary) > COMPLEX_PREVIOUS_SUMMARY_CHARS:
        return Complexity.COMPLEX
    return Complexity.SIMPLE


def image_complexity(data: ImageInput) -> Complexity:
    candidates = filter_candidates([url for a in data.articles for url in [a.image_url, *a.image_urls]])
    if not candidates or len(candidates) > MAX_SIMPLE_IMAGE_CANDIDATES:
        return Complexity.COMPLEX
    return Complexity.SIMPLE


# Translation and SEO are always treated as complex; category never is
FIXED_COMPLEXITY: dict[Capability, Complexity] = {
    Capability.TRANSLATION: Complexity.COMPLEX,
    Capability.SEO: Complexity.COMPLEX,
    Capability.CATEGORY: Complexity.SIMPLE,
}
