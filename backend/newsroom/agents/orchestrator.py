"""Orchestrator - routes each capability call to the agent or the fallback path."""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from newsroom.agents.base import Capability as CapabilityImpl
from newsroom.agents.base import CapabilityOutcome
from newsroom.agents.operations import OperationRecord, OperationRecorder
from newsroom.agents.policy import (
    FIXED_COMPLEXITY,
    AgentPolicy,
    image_complexity,
    should_use_agent,
    summary_complexity,
)
from newsroom.constants import Capability, Complexity, OperationPath, OperationStatus
from newsroom.exceptions import AgentTimeoutError
from newsroom.schemas.enrichment import (
    CategoryInput,
    CategoryResult,
    ImageInput,
    ImageResult,
    OperationContext,
    SEOInput,
    SEOResult,
    SummaryInput,
    SummaryResult,
    TranslationInput,
    TranslationResult,
)
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilitySet:
    summary: CapabilityImpl[SummaryInput, SummaryResult]
    translation: CapabilityImpl[TranslationInput, TranslationResult]
    seo: CapabilityImpl[SEOInput, SEOResult]
    image: CapabilityImpl[ImageInput, ImageResult]
    category: CapabilityImpl[CategoryInput, CategoryResult]


class Orchestrator:
    """
    Applies the agent policy to every capability call.

    Every call is logged and recorded, whether it succeeds, falls back
    or raises.
    """

    def __init__(
        self,
        policy: AgentPolicy,
        capabilities: CapabilitySet,
        recorder: OperationRecorder | None = None,
        rng: random.Random | None = None,
    ):
        self.policy = policy
        self.capabilities = capabilities
        self.recorder = recorder or OperationRecorder(None)
        self.rng = rng or random.Random()

    def decide(self, capability: Capability, complexity: Complexity) -> bool:
        """Whether this invocation should take the agent path."""
        use_agent = should_use_agent(self.policy, complexity, self.rng.random())
        logger.debug("capability=%s complexity=%s use_agent=%s", capability.value, complexity.value, use_agent)
        return use_agent

    async def orchestrate_summary(self, data: SummaryInput, context: OperationContext) -> SummaryResult:
        return await self._orchestrate(self.capabilities.summary, data, summary_complexity(data), context)

    async def orchestrate_translation(self, data: TranslationInput, context: OperationContext) -> TranslationResult:
        complexity = FIXED_COMPLEXITY[Capability.TRANSLATION]
        return await self._orchestrate(self.capabilities.translation, data, complexity, context)

    async def orchestrate_seo(self, data: SEOInput, context: OperationContext) -> SEOResult:
        return await self._orchestrate(self.capabilities.seo, data, FIXED_COMPLEXITY[Capability.SEO], context)

    async def orchestrate_image(self, data: ImageInput, context: OperationContext) -> ImageResult:
        return await self._orchestrate(self.capabilities.image, data, image_complexity(data), context)

    async def orchestrate_category(self, data: CategoryInput, context: OperationContext) -> CategoryResult:
        complexity = FIXED_COMPLEXITY[Capability.CATEGORY]
        return await self._orchestrate(self.capabilities.category, data, complexity, context)

    async def _orchestrate(
        self,
        capability: CapabilityImpl,
        data: BaseModel,
        complexity: Complexity,
        context: OperationContext,
    ) -> BaseModel:
        use_agent = self.decide(capability.name, complexity)
        started_at = utcnow()
        started = time.perf_counter()
        outcome: CapabilityOutcome | None = None
        error: Exception | None = None
        try:
            outcome = await capability.run(data, use_agent=use_agent)
            return outcome.result
        except Exception as e:
            error = e
            raise
        finally:
            await self.recorder.record(
                self._record(capability, data, context, use_agent, outcome, error, started_at, started)
            )

    def _record(
        self,
        capability: CapabilityImpl,
        data: BaseModel,
        context: OperationContext,
        use_agent: bool,
        outcome: CapabilityOutcome | None,
        error: Exception | None,
        started_at: datetime,
        started: float,
    ) -> OperationRecord:
        duration_ms = int((time.perf_counter() - started) * 1000)
        if outcome is not None:
            return OperationRecord(
                capability=capability.name,
                context=context,
                path=outcome.path,
                status=outcome.status,
                started_at=started_at,
                completed_at=utcnow(),
                duration_ms=duration_ms,
                fallback_used=outcome.fallback_used and use_agent,
                quality_score=_quality(capability.quality, outcome.result),
                input_data=data.model_dump(mode="json"),
                output_data=outcome.result.model_dump(mode="json"),
                error_message=outcome.agent_error,
            )

        status = OperationStatus.TIMEOUT if isinstance(error, AgentTimeoutError) else OperationStatus.FAILED
        return OperationRecord(
            capability=capability.name,
            context=context,
            path=OperationPath.AGENT if use_agent else OperationPath.FALLBACK,
            status=status,
            started_at=started_at,
            completed_at=utcnow(),
            duration_ms=duration_ms,
            fallback_used=use_agent,
            input_data=data.model_dump(mode="json"),
            error_message=f"{type(error).__name__}: {error}" if error else None,
        )


def _quality(scorer: Callable[[BaseModel], float | None], result: BaseModel) -> float | None:
    score = scorer(result)
    return None if score is None else round(float(score), 3)
