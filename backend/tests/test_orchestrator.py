"""Tests for the agent routing policy, fallback execution and operation records."""

import asyncio
import random

import pytest
from conftest import SUMMARY_TEXT, FakeGenerator, FakeRunner
from pydantic import BaseModel
from sqlmodel import select

from newsroom.agents.base import Capability, run_with_fallback
from newsroom.agents.factory import build_orchestrator
from newsroom.agents.policy import AgentPolicy, image_complexity, should_use_agent, summary_complexity
from newsroom.config import Settings
from newsroom.constants import Capability as CapabilityName
from newsroom.constants import Complexity, OperationPath, OperationStatus
from newsroom.exceptions import AgentError, AgentOutputError, AgentTimeoutError
from newsroom.models import AgentOperation
from newsroom.schemas.enrichment import ArticleSnippet, CategoryInput, ImageInput, OperationContext, SummaryInput

DRAWS = [0.0, 0.25, 0.5, 0.75, 0.999]


class Echo(BaseModel):
    text: str


def agent_settings(settings: Settings, **overrides) -> Settings:
    values = {"agent_enabled": True, "agent_rollout_percentage": 100, "agent_timeout_summary": 0.05}
    values.update(overrides)
    return settings.model_copy(update=values)


class TestDecision:
    def test_disabled_never_uses_agent(self) -> None:
        policy = AgentPolicy(enabled=False, rollout_percentage=100)
        for complexity in Complexity:
            assert not any(should_use_agent(policy, complexity, draw) for draw in DRAWS)

    def test_zero_rollout_simple_never_uses_agent(self) -> None:
        policy = AgentPolicy(enabled=True, rollout_percentage=0)
        assert not any(should_use_agent(policy, Complexity.SIMPLE, draw) for draw in DRAWS)

    def test_full_rollout_always_uses_agent(self) -> None:
        policy = AgentPolicy(enabled=True, rollout_percentage=100)
        assert all(should_use_agent(policy, Complexity.SIMPLE, draw) for draw in DRAWS)

    def test_complex_input_ignores_rollout(self) -> None:
        policy = AgentPolicy(enabled=True, rollout_percentage=0, use_agents_for_complex=True)
        assert all(should_use_agent(policy, Complexity.COMPLEX, draw) for draw in DRAWS)

    def test_complex_routing_can_be_turned_off(self) -> None:
        policy = AgentPolicy(enabled=True, rollout_percentage=0, use_agents_for_complex=False)
        assert not should_use_agent(policy, Complexity.COMPLEX, 0.0)

    def test_partial_rollout_follows_the_draw(self) -> None:
        policy = AgentPolicy(enabled=True, rollout_percentage=30)
        assert should_use_agent(policy, Complexity.SIMPLE, 0.29)
        assert not should_use_agent(policy, Complexity.SIMPLE, 0.30)

    def test_policy_from_settings_is_immutable(self, settings: Settings) -> None:
        policy = AgentPolicy.from_settings(settings)

        assert policy.timeout_for(CapabilityName.TRANSLATION) == 45
        with pytest.raises(TypeError):
            policy.timeouts[CapabilityName.SUMMARY] = 1  # type: ignore[index]


class TestComplexity:
    def test_summary(self) -> None:
        two = [ArticleSnippet(title=str(i)) for i in range(2)]
        four = [ArticleSnippet(title=str(i)) for i in range(4)]

        assert summary_complexity(SummaryInput(articles=two)) is Complexity.SIMPLE
        assert summary_complexity(SummaryInput(articles=four)) is Complexity.COMPLEX
        assert summary_complexity(SummaryInput(articles=two, previous_summary="x" * 501)) is Complexity.COMPLEX

    def test_image(self) -> None:
        def with_images(count: int) -> ImageInput:
            urls = [f"https://cdn.test/photos/{i}.jpg" for i in range(count)]
            return ImageInput(headline="h", articles=[ArticleSnippet(title="a", image_urls=urls)])

        assert image_complexity(with_images(0)) is Complexity.COMPLEX
        assert image_complexity(with_images(3)) is Complexity.SIMPLE
        assert image_complexity(with_images(6)) is Complexity.COMPLEX


class TestRunWithFallback:
    async def fallback(self, data: Echo) -> Echo:
        return Echo(text=f"fallback:{data.text}")

    async def test_agent_result_is_used(self) -> None:
        async def agent(data: Echo) -> Echo:
            return Echo(text=f"agent:{data.text}")

        outcome = await run_with_fallback("echo", agent, self.fallback, Echo(text="x"), timeout=1)

        assert outcome.result.text == "agent:x"
        assert (outcome.path, outcome.status) == (OperationPath.AGENT, OperationStatus.SUCCESS)

    async def test_timeout_switches_to_fallback(self) -> None:
        async def slow(data: Echo) -> Echo:
            await asyncio.sleep(1)
            return Echo(text="late")

        outcome = await run_with_fallback("echo", slow, self.fallback, Echo(text="x"), timeout=0.01)

        assert outcome.result.text == "fallback:x"
        assert (outcome.path, outcome.status) == (OperationPath.FALLBACK, OperationStatus.TIMEOUT)
        assert "timed out" in outcome.agent_error

    async def test_malformed_output_switches_to_fallback(self) -> None:
        async def malformed(data: Echo) -> Echo:
            raise AgentOutputError("no JSON object found")

        outcome = await run_with_fallback("echo", malformed, self.fallback, Echo(text="x"), timeout=1)

        assert outcome.fallback_used
        assert outcome.status is OperationStatus.FAILED

    async def test_both_failing_raises_agent_error(self) -> None:
        async def agent(data: Echo) -> Echo:
            raise RuntimeError("agent crashed")

        async def fallback(data: Echo) -> Echo:
            raise ValueError("fallback crashed")

        with pytest.raises(AgentError) as excinfo:
            await run_with_fallback("echo", agent, fallback, Echo(text="x"), timeout=1)

        assert isinstance(excinfo.value.__cause__, ValueError)
        assert any("fallback crashed" in note for note in excinfo.value.__notes__)

    async def test_fallback_only_when_agent_not_selected(self) -> None:
        async def agent(data: Echo) -> Echo:
            raise AssertionError("agent must not run")

        capability = Capability(name=CapabilityName.CATEGORY, agent=agent, fallback=self.fallback, timeout=1)

        outcome = await capability.run(Echo(text="x"), use_agent=False)

        assert (outcome.path, outcome.status) == (OperationPath.FALLBACK, OperationStatus.SUCCESS)


async def operations(session_factory) -> list[AgentOperation]:
    async with session_factory() as session:
        return list((await session.execute(select(AgentOperation))).scalars().all())


class TestOrchestrator:
    async def test_agent_timeout_is_recorded_with_fallback_result(self, settings, session_factory) -> None:
        runner = FakeRunner(delay=1)
        orchestrator = build_orchestrator(agent_settings(settings), session_factory, FakeGenerator(), runner)
        data = SummaryInput(articles=[ArticleSnippet(title="Floods close roads", content="Heavy rain.")])

        result = await orchestrator.orchestrate_summary(data, OperationContext())

        assert result.summary == SUMMARY_TEXT
        [row] = await operations(session_factory)
        assert row.agent_type == "summary"
        assert row.operation_status == "timeout"
        assert row.path == "fallback"
        assert row.fallback_used is True
        assert row.quality_score == 1.0
        assert row.input_data["articles"][0]["title"] == "Floods close roads"

    async def test_agent_success_is_recorded(self, settings, session_factory) -> None:
        runner = FakeRunner(outputs={"category_agent": '{"category": "sports", "confidence": 0.9}'})
        orchestrator = build_orchestrator(agent_settings(settings), session_factory, FakeGenerator(), runner)

        result = await orchestrator.orchestrate_category(CategoryInput(headline="Cricket final"), OperationContext())

        assert result.category == "sports"
        [row] = await operations(session_factory)
        assert (row.path, row.operation_status, row.fallback_used) == ("agent", "success", False)
        assert row.estimated_tokens > 0

    async def test_disabled_agents_use_fallback(self, settings, session_factory) -> None:
        runner = FakeRunner()
        orchestrator = build_orchestrator(settings, session_factory, FakeGenerator(category="health"), runner)

        result = await orchestrator.orchestrate_category(CategoryInput(headline="Dengue"), OperationContext())

        assert result.category == "health"
        assert runner.calls == []
        [row] = await operations(session_factory)
        assert (row.path, row.operation_status, row.fallback_used) == ("fallback", "success", False)

    async def test_failure_on_both_paths_is_recorded_and_raised(self, settings, session_factory) -> None:
        generator = FakeGenerator()
        generator.fail_tasks.add("summary")
        runner = FakeRunner(delay=1)
        orchestrator = build_orchestrator(agent_settings(settings), session_factory, generator, runner)
        data = SummaryInput(articles=[ArticleSnippet(title="Floods")])

        with pytest.raises(AgentTimeoutError):
            await orchestrator.orchestrate_summary(data, OperationContext())

        [row] = await operations(session_factory)
        assert row.operation_status == "timeout"
        assert row.output_data is None
        assert "timed out" in row.error_message

    async def test_rollout_uses_injected_random_source(self, settings) -> None:
        policy_settings = agent_settings(settings, agent_rollout_percentage=50)
        orchestrator = build_orchestrator(policy_settings, None, FakeGenerator(), FakeRunner())
        orchestrator.rng = random.Random(7)
        expected = random.Random(7)

        decisions = [orchestrator.decide(CapabilityName.CATEGORY, Complexity.SIMPLE) for _ in range(20)]

        assert decisions == [expected.random() * 100 < 50 for _ in range(20)]
