"""Shared plumbing for capability agents: the runner, output parsing and fallback."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel, ValidationError
from strands import Agent
from strands.models.anthropic import AnthropicModel

from newsroom.constants import Capability as CapabilityName
from newsroom.constants import OperationPath, OperationStatus
from newsroom.exceptions import AgentError, AgentOutputError, AgentTimeoutError
from newsroom.llm.json_output import parse_json_object

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
ResultT = TypeVar("ResultT", bound=BaseModel)

MAX_LOGGED_INPUT = 500


@dataclass(frozen=True)
class AgentSpec:
    """Everything needed to run one tool-augmented agent."""

    name: str
    instructions: str
    tools: list[Any]
    model: str
    max_tokens: int = 4096


class AgentRunner(Protocol):
    """Executes an agent and returns its final text."""

    async def run(self, spec: AgentSpec, prompt: str) -> str: ...


class StrandsAgentRunner:
    """Runs agents with Strands on Claude."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    async def run(self, spec: AgentSpec, prompt: str) -> str:
        model = AnthropicModel(
            client_args={"api_key": self.api_key},
            model_id=spec.model,
            max_tokens=spec.max_tokens,
        )
        agent = Agent(
            name=spec.name,
            model=model,
            system_prompt=spec.instructions,
            tools=spec.tools,
            callback_handler=None,
        )
        result = await agent.invoke_async(prompt)
        return str(result)


def parse_agent_output(text: str, model: type[ResultT]) -> ResultT:
    """Validate the JSON object in an agent's final answer as `model`."""
    try:
        return model.model_validate(parse_json_object(text))
    except (ValueError, ValidationError) as e:
        raise AgentOutputError(f"Malformed {model.__name__} output: {e}") from e


@dataclass
class CapabilityOutcome(Generic[ResultT]):
    """A capability result plus how it was produced."""

    result: ResultT
    path: OperationPath
    status: OperationStatus
    duration_ms: int
    agent_error: str | None = None

    @property
    def fallback_used(self) -> bool:
        return self.path == OperationPath.FALLBACK


@dataclass(frozen=True)
class Capability(Generic[InputT, ResultT]):
    """
    One enrichment capability with its two implementations.

    `agent` delegates to a tool-augmented model, `fallback` calls the
    text-generation primitives directly. Which one runs first is decided
    by the orchestrator, never by the capability itself.
    """

    name: CapabilityName
    agent: Callable[[InputT], Awaitable[ResultT]]
    fallback: Callable[[InputT], Awaitable[ResultT]]
    timeout: float
    quality: Callable[[ResultT], float | None] = field(default=lambda result: None)

    async def run(self, data: InputT, use_agent: bool = True) -> CapabilityOutcome[ResultT]:
        if not use_agent:
            started = time.perf_counter()
            result = await self.fallback(data)
            return CapabilityOutcome(
                result=result,
                path=OperationPath.FALLBACK,
                status=OperationStatus.SUCCESS,
                duration_ms=_elapsed_ms(started),
            )
        return await run_with_fallback(self.name.value, self.agent, self.fallback, data, timeout=self.timeout)


async def run_with_fallback(
    name: str,
    agent: Callable[[InputT], Awaitable[ResultT]],
    fallback: Callable[[InputT], Awaitable[ResultT]],
    data: InputT,
    *,
    timeout: float,
) -> CapabilityOutcome[ResultT]:
    """
    Try `agent` within `timeout`, switching to `fallback` on any failure.

    The agent failure is logged with its input. If the fallback fails as
    well the agent error is raised, with the fallback error attached as a
    note and as the cause.
    """
    started = time.perf_counter()
    try:
        async with asyncio.timeout(timeout):
            result = await agent(data)
        return CapabilityOutcome(
            result=result,
            path=OperationPath.AGENT,
            status=OperationStatus.SUCCESS,
            duration_ms=_elapsed_ms(started),
        )
    except TimeoutError:
        error: AgentError = AgentTimeoutError(f"{name} agent timed out after {timeout}s")
        status = OperationStatus.TIMEOUT
    except AgentError as e:
        error = e
        status = OperationStatus.FAILED
    except Exception as e:
        error = AgentError(f"{name} agent failed: {type(e).__name__}: {e}")
        error.__cause__ = e
        status = OperationStatus.FAILED

    logger.warning(
        "Agent %s failed, using fallback: error_type=%s message=%s input=%s",
        name,
        type(error.__cause__ or error).__name__,
        error,
        data.model_dump_json()[:MAX_LOGGED_INPUT],
    )

    try:
        result = await fallback(data)
    except Exception as fallback_error:
        logger.error("Fallback for %s failed too: %s: %s", name, type(fallback_error).__name__, fallback_error)
        error.add_note(f"fallback failed: {type(fallback_error).__name__}: {fallback_error}")
        raise error from fallback_error

    return CapabilityOutcome(
        result=result,
        path=OperationPath.FALLBACK,
        status=status,
        duration_ms=_elapsed_ms(started),
        agent_error=str(error),
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
