"""Shared fixtures: a throwaway SQLite database and offline stand-ins for the models."""

import asyncio
import re
from collections.abc import AsyncGenerator
from pathlib import Path

import numpy as np
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import newsroom.models  # noqa: F401  registers tables on the metadata
from newsroom.agents.base import AgentSpec
from newsroom.config import Settings
from newsroom.exceptions import LLMError
from newsroom.services.embeddings import normalize

SUMMARY_TEXT = (
    "Heavy rain caused severe flooding across the western province on Monday. "
    "Several rivers overflowed and thousands of families were moved to temporary shelters by the authorities. "
    "The disaster management centre said rescue teams and the navy were deployed to the worst hit areas. "
    "Reports from all outlets agree that the main roads into the capital were closed for most of the day. "
    "Officials warned that more rain is expected and asked residents near rivers to stay alert and follow "
    "evacuation orders. Schools in the affected districts will remain closed until the water recedes."
)

SHORT_SUMMARY = "Floods hit the west. Families moved."

SEO_JSON = (
    '{"title": "Floods close roads in western province", '
    '"description": "Heavy rain floods the western province and thousands of families move to shelters.", '
    '"topics": ["Sri Lanka", "floods", "weather"], "keywords": ["floods", "rain", "shelters"], '
    '"district": "Colombo", "primary_entity": "Disaster Management Centre", "event_type": "flood", '
    '"key_facts": ["Rivers overflowed", "Families moved to shelters"]}'
)

SCRIPT_LETTER = {"Sinhala": "ක", "Tamil": "க", "English": "a"}


class FakeGenerator:
    """
    Deterministic TextGenerator.

    Dispatches on the `task` keyword the primitives pass. `summaries` is
    consumed in order, the last entry repeating, so tests can script the
    quality loop.
    """

    def __init__(self, summaries: list[str] | None = None, category: str = "economy"):
        self.summaries = list(summaries or [SUMMARY_TEXT])
        self.category = category
        self.calls: list[tuple[str, str]] = []
        self.fail_tasks: set[str] = set()

    async def complete(
        self,
        prompt: str,
        *,
        system: str = "",
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
        task: str = "generic",
    ) -> str:
        self.calls.append((task, prompt))
        if task in self.fail_tasks:
            raise LLMError(f"{task} unavailable")
        if task == "summary":
            return self.summaries.pop(0) if len(self.summaries) > 1 else self.summaries[0]
        if task == "translation":
            target = re.search(r" to (\w+)\.", prompt).group(1)
            text = prompt.split("\n\n", 1)[1]
            letter = SCRIPT_LETTER[target]
            return "".join(letter if c.isalpha() else c for c in text)
        if task == "seo":
            return SEO_JSON
        if task == "category":
            return self.category
        if task == "image":
            return '{"index": 2, "relevance": 0.9, "quality": 0.8}'
        return ""

    def count(self, task: str) -> int:
        return sum(1 for name, _ in self.calls if name == task)


class FakeRunner:
    """AgentRunner returning canned text per agent name, optionally after a delay."""

    def __init__(self, outputs: dict[str, str] | None = None, delay: float = 0.0, error: Exception | None = None):
        self.outputs = outputs or {}
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def run(self, spec: AgentSpec, prompt: str) -> str:
        self.calls.append(spec.name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.outputs.get(spec.name, "")


class EventEmbedder:
    """Maps text to one axis per known event, so same-event articles in any language match."""

    dimensions = 4
    default_threshold = 0.65
    EVENTS = (
        ("flood", "ගංවතුර", "வெள்ள"),
        ("cricket", "ක්‍රිකට්", "கிரிக்கெட்"),
        ("budget", "අයවැය", "வரவு"),
    )

    async def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions)
        lowered = text.lower()
        for axis, words in enumerate(self.EVENTS):
            if any(word in lowered for word in words):
                vector[axis] = 1.0
        if not vector.any():
            vector[-1] = 1.0
        return normalize(vector)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'newsroom.db'}",
        cron_secret="test-secret",
        fetch_retry_attempts=2,
        fetch_retry_delay_seconds=0,
        llm_retry_attempts=1,
        parallel_cluster_workers=2,
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def embedder() -> EventEmbedder:
    return EventEmbedder()
