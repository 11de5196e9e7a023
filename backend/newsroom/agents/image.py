"""Image capability - picks the lead image for a cluster."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from typing import Any

import httpx
from strands import tool

from newsroom.agents.base import AgentRunner, AgentSpec, Capability, parse_agent_output
from newsroom.agents.policy import AgentPolicy
from newsroom.constants import Capability as CapabilityName
from newsroom.exceptions import AgentOutputError, LLMError
from newsroom.llm import primitives
from newsroom.llm.generator import TextGenerator
from newsroom.schemas.enrichment import ImageInput, ImageResult
from newsroom.services.images import filter_candidates, images_from_html, is_http_url, is_placeholder

logger = logging.getLogger(__name__)

PageImagesFn = Callable[[str], Awaitable[list[str]]]

MAX_PAGES = 3
MAX_RANKED = 10


@dataclass(frozen=True)
class ImageConfig:
    model: str | None = None


class PageImageFetcher:
    """Reads article pages for og:image and inline images."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def __call__(self, url: str) -> list[str]:
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.info("Could not read %s for images: %s", url, e)
            return []
        return images_from_html(response.text, base_url=str(response.url))

    async def looks_like_image(self, url: str) -> bool:
        try:
            response = await self.client.head(url)
        except httpx.HTTPError:
            return False
        return response.is_success and response.headers.get("content-type", "").startswith("image/")


def collect_candidates(data: ImageInput) -> list[str]:
    """Images attached to the member articles, deduplicated and filtered."""
    urls: list[str | None] = []
    for article in data.articles:
        urls.append(article.image_url)
        urls.extend(article.image_urls)
    return filter_candidates(urls)


async def select_image(
    generator: TextGenerator, config: ImageConfig, page_images: PageImagesFn | None, data: ImageInput
) -> ImageResult:
    """
    Choose an image without an agent.

    Keeps an existing image, otherwise looks at article images and then
    article pages. More than one candidate is ranked by the model; when
    ranking fails the first candidate is used.
    """
    if data.existing_image_url:
        return ImageResult(image_url=data.existing_image_url, relevance_score=1.0, quality_score=1.0, source="existing")

    candidates = collect_candidates(data)
    source = "article"
    if not candidates and page_images is not None:
        source = "page"
        for article in data.articles[:MAX_PAGES]:
            if article.url and is_http_url(article.url):
                candidates = filter_candidates(await page_images(article.url))
                if candidates:
                    break

    if not candidates:
        return ImageResult(source="none")
    if len(candidates) == 1:
        return ImageResult(
            image_url=candidates[0], relevance_score=0.7, quality_score=0.7, source=source, candidates_considered=1
        )

    ranked = candidates[:MAX_RANKED]
    try:
        index, relevance, quality = await primitives.rank_images(
            generator, data.headline, data.summary, ranked, model=config.model
        )
    except LLMError as e:
        logger.warning("Image ranking failed, using first candidate: %s", e)
        index, relevance, quality = 0, 0.5, 0.5

    return ImageResult(
        image_url=ranked[index],
        relevance_score=relevance,
        quality_score=quality,
        source=source,
        candidates_considered=len(ranked),
    )


def build_image_tools(
    generator: TextGenerator, config: ImageConfig, fetcher: PageImageFetcher | None, data: ImageInput
) -> list[Any]:
    @tool
    def list_candidate_images() -> list[str]:
        """
        List images attached to the story's articles, with placeholders removed.

        Returns:
            Candidate image URLs
        """
        return collect_candidates(data)

    @tool
    async def find_page_images(url: str) -> list[str]:
        """
        Read an article page and list its usable images.

        Args:
            url: Article URL

        Returns:
            Candidate image URLs found on the page
        """
        if fetcher is None:
            return []
        return filter_candidates(await fetcher(url))

    @tool
    async def check_image(url: str) -> dict[str, Any]:
        """
        Check that an image URL is reachable and not a placeholder.

        Args:
            url: Image URL

        Returns:
            Dict with usable flag
        """
        if not is_http_url(url) or is_placeholder(url):
            return {"usable": False}
        if fetcher is None:
            return {"usable": True}
        return {"usable": await fetcher.looks_like_image(url)}

    @tool
    async def rank_candidates(candidates: list[str]) -> dict[str, Any]:
        """
        Ask the model which candidate best illustrates the story.

        Args:
            candidates: Image URLs to choose from

        Returns:
            Dict with image_url, relevance and quality
        """
        index, relevance, quality = await primitives.rank_images(
            generator, data.headline, data.summary, candidates[:MAX_RANKED], model=config.model
        )
        return {"image_url": candidates[index], "relevance": relevance, "quality": quality}

    return [list_candidate_images, find_page_images, check_image, rank_candidates]


class ImageAgent:
    NAME = "image_agent"

    INSTRUCTIONS = """You choose the lead image for one news story.

1. Call list_candidate_images. If it is empty, call find_page_images for up to
   three of these article URLs: {urls}
2. Drop candidates that fail check_image.
3. With one candidate, use it. With several, call rank_candidates.
4. If nothing is usable, answer with image_url null.

Respond with JSON only:
{{"image_url": "..." or null, "relevance_score": 0-1, "quality_score": 0-1,
 "source": "article" | "page" | "none", "candidates_considered": <n>}}"""

    def __init__(
        self,
        runner: AgentRunner,
        generator: TextGenerator,
        config: ImageConfig,
        fetcher: PageImageFetcher | None,
        model: str,
    ):
        self.runner = runner
        self.generator = generator
        self.config = config
        self.fetcher = fetcher
        self.model = model

    async def __call__(self, data: ImageInput) -> ImageResult:
        if data.existing_image_url:
            return ImageResult(
                image_url=data.existing_image_url, relevance_score=1.0, quality_score=1.0, source="existing"
            )
        urls = [a.url for a in data.articles if a.url][:MAX_PAGES]
        spec = AgentSpec(
            name=self.NAME,
            instructions=self.INSTRUCTIONS.format(urls=", ".join(urls) or "none"),
            tools=build_image_tools(self.generator, self.config, self.fetcher, data),
            model=self.model,
        )
        result = parse_agent_output(await self.runner.run(spec, '{"task": "select_image"}'), ImageResult)
        if result.image_url and (not is_http_url(result.image_url) or is_placeholder(result.image_url)):
            raise AgentOutputError(f"Agent picked an unusable image {result.image_url}")
        return result


def build_image_capability(
    runner: AgentRunner,
    generator: TextGenerator,
    policy: AgentPolicy,
    fetcher: PageImageFetcher | None = None,
) -> Capability[ImageInput, ImageResult]:
    config = ImageConfig(model=policy.model_for(CapabilityName.IMAGE))
    return Capability(
        name=CapabilityName.IMAGE,
        agent=ImageAgent(runner, generator, config, fetcher, config.model or ""),
        fallback=partial(select_image, generator, config, fetcher),
        timeout=policy.timeout_for(CapabilityName.IMAGE),
        quality=lambda result: result.relevance_score if result.image_url else None,
    )
