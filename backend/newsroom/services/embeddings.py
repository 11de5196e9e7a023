"""Article embedders used by the clustering engine."""

import hashlib
import logging
import re
from typing import Protocol

import numpy as np
from google import genai

from newsroom.config import Settings
from newsroom.exceptions import LLMError
from newsroom.utils.retry import with_retry

logger = logging.getLogger(__name__)

TOKEN_RE = re.compile(r"\w+", re.UNICODE)

STOPWORDS = frozenset(
    """a an and are as at be been by for from has have in into is it its of on or over says said
    that the their they this to under up was were will with after before about new more than
    amid against during""".split()
)

# Folds common variants so different outlets' wording lands on the same features
SYNONYMS = {
    "govt": "government",
    "gov": "government",
    "pres": "president",
    "pm": "minister",
    "sl": "srilanka",
    "lanka": "srilanka",
    "killed": "dead",
    "dies": "dead",
    "died": "dead",
    "deaths": "dead",
}


# Cosine similarity at which an article joins a cluster, per embedder kind
SEMANTIC_THRESHOLD = 0.65
LEXICAL_THRESHOLD = 0.5


class Embedder(Protocol):
    """Turns article text into a fixed-length unit vector."""

    dimensions: int
    default_threshold: float

    async def embed(self, text: str) -> np.ndarray: ...


def stem(token: str) -> str:
    """Crude English suffix folding: floods, flooded and flooding all become flood."""
    if not token.isascii() or not token.isalpha():
        return token
    if len(token) > 4 and token.endswith("ies"):
        token = token[:-3] + "y"
    elif len(token) > 3 and token.endswith("s") and not token.endswith("ss"):
        token = token[:-1]
    for suffix in ("ing", "ed"):
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            token = token[: -len(suffix)]
            break
    if len(token) > 3 and token.endswith("e"):
        token = token[:-1]
    return token


def tokenize(text: str) -> list[str]:
    tokens = []
    for raw in TOKEN_RE.findall(text.lower()):
        token = SYNONYMS.get(raw, raw)
        if token in STOPWORDS or (len(token) < 3 and not token.isdigit()):
            continue
        tokens.append(stem(token))
    return tokens


def normalize(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm == 0:
        return vector
    return vector / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


class HashingEmbedder:
    """
    Signed feature hashing of normalized, stemmed tokens.

    Deterministic and offline, but lexical: it groups same-language
    headlines that share most of their words. Differently worded reports
    of one event, and reports in different languages, score near zero
    and start separate clusters. `GeminiEmbedder` handles those.
    """

    default_threshold = LEXICAL_THRESHOLD

    def __init__(self, dimensions: int = 512):
        self.dimensions = dimensions

    async def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in tokenize(text):
            digest = hashlib.md5(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "little") % self.dimensions
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[index] += sign
        return normalize(vector)


class GeminiEmbedder:
    """Embeddings from the Gemini API; multilingual and semantic."""

    default_threshold = SEMANTIC_THRESHOLD

    def __init__(self, api_key: str, model: str = "text-embedding-004", dimensions: int = 768, attempts: int = 3):
        self.client = genai.Client(api_key=api_key)
        self.model = model
        self.dimensions = dimensions
        self.attempts = attempts

    async def embed(self, text: str) -> np.ndarray:
        async def call() -> list[float]:
            response = await self.client.aio.models.embed_content(model=self.model, contents=text)
            if not response.embeddings or not response.embeddings[0].values:
                raise LLMError("Gemini returned no embedding")
            return list(response.embeddings[0].values)

        values = await with_retry(call, attempts=self.attempts, label="gemini embed")
        return normalize(np.asarray(values, dtype=np.float64))


def get_embedder(settings: Settings) -> Embedder:
    """
    Get the configured embedder.

    `auto` picks Gemini whenever a Gemini key is configured and the
    offline hashing embedder otherwise.
    """
    provider = settings.embedding_provider
    if provider == "auto":
        provider = "gemini" if settings.gemini_api_key else "hashing"
    if provider == "gemini":
        if not settings.gemini_api_key:
            raise ValueError("EMBEDDING_PROVIDER=gemini requires GEMINI_API_KEY")
        return GeminiEmbedder(api_key=settings.gemini_api_key, model=settings.embedding_model)
    logger.warning("Using the lexical hashing embedder; only closely worded same-language headlines will cluster")
    return HashingEmbedder(dimensions=settings.embedding_dimensions)


def similarity_threshold(settings: Settings, embedder: Embedder) -> float:
    """The configured clustering threshold, or the embedder's own default."""
    if settings.cluster_similarity_threshold is not None:
        return settings.cluster_similarity_threshold
    return embedder.default_threshold
