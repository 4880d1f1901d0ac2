# /carinsight/services/embedding_service.py

import asyncio
import logging
from typing import List, Optional, Protocol, Sequence, Union

import numpy as np
from openai import AsyncOpenAI

from carinsight.config.settings import Settings
from carinsight.utils.circuit_breaker import CircuitBreaker
from carinsight.utils.errors import ConfigurationError, DimensionMismatchError, ExternalServiceError

# Text -> vector. The OpenAI embeddings API is the real provider; the
# deterministic pseudo-embedding below is the fallback whenever it is missing
# or failing, and is also what makes re-indexing reproducible offline.

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]

DEFAULT_DIMENSIONS = 1536

_LCG_MULTIPLIER = 1664525
_LCG_INCREMENT = 1013904223
_LCG_MODULUS = 2 ** 32


class EmbeddingProvider(Protocol):
    dimensions: int

    async def embed(self, text: str) -> List[float]:
        ...


def _string_hash(text: str) -> int:
    """
    32-bit rolling hash (h = h * 31 + c) over the UTF-16 code units of `text`,
    read as a signed integer and returned as its absolute value.
    """
    h = 0
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def deterministic_embedding(text: str, dimensions: int = DEFAULT_DIMENSIONS) -> np.ndarray:
    """
    Pseudo-embedding derived only from `text`: the string hash seeds a linear
    congruential generator, each dimension takes the next value mapped to
    [-1, 1), and the vector is L2-normalized. Identical text always yields a
    bit-identical vector.
    """
    if dimensions <= 0:
        raise ValueError("dimensions must be positive")

    state = _string_hash(text)
    values = np.empty(dimensions, dtype=np.float64)
    for i in range(dimensions):
        state = (state * _LCG_MULTIPLIER + _LCG_INCREMENT) % _LCG_MODULUS
        values[i] = (state / _LCG_MODULUS) * 2 - 1

    norm = np.sqrt(np.sum(values * values))
    if norm == 0:
        return values
    return values / norm


def cosine_similarity(a: Vector, b: Vector) -> float:
    """
    Normalized dot product of two vectors, clamped to [-1, 1].
    Raises DimensionMismatchError when the lengths differ; a zero vector gives 0.0.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(va.size, vb.size)

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API, guarded by a timeout and a circuit breaker."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None, breaker: Optional[CircuitBreaker] = None):
        api_key = settings.require_openai_key()
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.timeout = settings.embedding_timeout_seconds
        self.breaker = breaker or CircuitBreaker(
            "openai-embeddings",
            failure_threshold=settings.breaker_failure_threshold,
            timeout=settings.breaker_timeout_seconds,
        )

    async def embed(self, text: str) -> List[float]:
        return await self.breaker.call(self._embed, text)

    async def _embed(self, text: str) -> List[float]:
        try:
            response = await asyncio.wait_for(
                self.client.embeddings.create(model=self.model, input=[text], dimensions=self.dimensions),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise ExternalServiceError("openai-embeddings", f"timed out after {self.timeout}s")
        except Exception as e:
            raise ExternalServiceError("openai-embeddings", str(e)) from e

        if not response.data:
            raise ExternalServiceError("openai-embeddings", "empty embedding response")
        return list(response.data[0].embedding)

    async def close(self):
        await self.client.close()


def build_embedding_provider(settings: Settings) -> Optional[OpenAIEmbeddingProvider]:
    """Returns the OpenAI provider, or None when it is not configured."""
    try:
        return OpenAIEmbeddingProvider(settings)
    except ConfigurationError as e:
        logger.warning(f"Real embeddings disabled, using deterministic fallback: {e}")
        return None
