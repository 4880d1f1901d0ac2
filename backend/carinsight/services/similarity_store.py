# /carinsight/services/similarity_store.py

import math
import asyncio
import logging
import itertools
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np

from carinsight.models.domain import SimilarityResult, Vehicle
from carinsight.services.embedding_service import (
    DEFAULT_DIMENSIONS,
    EmbeddingProvider,
    cosine_similarity,
    deterministic_embedding,
)

# In-memory vector index of the vehicle catalog. Vectors come from the
# configured provider when it answers in time, otherwise from the
# deterministic fallback, so the store always has a vector for every text.

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    vehicle_id: str
    text: str
    vector: np.ndarray
    price: Optional[float]
    sequence: int


class SimilarityStore:
    def __init__(
        self,
        provider: Optional[EmbeddingProvider] = None,
        dimensions: int = DEFAULT_DIMENSIONS,
        timeout: float = 10.0,
    ):
        self.provider = provider
        self.dimensions = dimensions
        self.timeout = timeout
        self._entries: Dict[str, _Entry] = {}
        self._sequence = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._entries

    async def embed_text(self, text: str) -> np.ndarray:
        """Provider vector when available, deterministic pseudo-embedding otherwise."""
        if self.provider is not None:
            try:
                vector = await asyncio.wait_for(self.provider.embed(text), timeout=self.timeout)
                if len(vector) == self.dimensions:
                    return np.asarray(vector, dtype=np.float64)
                logger.warning(
                    f"Embedding provider returned {len(vector)} dimensions, expected {self.dimensions}. Using fallback."
                )
            except asyncio.TimeoutError:
                logger.warning(f"Embedding provider timed out after {self.timeout}s. Using fallback.")
            except Exception as e:
                logger.warning(f"Embedding provider unavailable, using fallback: {e}")
        return deterministic_embedding(text, self.dimensions)

    async def upsert_embedding(self, vehicle_id: str, text: str, price: Optional[float] = None) -> bool:
        """
        Indexes `text` for the vehicle. Returns False when the text is unchanged
        (nothing re-embedded). A vehicle keeps its first insertion position.
        """
        existing = self._entries.get(vehicle_id)
        if existing is not None and existing.text == text:
            if price is not None:
                existing.price = price
            return False

        vector = await self.embed_text(text)
        sequence = existing.sequence if existing is not None else next(self._sequence)
        self._entries[vehicle_id] = _Entry(
            vehicle_id=vehicle_id,
            text=text,
            vector=vector,
            price=price if price is not None else (existing.price if existing else None),
            sequence=sequence,
        )
        logger.debug(f"Indexed vehicle {vehicle_id} ({'re-embedded' if existing else 'new'})")
        return True

    async def upsert_vehicle(self, vehicle: Vehicle) -> bool:
        return await self.upsert_embedding(vehicle.id, vehicle.descriptive_text(), vehicle.price)

    async def index_vehicles(self, vehicles: Iterable[Vehicle]) -> int:
        """Indexes a catalog. Returns how many vehicles were (re-)embedded."""
        changed = 0
        for vehicle in vehicles:
            if await self.upsert_vehicle(vehicle):
                changed += 1
        logger.info(f"Similarity index holds {len(self)} vehicles ({changed} embedded in this pass)")
        return changed

    def remove(self, vehicle_id: str) -> bool:
        return self._entries.pop(vehicle_id, None) is not None

    async def query(self, text: str, k: int) -> List[SimilarityResult]:
        """
        The k vehicles most similar to `text`, best first. Equal scores are
        ordered by ascending price (unknown price last), then insertion order.
        """
        if k <= 0 or not self._entries:
            return []

        query_vector = await self.embed_text(text)
        scored = [
            (cosine_similarity(query_vector, entry.vector), entry)
            for entry in self._entries.values()
        ]
        scored.sort(
            key=lambda item: (
                -item[0],
                item[1].price if item[1].price is not None else math.inf,
                item[1].sequence,
            )
        )
        return [
            SimilarityResult(vehicle_id=entry.vehicle_id, score=score, price=entry.price)
            for score, entry in scored[:k]
        ]
