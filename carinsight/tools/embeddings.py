"""
Text embedding provider boundary.

``embed()`` returns ``None`` when the provider is unconfigured or fails.
Callers treat ``None`` as "semantic ranking unavailable" and fall back to
keyword or filter-only retrieval; it is never raised as an error.
"""

import logging
import os
from typing import Optional, Protocol

from openai import AsyncOpenAI

from carinsight.config import settings
from carinsight.schemas.vehicle_schema import VehicleSummary

logger = logging.getLogger(__name__)


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> Optional[list[float]]:
        ...


def vehicle_text(vehicle: VehicleSummary) -> str:
    """Text indexed for a vehicle: identity, body type and selling tags."""
    parts = [vehicle.make, vehicle.model, str(vehicle.year), vehicle.body_type]
    if vehicle.transmission:
        parts.append(vehicle.transmission)
    parts.extend(vehicle.tags)
    return " ".join(p for p in parts if p)


class OpenAIEmbeddingProvider:
    """Embeddings through the OpenAI API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model or settings.model.embedding_model
        self.dimensions = dimensions or settings.model.embedding_dimensions
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if client is not None:
            self._client: Optional[AsyncOpenAI] = client
        elif api_key:
            self._client = AsyncOpenAI(
                api_key=api_key, timeout=settings.model.request_timeout_sec
            )
            logger.info("Embedding provider initialized with model %s", self.model)
        else:
            self._client = None
            logger.warning("OPENAI_API_KEY not set, embeddings disabled")

    @property
    def available(self) -> bool:
        return self._client is not None

    async def embed(self, text: str) -> Optional[list[float]]:
        if self._client is None or not text.strip():
            return None
        try:
            response = await self._client.embeddings.create(
                model=self.model, input=text, dimensions=self.dimensions
            )
        except Exception as e:
            logger.error("Failed to generate embedding: %s", e)
            return None
        if not response.data:
            return None
        return list(response.data[0].embedding)

    async def embed_batch(self, texts: list[str]) -> list[Optional[list[float]]]:
        if self._client is None or not texts:
            return [None for _ in texts]
        try:
            response = await self._client.embeddings.create(
                model=self.model, input=texts, dimensions=self.dimensions
            )
        except Exception as e:
            logger.error("Failed to generate batch embeddings: %s", e)
            return [None for _ in texts]
        return [list(item.embedding) for item in response.data]


async def index_vehicles(
    vehicles: list[VehicleSummary], provider: OpenAIEmbeddingProvider
) -> int:
    """Attach embeddings to vehicles that do not have one yet.

    Returns:
        The number of vehicles that received an embedding.
    """
    pending = [v for v in vehicles if v.embedding is None]
    if not pending:
        return 0
    vectors = await provider.embed_batch([vehicle_text(v) for v in pending])
    indexed = 0
    for vehicle, vector in zip(pending, vectors):
        if vector is not None:
            vehicle.embedding = vector
            indexed += 1
    logger.info("Indexed embeddings for %d/%d vehicles", indexed, len(pending))
    return indexed
