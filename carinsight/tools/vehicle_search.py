"""
Hybrid vehicle retrieval over the inventory store.

Semantic ranking is preferred: the query is embedded and every filtered
candidate with a stored embedding is scored by cosine similarity. When the
embedding provider is unavailable, or nothing clears the similarity
threshold, retrieval degrades to keyword matching and finally to
filter-only results with a fixed relevance score.
"""

import logging
import re
from typing import Optional

from carinsight.config import settings
from carinsight.schemas.vehicle_schema import (
    ScoredVehicle,
    SearchFilters,
    SearchStats,
    VehicleSummary,
)
from carinsight.tools.embeddings import EmbeddingProvider
from carinsight.tools.inventory import InventoryStore
from carinsight.tools.similarity import cosine_similarity

logger = logging.getLogger(__name__)

# Query words that carry no retrieval signal on their own.
_QUERY_STOPWORDS = frozenset({
    "veículo", "veiculo", "carro", "seminovo", "de", "para", "com", "e", "o", "a",
})


class InventorySearchError(Exception):
    """Raised when the inventory store cannot be queried."""


def _tokens(text: str) -> list[str]:
    words = re.findall(r"[\w-]+", text.lower())
    return [w for w in words if len(w) > 1 and w not in _QUERY_STOPWORDS]


def _vehicle_terms(vehicle: VehicleSummary) -> set[str]:
    terms = set(_tokens(f"{vehicle.make} {vehicle.model} {vehicle.body_type}"))
    for tag in vehicle.tags:
        terms.update(_tokens(tag))
    return terms


class VehicleSearchService:
    """Semantic, keyword and filter retrieval with graceful degradation."""

    def __init__(
        self,
        store: InventoryStore,
        embeddings: Optional[EmbeddingProvider] = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings

    async def _fetch(self, filters: SearchFilters, limit: int) -> list[VehicleSummary]:
        try:
            return await self._store.find_by_filters(filters, limit)
        except Exception as e:
            logger.error("Inventory query failed: %s", e)
            raise InventorySearchError(f"Inventory query failed: {e}") from e

    async def _embed(self, text: str) -> Optional[list[float]]:
        if self._embeddings is None:
            return None
        try:
            return await self._embeddings.embed(text)
        except Exception as e:
            logger.warning("Embedding provider failed, using keyword ranking: %s", e)
            return None

    async def _score_semantic(
        self, query_vector: list[float], filters: SearchFilters, limit: int
    ) -> list[ScoredVehicle]:
        threshold = settings.search.similarity_threshold
        candidates = await self._fetch(filters, settings.search.scan_limit)
        scored = []
        for vehicle in candidates:
            if not vehicle.embedding:
                continue
            score = cosine_similarity(query_vector, vehicle.embedding)
            if score > threshold:
                scored.append(ScoredVehicle(vehicle=vehicle, score=score))
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:limit]

    async def semantic_search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = 10
    ) -> list[ScoredVehicle]:
        """Rank filtered candidates by similarity to ``query``.

        Falls back to keyword search when the query cannot be embedded.
        Candidates scoring at or below the similarity threshold are dropped.
        """
        filters = filters or SearchFilters()
        logger.info("Semantic search: %r", query)
        query_vector = await self._embed(query)
        if query_vector is None:
            logger.warning("Could not embed query, falling back to keyword search")
            return await self.keyword_search(query, filters, limit)
        return await self._score_semantic(query_vector, filters, limit)

    async def keyword_search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = 10
    ) -> list[ScoredVehicle]:
        """Match query words against make, model, body type and tags."""
        filters = filters or SearchFilters()
        words = _tokens(query)
        if not words:
            return []
        candidates = await self._fetch(filters, settings.search.scan_limit)
        hits = []
        for vehicle in candidates:
            terms = _vehicle_terms(vehicle)
            matched = sum(1 for w in words if w in terms)
            if matched:
                hits.append((matched, vehicle))
        hits.sort(key=lambda h: (-h[0], h[1].price))
        score = settings.search.keyword_score
        return [ScoredVehicle(vehicle=v, score=score) for _, v in hits[:limit]]

    async def filter_search(
        self,
        filters: Optional[SearchFilters] = None,
        limit: int = 10,
        score: Optional[float] = None,
    ) -> list[ScoredVehicle]:
        """Structural filters only; every hit gets the same fixed score."""
        filters = filters or SearchFilters()
        score = settings.search.filter_search_score if score is None else score
        vehicles = await self._fetch(filters, limit)
        return [ScoredVehicle(vehicle=v, score=score) for v in vehicles]

    async def hybrid_search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = 10
    ) -> list[ScoredVehicle]:
        """Semantic first, then keyword, then filter-only retrieval."""
        filters = filters or SearchFilters()
        query_vector = await self._embed(query)
        if query_vector is not None:
            results = await self._score_semantic(query_vector, filters, limit)
            if results:
                return results
            logger.info("No semantic match above threshold for %r", query)

        results = await self.keyword_search(query, filters, limit)
        if results:
            return results

        logger.info("Keyword search empty, using filter-only retrieval")
        return await self.filter_search(
            filters, limit, score=settings.search.filter_fallback_score
        )

    async def find_similar(self, vehicle_id: str, limit: int = 5) -> list[ScoredVehicle]:
        """Vehicles whose embedding is closest to the given vehicle's."""
        try:
            base = await self._store.find_by_id(vehicle_id)
        except Exception as e:
            raise InventorySearchError(f"Inventory lookup failed: {e}") from e
        if base is None or not base.embedding:
            return []
        filters = SearchFilters(exclude_ids=[vehicle_id])
        return await self._score_semantic(base.embedding, filters, limit)

    async def search_stats(self) -> SearchStats:
        vehicles = await self._fetch(SearchFilters(), settings.search.scan_limit)
        total = len(vehicles)
        embedded = sum(1 for v in vehicles if v.embedding)
        coverage = (embedded / total * 100) if total else 0.0
        return SearchStats(
            total_vehicles=total,
            vehicles_with_embedding=embedded,
            embedding_coverage=f"{coverage:.1f}%",
        )
