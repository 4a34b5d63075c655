"""
Recommendation ranking: profile -> query + filters -> explained candidates.

The ranker turns the buyer profile into a free-text query for semantic
retrieval and a set of hard filters, asks the search service for
candidates, keeps the best three and explains each one in the customer's
terms (reasoning, highlights, concerns).
"""

import logging
from datetime import date
from typing import Optional, Protocol, Sequence

from carinsight.config import settings
from carinsight.schemas.profile_schema import BodyType, CustomerProfile, UsageCategory
from carinsight.schemas.vehicle_schema import (
    RecommendedVehicle,
    ScoredVehicle,
    SearchFilters,
    VehicleRecommendation,
)
from carinsight.tools.vehicle_search import VehicleSearchService
from carinsight.utils import format_brl

logger = logging.getLogger(__name__)

DEFAULT_QUERY = "veículo seminovo"

USAGE_ADJECTIVES: dict[UsageCategory, str] = {
    UsageCategory.RIDESHARE: "sedan econômico confortável",
    UsageCategory.CITY: "compacto econômico",
    UsageCategory.TRIP: "confortável espaçoso",
    UsageCategory.WORK: "robusto trabalho",
    UsageCategory.MIXED: "versátil",
}

PRIORITY_TERMS: dict[str, str] = {
    "economy": "econômico",
    "comfort": "confortável",
    "safety": "seguro",
    "power": "potente",
}

BODY_LABELS: dict[str, str] = {
    BodyType.SEDAN.value: "Sedan",
    BodyType.HATCH.value: "Hatch",
    BodyType.SUV.value: "SUV",
    BodyType.PICKUP.value: "Picape",
    BodyType.MINIVAN.value: "Minivan",
}

LOW_MILEAGE_KM = 30_000
VERY_LOW_MILEAGE_KM = 20_000
RECENT_YEARS = 2


def budget_tier(budget: int) -> str:
    if budget < 60_000:
        return "popular econômico"
    if budget < 120_000:
        return "intermediário"
    return "premium"


class Ranker(Protocol):
    async def recommend(
        self,
        profile: CustomerProfile,
        limit: int = 3,
        exclude_ids: Sequence[str] = (),
    ) -> list[VehicleRecommendation]:
        ...


class RecommendationRanker:
    """Ranks inventory against a buyer profile.

    Retrieval errors propagate as InventorySearchError; the Search node
    turns them into an empty result with a ``search_error`` flag.
    """

    def __init__(
        self, search: VehicleSearchService, current_year: Optional[int] = None
    ) -> None:
        self._search = search
        self._current_year = current_year

    @property
    def search(self) -> VehicleSearchService:
        return self._search

    @property
    def current_year(self) -> int:
        return self._current_year or date.today().year

    def build_query(self, profile: CustomerProfile) -> str:
        parts: list[str] = []
        if profile.body_type:
            parts.append(profile.body_type.value)
        if profile.brand:
            parts.append(profile.brand)
        if profile.model:
            parts.append(profile.model)
        if profile.usage:
            parts.append(USAGE_ADJECTIVES[profile.usage])
        if profile.budget:
            parts.append(budget_tier(profile.budget))
        if (profile.people or 0) >= 5 or (profile.min_seats or 0) >= 7:
            parts.append("espaçoso família grande")
        for tag in profile.priorities:
            parts.append(PRIORITY_TERMS.get(tag, tag))
        return " ".join(parts) if parts else DEFAULT_QUERY

    def build_filters(
        self, profile: CustomerProfile, exclude_ids: Sequence[str] = ()
    ) -> SearchFilters:
        price_max = None
        if profile.budget:
            price_max = profile.budget * settings.search.budget_flexibility
        return SearchFilters(
            price_max=price_max,
            year_min=profile.min_year,
            body_type=profile.body_type.value if profile.body_type else None,
            make=profile.brand,
            exclude_ids=list(exclude_ids),
        )

    async def recommend(
        self,
        profile: CustomerProfile,
        limit: int = 3,
        exclude_ids: Sequence[str] = (),
    ) -> list[VehicleRecommendation]:
        query = self.build_query(profile)
        filters = self.build_filters(profile, exclude_ids)
        logger.info("Ranking with query %r", query)
        hits = await self._search.hybrid_search(
            query, filters, limit=settings.search.candidate_limit
        )
        top = hits[:min(limit, settings.search.result_limit)]
        return [self.explain(profile, hit) for hit in top]

    def explain(self, profile: CustomerProfile, hit: ScoredVehicle) -> VehicleRecommendation:
        vehicle = hit.vehicle
        score = max(0, min(100, round(hit.score * 100)))
        return VehicleRecommendation(
            vehicle_id=vehicle.id,
            match_score=score,
            reasoning=self._reasoning(profile, hit),
            highlights=self._highlights(profile, hit),
            concerns=self._concerns(profile, hit),
            vehicle=RecommendedVehicle.from_summary(vehicle),
        )

    def _reasoning(self, profile: CustomerProfile, hit: ScoredVehicle) -> str:
        vehicle = hit.vehicle
        if profile.body_type and vehicle.body_type.lower() == profile.body_type.value:
            label = BODY_LABELS.get(profile.body_type.value, vehicle.body_type)
            return f"{label} como você pediu"
        if profile.budget and vehicle.price <= profile.budget:
            return f"Dentro do seu orçamento de R$ {format_brl(profile.budget)}"
        if profile.min_year and vehicle.year >= profile.min_year:
            return f"Ano {vehicle.year}, a partir de {profile.min_year} como você pediu"
        if vehicle.mileage and vehicle.mileage < LOW_MILEAGE_KM:
            return "Baixa quilometragem"
        return "Boa opção para o seu perfil"

    def _highlights(self, profile: CustomerProfile, hit: ScoredVehicle) -> list[str]:
        vehicle = hit.vehicle
        highlights: list[str] = []
        if vehicle.mileage and vehicle.mileage < VERY_LOW_MILEAGE_KM:
            highlights.append(f"Apenas {format_brl(vehicle.mileage)} km rodados")
        if vehicle.year >= self.current_year - RECENT_YEARS:
            highlights.append(f"Modelo recente ({vehicle.year})")
        if vehicle.transmission == "automatic":
            highlights.append("Câmbio automático")
        if (
            profile.usage == UsageCategory.RIDESHARE
            and vehicle.body_type.lower() == BodyType.SEDAN.value
        ):
            highlights.append("Ideal para motorista de aplicativo")
        return highlights[:3]

    def _concerns(self, profile: CustomerProfile, hit: ScoredVehicle) -> list[str]:
        vehicle = hit.vehicle
        concerns: list[str] = []
        if profile.budget and vehicle.price > profile.budget:
            over = vehicle.price - profile.budget
            concerns.append(f"R$ {format_brl(over)} acima do seu orçamento")
        if profile.max_mileage and vehicle.mileage > profile.max_mileage:
            concerns.append("Quilometragem acima do limite que você pediu")
        if (
            profile.transmission
            and vehicle.transmission
            and vehicle.transmission != profile.transmission.value
        ):
            concerns.append("Câmbio diferente do que você prefere")
        return concerns
