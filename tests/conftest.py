"""Shared test fixtures and helpers."""

import asyncio
from typing import Optional

import pytest

from carinsight.chat_service import ChatService
from carinsight.conversation.extractor import ProfileExtractor
from carinsight.conversation.guardrails import GuardrailPipeline
from carinsight.conversation.session_store import SessionStore
from carinsight.conversation.state_machine import ConversationStateMachine
from carinsight.conversation.transitions import NodeContext, NodeServices
from carinsight.recommendation.ranker import RecommendationRanker
from carinsight.schemas.conversation_schema import (
    ConversationSession,
    DialogueNode,
    Speaker,
)
from carinsight.schemas.profile_schema import CustomerProfile
from carinsight.schemas.vehicle_schema import (
    RecommendedVehicle,
    SearchFilters,
    VehicleRecommendation,
    VehicleSummary,
)
from carinsight.tools.inventory import InMemoryInventoryStore
from carinsight.tools.llm_router import LLMRouter, ProviderError
from carinsight.tools.vehicle_search import VehicleSearchService

CURRENT_YEAR = 2025


@pytest.fixture
def extractor():
    return ProfileExtractor()


@pytest.fixture
def guardrail_pipeline():
    return GuardrailPipeline()


@pytest.fixture
def session_store():
    return SessionStore()


@pytest.fixture
def inventory():
    return InMemoryInventoryStore()


@pytest.fixture
def search_service(inventory):
    return VehicleSearchService(inventory)


@pytest.fixture
def ranker(search_service):
    return RecommendationRanker(search_service, current_year=CURRENT_YEAR)


@pytest.fixture
def services(ranker):
    return NodeServices(ranker=ranker)


@pytest.fixture
def machine(services):
    return ConversationStateMachine(services)


@pytest.fixture
def chat_service(machine, inventory):
    return ChatService(SessionStore(), machine, inventory)


def make_vehicle(vehicle_id: str = "veh-900", **overrides) -> VehicleSummary:
    """Helper to create a VehicleSummary with sensible defaults."""
    data = {
        "id": vehicle_id,
        "make": "Toyota",
        "model": "Corolla",
        "year": 2022,
        "price": 95000,
        "mileage": 30000,
        "body_type": "sedan",
        "transmission": "automatic",
        "fuel_type": "flex",
    }
    data.update(overrides)
    return VehicleSummary(**data)


def make_recommendation(
    vehicle_id: str = "veh-900",
    score: int = 80,
    reasoning: str = "Boa opção para o seu perfil",
    **vehicle_overrides,
) -> VehicleRecommendation:
    """Helper to create a VehicleRecommendation around make_vehicle()."""
    vehicle = make_vehicle(vehicle_id, **vehicle_overrides)
    return VehicleRecommendation(
        vehicle_id=vehicle.id,
        match_score=score,
        reasoning=reasoning,
        vehicle=RecommendedVehicle.from_summary(vehicle),
    )


def make_session(
    node: DialogueNode = DialogueNode.GREETING,
    profile: Optional[dict] = None,
    recommendations: Optional[list[VehicleRecommendation]] = None,
    session_id: str = "sess-test",
) -> ConversationSession:
    """Session positioned at ``node`` with an optional partial profile."""
    session = ConversationSession(session_id=session_id)
    session.node = node
    if profile:
        session.profile = CustomerProfile().merged(profile)
    if recommendations is not None:
        session.recommendations = list(recommendations)
    return session


def make_context(
    session: ConversationSession,
    utterance: Optional[str],
    services: Optional[NodeServices] = None,
    turn_flags: Optional[list[str]] = None,
) -> NodeContext:
    """NodeContext as the state machine builds it; records the utterance first."""
    if utterance is not None:
        session.add_message(Speaker.HUMAN, utterance)
    return NodeContext(
        session=session,
        utterance=utterance,
        services=services or NodeServices(),
        turn_flags=turn_flags if turn_flags is not None else [],
    )


def shown_entry(rec: VehicleRecommendation) -> dict:
    return {
        "vehicle_id": rec.vehicle_id,
        "brand": rec.vehicle.make,
        "model": rec.vehicle.model,
        "year": rec.vehicle.year,
        "price": rec.vehicle.price,
    }


class FakeClock:
    """Manually advanced monotonic clock for circuit breaker tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Chat provider returning a canned answer, or failing on demand."""

    def __init__(self, name: str, reply: str = "ok", fail: bool = False, delay: float = 0.0):
        self.name = name
        self.reply = reply
        self.fail = fail
        self.delay = delay
        self.calls = 0
        self.last_messages = None

    async def complete(self, messages, options):
        self.calls += 1
        self.last_messages = messages
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ProviderError(f"{self.name} is down")
        return self.reply


class FakeEmbeddings:
    """Embedding provider backed by a fixed text -> vector mapping."""

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        error: Optional[Exception] = None,
    ):
        self.vectors = vectors or {}
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.vectors.get(text)


class FailingInventory:
    """Inventory store whose every query raises."""

    async def find_by_filters(self, filters: SearchFilters, limit: int):
        raise ConnectionError("database unreachable")

    async def find_by_id(self, vehicle_id: str):
        raise ConnectionError("database unreachable")


class FakeRanker:
    """Ranker returning fixed recommendations and recording its calls."""

    def __init__(self, recommendations=None, error: Optional[Exception] = None):
        self.recommendations = recommendations or []
        self.error = error
        self.calls: list[dict] = []

    async def recommend(self, profile, limit=3, exclude_ids=()):
        self.calls.append({"profile": profile, "limit": limit, "exclude_ids": list(exclude_ids)})
        if self.error is not None:
            raise self.error
        return [r for r in self.recommendations if r.vehicle_id not in exclude_ids][:limit]


def make_router(
    *providers: FakeProvider,
    clock: Optional[FakeClock] = None,
    failure_threshold: int = 3,
    reset_timeout_sec: float = 60.0,
    request_timeout_sec: float = 1.0,
) -> LLMRouter:
    """Router over fake providers with a controllable clock."""
    return LLMRouter(
        list(providers),
        failure_threshold=failure_threshold,
        reset_timeout_sec=reset_timeout_sec,
        request_timeout_sec=request_timeout_sec,
        clock=clock or FakeClock(),
    )
