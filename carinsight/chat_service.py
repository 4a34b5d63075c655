"""
Chat service: the inbound API over sessions and the state machine.

Serializes turns per session with the store's lock, seeds a session when the
customer arrives from a specific listing, converts unexpected failures into
an apology, and derives the suggested actions shown next to every reply.

Usage:
    service = build_chat_service()
    started = await service.start_session()
    response = await service.send_message(started["session_id"], "Oi, sou Maria")
"""

import uuid
from typing import Any, Optional

from carinsight.config import settings
from carinsight.conversation.session_store import SessionStore
from carinsight.conversation.state_machine import ConversationStateMachine
from carinsight.conversation.transitions import NodeServices
from carinsight.logging_context import get_session_logger, set_session_id
from carinsight.nodes.greeting import SEEDED_REASONING
from carinsight.prompts import messages
from carinsight.recommendation.ranker import RecommendationRanker
from carinsight.schemas.conversation_schema import (
    ChatResponse,
    ConversationSession,
    Speaker,
    SuggestedAction,
)
from carinsight.schemas.profile_schema import BodyType
from carinsight.schemas.vehicle_schema import (
    RecommendedVehicle,
    VehicleRecommendation,
    VehicleSummary,
)
from carinsight.tools.embeddings import EmbeddingProvider
from carinsight.tools.inventory import InMemoryInventoryStore, InventoryStore
from carinsight.tools.llm_router import ChatProvider, LLMRouter
from carinsight.tools.vehicle_search import VehicleSearchService

logger = get_session_logger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a message targets a session that was never started."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id


def derive_suggested_actions(
    session: ConversationSession, turn_flags: list[str], failed: bool = False
) -> list[SuggestedAction]:
    """Actions the client can offer next, derived from the session state."""
    actions: list[SuggestedAction] = []
    if failed or "search_error" in turn_flags:
        actions += [SuggestedAction.RETRY, SuggestedAction.HANDOFF_HUMAN]
    if session.metadata.has_flag("handoff_requested"):
        actions.append(SuggestedAction.HANDOFF_HUMAN)
    if session.metadata.has_flag("visit_requested"):
        actions.append(SuggestedAction.SCHEDULE_VISIT)
    if session.recommendations:
        actions += [SuggestedAction.SHOW_DETAILS, SuggestedAction.SHOW_FINANCING]
    if session.profile.wants_financing:
        actions.append(SuggestedAction.FINANCING_SIMULATION)
    if session.profile.has_trade_in:
        actions.append(SuggestedAction.TRADE_IN_EVALUATION)
    return list(dict.fromkeys(actions))


def seed_vehicle(session: ConversationSession, vehicle: VehicleSummary) -> None:
    """Treat a listing the customer started from as already recommended."""
    session.recommendations = [
        VehicleRecommendation(
            vehicle_id=vehicle.id,
            match_score=100,
            reasoning=SEEDED_REASONING,
            vehicle=RecommendedVehicle.from_summary(vehicle),
        )
    ]
    update: dict[str, Any] = {
        "selected_vehicle_id": vehicle.id,
        "last_shown_vehicles": [
            {
                "vehicle_id": vehicle.id,
                "brand": vehicle.make,
                "model": vehicle.model,
                "year": vehicle.year,
                "price": vehicle.price,
            }
        ],
    }
    biz = settings.business
    if biz.seed_profile_from_vehicle:
        body = vehicle.body_type.lower()
        if body in {b.value for b in BodyType}:
            update["body_type"] = body
        update["budget"] = round(vehicle.price * biz.seed_budget_headroom)
    session.profile = session.profile.merged(update)
    logger.info("Session seeded with vehicle %s", vehicle.id)


class ChatService:
    """Entry point used by the transport layer (HTTP, console, tests)."""

    def __init__(
        self,
        store: SessionStore,
        machine: ConversationStateMachine,
        inventory: Optional[InventoryStore] = None,
    ) -> None:
        self.store = store
        self.machine = machine
        self._inventory = inventory

    async def start_session(
        self, vehicle_id: Optional[str] = None, user_id: Optional[str] = None
    ) -> dict[str, Any]:
        """Open a session and return its greeting.

        When ``vehicle_id`` names a listing in the inventory, the greeting
        refers to that vehicle.
        """
        session_id = f"sess-{uuid.uuid4().hex[:12]}"
        set_session_id(session_id)
        vehicle = None
        if vehicle_id and self._inventory is not None:
            vehicle = await self._inventory.find_by_id(vehicle_id)
            if vehicle is None:
                logger.warning("Start vehicle %s not found, using a plain greeting", vehicle_id)

        if vehicle is not None:
            content = f"Estou interessado no {vehicle.make} {vehicle.model} {vehicle.year}"
        else:
            content = "Olá"
        response = await self.process_message(
            session_id, content, interested_vehicle=vehicle, user_id=user_id
        )
        return {
            "session_id": session_id,
            "greeting": response.response,
            "vehicle": vehicle.model_dump(exclude={"embedding"}) if vehicle else None,
        }

    async def send_message(self, session_id: str, content: str) -> ChatResponse:
        """Handle a message for an existing session.

        Raises:
            SessionNotFoundError: If the session was never started or was deleted.
        """
        if session_id not in self.store:
            raise SessionNotFoundError(session_id)
        return await self._handle(session_id, content, create=False)

    async def process_message(
        self,
        session_id: str,
        content: str,
        interested_vehicle: Optional[VehicleSummary] = None,
        user_id: Optional[str] = None,
    ) -> ChatResponse:
        """Handle a message, creating the session on first use."""
        return await self._handle(
            session_id,
            content,
            create=True,
            interested_vehicle=interested_vehicle,
            user_id=user_id,
        )

    async def _handle(
        self,
        session_id: str,
        content: str,
        create: bool,
        interested_vehicle: Optional[VehicleSummary] = None,
        user_id: Optional[str] = None,
    ) -> ChatResponse:
        set_session_id(session_id)
        async with self.store.lock(session_id):
            if create:
                session = self.store.get_or_create(session_id, user_id)
            else:
                session = self.store.get(session_id)
                if session is None:
                    raise SessionNotFoundError(session_id)

            if interested_vehicle is not None and not session.messages:
                seed_vehicle(session, interested_vehicle)

            logger.info("Turn at node %s", session.node.value)
            try:
                result = await self.machine.run_turn(session, content)
            except Exception:
                logger.exception("Turn failed")
                session.metadata.error_count += 1
                text = messages.build_apology()
                session.add_message(Speaker.ASSISTANT, text)
                return self._response(session, text, [], failed=True)

            logger.info(
                "Turn done: %s", " -> ".join(n.value for n in result.trace)
            )
            return self._response(session, result.reply, result.turn_flags)

    @staticmethod
    def _response(
        session: ConversationSession,
        text: str,
        turn_flags: list[str],
        failed: bool = False,
    ) -> ChatResponse:
        return ChatResponse(
            session_id=session.session_id,
            response=text,
            suggested_actions=derive_suggested_actions(session, turn_flags, failed),
            recommendations=list(session.recommendations),
            current_node=session.node,
            profile=session.profile,
        )

    def get_state(self, session_id: str) -> Optional[dict[str, Any]]:
        """Debug snapshot of a session, or None if unknown."""
        session = self.store.get(session_id)
        return session.snapshot() if session else None

    def delete_session(self, session_id: str) -> None:
        self.store.clear(session_id)

    def get_active_count(self) -> int:
        return self.store.count()


def build_chat_service(
    inventory: Optional[InventoryStore] = None,
    embeddings: Optional[EmbeddingProvider] = None,
    providers: Optional[list[ChatProvider]] = None,
) -> ChatService:
    """Wire the default collaborators into a ChatService.

    Without arguments this runs fully offline: the sample inventory,
    keyword and filter ranking, and no LLM for free-form questions.
    """
    if inventory is None:
        inventory = InMemoryInventoryStore()
    search = VehicleSearchService(inventory, embeddings)
    router = LLMRouter(providers) if providers else None
    services = NodeServices(ranker=RecommendationRanker(search), router=router)
    return ChatService(SessionStore(), ConversationStateMachine(services), inventory)
