"""
Types exchanged between the state machine and node handlers.

A handler receives a NodeContext and returns a Transition naming the next
node plus a StateDelta. Handlers never mutate the session themselves; the
state machine applies the delta.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from carinsight.conversation.extractor import ProfileExtractor
from carinsight.conversation.guardrails import GuardrailPipeline
from carinsight.recommendation.ranker import Ranker
from carinsight.schemas.conversation_schema import (
    ConversationSession,
    DialogueNode,
    SessionMetadata,
)
from carinsight.schemas.profile_schema import CustomerProfile
from carinsight.schemas.vehicle_schema import VehicleRecommendation
from carinsight.tools.llm_router import LLMRouter


@dataclass
class StateDelta:
    """Partial session update produced by one handler run."""
    profile: dict[str, Any] = field(default_factory=dict)
    # None keeps the current list; a list (even empty) replaces it.
    recommendations: Optional[list[VehicleRecommendation]] = None
    flags: list[str] = field(default_factory=list)
    loop_increment: int = 0
    error_increment: int = 0
    reply: Optional[str] = None


@dataclass
class Transition:
    """Next node plus the state change that leads there."""
    node: DialogueNode
    delta: StateDelta = field(default_factory=StateDelta)


def goto(node: DialogueNode, **delta: Any) -> Transition:
    """Move to ``node`` without replying; it runs in the same turn."""
    return Transition(node=node, delta=StateDelta(**delta))


def reply(node: DialogueNode, text: str, **delta: Any) -> Transition:
    """Reply and wait for the customer; ``node`` handles their next message."""
    return Transition(node=node, delta=StateDelta(reply=text, **delta))


@dataclass
class NodeServices:
    """Collaborators injected into every handler."""
    extractor: ProfileExtractor = field(default_factory=ProfileExtractor)
    guardrails: GuardrailPipeline = field(default_factory=GuardrailPipeline)
    ranker: Optional[Ranker] = None
    router: Optional[LLMRouter] = None


@dataclass
class NodeContext:
    """What a handler sees for one step of a turn.

    ``utterance`` is the customer's message only for the first handler of a
    turn. A node entered through an internal transition gets ``None`` and
    can still read ``latest_message``.
    """
    session: ConversationSession
    utterance: Optional[str]
    services: NodeServices
    turn_flags: list[str] = field(default_factory=list)

    @property
    def profile(self) -> CustomerProfile:
        return self.session.profile

    @property
    def recommendations(self) -> list[VehicleRecommendation]:
        return self.session.recommendations

    @property
    def metadata(self) -> SessionMetadata:
        return self.session.metadata

    @property
    def latest_message(self) -> str:
        return self.session.last_human_text()

    @property
    def text(self) -> str:
        """The message to react to: this turn's utterance or the latest one."""
        return self.utterance if self.utterance is not None else self.latest_message

    @property
    def is_entry(self) -> bool:
        """True when the node was entered this turn without a fresh utterance."""
        return self.utterance is None


NodeHandler = Callable[[NodeContext], Awaitable[Transition]]
