"""Conversation session state and the outbound response envelope."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from carinsight.schemas.profile_schema import CustomerProfile
from carinsight.schemas.vehicle_schema import VehicleRecommendation


class Speaker(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"


class DialogueNode(str, Enum):
    """Named stages of the sales dialogue."""
    GREETING = "greeting"
    DISCOVERY = "discovery"
    SEARCH = "search"
    RECOMMENDATION = "recommendation"
    FINANCING = "financing"
    TRADE_IN = "trade_in"
    NEGOTIATION = "negotiation"
    HANDOFF = "handoff"
    END = "end"


TERMINAL_NODES = frozenset({DialogueNode.HANDOFF, DialogueNode.END})


class SuggestedAction(str, Enum):
    HANDOFF_HUMAN = "HANDOFF_HUMAN"
    SCHEDULE_VISIT = "SCHEDULE_VISIT"
    SHOW_DETAILS = "SHOW_DETAILS"
    SHOW_FINANCING = "SHOW_FINANCING"
    FINANCING_SIMULATION = "FINANCING_SIMULATION"
    TRADE_IN_EVALUATION = "TRADE_IN_EVALUATION"
    RETRY = "RETRY"


@dataclass
class Message:
    """A single utterance in the session history."""
    speaker: Speaker
    text: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class SessionMetadata:
    """Bookkeeping counters and flags for one conversation."""
    started_at: float = field(default_factory=time.time)
    last_message_at: float = field(default_factory=time.time)
    loop_count: int = 0
    error_count: int = 0
    flags: list[str] = field(default_factory=list)

    def add_flag(self, flag: str) -> None:
        """Record a flag once; flags are never removed."""
        if flag not in self.flags:
            self.flags.append(flag)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags


@dataclass
class ConversationSession:
    """
    The unit of conversational continuity.

    Owned by the SessionStore and mutated only by the state machine while
    holding the session's lock.
    """
    session_id: str
    user_id: Optional[str] = None
    messages: list[Message] = field(default_factory=list)
    profile: CustomerProfile = field(default_factory=CustomerProfile)
    recommendations: list[VehicleRecommendation] = field(default_factory=list)
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    node: DialogueNode = DialogueNode.GREETING

    def add_message(self, speaker: Speaker, text: str) -> None:
        self.messages.append(Message(speaker=speaker, text=text))
        self.metadata.last_message_at = time.time()

    @property
    def last_message(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None

    def last_human_text(self) -> str:
        for message in reversed(self.messages):
            if message.speaker == Speaker.HUMAN:
                return message.text
        return ""

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe debug view of the whole session."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "node": self.node.value,
            "profile": self.profile.model_dump(mode="json"),
            "recommendations": [r.model_dump(mode="json") for r in self.recommendations],
            "messages": [
                {"speaker": m.speaker.value, "text": m.text, "timestamp": m.timestamp}
                for m in self.messages
            ],
            "metadata": {
                "started_at": self.metadata.started_at,
                "last_message_at": self.metadata.last_message_at,
                "loop_count": self.metadata.loop_count,
                "error_count": self.metadata.error_count,
                "flags": list(self.metadata.flags),
            },
        }


class ChatResponse(BaseModel):
    """Envelope returned to the transport layer after every turn."""

    session_id: str
    response: str
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)
    recommendations: list[VehicleRecommendation] = Field(default_factory=list)
    current_node: DialogueNode
    profile: Optional[CustomerProfile] = None
