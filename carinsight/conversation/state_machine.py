"""
Dialogue state machine driving one customer turn through the node graph.

Each turn appends the customer's message, then runs node handlers starting
from the session's stored node. A handler returns a Transition; the machine
applies its delta and follows the transition until a handler has replied,
so a single message can pass through Discovery -> Search -> Recommendation
and still produce exactly one assistant message.

Usage:
    machine = ConversationStateMachine(NodeServices(ranker=ranker))
    result = await machine.run_turn(session, "Oi, sou Maria")
    assert session.node == DialogueNode.DISCOVERY
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from carinsight.config import settings
from carinsight.conversation.transitions import (
    NodeContext,
    NodeHandler,
    NodeServices,
    Transition,
)
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import (
    ConversationSession,
    DialogueNode,
    Speaker,
)

logger = get_session_logger(__name__)

MAX_RECOMMENDATIONS = 3


@dataclass
class TurnResult:
    """Outcome of one customer turn."""
    reply: str
    node: DialogueNode
    trace: list[DialogueNode] = field(default_factory=list)
    turn_flags: list[str] = field(default_factory=list)


def coerce_node(value: Any) -> DialogueNode:
    """Map any stored node value to a defined node, defaulting to Greeting."""
    try:
        return DialogueNode(value)
    except ValueError:
        logger.warning("Unknown node %r, falling back to greeting", value)
        return DialogueNode.GREETING


class ConversationStateMachine:
    """
    Runs node handlers for a session until one of them replies.

    Handlers come from the node registry unless a mapping is passed in,
    which lets tests replace single nodes. ``max_steps`` bounds how many
    handlers one turn may run; hitting it produces an apology instead of
    looping forever.
    """

    def __init__(
        self,
        services: Optional[NodeServices] = None,
        handlers: Optional[dict[DialogueNode, NodeHandler]] = None,
        max_steps: Optional[int] = None,
    ) -> None:
        if handlers is None:
            from carinsight.nodes.registry import registered_nodes

            handlers = registered_nodes()
        self.services = services or NodeServices()
        self._handlers = dict(handlers)
        self._max_steps = max_steps or settings.guardrails.max_turn_steps

    def _resolve(self, node: Any) -> tuple[DialogueNode, NodeHandler]:
        node = coerce_node(node)
        handler = self._handlers.get(node)
        if handler is None:
            logger.warning("No handler for node %s, falling back to greeting", node.value)
            node = DialogueNode.GREETING
            handler = self._handlers[node]
        return node, handler

    @staticmethod
    def _apply(
        session: ConversationSession, transition: Transition, turn_flags: list[str]
    ) -> None:
        delta = transition.delta
        if delta.profile:
            session.profile = session.profile.merged(delta.profile)
        if delta.recommendations is not None:
            session.recommendations = list(delta.recommendations[:MAX_RECOMMENDATIONS])
        for flag in delta.flags:
            session.metadata.add_flag(flag)
            if flag not in turn_flags:
                turn_flags.append(flag)
        session.metadata.loop_count += delta.loop_increment
        session.metadata.error_count += delta.error_increment
        session.node = coerce_node(transition.node)
        if delta.reply is not None:
            session.add_message(Speaker.ASSISTANT, delta.reply)

    async def run_turn(self, session: ConversationSession, utterance: str) -> TurnResult:
        """Process one customer message and return the assistant's reply.

        Handler exceptions propagate; the caller decides how to apologize.
        """
        session.add_message(Speaker.HUMAN, utterance)
        turn_flags: list[str] = []
        trace: list[DialogueNode] = []
        pending: Optional[str] = utterance

        for _ in range(self._max_steps):
            node, handler = self._resolve(session.node)
            session.node = node
            trace.append(node)
            ctx = NodeContext(
                session=session,
                utterance=pending,
                services=self.services,
                turn_flags=turn_flags,
            )
            transition = await handler(ctx)
            pending = None
            self._apply(session, transition, turn_flags)

            last = session.last_message
            if last is not None and last.speaker == Speaker.ASSISTANT:
                logger.debug("Turn finished: %s", " -> ".join(n.value for n in trace))
                return TurnResult(
                    reply=last.text,
                    node=session.node,
                    trace=trace,
                    turn_flags=turn_flags,
                )

        logger.error(
            "Turn exceeded %d steps without a reply: %s",
            self._max_steps, " -> ".join(n.value for n in trace),
        )
        session.metadata.error_count += 1
        text = messages.build_apology()
        session.add_message(Speaker.ASSISTANT, text)
        return TurnResult(reply=text, node=session.node, trace=trace, turn_flags=turn_flags)
