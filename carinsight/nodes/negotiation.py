"""Negotiation node: summarizes the deal and waits for the consultant."""

from carinsight.conversation.intents import Intent, matches
from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode

logger = get_session_logger(__name__)


async def negotiation_node(ctx: NodeContext) -> Transition:
    if ctx.is_entry:
        visit = ctx.metadata.has_flag("visit_requested")
        logger.info("Negotiation started")
        return reply(
            DialogueNode.NEGOTIATION,
            messages.build_negotiation_summary(ctx.profile, ctx.recommendations, visit),
            flags=["negotiation_started"],
        )

    text = ctx.text

    if ctx.recommendations and matches(Intent.BACK_TO_OPTIONS, text):
        return goto(DialogueNode.RECOMMENDATION)

    if matches(Intent.NEW_SEARCH, text):
        logger.info("Customer wants a different search")
        return reply(
            DialogueNode.DISCOVERY,
            messages.build_new_search(),
            recommendations=[],
            profile={"shown_recommendation": False},
        )

    if matches(Intent.FAREWELL, text):
        return goto(DialogueNode.END, flags=["conversation_ended"])

    if matches(Intent.TIMING, text):
        return reply(DialogueNode.NEGOTIATION, messages.build_timing_reply())

    return reply(DialogueNode.NEGOTIATION, messages.build_negotiation_forwarded())
