"""Handoff and End: terminal nodes that close the conversation politely.

Neither node transitions anywhere. A message arriving after the close gets
a short reminder instead of restarting the flow.
"""

from carinsight.conversation.transitions import NodeContext, Transition, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode

logger = get_session_logger(__name__)


async def handoff_node(ctx: NodeContext) -> Transition:
    if ctx.is_entry:
        logger.info("Conversation handed off to a consultant")
        return reply(
            DialogueNode.HANDOFF,
            messages.build_handoff_message(ctx.profile.customer_name),
            flags=["handoff_requested"],
        )
    return reply(DialogueNode.HANDOFF, messages.build_handoff_followup())


async def end_node(ctx: NodeContext) -> Transition:
    consultant_pending = ctx.metadata.has_flag("negotiation_started") or ctx.metadata.has_flag(
        "handoff_requested"
    )
    if ctx.is_entry:
        logger.info("Conversation ended by the customer")
    return reply(
        DialogueNode.END,
        messages.build_farewell(ctx.profile.customer_name, consultant_pending),
        flags=["conversation_ended"],
    )
